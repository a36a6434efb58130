"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from yield_ledger.api.middleware import RequestIDMiddleware, MetricsMiddleware
from yield_ledger.api.v1 import accounts, admin, investments, products, recharges, referrals, withdrawals
from yield_ledger.infrastructure.observability.logging import setup_logging
from yield_ledger.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Yield Ledger",
        description="Append-only ledger, daily accrual and withdrawal policy service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(accounts.router, prefix="/v1", tags=["ledger"])
    app.include_router(products.router, prefix="/v1", tags=["products"])
    app.include_router(investments.router, prefix="/v1", tags=["investments"])
    app.include_router(withdrawals.router, prefix="/v1", tags=["withdrawals"])
    app.include_router(recharges.router, prefix="/v1", tags=["recharges"])
    app.include_router(referrals.router, prefix="/v1", tags=["referrals"])
    app.include_router(admin.router, prefix="/v1", tags=["admin"])

    return app


app = create_app()
