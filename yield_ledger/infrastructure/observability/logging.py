"""Structured JSON logging for production observability"""

import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from yield_ledger.config import settings
from yield_ledger.domain.models import AccrualSummary

# Set per HTTP request by RequestIDMiddleware; None for worker and CLI logs
current_request_id: ContextVar[Optional[str]] = ContextVar("current_request_id", default=None)


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name
        request_id = current_request_id.get()
        if request_id is not None and "request_id" not in log_record:
            log_record["request_id"] = request_id


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_withdrawal_outcome(
    request_id: str,
    account: str,
    amount: str,
    outcome: str,
) -> None:
    """Log a withdrawal submission; refusals carry the rule code as outcome"""
    log = logging.getLogger("yield_ledger.withdrawals")
    extra = {
        "request_id": request_id,
        "account": account,
        "step": "withdrawal_submit",
        "amount": amount,
        "outcome": outcome,
    }
    if outcome == "accepted":
        log.info("Withdrawal accepted", extra=extra)
    else:
        log.warning("Withdrawal refused", extra=extra)


def log_accrual_summary(summary: AccrualSummary, duration_ms: float) -> None:
    """Log end-of-run accrual counts for the daily report"""
    logging.getLogger("yield_ledger.accrual").info(
        "Accrual run completed",
        extra={
            "step": "accrual_complete",
            "grant_date": summary.grant_date.isoformat(),
            "checked": summary.checked,
            "granted": summary.granted,
            "skipped": summary.skipped,
            "duplicates": summary.duplicates,
            "failed": summary.failed,
            "total_amount": str(summary.total_amount),
            "duration_ms": duration_ms,
        },
    )
