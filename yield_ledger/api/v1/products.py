"""Product catalog endpoints"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from yield_ledger.api.v1.schemas import ProductSchema, ProductUpsertRequest
from yield_ledger.domain.balance import to_money
from yield_ledger.domain.models import Product
from yield_ledger.infrastructure.database.repositories import ProductRepository
from yield_ledger.infrastructure.database.session import get_db

router = APIRouter()


def _product_schema(row) -> ProductSchema:
    price = to_money(row.price)
    daily_income = to_money(row.daily_income)
    return ProductSchema(
        product_id=row.id,
        title=row.title,
        price=price,
        daily_income=daily_income,
        duration_days=row.duration_days,
        level=row.level,
        total_return=to_money(daily_income * row.duration_days),
    )


@router.get("/products", response_model=List[ProductSchema])
def list_products(db: Session = Depends(get_db)):
    return [_product_schema(row) for row in ProductRepository(db).list_all()]


@router.put("/admin/products/{product_id}", response_model=ProductSchema)
def upsert_product(product_id: str, body: ProductUpsertRequest, db: Session = Depends(get_db)):
    """Create or replace a catalog entry; existing investments keep their purchase price"""
    row = ProductRepository(db).upsert(
        Product(
            product_id=product_id,
            title=body.title,
            price=to_money(body.price),
            daily_income=to_money(body.daily_income),
            duration_days=body.duration_days,
            level=body.level,
        )
    )
    db.commit()
    return _product_schema(row)
