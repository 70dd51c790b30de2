from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from backoffice.errors import ItemValidationError, NotFoundError
from backoffice.logging_config import get_logger
from backoffice.models import Product, Source, SourceType
from backoffice.services.snapshots import ProductSnapshot, product_snapshot
from backoffice.timeutils import utcnow

logger = get_logger('stock_ledger')


def _lock_product(db: Session, product_id: int) -> Product:
    stmt = select(Product).where(Product.id == product_id).with_for_update().execution_options(populate_existing=True)
    product = db.execute(stmt).scalar_one_or_none()
    if not product:
        raise NotFoundError('Product not found', product_id=product_id)
    return product


def find_product(db: Session, product_id: int) -> ProductSnapshot:
    product = db.execute(select(Product).where(Product.id == product_id)).scalar_one_or_none()
    if not product:
        raise NotFoundError('Product not found', product_id=product_id)
    return product_snapshot(product)


def search_products(db: Session, query: str, *, limit: int = 20) -> list[ProductSnapshot]:
    term = (query or '').strip()
    if not term:
        return []
    pattern = f'%{term}%'
    rows = db.execute(
        select(Product)
        .where(or_(Product.name.ilike(pattern), Product.barcode == term, Product.brand.ilike(pattern)))
        .order_by(Product.name.asc())
        .limit(limit)
    ).scalars().all()
    return [product_snapshot(row) for row in rows]


def should_touch_stock(product_id: int | None, source: Source) -> bool:
    return product_id is not None and source.type == SourceType.INTERNAL


def debit(db: Session, product_id: int, amount: int) -> int:
    """Remove stock for a fulfilled line, never going below zero."""
    if amount < 0:
        raise ItemValidationError('Debit amount cannot be negative')
    product = _lock_product(db, product_id)
    previous = product.current_stock
    product.current_stock = max(0, previous - amount)
    product.updated_at = utcnow()
    db.flush()
    logger.info(
        'stock_debited',
        extra={'product_id': product_id, 'amount': amount, 'previous_stock': previous, 'new_stock': product.current_stock},
    )
    return product.current_stock


def credit(db: Session, product_id: int, amount: int) -> int:
    if amount < 0:
        raise ItemValidationError('Credit amount cannot be negative')
    product = _lock_product(db, product_id)
    previous = product.current_stock
    product.current_stock = previous + amount
    product.updated_at = utcnow()
    db.flush()
    logger.info(
        'stock_credited',
        extra={'product_id': product_id, 'amount': amount, 'previous_stock': previous, 'new_stock': product.current_stock},
    )
    return product.current_stock
