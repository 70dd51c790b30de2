from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from backoffice.auth import Principal, get_current_principal
from backoffice.db import get_db
from backoffice.services import stock_ledger_service
from backoffice.services.snapshots import to_dict

router = APIRouter(prefix='/api/products', tags=['products'])


@router.get('/search')
def search_products(
    q: str = Query(default='', max_length=100),
    limit: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return jsonable_encoder(to_dict(stock_ledger_service.search_products(db, q, limit=limit)))


@router.get('/{product_id}')
def get_product(
    product_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return jsonable_encoder(to_dict(stock_ledger_service.find_product(db, product_id)))
