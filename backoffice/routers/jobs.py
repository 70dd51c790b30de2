from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from backoffice.auth import Principal, get_current_principal
from backoffice.db import get_db, transaction
from backoffice.dependencies import get_client_ip
from backoffice.schemas import ItemCreate, ItemDelete, ItemEdit, ItemSplit, JobCreate, JobStatusUpdate
from backoffice.security.csrf import verify_csrf
from backoffice.services import audit_service, fulfillment_service, job_service
from backoffice.services.snapshots import to_dict

router = APIRouter(prefix='/api/jobs', tags=['jobs'])


def _audit(db: Session, request: Request, principal: Principal, action: str, job_list_id: int | None, **metadata) -> None:
    audit_service.log_audit(
        db,
        actor_principal_id=principal.id,
        action=action,
        job_list_id=job_list_id,
        ip=get_client_ip(request),
        metadata=metadata,
    )


@router.get('')
def list_jobs(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return jsonable_encoder(to_dict(job_service.list_job_lists(db)))


@router.post('', status_code=status.HTTP_201_CREATED)
def create_job(
    body: JobCreate,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    with transaction(db):
        job = job_service.create_job_list(db, title=body.title, created_by_principal_id=principal.id)
        _audit(db, request, principal, 'JOB_LIST_CREATED', job.id, title=job.title)
    return jsonable_encoder(to_dict(job))


@router.get('/{job_id}')
def job_detail(
    job_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    detail = job_service.get_job_detail(db, job_id=job_id)
    if audit_service.record_view(db, job_list_id=job_id, principal_id=principal.id):
        audit_service.commit_view(db, job_list_id=job_id, principal_id=principal.id)
    return jsonable_encoder(to_dict(detail))


@router.put('/{job_id}/status')
def update_status(
    job_id: int,
    body: JobStatusUpdate,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    with transaction(db):
        job = job_service.update_job_status(db, job_id=job_id, status=body.status)
        _audit(db, request, principal, 'JOB_LIST_STATUS_CHANGED', job_id, status=job.status)
    return jsonable_encoder(to_dict(job))


@router.delete('/{job_id}')
def delete_job(
    job_id: int,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    with transaction(db):
        job_service.delete_job_list(db, job_id=job_id)
        _audit(db, request, principal, 'JOB_LIST_DELETED', job_id)
    return {'success': True}


@router.post('/{job_id}/items', status_code=status.HTTP_201_CREATED)
def add_item(
    job_id: int,
    body: ItemCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    with transaction(db):
        item = job_service.add_item(
            db,
            job_id=job_id,
            product_id=body.product_id,
            custom_name=body.custom_name,
            source_id=body.source_id,
            source_name=body.source_name,
            quantity=body.quantity,
            unit=body.unit,
        )
    return jsonable_encoder(to_dict(item))


@router.get('/{job_id}/deletions')
def job_deletions(
    job_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return jsonable_encoder(to_dict(audit_service.list_deletions(db, job_list_id=job_id)))


@router.get('/{job_id}/views')
def job_views(
    job_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return jsonable_encoder(to_dict(audit_service.list_views(db, job_list_id=job_id)))


@router.post('/items/{item_id}/check')
def check_item(
    item_id: int,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    with transaction(db):
        item = fulfillment_service.check_item(db, item_id=item_id, actor_id=principal.id)
        _audit(db, request, principal, 'JOB_ITEM_CHECKED', item.job_list_id, item_id=item_id, state=item.state)
    return {'success': True, 'item': jsonable_encoder(to_dict(item))}


@router.post('/items/{item_id}/uncheck')
def uncheck_item(
    item_id: int,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    with transaction(db):
        item = fulfillment_service.uncheck_item(db, item_id=item_id)
        _audit(db, request, principal, 'JOB_ITEM_UNCHECKED', item.job_list_id, item_id=item_id)
    return {'success': True, 'item': jsonable_encoder(to_dict(item))}


@router.patch('/items/{item_id}')
def edit_item(
    item_id: int,
    body: ItemEdit,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    with transaction(db):
        item = fulfillment_service.edit_item(db, item_id=item_id, changes=body.changes())
    return jsonable_encoder(to_dict(item))


@router.post('/items/{item_id}/split')
def split_item(
    item_id: int,
    body: ItemSplit,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    with transaction(db):
        result = fulfillment_service.split_item(db, item_id=item_id, split_quantity=body.split_quantity)
        _audit(
            db,
            request,
            principal,
            'JOB_ITEM_SPLIT',
            result.original.job_list_id,
            item_id=item_id,
            new_item_id=result.created.id,
        )
    return {'success': True, **jsonable_encoder(to_dict(result))}


@router.delete('/items/{item_id}')
def delete_item(
    item_id: int,
    request: Request,
    body: ItemDelete | None = None,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    reason = body.reason if body else None
    with transaction(db):
        entry = fulfillment_service.delete_item(db, item_id=item_id, actor_id=principal.id, reason=reason)
        _audit(db, request, principal, 'JOB_ITEM_DELETED', entry.job_list_id, item_id=item_id, deletion_id=entry.id)
    return {'success': True, 'deletion': jsonable_encoder(to_dict(entry))}
