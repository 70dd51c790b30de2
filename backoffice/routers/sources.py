from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from backoffice.auth import Principal, get_current_principal, require_admin
from backoffice.db import get_db, transaction
from backoffice.dependencies import get_client_ip
from backoffice.schemas import SourceCreate, SourceUpdate
from backoffice.security.csrf import verify_csrf
from backoffice.services import source_service
from backoffice.services.audit_service import log_audit
from backoffice.services.snapshots import to_dict

router = APIRouter(prefix='/api/sources', tags=['sources'])


@router.get('')
def list_sources(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return jsonable_encoder(to_dict(source_service.list_sources(db)))


@router.post('', status_code=status.HTTP_201_CREATED)
def create_source(
    body: SourceCreate,
    request: Request,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    with transaction(db):
        source = source_service.create_source(db, name=body.name, color_code=body.color_code, type=body.type)
        log_audit(
            db,
            actor_principal_id=principal.id,
            action='SOURCE_CREATED',
            job_list_id=None,
            ip=get_client_ip(request),
            metadata={'source_id': source.id, 'name': source.name, 'type': source.type},
        )
    return jsonable_encoder(to_dict(source))


@router.put('/{source_id}')
def update_source(
    source_id: int,
    body: SourceUpdate,
    request: Request,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    with transaction(db):
        source = source_service.update_source(
            db,
            source_id=source_id,
            name=body.name,
            color_code=body.color_code,
            type=body.type,
        )
        log_audit(
            db,
            actor_principal_id=principal.id,
            action='SOURCE_UPDATED',
            job_list_id=None,
            ip=get_client_ip(request),
            metadata={'source_id': source.id, 'fields': sorted(body.model_dump(exclude_unset=True))},
        )
    return jsonable_encoder(to_dict(source))


@router.delete('/{source_id}')
def delete_source(
    source_id: int,
    request: Request,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    with transaction(db):
        source_service.delete_source(db, source_id=source_id)
        log_audit(
            db,
            actor_principal_id=principal.id,
            action='SOURCE_DELETED',
            job_list_id=None,
            ip=get_client_ip(request),
            metadata={'source_id': source_id},
        )
    return {'success': True}
