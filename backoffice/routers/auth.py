from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.auth import Principal, get_current_principal
from backoffice.config import settings
from backoffice.db import get_db
from backoffice.dependencies import get_client_ip, get_user_agent
from backoffice.models import Principal as PrincipalModel
from backoffice.schemas import LoginRequest
from backoffice.security.csrf import verify_csrf
from backoffice.security.passwords import verify_password
from backoffice.security.sessions import create_web_session, revoke_web_session
from backoffice.services.audit_service import log_audit, log_auth_event

router = APIRouter(prefix='/api/auth', tags=['auth'])


def _login_failed(db: Session, *, username: str, reason: str, principal_id: int | None, ip, user_agent) -> JSONResponse:
    log_auth_event(
        db,
        attempted_username=username,
        success=False,
        failure_reason=reason,
        principal_id=principal_id,
        ip=ip,
        user_agent=user_agent,
    )
    db.commit()
    return JSONResponse(
        {'error': 'INVALID_CREDENTIALS', 'message': 'Invalid username or password'},
        status_code=status.HTTP_401_UNAUTHORIZED,
    )


@router.get('/csrf')
def csrf_token(request: Request):
    return {'csrf_token': getattr(request.state, 'csrf_token', '')}


@router.post('/login')
def login_submit(
    body: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    username = body.username
    ip = get_client_ip(request)
    user_agent = get_user_agent(request)

    principal = db.execute(select(PrincipalModel).where(PrincipalModel.username == username)).scalar_one_or_none()
    if not principal:
        return _login_failed(db, username=username, reason='UNKNOWN_USERNAME', principal_id=None, ip=ip, user_agent=user_agent)

    if not principal.active:
        return _login_failed(
            db, username=username, reason='INACTIVE_PRINCIPAL', principal_id=principal.id, ip=ip, user_agent=user_agent
        )

    valid, upgraded_hash = verify_password(body.password, principal.password_hash)
    if not valid:
        return _login_failed(db, username=username, reason='BAD_PASSWORD', principal_id=principal.id, ip=ip, user_agent=user_agent)
    if upgraded_hash:
        principal.password_hash = upgraded_hash

    token = create_web_session(db, principal.id, ip=ip, user_agent=user_agent)
    log_auth_event(
        db,
        attempted_username=username,
        success=True,
        failure_reason=None,
        principal_id=principal.id,
        ip=ip,
        user_agent=user_agent,
    )
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='AUTH_LOGIN',
        job_list_id=None,
        ip=ip,
        metadata={'username': username},
    )
    db.commit()

    response = JSONResponse(
        {
            'id': principal.id,
            'username': principal.username,
            'full_name': principal.full_name,
            'role': principal.role.value,
        }
    )
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return response


@router.post('/logout')
def logout(request: Request, db: Session = Depends(get_db), _: None = Depends(verify_csrf)):
    principal = getattr(request.state, 'principal', None)
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        revoke_web_session(db, token)

    log_audit(
        db,
        actor_principal_id=principal.id if principal else None,
        action='AUTH_LOGOUT',
        job_list_id=None,
        ip=get_client_ip(request),
        metadata={},
    )
    db.commit()

    response = JSONResponse({'success': True})
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get('/me')
def me(principal: Principal = Depends(get_current_principal)):
    return {
        'id': principal.id,
        'username': principal.username,
        'full_name': principal.full_name,
        'role': principal.role.value,
    }
