from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.config import settings
from backoffice.logging_config import get_logger
from backoffice.models import AuditLog, AuthEvent, JobItemDeletion, JobView, Principal
from backoffice.services.snapshots import DeletionSnapshot, ViewSnapshot, deletion_snapshot
from backoffice.timeutils import as_utc, utcnow

logger = get_logger('audit')


def log_auth_event(
    db: Session,
    *,
    attempted_username: str,
    success: bool,
    ip: str | None,
    user_agent: str | None,
    principal_id: int | None = None,
    failure_reason: str | None = None,
) -> None:
    db.add(
        AuthEvent(
            attempted_username=attempted_username,
            success=success,
            failure_reason=failure_reason,
            principal_id=principal_id,
            ip=ip,
            user_agent=user_agent,
        )
    )


def log_audit(
    db: Session,
    *,
    actor_principal_id: int | None,
    action: str,
    job_list_id: int | None,
    ip: str | None,
    metadata: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            actor_principal_id=actor_principal_id,
            action=action,
            job_list_id=job_list_id,
            ip=ip,
            meta=metadata or {},
        )
    )


def log_item_deletion(
    db: Session,
    *,
    job_list_id: int,
    product_name: str,
    quantity: int,
    source_name: str | None,
    deleted_by_principal_id: int,
    reason: str | None = None,
    now: datetime | None = None,
) -> JobItemDeletion:
    entry = JobItemDeletion(
        job_list_id=job_list_id,
        product_name=product_name,
        quantity=quantity,
        source_name=source_name,
        deleted_by_principal_id=deleted_by_principal_id,
        deleted_at=now or utcnow(),
        reason=reason.strip() if reason and reason.strip() else None,
    )
    db.add(entry)
    db.flush()
    return entry


def list_deletions(db: Session, *, job_list_id: int) -> list[DeletionSnapshot]:
    rows = db.execute(
        select(JobItemDeletion, Principal.username)
        .join(Principal, Principal.id == JobItemDeletion.deleted_by_principal_id)
        .where(JobItemDeletion.job_list_id == job_list_id)
        .order_by(JobItemDeletion.deleted_at.desc(), JobItemDeletion.id.desc())
    ).all()
    return [deletion_snapshot(entry, username=username) for entry, username in rows]


def _latest_view_at(db: Session, *, job_list_id: int, principal_id: int) -> datetime | None:
    value = db.execute(
        select(JobView.viewed_at)
        .where(JobView.job_list_id == job_list_id, JobView.principal_id == principal_id)
        .order_by(JobView.viewed_at.desc())
        .limit(1)
    ).scalar_one_or_none()
    return as_utc(value)


def record_view(db: Session, *, job_list_id: int, principal_id: int, now: datetime | None = None) -> bool:
    """Record that a principal opened a job list, at most once per dedup window.

    Best-effort: a database failure here is logged and reported as False, and
    the surrounding transaction stays usable.
    """
    now = now or utcnow()
    window = timedelta(minutes=settings.job_view_dedup_minutes)
    try:
        with db.begin_nested():
            last_seen = _latest_view_at(db, job_list_id=job_list_id, principal_id=principal_id)
            if last_seen is not None and now - last_seen < window:
                return False
            db.add(JobView(job_list_id=job_list_id, principal_id=principal_id, viewed_at=now))
    except SQLAlchemyError:
        logger.warning(
            'job_view_not_recorded',
            extra={'job_list_id': job_list_id, 'principal_id': principal_id},
            exc_info=True,
        )
        return False
    return True


def commit_view(db: Session, *, job_list_id: int, principal_id: int) -> bool:
    """Commit a recorded view; a failed commit is rolled back and logged."""
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning(
            'job_view_not_committed',
            extra={'job_list_id': job_list_id, 'principal_id': principal_id},
            exc_info=True,
        )
        return False
    return True


def list_views(db: Session, *, job_list_id: int, limit: int = 100) -> list[ViewSnapshot]:
    rows = db.execute(
        select(JobView, Principal.username)
        .join(Principal, Principal.id == JobView.principal_id)
        .where(JobView.job_list_id == job_list_id)
        .order_by(JobView.viewed_at.desc(), JobView.id.desc())
        .limit(limit)
    ).all()
    return [
        ViewSnapshot(
            id=view.id,
            job_list_id=view.job_list_id,
            principal_id=view.principal_id,
            username=username,
            viewed_at=as_utc(view.viewed_at),
        )
        for view, username in rows
    ]
