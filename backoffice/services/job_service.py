from __future__ import annotations

from sqlalchemy import case, delete, func, select
from sqlalchemy.orm import Session

from backoffice.config import settings
from backoffice.errors import ItemValidationError, NotFoundError
from backoffice.models import JobItem, JobList, JobStatus, JobView, Principal, Product
from backoffice.services.fulfillment_service import snapshot_item
from backoffice.services.snapshots import (
    JobDetailSnapshot,
    JobListSnapshot,
    LineItemSnapshot,
    SourceGroup,
    job_list_snapshot,
    source_snapshot,
)
from backoffice.services.source_service import get_source, resolve_source_by_name
from backoffice.timeutils import utcnow


def _get_job(db: Session, job_id: int) -> JobList:
    job = db.execute(select(JobList).where(JobList.id == job_id)).scalar_one_or_none()
    if not job:
        raise NotFoundError('Job list not found', job_id=job_id)
    return job


def _creator_name(db: Session, principal_id: int) -> str | None:
    row = db.execute(select(Principal.full_name, Principal.username).where(Principal.id == principal_id)).one_or_none()
    if not row:
        return None
    return row.full_name or row.username


def _parse_status(value: str | JobStatus) -> JobStatus:
    try:
        return JobStatus(value)
    except ValueError as exc:
        raise ItemValidationError(f'Invalid job status: {value}') from exc


def list_job_lists(db: Session, *, limit: int = 200) -> list[JobListSnapshot]:
    counts = (
        select(
            JobItem.job_list_id.label('job_list_id'),
            func.count(JobItem.id).label('item_count'),
            func.sum(case((JobItem.is_checked.is_(True), 1), else_=0)).label('checked_count'),
        )
        .group_by(JobItem.job_list_id)
        .subquery()
    )
    rows = db.execute(
        select(JobList, Principal.full_name, Principal.username, counts.c.item_count, counts.c.checked_count)
        .join(Principal, Principal.id == JobList.created_by_principal_id)
        .outerjoin(counts, counts.c.job_list_id == JobList.id)
        .order_by(JobList.created_at.desc(), JobList.id.desc())
        .limit(limit)
    ).all()
    return [
        job_list_snapshot(
            job,
            creator_name=full_name or username,
            item_count=int(item_count or 0),
            checked_count=int(checked_count or 0),
        )
        for job, full_name, username, item_count, checked_count in rows
    ]


def create_job_list(db: Session, *, title: str, created_by_principal_id: int) -> JobListSnapshot:
    clean_title = (title or '').strip()
    if not clean_title:
        raise ItemValidationError('Title is required')
    if len(clean_title) > 255:
        raise ItemValidationError('Title is too long')

    now = utcnow()
    job = JobList(
        title=clean_title,
        status=JobStatus.PENDING,
        created_by_principal_id=created_by_principal_id,
        created_at=now,
        updated_at=now,
    )
    db.add(job)
    db.flush()
    return job_list_snapshot(job, creator_name=_creator_name(db, created_by_principal_id))


def update_job_status(db: Session, *, job_id: int, status: str | JobStatus) -> JobListSnapshot:
    job = _get_job(db, job_id)
    job.status = _parse_status(status)
    job.updated_at = utcnow()
    db.flush()
    return job_list_snapshot(job, creator_name=_creator_name(db, job.created_by_principal_id))


def delete_job_list(db: Session, *, job_id: int) -> None:
    job = _get_job(db, job_id)
    db.execute(delete(JobView).where(JobView.job_list_id == job_id))
    db.execute(delete(JobItem).where(JobItem.job_list_id == job_id))
    db.delete(job)
    db.flush()


def list_items(db: Session, *, job_id: int) -> list[LineItemSnapshot]:
    items = db.execute(
        select(JobItem).where(JobItem.job_list_id == job_id).order_by(JobItem.id.asc())
    ).scalars().all()
    return [snapshot_item(db, item) for item in items]


def get_job_detail(db: Session, *, job_id: int) -> JobDetailSnapshot:
    job = _get_job(db, job_id)
    items = list_items(db, job_id=job_id)

    grouped: dict[int, list[LineItemSnapshot]] = {}
    for item in items:
        grouped.setdefault(item.source_id, []).append(item)

    groups = tuple(
        SourceGroup(source=source_snapshot(get_source(db, source_id)), items=tuple(source_items))
        for source_id, source_items in grouped.items()
    )
    checked = sum(1 for item in items if item.is_checked)
    return JobDetailSnapshot(
        job=job_list_snapshot(
            job,
            creator_name=_creator_name(db, job.created_by_principal_id),
            item_count=len(items),
            checked_count=checked,
        ),
        items=tuple(items),
        grouped_items=groups,
    )


def add_item(
    db: Session,
    *,
    job_id: int,
    source_id: int | None = None,
    source_name: str | None = None,
    product_id: int | None = None,
    custom_name: str | None = None,
    quantity: int | None = None,
    unit: str | None = None,
) -> LineItemSnapshot:
    _get_job(db, job_id)

    clean_name = (custom_name or '').strip() or None
    if product_id is None and clean_name is None:
        raise ItemValidationError('Select a stock product or enter a custom item name')
    if product_id is not None and clean_name is not None:
        raise ItemValidationError('An item refers to a stock product or a custom name, not both')

    if quantity is None:
        quantity = 1
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ItemValidationError('quantity must be at least 1')

    if source_id is not None and source_name is not None:
        raise ItemValidationError('Send either source_id or source_name, not both')
    if source_id is not None:
        source = get_source(db, source_id)
    elif source_name and source_name.strip():
        source = resolve_source_by_name(db, source_name)
    else:
        raise ItemValidationError('Source is required')

    item_unit = (unit or '').strip() or None
    if product_id is not None:
        product = db.execute(select(Product).where(Product.id == product_id)).scalar_one_or_none()
        if not product:
            raise NotFoundError('Product not found', product_id=product_id)
        item_unit = item_unit or product.unit or settings.default_unit

    item = JobItem(
        job_list_id=job_id,
        product_id=product_id,
        custom_name=clean_name,
        source_id=source.id,
        quantity=quantity,
        unit=item_unit,
        is_checked=False,
        created_at=utcnow(),
    )
    db.add(item)
    db.flush()
    return snapshot_item(db, item)
