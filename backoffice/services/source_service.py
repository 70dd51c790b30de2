from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.errors import ItemValidationError, NotFoundError
from backoffice.logging_config import get_logger
from backoffice.models import JobItem, Source, SourceType
from backoffice.services.snapshots import SourceSnapshot, source_snapshot

logger = get_logger('sources')

DEFAULT_EXTERNAL_COLOR = 'bg-gray-100'


def _clean_name(name: str | None) -> str:
    clean = (name or '').strip()
    if not clean:
        raise ItemValidationError('Source name is required')
    if len(clean) > 100:
        raise ItemValidationError('Source name is too long')
    return clean


def _parse_type(value: str | SourceType) -> SourceType:
    try:
        return SourceType(value)
    except ValueError as exc:
        raise ItemValidationError(f'Invalid source type: {value}') from exc


def get_source(db: Session, source_id: int) -> Source:
    source = db.execute(select(Source).where(Source.id == source_id)).scalar_one_or_none()
    if not source:
        raise NotFoundError('Source not found', source_id=source_id)
    return source


def list_sources(db: Session) -> list[SourceSnapshot]:
    rows = db.execute(select(Source).order_by(Source.name.asc())).scalars().all()
    return [source_snapshot(row) for row in rows]


def _find_by_name(db: Session, name: str) -> Source | None:
    return db.execute(select(Source).where(Source.name == name)).scalar_one_or_none()


def create_source(db: Session, *, name: str, color_code: str, type: str | SourceType) -> SourceSnapshot:
    clean_name = _clean_name(name)
    if _find_by_name(db, clean_name):
        raise ItemValidationError('Source name already exists')
    color = (color_code or '').strip()
    if not color:
        raise ItemValidationError('Color code is required')

    source = Source(name=clean_name, color_code=color, type=_parse_type(type))
    db.add(source)
    db.flush()
    return source_snapshot(source)


def update_source(
    db: Session,
    *,
    source_id: int,
    name: str | None = None,
    color_code: str | None = None,
    type: str | SourceType | None = None,
) -> SourceSnapshot:
    source = get_source(db, source_id)
    if name is not None:
        clean_name = _clean_name(name)
        existing = _find_by_name(db, clean_name)
        if existing and existing.id != source.id:
            raise ItemValidationError('Source name already exists')
        source.name = clean_name
    if color_code is not None:
        if not color_code.strip():
            raise ItemValidationError('Color code is required')
        source.color_code = color_code.strip()
    if type is not None:
        source.type = _parse_type(type)
    db.flush()
    return source_snapshot(source)


def delete_source(db: Session, *, source_id: int) -> None:
    source = get_source(db, source_id)
    in_use = db.execute(select(func.count(JobItem.id)).where(JobItem.source_id == source_id)).scalar_one()
    if in_use:
        raise ItemValidationError('Source is used by job items and cannot be deleted', item_count=in_use)
    db.delete(source)
    db.flush()


def resolve_source_by_name(db: Session, name: str) -> Source:
    """Find a source by exact name or create it as an external source.

    The insert runs in a savepoint so that a concurrent creator winning the
    unique constraint leaves the caller's transaction usable; the loser then
    reads the winner's row.
    """
    clean_name = _clean_name(name)
    source = _find_by_name(db, clean_name)
    if source:
        return source

    try:
        with db.begin_nested():
            source = Source(name=clean_name, color_code=DEFAULT_EXTERNAL_COLOR, type=SourceType.EXTERNAL)
            db.add(source)
    except IntegrityError:
        source = _find_by_name(db, clean_name)
        if not source:
            raise
        return source

    logger.info('source_created_from_name', extra={'source_id': source.id, 'source_name': clean_name})
    return source
