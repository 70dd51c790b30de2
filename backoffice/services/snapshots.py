from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime

from backoffice.models import JobItem, JobItemDeletion, JobList, Product, Source
from backoffice.timeutils import as_utc


@dataclass(frozen=True)
class SourceSnapshot:
    id: int
    name: str
    color_code: str
    type: str


@dataclass(frozen=True)
class ProductSnapshot:
    id: int
    name: str
    barcode: str | None
    current_stock: int
    unit: str | None
    brand: str | None


@dataclass(frozen=True)
class LineItemSnapshot:
    id: int
    job_list_id: int
    product_id: int | None
    product_name: str | None
    custom_name: str | None
    source_id: int
    quantity: int
    unit: str | None
    quantity_found: int | None
    quantity_missing: int | None
    missing_source: str | None
    missing_reason: str | None
    is_checked: bool
    checked_by_principal_id: int | None
    checked_at: datetime | None
    state: str

    @property
    def display_name(self) -> str:
        return self.product_name or self.custom_name or ''


@dataclass(frozen=True)
class JobListSnapshot:
    id: int
    title: str
    status: str
    created_by_principal_id: int
    creator_name: str | None
    created_at: datetime | None
    item_count: int = 0
    checked_count: int = 0


@dataclass(frozen=True)
class SourceGroup:
    source: SourceSnapshot
    items: tuple[LineItemSnapshot, ...]


@dataclass(frozen=True)
class JobDetailSnapshot:
    job: JobListSnapshot
    items: tuple[LineItemSnapshot, ...]
    grouped_items: tuple[SourceGroup, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class DeletionSnapshot:
    id: int
    job_list_id: int
    product_name: str
    quantity: int
    source_name: str | None
    deleted_by_principal_id: int
    deleted_by_username: str | None
    deleted_at: datetime | None
    reason: str | None


@dataclass(frozen=True)
class ViewSnapshot:
    id: int
    job_list_id: int
    principal_id: int
    username: str | None
    viewed_at: datetime | None


def _enum_value(value) -> str | None:
    if value is None:
        return None
    return value.value if hasattr(value, 'value') else str(value)


def source_snapshot(source: Source) -> SourceSnapshot:
    return SourceSnapshot(
        id=source.id,
        name=source.name,
        color_code=source.color_code,
        type=_enum_value(source.type),
    )


def product_snapshot(product: Product) -> ProductSnapshot:
    return ProductSnapshot(
        id=product.id,
        name=product.name,
        barcode=product.barcode,
        current_stock=product.current_stock,
        unit=product.unit,
        brand=product.brand,
    )


def line_item_snapshot(item: JobItem, *, state: str, product_name: str | None = None) -> LineItemSnapshot:
    return LineItemSnapshot(
        id=item.id,
        job_list_id=item.job_list_id,
        product_id=item.product_id,
        product_name=product_name,
        custom_name=item.custom_name,
        source_id=item.source_id,
        quantity=item.quantity,
        unit=item.unit,
        quantity_found=item.quantity_found,
        quantity_missing=item.quantity_missing,
        missing_source=item.missing_source,
        missing_reason=_enum_value(item.missing_reason),
        is_checked=item.is_checked,
        checked_by_principal_id=item.checked_by_principal_id,
        checked_at=as_utc(item.checked_at),
        state=state,
    )


def job_list_snapshot(
    job: JobList,
    *,
    creator_name: str | None = None,
    item_count: int = 0,
    checked_count: int = 0,
) -> JobListSnapshot:
    return JobListSnapshot(
        id=job.id,
        title=job.title,
        status=_enum_value(job.status),
        created_by_principal_id=job.created_by_principal_id,
        creator_name=creator_name,
        created_at=as_utc(job.created_at),
        item_count=item_count,
        checked_count=checked_count,
    )


def deletion_snapshot(entry: JobItemDeletion, *, username: str | None = None) -> DeletionSnapshot:
    return DeletionSnapshot(
        id=entry.id,
        job_list_id=entry.job_list_id,
        product_name=entry.product_name,
        quantity=entry.quantity,
        source_name=entry.source_name,
        deleted_by_principal_id=entry.deleted_by_principal_id,
        deleted_by_username=username,
        deleted_at=as_utc(entry.deleted_at),
        reason=entry.reason,
    )


def to_dict(snapshot):
    """Plain dict/list form of a snapshot, ready for jsonable_encoder."""
    if isinstance(snapshot, (list, tuple)):
        return [to_dict(value) for value in snapshot]
    if not is_dataclass(snapshot):
        return snapshot
    data = {f.name: to_dict(getattr(snapshot, f.name)) for f in fields(snapshot)}
    if isinstance(snapshot, LineItemSnapshot):
        data['display_name'] = snapshot.display_name
    return data
