"""Check / uncheck / edit / split / delete for job list line items.

An item moves between three live states:

    OPEN     not checked
    PARTIAL  checked, quantity_found < quantity
    FULL     checked, quantity_found >= quantity

Stock only moves on the edges listed in STOCK_EFFECTS, and only for items
that reference a product drawn from an internal source. OPEN -> PARTIAL/FULL
is the single debit edge; PARTIAL -> FULL carries nothing, so an item is
debited at most once per check cycle.

Every function here expects to run inside the caller's transaction (see
backoffice.db.transaction); item and product rows are read FOR UPDATE.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.errors import (
    AlreadyCompleteError,
    InvalidSplitQuantityError,
    ItemLockedError,
    ItemValidationError,
    NotCheckedError,
    NotFoundError,
    NotSplittableError,
)
from backoffice.logging_config import get_logger
from backoffice.models import JobItem, MissingReason, Product, Source
from backoffice.services import stock_ledger_service
from backoffice.services.audit_service import log_item_deletion
from backoffice.services.snapshots import DeletionSnapshot, LineItemSnapshot, deletion_snapshot, line_item_snapshot
from backoffice.services.source_service import get_source, resolve_source_by_name
from backoffice.timeutils import utcnow

logger = get_logger('fulfillment')


class ItemState(str, Enum):
    OPEN = 'open'
    PARTIAL = 'partial'
    FULL = 'full'


class StockEffect(str, Enum):
    NONE = 'none'
    DEBIT = 'debit'
    CREDIT = 'credit'


STOCK_EFFECTS: dict[tuple[ItemState, ItemState], StockEffect] = {
    (ItemState.OPEN, ItemState.PARTIAL): StockEffect.DEBIT,
    (ItemState.OPEN, ItemState.FULL): StockEffect.DEBIT,
    (ItemState.PARTIAL, ItemState.FULL): StockEffect.NONE,
    (ItemState.PARTIAL, ItemState.OPEN): StockEffect.CREDIT,
    (ItemState.FULL, ItemState.OPEN): StockEffect.CREDIT,
}

EDITABLE_FIELDS = frozenset(
    {
        'quantity',
        'source_id',
        'source_name',
        'quantity_found',
        'quantity_missing',
        'missing_source',
        'missing_reason',
        'unit',
    }
)


@dataclass(frozen=True)
class SplitResult:
    original: LineItemSnapshot
    created: LineItemSnapshot


def item_state(item: JobItem) -> ItemState:
    if not item.is_checked:
        return ItemState.OPEN
    found = item.quantity_found if item.quantity_found is not None else item.quantity
    if found >= item.quantity:
        return ItemState.FULL
    return ItemState.PARTIAL


def shortfall(quantity: int, quantity_found: int) -> int:
    return max(0, quantity - quantity_found)


def _lock_item(db: Session, item_id: int) -> JobItem:
    stmt = select(JobItem).where(JobItem.id == item_id).with_for_update().execution_options(populate_existing=True)
    item = db.execute(stmt).scalar_one_or_none()
    if not item:
        raise NotFoundError('Item not found', item_id=item_id)
    return item


def _product_name(db: Session, product_id: int | None) -> str | None:
    if product_id is None:
        return None
    return db.execute(select(Product.name).where(Product.id == product_id)).scalar_one_or_none()


def snapshot_item(db: Session, item: JobItem) -> LineItemSnapshot:
    return line_item_snapshot(item, state=item_state(item).value, product_name=_product_name(db, item.product_id))


def _clear_missing(item: JobItem) -> None:
    item.quantity_missing = 0
    item.missing_source = None
    item.missing_reason = None


def _apply_stock_effect(
    db: Session,
    item: JobItem,
    source: Source,
    before: ItemState,
    after: ItemState,
) -> StockEffect:
    effect = STOCK_EFFECTS.get((before, after))
    if effect is None:
        raise ItemValidationError(f'Illegal item transition {before.value} -> {after.value}', item_id=item.id)
    if effect is StockEffect.NONE or not stock_ledger_service.should_touch_stock(item.product_id, source):
        return StockEffect.NONE
    if effect is StockEffect.DEBIT:
        stock_ledger_service.debit(db, item.product_id, item.quantity)
    else:
        stock_ledger_service.credit(db, item.product_id, item.quantity)
    return effect


def check_item(db: Session, *, item_id: int, actor_id: int, now: datetime | None = None) -> LineItemSnapshot:
    item = _lock_item(db, item_id)
    before = item_state(item)
    if before is ItemState.FULL:
        raise AlreadyCompleteError('Item is already complete', item_id=item_id)

    if before is ItemState.PARTIAL:
        item.quantity_found = item.quantity
        _clear_missing(item)
    else:
        item.is_checked = True
        item.checked_by_principal_id = actor_id
        item.checked_at = now or utcnow()
        found = item.quantity_found if item.quantity_found is not None else item.quantity
        item.quantity_found = found
        if found >= item.quantity:
            _clear_missing(item)
        else:
            item.quantity_missing = shortfall(item.quantity, found)

    after = item_state(item)
    source = get_source(db, item.source_id)
    effect = _apply_stock_effect(db, item, source, before, after)
    db.flush()

    logger.info(
        'item_checked',
        extra={
            'item_id': item.id,
            'job_list_id': item.job_list_id,
            'actor_id': actor_id,
            'from_state': before.value,
            'to_state': after.value,
            'stock_effect': effect.value,
        },
    )
    return snapshot_item(db, item)


def uncheck_item(db: Session, *, item_id: int) -> LineItemSnapshot:
    item = _lock_item(db, item_id)
    before = item_state(item)
    if before is ItemState.OPEN:
        raise NotCheckedError('Item is not checked', item_id=item_id)

    item.is_checked = False
    item.checked_by_principal_id = None
    item.checked_at = None
    if before is ItemState.FULL:
        # Nothing was short; the default found-quantity applies again on the next check.
        item.quantity_found = None
        item.quantity_missing = None

    source = get_source(db, item.source_id)
    effect = _apply_stock_effect(db, item, source, before, ItemState.OPEN)
    db.flush()

    logger.info(
        'item_unchecked',
        extra={
            'item_id': item.id,
            'job_list_id': item.job_list_id,
            'from_state': before.value,
            'stock_effect': effect.value,
        },
    )
    return snapshot_item(db, item)


def _non_negative(value, *, field: str, minimum: int = 0) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ItemValidationError(f'{field} must be a whole number')
    if value < minimum:
        raise ItemValidationError(f'{field} must be at least {minimum}')
    return value


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    clean = str(value).strip()
    return clean or None


def _parse_missing_reason(value) -> MissingReason | None:
    if value is None or value == '':
        return None
    try:
        return MissingReason(value)
    except ValueError as exc:
        raise ItemValidationError(f'Invalid missing reason: {value}') from exc


def edit_item(db: Session, *, item_id: int, changes: dict) -> LineItemSnapshot:
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ItemValidationError('Unknown item fields', fields=sorted(unknown))
    if changes.get('source_id') is not None and changes.get('source_name'):
        raise ItemValidationError('Provide either source_id or source_name, not both')

    item = _lock_item(db, item_id)
    if item.is_checked:
        raise ItemLockedError('Checked items cannot be edited', item_id=item_id)

    if 'quantity' in changes:
        quantity = _non_negative(changes['quantity'], field='quantity', minimum=1)
        if quantity is None:
            raise ItemValidationError('quantity is required')
        item.quantity = quantity
    if changes.get('source_id') is not None:
        item.source_id = get_source(db, changes['source_id']).id
    elif changes.get('source_name'):
        item.source_id = resolve_source_by_name(db, changes['source_name']).id
    if 'quantity_found' in changes:
        item.quantity_found = _non_negative(changes['quantity_found'], field='quantity_found')
    if 'quantity_missing' in changes:
        item.quantity_missing = _non_negative(changes['quantity_missing'], field='quantity_missing')
    elif item.quantity_found is not None and ('quantity_found' in changes or 'quantity' in changes):
        item.quantity_missing = shortfall(item.quantity, item.quantity_found)
    elif 'quantity_found' in changes:
        item.quantity_missing = None
    if 'missing_source' in changes:
        item.missing_source = _optional_text(changes['missing_source'])
    if 'missing_reason' in changes:
        item.missing_reason = _parse_missing_reason(changes['missing_reason'])
    if 'unit' in changes:
        item.unit = _optional_text(changes['unit'])

    db.flush()
    logger.info('item_edited', extra={'item_id': item.id, 'fields': sorted(changes)})
    return snapshot_item(db, item)


def _new_sibling(item: JobItem, quantity: int) -> JobItem:
    return JobItem(
        job_list_id=item.job_list_id,
        product_id=item.product_id,
        custom_name=item.custom_name,
        source_id=item.source_id,
        quantity=quantity,
        unit=item.unit,
        is_checked=False,
    )


def split_item(db: Session, *, item_id: int, split_quantity: int | None = None) -> SplitResult:
    """Split an item into two.

    OPEN items move ``split_quantity`` into a new open sibling, sharing out any
    found amount entered so far. PARTIAL items keep the found portion as a
    complete item and move the shortfall into a new open sibling; the
    shortfall goes back to stock because the sibling is debited on its own
    check.
    """
    item = _lock_item(db, item_id)
    state = item_state(item)

    if state is ItemState.FULL:
        raise NotSplittableError('Completed items cannot be split', item_id=item_id)

    if state is ItemState.OPEN:
        if split_quantity is None or isinstance(split_quantity, bool) or not 0 < split_quantity < item.quantity:
            raise InvalidSplitQuantityError(
                'Split quantity must be between 1 and the item quantity minus one',
                item_id=item_id,
                quantity=item.quantity,
            )
        moved = split_quantity
        item.quantity -= moved
        carried = None
        if item.quantity_found is not None:
            # The found amount is shared out, never duplicated.
            kept = min(item.quantity_found, item.quantity)
            carried = item.quantity_found - kept
            item.quantity_found = kept
            item.quantity_missing = shortfall(item.quantity, kept)
    else:
        found = item.quantity_found or 0
        if not 0 < found < item.quantity:
            raise InvalidSplitQuantityError(
                'Nothing was found for this item, there is no completed portion to split off',
                item_id=item_id,
                quantity_found=found,
            )
        moved = item.quantity - found
        item.quantity = found
        _clear_missing(item)
        source = get_source(db, item.source_id)
        if stock_ledger_service.should_touch_stock(item.product_id, source):
            stock_ledger_service.credit(db, item.product_id, moved)
        carried = None

    sibling = _new_sibling(item, moved)
    if carried is not None:
        sibling.quantity_found = carried
        sibling.quantity_missing = shortfall(moved, carried)
    db.add(sibling)
    db.flush()

    logger.info(
        'item_split',
        extra={
            'item_id': item.id,
            'new_item_id': sibling.id,
            'job_list_id': item.job_list_id,
            'from_state': state.value,
            'moved_quantity': moved,
        },
    )
    return SplitResult(original=snapshot_item(db, item), created=snapshot_item(db, sibling))


def delete_item(
    db: Session,
    *,
    item_id: int,
    actor_id: int,
    reason: str | None = None,
    now: datetime | None = None,
) -> DeletionSnapshot:
    item = _lock_item(db, item_id)
    source = get_source(db, item.source_id)
    display_name = _product_name(db, item.product_id) or item.custom_name or f'#{item.id}'

    entry = log_item_deletion(
        db,
        job_list_id=item.job_list_id,
        product_name=display_name,
        quantity=item.quantity,
        source_name=source.name,
        deleted_by_principal_id=actor_id,
        reason=reason,
        now=now,
    )
    db.delete(item)
    db.flush()

    logger.info(
        'item_deleted',
        extra={'item_id': item_id, 'job_list_id': entry.job_list_id, 'actor_id': actor_id, 'deletion_id': entry.id},
    )
    return deletion_snapshot(entry)
