"""Argument checks and sanitation of receipt candidates.

Everything coming from the receipt parser is untrusted: ``sanitize_candidate``
turns it into a ``BillSnapshot`` that satisfies the snapshot invariants, or
raises ``InvalidStructure`` when the candidate is not shaped like a bill.
"""
import math
from collections.abc import Mapping
from typing import Any, Optional

from constants import (
    DEFAULT_CURRENCY,
    DEFAULT_ITEM_DESCRIPTION,
    DEFAULT_PARTICIPANT_NAME,
    DEFAULT_QUANTITY,
    ITEM_DESCRIPTION_MAX_LENGTH,
    PARTICIPANT_NAME_MAX_LENGTH,
    UNASSIGNED_ID,
)
from errors import InvalidStructure
from id_generators import CounterIdGenerator
from logging_config import get_logger
from models import (
    Allocation,
    BillSnapshot,
    LineItem,
    Meta,
    Modifier,
    Modifiers,
    ModifierSource,
    ModifierType,
    Participant,
    SplitEntry,
    SplitMethod,
)

logger = get_logger(__name__)


def is_number(value: Any) -> bool:
    """Finite int or float; bools are not numbers here"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def is_valid_weight(weight: Any) -> bool:
    return is_number(weight) and weight >= 0


def is_valid_price(price: Any) -> bool:
    return is_number(price) and price >= 0


def is_valid_modifier_value(value: Any) -> bool:
    # None clears the modifier, it then contributes nothing
    return value is None or is_number(value)


def parse_modifier_type(value: Any) -> Optional[ModifierType]:
    if isinstance(value, ModifierType):
        return value
    try:
        return ModifierType(value)
    except ValueError:
        return None


def sanitize_participant_name(name: Any) -> str:
    if not isinstance(name, str):
        return ''
    return name.strip()[:PARTICIPANT_NAME_MAX_LENGTH]


def sanitize_item_description(description: Any) -> str:
    if not isinstance(description, str):
        return ''
    return description.strip()[:ITEM_DESCRIPTION_MAX_LENGTH]


def can_delete_participant(snapshot: BillSnapshot, participant_id: str) -> bool:
    """The last remaining participant can never be removed"""
    return len(snapshot.participants) > 1 and snapshot.participant(participant_id) is not None


def coerce_number(value: Any, default: float = 0.0) -> float:
    """Best-effort float for parser output ("12.34", 12, None...)"""
    if isinstance(value, bool):
        return default
    if isinstance(value, str):
        try:
            value = float(value.strip().replace('$', '').replace(',', ''))
        except ValueError:
            return default
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return default
    return float(value)


def _raw_id(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def validate_structure(raw: Any) -> Mapping:
    """Shape check only: arrays and objects where a bill has them"""
    if not isinstance(raw, Mapping):
        raise InvalidStructure('Invalid response structure: expected an object')

    if 'split_entries' not in raw and 'split_logic' in raw:
        raw = dict(raw, split_entries=raw['split_logic'])

    for key in ('participants', 'line_items', 'split_entries'):
        if not isinstance(raw.get(key), list):
            raise InvalidStructure(f'Invalid response structure: "{key}" must be a list')
    for key in ('modifiers', 'meta'):
        if not isinstance(raw.get(key), Mapping):
            raise InvalidStructure(f'Invalid response structure: "{key}" must be an object')
    return raw


def _sanitize_participants(rows, ids):
    participants = []
    seen = set()
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        pid = _raw_id(row.get('id'))
        if pid is None or pid in seen or pid == UNASSIGNED_ID:
            pid = ids()
        seen.add(pid)
        name = sanitize_participant_name(row.get('name'))
        if not name:
            name = DEFAULT_PARTICIPANT_NAME.format(n=len(participants) + 1)
        participants.append(Participant(id=pid, name=name))
    return participants


def _sanitize_line_items(rows, ids):
    items = []
    seen = set()
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        item_id = _raw_id(row.get('id'))
        if item_id is None or item_id in seen:
            item_id = ids()
        seen.add(item_id)
        description = sanitize_item_description(row.get('description')) or DEFAULT_ITEM_DESCRIPTION
        quantity = max(DEFAULT_QUANTITY, int(coerce_number(row.get('quantity'), DEFAULT_QUANTITY)))
        items.append(LineItem(
            id=item_id,
            description=description,
            quantity=quantity,
            unit_price=max(0.0, coerce_number(row.get('unit_price'))),
            total_price=max(0.0, coerce_number(row.get('total_price')))
        ))
    return items


def _sanitize_split_entries(rows, item_ids, participant_ids):
    entries = []
    seen = set()
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        item_id = _raw_id(row.get('item_id'))
        if item_id not in item_ids or item_id in seen:
            logger.debug("Dropping split entry for unknown or repeated item %r", item_id)
            continue
        seen.add(item_id)

        try:
            method = SplitMethod(row.get('method'))
        except ValueError:
            method = SplitMethod.RATIO

        allocations = []
        allocated = set()
        raw_allocations = row.get('allocations')
        for alloc in raw_allocations if isinstance(raw_allocations, list) else []:
            if not isinstance(alloc, Mapping):
                continue
            pid = _raw_id(alloc.get('participant_id'))
            weight = alloc.get('weight')
            # zero weights are never stored, see allocation_store.set_allocation_weight
            if pid not in participant_ids or pid in allocated or not is_valid_weight(weight) or weight <= 0:
                continue
            allocated.add(pid)
            allocations.append(Allocation(participant_id=pid, weight=float(weight)))

        entries.append(SplitEntry(item_id=item_id, method=method, allocations=tuple(allocations)))
    return entries


def _sanitize_modifier(raw: Any) -> Modifier:
    if not isinstance(raw, Mapping):
        return Modifier()
    try:
        source = ModifierSource(raw.get('source'))
    except ValueError:
        source = ModifierSource.USER
    modifier_type = parse_modifier_type(raw.get('type')) or ModifierType.FIXED

    value = raw.get('value')
    if value is not None:
        value = coerce_number(value, default=None)
    if value is not None:
        value = max(0.0, value)
    return Modifier(source=source, type=modifier_type, value=value)


def _sanitize_meta(raw: Mapping) -> Meta:
    currency = raw.get('currency')
    if isinstance(currency, str) and len(currency.strip()) == 3 and currency.strip().isalpha():
        currency = currency.strip().upper()
    else:
        currency = DEFAULT_CURRENCY
    notes = raw.get('notes')
    return Meta(currency=currency, notes=notes.strip() if isinstance(notes, str) else '')


def sanitize_candidate(raw: Any, participant_ids=None, item_ids=None) -> BillSnapshot:
    """Turn an untrusted receipt candidate into a valid BillSnapshot.

    participant_ids / item_ids are id generators used for missing or repeated
    ids; both default to counters ("p1", "item1", ...) that skip ids already
    present in the candidate.
    """
    raw = validate_structure(raw)

    participant_ids = participant_ids or CounterIdGenerator('p')
    item_ids = item_ids or CounterIdGenerator('item')
    participant_ids.reserve(
        pid for pid in (_raw_id(row.get('id')) for row in raw['participants'] if isinstance(row, Mapping)) if pid
    )
    item_ids.reserve(
        iid for iid in (_raw_id(row.get('id')) for row in raw['line_items'] if isinstance(row, Mapping)) if iid
    )

    participants = _sanitize_participants(raw['participants'], participant_ids)
    if not participants:
        raise InvalidStructure('A bill needs at least one participant')

    line_items = _sanitize_line_items(raw['line_items'], item_ids)
    split_entries = _sanitize_split_entries(
        raw['split_entries'],
        {item.id for item in line_items},
        {p.id for p in participants}
    )

    modifiers = Modifiers(
        tax=_sanitize_modifier(raw['modifiers'].get('tax')),
        tip=_sanitize_modifier(raw['modifiers'].get('tip'))
    )

    snapshot = BillSnapshot(
        participants=tuple(participants),
        line_items=tuple(line_items),
        split_entries=tuple(split_entries),
        modifiers=modifiers,
        meta=_sanitize_meta(raw['meta'])
    )
    logger.info(
        "Accepted bill with %d participants, %d items, %d split entries",
        len(snapshot.participants), len(snapshot.line_items), len(snapshot.split_entries)
    )
    return snapshot
