"""Copy-on-write edits of a bill and the container that owns the current one.

Every mutation is a plain function ``(snapshot, ...) -> snapshot``. Invalid
arguments make the function return the very same snapshot object; otherwise a
new snapshot is built that shares every substructure it did not touch.
"""
import threading
import time
from collections.abc import Mapping
from dataclasses import replace
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from bill_splitting_logic import compute
from constants import (
    DEFAULT_NEW_PARTICIPANT_NAME,
    DEFAULT_PRICE,
    DEFAULT_QUANTITY,
    DEMO_BILL,
    MODIFIER_KEYS,
)
from id_generators import CounterIdGenerator, UuidIdGenerator
from logging_config import get_logger
from models import (
    Allocation,
    BillSnapshot,
    LineItem,
    Participant,
    SettlementResult,
    SplitEntry,
    SplitMethod,
)
from validation import (
    can_delete_participant,
    coerce_number,
    is_valid_modifier_value,
    is_valid_price,
    is_valid_weight,
    parse_modifier_type,
    sanitize_candidate,
    sanitize_item_description,
    sanitize_participant_name,
)

logger = get_logger(__name__)

IdGenerator = Callable[[], str]


def set_allocation_weight(snapshot: BillSnapshot, item_id: str, participant_id: str, weight: Any) -> BillSnapshot:
    if not is_valid_weight(weight):
        return snapshot
    if snapshot.line_item(item_id) is None or snapshot.participant(participant_id) is None:
        return snapshot
    weight = float(weight)

    index = next((i for i, s in enumerate(snapshot.split_entries) if s.item_id == item_id), None)
    if index is None:
        if weight <= 0:
            return snapshot
        entry = SplitEntry(
            item_id=item_id,
            method=SplitMethod.RATIO,
            allocations=(Allocation(participant_id, weight),)
        )
        return replace(snapshot, split_entries=snapshot.split_entries + (entry,))

    entry = snapshot.split_entries[index]
    current = entry.allocation_for(participant_id)
    if current is None:
        if weight <= 0:
            return snapshot
        allocations = entry.allocations + (Allocation(participant_id, weight),)
    elif weight <= 0:
        # never keep a zero weight around; an emptied entry reads as unassigned
        allocations = tuple(a for a in entry.allocations if a.participant_id != participant_id)
    else:
        allocations = tuple(
            replace(a, weight=weight) if a.participant_id == participant_id else a
            for a in entry.allocations
        )

    entries = list(snapshot.split_entries)
    entries[index] = replace(entry, allocations=allocations)
    return replace(snapshot, split_entries=tuple(entries))


def set_modifier_type(snapshot: BillSnapshot, key: str, modifier_type: Any) -> BillSnapshot:
    modifier_type = parse_modifier_type(modifier_type)
    if key not in MODIFIER_KEYS or modifier_type is None:
        return snapshot
    modifier = replace(snapshot.modifiers.get(key), type=modifier_type)
    return replace(snapshot, modifiers=replace(snapshot.modifiers, **{key: modifier}))


def set_modifier_value(snapshot: BillSnapshot, key: str, value: Any) -> BillSnapshot:
    if key not in MODIFIER_KEYS or not is_valid_modifier_value(value):
        return snapshot
    value = None if value is None else float(value)
    modifier = replace(snapshot.modifiers.get(key), value=value)
    return replace(snapshot, modifiers=replace(snapshot.modifiers, **{key: modifier}))


_MODIFIER_SETTERS = {
    'type': set_modifier_type,
    'value': set_modifier_value,
}


def set_modifier(snapshot: BillSnapshot, key: str, field: str, value: Any) -> BillSnapshot:
    """Generic setter kept for callers that address a modifier field by name"""
    setter = _MODIFIER_SETTERS.get(field)
    if setter is None:
        return snapshot
    return setter(snapshot, key, value)


def rename_participant(snapshot: BillSnapshot, participant_id: str, name: Any) -> BillSnapshot:
    name = sanitize_participant_name(name)
    if not name or snapshot.participant(participant_id) is None:
        return snapshot
    return replace(snapshot, participants=tuple(
        replace(p, name=name) if p.id == participant_id else p
        for p in snapshot.participants
    ))


def add_participant(snapshot: BillSnapshot, participant_id: str) -> Tuple[BillSnapshot, Participant]:
    participant = Participant(id=participant_id, name=DEFAULT_NEW_PARTICIPANT_NAME)
    return replace(snapshot, participants=snapshot.participants + (participant,)), participant


def delete_participant(snapshot: BillSnapshot, participant_id: str) -> BillSnapshot:
    if not can_delete_participant(snapshot, participant_id):
        return snapshot

    entries = []
    for entry in snapshot.split_entries:
        if entry.allocation_for(participant_id) is None:
            entries.append(entry)
        else:
            entries.append(replace(entry, allocations=tuple(
                a for a in entry.allocations if a.participant_id != participant_id
            )))

    return replace(
        snapshot,
        participants=tuple(p for p in snapshot.participants if p.id != participant_id),
        split_entries=tuple(entries)
    )


def build_line_item(partial: Mapping, item_id: str) -> Optional[LineItem]:
    """LineItem from an editor form, or None when the form is not acceptable"""
    description = sanitize_item_description(partial.get('description'))
    if not description:
        return None

    price = partial.get('total_price')
    if price is None:
        price = DEFAULT_PRICE
    if not is_valid_price(price):
        return None

    quantity = max(DEFAULT_QUANTITY, int(coerce_number(partial.get('quantity'), DEFAULT_QUANTITY)))
    return LineItem(
        id=item_id,
        description=description,
        quantity=quantity,
        unit_price=float(price),
        total_price=float(price)
    )


def upsert_line_item(snapshot: BillSnapshot, partial: Mapping, new_id: IdGenerator) -> BillSnapshot:
    if not isinstance(partial, Mapping):
        return snapshot

    item_id = partial.get('id')
    existing = snapshot.line_item(item_id) if item_id else None

    if existing is not None:
        item = build_line_item(partial, existing.id)
        if item is None:
            return snapshot
        return replace(snapshot, line_items=tuple(
            item if i.id == existing.id else i for i in snapshot.line_items
        ))

    # validate before drawing an id so rejected forms do not consume one
    if build_line_item(partial, '') is None:
        return snapshot
    item = build_line_item(partial, new_id())
    return replace(snapshot, line_items=snapshot.line_items + (item,))


def delete_line_item(snapshot: BillSnapshot, item_id: str) -> BillSnapshot:
    if snapshot.line_item(item_id) is None:
        return snapshot
    return replace(
        snapshot,
        line_items=tuple(i for i in snapshot.line_items if i.id != item_id),
        split_entries=tuple(s for s in snapshot.split_entries if s.item_id != item_id)
    )


class AllocationStore:
    """Owns the current snapshot of one bill and serializes edits to it"""

    def __init__(self, snapshot: BillSnapshot, participant_ids=None, item_ids=None):
        self._snapshot = snapshot
        self._lock = threading.Lock()
        self.participant_ids = participant_ids or CounterIdGenerator('p')
        self.item_ids = item_ids or CounterIdGenerator('item')
        self.participant_ids.reserve(p.id for p in snapshot.participants)
        self.item_ids.reserve(i.id for i in snapshot.line_items)

    @classmethod
    def from_candidate(cls, raw: Any) -> 'AllocationStore':
        """Build a store from receipt parser output; raises InvalidStructure"""
        participant_ids = CounterIdGenerator('p')
        item_ids = CounterIdGenerator('item')
        snapshot = sanitize_candidate(raw, participant_ids, item_ids)
        return cls(snapshot, participant_ids, item_ids)

    @classmethod
    def demo(cls) -> 'AllocationStore':
        return cls.from_candidate(DEMO_BILL)

    @property
    def snapshot(self) -> BillSnapshot:
        return self._snapshot

    def settlement(self) -> SettlementResult:
        return compute(self._snapshot)

    def _apply(self, operation, *args) -> BillSnapshot:
        with self._lock:
            updated = operation(self._snapshot, *args)
            if updated is self._snapshot:
                logger.debug("%s%r left the bill unchanged", operation.__name__, args)
            self._snapshot = updated
            return updated

    def set_allocation_weight(self, item_id, participant_id, weight):
        return self._apply(set_allocation_weight, item_id, participant_id, weight)

    def set_modifier(self, key, field, value):
        return self._apply(set_modifier, key, field, value)

    def set_modifier_type(self, key, modifier_type):
        return self._apply(set_modifier_type, key, modifier_type)

    def set_modifier_value(self, key, value):
        return self._apply(set_modifier_value, key, value)

    def rename_participant(self, participant_id, name):
        return self._apply(rename_participant, participant_id, name)

    def add_participant(self) -> Participant:
        with self._lock:
            self._snapshot, participant = add_participant(self._snapshot, self.participant_ids())
            return participant

    def delete_participant(self, participant_id):
        return self._apply(delete_participant, participant_id)

    def upsert_line_item(self, partial) -> Optional[LineItem]:
        """Stored item, or None when the form was rejected"""
        with self._lock:
            updated = upsert_line_item(self._snapshot, partial, self.item_ids)
            if updated is self._snapshot:
                logger.debug("upsert_line_item(%r) left the bill unchanged", partial)
                return None
            self._snapshot = updated
            # an unknown id is appended under a fresh one
            return updated.line_item(partial.get('id')) or updated.line_items[-1]

    def delete_line_item(self, item_id):
        return self._apply(delete_line_item, item_id)


class BillRegistry:
    """In-memory bills by id; nothing outlives the process.

    A bill is dropped once it has gone ``max_age`` without being opened or
    read, which matches the lifetime of the token that names it.
    """

    def __init__(self, bill_ids=None, max_age: Optional[timedelta] = None, clock=time.monotonic):
        self._bills: Dict[str, Tuple[AllocationStore, float]] = {}
        self._lock = threading.Lock()
        self._bill_ids = bill_ids or UuidIdGenerator('bill_')
        self.max_age = max_age
        self._clock = clock

    def _evict_expired(self, now):
        # caller holds the lock
        if self.max_age is None:
            return
        cutoff = now - self.max_age.total_seconds()
        expired = [bill_id for bill_id, (_, seen) in self._bills.items() if seen <= cutoff]
        for bill_id in expired:
            del self._bills[bill_id]
        if expired:
            logger.info("Evicted %d expired bill(s)", len(expired))

    def open(self, store: AllocationStore) -> str:
        with self._lock:
            now = self._clock()
            self._evict_expired(now)
            bill_id = self._bill_ids()
            self._bills[bill_id] = (store, now)
        logger.info("Opened bill %s", bill_id)
        return bill_id

    def get(self, bill_id: str) -> Optional[AllocationStore]:
        with self._lock:
            now = self._clock()
            self._evict_expired(now)
            entry = self._bills.get(bill_id)
            if entry is None:
                return None
            store = entry[0]
            self._bills[bill_id] = (store, now)
            return store

    def discard(self, bill_id: str) -> bool:
        with self._lock:
            removed = self._bills.pop(bill_id, None) is not None
        if removed:
            logger.info("Discarded bill %s", bill_id)
        return removed

    def clear(self):
        with self._lock:
            self._bills.clear()

    def __len__(self):
        return len(self._bills)
