from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from constants import DEFAULT_CURRENCY, UNASSIGNED_ID


class SplitMethod(str, Enum):
    EXPLICIT = 'explicit'
    EQUAL = 'equal'
    RATIO = 'ratio'


class ModifierType(str, Enum):
    FIXED = 'fixed'
    PERCENTAGE = 'percentage'


class ModifierSource(str, Enum):
    RECEIPT = 'receipt'
    USER_PROMPT = 'user_prompt'
    USER = 'user'


@dataclass(frozen=True)
class Participant:
    id: str
    name: str

    def to_dict(self):
        return {'id': self.id, 'name': self.name}


@dataclass(frozen=True)
class LineItem:
    id: str
    description: str
    quantity: int = 1
    unit_price: float = 0.0
    total_price: float = 0.0

    def to_dict(self):
        return {
            'id': self.id,
            'description': self.description,
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'total_price': self.total_price
        }


@dataclass(frozen=True)
class Allocation:
    participant_id: str
    weight: float

    def to_dict(self):
        return {'participant_id': self.participant_id, 'weight': self.weight}


@dataclass(frozen=True)
class SplitEntry:
    """How one line item is divided; method is informational only"""
    item_id: str
    method: SplitMethod = SplitMethod.RATIO
    allocations: Tuple[Allocation, ...] = ()

    def allocation_for(self, participant_id: str) -> Optional[Allocation]:
        return next((a for a in self.allocations if a.participant_id == participant_id), None)

    @property
    def total_weight(self) -> float:
        return sum(a.weight for a in self.allocations)

    def to_dict(self):
        return {
            'item_id': self.item_id,
            'method': self.method.value,
            'allocations': [a.to_dict() for a in self.allocations]
        }


@dataclass(frozen=True)
class Modifier:
    source: ModifierSource = ModifierSource.USER
    type: ModifierType = ModifierType.FIXED
    value: Optional[float] = None

    def to_dict(self):
        return {'source': self.source.value, 'type': self.type.value, 'value': self.value}


@dataclass(frozen=True)
class Modifiers:
    tax: Modifier = field(default_factory=Modifier)
    tip: Modifier = field(default_factory=Modifier)

    def get(self, key: str) -> Modifier:
        if key not in ('tax', 'tip'):
            raise KeyError(key)
        return getattr(self, key)

    def to_dict(self):
        return {'tax': self.tax.to_dict(), 'tip': self.tip.to_dict()}


@dataclass(frozen=True)
class Meta:
    currency: str = DEFAULT_CURRENCY
    notes: str = ''

    def to_dict(self):
        return {'currency': self.currency, 'notes': self.notes}


@dataclass(frozen=True)
class BillSnapshot:
    """Immutable bill record.

    Invariants kept by validation.sanitize_candidate and the allocation_store
    mutations: participant and item ids are unique, every split entry points at
    an existing item, every allocation points at an existing participant, and
    there is always at least one participant.
    """
    participants: Tuple[Participant, ...]
    line_items: Tuple[LineItem, ...] = ()
    split_entries: Tuple[SplitEntry, ...] = ()
    modifiers: Modifiers = field(default_factory=Modifiers)
    meta: Meta = field(default_factory=Meta)

    def participant(self, participant_id: str) -> Optional[Participant]:
        return next((p for p in self.participants if p.id == participant_id), None)

    def line_item(self, item_id: str) -> Optional[LineItem]:
        return next((i for i in self.line_items if i.id == item_id), None)

    def split_entry(self, item_id: str) -> Optional[SplitEntry]:
        return next((s for s in self.split_entries if s.item_id == item_id), None)

    def to_dict(self):
        return {
            'meta': self.meta.to_dict(),
            'participants': [p.to_dict() for p in self.participants],
            'line_items': [i.to_dict() for i in self.line_items],
            'split_entries': [s.to_dict() for s in self.split_entries],
            'modifiers': self.modifiers.to_dict()
        }


@dataclass(frozen=True)
class ItemShare:
    description: str
    total_price: float
    share_fraction: float

    @property
    def amount(self) -> float:
        return self.total_price * self.share_fraction

    def to_dict(self, round_fn=None):
        amount = round_fn(self.amount) if round_fn else self.amount
        return {
            'description': self.description,
            'total_price': self.total_price,
            'share_fraction': self.share_fraction,
            'amount': amount
        }


@dataclass(frozen=True)
class UserTotal:
    name: str
    base_amount: float = 0.0
    tax_share: float = 0.0
    tip_share: float = 0.0
    total: float = 0.0
    items: Tuple[ItemShare, ...] = ()

    def to_dict(self, round_fn=None):
        r = round_fn or (lambda amount: amount)
        return {
            'name': self.name,
            'base_amount': r(self.base_amount),
            'tax_share': r(self.tax_share),
            'tip_share': r(self.tip_share),
            'total': r(self.total),
            'items': [i.to_dict(round_fn) for i in self.items]
        }


@dataclass(frozen=True)
class SettlementResult:
    """Derived from a snapshot on every read; treat as read-only"""
    subtotal: float
    total_tax: float
    total_tip: float
    grand_total: float
    per_user: Dict[str, UserTotal]

    @property
    def unassigned(self) -> UserTotal:
        return self.per_user[UNASSIGNED_ID]

    def to_dict(self, round_fn=None):
        r = round_fn or (lambda amount: amount)
        return {
            'subtotal': r(self.subtotal),
            'total_tax': r(self.total_tax),
            'total_tip': r(self.total_tip),
            'grand_total': r(self.grand_total),
            'per_user': {pid: user.to_dict(round_fn) for pid, user in self.per_user.items()}
        }
