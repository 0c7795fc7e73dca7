from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from constants import UNASSIGNED_ID, UNASSIGNED_NAME
from models import (
    BillSnapshot,
    ItemShare,
    LineItem,
    Modifier,
    ModifierType,
    SettlementResult,
    SplitEntry,
    UserTotal,
)


class _Tally:
    """Running totals for one person while a snapshot is being settled"""

    def __init__(self, name: str):
        self.name = name
        self.base_amount = 0.0
        self.items: List[ItemShare] = []

    def add(self, item: LineItem, share_fraction: float):
        self.base_amount += item.total_price * share_fraction
        self.items.append(ItemShare(
            description=item.description,
            total_price=item.total_price,
            share_fraction=share_fraction
        ))


def resolve_modifier(modifier: Optional[Modifier], basis: float) -> float:
    """Absolute amount of a tax/tip modifier against the subtotal"""
    if modifier is None or modifier.value is None:
        return 0.0
    if modifier.type == ModifierType.PERCENTAGE:
        return basis * modifier.value / 100
    return float(modifier.value)


def _positive_allocations(entry: Optional[SplitEntry]):
    if entry is None:
        return []
    return [a for a in entry.allocations if a.weight > 0]


def is_unassigned(entry: Optional[SplitEntry]) -> bool:
    return not _positive_allocations(entry)


def unassigned_items(snapshot: BillSnapshot) -> List[LineItem]:
    """Items nobody has been given a share of yet"""
    return [item for item in snapshot.line_items if is_unassigned(snapshot.split_entry(item.id))]


def compute(snapshot: BillSnapshot) -> SettlementResult:
    """Settle a bill snapshot.

    Each item's price is divided among its allocations in proportion to their
    weights. Tax and tip are resolved against the subtotal and then shared out
    by each person's fraction of the subtotal, so whoever ordered more pays
    more of both. Items with no positive allocation land in the "unassigned"
    bucket with a share of 1.
    """
    tallies: Dict[str, _Tally] = {p.id: _Tally(p.name) for p in snapshot.participants}
    tallies[UNASSIGNED_ID] = _Tally(UNASSIGNED_NAME)
    entries = {entry.item_id: entry for entry in snapshot.split_entries}

    subtotal = 0.0
    for item in snapshot.line_items:
        subtotal += item.total_price

        allocations = _positive_allocations(entries.get(item.id))
        total_weight = sum(a.weight for a in allocations)
        if total_weight <= 0:
            tallies[UNASSIGNED_ID].add(item, 1.0)
            continue

        for allocation in allocations:
            tally = tallies.get(allocation.participant_id)
            if tally is None:
                continue
            tally.add(item, allocation.weight / total_weight)

    total_tax = resolve_modifier(snapshot.modifiers.tax, subtotal)
    total_tip = resolve_modifier(snapshot.modifiers.tip, subtotal)

    per_user = {}
    for pid, tally in tallies.items():
        proportion = tally.base_amount / subtotal if subtotal > 0 else 0.0
        tax_share = total_tax * proportion
        tip_share = total_tip * proportion
        per_user[pid] = UserTotal(
            name=tally.name,
            base_amount=tally.base_amount,
            tax_share=tax_share,
            tip_share=tip_share,
            total=tally.base_amount + tax_share + tip_share,
            items=tuple(tally.items)
        )

    return SettlementResult(
        subtotal=subtotal,
        total_tax=total_tax,
        total_tip=total_tip,
        grand_total=subtotal + total_tax + total_tip,
        per_user=per_user
    )


def round_currency(amount: float) -> float:
    """Round to 2 decimal places for currency"""
    if amount is None:
        return 0.0
    return float(Decimal(str(amount)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))
