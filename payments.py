"""Display helpers that read a settlement: money strings and payment requests."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List
from urllib.parse import quote

from bill_splitting_logic import round_currency
from constants import DEFAULT_CURRENCY, PAYMENT_NOTE_MAX_LENGTH, UNASSIGNED_ID
from models import SettlementResult, UserTotal

CURRENCY_SYMBOLS = {
    'USD': '$',
    'CAD': 'CA$',
    'AUD': 'A$',
    'EUR': '€',
    'GBP': '£',
    'JPY': '¥',
    'KRW': '₩',
    'INR': '₹',
}

ZERO_DECIMAL_CURRENCIES = {'JPY', 'KRW'}

PAYMENT_LINK_BASE = 'venmo://paycharge'

def format_money(amount: float, currency: str = DEFAULT_CURRENCY) -> str:
    """Format an amount like "$1,234.50" or "-€3.10"."""
    currency = (currency or DEFAULT_CURRENCY).upper()
    places = Decimal('1') if currency in ZERO_DECIMAL_CURRENCIES else Decimal('0.01')
    value = Decimal(str(amount or 0)).quantize(places, rounding=ROUND_HALF_UP)

    symbol = CURRENCY_SYMBOLS.get(currency, f'{currency} ')
    sign = '-' if value < 0 else ''
    digits = f'{abs(value):,.0f}' if places == Decimal('1') else f'{abs(value):,.2f}'
    return f'{sign}{symbol}{digits}'


def payment_note(user: UserTotal) -> str:
    note = ', '.join(item.description for item in user.items)
    if len(note) > PAYMENT_NOTE_MAX_LENGTH:
        note = note[:PAYMENT_NOTE_MAX_LENGTH - 3] + '...'
    return note


def payment_request_link(user: UserTotal) -> str:
    """Deep link asking the person to pay their total"""
    amount = f'{round_currency(user.total):.2f}'
    note = quote(payment_note(user), safe='')
    return f'{PAYMENT_LINK_BASE}?txn=charge&amount={amount}&note={note}'


def should_display(participant_id: str, user: UserTotal) -> bool:
    if participant_id != UNASSIGNED_ID:
        return True
    return user.total != 0


def settlement_lines(result: SettlementResult, currency: str = DEFAULT_CURRENCY) -> List[Dict[str, Any]]:
    """One display row per person, unassigned last and only when it carries money"""
    lines = []
    for participant_id, user in result.per_user.items():
        if not should_display(participant_id, user):
            continue
        line = {
            'participant_id': participant_id,
            'name': user.name,
            'needs_attention': participant_id == UNASSIGNED_ID,
            'base_amount': format_money(user.base_amount, currency),
            'tax_share': format_money(user.tax_share, currency),
            'tip_share': format_money(user.tip_share, currency),
            'total': format_money(user.total, currency),
            'items': [
                {
                    'description': item.description,
                    'share_fraction': item.share_fraction,
                    'amount': format_money(item.amount, currency)
                }
                for item in user.items
            ],
            'payment_link': None,
        }
        if participant_id != UNASSIGNED_ID:
            line['payment_link'] = payment_request_link(user)
        lines.append(line)

    lines.sort(key=lambda line: line['needs_attention'])
    return lines
