import re

import pytesseract
from PIL import Image

from constants import DEFAULT_CURRENCY
from logging_config import get_logger

logger = get_logger(__name__)

PRICE_RE = re.compile(r'[0-9]+\.[0-9]{2}')
AMOUNT_RE = re.compile(r'[0-9]+\.[0-9]{2}|[0-9]+')
PERCENT_RE = re.compile(r'([0-9]+(?:\.[0-9]+)?)\s*%')

STORE_KEYWORDS = ['STORE', 'MARKET', 'SHOP', 'GROCERY', 'SUPER', 'MART', 'FOOD', 'SAVE',
                  'CAFE', 'BAR', 'GRILL', 'KITCHEN', 'RESTAURANT']
SKIP_WORDS = ['TOTAL', 'SUBTOTAL', 'TAX', 'TIP', 'GRATUITY', 'CASH', 'CHANGE', 'ITEMS SOLD',
              'DISCOUNT', 'RP', 'T#', 'OPEN', 'HOURS', 'VISA', 'MASTERCARD', 'BALANCE']


def _keyword_re(words):
    """Whole-word match so item names like "Tipsy Chicken" are left alone"""
    # digits may follow a keyword: "TAX1 0.50"
    return re.compile(r'(?<![A-Z])(?:' + '|'.join(re.escape(w) for w in words) + r')(?![A-Z])')


TAX_RE = _keyword_re(['TAX'])
TIP_RE = _keyword_re(['TIP', 'GRATUITY'])
SKIP_RE = _keyword_re(SKIP_WORDS)

# receipts rarely carry single lines above this; bigger numbers are usually codes
MAX_ITEM_PRICE = 1000


def quick_receipt_read(image_path):
    """Extract raw text from a receipt image"""
    image = Image.open(image_path)
    return pytesseract.image_to_string(image)


def _last_amount(line):
    amounts = AMOUNT_RE.findall(line)
    return float(amounts[-1]) if amounts else None


def _quantity_prefix(name):
    """Split "2 x Burger" / "2 Burger" into (2, "Burger")"""
    match = re.match(r'^(\d{1,2})\s*[xX@]?\s+(.*)$', name)
    if match and int(match.group(1)) > 0:
        return int(match.group(1)), match.group(2).strip()
    return 1, name


def parse_receipt_text(text, participant_names=None):
    """
    Parse OCR text into a bill candidate.

    The result has the shape validation.sanitize_candidate expects. Nobody is
    allocated anything: every item starts out unassigned.
    """
    lines = [line.strip() for line in text.split('\n')]
    # Remove empty/short lines
    cleaned_lines = [line for line in lines if line and len(line) > 1]

    store_name = ''
    for line in cleaned_lines[:5]:
        if (2 < len(line) < 50 and not PRICE_RE.search(line) and
                (any(keyword in line.upper() for keyword in STORE_KEYWORDS) or
                 (re.search(r'[A-Z][a-z]+', line) and not re.search(r'\d', line)))):
            store_name = line
            break

    items = []
    tax = None
    tip = None
    tip_type = 'percentage'
    for i, line in enumerate(cleaned_lines):
        line_upper = line.upper()

        if TAX_RE.search(line_upper):
            tax = _last_amount(line)
            continue
        if TIP_RE.search(line_upper):
            percent = PERCENT_RE.search(line)
            if percent:
                tip, tip_type = float(percent.group(1)), 'percentage'
            else:
                tip, tip_type = _last_amount(line), 'fixed'
            continue

        if SKIP_RE.search(line_upper):
            continue
        if not (re.search(r'[A-Za-z]{3,}', line) and
                not re.search(r'[0-9]{5,}', line) and
                3 < len(line) < 50):
            continue

        prices = PRICE_RE.findall(line)
        if prices and float(prices[-1]) < MAX_ITEM_PRICE:
            name = PRICE_RE.sub('', line).strip(' $.:-')
            price = float(prices[-1])
        elif i + 1 < len(cleaned_lines) and PRICE_RE.fullmatch(cleaned_lines[i + 1].strip('$ ')):
            # price printed on the following line
            name = line
            price = float(PRICE_RE.findall(cleaned_lines[i + 1])[0])
        else:
            continue

        if len(name) <= 2:
            continue
        quantity, name = _quantity_prefix(name)
        items.append({
            'id': f'item{len(items) + 1}',
            'description': name,
            'quantity': quantity,
            'unit_price': round(price / quantity, 2),
            'total_price': price
        })

    names = [n for n in (participant_names or []) if n and n.strip()] or ['Me']
    candidate = {
        'meta': {'currency': DEFAULT_CURRENCY, 'notes': store_name},
        'participants': [{'id': f'p{n}', 'name': name} for n, name in enumerate(names, start=1)],
        'line_items': items,
        'split_entries': [],
        'modifiers': {
            'tax': {'source': 'receipt', 'type': 'fixed', 'value': tax},
            'tip': {'source': 'receipt' if tip is not None else 'user', 'type': tip_type, 'value': tip},
        },
    }
    logger.info("Parsed %d items from receipt text (store=%r)", len(items), store_name)
    return candidate


def extract_receipt_data(image_path, participant_names=None):
    """
    Complete receipt processing: OCR + parsing
    Returns an unvalidated bill candidate from a receipt image
    """
    text = quick_receipt_read(image_path)
    logger.debug("OCR produced %d characters", len(text))
    return parse_receipt_text(text, participant_names)
