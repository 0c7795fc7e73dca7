# Settlement buckets
UNASSIGNED_ID = "unassigned"
UNASSIGNED_NAME = "Unassigned"

# Default values
DEFAULT_CURRENCY = "USD"
DEFAULT_NEW_PARTICIPANT_NAME = "New Person"
DEFAULT_PARTICIPANT_NAME = "Person {n}"
DEFAULT_ITEM_DESCRIPTION = "Item"
DEFAULT_QUANTITY = 1
DEFAULT_PRICE = 0.0

# Validation limits
PARTICIPANT_NAME_MAX_LENGTH = 50
ITEM_DESCRIPTION_MAX_LENGTH = 200
PAYMENT_NOTE_MAX_LENGTH = 150

MODIFIER_KEYS = ('tax', 'tip')

# Example bill used by the demo mode
DEMO_BILL = {
    'meta': {'currency': DEFAULT_CURRENCY, 'notes': 'Generated example'},
    'participants': [
        {'id': 'p1', 'name': 'Alex'},
        {'id': 'p2', 'name': 'Sam'},
        {'id': 'p3', 'name': 'Jordan'},
    ],
    'line_items': [
        {'id': 'i1', 'description': 'Shared Appetizer Platter', 'quantity': 1, 'unit_price': 18.0, 'total_price': 18.0},
        {'id': 'i2', 'description': "Alex's Burger", 'quantity': 1, 'unit_price': 16.5, 'total_price': 16.5},
        {'id': 'i3', 'description': 'Pitcher of Beer', 'quantity': 1, 'unit_price': 24.0, 'total_price': 24.0},
    ],
    'split_entries': [
        {
            'item_id': 'i1',
            'method': 'equal',
            'allocations': [
                {'participant_id': 'p1', 'weight': 1},
                {'participant_id': 'p2', 'weight': 1},
                {'participant_id': 'p3', 'weight': 1},
            ],
        },
        {
            'item_id': 'i2',
            'method': 'explicit',
            'allocations': [{'participant_id': 'p1', 'weight': 1}],
        },
        {
            'item_id': 'i3',
            'method': 'ratio',
            'allocations': [
                {'participant_id': 'p2', 'weight': 2},
                {'participant_id': 'p3', 'weight': 1},
            ],
        },
    ],
    'modifiers': {
        'tax': {'source': 'receipt', 'type': 'fixed', 'value': 5.85},
        'tip': {'source': 'user_prompt', 'type': 'percentage', 'value': 20},
    },
}
