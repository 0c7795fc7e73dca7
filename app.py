import io
import mimetypes
import os
import tempfile

from flask import Flask, g, jsonify, request
from flask_jwt_extended import create_access_token
from PIL import Image, UnidentifiedImageError
from werkzeug.utils import secure_filename

from allocation_store import AllocationStore
from auth.decorator import bill_required
from bill_splitting_logic import round_currency, unassigned_items
from config import Config
from constants import MODIFIER_KEYS
from errors import BillError, Conflict, InvalidArgument, InvalidStructure, NotFound
from extensions import bills, jwt
from logging_config import configure_logging, get_logger
from parse_model import extract_receipt_data
from payments import settlement_lines
from validation import (
    can_delete_participant,
    is_valid_modifier_value,
    is_valid_price,
    is_valid_weight,
    parse_modifier_type,
    sanitize_item_description,
    sanitize_participant_name,
)

app = Flask(__name__)
ALLOWED_MIMETYPES = ['image/jpeg', 'image/png', 'image/webp']
app.config.from_object(Config)
os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)

configure_logging(app.config['LOG_LEVEL'])
logger = get_logger(__name__)

# Initialize extensions
jwt.init_app(app)
# a bill is forgotten once no token for it can still be valid
bills.max_age = app.config['JWT_ACCESS_TOKEN_EXPIRES']


@app.errorhandler(BillError)
def handle_bill_error(error):
    return jsonify(error.to_dict()), error.status_code


def bill_payload(store, bill_id=None):
    """Snapshot plus its freshly derived settlement"""
    snapshot = store.snapshot
    settlement = store.settlement()
    payload = {
        'success': True,
        'bill': snapshot.to_dict(),
        'settlement': settlement.to_dict(round_currency),
        'unassigned_items': [item.to_dict() for item in unassigned_items(snapshot)]
    }
    if bill_id is not None:
        payload['bill_id'] = bill_id
    return payload


def open_bill(store):
    bill_id = bills.open(store)
    payload = bill_payload(store, bill_id)
    payload['access_token'] = create_access_token(identity=bill_id)
    return jsonify(payload), 201


def json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidArgument('A JSON object body is required')
    return data


# --------- Routes ---------

@app.route('/api/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok'}), 200


@app.route('/api/bills', methods=['POST'])
def create_bill():
    """Start a bill from the demo data or from a client-supplied candidate"""
    data = json_body()

    if data.get('demo'):
        return open_bill(AllocationStore.demo())

    if 'bill' not in data:
        raise InvalidArgument('Either "demo" or "bill" is required')

    try:
        store = AllocationStore.from_candidate(data['bill'])
    except InvalidStructure as e:
        logger.warning("Rejected bill candidate: %s", e.message)
        raise InvalidArgument(e.message)
    return open_bill(store)


@app.route('/api/process-receipt', methods=['POST'])
def process_receipt():
    if 'image' not in request.files:
        return jsonify({'error': 'No image file provided'}), 400

    file = request.files['image']

    if file.filename == '':
        return jsonify({'error': 'No file selected'}), 400

    mime_type, _ = mimetypes.guess_type(file.filename)

    if mime_type not in ALLOWED_MIMETYPES:
        return jsonify({'error': f'Unsupported file type: {mime_type}. Must be an image.'}), 415

    names = [n.strip() for n in request.form.get('participants', '').split(',') if n.strip()]

    filepath = None
    try:
        image_bytes = file.read()
        image = Image.open(io.BytesIO(image_bytes)).convert('RGB')

        stem = os.path.splitext(secure_filename(file.filename))[0] or 'receipt'
        # scratch copy for OCR only, removed once the text is read
        with tempfile.NamedTemporaryFile(
                prefix=f"{stem}_", suffix='.jpg', dir=app.config['UPLOAD_FOLDER'], delete=False) as tmp:
            filepath = tmp.name
            image.save(tmp, format='JPEG')

        candidate = extract_receipt_data(filepath, names)
    except (UnidentifiedImageError, OSError, RuntimeError) as e:
        logger.error("Receipt processing failed: %s", e)
        return jsonify({
            'success': False,
            'error': 'Internal Server Error during image processing.'
        }), 500
    finally:
        if filepath and os.path.exists(filepath):
            os.remove(filepath)

    try:
        store = AllocationStore.from_candidate(candidate)
    except InvalidStructure as e:
        logger.warning("Receipt candidate rejected: %s", e.message)
        return jsonify({'success': False, 'error': f'Failed to process. {e.message}'}), 422

    return open_bill(store)


@app.route('/api/bill', methods=['GET'])
@bill_required
def get_bill(store):
    return jsonify(bill_payload(store, g.bill_id)), 200


@app.route('/api/bill', methods=['DELETE'])
@bill_required
def reset_bill(store):
    bills.discard(g.bill_id)
    return jsonify({'success': True}), 200


@app.route('/api/bill/settlement', methods=['GET'])
@bill_required
def get_settlement(store):
    settlement = store.settlement()
    currency = store.snapshot.meta.currency
    return jsonify({
        'success': True,
        'currency': currency,
        'settlement': settlement.to_dict(round_currency),
        'lines': settlement_lines(settlement, currency)
    }), 200


@app.route('/api/bill/unassigned', methods=['GET'])
@bill_required
def get_unassigned(store):
    return jsonify({
        'success': True,
        'items': [item.to_dict() for item in unassigned_items(store.snapshot)]
    }), 200


@app.route('/api/bill/items/<item_id>/allocations/<participant_id>', methods=['PUT'])
@bill_required
def set_allocation(store, item_id, participant_id):
    weight = json_body().get('weight')
    if not is_valid_weight(weight):
        raise InvalidArgument('Weight must be a non-negative number')
    if store.snapshot.line_item(item_id) is None:
        raise NotFound(f'Item {item_id} not found')
    if store.snapshot.participant(participant_id) is None:
        raise NotFound(f'Participant {participant_id} not found')

    store.set_allocation_weight(item_id, participant_id, weight)
    return jsonify(bill_payload(store)), 200


@app.route('/api/bill/modifiers/<key>', methods=['PUT'])
@bill_required
def update_modifier(store, key):
    if key not in MODIFIER_KEYS:
        raise InvalidArgument(f'Unknown modifier: {key}')
    data = json_body()

    if 'type' in data and parse_modifier_type(data['type']) is None:
        raise InvalidArgument('Modifier type must be "fixed" or "percentage"')
    if 'value' in data and not is_valid_modifier_value(data['value']):
        raise InvalidArgument('Modifier value must be a number')

    if 'type' in data:
        store.set_modifier_type(key, data['type'])
    if 'value' in data:
        store.set_modifier_value(key, data['value'])
    return jsonify(bill_payload(store)), 200


@app.route('/api/bill/participants', methods=['POST'])
@bill_required
def add_participant(store):
    participant = store.add_participant()
    payload = bill_payload(store)
    payload['participant'] = participant.to_dict()
    return jsonify(payload), 201


@app.route('/api/bill/participants/<participant_id>', methods=['PATCH'])
@bill_required
def rename_participant(store, participant_id):
    if store.snapshot.participant(participant_id) is None:
        raise NotFound(f'Participant {participant_id} not found')
    name = json_body().get('name')
    if not sanitize_participant_name(name):
        raise InvalidArgument('Name must not be empty')

    store.rename_participant(participant_id, name)
    return jsonify(bill_payload(store)), 200


@app.route('/api/bill/participants/<participant_id>', methods=['DELETE'])
@bill_required
def delete_participant(store, participant_id):
    if store.snapshot.participant(participant_id) is None:
        raise NotFound(f'Participant {participant_id} not found')
    if not can_delete_participant(store.snapshot, participant_id):
        raise Conflict('A bill needs at least one participant')

    store.delete_participant(participant_id)
    return jsonify(bill_payload(store)), 200


def _validate_item_form(data):
    if not sanitize_item_description(data.get('description')):
        raise InvalidArgument('Description must not be empty')
    price = data.get('total_price', 0.0)
    if price is not None and not is_valid_price(price):
        raise InvalidArgument('Price must be a non-negative number')


@app.route('/api/bill/items', methods=['POST'])
@bill_required
def create_item(store):
    data = json_body()
    _validate_item_form(data)
    data.pop('id', None)

    created = store.upsert_line_item(data)
    if created is None:
        raise InvalidArgument('Item was not accepted')

    payload = bill_payload(store)
    payload['item'] = created.to_dict()
    return jsonify(payload), 201


@app.route('/api/bill/items/<item_id>', methods=['PUT'])
@bill_required
def update_item(store, item_id):
    if store.snapshot.line_item(item_id) is None:
        raise NotFound(f'Item {item_id} not found')
    data = json_body()
    _validate_item_form(data)
    data['id'] = item_id

    store.upsert_line_item(data)
    return jsonify(bill_payload(store)), 200


@app.route('/api/bill/items/<item_id>', methods=['DELETE'])
@bill_required
def delete_item(store, item_id):
    if store.snapshot.line_item(item_id) is None:
        raise NotFound(f'Item {item_id} not found')

    store.delete_line_item(item_id)
    return jsonify(bill_payload(store)), 200


# Run the app
if __name__ == "__main__":
    app.run(debug=True, host='0.0.0.0', port=5000)
