from functools import wraps
from flask import g, jsonify
from flask_jwt_extended import jwt_required, get_jwt_identity
from extensions import bills


def bill_required(fn):
    """Resolve the bill named by the JWT identity and pass its store to the view"""
    @wraps(fn)
    @jwt_required()
    def wrapper(*args, **kwargs):
        bill_id = get_jwt_identity()
        store = bills.get(bill_id)
        if store is None:
            return jsonify({'success': False, 'error': 'Bill not found'}), 404
        g.bill_id = bill_id
        return fn(store, *args, **kwargs)
    return wrapper
