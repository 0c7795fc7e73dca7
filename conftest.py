import os

import pytest

from allocation_store import AllocationStore
from app import app as flask_app
from config import TestingConfig
from extensions import bills
from id_generators import CounterIdGenerator
from validation import sanitize_candidate


@pytest.fixture(scope='session')
def app():
    # Configure the app for testing
    flask_app.config.from_object(TestingConfig)
    os.makedirs(flask_app.config['UPLOAD_FOLDER'], exist_ok=True)
    bills.max_age = flask_app.config['JWT_ACCESS_TOKEN_EXPIRES']
    yield flask_app
    bills.clear()


@pytest.fixture(scope='function')
def client(app):
    return app.test_client()


@pytest.fixture
def demo_store():
    return AllocationStore.demo()


@pytest.fixture
def demo_snapshot(demo_store):
    return demo_store.snapshot


@pytest.fixture
def make_snapshot():
    """Build a sanitized snapshot from a partial candidate dict"""
    def _make(participants=None, line_items=None, split_entries=None, modifiers=None, meta=None):
        candidate = {
            'participants': participants if participants is not None else [{'id': 'p1', 'name': 'Alex'}],
            'line_items': line_items or [],
            'split_entries': split_entries or [],
            'modifiers': modifiers or {},
            'meta': meta or {},
        }
        return sanitize_candidate(candidate, CounterIdGenerator('p'), CounterIdGenerator('item'))
    return _make


@pytest.fixture
def bill_token(client):
    """Open a demo bill through the API and return its access token"""
    response = client.post('/api/bills', json={'demo': True})
    assert response.status_code == 201
    return response.get_json()['access_token']


@pytest.fixture
def auth_headers(bill_token):
    return {'Authorization': f'Bearer {bill_token}'}


@pytest.fixture
def mock_extract_data(mocker):
    """Mocks the OCR receipt extraction."""
    return mocker.patch(
        'app.extract_receipt_data',
        return_value={
            'meta': {'currency': 'USD', 'notes': 'MockStore'},
            'participants': [{'id': 'p1', 'name': 'Me'}],
            'line_items': [{'id': 'item1', 'description': 'Coffee', 'quantity': 1,
                            'unit_price': 4.5, 'total_price': 4.5}],
            'split_entries': [],
            'modifiers': {
                'tax': {'source': 'receipt', 'type': 'fixed', 'value': 0.5},
                'tip': {'source': 'user', 'type': 'percentage', 'value': None},
            },
        }
    )
