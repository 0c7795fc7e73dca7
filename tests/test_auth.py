from flask_jwt_extended import create_access_token, decode_token

from extensions import bills


def test_missing_token_is_rejected(client):
    res = client.get('/api/bill')
    assert res.status_code == 401


def test_malformed_token_is_rejected(client):
    res = client.get('/api/bill', headers={'Authorization': 'Bearer not-a-jwt'})
    assert res.status_code == 422


def test_token_identity_is_the_bill(app, client):
    res = client.post('/api/bills', json={'demo': True})
    token = res.json['access_token']

    with app.app_context():
        decoded = decode_token(token)
    assert decoded['sub'] == res.json['bill_id']
    assert bills.get(res.json['bill_id']) is not None


def test_tokens_are_scoped_to_their_bill(client):
    first = client.post('/api/bills', json={'demo': True}).json
    second = client.post('/api/bills', json={'demo': True}).json

    client.delete('/api/bill/participants/p1', headers={'Authorization': f"Bearer {first['access_token']}"})

    res = client.get('/api/bill', headers={'Authorization': f"Bearer {second['access_token']}"})
    assert [p['id'] for p in res.json['bill']['participants']] == ['p1', 'p2', 'p3']


def test_token_for_unknown_bill_is_404(app, client):
    with app.app_context():
        token = create_access_token(identity='bill_missing')

    res = client.get('/api/bill', headers={'Authorization': f'Bearer {token}'})
    assert res.status_code == 404
    assert res.json['error'] == 'Bill not found'
