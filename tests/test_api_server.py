"""
Tests for the auction HTTP API.
"""

import logging
import threading
import time

import pytest
from fastapi.testclient import TestClient

from fanta_auction import config
from fanta_auction.auction.api_server import create_app
from fanta_auction.auction.replication import AuctionStore
from fanta_auction.auction.service import AuctionService

ADMIN = {config.USER_ID_HEADER: config.ADMIN_USER_ID}
ANNA = {config.USER_ID_HEADER: 'u1'}
BRUNO = {config.USER_ID_HEADER: 'u2'}

PLAYERS = [
    {'name': 'Mike Maignan', 'role': 'P', 'club': 'Milan', 'base_value': 10},
    {'name': 'Lautaro Martinez', 'role': 'A', 'club': 'Inter', 'base_value': 20},
]


@pytest.fixture
def client(clock, scheduler):
    service = AuctionService(AuctionStore(clock=clock), scheduler=scheduler, clock=clock)
    with TestClient(create_app(service)) as client:
        yield client


@pytest.fixture
def bidding(client):
    """Two registered users and the first player up for bids."""
    client.post('/users/register', json={'name': 'Anna'}, headers=ANNA)
    client.post('/users/register', json={'name': 'Bruno'}, headers=BRUNO)
    client.put('/admin/players', json={'players': PLAYERS}, headers=ADMIN)
    client.post('/admin/initialize', json={'initial_credits': 500}, headers=ADMIN)
    client.post('/users/u1/ready', headers=ANNA)
    client.post('/users/u2/ready', headers=BRUNO)
    response = client.post('/admin/start', headers=ADMIN)
    assert response.status_code == 200
    return client


def snapshot(client):
    return client.get('/auction/snapshot').json()


# =============================================================================
# Read endpoints
# =============================================================================


def test_health(client):
    response = client.get('/health')

    assert response.status_code == 200
    assert response.json()['auction_status'] == 'SETUP'


def test_config(client):
    data = client.get('/auction/config').json()

    assert data['role_limits'] == {'P': 3, 'D': 8, 'C': 8, 'A': 6}
    assert data['user_id_header'] == 'X-User-Id'


def test_snapshot_contains_admin(client):
    data = snapshot(client)

    assert data['version'] == 0
    assert data['state']['status'] == 'SETUP'
    assert data['state']['users']['admin']['is_admin'] is True


def test_long_poll_times_out_with_same_version(client):
    response = client.get('/auction/snapshot', params={'after_version': 0, 'wait': 0.01})

    assert response.json()['version'] == 0


def test_long_poll_returns_newer_version(bidding):
    current = snapshot(bidding)['version']

    response = bidding.get('/auction/snapshot', params={'after_version': current - 1, 'wait': 5})

    assert response.json()['version'] == current


def test_websocket_streams_current_snapshot(bidding):
    current = snapshot(bidding)['version']

    with bidding.websocket_connect('/auction/ws') as ws:
        data = ws.receive_json()

    assert data['version'] == current
    assert data['state']['status'] == 'BIDDING'
    assert data['remaining_seconds'] == pytest.approx(config.OPENING_COUNTDOWN_SEC)


def test_websocket_pump_failure_is_logged(clock, scheduler, caplog):
    service = AuctionService(AuctionStore(clock=clock), scheduler=scheduler, clock=clock)
    failed = threading.Event()

    class BrokenSubscription:
        def get(self, timeout=None):
            failed.set()
            raise RuntimeError("queue gone")

        def close(self):
            pass

    service.subscribe = BrokenSubscription

    with caplog.at_level(logging.WARNING, logger='fanta_auction.auction.api_server'):
        with TestClient(create_app(service)) as client:
            with client.websocket_connect('/auction/ws'):
                assert failed.wait(2)
                time.sleep(0.1)

    assert 'queue gone' in caplog.text


def test_summary(bidding):
    bidding.post('/auction/bids', json={'amount': 12}, headers=ANNA)
    bidding.post('/admin/stop', headers=ADMIN)

    teams = {t['user_id']: t for t in bidding.get('/auction/summary').json()['teams']}

    assert teams['u1']['spent'] == 12
    assert teams['u1']['credits'] == 488
    assert teams['u1']['goalkeepers'] == 1
    assert teams['u2']['players'] == 0


# =============================================================================
# Participants
# =============================================================================


def test_register_requires_identity(client):
    response = client.post('/users/register', json={'name': 'Anna'})

    assert response.status_code == 401


def test_register_creates_user_once(client):
    first = client.post('/users/register', json={'name': 'Anna'}, headers=ANNA)
    second = client.post('/users/register', json={'name': 'Other'}, headers=ANNA)

    assert first.status_code == 200
    assert first.json()['team_name'] == "Anna's Team"
    assert second.json()['name'] == 'Anna'


def test_register_blank_name_is_400(client):
    response = client.post('/users/register', json={'name': '   '}, headers=ANNA)

    assert response.status_code == 400


def test_register_unexpected_failure_is_500(client, monkeypatch):
    def broken(self, user_id, name):
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(AuctionService, 'register_user', broken)

    response = client.post('/users/register', json={'name': 'Anna'}, headers=ANNA)

    assert response.status_code == 500
    assert 'store unavailable' in response.json()['detail']


def test_unknown_actor_is_404(client):
    response = client.post('/users/u1/ready', headers={config.USER_ID_HEADER: 'ghost'})

    assert response.status_code == 404


def test_cannot_rename_someone_else(bidding):
    response = bidding.put('/users/u2/team-name', json={'team_name': 'Mine'}, headers=ANNA)

    assert response.status_code == 403


# =============================================================================
# Admin
# =============================================================================


def test_admin_routes_reject_participants(bidding):
    response = bidding.post('/admin/pause', headers=ANNA)

    assert response.status_code == 403


def test_invalid_pool_is_400(client):
    players = [dict(PLAYERS[0], base_value=0)]

    response = client.put('/admin/players', json={'players': players}, headers=ADMIN)

    assert response.status_code == 400
    assert 'base value must be positive' in response.json()['detail']


def test_invalid_transition_is_409(client):
    response = client.post('/admin/start', headers=ADMIN)

    assert response.status_code == 409


def test_admin_adds_user(client):
    response = client.post('/admin/users', json={'name': 'Carla'}, headers=ADMIN)

    assert response.status_code == 200
    assert response.json()['id'].startswith('user-carla-')


def test_pause_and_resume(bidding, clock):
    clock.advance(3)
    assert bidding.post('/admin/pause', headers=ADMIN).status_code == 200
    assert snapshot(bidding)['remaining_seconds'] == pytest.approx(7.0)

    clock.advance(30)
    assert bidding.post('/admin/resume', headers=ADMIN).status_code == 200
    assert snapshot(bidding)['state']['countdown_end'] == pytest.approx(clock() + 7.0)


# =============================================================================
# Bidding
# =============================================================================


def test_opening_floor_over_http(bidding):
    low = bidding.post('/auction/bids', json={'amount': 9}, headers=ANNA)
    ok = bidding.post('/auction/bids', json={'amount': 10}, headers=ANNA)

    assert low.status_code == 409
    assert low.json()['detail']['reason'] == 'bid_too_low'
    assert ok.status_code == 200
    assert ok.json()['accepted'] is True
    assert snapshot(bidding)['state']['current_bid'] == {'user_id': 'u1', 'amount': 10}


def test_superseded_bid_over_http(bidding):
    bidding.post('/auction/bids', json={'amount': 10}, headers=ANNA)

    response = bidding.post(
        '/auction/bids',
        json={'amount': 11, 'expected_current_amount': None},
        headers=BRUNO
    )

    assert response.status_code == 409
    assert response.json()['detail']['reason'] == 'bid_superseded'


def test_bid_outside_bidding_is_rejected(client):
    response = client.post('/auction/bids', json={'amount': 10}, headers=ADMIN)

    assert response.status_code == 409
    assert response.json()['detail']['reason'] == 'not_bidding_phase'


def test_bid_after_deadline_is_rejected(bidding, clock):
    clock.advance(config.OPENING_COUNTDOWN_SEC + 0.5)

    response = bidding.post('/auction/bids', json={'amount': 10}, headers=ANNA)

    assert response.status_code == 409
    assert response.json()['detail']['reason'] == 'deadline_passed'
    assert snapshot(bidding)['state']['current_bid'] is None
