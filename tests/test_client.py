"""
Tests for the participant client, with a mocked requests session.
"""

import threading
from unittest.mock import MagicMock

import pytest
import requests

from fanta_auction import config
from fanta_auction.auction.bid_validator import BidRejection
from fanta_auction.auction.client import AuctionClient
from fanta_auction.auction.replica import AuctionReplica


def response(status_code=200, payload=None):
    mock = MagicMock()
    mock.status_code = status_code
    mock.json.return_value = payload
    if status_code >= 400:
        mock.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return mock


def snapshot_payload(state, version):
    return {'version': version, 'published_at': 0.0, 'remaining_seconds': 0.0, 'state': state.to_dict()}


@pytest.fixture
def session():
    session = MagicMock()
    session.headers = {}
    return session


@pytest.fixture
def client(session):
    return AuctionClient('http://auction.local/', 'u1', session=session)


def test_identity_header_is_set(client, session):
    assert session.headers[config.USER_ID_HEADER] == 'u1'
    assert client.base_url == 'http://auction.local'


def test_accepted_bid_stays_pending_until_snapshot(client, session, clock):
    session.request.return_value = response(200, {'accepted': True, 'reason': None, 'message': '', 'version': 7})
    replica = AuctionReplica(user_id='u1', clock=clock)

    result = client.place_bid(12, expected_current_amount=None, replica=replica)

    assert result.ok
    assert replica.pending_bid.amount == 12
    _, kwargs = session.request.call_args
    assert kwargs['json'] == {'amount': 12, 'expected_current_amount': None}


def test_rejected_bid_clears_pending(client, session, clock):
    session.request.return_value = response(
        409, {'detail': {'reason': 'bid_too_low', 'message': 'Bid too low: 9 (minimum 10)'}}
    )
    replica = AuctionReplica(user_id='u1', clock=clock)

    result = client.place_bid(9, replica=replica)

    assert result.reason == BidRejection.BID_TOO_LOW
    assert replica.pending_bid is None
    _, kwargs = session.request.call_args
    assert kwargs['json'] == {'amount': 9}


def test_poll_sends_version_and_wait(client, session, state):
    session.request.return_value = response(200, snapshot_payload(state, 4))

    snapshot = client.poll(3, wait=10)

    assert snapshot.version == 4
    args, kwargs = session.request.call_args
    assert args == ('GET', 'http://auction.local/auction/snapshot')
    assert kwargs['params'] == {'after_version': 3, 'wait': 10}
    assert kwargs['timeout'] == 10 + config.CLIENT_REQUEST_TIMEOUT_SEC


def test_follow_retries_after_network_error(client, session, state, clock):
    replica = AuctionReplica(user_id='u1', clock=clock)
    stop = threading.Event()
    calls = []

    def fake_request(method, url, **kwargs):
        calls.append(kwargs['params']['after_version'])
        if len(calls) == 1:
            raise requests.ConnectionError("server down")
        if len(calls) == 3:
            stop.set()
        return response(200, snapshot_payload(state, 3))

    session.request.side_effect = fake_request

    client.follow(replica, stop, wait=1)

    assert replica.version == 3
    assert calls == [-1, -1, 3]


def test_follow_resyncs_when_server_restarted(client, session, state, clock):
    replica = AuctionReplica(user_id='u1', clock=clock)
    replica.apply_snapshot_dict(snapshot_payload(state, 10))
    stop = threading.Event()

    def fake_request(method, url, **kwargs):
        stop.set()
        return response(200, snapshot_payload(state, 2))

    session.request.side_effect = fake_request

    client.follow(replica, stop, wait=1)

    assert replica.version == 2


def test_http_errors_raise(client, session):
    session.request.return_value = response(500, {'detail': 'boom'})

    with pytest.raises(requests.HTTPError):
        client.fetch_snapshot()
