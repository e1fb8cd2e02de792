"""
Tests for the authoritative store and snapshot fan-out.
"""

import json

import pytest

from fanta_auction.auction.models import AuctionStatus
from fanta_auction.auction.replication import AuctionStore, Snapshot
from fanta_auction.auction.snapshot_file import SnapshotFile


@pytest.fixture
def store(state, clock):
    return AuctionStore(initial_state=state, clock=clock)


def rename(team_name):
    def command(state):
        state.users['u1'].team_name = team_name
        return team_name
    return command


def test_apply_commits_new_version(store):
    assert store.version == 0

    result = store.apply(rename('Dream Team'))

    assert result == 'Dream Team'
    assert store.version == 1
    assert store.snapshot().data['users']['u1']['team_name'] == 'Dream Team'


def test_unchanged_state_is_not_published(store):
    store.apply(lambda state: None)

    assert store.version == 0


def test_failed_command_rolls_back(store):
    def broken(state):
        state.users['u1'].credits = 0
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        store.apply(broken)

    assert store.version == 0
    assert store.state().users['u1'].credits == 500


def test_state_returns_private_copy(store):
    copy = store.state()
    copy.users['u1'].credits = 0

    assert store.state().users['u1'].credits == 500


def test_subscriber_gets_current_then_ordered_updates(store):
    with store.subscribe() as subscription:
        store.apply(rename('A'))
        store.apply(rename('B'))

        versions = [s.version for s in subscription.drain()]

    assert versions == [0, 1, 2]
    assert store.subscriber_count() == 0


def test_slow_subscriber_loses_oldest_snapshots(state, clock):
    store = AuctionStore(initial_state=state, clock=clock, queue_size=2)
    subscription = store.subscribe()

    for name in ('A', 'B', 'C'):
        store.apply(rename(name))

    assert [s.version for s in subscription.drain()] == [2, 3]


def test_wait_for_version(store):
    store.apply(rename('A'))

    assert store.wait_for_version(0, timeout=0).version == 1
    assert store.wait_for_version(1, timeout=0.01).version == 1


def test_snapshot_is_persisted_and_reloaded(state, clock, tmp_path):
    snapshot_file = SnapshotFile(tmp_path / 'auction_state.json')
    store = AuctionStore(initial_state=state, snapshot_file=snapshot_file, clock=clock)
    store.apply(rename('Saved'))

    reloaded = AuctionStore(snapshot_file=snapshot_file, clock=clock)

    assert reloaded.version == 1
    assert reloaded.state().users['u1'].team_name == 'Saved'
    assert not (tmp_path / 'auction_state.tmp').exists()


def test_malformed_snapshot_file_starts_fresh(tmp_path, clock):
    path = tmp_path / 'auction_state.json'
    path.write_text('{not json')

    store = AuctionStore(snapshot_file=SnapshotFile(path), clock=clock)

    assert store.version == 0
    assert store.state().status == AuctionStatus.SETUP
    assert list(store.state().users) == ['admin']


def test_snapshot_dict_round_trip(store):
    store.apply(rename('A'))
    snapshot = store.snapshot()

    restored = Snapshot.from_dict(json.loads(json.dumps(snapshot.to_dict())))

    assert restored.version == snapshot.version
    assert restored.state() == snapshot.state()
