"""
Shared fixtures for auction tests.

Time is fully controlled: FakeClock replaces time.time and ManualScheduler
replaces DeadlineScheduler, so timers fire only when a test moves the clock.
"""

import pytest

from fanta_auction.auction.models import (
    AuctionState,
    Player,
    Role,
    User,
    create_initial_auction_state,
)
from fanta_auction.auction.state_machine import AuctionStateMachine


# =============================================================================
# Time doubles
# =============================================================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualScheduler:
    """Records scheduled callbacks and fires those due on the fake clock."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.timers = {}
        self._next_id = 0
        self.closed = False

    def schedule(self, at, callback, *args):
        handle = self._next_id
        self._next_id += 1
        self.timers[handle] = (at, callback, args)
        return handle

    def cancel(self, handle):
        self.timers.pop(handle, None)

    def cancel_all(self):
        self.timers.clear()

    def pending(self):
        return len(self.timers)

    def deadlines(self):
        return sorted(at for at, _, _ in self.timers.values())

    def shutdown(self):
        self.cancel_all()
        self.closed = True

    def run_due(self) -> int:
        """Fire every timer due now, earliest first. Returns how many fired."""
        fired = 0
        while True:
            due = [(at, handle) for handle, (at, _, _) in self.timers.items() if at <= self.clock()]
            if not due:
                return fired
            _, handle = min(due)
            _, callback, args = self.timers.pop(handle)
            callback(*args)
            fired += 1

    def advance(self, seconds: float) -> int:
        self.clock.advance(seconds)
        return self.run_due()


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def make_scheduler(clock):
    """Extra schedulers on the same clock, e.g. for a restarted service."""
    return lambda: ManualScheduler(clock)


@pytest.fixture
def make_player():
    def _make(player_id, role=Role.FORWARD, base_value=10, name=None, club='Inter'):
        return Player(
            id=player_id,
            name=name or player_id.title(),
            role=Role(role),
            club=club,
            base_value=base_value,
        )
    return _make


@pytest.fixture
def pool(make_player):
    """Three players: a goalkeeper at 10, a defender at 5, a forward at 20."""
    return [
        make_player('maignan', Role.GOALKEEPER, 10, club='Milan'),
        make_player('bastoni', Role.DEFENDER, 5, club='Inter'),
        make_player('lautaro', Role.FORWARD, 20, club='Inter'),
    ]


@pytest.fixture
def state(pool) -> AuctionState:
    """SETUP state with the admin, two participants and the pool loaded."""
    state = create_initial_auction_state()
    state.users['u1'] = User(id='u1', name='Anna', team_name="Anna's Team")
    state.users['u2'] = User(id='u2', name='Bruno', team_name="Bruno's Team")
    state.players = list(pool)
    state.auction_queue = list(range(len(pool)))
    return state


@pytest.fixture
def machine(state, clock):
    """Factory for a state machine bound to the current fake time."""
    def _machine(target=None):
        return AuctionStateMachine(target if target is not None else state, clock())
    return _machine


@pytest.fixture
def bidding_state(state, machine):
    """State already BIDDING on the goalkeeper (base value 10)."""
    machine().initialize_auction(500)
    for user in state.users.values():
        user.is_ready = True
    machine().start_auction()
    return state
