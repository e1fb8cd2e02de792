"""
Auction service: the one authoritative process.

The AuctionService coordinates all components:
- Accepts commands from participants and the admin and authorizes them
- Applies each command atomically through the AuctionStore
- Owns the only timers: deadline expiry sells, display delay advances
- Re-arms pending timers from the persisted snapshot on start
"""

import logging
import re
import threading
import time
from typing import Callable, List, Optional, Sequence

from ..player_pool import build_player_id, validate_players
from .bid_validator import NOT_GIVEN, BidResult
from .errors import NotAuthorizedError, UnknownUserError
from .models import AuctionState, AuctionStatus, Player, User, default_team_name
from .replication import AuctionStore, Snapshot, Subscription
from .scheduler import DeadlineScheduler
from .state_machine import AuctionStateMachine

logger = logging.getLogger(__name__)


class AuctionService:
    """Command surface and timeout authority for one auction."""

    def __init__(
        self,
        store: Optional[AuctionStore] = None,
        scheduler: Optional[DeadlineScheduler] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the service.

        Args:
            store: Authoritative store (default: fresh in-memory store)
            scheduler: Timer source (default: DeadlineScheduler on clock)
            clock: Time source in epoch seconds
        """
        self.clock = clock
        self.store = store or AuctionStore(clock=clock)
        self.scheduler = scheduler or DeadlineScheduler(clock=clock)

        self._timer_lock = threading.Lock()
        self._deadline_handle = None
        self._armed_deadline: Optional[float] = None
        self._advance_handle = None
        self._armed_advance: Optional[tuple] = None

        self.running = False

    # ===== Lifecycle =====

    def start(self) -> None:
        """Begin serving; resumes any countdown found in the stored state."""
        self.running = True
        snapshot = self.store.snapshot()
        logger.info(
            f"Auction service started at v{snapshot.version} "
            f"({snapshot.data['status']}, {len(snapshot.data['users'])} users)"
        )
        self._sync_timers()

    def shutdown(self) -> None:
        """Stop all timers. The stored state is kept as is."""
        self.running = False
        with self._timer_lock:
            self._forget_timers()
        self.scheduler.shutdown()
        logger.info("Auction service shut down")

    # ===== Reading =====

    def snapshot(self) -> Snapshot:
        return self.store.snapshot()

    def state(self) -> AuctionState:
        return self.store.state()

    def subscribe(self) -> Subscription:
        return self.store.subscribe()

    def wait_for_version(self, after_version: int, timeout: Optional[float] = None) -> Snapshot:
        return self.store.wait_for_version(after_version, timeout)

    def remaining_seconds(self) -> float:
        return AuctionStateMachine(self.store.state(), self.clock()).remaining_seconds()

    # ===== Command plumbing =====

    def _run(self, actor_id: Optional[str], command: Callable, admin_only: bool = False, target_id: Optional[str] = None):
        """
        Authorize and apply one command against the latest state.

        Args:
            actor_id: Acting user (trusted from the identity provider)
            command: Callable receiving an AuctionStateMachine
            admin_only: Only the admin may issue it
            target_id: User the command acts on; actor must be that user or admin
        """
        def transaction(state: AuctionState):
            if actor_id is not None:
                actor = state.users.get(actor_id)
                if actor is None:
                    raise UnknownUserError(f"Unknown user: {actor_id}")
                if admin_only and not actor.is_admin:
                    raise NotAuthorizedError(f"User {actor_id} is not the admin")
                if target_id is not None and target_id != actor_id and not actor.is_admin:
                    raise NotAuthorizedError(f"User {actor_id} cannot act for {target_id}")
            return command(AuctionStateMachine(state, self.clock()))

        result = self.store.apply(transaction)
        self._sync_timers()
        return result

    # ===== Timers =====

    def _forget_timers(self) -> None:
        self.scheduler.cancel_all()
        self._deadline_handle = None
        self._armed_deadline = None
        self._advance_handle = None
        self._armed_advance = None

    def _sync_timers(self) -> None:
        """Arm exactly the timers the committed state calls for."""
        if not self.running:
            return

        with self._timer_lock:
            # Read under the lock so the last syncer always sees the newest commit
            data = self.store.snapshot().data
            status = data['status']

            deadline = data['countdown_end'] if status == AuctionStatus.BIDDING.value else None
            if deadline != self._armed_deadline:
                if self._deadline_handle is not None:
                    self.scheduler.cancel(self._deadline_handle)
                    self._deadline_handle = None
                self._armed_deadline = deadline
                if deadline is not None:
                    self._deadline_handle = self.scheduler.schedule(deadline, self._on_deadline, deadline)

            advance = None
            if status == AuctionStatus.SOLD.value and data['advance_at'] is not None:
                advance = (data['advance_at'], data['current_player_index'])
            if advance != self._armed_advance:
                if self._advance_handle is not None:
                    self.scheduler.cancel(self._advance_handle)
                    self._advance_handle = None
                self._armed_advance = advance
                if advance is not None:
                    self._advance_handle = self.scheduler.schedule(advance[0], self._on_advance, advance[1])

    def _on_deadline(self, expected_deadline: float) -> None:
        """Timer callback: sell if the deadline it was armed for still stands."""
        def command(machine: AuctionStateMachine) -> bool:
            if not machine.deadline_elapsed(expected_deadline):
                return False
            machine.sell()
            return True

        with self._timer_lock:
            if self._armed_deadline == expected_deadline:
                self._deadline_handle = None
                self._armed_deadline = None

        if self._run(None, command):
            logger.debug(f"Deadline {expected_deadline:.2f} elapsed: player sold")

    def _on_advance(self, expected_index: int) -> None:
        """Timer callback: leave SOLD for the next player once the display delay passed."""
        def command(machine: AuctionStateMachine) -> bool:
            state = machine.state
            if (
                state.status != AuctionStatus.SOLD
                or state.current_player_index != expected_index
                or state.advance_at is None
                or machine.now < state.advance_at
            ):
                return False
            machine.advance()
            return True

        with self._timer_lock:
            if self._armed_advance is not None and self._armed_advance[1] == expected_index:
                self._advance_handle = None
                self._armed_advance = None

        self._run(None, command)

    # ===== Participants =====

    def register_user(self, user_id: str, name: str) -> User:
        """
        Register the identity provider's user if unknown (idempotent).

        Returns:
            The stored user record
        """
        name = name.strip()
        if not user_id or not name:
            raise ValueError("User id and name are required")

        def command(machine: AuctionStateMachine) -> User:
            existing = machine.state.users.get(user_id)
            if existing is not None:
                return existing
            user = User(id=user_id, name=name, team_name=default_team_name(name))
            machine.add_user(user)
            return user

        return self._run(None, command)

    def add_user(self, actor_id: str, name: str) -> User:
        """Admin adds a participant by name; an id is generated."""
        name = name.strip()
        if not name:
            raise ValueError("User name is required")
        slug = re.sub(r'[^a-z0-9]', '', name.lower())
        user_id = f"user-{slug}-{int(self.clock() * 1000)}"

        def command(machine: AuctionStateMachine) -> User:
            user = User(id=user_id, name=name, team_name=default_team_name(name))
            machine.add_user(user)
            return user

        return self._run(actor_id, command, admin_only=True)

    def set_user_ready(self, actor_id: str, user_id: str) -> None:
        self._run(actor_id, lambda m: m.set_user_ready(user_id), target_id=user_id)

    def set_team_name(self, actor_id: str, user_id: str, team_name: str) -> None:
        self._run(actor_id, lambda m: m.set_team_name(user_id, team_name), target_id=user_id)

    def set_profile_picture(self, actor_id: str, user_id: str, picture: Optional[str]) -> None:
        self._run(actor_id, lambda m: m.set_profile_picture(user_id, picture), target_id=user_id)

    # ===== Pool configuration (admin) =====

    def set_players(self, actor_id: str, players: Sequence) -> List[Player]:
        players = validate_players(players)
        self._run(actor_id, lambda m: m.set_players(players), admin_only=True)
        return players

    def add_player(self, actor_id: str, player) -> Player:
        """Add one player; its id is generated from the name when missing."""
        if isinstance(player, dict) and not player.get('id'):
            player = dict(player, id=build_player_id(str(player.get('name') or ''), int(self.clock() * 1000)))
        player = validate_players([player])[0]
        self._run(actor_id, lambda m: m.add_player(player), admin_only=True)
        return player

    def set_auction_queue(self, actor_id: str, order: Sequence[int]) -> None:
        self._run(actor_id, lambda m: m.set_auction_queue(order), admin_only=True)

    def requeue_player(self, actor_id: str, player_id: str) -> None:
        self._run(actor_id, lambda m: m.requeue_player(player_id), admin_only=True)

    def set_custom_logo(self, actor_id: str, club: str, url: str) -> None:
        self._run(actor_id, lambda m: m.set_custom_logo(club, url), admin_only=True)

    def set_winner_image(self, actor_id: str, url: Optional[str]) -> None:
        self._run(actor_id, lambda m: m.set_winner_image(url), admin_only=True)

    # ===== Auction control (admin) =====

    def initialize_auction(self, actor_id: str, initial_credits: int) -> None:
        self._run(actor_id, lambda m: m.initialize_auction(initial_credits), admin_only=True)

    def start_auction(self, actor_id: str) -> None:
        self._run(actor_id, lambda m: m.start_auction(), admin_only=True)

    def pause(self, actor_id: str) -> None:
        self._run(actor_id, lambda m: m.pause(), admin_only=True)

    def resume(self, actor_id: str) -> None:
        self._run(actor_id, lambda m: m.resume(), admin_only=True)

    def stop(self, actor_id: str) -> None:
        """Admin hammer: sell the current player now."""
        self._run(actor_id, lambda m: m.sell(force=True), admin_only=True)

    def reset(self, actor_id: str) -> None:
        """Back to SETUP from anywhere; every pending timer is cancelled."""
        def command(machine: AuctionStateMachine) -> None:
            with self._timer_lock:
                self._forget_timers()
            machine.reset()

        self._run(actor_id, command, admin_only=True)

    def start_test_auction(self, actor_id: str) -> None:
        self._run(actor_id, lambda m: m.start_test_auction(), admin_only=True)

    def stop_test_auction(self, actor_id: str) -> None:
        self._run(actor_id, lambda m: m.stop_test_auction(), admin_only=True)

    # ===== Bidding =====

    def place_bid(self, actor_id: str, amount: int, expected_amount=NOT_GIVEN) -> BidResult:
        """
        Bid as actor_id. Validated and committed in one transaction, so a bid
        overtaken by a concurrent higher one is rejected, never overwritten.
        """
        result = self._run(None, lambda m: m.place_bid(actor_id, amount, expected_amount))
        if not result.ok:
            logger.info(f"Rejected bid {amount} by {actor_id}: {result.reason.value}")
        return result
