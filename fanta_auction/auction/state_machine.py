"""
Auction status transitions.

The AuctionStateMachine is responsible for:
- Guarding every status transition (SETUP → READY → BIDDING ⇄ PAUSED → SOLD → ... → ENDED)
- Moving the queue cursor and arming countdown deadlines
- Applying accepted bids (anti-snipe: every bid re-arms the short window)
- Running settlement exactly once per queued player

It works on the AuctionState it is handed and never touches a clock or a
timer itself: the caller supplies `now` and schedules whatever deadline the
state ends up holding.
"""

import logging
from typing import List, Optional, Sequence

from .. import config
from .bid_validator import NOT_GIVEN, BidResult, validate_bid
from .errors import InvalidTransitionError, UnknownUserError
from .models import (
    AuctionSettings,
    AuctionState,
    AuctionStatus,
    Bid,
    Player,
    User,
)
from .settlement import settle

logger = logging.getLogger(__name__)


class AuctionStateMachine:
    """Applies auction commands to a working copy of the state."""

    def __init__(self, state: AuctionState, now: float):
        """
        Args:
            state: State to mutate (a transaction's working copy)
            now: Current time in epoch seconds
        """
        self.state = state
        self.now = now

    # ===== Timers =====

    @property
    def opening_window(self) -> float:
        if self.state.settings.is_test_mode:
            return config.TEST_OPENING_COUNTDOWN_SEC
        return config.OPENING_COUNTDOWN_SEC

    @property
    def bid_window(self) -> float:
        if self.state.settings.is_test_mode:
            return config.TEST_BID_COUNTDOWN_SEC
        return config.BID_COUNTDOWN_SEC

    @property
    def display_delay(self) -> float:
        if self.state.settings.is_test_mode:
            return config.TEST_SOLD_DISPLAY_DELAY_SEC
        return config.SOLD_DISPLAY_DELAY_SEC

    def remaining_seconds(self) -> float:
        """Countdown value a renderer should show right now."""
        if self.state.status == AuctionStatus.BIDDING and self.state.countdown_end is not None:
            return max(0.0, self.state.countdown_end - self.now)
        if self.state.status == AuctionStatus.PAUSED and self.state.countdown_remaining is not None:
            return self.state.countdown_remaining
        return 0.0

    def _arm(self, seconds: float) -> None:
        self.state.status = AuctionStatus.BIDDING
        self.state.countdown_end = self.now + seconds
        self.state.countdown_remaining = None
        self.state.advance_at = None

    def _clear_timers(self) -> None:
        self.state.countdown_end = None
        self.state.countdown_remaining = None
        self.state.advance_at = None

    def _require(self, *allowed: AuctionStatus) -> None:
        if self.state.status not in allowed:
            names = ', '.join(s.value for s in allowed)
            raise InvalidTransitionError(
                f"Not allowed while {self.state.status.value} (requires {names})"
            )

    # ===== Pool and queue =====

    def set_players(self, players: Sequence[Player]) -> None:
        """Replace the player pool; the queue follows pool order."""
        self._require(AuctionStatus.SETUP, AuctionStatus.READY, AuctionStatus.ENDED)
        self.state.players = list(players)
        self.state.auction_queue = list(range(len(self.state.players)))
        self.state.current_player_index = -1
        self.state.settled_index = -1
        self.state.current_bid = None
        self.state.last_winner = None
        self.state.status = AuctionStatus.SETUP
        self._clear_timers()
        logger.info(f"Player pool set: {len(self.state.players)} players")

    def add_player(self, player: Player) -> None:
        """Append one player to the pool and the end of the queue."""
        self._require(AuctionStatus.SETUP, AuctionStatus.READY)
        if any(p.id == player.id for p in self.state.players):
            raise ValueError(f"Duplicate player id: {player.id}")
        self.state.players.append(player)
        self.state.auction_queue.append(len(self.state.players) - 1)
        logger.debug(f"Added player {player.name} ({player.role.value}, {player.club})")

    def set_auction_queue(self, order: Sequence[int]) -> None:
        """
        Set the bidding order as pool indices.

        Raises:
            ValueError: If an index is out of range or repeated
        """
        self._require(AuctionStatus.SETUP, AuctionStatus.READY)
        order = [int(i) for i in order]
        if len(set(order)) != len(order):
            raise ValueError("Auction queue contains duplicate indices")
        bad = [i for i in order if not 0 <= i < len(self.state.players)]
        if bad:
            raise ValueError(f"Auction queue indices out of range: {bad}")
        self.state.auction_queue = order
        logger.info(f"Auction queue set: {len(order)} of {len(self.state.players)} players")

    def requeue_player(self, player_id: str) -> None:
        """Put an unsold player back at the end of the queue."""
        self._require(
            AuctionStatus.READY, AuctionStatus.BIDDING,
            AuctionStatus.PAUSED, AuctionStatus.SOLD
        )
        pool_index = next(
            (i for i, p in enumerate(self.state.players) if p.id == player_id),
            None
        )
        if pool_index is None:
            raise ValueError(f"Unknown player: {player_id}")
        if self.state.owner_of(player_id) is not None:
            raise ValueError(f"Player {player_id} already belongs to a squad")

        upcoming = self.state.auction_queue[self.state.current_player_index + 1:]
        if pool_index in upcoming:
            raise ValueError(f"Player {player_id} is already queued")
        current = self.state.current_player()
        if current is not None and current.id == player_id and not self.state.is_current_settled():
            raise ValueError(f"Player {player_id} is under auction")

        self.state.auction_queue.append(pool_index)
        logger.info(f"Requeued {self.state.players[pool_index].name}")

    # ===== Lifecycle =====

    def initialize_auction(self, initial_credits: int) -> None:
        """SETUP → READY: reset every user and wait for readiness."""
        self._require(AuctionStatus.SETUP, AuctionStatus.READY)
        if not self.state.players:
            raise InvalidTransitionError("Cannot initialize an auction with no players")
        if initial_credits <= 0:
            raise ValueError(f"Initial credits must be positive, got {initial_credits}")

        for user in self.state.users.values():
            user.credits = initial_credits
            user.squad = []
            user.is_ready = user.is_admin

        if not self.state.auction_queue:
            self.state.auction_queue = list(range(len(self.state.players)))

        self.state.settings.initial_credits = initial_credits
        self.state.status = AuctionStatus.READY
        self.state.current_player_index = -1
        self.state.settled_index = -1
        self.state.current_bid = None
        self.state.last_winner = None
        self._clear_timers()
        logger.info(
            f"Auction initialized: {len(self.state.users)} users, "
            f"{initial_credits} credits each, {len(self.state.auction_queue)} players queued"
        )

    def waiting_for(self) -> List[str]:
        """Non-admin users that have not flagged ready."""
        return [
            uid for uid, user in self.state.users.items()
            if not user.is_admin and not user.is_ready
        ]

    def start_auction(self) -> None:
        """READY → BIDDING on the first queued player."""
        self._require(AuctionStatus.READY)
        waiting = self.waiting_for()
        if waiting:
            raise InvalidTransitionError(f"Users not ready: {', '.join(waiting)}")
        logger.info("Auction started")
        self.advance()

    def pause(self) -> None:
        """BIDDING → PAUSED, keeping the seconds that were left."""
        self._require(AuctionStatus.BIDDING)
        self.state.countdown_remaining = self.remaining_seconds()
        self.state.countdown_end = None
        self.state.status = AuctionStatus.PAUSED
        logger.info(f"Auction paused with {self.state.countdown_remaining:.1f}s remaining")

    def resume(self) -> None:
        """PAUSED → BIDDING with the preserved remainder, not a fresh window."""
        self._require(AuctionStatus.PAUSED)
        if self.state.is_current_settled() or self.state.current_player() is None:
            # Paused between players: carry on with the next one
            self.advance(from_status=AuctionStatus.PAUSED)
            return
        remaining = self.state.countdown_remaining
        if remaining is None:
            remaining = self.opening_window
        self._arm(remaining)
        logger.info(f"Auction resumed with {remaining:.1f}s remaining")

    # ===== Bidding =====

    def place_bid(self, user_id: str, amount: int, expected_amount=NOT_GIVEN) -> BidResult:
        """Validate and, if legal, record the bid and re-arm the bid window."""
        result = validate_bid(self.state, user_id, amount, expected_amount, now=self.now)
        if not result.ok:
            logger.debug(f"Bid {amount} by {user_id} rejected: {result.message}")
            return result

        self.state.current_bid = Bid(user_id=user_id, amount=amount)
        self._arm(self.bid_window)
        logger.info(f"Bid {amount} by {user_id} on {self.state.current_player().name}")
        return result

    def deadline_elapsed(self, expected_deadline: float) -> bool:
        """True when the live deadline is the one a timer was armed for and has passed."""
        return (
            self.state.status == AuctionStatus.BIDDING
            and self.state.countdown_end is not None
            and self.state.countdown_end == expected_deadline
            and self.now >= self.state.countdown_end
        )

    def sell(self, force: bool = False) -> None:
        """
        BIDDING → SOLD: settle the current player.

        Args:
            force: Admin stop; also allowed while PAUSED and before the deadline
        """
        if force:
            self._require(AuctionStatus.BIDDING, AuctionStatus.PAUSED)
        else:
            self._require(AuctionStatus.BIDDING)
        if self.state.is_current_settled():
            raise InvalidTransitionError("Current player is already settled")

        users, winner = settle(self.state)
        self.state.users = users
        self.state.last_winner = winner
        self.state.settled_index = self.state.current_player_index
        self.state.status = AuctionStatus.SOLD
        self.state.countdown_end = None
        self.state.countdown_remaining = None
        self.state.advance_at = self.now + self.display_delay

    def advance(self, from_status: Optional[AuctionStatus] = None) -> None:
        """
        Open bidding on the next queued player, or end the auction.

        Args:
            from_status: Status the caller has already checked; defaults to
                requiring SOLD or READY
        """
        if from_status is None:
            self._require(AuctionStatus.SOLD, AuctionStatus.READY)

        next_index = self.state.current_player_index + 1
        self.state.current_bid = None

        if next_index < len(self.state.auction_queue):
            self.state.current_player_index = next_index
            self._arm(self.opening_window)
            player = self.state.current_player()
            logger.info(
                f"Now bidding: {player.name if player else '?'} "
                f"({next_index + 1}/{len(self.state.auction_queue)})"
            )
        else:
            self.state.status = AuctionStatus.ENDED
            self.state.current_player_index = -1
            self.state.settled_index = -1
            self.state.settings.is_test_mode = False
            self._clear_timers()
            logger.info("Auction ended: queue exhausted")

    def reset(self) -> None:
        """Any → SETUP. Users keep their identity; everything else is cleared."""
        users = {}
        for uid, user in self.state.users.items():
            users[uid] = User(
                id=user.id,
                name=user.name,
                team_name=user.team_name,
                credits=config.DEFAULT_INITIAL_CREDITS,
                is_admin=user.is_admin,
                profile_picture=user.profile_picture,
            )
        self.state.users = users
        self.state.status = AuctionStatus.SETUP
        self.state.players = []
        self.state.auction_queue = []
        self.state.current_player_index = -1
        self.state.settled_index = -1
        self.state.current_bid = None
        self.state.last_winner = None
        self.state.settings = AuctionSettings(
            winner_image_url=self.state.settings.winner_image_url
        )
        self._clear_timers()
        logger.info(f"Auction reset ({len(users)} users kept)")

    # ===== Test mode =====

    def start_test_auction(self) -> None:
        """Run the real state machine with short timers and everyone ready."""
        self._require(
            AuctionStatus.SETUP, AuctionStatus.READY,
            AuctionStatus.PAUSED, AuctionStatus.ENDED
        )
        if not self.state.players:
            raise InvalidTransitionError("Cannot start a test auction with no players")

        for user in self.state.users.values():
            user.credits = config.DEFAULT_INITIAL_CREDITS
            user.squad = []
            user.is_ready = True

        if not self.state.auction_queue:
            self.state.auction_queue = list(range(len(self.state.players)))

        self.state.settings.is_test_mode = True
        self.state.settings.initial_credits = config.DEFAULT_INITIAL_CREDITS
        self.state.current_player_index = -1
        self.state.settled_index = -1
        self.state.last_winner = None
        logger.info("Test auction started")
        self.advance(from_status=self.state.status)

    def stop_test_auction(self) -> None:
        """Leave test mode and freeze where the test got to."""
        if not self.state.settings.is_test_mode:
            raise InvalidTransitionError("No test auction is running")
        if self.state.status == AuctionStatus.BIDDING:
            self.state.countdown_remaining = self.remaining_seconds()
        elif self.state.status != AuctionStatus.PAUSED:
            self.state.countdown_remaining = None
        self.state.countdown_end = None
        self.state.advance_at = None
        self.state.settings.is_test_mode = False
        self.state.status = AuctionStatus.PAUSED
        logger.info("Test auction stopped")

    # ===== Participants =====

    def add_user(self, user: User) -> None:
        if user.id in self.state.users:
            raise ValueError(f"User already registered: {user.id}")
        user.credits = self.state.settings.initial_credits
        self.state.users[user.id] = user
        logger.info(f"Registered user {user.id} ({user.name})")

    def get_user(self, user_id: str) -> User:
        user = self.state.users.get(user_id)
        if user is None:
            raise UnknownUserError(f"Unknown user: {user_id}")
        return user

    def set_user_ready(self, user_id: str) -> None:
        self.get_user(user_id).is_ready = True

    def set_team_name(self, user_id: str, team_name: str) -> None:
        team_name = team_name.strip()
        if not team_name:
            raise ValueError("Team name cannot be empty")
        self.get_user(user_id).team_name = team_name

    def set_profile_picture(self, user_id: str, picture: Optional[str]) -> None:
        self.get_user(user_id).profile_picture = picture

    def set_custom_logo(self, club: str, url: str) -> None:
        self.state.custom_logos[club.strip().lower()] = url

    def set_winner_image(self, url: Optional[str]) -> None:
        self.state.settings.winner_image_url = url
