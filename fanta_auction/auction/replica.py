"""
Reader side of state replication.

An AuctionReplica is what a participant holds locally: the last confirmed
snapshot plus anything the participant did that the authority has not echoed
back yet. Every incoming snapshot replaces derived state wholesale; the only
merge is on the user map, where local-only users survive a snapshot that
predates their registration.
"""

import logging
import time
from typing import Callable, Dict, Optional

from .bid_validator import minimum_bid
from .models import AuctionState, AuctionStatus, Bid, User
from .replication import Snapshot

logger = logging.getLogger(__name__)


class AuctionReplica:
    """Local, reconciled view of the replicated auction."""

    def __init__(self, user_id: Optional[str] = None, clock: Callable[[], float] = time.time):
        self.user_id = user_id
        self.clock = clock
        self.version = -1
        self.state: Optional[AuctionState] = None
        self.pending_bid: Optional[Bid] = None
        self._local_users: Dict[str, User] = {}

    def add_local_user(self, user: User) -> None:
        """Track a user created here until a snapshot contains it."""
        self._local_users[user.id] = user
        if self.state is not None:
            self.state.users.setdefault(user.id, user)

    def apply_snapshot(self, snapshot: Snapshot) -> bool:
        """
        Reconcile an incoming snapshot.

        Args:
            snapshot: Snapshot from the authority

        Returns:
            True if the snapshot was applied, False if it was stale or malformed
        """
        if snapshot.version <= self.version:
            logger.debug(f"Ignoring stale snapshot v{snapshot.version} (have v{self.version})")
            return False

        try:
            incoming = snapshot.state()
        except (KeyError, ValueError, TypeError) as e:
            logger.error(f"Skipping malformed snapshot v{snapshot.version}: {e}")
            return False

        # Union of keys, incoming wins on shared keys
        for user_id, user in list(self._local_users.items()):
            if user_id in incoming.users:
                del self._local_users[user_id]
            else:
                incoming.users[user_id] = user

        self.state = incoming
        self.version = snapshot.version
        self._reconcile_pending_bid()
        return True

    def apply_snapshot_dict(self, data: dict) -> bool:
        """apply_snapshot for a wire payload."""
        try:
            snapshot = Snapshot.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            logger.error(f"Skipping malformed snapshot payload: {e}")
            return False
        return self.apply_snapshot(snapshot)

    def reset(self) -> None:
        """Forget the current version (the authority restarted)."""
        self.version = -1

    def _reconcile_pending_bid(self) -> None:
        if self.pending_bid is None:
            return
        live = self.state.current_bid
        if live is not None and live.amount >= self.pending_bid.amount:
            outcome = 'confirmed' if live == self.pending_bid else 'outbid'
            logger.debug(f"Pending bid {self.pending_bid.amount} {outcome}")
            self.pending_bid = None
        elif self.state.status != AuctionStatus.BIDDING:
            self.pending_bid = None

    def mark_bid_pending(self, amount: int) -> None:
        """Record a submitted bid; it is not ground truth until confirmed."""
        if self.user_id is None:
            raise ValueError("Replica has no user to bid as")
        self.pending_bid = Bid(user_id=self.user_id, amount=amount)

    def clear_pending_bid(self) -> None:
        self.pending_bid = None

    def remaining_seconds(self) -> float:
        """Countdown recomputed from the shared deadline, never ticked locally."""
        if self.state is None:
            return 0.0
        if self.state.status == AuctionStatus.BIDDING and self.state.countdown_end is not None:
            return max(0.0, self.state.countdown_end - self.clock())
        if self.state.status == AuctionStatus.PAUSED and self.state.countdown_remaining is not None:
            return self.state.countdown_remaining
        return 0.0

    def me(self) -> Optional[User]:
        if self.state is None or self.user_id is None:
            return None
        return self.state.users.get(self.user_id)

    def next_bid_amount(self, step: int = 1) -> Optional[int]:
        """Smallest acceptable bid right now, raised by step - 1 if asked."""
        if self.state is None:
            return None
        floor = minimum_bid(self.state)
        if floor is None:
            return None
        return floor + max(0, step - 1)
