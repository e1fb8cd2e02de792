"""
Bid validation against the current auction state.

Checks run in a fixed order and the first failure wins, so a caller always
gets the most fundamental reason a bid cannot be taken.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .models import AuctionState, AuctionStatus
from .roster_rules import can_acquire


class BidRejection(str, Enum):
    """Reason a bid was refused."""

    NOT_BIDDING_PHASE = 'not_bidding_phase'
    DEADLINE_PASSED = 'deadline_passed'
    UNKNOWN_USER = 'unknown_user'
    NO_ACTIVE_PLAYER = 'no_active_player'
    ROLE_LIMIT_REACHED = 'role_limit_reached'
    BID_SUPERSEDED = 'bid_superseded'
    BID_TOO_LOW = 'bid_too_low'
    INSUFFICIENT_CREDITS = 'insufficient_credits'


@dataclass(frozen=True)
class BidResult:
    """Outcome of validate_bid."""

    reason: Optional[BidRejection] = None
    message: str = ''

    @property
    def ok(self) -> bool:
        return self.reason is None

    @classmethod
    def accepted(cls) -> 'BidResult':
        return cls()

    @classmethod
    def rejected(cls, reason: BidRejection, message: str) -> 'BidResult':
        return cls(reason=reason, message=message)

    def to_dict(self) -> dict:
        return {
            'accepted': self.ok,
            'reason': self.reason.value if self.reason else None,
            'message': self.message,
        }


# Sentinel for "caller did not state which bid it saw"
NOT_GIVEN = object()


def minimum_bid(state: AuctionState) -> Optional[int]:
    """Smallest amount that would currently be accepted, ignoring credits."""
    player = state.current_player()
    if player is None:
        return None
    if state.current_bid is not None:
        return state.current_bid.amount + 1
    return player.base_value


def validate_bid(
    state: AuctionState,
    user_id: str,
    amount: int,
    expected_amount=NOT_GIVEN,
    now: Optional[float] = None
) -> BidResult:
    """
    Decide whether a proposed bid is legal.

    Args:
        state: Latest committed auction state
        user_id: Bidding user
        amount: Proposed amount in credits
        expected_amount: Live bid amount the bidder saw (None for "no bid yet").
            When given and the live bid has moved on, the bid is refused as
            superseded instead of being re-judged against the new price.
        now: Current time. When given, a bid at or after the live deadline is
            refused even if the sell timer has not fired yet.

    Returns:
        BidResult, ok when the bid can be committed
    """
    if state.status != AuctionStatus.BIDDING:
        return BidResult.rejected(
            BidRejection.NOT_BIDDING_PHASE,
            f"Bids are only accepted while bidding (status is {state.status.value})"
        )

    if now is not None and state.countdown_end is not None and now >= state.countdown_end:
        return BidResult.rejected(
            BidRejection.DEADLINE_PASSED,
            f"Bidding closed at {state.countdown_end:.3f}"
        )

    user = state.users.get(user_id)
    if user is None:
        return BidResult.rejected(BidRejection.UNKNOWN_USER, f"Unknown user: {user_id}")

    player = state.current_player()
    if player is None:
        return BidResult.rejected(BidRejection.NO_ACTIVE_PLAYER, "No player is under auction")

    if not can_acquire(user.squad, player.role):
        return BidResult.rejected(
            BidRejection.ROLE_LIMIT_REACHED,
            f"Role limit reached for role {player.role.value}"
        )

    current_amount = state.current_bid.amount if state.current_bid else None
    if expected_amount is not NOT_GIVEN and expected_amount != current_amount:
        return BidResult.rejected(
            BidRejection.BID_SUPERSEDED,
            f"Bid superseded: current bid is {current_amount}, not {expected_amount}"
        )

    # Opening floor is base_value itself: amount must exceed base_value - 1
    floor = current_amount if current_amount is not None else player.base_value - 1
    if amount <= floor:
        return BidResult.rejected(
            BidRejection.BID_TOO_LOW,
            f"Bid too low: {amount} (minimum {floor + 1})"
        )

    if user.credits < amount:
        return BidResult.rejected(
            BidRejection.INSUFFICIENT_CREDITS,
            f"Insufficient credits: {user.credits} < {amount}"
        )

    return BidResult.accepted()
