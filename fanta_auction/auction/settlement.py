"""
Settle the player under the hammer.

Turns the winning bid into a credit debit and a squad addition. A broken
reference (user or player missing, credits or role cap already exhausted)
is logged and skipped: the auction moves on rather than stalling for all
participants.
"""

import logging
from copy import deepcopy
from dataclasses import replace
from typing import Dict, Optional, Tuple

from .models import AuctionState, AuctionWinner, User
from .roster_rules import can_acquire

logger = logging.getLogger(__name__)


def settle(state: AuctionState) -> Tuple[Dict[str, User], Optional[AuctionWinner]]:
    """
    Resolve the current bid against the current player.

    Args:
        state: Auction state at the moment of sale (not modified)

    Returns:
        (users, winner) where users is a new user map and winner is None when
        nobody bid or the sale could not be applied
    """
    users = deepcopy(state.users)
    bid = state.current_bid
    player = state.current_player()

    if bid is None:
        logger.info(f"No bids for {player.name if player else 'unknown player'}: unsold")
        return users, None

    winner = users.get(bid.user_id)
    if winner is None or player is None:
        logger.error(
            f"Cannot settle bid {bid.amount} by {bid.user_id}: "
            f"{'user' if winner is None else 'player'} not found"
        )
        return users, None

    if winner.credits < bid.amount:
        logger.error(
            f"Cannot settle {player.name} to {winner.id}: "
            f"credits {winner.credits} < {bid.amount}"
        )
        return users, None

    if not can_acquire(winner.squad, player.role):
        logger.error(
            f"Cannot settle {player.name} to {winner.id}: "
            f"role {player.role.value} is full"
        )
        return users, None

    bought = replace(player, base_value=bid.amount)
    winner.credits -= bid.amount
    winner.squad.append(bought)

    logger.info(
        f"Sold {player.name} → {winner.team_name} ({bid.amount} credits) | "
        f"{winner.credits} remaining"
    )

    return users, AuctionWinner(player=player, user=deepcopy(winner), amount=bid.amount)
