"""
Live auction subsystem.

This package holds the auction state machine, the bidding and settlement
rules, and the replication layer that fans committed snapshots out to every
connected participant.
"""

from .models import (
    AuctionSettings,
    AuctionState,
    AuctionStatus,
    AuctionWinner,
    Bid,
    Player,
    Role,
    User,
    create_initial_auction_state,
)
from .bid_validator import BidRejection, BidResult, validate_bid
from .settlement import settle
from .state_machine import AuctionStateMachine
from .replication import AuctionStore, Snapshot, Subscription
from .replica import AuctionReplica

__all__ = [
    'AuctionSettings',
    'AuctionState',
    'AuctionStatus',
    'AuctionWinner',
    'Bid',
    'Player',
    'Role',
    'User',
    'create_initial_auction_state',
    'BidRejection',
    'BidResult',
    'validate_bid',
    'settle',
    'AuctionStateMachine',
    'AuctionStore',
    'Snapshot',
    'Subscription',
    'AuctionReplica',
]
