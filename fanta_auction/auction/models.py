"""
Core data structures for the live auction.

These dataclasses represent the state of a fantasy football auction,
including the player pool, participants and their squads, the live bid,
and the overall auction aggregate that is replicated to every client.
"""

from copy import deepcopy
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional
import json

from .. import config


class Role(str, Enum):
    """Player position."""

    GOALKEEPER = 'P'
    DEFENDER = 'D'
    MIDFIELDER = 'C'
    FORWARD = 'A'


class AuctionStatus(str, Enum):
    """Auction lifecycle status."""

    SETUP = 'SETUP'
    READY = 'READY'
    BIDDING = 'BIDDING'
    PAUSED = 'PAUSED'
    SOLD = 'SOLD'
    ENDED = 'ENDED'


@dataclass(frozen=True)
class Player:
    """A player in the auction pool.

    Squad entries are copies of the pool record with base_value overwritten
    by the price actually paid.
    """

    id: str
    name: str
    role: Role
    club: str
    base_value: int           # Opening bid price

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'name': self.name,
            'role': self.role.value,
            'club': self.club,
            'base_value': self.base_value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Player':
        """Create Player from dictionary."""
        return cls(
            id=data['id'],
            name=data['name'],
            role=Role(data['role']),
            club=data.get('club', ''),
            base_value=int(data['base_value']),
        )


@dataclass(frozen=True)
class Bid:
    """Current highest live bid. Replaced wholesale, never patched."""

    user_id: str
    amount: int

    def to_dict(self) -> dict:
        return {'user_id': self.user_id, 'amount': self.amount}

    @classmethod
    def from_dict(cls, data: dict) -> 'Bid':
        return cls(user_id=data['user_id'], amount=int(data['amount']))


@dataclass
class User:
    """A participant and their squad."""

    id: str
    name: str
    team_name: str
    credits: int = config.DEFAULT_INITIAL_CREDITS
    squad: List[Player] = field(default_factory=list)
    is_ready: bool = False
    is_admin: bool = False
    profile_picture: Optional[str] = None

    def total_spent(self) -> int:
        """Credits spent so far (squad entries carry the paid price)."""
        return sum(player.base_value for player in self.squad)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'name': self.name,
            'team_name': self.team_name,
            'credits': self.credits,
            'squad': [player.to_dict() for player in self.squad],
            'is_ready': self.is_ready,
            'is_admin': self.is_admin,
            'profile_picture': self.profile_picture,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'User':
        """Create User from dictionary.

        Empty collections may be missing from replicated payloads, so squad
        defaults to an empty list.
        """
        squad = [Player.from_dict(p) for p in (data.get('squad') or [])]
        return cls(
            id=data['id'],
            name=data['name'],
            team_name=data.get('team_name') or default_team_name(data['name']),
            credits=int(data.get('credits', config.DEFAULT_INITIAL_CREDITS)),
            squad=squad,
            is_ready=bool(data.get('is_ready', False)),
            is_admin=bool(data.get('is_admin', False)),
            profile_picture=data.get('profile_picture'),
        )


@dataclass
class AuctionWinner:
    """Result of the last sale: the pool player, the winner
    as it stood after the debit, and the amount."""

    player: Player
    user: User
    amount: int

    def to_dict(self) -> dict:
        return {
            'player': self.player.to_dict(),
            'user': self.user.to_dict(),
            'amount': self.amount,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AuctionWinner':
        return cls(
            player=Player.from_dict(data['player']),
            user=User.from_dict(data['user']),
            amount=int(data['amount']),
        )


@dataclass
class AuctionSettings:
    """Auxiliary auction configuration."""

    is_test_mode: bool = False
    winner_image_url: Optional[str] = None
    initial_credits: int = config.DEFAULT_INITIAL_CREDITS

    def to_dict(self) -> dict:
        return {
            'is_test_mode': self.is_test_mode,
            'winner_image_url': self.winner_image_url,
            'initial_credits': self.initial_credits,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AuctionSettings':
        return cls(
            is_test_mode=bool(data.get('is_test_mode', False)),
            winner_image_url=data.get('winner_image_url'),
            initial_credits=int(data.get('initial_credits', config.DEFAULT_INITIAL_CREDITS)),
        )


@dataclass
class AuctionState:
    """Complete state of the auction (the replicated aggregate)."""

    status: AuctionStatus = AuctionStatus.SETUP
    players: List[Player] = field(default_factory=list)
    auction_queue: List[int] = field(default_factory=list)   # Pool indices in bidding order
    current_player_index: int = -1                            # Cursor into auction_queue
    current_bid: Optional[Bid] = None
    countdown_end: Optional[float] = None        # Epoch seconds, set while BIDDING
    countdown_remaining: Optional[float] = None  # Seconds, set while PAUSED
    advance_at: Optional[float] = None           # Epoch seconds, set while SOLD
    settled_index: int = -1                      # Cursor whose sale has been settled
    last_winner: Optional[AuctionWinner] = None
    users: Dict[str, User] = field(default_factory=dict)
    settings: AuctionSettings = field(default_factory=AuctionSettings)
    custom_logos: Dict[str, str] = field(default_factory=dict)  # lower-cased club -> URL

    def current_player(self) -> Optional[Player]:
        """Player under the queue cursor, or None if the cursor is idle."""
        if not 0 <= self.current_player_index < len(self.auction_queue):
            return None
        pool_index = self.auction_queue[self.current_player_index]
        if not 0 <= pool_index < len(self.players):
            return None
        return self.players[pool_index]

    def upcoming_players(self) -> List[Player]:
        """Players still queued after the cursor."""
        upcoming = []
        for pool_index in self.auction_queue[self.current_player_index + 1:]:
            if 0 <= pool_index < len(self.players):
                upcoming.append(self.players[pool_index])
        return upcoming

    def is_current_settled(self) -> bool:
        return self.current_player_index >= 0 and self.settled_index == self.current_player_index

    def is_unsold(self) -> bool:
        """True once the current player was settled with no bid at all."""
        return self.is_current_settled() and self.last_winner is None

    def owner_of(self, player_id: str) -> Optional[str]:
        """User id whose squad holds player_id, if any."""
        for user in self.users.values():
            if any(p.id == player_id for p in user.squad):
                return user.id
        return None

    def admin(self) -> Optional[User]:
        for user in self.users.values():
            if user.is_admin:
                return user
        return None

    def copy(self) -> 'AuctionState':
        """Deep working copy for a transaction."""
        return deepcopy(self)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'status': self.status.value,
            'players': [player.to_dict() for player in self.players],
            'auction_queue': list(self.auction_queue),
            'current_player_index': self.current_player_index,
            'current_bid': self.current_bid.to_dict() if self.current_bid else None,
            'countdown_end': self.countdown_end,
            'countdown_remaining': self.countdown_remaining,
            'advance_at': self.advance_at,
            'settled_index': self.settled_index,
            'last_winner': self.last_winner.to_dict() if self.last_winner else None,
            'users': {uid: user.to_dict() for uid, user in self.users.items()},
            'settings': self.settings.to_dict(),
            'custom_logos': dict(self.custom_logos),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AuctionState':
        """Create AuctionState from dictionary."""
        bid = data.get('current_bid')
        winner = data.get('last_winner')
        return cls(
            status=AuctionStatus(data.get('status', AuctionStatus.SETUP.value)),
            players=[Player.from_dict(p) for p in (data.get('players') or [])],
            auction_queue=[int(i) for i in (data.get('auction_queue') or [])],
            current_player_index=int(data.get('current_player_index', -1)),
            current_bid=Bid.from_dict(bid) if bid else None,
            countdown_end=data.get('countdown_end'),
            countdown_remaining=data.get('countdown_remaining'),
            advance_at=data.get('advance_at'),
            settled_index=int(data.get('settled_index', -1)),
            last_winner=AuctionWinner.from_dict(winner) if winner else None,
            users={
                uid: User.from_dict(udata)
                for uid, udata in (data.get('users') or {}).items()
                if udata
            },
            settings=AuctionSettings.from_dict(data.get('settings') or {}),
            custom_logos=dict(data.get('custom_logos') or {}),
        )

    def to_json(self, indent: Optional[int] = None) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> 'AuctionState':
        """Create AuctionState from JSON string."""
        return cls.from_dict(json.loads(json_str))


def default_team_name(name: str) -> str:
    return f"{name}'s Team"


def create_admin_user(credits: int = config.DEFAULT_INITIAL_CREDITS) -> User:
    """Build the single admin participant."""
    return User(
        id=config.ADMIN_USER_ID,
        name=config.ADMIN_USER_NAME,
        team_name=config.ADMIN_TEAM_NAME,
        credits=credits,
        is_admin=True,
    )


def create_initial_auction_state() -> AuctionState:
    """
    Create the auction aggregate as it exists at first access.

    Returns:
        AuctionState in SETUP with one admin user and no players
    """
    admin = create_admin_user()
    return AuctionState(users={admin.id: admin})
