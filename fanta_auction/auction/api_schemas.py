"""
Request and response models for the auction HTTP API.

Domain objects cross the wire as their to_dict() form; these models only
describe what clients send and the small envelopes sent back.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# ========== Participants ==========

class RegisterUserRequest(BaseModel):
    """Body of POST /users/register (id comes from the identity header)."""
    name: str = Field(..., min_length=1, description="Display name")


class AddUserRequest(BaseModel):
    """Admin adds a participant by name."""
    name: str = Field(..., min_length=1, description="Display name")


class TeamNameRequest(BaseModel):
    team_name: str = Field(..., min_length=1)


class ProfilePictureRequest(BaseModel):
    profile_picture: Optional[str] = Field(None, description="Image URL, or null to clear")


class UserResponse(BaseModel):
    """A user record as stored."""
    id: str
    name: str
    team_name: str
    credits: int
    squad: List[Dict[str, Any]]
    is_ready: bool
    is_admin: bool
    profile_picture: Optional[str] = None


# ========== Pool and queue ==========

class PlayerIn(BaseModel):
    """One player for the pool; id is generated from the name when omitted."""
    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    role: str = Field(..., description="P, D, C or A")
    club: str = ""
    base_value: int = Field(..., description="Opening price, must be > 0")


class SetPlayersRequest(BaseModel):
    players: List[PlayerIn]


class QueueRequest(BaseModel):
    order: List[int] = Field(..., description="Pool indices in bidding order")


class RequeueRequest(BaseModel):
    player_id: str


class CustomLogoRequest(BaseModel):
    club: str = Field(..., min_length=1)
    url: str


class WinnerImageRequest(BaseModel):
    url: Optional[str] = None


class InitializeRequest(BaseModel):
    initial_credits: int = Field(500, gt=0, description="Credits every user starts with")


# ========== Bidding ==========

class BidRequest(BaseModel):
    """
    A bid by the calling user.

    expected_current_amount is the live bid the client saw (null for "no bid
    yet"). Send it to have the bid refused as superseded if someone got in
    first; leave it out to be judged only against the latest price.
    """
    amount: int = Field(..., description="Bid amount in credits")
    expected_current_amount: Optional[int] = None


class BidResponse(BaseModel):
    accepted: bool
    reason: Optional[str] = None
    message: str = ""
    version: int


# ========== Replication ==========

class SnapshotResponse(BaseModel):
    """Full replicated state at one version."""
    version: int
    published_at: float
    remaining_seconds: float = Field(description="Countdown as of server time")
    state: Dict[str, Any]


class CommandResponse(BaseModel):
    """Envelope for commands: outcome plus the version that followed."""
    success: bool = Field(..., description="Whether the command was applied")
    message: str = Field(..., description="Human-readable status message")
    version: int


class AuctionConfigResponse(BaseModel):
    """Static rules a client needs to render and pre-validate bids."""
    roles: List[str]
    role_limits: Dict[str, int]
    squad_size: int
    default_initial_credits: int
    opening_countdown_sec: float
    bid_countdown_sec: float
    sold_display_delay_sec: float
    test_opening_countdown_sec: float
    test_bid_countdown_sec: float
    test_sold_display_delay_sec: float
    clubs: List[str]
    user_id_header: str


class TeamSummaryResponse(BaseModel):
    """One row of GET /auction/summary."""
    user_id: str
    team_name: str
    credits: int
    spent: int
    players: int
    goalkeepers: int
    defenders: int
    midfielders: int
    forwards: int


class SummaryResponse(BaseModel):
    teams: List[TeamSummaryResponse]
