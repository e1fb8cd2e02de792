"""
Roster caps per role.
"""

from typing import Iterable

from .. import config
from .models import Player, Role


def role_count(squad: Iterable[Player], role: Role) -> int:
    """Number of squad entries playing the given role."""
    return sum(1 for player in squad if player.role == role)


def can_acquire(squad: Iterable[Player], role: Role) -> bool:
    """
    Check whether a squad still has room for a player of the given role.

    Raises:
        KeyError: If role has no configured cap
    """
    return role_count(squad, role) < config.ROLE_LIMITS[getattr(role, 'value', role)]


def open_slots(squad: Iterable[Player]) -> dict:
    """Remaining slots by role, e.g. {'P': 1, 'D': 8, ...}."""
    squad = list(squad)
    return {
        role: limit - role_count(squad, Role(role))
        for role, limit in config.ROLE_LIMITS.items()
    }
