"""
Exceptions raised by auction commands.

Bid rejections are not exceptions: the bid validator returns a BidResult so
callers can surface the reason without unwinding.
"""


class AuctionError(Exception):
    """Base class for auction command failures."""


class InvalidTransitionError(AuctionError):
    """Command is not allowed in the current auction status."""


class NotAuthorizedError(AuctionError):
    """Acting user may not issue this command."""


class UnknownUserError(AuctionError):
    """Referenced user is not registered in the auction."""


class InvalidPlayerPoolError(AuctionError, ValueError):
    """Player records failed ingestion checks."""
