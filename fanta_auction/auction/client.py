"""
Participant client for the auction API.

Wraps the HTTP surface with a requests.Session and keeps an AuctionReplica
current by long-polling for snapshots, reconnecting with backoff when the
server is unreachable.
"""

import logging
import threading
from typing import Dict, Optional

import requests

from .. import config
from .bid_validator import NOT_GIVEN, BidRejection, BidResult
from .replica import AuctionReplica
from .replication import Snapshot

logger = logging.getLogger(__name__)


class AuctionClient:
    """Client for one participant of a running auction."""

    def __init__(
        self,
        base_url: str,
        user_id: str,
        session: Optional[requests.Session] = None,
        timeout: float = config.CLIENT_REQUEST_TIMEOUT_SEC
    ):
        """
        Initialize auction client.

        Args:
            base_url: Server root, e.g. http://127.0.0.1:8000
            user_id: Identity sent in the X-User-Id header
            session: Session to reuse (default: a new one)
            timeout: Per-request timeout in seconds, on top of any long-poll wait
        """
        self.base_url = base_url.rstrip('/')
        self.user_id = user_id
        self.timeout = timeout

        # Session for connection pooling
        self.session = session or requests.Session()
        self.session.headers[config.USER_ID_HEADER] = user_id

    def _request(self, method: str, path: str, timeout: Optional[float] = None, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")
        return self.session.request(method, url, timeout=timeout or self.timeout, **kwargs)

    def _json(self, method: str, path: str, **kwargs) -> Dict:
        response = self._request(method, path, **kwargs)
        response.raise_for_status()
        return response.json()

    # ===== Participant commands =====

    def register(self, name: str) -> Dict:
        """Create this user on the server if unknown. Returns the user record."""
        user = self._json('POST', '/users/register', json={'name': name})
        logger.info(f"Registered as {user['id']} ({user['team_name']})")
        return user

    def set_ready(self) -> Dict:
        return self._json('POST', f"/users/{self.user_id}/ready")

    def set_team_name(self, team_name: str) -> Dict:
        return self._json('PUT', f"/users/{self.user_id}/team-name", json={'team_name': team_name})

    def place_bid(
        self,
        amount: int,
        expected_current_amount=NOT_GIVEN,
        replica: Optional[AuctionReplica] = None
    ) -> BidResult:
        """
        Submit a bid.

        Args:
            amount: Bid amount in credits
            expected_current_amount: Live bid the user saw (None for none yet)
            replica: If given, the bid is tracked there as pending

        Returns:
            BidResult from the server; a rejection is a value, not an error

        Raises:
            requests.RequestException: On transport failure or unexpected status
        """
        body = {'amount': amount}
        if expected_current_amount is not NOT_GIVEN:
            body['expected_current_amount'] = expected_current_amount

        if replica is not None:
            replica.mark_bid_pending(amount)

        try:
            response = self._request('POST', '/auction/bids', json=body)
        except requests.RequestException:
            if replica is not None:
                replica.clear_pending_bid()
            raise

        if response.status_code == 409:
            if replica is not None:
                replica.clear_pending_bid()
            detail = response.json().get('detail', {})
            logger.info(f"Bid {amount} rejected: {detail.get('message')}")
            return BidResult.rejected(BidRejection(detail['reason']), detail.get('message', ''))

        response.raise_for_status()
        return BidResult.accepted()

    # ===== Snapshots =====

    def fetch_snapshot(self) -> Snapshot:
        """Current snapshot without waiting."""
        return Snapshot.from_dict(self._json('GET', '/auction/snapshot'))

    def poll(self, after_version: int, wait: float = config.MAX_LONG_POLL_SEC) -> Snapshot:
        """
        Long-poll for a snapshot newer than after_version.

        Returns:
            Snapshot; its version equals after_version if nothing changed in time
        """
        data = self._json(
            'GET',
            '/auction/snapshot',
            params={'after_version': after_version, 'wait': wait},
            timeout=wait + self.timeout
        )
        return Snapshot.from_dict(data)

    def follow(
        self,
        replica: AuctionReplica,
        stop_event: threading.Event,
        wait: float = config.MAX_LONG_POLL_SEC
    ) -> None:
        """
        Keep replica current until stop_event is set.

        Reconnects with exponential backoff on network errors. A server
        version lower than the replica's means the server restarted, so the
        replica starts over from the server's snapshot.
        """
        backoff = config.CLIENT_RETRY_INITIAL_SEC

        while not stop_event.is_set():
            try:
                snapshot = self.poll(replica.version, wait)
            except requests.RequestException as e:
                logger.warning(f"Snapshot poll failed: {e}, retrying in {backoff:.1f}s")
                stop_event.wait(backoff)
                backoff = min(backoff * 2, config.CLIENT_RETRY_MAX_SEC)
                continue

            backoff = config.CLIENT_RETRY_INITIAL_SEC

            if snapshot.version < replica.version:
                logger.warning(
                    f"Server is at v{snapshot.version}, behind local v{replica.version}: resyncing"
                )
                replica.reset()

            replica.apply_snapshot(snapshot)
