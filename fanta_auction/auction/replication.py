"""
Authoritative side of state replication.

AuctionStore is the single writer of the auction aggregate. Every mutation is
a command applied to a working copy under one lock: if the command raises, the
copy is dropped; if it changed anything, the copy becomes the new committed
state, gets the next version number, is persisted, and is fanned out to every
subscriber as a complete snapshot. Readers never patch state, they replace it.
"""

import logging
import queue
import threading
import time
from copy import deepcopy
from dataclasses import dataclass
from typing import Callable, List, Optional, TypeVar

from .. import config
from .models import AuctionState, create_initial_auction_state
from .snapshot_file import SnapshotFile

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class Snapshot:
    """A complete, self-consistent copy of the auction at one version."""

    version: int
    published_at: float
    data: dict    # AuctionState.to_dict(); never mutated after publication

    def state(self) -> AuctionState:
        """Rebuild a private AuctionState from this snapshot."""
        return AuctionState.from_dict(self.data)

    def to_dict(self) -> dict:
        return {
            'version': self.version,
            'published_at': self.published_at,
            'state': deepcopy(self.data),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Snapshot':
        return cls(
            version=int(data['version']),
            published_at=float(data.get('published_at', 0.0)),
            data=dict(data['state']),
        )


class Subscription:
    """Ordered stream of snapshots for one reader.

    The buffer is bounded; when a reader falls behind the oldest snapshots are
    dropped. Order is preserved and the newest snapshot is never lost.
    """

    def __init__(self, store: 'AuctionStore', maxsize: int):
        self._store = store
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self.closed = False

    def _push(self, snapshot: Snapshot) -> None:
        while True:
            try:
                self._queue.put_nowait(snapshot)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass

    def get(self, timeout: Optional[float] = None) -> Optional[Snapshot]:
        """Next snapshot, or None if none arrived within timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[Snapshot]:
        """All snapshots buffered so far, oldest first."""
        snapshots = []
        while True:
            try:
                snapshots.append(self._queue.get_nowait())
            except queue.Empty:
                return snapshots

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._store._unsubscribe(self)

    def __enter__(self) -> 'Subscription':
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class AuctionStore:
    """Single source of truth for the auction aggregate."""

    def __init__(
        self,
        initial_state: Optional[AuctionState] = None,
        snapshot_file: Optional[SnapshotFile] = None,
        clock: Callable[[], float] = time.time,
        queue_size: int = config.SUBSCRIBER_QUEUE_SIZE
    ):
        """
        Initialize the store.

        Args:
            initial_state: Starting state (ignored when snapshot_file holds one)
            snapshot_file: Optional latest-snapshot persistence
            clock: Time source for publication stamps
            queue_size: Per-subscriber buffer size
        """
        self.snapshot_file = snapshot_file
        self.clock = clock
        self.queue_size = queue_size

        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)
        self._subscribers: List[Subscription] = []

        state, version = self._load(initial_state)
        self._state = state
        self._snapshot = Snapshot(version=version, published_at=clock(), data=state.to_dict())

    def _load(self, initial_state: Optional[AuctionState]):
        if self.snapshot_file is not None:
            saved = self.snapshot_file.load()
            if saved:
                try:
                    return AuctionState.from_dict(saved['state']), int(saved['version'])
                except (KeyError, ValueError, TypeError) as e:
                    logger.error(f"Ignoring malformed snapshot file: {e}")

        if initial_state is None:
            initial_state = create_initial_auction_state()
            logger.info("Created initial auction state")
        return initial_state, 0

    @property
    def version(self) -> int:
        return self._snapshot.version

    def snapshot(self) -> Snapshot:
        """Latest committed snapshot."""
        return self._snapshot

    def state(self) -> AuctionState:
        """Private copy of the committed state (mutating it changes nothing)."""
        with self._lock:
            return self._state.copy()

    def apply(self, command: Callable[[AuctionState], T]) -> T:
        """
        Run a command as one atomic read-modify-write.

        Args:
            command: Callable receiving a working copy of the latest state

        Returns:
            Whatever the command returned

        Raises:
            Any exception from command; nothing is committed in that case
        """
        with self._lock:
            working = self._state.copy()
            result = command(working)
            if working != self._state:
                self._commit(working)
            return result

    def _commit(self, state: AuctionState) -> None:
        self._state = state
        snapshot = Snapshot(
            version=self._snapshot.version + 1,
            published_at=self.clock(),
            data=state.to_dict()
        )
        self._snapshot = snapshot

        if self.snapshot_file is not None:
            try:
                self.snapshot_file.save(snapshot.to_dict())
            except OSError as e:
                logger.error(f"Failed to persist snapshot v{snapshot.version}: {e}")

        for subscription in self._subscribers:
            subscription._push(snapshot)
        self._changed.notify_all()

        logger.debug(
            f"Committed v{snapshot.version}: {state.status.value}, "
            f"cursor {state.current_player_index}, {len(self._subscribers)} subscribers"
        )

    def subscribe(self) -> Subscription:
        """
        Start receiving snapshots. The current snapshot is delivered first.

        Returns:
            Subscription; close() it when done
        """
        with self._lock:
            subscription = Subscription(self, maxsize=self.queue_size)
            subscription._push(self._snapshot)
            self._subscribers.append(subscription)
        logger.debug(f"Subscriber added ({len(self._subscribers)} total)")
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)
        logger.debug(f"Subscriber removed ({len(self._subscribers)} total)")

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def wait_for_version(self, after_version: int, timeout: Optional[float] = None) -> Snapshot:
        """
        Block until a snapshot newer than after_version exists (long-poll).

        Returns:
            Latest snapshot; older or equal to after_version on timeout
        """
        with self._changed:
            # A version behind the caller means the store restarted: answer at once
            self._changed.wait_for(lambda: self._snapshot.version != after_version, timeout)
            return self._snapshot
