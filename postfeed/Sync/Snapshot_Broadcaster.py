# Snapshot_Broadcaster.py
# Description: Fans the cache's change stream out to any number of independent subscribers.
#
"""
Snapshot_Broadcaster.py
-----------------------

Every write to the post cache produces a full snapshot of the cached posts.
`SnapshotBroadcaster.publish` stamps it with a version number and hands it to
each subscriber.

- A new subscription starts with the current snapshot already pending, so its
  first `get()` returns immediately.
- Versions are assigned under the broadcaster lock and a subscription only
  accepts a strictly newer version, so no subscriber ever sees an older
  snapshot after a newer one.
- The broadcaster also tracks the newest version handed out to any subscriber.
  A subscriber whose pending snapshot is older than that (a publish on another
  thread has not reached it yet) gets the current snapshot instead.
- Each subscription holds at most one pending snapshot. A slow consumer skips
  intermediate snapshots and gets the latest one (conflation); nothing is lost
  since snapshots are full state.
- `publish` may run on any thread. Waiting subscribers are woken on their own
  event loop with `call_soon_threadsafe`.
"""
# Imports
import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Iterable, Optional, Tuple, TypeVar
#
# Local Imports
from ..posts_api.schemas import Post
#
########################################################################################################################
#
# Functions:

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PostSnapshot:
    """The complete ordered set of cached posts at one point in time."""
    version: int
    posts: Tuple[Post, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.posts)


class SubscriptionClosed(Exception):
    """Raised by `SnapshotSubscription.get()` once the subscription has been closed."""
    pass


class SnapshotSubscription(Generic[T]):
    """
    One subscriber's view of the snapshot stream.

    Use as an async iterator (`async for posts in sub:`), await `get()` for the
    next value, or `poll()` for a non-blocking check. `transform` maps each
    snapshot to the value handed out (defaults to the snapshot itself).
    """

    def __init__(self, broadcaster: "SnapshotBroadcaster", subscription_id: int,
                 transform: Optional[Callable[[PostSnapshot], T]] = None):
        self._broadcaster = broadcaster
        self.subscription_id = subscription_id
        self._transform = transform
        self._lock = threading.Lock()
        self._pending: Optional[PostSnapshot] = None
        self._last_delivered_version = -1
        self._wakeup = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._closed = False

    # --- Called by the broadcaster (holding its lock) ---
    def _offer(self, snapshot: PostSnapshot) -> None:
        with self._lock:
            if self._closed or snapshot.version <= self._last_delivered_version:
                return
            if self._pending is not None and snapshot.version <= self._pending.version:
                return
            self._pending = snapshot  # Replaces anything not yet consumed
            loop = self._loop
        self._wake(loop)

    def _wake(self, loop: Optional[asyncio.AbstractEventLoop]) -> None:
        if loop is None:
            return  # Nobody is waiting yet; the next get() sees the pending snapshot
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._wakeup.set()
            return
        try:
            loop.call_soon_threadsafe(self._wakeup.set)
        except RuntimeError:
            logger.debug(f"Subscription {self.subscription_id}: event loop already closed, wakeup dropped.")

    # --- Consumer side ---
    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def last_version(self) -> int:
        """Version of the last snapshot handed out (-1 before the first)."""
        return self._last_delivered_version

    def _take(self) -> Optional[PostSnapshot]:
        with self._lock:
            snapshot = self._pending
            self._pending = None
            if snapshot is None:
                self._wakeup.clear()
            else:
                snapshot = self._broadcaster._mark_delivered(snapshot)
                self._last_delivered_version = snapshot.version
            return snapshot

    def _deliver(self, snapshot: PostSnapshot) -> Any:
        return self._transform(snapshot) if self._transform else snapshot

    def poll(self) -> Optional[T]:
        """Returns the pending value without waiting, or None if nothing new arrived."""
        snapshot = self._take()
        return None if snapshot is None else self._deliver(snapshot)

    async def get(self) -> T:
        """Waits for the next snapshot newer than the last one handed out."""
        self._loop = asyncio.get_running_loop()
        while True:
            if self._closed:
                raise SubscriptionClosed(f"Subscription {self.subscription_id} is closed.")
            snapshot = self._take()
            if snapshot is not None:
                return self._deliver(snapshot)
            await self._wakeup.wait()

    def close(self) -> None:
        """Unsubscribes and wakes any pending `get()`."""
        self._broadcaster.unsubscribe(self)

    def _mark_closed(self) -> None:
        with self._lock:
            self._closed = True
            self._pending = None
            loop = self._loop
        self._wake(loop)

    def __aiter__(self) -> "SnapshotSubscription[T]":
        return self

    async def __anext__(self) -> T:
        try:
            return await self.get()
        except SubscriptionClosed:
            raise StopAsyncIteration

    async def __aenter__(self) -> "SnapshotSubscription[T]":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class SnapshotBroadcaster:
    """Publishes versioned PostSnapshots to every active subscription."""

    def __init__(self, initial_posts: Iterable[Post] = ()):
        self._lock = threading.RLock()
        self._versions = itertools.count()
        self._ids = itertools.count(1)
        self._subscribers: Dict[int, SnapshotSubscription] = {}
        self._current = PostSnapshot(version=next(self._versions), posts=tuple(initial_posts))
        self._delivered_lock = threading.Lock()
        self._delivered_version = -1

    @property
    def current(self) -> PostSnapshot:
        return self._current

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, transform: Optional[Callable[[PostSnapshot], T]] = None) -> SnapshotSubscription[T]:
        with self._lock:
            subscription = SnapshotSubscription(self, next(self._ids), transform)
            subscription._offer(self._current)
            self._subscribers[subscription.subscription_id] = subscription
        logger.debug(f"Subscription {subscription.subscription_id} opened at snapshot v{self._current.version}.")
        return subscription

    def _mark_delivered(self, snapshot: PostSnapshot) -> PostSnapshot:
        # _current is assigned before any subscriber is offered it, so it is never
        # older than a version already handed out.
        with self._delivered_lock:
            if snapshot.version < self._delivered_version:
                snapshot = self._current
            self._delivered_version = max(self._delivered_version, snapshot.version)
            return snapshot

    def unsubscribe(self, subscription: SnapshotSubscription) -> None:
        with self._lock:
            removed = self._subscribers.pop(subscription.subscription_id, None)
        subscription._mark_closed()
        if removed is not None:
            logger.debug(f"Subscription {subscription.subscription_id} closed.")

    def publish(self, posts: Iterable[Post]) -> PostSnapshot:
        """Creates the next snapshot from `posts` and offers it to every subscriber."""
        with self._lock:
            snapshot = PostSnapshot(version=next(self._versions), posts=tuple(posts))
            self._current = snapshot
            for subscription in list(self._subscribers.values()):
                subscription._offer(snapshot)
        logger.debug(f"Published snapshot v{snapshot.version} ({len(snapshot)} posts) "
                     f"to {len(self._subscribers)} subscriber(s).")
        return snapshot

    def close(self) -> None:
        """Closes every subscription."""
        with self._lock:
            subscriptions = list(self._subscribers.values())
        for subscription in subscriptions:
            self.unsubscribe(subscription)

#
# End of Snapshot_Broadcaster.py
########################################################################################################################
