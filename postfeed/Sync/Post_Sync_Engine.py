# Post_Sync_Engine.py
# Description: Reconciles the remote paginated posts API with the local posts cache.
#
"""
Post_Sync_Engine.py
-------------------

`PostSyncEngine` fetches pages from the remote API, validates them, upserts the
accepted posts into `PostsDB` and moves its page cursor. Consumers never get
posts from the engine directly; they observe the cache.

State machine (per engine): IDLE, PAGINATING, REFRESHING. A load or refresh only
starts from IDLE, and every operation ends back in IDLE whether it succeeded,
failed or was cancelled. A call that arrives while another operation is in
flight is dropped (not queued), so there is never more than one fetch in
flight. Consumers re-trigger loads on every scroll event, which makes dropping
safe.

Cursor rules:
- `next_page` advances only after a fetched page produced at least one accepted post.
- `has_more` turns false on an undersized page or once the page ceiling is hit.
- A failed `load_next_page` leaves the cursor untouched, so the next call retries
  the same page.
- `refresh` clears the cache and resets the cursor before fetching page 1; if the
  fetch then fails the cache stays empty and the cursor stays reset.

Failures (`TransportError`, `StoreError`) are caught here, logged, returned as a
failed `SyncResult` and kept as `last_error` until `clear_error()` or the next
successful operation. Validation rejections never fail a page; they are kept as
`last_rejections`.
"""
# Imports
import asyncio
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence, Set, Tuple
#
# Local Imports
from ..Constants import DEFAULT_PAGE_SIZE, FIRST_PAGE
from ..DB.Posts_DB import PostsDB, StoreError
from ..posts_api.exceptions import TransportError
from ..posts_api.schemas import Post, RawPost
from ..Validation.Post_Validator import validate_posts
from .Page_Cursor import CursorState, PageCursor
from .Snapshot_Broadcaster import SnapshotSubscription
#
########################################################################################################################
#
# Functions:

logger = logging.getLogger(__name__)

FetchPage = Callable[[int, int], Awaitable[Sequence[RawPost]]]

OP_LOAD_NEXT_PAGE = "load_next_page"
OP_REFRESH = "refresh"


class SyncState(str, Enum):
    IDLE = "idle"
    PAGINATING = "paginating"
    REFRESHING = "refreshing"


@dataclass(frozen=True)
class SyncFailure:
    """A reported failure. `kind` is "transport", "store" or "unexpected"."""
    kind: str
    message: str
    operation: str
    page: int


@dataclass(frozen=True)
class SyncResult:
    """
    Outcome of one load/refresh call.

    `status` is "loaded", "skipped" (engine busy or no more pages; nothing was
    fetched) or "failed".
    """
    status: str
    operation: str
    cursor: CursorState
    page: Optional[int] = None
    received: int = 0
    accepted: int = 0
    rejections: Tuple[str, ...] = field(default_factory=tuple)
    error: Optional[SyncFailure] = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"


class PostSyncEngine:
    def __init__(self, db: PostsDB, fetch_page: FetchPage, page_size: int = DEFAULT_PAGE_SIZE,
                 max_pages: Optional[int] = None,
                 close_transport: Optional[Callable[[], Awaitable[None]]] = None):
        """
        Args:
            db: The posts cache. The engine writes to it and never keeps posts itself.
            fetch_page: Awaitable `(page, page_size) -> sequence of RawPost`, raising
                TransportError on failure (e.g. `PostsAPIClient.fetch_page`).
            page_size: Posts requested per page.
            max_pages: Page ceiling; None for no ceiling.
            close_transport: Awaited by `aclose()` when the engine owns the transport.
        """
        self.db = db
        self._fetch_page = fetch_page
        self._close_transport = close_transport
        self._lock = threading.Lock()  # Guards state transitions and every cursor mutation
        self._state = SyncState.IDLE
        self._cursor = PageCursor(page_size=page_size, max_pages=max_pages)
        self._last_error: Optional[SyncFailure] = None
        self._last_rejections: Tuple[str, ...] = ()
        self._tasks: Set[asyncio.Task] = set()

    # --- Inspection ---
    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._state is not SyncState.IDLE

    @property
    def cursor_state(self) -> CursorState:
        with self._lock:
            return self._cursor.state()

    @property
    def last_error(self) -> Optional[SyncFailure]:
        return self._last_error

    @property
    def last_rejections(self) -> Tuple[str, ...]:
        return self._last_rejections

    def clear_error(self) -> None:
        self._last_error = None

    # --- Observation ---
    def observe(self) -> SnapshotSubscription[List[Post]]:
        """Live list of cached posts: the current list first, then one after every committed write."""
        return self.db.observe(lambda snapshot: list(snapshot.posts))

    # --- Operations ---
    async def load_next_page(self) -> SyncResult:
        """Fetches the page at the cursor. A no-op if the engine is busy or there are no more pages."""
        with self._lock:
            if self._state is not SyncState.IDLE:
                logger.debug(f"load_next_page ignored: engine is {self._state.value}.")
                return self._skipped(OP_LOAD_NEXT_PAGE)
            if not self._cursor.has_more:
                logger.debug("load_next_page ignored: no more pages.")
                return self._skipped(OP_LOAD_NEXT_PAGE)
            self._state = SyncState.PAGINATING
            page, page_size = self._cursor.next_page, self._cursor.page_size

        try:
            return await self._sync_page(OP_LOAD_NEXT_PAGE, page, page_size)
        finally:
            self._set_idle()

    async def refresh(self) -> SyncResult:
        """Clears the cache, resets the cursor and loads page 1. A no-op if the engine is busy."""
        with self._lock:
            if self._state is not SyncState.IDLE:
                logger.debug(f"refresh ignored: engine is {self._state.value}.")
                return self._skipped(OP_REFRESH)
            self._state = SyncState.REFRESHING

        try:
            try:
                self.db.clear_all()
            except StoreError as e:
                with self._lock:
                    self._cursor.reset()
                return self._fail(OP_REFRESH, "store", e, FIRST_PAGE)
            with self._lock:
                self._cursor.reset()
                page_size = self._cursor.page_size
            logger.info("Cache cleared for refresh; loading page 1.")
            return await self._sync_page(OP_REFRESH, FIRST_PAGE, page_size)
        finally:
            self._set_idle()

    def request_next_page(self) -> asyncio.Task:
        """Schedules `load_next_page` on the running loop and returns the task without waiting."""
        return self._schedule(self.load_next_page(), OP_LOAD_NEXT_PAGE)

    def request_refresh(self) -> asyncio.Task:
        """Schedules `refresh` on the running loop and returns the task without waiting."""
        return self._schedule(self.refresh(), OP_REFRESH)

    async def aclose(self, cancel_pending: bool = False) -> None:
        """Waits for (or cancels) scheduled operations, then closes an owned transport."""
        tasks = list(self._tasks)
        if cancel_pending:
            for task in tasks:
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._close_transport is not None:
            close, self._close_transport = self._close_transport, None
            await close()

    # --- Internals ---
    async def _sync_page(self, operation: str, page: int, page_size: int) -> SyncResult:
        try:
            raw_posts = list(await self._fetch_page(page, page_size))
        except TransportError as e:
            return self._fail(operation, "transport", e, page)
        except asyncio.CancelledError:
            logger.info(f"{operation}: fetch of page {page} cancelled; cursor left at page {page}.")
            raise
        except Exception as e:
            logger.exception(f"{operation}: unexpected error fetching page {page}")
            return self._fail(operation, "unexpected", e, page)

        accepted, rejections = validate_posts(raw_posts)
        try:
            self.db.upsert_posts(accepted)
        except StoreError as e:
            return self._fail(operation, "store", e, page)

        # No await between the upsert and the cursor update: a cancellation can't split them.
        with self._lock:
            self._cursor.record_page(accepted=len(accepted), received=len(raw_posts))
            self._last_error = None
            self._last_rejections = tuple(rejections)
            cursor = self._cursor.state()

        logger.info(f"{operation}: page {page} stored {len(accepted)}/{len(raw_posts)} posts "
                    f"(next_page={cursor.next_page}, has_more={cursor.has_more}).")
        return SyncResult(status="loaded", operation=operation, cursor=cursor, page=page,
                          received=len(raw_posts), accepted=len(accepted), rejections=tuple(rejections))

    def _fail(self, operation: str, kind: str, error: Exception, page: int) -> SyncResult:
        failure = SyncFailure(kind=kind, message=str(error) or type(error).__name__, operation=operation, page=page)
        self._last_error = failure
        logger.error(f"{operation} failed on page {page} ({kind}): {failure.message}")
        return SyncResult(status="failed", operation=operation, cursor=self.cursor_state, page=page, error=failure)

    def _skipped(self, operation: str) -> SyncResult:
        # Caller holds the lock
        return SyncResult(status="skipped", operation=operation, cursor=self._cursor.state())

    def _set_idle(self) -> None:
        with self._lock:
            self._state = SyncState.IDLE

    def _schedule(self, coro, name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=f"postfeed-{name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

#
# End of Post_Sync_Engine.py
########################################################################################################################
