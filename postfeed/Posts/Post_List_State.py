# Post_List_State.py
# Description: Non-rendering state holder for a scrolling post list, driven by the sync engine.
#
# Imports
import asyncio
import logging
import threading
from typing import Callable, List, Optional, Tuple
#
# 3rd-Party Imports
from pydantic import BaseModel, ConfigDict
#
# Local Imports
from ..posts_api.schemas import Post
from ..Sync.Post_Sync_Engine import PostSyncEngine, SyncResult, SyncState
from ..Sync.Snapshot_Broadcaster import SnapshotSubscription
#
#######################################################################################################################
#
# Functions:

logger = logging.getLogger(__name__)

StateListener = Callable[["PostListUiState"], None]


class PostListUiState(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_loading: bool = False
    is_refreshing: bool = False
    is_paginating: bool = False
    posts: Tuple[Post, ...] = ()
    error: Optional[str] = None
    has_more_data: bool = True


class PostListStateHolder:
    """
    Everything a list screen needs to render, kept as one immutable `PostListUiState`.

    Posts come only from the engine's observation of the cache; `load_more()` and
    `refresh()` just trigger the engine and fold its result (flags, error text)
    into the state. `is_paginating` and `is_refreshing` follow `engine.state`, so a
    call the engine skips because another operation is running leaves the state
    as it was. Listeners are called with every new state.
    """

    def __init__(self, engine: PostSyncEngine):
        self.engine = engine
        self._state = PostListUiState(has_more_data=engine.cursor_state.has_more)
        self._state_lock = threading.Lock()
        self._listeners: List[StateListener] = []
        self._subscription: Optional[SnapshotSubscription[List[Post]]] = None
        self._observer_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> PostListUiState:
        return self._state

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Registers `listener`; returns a function that removes it again."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return remove

    def _update(self, **changes) -> PostListUiState:
        with self._state_lock:
            new_state = self._state.model_copy(update=changes)
            self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception:
                logger.exception("PostListStateHolder listener raised; continuing.")
        return new_state

    # --- Lifecycle ---
    async def start(self, load_first_page: bool = True) -> None:
        """Starts observing the cache and, by default, loads the first page."""
        if self._subscription is None:
            self._subscription = self.engine.observe()
            self._update(is_loading=True)
            self._pull_posts()
            self._observer_task = asyncio.get_running_loop().create_task(
                self._observe_posts(), name="postfeed-list-observer")
        if load_first_page:
            await self.load_more()
        elif self._state.is_loading:
            self._update(is_loading=False)

    async def _observe_posts(self) -> None:
        async for posts in self._subscription:
            self._update(posts=tuple(posts), is_loading=False)

    def _pull_posts(self) -> None:
        if self._subscription is None:
            return
        posts = self._subscription.poll()
        if posts is not None:
            self._update(posts=tuple(posts))

    async def aclose(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
        if self._observer_task is not None:
            self._observer_task.cancel()
            try:
                await self._observer_task
            except asyncio.CancelledError:
                pass
        self._subscription = None
        self._observer_task = None

    # --- Actions ---
    async def load_more(self) -> Optional[SyncResult]:
        """Loads the next page unless the engine is busy or the list is exhausted."""
        if self.engine.is_busy or not self._state.has_more_data:
            return None
        self._update(is_paginating=True, error=None)
        result = await self.engine.load_next_page()
        self._apply_result(result, "Failed to load more")
        return result

    async def refresh(self) -> SyncResult:
        if not self.engine.is_busy:
            self._update(is_refreshing=True, error=None, has_more_data=True)
        result = await self.engine.refresh()
        self._apply_result(result, "Failed to refresh")
        return result

    def clear_error(self) -> None:
        self.engine.clear_error()
        self._update(error=None)

    def _apply_result(self, result: SyncResult, error_prefix: str) -> None:
        self._pull_posts()
        engine_state = self.engine.state
        changes = {
            "is_paginating": engine_state is SyncState.PAGINATING,
            "is_refreshing": engine_state is SyncState.REFRESHING,
        }
        if result.status == "skipped" and engine_state is not SyncState.IDLE:
            # Another operation owns the flags and will apply its own result.
            self._update(**changes)
            return
        changes["is_loading"] = False
        changes["has_more_data"] = result.cursor.has_more
        if result.status == "failed" and result.error is not None:
            changes["error"] = f"{error_prefix}: {result.error.message}"
        self._update(**changes)

#
# End of Post_List_State.py
#######################################################################################################################
