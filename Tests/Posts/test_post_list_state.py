# test_post_list_state.py
#
# Tests for PostListStateHolder: flags, error text and the posts it mirrors.
#
# Imports
import asyncio
from unittest.mock import AsyncMock
import pytest
#
# Local Imports
from postfeed.DB.Posts_DB import PostsDB
from postfeed.posts_api.exceptions import APIConnectionError
from postfeed.posts_api.schemas import Post, RawPost
from postfeed.Posts.Post_List_State import PostListStateHolder, PostListUiState
from postfeed.Sync.Post_Sync_Engine import PostSyncEngine, SyncState
#
#######################################################################################################################
#
# Functions:

pytestmark = pytest.mark.asyncio


def page_of(first_id, count):
    return [RawPost(id=i, title=f"Title {i}", body=f"Body {i}") for i in range(first_id, first_id + count)]


@pytest.fixture
def db():
    posts_db = PostsDB(":memory:", client_id="ui_state_test")
    yield posts_db
    posts_db.close()


def make_holder(db, fetch, page_size=20):
    engine = PostSyncEngine(db, fetch, page_size=page_size)
    return PostListStateHolder(engine)


async def test_initial_state():
    assert PostListUiState() == PostListUiState(
        is_loading=False, is_refreshing=False, is_paginating=False, posts=(), error=None, has_more_data=True)


async def test_start_observes_and_loads_first_page(db):
    fetch = AsyncMock(side_effect=lambda page, size: page_of((page - 1) * size + 1, size))
    holder = make_holder(db, fetch)

    await holder.start()
    state = holder.state

    assert [p.id for p in state.posts] == list(range(1, 21))
    assert not state.is_loading
    assert not state.is_paginating
    assert state.has_more_data
    await holder.aclose()


async def test_start_without_loading_shows_cached_posts(db):
    holder = make_holder(db, AsyncMock(return_value=[]))
    db.upsert_posts([Post(id=5, title="cached", body="offline")])

    await holder.start(load_first_page=False)

    assert [p.title for p in holder.state.posts] == ["cached"]
    assert not holder.state.is_loading
    await holder.aclose()


async def test_load_more_failure_sets_error(db):
    fetch = AsyncMock(side_effect=APIConnectionError("Network error"))
    holder = make_holder(db, fetch)

    result = await holder.load_more()

    assert result.status == "failed"
    assert holder.state.error == "Failed to load more: Network error"
    assert not holder.state.is_paginating


async def test_refresh_failure_sets_error(db):
    fetch = AsyncMock(side_effect=APIConnectionError("offline"))
    holder = make_holder(db, fetch)

    await holder.refresh()

    assert holder.state.error == "Failed to refresh: offline"
    assert not holder.state.is_refreshing


async def test_clear_error(db):
    holder = make_holder(db, AsyncMock(side_effect=APIConnectionError("Error")))
    await holder.load_more()
    assert holder.state.error is not None

    holder.clear_error()

    assert holder.state.error is None
    assert holder.engine.last_error is None


async def test_load_more_ignored_while_paginating(db):
    gate = asyncio.Event()

    async def slow_fetch(page, size):
        await gate.wait()
        return page_of(1, size)

    fetch = AsyncMock(side_effect=slow_fetch)
    holder = make_holder(db, fetch)

    first = asyncio.create_task(holder.load_more())
    while holder.engine.state is not SyncState.PAGINATING:
        await asyncio.sleep(0)
    assert holder.state.is_paginating

    assert await holder.load_more() is None
    gate.set()
    await first

    assert fetch.await_count == 1


async def test_refresh_during_load_keeps_paginating_flag(db):
    gate = asyncio.Event()

    async def slow_fetch(page, size):
        await gate.wait()
        return page_of(1, size)

    holder = make_holder(db, AsyncMock(side_effect=slow_fetch))
    load = asyncio.create_task(holder.load_more())
    while holder.engine.state is not SyncState.PAGINATING:
        await asyncio.sleep(0)

    result = await holder.refresh()

    assert result.status == "skipped"
    assert holder.state.is_paginating is True
    assert holder.state.is_refreshing is False

    gate.set()
    await load
    assert holder.state.is_paginating is False
    assert [p.id for p in db.get_all_posts()] == list(range(1, 21))


async def test_skipped_refresh_keeps_existing_error(db):
    gate = asyncio.Event()

    async def slow_fetch(page, size):
        await gate.wait()
        return page_of(1, 5)

    holder = make_holder(db, AsyncMock(side_effect=slow_fetch))
    load = asyncio.create_task(holder.load_more())
    while holder.engine.state is not SyncState.PAGINATING:
        await asyncio.sleep(0)
    holder._update(error="Failed to load more: earlier")
    seen = []
    holder.add_listener(seen.append)

    await holder.refresh()

    assert holder.state.error == "Failed to load more: earlier"
    assert all(not s.is_refreshing for s in seen)
    gate.set()
    await load
    assert holder.state.has_more_data is False


async def test_load_more_during_refresh_keeps_refreshing_flag(db):
    gate = asyncio.Event()

    async def slow_fetch(page, size):
        await gate.wait()
        return page_of(1, size)

    holder = make_holder(db, AsyncMock(side_effect=slow_fetch))
    refresh = asyncio.create_task(holder.refresh())
    while holder.engine.state is not SyncState.REFRESHING:
        await asyncio.sleep(0)

    assert await holder.load_more() is None
    assert holder.state.is_refreshing is True
    assert holder.state.is_paginating is False

    gate.set()
    result = await refresh
    assert result.status == "loaded"
    assert holder.state.is_refreshing is False


async def test_load_more_ignored_when_no_more_data(db):
    fetch = AsyncMock(return_value=page_of(1, 5))
    holder = make_holder(db, fetch)

    await holder.load_more()
    assert holder.state.has_more_data is False

    assert await holder.load_more() is None
    assert fetch.await_count == 1


async def test_refresh_restores_has_more_data(db):
    fetch = AsyncMock(side_effect=lambda page, size: page_of(1, 5) if page == 1 else [])
    holder = make_holder(db, fetch, page_size=5)
    await holder.start(load_first_page=False)
    await holder.load_more()
    await holder.load_more()
    assert holder.state.has_more_data is False

    fetch.side_effect = lambda page, size: page_of(1, 5)
    await holder.refresh()

    assert holder.state.has_more_data is True
    assert [p.id for p in holder.state.posts] == [1, 2, 3, 4, 5]
    await holder.aclose()


async def test_listeners_receive_every_state(db):
    fetch = AsyncMock(side_effect=APIConnectionError("down"))
    holder = make_holder(db, fetch)
    states = []
    remove = holder.add_listener(states.append)

    await holder.load_more()
    remove()
    holder.clear_error()

    assert states[0].is_paginating is True
    assert states[-1].error == "Failed to load more: down"
    assert all(isinstance(s, PostListUiState) for s in states)

#
# End of test_post_list_state.py
#######################################################################################################################
