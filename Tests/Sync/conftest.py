# Tests/Sync/conftest.py
#
# Imports
import asyncio
from typing import Dict, List, Optional
import pytest
#
# Local imports
from postfeed.DB.Posts_DB import PostsDB
from postfeed.posts_api.exceptions import TransportError
from postfeed.posts_api.schemas import RawPost
#
############################################################################################################################
#
# Functions:

def raw_page(first_id: int, count: int) -> List[RawPost]:
    return [RawPost(id=i, title=f"Title {i}", body=f"Body {i}") for i in range(first_id, first_id + count)]


class FakeRemote:
    """
    Stands in for PostsAPIClient.fetch_page.

    `pages` maps page number to its items; unknown pages are empty. Queue
    exceptions in `failures[page]` to make the next fetch of that page raise.
    Set `gate` to an asyncio.Event to hold every fetch until it is set.
    """

    def __init__(self, pages: Dict[int, List[RawPost]]):
        self.pages = pages
        self.failures: Dict[int, List[Exception]] = {}
        self.calls: List[tuple] = []
        self.gate: Optional[asyncio.Event] = None

    async def fetch_page(self, page: int, page_size: int) -> List[RawPost]:
        self.calls.append((page, page_size))
        if self.gate is not None:
            await self.gate.wait()
        pending = self.failures.get(page)
        if pending:
            raise pending.pop(0)
        return list(self.pages.get(page, []))


@pytest.fixture
def make_raw_page():
    return raw_page


@pytest.fixture
def make_remote():
    return FakeRemote


@pytest.fixture
def db():
    posts_db = PostsDB(":memory:", client_id="sync_test_client")
    yield posts_db
    posts_db.close()


@pytest.fixture
def remote_45():
    """Server holding 45 posts at page size 20: pages of 20, 20 and 5."""
    return FakeRemote({1: raw_page(1, 20), 2: raw_page(21, 20), 3: raw_page(41, 5)})


@pytest.fixture
def transport_error():
    return TransportError("connection reset")

#
# End of Sync conftest.py
########################################################################################################################
