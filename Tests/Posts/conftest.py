# Tests/Posts/conftest.py
#
# Imports
import httpx
import pytest
#
# Local imports
from postfeed.config import SyncSettings
#
############################################################################################################################
#
# Functions:

TOTAL_REMOTE_POSTS = 45


def posts_handler(request: httpx.Request) -> httpx.Response:
    """Serves /posts?_page=&_limit= over 45 posts, like the public test API."""
    page = int(request.url.params.get("_page", 1))
    limit = int(request.url.params.get("_limit", 10))
    start = (page - 1) * limit + 1
    end = min(start + limit, TOTAL_REMOTE_POSTS + 1)
    items = [{"userId": 1, "id": i, "title": f"Title {i}", "body": f"Body {i}"} for i in range(start, end)]
    return httpx.Response(200, json=items)


@pytest.fixture
def mock_transport():
    return httpx.MockTransport(posts_handler)


@pytest.fixture
def sync_settings():
    return SyncSettings(base_url="https://api.example.test", posts_db_path=":memory:")

#
# End of Posts conftest.py
########################################################################################################################
