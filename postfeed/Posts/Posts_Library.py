# Posts_Library.py
# Description: Service layer that wires the posts API client, the local cache and the sync engine together.
#
# Imports
import logging
from typing import List, Optional
#
# 3rd-Party Imports
import httpx
#
# Local Imports
from ..Constants import CLI_APP_CLIENT_ID
from ..DB.Posts_DB import PostsDB, StoreError
from ..config import SyncSettings
from ..posts_api.client import PostsAPIClient
from ..posts_api.schemas import Post
from ..Sync.Post_Sync_Engine import PostSyncEngine, SyncResult
from ..Sync.Snapshot_Broadcaster import SnapshotSubscription
#
#######################################################################################################################
#
# Functions:

logger = logging.getLogger(__name__)


class PostsLibrary:
    """
    Owns one API client, one posts cache and one sync engine built from `SyncSettings`.

    Pass `db` to share an existing cache (it is then left open on close), or
    `transport` to route HTTP through a custom httpx transport.
    """

    def __init__(self,
                 settings: Optional[SyncSettings] = None,
                 client_id: str = CLI_APP_CLIENT_ID,
                 db: Optional[PostsDB] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or SyncSettings()
        self._owns_db = db is None
        if db is None:
            try:
                db = PostsDB(self.settings.posts_db_path, client_id=client_id)
            except StoreError as e:
                logger.error(f"PostsLibrary: could not open posts cache at {self.settings.posts_db_path}: {e}")
                raise
        self.db = db
        self.client = PostsAPIClient(
            base_url=self.settings.base_url,
            token=self.settings.token,
            timeout=self.settings.timeout,
            transport=transport,
        )
        self.engine = PostSyncEngine(
            db=self.db,
            fetch_page=self.client.fetch_page,
            page_size=self.settings.page_size,
            max_pages=self.settings.max_pages,
            close_transport=self.client.close,
        )
        logger.info(f"PostsLibrary ready: {self.settings.base_url} -> {self.db.db_path_str} "
                    f"(page_size={self.settings.page_size}, max_pages={self.settings.max_pages})")

    def get_cached_posts(self) -> List[Post]:
        return self.db.get_all_posts()

    def observe(self) -> SnapshotSubscription[List[Post]]:
        return self.engine.observe()

    async def load_pages(self, count: int) -> List[SyncResult]:
        """
        Loads up to `count` further pages, stopping early on a failure or when
        the engine reports there is nothing more to load.
        """
        results: List[SyncResult] = []
        for _ in range(max(count, 0)):
            result = await self.engine.load_next_page()
            results.append(result)
            if result.status != "loaded" or not result.cursor.has_more:
                break
        return results

    async def refresh(self) -> SyncResult:
        return await self.engine.refresh()

    async def aclose(self) -> None:
        await self.engine.aclose()
        if self._owns_db:
            self.db.close()

    async def __aenter__(self) -> "PostsLibrary":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False


def create_posts_library(settings: Optional[SyncSettings] = None, **kwargs) -> PostsLibrary:
    """Explicit factory: one call builds the whole sync stack."""
    return PostsLibrary(settings=settings, **kwargs)

#
# End of Posts_Library.py
#######################################################################################################################
