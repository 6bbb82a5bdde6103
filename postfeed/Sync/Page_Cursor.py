# Page_Cursor.py
# Description: Pagination position and continuation flag for the sync engine.
#
# Imports
import math
from typing import Optional
#
# 3rd-Party Imports
from pydantic import BaseModel, ConfigDict
#
# Local Imports
from ..Constants import DEFAULT_PAGE_SIZE, FIRST_PAGE
#
########################################################################################################################
#
# Functions:

class CursorState(BaseModel):
    """Read-only copy of a PageCursor, safe to hand to consumers."""
    model_config = ConfigDict(frozen=True)

    next_page: int = FIRST_PAGE
    has_more: bool = True
    page_size: int = DEFAULT_PAGE_SIZE
    max_pages: Optional[int] = None


def max_pages_for(max_items: int, page_size: int) -> Optional[int]:
    """Page ceiling for a cap on cached items; 0 or less means no ceiling."""
    if max_items <= 0:
        return None
    return math.ceil(max_items / page_size)


class PageCursor:
    """
    Tracks which page to fetch next and whether more pages are believed to exist.

    Owned by exactly one PostSyncEngine, which mutates it only inside its
    critical section. Lives in memory only: a new process starts at page 1.
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE, max_pages: Optional[int] = None):
        if page_size < 1:
            raise ValueError(f"page_size must be at least 1, got {page_size}")
        if max_pages is not None and max_pages < 1:
            raise ValueError(f"max_pages must be at least 1 when set, got {max_pages}")
        self.page_size = page_size
        self.max_pages = max_pages
        self.next_page = FIRST_PAGE
        self.has_more = True

    def record_page(self, accepted: int, received: int) -> None:
        """
        Applies the outcome of a successful fetch of `next_page`.

        Args:
            accepted: Posts that passed validation and were stored.
            received: Everything the server returned for the page, accepted or not.
        """
        if accepted > 0:
            self.next_page += 1
        if received < self.page_size:
            self.has_more = False
        elif self.max_pages is not None and self.next_page > self.max_pages:
            self.has_more = False

    def reset(self) -> None:
        self.next_page = FIRST_PAGE
        self.has_more = True

    def state(self) -> CursorState:
        return CursorState(next_page=self.next_page, has_more=self.has_more,
                           page_size=self.page_size, max_pages=self.max_pages)

    def __repr__(self) -> str:
        return (f"PageCursor(next_page={self.next_page}, has_more={self.has_more}, "
                f"page_size={self.page_size}, max_pages={self.max_pages})")

#
# End of Page_Cursor.py
########################################################################################################################
