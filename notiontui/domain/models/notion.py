"""Normalized views over Notion API objects.

The SDK hands back raw JSON dicts; search results and loaded pages are
reduced to these small structures before reaching the UI.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from notiontui.domain.models.common import BlockList, NotionObject

SEARCH_FILTER_PAGE = "page"
SEARCH_FILTER_DATABASE = "database"
SEARCH_FILTERS = (SEARCH_FILTER_PAGE, SEARCH_FILTER_DATABASE)

# When searching both object types the database query gets half the page
# size, but never less than this.
MIN_DATABASE_SEARCH_PAGE_SIZE = 10
DEFAULT_SEARCH_PAGE_SIZE = 20


@dataclass
class SearchInput:
    """Parameters for a workspace search.

    ``filter`` is "page", "database" or empty for both.
    """

    query: str = ""
    filter: str = ""
    page_size: int = DEFAULT_SEARCH_PAGE_SIZE
    start_cursor: str = ""


@dataclass
class SearchResult:
    id: str
    title: str
    object_type: str
    last_edited: Optional[datetime] = None
    parent_type: str = "unknown"
    parent_id: str = ""


@dataclass
class SearchResponse:
    results: List[SearchResult] = field(default_factory=list)
    has_more: bool = False
    next_cursor: str = ""


@dataclass
class PageContent:
    """A page's metadata together with its top-level child blocks."""

    page: NotionObject
    blocks: BlockList = field(default_factory=list)
