"""Notion API Integration.

Wraps the official ``notion_client`` SDK behind a rate-limited client that
annotates failures with operation context.
Bounded Context: Remote Content Access
"""

from notiontui.infrastructure.notion.client import NotionOperationError, RateLimitedNotionClient

__all__ = ['NotionOperationError', 'RateLimitedNotionClient']
