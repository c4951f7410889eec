import logging
import os
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from notion_client.errors import HTTPResponseError
from typer.testing import CliRunner

from notiontui.infrastructure.cli.display import ConsoleDisplay

TEST_TOKEN = "secret_TestTokenValue1234567890"


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path: Path):
    """Keeps the developer's real config, .env and tokens out of every test."""
    for name in list(os.environ):
        if name.startswith("NOTION_TUI_") or name == "NOTION_TOKEN":
            monkeypatch.delenv(name, raising=False)
    home_config = tmp_path / "home-config" / "config.yaml"
    monkeypatch.setattr("notiontui.infrastructure.config.settings.DEFAULT_CONFIG_FILE", home_config)
    work_dir = tmp_path / "work"
    work_dir.mkdir()
    monkeypatch.chdir(work_dir)


@pytest.fixture(autouse=True)
def restore_root_logging():
    """setup_logging() replaces root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache"


def make_http_error(
    status: int,
    headers: Optional[Dict[str, str]] = None,
    message: Optional[str] = None,
) -> HTTPResponseError:
    """Builds a notion_client HTTP error as the SDK would raise it."""
    request = httpx.Request("GET", "https://api.notion.com/v1/pages/abc")
    response = httpx.Response(status, headers=headers or {}, request=request)
    return HTTPResponseError(response, message)


def make_page(page_id: str, title: str = "Test Page") -> Dict[str, Any]:
    return {
        "object": "page",
        "id": page_id,
        "last_edited_time": "2024-05-01T12:30:00.000Z",
        "parent": {"type": "workspace", "workspace": True},
        "properties": {
            "Name": {"id": "title", "type": "title", "title": [{"plain_text": title}]},
        },
    }


def make_database(database_id: str, title: str = "Tasks") -> Dict[str, Any]:
    return {
        "object": "database",
        "id": database_id,
        "last_edited_time": "2024-05-02T08:00:00.000Z",
        "parent": {"type": "page_id", "page_id": "parent-page"},
        "title": [{"plain_text": title}],
    }


def make_blocks(count: int, prefix: str = "b") -> List[Dict[str, Any]]:
    return [{"object": "block", "id": f"{prefix}{i}", "type": "paragraph"} for i in range(count)]


def make_list_response(results: List[Dict[str, Any]], next_cursor: Optional[str] = None) -> Dict[str, Any]:
    return {"object": "list", "results": results, "has_more": next_cursor is not None, "next_cursor": next_cursor}


@pytest.fixture
def mock_notion_api():
    """A stand-in for notion_client.AsyncClient with async endpoint methods."""
    api = MagicMock()
    api.pages.retrieve = AsyncMock()
    api.pages.update = AsyncMock()
    api.databases.query = AsyncMock()
    api.blocks.retrieve = AsyncMock()
    api.blocks.update = AsyncMock()
    api.blocks.delete = AsyncMock()
    api.blocks.children.list = AsyncMock()
    api.blocks.children.append = AsyncMock()
    api.search = AsyncMock()
    api.aclose = AsyncMock()
    return api


@pytest.fixture
def mock_console_display(mocker):
    """Mocks the ConsoleDisplay to capture output easily.

    Patches the ConsoleDisplay where main.py builds it.
    """
    mock = mocker.MagicMock(spec=ConsoleDisplay)
    mocker.patch('notiontui.main.ConsoleDisplay', return_value=mock)
    return mock


@pytest.fixture
def notion():
    """Builders for raw Notion API payloads and SDK errors."""
    return SimpleNamespace(
        page=make_page,
        database=make_database,
        blocks=make_blocks,
        listing=make_list_response,
        http_error=make_http_error,
        token=TEST_TOKEN,
    )
