import asyncio
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from notiontui.domain.events.api_events import (
    ApiCallDeferred,
    ApiCallFailed,
    ApiCallInitiated,
    ApiCallSucceeded,
)
from notiontui.domain.models.notion import SearchInput
from notiontui.infrastructure.notion.client import (
    NotionOperationError,
    RateLimitedNotionClient,
    extract_database_title,
    extract_page_title,
    parse_parent,
    parse_timestamp,
    to_search_response,
)
from notiontui.infrastructure.resilience.rate_limiter import TokenBucketRateLimiter

TOKEN = "secret_ClientTestToken12345678"


@pytest.fixture
def limiter():
    return TokenBucketRateLimiter(rate=1000, burst=100)


@pytest.fixture
def events():
    return []


@pytest.fixture
def client(mock_notion_api, limiter, events):
    return RateLimitedNotionClient(mock_notion_api, limiter, event_sink=events.append)


# --- Construction ---

@patch('notiontui.infrastructure.notion.client.AsyncClient')
def test_from_token_builds_sdk_client(mock_async_client, limiter):
    """The SDK client is created with the integration token as auth."""
    client = RateLimitedNotionClient.from_token(TOKEN, limiter)

    mock_async_client.assert_called_once_with(auth=TOKEN)
    assert client.limiter is limiter


@patch('notiontui.infrastructure.notion.client.AsyncClient')
def test_from_token_requires_token(mock_async_client, limiter):
    with pytest.raises(ValueError, match="Notion token is required"):
        RateLimitedNotionClient.from_token("", limiter)
    mock_async_client.assert_not_called()


def test_repr_hides_token(mock_notion_api, limiter):
    mock_notion_api.configure_mock(auth=TOKEN)
    client = RateLimitedNotionClient(mock_notion_api, limiter)

    assert TOKEN not in repr(client)


# --- Remote calls ---

@pytest.mark.asyncio
async def test_get_page_success(client, mock_notion_api, notion, events):
    mock_notion_api.pages.retrieve.return_value = notion.page("p1", "Roadmap")

    page = await client.get_page("p1")

    assert page["id"] == "p1"
    mock_notion_api.pages.retrieve.assert_awaited_once_with(page_id="p1")
    assert [type(e) for e in events] == [ApiCallInitiated, ApiCallSucceeded]
    assert events[1].operation == "get page"
    assert events[1].target_id == "p1"
    assert events[1].latency_ms >= 0


@pytest.mark.asyncio
async def test_failure_is_wrapped_with_operation_context(client, mock_notion_api, notion, events):
    sdk_error = notion.http_error(404)
    mock_notion_api.pages.retrieve.side_effect = sdk_error

    with pytest.raises(NotionOperationError) as exc_info:
        await client.get_page("p404")

    err = exc_info.value
    assert err.operation == "get page"
    assert err.target_id == "p404"
    assert str(err) == "get page p404"
    assert err.__cause__ is sdk_error
    assert isinstance(events[-1], ApiCallFailed)
    assert events[-1].error_type == "HTTPResponseError"


@pytest.mark.asyncio
async def test_cancellation_is_not_wrapped(client, mock_notion_api):
    mock_notion_api.pages.retrieve.side_effect = asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await client.get_page("p1")


@pytest.mark.asyncio
async def test_each_call_takes_a_token(mock_notion_api, notion):
    limiter = TokenBucketRateLimiter(rate=0.001, burst=3)
    client = RateLimitedNotionClient(mock_notion_api, limiter)
    mock_notion_api.blocks.retrieve.return_value = notion.blocks(1)[0]

    await client.get_block("b0")
    await client.get_block("b0")

    assert limiter.available_tokens == pytest.approx(1.0, abs=0.01)


@pytest.mark.asyncio
async def test_deferred_event_when_bucket_empty(mock_notion_api, notion, events):
    slept = []

    async def fake_sleep(seconds):
        slept.append(seconds)

    limiter = TokenBucketRateLimiter(rate=2, burst=1, sleep=fake_sleep)
    client = RateLimitedNotionClient(mock_notion_api, limiter, event_sink=events.append)
    mock_notion_api.pages.retrieve.return_value = notion.page("p1")

    await client.get_page("p1")
    await client.get_page("p1")

    deferred = [e for e in events if isinstance(e, ApiCallDeferred)]
    assert len(deferred) == 1
    assert deferred[0].wait_time_seconds > 0
    assert len(slept) == 1


@pytest.mark.asyncio
async def test_query_database_omits_unset_parameters(client, mock_notion_api, notion):
    mock_notion_api.databases.query.return_value = notion.listing([notion.page("p1")])

    await client.query_database("db1", page_size=5)

    mock_notion_api.databases.query.assert_awaited_once_with(database_id="db1", page_size=5)


@pytest.mark.asyncio
async def test_get_blocks_passes_cursor(client, mock_notion_api, notion):
    mock_notion_api.blocks.children.list.return_value = notion.listing(notion.blocks(2))

    response = await client.get_blocks("p1", start_cursor="c1", page_size=100)

    assert len(response["results"]) == 2
    mock_notion_api.blocks.children.list.assert_awaited_once_with(block_id="p1", start_cursor="c1", page_size=100)


@pytest.mark.asyncio
async def test_write_operations_forward_arguments(client, mock_notion_api):
    children = [{"object": "block", "type": "paragraph", "paragraph": {"rich_text": []}}]

    await client.update_page("p1", archived=True)
    await client.append_blocks("p1", children)
    await client.update_block("b1", paragraph={"rich_text": []})
    await client.delete_block("b1")

    mock_notion_api.pages.update.assert_awaited_once_with(page_id="p1", archived=True)
    mock_notion_api.blocks.children.append.assert_awaited_once_with(block_id="p1", children=children)
    mock_notion_api.blocks.update.assert_awaited_once_with(block_id="b1", paragraph={"rich_text": []})
    mock_notion_api.blocks.delete.assert_awaited_once_with(block_id="b1")


@pytest.mark.asyncio
async def test_aclose_closes_sdk_client(client, mock_notion_api):
    await client.aclose()

    mock_notion_api.aclose.assert_awaited_once()


# --- Search ---

@pytest.mark.asyncio
async def test_search_with_page_filter_searches_once(client, mock_notion_api, notion):
    mock_notion_api.search.return_value = notion.listing([notion.page("p1", "Roadmap")], next_cursor="next")

    response = await client.search(SearchInput(query="road", filter="page", page_size=20))

    mock_notion_api.search.assert_awaited_once_with(
        query="road", filter={"property": "object", "value": "page"}, page_size=20
    )
    assert [r.title for r in response.results] == ["Roadmap"]
    assert response.has_more is True
    assert response.next_cursor == "next"


@pytest.mark.asyncio
async def test_search_without_filter_merges_pages_then_databases(client, mock_notion_api, notion):
    mock_notion_api.search.side_effect = [
        notion.listing([notion.page("p1", "Roadmap")], next_cursor="page-cursor"),
        notion.listing([notion.database("d1", "Tasks")]),
    ]

    response = await client.search(SearchInput(query="", page_size=40))

    assert [(r.object_type, r.title) for r in response.results] == [("page", "Roadmap"), ("database", "Tasks")]
    assert response.has_more is True
    assert response.next_cursor == "page-cursor"
    db_call = mock_notion_api.search.await_args_list[1]
    assert db_call.kwargs["filter"] == {"property": "object", "value": "database"}
    assert db_call.kwargs["page_size"] == 20
    assert "query" not in db_call.kwargs


@pytest.mark.asyncio
async def test_database_search_uses_minimum_page_size(client, mock_notion_api, notion):
    mock_notion_api.search.side_effect = [notion.listing([]), notion.listing([])]

    await client.search(SearchInput(page_size=6))

    assert mock_notion_api.search.await_args_list[1].kwargs["page_size"] == 10


@pytest.mark.asyncio
async def test_database_search_failure_returns_pages(client, mock_notion_api, notion):
    mock_notion_api.search.side_effect = [
        notion.listing([notion.page("p1", "Roadmap")]),
        notion.http_error(500),
    ]

    response = await client.search(SearchInput(query="road"))

    assert [r.id for r in response.results] == ["p1"]


@pytest.mark.asyncio
async def test_page_search_failure_propagates(client, mock_notion_api, notion):
    mock_notion_api.search.side_effect = notion.http_error(401)

    with pytest.raises(NotionOperationError) as exc_info:
        await client.search(SearchInput(query="x"))

    assert exc_info.value.operation == "search workspace"
    assert mock_notion_api.search.await_count == 1


# --- Normalization helpers ---

def test_extract_titles(notion):
    assert extract_page_title(notion.page("p1", "Roadmap")) == "Roadmap"
    assert extract_page_title({"properties": {}}) == "Untitled"
    assert extract_database_title(notion.database("d1", "Tasks")) == "Tasks"
    assert extract_database_title({"title": []}) == "Untitled Database"


@pytest.mark.parametrize(
    "parent, expected",
    [
        ({"type": "workspace", "workspace": True}, ("workspace", "")),
        ({"type": "page_id", "page_id": "p9"}, ("page", "p9")),
        ({"type": "database_id", "database_id": "d9"}, ("database", "d9")),
        ({"type": "block_id", "block_id": "b9"}, ("block", "b9")),
        ({"type": "something_new"}, ("unknown", "")),
        (None, ("unknown", "")),
    ],
)
def test_parse_parent(parent, expected):
    assert parse_parent({"parent": parent}) == expected


def test_parse_timestamp():
    assert parse_timestamp("2024-05-01T12:30:00.000Z") == datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    assert parse_timestamp("") is None
    assert parse_timestamp("yesterday") is None


def test_search_response_skips_unknown_objects(notion):
    raw = notion.listing([notion.page("p1"), {"object": "user", "id": "u1"}, notion.database("d1")])

    response = to_search_response(raw)

    assert [r.id for r in response.results] == ["p1", "d1"]
    assert response.results[1].parent_type == "page"
    assert response.results[1].parent_id == "parent-page"
    assert response.has_more is False
    assert response.next_cursor == ""
