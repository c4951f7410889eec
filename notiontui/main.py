"""Main entry point for the notion-tui application.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
defines CLI commands, and delegates execution to the CommandHandler.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Any, Coroutine, Dict, Optional

import typer

from notiontui import __version__
from notiontui.core.command_handler import CommandHandler
from notiontui.core.services.page_service import PageService
from notiontui.domain.errors import ConfigurationError, InvalidCacheDirectoryError
from notiontui.domain.interfaces.user_interface import UserInterface
from notiontui.infrastructure.cache.page_cache import PageCache
from notiontui.infrastructure.cli.display import ConsoleDisplay
from notiontui.infrastructure.config.settings import Settings, load_settings
from notiontui.infrastructure.monitoring.logger_setup import setup_logging
from notiontui.infrastructure.notion.client import RateLimitedNotionClient
from notiontui.infrastructure.resilience.api_retry import RetryableOperation
from notiontui.infrastructure.resilience.rate_limiter import TokenBucketRateLimiter

logger = logging.getLogger(__name__)

EXIT_COMMAND_FAILED = 1
EXIT_BAD_CONFIG = 2

# --- Dependency Injection Container (Manual) ---

def create_dependencies(settings: Settings, ui: Optional[UserInterface] = None) -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root. The Notion client and PageService are
    only built when a token is configured; cache commands work without one.

    Raises:
        InvalidCacheDirectoryError: If the cache directory cannot be created.
    """
    logger.debug(f"Initializing application dependencies with {settings}")
    dependencies: Dict[str, Any] = {}

    dependencies['ui'] = ui or ConsoleDisplay()
    dependencies['cache_service'] = PageCache.open(settings.cache_dir)
    dependencies['rate_limiter'] = TokenBucketRateLimiter(
        rate=settings.rate_limit_per_second,
        burst=settings.rate_limit_burst,
    )
    dependencies['retry'] = RetryableOperation(settings.retry)

    dependencies['notion_client'] = None
    dependencies['page_service'] = None
    if settings.notion_token:
        dependencies['notion_client'] = RateLimitedNotionClient.from_token(
            settings.notion_token, dependencies['rate_limiter']
        )
        dependencies['page_service'] = PageService(
            client=dependencies['notion_client'],
            cache=dependencies['cache_service'],
            retry=dependencies['retry'],
            cache_ttl=settings.cache_ttl_seconds,
        )

    dependencies['command_handler'] = CommandHandler(
        page_service=dependencies['page_service'],
        cache_service=dependencies['cache_service'],
        ui=dependencies['ui'],
    )
    logger.debug("All dependencies initialized successfully.")
    return dependencies


# --- Typer App Definition ---
app = typer.Typer(
    name="notion-tui",
    help="notion-tui: read Notion pages, blocks and databases with local caching, rate limiting and retries.",
    add_completion=False,
)


def _fail(message: str, code: int) -> None:
    ConsoleDisplay().display_error(message)
    raise typer.Exit(code=code)


def _dependencies(ctx: typer.Context, require_token: bool = True) -> Dict[str, Any]:
    """Validates settings for the command and builds dependencies once per invocation."""
    state = ctx.ensure_object(dict)
    settings: Settings = state['settings']
    try:
        settings = settings.validate(require_token=require_token)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        _fail(f"Configuration error: {e}", EXIT_BAD_CONFIG)
    state['settings'] = settings

    if state.get('dependencies') is None:
        try:
            state['dependencies'] = create_dependencies(settings)
        except InvalidCacheDirectoryError as e:
            logger.error(f"Cache setup failed: {e}")
            _fail(f"Cache setup failed: {e}", EXIT_BAD_CONFIG)
    return state['dependencies']


# --- Helper for Running Async Commands ---

async def _run_and_close(dependencies: Dict[str, Any], coro: Coroutine[Any, Any, bool]) -> bool:
    try:
        return await coro
    finally:
        client = dependencies.get('notion_client')
        if client is not None:
            await client.aclose()


def run_async(dependencies: Dict[str, Any], coro: Coroutine[Any, Any, bool]) -> None:
    """Runs a handler coroutine and maps its outcome to the exit code."""
    succeeded = asyncio.run(_run_and_close(dependencies, coro))
    if not succeeded:
        raise typer.Exit(code=EXIT_COMMAND_FAILED)


# --- CLI Commands ---

@app.command()
def page(
    ctx: typer.Context,
    page_id: Annotated[str, typer.Argument(help="ID of the page to show.")],
    refresh: Annotated[bool, typer.Option("--refresh", "-r", help="Bypass the cache and re-fetch.")] = False,
):
    """Show a page's properties and its top-level blocks."""
    dependencies = _dependencies(ctx)
    handler: CommandHandler = dependencies['command_handler']
    run_async(dependencies, handler.handle_page(page_id, refresh=refresh))


@app.command()
def blocks(
    ctx: typer.Context,
    block_id: Annotated[str, typer.Argument(help="ID of the page or block whose children to list.")],
):
    """List every child block of a page or block."""
    dependencies = _dependencies(ctx)
    handler: CommandHandler = dependencies['command_handler']
    run_async(dependencies, handler.handle_blocks(block_id))


@app.command()
def query(
    ctx: typer.Context,
    database_id: Annotated[
        Optional[str], typer.Argument(help="Database to query; defaults to the configured default database.")
    ] = None,
    filter_json: Annotated[
        Optional[str], typer.Option("--filter", help="Notion filter object as JSON.")
    ] = None,
    page_size: Annotated[Optional[int], typer.Option("--page-size", min=1, max=100)] = None,
):
    """Query a database."""
    dependencies = _dependencies(ctx)
    settings: Settings = ctx.obj['settings']
    target = database_id or settings.default_database
    if not target:
        _fail("No database given and no default database configured.", EXIT_BAD_CONFIG)

    filter_obj = None
    if filter_json:
        try:
            filter_obj = json.loads(filter_json)
        except json.JSONDecodeError as e:
            raise typer.BadParameter(f"invalid JSON: {e}", param_hint="--filter") from e

    handler: CommandHandler = dependencies['command_handler']
    run_async(dependencies, handler.handle_query(target, filter=filter_obj, page_size=page_size))


@app.command()
def search(
    ctx: typer.Context,
    text: Annotated[str, typer.Argument(help="Text to search for; empty lists everything shared.")] = "",
    object_filter: Annotated[
        str, typer.Option("--filter", "-f", help="Restrict to 'page' or 'database'.")
    ] = "",
    page_size: Annotated[Optional[int], typer.Option("--page-size", min=1, max=100)] = None,
):
    """Search pages and databases shared with the integration."""
    dependencies = _dependencies(ctx)
    handler: CommandHandler = dependencies['command_handler']
    run_async(dependencies, handler.handle_search(text, filter=object_filter, page_size=page_size))


@app.command(name="cache-stats")
def cache_stats_command(ctx: typer.Context):
    """Show cache statistics."""
    dependencies = _dependencies(ctx, require_token=False)
    handler: CommandHandler = dependencies['command_handler']
    run_async(dependencies, handler.handle_cache_stats())


@app.command(name="clear-cache")
def clear_cache_command(ctx: typer.Context):
    """Remove every cached page and block list."""
    dependencies = _dependencies(ctx, require_token=False)
    handler: CommandHandler = dependencies['command_handler']
    run_async(dependencies, handler.handle_clear_cache())


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"notion-tui {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    token: Annotated[
        Optional[str], typer.Option("--token", help="Notion integration token (overrides config and env).")
    ] = None,
    config: Annotated[
        Optional[Path], typer.Option("--config", "-c", help="Path to a YAML config file.", dir_okay=False)
    ] = None,
    cache_dir: Annotated[
        Optional[Path], typer.Option("--cache-dir", help="Directory for cached pages.", file_okay=False)
    ] = None,
    debug: Annotated[bool, typer.Option("--debug", help="Enable debug logging.")] = False,
    version: Annotated[
        bool, typer.Option("--version", callback=_version_callback, is_eager=True, help="Show version and exit.")
    ] = False,
):
    """Loads configuration and sets up logging before any command runs."""
    overrides = {
        'notion_token': token,
        'cache_dir': cache_dir,
        'debug': True if debug else None,
    }
    try:
        settings = load_settings(config_file=config, overrides=overrides)
    except ConfigurationError as e:
        _fail(f"Configuration error: {e}", EXIT_BAD_CONFIG)

    setup_logging(
        log_level=logging.DEBUG if settings.debug else logging.WARNING,
        log_file=settings.log_file,
        secrets=[settings.notion_token],
    )
    logger.debug(f"Loaded {settings}")
    ctx.ensure_object(dict)['settings'] = settings


# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()
