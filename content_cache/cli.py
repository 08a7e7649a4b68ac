"""Command line interface for the content cache."""

import asyncio
import json
from functools import wraps
from typing import Any, Dict, Optional

import click
import structlog

from content_cache.cache.service import CacheService
from content_cache.config import CacheConfig
from content_cache.errors import BaseError
from content_cache.logging_config import configure_logging
from content_cache.metrics import start_metrics_server
from content_cache.storage.sqlite_store import SQLiteCacheStore, SQLiteConfig

logger = structlog.get_logger(__name__)


def async_command(f):
    """Decorator to run async Click commands."""

    @wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))

    return wrapper


def build_service(config: CacheConfig, with_generator: bool = False) -> CacheService:
    """Construct the cache service for one CLI invocation.

    Args:
        config: Cache configuration
        with_generator: Whether to attach the OpenAI generator
    """
    store = SQLiteCacheStore(SQLiteConfig(db_path=config.db_path))
    generator = None
    if with_generator:
        from content_cache.generation import OpenAIBlogGenerator

        generator = OpenAIBlogGenerator(api_key=config.openai_api_key, model=config.openai_model)
    return CacheService(store, generator=generator, config=config)


def generation_options(f):
    """Attach the options describing one generation request."""
    options = [
        click.option("--domain", default="default", help="Domain the content belongs to"),
        click.option("--topic", required=True, help="Article topic"),
        click.option("--keywords", required=True, help="Comma separated keywords"),
        click.option("--audience", "target_audience", default=None, help="Target audience"),
        click.option("--tone", default=None, help="Writing tone"),
        click.option("--word-count", type=int, default=None, help="Target word count"),
        click.option("--include-images/--no-include-images", default=False),
        click.option("--seo-optimized/--no-seo-optimized", default=False),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def _params(**kwargs: Any) -> Dict[str, Any]:
    return {key: value for key, value in kwargs.items() if value is not None}


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.option(
    "--db-path",
    envvar="CONTENT_CACHE_DB_PATH",
    default=None,
    help="Path to SQLite database",
    type=click.Path(),
)
@click.option("--log-level", default="INFO", help="Minimum log level")
@click.pass_context
def cli(ctx: click.Context, db_path: Optional[str], log_level: str):
    """Content cache CLI."""
    configure_logging(log_level)
    try:
        config = CacheConfig.from_env()
    except BaseError as e:
        logger.error("config_load_failed", error=e.message, details=e.details)
        raise click.ClickException(e.message) from e
    if db_path:
        config.db_path = db_path
    ctx.obj = config


@cli.command()
@click.pass_obj
@async_command
async def stats(config: CacheConfig) -> None:
    """Show total, active and expired entry counts."""
    result = await build_service(config).get_cache_stats()
    if result is None:
        raise click.ClickException("Cache store unavailable")
    _echo_json(result.model_dump(mode="json", by_alias=True))


@cli.command()
@click.pass_obj
@async_command
async def cleanup(config: CacheConfig) -> None:
    """Delete expired cache entries."""
    purged = await build_service(config).cleanup_expired_cache()
    if purged is None:
        raise click.ClickException("Cache store unavailable")
    click.echo(f"Purged {purged} expired entries")


@cli.command()
@generation_options
@click.pass_obj
@async_command
async def invalidate(config: CacheConfig, **options: Any) -> None:
    """Delete the cached entry for a set of generation parameters."""
    service = build_service(config)
    params = _params(**options)
    if not await service.invalidate_cache(params):
        raise click.ClickException("Cache store unavailable")
    click.echo(f"Invalidated {service.generate_cache_key(params)}")


@cli.command("invalidate-domain")
@click.argument("domain")
@click.option("--owner", "owner_id", default=None, help="Only delete entries stored for this owner")
@click.pass_obj
@async_command
async def invalidate_domain(config: CacheConfig, domain: str, owner_id: Optional[str]) -> None:
    """Delete every cached entry for DOMAIN."""
    deleted = await build_service(config).invalidate_domain(domain, owner_id=owner_id)
    if deleted is None:
        raise click.ClickException("Cache store unavailable")
    click.echo(f"Invalidated {deleted} entries for {domain}")


@cli.command()
@click.argument("owner_id")
@click.argument("domain")
@click.pass_obj
@async_command
async def latest(config: CacheConfig, owner_id: str, domain: str) -> None:
    """Show the latest entry for OWNER_ID and DOMAIN."""
    entry = await build_service(config).get_latest_user_content(owner_id, domain)
    if entry is None:
        click.echo("No existing content found")
        return
    _echo_json(entry.model_dump(mode="json", by_alias=True))


@cli.command()
@generation_options
@click.option("--owner", "owner_id", default=None, help="Owner the content is stored for")
@click.pass_obj
@async_command
async def generate(config: CacheConfig, owner_id: Optional[str], **options: Any) -> None:
    """Serve an article from cache or generate it with OpenAI."""
    try:
        service = build_service(config, with_generator=True)
        result = await service.get_or_generate(_params(**options), owner_id=owner_id)
    except BaseError as e:
        logger.error("generate_command_failed", error=e.message, category=e.category.value)
        raise click.ClickException(e.message) from e
    _echo_json(
        {
            "cached": result.cached,
            "persisted": result.persisted,
            "entry": result.entry.model_dump(mode="json", by_alias=True),
        }
    )


@cli.command()
@click.option("--host", default=None, help="Host to bind")
@click.option("--port", type=int, default=None, help="Port to bind")
@click.option("--metrics-port", type=int, default=None, help="Expose Prometheus metrics on this port")
@click.pass_obj
def serve(
    config: CacheConfig, host: Optional[str], port: Optional[int], metrics_port: Optional[int]
) -> None:
    """Run the HTTP API."""
    from content_cache.api import create_app

    if metrics_port:
        start_metrics_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    app = create_app(build_service(config, with_generator=True))
    logger.info("api_server_starting", host=host or config.api_host, port=port or config.api_port)
    app.run(host=host or config.api_host, port=port or config.api_port)


if __name__ == "__main__":
    cli()
