"""
Command-line interface for the transfer enrichment pipeline.
Usage examples:
  python -m src.apps.cli enrich --season 2024
  python -m src.apps.cli enrich --season 2024 --resume-from 7f3c... --no-cache
  python -m src.apps.cli retry --season 2024 --max-retries 3
  python -m src.apps.cli stats --include-failed
  python -m src.apps.cli quota
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional

import click

from src.common.logging_utils import configure_logging
from src.core.config import ConfigurationError, Settings
from src.database.manager import DatabaseManager
from src.enrichment.runner import EnrichmentRunner


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


async def _with_runner(
    cfg: Settings, action: Callable[[EnrichmentRunner], Awaitable[dict]]
) -> dict:
    db = DatabaseManager(cfg)
    await db.initialize_async()
    runner = EnrichmentRunner(cfg, db)
    try:
        return await action(runner)
    finally:
        await runner.close()
        await db.close()


def _run(ctx: click.Context, action: Callable[[EnrichmentRunner], Awaitable[dict]]) -> dict:
    cfg: Settings = ctx.obj["settings"]
    try:
        cfg.require_enrichment_config()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    return asyncio.run(_with_runner(cfg, action))


@click.group()
@click.option("--log-level", default=None, help="Overrides LOG_LEVEL")
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str]):
    cfg = Settings()
    configure_logging(service="enrichment", level=log_level or cfg.log_level, fmt=cfg.log_format)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = cfg


@cli.command()
@click.option("--season", type=int, required=True)
@click.option("--resume-from", "resume_from_id", default=None, help="Skip transfers up to and including this id")
@click.option("--cache/--no-cache", "use_cache", default=True)
@click.option("--with-retry", is_flag=True, help="Run a retry pass when failures occurred")
@click.pass_context
def enrich(ctx: click.Context, season: int, resume_from_id: Optional[str], use_cache: bool, with_retry: bool):
    """Enrich all open transfers of a season"""
    if with_retry:
        result = _run(ctx, lambda r: r.enrich_and_retry(season, resume_from_id, use_cache=use_cache))
    else:
        result = _run(ctx, lambda r: r.enrich(season, resume_from_id, use_cache))
    _echo_json(result)
    raise SystemExit(0 if result["success"] else 1)


@cli.command()
@click.option("--season", type=int, required=True)
@click.option("--max-retries", type=int, default=None)
@click.pass_context
def retry(ctx: click.Context, season: int, max_retries: Optional[int]):
    """Retry failed transfers below the retry limit"""
    result = _run(ctx, lambda r: r.retry(season, max_retries))
    _echo_json(result)
    raise SystemExit(0 if result["success"] else 1)


@cli.command()
@click.option("--season", type=int, default=None)
@click.option("--include-failed", is_flag=True)
@click.pass_context
def stats(ctx: click.Context, season: Optional[int], include_failed: bool):
    """Show enrichment statistics"""
    result = _run(ctx, lambda r: r.stats(include_failed=include_failed, season=season))
    _echo_json(result)
    raise SystemExit(0 if result["success"] else 1)


@cli.command()
@click.option("--probe/--no-probe", default=True, help="Query the API /status endpoint")
@click.pass_context
def quota(ctx: click.Context, probe: bool):
    """Show local quota state and the API account status"""
    _echo_json(_run(ctx, lambda r: r.quota_status(probe_api=probe)))


@cli.command(name="init-db")
@click.pass_context
def init_db(ctx: click.Context):
    """Create the transfers, players, enrichment_logs and player_cache tables"""
    db = DatabaseManager(ctx.obj["settings"])
    db.initialize_sync()
    try:
        db.create_tables()
    finally:
        asyncio.run(db.close())
    click.echo("Database tables created.")


@cli.command()
@click.option("--host", default=None)
@click.option("--port", type=int, default=None)
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]):
    """Run the enrichment API with uvicorn"""
    import uvicorn

    cfg: Settings = ctx.obj["settings"]
    uvicorn.run(
        "src.api.main:create_app",
        factory=True,
        host=host or cfg.api_host,
        port=port or cfg.api_port,
        log_level=cfg.log_level.lower(),
    )


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
