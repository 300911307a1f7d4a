"""`request-retry` command implementations."""

import asyncio
import importlib
import os
import sys
from typing import Annotated, Any, Optional

import typer
from pydantic import ValidationError

from request_retry.adapters.dispatch import ASGIDispatcher
from request_retry.config import RetryConfig
from request_retry.core.processor import BatchResult, ReplayProcessor
from request_retry.exceptions import StorageError
from request_retry.files import build_blob_storage
from request_retry.models import RetryFilter
from request_retry.observability.logging import configure_logging
from request_retry.storage import SQLRetryStore, build_store

app = typer.Typer(
    add_completion=False,
    invoke_without_command=True,
    help="Replay captured failed requests (process, migrate).",
)


@app.callback()
def _main(ctx: typer.Context) -> None:
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


def load_app(path: str) -> Any:
    """Import an ASGI application given as ``module:attribute``.

    Raises:
        ValueError: If the path is malformed or the attribute is missing.
        ImportError: If the module cannot be imported.
    """
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Application must be given as 'module:attribute', got {path!r}")

    # Like uvicorn, resolve application modules from the working directory
    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    target: Any = importlib.import_module(module_name)
    for part in attribute.split("."):
        try:
            target = getattr(target, part)
        except AttributeError:
            raise ValueError(f"Module {module_name!r} has no attribute {attribute!r}") from None
    return target


def _load_config() -> RetryConfig:
    try:
        return RetryConfig.from_env()
    except (ValidationError, ValueError) as e:
        typer.echo(f"error: invalid configuration: {e}", err=True)
        raise typer.Exit(code=1) from e


def _build_processor(config: RetryConfig, app_path: str) -> ReplayProcessor:
    asgi_app = load_app(app_path)
    return ReplayProcessor(
        build_store(config),
        build_blob_storage(config),
        ASGIDispatcher(asgi_app),
        config=config,
    )


async def _run_batch(processor: ReplayProcessor, retry_filter: RetryFilter) -> BatchResult:
    try:
        return await processor.process(retry_filter, report=typer.echo)
    finally:
        if isinstance(processor.store, SQLRetryStore):
            await processor.store.dispose()


@app.command(name="process", help="Replay due retry records, optionally filtered.")
def process(
    ids: Annotated[
        Optional[list[int]],
        typer.Option("--id", help="Only process this record id (repeatable)."),
    ] = None,
    tag: Annotated[
        Optional[str],
        typer.Option("--tag", help="Only process records carrying this tag."),
    ] = None,
    fingerprint: Annotated[
        Optional[str],
        typer.Option("--fingerprint", help="Only process records with this fingerprint."),
    ] = None,
    app_path: Annotated[
        Optional[str],
        typer.Option(
            "--app",
            envvar="REQUEST_RETRY_APP",
            help="ASGI application to replay through, as module:attribute.",
        ),
    ] = None,
) -> None:
    config = _load_config()
    configure_logging(config.log_level, json_output=config.json_logs)

    if not app_path:
        typer.echo("error: process requires --app or REQUEST_RETRY_APP", err=True)
        raise typer.Exit(code=1)

    try:
        processor = _build_processor(config, app_path)
    except (ImportError, ValueError) as e:
        typer.echo(f"error: cannot load application {app_path!r}: {e}", err=True)
        raise typer.Exit(code=1) from e

    retry_filter = RetryFilter(ids=ids, tag=tag, fingerprint=fingerprint)
    try:
        asyncio.run(_run_batch(processor, retry_filter))
    except StorageError as e:
        typer.echo(f"error: {e.message}", err=True)
        raise typer.Exit(code=1) from e


@app.command(name="migrate", help="Create the retry table if it does not exist.")
def migrate() -> None:
    config = _load_config()
    configure_logging(config.log_level, json_output=config.json_logs)

    async def _create() -> None:
        store = build_store(config)
        try:
            await store.create_schema()
        finally:
            await store.dispose()

    try:
        asyncio.run(_create())
    except StorageError as e:
        typer.echo(f"error: {e.message}", err=True)
        raise typer.Exit(code=1) from e
    typer.echo(f"table {config.table_name} ready")


__all__ = ["app", "load_app"]
