"""CLI entrypoint."""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

import click
from rich.console import Console
from rich.table import Table

from xmlaggregator.config import Settings, load_settings
from xmlaggregator.container import ApplicationContainer, create_container
from xmlaggregator.errors import AggregatorError
from xmlaggregator.fetch.fetcher import Fetcher
from xmlaggregator.lib.json import dumps, dumps_pretty
from xmlaggregator.lib.log import configure_logging
from xmlaggregator.paths import DEFAULT_SOURCES_PATH
from xmlaggregator.pipeline.models import RunOptions
from xmlaggregator.pipeline.service import RunResult
from xmlaggregator.sources.descriptor import load_descriptors
from xmlaggregator.sources.provider import StaticSourceProvider
from xmlaggregator.version import __version__
from xmlaggregator.xml.validation import basic_info, extract_metadata, validate

T = TypeVar("T")


@dataclass
class AppEnv:
    console: Console
    sources_path: Path
    settings: Settings


def _fail(message: str) -> None:
    raise click.ClickException(message)


def _load_settings() -> Settings:
    try:
        return load_settings()
    except AggregatorError as exc:
        raise click.ClickException(str(exc)) from exc


def _container(env: AppEnv, *, with_sources: bool) -> ApplicationContainer:
    provider = None
    if with_sources:
        try:
            provider = StaticSourceProvider(load_descriptors(env.sources_path))
        except AggregatorError as exc:
            raise click.ClickException(str(exc)) from exc
    return create_container(provider=provider, settings=env.settings)


def _run_async(factory: Callable[[], Awaitable[T]], *, fetcher: Fetcher | None = None) -> T:
    async def _main() -> T:
        try:
            return await factory()
        finally:
            if fetcher is not None:
                await fetcher.aclose()

    return asyncio.run(_main())


def _print_result_summary(console: Console, result: RunResult) -> None:
    style = {"success": "green", "warning": "yellow", "error": "red"}[result.status]
    console.print(f"[{style}]{result.status}[/{style}] stage={result.stage} elapsed={result.elapsed_ms}ms")
    summary = result.summary
    console.print(f"Sources: {summary.configured} configured, {summary.fetched} fetched, {summary.valid} valid")
    if result.status == "success" and result.cached:
        console.print("Served from cache")
    if result.status == "success" and result.source_summaries:
        table = Table(title="Sources")
        table.add_column("id")
        table.add_column("name")
        table.add_column("root")
        table.add_column("elements", justify="right")
        table.add_column("bytes", justify="right")
        for item in result.source_summaries:
            table.add_row(item.id, item.name, item.root_element or "-", str(item.element_count), str(item.content_length))
        console.print(table)
    errors = getattr(result, "errors", [])
    if errors:
        table = Table(title="Errors")
        table.add_column("id")
        table.add_column("stage")
        table.add_column("kind")
        table.add_column("message")
        for err in errors:
            table.add_row(err.id, err.stage, str(err.error_kind), err.message)
        console.print(table)
    if result.status != "success":
        console.print(result.message)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON")
@click.option(
    "--sources",
    "sources_path",
    type=click.Path(path_type=Path),
    default=DEFAULT_SOURCES_PATH,
    show_default=True,
    help="Sources file (JSON)",
)
@click.version_option(__version__, prog_name="xmlaggregator")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, json_logs: bool, sources_path: Path) -> None:
    """Aggregate XML documents from configured sources."""
    configure_logging(verbose=verbose, json_logs=json_logs)
    ctx.obj = AppEnv(console=Console(), sources_path=sources_path, settings=_load_settings())


@cli.command()
@click.option("--sequential", is_flag=True, help="Fetch one source at a time")
@click.option("--timeout", "timeout_ms", type=click.IntRange(min=1), help="Per-attempt timeout override (ms)")
@click.option("--include", type=click.Choice(["xml", "structure", "metadata", "all"]), default="all", show_default=True)
@click.option("--format", "output_format", type=click.Choice(["xml", "json", "summary"]), default="xml", show_default=True)
@click.option("--use-cache", is_flag=True, help="Serve a live cached aggregate when available")
@click.option("--refresh", is_flag=True, help="Drop the cached aggregate before running")
@click.pass_obj
def run(
    env: AppEnv,
    sequential: bool,
    timeout_ms: int | None,
    include: str,
    output_format: str,
    use_cache: bool,
    refresh: bool,
) -> None:
    """Fetch, validate and combine every enabled source."""
    container = _container(env, with_sources=True)
    service = container.aggregation_service()
    options = RunOptions(sequential=sequential, timeout_override_ms=timeout_ms, include=include, use_cache=use_cache)
    runner = service.refresh if refresh else service.run_aggregation
    result = _run_async(lambda: runner(options), fetcher=container.fetcher())

    if output_format == "json":
        click.echo(dumps_pretty(result.model_dump(mode="json")))
    elif output_format == "summary":
        _print_result_summary(env.console, result)
    elif result.status == "success" and result.combined_xml is not None:
        click.echo(result.combined_xml)
    else:
        _print_result_summary(env.console, result)

    if result.status == "error":
        raise SystemExit(1)


@cli.command()
@click.argument("source_id")
@click.option("--timeout", "timeout_ms", type=click.IntRange(min=1), help="Per-attempt timeout override (ms)")
@click.option("--json", "json_output", is_flag=True, help="Output JSON")
@click.pass_obj
def fetch(env: AppEnv, source_id: str, timeout_ms: int | None, json_output: bool) -> None:
    """Fetch a single source and show a preview."""
    container = _container(env, with_sources=True)
    provider: StaticSourceProvider = container.source_provider()
    descriptor = next((d for d in provider.descriptors if d.id == source_id), None)
    if descriptor is None:
        _fail(f"Unknown source '{source_id}'")
        return
    fetcher = container.fetcher()
    outcome = _run_async(lambda: fetcher.fetch_one(descriptor, timeout_ms=timeout_ms), fetcher=fetcher)

    if json_output:
        click.echo(dumps_pretty(outcome.model_dump(mode="json")))
    elif outcome.kind == "success":
        env.console.print(
            f"[green]ok[/green] {outcome.source_name} HTTP {outcome.http_status} "
            f"in {outcome.response_time_ms}ms (attempt {outcome.attempt}, {outcome.content_length} chars)"
        )
        report = validate(outcome.body)
        env.console.print(f"Well-formed: {report.is_valid}" + (f" ({report.error})" if report.error else ""))
        click.echo(outcome.body[:500])
    else:
        env.console.print(f"[red]failed[/red] {outcome.source_name}: {outcome.error_kind} {outcome.message}")
    if outcome.kind == "failure":
        raise SystemExit(1)


@cli.command()
@click.argument("url")
@click.option("--timeout", "timeout_ms", type=click.IntRange(min=1), default=5000, show_default=True)
@click.option("--header", "headers", multiple=True, help="Extra header as 'Name: value' (repeatable)")
@click.option("--json", "json_output", is_flag=True, help="Output JSON")
@click.pass_obj
def probe(env: AppEnv, url: str, timeout_ms: int, headers: tuple[str, ...], json_output: bool) -> None:
    """Test connectivity to URL (any HTTP status counts as reachable)."""
    extra: dict[str, str] = {}
    for raw in headers:
        name, sep, value = raw.partition(":")
        if not sep:
            _fail(f"Invalid header '{raw}', expected 'Name: value'")
        extra[name.strip()] = value.strip()

    container = _container(env, with_sources=False)
    fetcher = container.fetcher()
    result = _run_async(lambda: fetcher.probe(url, timeout_ms=timeout_ms, headers=extra), fetcher=fetcher)
    if json_output:
        click.echo(dumps_pretty(result.model_dump(mode="json")))
    elif result.success:
        env.console.print(
            f"[green]reachable[/green] HTTP {result.http_status} in {result.response_time_ms}ms "
            f"({result.content_type}, xml={result.is_xml})"
        )
        if result.preview:
            click.echo(result.preview)
    else:
        env.console.print(f"[red]unreachable[/red] {result.error_kind}: {result.error}")
    if not result.success:
        raise SystemExit(1)


@cli.command("validate")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "json_output", is_flag=True, help="Output JSON")
@click.pass_obj
def validate_cmd(env: AppEnv, path: Path, json_output: bool) -> None:
    """Check that a local file is well-formed XML and describe it."""
    raw = path.read_text(encoding="utf-8", errors="replace")
    report = validate(raw)
    metadata = extract_metadata(raw) if report.is_valid else None
    if json_output:
        payload: dict[str, Any] = {"report": report.model_dump(mode="json")}
        payload["metadata"] = metadata.model_dump(mode="json") if metadata else None
        if metadata is None:
            payload["basic_info"] = basic_info(raw).model_dump(mode="json")
        click.echo(dumps(payload))
    elif metadata is not None:
        env.console.print(f"[green]valid[/green] root={metadata.root_element} elements={metadata.approx_element_count}")
        env.console.print(f"version={metadata.declared_version} encoding={metadata.declared_encoding}")
        for ns in metadata.namespaces:
            env.console.print(f"xmlns {ns.prefix} = {ns.uri}")
    else:
        info = basic_info(raw)
        env.console.print(f"[red]invalid[/red] {report.error_kind}: {report.error}")
        env.console.print(f"root={info.root_element or '-'} estimated_elements={info.estimated_elements}")
    if not report.is_valid:
        raise SystemExit(1)


@cli.group()
def cache() -> None:
    """Inspect and maintain the result cache."""


@cache.command("stats")
@click.option("--json", "json_output", is_flag=True, help="Output JSON")
@click.pass_obj
def cache_stats(env: AppEnv, json_output: bool) -> None:
    container = _container(env, with_sources=False)
    tiered = container.cache()
    info = tiered.debug_info()

    async def _count() -> int:
        return await tiered.durable.count()

    info["durable_entries"] = _run_async(_count)
    if json_output:
        click.echo(dumps_pretty(info))
        return
    env.console.print(f"Database: {info['db_path']}")
    env.console.print(f"Durable entries: {info['durable_entries']}")
    env.console.print(f"Memory entries: {info['stats']['memory_size']}/{info['stats']['memory_capacity']}")


@cache.command("sweep")
@click.option("--watch", is_flag=True, help="Keep sweeping every sweep_interval_s seconds until interrupted")
@click.pass_obj
def cache_sweep(env: AppEnv, watch: bool) -> None:
    """Remove expired and corrupted entries."""
    container = _container(env, with_sources=False)
    tiered = container.cache()
    if watch:
        interval = env.settings.sweep_interval_s
        env.console.print(f"Sweeping every {interval}s, Ctrl-C to stop")
        try:
            _run_async(lambda: tiered.sweep_periodically(interval, asyncio.Event()))
        except KeyboardInterrupt:
            env.console.print("Stopped")
        return
    removed = _run_async(tiered.sweep_expired)
    env.console.print(f"Removed {removed} expired entries")


@cache.command("clear")
@click.option("--yes", is_flag=True, help="Skip confirmation")
@click.pass_obj
def cache_clear(env: AppEnv, yes: bool) -> None:
    """Drop every cached entry."""
    if not yes:
        click.confirm("Clear the cache?", abort=True)
    container = _container(env, with_sources=False)
    _run_async(container.cache().clear)
    env.console.print("Cache cleared")


__all__ = ["AppEnv", "cli"]
