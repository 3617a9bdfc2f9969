from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from typing import Generator, List, Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from edconnect_records.config import get_settings
from edconnect_records.domain.models import PageResult, QuerySpec, SortDirection
from edconnect_records.errors import RecordsError
from edconnect_records.infrastructure.db_factory import PoolManager
from edconnect_records.infrastructure.postgres_store import PostgresStore
from edconnect_records.services.health import check_health
from edconnect_records.services.hierarchy_guard import HierarchyGuard
from edconnect_records.services.paginated_query import PaginatedQuery
from edconnect_records.utils.logging import configure_logging

app = typer.Typer(help="EdConnect Records CLI.")


def _store() -> PostgresStore:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    return PostgresStore(PoolManager())


@contextmanager
def _reporting_errors() -> Generator[None, None, None]:
    """Print package errors as `code: message` and exit with status 1."""
    try:
        yield
    except RecordsError as exc:
        typer.echo(f"{exc.code}: {exc.message}", err=True)
        raise typer.Exit(code=1)


def _parse_filters(pairs: List[str]) -> dict:
    """
    Turn ``key=value`` pairs into filters. Values are decoded as JSON when
    possible so ``active=true`` and ``year=7`` match typed fields.
    """
    filters = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Filter '{pair}' must look like key=value")
        try:
            filters[key] = json.loads(raw)
        except json.JSONDecodeError:
            filters[key] = raw
    return filters


def _print_page(result: PageResult, collection: str) -> None:
    console = Console()
    if not result.items:
        console.print(f"[yellow]No records in '{collection}' match.[/yellow]")
        return

    fields = sorted({name for item in result.items for name in item.data})
    table = Table(
        title=f"{collection}",
        box=box.ROUNDED,
        caption=(
            f"Page {result.page}/{max(result.page_count, 1)} | "
            f"{result.total} record(s) | page size {result.page_size}"
        ),
    )
    table.add_column("id", style="cyan", no_wrap=True)
    table.add_column("created_at", style="green")
    for name in fields:
        table.add_column(name)
    for item in result.items:
        table.add_row(
            item.id,
            item.created_at.isoformat(timespec="seconds"),
            *["" if item.data.get(name) is None else str(item.data.get(name)) for name in fields],
        )
    console.print(table)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"env={settings.app_env} pool={settings.db_pool_min_size}-{settings.db_pool_max_size} "
        f"page_size={settings.default_page_size}"
    )


@app.command()
def health() -> None:
    """
    Ping the database and report latency.
    """
    report = check_health(_store())
    if report.healthy:
        typer.echo(f"healthy ({report.latency_ms} ms)")
        return
    typer.echo(f"unhealthy: {report.error_code}: {report.error}", err=True)
    raise typer.Exit(code=1)


@app.command("init-collection")
def init_collection(
    name: str = typer.Argument(..., help="Collection (table) name."),
    unique: List[str] = typer.Option([], "--unique", "-u", help="Field that must be unique."),
) -> None:
    """
    Create a collection table if it does not exist.
    """
    with _reporting_errors():
        _store().create_collection(name, unique_fields=unique)
    typer.echo(f"Collection '{name}' ready.")


@app.command("list")
def list_records(
    collection: str = typer.Argument(..., help="Collection to list."),
    page: int = typer.Option(1, "--page", "-p"),
    page_size: Optional[int] = typer.Option(None, "--page-size", "-n"),
    sort: str = typer.Option("created_at", "--sort", help="Field to sort by."),
    ascending: bool = typer.Option(False, "--asc/--desc", help="Sort direction."),
    search: Optional[str] = typer.Option(None, "--search", "-q"),
    search_field: List[str] = typer.Option([], "--search-field", "-f"),
    filter_: List[str] = typer.Option([], "--filter", help="Exact match, key=value."),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON instead of a table."),
) -> None:
    """
    Show one page of a collection.
    """
    with _reporting_errors():
        spec = QuerySpec.parse(
            {
                "page": page,
                "page_size": page_size,
                "sort_field": sort,
                "sort_direction": SortDirection.ASC if ascending else SortDirection.DESC,
                "search": search,
                "searchable_fields": search_field,
                "filters": _parse_filters(filter_),
            }
        )
        result = PaginatedQuery(_store()).execute(collection, spec)
    if as_json:
        typer.echo(result.model_dump_json(indent=2))
    else:
        _print_page(result, collection)


@app.command("check-parent")
def check_parent(
    collection: str = typer.Argument(...),
    node_id: str = typer.Argument(...),
    parent_id: str = typer.Argument(...),
) -> None:
    """
    Check whether PARENT_ID can become the parent of NODE_ID.
    """
    with _reporting_errors():
        HierarchyGuard(_store()).validate_parent_assignment(collection, node_id, parent_id)
    typer.echo(f"OK: '{parent_id}' can be the parent of '{node_id}'.")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
