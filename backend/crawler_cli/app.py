"""Command line interface for the Catalog Ingest API."""
from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer

from backend.ingest.orchestrator import ItemResult, parse_work_list, shuffle

from .client import create_client


DEFAULT_API_BASE = "http://localhost:8000"

app = typer.Typer(help="Interact with the Catalog Ingest backend service.")
config_app = typer.Typer(help="Manage persisted run defaults.")
app.add_typer(config_app, name="config")
sources_app = typer.Typer(help="Inspect upstream sources and resolve work lists.")
app.add_typer(sources_app, name="sources")
runs_app = typer.Typer(help="Start, inspect and cancel crawl runs.")
app.add_typer(runs_app, name="runs")
catalog_app = typer.Typer(help="Browse the ingested movie catalog.")
app.add_typer(catalog_app, name="catalog")


RUN_STATUS_CHOICES = {"queued", "running", "success", "error", "cancelled"}
ITEM_STATUS_CHOICES = {"success", "error", "skipped"}
MOVIE_TYPE_CHOICES = {"single", "series", "hoathinh", "tvshows"}


def _api_base_option() -> typer.Option:
    return typer.Option(
        DEFAULT_API_BASE,
        "--api-base",
        help="Base URL for the Catalog Ingest API service.",
        show_default=True,
        envvar="CATALOG_INGEST_API_BASE",
    )


def _echo_json(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _read_work_list(path: Optional[Path]) -> list[str]:
    """Read a newline-delimited work list from ``path`` or stdin (``-``)."""

    if path is None:
        return []
    if str(path) == "-":
        text = typer.get_text_stream("stdin").read()
    else:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            typer.echo(f"Unable to read work list: {exc}", err=True)
            raise typer.Exit(code=1) from exc
    return parse_work_list(text)


def _check_choices(values: list[str], choices: set[str], label: str) -> list[str]:
    normalized: list[str] = []
    for value in values:
        lowered = value.lower()
        if lowered not in choices:
            typer.echo(
                f"Invalid {label} value. Allowed values: " + ", ".join(sorted(choices)),
                err=True,
            )
            raise typer.Exit(code=1)
        normalized.append(lowered)
    return normalized


@app.command()
def health(api_base: str = _api_base_option()) -> None:
    """Call the /health endpoint and pretty-print the response."""

    with create_client(api_base) as client:
        response = client.get("/health")
        response.raise_for_status()
        _echo_json(response.json())


@app.command("shuffle")
def shuffle_command(
    path: Path = typer.Argument(
        Path("-"),
        help="Work list file, one slug or URL per line; '-' reads stdin.",
    ),
) -> None:
    """Shuffle a work list locally and print it one entry per line."""

    for item in shuffle(_read_work_list(path)):
        typer.echo(item)


@config_app.command("show")
def show_config(api_base: str = _api_base_option()) -> None:
    """Display the persisted run defaults."""

    with create_client(api_base) as client:
        response = client.get("/config")
        response.raise_for_status()
        _echo_json(response.json())


@config_app.command("update")
def update_config(
    active_source: Optional[str] = typer.Option(None, help="Source used when a run names none."),
    wait_min_ms: Optional[int] = typer.Option(None, min=0, help="Lower bound of the inter-item delay."),
    wait_max_ms: Optional[int] = typer.Option(None, min=0, help="Upper bound of the inter-item delay."),
    image_proxy_url: Optional[str] = typer.Option(None, help="Resizing proxy for image rewrites."),
    clear_image_proxy: bool = typer.Option(
        False,
        "--clear-image-proxy/--no-clear-image-proxy",
        help="Remove the persisted image proxy.",
        show_default=False,
    ),
    api_base: str = _api_base_option(),
) -> None:
    """Update configuration fields with the provided values."""

    if image_proxy_url is not None and clear_image_proxy:
        typer.echo("Cannot set and clear the image proxy in the same command.", err=True)
        raise typer.Exit(code=1)

    payload: dict[str, object] = {}
    if active_source is not None:
        payload["active_source"] = active_source
    if wait_min_ms is not None:
        payload["wait_min_ms"] = wait_min_ms
    if wait_max_ms is not None:
        payload["wait_max_ms"] = wait_max_ms
    if clear_image_proxy:
        payload["image_proxy_url"] = None
    elif image_proxy_url is not None:
        payload["image_proxy_url"] = image_proxy_url

    if not payload:
        typer.echo("No updates supplied.")
        raise typer.Exit(code=1)

    with create_client(api_base) as client:
        response = client.put("/config", json=payload)
        if response.status_code == 422:
            typer.echo(f"Rejected: {response.json().get('detail')}", err=True)
            raise typer.Exit(code=1)
        response.raise_for_status()
        _echo_json(response.json())


@sources_app.command("list")
def list_sources(api_base: str = _api_base_option()) -> None:
    """Display the configured upstream sources."""

    with create_client(api_base) as client:
        response = client.get("/sources")
        response.raise_for_status()
        _echo_json(response.json())


@sources_app.command("status")
def source_status(
    key: str = typer.Argument(..., help="Source key to probe."),
    api_base: str = _api_base_option(),
) -> None:
    """Probe a source and display its latency."""

    with create_client(api_base, timeout=30.0) as client:
        response = client.get(f"/sources/{key}/status")
        if response.status_code == 404:
            typer.echo("Source not found", err=True)
            raise typer.Exit(code=1)
        response.raise_for_status()
        _echo_json(response.json())


@sources_app.command("resolve")
def resolve_source(
    key: str = typer.Argument(..., help="Source key whose listing pages are read."),
    page_from: int = typer.Option(1, "--from", min=1, help="First listing page."),
    page_to: int = typer.Option(1, "--to", min=1, help="Last listing page (inclusive)."),
    randomize: bool = typer.Option(
        False,
        "--shuffle/--no-shuffle",
        help="Shuffle the resolved slugs.",
        show_default=True,
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the slugs to this file instead of stdout.",
    ),
    api_base: str = _api_base_option(),
) -> None:
    """Resolve listing pages into a work list of slugs."""

    if page_to < page_from:
        typer.echo("--to must be greater than or equal to --from", err=True)
        raise typer.Exit(code=1)

    with create_client(api_base, timeout=300.0) as client:
        response = client.post(
            f"/sources/{key}/list",
            params={"randomize": randomize},
            json={"page_from": page_from, "page_to": page_to},
        )
        if response.status_code == 404:
            typer.echo("Source not found", err=True)
            raise typer.Exit(code=1)
        if response.status_code == 502:
            typer.echo(f"Source unavailable: {response.json().get('detail')}", err=True)
            raise typer.Exit(code=1)
        response.raise_for_status()
        slugs = response.json()["slugs"]

    if output is not None:
        output.write_text("\n".join(slugs) + ("\n" if slugs else ""), encoding="utf-8")
        typer.echo(f"Wrote {len(slugs)} slugs to {output}")
        return
    for slug in slugs:
        typer.echo(slug)


@runs_app.command("start")
def start_run(
    items: Optional[List[str]] = typer.Argument(None, help="Slugs or detail URLs to crawl."),
    work_file: Optional[Path] = typer.Option(
        None,
        "--file",
        "-f",
        help="Newline-delimited work list file; '-' reads stdin.",
    ),
    source: Optional[str] = typer.Option(None, help="Source key; defaults to the active source."),
    skip_formats: Optional[List[str]] = typer.Option(
        None,
        "--skip-format",
        help="Movie type to skip (repeat the flag).",
    ),
    skip_genres: Optional[List[str]] = typer.Option(
        None,
        "--skip-genre",
        help="Genre name left out of genre links (repeat the flag).",
    ),
    skip_countries: Optional[List[str]] = typer.Option(
        None,
        "--skip-country",
        help="Country name left out of country links (repeat the flag).",
    ),
    wait_min_ms: Optional[int] = typer.Option(None, min=0, help="Lower bound of the inter-item delay."),
    wait_max_ms: Optional[int] = typer.Option(None, min=0, help="Upper bound of the inter-item delay."),
    randomize: bool = typer.Option(
        False,
        "--shuffle/--no-shuffle",
        help="Shuffle the work list before submitting it.",
        show_default=True,
    ),
    inline: bool = typer.Option(
        False,
        "--inline/--queue",
        help="Run inside the API request instead of on the worker queue.",
        show_default=True,
    ),
    api_base: str = _api_base_option(),
) -> None:
    """Start a crawl run for the given work list."""

    work_list = [item for item in (items or []) if item.strip()]
    work_list.extend(_read_work_list(work_file))
    if not work_list:
        typer.echo("No work list supplied.", err=True)
        raise typer.Exit(code=1)
    if randomize:
        work_list = shuffle(work_list)

    payload: dict[str, object] = {
        "work_list": work_list,
        "inline": inline,
        "skip_formats": _check_choices(skip_formats or [], MOVIE_TYPE_CHOICES, "format"),
        "skip_genres": list(skip_genres or []),
        "skip_countries": list(skip_countries or []),
    }
    if source is not None:
        payload["source"] = source
    if wait_min_ms is not None:
        payload["wait_min_ms"] = wait_min_ms
    if wait_max_ms is not None:
        payload["wait_max_ms"] = wait_max_ms

    timeout = None if inline else 30.0
    with create_client(api_base, timeout=timeout) as client:
        response = client.post("/runs", json=payload)
        if response.status_code == 422:
            typer.echo(f"Rejected: {response.json().get('detail')}", err=True)
            raise typer.Exit(code=1)
        response.raise_for_status()
        _echo_json(response.json())


@runs_app.command("list")
def list_runs(
    limit: int = typer.Option(10, min=1, max=100, help="Number of recent runs to display."),
    statuses: Optional[List[str]] = typer.Option(
        None,
        "--status",
        help="Filter results to specific run statuses (repeat the flag).",
    ),
    source: Optional[str] = typer.Option(None, "--source", help="Filter results to one source."),
    api_base: str = _api_base_option(),
) -> None:
    """Display recent runs recorded in the ledger."""

    params: dict[str, object] = {"limit": limit}
    if statuses:
        params["status"] = _check_choices(statuses, RUN_STATUS_CHOICES, "status")
    if source:
        params["source"] = source

    with create_client(api_base) as client:
        response = client.get("/runs", params=params)
        response.raise_for_status()
        _echo_json(response.json())


@runs_app.command("show")
def show_run(
    run_id: str = typer.Argument(..., help="Identifier of the run to display."),
    api_base: str = _api_base_option(),
) -> None:
    """Display the ledger row for a single run."""

    with create_client(api_base) as client:
        response = client.get(f"/runs/{run_id}")
        if response.status_code == 404:
            typer.echo("Run not found", err=True)
            raise typer.Exit(code=1)
        response.raise_for_status()
        _echo_json(response.json())


@runs_app.command("items")
def run_items(
    run_id: str = typer.Argument(..., help="Identifier of the run to inspect."),
    status: Optional[str] = typer.Option(None, "--status", help="Only show items with this outcome."),
    lines: bool = typer.Option(
        False,
        "--lines/--json",
        help="Print pipe-delimited result lines instead of JSON.",
        show_default=True,
    ),
    api_base: str = _api_base_option(),
) -> None:
    """Display the itemized results of a run."""

    params: dict[str, object] = {}
    if status is not None:
        params["status"] = _check_choices([status], ITEM_STATUS_CHOICES, "status")[0]

    with create_client(api_base) as client:
        response = client.get(f"/runs/{run_id}/items", params=params)
        if response.status_code == 404:
            typer.echo("Run not found", err=True)
            raise typer.Exit(code=1)
        response.raise_for_status()
        items = response.json()

    if not lines:
        _echo_json(items)
        return
    for item in items:
        typer.echo(ItemResult(**item).format_line())


@runs_app.command("logs")
def run_logs(
    run_id: str = typer.Argument(..., help="Identifier of the run to inspect."),
    limit: int = typer.Option(50, min=1, max=500, help="Maximum number of log entries."),
    api_base: str = _api_base_option(),
) -> None:
    """Display persisted events for a run."""

    params = {"limit": limit}
    with create_client(api_base) as client:
        response = client.get(f"/runs/{run_id}/logs", params=params)
        if response.status_code == 404:
            typer.echo("Run not found", err=True)
            raise typer.Exit(code=1)
        response.raise_for_status()
        _echo_json(response.json())


@runs_app.command("cancel")
def cancel_run(
    run_id: str = typer.Argument(..., help="Identifier of the run to cancel."),
    reason: Optional[str] = typer.Option(
        None,
        "--reason",
        help="Optional reason recorded with the cancellation.",
    ),
    api_base: str = _api_base_option(),
) -> None:
    """Cancel a queued run or stop a running one after its current item."""

    payload: dict[str, object] | None = None
    if reason is not None:
        payload = {"reason": reason}

    with create_client(api_base) as client:
        if payload is None:
            response = client.post(f"/runs/{run_id}/cancel")
        else:
            response = client.post(f"/runs/{run_id}/cancel", json=payload)
        if response.status_code == 404:
            typer.echo("Run not found", err=True)
            raise typer.Exit(code=1)
        if response.status_code == 409:
            typer.echo(response.json().get("detail", "Run already finished"), err=True)
            raise typer.Exit(code=1)
        response.raise_for_status()
        _echo_json(response.json())


@runs_app.command("metrics")
def run_metrics(api_base: str = _api_base_option()) -> None:
    """Display aggregate run statistics."""

    with create_client(api_base) as client:
        response = client.get("/runs/metrics")
        response.raise_for_status()
        _echo_json(response.json())


@catalog_app.command("movies")
def list_movies(
    page: int = typer.Option(1, min=1, help="Page number starting at 1."),
    page_size: int = typer.Option(25, min=1, max=100, help="Number of items per page."),
    query: Optional[str] = typer.Option(None, help="Optional name search term."),
    movie_type: Optional[str] = typer.Option(None, "--type", help="Filter by movie type."),
    year: Optional[int] = typer.Option(None, min=1800, max=3000, help="Filter by release year."),
    api_base: str = _api_base_option(),
) -> None:
    """Display catalog movies returned by the API."""

    params: dict[str, object] = {"page": page, "page_size": page_size}
    if query:
        params["query"] = query
    if movie_type:
        params["type"] = _check_choices([movie_type], MOVIE_TYPE_CHOICES, "type")[0]
    if year is not None:
        params["year"] = year

    with create_client(api_base) as client:
        response = client.get("/catalog/movies", params=params)
        response.raise_for_status()
        _echo_json(response.json())


@catalog_app.command("show")
def show_movie(
    slug: str = typer.Argument(..., help="Slug of the movie to display."),
    api_base: str = _api_base_option(),
) -> None:
    """Display a movie with its relations and episodes."""

    with create_client(api_base) as client:
        response = client.get(f"/catalog/movies/{slug}")
        if response.status_code == 404:
            typer.echo("Movie not found", err=True)
            raise typer.Exit(code=1)
        response.raise_for_status()
        _echo_json(response.json())


@catalog_app.command("metrics")
def catalog_metrics(api_base: str = _api_base_option()) -> None:
    """Display aggregate catalog counts."""

    with create_client(api_base) as client:
        response = client.get("/catalog/metrics")
        response.raise_for_status()
        _echo_json(response.json())
