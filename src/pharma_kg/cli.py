"""
Command-line interface for pharma_kg.

Commands:
- register / deregister / sources: Manage data sources
- refresh: Fetch an API source (or reprocess a file source)
- upload: Ingest a CSV/JSON file
- build / graphs: Build and list knowledge graphs
- query / export: Read a completed graph
- report / status: Data quality report and system status
- schedule: Run the refresh scheduler in the foreground
"""

import json
import time
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="pharma-kg",
    help="Pharmaceutical Knowledge Graph CLI",
    no_args_is_help=True,
)
console = Console()


def _service():
    from pharma_kg.log import setup_logging
    from pharma_kg.service import PharmaKG

    setup_logging()
    return PharmaKG()


def _fail(message: str) -> None:
    console.print(f"[bold red]{message}[/]")
    raise typer.Exit(code=1)


def _load_config(path: Path | None) -> dict:
    if path is None:
        return {}
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        _fail(f"Cannot read config file {path}: {e}")


def _fmt_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def _sources_table(sources, refreshing: set[str] | None = None) -> Table:
    table = Table(title="Data Sources", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold")
    table.add_column("Kind")
    table.add_column("Data Type")
    table.add_column("Status")
    table.add_column("Quality")
    table.add_column("Records", justify="right")
    table.add_column("Last Refresh")
    table.add_column("Next Refresh")
    table.add_column("Error", style="dim", overflow="fold")

    refreshing = refreshing or set()
    for s in sources:
        status = "[yellow]refreshing[/]" if s.id in refreshing else (
            "[green]active[/]" if s.status.value == "active" else "[red]error[/]"
        )
        table.add_row(
            s.id,
            s.kind.value,
            s.data_type,
            status,
            s.data_quality.value,
            f"{s.record_count:,}",
            _fmt_time(s.last_refresh_at),
            _fmt_time(s.next_refresh_at),
            s.last_error or "",
        )
    return table


@app.command()
def register(
    source_id: Annotated[str | None, typer.Option("--id", help="Source id")] = None,
    data_type: Annotated[str | None, typer.Option("--data-type", "-t", help="e.g. patents, clinical_trials")] = None,
    kind: Annotated[str | None, typer.Option("--kind", "-k", help="api (default) or file")] = None,
    endpoint: Annotated[str | None, typer.Option("--endpoint", "-e", help="API URL")] = None,
    name: Annotated[str | None, typer.Option("--name", "-n", help="Display name")] = None,
    interval: Annotated[int | None, typer.Option("--interval", help="Refresh interval in seconds")] = None,
    api_key: Annotated[str | None, typer.Option("--api-key", envvar="PHARMA_KG_SOURCE_API_KEY")] = None,
    config_file: Annotated[Path | None, typer.Option("--config", "-c", help="JSON source configuration")] = None,
):
    """Register a data source."""
    from pharma_kg.errors import ConfigError

    config = _load_config(config_file)
    overrides = {
        "id": source_id,
        "data_type": data_type,
        "kind": kind,
        "endpoint": endpoint,
        "name": name,
        "refresh_interval": interval,
        "credentials": api_key,
    }
    config.update({k: v for k, v in overrides.items() if v is not None})
    if "kind" not in config and "type" not in config:
        config["kind"] = "api"

    with _service() as kg:
        try:
            source = kg.register_source(config)
        except ConfigError as e:
            _fail(str(e))
    console.print(f"[bold green]Registered {source.kind.value} source:[/] {source.id} ({source.data_type})")


@app.command()
def deregister(source_id: Annotated[str, typer.Argument(help="Source id")]):
    """Remove a data source and its stored records."""
    from pharma_kg.errors import NotFoundError

    with _service() as kg:
        try:
            kg.deregister_source(source_id)
        except NotFoundError as e:
            _fail(str(e))
    console.print(f"[bold green]Deregistered:[/] {source_id}")


@app.command()
def sources():
    """List registered data sources."""
    with _service() as kg:
        items = kg.list_sources()
    if not items:
        console.print("[yellow]No data sources registered[/]")
        return
    console.print(_sources_table(items))


@app.command()
def refresh(
    source_ids: Annotated[list[str] | None, typer.Argument(help="Sources to refresh (default: all)")] = None,
):
    """Refresh API sources / reprocess file sources."""
    from pharma_kg.errors import PharmaKGError

    failed = 0
    with _service() as kg:
        ids = source_ids or [s.id for s in kg.list_sources()]
        for sid in ids:
            with console.status(f"Refreshing {sid}..."):
                try:
                    source = kg.refresh_source(sid)
                except PharmaKGError as e:
                    failed += 1
                    console.print(f"[red]FAIL[/] {sid}: {e}")
                    continue
            console.print(f"[green]OK[/] {sid}: {source.record_count:,} records")
    if failed:
        raise typer.Exit(code=1)


@app.command()
def upload(
    path: Annotated[Path, typer.Argument(help="CSV or JSON file", exists=True, dir_okay=False)],
    source_id: Annotated[str | None, typer.Option("--id", help="Source id (default: file stem)")] = None,
    data_type: Annotated[str | None, typer.Option("--data-type", "-t")] = None,
    name: Annotated[str | None, typer.Option("--name", "-n")] = None,
    config_file: Annotated[Path | None, typer.Option("--config", "-c", help="JSON source configuration")] = None,
):
    """Upload a CSV/JSON file as a file source."""
    from pharma_kg.errors import ConfigError, ParseError

    config = _load_config(config_file)
    config.setdefault("id", source_id or path.stem)
    config["kind"] = "file"
    if data_type:
        config["data_type"] = data_type
    if name:
        config["name"] = name
    if "data_type" not in config and "dataType" not in config:
        _fail("--data-type is required (or set data_type in --config)")

    with _service() as kg:
        try:
            result = kg.upload_file(path, config)
        except (ConfigError, ParseError) as e:
            _fail(str(e))
    console.print(
        f"[bold green]Uploaded {path.name} → {result.source_id}:[/] "
        f"{result.records_accepted:,} accepted, {result.records_rejected:,} rejected"
    )


@app.command()
def build(
    source_ids: Annotated[list[str] | None, typer.Option("--source", "-s", help="Sources to include")] = None,
):
    """Build a knowledge graph from registered sources."""
    from pharma_kg.errors import PersistenceError

    with _service() as kg:
        with console.status("Building knowledge graph..."):
            try:
                graph = kg.build_graph(source_ids or None)
            except PersistenceError as e:
                _fail(f"Graph could not be saved: {e}")

    meta = graph.metadata
    table = Table(title=f"Knowledge Graph {graph.id}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Status", graph.status.value)
    table.add_row("Entities", f"{meta.entity_count:,}")
    table.add_row("Relationships", f"{meta.relationship_count:,}")
    table.add_row("Insights", str(len(graph.insights)))
    table.add_row("Data quality", meta.data_quality)
    table.add_row("Sources processed", ", ".join(meta.sources_processed) or "-")
    table.add_row("Sources skipped", ", ".join(meta.sources_skipped) or "-")
    for failure in meta.agent_failures:
        table.add_row("[red]Agent failure[/]", f"{failure.agent} on {failure.source}: {failure.error}")
    console.print(table)


@app.command()
def graphs():
    """List knowledge graphs."""
    with _service() as kg:
        items = kg.list_graphs()
    if not items:
        console.print("[yellow]No knowledge graphs built yet[/]")
        return

    table = Table(title="Knowledge Graphs", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold")
    table.add_column("Created")
    table.add_column("Status")
    table.add_column("Entities", justify="right")
    table.add_column("Relationships", justify="right")
    table.add_column("Quality")
    table.add_column("Sources", style="dim")
    for g in items:
        table.add_row(
            g.id,
            _fmt_time(g.created_at),
            g.status.value,
            f"{len(g.entities):,}",
            f"{len(g.relationships):,}",
            g.metadata.data_quality,
            ", ".join(g.sources),
        )
    console.print(table)


@app.command()
def export(
    graph_id: Annotated[str, typer.Argument(help="Graph id")],
    fmt: Annotated[str, typer.Option("--format", "-f", help="json, cypher or graphlib")] = "json",
    output: Annotated[Path | None, typer.Option("--output", "-o", help="Output file (default: stdout)")] = None,
):
    """Export a completed graph."""
    from pharma_kg.errors import NotFoundError, UnsupportedFormatError

    with _service() as kg:
        try:
            data = kg.export_graph(graph_id, fmt)
        except (NotFoundError, UnsupportedFormatError) as e:
            _fail(str(e))

    if output is None:
        typer.echo(data.decode("utf-8"))
    else:
        output.write_bytes(data)
        console.print(f"[bold green]Exported {graph_id} ({fmt}) to {output}[/]")


@app.command()
def query(
    graph_id: Annotated[str, typer.Argument(help="Graph id")],
    entity_type: Annotated[str | None, typer.Option("--type", "-t", help="List entities of a type")] = None,
    entity_id: Annotated[str | None, typer.Option("--entity", "-e", help="Start entity for traversal")] = None,
    depth: Annotated[int, typer.Option("--depth", "-d", min=1, max=5)] = 1,
    direction: Annotated[str, typer.Option("--direction", help="out, in or both")] = "both",
    rel_types: Annotated[list[str] | None, typer.Option("--rel", "-r", help="Relationship types to follow")] = None,
    subgraph: Annotated[bool, typer.Option("--subgraph", help="Return nodes and edges")] = False,
    limit: Annotated[int | None, typer.Option("--limit", "-l", min=1)] = None,
):
    """Query a completed graph."""
    from pydantic import ValidationError

    from pharma_kg.errors import NotFoundError

    kind = "entities" if entity_id is None else ("subgraph" if subgraph else "neighbors")
    request = {
        "kind": kind,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "depth": depth,
        "direction": direction,
        "relationship_types": rel_types or None,
        "limit": limit,
    }
    with _service() as kg:
        try:
            result = kg.query_graph(graph_id, request)
        except (NotFoundError, ValidationError) as e:
            _fail(str(e))

    if kind == "subgraph":
        console.print_json(data=result.results[0])
        return

    table = Table(title=f"{kind} ({result.metadata['count']} results)", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold")
    table.add_column("Type")
    table.add_column("Label")
    if kind == "neighbors":
        table.add_column("Hops", justify="right")
    table.add_column("Sources", style="dim")
    for row in result.results:
        cells = [row["id"], row["type"], row["label"]]
        if kind == "neighbors":
            cells.append(str(row.get("distance", "")))
        cells.append(", ".join(row.get("sources", [])))
        table.add_row(*cells)
    console.print(table)


@app.command()
def report():
    """Show the data quality report."""
    with _service() as kg:
        data = kg.quality_report()
    console.print_json(data=data)


@app.command()
def status():
    """Show system status."""
    with _service() as kg:
        data = kg.system_status()
    console.print_json(data=data)


@app.command()
def schedule(
    poll: Annotated[float, typer.Option("--poll", help="Dashboard refresh period in seconds")] = 2.0,
):
    """Run the refresh scheduler in the foreground with a live dashboard."""
    from rich.live import Live

    with _service() as kg:
        kg.start_scheduler()
        console.print("[bold blue]Scheduler running. Press Ctrl+C to stop.[/]")
        try:
            with Live(_sources_table(kg.list_sources()), console=console, refresh_per_second=4) as live:
                while True:
                    time.sleep(poll)
                    refreshing = {s.id for s in kg.list_sources() if kg.registry.is_refreshing(s.id)}
                    live.update(_sources_table(kg.list_sources(), refreshing))
        except KeyboardInterrupt:
            console.print("[yellow]Stopping scheduler...[/]")


if __name__ == "__main__":
    app()
