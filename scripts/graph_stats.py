"""Quick graph statistics for the latest (or a given) snapshot."""

import sys
from collections import Counter

from rich.console import Console
from rich.table import Table

from pharma_kg.graph import GraphStore

console = Console()
store = GraphStore()

if len(sys.argv) > 1:
    graph = store.get(sys.argv[1])
else:
    graphs = store.list()
    if not graphs:
        console.print("[yellow]No graphs built yet[/yellow]")
        sys.exit(0)
    graph = graphs[0]

console.print(f"[bold]{graph.id}[/bold] ({graph.status.value}, quality: {graph.metadata.data_quality})")

# Entity counts
table = Table(title="Entity Types")
table.add_column("Type", style="cyan")
table.add_column("Count", justify="right", style="green")

for etype, cnt in Counter(e.type for e in graph.entities.values()).most_common():
    table.add_row(etype, f"{cnt:,}")

console.print(table)

# Relationship breakdown
table2 = Table(title="Relationship Types")
table2.add_column("Relationship", style="cyan")
table2.add_column("Count", justify="right", style="green")

for rtype, cnt in Counter(r.type for r in graph.relationships.values()).most_common():
    table2.add_row(rtype, f"{cnt:,}")

console.print(table2)

# Source coverage
coverage = Counter(s for e in graph.entities.values() for s in e.sources)

table3 = Table(title="Source Coverage")
table3.add_column("Source", style="cyan")
table3.add_column("Entities", justify="right", style="green")

for source_id in graph.sources:
    table3.add_row(source_id, f"{coverage.get(source_id, 0):,}")

console.print(table3)

if graph.metadata.agent_failures:
    console.print(f"[red]{len(graph.metadata.agent_failures)} agent failure(s)[/red]")
