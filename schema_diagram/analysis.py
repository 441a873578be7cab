"""
Schema analysis - relationship graph utilities.

Provides the graph views the layout engine and the host need:
- Connection counts per table
- Relationship-connected table groups (BFS, capped size) for auto layout
- Dangling relationship detection and a schema summary for status display

Relationships are resolved by table name; anything that does not resolve to
a present table is ignored here rather than treated as an error.
"""

from dataclasses import dataclass, field
from typing import Sequence

from .models import Relationship, Table


@dataclass
class TableGroup:
    """A cluster of relationship-connected tables, placed together by auto layout."""
    table_names: list[str] = field(default_factory=list)
    connectivity: int = 0

    @property
    def size(self) -> int:
        return len(self.table_names)


@dataclass
class TableConnectionInfo:
    """Connection information for a single table."""
    table_name: str
    incoming: int = 0   # Relationships pointing at this table
    outgoing: int = 0   # Relationships declared from this table

    @property
    def total(self) -> int:
        return self.incoming + self.outgoing


@dataclass
class SchemaSummary:
    """Counts for a status display."""
    total_tables: int
    total_fields: int
    total_relationships: int
    orphan_tables: list[str]
    dangling_relationships: list[int]
    most_connected_tables: list[TableConnectionInfo]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "total_tables": self.total_tables,
            "total_fields": self.total_fields,
            "total_relationships": self.total_relationships,
            "orphan_tables": self.orphan_tables,
            "dangling_relationships": self.dangling_relationships,
            "most_connected_tables": [
                {
                    "name": info.table_name,
                    "connections": info.total,
                    "incoming": info.incoming,
                    "outgoing": info.outgoing,
                }
                for info in self.most_connected_tables
            ],
        }


def _table_names(tables: Sequence[Table]) -> list[str]:
    """Distinct table names in declaration order."""
    return list(dict.fromkeys(table.name for table in tables))


def find_dangling_relationships(
    tables: Sequence[Table],
    relationships: Sequence[Relationship],
) -> list[int]:
    """
    Indices of relationships whose endpoints do not resolve.

    An endpoint resolves when its table is present and that table has a field
    with the referenced name.
    """
    by_name: dict[str, Table] = {}
    for table in tables:
        by_name.setdefault(table.name, table)

    dangling = []
    for index, rel in enumerate(relationships):
        for endpoint in (rel.from_, rel.to):
            table = by_name.get(endpoint.table)
            if table is None or table.field_index(endpoint.field) is None:
                dangling.append(index)
                break
    return dangling


def calculate_table_connections(
    tables: Sequence[Table],
    relationships: Sequence[Relationship],
) -> dict[str, TableConnectionInfo]:
    """
    Calculate connection counts for all tables.

    Args:
        tables: Tables in declaration order
        relationships: Relationships to count (unknown tables are ignored)

    Returns:
        Dictionary mapping table name to TableConnectionInfo
    """
    connections = {name: TableConnectionInfo(table_name=name) for name in _table_names(tables)}

    for rel in relationships:
        if rel.from_.table in connections:
            connections[rel.from_.table].outgoing += 1
        if rel.to.table in connections:
            connections[rel.to.table].incoming += 1

    return connections


def find_table_groups(
    tables: Sequence[Table],
    relationships: Sequence[Relationship],
    max_group_size: int = 6,
) -> list[TableGroup]:
    """
    Cluster relationship-connected tables using BFS.

    Edges are treated as undirected. Traversal starts from the most connected
    table not yet grouped and stops growing a group at `max_group_size`; the
    remainder of a large component seeds further groups. Groups are returned
    sorted by total connectivity, ties in declaration order.

    Args:
        tables: Tables in declaration order
        relationships: Relationships defining adjacency
        max_group_size: Upper bound on tables per group

    Returns:
        List of TableGroup objects covering every table exactly once
    """
    names = _table_names(tables)
    if not names:
        return []

    order = {name: index for index, name in enumerate(names)}

    # Build adjacency list (undirected), neighbours in relationship order
    adjacency: dict[str, list[str]] = {name: [] for name in names}
    for rel in relationships:
        source, target = rel.from_.table, rel.to.table
        if source not in adjacency or target not in adjacency or source == target:
            continue
        if target not in adjacency[source]:
            adjacency[source].append(target)
        if source not in adjacency[target]:
            adjacency[target].append(source)

    connections = calculate_table_connections(tables, relationships)
    seeds = sorted(names, key=lambda name: (-connections[name].total, order[name]))

    limit = max(1, max_group_size)
    grouped: set[str] = set()
    groups: list[tuple[int, TableGroup]] = []

    for seed in seeds:
        if seed in grouped:
            continue

        members: list[str] = []
        queue = [seed]
        queued = {seed}
        while queue and len(members) < limit:
            current = queue.pop(0)
            members.append(current)
            grouped.add(current)
            for neighbor in adjacency[current]:
                if neighbor not in grouped and neighbor not in queued:
                    queue.append(neighbor)
                    queued.add(neighbor)

        group = TableGroup(
            table_names=members,
            connectivity=sum(connections[name].total for name in members),
        )
        groups.append((min(order[name] for name in members), group))

    groups.sort(key=lambda item: (-item[1].connectivity, item[0]))
    return [group for _, group in groups]


def summarize_schema(
    tables: Sequence[Table],
    relationships: Sequence[Relationship],
    top_n: int = 5,
) -> SchemaSummary:
    """
    Generate a summary of an extracted schema.

    Args:
        tables: Extracted tables
        relationships: Extracted relationships
        top_n: Number of top connected tables to include

    Returns:
        SchemaSummary object with all analysis results
    """
    connections = calculate_table_connections(tables, relationships)

    sorted_by_connections = sorted(
        connections.values(),
        key=lambda info: info.total,
        reverse=True,
    )
    most_connected = [info for info in sorted_by_connections[:top_n] if info.total > 0]

    return SchemaSummary(
        total_tables=len(tables),
        total_fields=sum(len(table.fields) for table in tables),
        total_relationships=len(relationships),
        orphan_tables=[name for name, info in connections.items() if info.total == 0],
        dangling_relationships=find_dangling_relationships(tables, relationships),
        most_connected_tables=most_connected,
    )
