"""
Layout algorithms for schema tables.

Two placement strategies:
- Grid: the incremental layout run on every edit. Only tables without a
  known position are placed; every known position is kept as is.
- Auto layout: the explicit, user-triggered re-layout. Clusters tables by
  relationships and relocates all of them.

Plus viewport helpers (fit-to-view scale, grid snapping). All functions are
pure: they return a LayoutResult and never touch the tables passed in.
"""

import logging
import math
from typing import Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from .analysis import find_table_groups
from .config import DiagramSettings, settings as default_settings
from .models import Point, Relationship, Size, Table

logger = logging.getLogger(__name__)


class LayoutResult(BaseModel):
    """Position and size per table name, plus the canvas that holds them."""
    positions: dict[str, Point] = Field(default_factory=dict)
    sizes: dict[str, Size] = Field(default_factory=dict)
    canvas: Size = Field(default_factory=Size)
    placed: list[str] = Field(default_factory=list)  # Names placed by this pass
    columns: int = 0  # Grid columns used for the placed tables (0 if none)

    def apply(self, tables: Sequence[Table]) -> list[Table]:
        """Return copies of `tables` carrying this result's positions and sizes."""
        out = []
        for table in tables:
            update = {}
            if table.name in self.positions:
                update["position"] = self.positions[table.name]
            if table.name in self.sizes:
                update["size"] = self.sizes[table.name]
            out.append(table.model_copy(update=update))
        return out


def table_height(field_count: int, settings: Optional[DiagramSettings] = None) -> float:
    """Header plus one row per field, clamped to the configured min/max."""
    settings = settings or default_settings
    height = field_count * settings.row_height + settings.header_height
    return min(max(height, settings.min_table_height), settings.max_table_height)


def table_size(table: Table, settings: Optional[DiagramSettings] = None) -> Size:
    settings = settings or default_settings
    return Size(width=settings.table_width, height=table_height(len(table.fields), settings))


def grid_columns(count: int) -> int:
    """Fixed breakpoints: 1 -> 1, 2 -> 2, 3 -> 3, more -> 4 columns."""
    if count <= 0:
        return 0
    return min(count, 4)


def _as_point(value) -> Point:
    if isinstance(value, Point):
        return value
    if isinstance(value, Mapping):
        return Point(x=value["x"], y=value["y"])
    x, y = value
    return Point(x=x, y=y)


def _place_block(
    names: Sequence[str],
    sizes: Mapping[str, Size],
    left: float,
    top: float,
    settings: DiagramSettings,
) -> tuple[dict[str, Point], float, float]:
    """
    Place `names` row-major in a grid of uniform cells.

    Returns:
        (positions, block width, block height)
    """
    columns = grid_columns(len(names))
    rows = math.ceil(len(names) / columns)
    cell_width = settings.table_width + settings.spacing_x
    cell_height = max(sizes[name].height for name in names) + settings.spacing_y

    positions = {}
    for index, name in enumerate(names):
        row, col = divmod(index, columns)
        positions[name] = Point(x=left + col * cell_width, y=top + row * cell_height)

    width = columns * cell_width - settings.spacing_x
    height = rows * cell_height - settings.spacing_y
    return positions, width, height


def _canvas_for(
    positions: Mapping[str, Point],
    sizes: Mapping[str, Size],
    settings: DiagramSettings,
    min_width: float = 0,
) -> Size:
    right = max((positions[n].x + sizes[n].width for n in positions), default=0)
    bottom = max((positions[n].y + sizes[n].height for n in positions), default=0)
    return Size(
        width=max(min_width, settings.min_canvas_width, right + settings.canvas_margin),
        height=bottom + settings.canvas_margin,
    )


def layout(
    tables: Sequence[Table],
    existing_positions: Optional[Mapping[str, Point]] = None,
    relationships: Optional[Sequence[Relationship]] = None,
    settings: Optional[DiagramSettings] = None,
) -> LayoutResult:
    """
    Place tables that have no known position; keep every known position.

    New tables (in declaration order) go into a centered grid whose column
    count follows fixed breakpoints. When known positions exist, the grid
    starts below the lowest existing table so nothing overlaps. Duplicate
    table names share one position.

    Args:
        tables: Tables of the current pass, in declaration order
        existing_positions: Table name -> position from earlier passes
        relationships: Accepted for the layout contract; grid placement
            does not consult them
        settings: Geometry settings (defaults to the module settings)

    Returns:
        LayoutResult with a position and size for every table name
    """
    settings = settings or default_settings
    existing = existing_positions or {}

    sizes: dict[str, Size] = {}
    positions: dict[str, Point] = {}
    new_names: list[str] = []
    for table in tables:
        if table.name in sizes:
            continue
        sizes[table.name] = table_size(table, settings)
        if table.name in existing:
            positions[table.name] = _as_point(existing[table.name])
        else:
            new_names.append(table.name)

    if not new_names:
        return LayoutResult(
            positions=positions,
            sizes=sizes,
            canvas=_canvas_for(positions, sizes, settings),
        )

    margin = settings.canvas_margin
    if positions:
        occupied_right = max(positions[n].x + sizes[n].width for n in positions)
        top = max(positions[n].y + sizes[n].height for n in positions) + settings.spacing_y
    else:
        occupied_right = 0
        top = margin

    # Width first, so the grid can be centered in it
    columns = grid_columns(len(new_names))
    grid_width = columns * (settings.table_width + settings.spacing_x) - settings.spacing_x
    canvas_width = max(settings.min_canvas_width, grid_width + 2 * margin, occupied_right + margin)
    left = (canvas_width - grid_width) / 2

    placed, _, _ = _place_block(new_names, sizes, left, top, settings)
    positions.update(placed)
    logger.debug("Placed %d new tables in %d columns", len(new_names), columns)

    return LayoutResult(
        positions=positions,
        sizes=sizes,
        canvas=_canvas_for(positions, sizes, settings, canvas_width),
        placed=new_names,
        columns=columns,
    )


def auto_layout(
    tables: Sequence[Table],
    relationships: Sequence[Relationship],
    settings: Optional[DiagramSettings] = None,
) -> LayoutResult:
    """
    Relocate every table, clustering relationship-connected tables.

    Groups come from a BFS over the relationship graph (see
    `analysis.find_table_groups`). Each group is laid out as a small grid
    block; blocks are packed left to right, wrapping to a new row when the
    configured row width is exceeded.

    Args:
        tables: Tables in declaration order
        relationships: Relationships used for clustering
        settings: Geometry settings (defaults to the module settings)

    Returns:
        LayoutResult placing every table
    """
    settings = settings or default_settings

    sizes: dict[str, Size] = {}
    for table in tables:
        sizes.setdefault(table.name, table_size(table, settings))
    if not sizes:
        return LayoutResult()

    groups = find_table_groups(tables, relationships, settings.max_group_size)

    margin = settings.canvas_margin
    max_right = margin + settings.auto_layout_row_width
    cursor_x = margin
    cursor_y = margin
    row_height = 0.0
    positions: dict[str, Point] = {}

    for group in groups:
        _, block_width, _ = _place_block(group.table_names, sizes, 0, 0, settings)
        if cursor_x + block_width > max_right and cursor_x > margin:
            # Start new row
            cursor_x = margin
            cursor_y += row_height + settings.group_spacing
            row_height = 0.0

        placed, block_width, block_height = _place_block(
            group.table_names, sizes, cursor_x, cursor_y, settings
        )
        positions.update(placed)
        cursor_x += block_width + settings.group_spacing
        row_height = max(row_height, block_height)

    logger.debug("Auto layout placed %d tables in %d groups", len(positions), len(groups))
    return LayoutResult(
        positions=positions,
        sizes=sizes,
        canvas=_canvas_for(positions, sizes, settings),
        placed=list(positions),
    )


def diagram_bounds(tables: Sequence[Table]) -> Optional[tuple[float, float, float, float]]:
    """Bounding box (min x, min y, max x, max y) of all tables, or None if empty."""
    if not tables:
        return None
    return (
        min(table.position.x for table in tables),
        min(table.position.y for table in tables),
        max(table.position.x + table.size.width for table in tables),
        max(table.position.y + table.size.height for table in tables),
    )


def fit_scale(
    tables: Sequence[Table],
    viewport_width: float,
    viewport_height: float,
    settings: Optional[DiagramSettings] = None,
) -> float:
    """
    Zoom factor that fits every table (plus padding) in the viewport.

    Capped at 1.0 so small diagrams are never blown up.
    """
    if viewport_width <= 0 or viewport_height <= 0:
        raise ValueError(f"Viewport must be positive, got {viewport_width}x{viewport_height}")
    settings = settings or default_settings

    bounds = diagram_bounds(tables)
    if bounds is None:
        return 1.0

    min_x, min_y, max_x, max_y = bounds
    content_width = max_x - min_x + 2 * settings.fit_padding
    content_height = max_y - min_y + 2 * settings.fit_padding
    if content_width <= 0 or content_height <= 0:
        return 1.0

    return min(viewport_width / content_width, viewport_height / content_height, 1.0)


def snap_position(position: Point, grid_size: int) -> Point:
    """Snap a position to the nearest grid point (no-op when grid_size <= 0)."""
    if grid_size <= 0:
        return position
    return Point(
        x=round(position.x / grid_size) * grid_size,
        y=round(position.y / grid_size) * grid_size,
    )
