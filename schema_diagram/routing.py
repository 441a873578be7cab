"""
Edge routing for relationship lines.

Turns positioned tables and relationships into drawable geometry:
- Anchor points at the row of the referenced field
- Connection sides chosen from the dominant displacement between tables
- A path per routing style (straight, curved, orthogonal)
- Arrowhead triangles oriented along the path tangent at each end

Geometry is computed in diagram coordinates and scaled by the zoom factor
as the very last step, so callers can draw the output as is.
"""

import logging
import math
from typing import Optional, Sequence

from .config import DiagramSettings, settings as default_settings
from .models import (
    ArrowHead,
    PathCommand,
    PathOp,
    Point,
    Relationship,
    RoutedEdge,
    RoutingStyle,
    Side,
    Table,
)

logger = logging.getLogger(__name__)


def field_anchor_y(table: Table, field_index: int, settings: Optional[DiagramSettings] = None) -> float:
    """Vertical center of a field row."""
    settings = settings or default_settings
    return (
        table.position.y
        + settings.header_height
        + field_index * settings.row_height
        + settings.row_height / 2
    )


def choose_sides(from_table: Table, to_table: Table) -> tuple[Side, Side]:
    """
    Pick the table edges a relationship line attaches to.

    Horizontally dominant separation connects facing edges (right to left or
    left to right). Vertically dominant separation, and self references,
    attach both ends to the left edges; the path then bows out to the left
    instead of crossing a table body.
    """
    from_x, from_y = from_table.center()
    to_x, to_y = to_table.center()
    dx = to_x - from_x
    dy = to_y - from_y

    if from_table.name == to_table.name or abs(dx) < abs(dy):
        return Side.LEFT, Side.LEFT
    if dx >= 0:
        return Side.RIGHT, Side.LEFT
    return Side.LEFT, Side.RIGHT


def _anchor(table: Table, field_index: int, side: Side, settings: DiagramSettings) -> Point:
    x = table.position.x + (table.size.width if side == Side.RIGHT else 0)
    return Point(x=x, y=field_anchor_y(table, field_index, settings))


def _outward(side: Side) -> int:
    return 1 if side == Side.RIGHT else -1


def _distance(a: Point, b: Point) -> float:
    return math.hypot(b.x - a.x, b.y - a.y)


def _toward(start: Point, end: Point, amount: float) -> Point:
    """Point `amount` along the segment from start to end."""
    length = _distance(start, end)
    if length == 0:
        return start
    ratio = amount / length
    return Point(x=start.x + (end.x - start.x) * ratio, y=start.y + (end.y - start.y) * ratio)


def _simplify(points: list[Point]) -> list[Point]:
    """Drop repeated points and the middle of straight runs."""
    deduped: list[Point] = []
    for point in points:
        if not deduped or point != deduped[-1]:
            deduped.append(point)

    result: list[Point] = []
    for point in deduped:
        if len(result) >= 2:
            a, b = result[-2], result[-1]
            cross = (b.x - a.x) * (point.y - b.y) - (b.y - a.y) * (point.x - b.x)
            dot = (b.x - a.x) * (point.x - b.x) + (b.y - a.y) * (point.y - b.y)
            if cross == 0 and dot > 0:
                result[-1] = point
                continue
        result.append(point)
    return result


def _straight_path(start: Point, end: Point) -> list[PathCommand]:
    return [
        PathCommand(op=PathOp.MOVE, points=(start,)),
        PathCommand(op=PathOp.LINE, points=(end,)),
    ]


def _curved_path(
    start: Point,
    end: Point,
    from_side: Side,
    to_side: Side,
    settings: DiagramSettings,
) -> list[PathCommand]:
    """Cubic Bezier leaving each anchor perpendicular to its table edge."""
    offset = min(_distance(start, end) * settings.curve_factor, settings.max_curve_offset)
    if from_side == to_side:
        # Both ends on the left: make sure the bow clears the table edge
        offset = max(offset, settings.vertical_offset)
    control_from = Point(x=start.x + _outward(from_side) * offset, y=start.y)
    control_to = Point(x=end.x + _outward(to_side) * offset, y=end.y)
    return [
        PathCommand(op=PathOp.MOVE, points=(start,)),
        PathCommand(op=PathOp.CUBIC, points=(control_from, control_to, end)),
    ]


def _orthogonal_waypoints(
    start: Point,
    end: Point,
    from_side: Side,
    to_side: Side,
    settings: DiagramSettings,
) -> list[Point]:
    stub = settings.vertical_offset

    if from_side == to_side:
        # H-V-H through a channel left of both tables
        bow_x = min(start.x, end.x) - stub
        return [start, Point(x=bow_x, y=start.y), Point(x=bow_x, y=end.y), end]

    gap = (end.x - start.x) * _outward(from_side)
    if gap >= 2 * settings.corner_radius:
        # Anchors face each other: H-V-H through the middle
        mid_x = (start.x + end.x) / 2
        return [start, Point(x=mid_x, y=start.y), Point(x=mid_x, y=end.y), end]

    # Overlapping columns: step out of both sides and cross at mid height
    out_x = start.x + _outward(from_side) * stub
    in_x = end.x + _outward(to_side) * stub
    mid_y = (start.y + end.y) / 2
    return [
        start,
        Point(x=out_x, y=start.y),
        Point(x=out_x, y=mid_y),
        Point(x=in_x, y=mid_y),
        Point(x=in_x, y=end.y),
        end,
    ]


def _rounded_path(points: list[Point], radius: float) -> list[PathCommand]:
    """Polyline with each corner replaced by a quadratic curve."""
    commands = [PathCommand(op=PathOp.MOVE, points=(points[0],))]
    for previous, corner, following in zip(points, points[1:], points[2:]):
        r = min(radius, _distance(previous, corner) / 2, _distance(corner, following) / 2)
        if r <= 0:
            commands.append(PathCommand(op=PathOp.LINE, points=(corner,)))
            continue
        commands.append(PathCommand(op=PathOp.LINE, points=(_toward(corner, previous, r),)))
        commands.append(
            PathCommand(op=PathOp.QUADRATIC, points=(corner, _toward(corner, following, r)))
        )
    if len(points) > 1:
        commands.append(PathCommand(op=PathOp.LINE, points=(points[-1],)))
    return commands


def build_path(
    start: Point,
    end: Point,
    from_side: Side,
    to_side: Side,
    style: RoutingStyle,
    settings: Optional[DiagramSettings] = None,
) -> list[PathCommand]:
    """Path commands from `start` to `end` for the given routing style."""
    settings = settings or default_settings
    if style == RoutingStyle.STRAIGHT:
        return _straight_path(start, end)
    if style == RoutingStyle.CURVED:
        return _curved_path(start, end, from_side, to_side, settings)
    waypoints = _simplify(_orthogonal_waypoints(start, end, from_side, to_side, settings))
    return _rounded_path(waypoints, settings.corner_radius)


def _tangent_angle(points: Sequence[Point]) -> float:
    """Direction of travel into the last point, from the last distinct point before it."""
    tip = points[-1]
    for point in reversed(points[:-1]):
        if point != tip:
            return math.atan2(tip.y - point.y, tip.x - point.x)
    return 0.0


def arrow_head(tip: Point, angle: float, size: float) -> ArrowHead:
    """Triangle with its point at `tip`, travelling in direction `angle`."""
    return ArrowHead(
        tip=tip,
        left=Point(
            x=tip.x - size * math.cos(angle - math.pi / 6),
            y=tip.y - size * math.sin(angle - math.pi / 6),
        ),
        right=Point(
            x=tip.x - size * math.cos(angle + math.pi / 6),
            y=tip.y - size * math.sin(angle + math.pi / 6),
        ),
    )


def _scale_path(path: list[PathCommand], factor: float) -> list[PathCommand]:
    return [
        PathCommand(op=command.op, points=tuple(p.scaled(factor) for p in command.points))
        for command in path
    ]


def _scale_head(head: ArrowHead, factor: float) -> ArrowHead:
    return ArrowHead(
        tip=head.tip.scaled(factor),
        left=head.left.scaled(factor),
        right=head.right.scaled(factor),
    )


def route(
    tables: Sequence[Table],
    relationships: Sequence[Relationship],
    scale: float = 1.0,
    style: RoutingStyle = RoutingStyle.CURVED,
    settings: Optional[DiagramSettings] = None,
) -> list[RoutedEdge]:
    """
    Route every relationship whose endpoints resolve.

    Endpoints resolve against the first table with the referenced name and
    the first field with the referenced name. Relationships that do not
    resolve are skipped, never reported.

    Args:
        tables: Positioned (and sized) tables
        relationships: Relationships in extraction order
        scale: Zoom factor applied to every output coordinate
        style: Routing style for the path shape
        settings: Geometry settings (defaults to the module settings)

    Returns:
        One RoutedEdge per resolvable relationship, in relationship order
    """
    settings = settings or default_settings
    style = RoutingStyle(style)

    by_name: dict[str, Table] = {}
    for table in tables:
        by_name.setdefault(table.name, table)

    edges = []
    for index, rel in enumerate(relationships):
        from_table = by_name.get(rel.from_.table)
        to_table = by_name.get(rel.to.table)
        from_index = from_table.field_index(rel.from_.field) if from_table else None
        to_index = to_table.field_index(rel.to.field) if to_table else None
        if from_index is None or to_index is None:
            logger.debug("Skipping unresolved relationship %s %s %s", rel.from_, rel.kind.value, rel.to)
            continue

        from_side, to_side = choose_sides(from_table, to_table)
        start = _anchor(from_table, from_index, from_side, settings)
        end = _anchor(to_table, to_index, to_side, settings)
        path = build_path(start, end, from_side, to_side, style, settings)

        points = [point for command in path for point in command.points]
        heads = []
        if rel.kind.arrow_at_to:
            heads.append(arrow_head(end, _tangent_angle(points), settings.arrow_size))
        if rel.kind.arrow_at_from:
            heads.append(arrow_head(start, _tangent_angle(points[::-1]), settings.arrow_size))

        edges.append(
            RoutedEdge(
                relationship_index=index,
                kind=rel.kind,
                anchor_from=start.scaled(scale),
                anchor_to=end.scaled(scale),
                from_side=from_side,
                to_side=to_side,
                path=_scale_path(path, scale),
                arrow_heads=[_scale_head(head, scale) for head in heads],
            )
        )

    logger.debug("Routed %d of %d relationships (%s)", len(edges), len(relationships), style.value)
    return edges
