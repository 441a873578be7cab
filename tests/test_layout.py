"""Tests for table placement and viewport helpers."""

from itertools import combinations

import pytest

from schema_diagram.config import DiagramSettings
from schema_diagram.extraction import extract
from schema_diagram.layout import (
    auto_layout,
    fit_scale,
    grid_columns,
    layout,
    snap_position,
    table_height,
)
from schema_diagram.models import Point, Size, Table


def overlaps(first: tuple[Point, Size], second: tuple[Point, Size]) -> bool:
    (a, a_size), (b, b_size) = first, second
    return (
        a.x < b.x + b_size.width
        and b.x < a.x + a_size.width
        and a.y < b.y + b_size.height
        and b.y < a.y + a_size.height
    )


def assert_no_collisions(result) -> None:
    boxes = [(result.positions[name], result.sizes[name]) for name in result.positions]
    for first, second in combinations(boxes, 2):
        assert not overlaps(first, second)


def fresh_tables(count: int) -> list[Table]:
    return [Table(name=f"t{index}") for index in range(count)]


@pytest.mark.parametrize(("count", "columns"), [(0, 0), (1, 1), (2, 2), (3, 3), (4, 4), (5, 4), (10, 4)])
def test_grid_column_breakpoints(count: int, columns: int) -> None:
    assert grid_columns(count) == columns


@pytest.mark.parametrize(("count", "columns"), [(1, 1), (2, 2), (3, 3), (5, 4), (10, 4)])
def test_fresh_layout_uses_breakpoint_grid(count: int, columns: int) -> None:
    result = layout(fresh_tables(count))

    assert result.columns == columns
    assert len(result.positions) == count
    assert len({(p.x, p.y) for p in result.positions.values()}) == count
    assert len({p.x for p in result.positions.values()}) == columns
    assert_no_collisions(result)


def test_fresh_layout_is_centered_at_margin() -> None:
    result = layout(fresh_tables(2))

    assert result.positions["t0"] == Point(x=100, y=100)
    assert result.positions["t1"] == Point(x=440, y=100)
    assert result.canvas.width == 820


def test_table_height_is_clamped() -> None:
    assert table_height(0) == 76
    assert table_height(1) == 76
    assert table_height(2) == 112
    assert table_height(100) == 1120


def test_existing_positions_are_preserved() -> None:
    tables = [Table(name="A"), Table(name="B")]

    result = layout(tables, {"A": Point(x=50, y=50)})

    assert result.positions["A"] == Point(x=50, y=50)
    assert result.placed == ["B"]
    # New tables go below everything already placed
    assert result.positions["B"].y == 50 + 76 + 60
    assert_no_collisions(result)


def test_many_new_tables_never_overlap_existing() -> None:
    tables = fresh_tables(7)
    existing = {"t0": Point(x=900, y=300), "t3": Point(x=20, y=40)}

    result = layout(tables, existing)

    assert result.positions["t0"] == existing["t0"]
    assert result.positions["t3"] == existing["t3"]
    assert len(result.placed) == 5
    assert_no_collisions(result)


def test_existing_positions_accept_plain_pairs() -> None:
    result = layout([Table(name="A")], {"A": (10, 20)})
    assert result.positions["A"] == Point(x=10, y=20)


def test_relationships_do_not_affect_grid(blog_text: str) -> None:
    schema = extract(blog_text)

    with_refs = layout(schema.tables, {}, schema.relationships)
    without_refs = layout(schema.tables, {})

    assert with_refs.positions == without_refs.positions


def test_duplicate_names_share_one_position() -> None:
    result = layout([Table(name="A"), Table(name="A")])
    assert list(result.positions) == ["A"]


def test_layout_is_deterministic(blog_text: str) -> None:
    tables = extract(blog_text).tables
    assert layout(tables) == layout(tables)


def test_apply_returns_positioned_copies() -> None:
    tables = fresh_tables(2)

    positioned = layout(tables).apply(tables)

    assert positioned[1].position == Point(x=440, y=100)
    assert positioned[1].size == Size(width=280, height=76)
    assert tables[1].position == Point(x=0, y=0)


def test_auto_layout_clusters_related_tables(blog_text: str) -> None:
    schema = extract(blog_text)

    result = auto_layout(schema.tables, schema.relationships)

    cluster = [result.positions[name] for name in ("users", "posts", "comments")]
    assert {p.y for p in cluster} == {100}
    assert [p.x for p in cluster] == [100, 440, 780]
    assert result.positions["tags"] == Point(x=1180, y=100)
    assert_no_collisions(result)


def test_auto_layout_wraps_rows() -> None:
    settings = DiagramSettings(auto_layout_row_width=500)

    result = auto_layout(fresh_tables(3), [], settings)

    assert result.positions["t0"] == Point(x=100, y=100)
    assert result.positions["t1"] == Point(x=100, y=296)
    assert_no_collisions(result)


def test_auto_layout_of_nothing() -> None:
    assert auto_layout([], []).positions == {}


def test_fit_scale_shrinks_large_diagrams(make_table) -> None:
    tables = [make_table("a", 0, 0), make_table("b", 2000, 1000)]

    # Content with padding is 2380 x 1176
    assert fit_scale(tables, 1190, 1176) == pytest.approx(0.5)


def test_fit_scale_never_enlarges(make_table) -> None:
    assert fit_scale([make_table("a")], 4000, 4000) == 1.0
    assert fit_scale([], 800, 600) == 1.0


@pytest.mark.parametrize(("width", "height"), [(0, 600), (800, -1)])
def test_fit_scale_rejects_empty_viewport(width: float, height: float) -> None:
    with pytest.raises(ValueError):
        fit_scale([], width, height)


def test_snap_position() -> None:
    assert snap_position(Point(x=23, y=47), 20) == Point(x=20, y=40)
    assert snap_position(Point(x=23, y=47), 0) == Point(x=23, y=47)
