"""Tests for relationship graph analysis."""

import pytest

from schema_diagram.analysis import (
    calculate_table_connections,
    find_dangling_relationships,
    find_table_groups,
    summarize_schema,
)
from schema_diagram.extraction import extract


@pytest.fixture(name="blog")
def extracted_blog(blog_text: str):
    return extract(blog_text)


def test_connection_counts(blog) -> None:
    connections = calculate_table_connections(blog.tables, blog.relationships)

    assert list(connections) == ["users", "posts", "comments", "tags"]
    assert (connections["users"].incoming, connections["users"].outgoing) == (2, 0)
    assert (connections["posts"].incoming, connections["posts"].outgoing) == (1, 1)
    assert (connections["comments"].incoming, connections["comments"].outgoing) == (0, 2)
    assert connections["tags"].total == 0


def test_groups_cluster_connected_tables(blog) -> None:
    groups = find_table_groups(blog.tables, blog.relationships)

    assert [group.table_names for group in groups] == [["users", "posts", "comments"], ["tags"]]
    assert groups[0].connectivity == 6
    assert groups[1].connectivity == 0


def test_group_size_is_capped(blog) -> None:
    groups = find_table_groups(blog.tables, blog.relationships, max_group_size=2)

    assert [group.table_names for group in groups] == [["users", "posts"], ["comments"], ["tags"]]
    assert sum(group.size for group in groups) == 4


def test_groups_ignore_unknown_tables_and_self_references() -> None:
    result = extract(
        "Table a {\n  id int\n  parent_id int [ref: > a.id]\n}\n"
        "Table b {\n  id int\n}\n"
        "Ref: b.id > ghost.id"
    )

    groups = find_table_groups(result.tables, result.relationships)

    assert sorted(group.table_names for group in groups) == [["a"], ["b"]]


def test_groups_of_empty_schema() -> None:
    assert find_table_groups([], []) == []


def test_dangling_relationships() -> None:
    result = extract(
        "Table orders {\n  id int\n  user_id int\n}\n"
        "Table users {\n  id int\n}\n"
        "Ref: orders.user_id > users.id\n"
        "Ref: orders.user_id > accounts.id\n"
        "Ref: orders.missing > users.id\n"
    )

    assert find_dangling_relationships(result.tables, result.relationships) == [1, 2]


def test_schema_summary(blog) -> None:
    summary = summarize_schema(blog.tables, blog.relationships, top_n=2)

    assert summary.total_tables == 4
    assert summary.total_fields == 8
    assert summary.total_relationships == 3
    assert summary.orphan_tables == ["tags"]
    assert summary.dangling_relationships == []
    assert [info.table_name for info in summary.most_connected_tables] == ["users", "posts"]

    data = summary.to_dict()
    assert data["most_connected_tables"][0] == {
        "name": "users",
        "connections": 2,
        "incoming": 2,
        "outgoing": 0,
    }
