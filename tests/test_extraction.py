"""Tests for schema extraction."""

import pytest

from schema_diagram import extraction
from schema_diagram.extraction import extract
from schema_diagram.models import RelationshipKind


def endpoints(relationship) -> tuple[str, str, str, str]:
    return (
        relationship.from_.table,
        relationship.from_.field,
        relationship.to.table,
        relationship.to.field,
    )


def test_end_to_end_extraction(end_to_end_text: str) -> None:
    result = extract(end_to_end_text)

    assert result.table_names() == ["A", "B"]
    table_a, table_b = result.tables
    assert [f.name for f in table_a.fields] == ["id"]
    assert table_a.fields[0].is_primary_key
    assert [f.name for f in table_b.fields] == ["id", "a_id"]
    assert not table_b.fields[1].is_primary_key

    assert len(result.relationships) == 1
    relationship = result.relationships[0]
    assert endpoints(relationship) == ("B", "a_id", "A", "id")
    assert relationship.kind == RelationshipKind.ONE_TO_MANY
    assert result.diagnostics == []


def test_tables_start_at_origin(end_to_end_text: str) -> None:
    for table in extract(end_to_end_text).tables:
        assert (table.position.x, table.position.y) == (0, 0)


def test_empty_text() -> None:
    result = extract("")
    assert result.tables == []
    assert result.relationships == []


def test_field_settings_and_table_settings() -> None:
    text = """\
Table users as U [headercolor: #3498DB] {
  id integer [pk, increment]
  email varchar(255) [unique, not null, note: 'login, lower-case']
  status varchar [default: 'active']
  created_at timestamp [default: `now()`]
  Note: 'Registered users'
}
"""
    table = extract(text).tables[0]

    assert table.name == "users"
    assert table.alias == "U"
    assert table.color == "#3498DB"
    assert table.note == "Registered users"

    id_field, email, status, created_at = table.fields
    assert id_field.is_primary_key and id_field.increment
    assert email.type == "varchar(255)"
    assert email.unique and email.not_null
    assert email.note == "login, lower-case"
    assert not email.is_primary_key
    assert status.default == "'active'"
    assert created_at.default == "`now()`"


def test_primary_key_spelled_out() -> None:
    table = extract("Table a {\n  code char(3) [primary key]\n}").tables[0]
    assert table.fields[0].is_primary_key


def test_inline_reference_anchors_to_current_field(blog_text: str) -> None:
    result = extract(blog_text)

    assert [endpoints(rel) for rel in result.relationships] == [
        ("posts", "user_id", "users", "id"),
        ("comments", "post_id", "posts", "id"),
        ("comments", "user_id", "users", "id"),
    ]
    assert all(rel.kind == RelationshipKind.ONE_TO_MANY for rel in result.relationships)


def test_alias_references_resolve_to_table_name() -> None:
    text = "Table users as U {\n  id int\n}\nTable posts {\n  user_id int [ref: > U.id]\n}"

    relationship = extract(text).relationships[0]

    assert endpoints(relationship) == ("posts", "user_id", "users", "id")


def test_standalone_reference_forms_in_text_order() -> None:
    text = """\
Table a {
  id int
  b_id int
}
Table b {
  id int
}
Ref fk_ab: a.b_id > b.id
Ref {
  b.id - a.id
}
Ref: a.id <> b.id
"""
    result = extract(text)

    assert [endpoints(rel) for rel in result.relationships] == [
        ("a", "b_id", "b", "id"),
        ("b", "id", "a", "id"),
        ("a", "id", "b", "id"),
    ]
    assert [rel.kind for rel in result.relationships] == [
        RelationshipKind.ONE_TO_MANY,
        RelationshipKind.ONE_TO_ONE,
        RelationshipKind.MANY_TO_MANY,
    ]


def test_dangling_reference_is_kept() -> None:
    result = extract("Table orders {\n  user_id int\n}\nRef: orders.user_id > users.id")

    assert result.table_names() == ["orders"]
    assert endpoints(result.relationships[0]) == ("orders", "user_id", "users", "id")


def test_schema_qualified_reference() -> None:
    text = "Table core.users {\n  id int\n}\nTable a {\n  uid int\n}\nRef: core.users.id < a.uid"
    result = extract(text)

    assert result.table_names() == ["core.users", "a"]
    assert endpoints(result.relationships[0]) == ("core.users", "id", "a", "uid")
    assert result.relationships[0].kind == RelationshipKind.MANY_TO_ONE


def test_quoted_names() -> None:
    text = 'Table "order items" {\n  "item id" int [pk]\n}'
    table = extract(text).tables[0]

    assert table.name == "order items"
    assert table.fields[0].name == "item id"
    assert table.fields[0].is_primary_key


def test_nested_blocks_hold_no_fields() -> None:
    text = """\
Table a {
  id int
  indexes {
    (id, name) [unique]
  }
  Note {
    'multi line'
  }
  name varchar
}
"""
    table = extract(text).tables[0]
    assert [f.name for f in table.fields] == ["id", "name"]


def test_unterminated_body_stops_at_next_table() -> None:
    result = extract("Table a {\n  id int\nTable b {\n  id int\n}")

    assert result.table_names() == ["a", "b"]
    assert [len(table.fields) for table in result.tables] == [1, 1]


def test_comments_are_ignored() -> None:
    text = "// Table ghost {\nTable a { // trailing\n  id int // [pk]\n}"
    result = extract(text)

    assert result.table_names() == ["a"]
    assert not result.tables[0].fields[0].is_primary_key


def test_duplicate_tables_are_kept() -> None:
    result = extract("Table a {\n  id int\n}\nTable a {\n  x int\n}")
    assert result.table_names() == ["a", "a"]


def test_extraction_ignores_validation_errors() -> None:
    result = extract("Table a {\n  id int\n  broken\n  name varchar\n}\n}")

    assert [f.name for f in result.tables[0].fields] == ["id", "name"]


def test_extraction_is_idempotent(blog_text: str) -> None:
    assert extract(blog_text) == extract(blog_text)


def test_internal_failure_keeps_partial_result(
    monkeypatch: pytest.MonkeyPatch,
    end_to_end_text: str,
) -> None:
    def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(extraction, "parse_standalone_refs", broken)

    result = extract(end_to_end_text)

    assert result.table_names() == ["A", "B"]
    assert [d.code for d in result.diagnostics] == ["INTERNAL_ERROR"]
    assert result.diagnostics[0].source == "validation"
    assert "Internal extraction error" in result.diagnostics[0].message


def test_relationship_json_uses_from_key(end_to_end_text: str) -> None:
    data = extract(end_to_end_text).to_dict()

    assert data["relationships"] == [
        {"from": {"table": "B", "field": "a_id"}, "to": {"table": "A", "field": "id"}, "kind": ">"}
    ]
