"""Shared fixtures for the schema diagram tests."""

from collections.abc import Callable, Sequence

import pytest

from schema_diagram.layout import table_size
from schema_diagram.models import Point, Table, TableField


@pytest.fixture(name="end_to_end_text")
def two_table_schema_text() -> str:
    """Two tables joined by one standalone one-to-many reference."""
    return "Table A { id int [pk] }\nTable B { id int [pk]\n a_id int }\nRef: B.a_id > A.id"


@pytest.fixture(name="blog_text")
def blog_schema_text() -> str:
    """A small blog schema with inline and standalone references and one orphan."""
    return """\
Table users {
  id int [pk]
  name varchar
}

Table posts {
  id int [pk]
  user_id int [ref: > users.id]
}

Table comments {
  id int [pk]
  post_id int [ref: > posts.id]
  user_id int
}

Table tags {
  id int [pk]
}

Ref: comments.user_id > users.id
"""


@pytest.fixture(name="make_table")
def table_factory() -> Callable[..., Table]:
    """Build a sized table at a given position."""

    def make(name: str, x: float = 0, y: float = 0, fields: Sequence[str] = ("id",)) -> Table:
        table = Table(
            name=name,
            fields=[TableField(name=field_name, type="int") for field_name in fields],
            position=Point(x=x, y=y),
        )
        return table.model_copy(update={"size": table_size(table)})

    return make
