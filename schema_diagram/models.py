"""
Core data models for schema diagrams.

These models define the canonical shape of everything the core produces:
- Tables with ordered fields, a position and a size
- Relationships between table fields (by name, never by object reference)
- Routed edges with path and arrowhead geometry ready for drawing

Naming Convention:
- Relationships use `from_` / `to` on the Python side (`from` is a keyword)
- JSON serialization outputs `from` / `to` to match the schema text
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """Severity levels for diagnostics."""
    ERROR = "error"      # Text cannot be trusted to describe a coherent schema
    WARNING = "warning"  # Advisory, never blocks extraction or layout


class RelationshipKind(str, Enum):
    """Relationship operators of the schema language."""
    ONE_TO_ONE = "-"
    ONE_TO_MANY = ">"
    MANY_TO_ONE = "<"
    MANY_TO_MANY = "<>"

    @property
    def label(self) -> str:
        return _KIND_LABELS[self]

    @property
    def color(self) -> str:
        return _KIND_COLORS[self]

    @property
    def arrow_at_from(self) -> bool:
        return self in (RelationshipKind.MANY_TO_ONE, RelationshipKind.MANY_TO_MANY)

    @property
    def arrow_at_to(self) -> bool:
        return self in (RelationshipKind.ONE_TO_MANY, RelationshipKind.MANY_TO_MANY)


_KIND_LABELS = {
    RelationshipKind.ONE_TO_ONE: "1:1",
    RelationshipKind.ONE_TO_MANY: "1:N",
    RelationshipKind.MANY_TO_ONE: "N:1",
    RelationshipKind.MANY_TO_MANY: "N:N",
}

_KIND_COLORS = {
    RelationshipKind.ONE_TO_ONE: "#722ed1",
    RelationshipKind.ONE_TO_MANY: "#1890ff",
    RelationshipKind.MANY_TO_ONE: "#52c41a",
    RelationshipKind.MANY_TO_MANY: "#fa8c16",
}


class RoutingStyle(str, Enum):
    """Shapes available for relationship lines."""
    STRAIGHT = "straight"
    CURVED = "curved"
    ORTHOGONAL = "orthogonal"


class Side(str, Enum):
    """Table edge an anchor sits on."""
    LEFT = "left"
    RIGHT = "right"


class PathOp(str, Enum):
    """SVG-style path operations emitted by the router."""
    MOVE = "M"
    LINE = "L"
    QUADRATIC = "Q"
    CUBIC = "C"


class Point(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float = 0
    y: float = 0

    def scaled(self, factor: float) -> "Point":
        return Point(x=self.x * factor, y=self.y * factor)


class Size(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: float = 0
    height: float = 0


class TableField(BaseModel):
    """A column of a table. Order inside the table is display order."""
    name: str
    type: str
    is_primary_key: bool = False
    note: Optional[str] = None
    unique: bool = False
    not_null: bool = False
    increment: bool = False
    default: Optional[str] = None


class Table(BaseModel):
    """
    A table box on the canvas.

    Name uniqueness is a soft invariant: duplicate names are legal input and
    only flagged by the validator. Position is the only attribute carried
    across re-extractions (matched by name).
    """
    name: str
    alias: Optional[str] = None
    fields: list[TableField] = Field(default_factory=list)
    position: Point = Field(default_factory=Point)
    size: Size = Field(default_factory=Size)
    color: Optional[str] = None
    note: Optional[str] = None

    def field_index(self, field_name: str) -> Optional[int]:
        """0-based index of the first field called `field_name`."""
        for index, table_field in enumerate(self.fields):
            if table_field.name == field_name:
                return index
        return None

    def center(self) -> tuple[float, float]:
        """Get the center point of the table box."""
        return (
            self.position.x + self.size.width / 2,
            self.position.y + self.size.height / 2,
        )

    def bounds(self) -> tuple[float, float, float, float]:
        """Get the bounding box (x, y, right, bottom)."""
        return (
            self.position.x,
            self.position.y,
            self.position.x + self.size.width,
            self.position.y + self.size.height,
        )


class Endpoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    table: str
    field: str

    def __str__(self) -> str:
        return f"{self.table}.{self.field}"


class Relationship(BaseModel):
    """
    A relationship between two table fields.

    Endpoints are names only; they are not checked against the table list.
    Dangling relationships are kept and simply produce no routed edge.
    """
    model_config = ConfigDict(populate_by_name=True)

    from_: Endpoint = Field(alias="from")
    to: Endpoint
    kind: RelationshipKind

    def to_json_dict(self) -> dict:
        return {
            "from": self.from_.model_dump(),
            "to": self.to.model_dump(),
            "kind": self.kind.value,
        }


class PathCommand(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: PathOp
    points: tuple[Point, ...] = ()

    def to_svg(self) -> str:
        coords = " ".join(f"{_fmt(p.x)} {_fmt(p.y)}" for p in self.points)
        return f"{self.op.value} {coords}"


class ArrowHead(BaseModel):
    """Filled triangle; `tip` sits on the anchor point."""
    model_config = ConfigDict(frozen=True)

    tip: Point
    left: Point
    right: Point

    def to_svg(self) -> str:
        return (
            f"M {_fmt(self.tip.x)} {_fmt(self.tip.y)} "
            f"L {_fmt(self.left.x)} {_fmt(self.left.y)} "
            f"L {_fmt(self.right.x)} {_fmt(self.right.y)} Z"
        )


class RoutedEdge(BaseModel):
    """Drawable geometry for one relationship, already scaled by the zoom factor."""
    relationship_index: int
    kind: RelationshipKind
    anchor_from: Point
    anchor_to: Point
    from_side: Side
    to_side: Side
    path: list[PathCommand] = Field(default_factory=list)
    arrow_heads: list[ArrowHead] = Field(default_factory=list)

    @property
    def label(self) -> str:
        return self.kind.label

    @property
    def color(self) -> str:
        return self.kind.color

    def svg_path(self) -> str:
        """The line as an SVG path `d` attribute."""
        return " ".join(command.to_svg() for command in self.path)

    def svg_arrow_heads(self) -> str:
        return " ".join(head.to_svg() for head in self.arrow_heads)


def _fmt(value: float) -> str:
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return "0" if text == "-0" else text
