"""
Schema Diagram - Text-to-diagram core for database schema editors.

Validates schema text, extracts tables and relationships, lays tables out on
a canvas and routes relationship lines. Every stage is a plain function;
`DiagramSession` strings them together for an interactive editor.
"""

from .models import (
    # Enums
    Severity,
    RelationshipKind,
    RoutingStyle,
    Side,
    PathOp,
    # Core models
    Point,
    Size,
    TableField,
    Table,
    Endpoint,
    Relationship,
    # Routed geometry
    PathCommand,
    ArrowHead,
    RoutedEdge,
)

from .config import DiagramSettings, settings
from .validation import Diagnostic, ValidationResult, validate, validation_summary, first_problem
from .extraction import ExtractionResult, extract
from .analysis import (
    calculate_table_connections,
    find_dangling_relationships,
    find_table_groups,
    summarize_schema,
)
from .layout import LayoutResult, auto_layout, fit_scale, grid_columns, layout, snap_position
from .routing import route
from .session import DiagramSession, DiagramState, build_diagram

__all__ = [
    # Enums
    "Severity",
    "RelationshipKind",
    "RoutingStyle",
    "Side",
    "PathOp",
    # Models
    "Point",
    "Size",
    "TableField",
    "Table",
    "Endpoint",
    "Relationship",
    "PathCommand",
    "ArrowHead",
    "RoutedEdge",
    # Configuration
    "DiagramSettings",
    "settings",
    # Validation
    "Diagnostic",
    "ValidationResult",
    "validate",
    "validation_summary",
    "first_problem",
    # Extraction
    "ExtractionResult",
    "extract",
    # Analysis
    "calculate_table_connections",
    "find_dangling_relationships",
    "find_table_groups",
    "summarize_schema",
    # Layout
    "LayoutResult",
    "layout",
    "auto_layout",
    "grid_columns",
    "fit_scale",
    "snap_position",
    # Routing
    "route",
    # Session
    "DiagramSession",
    "DiagramState",
    "build_diagram",
]
