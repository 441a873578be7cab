"""
Diagram session - the pipeline and the host-facing state holder.

`build_diagram` is the whole pipeline as one pure function:
    text -> diagnostics            (validation)
    text -> tables, relationships  (extraction, independent of validation)
    (tables, prior positions) -> positions   (only new tables are placed)
    (positioned tables, relationships, style, scale) -> routed edges

`DiagramSession` holds the little state an editor needs between calls
(the text, the position map, the routing style and the zoom) and re-runs
the pipeline whenever one of them changes. Position changes are recorded
as snapshots so drags and re-layouts can be undone.
"""

import logging
from typing import Callable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from .analysis import summarize_schema
from .config import DiagramSettings, settings as default_settings
from .extraction import extract
from .layout import auto_layout as compute_auto_layout, fit_scale, layout, snap_position
from .models import Point, Relationship, RoutedEdge, RoutingStyle, Severity, Size, Table
from .routing import route
from .validation import Diagnostic, validate, validation_summary

logger = logging.getLogger(__name__)


class DiagramState(BaseModel):
    """Everything a renderer needs for one frame. Never mutated after creation."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    text: str = ""
    diagnostics: tuple[Diagnostic, ...] = ()
    tables: tuple[Table, ...] = ()
    relationships: tuple[Relationship, ...] = ()
    edges: tuple[RoutedEdge, ...] = ()
    positions: dict[str, Point] = Field(default_factory=dict)
    canvas: Size = Field(default_factory=Size)
    style: RoutingStyle = RoutingStyle.CURVED
    scale: float = 1.0

    @property
    def is_valid(self) -> bool:
        return not any(d.severity == Severity.ERROR for d in self.diagnostics)

    def table(self, name: str) -> Optional[Table]:
        """First table called `name`, if any."""
        for table in self.tables:
            if table.name == name:
                return table
        return None

    def to_json_dict(self) -> dict:
        return {
            "text": self.text,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "tables": [table.model_dump() for table in self.tables],
            "relationships": [rel.to_json_dict() for rel in self.relationships],
            "edges": [
                {
                    "relationship_index": edge.relationship_index,
                    "label": edge.label,
                    "color": edge.color,
                    "path": edge.svg_path(),
                    "arrow_heads": edge.svg_arrow_heads(),
                }
                for edge in self.edges
            ],
            "style": self.style.value,
            "scale": self.scale,
        }


def build_diagram(
    text: str,
    prior_positions: Optional[Mapping[str, Point]] = None,
    style: RoutingStyle = RoutingStyle.CURVED,
    scale: Optional[float] = None,
    settings: Optional[DiagramSettings] = None,
) -> DiagramState:
    """
    Run validation, extraction, layout and routing over `text`.

    Validation never gates extraction: a text with errors still yields
    whatever tables and relationships could be recognized.

    Args:
        text: Schema source text
        prior_positions: Table name -> position from the previous pass
        style: Routing style for relationship lines
        scale: Zoom factor for routed geometry (defaults to settings)
        settings: Geometry settings (defaults to the module settings)

    Returns:
        DiagramState for the text
    """
    settings = settings or default_settings
    scale = settings.default_scale if scale is None else scale

    validation = validate(text)
    extraction = extract(text)
    placement = layout(extraction.tables, prior_positions, extraction.relationships, settings)
    tables = placement.apply(extraction.tables)
    edges = route(tables, extraction.relationships, scale, style, settings)

    return DiagramState(
        text=text,
        diagnostics=tuple(validation.diagnostics) + tuple(extraction.diagnostics),
        tables=tuple(tables),
        relationships=tuple(extraction.relationships),
        edges=tuple(edges),
        positions=placement.positions,
        canvas=placement.canvas,
        style=RoutingStyle(style),
        scale=scale,
    )


class DiagramSession:
    """
    Holds an editor's diagram state and re-runs the pipeline on change.

    Features:
    - Positions survive text edits (matched by table name)
    - Snapshot-based undo/redo of position changes (drags, auto layout)
    - Zoom clamped to the configured range
    - Change callbacks receiving the new DiagramState

    Only position changes enter the history; text has its own undo in
    whatever editor hosts the session.
    """

    def __init__(
        self,
        text: str = "",
        style: RoutingStyle = RoutingStyle.CURVED,
        scale: Optional[float] = None,
        settings: Optional[DiagramSettings] = None,
        max_history: int = 100,
    ):
        self._settings = settings or default_settings
        self._text = text
        self._style = RoutingStyle(style)
        self._scale = self._clamp_scale(self._settings.default_scale if scale is None else scale)
        self._positions: dict[str, Point] = {}
        self._history: list[dict[str, Point]] = []  # Past position maps
        self._future: list[dict[str, Point]] = []   # Undone position maps (for redo)
        self._max_history = max_history
        self._on_change_callbacks: list[Callable[[DiagramState], None]] = []
        self._state = self._rebuild()

    # --- Properties ---

    @property
    def state(self) -> DiagramState:
        """The current diagram state."""
        return self._state

    @property
    def text(self) -> str:
        return self._text

    @property
    def positions(self) -> dict[str, Point]:
        return dict(self._positions)

    @property
    def style(self) -> RoutingStyle:
        return self._style

    @property
    def scale(self) -> float:
        return self._scale

    @property
    def can_undo(self) -> bool:
        return len(self._history) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._future) > 0

    # --- Change Callbacks ---

    def on_change(self, callback: Callable[[DiagramState], None]):
        """Register a callback for state changes."""
        self._on_change_callbacks.append(callback)

    def _notify_change(self):
        for callback in self._on_change_callbacks:
            callback(self._state)

    # --- Pipeline ---

    def _rebuild(self) -> DiagramState:
        state = build_diagram(self._text, self._positions, self._style, self._scale, self._settings)
        # Positions of tables no longer in the text are dropped
        self._positions = dict(state.positions)
        return state

    def _refresh(self) -> DiagramState:
        self._state = self._rebuild()
        self._notify_change()
        return self._state

    # --- History Management ---

    def _save_to_history(self):
        """Save the current position map before a position change."""
        self._future.clear()
        self._history.append(dict(self._positions))
        if len(self._history) > self._max_history:
            self._history.pop(0)

    def _restore_positions(self, snapshot: dict[str, Point]):
        """Apply a snapshot; tables it does not know keep their current position."""
        self._positions = {**self._positions, **snapshot}

    def undo(self) -> Optional[DiagramState]:
        """Undo the last position change."""
        if not self.can_undo:
            return None
        self._future.append(dict(self._positions))
        self._restore_positions(self._history.pop())
        return self._refresh()

    def redo(self) -> Optional[DiagramState]:
        """Redo the last undone position change."""
        if not self.can_redo:
            return None
        self._history.append(dict(self._positions))
        self._restore_positions(self._future.pop())
        return self._refresh()

    # --- Text ---

    def update_text(self, text: str) -> DiagramState:
        """Replace the schema text; known tables keep their positions."""
        self._text = text
        return self._refresh()

    # --- Positions ---

    def move_table(self, name: str, x: float, y: float) -> DiagramState:
        """
        Move a table (drag). The position is snapped when a snap grid is set.

        Raises:
            ValueError: If no table called `name` is on the diagram
        """
        if name not in self._positions:
            raise ValueError(f"Table not found: {name}")

        self._save_to_history()
        self._positions[name] = snap_position(Point(x=x, y=y), self._settings.snap_grid)
        return self._refresh()

    def auto_layout(self) -> DiagramState:
        """Relocate every table, clustering related tables together."""
        result = compute_auto_layout(self._state.tables, self._state.relationships, self._settings)
        self._save_to_history()
        self._positions = dict(result.positions)
        logger.debug("Auto layout moved %d tables", len(result.positions))
        return self._refresh()

    # --- Style ---

    def set_style(self, style: RoutingStyle) -> DiagramState:
        self._style = RoutingStyle(style)
        return self._refresh()

    def toggle_line_style(self) -> DiagramState:
        """Switch between straight and curved lines (orthogonal switches to straight)."""
        if self._style == RoutingStyle.STRAIGHT:
            return self.set_style(RoutingStyle.CURVED)
        return self.set_style(RoutingStyle.STRAIGHT)

    # --- Zoom ---

    def _clamp_scale(self, scale: float) -> float:
        clamped = min(max(scale, self._settings.min_scale), self._settings.max_scale)
        return round(clamped, 2)

    def set_scale(self, scale: float) -> DiagramState:
        self._scale = self._clamp_scale(scale)
        return self._refresh()

    def zoom_in(self) -> DiagramState:
        return self.set_scale(self._scale + self._settings.scale_step)

    def zoom_out(self) -> DiagramState:
        return self.set_scale(self._scale - self._settings.scale_step)

    def reset_zoom(self) -> DiagramState:
        return self.set_scale(self._settings.reset_scale)

    def fit_to_view(self, viewport_width: float, viewport_height: float) -> DiagramState:
        """
        Zoom so the whole diagram fits the viewport.

        The fitted scale is capped at 1.0 but not raised to the minimum zoom,
        so very large diagrams still fit entirely.

        Raises:
            ValueError: If the viewport is not positive
        """
        self._scale = round(
            fit_scale(self._state.tables, viewport_width, viewport_height, self._settings), 4
        )
        return self._refresh()

    # --- Status ---

    def summary(self) -> dict:
        """Diagnostic counts, jump target and schema counts for a status bar."""
        state = self._state
        return {
            "validation": validation_summary(state.diagnostics),
            "schema": summarize_schema(state.tables, state.relationships).to_dict(),
            "style": state.style.value,
            "scale": state.scale,
        }
