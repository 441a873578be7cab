"""
Diagram settings - geometry and viewport constants.

Every layout, routing and zoom constant lives here so hosts can tune the
diagram without patching code. Values can be overridden from the
environment with the ``SCHEMA_DIAGRAM_`` prefix, e.g.
``SCHEMA_DIAGRAM_TABLE_WIDTH=320``.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DiagramSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SCHEMA_DIAGRAM_", extra="ignore")

    # Table box geometry
    table_width: float = 280
    header_height: float = 40
    row_height: float = 36
    min_table_height: float = 76
    max_table_height: float = 1120

    # Grid placement
    spacing_x: float = 60
    spacing_y: float = 60
    canvas_margin: float = 100
    min_canvas_width: float = 0

    # Auto layout (grouping)
    max_group_size: int = Field(default=6, ge=1)
    auto_layout_row_width: float = 2400
    group_spacing: float = 120

    # Edge routing
    arrow_size: float = 8
    curve_factor: float = 0.5
    max_curve_offset: float = 150
    corner_radius: float = 10
    vertical_offset: float = 30

    # Viewport
    default_scale: float = 0.8
    reset_scale: float = 1.0
    min_scale: float = 0.3
    max_scale: float = 2.0
    scale_step: float = 0.1
    fit_padding: float = 50
    snap_grid: int = 0


settings = DiagramSettings()
