from __future__ import annotations

import logging
from typing import Iterator

import settings
from batch_generator import RowResult, run_batch
from coordinates import CoordinateTransformer, scale_ratio_for
from errors import FieldNotFoundError
from field_model import Field, FieldStyle, field_id_for
from sources import TabularData, Template, load_tabular, load_template

logger = logging.getLogger(__name__)

NEW_FIELD_X = 100.0
NEW_FIELD_Y = 100.0
NEW_FIELD_SPACING = 50.0


def clamp_zoom(value: float) -> float:
    return max(settings.ZOOM_MIN, min(settings.ZOOM_MAX, float(value)))


class EditorSession:
    """In-memory state of one editing session.

    Holds the uploaded template and data plus the placed fields. Nothing is
    persisted; replacing either upload discards every field.
    """

    def __init__(self) -> None:
        self.template: Template | None = None
        self.table: TabularData = TabularData()
        self.fields: list[Field] = []
        self.zoom: float = 1.0
        self.displayed_width: float | None = None

    # -- uploads -----------------------------------------------------------

    def load_template(self, data: bytes) -> Template:
        template = load_template(data)
        self.template = template
        self.displayed_width = None
        self.clear_fields()
        return template

    def load_data(self, data: bytes, filename: str) -> TabularData:
        table = load_tabular(data, filename)
        self.table = table
        self.clear_fields()
        return table

    # -- measurement -------------------------------------------------------

    @property
    def scale_ratio(self) -> float | None:
        if self.template is None:
            return None
        return scale_ratio_for(self.displayed_width, self.template.page_width)

    def set_display_width(self, displayed_width: float) -> float | None:
        self.displayed_width = float(displayed_width)
        return self.scale_ratio

    def transformer(self) -> CoordinateTransformer:
        page_h = self.template.page_height if self.template else 0.0
        return CoordinateTransformer(scale_ratio=self.scale_ratio, page_height=page_h)

    def set_zoom(self, value: float) -> float:
        self.zoom = clamp_zoom(value)
        return self.zoom

    # -- fields ------------------------------------------------------------

    @property
    def selected_columns(self) -> list[str]:
        return [f.name for f in self.fields]

    def clear_fields(self) -> None:
        self.fields = []

    def get_field(self, field_id: str) -> Field:
        for field in self.fields:
            if field.id == field_id:
                return field
        raise FieldNotFoundError(f"Field not found: {field_id}")

    def add_field(self, name: str) -> Field:
        field_id = field_id_for(name)
        for existing in self.fields:
            if existing.id == field_id:
                return existing
        field = Field.for_column(
            name,
            x=NEW_FIELD_X,
            y=NEW_FIELD_Y + len(self.fields) * NEW_FIELD_SPACING,
        )
        self.fields.append(field)
        return field

    def remove_field(self, field_id: str) -> None:
        field = self.get_field(field_id)
        self.fields.remove(field)

    def toggle_field(self, name: str) -> Field | None:
        """Select a column, or deselect it if it already has a field."""
        field_id = field_id_for(name)
        if any(f.id == field_id for f in self.fields):
            self.remove_field(field_id)
            return None
        return self.add_field(name)

    def move_field(self, field_id: str, x: float, y: float) -> Field:
        field = self.get_field(field_id)
        field.x = float(x)
        field.y = float(y)
        return field

    def drag_field(self, field_id: str, dx: float, dy: float) -> Field:
        """Apply a pointer drag measured in zoomed screen pixels."""
        field = self.get_field(field_id)
        field.x += float(dx) / self.zoom
        field.y += float(dy) / self.zoom
        return field

    def update_style(self, field_id: str, style: FieldStyle) -> Field:
        field = self.get_field(field_id)
        field.style = style
        return field

    def update_offset(self, field_id: str, offset_x: float, offset_y: float) -> Field:
        field = self.get_field(field_id)
        field.offset_x = float(offset_x)
        field.offset_y = float(offset_y)
        return field

    # -- output ------------------------------------------------------------

    def generate(self) -> Iterator[RowResult]:
        return run_batch(
            self.template,
            self.fields,
            self.table.rows,
            scale_ratio=self.scale_ratio,
        )
