from __future__ import annotations

import hashlib
import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

import settings

FONT_FAMILIES: tuple[str, ...] = (
    "Arial",
    "Times New Roman",
    "Courier New",
    "Georgia",
    "Verdana",
    "Helvetica",
)

_NAMED_COLORS: dict[str, tuple[int, int, int]] = {
    "black": (0, 0, 0),
    "white": (255, 255, 255),
    "red": (255, 0, 0),
    "green": (0, 128, 0),
    "blue": (0, 0, 255),
    "yellow": (255, 255, 0),
    "gray": (128, 128, 128),
    "grey": (128, 128, 128),
}


_ID_SAFE = re.compile(r"^[A-Za-z0-9_-]+$")


def field_id_for(name: str) -> str:
    """Deterministic, URL-safe field id for a column name."""
    if _ID_SAFE.match(name):
        return f"field-{name}"
    slug = re.sub(r"[^A-Za-z0-9]+", "-", name).strip("-") or "column"
    digest = hashlib.sha1(name.encode("utf-8")).hexdigest()[:8]
    return f"field-{slug}-{digest}"


def parse_color(value) -> tuple[int, int, int]:
    """Accept ``#rgb``, ``#rrggbb``, ``rgb(r, g, b)``, a color name or a 3-sequence."""
    if isinstance(value, str):
        s = value.strip().lower()
        if s in _NAMED_COLORS:
            return _NAMED_COLORS[s]
        if s.startswith("#"):
            hexv = s[1:]
            if len(hexv) == 3:
                hexv = "".join(ch * 2 for ch in hexv)
            if len(hexv) == 6 and all(ch in "0123456789abcdef" for ch in hexv):
                return (int(hexv[0:2], 16), int(hexv[2:4], 16), int(hexv[4:6], 16))
        m = re.match(r"rgb\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*\)", s)
        if m:
            return tuple(max(0, min(255, int(m.group(i)))) for i in (1, 2, 3))
        raise ValueError(f"Unrecognised color: {value!r}")
    if isinstance(value, (list, tuple)) and len(value) == 3:
        if any(isinstance(c, bool) or not isinstance(c, (int, float)) for c in value):
            raise ValueError("Color channels must be numbers.")
        if any(isinstance(c, float) and not c.is_integer() for c in value):
            raise ValueError("Color channels must be whole numbers between 0 and 255.")
        channels = tuple(int(c) for c in value)
        if any(c < 0 or c > 255 for c in channels):
            raise ValueError("Color channels must be between 0 and 255.")
        return channels
    raise ValueError(f"Unrecognised color: {value!r}")


class FieldStyle(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    font_family: str = "Arial"
    font_size: float = settings.DEFAULT_FONT_SIZE
    font_weight: Literal["normal", "bold"] = "normal"
    font_style: Literal["normal", "italic"] = "normal"
    underline: bool = False
    text_align: Literal["left", "center", "right"] = "left"
    color: tuple[int, int, int] = (0, 0, 0)

    @field_validator("font_size")
    @classmethod
    def _positive_size(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("font_size must be positive.")
        return value

    @field_validator("color", mode="before")
    @classmethod
    def _coerce_color(cls, value):
        return parse_color(value)

    @property
    def rgb(self) -> tuple[float, float, float]:
        """Color channels normalised to the 0-1 range used by the PDF canvas."""
        r, g, b = self.color
        return (r / 255.0, g / 255.0, b / 255.0)


class Field(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    id: str
    name: str
    x: float = 0.0
    y: float = 0.0
    offset_x: float = 0.0
    offset_y: float = 0.0
    style: FieldStyle | None = None

    @classmethod
    def for_column(cls, name: str, x: float = 100.0, y: float = 100.0) -> "Field":
        return cls(id=field_id_for(name), name=name, x=x, y=y)

    @property
    def effective_style(self) -> FieldStyle:
        return self.style if self.style is not None else FieldStyle()
