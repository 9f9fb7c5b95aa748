"""
Conversion between editor display space and PDF space.

Display space has its origin at the top-left with Y growing downward and is
measured in on-screen pixels. PDF space has its origin at the bottom-left with
Y growing upward and is measured in points. The scale ratio is the displayed
page width divided by the PDF page width.
"""

from __future__ import annotations

import math
from dataclasses import dataclass


def _usable(value: float | None) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def scale_ratio_for(displayed_width: float | None, pdf_width: float | None) -> float | None:
    if not _usable(displayed_width) or not _usable(pdf_width):
        return None
    ratio = float(displayed_width) / float(pdf_width)
    return ratio if _usable(ratio) else None


@dataclass(frozen=True)
class CoordinateTransformer:
    scale_ratio: float | None
    page_height: float

    @property
    def is_ready(self) -> bool:
        return _usable(self.scale_ratio)

    def to_display(self, x: float, y: float) -> tuple[float, float]:
        """Map a PDF-space point to display space (used for previews)."""
        if not self.is_ready:
            return x, y
        r = self.scale_ratio
        return x * r, self.page_height * r - y * r

    def to_pdf(self, x: float, y: float) -> tuple[float, float]:
        """Map a display-space point to PDF space. Exact inverse of to_display."""
        if not self.is_ready:
            return x, y
        r = self.scale_ratio
        return x / r, self.page_height - y / r
