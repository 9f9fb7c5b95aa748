import io
import logging
from dataclasses import dataclass
from typing import Iterable, Mapping

from pypdf import PdfReader, PdfWriter
from reportlab.lib.colors import Color
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from coordinates import CoordinateTransformer
from errors import RowRenderError
from field_model import Field, FieldStyle

logger = logging.getLogger(__name__)

DEFAULT_FONT = "Helvetica"

# Editor font families keyed by their normalized name.
_FAMILY_TO_BASE_FONT = {
    "arial": "Helvetica",
    "helvetica": "Helvetica",
    "verdana": "Helvetica",
    "timesnewroman": "Times-Roman",
    "times": "Times-Roman",
    "timesroman": "Times-Roman",
    "georgia": "Times-Roman",
    "couriernew": "Courier",
    "courier": "Courier",
}

_EMPHASIS_VARIANTS = {
    # base: (regular, bold, italic, bold+italic)
    "Helvetica": ("Helvetica", "Helvetica-Bold", "Helvetica-Oblique", "Helvetica-BoldOblique"),
    "Times-Roman": ("Times-Roman", "Times-Bold", "Times-Italic", "Times-BoldItalic"),
    "Courier": ("Courier", "Courier-Bold", "Courier-Oblique", "Courier-BoldOblique"),
}


def _normalize_font_name(name: str) -> str:
    return "".join(ch for ch in name.lower() if ch.isalnum())


def base_font_for_family(family: str | None) -> str:
    """Map an editor font family onto one of the standard PDF font families."""
    if not family:
        return DEFAULT_FONT
    primary = family.split(",")[0].strip().strip("'\"")
    base = _FAMILY_TO_BASE_FONT.get(_normalize_font_name(primary))
    if base is None:
        logger.warning("No standard font for family '%s'. Using '%s'.", family, DEFAULT_FONT)
        return DEFAULT_FONT
    return base


def apply_emphasis_to_font(base_font: str, bold: bool, italic: bool) -> str:
    regular, bold_font, italic_font, bold_italic = _EMPHASIS_VARIANTS.get(
        base_font, _EMPHASIS_VARIANTS[DEFAULT_FONT]
    )
    return (
        bold_italic if bold and italic
        else bold_font if bold
        else italic_font if italic
        else regular
    )


def resolve_font(style: FieldStyle) -> str:
    return apply_emphasis_to_font(
        base_font_for_family(style.font_family),
        bold=style.font_weight == "bold",
        italic=style.font_style == "italic",
    )


@dataclass(frozen=True)
class PlacedText:
    """A field value laid out in PDF space, ready to draw."""

    text: str
    font: str
    size: float
    x: float
    y: float
    width: float
    color: tuple[float, float, float]
    underline: bool


def resolve_value(field: Field, row: Mapping[str, object]) -> str | None:
    value = row.get(field.name)
    if value is None:
        return None
    text = str(value)
    return text if text else None


def layout_field(field: Field, value: str, transformer: CoordinateTransformer) -> PlacedText:
    style = field.effective_style
    font = resolve_font(style)
    size = float(style.font_size)

    x, y = transformer.to_pdf(field.x, field.y)
    x += field.offset_x
    y += field.offset_y

    # Width comes from the resolved font so alignment matches what gets drawn.
    width = pdfmetrics.stringWidth(value, font, size)
    if style.text_align == "center":
        x -= width / 2.0
    elif style.text_align == "right":
        x -= width

    return PlacedText(
        text=value,
        font=font,
        size=size,
        x=x,
        y=y,
        width=width,
        color=style.rgb,
        underline=style.underline,
    )


def draw_placed_text(c: canvas.Canvas, placed: PlacedText) -> None:
    c.saveState()
    try:
        color = Color(*placed.color)
        c.setFillColor(color)
        c.setFont(placed.font, placed.size)
        c.drawString(placed.x, placed.y, placed.text)
        if placed.underline:
            underline_y = placed.y - placed.size * 0.12
            c.setStrokeColor(color)
            c.setLineWidth(max(0.5, placed.size / 18.0))
            c.line(placed.x, underline_y, placed.x + placed.width, underline_y)
    finally:
        c.restoreState()


def draw_overlay(
    page_w: float,
    page_h: float,
    fields: Iterable[Field],
    row: Mapping[str, object],
    transformer: CoordinateTransformer,
) -> bytes:
    packet = io.BytesIO()
    c = canvas.Canvas(packet, pagesize=(page_w, page_h))

    for field in fields:
        value = resolve_value(field, row)
        if value is None:
            continue
        try:
            placed = layout_field(field, value, transformer)
            draw_placed_text(c, placed)
        except Exception as exc:
            logger.warning("Skipping field '%s': %s", field.name, exc)

    c.showPage()
    c.save()
    packet.seek(0)
    return packet.read()


def render_certificate(
    template_bytes: bytes,
    fields: Iterable[Field],
    row: Mapping[str, object],
    transformer: CoordinateTransformer,
    row_index: int = 0,
) -> bytes:
    """Populate the first page of a fresh copy of the template with one row.

    The template is parsed again on every call so no document state is shared
    between rows. Raises RowRenderError when the template cannot be parsed or
    the result cannot be written.
    """
    try:
        reader = PdfReader(io.BytesIO(template_bytes))
        first_page = reader.pages[0]
        page_w = float(first_page.mediabox.width)
        page_h = float(first_page.mediabox.height)
    except Exception as exc:
        raise RowRenderError(row_index, f"template could not be parsed: {exc}") from exc

    overlay_bytes = draw_overlay(page_w, page_h, fields, row, transformer)

    try:
        writer = PdfWriter(clone_from=reader)
        overlay_page = PdfReader(io.BytesIO(overlay_bytes)).pages[0]
        writer.pages[0].merge_page(overlay_page)
        out = io.BytesIO()
        writer.write(out)
    except Exception as exc:
        raise RowRenderError(row_index, f"output could not be written: {exc}") from exc
    return out.getvalue()
