"""
Batch generation: one populated certificate per data row.

``run_batch`` validates its inputs immediately and returns a generator that
renders rows one at a time, in input order. Callers report progress as
results arrive and may stop iterating at any row boundary to cancel.
"""

from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping, Sequence

from certificate_overlay import render_certificate
from coordinates import CoordinateTransformer
from errors import ConfigurationError, RowRenderError
from field_model import Field
from settings import OUTPUT_NAME_PATTERN
from sources import Template

logger = logging.getLogger(__name__)


def output_filename(row_index: int) -> str:
    return OUTPUT_NAME_PATTERN.format(number=row_index + 1)


@dataclass(frozen=True)
class RowResult:
    index: int
    filename: str
    data: bytes | None = None
    error: RowRenderError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchSummary:
    succeeded: int = 0
    failed: int = 0
    errors: list[RowRenderError] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed


def run_batch(
    template: Template | None,
    fields: Sequence[Field],
    rows: Sequence[Mapping[str, object]],
    *,
    scale_ratio: float | None = 1.0,
) -> Iterator[RowResult]:
    if template is None or not template.data:
        raise ConfigurationError("No template is loaded.")
    if not fields:
        raise ConfigurationError("No fields have been placed on the template.")
    if not rows:
        raise ConfigurationError("No data rows are loaded.")
    transformer = CoordinateTransformer(scale_ratio=scale_ratio, page_height=template.page_height)
    if not transformer.is_ready:
        raise ConfigurationError("The template has not been measured yet (no scale ratio).")

    # Snapshot the inputs so edits made while the batch runs cannot leak into it.
    field_snapshot = tuple(f.model_copy(deep=True) for f in fields)
    row_snapshot = tuple(dict(row) for row in rows)
    return _iter_rows(template.data, field_snapshot, row_snapshot, transformer)


def _iter_rows(
    template_bytes: bytes,
    fields: tuple[Field, ...],
    rows: tuple[dict, ...],
    transformer: CoordinateTransformer,
) -> Iterator[RowResult]:
    total = len(rows)
    logger.info("Generating %d certificate(s) with %d field(s)", total, len(fields))
    for idx, row in enumerate(rows):
        filename = output_filename(idx)
        try:
            data = render_certificate(template_bytes, fields, row, transformer, row_index=idx)
        except RowRenderError as exc:
            logger.exception("[%d/%d] %s failed", idx + 1, total, filename)
            yield RowResult(index=idx, filename=filename, error=exc)
            continue
        logger.debug("[%d/%d] %s", idx + 1, total, filename)
        yield RowResult(index=idx, filename=filename, data=data)


def summarize(results: Iterable[RowResult]) -> BatchSummary:
    summary = BatchSummary()
    for result in results:
        if result.ok:
            summary.succeeded += 1
        else:
            summary.failed += 1
            summary.errors.append(result.error)
    logger.info("Batch finished: %d succeeded, %d failed", summary.succeeded, summary.failed)
    return summary


def build_archive(results: Iterable[RowResult]) -> bytes:
    """Write every successful result into a ZIP archive, in row order."""
    packet = io.BytesIO()
    with zipfile.ZipFile(packet, "w", zipfile.ZIP_DEFLATED) as zipf:
        for result in sorted(results, key=lambda r: r.index):
            if result.ok:
                zipf.writestr(result.filename, result.data)
    return packet.getvalue()
