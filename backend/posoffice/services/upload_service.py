# Overview: Service-layer operations for TSV uploads; drives intake, importers and the report.

"""
Upload Service

process_upload() is the whole pipeline for one file:
  metadata check -> decode -> structural parse -> per-row import -> report

File-level problems raise UploadError (nothing applied). Everything past a
good header is reported row by row in the returned TSV; partial success is
the normal outcome, not an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import PosError
from ..extensions import db
from . import tsv
from .concurrency import begin_write_transaction, run_with_retry
from .importers import BaseImporter, importer_for


@dataclass(frozen=True)
class RowResult:
    row: tsv.CandidateRow
    status: str
    entity_id: int | None = None

    @property
    def accepted(self) -> bool:
        return self.status == tsv.STATUS_SUCCESS


@dataclass(frozen=True)
class UploadReport:
    kind: str
    filename: str
    content: bytes
    results: tuple[RowResult, ...]
    structural_errors: tuple

    @property
    def accepted(self) -> int:
        return sum(1 for r in self.results if r.accepted)

    @property
    def rejected(self) -> int:
        return sum(1 for r in self.results if not r.accepted)

    @property
    def unparsed(self) -> int:
        return len(self.structural_errors)


def report_filename(kind: str) -> str:
    return f"{kind}-upload-report.tsv"


def _apply_rows(importer: BaseImporter, candidates) -> list[RowResult]:
    """Run every candidate in file order, one savepoint per row, one commit."""
    def _op():
        begin_write_transaction()
        results: list[RowResult] = []
        for row in candidates:
            nested = db.session.begin_nested()
            try:
                typed = importer.validate_row(row.fields)
                resolved = importer.resolve_references(typed)
                entity_id = importer.post_row(resolved)
                db.session.flush()
                nested.commit()
                results.append(RowResult(row=row, status=tsv.STATUS_SUCCESS, entity_id=entity_id))
            except PosError as exc:
                nested.rollback()
                results.append(RowResult(row=row, status=exc.message))
            except IntegrityError:
                nested.rollback()
                results.append(RowResult(row=row, status="conflicts with existing data"))
        db.session.commit()
        return results

    return run_with_retry(_op)


def process_upload(
    kind: str,
    filename: str | None,
    content: bytes,
    *,
    config: Mapping[str, Any] | None = None,
) -> UploadReport:
    config = config if config is not None else current_app.config
    importer = importer_for(kind, config)

    tsv.validate_metadata(
        filename,
        len(content),
        max_bytes=config.get("UPLOAD_MAX_BYTES", tsv.MAX_FILE_SIZE_BYTES),
        suffix=config.get("UPLOAD_ALLOWED_SUFFIX", tsv.TSV_SUFFIX),
    )
    parsed = tsv.parse_tsv(tsv.decode(content), importer.columns)

    results = _apply_rows(importer, parsed.candidates) if parsed.candidates else []

    body = tsv.write_upload_report(
        parsed.columns,
        [(r.row, r.status) for r in results],
        parsed.structural_errors,
    )
    report = UploadReport(
        kind=kind,
        filename=report_filename(kind),
        content=body,
        results=tuple(results),
        structural_errors=tuple(parsed.structural_errors),
    )
    current_app.logger.info(
        "Processed %s upload %r: %s accepted, %s rejected, %s unparsed",
        kind, filename, report.accepted, report.rejected, report.unparsed,
    )
    return report
