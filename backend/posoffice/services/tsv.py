# Overview: TSV intake (metadata checks, structural parse, normalization) and the upload report writer.

"""
TSV Intake

Stages, in order:
1. validate_metadata: empty / wrong suffix / too large -> UploadError, no parsing.
2. parse_tsv: header must equal the importer's columns (trimmed, lower-cased,
   order-sensitive) or the whole upload fails with UploadError. Each
   following non-blank line is split on TAB; a wrong column count becomes a
   StructuralParseError and the line never reaches an importer.
3. Normalization: every field trimmed; every field except "barcode"
   lower-cased.

Row numbers are physical line numbers: the header is row 1 and blank
lines still advance the counter, so a number in the report always points at
the line in the operator's file.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from ..errors import StructuralParseError, UploadError
from ..validation import normalize

TSV_MEDIA_TYPE = "text/tab-separated-values"
TSV_SUFFIX = ".tsv"
MAX_FILE_SIZE_BYTES = 5 * 1024 * 1024
CASE_SENSITIVE_COLUMNS = frozenset({"barcode"})

STATUS_COLUMN = "status/error"
STATUS_SUCCESS = "SUCCESS"
UNPARSED_SECTION_TITLE = "--- The following rows could not be parsed ---"


@dataclass(frozen=True)
class CandidateRow:
    """A structurally valid row, not yet business-validated."""
    row_number: int
    raw: tuple[str, ...]
    fields: dict[str, str]


@dataclass
class ParsedFile:
    columns: tuple[str, ...]
    candidates: list[CandidateRow] = field(default_factory=list)
    structural_errors: list[StructuralParseError] = field(default_factory=list)


def validate_metadata(
    filename: str | None,
    size: int,
    *,
    max_bytes: int = MAX_FILE_SIZE_BYTES,
    suffix: str = TSV_SUFFIX,
) -> None:
    if not size:
        raise UploadError("File is empty. Please upload a non-empty TSV file.")
    if not filename or not filename.lower().endswith(suffix):
        raise UploadError(f"Invalid file format. Only {suffix} files are accepted.")
    if size > max_bytes:
        raise UploadError(
            f"File size exceeds the maximum limit of {max_bytes // (1024 * 1024)}MB.",
            details={"size": size, "max_bytes": max_bytes},
        )


def decode(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise UploadError("Unable to read file. Please upload UTF-8 encoded text.")


def normalize_header(line: str) -> list[str]:
    return [name.strip().lower() for name in line.split("\t")]


def normalize_fields(columns: Sequence[str], values: Sequence[str]) -> dict[str, str]:
    return normalize(dict(zip(columns, values)), exceptions=CASE_SENSITIVE_COLUMNS)


def parse_tsv(text: str, expected_columns: Sequence[str]) -> ParsedFile:
    columns = tuple(expected_columns)
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")

    if not lines or not lines[0].strip():
        raise UploadError("Missing header row.", details={"expected": list(columns)})

    header = normalize_header(lines[0])
    if header != list(columns):
        raise UploadError(
            f"Invalid file headers. Expected columns: [{', '.join(columns)}], but found: [{', '.join(header)}]",
            details={"expected": list(columns), "found": header},
        )

    parsed = ParsedFile(columns=columns)
    for row_number, line in enumerate(lines[1:], start=2):
        if not line.strip():
            continue
        values = line.split("\t")
        if len(values) != len(columns):
            parsed.structural_errors.append(StructuralParseError(
                row_number=row_number,
                message=(
                    f"Error in row #{row_number}: Invalid number of columns. "
                    f"Expected {len(columns)}, but found {len(values)}"
                ),
            ))
            continue
        parsed.candidates.append(CandidateRow(
            row_number=row_number,
            raw=tuple(values),
            fields=normalize_fields(columns, values),
        ))
    return parsed


def escape_field(value) -> str:
    if value is None:
        return ""
    return str(value).replace("\t", " ").replace("\r", " ").replace("\n", " ")


def write_upload_report(
    columns: Sequence[str],
    results: Sequence[tuple[CandidateRow, str]],
    structural_errors: Sequence[StructuralParseError],
) -> bytes:
    """
    One line per candidate: its original fields plus SUCCESS or the rejection
    reason, then every structural error verbatim under a trailing section.
    """
    lines = ["\t".join([*columns, STATUS_COLUMN])]
    for row, status in results:
        lines.append("\t".join([*(escape_field(v) for v in row.raw), escape_field(status)]))

    if structural_errors:
        lines.append("")
        lines.append(UNPARSED_SECTION_TITLE)
        lines.extend(escape_field(err.message) for err in structural_errors)

    return ("\n".join(lines) + "\n").encode("utf-8")
