# Overview: Domain error taxonomy shared by services and routes.

"""
Domain errors.

Services raise these; routes translate them into a JSON payload of the form
{"error": message, "details": {...}} with the error's status_code.

Row-level ingestion problems are NOT raised. They are collected as
StructuralParseError values (see services.tsv) or as rejection reasons on
the importer outcome, and end up in the upload report.
"""

from __future__ import annotations

from dataclasses import dataclass


class PosError(Exception):
    """Base class for expected, user-visible failures."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class ValidationError(PosError):
    """Malformed or policy-violating input, surfaced verbatim."""
    status_code = 400


class NotFound(PosError):
    status_code = 404


class ConflictError(PosError):
    """Uniqueness violation (duplicate barcode, duplicate client name)."""
    status_code = 409


class InsufficientStock(PosError):
    """
    A stock decrement would drive quantity negative.

    details["items"] lists {"product_id", "requested", "available"} per
    offending product.
    """
    status_code = 409


class InvalidTransition(PosError):
    status_code = 409


class OrderLocked(PosError):
    """Item mutation attempted on an order whose status forbids it."""
    status_code = 409


class InfrastructureError(PosError):
    """Persistence, storage or downstream renderer failure."""
    status_code = 502


class AuthError(PosError):
    status_code = 401


class PermissionDenied(PosError):
    status_code = 403


class UploadError(ValidationError):
    """File-level upload failure (metadata, unreadable stream, header mismatch)."""


@dataclass(frozen=True)
class StructuralParseError:
    """A row that could not be split into the expected columns."""
    row_number: int
    message: str

    def __str__(self) -> str:
        return self.message
