# gst_compliance/core/errors.py
"""
Error kinds shared across the engine.

Callers branch on the exception class (or on ``kind``) rather than on
message text:

- ``ValidationError``     bad input, rejected before any network call
- ``ConfigurationError``  required credentials/settings missing or malformed
- ``StoreUnavailableError`` the record store cannot be reached

Protocol-specific errors live next to the e-way bill client.
"""

from __future__ import annotations


class GstComplianceError(Exception):
    """Base class for every error raised by this package."""

    kind = "error"


class ValidationError(GstComplianceError):
    """Raised when input fails a local rule (GSTIN format, distance cap, ...)."""

    kind = "validation"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field
        self.reason = message


class ConfigurationError(GstComplianceError):
    """Raised when required configuration is missing."""

    kind = "configuration"


class StoreUnavailableError(GstComplianceError):
    """Raised when the record store cannot serve a request."""

    kind = "store_unavailable"


class DuplicateRecordError(GstComplianceError):
    """Raised when a record with the same unique key already exists."""

    kind = "duplicate"
