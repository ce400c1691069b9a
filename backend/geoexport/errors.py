"""
Export error taxonomy.

Every failure that can occur while producing a download is one of the
four ``ExportError`` subclasses below.  They are caught at the
``ExportOrchestrator`` boundary and never escape the request that
triggered the export.
"""

from __future__ import annotations


class ExportError(Exception):
    """Base class for export failures.

    ``message`` is safe to show to the user; ``details`` carries the
    technical cause for the logs.
    """

    def __init__(self, message: str, details: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class FetchError(ExportError):
    """Network / service failure or non-success response."""


class ParseError(ExportError):
    """Payload does not deserialize into a FeatureCollection."""


class GeometryError(ExportError):
    """Malformed geometry encountered during reprojection."""


class SerializationError(ExportError):
    """Flattening or encoding of the output failed."""
