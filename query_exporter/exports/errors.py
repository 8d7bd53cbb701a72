from __future__ import annotations


class ExportError(Exception):
    """Base failure for one export. `kind` is stable and machine readable."""

    kind = "ExportError"
    status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class BadMethod(ExportError):
    kind = "BadMethod"
    status = 405


class BadRequest(ExportError):
    kind = "BadRequest"
    status = 400


class MissingParameter(ExportError):
    kind = "MissingParameter"
    status = 400


class DatabaseConnectionError(ExportError):
    kind = "ConnectionError"


class FileError(ExportError):
    kind = "FileError"


class QueryError(ExportError):
    kind = "QueryError"


class ScanError(ExportError):
    kind = "ScanError"


class RowIterationError(ExportError):
    kind = "RowIterationError"
