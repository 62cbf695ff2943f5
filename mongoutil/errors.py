"""Error classes raised by mongoutil itself.

Driver errors (``pymongo.errors``) are never wrapped; they reach the caller
exactly as PyMongo raised them.
"""

from typing import Any, Optional


class MongoUtilError(Exception):
    """Base exception for mongoutil operations."""

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


class DocumentNotFoundError(MongoUtilError):
    """Raised when a single-document read matches nothing."""

    def __init__(self, namespace: str, filter: Optional[dict] = None):
        self.namespace = namespace
        self.filter = filter
        super().__init__(404, f"No document in '{namespace}' matches {filter!r}")


class ClientClosedError(MongoUtilError):
    """Raised when an operation runs on a closed client."""

    def __init__(self):
        super().__init__(0, "Client is closed")


class ConfigurationError(MongoUtilError):
    """Raised when the connection URI is missing or empty."""

    def __init__(self, message: str):
        super().__init__(2, message)


class BulkWriteFailure(MongoUtilError):
    """Raised by ``BulkWriteReport.raise_for_errors`` when items or the write concern failed."""

    def __init__(self, report: Any):
        self.report = report
        failed = [item.index for item in report.failed]
        message = f"{len(failed)} of {len(report)} writes failed at {failed}"
        if report.write_concern_errors:
            errmsgs = [err["errmsg"] for err in report.write_concern_errors]
            message += f"; write concern errors: {errmsgs}"
        super().__init__(65, message)
