"""
Error taxonomy for Jevons.

File-level and record-level errors are contained by the event store and the
sync pipeline. Only InvalidRequest is meant to reach a client.
"""

from typing import Optional


class JevonsError(Exception):
    """Base class for all Jevons errors."""


class MissingFile(JevonsError):
    """An input file does not exist yet. Treated as empty input."""

    def __init__(self, path: str):
        super().__init__(f"File not found: {path}")
        self.path = path


class MalformedLog(JevonsError):
    """A TSV log's header row does not match the expected column set."""

    def __init__(self, path: str, message: str):
        super().__init__(f"Malformed log {path}: {message}")
        self.path = path


class InvalidRecord(JevonsError):
    """A single row failed validation."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)
        self.line_number = line_number


class SyncSourceUnavailable(JevonsError):
    """The external source directory is missing or unreadable."""

    def __init__(self, source_dir: str, reason: str):
        super().__init__(f"Sync source {source_dir} unavailable: {reason}")
        self.source_dir = source_dir


class SyncCancelled(JevonsError):
    """A sync cycle was abandoned because shutdown was requested."""


class InvalidRequest(JevonsError):
    """An internally inconsistent query (unknown scope, malformed range...)."""
