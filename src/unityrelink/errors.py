"""Error types raised while scanning and relinking Unity documents."""

from __future__ import annotations

from pathlib import Path


class RelinkError(Exception):
    """Base class for all unityrelink failures."""


class DocumentIOError(RelinkError, OSError):
    """A serialized document could not be read or written."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class ResolutionError(RelinkError):
    """A replacement class has no stable (fileID, guid) identity."""


class NotFoundError(RelinkError, LookupError):
    """The component block or its m_Script line is gone from the document."""

    def __init__(
        self,
        message: str,
        component_id: int | None = None,
        guid: str | None = None,
        path: Path | None = None,
    ):
        super().__init__(message)
        self.component_id = component_id
        self.guid = guid
        self.path = path


class TruncatedScan(UserWarning):
    """The search limit was reached before every component was examined."""
