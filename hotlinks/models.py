"""Data models used throughout the hotlink pipeline."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field
from typing import IO, Dict, List, Optional


@dataclass
class Document:
    """A user-authored document and its rendered HTML."""

    id: str
    raw: str
    rendered: str
    owner_id: str


@dataclass(frozen=True)
class ImageReference:
    """Image node discovered in the rendered document."""

    source_url: str
    inside_preview: bool = False
    is_avatar: bool = False

    @property
    def excluded(self) -> bool:
        return self.inside_preview or self.is_avatar


class FetchResult:
    """Downloaded bytes held in a temporary file owned by the caller.

    The backing file is removed by ``close()``; use the result as a context
    manager so that happens whatever the outcome.
    """

    def __init__(self, url: str, file: IO[bytes], size: int, content_type: str = "") -> None:
        self.url = url
        self.file = file
        self.size = size
        self.content_type = content_type
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self) -> bytes:
        self.file.seek(0)
        return self.file.read()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        name = getattr(self.file, "name", None)
        try:
            self.file.close()
        finally:
            if isinstance(name, str) and os.path.exists(name):
                os.unlink(name)

    def __enter__(self) -> "FetchResult":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class ResolutionState(enum.Enum):
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(frozen=True)
class Resolution:
    """Outcome of localising one remote URL within a run."""

    state: ResolutionState
    local_url: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def resolved(cls, local_url: str) -> "Resolution":
        return cls(ResolutionState.RESOLVED, local_url=local_url)

    @classmethod
    def failed(cls, reason: str) -> "Resolution":
        return cls(ResolutionState.FAILED, reason=reason)


UNRESOLVED = Resolution(ResolutionState.UNRESOLVED)


@dataclass(frozen=True)
class RevisionRequest:
    """Rewritten raw text submitted to the document store."""

    document_id: str
    raw: str
    reason: str
    bypass_bump: bool = True


class PullOutcome(enum.Enum):
    DISABLED = "disabled"
    NOT_FOUND = "not_found"
    NOOP = "noop"
    COMMITTED = "committed"
    RESCHEDULED = "rescheduled"


@dataclass
class PullReport:
    """Summary of a single run."""

    document_id: str
    outcome: PullOutcome
    resolved: Dict[str, str] = field(default_factory=dict)
    failed: List[str] = field(default_factory=list)
    backoff: Optional[int] = None
