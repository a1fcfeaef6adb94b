"""Shared fixtures: in-memory collaborators and fake HTTP responses."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
import requests

from hotlinks.config import PullConfig
from hotlinks.models import Document, RevisionRequest

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 600
GIF_BYTES = b"GIF89a" + b"\x00" * 600


class FakeResponse:
    def __init__(
        self,
        body: bytes = PNG_BYTES,
        *,
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
        chunk_size: int = 128,
    ) -> None:
        self.status_code = status_code
        self.headers = {"Content-Type": "image/png"} if headers is None else headers
        self._body = body
        self._chunk_size = chunk_size
        self.bytes_read = 0
        self.closed = False

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self._body), self._chunk_size):
            chunk = self._body[start : start + self._chunk_size]
            self.bytes_read += len(chunk)
            yield chunk

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Stands in for ``requests.Session``; routes URLs to canned responses."""

    def __init__(self, routes: Optional[Dict[str, object]] = None) -> None:
        self.routes: Dict[str, object] = dict(routes or {})
        self.calls: List[str] = []
        self.responses: List[FakeResponse] = []

    def get(self, url: str, **kwargs) -> FakeResponse:
        self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            raise requests.ConnectionError(f"no route to {url}")
        if isinstance(route, Exception):
            raise route
        response = route() if callable(route) else route
        self.responses.append(response)
        return response


class MemoryDocumentStore:
    def __init__(self) -> None:
        self.documents: Dict[str, Document] = {}
        self.revisions: List[RevisionRequest] = []
        self.loads = 0
        self.on_load: Optional[Callable[[int, "MemoryDocumentStore"], None]] = None

    def add(self, raw: str, rendered: str, document_id: str = "1", owner_id: str = "7") -> Document:
        document = Document(id=document_id, raw=raw, rendered=rendered, owner_id=owner_id)
        self.documents[document_id] = document
        return document

    def load(self, document_id: str) -> Optional[Document]:
        self.loads += 1
        if self.on_load:
            self.on_load(self.loads, self)
        document = self.documents.get(document_id)
        if document is None:
            return None
        return Document(document.id, document.raw, document.rendered, document.owner_id)

    def revise(self, document: Document, request: RevisionRequest) -> None:
        self.revisions.append(request)
        self.documents[document.id].raw = request.raw


class MemoryBlobStore:
    prefix = "http://local.test/uploads/default/"

    def __init__(self) -> None:
        self.stored: List[dict] = []

    def has_been_uploaded(self, url: str) -> bool:
        return url.startswith(self.prefix)

    def store(self, owner_id, file, filename, size, origin) -> str:
        data = file.read()
        self.stored.append(
            {"owner_id": owner_id, "data": data, "filename": filename, "size": size, "origin": origin}
        )
        return f"{self.prefix}{len(self.stored)}_{filename}"


class RecordingScheduler:
    def __init__(self) -> None:
        self.jobs: List[tuple] = []

    def enqueue_in(self, delay_seconds, job_name, args) -> None:
        self.jobs.append((delay_seconds, job_name, args))


@pytest.fixture
def config() -> PullConfig:
    return PullConfig(
        base_url="http://forum.test",
        asset_host="cdn.forum.test",
        max_image_size_kb=1,
        edit_grace_period=60.0,
        blacklisted_domains=("blocked.test",),
    )


@pytest.fixture
def documents() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def tmp_dir(tmp_path: Path, monkeypatch) -> Path:
    """Route temporary files into an inspectable directory."""
    directory = tmp_path / "tmp"
    directory.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(directory))
    return directory
