"""File-backed collaborators used by the command line and MCP entry points."""

from __future__ import annotations

import hashlib
import heapq
import itertools
import logging
import os
import re
import tempfile
import time
from pathlib import Path
from typing import IO, Any, Callable, Dict, List, Mapping, Optional, Tuple

from markdown_it import MarkdownIt

from .models import Document, RevisionRequest
from .utils import slugify

logger = logging.getLogger("hotlinks")

_BBCODE_IMAGE = re.compile(r"\[img\](.*?)\[/img\]", re.IGNORECASE | re.DOTALL)
_BARE_IMAGE_LINE = re.compile(
    r"^[ \t]*((?:https?:)?//\S+\.(?:png|jpe?g|gif|webp|bmp|tiff?|ico)(?:\?\S*)?)[ \t]*$",
    re.IGNORECASE | re.MULTILINE,
)

_renderer = MarkdownIt("commonmark", {"html": True})


def render_markdown(raw: str) -> str:
    """Cook raw Markdown into HTML.

    ``[img]`` tags and image URLs standing alone on a line are displayed as
    images, like the forum software this text comes from does.
    """
    text = _BBCODE_IMAGE.sub(lambda m: f"![]({m.group(1).strip()})", raw)
    text = _BARE_IMAGE_LINE.sub(lambda m: f"![]({m.group(1)})", text)
    return _renderer.render(text)


class LocalBlobStore:
    """Store uploads on disk under ``root/<owner>/`` and serve them from ``base_url``."""

    def __init__(self, root: Path, base_url: str) -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    @property
    def url_prefix(self) -> str:
        return f"{self.base_url}/uploads/"

    def has_been_uploaded(self, url: str) -> bool:
        if not url:
            return False
        if url.startswith("//"):
            url = "http:" + url
        prefix = self.url_prefix.split("://", 1)[-1]
        return url.split("://", 1)[-1].startswith(prefix) or url.startswith("/uploads/")

    def store(self, owner_id: str, file: IO[bytes], filename: str, size: int, origin: str) -> str:
        data = file.read()
        if len(data) != size:
            logger.warning("Upload %s: expected %d bytes, got %d", filename, size, len(data))
        owner = slugify(str(owner_id), fallback="owner")
        owner_dir = self.root / owner
        owner_dir.mkdir(parents=True, exist_ok=True)

        name = hashlib.sha1(data).hexdigest() + Path(filename).suffix.lower()
        destination = owner_dir / name
        if not destination.exists():
            destination.write_bytes(data)
        (owner_dir / f"{name}.origin").write_text(origin + "\n", encoding="utf-8")
        logger.debug("Stored %s (%d bytes) from %s", destination, len(data), origin)
        return f"{self.url_prefix}{owner}/{name}"


class FileDocumentStore:
    """Treat text files as documents; the document id is the file path."""

    def __init__(self, owner_id: str = "system", renderer: Callable[[str], str] = render_markdown) -> None:
        self.owner_id = owner_id
        self.renderer = renderer
        self.revisions: List[RevisionRequest] = []

    def load(self, document_id: str) -> Optional[Document]:
        path = Path(document_id)
        if not path.is_file():
            return None
        with open(path, encoding="utf-8", newline="") as handle:
            raw = handle.read()
        return Document(id=document_id, raw=raw, rendered=self.renderer(raw), owner_id=self.owner_id)

    def revise(self, document: Document, request: RevisionRequest) -> None:
        path = Path(document.id)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(request.raw)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        self.revisions.append(request)
        logger.info("Saved %s (%s)", path, request.reason)


class DeferredScheduler:
    """In-process stand-in for a job queue: runs jobs once their delay has passed."""

    def __init__(
        self,
        max_runs: int = 5,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_runs = max_runs
        self._sleep = sleep
        self._clock = clock
        self._counter = itertools.count()
        self._queue: List[Tuple[float, int, str, Dict[str, Any]]] = []

    @property
    def pending(self) -> List[Tuple[str, Dict[str, Any]]]:
        return [(job, args) for _, _, job, args in sorted(self._queue)]

    def enqueue_in(self, delay_seconds: float, job_name: str, args: Dict[str, Any]) -> None:
        due = self._clock() + max(delay_seconds, 0.0)
        heapq.heappush(self._queue, (due, next(self._counter), job_name, dict(args)))
        logger.debug("Queued %s in %.0fs with %s", job_name, delay_seconds, args)

    def drain(self, handlers: Mapping[str, Callable[[Dict[str, Any]], Any]]) -> int:
        """Run queued jobs in due order; returns how many ran."""
        runs = 0
        while self._queue and runs < self.max_runs:
            due, _, job_name, args = heapq.heappop(self._queue)
            wait = due - self._clock()
            if wait > 0:
                logger.info("Waiting %.0fs before running %s again", wait, job_name)
                self._sleep(wait)
            handlers[job_name](args)
            runs += 1
        if self._queue:
            logger.warning("Dropping %d job(s) after %d run(s)", len(self._queue), runs)
            self._queue.clear()
        return runs
