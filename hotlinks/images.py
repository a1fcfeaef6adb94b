"""Image downloading, validation and per-run deduplication."""

from __future__ import annotations

import logging
import tempfile
import threading
import time
from typing import Callable, Dict, Optional

import requests
from filetype import guess

from .config import DEFAULT_DOWNLOAD_TIMEOUT, DEFAULT_TMP_PREFIX, PullConfig
from .models import UNRESOLVED, FetchResult, Resolution, ResolutionState
from .utils import filename_from_url

logger = logging.getLogger("hotlinks")

CHUNK_SIZE = 16 * 1024
SNIFF_BYTES = 262
ALLOWED_IMAGE_TYPES = {"png", "jpg", "jpeg", "gif", "webp", "bmp", "tiff", "ico"}


class FetchError(Exception):
    """Raised internally when a download has to be abandoned."""


def detect_image_format(data: bytes) -> Optional[str]:
    """Detect image type using filetype; returns lowercase extension."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        if ext == "jpeg":
            return "jpg"
        return ext
    return None


def infer_image_extension(content_type: Optional[str], data: bytes) -> Optional[str]:
    """Guess an image file extension from HTTP metadata or file signature."""
    detected = detect_image_format(data) if data else None
    if detected:
        return detected
    if not content_type:
        return None
    parts = content_type.split(";")[0].split("/")
    if len(parts) == 2 and parts[0].strip().lower() == "image":
        ext = parts[1].strip().lower()
        if ext == "jpeg":
            ext = "jpg"
        return ext
    return None


def _declared_length(response) -> Optional[int]:
    value = response.headers.get("Content-Length")
    if value and value.strip().isdigit():
        return int(value)
    return None


def fetch_image(
    url: str,
    max_bytes: int,
    tmp_prefix: str = DEFAULT_TMP_PREFIX,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
) -> Optional[FetchResult]:
    """Stream ``url`` into a temporary file.

    Reads at most ``max_bytes + 1`` bytes so an oversized image is reported
    with a size above the ceiling rather than downloaded in full. Returns
    None for network errors, timeouts and responses that are not images.
    """
    http = session or requests
    deadline = time.monotonic() + timeout
    try:
        response = http.get(url, stream=True, timeout=(timeout, timeout))
    except requests.RequestException as exc:
        logger.warning("Failed to fetch image %s: %s", url, exc)
        return None

    try:
        response.raise_for_status()
        content_type = response.headers.get("Content-Type", "")
        declared = _declared_length(response)

        tmp = tempfile.NamedTemporaryFile(prefix=f"{tmp_prefix}-", delete=False)
        result = FetchResult(url, tmp, 0, content_type)
        keep = False
        try:
            if declared is not None and declared > max_bytes:
                result.size = declared
                keep = True
                return result

            size = 0
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if not chunk:
                    continue
                if time.monotonic() > deadline:
                    raise FetchError(f"took longer than {timeout:.0f}s")
                tmp.write(chunk)
                size += len(chunk)
                if size > max_bytes:
                    break
            tmp.flush()
            result.size = size

            if size == 0:
                raise FetchError("empty response")
            tmp.seek(0)
            head = tmp.read(SNIFF_BYTES)
            extension = infer_image_extension(content_type, head)
            if not extension or extension not in ALLOWED_IMAGE_TYPES:
                raise FetchError(f"unsupported image type (Content-Type={content_type})")
            keep = True
            return result
        finally:
            if not keep:
                result.close()
    except requests.RequestException as exc:
        logger.warning("Failed to fetch image %s: %s", url, exc)
    except FetchError as exc:
        logger.warning("Skipping %s: %s", url, exc)
    finally:
        response.close()
    return None


Fetcher = Callable[..., Optional[FetchResult]]


class ImageResolver:
    """Resolve remote image URLs to uploaded copies, at most one fetch per URL."""

    def __init__(
        self,
        config: PullConfig,
        blob_store,
        session: Optional[requests.Session] = None,
        fetch: Fetcher = fetch_image,
    ) -> None:
        self.config = config
        self.blob_store = blob_store
        self.session = session
        self._fetch = fetch
        self._lock = threading.Lock()
        self._resolutions: Dict[str, Resolution] = {}
        self.attempts = 0

    @property
    def resolutions(self) -> Dict[str, Resolution]:
        with self._lock:
            return dict(self._resolutions)

    def lookup(self, url: str) -> Resolution:
        with self._lock:
            return self._resolutions.get(url, UNRESOLVED)

    def _record(self, url: str, resolution: Resolution) -> Resolution:
        # first writer wins
        with self._lock:
            return self._resolutions.setdefault(url, resolution)

    def resolve(self, url: str, owner_id: str) -> Optional[str]:
        """Return the local URL for ``url``, or None when it could not be pulled."""
        known = self.lookup(url)
        if known.state is not ResolutionState.UNRESOLVED:
            return known.local_url
        try:
            resolution = self._download(url, owner_id)
        except Exception as exc:
            self._record(url, Resolution.failed(f"{type(exc).__name__}: {exc}"))
            raise
        return self._record(url, resolution).local_url

    def _download(self, url: str, owner_id: str) -> Resolution:
        with self._lock:
            self.attempts += 1
        max_bytes = self.config.max_image_size_bytes
        result = self._fetch(
            url,
            max_bytes,
            tmp_prefix=self.config.tmp_prefix,
            session=self.session,
            timeout=self.config.download_timeout,
        )
        if result is None:
            logger.error("There was an error while downloading '%s' locally.", url)
            return Resolution.failed("download failed")

        with result:
            if result.size > max_bytes:
                logger.error(
                    "Failed to pull hotlinked image: %s - image is bigger than %s bytes",
                    url,
                    max_bytes,
                )
                return Resolution.failed("too large")

            result.file.seek(0)
            head = result.file.read(SNIFF_BYTES)
            filename = filename_from_url(url, infer_image_extension(result.content_type, head))
            result.file.seek(0)
            local_url = self.blob_store.store(
                owner_id, result.file, filename, result.size, origin=url
            )
        if not local_url:
            logger.error("Upload of %s did not return a URL", url)
            return Resolution.failed("store returned no url")
        logger.info("Pulled %s -> %s", url, local_url)
        return Resolution.resolved(local_url)
