"""Decide which discovered image URLs should be pulled."""

from __future__ import annotations

import logging
import re
from typing import Optional
from urllib.parse import urlsplit

from .config import PullConfig

logger = logging.getLogger("hotlinks")

_ROOT_RELATIVE = re.compile(r"\A/[^/]")
_WHITESPACE = re.compile(r"\s")


def normalize_source(src: Optional[str]) -> Optional[str]:
    """Give protocol-relative URLs an explicit scheme."""
    if src and src.startswith("//"):
        return "http:" + src
    return src


def is_eligible(src: Optional[str], config: PullConfig, blob_store) -> bool:
    """Return True when ``src`` points to a remote image we should download."""
    if not src:
        return False
    # already one of ours
    if blob_store.has_been_uploaded(src):
        return False
    if _ROOT_RELATIVE.match(src):
        return False
    if _WHITESPACE.search(src):
        logger.debug("Ignoring image URL containing whitespace: %r", src)
        return False
    try:
        parts = urlsplit(src)
        host = parts.hostname
    except ValueError as exc:
        logger.debug("Ignoring unparseable image URL %s: %s", src, exc)
        return False
    if not parts.scheme or not host:
        logger.debug("Ignoring image URL without scheme or host: %s", src)
        return False
    if config.asset_hostname and config.asset_hostname == host:
        return False
    if config.base_host == host:
        return False
    return config.should_download_from_domain(src)
