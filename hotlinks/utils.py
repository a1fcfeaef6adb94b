"""Utility helpers for string normalization and path handling."""

from __future__ import annotations

import posixpath
import re
from typing import Optional
from urllib.parse import unquote, urlsplit

SLUG_PATTERN = re.compile(r"[^a-z0-9]+")
_UNSAFE_FILENAME = re.compile(r"[^\w.\-]+")


def slugify(value: str, fallback: str = "page") -> str:
    """Generate a filesystem-friendly slug using ASCII characters only."""
    normalized = value.encode("ascii", "ignore").decode("ascii")
    normalized = normalized.lower()
    normalized = SLUG_PATTERN.sub("-", normalized).strip("-")
    return normalized or fallback


def filename_from_url(url: str, extension: Optional[str] = None) -> str:
    """Use the last path segment of ``url`` as a filename."""
    try:
        path = urlsplit(url).path
    except ValueError:
        path = ""
    name = posixpath.basename(unquote(path))
    name = _UNSAFE_FILENAME.sub("_", name).strip("._")
    if not name:
        name = "image"
    if extension and "." not in name:
        name = f"{name}.{extension}"
    return name
