"""Image reference extraction from rendered documents."""

from __future__ import annotations

from typing import List

from bs4 import BeautifulSoup, Tag

from .models import ImageReference

PREVIEW_CLASS = "onebox-result"
AVATAR_CLASS = "avatar"


def _has_class(tag: Tag, name: str) -> bool:
    return name in (tag.get("class") or [])


def _inside_preview(img: Tag) -> bool:
    return any(_has_class(parent, PREVIEW_CLASS) for parent in img.parents if isinstance(parent, Tag))


def iter_image_references(html: str) -> List[ImageReference]:
    """Return every image with a source, in document order, with exclusion flags set."""
    soup = BeautifulSoup(html or "", "html.parser")
    references: List[ImageReference] = []
    for img in soup.find_all("img"):
        src = img.get("src")
        if not src:
            continue
        references.append(
            ImageReference(
                source_url=src,
                inside_preview=_inside_preview(img),
                is_avatar=_has_class(img, AVATAR_CLASS),
            )
        )
    return references


def extract_image_references(html: str) -> List[ImageReference]:
    """Images worth considering: everything outside oneboxes that is not an avatar."""
    return [ref for ref in iter_image_references(html) if not ref.excluded]
