"""Replace hotlinked images in user documents with locally stored copies."""

from .config import PullConfig
from .models import Document, PullOutcome, PullReport, RevisionRequest
from .puller import EDIT_REASON, JOB_NAME, HotlinkPuller, InvalidArgumentError, compute_delay
from .rewrite import substitute

__all__ = [
    "Document",
    "EDIT_REASON",
    "HotlinkPuller",
    "InvalidArgumentError",
    "JOB_NAME",
    "PullConfig",
    "PullOutcome",
    "PullReport",
    "RevisionRequest",
    "compute_delay",
    "substitute",
]
