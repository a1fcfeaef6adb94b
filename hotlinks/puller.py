"""Pull hotlinked images of a document into local storage and rewrite the document.

A run snapshots the raw text, downloads every eligible remote image, then
reloads the document. If someone edited it meanwhile the rewrite is dropped
and the job is scheduled again with a longer delay; otherwise the rewritten
text is committed as a new revision.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import IO, Any, Dict, List, Mapping, Optional, Protocol, Tuple
from urllib.parse import unquote

import requests

from .config import PullConfig
from .content import extract_image_references
from .eligibility import is_eligible, normalize_source
from .images import ImageResolver, fetch_image
from .models import Document, PullOutcome, PullReport, RevisionRequest
from .rewrite import substitute_all

logger = logging.getLogger("hotlinks")

JOB_NAME = "pull_hotlinked_images"
EDIT_REASON = "downloaded local copies of images"


class InvalidArgumentError(ValueError):
    """Raised when the job is invoked without a usable document id."""

    def __init__(self, name: str) -> None:
        super().__init__(f"missing or invalid argument: {name}")
        self.name = name


class BlobStore(Protocol):
    def store(self, owner_id: str, file: IO[bytes], filename: str, size: int, origin: str) -> str:
        ...

    def has_been_uploaded(self, url: str) -> bool:
        ...


class DocumentStore(Protocol):
    def load(self, document_id: str) -> Optional[Document]:
        ...

    def revise(self, document: Document, request: RevisionRequest) -> None:
        ...


class Scheduler(Protocol):
    def enqueue_in(self, delay_seconds: float, job_name: str, args: Dict[str, Any]) -> None:
        ...


def compute_delay(prior_backoff: int, grace_period: float) -> Tuple[float, int]:
    """Return the delay before the next attempt and the back-off to carry forward."""
    prior_backoff = max(int(prior_backoff), 1)
    return grace_period * prior_backoff, prior_backoff + 1


class HotlinkPuller:
    """Runs the pull job for one document at a time."""

    def __init__(
        self,
        config: PullConfig,
        documents: DocumentStore,
        blob_store: BlobStore,
        scheduler: Scheduler,
        session: Optional[requests.Session] = None,
        fetch=fetch_image,
    ) -> None:
        self.config = config
        self.documents = documents
        self.blob_store = blob_store
        self.scheduler = scheduler
        self.session = session
        self._fetch = fetch
        self.last_run: Optional[PullReport] = None
        self.last_resolver: Optional[ImageResolver] = None

    def execute(self, args: Mapping[str, Any]) -> PullOutcome:
        report = self.run(args)
        return report.outcome

    def run(self, args: Mapping[str, Any]) -> PullReport:
        document_id = args.get("document_id")
        if not self.config.download_remote_images:
            logger.debug("Downloading remote images is disabled; skipping %s", document_id)
            return self._finish(PullReport(str(document_id), PullOutcome.DISABLED))

        if document_id is None or not str(document_id).strip():
            raise InvalidArgumentError("document_id")
        document_id = str(document_id)

        document = self.documents.load(document_id)
        if document is None:
            logger.info("Document %s not found; nothing to pull", document_id)
            return self._finish(PullReport(document_id, PullOutcome.NOT_FOUND))

        snapshot = document.raw
        forms = self._eligible_sources(document)
        sources = list(forms)
        resolver = ImageResolver(self.config, self.blob_store, session=self.session, fetch=self._fetch)
        self.last_resolver = resolver
        resolved = self._resolve_all(resolver, sources, document.owner_id)

        raw = snapshot
        for url, local_url in list(resolved.items()):
            try:
                raw = substitute_all(raw, [(form, local_url) for form in forms[url]])
            except Exception:
                logger.exception("Failed to rewrite hotlinked image: %s", url)
                del resolved[url]

        report = PullReport(
            document_id,
            PullOutcome.NOOP,
            resolved=resolved,
            failed=[url for url in resolver.resolutions if url not in resolved],
        )

        current = self.documents.load(document_id)
        if current is None:
            logger.info("Document %s disappeared while pulling images", document_id)
            report.outcome = PullOutcome.NOT_FOUND
        elif current.raw != snapshot:
            delay, backoff = compute_delay(args.get("backoff", 1) or 1, self.config.edit_grace_period)
            logger.info(
                "Document %s was edited while pulling images; retrying in %.0fs",
                document_id,
                delay,
            )
            self.scheduler.enqueue_in(delay, JOB_NAME, {**args, "backoff": backoff})
            report.outcome = PullOutcome.RESCHEDULED
            report.backoff = backoff
        elif raw != snapshot:
            self.documents.revise(
                current,
                RevisionRequest(document_id, raw, reason=EDIT_REASON, bypass_bump=True),
            )
            logger.info("Revised %s with %d local image(s)", document_id, len(resolved))
            report.outcome = PullOutcome.COMMITTED
        return self._finish(report)

    def _finish(self, report: PullReport) -> PullReport:
        self.last_run = report
        return report

    def _eligible_sources(self, document: Document) -> Dict[str, List[str]]:
        """Eligible URLs in discovery order, each with the spellings to rewrite.

        The normalised URL comes first so a protocol-relative spelling is only
        rewritten where it was not already part of the full URL. URLs none of
        whose spellings occur in the raw text are dropped: they could be
        downloaded but never rewritten.
        """
        forms: Dict[str, List[str]] = {}
        rejected = set()
        for reference in extract_image_references(document.rendered):
            src = normalize_source(reference.source_url)
            if src in rejected:
                continue
            if src not in forms:
                if not is_eligible(src, self.config, self.blob_store):
                    rejected.add(src)
                    continue
                forms[src] = [src]
            for spelling in (reference.source_url, unquote(src), unquote(reference.source_url)):
                if spelling not in forms[src] and (spelling == reference.source_url or spelling in document.raw):
                    forms[src].append(spelling)
        for src, spellings in list(forms.items()):
            if not any(spelling in document.raw for spelling in spellings):
                logger.debug("Skipping %s: not found in the raw text of %s", src, document.id)
                del forms[src]
        return forms

    def _resolve_one(self, resolver: ImageResolver, url: str, owner_id: str) -> Optional[str]:
        try:
            return resolver.resolve(url, owner_id)
        except Exception:
            logger.exception("Failed to pull hotlinked image: %s", url)
            return None

    def _resolve_all(self, resolver: ImageResolver, sources: List[str], owner_id: str) -> Dict[str, str]:
        if self.config.max_workers > 1 and len(sources) > 1:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
                results = list(pool.map(lambda url: self._resolve_one(resolver, url, owner_id), sources))
        else:
            results = [self._resolve_one(resolver, url, owner_id) for url in sources]
        # keep discovery order so rewrites are deterministic
        return {url: local for url, local in zip(sources, results) if local}
