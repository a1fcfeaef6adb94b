"""Command-line entry point for pulling hotlinked images."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Iterable, List, Sequence

from .config import (
    DEFAULT_DOWNLOAD_TIMEOUT,
    DEFAULT_EDIT_GRACE_PERIOD,
    DEFAULT_MAX_IMAGE_SIZE_KB,
    PullConfig,
)
from .models import PullReport
from .puller import JOB_NAME, HotlinkPuller
from .stores import DeferredScheduler, FileDocumentStore, LocalBlobStore

logger = logging.getLogger("hotlinks.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("pull", *argv)


def _add_pull_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "paths",
        nargs="+",
        type=Path,
        help="Markdown documents whose remote images should be stored locally",
    )
    parser.add_argument(
        "--uploads",
        default="uploads",
        type=Path,
        help="Directory where downloaded images are stored",
    )
    parser.add_argument(
        "--base-url",
        default="http://localhost",
        help="Public URL of the site; images on this host are never downloaded",
    )
    parser.add_argument(
        "--asset-host",
        default=None,
        help="CDN host serving site assets; images on this host are never downloaded",
    )
    parser.add_argument(
        "--owner",
        default="system",
        help="Owner id under which downloaded images are stored",
    )
    parser.add_argument(
        "--max-image-size-kb",
        type=int,
        default=DEFAULT_MAX_IMAGE_SIZE_KB,
        help="Skip images larger than this many kilobytes",
    )
    parser.add_argument(
        "--blacklist",
        action="append",
        default=[],
        metavar="DOMAIN",
        help="Never download images from this domain (repeatable)",
    )
    parser.add_argument(
        "--grace-period",
        type=float,
        default=DEFAULT_EDIT_GRACE_PERIOD,
        help="Seconds to wait before retrying a document that was edited during a run",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_DOWNLOAD_TIMEOUT,
        help="Per-image download timeout in seconds",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Download up to this many images in parallel",
    )
    parser.add_argument(
        "--max-runs",
        type=int,
        default=5,
        help="Give up on documents that keep changing after this many retries",
    )
    parser.add_argument(
        "--disable",
        action="store_true",
        help="Behave as if downloading remote images were switched off",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Replace hotlinked images in Markdown documents with local copies.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    pull_parser = subparsers.add_parser(
        "pull", help="Download remote images and rewrite the documents"
    )
    _add_pull_arguments(pull_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> PullConfig:
    return PullConfig(
        base_url=args.base_url,
        asset_host=args.asset_host,
        download_remote_images=not args.disable,
        max_image_size_kb=args.max_image_size_kb,
        edit_grace_period=args.grace_period,
        blacklisted_domains=tuple(args.blacklist),
        download_timeout=args.timeout,
        max_workers=max(args.workers, 1),
    )


def _run_pull(args: argparse.Namespace) -> int:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )

    config = build_config(args)
    documents = FileDocumentStore(owner_id=args.owner)
    blob_store = LocalBlobStore(Path(args.uploads).resolve(), config.base_url)
    scheduler = DeferredScheduler(max_runs=args.max_runs)
    puller = HotlinkPuller(config, documents, blob_store, scheduler)

    reports: List[PullReport] = []

    def _pull(job_args: dict) -> None:
        reports.append(puller.run(job_args))

    missing = [path for path in args.paths if not path.is_file()]
    for path in missing:
        logger.error("No such document: %s", path)

    overall_start = time.perf_counter()
    for path in args.paths:
        if path in missing:
            continue
        _pull({"document_id": str(path)})
    retries = scheduler.drain({JOB_NAME: _pull})
    total_elapsed = time.perf_counter() - overall_start

    for report in reports:
        logger.info(
            "%s: %s (%d pulled, %d failed)",
            report.document_id,
            report.outcome.value,
            len(report.resolved),
            len(report.failed),
        )
        for url in report.failed:
            logger.debug("Could not pull %s", url)
    logger.info("Finished in %.2fs (%d retries)", total_elapsed, retries)
    return 1 if missing else 0


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    return _run_pull(args)


if __name__ == "__main__":
    sys.exit(main())
