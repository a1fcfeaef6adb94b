"""MCP server exposing the hotlink puller as a tool."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from .config import PullConfig
from .puller import HotlinkPuller
from .stores import DeferredScheduler, FileDocumentStore, LocalBlobStore

logger = logging.getLogger("hotlinks.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="hotlinks")


@mcp.tool()
async def pull(
    path: str,
    uploads: str = "uploads",
    base_url: str = "http://localhost",
) -> str:
    """Store the remote images of a Markdown file locally and return the rewritten text."""

    source = Path(path).expanduser()
    if not source.is_file():
        raise FileNotFoundError(f"Document path does not exist: {source}")

    config = PullConfig(base_url=base_url)
    documents = FileDocumentStore()
    # edits racing a tool call are not retried; the caller can call again
    puller = HotlinkPuller(
        config,
        documents,
        LocalBlobStore(Path(uploads).expanduser().resolve(), base_url),
        DeferredScheduler(max_runs=0),
    )
    report = await asyncio.to_thread(puller.run, {"document_id": str(source)})
    logger.debug("Pulled %s: %s", source, report.outcome.value)
    return source.read_text(encoding="utf-8")


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
