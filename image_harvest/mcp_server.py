"""MCP server exposing the image harvester as a tool."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from mcp.server.fastmcp import FastMCP

from .config import HarvestConfig
from .pipeline import Harvester, harvest_file

logger = logging.getLogger("image_harvest.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="image-harvest")


def _default_output(source: Path) -> Path:
    return source.with_name(f"{source.stem}-images.zip")


@mcp.tool()
def harvest_images(
    path: str,
    output: Optional[str] = None,
) -> str:
    """Download one image per spreadsheet row and write them to a ZIP archive."""

    source = Path(path).expanduser()
    if not source.is_file():
        raise FileNotFoundError(f"Spreadsheet does not exist: {source}")
    destination = Path(output).expanduser() if output else _default_output(source)

    harvester = Harvester.from_config(HarvestConfig.from_env())
    summary = harvest_file(source, destination, harvester)
    if summary.error:
        raise RuntimeError(f"Failed to harvest images from {source}: {summary.error}")
    return (
        f"Saved {summary.succeeded} images to {summary.output_path} "
        f"({summary.failed} rows without an image)"
    )


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
