"""Command-line entry point for the image harvester."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Iterable, Sequence

from .config import HarvestConfig
from .ingest import build_template
from .pipeline import Harvester, harvest_file

logger = logging.getLogger("image_harvest.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("run", *argv)


def _add_pipeline_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--artifact-root",
        type=Path,
        default=None,
        help="Directory where finished archives are kept until downloaded",
    )
    parser.add_argument(
        "--row-pause",
        type=float,
        default=None,
        help="Seconds to wait after each row (default: 0.5)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Rows processed concurrently; progress is still reported in order (default: 1)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Find an image for every row of a spreadsheet and package them into a ZIP archive.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run", help="Process a spreadsheet locally and write the archive"
    )
    run_parser.add_argument("table", type=Path, help="Spreadsheet (.xlsx or .csv) with id and image_name columns")
    run_parser.add_argument(
        "--output",
        type=Path,
        default=Path("images.zip"),
        help="Where to write the resulting archive",
    )
    _add_pipeline_arguments(run_parser)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on")
    _add_pipeline_arguments(serve_parser)

    template_parser = subparsers.add_parser(
        "template", help="Write a sample spreadsheet with the expected columns"
    )
    template_parser.add_argument(
        "--output",
        type=Path,
        default=Path("sample_template.xlsx"),
        help="Where to write the template",
    )

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )


def _build_config(args: argparse.Namespace) -> HarvestConfig:
    return HarvestConfig.from_env().with_overrides(
        artifact_root=args.artifact_root.resolve() if args.artifact_root else None,
        row_pause=args.row_pause,
        workers=args.workers,
    )


def _run_table(args: argparse.Namespace) -> int:
    _configure_logging(args.verbose)
    if not args.table.is_file():
        logger.error("Spreadsheet not found: %s", args.table)
        return 1

    harvester = Harvester.from_config(_build_config(args))
    overall_start = time.perf_counter()

    def _emit(line: str) -> None:
        sys.stdout.write(line)
        sys.stdout.flush()

    summary = harvest_file(args.table, args.output.resolve(), harvester, on_line=_emit)
    total_elapsed = time.perf_counter() - overall_start

    if summary.error:
        logger.error("Harvest failed: %s", summary.error)
        return 1
    logger.info(
        "Finished in %.2fs (%d/%d succeeded, %d failed) -> %s",
        total_elapsed,
        summary.succeeded,
        summary.succeeded + summary.failed,
        summary.failed,
        summary.output_path,
    )
    return 0


def _run_server(args: argparse.Namespace) -> int:
    from .app import create_app

    _configure_logging(args.verbose)
    app = create_app(_build_config(args))
    app.run(host=args.host, port=args.port, threaded=True)
    return 0


def _write_template(args: argparse.Namespace) -> int:
    _configure_logging(False)
    args.output.write_bytes(build_template())
    logger.info("Wrote template to %s", args.output)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    if args.command == "serve":
        return _run_server(args)
    if args.command == "template":
        return _write_template(args)
    return _run_table(args)


if __name__ == "__main__":
    sys.exit(main())
