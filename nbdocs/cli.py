"""
Command-line interface for nbdocs.

    nbdocs build NAME...     execute, render and publish the named documents
    nbdocs build-all         the same for every declared document (default)
    nbdocs clean [NAME...]   remove executed notebooks and staged renders
    nbdocs clean-all         also remove published documents
    nbdocs list              show declared documents and their sources
    nbdocs check-links       verify relative links in published markdown

Exit status: 0 on success, 1 if any document failed (or links are broken),
2 for configuration and usage errors.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from ._version import __version__
from .config import LOG_FORMAT, load_config, validate_document_names
from .models.build import BuildReport
from .services.build_service import BuildService
from .services.link_checker import check_links

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nbdocs",
        description="Execute tutorial notebooks and publish them as markdown documentation.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=Path, help="path to nbdocs.json")
    parser.add_argument("--source-dir", type=Path, help="directory holding the notebook sources")
    parser.add_argument("--output-dir", type=Path, help="directory for executed notebooks and staged renders")
    parser.add_argument("--publish-dir", type=Path, help="directory the finished documents are published to")
    parser.add_argument(
        "--incremental",
        action="store_true",
        default=None,
        help="skip steps whose outputs are newer than their inputs",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    build = subparsers.add_parser("build", help="build the named documents")
    build.add_argument("names", nargs="+", metavar="NAME")

    subparsers.add_parser("build-all", help="build every declared document (default)")

    clean = subparsers.add_parser("clean", help="remove transient build artifacts")
    clean.add_argument("names", nargs="*", metavar="NAME")

    subparsers.add_parser("clean-all", help="remove transient and published artifacts")
    subparsers.add_parser("list", help="list declared documents")
    subparsers.add_parser("check-links", help="check relative links in published markdown")

    return parser


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def _print_report(report: BuildReport) -> None:
    for result in report.results:
        if result.ok:
            published = result.published.markdown_path if result.published else "-"
            print(f"{result.name}: published {published}")
        else:
            stage = result.failed_stage.value if result.failed_stage else "build"
            print(f"nbdocs: {result.name}: {stage} failed: {result.error_message}", file=sys.stderr)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    overrides = {
        "source_dir": args.source_dir,
        "output_dir": args.output_dir,
        "publish_dir": args.publish_dir,
        "incremental": args.incremental,
    }
    try:
        config = load_config(args.config, overrides=overrides)
        names = validate_document_names(getattr(args, "names", None) or [])
    except ValueError as e:  # ConfigError, or an invalid document name
        print(f"nbdocs: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    service = BuildService(config)
    command = args.command or "build-all"
    logger.debug(f"Running {command} with {config.model_dump()}")

    if command in ("build", "build-all"):
        report = service.build(names) if command == "build" else service.build_all()
        _print_report(report)
        return report.exit_code

    if command in ("clean", "clean-all"):
        if command == "clean":
            removed = service.clean(names or None)
        else:
            removed = service.clean_all()
        print(f"removed {len(removed)} path(s)")
        return EXIT_OK

    if command == "list":
        for target in service.targets():
            marker = "" if target.source.is_file() else "  (missing)"
            print(f"{target.name}\t{target.source}{marker}")
        return EXIT_OK

    if command == "check-links":
        broken = check_links(config.publish_dir)
        for link in broken:
            print(f"nbdocs: {link.document}: {link.target} ({link.reason})", file=sys.stderr)
        if broken:
            return EXIT_FAILURE
        print(f"OK: all relative links in {config.publish_dir} resolve")
        return EXIT_OK

    parser.error(f"unknown command {command!r}")
    return EXIT_CONFIG_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
