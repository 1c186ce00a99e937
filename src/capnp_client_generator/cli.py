"""Command-line interface for generating clients and their tests from *.capnp schemas.

Notes:
    - The generated clients call a transport object, they do not depend on pycapnp.
"""

from __future__ import annotations

import argparse
import logging
import os.path
from collections.abc import Sequence

from capnp_client_generator.errors import ConfigurationError
from capnp_client_generator.run import run

logger = logging.getLogger(__name__)


def _add_recursive_argument(parser: argparse.ArgumentParser):
    """Add a recursive argument to a parser.

    Args:
        parser (argparse.ArgumentParser): The parser to add the argument to.
    """
    parser.add_argument(
        "-r",
        "--recursive",
        dest="recursive",
        default=False,
        action="store_true",
        help="recursively search for *.capnp files with a given glob expression.",
    )


def setup_parser() -> argparse.ArgumentParser:
    """Setup for the parser.

    Returns:
        argparse.ArgumentParser: The parser after setup.
    """
    parser = argparse.ArgumentParser(description="Generate clients and tests for capnp schema files.")

    parser.add_argument(
        "-p",
        "--paths",
        type=str,
        nargs="+",
        default=["**/*.capnp"],
        help="path or glob expressions that match *.capnp files for client generation.",
    )

    parser.add_argument(
        "-e",
        "--excludes",
        type=str,
        nargs="+",
        default=[],
        help="path or glob expressions to exclude from path matches.",
    )

    parser.add_argument(
        "-o",
        "--output-dir",
        type=str,
        default="",
        help="directory to write all generated modules; defaults to alongside each schema if omitted.",
    )

    parser.add_argument(
        "-I",
        "--import-path",
        dest="import_paths",
        type=str,
        nargs="+",
        default=[],
        help="additional import paths for resolving absolute imports (e.g., /capnp/c++.capnp).",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=str,
        default="",
        help="YAML file with flattening, paging, long running and streaming options per method.",
    )

    parser.add_argument(
        "--no-tests",
        dest="no_tests",
        default=False,
        action="store_true",
        help="do not write test modules for the generated clients.",
    )

    parser.add_argument(
        "--strict",
        default=False,
        action="store_true",
        help="exit with an error if any method had to be skipped.",
    )

    _add_recursive_argument(parser)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point of the client generator.

    Args:
        argv (Sequence[str] | None, optional): Run arguments. Defaults to None.

    Returns:
        int: Error code.
    """
    logging.basicConfig(level=logging.INFO)

    root_directory = os.getcwd()
    logging.info("Working from root directory: %s", root_directory)

    parser = setup_parser()
    args = parser.parse_args(argv)

    try:
        result = run(args, root_directory)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    for diagnostic in result.diagnostics:
        logger.warning(f"Skipped {diagnostic}")

    if not result.written:
        logger.error("No clients were generated.")
        return 1
    if args.strict and result.diagnostics:
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
