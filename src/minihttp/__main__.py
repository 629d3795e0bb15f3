"""
=============================================================================
COMMAND-LINE INTERFACE
=============================================================================

    python -m minihttp [directory] [options]
    minihttp --directory /tmp/files

The server always listens on 127.0.0.1:4221.

=============================================================================
"""

import argparse
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from . import __version__
from .config import ServerConfig, LOG_LEVELS
from .server import HTTPServer


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="minihttp",
        description="Minimal HTTP/1.1 server on 127.0.0.1:4221",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m minihttp                          # No file routes
  python -m minihttp /tmp/files               # Serve /files/ from /tmp/files
  python -m minihttp --directory /tmp/files   # Same
  python -m minihttp --log-level DEBUG --no-gzip
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # FILES
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "directory",
        nargs="?",
        default=None,
        help="Serving directory for /files/<name>",
    )

    parser.add_argument(
        "--directory", "-d",
        dest="directory_option",
        default=None,
        metavar="DIR",
        help="Serving directory (overrides the positional argument)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # SERVER
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        type=str.upper,
        default=None,
        help="Logging level (default: INFO or MINIHTTP_LOG_LEVEL)",
    )

    parser.add_argument(
        "--max-connections",
        type=int,
        default=None,
        help="Connections served at once before answering 503 (default: 256)",
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-connection socket timeout in seconds (default: 30)",
    )

    parser.add_argument(
        "--no-gzip",
        action="store_true",
        help="Never gzip-encode responses",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"minihttp {__version__}",
    )

    return parser


def config_from_args(args: argparse.Namespace, base: Optional[ServerConfig] = None) -> ServerConfig:
    """
    Layer parsed CLI flags over a base config (the environment by default).

    Flags that were not given keep the base value.
    """
    config = base if base is not None else ServerConfig.from_env()
    overrides = {}

    directory = args.directory_option or args.directory
    if directory:
        overrides["directory"] = directory
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.max_connections is not None:
        overrides["max_connections"] = args.max_connections
    if args.timeout is not None:
        overrides["timeout"] = args.timeout
    if args.no_gzip:
        overrides["gzip"] = False

    return replace(config, **overrides)


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point.

    Returns:
        Process exit code: 0 after a clean shutdown, 2 for an invalid
        configuration, 1 when the server cannot start.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args)
        server = HTTPServer(config)
    except ValueError as e:
        print(f"minihttp: invalid configuration: {e}", file=sys.stderr)
        return 2

    try:
        server.run()
    except OSError as e:
        logger.error(f"Server failed: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
