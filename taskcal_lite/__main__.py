"""Command-line entry for taskcal_lite."""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn, Optional

from . import run_server


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for taskcal_lite CLI."""
    parser = argparse.ArgumentParser(
        prog="taskcal_lite",
        description="taskcal_lite - task calendar server with recurring tasks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m taskcal_lite                          # Start server on default port (8080)
  python -m taskcal_lite --port 3000              # Start server on port 3000
  python -m taskcal_lite --config taskcal.yaml    # Load settings from a YAML file
        """,
    )
    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 8080, or from TASKCAL_WEB_PORT env var)",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="YAML or JSON config file; environment variables override its values",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the taskcal_lite CLI."""
    args = _create_parser().parse_args(argv)
    try:
        run_server(args)
    except Exception as exc:
        print(f"taskcal_lite failed to start: {exc}", file=sys.stderr)
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
