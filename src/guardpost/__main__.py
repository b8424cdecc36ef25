"""guardpost entry point."""

import argparse
import logging
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

from guardpost.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _version() -> str:
    try:
        return get_version("guardpost")
    except PackageNotFoundError:
        return "unknown"


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="guardpost",
        description="OAuth 2.0 / OpenID Connect authorization server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m guardpost serve                  Start the development server
  python -m guardpost serve --demo           ... with a demo client and user
  python -m guardpost serve --dev            ... with auto-reload
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {_version()}")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    subcommands = parser.add_subparsers(dest="command")

    serve = subcommands.add_parser("serve", help="Run the development server")
    serve.add_argument("--host", default="127.0.0.1", help="Host to bind (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Port to bind (default: 8000)")
    serve.add_argument("--dev", action="store_true", help="Auto-reload on code changes")
    serve.add_argument("--demo", action="store_true", help="Seed a demo client and user")

    args = parser.parse_args()
    setup_logging(level=args.log_level)

    if args.command == "serve":
        from guardpost.api.serve import run_server

        run_server(host=args.host, port=args.port, dev=args.dev, demo=args.demo)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
