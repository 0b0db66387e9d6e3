"""
Entry point for the history server.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .application.exceptions import HistoryServerError
from .infrastructure.containers import Container

logger = logging.getLogger(__name__)


def setup_logging(level: str):
    """Applies basic logging configuration."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def run_application(args: argparse.Namespace) -> int:
    """
    Wires and runs the history server using the DI container.

    Returns:
        The process exit code: 0 after a clean shutdown, 1 if the server
        could not be configured or started.
    """

    container = Container()
    container.cli_args.from_dict(vars(args))
    http_client = None

    try:
        settings = container.config()
        setup_logging(level=args.log_level or settings.logging.level)
        http_client = container.http_client()
        history_server = container.history_server()
        await history_server.run()
    except (HistoryServerError, OSError) as e:
        logger.error(f"Failed to run history server: {e}", exc_info=e)
        return 1
    finally:
        if http_client is not None:
            await http_client.aclose()

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Serves finished-job archives from a local mirror."
    )

    parser.add_argument(
        "--config",
        help="An additional settings file, overriding config/settings.toml.",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Overrides the configured log level.",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    cli_args = build_parser().parse_args(argv)
    return asyncio.run(run_application(cli_args))


if __name__ == "__main__":
    sys.exit(main())
