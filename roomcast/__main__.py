"""
Command line entry point for the Roomcast server.

Usage: python -m roomcast [--config roomcast.toml] [-p PORT]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from roomcast import __version__
from roomcast.config import ServerConfig, load_config
from roomcast.server import RoomcastServer


def setup_logging(verbose: bool = False) -> None:
    """Root logger on stderr; uvicorn and asyncio only report warnings."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # uvicorn logs every socket handshake at INFO
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Flags left unset fall through to the config file."""
    parser = argparse.ArgumentParser(
        prog="roomcast",
        description="Roomcast - shared music rooms with live chat and streamed playback",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a roomcast.toml (default: packaged defaults)",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host address to bind to (default: 0.0.0.0)",
    )

    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=None,
        help="HTTP/socket port (default: 8080)",
    )

    parser.add_argument(
        "--db",
        dest="db_path",
        type=str,
        default=None,
        help="SQLite database file (default: roomcast.sqlite3)",
    )

    parser.add_argument(
        "--media-dir",
        type=Path,
        default=None,
        help="Directory holding <track index>.mp3 files (default: ./media)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Load the config file and apply command line overrides."""
    return load_config(args.config).with_overrides(
        host=args.host,
        port=args.port,
        db_path=args.db_path,
        media_dir=args.media_dir,
    )


async def run_server(config: ServerConfig) -> None:
    """Run until a signal stops the server."""
    server = RoomcastServer(config)
    await server.run()


def main() -> int:
    """Exit status: 0 on clean shutdown, 1 on a crash, 2 on bad configuration."""
    args = parse_args()
    setup_logging(verbose=args.verbose)

    logger = logging.getLogger(__name__)
    logger.info("Starting Roomcast...")

    try:
        config = build_config(args)
    except (OSError, ValueError) as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    try:
        asyncio.run(run_server(config))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    logger.info("Server stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
