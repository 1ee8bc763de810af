"""Command-line entry point for running the Battleship server."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from salvo.errors import ConfigurationError
from salvo.server import Listener, ServerConfig, load_server_config, parse_socket_address
from salvo.telemetry import init_telemetry, setup_logging

logger = logging.getLogger("salvo")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Serve two-player Battleship over TCP.")
    parser.add_argument(
        "--socket", default=None, help="HOST:PORT to listen on (default: $SALVO_SOCKET or 0.0.0.0:1234)."
    )
    parser.add_argument("--width", type=int, default=None, help="Grid width in columns (1-26).")
    parser.add_argument("--height", type=int, default=None, help="Grid height in rows.")
    parser.add_argument(
        "--countdown", type=float, default=None, help="Seconds between countdown messages."
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity.")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log errors.")
    return parser


def _log_level(verbose: int, quiet: bool) -> int:
    if quiet:
        return logging.ERROR
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return logging.WARNING


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    setup_logging(_log_level(args.verbose, args.quiet))

    try:
        overrides = parse_socket_address(args.socket) if args.socket else {}
        overrides.update(
            {
                key: value
                for key, value in (
                    ("grid_width", args.width),
                    ("grid_height", args.height),
                    ("countdown_seconds", args.countdown),
                )
                if value is not None
            }
        )
        config = ServerConfig.from_env(**overrides) if overrides else load_server_config()
    except ConfigurationError as exc:
        logger.error("invalid_configuration", extra={"error": str(exc)})
        print(f"salvo: {exc}", file=sys.stderr)
        return 2

    init_telemetry()
    logger.info("server_starting", extra={"socket": config.socket_address})
    listener = Listener(config)
    try:
        listener.bind()
        listener.serve_forever()
    except KeyboardInterrupt:
        logger.info("server_stopping")
    finally:
        listener.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
