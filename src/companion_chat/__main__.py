"""Command line entry point: ``python -m companion_chat``."""

import argparse

import uvicorn
from loguru import logger

from .config_loader import load_config
from .logging_setup import setup_logging
from .server import create_app


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Companion chat server")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the YAML config (defaults to $COMPANION_CHAT_CONFIG or conf.yaml)",
    )
    parser.add_argument("--host", default=None, help="Override server.host")
    parser.add_argument("--port", type=int, default=None, help="Override server.port")
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    config = load_config(args.config)
    setup_logging(config.logging)

    host = args.host or config.server.host
    port = args.port or config.server.port
    logger.info(f"Serving companion chat on http://{host}:{port}")

    uvicorn.run(create_app(config), host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
