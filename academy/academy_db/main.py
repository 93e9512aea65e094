"""
Academy store - HTTP server entry point.

Usage:
    academy-server [--host HOST] [--port PORT]

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Configuration errors stop the process before anything is opened
    - Failure to acquire the store at startup is fatal (no retry)
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

import json_log_formatter
import uvicorn

from .api import create_app
from .config import AppConfig

logger = logging.getLogger(__name__)


def setup_logging(config: AppConfig) -> None:
    """Configure the root logger from the observability settings."""
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(prog="academy-server", description="Academy store HTTP API")
    parser.add_argument("--host", default=os.getenv("ACADEMY_HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("ACADEMY_PORT", "8000")))
    args = parser.parse_args(argv)

    try:
        config = AppConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    config.log_config()

    app = create_app(config)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
