"""
Ripple Command Line Entry Point

    ripple [--validate-config] [--env-file PATH]

Exit codes
----------
0  clean shutdown, or valid configuration with --validate-config
1  invalid configuration (or log file cannot be opened)
2  a listener could not bind its address
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from . import __version__
from .config import DEFAULT_ENV_FILE, Config, load_config
from .core.errors import BindFailedError, ConfigFileNotFoundError, ConfigurationError
from .core.logging_config import configure_logging
from .metrics import MetricsRegistry
from .server import serve

logger = logging.getLogger("ripple.app")

EXIT_OK = 0
EXIT_INVALID_CONFIG = 1
EXIT_BIND_FAILED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ripple",
        description="Ripple semantic caching proxy",
    )
    parser.add_argument(
        "--validate-config",
        action="store_true",
        help="Load and validate the configuration, then exit (0 = valid, 1 = invalid).",
    )
    parser.add_argument(
        "--env-file",
        default=DEFAULT_ENV_FILE,
        help="KEY=VALUE file read before the environment (default: %(default)s). "
        "A missing file is ignored.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _run(config: Config) -> int:
    logger.info("Ripple v%s starting up", __version__)
    logger.info("Configuration loaded successfully")
    logger.debug("Effective configuration: %s", config.redacted())

    metrics = MetricsRegistry()
    metrics.register_all()
    logger.info("Metrics system initialized")

    try:
        asyncio.run(serve(config, metrics))
    except BindFailedError as exc:
        logger.error("Startup aborted: %s", exc)
        return EXIT_BIND_FAILED
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.env_file)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_INVALID_CONFIG

    if args.validate_config:
        print("Configuration valid")
        return EXIT_OK

    try:
        with configure_logging(config):
            return _run(config)
    except ConfigFileNotFoundError as exc:
        print(f"Logging init failed: {exc}", file=sys.stderr)
        return EXIT_INVALID_CONFIG
