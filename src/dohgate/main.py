from __future__ import annotations

import argparse
import logging
import sys
from typing import List

from .config.config_parser import describe_servers, parse_config_file
from .config.logging_config import init_logging, resolve_level
from .config.server_spec import ConfigError
from .forwarder import QueryForwarder
from .resolver import StubResolver
from .servers.doh_api import serve_doh

logger = logging.getLogger("dohgate.main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dohgate", description="DNS over HTTPS (RFC 8484) gateway"
    )
    parser.add_argument("config", metavar="CONFIG_FILE", help="Path to YAML/JSON config")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override logging.level from the config (debug, info, warn, error, crit)",
    )
    return parser


def main(argv: List[str] | None = None) -> int:
    """
    Main entry point for the gateway.
    Parses arguments, loads configuration, builds the resolver, and serves HTTP.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code: 0 after a clean shutdown, 1 on configuration errors.

    Example use:
        CLI:
            dohgate config.yaml
            PYTHONPATH=src python -m dohgate.main config.yaml --log-level debug
    """
    args = build_parser().parse_args(argv)

    try:
        cfg, logging_cfg = parse_config_file(args.config)
    except (ConfigError, OSError) as exc:
        # Logging is not configured yet; use the defaults.
        init_logging(None, level=args.log_level)
        logger.error("Invalid configuration in %s: %s", args.config, exc)
        return 1

    init_logging(logging_cfg, level=args.log_level)
    logger.info("listen on %s", cfg.listen)
    logger.info("dns servers: %s", describe_servers(cfg.servers))

    forwarder = QueryForwarder(StubResolver.from_config(cfg))
    level = resolve_level(args.log_level or logging_cfg.get("level"))
    try:
        serve_doh(cfg, forwarder, log_level=logging.getLevelName(level).lower())
    except KeyboardInterrupt:  # pragma: no cover - interactive shutdown
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
