"""
=============================================================================
COMMAND LINE
=============================================================================

    # Serve the current directory on :8080
    python -m staticserve

    # Serve ./public on port 3000, localhost only
    python -m staticserve --addr 127.0.0.1:3000 ./public

    # Everything from a configuration file
    python -m staticserve --config staticserve.yaml

    # Validate a configuration and exit
    python -m staticserve --config staticserve.yaml --check

Exit status: 0 after a clean shutdown or a passed check, 1 for invalid
configuration or a listener that cannot be bound.

=============================================================================
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .config import LOG_LEVELS, RuntimeConfig, default_config, load_config
from .errors import ConfigError
from .server import StaticServer, setup_logging


logger = logging.getLogger("staticserve")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="staticserve",
        description="Configuration-driven static file server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  staticserve                             # serve . on :8080
  staticserve --addr :3000 ./public       # serve ./public on :3000
  staticserve --config staticserve.yaml   # listeners, serves, redirects, errors
        """,
    )

    parser.add_argument(
        "--config", "-c",
        metavar="PATH",
        help="Path to a YAML configuration",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only check the configuration",
    )
    parser.add_argument(
        "--addr",
        default=":8080",
        help="Listen address when no configuration is given (default: :8080)",
    )
    parser.add_argument(
        "target",
        nargs="?",
        default=".",
        help="Directory to serve when no configuration is given (default: .)",
    )
    parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        type=str.upper,
        default=None,
        help="Logging level (default: INFO, or the configuration's)",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"staticserve {__version__}",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # Logging first, so configuration problems are reported properly
    setup_logging(args.log_level or "INFO")

    try:
        if args.config:
            config = load_config(args.config)
        else:
            config = default_config(args.addr, args.target)

        config.runtime = RuntimeConfig.from_env(base=config.runtime)
        if args.log_level:
            config.runtime.log_level = args.log_level
        logging.getLogger("staticserve").setLevel(config.runtime.log_level)

        config.sanitise()
        config.validate()
    except ConfigError as e:
        for problem in e.problems:
            logger.error(problem)
        logger.error("Invalid config.")
        return 1

    if args.check:
        logger.info("Config check passed")
        return 0

    try:
        server = StaticServer(config)
        server.run()
    except ConfigError as e:
        for problem in e.problems:
            logger.error(problem)
        return 1
    except OSError as e:
        logger.error(f"Could not start: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
