"""Main application entry point for ClearCast."""

import sys
import argparse
import logging
from typing import Optional

from aiohttp import web

from .config import ClearCastConfig
from .config.log_setup import setup_logging
from .server import build_app

logger = logging.getLogger(__name__)


class Server:

    def __init__(self, config_path: Optional[str], log_level: Optional[str] = None):
        # Load configuration
        self.config = ClearCastConfig(config_path)
        # Command line log level wins over the config file
        log_level = log_level or self.config.get('logging.level', 'INFO')
        setup_logging(self.config, log_level)
        self.app: Optional[web.Application] = None

    def init(self):
        logger.info("Initializing services...")
        logger.info(f"Session capacity: {self.config.get('session.capacity')}, "
                    f"merge grace delay: {self.config.get('merge.grace_delay_seconds')}s")
        self.app = build_app(self.config)

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        host = host or self.config.get('server.host', '0.0.0.0')
        port = port or self.config.get('server.port', 5000)
        logger.info(f"Server listening on {host}:{port}")
        try:
            web.run_app(self.app, host=host, port=port, print=None)
        finally:
            self.cleanup()

    def cleanup(self):
        # Pending merges are run by the app's cleanup hook
        logger.info("Server stopped")


def main() -> None:
    """Main entry point for the ClearCast signaling and upload server."""
    parser = argparse.ArgumentParser(
        description="ClearCast - two-party call signaling with recording and merge"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in defaults)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, INFO)"
    )

    parser.add_argument(
        "--host",
        type=str,
        help="Interface to bind (overrides config)"
    )

    parser.add_argument(
        "--port",
        type=int,
        help="Port to listen on (overrides config)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="ClearCast v0.1.0"
    )

    args = parser.parse_args()

    try:
        server = Server(args.config, args.log_level)
        server.init()
        server.run(args.host, args.port)
    except KeyboardInterrupt:
        print("\nGoodbye!")
    except Exception as e:
        print(f"Error: {e}")
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
