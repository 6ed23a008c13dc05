#!/usr/bin/env python3
"""
Main entry point for the token market.

This script starts the REST API and WebSocket servers around a
single shared matching engine.
"""

import argparse
import asyncio
import signal
import sys
import threading
from typing import Optional

from tokenmarket.api.rest_api import create_app
from tokenmarket.api.websocket_api import WebSocketServer
from tokenmarket.config.settings import get_settings
from tokenmarket.core.matching_engine import MatchingEngine
from tokenmarket.utils.logger import create_audit_logger, get_logger, setup_logging
from tokenmarket.utils.performance import get_performance_monitor

logger = get_logger(__name__)


class MarketServer:
    """
    Runs the REST and WebSocket servers over one matching engine.
    """

    def __init__(self, seed_tokens: Optional[list] = None):
        """Initialize logging, the engine and the servers."""
        self.settings = get_settings()

        setup_logging(
            level=self.settings.log_level,
            log_file=self.settings.log_file
        )

        monitor = get_performance_monitor() if self.settings.enable_performance_monitoring else None
        self.matching_engine = MatchingEngine.from_settings(
            self.settings,
            audit_logger=create_audit_logger(self.settings.audit_log_file),
            performance_monitor=monitor,
        )

        for symbol in seed_tokens or []:
            token = self.matching_engine.register_token(name=symbol, symbol=symbol)
            logger.info(f"Seeded token {token.symbol} as {token.token_id}")

        self.rest_app = create_app(self.matching_engine, self.settings)
        self.websocket_server = WebSocketServer(
            self.matching_engine,
            host=self.settings.websocket_host,
            port=self.settings.websocket_port,
            ping_interval=self.settings.websocket_ping_interval,
            ping_timeout=self.settings.websocket_ping_timeout,
        )
        self.rest_thread: Optional[threading.Thread] = None

        logger.info("Token market server initialized")

    def start(self) -> None:
        """Start the REST server in a thread and the WebSocket server in the foreground."""
        logger.info("Starting token market server...")
        self._start_rest_server()

        logger.info(
            f"Starting WebSocket server on {self.settings.websocket_host}:{self.settings.websocket_port}"
        )
        asyncio.run(self.websocket_server.start())

    def _start_rest_server(self) -> None:
        """Start REST API server in a separate thread."""
        def run_rest_server():
            logger.info(f"Starting REST API server on {self.settings.rest_host}:{self.settings.rest_port}")
            self.rest_app.run(
                host=self.settings.rest_host,
                port=self.settings.rest_port,
                debug=self.settings.debug,
                use_reloader=False,
                threaded=True,
            )

        self.rest_thread = threading.Thread(target=run_rest_server, name="rest-api", daemon=True)
        self.rest_thread.start()


def signal_handler(signum, frame):
    """Handle shutdown signals."""
    logger.info(f"Received signal {signum}, shutting down...")
    sys.exit(0)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Token market matching engine server")
    parser.add_argument(
        "--seed-token",
        action="append",
        default=[],
        metavar="SYMBOL",
        help="Register a tradable token at startup (repeatable)",
    )
    args = parser.parse_args()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        server = MarketServer(seed_tokens=args.seed_token)
        server.start()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
    except ValueError as e:
        logger.error(f"Fatal configuration error: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
