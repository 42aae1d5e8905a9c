"""
Message archive server - main entry point.

This module starts the archive server with:
- One archive actor per served domain
- The HTTP intake API (optional)

Usage:
    python -m msgarchive.mam_server.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Actors are started before the HTTP API accepts requests
    - Graceful shutdown lets queued events and in-flight emissions finish
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import json_log_formatter
import uvicorn

from .api import create_app
from .config import ServerConfig
from .service import ArchiveService

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


class Server:
    """Archive server orchestrator.

    Manages the lifecycle of:
    - The archive service (per-domain actors)
    - The HTTP intake server, when enabled

    Example:
        >>> server = Server()
        >>> await server.start()
        >>> # Server is running
        >>> await server.stop()
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        """Initialize the server.

        Args:
            config: Optional server configuration (loaded from env if not provided)
        """
        self.config = config or ServerConfig.from_env()
        self.service = ArchiveService(self.config)
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._http: uvicorn.Server | None = None

    async def start(self) -> None:
        """Start the server and wait for a shutdown request."""
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting archive server")
        self.config.log_config()

        try:
            if self.config.http.enabled:
                # The app lifespan starts and stops the service.
                app = create_app(self.service)
                self._http = uvicorn.Server(
                    uvicorn.Config(
                        app,
                        host=self.config.http.host,
                        port=self.config.http.port,
                        log_config=None,
                    )
                )
                self._running = True
                logger.info("Archive server started", extra={"hosts": list(self.config.archive.hosts)})
                await self._http.serve()
            else:
                await self.service.start()
                self._running = True
                logger.info("Archive server started", extra={"hosts": list(self.config.archive.hosts)})
                await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if not self._running:
            return

        logger.info("Stopping archive server")

        if self._http is not None:
            self._http.should_exit = True
        else:
            await self.service.stop()

        self._running = False
        logger.info("Archive server stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()
        if self._http is not None:
            self._http.should_exit = True


def main() -> None:
    """Main entry point."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    server = Server(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


if __name__ == "__main__":
    main()
