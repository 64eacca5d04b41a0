"""
Sham Transport

Runs a uvicorn server for the Dispatcher app on a background thread so the
test keeps running while the mock serves requests.
"""

import logging
import socket
import threading
import time
from typing import Optional

import uvicorn
from fastapi import FastAPI

from ..errors import TransportError
from .config import ShamConfig


def find_free_port(host: str = "127.0.0.1") -> int:
    """Ask the OS for an unused TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, 0))
        return sock.getsockname()[1]


class ServerThread:
    """
    uvicorn server running on a daemon thread.

    Example:
        server = ServerThread(app, config)
        server.start()
        ...
        server.stop()
    """

    def __init__(self, app: FastAPI, config: ShamConfig):
        self.config = config
        self.port = config.port or find_free_port(config.host)
        self.logger = logging.getLogger("sham.server")

        uvicorn_options = dict(
            host=config.host,
            port=self.port,
            log_level=config.log_level,
            access_log=False,
            lifespan="off",
            timeout_graceful_shutdown=config.shutdown_timeout
        )
        if config.ssl:
            uvicorn_options.update(
                ssl_keyfile=str(config.keyfile),
                ssl_certfile=str(config.certfile)
            )

        self.server = uvicorn.Server(uvicorn.Config(app, **uvicorn_options))
        # Signal handlers can only be installed on the main thread
        self.server.install_signal_handlers = lambda: None

        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """
        Start serving and wait until the listener is bound.

        Raises:
            TransportError: server exited early or did not start in time
        """
        if self._thread is not None:
            raise TransportError("Server already started")

        self._thread = threading.Thread(
            target=self.server.run,
            name=f"sham-server-{self.port}",
            daemon=True
        )
        self._thread.start()

        deadline = time.monotonic() + self.config.startup_timeout
        while not self.server.started:
            if not self._thread.is_alive():
                raise TransportError(
                    f"Sham server failed to start on {self.config.host}:{self.port}"
                )
            if time.monotonic() > deadline:
                self.stop()
                raise TransportError(
                    f"Sham server did not start within {self.config.startup_timeout}s"
                )
            time.sleep(0.01)

        self.logger.debug(f"Listening on {self.config.scheme.lower()}://{self.config.host}:{self.port}")

    def stop(self) -> None:
        """Stop accepting connections and wait for the server thread."""
        if self._thread is None:
            return

        self.server.should_exit = True
        self._thread.join(timeout=self.config.shutdown_timeout + 1)

        if self._thread.is_alive():
            self.logger.warning(f"Sham server on port {self.port} did not stop cleanly")
            self.server.force_exit = True
            self._thread.join(timeout=1)

        self.logger.debug(f"Stopped server on port {self.port}")
