"""
Sham Session

A running mock HTTP(S) endpoint scoped to one test. Test code registers
expectations and stubs on it, points the client under test at ``url``, and
closes it when the test is done; closing raises the deferred failure, if any.
"""

import logging
from dataclasses import replace
from enum import Enum
from typing import Any, Callable, Optional, Tuple

from .engine import Coordinator, OkVerdict, Rule, RuleKind, Verdict
from .server import Dispatcher, ServerThread, ShamConfig, TestIdentity, provision_identity

Handler = Callable[[Any], Any]


class SessionState(Enum):
    INITIALIZING = "initializing"
    RUNNING = "running"
    TORN_DOWN = "torn_down"


def _split_args(name: str, args: Tuple[Any, ...], needs_handler: bool = True):
    """Accept ``(handler)`` / ``(method, path, handler)`` or, without a handler, ``()`` / ``(method, path)``."""
    if needs_handler:
        if len(args) == 1:
            return None, None, args[0]
        if len(args) == 3:
            return args[0], args[1], args[2]
        raise TypeError(f"{name}() takes (handler) or (method, path, handler)")

    if len(args) == 0:
        return None, None, None
    if len(args) == 2:
        return args[0], args[1], None
    raise TypeError(f"{name}() takes () or (method, path)")


class Sham:
    """
    Mock HTTP(S) server for testing HTTP clients.

    Example:
        sham = Sham(ssl=False).start()
        sham.expect("GET", "/hello", lambda request: "Hello")

        requests.get(f"{sham.url}/hello")

        sham.close()  # raises AssertionError or the handler's failure

        # Or as a context manager
        with start() as sham:
            sham.expect_once(lambda request: (201, {"id": 1}))
            ...
    """

    def __init__(self, config: Optional[ShamConfig] = None, **options: Any):
        """
        Initialize a session; nothing listens until ``start()``.

        Args:
            config: Optional ShamConfig
            **options: Overrides (ssl, keyfile, certfile, host, port, ...)

        Raises:
            ConfigurationError: invalid options or unusable TLS material
        """
        self.config = (config or ShamConfig()).merged(**options).validate()

        self.logger = logging.getLogger("sham.session")
        logging.getLogger("sham").setLevel(self.config.python_log_level())

        self.state = SessionState.INITIALIZING
        self.identity: Optional[TestIdentity] = None
        self.coordinator: Optional[Coordinator] = None
        self._verdict: Optional[Verdict] = None
        self._applied = False

        try:
            if self.config.needs_identity:
                self.identity = provision_identity()
                self.config = replace(
                    self.config,
                    keyfile=str(self.identity.keyfile),
                    certfile=str(self.identity.certfile)
                )

            self.coordinator = Coordinator(
                scheme=self.config.scheme,
                on_teardown=self._stop_listener
            )
            self.dispatcher = Dispatcher(self.coordinator)
            self.server = ServerThread(self.dispatcher.app, self.config)
        except Exception:
            self._release()
            raise

    def _release(self) -> None:
        """Undo a partially built session."""
        if self.coordinator is not None:
            # Nothing is listening yet
            self.coordinator.on_teardown = None
            self.coordinator.teardown()
        if self.identity is not None:
            self.identity.cleanup()
        self.state = SessionState.TORN_DOWN

    # -- lifecycle ----------------------------------------------------------

    @property
    def port(self) -> int:
        return self.server.port

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def scheme(self) -> str:
        return self.config.scheme

    @property
    def url(self) -> str:
        """Base URL, e.g. ``http://127.0.0.1:54321``."""
        return f"{self.scheme.lower()}://{self.host}:{self.port}"

    def start(self) -> 'Sham':
        """
        Start listening.

        Raises:
            TransportError: listener could not be started
        """
        try:
            self.server.start()
        except Exception:
            self.teardown()
            raise

        self.state = SessionState.RUNNING
        self.logger.debug(f"Sham session started at {self.url}")
        return self

    def _stop_listener(self) -> None:
        self.server.stop()

    def teardown(self) -> Verdict:
        """
        Stop the listener and compute the verdict (once).

        The verdict is not applied here; ``close()`` still raises it later.

        Returns:
            The session verdict; repeated calls return the same value
        """
        if self._verdict is not None:
            return self._verdict

        try:
            self._verdict = self.coordinator.teardown()
        finally:
            self.state = SessionState.TORN_DOWN
            if self.identity is not None:
                self.identity.cleanup()

        self.logger.debug(f"Sham session on port {self.port} torn down: {type(self._verdict).__name__}")
        return self._verdict

    def close(self) -> None:
        """
        Tear down and apply the verdict, even if ``teardown()`` already ran.

        Only the first call raises; later calls are quiet.

        Raises:
            AssertionError: an expectation was violated or never met
            Exception: the original failure raised inside a handler
        """
        if self._applied:
            return
        self._applied = True
        self.teardown().apply()

    def __enter__(self) -> 'Sham':
        if self.state is SessionState.INITIALIZING:
            self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
            return

        # Don't mask the exception already propagating out of the block
        verdict = self.teardown()
        self._applied = True
        if not isinstance(verdict, OkVerdict):
            self.logger.warning(f"Sham verdict discarded due to earlier error: {verdict}")

    # -- registration -------------------------------------------------------

    def _register(self, kind: RuleKind, method: Optional[str], path: Optional[str],
                  handler: Optional[Handler]) -> 'Sham':
        if (method is None) != (path is None):
            raise TypeError("method and path must be given together")

        self.coordinator.register(Rule(kind=kind, method=method, path=path, handler=handler))
        return self

    def expect(self, *args: Any) -> 'Sham':
        """
        Expect at least one request, optionally for one method and path.

        ``expect(handler)`` matches any request; ``expect(method, path,
        handler)`` matches only that method and path. The session fails at
        teardown if no matching request arrived.

        Example:
            sham.expect(lambda request: "Hello")
            sham.expect("POST", "/users", lambda request: (201, {"id": 1}))
        """
        return self._register(RuleKind.ALWAYS, *_split_args("expect", args))

    def expect_once(self, *args: Any) -> 'Sham':
        """
        Expect exactly one request, optionally for one method and path.

        Stacked ``expect_once`` calls with the same filter are served in
        registration order; a request beyond them is answered with 500 and
        fails the session with "Exceeded expected requests to Sham".
        """
        return self._register(RuleKind.ONCE, *_split_args("expect_once", args))

    def expect_none(self, *args: Any) -> 'Sham':
        """Fail the session if any (or any matching) request arrives."""
        return self._register(RuleKind.NONE, *_split_args("expect_none", args, needs_handler=False))

    def stub(self, *args: Any) -> 'Sham':
        """Answer matching requests without asserting that any arrive."""
        return self._register(RuleKind.STUB, *_split_args("stub", args))

    def force_pass(self) -> 'Sham':
        """Make the session pass regardless of what was (or wasn't) received."""
        self.coordinator.force_pass()
        return self

    pass_ = force_pass


def start(config: Optional[ShamConfig] = None, **options: Any) -> Sham:
    """
    Create and start a Sham session.

    Args:
        config: Optional ShamConfig
        **options: ssl, keyfile, certfile, host, port, log_level, ...

    Returns:
        Running Sham instance
    """
    return Sham(config, **options).start()
