"""
Sham Coordinator

Single owner of a session's Registry. Every operation is queued as a command
and executed one at a time on a dedicated thread, so concurrent connections
never touch the registry directly. Handlers are never run here: ``match``
returns a decision and the caller reports the outcome later.

Example:
    coordinator = Coordinator(scheme="HTTP")
    identity = coordinator.register(Rule(RuleKind.ONCE, "GET", "/x", handler))

    decision = coordinator.match("GET", "/x")
    coordinator.report_outcome(decision.identity, CALLED)

    verdict = coordinator.teardown()
"""

import logging
import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable, Dict, Optional

from ..errors import CoordinatorClosedError
from .matcher import Dispatch, RouteDecision, find_route
from .rules import CALLED, Outcome, Registry, Rule, RuleKind, Waiting
from .verdict import Verdict, resolve_verdict


class _Stop:
    """Final reply; the owner thread exits after delivering it."""

    def __init__(self, verdict: Verdict):
        self.verdict = verdict


class Coordinator:
    """
    Actor that serializes register/match/report/force_pass/teardown.

    Args:
        scheme: "HTTP" or "HTTPS", used in teardown messages
        on_teardown: Called on the caller's thread before the final verdict
            is computed, typically to stop the HTTP listener
        name: Name of the owner thread
    """

    def __init__(
        self,
        scheme: str = "HTTP",
        on_teardown: Optional[Callable[[], None]] = None,
        name: str = "sham-coordinator"
    ):
        self.scheme = scheme
        self.on_teardown = on_teardown
        self.logger = logging.getLogger("sham.engine")

        self._registry = Registry()
        self._commands: "queue.Queue[Any]" = queue.Queue()
        self._accepting = True
        self._submit_lock = threading.Lock()

        self._operations: Dict[str, Callable[..., Any]] = {
            'register': self._register,
            'match': self._match,
            'report_outcome': self._report_outcome,
            'record_session_error': self._record_session_error,
            'force_pass': self._force_pass,
            'snapshot': self._snapshot,
            'teardown': self._teardown,
        }

        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    # -- submission ---------------------------------------------------------

    @property
    def closed(self) -> bool:
        return not self._accepting

    def submit(self, operation: str, *args: Any) -> Future:
        """
        Queue an operation and return a Future for its result.

        Async callers can ``await asyncio.wrap_future(...)`` on the result.

        Raises:
            CoordinatorClosedError: teardown was already submitted
            KeyError: unknown operation name
        """
        handler = self._operations[operation]
        future: Future = Future()

        with self._submit_lock:
            if not self._accepting:
                raise CoordinatorClosedError(
                    f"Cannot {operation}: the Sham session has been torn down"
                )
            if operation == 'teardown':
                self._accepting = False
            self._commands.put((handler, args, future))

        return future

    def _call(self, operation: str, *args: Any) -> Any:
        return self.submit(operation, *args).result()

    # -- public operations --------------------------------------------------

    def register(self, rule: Rule) -> int:
        return self._call('register', rule)

    def match(self, method: str, path: str) -> RouteDecision:
        return self._call('match', method, path)

    def report_outcome(self, identity: int, outcome: Outcome) -> None:
        self._call('report_outcome', identity, outcome)

    def record_session_error(self, message: str) -> None:
        self._call('record_session_error', message)

    def force_pass(self) -> None:
        self._call('force_pass')

    def snapshot(self) -> Registry:
        """Copy of the current registry, for diagnostics."""
        return self._call('snapshot')

    def teardown(self) -> Verdict:
        """Stop the listener, compute the verdict and stop the owner thread."""
        if self.closed:
            raise CoordinatorClosedError("The Sham session has already been torn down")

        if self.on_teardown is not None:
            self.on_teardown()

        verdict = self._call('teardown')
        self._thread.join()
        return verdict

    # -- owner thread -------------------------------------------------------

    def _run(self) -> None:
        while True:
            handler, args, future = self._commands.get()

            if not future.set_running_or_notify_cancel():
                continue

            try:
                result = handler(*args)
            except Exception as e:
                self.logger.exception(f"Coordinator operation {handler.__name__} failed")
                future.set_exception(e)
                continue

            if isinstance(result, _Stop):
                future.set_result(result.verdict)
                return
            future.set_result(result)

    def _register(self, rule: Rule) -> int:
        identity = self._registry.add(rule)
        self.logger.debug(f"Registered {rule.describe()}")
        return identity

    def _match(self, method: str, path: str) -> RouteDecision:
        decision = find_route(self._registry.rules, method, path)

        if isinstance(decision, Dispatch):
            rule = self._registry.find(decision.identity)
            if rule.kind is RuleKind.ONCE:
                rule.claimed = True
            self.logger.debug(f"{method} {path} -> {decision.description}")
        else:
            self.logger.debug(f"{method} {path} -> {type(decision).__name__}")

        return decision

    def _report_outcome(self, identity: int, outcome: Outcome) -> None:
        rule = self._registry.find(identity)

        if rule is None:
            self.logger.warning(f"Outcome reported for unknown rule #{identity}")
            return

        # Only the first report counts; later ones may race a force_pass
        if not isinstance(rule.outcome, Waiting):
            self.logger.debug(f"Ignoring outcome for settled {rule.describe()}")
            return

        rule.outcome = outcome
        self.logger.debug(f"{rule.describe()} -> {type(outcome).__name__}")

    def _record_session_error(self, message: str) -> None:
        self._registry.errors.append(message)
        self.logger.debug(f"Session error recorded: {message}")

    def _force_pass(self) -> None:
        self._registry.errors.clear()
        for rule in self._registry.rules:
            rule.outcome = CALLED
        self.logger.debug("Session forced to pass")

    def _snapshot(self) -> Registry:
        return self._registry.copy()

    def _teardown(self) -> "_Stop":
        verdict = resolve_verdict(self._registry, self.scheme)
        self.logger.debug(f"Teardown verdict: {type(verdict).__name__}")
        return _Stop(verdict)
