"""
Sham Teardown Verdict

Reduces a session's registry into the single verdict handed to the test
framework when the test finishes.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .rules import Raised, Registry, Rule, RuleKind


@dataclass(frozen=True)
class OkVerdict:
    """Every expectation was met."""

    def apply(self) -> None:
        return None


@dataclass(frozen=True)
class ErrorVerdict:
    """Generic assertion failure with a message."""

    message: str

    def apply(self) -> None:
        raise AssertionError(self.message)


@dataclass(frozen=True)
class ExceptionVerdict:
    """A handler failure to be re-raised in the test's context."""

    failure: BaseException
    category: str = "exception"

    def apply(self) -> None:
        # The stored exception keeps its original __traceback__
        raise self.failure


Verdict = Union[OkVerdict, ErrorVerdict, ExceptionVerdict]

OK = OkVerdict()


def missing_request_message(rule: Rule, scheme: str = "HTTP") -> str:
    """Build the message for an expectation that never saw a request."""
    method = f" {rule.method}" if rule.method else ""
    path = f" at {rule.path}" if rule.path else ""
    return f"No {scheme}{method} request was received by Sham{path}"


def resolve_verdict(registry: Registry, scheme: str = "HTTP") -> Verdict:
    """
    Compute the final verdict for a session.

    Session errors win over rule state and the most recently recorded error
    is reported. Otherwise rules are scanned newest first and the first one
    that is still waiting on a real expectation, or that raised, decides.

    Args:
        registry: Registry snapshot at teardown
        scheme: "HTTP" or "HTTPS", used in the missing-request message

    Returns:
        OkVerdict, ErrorVerdict or ExceptionVerdict
    """
    if registry.errors:
        return ErrorVerdict(registry.errors[-1])

    for rule in reversed(registry.rules):
        verdict = _rule_verdict(rule, scheme)
        if verdict is not None:
            return verdict

    return OK


def _rule_verdict(rule: Rule, scheme: str) -> Optional[Verdict]:
    outcome = rule.outcome

    if isinstance(outcome, Raised):
        return ExceptionVerdict(outcome.failure, outcome.category)

    if rule.is_waiting and rule.kind in (RuleKind.ALWAYS, RuleKind.ONCE):
        return ErrorVerdict(missing_request_message(rule, scheme))

    return None
