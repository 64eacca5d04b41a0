"""
Sham Rules

Data model for the expectation engine: the Rule record, its lifecycle
outcomes, and the Registry that the Coordinator owns.
"""

import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Union


class RuleKind(Enum):
    """How a rule participates in matching and in the teardown verdict."""

    ALWAYS = "expect"
    ONCE = "expect_once"
    NONE = "expect_none"
    STUB = "stub"


@dataclass(frozen=True)
class Waiting:
    """Rule has not been exercised yet."""


@dataclass(frozen=True)
class Called:
    """Rule's handler ran and returned normally."""


@dataclass(frozen=True)
class Raised:
    """
    Rule's handler raised.

    The exception object is kept as-is (including ``__traceback__``) so it can
    be re-raised in the test's own context at teardown.
    """

    failure: BaseException
    category: str = "exception"  # assertion, exception

    @property
    def is_assertion(self) -> bool:
        return self.category == "assertion"


Outcome = Union[Waiting, Called, Raised]

WAITING = Waiting()
CALLED = Called()

_identities = itertools.count(1)


def next_identity() -> int:
    """Return a process-wide unique rule identity token."""
    return next(_identities)


@dataclass
class Rule:
    """
    One registered expectation or stub.

    ``method`` and ``path`` are exact-match filters; ``None`` means "any".
    A rule with a method filter must also carry a path filter.
    """

    kind: RuleKind
    method: Optional[str] = None
    path: Optional[str] = None
    handler: Optional[Callable[[Any], Any]] = None
    identity: int = field(default_factory=next_identity)
    outcome: Outcome = WAITING
    claimed: bool = False  # ONCE rule handed to a dispatcher, outcome pending

    def __post_init__(self):
        if self.method is not None:
            self.method = self.method.upper()
            if self.path is None:
                raise ValueError("A method filter requires a path filter")

        if self.kind is RuleKind.NONE:
            if self.handler is not None:
                raise ValueError("expect_none rules do not take a handler")
        elif self.handler is None or not callable(self.handler):
            raise ValueError(f"{self.kind.value} rules require a callable handler")

    @property
    def is_waiting(self) -> bool:
        return isinstance(self.outcome, Waiting)

    @property
    def is_consumed(self) -> bool:
        """True for a ONCE rule that can no longer be matched."""
        return self.kind is RuleKind.ONCE and (self.claimed or not self.is_waiting)

    def accepts(self, method: str, path: str) -> bool:
        """Check whether this rule's filter accepts the request."""
        if self.path is not None and self.path != path:
            return False
        if self.method is not None and self.method != method.upper():
            return False
        return True

    def describe(self) -> str:
        """Short human-readable form used in log lines."""
        target = f"{self.method or '*'} {self.path or '*'}"
        return f"{self.kind.value}({target})#{self.identity}"


@dataclass
class Registry:
    """Insertion-ordered rules plus session-level errors."""

    rules: List[Rule] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def add(self, rule: Rule) -> int:
        self.rules.append(rule)
        return rule.identity

    def find(self, identity: int) -> Optional[Rule]:
        for rule in self.rules:
            if rule.identity == identity:
                return rule
        return None

    def copy(self) -> "Registry":
        """Shallow copy; Rule records are duplicated, handlers shared."""
        return Registry(
            rules=[
                Rule(
                    kind=r.kind,
                    method=r.method,
                    path=r.path,
                    handler=r.handler,
                    identity=r.identity,
                    outcome=r.outcome,
                    claimed=r.claimed,
                )
                for r in self.rules
            ],
            errors=list(self.errors),
        )
