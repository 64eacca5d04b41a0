"""
Sham Request Matcher

Decides which registered rule handles an incoming (method, path) pair.

Candidates are ranked by filter specificity:
- EXACT: method and path both given
- PATH_ONLY: path given, any method
- WILDCARD: no filter

Within one specificity level the earliest registered rule wins, so stacked
``expect_once`` rules are served strictly in registration order while narrow
rules always beat catch-all stubs.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Iterable, Optional, Union

from .rules import Rule, RuleKind


class Specificity(IntEnum):
    """Filter precision; lower values rank first."""

    EXACT = 0
    PATH_ONLY = 1
    WILDCARD = 2

    @classmethod
    def of(cls, rule: Rule) -> "Specificity":
        if rule.method is not None and rule.path is not None:
            return cls.EXACT
        if rule.path is not None:
            return cls.PATH_ONLY
        return cls.WILDCARD


@dataclass(frozen=True)
class Dispatch:
    """Run ``handler`` and report the outcome against ``identity``."""

    identity: int
    handler: Callable[[Any], Any]
    description: str = ""


@dataclass(frozen=True)
class Violation:
    """Request matched an ``expect_none`` rule."""

    message: str


@dataclass(frozen=True)
class Exceeded:
    """Request matched a one-shot expectation that was already consumed."""

    message: str


@dataclass(frozen=True)
class Unmatched:
    """Nothing was registered for this request."""

    message: str


RouteDecision = Union[Dispatch, Violation, Exceeded, Unmatched]


def request_label(method: str, path: str) -> str:
    return f"{method.upper()} {path}"


def find_route(rules: Iterable[Rule], method: str, path: str) -> RouteDecision:
    """
    Pick the routing decision for a request.

    Args:
        rules: Rules in registration order
        method: Request method
        path: Request path

    Returns:
        Dispatch for the winning rule, or one of Violation / Exceeded /
        Unmatched carrying the error message for the client and teardown.
    """
    best: Optional[Rule] = None
    best_rank = None
    exceeded = False

    for index, rule in enumerate(rules):
        if not rule.accepts(method, path):
            continue

        if rule.is_consumed:
            exceeded = True
            continue

        rank = (Specificity.of(rule), index)
        if best_rank is None or rank < best_rank:
            best, best_rank = rule, rank

    label = request_label(method, path)

    if best is None:
        if exceeded:
            return Exceeded(f"Exceeded expected requests to Sham: {label}")
        return Unmatched(f"Unexpected request to Sham: {label}")

    if best.kind is RuleKind.NONE:
        return Violation(f"A request was received by Sham when none were expected: {label}")

    return Dispatch(identity=best.identity, handler=best.handler, description=best.describe())
