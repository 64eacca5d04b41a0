"""
Sham Expectation Engine

In-memory registry of expectations and stubs, the matcher that routes a
request to a rule, the coordinator that serializes access to the registry,
and the teardown resolver that turns the final state into a verdict.
"""

from .rules import Rule, RuleKind, Registry, Waiting, Called, Raised, Outcome, WAITING, CALLED
from .matcher import (
    Specificity,
    Dispatch,
    Violation,
    Exceeded,
    Unmatched,
    RouteDecision,
    find_route
)
from .verdict import OkVerdict, ErrorVerdict, ExceptionVerdict, Verdict, resolve_verdict
from .coordinator import Coordinator

__all__ = [
    # Rules
    'Rule',
    'RuleKind',
    'Registry',
    'Waiting',
    'Called',
    'Raised',
    'Outcome',
    'WAITING',
    'CALLED',

    # Matcher
    'Specificity',
    'Dispatch',
    'Violation',
    'Exceeded',
    'Unmatched',
    'RouteDecision',
    'find_route',

    # Verdict
    'OkVerdict',
    'ErrorVerdict',
    'ExceptionVerdict',
    'Verdict',
    'resolve_verdict',

    # Coordinator
    'Coordinator',
]
