"""
Tests for Sham Request Matcher

Tests the routing decision for an incoming request including:
- Filter acceptance (exact, path-only, wildcard)
- Specificity ranking and registration-order tie-breaks
- Consumed expect_once rules and the Exceeded decision
- expect_none violations and unmatched requests
"""

import pytest

from sham.engine.matcher import (
    Specificity,
    Dispatch,
    Violation,
    Exceeded,
    Unmatched,
    find_route
)
from sham.engine.rules import Rule, RuleKind, CALLED, Raised


def handler(request):
    return "ok"


def other_handler(request):
    return "other"


@pytest.fixture
def catch_all_stub():
    return Rule(RuleKind.STUB, handler=handler)


class TestSpecificity:
    """Test Specificity ranking."""

    def test_exact(self):
        """Test method and path filter is exact."""
        rule = Rule(RuleKind.ALWAYS, "GET", "/a", handler)
        assert Specificity.of(rule) is Specificity.EXACT

    def test_path_only(self):
        """Test path filter without method."""
        rule = Rule(RuleKind.ALWAYS, None, "/a", handler)
        assert Specificity.of(rule) is Specificity.PATH_ONLY

    def test_wildcard(self):
        """Test rule without filters."""
        rule = Rule(RuleKind.ALWAYS, handler=handler)
        assert Specificity.of(rule) is Specificity.WILDCARD

    def test_ordering(self):
        """Test exact ranks before path-only before wildcard."""
        assert Specificity.EXACT < Specificity.PATH_ONLY < Specificity.WILDCARD


class TestFindRoute:
    """Test find_route decisions."""

    def test_no_rules_is_unmatched(self):
        """Test request with nothing registered."""
        decision = find_route([], "GET", "/")

        assert isinstance(decision, Unmatched)
        assert decision.message == "Unexpected request to Sham: GET /"

    def test_exact_match_dispatches(self):
        """Test exact filter routes to its handler."""
        rule = Rule(RuleKind.ALWAYS, "GET", "/a", handler)

        decision = find_route([rule], "GET", "/a")

        assert isinstance(decision, Dispatch)
        assert decision.identity == rule.identity
        assert decision.handler is handler

    def test_method_is_case_insensitive(self):
        """Test lower-case registration matches upper-case request method."""
        rule = Rule(RuleKind.ALWAYS, "post", "/a", handler)

        assert isinstance(find_route([rule], "POST", "/a"), Dispatch)

    def test_wrong_method_is_unmatched(self):
        """Test exact filter rejects a different method."""
        rule = Rule(RuleKind.ALWAYS, "GET", "/a", handler)

        decision = find_route([rule], "POST", "/a")

        assert isinstance(decision, Unmatched)
        assert decision.message == "Unexpected request to Sham: POST /a"

    def test_path_only_matches_any_method(self):
        """Test path-only filter accepts every method at that path."""
        rule = Rule(RuleKind.ALWAYS, None, "/a", handler)

        assert isinstance(find_route([rule], "DELETE", "/a"), Dispatch)
        assert isinstance(find_route([rule], "DELETE", "/b"), Unmatched)

    def test_exact_beats_earlier_wildcard(self, catch_all_stub):
        """Test narrow rule registered after a catch-all still wins."""
        exact = Rule(RuleKind.ONCE, "GET", "/path", other_handler)

        decision = find_route([catch_all_stub, exact], "GET", "/path")

        assert decision.identity == exact.identity

    def test_exact_beats_later_wildcard(self, catch_all_stub):
        """Test narrow rule registered before a catch-all wins."""
        exact = Rule(RuleKind.ALWAYS, "GET", "/path", other_handler)

        decision = find_route([exact, catch_all_stub], "GET", "/path")

        assert decision.identity == exact.identity

    def test_path_only_beats_wildcard(self, catch_all_stub):
        """Test path-only ranks above a wildcard."""
        path_only = Rule(RuleKind.STUB, None, "/path", other_handler)

        decision = find_route([catch_all_stub, path_only], "PUT", "/path")

        assert decision.identity == path_only.identity

    def test_exact_beats_path_only(self):
        """Test exact ranks above path-only."""
        path_only = Rule(RuleKind.STUB, None, "/path", handler)
        exact = Rule(RuleKind.STUB, "GET", "/path", other_handler)

        decision = find_route([path_only, exact], "GET", "/path")

        assert decision.identity == exact.identity

    def test_wildcard_serves_other_paths(self, catch_all_stub):
        """Test catch-all handles what narrow rules don't."""
        exact = Rule(RuleKind.ONCE, "GET", "/path", other_handler)

        decision = find_route([catch_all_stub, exact], "GET", "/")

        assert decision.identity == catch_all_stub.identity

    def test_earliest_registration_wins_tie(self):
        """Test equal specificity resolves to the first registered rule."""
        first = Rule(RuleKind.ALWAYS, "GET", "/a", handler)
        second = Rule(RuleKind.ALWAYS, "GET", "/a", other_handler)

        decision = find_route([first, second], "GET", "/a")

        assert decision.identity == first.identity


class TestExpectOnce:
    """Test consumption of expect_once rules."""

    def test_consumed_rule_is_skipped(self):
        """Test second stacked expect_once is served after the first."""
        first = Rule(RuleKind.ONCE, "GET", "/path", handler)
        second = Rule(RuleKind.ONCE, "GET", "/path", other_handler)
        first.outcome = CALLED

        decision = find_route([first, second], "GET", "/path")

        assert decision.identity == second.identity

    def test_raised_rule_is_consumed(self):
        """Test a once rule whose handler raised is not matched again."""
        rule = Rule(RuleKind.ONCE, "GET", "/path", handler)
        rule.outcome = Raised(AssertionError("boom"), "assertion")

        decision = find_route([rule], "GET", "/path")

        assert isinstance(decision, Exceeded)

    def test_exceeded_after_all_consumed(self):
        """Test request beyond stacked expectations is Exceeded."""
        first = Rule(RuleKind.ONCE, "GET", "/path", handler)
        second = Rule(RuleKind.ONCE, "GET", "/path", other_handler)
        first.outcome = CALLED
        second.outcome = CALLED

        decision = find_route([first, second], "GET", "/path")

        assert isinstance(decision, Exceeded)
        assert decision.message == "Exceeded expected requests to Sham: GET /path"

    def test_consumed_wildcard_once_is_exceeded(self):
        """Test consumed catch-all once rule reports Exceeded for any path."""
        rule = Rule(RuleKind.ONCE, handler=handler)
        rule.outcome = CALLED

        decision = find_route([rule], "POST", "/other")

        assert isinstance(decision, Exceeded)
        assert decision.message == "Exceeded expected requests to Sham: POST /other"

    def test_consumed_rule_for_other_path_is_unmatched(self):
        """Test consumed rule only counts when its filter accepts the request."""
        rule = Rule(RuleKind.ONCE, "GET", "/path", handler)
        rule.outcome = CALLED

        assert isinstance(find_route([rule], "GET", "/elsewhere"), Unmatched)

    def test_consumed_once_falls_back_to_stub(self, catch_all_stub):
        """Test live stub still serves after the once rule is consumed."""
        once = Rule(RuleKind.ONCE, "GET", "/path", other_handler)
        once.outcome = CALLED

        decision = find_route([catch_all_stub, once], "GET", "/path")

        assert decision.identity == catch_all_stub.identity


class TestExpectNone:
    """Test expect_none rules."""

    def test_wildcard_none_is_violation(self):
        """Test any request hits an unfiltered expect_none."""
        rule = Rule(RuleKind.NONE)

        decision = find_route([rule], "GET", "/")

        assert isinstance(decision, Violation)
        assert decision.message == "A request was received by Sham when none were expected: GET /"

    def test_filtered_none_only_blocks_its_route(self):
        """Test expect_none for one route leaves a stub on another method alone."""
        none = Rule(RuleKind.NONE, "POST", "/endpoint")
        stub = Rule(RuleKind.STUB, "GET", "/endpoint", handler)

        assert isinstance(find_route([none, stub], "GET", "/endpoint"), Dispatch)
        assert isinstance(find_route([none, stub], "POST", "/endpoint"), Violation)

    def test_exact_expectation_beats_wildcard_none(self):
        """Test a narrow expectation outranks a catch-all expect_none."""
        none = Rule(RuleKind.NONE)
        exact = Rule(RuleKind.ALWAYS, "GET", "/ok", handler)

        assert isinstance(find_route([none, exact], "GET", "/ok"), Dispatch)
        assert isinstance(find_route([none, exact], "GET", "/nope"), Violation)
