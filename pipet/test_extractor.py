#!/usr/bin/env python3
"""
Tests for extraction rules and the value extractor.
Run with: pytest pipet/test_extractor.py -v
"""
import re

import pytest

from pipet.errors import ConfigurationError
from pipet.extractor import EarlyExit, extract
from pipet.rules import ArgRule, NextDef, ValueRule, coerce_next, coerce_rule


class TestRuleDeclaration:
    """Tests for declaring rules from dataclasses and dicts."""

    def test_string_pattern_is_compiled(self):
        """Test that a string match becomes a compiled pattern."""
        rule = ValueRule(match=r"Count is (\d+)")
        assert isinstance(rule.match, re.Pattern)

    def test_literal_value_is_stringified(self):
        """Test that non-string literals are converted to strings."""
        assert ValueRule(value=5).value == "5"

    def test_literal_serialized_like_env_values(self):
        """Test that literals use the same string form as step env values."""
        assert ValueRule(value=True).value == "true"
        assert ArgRule(value={"a": 1}).value == '{"a": 1}'

    def test_coerce_next_from_dict(self):
        """Test converting a dict next descriptor, camelCase names included."""
        next_def = coerce_next({
            "args": {"title": {"value": "hello", "prefix": "-"}},
            "env": {"done": {"match": "DONE", "continueEarly": True}},
        })

        assert isinstance(next_def.args["title"], ArgRule)
        assert next_def.args["title"].prefix == "-"
        assert next_def.env["done"].continue_early is True

    def test_coerce_next_none(self):
        """Test that a missing next descriptor yields no rules."""
        next_def = coerce_next(None)
        assert next_def.args == {}
        assert next_def.env == {}

    def test_rule_without_value_or_match(self):
        """Test that a rule with neither value nor match is rejected."""
        with pytest.raises(ConfigurationError, match="count"):
            coerce_next({"env": {"count": {"required": True}}})

    def test_boolean_arg_needs_no_match(self):
        """Test that boolean flags are valid without value or match."""
        next_def = coerce_next({"args": {"version": {"boolean": True}}})
        assert next_def.args["version"].boolean

    def test_boolean_and_array_are_exclusive(self):
        """Test that an argument cannot be both boolean and array."""
        with pytest.raises(ConfigurationError, match="boolean"):
            coerce_next({"args": {"files": {"boolean": True, "array": True}}})

    def test_unknown_option(self):
        """Test that misspelled options are reported."""
        with pytest.raises(ConfigurationError, match="requierd"):
            coerce_rule(ValueRule, "count", {"match": "x", "requierd": True})

    def test_env_rule_rejects_arg_options(self):
        """Test that argument-only options are not accepted on env rules."""
        with pytest.raises(ConfigurationError, match="prefix"):
            coerce_rule(ValueRule, "count", {"match": "x", "prefix": "-"})

    def test_invalid_pattern(self):
        """Test that a broken regex is a configuration error."""
        with pytest.raises(ConfigurationError, match="invalid pattern"):
            coerce_rule(ValueRule, "count", {"match": "(unclosed"})

    def test_next_def_is_validated(self):
        """Test that an explicit NextDef is validated too."""
        with pytest.raises(ConfigurationError):
            coerce_next(NextDef(env={"count": ValueRule()}))


class TestExtract:
    """Tests for extracting values from output text."""

    def test_groups_joined_with_comma(self):
        """Test that a match's groups are joined with the default separator."""
        found = extract("Count is 5 and 9\n", {"countResult": ValueRule(match=r"Count is (.+) and (.+)")})
        assert found.values == {"countResult": "5,9"}
        assert found.early_exit is None

    def test_last_match_wins(self):
        """Test that without array only the last match is kept."""
        text = "value=1\nvalue=2\nvalue=3\n"
        found = extract(text, {"value": ValueRule(match=r"value=(\d)")})
        assert found.values["value"] == "3"

    def test_array_accumulates_in_order(self):
        """Test that array rules join every match with commas."""
        text = "value=1\nvalue=2\nvalue=3\n"
        found = extract(text, {"value": ValueRule(match=r"value=(\d)", array=True)})
        assert found.values["value"] == "1,2,3"

    def test_array_keeps_empty_first_match(self):
        """Test that an empty first match is still accumulated."""
        found = extract("v= v=5", {"v": ValueRule(match=r"v=(\d*)", array=True)})
        assert found.values["v"] == ",5"

    def test_array_uses_comma_across_matches(self):
        """Test that the rule separator only joins groups within a match."""
        text = "pair 1 2\npair 3 4\n"
        rule = ArgRule(match=r"pair (\d) (\d)", array=True, separator=" ")
        found = extract(text, {"$": rule})
        assert found.values["$"] == "1 2,3 4"

    def test_literal_value_skips_match(self):
        """Test that a literal value wins over a pattern."""
        found = extract("title=other", {"title": ValueRule(match=r"title=(\w+)", value="hello")})
        assert found.values["title"] == "hello"

    def test_no_match_leaves_key_missing(self):
        """Test that an unmatched pattern produces no key."""
        found = extract("nothing here", {"count": ValueRule(match=r"Count is (\d+)")})
        assert "count" not in found.values
        assert found.visited == ["count"]

    def test_pattern_flags_are_kept(self):
        """Test that compiled flags pass through."""
        rule = ValueRule(match=re.compile(r"count is (\d+)", re.IGNORECASE))
        found = extract("COUNT IS 4", {"count": rule})
        assert found.values["count"] == "4"

    def test_pattern_without_groups_uses_whole_match(self):
        """Test that a group-less pattern yields the matched text."""
        found = extract("build 1.2.3 ok", {"version": ValueRule(match=r"\d+\.\d+\.\d+")})
        assert found.values["version"] == "1.2.3"

    def test_unmatched_group_is_empty(self):
        """Test that optional groups that did not match count as empty."""
        found = extract("a=1", {"pair": ValueRule(match=r"a=(\d)(?: b=(\d))?")})
        assert found.values["pair"] == "1,"

    def test_continue_early_returns_partial_map(self):
        """Test that continue_early stops the pass at the first assignment."""
        rules = {
            "first": ValueRule(match=r"first=(\d)"),
            "ready": ValueRule(match=r"(READY)", continue_early=True),
            "last": ValueRule(match=r"last=(\d)"),
        }
        found = extract("first=1\nREADY\nREADY\nlast=2\n", rules)

        assert found.early_exit is EarlyExit.CONTINUE
        assert found.values == {"first": "1", "ready": "READY"}
        assert found.visited == ["first", "ready"]

    def test_abort_early_on_literal(self):
        """Test that a literal abort_early rule stops the pass immediately."""
        rules = {
            "stop": ValueRule(value="yes", abort_early=True),
            "never": ValueRule(value="no"),
        }
        found = extract("", rules)

        assert found.early_exit is EarlyExit.ABORT
        assert found.values == {"stop": "yes"}

    def test_continue_checked_before_abort(self):
        """Test that continue wins when a rule sets both flags."""
        rule = ValueRule(value="x", abort_early=True, continue_early=True)
        assert extract("", {"k": rule}).early_exit is EarlyExit.CONTINUE

    def test_early_exit_rule_without_match_does_not_fire(self):
        """Test that early exit only triggers once a value is assigned."""
        found = extract("still working", {"done": ValueRule(match=r"DONE", abort_early=True)})
        assert found.early_exit is None
        assert found.values == {}
