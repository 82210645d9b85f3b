"""Unit tests for structured response extraction."""

import pytest

from ticket_planner.core.exceptions import MalformedResponse
from ticket_planner.generation.extractor import (
    extract_object,
    extract_structured,
    find_balanced_object,
)


class TestExtractStructured:
    """Tests for extract_structured."""

    def test_plain_json(self) -> None:
        """Test a response that is already JSON."""
        assert extract_structured('  {"a": 1}  ') == {"a": 1}

    def test_plain_json_array(self) -> None:
        """Test a top-level array is returned as-is."""
        assert extract_structured("[1, 2, 3]") == [1, 2, 3]

    def test_tagged_fence(self) -> None:
        """Test a ```json fenced block surrounded by prose."""
        text = 'Sure! Here it is:\n```json\n{"tickets": []}\n```\nLet me know.'
        assert extract_structured(text) == {"tickets": []}

    def test_tagged_fence_wins_over_untagged(self) -> None:
        """Test the json-tagged block is preferred when both exist."""
        text = '```\nnot json\n```\n```json\n{"ok": true}\n```'
        assert extract_structured(text) == {"ok": True}

    def test_untagged_fence(self) -> None:
        """Test an untagged fenced block."""
        text = 'Result:\n```\n{"epics": [1]}\n```'
        assert extract_structured(text) == {"epics": [1]}

    def test_balanced_span_in_prose(self) -> None:
        """Test the first balanced object is found inside prose."""
        text = 'The answer is {"objective": "x", "nested": {"k": [1, 2]}} as requested.'
        assert extract_structured(text) == {"objective": "x", "nested": {"k": [1, 2]}}

    def test_braces_inside_strings_are_ignored(self) -> None:
        """Test braces within JSON strings do not break balancing."""
        text = 'prefix {"title": "Handle } and { in names", "n": 1} suffix'
        assert extract_structured(text) == {"title": "Handle } and { in names", "n": 1}

    def test_garbage_raises_malformed(self) -> None:
        """Test unparseable text raises MalformedResponse carrying the text."""
        with pytest.raises(MalformedResponse) as exc_info:
            extract_structured("I could not do that, sorry.")

        assert exc_info.value.text == "I could not do that, sorry."

    def test_unbalanced_object_raises(self) -> None:
        """Test a truncated object is rejected."""
        with pytest.raises(MalformedResponse):
            extract_structured('{"tickets": [{"title": "cut off"')


class TestFindBalancedObject:
    """Tests for find_balanced_object."""

    def test_returns_none_without_braces(self) -> None:
        """Test text without braces."""
        assert find_balanced_object("no objects here") is None

    def test_skips_unbalanced_prefix(self) -> None:
        """Test an unbalanced opening brace is skipped."""
        assert find_balanced_object('{ oops "x": {"a": 1}') == '{"a": 1}'

    def test_escaped_quotes(self) -> None:
        """Test escaped quotes inside strings."""
        text = '{"s": "say \\"}\\" now"}'
        assert find_balanced_object(text) == text


class TestExtractObject:
    """Tests for extract_object."""

    def test_rejects_non_object(self) -> None:
        """Test a JSON array is not accepted where an object is required."""
        with pytest.raises(MalformedResponse):
            extract_object("[1, 2]")

    def test_accepts_object(self) -> None:
        """Test an object is returned."""
        assert extract_object('```json\n{"components": []}\n```') == {"components": []}
