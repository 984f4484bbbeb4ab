# tests/test_validator.py
import pytest

from editcoder.core.models import ValidationKind
from editcoder.core.validator import validate

from .helpers import build_response


@pytest.mark.parametrize("text", ["", "   ", "\n\t\n"])
def test_blank_response_is_silent_failure(text):
    assert validate(text).kind is ValidationKind.SILENT_FAILURE


@pytest.mark.parametrize("text", [
    '{"noop": true}',
    "No changes needed.",
    "  Nothing to change!\n",
    "noop",
])
def test_no_op_sentinels(text):
    assert validate(text).kind is ValidationKind.NO_OP


@pytest.mark.parametrize("text", [
    "The tests need no changes needed there, but src/app.py must be rewritten; I cannot do it.",
    "The code already does this, no changes required",
    '{"noop": false}',
])
def test_prose_mentioning_a_sentinel_is_invalid(text):
    assert validate(text).kind is ValidationKind.INVALID_FORMAT


def test_prose_without_blocks_is_invalid():
    outcome = validate("Sure, here's the fix:\n...")
    assert outcome.kind is ValidationKind.INVALID_FORMAT
    assert "no executable file edits" in outcome.reason


def test_long_prose_mentioning_no_changes_is_not_a_sentinel():
    text = "I looked at every module. " * 10 + "In the end no changes needed for most of it."
    assert validate(text).kind is ValidationKind.INVALID_FORMAT


def test_file_and_command_blocks_are_valid():
    text = build_response(("a.py", "print(1)"), commands=["pytest -q"])
    assert validate(text).kind is ValidationKind.VALID


def test_prose_next_to_blocks_depends_on_strict_mode():
    text = "Here you go:\n" + build_response(("a.py", "print(1)"))
    strict = validate(text)
    assert strict.kind is ValidationKind.INVALID_FORMAT
    assert "Here you go:" in strict.reason
    assert validate(text, strict=False).kind is ValidationKind.VALID


def test_blank_lines_between_blocks_are_not_prose():
    text = build_response(("a.py", "1")) + "\n\n" + build_response(("b.py", "2"))
    assert validate(text).kind is ValidationKind.VALID
