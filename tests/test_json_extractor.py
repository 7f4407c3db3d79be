"""Tests for the robust JSON extractor."""
import json

import pytest

from tcm_portal.services.errors import NotJsonError
from tcm_portal.services.json_extractor import (
    extract_json,
    find_balanced_slice,
    normalize_json_candidate,
    strip_code_fences,
)


def test_plain_json_parses_directly():
    value = {"goal": "調理", "items": [1, 2, {"a": None}]}
    assert extract_json(json.dumps(value, ensure_ascii=False)) == value


def test_array_top_level():
    assert extract_json("[1, 2, 3]") == [1, 2, 3]


@pytest.mark.parametrize("raw", ["", "   ", "\n\t", "\ufeff"])
def test_empty_input_yields_empty_object(raw):
    assert extract_json(raw) == {}


def test_markdown_fence_with_language_tag():
    raw = '```json\n{"goal": "x"}\n```'
    assert extract_json(raw) == {"goal": "x"}


def test_markdown_fence_without_language_tag():
    raw = '```\n{"goal": "x"}\n```'
    assert extract_json(raw) == {"goal": "x"}


def test_prose_around_json():
    raw = 'Here is your report: {"goal": "x", "n": 2} Hope this helps!'
    assert extract_json(raw) == {"goal": "x", "n": 2}


def test_trailing_commas_removed():
    assert extract_json('{"a": [1, 2,], "b": 3,}') == {"a": [1, 2], "b": 3}


def test_smart_quotes_normalized():
    raw = "{\u201cgoal\u201d: \u201c健脾\u201d}"
    assert extract_json(raw) == {"goal": "健脾"}


def test_bom_stripped():
    assert extract_json('\ufeff{"a": 1}') == {"a": 1}


def test_brackets_inside_strings_do_not_confuse_scan():
    raw = 'Answer: {"text": "a } and ] inside", "ok": true} trailing'
    assert extract_json(raw) == {"text": "a } and ] inside", "ok": True}


def test_escaped_quote_inside_string():
    raw = 'noise {"text": "say \\"hi\\" {"} more noise'
    assert extract_json(raw) == {"text": 'say "hi" {'}


def test_first_parseable_slice_wins():
    raw = 'bad {not json} then {"good": 1} then {"later": 2}'
    assert extract_json(raw) == {"good": 1}


def test_nested_candidate_when_outer_is_broken():
    raw = '{"outer": oops, "inner": {"x": 1}}'
    assert extract_json(raw) == {"x": 1}


def test_unrecoverable_text_raises_with_raw():
    raw = "The model refused to answer."
    with pytest.raises(NotJsonError) as exc_info:
        extract_json(raw)
    assert exc_info.value.raw_text == raw
    assert exc_info.value.status_code == 502


def test_truncated_json_raises():
    with pytest.raises(NotJsonError):
        extract_json('{"goal": "x", "intro_paragraphs": ["a", "b"')


def test_extraction_is_idempotent_on_reserialized_output():
    raw = 'prefix ```json\n{"a": [1, {"b": "c"}],}\n``` suffix'
    first = extract_json(raw)
    assert extract_json(json.dumps(first)) == first


def test_valid_json_with_typographic_quotes_in_value_is_untouched():
    value = {"goal": "建議“少油少鹽”"}
    assert extract_json(json.dumps(value, ensure_ascii=False)) == value


@pytest.mark.parametrize("value", [{"a": "x,]"}, {"a": "end,}"}, {"a": "‘q’"}])
def test_valid_json_matches_stdlib_parse(value):
    raw = json.dumps(value, ensure_ascii=False)
    assert extract_json(raw) == json.loads(raw)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def test_normalize_json_candidate_trims_and_fixes():
    assert normalize_json_candidate('  {"a": 1,}  ') == '{"a": 1}'


def test_strip_code_fences():
    assert strip_code_fences('```JSON\n[1]\n```') == "[1]"
    assert strip_code_fences("no fences") == "no fences"


def test_find_balanced_slice_rejects_mismatched_closer():
    assert find_balanced_slice('{"a": [1}', 0) is None


def test_find_balanced_slice_unterminated():
    assert find_balanced_slice('{"a": 1', 0) is None


def test_find_balanced_slice_returns_span():
    text = 'xx{"a": [1, 2]}yy'
    assert find_balanced_slice(text, 2) == '{"a": [1, 2]}'
