from __future__ import annotations

from ensemble.utils.json_extract import extract_json_object, iter_json_objects


def test_plain_object() -> None:
    assert extract_json_object('{"a": 1}') == {"a": 1}


def test_object_wrapped_in_prose_and_fences() -> None:
    text = 'Here is the team:\n```json\n{"name": "crew", "agents": []}\n```\nLet me know!'

    assert extract_json_object(text) == {"name": "crew", "agents": []}


def test_braces_inside_strings_do_not_break_balance() -> None:
    text = 'Result: {"rule": "use {curly} braces }", "nested": {"x": "\\"}"}} trailing }'

    assert extract_json_object(text) == {"rule": "use {curly} braces }", "nested": {"x": '"}'}}


def test_first_balanced_object_wins() -> None:
    text = 'First {"a": 1} then {"b": 2}'

    assert extract_json_object(text) == {"a": 1}


def test_skips_unparseable_candidate() -> None:
    text = "Use {placeholders} like this: {\"ok\": true}"

    assert extract_json_object(text) == {"ok": True}


def test_no_json_returns_none() -> None:
    assert extract_json_object("Sorry, I can't help.") is None
    assert extract_json_object("") is None


def test_unclosed_object_returns_none() -> None:
    assert extract_json_object('{"a": {"b": 1}') is None


def test_iter_json_objects_yields_candidates_in_order() -> None:
    text = 'First {"rules": []} then {"agents": [{"id": "a"}]} done.'

    assert list(iter_json_objects(text))[:2] == [{"rules": []}, {"agents": [{"id": "a"}]}]


def test_iter_json_objects_empty_text() -> None:
    assert list(iter_json_objects("")) == []
