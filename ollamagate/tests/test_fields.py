import pytest

from ollamagate.core.errors import TranslationError
from ollamagate.util.fields import ABSENT, WRONG_TYPE, as_number, lookup


def test_lookup_nested_value():
    found = lookup({"message": {"content": "hi"}}, "message.content", str)
    assert found.ok
    assert found.value == "hi"


def test_lookup_distinguishes_absent_and_wrong_type():
    assert lookup({}, "message.content", str).problem == ABSENT
    assert lookup({"message": None}, "message.content", str).problem == ABSENT
    assert lookup({"message": "flat"}, "message.content", str).problem == WRONG_TYPE
    assert lookup({"message": {"content": 5}}, "message.content", str).problem == WRONG_TYPE


def test_lookup_rejects_bool_for_numbers():
    assert lookup({"eval_count": True}, "eval_count", (int, float)).problem == WRONG_TYPE
    assert lookup({"done": True}, "done", bool).value is True


def test_require_and_default():
    missing = lookup({}, "response", str)
    assert missing.or_default("") == ""
    with pytest.raises(TranslationError) as exc_info:
        missing.require()
    assert exc_info.value.field == "response"
    assert exc_info.value.reason == ABSENT


def test_as_number():
    assert as_number(3) == 3.0
    assert as_number(0.25) == 0.25
    assert as_number(False) is None
    assert as_number("1.0") is None
