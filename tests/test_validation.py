from ticketdesk.core.validation import evaluate, register_custom_validator, CUSTOM_VALIDATORS
from ticketdesk.schemas.classification import ValidationRule


def test_min_length_uses_rule_message():
    rule = ValidationRule(kind="minLength", parameter=5, message="Too short")
    assert evaluate(rule, "abc").ok is False
    assert evaluate(rule, "abc").message == "Too short"
    assert evaluate(rule, "abcde").ok is True


def test_max_length_synthesizes_message_when_rule_has_none():
    result = evaluate({"kind": "maxLength", "parameter": 3}, "abcd")
    assert result.ok is False
    assert "at most 3" in result.message


def test_length_of_list_values_counts_joined_text():
    rule = {"kind": "maxLength", "parameter": 4}
    assert evaluate(rule, ["a", "b"]).ok is True  # "a, b"
    assert evaluate(rule, ["ab", "cd"]).ok is False  # "ab, cd"


def test_empty_values_always_pass():
    rule = {"kind": "minLength", "parameter": 50, "message": "Too short"}
    for value in (None, "", "   ", []):
        assert evaluate(rule, value).ok is True


def test_pattern_must_match_whole_trimmed_value():
    rule = {"kind": "pattern", "parameter": r"WO-\d{4}", "message": "Bad work order"}
    assert evaluate(rule, "  WO-1234 ").ok is True
    assert evaluate(rule, "WO-1234 extra").ok is False
    assert evaluate(rule, "see WO-1234").message == "Bad work order"


def test_invalid_pattern_fails_closed():
    result = evaluate({"kind": "pattern", "parameter": "([a-z"}, "abc")
    assert result.ok is False
    assert "invalid pattern" in result.message


def test_range_accepts_mapping_and_pair():
    assert evaluate({"kind": "range", "parameter": {"min": 1, "max": 10}}, "7").ok is True
    assert evaluate({"kind": "range", "parameter": {"min": 1, "max": 10}}, 11).ok is False
    assert evaluate({"kind": "range", "parameter": [0, None]}, -1).ok is False
    assert evaluate({"kind": "range", "parameter": {"max": 3}}, 2.5).ok is True


def test_range_rejects_non_numeric_values():
    result = evaluate({"kind": "range", "parameter": {"min": 0}, "message": "Numbers only"}, "lots")
    assert result.ok is False
    assert result.message == "Numbers only"


def test_one_sided_min_and_max_rules():
    assert evaluate({"kind": "min", "parameter": 18}, 17).ok is False
    assert evaluate({"kind": "max", "parameter": "100"}, 100).ok is True
    assert evaluate({"kind": "min", "parameter": "abc"}, 5).ok is False


def test_custom_validators():
    assert evaluate({"kind": "custom", "parameter": "email"}, "jo@example.com").ok is True
    assert evaluate({"kind": "custom", "parameter": "email"}, "jo@").ok is False
    assert evaluate({"kind": "custom", "parameter": "integer"}, "12").ok is True
    assert evaluate({"kind": "custom", "parameter": "integer"}, "12.5").ok is False
    assert evaluate({"kind": "custom", "parameter": "date"}, "2026-03-02").ok is True


def test_registered_custom_validator_is_used():
    @register_custom_validator("uppercase")
    def _uppercase(value):
        return str(value).isupper()

    try:
        assert evaluate({"kind": "custom", "parameter": "uppercase"}, "ABC").ok is True
        assert evaluate({"kind": "custom", "parameter": "uppercase"}, "abc").ok is False
    finally:
        CUSTOM_VALIDATORS.pop("uppercase")


def test_unknown_kinds_and_validators_fail_closed():
    unknown_kind = evaluate({"kind": "checksum", "parameter": 3}, "abc")
    assert unknown_kind.ok is False
    assert "unknown validation rule kind" in unknown_kind.message

    unknown_custom = evaluate({"kind": "custom", "parameter": "nope"}, "abc")
    assert unknown_custom.ok is False
    assert "unknown custom validator" in unknown_custom.message


def test_malformed_rules_never_raise():
    assert evaluate(None, "abc").ok is False
    assert evaluate({"kind": "minLength", "parameter": "ten"}, "abc").ok is False
    assert evaluate({"kind": "minLength", "parameter": -1}, "abc").ok is False
    assert evaluate({"kind": "range", "parameter": "1-10"}, 5).ok is False
