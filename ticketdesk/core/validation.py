"""
Evaluation of declarative form validation rules.

Rules are plain data (``{"kind", "parameter", "message"}``) coming from
templates and admin edits. ``evaluate`` is the only code that interprets them.
It never raises: malformed rules and unknown kinds fail closed so that broken
template data cannot let values through.
"""
import logging
import re
from datetime import date, datetime
from numbers import Number
from typing import Any, Callable, Dict, NamedTuple, Optional

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
PHONE_PATTERN = re.compile(r"\+?[0-9][0-9 ()-]{6,19}")


class RuleResult(NamedTuple):
    ok: bool
    message: Optional[str] = None

PASS = RuleResult(True)


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ", ".join(as_text(item) for item in value)
    return str(value)


def as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, Number):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


# Named checks usable through {"kind": "custom", "parameter": "<name>"}
CUSTOM_VALIDATORS: Dict[str, Callable[[Any], bool]] = {}


def register_custom_validator(name: str):
    def decorator(func: Callable[[Any], bool]):
        CUSTOM_VALIDATORS[name] = func
        return func
    return decorator


@register_custom_validator("email")
def _is_email(value: Any) -> bool:
    return EMAIL_PATTERN.fullmatch(as_text(value).strip()) is not None


@register_custom_validator("phone")
def _is_phone(value: Any) -> bool:
    return PHONE_PATTERN.fullmatch(as_text(value).strip()) is not None


@register_custom_validator("integer")
def _is_integer(value: Any) -> bool:
    number = as_number(value)
    return number is not None and number.is_integer()


@register_custom_validator("date")
def _is_date(value: Any) -> bool:
    return parse_date(value) is not None


@register_custom_validator("future_date")
def _is_future_date(value: Any) -> bool:
    parsed = parse_date(value)
    return parsed is not None and parsed >= date.today()


def _rule_attr(rule: Any, name: str) -> Any:
    if isinstance(rule, dict):
        return rule.get(name)
    return getattr(rule, name, None)


def _fail(message: Optional[str], default: str) -> RuleResult:
    return RuleResult(False, message or default)


def _length_bound(parameter: Any) -> Optional[int]:
    if isinstance(parameter, bool) or not isinstance(parameter, (int, str)):
        return None
    try:
        bound = int(parameter)
    except ValueError:
        return None
    return bound if bound >= 0 else None


def _range_bounds(parameter: Any):
    if isinstance(parameter, dict):
        low, high = parameter.get("min"), parameter.get("max")
    elif isinstance(parameter, (list, tuple)) and len(parameter) == 2:
        low, high = parameter
    else:
        raise ValueError(f"unsupported range parameter {parameter!r}")
    low = None if low is None else as_number(low)
    high = None if high is None else as_number(high)
    if low is None and high is None:
        raise ValueError(f"range parameter {parameter!r} has no numeric bound")
    return low, high


def _check_range(value: Any, low: Optional[float], high: Optional[float], message: Optional[str]) -> RuleResult:
    number = as_number(value)
    if number is None:
        return _fail(message, "must be a number")
    if low is not None and number < low:
        return _fail(message, f"must be at least {low:g}")
    if high is not None and number > high:
        return _fail(message, f"must be at most {high:g}")
    return PASS


def _evaluate(rule: Any, value: Any) -> RuleResult:
    kind = _rule_attr(rule, "kind")
    parameter = _rule_attr(rule, "parameter")
    message = _rule_attr(rule, "message")

    if kind in ("minLength", "maxLength"):
        bound = _length_bound(parameter)
        if bound is None:
            return RuleResult(False, f"invalid {kind} rule parameter {parameter!r}")
        length = len(as_text(value))
        if kind == "minLength" and length < bound:
            return _fail(message, f"must be at least {bound} characters")
        if kind == "maxLength" and length > bound:
            return _fail(message, f"must be at most {bound} characters")
        return PASS

    if kind == "pattern":
        if not isinstance(parameter, str):
            return RuleResult(False, f"invalid pattern rule parameter {parameter!r}")
        try:
            compiled = re.compile(parameter)
        except re.error as exc:
            return RuleResult(False, f"invalid pattern {parameter!r}: {exc}")
        if compiled.fullmatch(as_text(value).strip()) is None:
            return _fail(message, "has an invalid format")
        return PASS

    if kind == "range":
        try:
            low, high = _range_bounds(parameter)
        except ValueError as exc:
            return RuleResult(False, f"invalid range rule: {exc}")
        return _check_range(value, low, high, message)

    if kind in ("min", "max"):
        bound = as_number(parameter)
        if bound is None:
            return RuleResult(False, f"invalid {kind} rule parameter {parameter!r}")
        if kind == "min":
            return _check_range(value, bound, None, message)
        return _check_range(value, None, bound, message)

    if kind == "custom":
        check = CUSTOM_VALIDATORS.get(parameter) if isinstance(parameter, str) else None
        if check is None:
            return RuleResult(False, f"unknown custom validator {parameter!r}")
        if not check(value):
            return _fail(message, f"failed the {parameter} check")
        return PASS

    return RuleResult(False, f"unknown validation rule kind {kind!r}")


def evaluate(rule: Any, value: Any) -> RuleResult:
    """
    Run one validation rule against a submitted value.

    Empty values always pass; whether a field must be filled in is decided by
    the schema resolver, not by rules.
    """
    if is_empty(value):
        return PASS
    try:
        return _evaluate(rule, value)
    except Exception as exc:
        logger.warning("Validation rule %r raised %s; failing closed", rule, exc)
        return RuleResult(False, f"validation rule could not be evaluated: {exc}")
