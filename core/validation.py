"""
core/validation.py -- Request field sanitization and rule-based validation.

Usage:
    validator = Validator(unique_lookup=user_store.value_exists)
    data = validator.validate(
        {
            "username": (payload.get("username"), "required|min:3|max:50"),
            "email": (payload.get("email"), ["required", "email", "unique:users,email"]),
        }
    ).raise_for_errors()

Pipeline per field:
  1. sanitize() -- trim, strip markup tags, escape HTML-significant chars. The
     sanitized value is both the candidate for every rule and the stored value.
  2. required / nullable handled up front on the sanitized value.
  3. Remaining rules run in listed order; the first failure ends that field.
     Errors accumulate across fields.

Rule registry:
  Rules are plain functions registered by name with @rule("name") at import
  time. Rule strings ("min:3", "in:a,b,c") are parsed once and cached. An
  unregistered name raises UnknownRuleError at parse time, before any field
  is checked, so a typo in a handler's rule list fails loudly instead of
  silently letting input through.

Validate-and-coerce: `numeric` and `boolean` replace the normalized value
with an int / float / bool. Callers read types from ValidationResult.data,
never from the raw payload.

Layer rule: core/ is the kernel. No imports from api/, auth/, or tasks/.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence, Union

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import SQLAlchemyError

from core.errors import ValidationFailed

logger = logging.getLogger("tasknest.validation")

Rules = Union[str, Sequence[str]]


class UnknownRuleError(ValueError):
    """Raised when a rule string names a rule that is not registered."""


class RuleError(Exception):
    """Raised by a rule function to reject a value. Carries the full message."""


class UniqueLookup(Protocol):
    def __call__(self, table: str, column: str, value: Any, except_id: Optional[int] = None) -> bool: ...


# ---------------------------------------------------------------------------
# Sanitization
# ---------------------------------------------------------------------------

_TAG_RE = re.compile(r"<[^>]*>")
# A bare "&" that does not already start a character reference.
_BARE_AMP_RE = re.compile(r"&(?!(?:[A-Za-z][A-Za-z0-9]*|#[0-9]+|#[xX][0-9A-Fa-f]+);)")
_ESCAPES = {"<": "&lt;", ">": "&gt;", '"': "&quot;", "'": "&#039;"}


def sanitize(value: Any) -> Any:
    """Trim, strip tags and escape a string. Non-strings are returned unchanged.

    Existing character references are left alone, so sanitizing an already
    sanitized string is a no-op.
    """
    if not isinstance(value, str):
        return value
    value = value.strip()
    value = _TAG_RE.sub("", value)
    value = _BARE_AMP_RE.sub("&amp;", value)
    for char, entity in _ESCAPES.items():
        value = value.replace(char, entity)
    # Stripping tags can expose surrounding whitespace ("  <b></b> x").
    return value.strip()


def is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def field_label(name: str) -> str:
    """'due_date' -> 'Due date'."""
    label = name.replace("_", " ")
    return label[:1].upper() + label[1:]


# ---------------------------------------------------------------------------
# Rule registry
# ---------------------------------------------------------------------------


@dataclass
class Check:
    """Everything a rule function needs to inspect one field."""

    field: str
    value: Any
    params: list[str]
    validator: "Validator"

    @property
    def label(self) -> str:
        return field_label(self.field)


RuleFunc = Callable[[Check], Any]

RULES: dict[str, RuleFunc] = {}

# Handled by Validator.validate() itself, before the rule loop.
_FLOW_RULES = frozenset({"required", "nullable"})


def rule(name: str) -> Callable[[RuleFunc], RuleFunc]:
    """Register a rule function under name. Duplicate names are a programming error."""

    def decorator(fn: RuleFunc) -> RuleFunc:
        if name in RULES or name in _FLOW_RULES:
            raise ValueError(f"Validation rule {name!r} is already registered")
        RULES[name] = fn
        return fn

    return decorator


@dataclass(frozen=True)
class ParsedRule:
    name: str
    params: tuple[str, ...] = ()


@lru_cache(maxsize=512)
def parse_rule(raw: str) -> ParsedRule:
    """Parse 'name:arg1,arg2' into a ParsedRule. Raises UnknownRuleError."""
    name, _, arg = raw.strip().partition(":")
    if name not in RULES and name not in _FLOW_RULES:
        raise UnknownRuleError(f"Unknown validation rule: {name!r}")
    params = tuple(arg.split(",")) if arg else ()
    return ParsedRule(name=name, params=params)


def parse_rules(rules: Rules) -> list[ParsedRule]:
    if isinstance(rules, str):
        rules = [r for r in rules.split("|") if r.strip()]
    return [parse_rule(r) for r in rules]


def _int_param(params: Sequence[str], default: int) -> int:
    try:
        return int(params[0])
    except (IndexError, ValueError):
        return default


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@rule("min")
def _min(check: Check) -> Any:
    n = _int_param(check.params, 0)
    if len(str(check.value)) < n:
        raise RuleError(f"{check.label} must be at least {n} characters long.")
    return check.value


@rule("max")
def _max(check: Check) -> Any:
    n = _int_param(check.params, 2**31 - 1)
    if len(str(check.value)) > n:
        raise RuleError(f"{check.label} must not exceed {n} characters.")
    return check.value


@rule("email")
def _email(check: Check) -> Any:
    # Syntax only; deliverability would put a DNS lookup on the request path.
    try:
        if not isinstance(check.value, str):
            raise EmailNotValidError("not a string")
        validate_email(check.value, check_deliverability=False)
    except EmailNotValidError as exc:
        raise RuleError(f"{check.label} must be a valid email address.") from exc
    return check.value


_INT_RE = re.compile(r"[+-]?\d+")
_FLOAT_RE = re.compile(r"[+-]?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?")


@rule("numeric")
def _numeric(check: Check) -> Any:
    value = check.value
    if isinstance(value, bool):
        raise RuleError(f"{check.label} must be a number.")
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if _INT_RE.fullmatch(text):
            return int(text)
        if _FLOAT_RE.fullmatch(text):
            return float(text)
    raise RuleError(f"{check.label} must be a number.")


_TRUE_TOKENS = frozenset({"true", "1", "yes", "on"})
_FALSE_TOKENS = frozenset({"false", "0", "no", "off"})


@rule("boolean")
def _boolean(check: Check) -> Any:
    value = check.value
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        token = value.strip().lower()
        if token in _TRUE_TOKENS:
            return True
        if token in _FALSE_TOKENS:
            return False
    raise RuleError(f"{check.label} must be a boolean value (true/false, 0/1).")


@rule("in")
def _in(check: Check) -> Any:
    candidate = check.value if isinstance(check.value, str) else str(check.value)
    if candidate not in check.params:
        raise RuleError(f"{check.label} has an invalid value. Must be one of: {', '.join(check.params)}.")
    return check.value


# Format tokens accepted by date_format ("Y-m-d", "d/m/Y H:i"), mapped to strftime directives.
_DATE_TOKENS = {
    "Y": "%Y",
    "y": "%y",
    "m": "%m",
    "d": "%d",
    "H": "%H",
    "i": "%M",
    "s": "%S",
}


@lru_cache(maxsize=64)
def _strftime_pattern(fmt: str) -> str:
    return "".join(_DATE_TOKENS.get(ch, "%%" if ch == "%" else ch) for ch in fmt)


@rule("date_format")
def _date_format(check: Check) -> Any:
    fmt = check.params[0] if check.params else "Y-m-d"
    pattern = _strftime_pattern(fmt)
    value = check.value
    try:
        # Round trip: "2024-1-5" parses, but formats back as "2024-01-05".
        ok = isinstance(value, str) and datetime.strptime(value, pattern).strftime(pattern) == value
    except ValueError:
        ok = False
    if not ok:
        raise RuleError(f"{check.label} must be in {fmt} format.")
    return value


_STRONG_PASSWORD_RE = re.compile(r"(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{8,}", re.DOTALL)


@rule("password_strength")
def _password_strength(check: Check) -> Any:
    if not isinstance(check.value, str) or not _STRONG_PASSWORD_RE.fullmatch(check.value):
        raise RuleError(f"{check.label} must be at least 8 characters, contain uppercase, lowercase, and a digit.")
    return check.value


@rule("unique")
def _unique(check: Check) -> Any:
    """unique:table,column[,except_id:N] -- reject values already stored."""
    if len(check.params) < 2:
        logger.error("Unique rule on %r requires table and column name: unique:table,column", check.field)
        raise RuleError("Internal validation error: Misconfigured unique rule.")
    table, column_name = check.params[0], check.params[1]
    except_id: Optional[int] = None
    if len(check.params) > 2 and check.params[2].startswith("except_id:"):
        try:
            except_id = int(check.params[2][len("except_id:") :])
        except ValueError:
            logger.error("Unique rule on %r has a non-integer except_id", check.field)
            raise RuleError("Internal validation error: Misconfigured unique rule.") from None

    lookup = check.validator.unique_lookup
    if lookup is None:
        logger.error("Unique rule on %r used without a unique_lookup collaborator", check.field)
        raise RuleError("Internal validation error: Database connection not available for unique check.")
    try:
        exists = lookup(table, column_name, check.value, except_id)
    except SQLAlchemyError:
        logger.exception("Database error during unique validation of %r", check.field)
        raise RuleError("A database error occurred during unique validation.") from None
    if exists:
        raise RuleError(f"{check.label} already exists.")
    return check.value


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


@dataclass
class ValidationResult:
    data: dict[str, Any] = field(default_factory=dict)
    errors: dict[str, list[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> dict[str, Any]:
        """Return the normalized data, or raise ValidationFailed with every field error."""
        if self.errors:
            raise ValidationFailed(self.errors)
        return self.data


class Validator:
    """Stateless per call: every validate() builds a fresh ValidationResult.

    unique_lookup is the synchronous persistence collaborator used by the
    `unique` rule. It is optional; without it `unique` reports an internal
    validation error rather than passing.
    """

    def __init__(self, unique_lookup: Optional[UniqueLookup] = None) -> None:
        self.unique_lookup = unique_lookup

    def validate(self, fields: Mapping[str, tuple[Any, Rules]]) -> ValidationResult:
        # Parse everything first so an unknown rule fails before any lookup runs.
        plan = [(name, value, parse_rules(rules)) for name, (value, rules) in fields.items()]
        result = ValidationResult()

        for name, raw, parsed in plan:
            value = sanitize(raw)
            result.data[name] = value
            names = {p.name for p in parsed}
            nullable = "nullable" in names

            if "required" in names and not nullable and is_empty(value):
                result.errors.setdefault(name, []).append(f"{field_label(name)} is required.")
                continue
            if nullable and is_empty(value):
                result.data[name] = None
                continue

            for parsed_rule in parsed:
                if parsed_rule.name in _FLOW_RULES:
                    continue
                check = Check(field=name, value=value, params=list(parsed_rule.params), validator=self)
                try:
                    value = RULES[parsed_rule.name](check)
                except RuleError as exc:
                    result.errors.setdefault(name, []).append(str(exc))
                    break
                result.data[name] = value

        if result.errors:
            logger.info("Validation failed for fields: %s", ", ".join(sorted(result.errors)))
        return result
