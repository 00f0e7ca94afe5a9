"""
tests/test_validation.py -- Unit tests for core/validation.py.

Covers:
  - sanitize(): trim, tag stripping, escaping, idempotence, non-strings
  - required / nullable flow and label formatting
  - each registered rule's accept/reject behavior and message
  - numeric / boolean coercion of the normalized value
  - first failure per field wins; errors accumulate across fields
  - unknown rule names fail fast before any field is checked
  - unique rule: lookup wiring, except_id, misconfiguration, database errors
"""

from __future__ import annotations

import logging

import pytest
from sqlalchemy.exc import OperationalError

from core.errors import ValidationFailed
from core.validation import UnknownRuleError, Validator, field_label, parse_rules, sanitize


def _validate(value, rules, name="field", validator=None):
    return (validator or Validator()).validate({name: (value, rules)})


class TestSanitize:
    def test_trims_whitespace(self) -> None:
        assert sanitize("  hello  ") == "hello"

    def test_strips_tags(self) -> None:
        assert sanitize("<b>Work</b>") == "Work"
        assert sanitize("<script>alert(1)</script>x") == "alert(1)x"

    def test_escapes_special_characters(self) -> None:
        assert sanitize("Tom & Jerry") == "Tom &amp; Jerry"
        assert sanitize("it's \"quoted\"") == "it&#039;s &quot;quoted&quot;"

    def test_lone_angle_bracket_is_escaped(self) -> None:
        assert sanitize("a < b") == "a &lt; b"

    def test_is_idempotent(self) -> None:
        for raw in ["Tom & Jerry", "<i>x</i> & 'y'", "a < b > c", "&amp; already", '"q"']:
            once = sanitize(raw)
            assert sanitize(once) == once, raw

    def test_non_strings_pass_through(self) -> None:
        assert sanitize(5) == 5
        assert sanitize(None) is None
        assert sanitize(True) is True


class TestFlowRules:
    def test_required_on_empty(self) -> None:
        result = _validate("   ", "required|min:3", name="username")
        assert result.errors == {"username": ["Username is required."]}

    def test_required_on_missing(self) -> None:
        result = _validate(None, "required", name="due_date")
        assert result.errors == {"due_date": ["Due date is required."]}

    def test_nullable_empty_becomes_none(self) -> None:
        result = _validate("", "nullable|max:5", name="description")
        assert result.ok
        assert result.data == {"description": None}

    def test_required_and_nullable_on_empty(self) -> None:
        result = _validate("", "required|nullable", name="note")
        assert result.ok
        assert result.data["note"] is None

    def test_label_formatting(self) -> None:
        assert field_label("due_date") == "Due date"
        assert field_label("folder_id") == "Folder id"

    def test_rules_accept_list_form(self) -> None:
        result = _validate("ab", ["required", "min:3"], name="username")
        assert result.errors == {"username": ["Username must be at least 3 characters long."]}


class TestRules:
    def test_min_and_max(self) -> None:
        assert _validate("ab", "min:3", name="title").errors == {"title": ["Title must be at least 3 characters long."]}
        assert _validate("abcdef", "max:5", name="title").errors == {"title": ["Title must not exceed 5 characters."]}
        assert _validate("abc", "min:3|max:3").ok

    def test_email(self) -> None:
        assert _validate("a@mail.com", "email").ok
        result = _validate("not-an-email", "email", name="email")
        assert result.errors == {"email": ["Email must be a valid email address."]}

    def test_numeric_coerces(self) -> None:
        assert _validate("42", "numeric").data["field"] == 42
        assert _validate("2.5", "numeric").data["field"] == 2.5
        assert _validate(7, "numeric").data["field"] == 7

    def test_numeric_rejects(self) -> None:
        for bad in ["abc", "1e", True]:
            assert _validate(bad, "numeric", name="folder_id").errors == {"folder_id": ["Folder id must be a number."]}

    def test_boolean_coerces(self) -> None:
        assert _validate("yes", "boolean").data["field"] is True
        assert _validate("OFF", "boolean").data["field"] is False
        assert _validate(1, "boolean").data["field"] is True

    def test_boolean_rejects(self) -> None:
        result = _validate("maybe", "boolean", name="done")
        assert result.errors == {"done": ["Done must be a boolean value (true/false, 0/1)."]}

    def test_in(self) -> None:
        assert _validate("done", "in:todo,in_progress,done").ok
        result = _validate("finished", "in:todo,in_progress,done", name="status")
        assert result.errors == {"status": ["Status has an invalid value. Must be one of: todo, in_progress, done."]}

    def test_date_format_accepts_valid_date(self) -> None:
        assert _validate("2024-01-15", "date_format:Y-m-d").ok

    def test_date_format_rejects_impossible_date(self) -> None:
        result = _validate("2024-13-40", "date_format:Y-m-d", name="due_date")
        assert result.errors == {"due_date": ["Due date must be in Y-m-d format."]}

    def test_date_format_requires_exact_round_trip(self) -> None:
        assert not _validate("2024-1-5", "date_format:Y-m-d").ok
        assert _validate("15/01/2024 09:30", "date_format:d/m/Y H:i").ok

    def test_password_strength(self) -> None:
        assert _validate("Secret123", "password_strength").ok
        for weak in ["secret123", "SECRET123", "SecretABC", "Sec12"]:
            result = _validate(weak, "password_strength", name="password")
            assert result.errors == {
                "password": ["Password must be at least 8 characters, contain uppercase, lowercase, and a digit."]
            }, weak


class TestValidatorFlow:
    def test_first_failure_per_field_wins(self) -> None:
        result = _validate("x", "min:3|email", name="email")
        assert result.errors == {"email": ["Email must be at least 3 characters long."]}

    def test_errors_accumulate_across_fields(self) -> None:
        result = Validator().validate(
            {
                "username": ("", "required"),
                "email": ("bad", "required|email"),
                "title": ("ok", "required"),
            }
        )
        assert set(result.errors) == {"username", "email"}
        assert result.data["title"] == "ok"

    def test_stored_value_is_sanitized(self) -> None:
        result = _validate("  <b>Ship</b> & test ", "required|max:255", name="title")
        assert result.data["title"] == "Ship &amp; test"

    def test_raise_for_errors(self) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            _validate("", "required", name="name").raise_for_errors()
        assert exc_info.value.status_code == 422
        assert exc_info.value.to_body() == {
            "success": False,
            "message": "Validation failed.",
            "errors": {"name": ["Name is required."]},
        }

    def test_raise_for_errors_returns_data(self) -> None:
        assert _validate("abc", "required").raise_for_errors() == {"field": "abc"}


class TestUnknownRule:
    def test_parse_rules_rejects_unknown_name(self) -> None:
        with pytest.raises(UnknownRuleError):
            parse_rules("required|no_such_rule")

    def test_raises_without_logging(self, caplog) -> None:
        caplog.set_level(logging.DEBUG, logger="tasknest.validation")
        with pytest.raises(UnknownRuleError):
            parse_rules("required|not_a_rule")
        assert caplog.records == []

    def test_validate_fails_before_checking_any_field(self) -> None:
        calls: list[tuple] = []

        def lookup(table, column, value, except_id=None):
            calls.append((table, column, value))
            return False

        validator = Validator(unique_lookup=lookup)
        with pytest.raises(UnknownRuleError):
            validator.validate(
                {
                    "email": ("a@mail.com", "unique:users,email"),
                    "title": ("x", "requird"),
                }
            )
        assert calls == []


class TestUniqueRule:
    def test_reports_existing_value(self) -> None:
        validator = Validator(unique_lookup=lambda table, column, value, except_id=None: True)
        result = _validate("a@mail.com", "unique:users,email", name="email", validator=validator)
        assert result.errors == {"email": ["Email already exists."]}

    def test_passes_except_id_to_lookup(self) -> None:
        seen: dict = {}

        def lookup(table, column, value, except_id=None):
            seen.update(table=table, column=column, value=value, except_id=except_id)
            return False

        result = _validate("a@mail.com", "unique:users,email,except_id:7", validator=Validator(unique_lookup=lookup))
        assert result.ok
        assert seen == {"table": "users", "column": "email", "value": "a@mail.com", "except_id": 7}

    def test_misconfigured_rule(self) -> None:
        validator = Validator(unique_lookup=lambda *a, **k: False)
        result = _validate("x", "unique:users", name="email", validator=validator)
        assert result.errors == {"email": ["Internal validation error: Misconfigured unique rule."]}

    def test_missing_lookup(self) -> None:
        result = _validate("x", "unique:users,email", name="email")
        assert result.errors == {
            "email": ["Internal validation error: Database connection not available for unique check."]
        }

    def test_database_error(self) -> None:
        def lookup(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

        result = _validate("x", "unique:users,email", name="email", validator=Validator(unique_lookup=lookup))
        assert result.errors == {"email": ["A database error occurred during unique validation."]}

    def test_against_user_store(self, user_store) -> None:
        from auth.models import User

        uid = user_store.create_user(User(username="ana", email="ana@mail.com", hashed_password="x"))
        validator = Validator(unique_lookup=user_store.value_exists)
        assert not _validate("ana@mail.com", "unique:users,email", validator=validator).ok
        assert _validate("ana@mail.com", f"unique:users,email,except_id:{uid}", validator=validator).ok
        assert _validate("bo@mail.com", "unique:users,email", validator=validator).ok
