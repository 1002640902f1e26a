"""Tests for the shipped validator collection."""

from typing import Any

import pytest

from declara.validation.rules import (
    AlphanumericValidation,
    AsciiValidation,
    Case,
    CaseValidation,
    ContainsValidation,
    CreditCardValidation,
    EmailValidation,
    IpKind,
    IpValidation,
    LenValidation,
    MatchesValidation,
    NegativeValidation,
    NonEmptyValidation,
    NonNegativeValidation,
    NonPositiveValidation,
    PatternValidation,
    PhoneNumberValidation,
    PositiveValidation,
    PrefixValidation,
    RangeValidation,
    RequiredValidation,
    SuffixValidation,
    UrlValidation,
    luhn_checksum,
)
from declara.validation.validator import Validator, registry, validator, value_field


class TestRangeValidation:
    """Tests for RangeValidation."""

    def test_inclusive_bounds(self):
        rule = RangeValidation(min=1, max=10)
        assert rule.validate(1) and rule.validate(10)
        assert not rule.validate(0)
        assert not rule.validate(11)

    def test_unordered_value(self):
        assert not RangeValidation(min=1, max=10).validate("5")

    def test_bound_coerces_bounds(self):
        rule = RangeValidation.bind(int)(min="1", max=10.0)
        assert (rule.min, rule.max) == (1, 10)
        assert isinstance(rule.max, int)

    def test_bound_rejects_other_types(self):
        rule = RangeValidation.bind(int)(min=0, max=10)
        assert not rule.validate(5.5)
        assert not rule.validate(True)

    def test_value_field(self):
        rule = RangeValidation(min=0, max=1).with_value(7)
        assert rule.actual == 7
        assert rule.captured == 7


class TestSignValidations:
    """Tests for the sign checks."""

    @pytest.mark.parametrize(
        "rule, value, expected",
        [
            (PositiveValidation, 1, True),
            (PositiveValidation, 0, False),
            (NegativeValidation, -0.5, True),
            (NegativeValidation, 0, False),
            (NonNegativeValidation, 0, True),
            (NonNegativeValidation, -1, False),
            (NonPositiveValidation, 0, True),
            (NonPositiveValidation, 2, False),
        ],
    )
    def test_sign(self, rule, value, expected):
        assert rule().validate(value) is expected

    def test_unorderable(self):
        assert not PositiveValidation().validate("1")

    def test_bound_type(self):
        assert not PositiveValidation.bind(int)().validate(1.5)


class TestLenValidation:
    """Tests for LenValidation."""

    def test_bounds(self):
        rule = LenValidation(min=1, max=3)
        assert rule.validate("ab")
        assert rule.validate([1, 2, 3])
        assert not rule.validate("")
        assert not rule.validate("abcd")

    def test_open_max(self):
        assert LenValidation(min=2).validate("x" * 1000)

    def test_without_length(self):
        assert not LenValidation().validate(5)

    def test_params(self):
        params = LenValidation(min=1).with_value("abcd").params()
        assert params["length"] == 4
        assert params["max"] == "∞"


class TestPresence:
    """Tests for NonEmptyValidation and RequiredValidation."""

    @pytest.mark.parametrize(
        "value, expected",
        [("x", True), ("   ", False), ("", False), ([], False), ([0], True), (None, False), (0, True)],
    )
    def test_non_empty(self, value, expected):
        assert NonEmptyValidation().validate(value) is expected

    def test_required(self):
        assert RequiredValidation().validate("")
        assert not RequiredValidation().validate(None)


class TestStringValidations:
    """Tests for string rules."""

    def test_pattern(self):
        rule = PatternValidation(pattern=r"^\d+$")
        assert rule.validate("123")
        assert not rule.validate("12a")
        assert not rule.validate(123)

    def test_invalid_pattern(self):
        assert not PatternValidation(pattern="(").validate("(")

    def test_affixes(self):
        assert PrefixValidation(prefix="@").validate("@ann")
        assert not PrefixValidation(prefix="@").validate("ann")
        assert SuffixValidation(suffix=".py").validate("main.py")
        assert ContainsValidation(substring="@").validate("a@b")
        assert not ContainsValidation(substring="@").validate(None)

    def test_ascii(self):
        assert AsciiValidation().validate("hello")
        assert not AsciiValidation().validate("héllo")

    def test_alphanumeric(self):
        assert AlphanumericValidation().validate("abc123")
        assert not AlphanumericValidation().validate("abc-123")

    @pytest.mark.parametrize(
        "case, value, expected",
        [
            (Case.SNAKE, "hello_world", True),
            (Case.SNAKE, "helloWorld", False),
            (Case.KEBAB, "hello-world", True),
            (Case.CAMEL, "helloWorld", True),
            (Case.CAMEL, "HelloWorld", False),
            (Case.PASCAL, "HelloWorld", True),
            (Case.PASCAL, "helloWorld", False),
            (Case.SHOUTY_SNAKE, "HELLO_WORLD", True),
            (Case.SHOUTY_KEBAB, "HELLO-WORLD", True),
            (Case.TITLE, "Hello World", True),
            (Case.TRAIN, "Hello-World", True),
            (Case.TRAIN, "hello-world", False),
        ],
    )
    def test_case(self, case, value, expected):
        assert CaseValidation(case=case).validate(value) is expected

    def test_case_from_string(self):
        assert CaseValidation(case="kebab-case").case is Case.KEBAB

    def test_matches(self):
        assert MatchesValidation(other="pw").validate("pw")
        assert not MatchesValidation(other="pw").validate("other")


class TestFormatValidations:
    """Tests for format rules."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("ann@example.com", True),
            ("first.last+tag@sub.example.org", True),
            ("ann@", False),
            ("ann.example.com", False),
            (None, False),
        ],
    )
    def test_email(self, value, expected):
        assert EmailValidation().validate(value) is expected

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("https://example.com/path?q=1", True),
            ("http://localhost:8000", True),
            ("http://127.0.0.1/", True),
            ("ftp://example.com", False),
            ("example.com", False),
        ],
    )
    def test_url(self, value, expected):
        assert UrlValidation().validate(value) is expected

    def test_ip(self):
        assert IpValidation().validate("192.168.0.1")
        assert IpValidation().validate("::1")
        assert not IpValidation(kind=IpKind.V6).validate("192.168.0.1")
        assert IpValidation(kind="v4").kind is IpKind.V4
        assert not IpValidation().validate("999.1.1.1")

    def test_phone(self):
        assert PhoneNumberValidation().validate("+16502530000")
        assert PhoneNumberValidation(region="US").validate("650-253-0000")
        assert not PhoneNumberValidation().validate("650-253-0000")
        assert not PhoneNumberValidation().validate("+1 650")

    def test_credit_card(self):
        assert CreditCardValidation().validate("4111 1111 1111 1111")
        assert CreditCardValidation().validate("4111-1111-1111-1111")
        assert not CreditCardValidation().validate("4111 1111 1111 1112")
        assert not CreditCardValidation().validate("4111")

    def test_luhn(self):
        assert luhn_checksum("79927398713") == 0
        assert luhn_checksum("79927398710") != 0


class TestValidatorDecorator:
    """Tests for @validator and the registry."""

    def test_collection_registered(self):
        for name in ("RangeValidation", "EmailValidation", "CaseValidation"):
            assert name in registry
        assert "NoSuchValidation" not in registry

    def test_custom_registration(self):
        @validator(name="EvenForTest")
        class EvenValidation(Validator):
            message = "{actual} is not even"

            actual: Any = value_field()

            def validate(self, value):
                return value % 2 == 0

        try:
            assert registry.get("EvenForTest") is EvenValidation
            assert EvenValidation.validator_name() == "EvenForTest"
            assert EvenValidation().with_value(3).actual == 3
        finally:
            registry.unregister("EvenForTest")

    def test_custom_value_field(self):
        @validator(register=False)
        class Limit(Validator):
            limit: int
            seen: Any = value_field()

            def validate(self, value):
                return value <= self.limit

        assert Limit.__value_field__ == "seen"
        assert Limit(limit=1).with_value(5).seen == 5
        assert "Limit" not in registry

    def test_missing_value_field(self):
        with pytest.raises(TypeError, match="no value field"):
            @validator(register=False)
            class NoValue(Validator):
                limit: int

                def validate(self, value):
                    return True
