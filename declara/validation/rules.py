"""
Declara Validation Rules
========================

The shipped validator collection.

Every rule is a dataclass validator registered under its class name, so
annotations can name it without importing it:

    age: int = check("RangeValidation::<_>(min=0, max=150)")
    tags: list[str] = check("LenValidation(min=1, max=5), each(NonEmptyValidation)")
    email: Optional[str] = check("EmailValidation")

Generic rules (range, sign checks) are bound to the field's type with
``::<_>``; they coerce their bounds to that type and reject values of any
other runtime type.
"""

from __future__ import annotations

import ipaddress
import re
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Pattern

import phonenumbers
from phonenumbers import NumberParseException

from declara.engine.typeshape import matches_type, runtime_class
from declara.validation.validator import Validator, validator, value_field


def _coerce(validator_instance: Validator, value: Any) -> Any:
    """Convert a configured bound to the validator's bound value type."""
    cls = runtime_class(validator_instance.value_type)
    if cls is None or value is None or isinstance(value, cls):
        return value
    try:
        return cls(value)
    except (TypeError, ValueError):
        return value


class _TypedValidator(Validator):
    """Rejects values that do not match the bound value type."""

    def accepts(self, value: Any) -> bool:
        return matches_type(value, self.value_type)


# Numeric

@validator
class RangeValidation(_TypedValidator):
    """Inclusive ``min <= value <= max``."""

    message = "{actual} is not within [{min}, {max}]"

    min: Any
    max: Any
    actual: Any = value_field()

    def __post_init__(self) -> None:
        self.min = _coerce(self, self.min)
        self.max = _coerce(self, self.max)

    def validate(self, value: Any) -> bool:
        if not self.accepts(value):
            return False
        try:
            return self.min <= value <= self.max
        except TypeError:
            return False


@validator
class PositiveValidation(_TypedValidator):
    """``value > 0``."""

    message = "{actual} must be positive"

    actual: Any = value_field()

    def validate(self, value: Any) -> bool:
        sign = _sign(value) if self.accepts(value) else None
        return sign is not None and sign > 0


@validator
class NegativeValidation(_TypedValidator):
    """``value < 0``."""

    message = "{actual} must be negative"

    actual: Any = value_field()

    def validate(self, value: Any) -> bool:
        sign = _sign(value) if self.accepts(value) else None
        return sign is not None and sign < 0


@validator
class NonNegativeValidation(_TypedValidator):
    """``value >= 0``."""

    message = "{actual} must not be negative"

    actual: Any = value_field()

    def validate(self, value: Any) -> bool:
        sign = _sign(value) if self.accepts(value) else None
        return sign is not None and sign >= 0


@validator
class NonPositiveValidation(_TypedValidator):
    """``value <= 0``."""

    message = "{actual} must not be positive"

    actual: Any = value_field()

    def validate(self, value: Any) -> bool:
        sign = _sign(value) if self.accepts(value) else None
        return sign is not None and sign <= 0


def _sign(value: Any) -> Optional[int]:
    """Sign of a value, None when it cannot be ordered against zero."""
    try:
        return (value > 0) - (value < 0)
    except TypeError:
        return None


# Collections

@validator
class LenValidation(Validator):
    """Inclusive bounds on ``len(value)``; ``max=None`` leaves it open."""

    message = "length {length} is not within [{min}, {max}]"

    min: int = 0
    max: Optional[int] = None
    actual: Any = value_field()

    def validate(self, value: Any) -> bool:
        try:
            length = len(value)
        except TypeError:
            return False
        if length < self.min:
            return False
        return self.max is None or length <= self.max

    def params(self) -> Dict[str, Any]:
        params = super().params()
        try:
            params["length"] = len(self.actual)
        except TypeError:
            params["length"] = None
        if self.max is None:
            params["max"] = "∞"
        return params


@validator
class NonEmptyValidation(Validator):
    """Strings must contain non-whitespace, collections must have items."""

    message = "value must not be empty"

    actual: Any = value_field()

    def validate(self, value: Any) -> bool:
        if value is None:
            return False
        if isinstance(value, str):
            return bool(value.strip())
        try:
            return len(value) > 0
        except TypeError:
            return True


@validator
class RequiredValidation(Validator):
    """
    Value must be present.

    Used with ``::<Optional[_]>`` so that it sees the raw optional value:

        nickname: Optional[str] = check("RequiredValidation::<Optional[_]>")
    """

    message = "value is required but not present"

    actual: Any = value_field()

    def validate(self, value: Any) -> bool:
        return value is not None


# Strings

@validator
class PatternValidation(Validator):
    """Regular expression search; an invalid pattern never matches."""

    message = "{value} does not match pattern {pattern}"

    pattern: str
    actual: Any = value_field()

    def validate(self, value: Any) -> bool:
        if not isinstance(value, str):
            return False
        try:
            return re.search(self.pattern, value) is not None
        except re.error:
            return False


@validator
class PrefixValidation(Validator):
    message = "{value} does not start with {prefix!r}"

    prefix: str
    actual: Any = value_field()

    def validate(self, value: Any) -> bool:
        return isinstance(value, str) and value.startswith(self.prefix)


@validator
class SuffixValidation(Validator):
    message = "{value} does not end with {suffix!r}"

    suffix: str
    actual: Any = value_field()

    def validate(self, value: Any) -> bool:
        return isinstance(value, str) and value.endswith(self.suffix)


@validator
class ContainsValidation(Validator):
    message = "{value} does not contain {substring!r}"

    substring: str
    actual: Any = value_field()

    def validate(self, value: Any) -> bool:
        return isinstance(value, str) and self.substring in value


@validator
class AsciiValidation(Validator):
    message = "{value} contains non-ASCII characters"

    actual: Any = value_field()

    def validate(self, value: Any) -> bool:
        return isinstance(value, str) and value.isascii()


@validator
class AlphanumericValidation(Validator):
    message = "{value} contains non-alphanumeric characters"

    actual: Any = value_field()

    def validate(self, value: Any) -> bool:
        return isinstance(value, str) and value.isalnum()


class Case(Enum):
    """String case formats checked by CaseValidation."""

    SNAKE = "snake_case"
    KEBAB = "kebab-case"
    CAMEL = "camelCase"
    PASCAL = "PascalCase"
    SHOUTY_SNAKE = "SCREAMING_SNAKE_CASE"
    SHOUTY_KEBAB = "SCREAMING-KEBAB-CASE"
    TITLE = "Title Case"
    TRAIN = "Train-Case"


_CASE_PATTERNS: Dict[Case, Pattern] = {
    Case.SNAKE: re.compile(r"[a-z0-9]+(?:_[a-z0-9]+)*"),
    Case.KEBAB: re.compile(r"[a-z0-9]+(?:-[a-z0-9]+)*"),
    Case.CAMEL: re.compile(r"[a-z][a-z0-9]*(?:[A-Z][a-z0-9]*)*"),
    Case.PASCAL: re.compile(r"(?:[A-Z][a-z0-9]*)+"),
    Case.SHOUTY_SNAKE: re.compile(r"[A-Z0-9]+(?:_[A-Z0-9]+)*"),
    Case.SHOUTY_KEBAB: re.compile(r"[A-Z0-9]+(?:-[A-Z0-9]+)*"),
    Case.TITLE: re.compile(r"[A-Z][a-z0-9]*(?: [A-Z][a-z0-9]*)*"),
    Case.TRAIN: re.compile(r"[A-Z][a-z0-9]*(?:-[A-Z][a-z0-9]*)*"),
}


@validator
class CaseValidation(Validator):
    """String written in the given case format, e.g. ``case=Case.SNAKE``."""

    message = "{value} is not in {case.value} format"

    case: Case
    actual: Any = value_field()

    def __post_init__(self) -> None:
        if isinstance(self.case, str):
            self.case = Case(self.case)

    def validate(self, value: Any) -> bool:
        return isinstance(value, str) and _CASE_PATTERNS[self.case].fullmatch(value) is not None


@validator
class MatchesValidation(Validator):
    """
    Equal to another value, usually another field:

        confirm: str = check("MatchesValidation(other=password)")
    """

    message = "value does not match"

    other: Any
    actual: Any = value_field()

    def validate(self, value: Any) -> bool:
        return value == self.other


# Formats

@validator
class EmailValidation(Validator):
    message = "{value} is not a valid email address"

    actual: Any = value_field()

    _pattern: ClassVar[Pattern] = re.compile(
        r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
    )

    def validate(self, value: Any) -> bool:
        if not isinstance(value, str):
            return False
        return bool(self._pattern.match(value))


@validator
class UrlValidation(Validator):
    """http(s) URL with a host name, ``localhost`` or an IPv4 address."""

    message = "{value} is not a valid URL"

    actual: Any = value_field()

    _pattern: ClassVar[Pattern] = re.compile(
        r"^https?://"
        r"(?:(?:[A-Z0-9](?:[A-Z0-9-]{0,61}[A-Z0-9])?\.)+[A-Z]{2,63}\.?|"
        r"localhost|"
        r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})"
        r"(?::\d+)?"
        r"(?:/?|[/?]\S+)$",
        re.IGNORECASE,
    )

    def validate(self, value: Any) -> bool:
        if not isinstance(value, str):
            return False
        return bool(self._pattern.match(value))


class IpKind(Enum):
    ANY = "IP"
    V4 = "IPv4"
    V6 = "IPv6"


@validator
class IpValidation(Validator):
    """IP address literal, optionally restricted to one family."""

    message = "{value} is not a valid {kind.value} address"

    kind: IpKind = IpKind.ANY
    actual: Any = value_field()

    def __post_init__(self) -> None:
        if isinstance(self.kind, str):
            self.kind = IpKind[self.kind.upper()]

    def validate(self, value: Any) -> bool:
        if not isinstance(value, str):
            return False
        try:
            address = ipaddress.ip_address(value)
        except ValueError:
            return False
        if self.kind is IpKind.V4:
            return address.version == 4
        if self.kind is IpKind.V6:
            return address.version == 6
        return True


@validator
class PhoneNumberValidation(Validator):
    """
    Valid phone number.

    Numbers without a leading ``+`` need ``region`` (e.g. ``region="GB"``).
    """

    message = "{value} is not a valid phone number"

    region: Optional[str] = None
    actual: Any = value_field()

    def validate(self, value: Any) -> bool:
        if not isinstance(value, str):
            return False
        try:
            number = phonenumbers.parse(value, self.region)
        except NumberParseException:
            return False
        return phonenumbers.is_valid_number(number)


@validator
class CreditCardValidation(Validator):
    """12 to 19 digit card number passing the Luhn checksum."""

    message = "{value} is not a valid credit card number"

    actual: Any = value_field()

    def validate(self, value: Any) -> bool:
        if not isinstance(value, str):
            return False
        digits = re.sub(r"[\s-]", "", value)
        if not digits.isdigit() or not 12 <= len(digits) <= 19:
            return False
        return luhn_checksum(digits) == 0


def luhn_checksum(digits: str) -> int:
    """Luhn checksum of a digit string (0 means valid)."""
    total = 0
    for index, char in enumerate(reversed(digits)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10
