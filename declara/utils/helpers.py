"""
Declara Helpers
===============

Naming and text helpers shared by the parser, generator and messages.
"""

from __future__ import annotations

import re


def snake_case(text: str) -> str:
    """
    Convert text to snake_case.

    Example:
        >>> snake_case("NumberRangeValidation")
        'number_range_validation'
        >>> snake_case("IPValidation")
        'ip_validation'
    """
    text = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", text)
    text = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", text)
    text = re.sub(r"[-\s]+", "_", text)
    return text.lower()


def pascal_case(text: str) -> str:
    """
    Convert text to PascalCase.

    Example:
        >>> pascal_case("billing_address")
        'BillingAddress'
    """
    parts = re.split(r"[_\-\s]+", text)
    return "".join(p[:1].upper() + p[1:] for p in parts)


def truncate(text: str, length: int = 80, suffix: str = "...") -> str:
    """Truncate text to length, keeping the suffix inside the limit."""
    if len(text) <= length:
        return text
    return text[: length - len(suffix)] + suffix
