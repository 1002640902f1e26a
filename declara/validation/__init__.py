"""
Declara Validation
==================

Validator contract, error types, messages and the shipped rule collection.
"""

from declara.validation.validator import (
    ValidationError,
    ValidationResult,
    Validator,
    ValidatorRegistry,
    registry,
    validator,
    value_field,
)
from declara.validation.errors import (
    AggregateErrors,
    ElementErrors,
    FieldErrors,
    NewtypeFieldErrors,
    ValidatorErrors,
)
from declara.validation.messages import MessageCatalog, catalog, format_message

__all__ = [
    "ValidationError",
    "ValidationResult",
    "Validator",
    "ValidatorRegistry",
    "registry",
    "validator",
    "value_field",
    "AggregateErrors",
    "ElementErrors",
    "FieldErrors",
    "NewtypeFieldErrors",
    "ValidatorErrors",
    "MessageCatalog",
    "catalog",
    "format_message",
]
