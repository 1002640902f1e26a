"""
Declara - Declarative Validation for Python Dataclasses
=======================================================

Fields declare the rules that apply to them as annotation text; the
framework parses the annotations when the class is decorated and
generates the validation code and typed error classes on first use.

Features:
---------
- Annotation grammar with nested, newtype, skip and each(...) items
- Generic validators bound to the field type with ``::<_>``
- Typed error aggregates with one accessor per field and validator
- Newtype wrappers with transparent error access
- Validated constructors (``try_new``)
- Localized failure messages

Quick Start:
    from dataclasses import dataclass
    from declara import check, validated

    @validated
    @dataclass
    class Person:
        name: str = check("NonEmptyValidation")
        age: int = check("RangeValidation::<_>(min=0, max=150)")

    result = Person("", 200).validate()
    result.error.messages()
    # {'name': ['value must not be empty'], 'age': ['200 is not within [0, 150]']}
"""

from __future__ import annotations

__version__ = "0.4.0"
__license__ = "MIT"

from typing import TYPE_CHECKING

# Core imports (always available)
from declara.core.config import Config, get_config
from declara.core.struct import check, compile_struct, error_type, is_validated, validated
from declara.engine.annotation_parser import (
    AnnotationSyntaxError,
    FieldDescriptor,
    StructOptions,
    ValidatorReference,
    parse_field,
    parse_struct_options,
)
from declara.engine.generator import CompiledValidation, GenerationError
from declara.validation.validator import (
    ValidationError,
    ValidationResult,
    Validator,
    registry,
    validator,
    value_field,
)

if TYPE_CHECKING:
    from declara.validation.messages import MessageCatalog, catalog, format_message
    from declara.validation.rules import Case, IpKind, LenValidation, RangeValidation


def __getattr__(name: str):
    """Lazy loading of the validator collection and message helpers."""
    _imports = {
        "MessageCatalog": "declara.validation.messages",
        "catalog": "declara.validation.messages",
        "format_message": "declara.validation.messages",
        "configure_logging": "declara.utils.logger",
        "get_logger": "declara.utils.logger",
    }

    if name in _imports:
        import importlib
        module = importlib.import_module(_imports[name])
        return getattr(module, name)

    if name.endswith("Validation") or name in ("Case", "IpKind"):
        import importlib
        rules = importlib.import_module("declara.validation.rules")
        if hasattr(rules, name):
            return getattr(rules, name)

    raise AttributeError(f"module 'declara' has no attribute '{name}'")


__all__ = [
    # Metadata
    "__version__",
    "__license__",
    # Structures
    "check",
    "compile_struct",
    "error_type",
    "is_validated",
    "validated",
    # Intermediate representation
    "FieldDescriptor",
    "StructOptions",
    "ValidatorReference",
    "parse_field",
    "parse_struct_options",
    "CompiledValidation",
    # Validators
    "Validator",
    "ValidationResult",
    "registry",
    "validator",
    "value_field",
    # Errors
    "AnnotationSyntaxError",
    "GenerationError",
    "ValidationError",
    # Config
    "Config",
    "get_config",
    # Messages and logging (lazy)
    "MessageCatalog",
    "catalog",
    "format_message",
    "configure_logging",
    "get_logger",
]
