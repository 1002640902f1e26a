"""
Declara Validator
=================

The validator contract, the registry used to resolve validator paths, and
the result type returned by generated ``validate()`` methods.

A validator is any class that can be constructed from the verbatim
argument text of an annotation and exposes ``validate(value) -> bool``.
Subclassing ``Validator`` adds the optional parts of the contract:

- ``with_value(value)`` stores the failing value in the value field
- ``bind(type)`` returns a subclass specialized to a value type
- ``message`` is the English failure template

Example:
    @validator
    class EvenValidation(Validator):
        message = "{actual} is not even"

        actual: int = value_field()

        def validate(self, value: int) -> bool:
            return value % 2 == 0
"""

from __future__ import annotations

import dataclasses
import importlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Dict, List, Optional, Type, TypeVar, Union

from declara.engine.typeshape import type_label
from declara.utils.logger import get_logger

logger = get_logger("declara.validation")

VALUE_MARKER = "declara.value"

V = TypeVar("V", bound=type)


class ValidationError(Exception):
    """
    Raised when a caller unwraps a failed validation result.

    ``errors`` is the generated error aggregate of the structure.
    """

    def __init__(self, message: str = "Validation failed", errors: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors

    def messages(self, locale: Optional[str] = None) -> Dict[str, List[str]]:
        """Failure messages keyed by field path."""
        if self.errors is None:
            return {}
        return self.errors.messages(locale)

    def first(self, path: Optional[str] = None) -> Optional[str]:
        """Get first error message, optionally for one field path."""
        messages = self.messages()
        if path is not None:
            found = messages.get(path, [])
            return found[0] if found else None
        for found in messages.values():
            if found:
                return found[0]
        return None

    def __str__(self) -> str:
        lines = [
            f"  - {path}: {message}"
            for path, found in self.messages().items()
            for message in found
        ]
        if lines:
            return f"{self.message}:\n" + "\n".join(lines)
        return self.message


@dataclass
class ValidationResult:
    """
    Outcome of validating one structure.

    On success ``value`` is the validated object; on failure ``error`` is the
    structure's error aggregate and ``value`` is None.
    """

    valid: bool
    value: Any = None
    error: Any = None

    def __bool__(self) -> bool:
        """Allow using result as boolean."""
        return self.valid

    def failed(self) -> bool:
        """Check if validation failed."""
        return not self.valid

    def unwrap(self) -> Any:
        """Return the value, raising ValidationError on failure."""
        self.raise_if_invalid()
        return self.value

    def unwrap_err(self) -> Any:
        """Return the error aggregate, raising ValueError on success."""
        if self.valid:
            raise ValueError("validation succeeded, there is no error to unwrap")
        return self.error

    def raise_if_invalid(self) -> None:
        """Raise ValidationError if invalid."""
        if not self.valid:
            raise ValidationError(errors=self.error)


def value_field(default: Any = None) -> Any:
    """
    Mark the dataclass field that receives the failing value.

    Must be declared after the validator's configuration fields.
    """
    return dataclasses.field(default=default, metadata={VALUE_MARKER: True})


class Validator(ABC):
    """
    Base class for validators.

    Instances are created per validation call from the annotation's
    arguments; a failing instance is kept in the error aggregate with the
    offending value captured in its value field.
    """

    # Bound by bind(), None when unbound
    value_type: ClassVar[Any] = None

    message: ClassVar[str] = "{value} is invalid"

    __value_field__: ClassVar[str] = "actual"
    __validator_name__: ClassVar[Optional[str]] = None

    @abstractmethod
    def validate(self, value: Any) -> bool:
        """
        Check the value.

        Returns:
            True if valid, False otherwise
        """
        ...

    def with_value(self, value: Any) -> "Validator":
        """Store the failing value and return self."""
        setattr(self, self.__value_field__, value)
        return self

    @property
    def captured(self) -> Any:
        """The captured failing value (None before capture)."""
        return getattr(self, self.__value_field__, None)

    @classmethod
    def validator_name(cls) -> str:
        """Registered name, shared by every bound specialization."""
        return cls.__validator_name__ or cls.__name__

    @classmethod
    def bind(cls, value_type: Any) -> Type["Validator"]:
        """
        Specialize the validator to a value type.

        The specialization is created once per (class, type) pair and
        exposes the type as ``value_type``.

        Example:
            RangeValidation.bind(float)(min=0, max=1).min  # 0.0
        """
        cache = cls.__dict__.get("_bindings")
        if cache is None:
            cache = {}
            setattr(cls, "_bindings", cache)

        try:
            return cache[value_type]
        except KeyError:
            pass
        except TypeError:
            # Unhashable type objects are specialized without caching
            return cls._specialize(value_type)

        bound = cls._specialize(value_type)
        cache[value_type] = bound
        return bound

    @classmethod
    def _specialize(cls, value_type: Any) -> Type["Validator"]:
        name = f"{cls.__name__}[{type_label(value_type)}]"
        namespace = {
            "value_type": value_type,
            "__module__": cls.__module__,
            "__qualname__": f"{cls.__qualname__}[{type_label(value_type)}]",
            "__validator_name__": cls.validator_name(),
            "_bindings": {},
        }
        return type(cls)(name, (cls,), namespace)

    def params(self) -> Dict[str, Any]:
        """Configuration and captured value, by field name."""
        if dataclasses.is_dataclass(self):
            return {f.name: getattr(self, f.name) for f in dataclasses.fields(self)}
        return dict(vars(self))

    def format_message(self, locale: Optional[str] = None) -> str:
        """Human-readable failure message."""
        from declara.validation.messages import format_message
        return format_message(self, locale)


class ValidatorRegistry:
    """
    Name -> validator class mapping.

    Annotation paths are resolved against the declaring module first and
    against this registry second. The shipped collection registers itself
    on first lookup.
    """

    BUILTIN_MODULE = "declara.validation.rules"

    def __init__(self) -> None:
        self._validators: Dict[str, type] = {}
        self._builtins_loaded = False

    def register(self, cls: V, name: Optional[str] = None) -> V:
        """Register a validator class under a name (its class name by default)."""
        key = name or getattr(cls, "__validator_name__", None) or cls.__name__
        previous = self._validators.get(key)
        if previous is not None and previous is not cls:
            logger.debug("Replacing registered validator", name=key, previous=previous.__module__)
        self._validators[key] = cls
        return cls

    def unregister(self, name: str) -> None:
        self._validators.pop(name, None)

    def get(self, name: str) -> Optional[type]:
        """Look up a validator by registered name."""
        self._ensure_builtins()
        return self._validators.get(name)

    def names(self) -> List[str]:
        self._ensure_builtins()
        return sorted(self._validators)

    def _ensure_builtins(self) -> None:
        if not self._builtins_loaded:
            self._builtins_loaded = True
            importlib.import_module(self.BUILTIN_MODULE)

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __len__(self) -> int:
        self._ensure_builtins()
        return len(self._validators)


registry = ValidatorRegistry()


def _find_value_field(cls: type) -> str:
    marked = [
        f.name for f in dataclasses.fields(cls) if f.metadata.get(VALUE_MARKER)
    ]
    if len(marked) > 1:
        raise TypeError(
            f"validator {cls.__name__} marks more than one value field: {', '.join(marked)}"
        )
    if marked:
        return marked[0]

    names = {f.name for f in dataclasses.fields(cls)}
    inherited = getattr(cls, "__value_field__", None)
    if inherited in names:
        return inherited
    raise TypeError(
        f"validator {cls.__name__} has no value field, declare one with value_field()"
    )


def validator(
    cls: Optional[type] = None,
    *,
    name: Optional[str] = None,
    register: bool = True,
) -> Union[type, Callable[[type], type]]:
    """
    Class decorator declaring a validator.

    Applies ``dataclass`` when the class is not one yet, records the value
    field and registers the class so annotations can name it without an
    import.

    Example:
        @validator(name="Even")
        class EvenValidation(Validator):
            actual: int = value_field()

            def validate(self, value):
                return value % 2 == 0
    """

    def wrap(target: type) -> type:
        if "__dataclass_fields__" not in target.__dict__:
            target = dataclass(target)

        target.__value_field__ = _find_value_field(target)
        target.__validator_name__ = name or target.__name__
        if register:
            registry.register(target)
        return target

    if cls is None:
        return wrap
    return wrap(cls)
