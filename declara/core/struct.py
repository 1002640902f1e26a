"""
Declara Structures
==================

The ``@validated`` decorator and the ``check()`` field helper.

Annotations are parsed when the class is decorated, so malformed text
fails at import time. Validation code is generated on the first call to
``validate()`` (or an explicit ``compile_struct``) and shared afterwards.

Example:
    @validated("try_new")
    @dataclass
    class Order:
        id: str = check("NonEmptyValidation")
        quantity: int = check("RangeValidation::<_>(min=1, max=100)")
        tags: list[str] = check("LenValidation(max=5), each(NonEmptyValidation)")
        address: Optional[Address] = check("nested", default=None)

    result = Order("", 0, ["ok", ""]).validate()
    result.error.quantity().range_validation().actual   # 0
    result.error.tags().element_errors()                # [(1, ...)]
"""

from __future__ import annotations

import dataclasses
import sys
import threading
import typing
from dataclasses import MISSING, dataclass
from typing import Any, Dict, Optional, Tuple, Type, Union

from declara.engine.annotation_parser import (
    FieldDescriptor,
    StructOptions,
    parse_field,
    parse_struct_options,
)
from declara.engine.generator import (
    MODEL_ATTR,
    CompiledValidation,
    GenerationError,
    ValidationGenerator,
    check_newtype,
)
from declara.utils.logger import get_logger
from declara.validation.errors import AggregateErrors
from declara.validation.validator import ValidationResult

logger = get_logger("declara.struct")

# Field metadata key holding annotation strings
FIELD_METADATA = "declara"


def check(
    *annotations: str,
    default: Any = MISSING,
    default_factory: Any = MISSING,
    **kwargs: Any,
) -> Any:
    """
    Declare a validated dataclass field.

    Args:
        *annotations: Annotation strings, merged in order
        default: Field default
        default_factory: Field default factory
        **kwargs: Passed through to ``dataclasses.field``

    Example:
        email: str = check("EmailValidation", "LenValidation(max=254)")
    """
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[FIELD_METADATA] = tuple(annotations)
    return dataclasses.field(
        default=default,
        default_factory=default_factory,
        metadata=metadata,
        **kwargs,
    )


class StructModel:
    """
    Parsed description of a validated structure.

    Holds the descriptors built at decoration time and compiles them on
    first use. Compilation is guarded so concurrent first calls build once.
    """

    def __init__(
        self,
        cls: type,
        options: StructOptions,
        fields: Tuple[FieldDescriptor, ...],
        field_names: Tuple[str, ...],
    ) -> None:
        self.cls = cls
        self.options = options
        self.fields = fields
        self.field_names = field_names
        self._compiled: Optional[CompiledValidation] = None
        self._lock = threading.RLock()
        self._building = False

    @property
    def is_compiled(self) -> bool:
        return self._compiled is not None

    def compile(self) -> CompiledValidation:
        """Get the compiled validation, generating it on first use."""
        compiled = self._compiled
        if compiled is not None:
            return compiled

        with self._lock:
            if self._compiled is None:
                if self._building:
                    raise GenerationError(
                        "error types form a cycle through newtype structures",
                        self.cls.__qualname__,
                    )
                self._building = True
                try:
                    self._compiled = self._build()
                finally:
                    self._building = False
            return self._compiled

    def _build(self) -> CompiledValidation:
        module = sys.modules.get(self.cls.__module__)
        namespace: Dict[str, Any] = dict(vars(module)) if module is not None else {}

        try:
            hints = typing.get_type_hints(self.cls, globalns=namespace)
        except NameError as e:
            raise GenerationError(f"cannot resolve field types: {e}", self.cls.__qualname__) from e

        fields = tuple(
            dataclasses.replace(descriptor, declared_type=hints.get(descriptor.name, Any))
            for descriptor in self.fields
        )
        return ValidationGenerator().generate(
            self.cls,
            fields,
            self.options,
            namespace,
            field_names=self.field_names,
        )

    def __repr__(self) -> str:
        return f"StructModel({self.cls.__qualname__}, fields={[f.name for f in self.fields]})"


def _validate(self: Any) -> ValidationResult:
    """
    Validate every annotated field.

    Returns:
        ValidationResult holding this object on success, or the
        structure's error aggregate on failure
    """
    return getattr(type(self), MODEL_ATTR).compile().validate(self)


def _try_new(cls: type, *args: Any, **kwargs: Any) -> ValidationResult:
    """
    Construct and validate in one step.

    The result's ``value`` is the new object only when validation passed.
    """
    return cls(*args, **kwargs).validate()


def _decorate(cls: type, annotations: Tuple[str, ...], eager: bool = False) -> type:
    if "__dataclass_fields__" not in cls.__dict__:
        cls = dataclass(cls)

    name = cls.__qualname__
    if "validate" in cls.__dict__:
        raise GenerationError("validated structures cannot define their own validate()", name)

    options = parse_struct_options(*annotations, origin=name)

    descriptors = []
    for f in dataclasses.fields(cls):
        texts = f.metadata.get(FIELD_METADATA)
        if not texts:
            continue
        descriptor = parse_field(f.name, f.type, *texts, origin=f"{name}.{f.name}")
        if descriptor is not None:
            descriptors.append(descriptor)

    check_newtype(name, descriptors, options)

    model = StructModel(
        cls,
        options,
        tuple(descriptors),
        tuple(f.name for f in dataclasses.fields(cls)),
    )
    setattr(cls, MODEL_ATTR, model)
    cls.validate = _validate
    if options.has_try_new:
        cls.try_new = classmethod(_try_new)

    if eager:
        model.compile()
    logger.debug("Declared validated structure", struct=name, fields=len(descriptors))
    return cls


def validated(*args: Union[type, str], eager: bool = False) -> Any:
    """
    Class decorator declaring a validated structure.

    Applies ``dataclass`` when the class is not one yet. Structure options
    are passed as annotation strings.

    Example:
        @validated
        class Point: ...

        @validated("newtype, try_new")
        class Email: ...

        @validated('error = "SignupErrors"')
        class Signup: ...

    With ``eager=True`` validation is generated at decoration time, so
    structural errors surface on import. Every field type must already
    resolve.

    Raises:
        AnnotationSyntaxError: On malformed field or structure annotations
        GenerationError: If a newtype structure has not exactly one
            annotated field, or on any structural error when eager
    """
    if len(args) == 1 and isinstance(args[0], type):
        return _decorate(args[0], (), eager)

    for option in args:
        if not isinstance(option, str):
            raise TypeError(f"structure options must be strings, got {type(option).__name__}")

    def wrap(cls: type) -> type:
        return _decorate(cls, tuple(args), eager)

    return wrap


def is_validated(cls: Any) -> bool:
    """Check if a class was declared with ``@validated``."""
    return isinstance(getattr(cls, MODEL_ATTR, None), StructModel)


def struct_model(cls: type) -> StructModel:
    """
    Get the model of a validated structure.

    Raises:
        TypeError: If the class is not validated
    """
    model = getattr(cls, MODEL_ATTR, None)
    if not isinstance(model, StructModel):
        raise TypeError(f"{getattr(cls, '__qualname__', cls)!r} is not a validated structure")
    return model


def compile_struct(cls: type) -> CompiledValidation:
    """Generate (or fetch) the compiled validation of a structure."""
    return struct_model(cls).compile()


def error_type(cls: type) -> Type[AggregateErrors]:
    """Get the generated error aggregate class of a structure."""
    return compile_struct(cls).error_type


def field_descriptors(cls: type) -> Tuple[FieldDescriptor, ...]:
    """Parsed field descriptors of a structure, as declared."""
    return struct_model(cls).fields
