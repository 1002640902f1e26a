"""
Declara Error Types
===================

Runtime bases of the error classes emitted by the generator.

For a structure ``Order`` the generator emits:

    OrderItemsFieldErrors(FieldErrors)       one accessor per validator
    OrderItemsElementErrors(ElementErrors)   one accessor per each() validator
    OrderValidationErrors(AggregateErrors)   one accessor per annotated field

Accessors return the failed validator instance (with the failing value
captured) or None. ``all()`` lists failures in declaration order.
"""

from __future__ import annotations

from typing import Any, ClassVar, Dict, Iterator, List, Optional, Tuple, Type

import orjson

from declara.validation.messages import format_message, validator_name


def _slot_empty(slot: Any) -> bool:
    if slot is None:
        return True
    if isinstance(slot, list):
        return not slot
    return slot.is_empty()


def _slot_messages(slot: Any, path: str, locale: Optional[str]) -> Iterator[Tuple[str, str]]:
    if slot is None:
        return
    if isinstance(slot, list):
        for index, item in slot:
            yield from item._iter_messages(f"{path}[{index}]", locale)
        return
    yield from slot._iter_messages(path, locale)


def _slot_dict(slot: Any, locale: Optional[str]) -> Any:
    if isinstance(slot, list):
        return {
            "elements": [
                {"index": index, **_element_dict(item, locale)} for index, item in slot
            ]
        }
    return slot.to_dict(locale)


def _element_dict(item: Any, locale: Optional[str]) -> Dict[str, Any]:
    if isinstance(item, AggregateErrors):
        return {"fields": item.to_dict(locale)}
    return item.to_dict(locale)


class ValidatorErrors:
    """Failures of an ordered set of validators."""

    # (accessor, validator name) in declaration order
    VALIDATORS: ClassVar[Tuple[Tuple[str, str], ...]] = ()

    def __init__(self) -> None:
        self._failures: Dict[str, Any] = {}

    def _record(self, accessor: str, failure: Any) -> None:
        self._failures[accessor] = failure

    def get(self, accessor: str) -> Optional[Any]:
        """Failure recorded under an accessor name, if any."""
        return self._failures.get(accessor)

    def all(self) -> List[Any]:
        """Every failed validator, in declaration order."""
        return [
            self._failures[accessor]
            for accessor, _ in self.VALIDATORS
            if accessor in self._failures
        ]

    def is_empty(self) -> bool:
        return not self._failures

    def has_errors(self) -> bool:
        return not self.is_empty()

    def _iter_messages(self, path: str, locale: Optional[str]) -> Iterator[Tuple[str, str]]:
        for failure in self.all():
            yield path, format_message(failure, locale)

    def _entries(self, locale: Optional[str]) -> List[Dict[str, Any]]:
        return [
            {
                "validator": validator_name(failure),
                "message": format_message(failure, locale),
                "value": getattr(failure, "captured", None),
            }
            for failure in self.all()
        ]

    def to_dict(self, locale: Optional[str] = None) -> Dict[str, Any]:
        return {"errors": self._entries(locale)}

    def __iter__(self) -> Iterator[Any]:
        return iter(self.all())

    def __len__(self) -> int:
        return len(self._failures)

    def __bool__(self) -> bool:
        return self.has_errors()

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        names = ", ".join(validator_name(f) for f in self.all())
        return f"{type(self).__name__}([{names}])"


class ElementErrors(ValidatorErrors):
    """Failures of the element validators on one sequence element."""


class FieldErrors(ValidatorErrors):
    """
    Failures of one field.

    When the field also declares element validators, failing elements are
    available as ``(index, ElementErrors)`` pairs from ``element_errors()``.
    """

    FIELD: ClassVar[str] = ""

    def __init__(self) -> None:
        super().__init__()
        self._elements: List[Tuple[int, ElementErrors]] = []

    def element_errors(self) -> List[Tuple[int, ElementErrors]]:
        """Failing elements in ascending index order."""
        return list(self._elements)

    def is_empty(self) -> bool:
        return not self._failures and not self._elements

    def _iter_messages(self, path: str, locale: Optional[str]) -> Iterator[Tuple[str, str]]:
        yield from super()._iter_messages(path, locale)
        for index, element in self._elements:
            yield from element._iter_messages(f"{path}[{index}]", locale)

    def to_dict(self, locale: Optional[str] = None) -> Dict[str, Any]:
        data = super().to_dict(locale)
        if self._elements:
            data["elements"] = [
                {"index": index, **element.to_dict(locale)}
                for index, element in self._elements
            ]
        return data

    def __repr__(self) -> str:
        names = ", ".join(validator_name(f) for f in self.all())
        indexes = [index for index, _ in self._elements]
        return f"{type(self).__name__}([{names}], elements={indexes!r})"


class AggregateErrors:
    """
    Every failure of one structure, by field.

    Generated subclasses add one accessor per annotated field and build
    their empty slots in ``_new_slots``.
    """

    STRUCT: ClassVar[str] = ""
    FIELDS: ClassVar[Tuple[str, ...]] = ()
    NEWTYPE: ClassVar[bool] = False

    def __init__(self) -> None:
        self._slots: Dict[str, Any] = self._new_slots()

    def _new_slots(self) -> Dict[str, Any]:
        return {}

    def is_empty(self) -> bool:
        """True when no field recorded a failure."""
        return all(_slot_empty(slot) for slot in self._slots.values())

    def has_errors(self) -> bool:
        return not self.is_empty()

    def __bool__(self) -> bool:
        return self.has_errors()

    def fields_with_errors(self) -> List[str]:
        """Names of failing fields, in declaration order."""
        return [name for name in self.FIELDS if not _slot_empty(self._slots[name])]

    def _iter_messages(self, prefix: str, locale: Optional[str]) -> Iterator[Tuple[str, str]]:
        for name in self.FIELDS:
            if self.NEWTYPE and prefix:
                path = prefix
            else:
                path = f"{prefix}.{name}" if prefix else name
            yield from _slot_messages(self._slots[name], path, locale)

    def messages(self, locale: Optional[str] = None) -> Dict[str, List[str]]:
        """
        Failure messages keyed by field path.

        Paths use ``.`` for nested structures and ``[i]`` for elements,
        e.g. ``{"address.city": [...], "scores[1]": [...]}``.
        """
        collected: Dict[str, List[str]] = {}
        for path, message in self._iter_messages("", locale):
            collected.setdefault(path, []).append(message)
        return collected

    def to_dict(self, locale: Optional[str] = None) -> Dict[str, Any]:
        """Failing fields as plain data."""
        return {
            name: _slot_dict(self._slots[name], locale)
            for name in self.fields_with_errors()
        }

    def to_json(self, locale: Optional[str] = None) -> str:
        return orjson.dumps(self.to_dict(locale), default=str).decode()

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(fields={self.fields_with_errors()!r})"


class NewtypeFieldErrors:
    """
    Transparent view of a newtype-nested field's errors.

    Attribute access is forwarded to the wrapped structure's aggregate, so
    ``errors.email().all()`` reads through the wrapper without a presence
    check. When the wrapped value passed, an empty aggregate answers.
    """

    def __init__(self, inner_type: Type[AggregateErrors]) -> None:
        self._inner_type = inner_type
        self._inner: Optional[AggregateErrors] = None

    @property
    def __wrapped__(self) -> Optional[AggregateErrors]:
        """The wrapped aggregate, None when the wrapped value passed."""
        return self._inner

    def _target(self) -> AggregateErrors:
        if self._inner is None:
            return self._inner_type()
        return self._inner

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._target(), name)

    def is_empty(self) -> bool:
        return self._inner is None or self._inner.is_empty()

    def has_errors(self) -> bool:
        return not self.is_empty()

    def __bool__(self) -> bool:
        return self.has_errors()

    def _iter_messages(self, path: str, locale: Optional[str]) -> Iterator[Tuple[str, str]]:
        if self._inner is not None:
            yield from self._inner._iter_messages(path, locale)

    def to_dict(self, locale: Optional[str] = None) -> Dict[str, Any]:
        if self._inner is None:
            return {}
        return self._inner.to_dict(locale)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._inner!r})"
