"""
Declara Type Shapes
===================

Inspection helpers for the declared type of a field. The generator uses
these to decide how a field's value is unwrapped before validators see it:

    Optional[T], T | None, Union[T, None]   -> T (None skips the field)
    list[T], List[T], Sequence[T]            -> element T (for ``each``)
    tuple[T, ...]                            -> element T

``str`` and ``bytes`` are never treated as element sequences.
"""

from __future__ import annotations

import ast
import builtins
import collections.abc
import types
import typing
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

NoneType = type(None)

SEQUENCE_ORIGINS = (
    list,
    tuple,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
)

_UNION_TYPES: Tuple[Any, ...] = (Union,)
if hasattr(types, "UnionType"):
    _UNION_TYPES = (Union, types.UnionType)


@dataclass(frozen=True)
class TypeShape:
    """
    Unwrapped view of a declared field type.

    Attributes:
        declared: The type exactly as declared
        is_optional: Declared type admits None
        inner: Declared type with the optional layer removed
        is_sequence: ``inner`` is a sequence of elements
        element: Element type of the sequence (Any when unparameterized)
        element_is_optional: Elements admit None
        element_inner: Element type with the optional layer removed
    """

    declared: Any
    is_optional: bool
    inner: Any
    is_sequence: bool = False
    element: Any = Any
    element_is_optional: bool = False
    element_inner: Any = Any


def _is_union(tp: Any) -> bool:
    return typing.get_origin(tp) in _UNION_TYPES


def is_optional(tp: Any) -> bool:
    """Check if a type admits None."""
    if tp is NoneType or tp is None:
        return True
    if _is_union(tp):
        return NoneType in typing.get_args(tp)
    return False


def optional_inner(tp: Any) -> Any:
    """
    Strip the optional layer from a type.

    Example:
        >>> optional_inner(Optional[int])
        <class 'int'>
        >>> optional_inner(Union[int, str, None])
        typing.Union[int, str]
    """
    if not _is_union(tp):
        return tp

    rest = tuple(arg for arg in typing.get_args(tp) if arg is not NoneType)
    if len(rest) == len(typing.get_args(tp)):
        return tp
    if len(rest) == 1:
        return rest[0]
    return Union[rest]


def is_sequence(tp: Any) -> bool:
    """Check if a type is a sequence of elements."""
    if tp in (str, bytes, bytearray):
        return False
    if tp in SEQUENCE_ORIGINS or tp in (typing.List, typing.Tuple, typing.Sequence):
        return True
    return typing.get_origin(tp) in SEQUENCE_ORIGINS


def sequence_inner(tp: Any) -> Any:
    """Get the element type of a sequence type (Any when unknown)."""
    args = typing.get_args(tp)
    if not args:
        return Any
    if typing.get_origin(tp) is tuple:
        # tuple[T, ...] is homogeneous; fixed tuples fall back to a union
        if len(args) == 2 and args[1] is Ellipsis:
            return args[0]
        if len(set(args)) == 1:
            return args[0]
        return Union[args]
    return args[0]


def unwrap(tp: Any) -> TypeShape:
    """Compute the full shape of a declared field type."""
    optional = is_optional(tp)
    inner = optional_inner(tp) if optional else tp

    if not is_sequence(inner):
        return TypeShape(declared=tp, is_optional=optional, inner=inner)

    element = sequence_inner(inner)
    element_optional = is_optional(element)
    return TypeShape(
        declared=tp,
        is_optional=optional,
        inner=inner,
        is_sequence=True,
        element=element,
        element_is_optional=element_optional,
        element_inner=optional_inner(element) if element_optional else element,
    )


def runtime_class(tp: Any) -> Optional[type]:
    """Get a class usable with isinstance() for a type, if any."""
    if tp is Any or tp is None:
        return None
    if isinstance(tp, type) and typing.get_origin(tp) is None:
        return tp
    origin = typing.get_origin(tp)
    if isinstance(origin, type):
        return origin
    return None


def matches_type(value: Any, tp: Any) -> bool:
    """
    Loose runtime check of a value against a bound type.

    Unknown or unparameterizable types always match. ``float`` accepts
    ``int`` (but never ``bool``), following the numeric tower.
    """
    if tp is Any or tp is None:
        return True
    if _is_union(tp):
        return any(matches_type(value, arg) for arg in typing.get_args(tp))

    cls = runtime_class(tp)
    if cls is None:
        return True
    if cls is float and isinstance(value, int) and not isinstance(value, bool):
        return True
    if cls in (int, float) and isinstance(value, bool):
        return False
    return isinstance(value, cls)


def type_label(tp: Any) -> str:
    """Readable label for a type, used in generated names and messages."""
    if tp is NoneType:
        return "None"
    if isinstance(tp, type) and typing.get_origin(tp) is None:
        return tp.__qualname__
    return repr(tp).replace("typing.", "")


# Names always available when evaluating explicit type text
_TYPING_NAMES: Dict[str, Any] = {
    name: getattr(typing, name)
    for name in (
        "Any", "Dict", "FrozenSet", "List", "Mapping", "Optional",
        "Sequence", "Set", "Tuple", "Union",
    )
}


def evaluate_type(text: str, infer: Any, namespace: Dict[str, Any]) -> Any:
    """
    Evaluate explicit type text with ``_`` bound to the inferred type.

    Args:
        text: Type expression, e.g. ``"Optional[_]"`` or ``"list[_]"``
        infer: Type substituted for the ``_`` placeholder
        namespace: Globals of the module declaring the structure

    Raises:
        ValueError: If the text is not a type expression
    """
    scope: Dict[str, Any] = {"__builtins__": builtins}
    scope.update(_TYPING_NAMES)
    scope.update(namespace)
    scope["_"] = infer

    try:
        return eval(compile(text, "<type>", "eval"), scope)
    except Exception as e:
        raise ValueError(f"cannot evaluate type {text!r}: {e}") from e


def _is_placeholder(node: ast.AST) -> bool:
    return isinstance(node, ast.Name) and node.id == "_"


def _is_none(node: ast.AST) -> bool:
    return isinstance(node, ast.Constant) and node.value is None


def _tail_name(node: ast.AST) -> Optional[str]:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return None


def wants_full_type(text: Optional[str]) -> bool:
    """
    Check if explicit type text asks for the full optional value.

    ``Optional[_]``, ``_ | None`` and ``Union[_, None]`` mean the validator
    runs against the raw value, None included, instead of the unwrapped one.
    """
    if not text:
        return False
    try:
        node = ast.parse(text, mode="eval").body
    except SyntaxError:
        return False

    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        pair = (node.left, node.right)
        return any(map(_is_placeholder, pair)) and any(map(_is_none, pair))

    if isinstance(node, ast.Subscript):
        name = _tail_name(node.value)
        inner = node.slice
        if name == "Optional":
            return _is_placeholder(inner)
        if name == "Union" and isinstance(inner, ast.Tuple):
            return any(map(_is_placeholder, inner.elts)) and any(map(_is_none, inner.elts))

    return False
