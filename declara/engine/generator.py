"""
Declara Validation Generator
============================

Compiles parsed field descriptors into Python source and executes it to
obtain the error classes and the validation function of a structure.

Output:
    The generator produces CompiledValidation objects containing:
    - error_type: the structure's error aggregate class
    - field_error_types: per-field error classes
    - validate(): function returning a ValidationResult
    - source: the generated Python source (deterministic for equal input)

Dispatch rules of the generated function:
    1. Fields run in declaration order; every failure is collected
    2. Optional fields holding None are skipped
    3. ``nested`` fields recurse into the value's own validate()
    4. ``each`` validators run per element, failures keep their index
    5. Validator type parameters are bound once, here, not per call

Example output for ``age: int = check("RangeValidation::<_>(min=0, max=150)")``:

    def _validate(_obj):
        _errors = PersonValidationErrors()
        _slots = _errors._slots
        # age
        _v1 = _obj.age
        _c2 = _V0(min=0, max=150)
        if not _c2.validate(_v1):
            _slots['age']._record('range_validation', _capture(_c2, _v1))
        ...
"""

from __future__ import annotations

import ast
import builtins
import copy
import hashlib
import importlib
import keyword
import linecache
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple, Type

from declara.core.config import get_config
from declara.engine.annotation_parser import FieldDescriptor, StructOptions, ValidatorReference
from declara.engine.typeshape import TypeShape, evaluate_type, type_label, unwrap, wants_full_type
from declara.utils.helpers import pascal_case
from declara.utils.logger import get_logger
from declara.validation.errors import (
    AggregateErrors,
    ElementErrors,
    FieldErrors,
    NewtypeFieldErrors,
)
from declara.validation.validator import ValidationResult, registry

logger = get_logger("declara.generator")

# Attribute holding the structure model on validated classes
MODEL_ATTR = "__declara__"

# Names field accessors may not take
RESERVED_FIELD_NAMES: FrozenSet[str] = frozenset(
    name for name in dir(AggregateErrors) if not name.startswith("_")
)

# Newtype aggregates also answer for their single field
NEWTYPE_ACCESSORS: FrozenSet[str] = frozenset({"all", "element_errors"})

RESERVED_ACCESSORS: FrozenSet[str] = frozenset(
    name for name in dir(FieldErrors) if not name.startswith("_")
) | RESERVED_FIELD_NAMES


class GenerationError(Exception):
    """Structural problem found while generating validation for a structure."""

    def __init__(self, message: str, struct: Optional[str] = None, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.struct = struct
        self.field = field

    def __str__(self) -> str:
        where = ".".join(part for part in (self.struct, self.field) if part)
        return f"{where}: {self.message}" if where else self.message


def capture_failure(validator: Any, value: Any) -> Any:
    """Store a copy of the failing value on a validator that supports it."""
    with_value = getattr(validator, "with_value", None)
    if with_value is None:
        return validator
    try:
        captured = copy.deepcopy(value)
    except (TypeError, copy.Error):
        # Values that refuse to be copied are captured by reference
        captured = value
    result = with_value(captured)
    return validator if result is None else result


@dataclass
class CompiledValidation:
    """
    Compiled validation of one structure.

    Built once per class and shared by every validate() call.
    """
    struct: type
    options: StructOptions
    fields: Tuple[FieldDescriptor, ...]
    source: str
    source_hash: str
    error_type: Type[AggregateErrors]
    field_error_types: Dict[str, type]
    validate_func: Callable[[Any], ValidationResult]

    def validate(self, obj: Any) -> ValidationResult:
        return self.validate_func(obj)


class CompilerContext:
    """Compilation context for tracking state."""

    def __init__(self) -> None:
        self.indent_level = 0
        self.output_parts: List[str] = []
        self.temp_var_counter = 0
        self.bindings: Dict[str, Any] = {}
        self._bound_ids: Dict[int, str] = {}
        self._bind_counters: Dict[str, int] = {}

    def indent(self) -> str:
        """Get current indentation."""
        return "    " * self.indent_level

    def emit(self, code: str) -> None:
        """Emit a line of code."""
        self.output_parts.append(f"{self.indent()}{code}" if code else "")

    def new_temp_var(self, prefix: str = "_t") -> str:
        """Generate a new temporary variable name."""
        self.temp_var_counter += 1
        return f"{prefix}{self.temp_var_counter}"

    def bind(self, value: Any, prefix: str) -> str:
        """Expose an object to the generated code; returns its global name."""
        key = id(value)
        if key in self._bound_ids:
            return self._bound_ids[key]
        index = self._bind_counters.get(prefix, 0)
        self._bind_counters[prefix] = index + 1
        name = f"{prefix}{index}"
        self.bindings[name] = value
        self._bound_ids[key] = name
        return name

    def enter_scope(self) -> None:
        """Enter a new scope (increase indent)."""
        self.indent_level += 1

    def exit_scope(self) -> None:
        """Exit scope (decrease indent)."""
        self.indent_level -= 1

    def get_code(self) -> str:
        """Get generated code."""
        return "\n".join(self.output_parts) + "\n"


@dataclass
class BoundReference:
    """A validator reference resolved against the declaring module."""
    reference: ValidatorReference
    symbol: str
    arguments: str
    full_type: bool

    @property
    def accessor(self) -> str:
        return self.reference.accessor


@dataclass
class FieldPlan:
    """Everything the emitter needs to know about one field."""
    descriptor: FieldDescriptor
    shape: TypeShape
    validators: List[BoundReference] = field(default_factory=list)
    each: List[BoundReference] = field(default_factory=list)
    field_class: Optional[str] = None
    element_class: Optional[str] = None
    inner_symbol: Optional[str] = None

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def slot(self) -> str:
        return f"_slots[{self.name!r}]"


def resolve_validator(path: str, namespace: Dict[str, Any]) -> Any:
    """
    Resolve a validator path.

    The first segment is looked up in the declaring module's namespace and
    builtins, then the registry is consulted, and finally the path is
    imported as ``package.module.Name``.

    Raises:
        LookupError: If nothing answers to the path
    """
    head, *rest = path.split(".")

    if head in namespace:
        target = namespace[head]
    elif hasattr(builtins, head):
        target = getattr(builtins, head)
    else:
        found = registry.get(path)
        if found is not None:
            return found
        return _import_path(path)

    for part in rest:
        try:
            target = getattr(target, part)
        except AttributeError:
            raise LookupError(f"`{path}` has no attribute `{part}`") from None
    return target


def _import_path(path: str) -> Any:
    parts = path.split(".")
    for cut in range(len(parts) - 1, 0, -1):
        try:
            target = importlib.import_module(".".join(parts[:cut]))
        except ImportError:
            continue
        for part in parts[cut:]:
            target = getattr(target, part, None)
            if target is None:
                break
        else:
            return target
    raise LookupError(f"cannot resolve validator `{path}`")


def rewrite_arguments(text: str, field_names: Iterable[str]) -> str:
    """
    Rewrite bare field names in argument text to reads of the structure.

    Example:
        >>> rewrite_arguments("other=password", {"password"})
        'other=_obj.password'

    Raises:
        SyntaxError: If the text is not a valid argument list
    """
    if not text.strip():
        return ""

    call = ast.parse(f"_({text})", mode="eval").body
    if not isinstance(call, ast.Call):
        raise SyntaxError(f"not an argument list: {text}")

    names = set(field_names)
    changed = False

    def rewrite(node: ast.expr) -> ast.expr:
        nonlocal changed
        if isinstance(node, ast.Name) and node.id in names:
            changed = True
            return ast.Attribute(value=ast.Name(id="_obj", ctx=ast.Load()), attr=node.id, ctx=ast.Load())
        return node

    call.args = [rewrite(arg) for arg in call.args]
    for kw in call.keywords:
        kw.value = rewrite(kw.value)

    if not changed:
        return text.strip()
    return ast.unparse(call)[2:-1]


def check_newtype(struct_name: str, fields: Sequence[FieldDescriptor], options: StructOptions) -> None:
    """A newtype structure wraps exactly one annotated field."""
    if options.is_newtype and len(fields) != 1:
        raise GenerationError(
            f"newtype structures need exactly one annotated field, found {len(fields)}",
            struct_name,
        )


class ValidationGenerator:
    """
    Generates validation code for one structure.

    Example:
        generator = ValidationGenerator()
        compiled = generator.generate(User, descriptors, options, module_globals)
        compiled.validate(User(name=""))
    """

    def __init__(self) -> None:
        self.context: Optional[CompilerContext] = None
        self._struct: Optional[type] = None
        self._struct_name = ""
        self._error_name = ""

    def generate(
        self,
        struct: type,
        fields: Sequence[FieldDescriptor],
        options: StructOptions,
        namespace: Dict[str, Any],
        field_names: Optional[Iterable[str]] = None,
    ) -> CompiledValidation:
        """
        Generate and compile validation for a structure.

        Args:
            struct: The validated class
            fields: Annotated fields with resolved declared types
            options: Structure options
            namespace: Globals of the declaring module
            field_names: Every field of the structure, for argument references

        Returns:
            CompiledValidation ready to validate instances
        """
        self._struct = struct
        self._struct_name = struct.__qualname__
        self._error_name = error_name = options.error_name_for(struct.__name__)
        check_newtype(self._struct_name, fields, options)

        self.context = ctx = CompilerContext()
        for base in (FieldErrors, ElementErrors, AggregateErrors, NewtypeFieldErrors):
            ctx.bindings[f"_{base.__name__}"] = base
        ctx.bindings["_Result"] = ValidationResult
        ctx.bindings["_capture"] = capture_failure

        names = set(field_names) if field_names is not None else {f.name for f in fields}
        plans = [self._plan_field(struct, descriptor, options, namespace, names) for descriptor in fields]
        ctx.emit(f"# Validation for {struct.__module__}.{struct.__qualname__}")
        ctx.emit("")
        for plan in plans:
            self._emit_error_classes(plan)
        self._emit_aggregate(error_name, plans, options)
        self._emit_validate(error_name, plans)

        source = ctx.get_code()
        source_hash = hashlib.md5(source.encode()).hexdigest()[:12]
        scope = self._execute(source, source_hash, namespace)

        field_error_types = {
            plan.name: scope[plan.field_class or plan.element_class]
            for plan in plans
            if plan.field_class or plan.element_class
        }

        logger.debug(
            "Compiled validation",
            struct=self._struct_name,
            fields=len(plans),
            hash=source_hash,
        )
        if get_config().get_bool("codegen.dump"):
            logger.info("Generated source", struct=self._struct_name, source="\n" + source)

        return CompiledValidation(
            struct=struct,
            options=options,
            fields=tuple(fields),
            source=source,
            source_hash=source_hash,
            error_type=scope[error_name],
            field_error_types=field_error_types,
            validate_func=scope["_validate"],
        )

    def _execute(self, source: str, source_hash: str, namespace: Dict[str, Any]) -> Dict[str, Any]:
        """Compile generated source in a copy of the module namespace."""
        filename = f"<declara:{self._struct_name}:{source_hash}>"
        # Tracebacks through generated code show its source
        linecache.cache[filename] = (len(source), None, source.splitlines(True), filename)

        scope = dict(namespace)
        scope.update(self.context.bindings)
        exec(compile(source, filename, "exec"), scope)
        return scope

    # Planning

    def _error(self, message: str, field_name: Optional[str] = None) -> GenerationError:
        return GenerationError(message, self._struct_name, field_name)

    def _plan_field(
        self,
        struct: type,
        descriptor: FieldDescriptor,
        options: StructOptions,
        namespace: Dict[str, Any],
        field_names: Iterable[str],
    ) -> FieldPlan:
        name = descriptor.name
        if name in RESERVED_FIELD_NAMES:
            raise self._error(f"field name `{name}` clashes with an error accessor", name)
        if options.is_newtype and name in NEWTYPE_ACCESSORS:
            raise self._error(f"field name `{name}` clashes with a newtype error accessor", name)

        shape = unwrap(descriptor.declared_type)
        plan = FieldPlan(descriptor=descriptor, shape=shape)
        base = f"{struct.__name__}{pascal_case(name)}"

        if descriptor.has_each and not shape.is_sequence and shape.inner is not Any:
            raise self._error(
                f"each(...) needs a sequence type, found {type_label(shape.inner)}", name
            )

        if descriptor.validators:
            plan.validators = self._bind_all(descriptor.validators, shape.inner, namespace, field_names, name)
            plan.field_class = f"{base}FieldErrors"
            if options.is_newtype and any(b.accessor == name for b in plan.validators):
                raise self._error(f"validator accessor `{name}` clashes with the field name", name)
        if descriptor.each_validators:
            plan.each = self._bind_all(descriptor.each_validators, shape.element_inner, namespace, field_names, name)
            plan.element_class = f"{base}ElementErrors"
        if descriptor.recurses:
            self._plan_recursion(plan, options)

        return plan

    def _plan_recursion(self, plan: FieldPlan, options: StructOptions) -> None:
        descriptor, shape = plan.descriptor, plan.shape
        target = shape.element_inner if shape.is_sequence else shape.inner

        if descriptor.is_newtype_nested and shape.is_sequence:
            raise self._error("`newtype` fields cannot be sequences, use `nested`", plan.name)
        if target is Any:
            if descriptor.is_newtype_nested:
                raise self._error("`newtype` fields need a concrete type", plan.name)
            return

        model = getattr(target, MODEL_ATTR, None)
        if model is None:
            keyword_name = "newtype" if descriptor.is_newtype_nested else "nested"
            raise self._error(
                f"`{keyword_name}` field type {type_label(target)} is not a validated structure",
                plan.name,
            )
        if descriptor.is_newtype_nested and not model.options.is_newtype:
            raise self._error(
                f"`newtype` field type {type_label(target)} is not declared with the newtype option",
                plan.name,
            )

        if not (descriptor.is_newtype_nested or (options.is_newtype and not shape.is_sequence)):
            return
        if target is self._struct:
            # The aggregate being generated is defined by the same source
            plan.inner_symbol = self._error_name
        else:
            plan.inner_symbol = self.context.bind(model.compile().error_type, "_E")

    def _bind_all(
        self,
        references: Sequence[ValidatorReference],
        infer: Any,
        namespace: Dict[str, Any],
        field_names: Iterable[str],
        field_name: str,
    ) -> List[BoundReference]:
        bound: List[BoundReference] = []
        accessors = set()

        for reference in references:
            accessor = reference.accessor
            if keyword.iskeyword(accessor) or accessor in RESERVED_ACCESSORS:
                raise self._error(
                    f"validator `{reference.name}` gives the reserved accessor name `{accessor}`",
                    field_name,
                )
            if accessor in accessors:
                raise self._error(f"two validators share the accessor `{accessor}`", field_name)
            accessors.add(accessor)

            validator_class = self._resolve(reference, namespace, field_name)
            validator_class = self._bind_type(validator_class, reference, infer, namespace, field_name)

            try:
                arguments = rewrite_arguments(reference.configuration_arguments, field_names)
            except SyntaxError as e:
                raise self._error(
                    f"invalid arguments for `{reference.validator_path}`: "
                    f"({reference.configuration_arguments}): {e.msg}",
                    field_name,
                ) from e

            bound.append(BoundReference(
                reference=reference,
                symbol=self.context.bind(validator_class, "_V"),
                arguments=arguments,
                full_type=wants_full_type(reference.explicit_type),
            ))

        return bound

    def _resolve(self, reference: ValidatorReference, namespace: Dict[str, Any], field_name: str) -> Any:
        try:
            target = resolve_validator(reference.validator_path, namespace)
        except LookupError as e:
            raise self._error(str(e), field_name) from e

        if not callable(target) or not hasattr(target, "validate"):
            raise self._error(f"`{reference.validator_path}` is not a validator", field_name)
        return target

    def _bind_type(
        self,
        validator_class: Any,
        reference: ValidatorReference,
        infer: Any,
        namespace: Dict[str, Any],
        field_name: str,
    ) -> Any:
        if not reference.infer_type and reference.explicit_type is None:
            return validator_class

        if reference.infer_type:
            target = infer
        else:
            try:
                target = evaluate_type(reference.explicit_type, infer, namespace)
            except ValueError as e:
                raise self._error(str(e), field_name) from e

        if hasattr(validator_class, "bind"):
            return validator_class.bind(target)
        if hasattr(validator_class, "__class_getitem__"):
            return validator_class[target]
        raise self._error(
            f"validator `{reference.validator_path}` takes no type parameter", field_name
        )

    # Emission

    def _emit_error_classes(self, plan: FieldPlan) -> None:
        if plan.field_class:
            self._emit_validator_errors(plan.field_class, "_FieldErrors", plan.validators, plan.name)
        if plan.element_class:
            self._emit_validator_errors(plan.element_class, "_ElementErrors", plan.each, None)

    def _emit_validator_errors(
        self,
        class_name: str,
        base: str,
        bound: List[BoundReference],
        field_name: Optional[str],
    ) -> None:
        ctx = self.context
        ctx.emit(f"class {class_name}({base}):")
        ctx.enter_scope()
        if field_name is not None:
            ctx.emit(f"FIELD = {field_name!r}")
        pairs = ", ".join(repr((b.accessor, b.reference.name)) for b in bound)
        ctx.emit(f"VALIDATORS = ({pairs},)")
        for b in bound:
            ctx.emit("")
            ctx.emit(f"def {b.accessor}(self):")
            ctx.emit(f"    return self._failures.get({b.accessor!r})")
        ctx.exit_scope()
        ctx.emit("")
        ctx.emit("")

    def _slot_init(self, plan: FieldPlan) -> str:
        descriptor = plan.descriptor
        if descriptor.is_newtype_nested:
            return f"_NewtypeFieldErrors({plan.inner_symbol})"
        if descriptor.is_nested:
            return "[]" if plan.shape.is_sequence else "None"
        if plan.field_class:
            return f"{plan.field_class}()"
        return "[]"

    def _emit_aggregate(self, error_name: str, plans: List[FieldPlan], options: StructOptions) -> None:
        ctx = self.context
        ctx.emit(f"class {error_name}(_AggregateErrors):")
        ctx.enter_scope()
        ctx.emit(f"STRUCT = {self._struct_name!r}")
        ctx.emit(f"FIELDS = ({''.join(repr(p.name) + ', ' for p in plans).rstrip()})")
        ctx.emit(f"NEWTYPE = {options.is_newtype}")
        ctx.emit("")
        ctx.emit("def _new_slots(self):")
        ctx.enter_scope()
        ctx.emit("return {")
        for plan in plans:
            ctx.emit(f"    {plan.name!r}: {self._slot_init(plan)},")
        ctx.emit("}")
        ctx.exit_scope()

        for plan in plans:
            ctx.emit("")
            ctx.emit(f"def {plan.name}(self):")
            ctx.emit(f"    return self._slots[{plan.name!r}]")

        if options.is_newtype and plans:
            self._emit_transparent_access(plans[0])

        ctx.exit_scope()
        ctx.emit("")
        ctx.emit("")

    def _emit_transparent_access(self, plan: FieldPlan) -> None:
        """Let a newtype structure's aggregate answer for its single field."""
        ctx = self.context

        if plan.descriptor.recurses:
            ctx.emit("")
            ctx.emit("def __getattr__(self, name):")
            ctx.enter_scope()
            ctx.emit("if name.startswith('_'):")
            ctx.emit("    raise AttributeError(name)")
            ctx.emit(f"target = self._slots[{plan.name!r}]")
            if plan.inner_symbol == self._error_name:
                # No empty fallback for a structure wrapping itself
                ctx.emit("if not target:")
                ctx.emit("    raise AttributeError(name)")
            elif plan.inner_symbol and plan.descriptor.is_nested:
                ctx.emit("if target is None:")
                ctx.emit(f"    target = {plan.inner_symbol}()")
            ctx.emit("return getattr(target, name)")
            ctx.exit_scope()
            return

        if plan.validators:
            ctx.emit("")
            ctx.emit("def all(self):")
            ctx.emit(f"    return self._slots[{plan.name!r}].all()")
            for b in plan.validators:
                ctx.emit("")
                ctx.emit(f"def {b.accessor}(self):")
                ctx.emit(f"    return self._slots[{plan.name!r}].{b.accessor}()")
        if plan.each:
            ctx.emit("")
            ctx.emit("def element_errors(self):")
            if plan.validators:
                ctx.emit(f"    return self._slots[{plan.name!r}].element_errors()")
            else:
                ctx.emit(f"    return list(self._slots[{plan.name!r}])")
                # Element failures, flattened in index order
                ctx.emit("")
                ctx.emit("def all(self):")
                ctx.emit(f"    return [f for _, e in self._slots[{plan.name!r}] for f in e.all()]")

    def _emit_validate(self, error_name: str, plans: List[FieldPlan]) -> None:
        ctx = self.context
        ctx.emit("def _validate(_obj):")
        ctx.enter_scope()
        ctx.emit(f"_errors = {error_name}()")
        ctx.emit("_slots = _errors._slots")

        for plan in plans:
            self._emit_field(plan)

        ctx.emit("if _errors.is_empty():")
        ctx.emit("    return _Result(valid=True, value=_obj)")
        ctx.emit("return _Result(valid=False, error=_errors)")
        ctx.exit_scope()

    def _emit_field(self, plan: FieldPlan) -> None:
        ctx = self.context
        shape = plan.shape

        ctx.emit(f"# {plan.name}")
        value = ctx.new_temp_var("_v")
        ctx.emit(f"{value} = _obj.{plan.name}")

        # Validators typed over the full optional value see None too
        for b in plan.validators:
            if b.full_type:
                self._emit_check(b, value, plan.slot)

        unwrapped = [b for b in plan.validators if not b.full_type]
        guarded = shape.is_optional and (unwrapped or plan.each or plan.descriptor.recurses)
        if guarded:
            ctx.emit(f"if {value} is not None:")
            ctx.enter_scope()

        for b in unwrapped:
            self._emit_check(b, value, plan.slot)
        if plan.each:
            self._emit_each(plan, value)
        if plan.descriptor.recurses:
            self._emit_recursion(plan, value)

        if guarded:
            ctx.exit_scope()

    def _emit_check(self, b: BoundReference, value: str, target: str) -> None:
        ctx = self.context
        instance = ctx.new_temp_var("_c")
        ctx.emit(f"{instance} = {b.symbol}({b.arguments})")
        ctx.emit(f"if not {instance}.validate({value}):")
        ctx.emit(f"    {target}._record({b.accessor!r}, _capture({instance}, {value}))")

    def _emit_each(self, plan: FieldPlan, value: str) -> None:
        ctx = self.context
        index, item, errors = ctx.new_temp_var("_i"), ctx.new_temp_var("_e"), ctx.new_temp_var("_ee")
        collected = f"{plan.slot}._elements" if plan.field_class else plan.slot

        ctx.emit(f"for {index}, {item} in enumerate({value}):")
        ctx.enter_scope()
        ctx.emit(f"{errors} = {plan.element_class}()")

        for b in plan.each:
            if b.full_type:
                self._emit_check(b, item, errors)

        unwrapped = [b for b in plan.each if not b.full_type]
        guarded = plan.shape.element_is_optional and unwrapped
        if guarded:
            ctx.emit(f"if {item} is not None:")
            ctx.enter_scope()
        for b in unwrapped:
            self._emit_check(b, item, errors)
        if guarded:
            ctx.exit_scope()

        ctx.emit(f"if not {errors}.is_empty():")
        ctx.emit(f"    {collected}.append(({index}, {errors}))")
        ctx.exit_scope()

    def _emit_recursion(self, plan: FieldPlan, value: str) -> None:
        ctx = self.context
        result = ctx.new_temp_var("_r")

        if plan.shape.is_sequence:
            index, item = ctx.new_temp_var("_i"), ctx.new_temp_var("_e")
            ctx.emit(f"for {index}, {item} in enumerate({value}):")
            ctx.enter_scope()
            if plan.shape.element_is_optional:
                ctx.emit(f"if {item} is None:")
                ctx.emit("    continue")
            ctx.emit(f"{result} = {item}.validate()")
            ctx.emit(f"if not {result}.valid:")
            ctx.emit(f"    {plan.slot}.append(({index}, {result}.error))")
            ctx.exit_scope()
            return

        ctx.emit(f"{result} = {value}.validate()")
        ctx.emit(f"if not {result}.valid:")
        if plan.descriptor.is_newtype_nested:
            ctx.emit(f"    {plan.slot}._inner = {result}.error")
        else:
            ctx.emit(f"    {plan.slot} = {result}.error")
