"""Tests for validation code generation."""

import hashlib
import io
import threading
from dataclasses import dataclass
from typing import List, Optional

import pytest

from declara import AnnotationSyntaxError, GenerationError, check, validated
from declara.core.struct import compile_struct, error_type, field_descriptors, is_validated, struct_model
from declara.engine.annotation_parser import StructOptions, parse_field
from declara.engine.generator import (
    CompilerContext,
    ValidationGenerator,
    capture_failure,
    resolve_validator,
    rewrite_arguments,
)
from declara.utils.logger import configure_logging
from declara.validation import rules
from declara.validation.errors import AggregateErrors, ElementErrors, FieldErrors
from declara.validation.rules import LenValidation, RangeValidation

from tests.sample_models import AlwaysPasses, Address, CycleLeft, Item, Order, UserProfile


class Uncopyable:
    """Empty value that refuses deep copies."""

    def __len__(self):
        return 0

    def __deepcopy__(self, memo):
        raise TypeError("cannot copy")


class IsEmpty:
    """Validator whose accessor would shadow an error method."""

    def validate(self, value):
        return True


class TestCompilerContext:
    """Tests for CompilerContext."""

    def test_emit_with_scopes(self):
        ctx = CompilerContext()
        ctx.emit("def f():")
        ctx.enter_scope()
        ctx.emit("return 1")
        ctx.exit_scope()
        assert ctx.get_code() == "def f():\n    return 1\n"

    def test_temp_vars_are_unique(self):
        ctx = CompilerContext()
        assert ctx.new_temp_var("_v") != ctx.new_temp_var("_v")

    def test_bind_reuses_names(self):
        ctx = CompilerContext()
        first = ctx.bind(LenValidation, "_V")
        second = ctx.bind(RangeValidation, "_V")
        assert (first, second) == ("_V0", "_V1")
        assert ctx.bind(LenValidation, "_V") == "_V0"
        assert ctx.bindings["_V1"] is RangeValidation


class TestGeneratedTypes:
    """Generated error classes."""

    def test_class_names(self):
        compiled = compile_struct(Item)
        assert compiled.error_type.__name__ == "ItemValidationErrors"
        assert compiled.field_error_types["name"].__name__ == "ItemNameFieldErrors"
        assert compiled.field_error_types["quantity"].__name__ == "ItemQuantityFieldErrors"

    def test_bases(self):
        compiled = compile_struct(Order)
        assert issubclass(compiled.error_type, AggregateErrors)
        assert issubclass(compiled.field_error_types["id"], FieldErrors)
        assert issubclass(compiled.field_error_types["scores"], ElementErrors)
        assert compiled.field_error_types["scores"].__name__ == "OrderScoresElementErrors"

    def test_validator_table(self):
        field_type = compile_struct(Item).field_error_types["quantity"]
        assert field_type.VALIDATORS == (("range_validation", "RangeValidation"),)
        assert field_type.FIELD == "quantity"

    def test_aggregate_fields(self):
        assert error_type(Order).FIELDS == ("id", "scores", "note")
        assert error_type(Order).STRUCT == "Order"

    def test_generated_module(self):
        assert error_type(Item).__module__ == "tests.sample_models"

    def test_source_shape(self):
        source = compile_struct(Item).source
        assert "class ItemNameFieldErrors(_FieldErrors):" in source
        assert "class ItemValidationErrors(_AggregateErrors):" in source
        assert "def _validate(_obj):" in source
        compile(source, "<test>", "exec")

    def test_field_references_rewritten(self):
        assert "(other=_obj.password)" in compile_struct(UserProfile).source


class TestDeterminism:
    """Generation is cached and deterministic."""

    def test_cached(self):
        assert compile_struct(Item) is compile_struct(Item)
        assert struct_model(Item).is_compiled

    def test_hash(self):
        compiled = compile_struct(Item)
        assert compiled.source_hash == hashlib.md5(compiled.source.encode()).hexdigest()[:12]

    def test_identical_input_identical_source(self):
        def generate():
            descriptors = [
                parse_field("name", str, "NonEmptyValidation"),
                parse_field("quantity", int, "RangeValidation::<_>(min=1, max=100)"),
            ]
            return ValidationGenerator().generate(
                Item, descriptors, StructOptions(), {"__name__": "tests.sample_models"}
            )

        first, second = generate(), generate()
        assert first.source == second.source
        assert first.source_hash == second.source_hash
        assert first.error_type is not second.error_type

    def test_concurrent_first_use(self):
        @validated
        @dataclass
        class Fresh:
            name: str = check("NonEmptyValidation")

        barrier = threading.Barrier(8)
        results = []

        def worker():
            barrier.wait()
            results.append(compile_struct(Fresh))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 8
        assert all(result is results[0] for result in results)


class TestRewriteArguments:
    """Tests for rewrite_arguments()."""

    def test_keyword_value(self):
        assert rewrite_arguments("other=password", {"password"}) == "other=_obj.password"

    def test_positional(self):
        assert rewrite_arguments("password", {"password"}) == "_obj.password"

    def test_keyword_names_untouched(self):
        assert rewrite_arguments("min=0,  max=1", {"min", "max"}) == "min=0,  max=1"

    def test_only_bare_names(self):
        assert rewrite_arguments("len(password)", {"password"}) == "len(password)"

    def test_empty(self):
        assert rewrite_arguments("  ", {"x"}) == ""

    def test_invalid(self):
        with pytest.raises(SyntaxError):
            rewrite_arguments("min=1 2", set())


class TestResolveValidator:
    """Tests for resolve_validator()."""

    def test_namespace_first(self):
        assert resolve_validator("LenValidation", {"LenValidation": AlwaysPasses}) is AlwaysPasses

    def test_registry(self):
        assert resolve_validator("LenValidation", {}) is LenValidation

    def test_dotted_namespace_path(self):
        assert resolve_validator("rules.RangeValidation", {"rules": rules}) is RangeValidation

    def test_import_path(self):
        assert resolve_validator("declara.validation.rules.LenValidation", {}) is LenValidation

    def test_unknown(self):
        with pytest.raises(LookupError):
            resolve_validator("NoSuchValidation", {})

    def test_unknown_attribute(self):
        with pytest.raises(LookupError, match="has no attribute `Nope`"):
            resolve_validator("rules.Nope", {"rules": rules})


class TestCaptureFailure:
    """Tests for capture_failure()."""

    def test_copies_value(self):
        value = [1, 2]
        failure = capture_failure(LenValidation(min=5), value)
        value.append(3)
        assert failure.actual == [1, 2]

    def test_without_with_value(self):
        validator = AlwaysPasses()
        assert capture_failure(validator, "x") is validator

    def test_uncopyable_value_captured_by_reference(self):
        value = Uncopyable()
        assert capture_failure(LenValidation(min=1), value).actual is value

    def test_uncopyable_field_fails_without_raising(self):
        @validated
        @dataclass
        class Holder:
            value: Uncopyable = check("NonEmptyValidation")

        value = Uncopyable()
        result = Holder(value=value).validate()
        assert not result.valid
        assert result.error.value().non_empty_validation().actual is value


class TestDecoration:
    """Errors raised when the class is decorated."""

    def test_model_attached(self):
        assert is_validated(Item)
        assert not is_validated(int)
        assert [d.name for d in field_descriptors(Item)] == ["name", "quantity"]
        assert struct_model(Item).options == StructOptions()

    def test_not_validated(self):
        with pytest.raises(TypeError, match="not a validated structure"):
            compile_struct(int)

    def test_syntax_error_at_decoration(self):
        with pytest.raises(AnnotationSyntaxError, match="Bad.name"):
            @validated
            @dataclass
            class Bad:
                name: str = check("LenValidation(min=1")

    def test_bad_struct_option(self):
        with pytest.raises(AnnotationSyntaxError, match="unknown option"):
            @validated("frozen")
            @dataclass
            class Bad:
                name: str = check("NonEmptyValidation")

    @pytest.mark.parametrize("count", [0, 2])
    def test_newtype_field_count(self, count):
        with pytest.raises(GenerationError, match=f"exactly one annotated field, found {count}"):
            if count == 0:
                @validated("newtype")
                @dataclass
                class Empty:
                    value: str = ""
            else:
                @validated("newtype")
                @dataclass
                class Pair:
                    a: str = check("NonEmptyValidation")
                    b: str = check("NonEmptyValidation")

    def test_own_validate(self):
        with pytest.raises(GenerationError, match="own validate"):
            @validated
            @dataclass
            class Custom:
                name: str = check("NonEmptyValidation")

                def validate(self):
                    return True

    def test_eager_generation(self):
        @validated(eager=True)
        @dataclass
        class Ready:
            name: str = check("NonEmptyValidation")

        assert struct_model(Ready).is_compiled

    def test_eager_surfaces_structural_errors(self):
        with pytest.raises(GenerationError, match="cannot resolve validator"):
            @validated("try_new", eager=True)
            @dataclass
            class Broken:
                name: str = check("NoSuchValidation")

    def test_lazy_by_default(self):
        @validated
        @dataclass
        class Later:
            name: str = check("NoSuchValidation")

        assert not struct_model(Later).is_compiled

    def test_options_must_be_strings(self):
        with pytest.raises(TypeError):
            validated(1)


class TestGenerationErrors:
    """Structural errors found when code is generated."""

    def test_unknown_validator(self):
        @validated
        @dataclass
        class Unknown:
            name: str = check("NoSuchValidation")

        with pytest.raises(GenerationError, match="cannot resolve validator `NoSuchValidation`"):
            compile_struct(Unknown)

    def test_error_location(self):
        @validated
        @dataclass
        class Unknown:
            name: str = check("NoSuchValidation")

        with pytest.raises(GenerationError) as info:
            compile_struct(Unknown)
        assert info.value.field == "name"
        assert str(info.value).endswith("Unknown.name: cannot resolve validator `NoSuchValidation`")

    def test_type_marker_on_plain_validator(self):
        @validated
        @dataclass
        class Marked:
            name: str = check("AlwaysPasses::<_>")

        with pytest.raises(GenerationError, match="takes no type parameter"):
            compile_struct(Marked)

    def test_each_on_scalar(self):
        @validated
        @dataclass
        class Scalar:
            name: str = check("each(NonEmptyValidation)")

        with pytest.raises(GenerationError, match="needs a sequence type, found str"):
            compile_struct(Scalar)

    def test_nested_plain_dataclass(self):
        @dataclass
        class Plain:
            x: int = 0

        @validated
        @dataclass
        class Holder:
            inner: Plain = check("nested")

        with pytest.raises(GenerationError, match="is not a validated structure"):
            compile_struct(Holder)

    def test_newtype_without_option(self):
        @validated
        @dataclass
        class Holder:
            address: Address = check("newtype")

        with pytest.raises(GenerationError, match="not declared with the newtype option"):
            compile_struct(Holder)

    def test_reserved_field_name(self):
        @validated
        @dataclass
        class Clash:
            messages: str = check("NonEmptyValidation")

        with pytest.raises(GenerationError, match="clashes with an error accessor"):
            compile_struct(Clash)

    def test_reserved_accessor(self):
        @validated
        @dataclass
        class Clash:
            name: str = check("IsEmpty")

        with pytest.raises(GenerationError, match="reserved accessor name `is_empty`"):
            compile_struct(Clash)

    def test_newtype_field_named_all(self):
        @validated("newtype")
        @dataclass
        class Clash:
            all: str = check("NonEmptyValidation")

        with pytest.raises(GenerationError, match="clashes with a newtype error accessor"):
            compile_struct(Clash)

    def test_newtype_accessor_named_like_field(self):
        @validated("newtype")
        @dataclass
        class Clash:
            len_validation: str = check("LenValidation(min=1)")

        with pytest.raises(GenerationError, match="clashes with the field name"):
            compile_struct(Clash)

    def test_newtype_cycle(self):
        with pytest.raises(GenerationError, match="form a cycle"):
            compile_struct(CycleLeft)

    def test_malformed_arguments(self):
        @validated
        @dataclass
        class Malformed:
            name: str = check("LenValidation(min=1 2)")

        with pytest.raises(GenerationError, match="invalid arguments"):
            compile_struct(Malformed)

    def test_bad_explicit_type(self):
        @validated
        @dataclass
        class BadType:
            value: float = check("RangeValidation::<Missing>(min=0, max=1)")

        with pytest.raises(GenerationError, match="cannot evaluate type"):
            compile_struct(BadType)


class TestTypeBinding:
    """Validator classes are specialized once per type."""

    def test_bind_is_cached(self):
        assert RangeValidation.bind(int) is RangeValidation.bind(int)
        assert RangeValidation.bind(int) is not RangeValidation.bind(float)

    def test_bound_name(self):
        bound = RangeValidation.bind(float)
        assert bound.__name__ == "RangeValidation[float]"
        assert bound.validator_name() == "RangeValidation"

    def test_explicit_type(self):
        @validated
        @dataclass
        class Ratio:
            value: Optional[float] = check("RangeValidation::<float>(min=0, max=1)", default=None)

        failure = Ratio(value=2).validate().error.value().range_validation()
        assert type(failure).value_type is float
        assert failure.max == 1.0

    def test_each_binds_element_type(self):
        @validated
        @dataclass
        class Grid:
            cells: List[int] = check("each(RangeValidation::<_>(min=0, max=9))")

        _, errors = Grid(cells=[1, 10]).validate().error.cells()[0]
        assert type(errors.range_validation()).value_type is int


class TestCodegenDump:
    """codegen.dump logs generated source."""

    @pytest.fixture
    def log_stream(self):
        stream = io.StringIO()
        configure_logging(level="INFO", stream=stream)
        yield stream
        configure_logging(level="WARNING")

    def test_dump(self, fresh_config, log_stream):
        fresh_config.set("codegen.dump", True)

        @validated
        @dataclass
        class Dumped:
            name: str = check("NonEmptyValidation")

        compile_struct(Dumped)
        output = log_stream.getvalue()
        assert "Generated source" in output
        assert "def _validate(_obj):" in output

    def test_no_dump_by_default(self, log_stream):
        @validated
        @dataclass
        class Quiet:
            name: str = check("NonEmptyValidation")

        compile_struct(Quiet)
        assert "Generated source" not in log_stream.getvalue()
