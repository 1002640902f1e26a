"""
Declara Engine
==============

Annotation parsing and validation code generation:
- AnnotationParser: Annotation text -> FieldDescriptor / StructOptions
- ValidationGenerator: Descriptors -> error classes and validate()
- typeshape: Optional / sequence unwrapping of declared types
"""

from declara.engine.annotation_parser import (
    AnnotationLexer,
    AnnotationParser,
    AnnotationSyntaxError,
    FieldDescriptor,
    Span,
    StructOptions,
    ValidatorReference,
    parse_field,
    parse_struct_options,
)
from declara.engine.typeshape import TypeShape, unwrap
from declara.engine.generator import (
    CompiledValidation,
    CompilerContext,
    GenerationError,
    ValidationGenerator,
)

__all__ = [
    "AnnotationLexer",
    "AnnotationParser",
    "AnnotationSyntaxError",
    "FieldDescriptor",
    "Span",
    "StructOptions",
    "ValidatorReference",
    "parse_field",
    "parse_struct_options",
    "TypeShape",
    "unwrap",
    "CompiledValidation",
    "CompilerContext",
    "GenerationError",
    "ValidationGenerator",
]
