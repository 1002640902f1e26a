"""
Declara Annotation Parser
=========================

Parses the annotation text attached to fields and structures into the
intermediate representation consumed by the validation generator.

Field annotation grammar:
    annotation  := item ("," item)* [","]
    item        := "nested" | "newtype" | "skip"
                 | "each" "(" validator ("," validator)* ")"
                 | validator
    validator   := path ["::" "<" type ">"] ["(" arguments ")"]
    path        := ident ("." ident)*

    ``::<_>`` asks for the validator's type parameter to be inferred from
    the field's unwrapped type. Any other type text is kept verbatim and
    ``_`` inside it stands for the same inferred type.

Structure annotation grammar:
    options     := option ("," option)*
    option      := "newtype" | "try_new" | "error" "=" string

Example:
    descriptor = parse_field(
        "age", "int",
        "RangeValidation::<_>(min=0, max=150)",
    )
    descriptor.validators[0].configuration_arguments  # "min=0, max=150"

Parser Architecture:
    1. Lexer: Tokenize the annotation text with positions
    2. Splitter: Break the token stream on top-level commas
    3. Parser: Classify each item by its leading token
"""

from __future__ import annotations

import keyword
import re
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Sequence, Tuple

from declara.utils.helpers import snake_case

# Keywords that may not be used as validator paths
FIELD_KEYWORDS = {"nested", "newtype", "skip", "each"}

STRUCT_KEYS = ("newtype", "try_new", "error")

_CLOSERS = {"(": ")", "[": "]", "{": "}"}


class TokenType(Enum):
    """Token types for the annotation lexer."""
    IDENT = auto()
    NUMBER = auto()
    STRING = auto()

    DOUBLE_COLON = auto()    # ::
    DOT = auto()             # .
    COMMA = auto()           # ,
    EQUALS = auto()          # =
    LT = auto()              # <
    GT = auto()              # >
    LPAREN = auto()          # (
    RPAREN = auto()          # )
    LBRACKET = auto()        # [
    RBRACKET = auto()        # ]
    LBRACE = auto()          # {
    RBRACE = auto()          # }
    OPERATOR = auto()        # anything else legal inside arguments

    EOF = auto()


@dataclass
class Token:
    """Represents a lexer token."""
    type: TokenType
    value: str
    line: int
    column: int
    offset: int

    @property
    def end(self) -> int:
        return self.offset + len(self.value)

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"


@dataclass(frozen=True)
class Span:
    """Location of a construct inside annotation text (1-based line/column)."""
    line: int
    column: int
    offset: int
    length: int = 1

    @classmethod
    def of(cls, token: Token) -> "Span":
        return cls(token.line, token.column, token.offset, max(len(token.value), 1))

    @classmethod
    def between(cls, first: Token, last: Token) -> "Span":
        return cls(first.line, first.column, first.offset, max(last.end - first.offset, 1))

    def to_dict(self) -> Dict[str, int]:
        return {
            "line": self.line,
            "column": self.column,
            "offset": self.offset,
            "length": self.length,
        }


class AnnotationSyntaxError(SyntaxError):
    """
    Malformed field or structure annotation.

    Carries the location of the offending construct so the declaration
    can be fixed without guessing.
    """

    def __init__(
        self,
        message: str,
        span: Span,
        source: str = "",
        origin: Optional[str] = None,
    ) -> None:
        super().__init__(message, (origin or "<annotation>", span.line, span.column, source))
        self.span = span
        self.source = source
        self.origin = origin

    def __str__(self) -> str:
        where = f"{self.span.line}:{self.span.column}"
        if self.origin:
            where = f"{self.origin} {where}"
        return f"{self.msg} at {where}"

    def pointer(self) -> str:
        """Render the annotation line with a caret under the error."""
        lines = self.source.splitlines() or [""]
        line = lines[min(self.span.line, len(lines)) - 1]
        caret = " " * (self.span.column - 1) + "^" * self.span.length
        return f"{line}\n{caret}"


@dataclass(frozen=True)
class ValidatorReference:
    """
    One validator usage on a field.

    Attributes:
        validator_path: Dotted path naming the validator type
        configuration_arguments: Verbatim text between the call parentheses
        infer_type: ``::<_>`` was given
        explicit_type: Verbatim type text of ``::<T>`` when T is not ``_``
        span: Where the reference was written
    """
    validator_path: str
    configuration_arguments: str = ""
    infer_type: bool = False
    explicit_type: Optional[str] = None
    span: Optional[Span] = field(default=None, compare=False)

    @property
    def name(self) -> str:
        """Last path segment, e.g. ``RangeValidation``."""
        return self.validator_path.rsplit(".", 1)[-1]

    @property
    def accessor(self) -> str:
        """Method name exposing this validator's failure on error types."""
        return snake_case(self.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "validator_path": self.validator_path,
            "configuration_arguments": self.configuration_arguments,
            "infer_type": self.infer_type,
            "explicit_type": self.explicit_type,
            "span": self.span.to_dict() if self.span else None,
        }


@dataclass(frozen=True)
class FieldDescriptor:
    """
    Parsed annotations of one field.

    ``validators`` apply to the field's unwrapped value, ``each_validators``
    to every element of a sequence-typed field. ``is_nested`` and
    ``is_newtype_nested`` exclude plain and element validators.
    """
    name: str
    declared_type: Any
    validators: Tuple[ValidatorReference, ...] = ()
    is_nested: bool = False
    is_newtype_nested: bool = False
    each_validators: Tuple[ValidatorReference, ...] = ()

    @property
    def has_each(self) -> bool:
        return bool(self.each_validators)

    @property
    def recurses(self) -> bool:
        return self.is_nested or self.is_newtype_nested

    def to_dict(self) -> Dict[str, Any]:
        declared = self.declared_type
        if not isinstance(declared, str):
            declared = getattr(declared, "__qualname__", repr(declared))
        return {
            "name": self.name,
            "declared_type": declared,
            "validators": [v.to_dict() for v in self.validators],
            "is_nested": self.is_nested,
            "is_newtype_nested": self.is_newtype_nested,
            "each_validators": [v.to_dict() for v in self.each_validators],
        }


@dataclass(frozen=True)
class StructOptions:
    """Structure-level options."""
    is_newtype: bool = False
    has_try_new: bool = False
    error_type_name: Optional[str] = None

    def error_name_for(self, struct_name: str) -> str:
        """Name of the generated error aggregate."""
        return self.error_type_name or f"{struct_name}ValidationErrors"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_newtype": self.is_newtype,
            "has_try_new": self.has_try_new,
            "error_type_name": self.error_type_name,
        }


@dataclass
class FieldAnnotation:
    """Result of parsing one annotation string, before merging."""
    validators: List[ValidatorReference] = field(default_factory=list)
    each_validators: List[ValidatorReference] = field(default_factory=list)
    nested: Optional[Span] = None
    newtype: Optional[Span] = None
    skip: bool = False


class AnnotationLexer:
    """
    Tokenizer for annotation text.

    Produces tokens carrying line, column and absolute offset so that the
    parser can slice verbatim argument and type text back out of the source.
    """

    PATTERNS = {
        "whitespace": re.compile(r"\s+"),
        "ident": re.compile(r"[A-Za-z_][A-Za-z0-9_]*"),
        "number": re.compile(
            r"(?:0[xX][0-9a-fA-F_]+|0[oO][0-7_]+|0[bB][01_]+"
            r"|(?:\d[\d_]*\.?[\d_]*|\.\d[\d_]*)(?:[eE][+-]?\d+)?[jJ]?)"
        ),
        "string": re.compile(
            r"[rRbBuUfF]{0,2}(?:'''[\s\S]*?'''|\"\"\"[\s\S]*?\"\"\""
            r"|'(?:\\.|[^'\\\n])*'|\"(?:\\.|[^\"\\\n])*\")"
        ),
        "operator": re.compile(
            r"\*\*|//|<<|>>|<=|>=|==|!=|->|:=|[-+*/%@&|^~!:;]"
        ),
    }

    PUNCTUATION = {
        "::": TokenType.DOUBLE_COLON,
        ".": TokenType.DOT,
        ",": TokenType.COMMA,
        "=": TokenType.EQUALS,
        "<": TokenType.LT,
        ">": TokenType.GT,
        "(": TokenType.LPAREN,
        ")": TokenType.RPAREN,
        "[": TokenType.LBRACKET,
        "]": TokenType.RBRACKET,
        "{": TokenType.LBRACE,
        "}": TokenType.RBRACE,
    }

    def __init__(self, source: str, origin: Optional[str] = None) -> None:
        self.source = source
        self.origin = origin
        self.pos = 0
        self.line = 1
        self.column = 1
        self.tokens: List[Token] = []

    def tokenize(self) -> List[Token]:
        """Tokenize the entire source."""
        while self.pos < len(self.source):
            self._next_token()
        self.tokens.append(Token(TokenType.EOF, "", self.line, self.column, self.pos))
        return self.tokens

    def _next_token(self) -> None:
        """Extract next token from source."""
        if self._consume_pattern("whitespace") is not None:
            return

        # Prefixed strings must win over identifiers
        text = self._match_pattern("string")
        if text is not None:
            self._add_token(TokenType.STRING, text)
            return

        text = self._match_pattern("ident")
        if text is not None:
            self._add_token(TokenType.IDENT, text)
            return

        char = self.source[self.pos]
        if char.isdigit() or (char == "." and self.source[self.pos + 1:self.pos + 2].isdigit()):
            text = self._match_pattern("number")
            if text:
                self._add_token(TokenType.NUMBER, text)
                return

        for punct in ("::", ".", ",", "(", ")", "[", "]", "{", "}"):
            if self.source.startswith(punct, self.pos):
                self._add_token(self.PUNCTUATION[punct], punct)
                return

        text = self._match_pattern("operator")
        if text is not None:
            self._add_token(TokenType.OPERATOR, text)
            return

        char = self.source[self.pos]
        if char in "=<>":
            self._add_token(self.PUNCTUATION[char], char)
            return

        raise AnnotationSyntaxError(
            f"unexpected character {char!r}",
            Span(self.line, self.column, self.pos),
            self.source,
            self.origin,
        )

    def _match_pattern(self, name: str) -> Optional[str]:
        """Return the pattern's match at the current position, if any."""
        match = self.PATTERNS[name].match(self.source, self.pos)
        if match and match.group():
            return match.group()
        return None

    def _consume_pattern(self, name: str) -> Optional[str]:
        """Consume pattern if it matches, return matched text."""
        text = self._match_pattern(name)
        if text is not None:
            self._advance(len(text))
        return text

    def _advance(self, count: int = 1) -> None:
        """Advance position in source."""
        for _ in range(count):
            if self.pos < len(self.source):
                if self.source[self.pos] == "\n":
                    self.line += 1
                    self.column = 1
                else:
                    self.column += 1
                self.pos += 1

    def _add_token(self, type: TokenType, value: str) -> None:
        """Add token to list and move past it."""
        self.tokens.append(Token(type, value, self.line, self.column, self.pos))
        self._advance(len(value))


class AnnotationParser:
    """
    Parser for field and structure annotations.

    Example:
        parser = AnnotationParser("RangeValidation::<_>(min=0, max=100)")
        annotation = parser.parse_field()
        annotation.validators[0].validator_path  # "RangeValidation"
    """

    def __init__(self, source: str, origin: Optional[str] = None) -> None:
        self.source = source
        self.origin = origin
        self.tokens: List[Token] = AnnotationLexer(source, origin).tokenize()
        self.pos = 0

    # Token stream helpers

    def _current(self) -> Token:
        """Get current token."""
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return self.tokens[-1]

    def _peek(self, offset: int = 1) -> Token:
        """Peek at token at offset."""
        pos = self.pos + offset
        if pos < len(self.tokens):
            return self.tokens[pos]
        return self.tokens[-1]

    def _advance(self) -> Token:
        """Advance to next token and return current."""
        token = self._current()
        self.pos += 1
        return token

    def _is_at_end(self) -> bool:
        return self._current().type == TokenType.EOF

    def _expect(self, type: TokenType, what: str) -> Token:
        """Expect specific token type."""
        token = self._current()
        if token.type != type:
            raise self._error(f"expected {what}, found {self._describe(token)}", token)
        return self._advance()

    def _error(self, message: str, token: Token, last: Optional[Token] = None) -> AnnotationSyntaxError:
        span = Span.between(token, last) if last else Span.of(token)
        return AnnotationSyntaxError(message, span, self.source, self.origin)

    @staticmethod
    def _describe(token: Token) -> str:
        if token.type == TokenType.EOF:
            return "end of annotation"
        return f"`{token.value}`"

    # Top-level splitting

    def _split_items(self, stop: TokenType = TokenType.EOF) -> List[Tuple[int, int]]:
        """
        Split tokens on commas at depth zero, up to ``stop``.

        Returns ``(start, end)`` token index ranges. Brackets must balance;
        angle brackets only group right after ``::``. A trailing comma is
        allowed, an empty item is not.
        """
        items: List[Tuple[int, int]] = []
        stack: List[Token] = []
        start = self.pos

        while True:
            token = self._current()

            if token.type == TokenType.EOF:
                if stack:
                    opener = stack[-1]
                    raise self._error(f"unclosed `{opener.value}`", opener)
                if stop != TokenType.EOF:
                    raise self._error("expected `)` to close `each(`", token)
                break

            if not stack and token.type == stop:
                break

            if token.value in _CLOSERS and token.type != TokenType.STRING:
                stack.append(token)
            elif token.type == TokenType.DOUBLE_COLON and self._peek().type == TokenType.LT:
                self._advance()
                stack.append(self._current())
            elif token.type in (TokenType.RPAREN, TokenType.RBRACKET, TokenType.RBRACE, TokenType.GT):
                expected = None
                if stack:
                    opener = stack[-1]
                    expected = ">" if opener.type == TokenType.LT else _CLOSERS[opener.value]
                if token.type == TokenType.GT and (expected is None or expected != ">"):
                    # Comparison operator inside arguments
                    self._advance()
                    continue
                if expected != token.value:
                    raise self._error(f"unbalanced `{token.value}`", token)
                stack.pop()
            elif token.type == TokenType.COMMA and not stack:
                if self.pos == start:
                    raise self._error("expected validator, found `,`", token)
                items.append((start, self.pos))
                self._advance()
                start = self.pos
                continue

            self._advance()

        if self.pos > start:
            items.append((start, self.pos))
        return items

    def _text(self, first: Token, last: Token) -> str:
        """Verbatim source text from ``first`` through ``last``."""
        return self.source[first.offset:last.end]

    # Field annotations

    def parse_field(self) -> FieldAnnotation:
        """Parse a field annotation."""
        annotation = FieldAnnotation()
        if self._is_at_end():
            raise self._error("empty annotation", self._current())

        items = self._split_items()
        end = self.pos
        for start, stop in items:
            self._parse_field_item(start, stop, annotation)
        self.pos = end
        return annotation

    def _parse_field_item(self, start: int, stop: int, annotation: FieldAnnotation) -> None:
        """Classify one top-level item by its leading token."""
        first = self.tokens[start]
        single = stop - start == 1

        if first.type == TokenType.IDENT and first.value in ("nested", "newtype", "skip"):
            if not single:
                extra = self.tokens[start + 1]
                raise self._error(f"`{first.value}` takes no arguments", extra, self.tokens[stop - 1])
            if first.value == "nested":
                annotation.nested = Span.of(first)
            elif first.value == "newtype":
                annotation.newtype = Span.of(first)
            else:
                annotation.skip = True
            return

        if first.type == TokenType.IDENT and first.value == "each":
            self._parse_each(start, stop, annotation)
            return

        annotation.validators.append(self._parse_validator(start, stop))

    def _parse_each(self, start: int, stop: int, annotation: FieldAnnotation) -> None:
        """Parse ``each(validator, ...)``."""
        self.pos = start + 1
        opener = self._expect(TokenType.LPAREN, "`(` after `each`")
        items = self._split_items(stop=TokenType.RPAREN)
        closer = self._advance()
        if self.pos != stop:
            raise self._error("unexpected tokens after `each(...)`", self.tokens[self.pos], self.tokens[stop - 1])
        if not items:
            raise self._error("`each(...)` needs at least one validator", opener, closer)

        for item_start, item_stop in items:
            annotation.each_validators.append(self._parse_validator(item_start, item_stop))

    def _parse_validator(self, start: int, stop: int) -> ValidatorReference:
        """Parse ``path [::<type>] [(args)]`` spanning tokens[start:stop]."""
        self.pos = start
        first = self._current()

        if first.type != TokenType.IDENT:
            raise self._error(f"expected validator path, found {self._describe(first)}", first)
        if first.value in FIELD_KEYWORDS:
            raise self._error(f"keyword `{first.value}` cannot be used as a validator", first)

        # Path
        parts = [self._advance().value]
        while self.pos < stop and self._current().type == TokenType.DOT:
            self._advance()
            if self.pos >= stop:
                raise self._error("expected identifier after `.`", self._current())
            parts.append(self._expect(TokenType.IDENT, "identifier after `.`").value)
        path = ".".join(parts)

        infer_type = False
        explicit_type: Optional[str] = None

        # Type parameter
        if self.pos < stop and self._current().type == TokenType.LT:
            raise self._error(
                f"type parameters need `::`, write `{path}::<...>`", self._current()
            )
        if self.pos < stop and self._current().type == TokenType.DOUBLE_COLON:
            self._advance()
            lt = self._expect(TokenType.LT, "`<` after `::`")
            gt = self._find_closing_angle(stop)
            if gt == self.pos:
                raise self._error("empty type parameter", lt, self.tokens[gt])
            type_text = self._text(self.tokens[self.pos], self.tokens[gt - 1])
            if type_text.strip() == "_":
                infer_type = True
            else:
                explicit_type = type_text
            self.pos = gt + 1

        # Arguments
        arguments = ""
        if self.pos < stop and self._current().type == TokenType.LPAREN:
            lparen_index = self.pos
            rparen_index = self._find_closing_paren(stop)
            if rparen_index != stop - 1:
                token = self.tokens[rparen_index + 1]
                raise self._error(
                    f"unexpected {self._describe(token)} after arguments of `{path}`",
                    token,
                    self.tokens[stop - 1],
                )
            arguments = self.source[
                self.tokens[lparen_index].end:self.tokens[rparen_index].offset
            ].strip()
            self.pos = stop

        if self.pos < stop:
            token = self._current()
            raise self._error(
                f"unexpected {self._describe(token)} after validator `{path}`", token
            )

        return ValidatorReference(
            validator_path=path,
            configuration_arguments=arguments,
            infer_type=infer_type,
            explicit_type=explicit_type,
            span=Span.between(first, self.tokens[stop - 1]),
        )

    def _find_closing_angle(self, stop: int) -> int:
        """Index of the ``>`` closing the type parameter at ``self.pos``."""
        depth = 1
        index = self.pos
        while index < stop:
            token = self.tokens[index]
            if token.type == TokenType.LT:
                depth += 1
            elif token.type == TokenType.GT:
                depth -= 1
                if depth == 0:
                    return index
            index += 1
        raise self._error("unclosed `<`", self.tokens[self.pos - 1])

    def _find_closing_paren(self, stop: int) -> int:
        """Index of the ``)`` matching the ``(`` at ``self.pos``."""
        depth = 0
        for index in range(self.pos, stop):
            token = self.tokens[index]
            if token.type in (TokenType.LPAREN, TokenType.LBRACKET, TokenType.LBRACE):
                depth += 1
            elif token.type in (TokenType.RPAREN, TokenType.RBRACKET, TokenType.RBRACE):
                depth -= 1
                if depth == 0:
                    return index
        raise self._error("unclosed `(`", self._current())

    # Structure options

    def parse_struct(self) -> Dict[str, Any]:
        """Parse structure options into a key -> value mapping."""
        options: Dict[str, Any] = {}
        if self._is_at_end():
            return options

        while not self._is_at_end():
            key = self._current()
            if key.type != TokenType.IDENT:
                raise self._error(f"expected option, found {self._describe(key)}", key)
            if key.value not in STRUCT_KEYS:
                raise self._error(
                    f"unknown option `{key.value}`, expected one of: {', '.join(STRUCT_KEYS)}",
                    key,
                )
            self._advance()

            if key.value == "error":
                self._expect(TokenType.EQUALS, "`=` after `error`")
                name_token = self._expect(TokenType.STRING, "quoted error type name")
                name = _unquote(name_token.value)
                if not name.isidentifier() or keyword.iskeyword(name):
                    raise self._error(f"invalid error type name {name!r}", name_token)
                options["error"] = name
            else:
                options[key.value] = True

            if self._is_at_end():
                break
            self._expect(TokenType.COMMA, "`,` between options")

        return options


def _unquote(text: str) -> str:
    quote = text[-1]
    body = text[text.index(quote):]
    if body.startswith(quote * 3):
        return body[3:-3]
    return body[1:-1]


def parse_field_annotation(text: str, origin: Optional[str] = None) -> FieldAnnotation:
    """Parse a single field annotation string."""
    return AnnotationParser(text, origin).parse_field()


def parse_field(
    name: str,
    declared_type: Any,
    *annotations: str,
    origin: Optional[str] = None,
) -> Optional[FieldDescriptor]:
    """
    Parse and merge every annotation attached to one field.

    Args:
        name: Field name
        declared_type: Declared type (annotation object or string)
        *annotations: Annotation strings, merged in order
        origin: Label used in error locations, e.g. ``"User.email"``

    Returns:
        FieldDescriptor, or None when the field carries nothing to validate
        or is marked ``skip``.

    Raises:
        AnnotationSyntaxError: On malformed text, duplicate validators, or
            ``nested``/``newtype`` combined with anything else.
    """
    origin = origin or name
    validators: List[ValidatorReference] = []
    each_validators: List[ValidatorReference] = []
    nested: Optional[Tuple[Span, str]] = None
    newtype: Optional[Tuple[Span, str]] = None
    skip = False

    for text in annotations:
        parsed = parse_field_annotation(text, origin)
        _extend_unique(validators, parsed.validators, text, origin)
        _extend_unique(each_validators, parsed.each_validators, text, origin)
        if parsed.nested:
            nested = (parsed.nested, text)
        if parsed.newtype:
            newtype = (parsed.newtype, text)
        skip = skip or parsed.skip

    marker = nested or newtype
    if nested and newtype:
        span, text = newtype
        raise AnnotationSyntaxError("`nested` and `newtype` are mutually exclusive", span, text, origin)
    if marker and (validators or each_validators):
        span, text = marker
        keyword_name = "nested" if nested else "newtype"
        raise AnnotationSyntaxError(
            f"`{keyword_name}` cannot be combined with validators on the same field",
            span, text, origin,
        )

    if skip or not (validators or each_validators or marker):
        return None

    return FieldDescriptor(
        name=name,
        declared_type=declared_type,
        validators=tuple(validators),
        is_nested=nested is not None,
        is_newtype_nested=newtype is not None,
        each_validators=tuple(each_validators),
    )


def _extend_unique(
    target: List[ValidatorReference],
    new: Sequence[ValidatorReference],
    text: str,
    origin: str,
) -> None:
    seen = {ref.name for ref in target}
    for ref in new:
        if ref.name in seen:
            raise AnnotationSyntaxError(
                f"duplicate validator `{ref.name}`",
                ref.span or Span(1, 1, 0),
                text,
                origin,
            )
        seen.add(ref.name)
        target.append(ref)


def parse_struct_options(*annotations: str, origin: Optional[str] = None) -> StructOptions:
    """
    Parse structure options.

    Example:
        parse_struct_options('try_new, error = "UserError"')
        # StructOptions(is_newtype=False, has_try_new=True, error_type_name='UserError')
    """
    merged: Dict[str, Any] = {}
    for text in annotations:
        merged.update(AnnotationParser(text, origin).parse_struct())

    return StructOptions(
        is_newtype=merged.get("newtype", False),
        has_try_new=merged.get("try_new", False),
        error_type_name=merged.get("error"),
    )
