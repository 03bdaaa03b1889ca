"""Tool implementation expressions.

Tool implementations in an agent configuration are written in a tiny,
host-language-agnostic form such as::

    return { message: input }
    return { success: true, taskId: "task-123" }
    return { insights: ["Insight 1", "Insight 2"] }

This module parses such snippets into a small AST and translates it into Go
or Python literal syntax. Only literals, references to the tool's own
parameters, object literals and array literals are supported. Anything else
raises UnsupportedExpressionError so the caller never ships a snippet that
was silently left untranslated.
"""

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple, Union


class UnsupportedExpressionError(Exception):
    """Raised when a tool implementation uses syntax outside the supported subset."""

    pass


@dataclass(frozen=True)
class Literal:
    value: Union[str, int, float, bool, None]


@dataclass(frozen=True)
class ParamRef:
    name: str


@dataclass(frozen=True)
class ObjectExpr:
    entries: Tuple[Tuple[str, "Node"], ...]


@dataclass(frozen=True)
class ArrayExpr:
    items: Tuple["Node", ...]


Node = Union[Literal, ParamRef, ObjectExpr, ArrayExpr]


_TOKEN_PATTERN = re.compile(
    r"""
    (?P<WS>\s+)
    |(?P<STRING>"(?:[^"\\\n]|\\.)*"|'(?:[^'\\\n]|\\.)*')
    |(?P<NUMBER>-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)
    |(?P<IDENT>[A-Za-z_$][A-Za-z0-9_$]*)
    |(?P<PUNCT>[{}\[\]:,;])
    """,
    re.VERBOSE,
)

_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
    "\\": "\\",
    "'": "'",
    '"': '"',
    "/": "/",
}


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    pos: int


def _decode_string(raw: str) -> str:
    """Decode a single- or double-quoted string literal body."""
    body = raw[1:-1]
    out: List[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\":
            out.append(ch)
            i += 1
            continue
        if i + 1 >= len(body):
            raise UnsupportedExpressionError(f"Dangling escape in string {raw}")
        esc = body[i + 1]
        if esc == "u":
            hex_digits = body[i + 2:i + 6]
            if not re.fullmatch(r"[0-9a-fA-F]{4}", hex_digits):
                raise UnsupportedExpressionError(f"Bad unicode escape in string {raw}")
            out.append(chr(int(hex_digits, 16)))
            i += 6
        elif esc in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[esc])
            i += 2
        else:
            raise UnsupportedExpressionError(f"Unsupported escape '\\{esc}' in string {raw}")
    return "".join(out)


def tokenize(source: str) -> List[_Token]:
    """Split an implementation snippet into tokens.

    Raises:
        UnsupportedExpressionError: On any character outside the subset
    """
    tokens: List[_Token] = []
    pos = 0
    while pos < len(source):
        match = _TOKEN_PATTERN.match(source, pos)
        if match is None:
            raise UnsupportedExpressionError(
                f"Unsupported syntax at offset {pos}: {source[pos:pos + 20]!r}"
            )
        kind = match.lastgroup or ""
        if kind != "WS":
            tokens.append(_Token(kind, match.group(), pos))
        pos = match.end()
    return tokens


class _Parser:
    """Recursive-descent parser over the token list."""

    KEYWORD_LITERALS = {"true": True, "false": False, "null": None, "undefined": None}

    def __init__(self, tokens: List[_Token], parameters: Iterable[str]):
        self.tokens = tokens
        self.index = 0
        self.parameters = set(parameters)

    def _peek(self) -> Optional[_Token]:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def _next(self) -> _Token:
        token = self._peek()
        if token is None:
            raise UnsupportedExpressionError("Unexpected end of expression")
        self.index += 1
        return token

    def _expect(self, text: str) -> None:
        token = self._next()
        if token.text != text:
            raise UnsupportedExpressionError(
                f"Expected '{text}' at offset {token.pos}, found '{token.text}'"
            )

    def parse_snippet(self) -> Node:
        token = self._peek()
        if token is not None and token.kind == "IDENT" and token.text == "return":
            self.index += 1
        node = self.parse_expr()
        token = self._peek()
        if token is not None and token.text == ";":
            self.index += 1
        trailing = self._peek()
        if trailing is not None:
            raise UnsupportedExpressionError(
                f"Unexpected '{trailing.text}' at offset {trailing.pos}; "
                + "only a single returned literal expression is supported"
            )
        return node

    def parse_expr(self) -> Node:
        token = self._next()
        if token.text == "{":
            return self._parse_object()
        if token.text == "[":
            return self._parse_array()
        if token.kind == "STRING":
            return Literal(_decode_string(token.text))
        if token.kind == "NUMBER":
            if re.fullmatch(r"-?\d+", token.text):
                return Literal(int(token.text))
            return Literal(float(token.text))
        if token.kind == "IDENT":
            if token.text in self.KEYWORD_LITERALS:
                return Literal(self.KEYWORD_LITERALS[token.text])
            if token.text in self.parameters:
                return ParamRef(token.text)
            raise UnsupportedExpressionError(
                f"Unknown identifier '{token.text}' at offset {token.pos}; "
                + "only tool parameters may be referenced"
            )
        raise UnsupportedExpressionError(f"Unexpected '{token.text}' at offset {token.pos}")

    def _parse_object(self) -> ObjectExpr:
        entries: List[Tuple[str, Node]] = []
        seen = set()
        while True:
            token = self._next()
            if token.text == "}":
                break
            if token.kind == "IDENT":
                key = token.text
            elif token.kind == "STRING":
                key = _decode_string(token.text)
            else:
                raise UnsupportedExpressionError(
                    f"Expected object key at offset {token.pos}, found '{token.text}'"
                )
            if key in seen:
                raise UnsupportedExpressionError(f"Duplicate object key '{key}'")
            seen.add(key)
            self._expect(":")
            entries.append((key, self.parse_expr()))
            separator = self._next()
            if separator.text == "}":
                break
            if separator.text != ",":
                raise UnsupportedExpressionError(
                    f"Expected ',' or '}}' at offset {separator.pos}, found '{separator.text}'"
                )
        return ObjectExpr(tuple(entries))

    def _parse_array(self) -> ArrayExpr:
        items: List[Node] = []
        while True:
            token = self._peek()
            if token is not None and token.text == "]":
                self.index += 1
                break
            items.append(self.parse_expr())
            separator = self._next()
            if separator.text == "]":
                break
            if separator.text != ",":
                raise UnsupportedExpressionError(
                    f"Expected ',' or ']' at offset {separator.pos}, found '{separator.text}'"
                )
        return ArrayExpr(tuple(items))


def parse_implementation(snippet: str, parameters: Iterable[str] = ()) -> Node:
    """Parse a tool implementation snippet.

    An empty snippet parses to a null literal.

    Args:
        snippet: Text such as ``return { message: input }``
        parameters: Names of the tool's parameters (referencable identifiers)

    Returns:
        Root AST node

    Raises:
        UnsupportedExpressionError: If the snippet is outside the subset
    """
    tokens = tokenize(snippet)
    if not tokens:
        return Literal(None)
    return _Parser(tokens, parameters).parse_snippet()


def node_from_value(value: Any) -> Node:
    """Build an AST from a JSON-like Python value (e.g. a parameter default).

    Raises:
        UnsupportedExpressionError: For values with no literal form
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return Literal(value)
    if isinstance(value, dict):
        return ObjectExpr(tuple((str(k), node_from_value(v)) for k, v in value.items()))
    if isinstance(value, (list, tuple)):
        return ArrayExpr(tuple(node_from_value(item) for item in value))
    raise UnsupportedExpressionError(f"Cannot express value of type {type(value).__name__}")


class Translator:
    """Base class for per-language literal translators."""

    language = ""

    def translate(self, node: Node) -> str:
        if isinstance(node, Literal):
            if isinstance(node.value, float) and not math.isfinite(node.value):
                raise UnsupportedExpressionError(f"Non-finite number {node.value!r} has no literal form")
            return self.literal(node.value)
        if isinstance(node, ParamRef):
            return self.param_ref(node.name)
        if isinstance(node, ObjectExpr):
            return self.object_expr([(key, self.translate(value)) for key, value in node.entries])
        if isinstance(node, ArrayExpr):
            return self.array_expr([self.translate(item) for item in node.items])
        raise UnsupportedExpressionError(f"Unknown node type: {type(node).__name__}")

    def literal(self, value: Any) -> str:
        raise NotImplementedError

    def param_ref(self, name: str) -> str:
        raise NotImplementedError

    def object_expr(self, entries: List[Tuple[str, str]]) -> str:
        raise NotImplementedError

    def array_expr(self, items: List[str]) -> str:
        raise NotImplementedError


class GoTranslator(Translator):
    """Emits Go composite literals built from interface{} values."""

    language = "go"

    def literal(self, value: Any) -> str:
        if value is None:
            return "nil"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return repr(value)
        # JSON string escapes are a subset of Go's interpreted string escapes
        return json.dumps(value, ensure_ascii=False)

    def param_ref(self, name: str) -> str:
        return f"args[{json.dumps(name)}]"

    def object_expr(self, entries: List[Tuple[str, str]]) -> str:
        body = ", ".join(f"{json.dumps(key, ensure_ascii=False)}: {value}" for key, value in entries)
        return "map[string]interface{}{" + body + "}"

    def array_expr(self, items: List[str]) -> str:
        return "[]interface{}{" + ", ".join(items) + "}"


class PythonTranslator(Translator):
    """Emits Python dict/list literals."""

    language = "python"

    def literal(self, value: Any) -> str:
        return repr(value)

    def param_ref(self, name: str) -> str:
        return f"args.get({name!r})"

    def object_expr(self, entries: List[Tuple[str, str]]) -> str:
        return "{" + ", ".join(f"{key!r}: {value}" for key, value in entries) + "}"

    def array_expr(self, items: List[str]) -> str:
        return "[" + ", ".join(items) + "]"


def translate_implementation(
    snippet: str, parameters: Iterable[str], translator: Translator
) -> str:
    """Parse ``snippet`` and render it with ``translator``."""
    return translator.translate(parse_implementation(snippet, parameters))
