"""String templates with named placeholders and a restricted expression language.

A format string mixes literal text with placeholders:

- ``$name`` or ``$(name)`` substitutes a binding.
- ``$(expression)`` evaluates a small expression over the bindings:
  literals, arithmetic (``+ - * / // % **``), comparisons, ``and``/``or``/
  ``not``, member access (``a.b``), indexing (``a[0]``), list literals and
  calls to a fixed set of functions (see ``FUNCTIONS``).
- ``$$`` is a literal dollar sign.

Expressions are compiled once into a tree of nodes and evaluated by walking
that tree; nothing is handed to Python's own evaluator.

``make_parser`` builds the inverse of a format string for simple
placeholders only. Expression placeholders match any text but are not
captured: they cannot be inverted.
"""

import operator
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from journalipy.core.errors import TemplateError

_IDENTIFIER = re.compile(r"[A-Za-z_]\w*")

_TOKEN = re.compile(
    r"""
    \s*(?:
        (?P<number>(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?)
      | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
      | (?P<name>[A-Za-z_]\w*)
      | (?P<op>\*\*|//|==|!=|<=|>=|[-+*/%<>()\[\].,])
    )
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}

_KEYWORDS = {"and", "or", "not", "True", "False", "None"}


def _join(separator: str, items: Iterable[Any]) -> str:
    return separator.join(str(item) for item in items)


def _fmt(value: Any, spec: str = "") -> str:
    return format(value, spec)


FUNCTIONS: dict[str, Callable[..., Any]] = {
    "abs": abs,
    "all": all,
    "any": any,
    "float": float,
    "fmt": _fmt,
    "int": int,
    "join": _join,
    "len": len,
    "max": max,
    "min": min,
    "round": round,
    "sorted": sorted,
    "str": str,
    "sum": sum,
}

_BINARY: dict[str, Callable[[Any, Any], Any]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "//": operator.floordiv,
    "%": operator.mod,
    "**": operator.pow,
}

_COMPARE: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


# --- Expression nodes ---


class Node:
    """A compiled expression node."""

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        raise NotImplementedError

    def names(self) -> list[str]:
        """Free binding names referenced by this node, in order of appearance."""
        return []


@dataclass(frozen=True)
class Const(Node):
    value: Any

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        return self.value


@dataclass(frozen=True)
class Name(Node):
    id: str

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        return scope.get(self.id)

    def names(self) -> list[str]:
        return [self.id]


@dataclass(frozen=True)
class Attribute(Node):
    target: Node
    attr: str

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        obj = self.target.evaluate(scope)
        if isinstance(obj, Mapping):
            return obj.get(self.attr)
        if self.attr.startswith("_"):
            raise TemplateError(f"Access to private member '{self.attr}' is not allowed")
        return getattr(obj, self.attr, None)

    def names(self) -> list[str]:
        return self.target.names()


@dataclass(frozen=True)
class Index(Node):
    target: Node
    index: Node

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        return self.target.evaluate(scope)[self.index.evaluate(scope)]

    def names(self) -> list[str]:
        return self.target.names() + self.index.names()


@dataclass(frozen=True)
class Call(Node):
    function: str
    args: tuple[Node, ...]

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        return FUNCTIONS[self.function](*(arg.evaluate(scope) for arg in self.args))

    def names(self) -> list[str]:
        return [name for arg in self.args for name in arg.names()]


@dataclass(frozen=True)
class ListExpr(Node):
    items: tuple[Node, ...]

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        return [item.evaluate(scope) for item in self.items]

    def names(self) -> list[str]:
        return [name for item in self.items for name in item.names()]


@dataclass(frozen=True)
class Unary(Node):
    op: str
    operand: Node

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        value = self.operand.evaluate(scope)
        if self.op == "not":
            return not value
        return -value if self.op == "-" else +value

    def names(self) -> list[str]:
        return self.operand.names()


@dataclass(frozen=True)
class Binary(Node):
    op: str
    left: Node
    right: Node

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        return _BINARY[self.op](self.left.evaluate(scope), self.right.evaluate(scope))

    def names(self) -> list[str]:
        return self.left.names() + self.right.names()


@dataclass(frozen=True)
class Compare(Node):
    first: Node
    rest: tuple[tuple[str, Node], ...]

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        left = self.first.evaluate(scope)
        for op, node in self.rest:
            right = node.evaluate(scope)
            if not _COMPARE[op](left, right):
                return False
            left = right
        return True

    def names(self) -> list[str]:
        return self.first.names() + [n for _, node in self.rest for n in node.names()]


@dataclass(frozen=True)
class BoolOp(Node):
    op: str
    values: tuple[Node, ...]

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        result: Any = None
        for node in self.values:
            result = node.evaluate(scope)
            if (self.op == "and") != bool(result):
                return result
        return result

    def names(self) -> list[str]:
        return [name for node in self.values for name in node.names()]


# --- Expression parser ---


def _tokenize(source: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    position = 0
    source = source.rstrip()
    while position < len(source):
        match = _TOKEN.match(source, position)
        if match is None or match.end() == position:
            raise TemplateError(f"Unexpected character in expression: {source[position:]!r}")
        kind = match.lastgroup
        assert kind is not None
        text = match.group(kind)
        if kind == "name" and text in _KEYWORDS:
            kind = "keyword"
        tokens.append((kind, text))
        position = match.end()
    return tokens


def _unquote(text: str) -> str:
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), text[1:-1])


class _ExpressionParser:
    """Recursive-descent parser producing Node trees."""

    def __init__(self, source: str) -> None:
        self._source = source
        self._tokens = _tokenize(source)
        self._position = 0

    def parse(self) -> Node:
        if not self._tokens:
            raise TemplateError("Empty expression in template")
        node = self._or()
        if self._position != len(self._tokens):
            raise TemplateError(
                f"Unexpected token {self._tokens[self._position][1]!r} in {self._source!r}"
            )
        return node

    def _peek(self) -> str | None:
        if self._position < len(self._tokens):
            return self._tokens[self._position][1]
        return None

    def _next(self) -> tuple[str, str]:
        if self._position >= len(self._tokens):
            raise TemplateError(f"Unexpected end of expression: {self._source!r}")
        token = self._tokens[self._position]
        self._position += 1
        return token

    def _expect(self, text: str) -> None:
        _, value = self._next()
        if value != text:
            raise TemplateError(f"Expected {text!r} but found {value!r} in {self._source!r}")

    def _or(self) -> Node:
        values = [self._and()]
        while self._peek() == "or":
            self._next()
            values.append(self._and())
        return values[0] if len(values) == 1 else BoolOp("or", tuple(values))

    def _and(self) -> Node:
        values = [self._not()]
        while self._peek() == "and":
            self._next()
            values.append(self._not())
        return values[0] if len(values) == 1 else BoolOp("and", tuple(values))

    def _not(self) -> Node:
        if self._peek() == "not":
            self._next()
            return Unary("not", self._not())
        return self._comparison()

    def _comparison(self) -> Node:
        first = self._sum()
        rest: list[tuple[str, Node]] = []
        while self._peek() in _COMPARE:
            op = self._next()[1]
            rest.append((op, self._sum()))
        return Compare(first, tuple(rest)) if rest else first

    def _sum(self) -> Node:
        node = self._term()
        while self._peek() in ("+", "-"):
            op = self._next()[1]
            node = Binary(op, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._unary()
        while self._peek() in ("*", "/", "//", "%"):
            op = self._next()[1]
            node = Binary(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        if self._peek() in ("-", "+"):
            op = self._next()[1]
            return Unary(op, self._unary())
        return self._power()

    def _power(self) -> Node:
        node = self._postfix()
        if self._peek() == "**":
            self._next()
            node = Binary("**", node, self._unary())
        return node

    def _postfix(self) -> Node:
        node = self._atom()
        while True:
            token = self._peek()
            if token == ".":
                self._next()
                kind, attr = self._next()
                if kind != "name":
                    raise TemplateError(f"Expected member name after '.' in {self._source!r}")
                node = Attribute(node, attr)
            elif token == "[":
                self._next()
                index = self._or()
                self._expect("]")
                node = Index(node, index)
            elif token == "(":
                if not isinstance(node, Name) or node.id not in FUNCTIONS:
                    raise TemplateError(f"Only these functions may be called: {', '.join(sorted(FUNCTIONS))}")
                self._next()
                node = Call(node.id, tuple(self._sequence(")")))
            else:
                return node

    def _sequence(self, closing: str) -> list[Node]:
        items: list[Node] = []
        while self._peek() != closing:
            items.append(self._or())
            if self._peek() == ",":
                self._next()
            elif self._peek() != closing:
                raise TemplateError(f"Expected ',' or {closing!r} in {self._source!r}")
        self._expect(closing)
        return items

    def _atom(self) -> Node:
        kind, text = self._next()
        if kind == "number":
            is_float = any(c in text for c in ".eE")
            return Const(float(text) if is_float else int(text))
        if kind == "string":
            return Const(_unquote(text))
        if kind == "keyword":
            if text in ("True", "False", "None"):
                return Const({"True": True, "False": False, "None": None}[text])
            raise TemplateError(f"Unexpected keyword {text!r} in {self._source!r}")
        if kind == "name":
            return Name(text)
        if text == "(":
            node = self._or()
            self._expect(")")
            return node
        if text == "[":
            return ListExpr(tuple(self._sequence("]")))
        raise TemplateError(f"Unexpected token {text!r} in {self._source!r}")


def compile_expression(source: str) -> Node:
    """Compile an expression into a node tree."""
    return _ExpressionParser(source).parse()


# --- Format strings ---


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class Placeholder:
    name: str


@dataclass(frozen=True)
class Expression:
    source: str
    node: Node


Segment = Literal | Placeholder | Expression


def _closing_paren(format: str, start: int) -> int:
    """Index of the parenthesis closing the one opened just before ``start``."""
    depth = 1
    quote: str | None = None
    position = start
    while position < len(format):
        char = format[position]
        if quote is not None:
            if char == "\\":
                position += 1
            elif char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return position
        position += 1
    raise TemplateError(f"Unbalanced parenthesis in template: {format!r}")


def scan(format: str) -> list[Segment]:
    """Split a format string into literal, placeholder and expression segments."""
    segments: list[Segment] = []
    text: list[str] = []
    position = 0
    while position < len(format):
        char = format[position]
        if char != "$":
            text.append(char)
            position += 1
            continue
        following = format[position + 1 : position + 2]
        if following == "$":
            text.append("$")
            position += 2
            continue
        if following == "(":
            end = _closing_paren(format, position + 2)
            source = format[position + 2 : end].strip()
            segment: Segment
            if _IDENTIFIER.fullmatch(source) and source not in _KEYWORDS:
                segment = Placeholder(source)
            else:
                segment = Expression(source, compile_expression(source))
            position = end + 1
        else:
            match = _IDENTIFIER.match(format, position + 1)
            if match is None:
                text.append("$")
                position += 1
                continue
            segment = Placeholder(match.group(0))
            position = match.end()
        if text:
            segments.append(Literal("".join(text)))
            text = []
        segments.append(segment)
    if text:
        segments.append(Literal("".join(text)))
    return segments


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


class Template:
    """A compiled format string.

    Attributes:
        format: The source format string.
        names: Binding names the template uses, in order of appearance.
    """

    def __init__(self, format: str, names: Iterable[str] | None = None) -> None:
        self.format = format
        self._segments = scan(format)
        found: list[str] = []
        for segment in self._segments:
            if isinstance(segment, Placeholder):
                candidates = [segment.name]
            elif isinstance(segment, Expression):
                candidates = segment.node.names()
            else:
                continue
            for name in candidates:
                if name not in found:
                    found.append(name)
        if names is not None:
            allowed = list(names)
            extra = [name for name in found if name not in allowed]
            if extra:
                raise TemplateError(f"Unsupported names in format: {', '.join(extra)}")
        self.names = tuple(found)

    def render(self, bindings: Mapping[str, Any] | None = None, /, **kwargs: Any) -> str:
        """Render the template. Names without a binding render as empty text."""
        scope = {**(bindings or {}), **kwargs}
        parts: list[str] = []
        for segment in self._segments:
            if isinstance(segment, Literal):
                parts.append(segment.text)
            elif isinstance(segment, Placeholder):
                parts.append(_stringify(scope.get(segment.name)))
            else:
                try:
                    parts.append(_stringify(segment.node.evaluate(scope)))
                except TemplateError:
                    raise
                except Exception as exc:
                    raise TemplateError(
                        f"Unable to evaluate $({segment.source}): {type(exc).__name__}: {exc}"
                    ) from exc
        return "".join(parts)

    __call__ = render

    def __repr__(self) -> str:
        return f"Template({self.format!r})"


def compile_template(format: str, names: Iterable[str] | None = None) -> Template:
    """Compile a format string into a Template.

    Args:
        format: Format string with ``$name``/``$(expression)`` placeholders.
        names: If given, every name the format uses must be one of these.

    Raises:
        TemplateError: On syntax errors or names outside ``names``.
    """
    return Template(format, names)


def make_parser(format: str) -> Callable[[str], dict[str, str] | None]:
    """Build a function recovering placeholder values from rendered text.

    Each simple placeholder becomes a named group matching the shortest run
    of characters up to the next literal text; the pattern is anchored to
    the whole line (a trailing newline is ignored). A placeholder used twice
    must match the same text both times. Expression placeholders are matched
    but not captured.

    Returns:
        A function mapping a line to a name to text dictionary, or None when
        the line does not match the format.
    """
    pattern: list[str] = []
    seen: set[str] = set()
    for segment in scan(format):
        if isinstance(segment, Literal):
            pattern.append(re.escape(segment.text))
        elif isinstance(segment, Placeholder):
            if segment.name in seen:
                pattern.append(f"(?P={segment.name})")
            else:
                seen.add(segment.name)
                pattern.append(f"(?P<{segment.name}>.*?)")
        else:
            pattern.append("(?:.*?)")
    regex = re.compile(r"\A" + "".join(pattern) + r"\Z", re.DOTALL)

    def parse(line: str) -> dict[str, str] | None:
        match = regex.match(line.rstrip("\r\n"))
        return match.groupdict() if match else None

    return parse
