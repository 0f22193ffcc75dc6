"""Restricted expression language for conditions and derivations.

Free-form expressions in configurations (``type: "javascript"`` conditions and
derivation ``expression`` strings) are written in a small JavaScript-like
syntax so that configurations stay portable between renderers:

    formValue.age >= 18 && formValue.country === 'NL'
    formValue.firstName + ' ' + formValue.lastName
    formValue.total > 100 ? 'large' : 'small'
    formValue.tags?.includes('urgent')

Expressions are tokenized, parsed into a small AST and interpreted. Nothing is
ever passed to Python's eval. Only names present in the evaluation scope can be
read, member access never reaches dunder attributes, and method calls are
limited to a whitelist of pure string, list and number methods.

Member access is lenient: reading a property of None yields None instead of
failing, so ``formValue.address.city`` is safe on an empty form.
"""

import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union


class ExpressionError(Exception):
    """Raised for syntax errors and disallowed operations.

    Attributes:
        expression: The source text being parsed or evaluated
    """

    def __init__(self, message: str, expression: str = ""):
        self.expression = expression
        super().__init__(message)


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Token:
    kind: str  # number, string, ident, op, eof
    value: Any
    pos: int


_OPERATORS = sorted(
    [
        "===", "!==", "==", "!=", "<=", ">=", "&&", "||", "??", "?.",
        "<", ">", "+", "-", "*", "/", "%", "!", "?", ":", ".", ",",
        "(", ")", "[", "]",
    ],
    key=len,
    reverse=True,
)

_NUMBER_RE = re.compile(r"\d+(\.\d+)?([eE][+-]?\d+)?|\.\d+([eE][+-]?\d+)?")
_IDENT_RE = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"', "`": "`", "0": "\0"}


def tokenize(source: str) -> List[Token]:
    """Split an expression into tokens.

    Raises:
        ExpressionError: On unterminated strings or unknown characters
    """
    tokens: List[Token] = []
    pos = 0
    length = len(source)
    while pos < length:
        char = source[pos]
        if char.isspace():
            pos += 1
            continue
        if char in "'\"`":
            value, pos = _read_string(source, pos)
            tokens.append(Token("string", value, pos))
            continue
        number = _NUMBER_RE.match(source, pos)
        if number and (char.isdigit() or char == "."):
            text = number.group(0)
            value = float(text) if any(c in text for c in ".eE") else int(text)
            tokens.append(Token("number", value, pos))
            pos = number.end()
            continue
        ident = _IDENT_RE.match(source, pos)
        if ident:
            tokens.append(Token("ident", ident.group(0), pos))
            pos = ident.end()
            continue
        for op in _OPERATORS:
            if source.startswith(op, pos):
                # "a ?.5 : b" is a ternary, not optional chaining
                if op == "?." and pos + 2 < length and source[pos + 2].isdigit():
                    continue
                tokens.append(Token("op", op, pos))
                pos += len(op)
                break
        else:
            raise ExpressionError(f"Unexpected character {char!r} at position {pos}", source)
    tokens.append(Token("eof", None, length))
    return tokens


def _read_string(source: str, pos: int) -> Tuple[str, int]:
    quote = source[pos]
    pos += 1
    chars: List[str] = []
    while pos < len(source):
        char = source[pos]
        if char == "\\" and pos + 1 < len(source):
            chars.append(_ESCAPES.get(source[pos + 1], source[pos + 1]))
            pos += 2
            continue
        if char == quote:
            return "".join(chars), pos + 1
        chars.append(char)
        pos += 1
    raise ExpressionError("Unterminated string literal", source)


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Identifier:
    name: str


@dataclass(frozen=True)
class Member:
    obj: "Node"
    prop: Union[str, "Node"]
    computed: bool = False
    optional: bool = False


@dataclass(frozen=True)
class Call:
    callee: "Node"
    args: Tuple["Node", ...]


@dataclass(frozen=True)
class Unary:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class Binary:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Conditional:
    test: "Node"
    consequent: "Node"
    alternate: "Node"


@dataclass(frozen=True)
class ArrayLiteral:
    elements: Tuple["Node", ...]


Node = Union[Literal, Identifier, Member, Call, Unary, Binary, Conditional, ArrayLiteral]

_KEYWORDS = {"true": True, "false": False, "null": None, "undefined": None}

_BINARY_PRECEDENCE = {
    "??": 1,
    "||": 2,
    "&&": 3,
    "==": 4, "!=": 4, "===": 4, "!==": 4,
    "<": 5, ">": 5, "<=": 5, ">=": 5,
    "+": 6, "-": 6,
    "*": 7, "/": 7, "%": 7,
}


class _Parser:
    """Precedence-climbing parser over the token list."""

    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.pos = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def accept(self, op: str) -> bool:
        if self.current.kind == "op" and self.current.value == op:
            self.pos += 1
            return True
        return False

    def expect(self, op: str) -> None:
        if not self.accept(op):
            raise ExpressionError(
                f"Expected '{op}' at position {self.current.pos}", self.source
            )

    def parse(self) -> Node:
        if self.current.kind == "eof":
            raise ExpressionError("Empty expression", self.source)
        node = self.parse_conditional()
        if self.current.kind != "eof":
            raise ExpressionError(
                f"Unexpected token {self.current.value!r} at position {self.current.pos}",
                self.source,
            )
        return node

    def parse_conditional(self) -> Node:
        test = self.parse_binary(1)
        if self.accept("?"):
            consequent = self.parse_conditional()
            self.expect(":")
            alternate = self.parse_conditional()
            return Conditional(test, consequent, alternate)
        return test

    def parse_binary(self, min_precedence: int) -> Node:
        left = self.parse_unary()
        while True:
            token = self.current
            precedence = _BINARY_PRECEDENCE.get(token.value) if token.kind == "op" else None
            if precedence is None or precedence < min_precedence:
                return left
            self.advance()
            right = self.parse_binary(precedence + 1)
            left = Binary(token.value, left, right)

    def parse_unary(self) -> Node:
        for op in ("!", "-", "+"):
            if self.accept(op):
                return Unary(op, self.parse_unary())
        return self.parse_postfix(self.parse_primary())

    def parse_postfix(self, node: Node) -> Node:
        while True:
            if self.accept("."):
                node = Member(node, self._property_name())
            elif self.accept("?."):
                if self.accept("["):
                    prop = self.parse_conditional()
                    self.expect("]")
                    node = Member(node, prop, computed=True, optional=True)
                elif self.accept("("):
                    node = Call(node, self._arguments())
                else:
                    node = Member(node, self._property_name(), optional=True)
            elif self.accept("["):
                prop = self.parse_conditional()
                self.expect("]")
                node = Member(node, prop, computed=True)
            elif self.accept("("):
                node = Call(node, self._arguments())
            else:
                return node

    def _property_name(self) -> str:
        token = self.advance()
        if token.kind != "ident":
            raise ExpressionError(f"Expected property name at position {token.pos}", self.source)
        return token.value

    def _arguments(self) -> Tuple[Node, ...]:
        args: List[Node] = []
        if self.accept(")"):
            return ()
        while True:
            args.append(self.parse_conditional())
            if self.accept(")"):
                return tuple(args)
            self.expect(",")

    def parse_primary(self) -> Node:
        token = self.advance()
        if token.kind in ("number", "string"):
            return Literal(token.value)
        if token.kind == "ident":
            if token.value in _KEYWORDS:
                return Literal(_KEYWORDS[token.value])
            return Identifier(token.value)
        if token.kind == "op" and token.value == "(":
            node = self.parse_conditional()
            self.expect(")")
            return node
        if token.kind == "op" and token.value == "[":
            elements: List[Node] = []
            if not self.accept("]"):
                while True:
                    elements.append(self.parse_conditional())
                    if self.accept("]"):
                        break
                    self.expect(",")
            return ArrayLiteral(tuple(elements))
        raise ExpressionError(
            f"Unexpected token {token.value!r} at position {token.pos}", self.source
        )


@lru_cache(maxsize=512)
def parse_expression(source: str) -> Node:
    """Parse (and cache) an expression.

    Raises:
        ExpressionError: On syntax errors
    """
    return _Parser(source).parse()


# ---------------------------------------------------------------------------
# Value semantics
# ---------------------------------------------------------------------------


def is_truthy(value: Any) -> bool:
    """JavaScript truthiness: empty lists and dicts are truthy."""
    if value is None or value is False:
        return False
    if isinstance(value, bool):
        return True
    if isinstance(value, (int, float)):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def to_number(value: Any) -> Union[int, float]:
    """Coerce a value to a number the way form inputs are usually meant.

    None and the empty string count as 0.

    Raises:
        ExpressionError: If the value has no numeric interpretation
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text == "":
            return 0
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            pass
    raise ExpressionError(f"Cannot convert {value!r} to a number")


def to_display_string(value: Any) -> str:
    """Stringify for concatenation; None becomes the empty string."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(to_display_string(v) for v in value)
    return str(value)


def loose_equal(left: Any, right: Any) -> bool:
    """Equality used by ``==``/``===`` and the equals operator."""
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    try:
        return bool(left == right)
    except Exception:
        return False


def _pad(text: str, width: Any, fill: Any, left: bool) -> str:
    fill = to_display_string(fill) if fill is not None else " "
    width = int(to_number(width))
    if len(text) >= width or not fill:
        return text
    padding = (fill * width)[: width - len(text)]
    return padding + text if left else text + padding


def _slice(seq: Any, start: Any = None, end: Any = None) -> Any:
    start = int(to_number(start)) if start is not None else None
    end = int(to_number(end)) if end is not None else None
    return seq[start:end]


def _index_of(seq: Any, item: Any) -> int:
    if isinstance(seq, str):
        return seq.find(to_display_string(item))
    for index, candidate in enumerate(seq):
        if loose_equal(candidate, item):
            return index
    return -1


def _includes(seq: Any, item: Any) -> bool:
    if isinstance(seq, str):
        return to_display_string(item) in seq
    return _index_of(seq, item) >= 0


def _to_fixed(number: Any, digits: Any = 0) -> str:
    return f"{to_number(number):.{int(to_number(digits))}f}"


_STRING_METHODS: Dict[str, Callable[..., Any]] = {
    "includes": _includes,
    "indexOf": _index_of,
    "startsWith": lambda s, prefix: s.startswith(to_display_string(prefix)),
    "endsWith": lambda s, suffix: s.endswith(to_display_string(suffix)),
    "toLowerCase": lambda s: s.lower(),
    "toUpperCase": lambda s: s.upper(),
    "trim": lambda s: s.strip(),
    "trimStart": lambda s: s.lstrip(),
    "trimEnd": lambda s: s.rstrip(),
    "slice": _slice,
    "substring": _slice,
    "split": lambda s, sep=None: s.split(to_display_string(sep)) if sep not in (None, "") else list(s),
    "replace": lambda s, old, new: s.replace(to_display_string(old), to_display_string(new), 1),
    "charAt": lambda s, i=0: s[int(to_number(i))] if 0 <= int(to_number(i)) < len(s) else "",
    "padStart": lambda s, width, fill=None: _pad(s, width, fill, left=True),
    "padEnd": lambda s, width, fill=None: _pad(s, width, fill, left=False),
    "repeat": lambda s, n: s * int(to_number(n)),
    "concat": lambda s, *parts: s + "".join(to_display_string(p) for p in parts),
    "toString": lambda s: s,
}

_LIST_METHODS: Dict[str, Callable[..., Any]] = {
    "includes": _includes,
    "indexOf": _index_of,
    "join": lambda seq, sep=",": to_display_string(sep).join(to_display_string(v) for v in seq),
    "slice": _slice,
    "concat": lambda seq, *others: list(seq) + [x for o in others for x in (o if isinstance(o, (list, tuple)) else [o])],
    "toString": to_display_string,
}

_NUMBER_METHODS: Dict[str, Callable[..., Any]] = {
    "toFixed": _to_fixed,
    "toString": to_display_string,
}


class Namespace:
    """Read-only bag of whitelisted helpers exposed as a global (e.g. Math)."""

    def __init__(self, name: str, members: Dict[str, Any]):
        self.name = name
        self._members = dict(members)

    def get(self, name: str) -> Any:
        return self._members.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._members


MATH = Namespace(
    "Math",
    {
        "min": lambda *args: min(to_number(a) for a in args),
        "max": lambda *args: max(to_number(a) for a in args),
        "abs": lambda x: abs(to_number(x)),
        "round": lambda x: int(math.floor(to_number(x) + 0.5)),
        "floor": lambda x: int(math.floor(to_number(x))),
        "ceil": lambda x: int(math.ceil(to_number(x))),
        "PI": math.pi,
    },
)


# ---------------------------------------------------------------------------
# Interpreter
# ---------------------------------------------------------------------------


class ExpressionEvaluator:
    """Interprets parsed expressions against a scope of named values.

    Attributes:
        scope: Names readable by expressions; callables in the scope may be
            called directly (custom functions)

    Examples:
        >>> ExpressionEvaluator({"formValue": {"a": 2, "b": 3}}).evaluate("formValue.a * formValue.b")
        6
        >>> ExpressionEvaluator({"formValue": {}}).evaluate("formValue.missing?.deep ?? 'none'")
        'none'
    """

    def __init__(self, scope: Dict[str, Any]):
        self.scope = {"Math": MATH, **scope}

    def evaluate(self, source: str) -> Any:
        """Parse and evaluate an expression.

        Raises:
            ExpressionError: On syntax errors or disallowed operations
        """
        try:
            return self._eval(parse_expression(source))
        except ExpressionError as exc:
            if not exc.expression:
                exc.expression = source
            raise

    def _eval(self, node: Node) -> Any:
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, Identifier):
            if node.name not in self.scope:
                raise ExpressionError(f"Unknown identifier '{node.name}'")
            return self.scope[node.name]
        if isinstance(node, Member):
            obj = self._eval(node.obj)
            prop = self._eval(node.prop) if node.computed else node.prop
            return self._member(obj, prop)
        if isinstance(node, Call):
            return self._call(node)
        if isinstance(node, Unary):
            operand = self._eval(node.operand)
            if node.op == "!":
                return not is_truthy(operand)
            if node.op == "-":
                return -to_number(operand)
            return to_number(operand)
        if isinstance(node, Binary):
            return self._binary(node)
        if isinstance(node, Conditional):
            branch = node.consequent if is_truthy(self._eval(node.test)) else node.alternate
            return self._eval(branch)
        if isinstance(node, ArrayLiteral):
            return [self._eval(element) for element in node.elements]
        raise ExpressionError(f"Unsupported node {type(node).__name__}")

    def _member(self, obj: Any, prop: Any) -> Any:
        if isinstance(prop, str) and prop.startswith("__"):
            raise ExpressionError(f"Access to '{prop}' is not allowed")
        if obj is None:
            return None
        if prop == "length" and isinstance(obj, (str, list, tuple, dict)):
            return len(obj)
        if isinstance(obj, dict):
            if isinstance(prop, (int, float)) and not isinstance(prop, bool):
                prop = str(int(prop)) if str(int(prop)) in obj else int(prop)
            return obj.get(prop)
        if isinstance(obj, (list, tuple, str)):
            if isinstance(prop, (int, float)) and not isinstance(prop, bool):
                index = int(prop)
                return obj[index] if 0 <= index < len(obj) else None
            if isinstance(prop, str) and prop.isdigit():
                index = int(prop)
                return obj[index] if index < len(obj) else None
            return None
        if isinstance(obj, Namespace):
            return obj.get(prop)
        return None

    def _call(self, node: Call) -> Any:
        args = [self._eval(arg) for arg in node.args]
        callee = node.callee
        if isinstance(callee, Member) and not callee.computed:
            obj = self._eval(callee.obj)
            name = callee.prop
            if obj is None:
                if callee.optional:
                    return None
                raise ExpressionError(f"Cannot call '{name}' on null")
            if isinstance(obj, Namespace):
                fn = obj.get(name)
                if not callable(fn):
                    raise ExpressionError(f"'{obj.name}.{name}' is not a function")
                return fn(*args)
            method = self._method(obj, name)
            return method(obj, *args)
        fn = self._eval(callee)
        if fn is None and isinstance(callee, Member) and callee.optional:
            return None
        if not callable(fn) or isinstance(callee, Member):
            raise ExpressionError("Expression is not callable")
        return fn(*args)

    @staticmethod
    def _method(obj: Any, name: str) -> Callable[..., Any]:
        if isinstance(obj, str):
            table = _STRING_METHODS
        elif isinstance(obj, (list, tuple)):
            table = _LIST_METHODS
        elif isinstance(obj, (int, float)) and not isinstance(obj, bool):
            table = _NUMBER_METHODS
        else:
            table = {}
        if name not in table:
            raise ExpressionError(f"Method '{name}' is not allowed on {type(obj).__name__}")
        return table[name]

    def _binary(self, node: Binary) -> Any:
        op = node.op
        left = self._eval(node.left)
        if op == "&&":
            return self._eval(node.right) if is_truthy(left) else left
        if op == "||":
            return left if is_truthy(left) else self._eval(node.right)
        if op == "??":
            return left if left is not None else self._eval(node.right)
        right = self._eval(node.right)
        if op in ("==", "==="):
            return loose_equal(left, right)
        if op in ("!=", "!=="):
            return not loose_equal(left, right)
        if op == "+":
            if isinstance(left, str) or isinstance(right, str):
                return to_display_string(left) + to_display_string(right)
            if isinstance(left, list) and isinstance(right, list):
                return left + right
            return to_number(left) + to_number(right)
        if op in ("<", ">", "<=", ">="):
            if isinstance(left, str) and isinstance(right, str):
                a, b = left, right
            else:
                a, b = to_number(left), to_number(right)
            return {"<": a < b, ">": a > b, "<=": a <= b, ">=": a >= b}[op]
        a, b = to_number(left), to_number(right)
        if op == "-":
            return a - b
        if op == "*":
            return a * b
        if b == 0:
            raise ExpressionError("Division by zero")
        if op == "/":
            result = a / b
            return int(result) if result.is_integer() else result
        return math.fmod(a, b) if isinstance(a, float) or isinstance(b, float) else int(math.fmod(a, b))


# ---------------------------------------------------------------------------
# Dependency inference
# ---------------------------------------------------------------------------

WHOLE_FORM = "*"


def collect_dependencies(source: str, root: str = "formValue") -> Set[str]:
    """Return the form paths an expression reads through ``root``.

    A bare or dynamically indexed use of the root yields WHOLE_FORM.

    Examples:
        >>> sorted(collect_dependencies("formValue.first + ' ' + formValue.last"))
        ['first', 'last']
        >>> collect_dependencies("formValue[key]")
        {'*'}
    """
    try:
        tree = parse_expression(source)
    except ExpressionError:
        return {WHOLE_FORM}
    found: Set[str] = set()
    _walk_dependencies(tree, root, found)
    return found


def _member_chain(node: Node) -> Optional[Tuple[str, List[str]]]:
    names: List[str] = []
    while isinstance(node, Member):
        if node.computed:
            if isinstance(node.prop, Literal):
                names.append(str(node.prop.value))
            else:
                names.clear()
        else:
            names.append(node.prop)
        node = node.obj
    if isinstance(node, Identifier):
        return node.name, list(reversed(names))
    return None


def _walk_dependencies(node: Node, root: str, found: Set[str]) -> None:
    if isinstance(node, Identifier):
        if node.name == root:
            found.add(WHOLE_FORM)
        return
    if isinstance(node, Member):
        chain = _member_chain(node)
        if chain is not None and chain[0] == root:
            path = [p for p in chain[1] if p != "length"]
            found.add(".".join(path) if path else WHOLE_FORM)
        current: Node = node
        while isinstance(current, Member):
            if current.computed and not isinstance(current.prop, Literal):
                _walk_dependencies(current.prop, root, found)
            current = current.obj
        if chain is None:
            _walk_dependencies(current, root, found)
        return
    if isinstance(node, Call):
        callee = node.callee
        if isinstance(callee, Member) and not callee.computed:
            _walk_dependencies(callee.obj, root, found)
        else:
            _walk_dependencies(callee, root, found)
        for arg in node.args:
            _walk_dependencies(arg, root, found)
        return
    if isinstance(node, Unary):
        _walk_dependencies(node.operand, root, found)
    elif isinstance(node, Binary):
        _walk_dependencies(node.left, root, found)
        _walk_dependencies(node.right, root, found)
    elif isinstance(node, Conditional):
        for child in (node.test, node.consequent, node.alternate):
            _walk_dependencies(child, root, found)
    elif isinstance(node, ArrayLiteral):
        for element in node.elements:
            _walk_dependencies(element, root, found)


__all__ = [
    "ExpressionError",
    "ExpressionEvaluator",
    "Namespace",
    "MATH",
    "WHOLE_FORM",
    "tokenize",
    "parse_expression",
    "collect_dependencies",
    "is_truthy",
    "to_number",
    "to_display_string",
    "loose_equal",
]
