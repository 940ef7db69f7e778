"""Consistency condition parser and evaluator.

Conditions compare two arithmetic expressions over data element references::

    DE1 + DE2 == DE3
    DE1 - DE2 == DE3
    DE1 <= DE2
    (DE1 + DE2) - DE4 >= 0

Grammar (recursive descent)::

    condition  := expr COMPARE expr
    expr       := unary (("+" | "-") unary)*
    unary      := "-" unary | primary
    primary    := NUMBER | REF | "(" expr ")"
    REF        := "DE" digits            (1-based position in the rule's elements)
    COMPARE    := "==" | "!=" | "<=" | ">=" | "<" | ">"

``==`` and ``!=`` use an absolute tolerance; ordering comparisons are exact.
Anything outside the grammar raises ExpressionError.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from dhis2_dq.core.errors import ExpressionError
from .config import EQUALITY_TOLERANCE

_TOKEN_RE = re.compile(
    r"\s*(?:(?P<number>\d+(?:\.\d+)?|\.\d+)"
    r"|(?P<ref>DE\d+)"
    r"|(?P<op>==|!=|<=|>=|<|>|\+|-|\(|\)))",
    re.IGNORECASE,
)

COMPARE_OPS = ("==", "!=", "<=", ">=", "<", ">")


@dataclass(frozen=True)
class Token:
    kind: str  # "number" | "ref" | "op" | "end"
    text: str
    position: int


@dataclass(frozen=True)
class Num:
    value: float


@dataclass(frozen=True)
class Ref:
    index: int  # 1-based


@dataclass(frozen=True)
class Neg:
    operand: "Node"


@dataclass(frozen=True)
class BinOp:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Num, Ref, Neg, BinOp]


@dataclass(frozen=True)
class Condition:
    op: str
    left: Node
    right: Node

    @property
    def left_is_arithmetic(self) -> bool:
        return isinstance(self.left, (BinOp, Neg))

    def references(self) -> List[int]:
        refs: List[int] = []
        _collect_refs(self.left, refs)
        _collect_refs(self.right, refs)
        return refs


@dataclass(frozen=True)
class Outcome:
    passed: bool
    left: float
    right: float


def _collect_refs(node: Node, out: List[int]) -> None:
    if isinstance(node, Ref):
        out.append(node.index)
    elif isinstance(node, Neg):
        _collect_refs(node.operand, out)
    elif isinstance(node, BinOp):
        _collect_refs(node.left, out)
        _collect_refs(node.right, out)


def tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    stripped_end = len(text.rstrip())
    while pos < stripped_end:
        match = _TOKEN_RE.match(text, pos)
        if match is None or match.end() == pos:
            raise ExpressionError(f"Unexpected character {text[pos:].strip()[:1]!r}", pos)
        kind = match.lastgroup or "op"
        tokens.append(Token(kind, match.group(kind), match.start(kind)))
        pos = match.end()
    tokens.append(Token("end", "", len(text)))
    return tokens


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = tokenize(text)
        self.pos = 0

    def peek(self) -> Token:
        return self.tokens[self.pos]

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def parse_condition(self) -> Condition:
        left = self.parse_expr()
        token = self.peek()
        if token.kind != "op" or token.text not in COMPARE_OPS:
            raise ExpressionError(
                f"Expected a comparison ({', '.join(COMPARE_OPS)}) at position {token.position}",
                token.position,
            )
        self.advance()
        right = self.parse_expr()
        end = self.peek()
        if end.kind != "end":
            raise ExpressionError(f"Unexpected {end.text!r} at position {end.position}", end.position)
        return Condition(token.text, left, right)

    def parse_expr(self) -> Node:
        node = self.parse_unary()
        while self.peek().kind == "op" and self.peek().text in ("+", "-"):
            op = self.advance().text
            node = BinOp(op, node, self.parse_unary())
        return node

    def parse_unary(self) -> Node:
        token = self.peek()
        if token.kind == "op" and token.text == "-":
            self.advance()
            return Neg(self.parse_unary())
        return self.parse_primary()

    def parse_primary(self) -> Node:
        token = self.advance()
        if token.kind == "number":
            return Num(float(token.text))
        if token.kind == "ref":
            index = int(token.text[2:])
            if index < 1:
                raise ExpressionError(f"Invalid reference {token.text} (positions start at DE1)", token.position)
            return Ref(index)
        if token.kind == "op" and token.text == "(":
            node = self.parse_expr()
            closing = self.advance()
            if closing.kind != "op" or closing.text != ")":
                raise ExpressionError(f"Expected ')' at position {closing.position}", closing.position)
            return node
        if token.kind == "end":
            raise ExpressionError("Unexpected end of condition", token.position)
        raise ExpressionError(f"Unexpected {token.text!r} at position {token.position}", token.position)


def parse_condition(text: str) -> Condition:
    """Parse a consistency condition.

    Raises:
        ExpressionError: If the text is empty or not a valid condition.

    Examples:
        >>> parse_condition("DE1 + DE2 == DE3").op
        '=='
    """
    if text is None or not str(text).strip():
        raise ExpressionError("Empty condition")
    return _Parser(str(text)).parse_condition()


def evaluate_node(node: Node, lookup: Callable[[int], float]) -> float:
    if isinstance(node, Num):
        return node.value
    if isinstance(node, Ref):
        return lookup(node.index)
    if isinstance(node, Neg):
        return -evaluate_node(node.operand, lookup)
    left = evaluate_node(node.left, lookup)
    right = evaluate_node(node.right, lookup)
    return left + right if node.op == "+" else left - right


def evaluate(
    condition: Condition,
    lookup: Callable[[int], float],
    tolerance: Optional[float] = None,
) -> Outcome:
    """Evaluate a parsed condition with values supplied by ``lookup(index)``."""
    tol = EQUALITY_TOLERANCE if tolerance is None else tolerance
    left = evaluate_node(condition.left, lookup)
    right = evaluate_node(condition.right, lookup)
    op = condition.op
    if op == "==":
        passed = abs(left - right) < tol
    elif op == "!=":
        passed = abs(left - right) >= tol
    elif op == "<=":
        passed = left <= right
    elif op == ">=":
        passed = left >= right
    elif op == "<":
        passed = left < right
    else:
        passed = left > right
    return Outcome(passed, left, right)
