from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple


class Node:
    pass


# --- expressions ---------------------------------------------------------

@dataclass
class Literal(Node):
    value: Any


@dataclass
class TemplateLiteral(Node):
    quasis: List[str]
    expressions: List[Node]


@dataclass
class Identifier(Node):
    name: str


@dataclass
class ArrayLiteral(Node):
    elements: List[Node]


@dataclass
class ObjectLiteral(Node):
    properties: List[Tuple[str, Node]]


@dataclass
class Member(Node):
    obj: Node
    prop: Node  # Literal(str) when not computed
    computed: bool = False
    optional: bool = False


@dataclass
class Call(Node):
    callee: Node
    args: List[Node]
    optional: bool = False


@dataclass
class Unary(Node):
    op: str
    operand: Node


@dataclass
class Update(Node):
    op: str  # "++" | "--"
    prefix: bool
    target: Node


@dataclass
class Binary(Node):
    op: str
    left: Node
    right: Node


@dataclass
class Logical(Node):
    op: str  # "&&" | "||" | "??"
    left: Node
    right: Node


@dataclass
class Conditional(Node):
    test: Node
    consequent: Node
    alternate: Node


@dataclass
class Assign(Node):
    op: str
    target: Node
    value: Node


@dataclass
class Sequence(Node):
    expressions: List[Node]


@dataclass
class FunctionExpr(Node):
    name: Optional[str]
    params: List[str]
    body: "Block"
    arrow: bool = False


# --- statements ----------------------------------------------------------

@dataclass
class Block(Node):
    body: List[Node] = field(default_factory=list)


@dataclass
class Program(Node):
    body: List[Node] = field(default_factory=list)


@dataclass
class VarDecl(Node):
    kind: str
    declarations: List[Tuple[str, Optional[Node]]]


@dataclass
class FunctionDecl(Node):
    function: FunctionExpr


@dataclass
class Return(Node):
    argument: Optional[Node]


@dataclass
class If(Node):
    test: Node
    consequent: Node
    alternate: Optional[Node]


@dataclass
class For(Node):
    init: Optional[Node]
    test: Optional[Node]
    update: Optional[Node]
    body: Node


@dataclass
class ForOf(Node):
    kind: Optional[str]
    name: str
    iterable: Node
    body: Node


@dataclass
class While(Node):
    test: Node
    body: Node


@dataclass
class DoWhile(Node):
    body: Node
    test: Node


@dataclass
class Break(Node):
    pass


@dataclass
class Continue(Node):
    pass


@dataclass
class ExprStmt(Node):
    expr: Node


@dataclass
class Empty(Node):
    pass
