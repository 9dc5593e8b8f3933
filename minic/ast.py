from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union


@dataclass(frozen=True)
class Located:
    line: int
    column: int


class Expr:
    loc: Located


@dataclass
class Literal(Expr):
    loc: Located
    value: Union[int, float, str]


@dataclass
class Name(Expr):
    loc: Located
    ident: str


@dataclass
class Unary(Expr):
    loc: Located
    op: str
    operand: Expr


@dataclass
class Binary(Expr):
    loc: Located
    op: str
    left: Expr
    right: Expr


@dataclass
class Call(Expr):
    loc: Located
    func: str
    args: List[Expr]


@dataclass
class Invalid(Expr):
    """Text that did not parse as an expression; always evaluates to 0."""

    loc: Located
    text: str


@dataclass
class Block:
    statements: List["Stmt"]


class Stmt:
    source: str


@dataclass
class Declarator:
    name: str
    value: Optional[Expr]


@dataclass
class Declaration(Stmt):
    source: str
    type_name: str
    declarators: List[Declarator]


@dataclass
class Assignment(Stmt):
    source: str
    target: str
    op: str
    value: Optional[Expr] = None


@dataclass
class Return(Stmt):
    source: str
    value: Optional[Expr]


@dataclass
class Printf(Stmt):
    source: str
    fmt: str
    args: List[Expr]


@dataclass
class If(Stmt):
    source: str
    condition: Expr
    then_block: Block
    else_block: Optional[Block] = None


@dataclass
class While(Stmt):
    source: str
    condition: Expr
    body: Block


@dataclass
class For(Stmt):
    source: str
    init: Optional[Stmt]
    condition: Optional[Expr]
    step: Optional[Stmt]
    body: Block


@dataclass
class ExprStmt(Stmt):
    source: str
    value: Expr


@dataclass
class Compound(Stmt):
    """A bare `{ ... }` block; its declarations end with it."""

    source: str
    body: Block


@dataclass
class Break(Stmt):
    source: str


@dataclass
class Continue(Stmt):
    source: str


@dataclass
class Param:
    type_name: str
    name: str


@dataclass
class FunctionDef:
    name: str
    return_type: str
    params: List[Param]
    body_lines: List[str]
    body: Block = field(default_factory=lambda: Block(statements=[]))


@dataclass
class Program:
    functions: Dict[str, FunctionDef]
    lines: List[str]
