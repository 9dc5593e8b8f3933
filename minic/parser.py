from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from lark import Lark, Token, Tree
from lark.exceptions import LarkError

from .ast import (
    Assignment,
    Binary,
    Block,
    Break,
    Call,
    Compound,
    Continue,
    Declaration,
    Declarator,
    Expr,
    ExprStmt,
    For,
    FunctionDef,
    If,
    Invalid,
    Literal,
    Located,
    Name,
    Param,
    Printf,
    Program,
    Return,
    Stmt,
    Unary,
    While,
)

logger = logging.getLogger(__name__)

_GRAMMAR_PATH = Path(__file__).with_name("grammar.lark")
_GRAMMAR_SRC = _GRAMMAR_PATH.read_text()

_PARSER = Lark(
    _GRAMMAR_SRC,
    parser="lalr",
    start="start",
    propagate_positions=True,
    maybe_placeholders=False,
)

_IDENT = r"[A-Za-z_]\w*"
_TYPE = r"(?:const\s+)?(?:(?:unsigned|signed|long|short)\s+)*(?:int|float|double|char|long|short|void|bool|unsigned)"

_FUNC_RE = re.compile(rf"^({_TYPE})\s+({_IDENT})\s*\(([^()]*)\)\s*(\{{)?$")
_RETURN_RE = re.compile(r"^return\b\s*(.*?)\s*;?$")
_PRINTF_RE = re.compile(r"^printf\s*\((.*)\)\s*;?$")
_DECL_RE = re.compile(rf"^({_TYPE})\s+(.+?)\s*;?$")
_DECLARATOR_RE = re.compile(rf"^({_IDENT})\s*(?:=\s*(.+))?$")
_ASSIGN_RE = re.compile(rf"^({_IDENT})\s*([-+*/%]?=)(?!=)\s*(.+?)\s*;?$")
_INCDEC_RE = re.compile(rf"^(?:({_IDENT})\s*(\+\+|--)|(\+\+|--)\s*({_IDENT}))\s*;?$")
_CONTROL_RE = re.compile(r"^(if|while|for)\s*\(")
_ELSE_RE = re.compile(r"^else\b\s*(.*)$")
_CALL_RE = re.compile(rf"^{_IDENT}\s*\(.*\)\s*;?$")
_BREAK_RE = re.compile(r"^break\s*;?$")
_CONTINUE_RE = re.compile(r"^continue\s*;?$")

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", "\\": "\\", '"': '"', "'": "'"}
_ESCAPE_RE = re.compile(r"\\(.)")


def split_lines(source: str) -> List[str]:
    """
    Break source text into one statement or brace per line.

    A line ends at a newline, after a `;` outside parentheses, after `{`, and
    on both sides of `}`. String and character literals are never split.
    """
    lines: List[str] = []
    current: List[str] = []
    paren_depth = 0
    quote: Optional[str] = None
    escaped = False

    def flush() -> None:
        text = "".join(current).strip()
        if text:
            lines.append(text)
        current.clear()

    for ch in source:
        if quote is not None:
            current.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
            continue
        if ch in "\"'":
            quote = ch
            current.append(ch)
            continue
        if ch == "\n":
            flush()
            continue
        if ch == "(":
            paren_depth += 1
        elif ch == ")" and paren_depth:
            paren_depth -= 1
        if ch == "}" and paren_depth == 0:
            flush()
            lines.append("}")
            continue
        current.append(ch)
        if paren_depth == 0 and ch in ";{":
            flush()
    flush()
    return lines


def parse_program(source: str) -> Program:
    lines = split_lines(source)
    return Program(functions=parse_functions(lines), lines=lines)


def parse_functions(lines: Sequence[str]) -> Dict[str, FunctionDef]:
    """
    Partition logical lines into function definitions by brace depth.

    Braces are counted on the raw text, including any inside string
    literals. A later definition of a name replaces an earlier one.
    """
    functions: Dict[str, FunctionDef] = {}
    current: Optional[FunctionDef] = None
    depth = 0
    opened = False
    for line in lines:
        if current is None:
            match = _FUNC_RE.match(line)
            if match is None:
                continue
            current = FunctionDef(
                name=match.group(2),
                return_type=match.group(1),
                params=_parse_params(match.group(3)),
                body_lines=[],
            )
            depth = line.count("{") - line.count("}")
            opened = depth > 0
            continue
        depth += line.count("{") - line.count("}")
        if not opened:
            if depth > 0:
                opened = True
            else:
                # a signature with no body following it
                current = None
                depth = 0
            continue
        if depth <= 0:
            _commit(functions, current)
            current = None
            depth = 0
            continue
        current.body_lines.append(line)
    if current is not None and opened:
        _commit(functions, current)
    return functions


def _commit(functions: Dict[str, FunctionDef], fn: FunctionDef) -> None:
    fn.body = parse_block(fn.body_lines)
    if fn.name in functions:
        logger.debug("function %s redefined; the later definition wins", fn.name)
    functions[fn.name] = fn


def _parse_params(text: str) -> List[Param]:
    text = text.strip()
    if not text or text == "void":
        return []
    params: List[Param] = []
    for raw in text.split(","):
        tokens = raw.split()
        if not tokens:
            continue
        params.append(Param(type_name=" ".join(tokens[:-1]), name=tokens[-1]))
    return params


def parse_block(lines: Sequence[str]) -> Block:
    statements: List[Stmt] = []
    index = 0
    while index < len(lines):
        stmt, index = _parse_statement(lines, index)
        if stmt is not None:
            statements.append(stmt)
    return Block(statements=statements)


def _parse_statement(lines: Sequence[str], index: int, line: str | None = None) -> Tuple[Optional[Stmt], int]:
    """
    Classify one statement. When `line` is given it stands in front of
    `lines[index:]`; otherwise it is `lines[index]`. Returns the statement
    (None for anything unrecognised) and the index of the next unread line.
    """
    if line is None:
        line = lines[index]
        index += 1
    if line == "{":
        body_lines, index = collect_block(lines, index)
        return Compound(source=line, body=parse_block(body_lines)), index
    control = _CONTROL_RE.match(line)
    if control is not None:
        return _parse_control(control.group(1), line, lines, index)
    stmt = _parse_simple(line)
    if stmt is None:
        logger.debug("skipping unrecognised line: %r", line)
    return stmt, index


def _parse_simple(line: str) -> Optional[Stmt]:
    match = _RETURN_RE.match(line)
    if match is not None:
        value = match.group(1)
        return Return(source=line, value=parse_expr(value) if value else None)
    match = _PRINTF_RE.match(line)
    if match is not None:
        return _parse_printf(line, match.group(1))
    match = _DECL_RE.match(line)
    if match is not None:
        return _parse_declaration(line, match.group(1), match.group(2))
    match = _ASSIGN_RE.match(line)
    if match is not None:
        return Assignment(source=line, target=match.group(1), op=match.group(2), value=parse_expr(match.group(3)))
    match = _INCDEC_RE.match(line)
    if match is not None:
        target = match.group(1) or match.group(4)
        op = match.group(2) or match.group(3)
        return Assignment(source=line, target=target, op=op)
    if _BREAK_RE.match(line):
        return Break(source=line)
    if _CONTINUE_RE.match(line):
        return Continue(source=line)
    if _CALL_RE.match(line):
        return ExprStmt(source=line, value=parse_expr(line.rstrip().rstrip(";")))
    return None


def _parse_printf(line: str, inner: str) -> Optional[Printf]:
    parts = split_args(inner)
    if not parts or len(parts[0]) < 2 or not (parts[0].startswith('"') and parts[0].endswith('"')):
        return None
    fmt = unescape(parts[0][1:-1])
    return Printf(source=line, fmt=fmt, args=[parse_expr(part) for part in parts[1:]])


def _parse_declaration(line: str, type_name: str, rest: str) -> Optional[Declaration]:
    declarators: List[Declarator] = []
    for part in split_args(rest):
        match = _DECLARATOR_RE.match(part)
        if match is None:
            # prototypes and anything else shaped like `int f(...)`
            return None
        value = match.group(2)
        declarators.append(Declarator(name=match.group(1), value=parse_expr(value) if value else None))
    if not declarators:
        return None
    return Declaration(source=line, type_name=type_name, declarators=declarators)


def _parse_control(keyword: str, line: str, lines: Sequence[str], index: int) -> Tuple[Optional[Stmt], int]:
    span = _paren_span(line, line.index("("))
    if span is None:
        logger.debug("unbalanced %s header: %r", keyword, line)
        return None, index
    header, rest = span
    body, index = _parse_body(rest, lines, index)
    if keyword == "if":
        else_block: Optional[Block] = None
        if index < len(lines):
            match = _ELSE_RE.match(lines[index])
            if match is not None:
                else_block, index = _parse_body(match.group(1), lines, index + 1)
        return If(source=line, condition=parse_expr(header), then_block=body, else_block=else_block), index
    if keyword == "while":
        return While(source=line, condition=parse_expr(header), body=body), index
    clauses = split_args(header, separator=";", keep_empty=True)
    if len(clauses) != 3:
        logger.debug("malformed for header: %r", header)
        return None, index
    init, condition, step = (clause.strip() for clause in clauses)
    return (
        For(
            source=line,
            init=_parse_simple(init) if init else None,
            condition=parse_expr(condition) if condition else None,
            step=_parse_simple(step) if step else None,
            body=body,
        ),
        index,
    )


def _parse_body(rest: str, lines: Sequence[str], index: int) -> Tuple[Block, int]:
    if rest == "{":
        body_lines, index = collect_block(lines, index)
        return parse_block(body_lines), index
    if not rest:
        if index >= len(lines):
            return Block(statements=[]), index
        if lines[index] == "{":
            return _parse_body("{", lines, index + 1)
        stmt, index = _parse_statement(lines, index)
    else:
        stmt, index = _parse_statement(lines, index, rest)
    return Block(statements=[stmt] if stmt is not None else []), index


def collect_block(lines: Sequence[str], index: int) -> Tuple[List[str], int]:
    """Gather the lines of a block whose opening brace has been consumed."""
    depth = 1
    body: List[str] = []
    while index < len(lines):
        line = lines[index]
        index += 1
        depth += line.count("{") - line.count("}")
        if depth <= 0:
            return body, index
        body.append(line)
    return body, index


def _paren_span(line: str, start: int) -> Optional[Tuple[str, str]]:
    depth = 0
    for pos in range(start, len(line)):
        if line[pos] == "(":
            depth += 1
        elif line[pos] == ")":
            depth -= 1
            if depth == 0:
                return line[start + 1 : pos], line[pos + 1 :].strip()
    return None


def split_args(text: str, separator: str = ",", keep_empty: bool = False) -> List[str]:
    """Split on `separator` outside parentheses and literals."""
    parts: List[str] = []
    current: List[str] = []
    depth = 0
    quote: Optional[str] = None
    escaped = False
    for ch in text:
        if quote is not None:
            current.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
            continue
        if ch in "\"'":
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")" and depth:
            depth -= 1
        elif ch == separator and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    parts.append("".join(current).strip())
    if keep_empty:
        return parts
    return [part for part in parts if part]


def unescape(text: str) -> str:
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(0)), text)


def parse_expr(text: str) -> Expr:
    try:
        tree = _PARSER.parse(text)
    except LarkError as exc:
        logger.debug("unparseable expression %r: %s", text, exc)
        return Invalid(loc=Located(line=1, column=1), text=text)
    try:
        return _build_expr(tree)
    except (ValueError, RecursionError) as exc:
        logger.debug("expression %r rejected: %s", text, exc)
        return Invalid(loc=Located(line=1, column=1), text=text)


def _build_expr(node) -> Expr:
    if isinstance(node, Tree):
        name = _name(node)
    else:
        raise TypeError(f"Unexpected node type: {type(node)}")

    if name == "start":
        return _build_expr(node.children[0])
    if name == "logic_or":
        return _fold_chain(node, "logic_or_tail")
    if name == "logic_and":
        return _fold_chain(node, "logic_and_tail")
    if name == "equality":
        return _fold_chain(node, "equality_tail")
    if name == "comparison":
        return _fold_chain(node, "comparison_tail")
    if name == "sum":
        return _fold_chain(node, "sum_tail")
    if name == "term":
        return _fold_chain(node, "term_tail")
    if name == "neg":
        return Unary(loc=_loc(node), op="-", operand=_build_expr(_subtree(node)))
    if name == "not_op":
        return Unary(loc=_loc(node), op="!", operand=_build_expr(_subtree(node)))
    if name == "pos":
        return _build_expr(_subtree(node))
    if name == "call":
        return _build_call(node)
    if name == "var":
        return Name(loc=_loc(node), ident=node.children[0].value)
    if name == "int_lit":
        return Literal(loc=_loc(node), value=int(node.children[0].value))
    if name == "float_lit":
        return Literal(loc=_loc(node), value=float(node.children[0].value))
    if name == "str_lit":
        raw = node.children[0].value
        return Literal(loc=_loc(node), value=unescape(raw[1:-1]))
    if name == "char_lit":
        raw = node.children[0].value
        decoded = unescape(raw[1:-1])
        if len(decoded) != 1:
            raise ValueError(f"unsupported character literal {raw}")
        return Literal(loc=_loc(node), value=ord(decoded))
    if node.children:
        return _build_expr(node.children[0])
    raise ValueError(f"Unsupported expression node: {name}")


def _build_call(tree: Tree) -> Call:
    name_token = next(child for child in tree.children if isinstance(child, Token) and child.type == "NAME")
    args_node = next((child for child in tree.children if isinstance(child, Tree)), None)
    args: List[Expr] = []
    if args_node is not None:
        args = [_build_expr(arg) for arg in args_node.children if isinstance(arg, Tree)]
    return Call(loc=_loc(tree), func=name_token.value, args=args)


def _fold_chain(tree: Tree, tail_name: str) -> Expr:
    child_nodes = [child for child in tree.children if isinstance(child, Tree)]
    result = _build_expr(child_nodes[0])
    for child in child_nodes[1:]:
        if _name(child) != tail_name:
            continue
        result = _binary_tail(result, child)
    return result


def _binary_tail(left: Expr, tail: Tree) -> Expr:
    op_token = tail.children[0]
    right = _build_expr(tail.children[1])
    return Binary(loc=_loc_from_token(op_token), op=op_token.value, left=left, right=right)


def _subtree(tree: Tree) -> Tree:
    return next(child for child in tree.children if isinstance(child, Tree))


def _loc(tree: Tree) -> Located:
    meta = tree.meta
    return Located(line=getattr(meta, "line", 1), column=getattr(meta, "column", 1))


def _loc_from_token(token: Token) -> Located:
    return Located(line=token.line, column=token.column)


def _name(node: Tree | Token) -> str:
    if isinstance(node, Tree):
        data = node.data
        if isinstance(data, Token):
            return data.value
        return data
    if isinstance(node, Token):
        return node.type
    return str(node)
