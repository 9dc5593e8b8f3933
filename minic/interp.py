from __future__ import annotations

import asyncio
import logging
import math
from typing import Dict, Mapping, Optional, Sequence

from . import ast
from .errors import EvaluationError, RecursionLimitExceeded
from .parser import parse_expr
from .runtime import BUILTINS, BuiltinFunction, Number, RuntimeContext, Value, as_number, format_printf

logger = logging.getLogger(__name__)


class ReturnSignal(Exception):
    def __init__(self, value: Number) -> None:
        self.value = value


class BreakSignal(Exception):
    pass


class ContinueSignal(Exception):
    pass


class Scope:
    """
    Name -> number bindings for one activation or block.

    A block scope is a child of the scope it appears in: it reads and
    assigns the enclosing bindings, while its own declarations vanish with
    it. Function activations start from a parentless scope.
    """

    def __init__(self, parent: Scope | None = None) -> None:
        self.parent = parent
        self.values: Dict[str, Number] = {}

    def child(self) -> Scope:
        return Scope(parent=self)

    def define(self, name: str, value: Number) -> None:
        self.values[name] = value

    def has(self, name: str) -> bool:
        if name in self.values:
            return True
        return self.parent.has(name) if self.parent else False

    def set(self, name: str, value: Number) -> bool:
        if name in self.values:
            self.values[name] = value
            return True
        if self.parent:
            return self.parent.set(name, value)
        return False

    def get(self, name: str) -> Number:
        if name in self.values:
            return self.values[name]
        if self.parent:
            return self.parent.get(name)
        raise EvaluationError(f"Unknown identifier '{name}'")


class Interpreter:
    def __init__(
        self,
        program: ast.Program,
        ctx: RuntimeContext,
        builtins: Mapping[str, BuiltinFunction] | None = None,
    ) -> None:
        self.functions = program.functions
        self.ctx = ctx
        self.builtins = builtins or BUILTINS
        self.depth = 0

    async def call(self, name: str, *args: Number) -> Number:
        fn = self.functions.get(name)
        if fn is None:
            raise EvaluationError(f"Unknown function '{name}'")
        return await self._call_function(fn, list(args))

    async def evaluate(self, expr: ast.Expr | str, scope: Scope) -> Number:
        """Evaluate to a number; anything that cannot be evaluated is 0."""
        if isinstance(expr, str):
            expr = parse_expr(expr)
        try:
            value = await self._eval(expr, scope)
        except (EvaluationError, RecursionError) as exc:
            logger.debug("expression degraded to 0: %s", exc)
            return 0
        if isinstance(value, str):
            return 0
        return value

    async def execute_block(self, block: ast.Block, scope: Scope) -> None:
        for stmt in block.statements:
            await self._exec_stmt(stmt, scope)
            await self._yield()

    async def _yield(self) -> None:
        self.ctx.cancel.raise_if_cancelled()
        await asyncio.sleep(self.ctx.options.yield_delay)
        self.ctx.cancel.raise_if_cancelled()

    async def _call_function(self, fn: ast.FunctionDef, args: Sequence[Number]) -> Number:
        if self.depth >= self.ctx.options.max_call_depth:
            raise RecursionLimitExceeded(fn.name, self.depth)
        scope = Scope()
        for idx, param in enumerate(fn.params):
            scope.define(param.name, args[idx] if idx < len(args) else 0)
        self.depth += 1
        try:
            await self.execute_block(fn.body, scope)
        except ReturnSignal as signal:
            return signal.value
        except (BreakSignal, ContinueSignal):
            logger.debug("break/continue outside a loop in %s", fn.name)
        finally:
            self.depth -= 1
        return 0

    async def _exec_stmt(self, stmt: ast.Stmt, scope: Scope) -> None:
        if isinstance(stmt, ast.Return):
            value = await self.evaluate(stmt.value, scope) if stmt.value else 0
            raise ReturnSignal(value)
        if isinstance(stmt, ast.Printf):
            values = [await self._eval_arg(arg, scope) for arg in stmt.args]
            self.ctx.emit(format_printf(stmt.fmt, values))
            return
        if isinstance(stmt, ast.Declaration):
            for declarator in stmt.declarators:
                value = await self.evaluate(declarator.value, scope) if declarator.value else 0
                scope.define(declarator.name, value)
            return
        if isinstance(stmt, ast.Assignment):
            await self._assign(stmt, scope)
            return
        if isinstance(stmt, ast.If):
            branch = stmt.then_block if await self.evaluate(stmt.condition, scope) else stmt.else_block
            if branch is not None:
                await self.execute_block(branch, scope.child())
            return
        if isinstance(stmt, ast.While):
            await self._exec_while(stmt, scope)
            return
        if isinstance(stmt, ast.For):
            await self._exec_for(stmt, scope)
            return
        if isinstance(stmt, ast.ExprStmt):
            await self.evaluate(stmt.value, scope)
            return
        if isinstance(stmt, ast.Break):
            raise BreakSignal()
        if isinstance(stmt, ast.Continue):
            raise ContinueSignal()
        if isinstance(stmt, ast.Compound):
            await self.execute_block(stmt.body, scope.child())
            return
        logger.debug("ignoring statement %r", stmt)

    async def _exec_while(self, stmt: ast.While, scope: Scope) -> None:
        iterations = 0
        while await self.evaluate(stmt.condition, scope):
            if iterations >= self.ctx.options.max_loop_iterations:
                self._report_runaway(stmt)
                return
            iterations += 1
            try:
                await self.execute_block(stmt.body, scope.child())
            except BreakSignal:
                return
            except ContinueSignal:
                pass
            await self._yield()

    async def _exec_for(self, stmt: ast.For, scope: Scope) -> None:
        loop_scope = scope.child()
        if stmt.init is not None:
            await self._exec_stmt(stmt.init, loop_scope)
        iterations = 0
        while stmt.condition is None or await self.evaluate(stmt.condition, loop_scope):
            if iterations >= self.ctx.options.max_loop_iterations:
                self._report_runaway(stmt)
                return
            iterations += 1
            try:
                await self.execute_block(stmt.body, loop_scope.child())
            except BreakSignal:
                return
            except ContinueSignal:
                pass
            if stmt.step is not None:
                await self._exec_stmt(stmt.step, loop_scope)
            await self._yield()

    def _report_runaway(self, stmt: ast.Stmt) -> None:
        limit = self.ctx.options.max_loop_iterations
        logger.warning("loop %r hit the %d iteration cap", stmt.source, limit)
        self.ctx.emit(f"Error: infinite loop detected (exceeded {limit} iterations)\n")

    async def _assign(self, stmt: ast.Assignment, scope: Scope) -> None:
        value: Optional[Number] = None
        if stmt.value is not None:
            value = await self.evaluate(stmt.value, scope)
        if not scope.has(stmt.target):
            logger.debug("assignment to undeclared '%s' ignored", stmt.target)
            return
        if stmt.op == "=":
            scope.set(stmt.target, value)
            return
        current = scope.get(stmt.target)
        if stmt.op == "++":
            scope.set(stmt.target, current + 1)
        elif stmt.op == "--":
            scope.set(stmt.target, current - 1)
        else:
            try:
                result = _arith(stmt.op[:-1], current, value or 0)
            except EvaluationError as exc:
                logger.debug("compound assignment degraded to 0: %s", exc)
                result = 0
            scope.set(stmt.target, result)

    async def _eval_arg(self, expr: ast.Expr, scope: Scope) -> Value:
        """Like evaluate(), but string literals survive for printf's %s."""
        try:
            return await self._eval(expr, scope)
        except (EvaluationError, RecursionError) as exc:
            logger.debug("printf argument degraded to 0: %s", exc)
            return 0

    async def _eval(self, expr: ast.Expr, scope: Scope) -> Value:
        if isinstance(expr, ast.Literal):
            return expr.value
        if isinstance(expr, ast.Name):
            return scope.get(expr.ident)
        if isinstance(expr, ast.Call):
            return await self._eval_call(expr, scope)
        if isinstance(expr, ast.Unary):
            operand = as_number(await self._eval(expr.operand, scope))
            if expr.op == "-":
                return -operand
            if expr.op == "!":
                return int(not operand)
            raise EvaluationError(f"Unknown unary operator {expr.op}")
        if isinstance(expr, ast.Binary):
            return await self._eval_binary(expr, scope)
        if isinstance(expr, ast.Invalid):
            raise EvaluationError(f"cannot evaluate {expr.text!r}")
        raise EvaluationError(f"Unsupported expression {expr}")

    async def _eval_binary(self, expr: ast.Binary, scope: Scope) -> Number:
        op = expr.op
        if op == "&&":
            if not as_number(await self._eval(expr.left, scope)):
                return 0
            return int(bool(as_number(await self._eval(expr.right, scope))))
        if op == "||":
            if as_number(await self._eval(expr.left, scope)):
                return 1
            return int(bool(as_number(await self._eval(expr.right, scope))))
        left = as_number(await self._eval(expr.left, scope))
        right = as_number(await self._eval(expr.right, scope))
        return _arith(op, left, right)

    async def _eval_call(self, expr: ast.Call, scope: Scope) -> Number:
        fn = self.functions.get(expr.func)
        if fn is not None:
            args = [await self.evaluate(arg, scope) for arg in expr.args]
            return await self._call_function(fn, args)
        builtin = self.builtins.get(expr.func)
        if builtin is not None:
            if len(expr.args) != builtin.arity:
                raise EvaluationError(f"{builtin.name} expects {builtin.arity} args, got {len(expr.args)}")
            args = [await self.evaluate(arg, scope) for arg in expr.args]
            return builtin.impl(args)
        raise EvaluationError(f"Unknown function '{expr.func}'")


def _trunc_div(left: int, right: int) -> int:
    quotient = abs(left) // abs(right)
    return quotient if (left >= 0) == (right >= 0) else -quotient


def _arith(op: str, left: Number, right: Number) -> Number:
    if op == "+":
        return left + right
    if op == "-":
        return left - right
    if op == "*":
        return left * right
    if op in ("/", "%"):
        if right == 0:
            raise EvaluationError("division by zero")
        both_int = isinstance(left, int) and isinstance(right, int)
        if op == "/":
            return _trunc_div(left, right) if both_int else left / right
        return left - right * _trunc_div(left, right) if both_int else math.fmod(left, right)
    if op == "==":
        return int(left == right)
    if op == "!=":
        return int(left != right)
    if op == "<":
        return int(left < right)
    if op == "<=":
        return int(left <= right)
    if op == ">":
        return int(left > right)
    if op == ">=":
        return int(left >= right)
    raise EvaluationError(f"Unsupported operator {op}")
