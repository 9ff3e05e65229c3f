"""
Tree-walking interpreter for parsed dynamic code.

The only names a program can resolve are its own declarations and the
globals mapping handed to the Interpreter. Host objects are reached solely
through SandboxObject.sandbox_member, so Python attributes are never
reflected into the sandbox.
"""
from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from . import nodes as n
from .builtins import power, primitive_member
from .errors import (
    ExecutionTimeout,
    SandboxError,
    SandboxRangeError,
    SandboxReferenceError,
    SandboxSyntaxError,
    SandboxTypeError,
)
from .values import (
    MAX_ARRAY_LENGTH,
    UNDEFINED,
    SandboxObject,
    add,
    checked_string,
    compare,
    divide,
    is_callable_value,
    is_number,
    loose_equals,
    modulo,
    strict_equals,
    to_js_string,
    to_number,
    truthy,
    type_of,
)

_log = logging.getLogger("tpn.sandbox")

_BLOCKED_MEMBERS = frozenset({"constructor", "prototype", "__proto__"})


@dataclass(frozen=True)
class ExecutionLimits:
    max_steps: int = 200_000
    timeout_seconds: float = 1.0
    max_call_depth: int = 32


class _Budget:
    """Steps and wall-clock deadline shared by one top-level run."""

    __slots__ = ("steps", "max_steps", "deadline", "timeout_seconds")

    def __init__(self, limits: ExecutionLimits):
        self.steps = 0
        self.max_steps = limits.max_steps
        self.timeout_seconds = limits.timeout_seconds
        self.deadline = time.monotonic() + limits.timeout_seconds

    def tick(self) -> None:
        self.steps += 1
        if self.steps > self.max_steps:
            raise ExecutionTimeout(f"Execution exceeded {self.max_steps} steps")
        if not self.steps & 511 and time.monotonic() > self.deadline:
            raise ExecutionTimeout(f"Execution timed out after {self.timeout_seconds}s")


_active = threading.local()


class _Return(Exception):
    def __init__(self, value: Any):
        self.value = value


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


class Scope:
    __slots__ = ("vars", "consts", "parent", "is_function")

    def __init__(self, parent: Optional["Scope"] = None, is_function: bool = False):
        self.vars: Dict[str, Any] = {}
        self.consts: Set[str] = set()
        self.parent = parent
        self.is_function = is_function

    def find(self, name: str) -> Optional["Scope"]:
        scope: Optional[Scope] = self
        while scope is not None:
            if name in scope.vars:
                return scope
            scope = scope.parent
        return None

    def function_scope(self) -> "Scope":
        scope = self
        while not scope.is_function and scope.parent is not None:
            scope = scope.parent
        return scope

    def declare(self, name: str, value: Any, const: bool = False) -> None:
        self.vars[name] = value
        if const:
            self.consts.add(name)


class SandboxFunction:
    """A function value created by dynamic code; callable from host helpers too."""

    def __init__(self, node: n.FunctionExpr, closure: Scope, interpreter: "Interpreter"):
        self.node = node
        self.closure = closure
        self._interpreter = interpreter

    @property
    def name(self) -> str:
        return self.node.name or "anonymous"

    def __call__(self, *args: Any) -> Any:
        return self._interpreter.call_function(self, list(args))

    def __repr__(self) -> str:
        return f"<SandboxFunction {self.name}>"


def _describe(node: n.Node) -> str:
    if isinstance(node, n.Identifier):
        return node.name
    if isinstance(node, n.Member) and not node.computed and isinstance(node.prop, n.Literal):
        return f"{_describe(node.obj)}.{node.prop.value}"
    if isinstance(node, n.Call):
        return f"{_describe(node.callee)}(...)"
    return "expression"


def _clamp_number(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool) and abs(value) > 2 ** 53:
        try:
            return float(value)
        except OverflowError:
            return math.inf if value > 0 else -math.inf
    return value


class Interpreter:
    def __init__(self, globals_: Mapping[str, Any], limits: Optional[ExecutionLimits] = None):
        self.limits = limits or ExecutionLimits()
        self.root = Scope(is_function=True)
        for name, value in globals_.items():
            self.root.declare(name, value, const=True)
        self.budget = _Budget(self.limits)
        self.depth = 0

        self._exec_table: Dict[type, Callable[[Any, Scope], None]] = {
            n.Block: self._exec_block,
            n.VarDecl: self._exec_var,
            n.FunctionDecl: self._exec_function_decl,
            n.Return: self._exec_return,
            n.If: self._exec_if,
            n.For: self._exec_for,
            n.ForOf: self._exec_for_of,
            n.While: self._exec_while,
            n.DoWhile: self._exec_do_while,
            n.Break: self._exec_break,
            n.Continue: self._exec_continue,
            n.ExprStmt: self._exec_expr,
            n.Empty: lambda node, scope: None,
        }
        self._eval_table: Dict[type, Callable[[Any, Scope], Any]] = {
            n.Literal: lambda node, scope: node.value,
            n.TemplateLiteral: self._eval_template,
            n.Identifier: self._eval_identifier,
            n.ArrayLiteral: self._eval_array,
            n.ObjectLiteral: self._eval_object,
            n.Member: self._eval_member,
            n.Call: self._eval_call,
            n.Unary: self._eval_unary,
            n.Update: self._eval_update,
            n.Binary: self._eval_binary,
            n.Logical: self._eval_logical,
            n.Conditional: self._eval_conditional,
            n.Assign: self._eval_assign,
            n.Sequence: self._eval_sequence,
            n.FunctionExpr: lambda node, scope: SandboxFunction(node, scope, self),
        }

    # --- entry point -------------------------------------------------------

    def run(self, program: n.Program, bindings: Optional[Mapping[str, Any]] = None) -> Any:
        # Host callables that re-enter the sandbox (extension functions) draw
        # from the budget of the run that called them.
        outer = getattr(_active, "budget", None)
        self.budget = outer or _Budget(self.limits)
        _active.budget = self.budget
        self.depth = 0
        scope = Scope(self.root, is_function=True)
        for name, value in (bindings or {}).items():
            scope.declare(name, value)
        try:
            self._exec_statements(program.body, scope)
        except _Return as ret:
            return ret.value
        except (_Break, _Continue):
            raise SandboxSyntaxError("Illegal break or continue statement") from None
        except RecursionError:
            raise ExecutionTimeout("Maximum call stack size exceeded") from None
        finally:
            _active.budget = outer
        return UNDEFINED

    def _tick(self) -> None:
        self.budget.tick()

    # --- statements --------------------------------------------------------

    def execute(self, node: n.Node, scope: Scope) -> None:
        self._tick()
        self._exec_table[type(node)](node, scope)

    def _exec_statements(self, body: List[n.Node], scope: Scope) -> None:
        for stmt in body:
            if isinstance(stmt, n.FunctionDecl) and stmt.function.name:
                scope.declare(stmt.function.name, SandboxFunction(stmt.function, scope, self))
        for stmt in body:
            self.execute(stmt, scope)

    def _exec_block(self, node: n.Block, scope: Scope) -> None:
        self._exec_statements(node.body, Scope(scope))

    def _exec_var(self, node: n.VarDecl, scope: Scope) -> None:
        target = scope.function_scope() if node.kind == "var" else scope
        for name, init in node.declarations:
            if init is None:
                if node.kind == "var" and name in target.vars:
                    continue
                value = UNDEFINED
            else:
                value = self.evaluate(init, scope)
            if node.kind != "var" and name in target.vars and target is not self.root:
                raise SandboxSyntaxError(f"Identifier '{name}' has already been declared")
            target.declare(name, value, const=node.kind == "const")

    def _exec_function_decl(self, node: n.FunctionDecl, scope: Scope) -> None:
        # hoisted in _exec_statements
        return None

    def _exec_return(self, node: n.Return, scope: Scope) -> None:
        value = UNDEFINED if node.argument is None else self.evaluate(node.argument, scope)
        raise _Return(value)

    def _exec_if(self, node: n.If, scope: Scope) -> None:
        if truthy(self.evaluate(node.test, scope)):
            self.execute(node.consequent, scope)
        elif node.alternate is not None:
            self.execute(node.alternate, scope)

    def _loop_body(self, body: n.Node, scope: Scope) -> bool:
        """Run one iteration; False means the loop was broken out of."""
        try:
            self.execute(body, scope)
        except _Break:
            return False
        except _Continue:
            pass
        return True

    def _exec_for(self, node: n.For, scope: Scope) -> None:
        loop_scope = Scope(scope)
        if node.init is not None:
            self.execute(node.init, loop_scope)
        while True:
            if node.test is not None and not truthy(self.evaluate(node.test, loop_scope)):
                return
            if not self._loop_body(node.body, loop_scope):
                return
            if node.update is not None:
                self.evaluate(node.update, loop_scope)

    def _exec_for_of(self, node: n.ForOf, scope: Scope) -> None:
        iterable = self.evaluate(node.iterable, scope)
        if isinstance(iterable, str):
            items: List[Any] = list(iterable)
        elif isinstance(iterable, list):
            items = iterable
        else:
            raise SandboxTypeError(f"{_describe(node.iterable)} is not iterable")

        i = 0
        while i < len(items):
            iter_scope = Scope(scope)
            if node.kind is None:
                self._assign_name(node.name, items[i], scope)
            elif node.kind == "var":
                scope.function_scope().declare(node.name, items[i])
            else:
                iter_scope.declare(node.name, items[i], const=node.kind == "const")
            if not self._loop_body(node.body, iter_scope):
                return
            i += 1

    def _exec_while(self, node: n.While, scope: Scope) -> None:
        while truthy(self.evaluate(node.test, scope)):
            if not self._loop_body(node.body, scope):
                return

    def _exec_do_while(self, node: n.DoWhile, scope: Scope) -> None:
        while True:
            if not self._loop_body(node.body, scope):
                return
            if not truthy(self.evaluate(node.test, scope)):
                return

    def _exec_break(self, node: n.Break, scope: Scope) -> None:
        raise _Break()

    def _exec_continue(self, node: n.Continue, scope: Scope) -> None:
        raise _Continue()

    def _exec_expr(self, node: n.ExprStmt, scope: Scope) -> None:
        self.evaluate(node.expr, scope)

    # --- functions ---------------------------------------------------------

    def call_function(self, fn: SandboxFunction, args: List[Any]) -> Any:
        if self.depth >= self.limits.max_call_depth:
            raise ExecutionTimeout("Maximum call stack size exceeded")
        scope = Scope(fn.closure, is_function=True)
        if fn.node.name and not fn.node.arrow:
            scope.declare(fn.node.name, fn)
        for i, param in enumerate(fn.node.params):
            scope.declare(param, args[i] if i < len(args) else UNDEFINED)

        self.depth += 1
        try:
            self._exec_statements(fn.node.body.body, scope)
        except _Return as ret:
            return ret.value
        except (_Break, _Continue):
            raise SandboxSyntaxError("Illegal break or continue statement") from None
        finally:
            self.depth -= 1
        return UNDEFINED

    def invoke(self, fn: Any, args: List[Any], label: str) -> Any:
        if isinstance(fn, SandboxFunction):
            return self.call_function(fn, args)
        if not is_callable_value(fn) or isinstance(fn, SandboxObject):
            raise SandboxTypeError(f"{label} is not a function")
        try:
            result = fn(*args)
        except SandboxError:
            raise
        except RecursionError:
            raise ExecutionTimeout("Maximum call stack size exceeded") from None
        except TypeError as exc:
            raise SandboxTypeError(f"{label}: {exc}") from exc
        except (ValueError, ArithmeticError) as exc:
            raise SandboxError(f"{label}: {exc}") from exc
        if isinstance(result, tuple):
            return list(result)
        return UNDEFINED if result is NotImplemented else result

    # --- expressions -------------------------------------------------------

    def evaluate(self, node: n.Node, scope: Scope) -> Any:
        self._tick()
        return self._eval_table[type(node)](node, scope)

    def _eval_template(self, node: n.TemplateLiteral, scope: Scope) -> str:
        out = [node.quasis[0]]
        for expr, quasi in zip(node.expressions, node.quasis[1:]):
            out.append(to_js_string(self.evaluate(expr, scope)))
            out.append(quasi)
        return checked_string("".join(out))

    def _eval_identifier(self, node: n.Identifier, scope: Scope) -> Any:
        owner = scope.find(node.name)
        if owner is None:
            raise SandboxReferenceError(f"{node.name} is not defined")
        return owner.vars[node.name]

    def _eval_array(self, node: n.ArrayLiteral, scope: Scope) -> List[Any]:
        return [self.evaluate(item, scope) for item in node.elements]

    def _eval_object(self, node: n.ObjectLiteral, scope: Scope) -> Dict[str, Any]:
        return {key: self.evaluate(value, scope) for key, value in node.properties}

    def _member_key(self, node: n.Member, scope: Scope) -> Any:
        if node.computed:
            return self.evaluate(node.prop, scope)
        return node.prop.value  # type: ignore[attr-defined]

    def get_member(self, obj: Any, key: Any) -> Any:
        if obj is None or obj is UNDEFINED:
            raise SandboxTypeError(
                f"Cannot read properties of {to_js_string(obj)} (reading '{to_js_string(key)}')"
            )
        if isinstance(obj, (list, str)) and is_number(key):
            if isinstance(key, float) and not key.is_integer():
                return UNDEFINED
            idx = int(key)
            return obj[idx] if 0 <= idx < len(obj) else UNDEFINED

        name = to_js_string(key)
        if name.startswith("_") or name in _BLOCKED_MEMBERS:
            return UNDEFINED
        if isinstance(obj, list) and name.isdigit():
            return self.get_member(obj, int(name))
        if isinstance(obj, dict):
            return obj.get(name, UNDEFINED)
        if isinstance(obj, SandboxObject):
            return obj.sandbox_member(name)
        member = primitive_member(obj, name)
        return UNDEFINED if member is None else member

    def set_member(self, obj: Any, key: Any, value: Any) -> None:
        if obj is None or obj is UNDEFINED:
            raise SandboxTypeError(
                f"Cannot set properties of {to_js_string(obj)} (setting '{to_js_string(key)}')"
            )
        name = to_js_string(key)
        if name.startswith("_") or name in _BLOCKED_MEMBERS:
            raise SandboxTypeError(f"Cannot assign to property '{name}'")
        if isinstance(obj, dict):
            obj[name] = value
            return
        if isinstance(obj, list):
            if name == "length":
                length = int(to_number(value))
                if not 0 <= length <= MAX_ARRAY_LENGTH:
                    raise SandboxRangeError("Invalid array length")
                del obj[length:]
                obj.extend([UNDEFINED] * (length - len(obj)))
                return
            if name.isdigit():
                idx = int(name)
                if idx >= MAX_ARRAY_LENGTH:
                    raise SandboxRangeError("Invalid array length")
                if idx >= len(obj):
                    obj.extend([UNDEFINED] * (idx + 1 - len(obj)))
                obj[idx] = value
                return
        raise SandboxTypeError(f"Cannot assign to read only property '{name}' of {type_of(obj)}")

    def _eval_member(self, node: n.Member, scope: Scope) -> Any:
        obj = self.evaluate(node.obj, scope)
        if node.optional and (obj is None or obj is UNDEFINED):
            return UNDEFINED
        return self.get_member(obj, self._member_key(node, scope))

    def _eval_call(self, node: n.Call, scope: Scope) -> Any:
        callee = node.callee
        if isinstance(callee, n.Member):
            obj = self.evaluate(callee.obj, scope)
            if callee.optional and (obj is None or obj is UNDEFINED):
                return UNDEFINED
            fn = self.get_member(obj, self._member_key(callee, scope))
        else:
            fn = self.evaluate(callee, scope)
        if node.optional and (fn is None or fn is UNDEFINED):
            return UNDEFINED
        args = [self.evaluate(arg, scope) for arg in node.args]
        return self.invoke(fn, args, _describe(callee))

    def _eval_unary(self, node: n.Unary, scope: Scope) -> Any:
        if node.op == "typeof":
            if isinstance(node.operand, n.Identifier) and scope.find(node.operand.name) is None:
                return "undefined"
            return type_of(self.evaluate(node.operand, scope))
        value = self.evaluate(node.operand, scope)
        if node.op == "!":
            return not truthy(value)
        if node.op == "-":
            return -to_number(value)
        if node.op == "+":
            return to_number(value)
        return UNDEFINED  # void

    def _read_target(self, target: n.Node, scope: Scope):
        """Current value of an assignment target plus a setter for it."""
        if isinstance(target, n.Identifier):
            def set_name(value: Any) -> None:
                self._assign_name(target.name, value, scope)
            return self._eval_identifier(target, scope), set_name

        member: n.Member = target  # type: ignore[assignment]
        obj = self.evaluate(member.obj, scope)
        key = self._member_key(member, scope)

        def set_prop(value: Any) -> None:
            self.set_member(obj, key, value)
        return self.get_member(obj, key), set_prop

    def _assign_name(self, name: str, value: Any, scope: Scope) -> None:
        owner = scope.find(name)
        if owner is None:
            # undeclared assignment lands in the program scope, never on the host
            owner = self.root_program_scope(scope)
        elif name in owner.consts:
            raise SandboxTypeError("Assignment to constant variable.")
        owner.vars[name] = value

    def root_program_scope(self, scope: Scope) -> Scope:
        while scope.parent is not None and scope.parent is not self.root:
            scope = scope.parent
        return scope

    def _eval_update(self, node: n.Update, scope: Scope) -> Any:
        current, setter = self._read_target(node.target, scope)
        old = to_number(current)
        new = old + 1 if node.op == "++" else old - 1
        setter(_clamp_number(new))
        return new if node.prefix else old

    def _binary(self, op: str, left: Any, right: Any) -> Any:
        if op == "+":
            return _clamp_number(add(left, right))
        if op == "-":
            return _clamp_number(to_number(left) - to_number(right))
        if op == "*":
            return _clamp_number(to_number(left) * to_number(right))
        if op == "/":
            return divide(left, right)
        if op == "%":
            return modulo(left, right)
        if op == "**":
            return power(left, right)
        if op == "==":
            return loose_equals(left, right)
        if op == "!=":
            return not loose_equals(left, right)
        if op == "===":
            return strict_equals(left, right)
        if op == "!==":
            return not strict_equals(left, right)
        if op in ("<", ">", "<=", ">="):
            return compare(left, right, op)
        raise SandboxSyntaxError(f"Unsupported operator {op}")

    def _eval_binary(self, node: n.Binary, scope: Scope) -> Any:
        left = self.evaluate(node.left, scope)
        right = self.evaluate(node.right, scope)
        return self._binary(node.op, left, right)

    def _eval_logical(self, node: n.Logical, scope: Scope) -> Any:
        left = self.evaluate(node.left, scope)
        if node.op == "&&":
            return self.evaluate(node.right, scope) if truthy(left) else left
        if node.op == "||":
            return left if truthy(left) else self.evaluate(node.right, scope)
        return self.evaluate(node.right, scope) if left is None or left is UNDEFINED else left

    def _eval_conditional(self, node: n.Conditional, scope: Scope) -> Any:
        if truthy(self.evaluate(node.test, scope)):
            return self.evaluate(node.consequent, scope)
        return self.evaluate(node.alternate, scope)

    def _eval_assign(self, node: n.Assign, scope: Scope) -> Any:
        if node.op == "=":
            if isinstance(node.target, n.Identifier):
                value = self.evaluate(node.value, scope)
                self._assign_name(node.target.name, value, scope)
                return value
            member: n.Member = node.target  # type: ignore[assignment]
            obj = self.evaluate(member.obj, scope)
            key = self._member_key(member, scope)
            value = self.evaluate(node.value, scope)
            self.set_member(obj, key, value)
            return value

        current, setter = self._read_target(node.target, scope)
        value = self._binary(node.op[:-1], current, self.evaluate(node.value, scope))
        setter(value)
        return value

    def _eval_sequence(self, node: n.Sequence, scope: Scope) -> Any:
        result: Any = UNDEFINED
        for expr in node.expressions:
            result = self.evaluate(expr, scope)
        return result
