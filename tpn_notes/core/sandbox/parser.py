"""
Recursive-descent parser for the expression/statement subset used in stored
notes. Anything outside the subset is a SandboxSyntaxError at parse time, so
unsupported constructs never reach the interpreter.
"""
from __future__ import annotations

from typing import List, Optional, Tuple

from . import nodes as n
from .errors import SandboxSyntaxError
from .lexer import Token, tokenize
from .values import number_to_string

ASSIGN_OPS = frozenset({"=", "+=", "-=", "*=", "/=", "%=", "**="})

BINARY_PRECEDENCE = {
    "??": 1,
    "||": 2,
    "&&": 3,
    "==": 7, "!=": 7, "===": 7, "!==": 7,
    "<": 8, ">": 8, "<=": 8, ">=": 8,
    "+": 10, "-": 10,
    "*": 11, "/": 11, "%": 11,
    "**": 12,
}
LOGICAL_OPS = frozenset({"&&", "||", "??"})

MAX_NESTING = 64


class Parser:
    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    # --- token helpers -----------------------------------------------------

    @property
    def tok(self) -> Token:
        return self.tokens[self.pos]

    def peek(self, offset: int = 1) -> Token:
        idx = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[idx]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.type != "eof":
            self.pos += 1
        return tok

    def at(self, value: str, type_: Optional[str] = None) -> bool:
        tok = self.tok
        if type_ is not None and tok.type != type_:
            return False
        return tok.type in ("punct", "keyword") and tok.value == value

    def at_ident(self, name: Optional[str] = None) -> bool:
        return self.tok.type == "ident" and (name is None or self.tok.value == name)

    def error(self, message: Optional[str] = None, tok: Optional[Token] = None) -> SandboxSyntaxError:
        tok = tok or self.tok
        if message is None:
            message = "Unexpected end of input" if tok.type == "eof" else f"Unexpected token '{tok.value}'"
        return SandboxSyntaxError(message, tok.line, tok.column)

    def expect(self, value: str) -> Token:
        if not self.at(value):
            raise self.error()
        return self.advance()

    def expect_ident(self) -> str:
        if self.tok.type != "ident":
            raise self.error()
        return str(self.advance().value)

    def consume_semicolon(self) -> None:
        if self.at(";"):
            self.advance()
            return
        if self.at("}") or self.tok.type == "eof" or self.tok.newline_before:
            return
        raise self.error()

    def _enter(self) -> None:
        self.depth += 1
        if self.depth > MAX_NESTING:
            raise self.error("Code is nested too deeply")

    # --- statements --------------------------------------------------------

    def parse_program(self) -> n.Program:
        body = []
        while self.tok.type != "eof":
            body.append(self.statement())
        return n.Program(body)

    def statement(self) -> n.Node:
        self._enter()
        try:
            return self._statement()
        finally:
            self.depth -= 1

    def _statement(self) -> n.Node:
        tok = self.tok
        if tok.type == "punct":
            if tok.value == "{":
                return self.block()
            if tok.value == ";":
                self.advance()
                return n.Empty()
        if tok.type == "keyword":
            kw = tok.value
            if kw in ("var", "let", "const"):
                decl = self.var_decl()
                self.consume_semicolon()
                return decl
            if kw == "function":
                self.advance()
                return n.FunctionDecl(self.function_rest(require_name=True))
            if kw == "return":
                self.advance()
                if self.at(";") or self.at("}") or self.tok.type == "eof" or self.tok.newline_before:
                    self.consume_semicolon()
                    return n.Return(None)
                arg = self.expression()
                self.consume_semicolon()
                return n.Return(arg)
            if kw == "if":
                self.advance()
                self.expect("(")
                test = self.expression()
                self.expect(")")
                cons = self.statement()
                alt = None
                if self.at("else"):
                    self.advance()
                    alt = self.statement()
                return n.If(test, cons, alt)
            if kw == "for":
                return self.for_statement()
            if kw == "while":
                self.advance()
                self.expect("(")
                test = self.expression()
                self.expect(")")
                return n.While(test, self.statement())
            if kw == "do":
                self.advance()
                body = self.statement()
                self.expect("while")
                self.expect("(")
                test = self.expression()
                self.expect(")")
                if self.at(";"):
                    self.advance()
                return n.DoWhile(body, test)
            if kw in ("break", "continue"):
                self.advance()
                self.consume_semicolon()
                return n.Break() if kw == "break" else n.Continue()
        expr = self.expression()
        self.consume_semicolon()
        return n.ExprStmt(expr)

    def block(self) -> n.Block:
        self.expect("{")
        body = []
        while not self.at("}"):
            if self.tok.type == "eof":
                raise self.error()
            body.append(self.statement())
        self.advance()
        return n.Block(body)

    def var_decl(self) -> n.VarDecl:
        kind = str(self.advance().value)
        decls: List[Tuple[str, Optional[n.Node]]] = []
        while True:
            name = self.expect_ident()
            init = None
            if self.at("="):
                self.advance()
                init = self.assignment()
            elif kind == "const" and not self.at_ident("of"):
                raise self.error("Missing initializer in const declaration")
            decls.append((name, init))
            if not self.at(","):
                return n.VarDecl(kind, decls)
            self.advance()

    def for_statement(self) -> n.Node:
        self.advance()
        self.expect("(")

        # for (const x of xs) / for (x of xs)
        if self.tok.type == "keyword" and self.tok.value in ("var", "let", "const") \
                and self.peek().type == "ident" and self.peek(2).type == "ident" and self.peek(2).value == "of":
            kind = str(self.advance().value)
            name = self.expect_ident()
            self.advance()
            return self._for_of_rest(kind, name)
        if self.tok.type == "ident" and self.peek().type == "ident" and self.peek().value == "of":
            name = self.expect_ident()
            self.advance()
            return self._for_of_rest(None, name)

        init: Optional[n.Node] = None
        if self.at(";"):
            pass
        elif self.tok.type == "keyword" and self.tok.value in ("var", "let", "const"):
            init = self.var_decl()
        else:
            init = n.ExprStmt(self.expression())
        if self.at("in"):
            raise self.error("for...in loops are not supported")
        self.expect(";")
        test = None if self.at(";") else self.expression()
        self.expect(";")
        update = None if self.at(")") else self.expression()
        self.expect(")")
        return n.For(init, test, update, self.statement())

    def _for_of_rest(self, kind: Optional[str], name: str) -> n.ForOf:
        iterable = self.assignment()
        self.expect(")")
        return n.ForOf(kind, name, iterable, self.statement())

    def function_rest(self, require_name: bool = False) -> n.FunctionExpr:
        name = None
        if self.tok.type == "ident":
            name = self.expect_ident()
        elif require_name:
            raise self.error("Function statements require a function name")
        self.expect("(")
        params = self.param_list()
        body = self.block()
        return n.FunctionExpr(name, params, body)

    def param_list(self) -> List[str]:
        params: List[str] = []
        while not self.at(")"):
            params.append(self.expect_ident())
            if not self.at(","):
                break
            self.advance()
        self.expect(")")
        return params

    # --- expressions -------------------------------------------------------

    def expression(self) -> n.Node:
        first = self.assignment()
        if not self.at(","):
            return first
        items = [first]
        while self.at(","):
            self.advance()
            items.append(self.assignment())
        return n.Sequence(items)

    def assignment(self) -> n.Node:
        self._enter()
        try:
            arrow = self._try_arrow()
            if arrow is not None:
                return arrow
            target = self.conditional()
            if self.tok.type == "punct" and self.tok.value in ASSIGN_OPS:
                if not isinstance(target, (n.Identifier, n.Member)):
                    raise self.error("Invalid left-hand side in assignment")
                op = str(self.advance().value)
                return n.Assign(op, target, self.assignment())
            return target
        finally:
            self.depth -= 1

    def _try_arrow(self) -> Optional[n.Node]:
        tok = self.tok
        if tok.type == "ident" and self.peek().type == "punct" and self.peek().value == "=>":
            self.advance()
            self.advance()
            return self._arrow_body([str(tok.value)])
        if not self.at("("):
            return None

        i = self.pos + 1
        params: List[str] = []
        toks = self.tokens
        if toks[i].type == "punct" and toks[i].value == ")":
            i += 1
        else:
            while True:
                if toks[i].type != "ident":
                    return None
                params.append(str(toks[i].value))
                i += 1
                if toks[i].type == "punct" and toks[i].value == ",":
                    i += 1
                    continue
                if toks[i].type == "punct" and toks[i].value == ")":
                    i += 1
                    break
                return None
        if not (toks[i].type == "punct" and toks[i].value == "=>"):
            return None
        self.pos = i + 1
        return self._arrow_body(params)

    def _arrow_body(self, params: List[str]) -> n.FunctionExpr:
        if self.at("{"):
            return n.FunctionExpr(None, params, self.block(), arrow=True)
        expr = self.assignment()
        return n.FunctionExpr(None, params, n.Block([n.Return(expr)]), arrow=True)

    def conditional(self) -> n.Node:
        test = self.binary(0)
        if not self.at("?"):
            return test
        self.advance()
        cons = self.assignment()
        self.expect(":")
        alt = self.assignment()
        return n.Conditional(test, cons, alt)

    def _binary_op(self) -> Optional[str]:
        tok = self.tok
        if tok.type == "punct" and tok.value in BINARY_PRECEDENCE:
            return str(tok.value)
        return None

    def binary(self, min_prec: int) -> n.Node:
        left = self.unary()
        while True:
            op = self._binary_op()
            if op is None:
                return left
            prec = BINARY_PRECEDENCE[op]
            if prec <= min_prec:
                return left
            self.advance()
            # exponentiation is right-associative
            right = self.binary(prec - 1 if op == "**" else prec)
            if op in LOGICAL_OPS:
                left = n.Logical(op, left, right)
            else:
                left = n.Binary(op, left, right)

    def unary(self) -> n.Node:
        tok = self.tok
        if tok.type == "punct" and tok.value in ("!", "-", "+"):
            self.advance()
            self._enter()
            try:
                return n.Unary(str(tok.value), self.unary())
            finally:
                self.depth -= 1
        if tok.type == "punct" and tok.value in ("++", "--"):
            self.advance()
            target = self.unary()
            if not isinstance(target, (n.Identifier, n.Member)):
                raise self.error("Invalid left-hand side expression in prefix operation", tok)
            return n.Update(str(tok.value), True, target)
        if tok.type == "keyword" and tok.value in ("typeof", "void"):
            self.advance()
            return n.Unary(str(tok.value), self.unary())
        if tok.type == "keyword" and tok.value in ("new", "delete", "this", "class", "await", "yield"):
            raise self.error(f"'{tok.value}' is not supported")
        return self.postfix()

    def postfix(self) -> n.Node:
        expr = self.call_member()
        tok = self.tok
        if tok.type == "punct" and tok.value in ("++", "--") and not tok.newline_before:
            if not isinstance(expr, (n.Identifier, n.Member)):
                raise self.error("Invalid left-hand side expression in postfix operation", tok)
            self.advance()
            return n.Update(str(tok.value), False, expr)
        return expr

    def _property_name(self) -> str:
        tok = self.tok
        if tok.type in ("ident", "keyword"):
            self.advance()
            return str(tok.value)
        raise self.error()

    def call_member(self) -> n.Node:
        expr = self.primary()
        while True:
            if self.at("."):
                self.advance()
                expr = n.Member(expr, n.Literal(self._property_name()))
            elif self.at("?."):
                self.advance()
                if self.at("("):
                    self.advance()
                    expr = n.Call(expr, self.arguments(), optional=True)
                elif self.at("["):
                    self.advance()
                    prop = self.expression()
                    self.expect("]")
                    expr = n.Member(expr, prop, computed=True, optional=True)
                else:
                    expr = n.Member(expr, n.Literal(self._property_name()), optional=True)
            elif self.at("["):
                self.advance()
                prop = self.expression()
                self.expect("]")
                expr = n.Member(expr, prop, computed=True)
            elif self.at("("):
                self.advance()
                expr = n.Call(expr, self.arguments())
            elif self.tok.type == "template":
                raise self.error("Tagged templates are not supported")
            else:
                return expr

    def arguments(self) -> List[n.Node]:
        args: List[n.Node] = []
        while not self.at(")"):
            if self.at("..."):
                raise self.error("Spread arguments are not supported")
            args.append(self.assignment())
            if not self.at(","):
                break
            self.advance()
        self.expect(")")
        return args

    def primary(self) -> n.Node:
        tok = self.tok
        if tok.type in ("num", "str"):
            self.advance()
            return n.Literal(tok.value)
        if tok.type == "template":
            self.advance()
            return self._template(tok)
        if tok.type == "ident":
            self.advance()
            return n.Identifier(str(tok.value))
        if tok.type == "keyword":
            literals = {"true": True, "false": False, "null": None}
            if tok.value in literals:
                self.advance()
                return n.Literal(literals[str(tok.value)])
            if tok.value == "undefined":
                self.advance()
                return n.Identifier("undefined")
            if tok.value == "function":
                self.advance()
                return self.function_rest()
            raise self.error()
        if tok.type == "punct":
            if tok.value == "(":
                self.advance()
                expr = self.expression()
                self.expect(")")
                return expr
            if tok.value == "[":
                return self.array_literal()
            if tok.value == "{":
                return self.object_literal()
        raise self.error()

    def array_literal(self) -> n.ArrayLiteral:
        self.expect("[")
        items: List[n.Node] = []
        while not self.at("]"):
            if self.at("..."):
                raise self.error("Spread elements are not supported")
            items.append(self.assignment())
            if not self.at(","):
                break
            self.advance()
        self.expect("]")
        return n.ArrayLiteral(items)

    def object_literal(self) -> n.ObjectLiteral:
        self.expect("{")
        props: List[Tuple[str, n.Node]] = []
        while not self.at("}"):
            tok = self.tok
            if tok.type in ("ident", "keyword", "str"):
                key = str(tok.value)
            elif tok.type == "num":
                key = number_to_string(tok.value)
            else:
                raise self.error()
            self.advance()
            if self.at(":"):
                self.advance()
                props.append((key, self.assignment()))
            elif tok.type == "ident" and (self.at(",") or self.at("}")):
                props.append((key, n.Identifier(key)))
            else:
                raise self.error()
            if not self.at(","):
                break
            self.advance()
        self.expect("}")
        return n.ObjectLiteral(props)

    def _template(self, tok: Token) -> n.TemplateLiteral:
        quasis: List[str] = []
        exprs: List[n.Node] = []
        for part in tok.value:  # type: ignore[union-attr]
            if isinstance(part, str):
                quasis.append(part)
                continue
            source, _line = part
            sub = Parser(tokenize(source))
            sub.depth = self.depth
            expr = sub.expression()
            if sub.tok.type != "eof":
                raise sub.error()
            exprs.append(expr)
        return n.TemplateLiteral(quasis, exprs)


def parse(source: str) -> n.Program:
    """Parse ``source`` as a function body; raises SandboxSyntaxError."""
    try:
        return Parser(tokenize(source)).parse_program()
    except RecursionError:
        raise SandboxSyntaxError("Code is nested too deeply") from None
