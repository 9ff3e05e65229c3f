from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple, Union

from .errors import SandboxSyntaxError

KEYWORDS = frozenset({
    "var", "let", "const", "if", "else", "for", "while", "do", "break",
    "continue", "return", "function", "true", "false", "null", "undefined",
    "typeof", "new", "this", "class", "delete", "in", "instanceof", "void",
    "with", "yield", "await", "import", "export", "try", "catch", "finally",
    "throw", "switch", "case", "default",
})

# longest first so that greedy matching works
PUNCTUATORS = (
    "===", "!==", "**=", "...",
    "=>", "==", "!=", "<=", ">=", "&&", "||", "??", "?.", "++", "--",
    "+=", "-=", "*=", "/=", "%=", "**",
    "+", "-", "*", "/", "%", "<", ">", "=", "!", "?", ":", ".", ",", ";",
    "(", ")", "[", "]", "{", "}",
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}

TemplatePart = Union[str, Tuple[str, int]]


@dataclass(frozen=True)
class Token:
    type: str  # num | str | template | ident | keyword | punct | eof
    value: object
    line: int
    column: int
    newline_before: bool = False


class Lexer:
    def __init__(self, source: str):
        self.src = source
        self.pos = 0
        self.line = 1
        self.line_start = 0

    def error(self, message: str) -> SandboxSyntaxError:
        return SandboxSyntaxError(message, self.line, self.pos - self.line_start + 1)

    def _advance(self, count: int = 1) -> None:
        for _ in range(count):
            if self.pos < len(self.src) and self.src[self.pos] == "\n":
                self.line += 1
                self.line_start = self.pos + 1
            self.pos += 1

    def _skip_trivia(self) -> bool:
        saw_newline = False
        src = self.src
        while self.pos < len(src):
            ch = src[self.pos]
            if ch == "\n":
                saw_newline = True
                self._advance()
            elif ch.isspace():
                self._advance()
            elif src.startswith("//", self.pos):
                while self.pos < len(src) and src[self.pos] != "\n":
                    self._advance()
            elif src.startswith("/*", self.pos):
                end = src.find("*/", self.pos + 2)
                if end < 0:
                    raise self.error("Unterminated comment")
                if "\n" in src[self.pos:end]:
                    saw_newline = True
                self._advance(end + 2 - self.pos)
            else:
                break
        return saw_newline

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        while True:
            nl = self._skip_trivia()
            line, col = self.line, self.pos - self.line_start + 1
            if self.pos >= len(self.src):
                tokens.append(Token("eof", None, line, col, nl))
                return tokens

            ch = self.src[self.pos]
            if ch.isdigit() or (ch == "." and self.src[self.pos + 1:self.pos + 2].isdigit()):
                tokens.append(Token("num", self._read_number(), line, col, nl))
            elif ch in ("'", '"'):
                tokens.append(Token("str", self._read_string(ch), line, col, nl))
            elif ch == "`":
                tokens.append(Token("template", self._read_template(), line, col, nl))
            elif ch.isalpha() or ch in "_$":
                word = self._read_word()
                kind = "keyword" if word in KEYWORDS else "ident"
                tokens.append(Token(kind, word, line, col, nl))
            else:
                for p in PUNCTUATORS:
                    if self.src.startswith(p, self.pos):
                        # "?." followed by a digit is a ternary, not optional chaining
                        if p == "?." and self.src[self.pos + 2:self.pos + 3].isdigit():
                            continue
                        self._advance(len(p))
                        tokens.append(Token("punct", p, line, col, nl))
                        break
                else:
                    raise self.error(f"Unexpected character {ch!r}")

    def _read_word(self) -> str:
        start = self.pos
        while self.pos < len(self.src) and (self.src[self.pos].isalnum() or self.src[self.pos] in "_$"):
            self._advance()
        return self.src[start:self.pos]

    def _read_number(self):
        src = self.src
        start = self.pos
        if src.startswith(("0x", "0X"), self.pos):
            self._advance(2)
            while self.pos < len(src) and src[self.pos] in "0123456789abcdefABCDEF":
                self._advance()
            return int(src[start + 2:self.pos], 16)

        while self.pos < len(src) and src[self.pos].isdigit():
            self._advance()
        is_float = False
        if self.pos < len(src) and src[self.pos] == "." and src[self.pos + 1:self.pos + 2].isdigit():
            is_float = True
            self._advance()
            while self.pos < len(src) and src[self.pos].isdigit():
                self._advance()
        elif self.pos < len(src) and src[self.pos] == "." and not src[self.pos + 1:self.pos + 2].isalpha():
            # "5." is a valid literal
            is_float = True
            self._advance()
        if self.pos < len(src) and src[self.pos] in "eE":
            j = self.pos + 1
            if j < len(src) and src[j] in "+-":
                j += 1
            if j < len(src) and src[j].isdigit():
                is_float = True
                self._advance(j - self.pos)
                while self.pos < len(src) and src[self.pos].isdigit():
                    self._advance()
        if self.pos < len(src) and (src[self.pos].isalpha() or src[self.pos] in "_$"):
            raise self.error("Invalid or unexpected token")
        text = src[start:self.pos]
        if not is_float:
            return int(text)
        value = float(text)
        return int(value) if value.is_integer() and abs(value) < 2 ** 53 else value

    def _read_escape(self) -> str:
        self._advance()  # backslash
        if self.pos >= len(self.src):
            raise self.error("Invalid or unexpected token")
        ch = self.src[self.pos]
        if ch == "u":
            digits = self.src[self.pos + 1:self.pos + 5]
            if len(digits) != 4 or any(c not in "0123456789abcdefABCDEF" for c in digits):
                raise self.error("Invalid Unicode escape sequence")
            self._advance(5)
            return chr(int(digits, 16))
        if ch == "x":
            digits = self.src[self.pos + 1:self.pos + 3]
            if len(digits) != 2 or any(c not in "0123456789abcdefABCDEF" for c in digits):
                raise self.error("Invalid hexadecimal escape sequence")
            self._advance(3)
            return chr(int(digits, 16))
        if ch == "\n":
            self._advance()
            return ""
        self._advance()
        return _ESCAPES.get(ch, ch)

    def _read_string(self, quote: str) -> str:
        self._advance()
        out: List[str] = []
        while True:
            if self.pos >= len(self.src) or self.src[self.pos] == "\n":
                raise self.error("Unterminated string literal")
            ch = self.src[self.pos]
            if ch == quote:
                self._advance()
                return "".join(out)
            if ch == "\\":
                out.append(self._read_escape())
            else:
                out.append(ch)
                self._advance()

    def _read_template(self) -> List[TemplatePart]:
        """Literal chunks (str) interleaved with (expression_source, line) tuples."""
        self._advance()
        parts: List[TemplatePart] = []
        buf: List[str] = []
        src = self.src
        while True:
            if self.pos >= len(src):
                raise self.error("Unterminated template literal")
            ch = src[self.pos]
            if ch == "`":
                self._advance()
                parts.append("".join(buf))
                return parts
            if ch == "\\":
                buf.append(self._read_escape())
            elif src.startswith("${", self.pos):
                parts.append("".join(buf))
                buf = []
                self._advance(2)
                expr_line = self.line
                start = self.pos
                depth = 1
                while depth:
                    if self.pos >= len(src):
                        raise self.error("Unterminated template expression")
                    c = src[self.pos]
                    if c in "'\"":
                        self._read_string(c)
                        continue
                    if c == "`":
                        self._read_template()
                        continue
                    if c == "{":
                        depth += 1
                    elif c == "}":
                        depth -= 1
                    self._advance()
                parts.append((src[start:self.pos - 1], expr_line))
            else:
                buf.append(ch)
                self._advance()


def tokenize(source: str) -> List[Token]:
    return Lexer(source).tokenize()
