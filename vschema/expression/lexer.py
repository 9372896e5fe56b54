"""
Expression Lexer

Tokenizes the restricted JavaScript-like expression grammar:
- Literals: numbers, single/double quoted strings
- Identifiers: letters, digits, `_` and `$` (so `$event`, `$methods` are plain names)
- Punctuation and operators, longest match first
- `//` and `/* */` comments (used by script bodies)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional

from ..exceptions.errors import ExpressionSyntaxError
from .values import normalize_number, to_double


class TokenType(Enum):
    """Lexical token types"""

    # Literals
    NUMBER = "NUMBER"
    STRING = "STRING"

    # Identifiers (keywords are recognised by the parser)
    IDENTIFIER = "IDENTIFIER"

    # Operators and punctuation, value carries the symbol
    OPERATOR = "OPERATOR"

    LPAREN = "("
    RPAREN = ")"
    LBRACKET = "["
    RBRACKET = "]"
    LBRACE = "{"
    RBRACE = "}"
    COMMA = ","
    DOT = "."
    OPTIONAL_DOT = "?."
    QUESTION = "?"
    COLON = ":"
    SEMICOLON = ";"

    # End
    EOF = "EOF"


@dataclass
class Token:
    """Lexical token"""

    type: TokenType
    value: Any
    position: int
    newline_before: bool = False


# Longest first
OPERATORS = [
    "===",
    "!==",
    "**=",
    "...",
    "==",
    "!=",
    "<=",
    ">=",
    "&&",
    "||",
    "??",
    "**",
    "+=",
    "-=",
    "*=",
    "/=",
    "%=",
    "=>",
    "+",
    "-",
    "*",
    "/",
    "%",
    "<",
    ">",
    "!",
    "=",
]

PUNCTUATION = {
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    ",": TokenType.COMMA,
    ".": TokenType.DOT,
    "?": TokenType.QUESTION,
    ":": TokenType.COLON,
    ";": TokenType.SEMICOLON,
}

ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
}


class Lexer:
    """Lexer"""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.current_char = self.text[0] if self.text else None
        self._newline_seen = False

    def advance(self) -> None:
        """Advance to next character"""
        self.pos += 1
        self.current_char = self.text[self.pos] if self.pos < len(self.text) else None

    def peek(self, offset: int = 1) -> Optional[str]:
        """Peek ahead without consuming"""
        peek_pos = self.pos + offset
        return self.text[peek_pos] if peek_pos < len(self.text) else None

    def skip_whitespace_and_comments(self) -> None:
        while self.current_char is not None:
            if self.current_char.isspace():
                if self.current_char == "\n":
                    self._newline_seen = True
                self.advance()
            elif self.current_char == "/" and self.peek() == "/":
                while self.current_char is not None and self.current_char != "\n":
                    self.advance()
            elif self.current_char == "/" and self.peek() == "*":
                end = self.text.find("*/", self.pos + 2)
                if end < 0:
                    raise ExpressionSyntaxError(
                        f"Unterminated comment at position {self.pos}"
                    )
                if "\n" in self.text[self.pos : end]:
                    self._newline_seen = True
                self.pos = end + 2
                self.current_char = (
                    self.text[self.pos] if self.pos < len(self.text) else None
                )
            else:
                break

    def read_number(self) -> Token:
        """Read number (integer, decimal, exponent or hex)"""
        start = self.pos

        if self.current_char == "0" and self.peek() in ("x", "X"):
            self.advance()
            self.advance()
            while self.current_char and self.current_char in "0123456789abcdefABCDEF_":
                self.advance()
            return Token(
                TokenType.NUMBER,
                to_double(int(self.text[start : self.pos].replace("_", ""), 16)),
                start,
            )

        is_float = False
        while self.current_char and (self.current_char.isdigit() or self.current_char == "_"):
            self.advance()
        if self.current_char == "." and (self.peek() or "").isdigit():
            is_float = True
            self.advance()
            while self.current_char and self.current_char.isdigit():
                self.advance()
        elif self.current_char == "." and start < self.pos and not (self.peek() or "").isalpha():
            # "1." is a valid number literal
            is_float = True
            self.advance()
        if self.current_char in ("e", "E"):
            sign = self.peek()
            digit = self.peek(2) if sign in ("+", "-") else sign
            if digit is not None and digit.isdigit():
                is_float = True
                self.advance()
                if self.current_char in ("+", "-"):
                    self.advance()
                while self.current_char and self.current_char.isdigit():
                    self.advance()

        text = self.text[start : self.pos].replace("_", "")
        if is_float:
            return Token(TokenType.NUMBER, float(text), start)
        return Token(TokenType.NUMBER, normalize_number(float(text)), start)

    def read_string(self) -> Token:
        """Read single or double quoted string with escapes"""
        start = self.pos
        quote = self.current_char
        self.advance()  # Skip opening quote

        chars: List[str] = []
        while self.current_char is not None and self.current_char != quote:
            if self.current_char == "\n":
                raise ExpressionSyntaxError(f"Unterminated string at position {start}")
            if self.current_char == "\\":
                self.advance()
                if self.current_char is None:
                    break
                if self.current_char == "u":
                    code = self.text[self.pos + 1 : self.pos + 5]
                    try:
                        chars.append(chr(int(code, 16)))
                    except ValueError:
                        raise ExpressionSyntaxError(
                            f"Invalid unicode escape at position {self.pos}"
                        )
                    for _ in range(4):
                        self.advance()
                elif self.current_char == "x":
                    code = self.text[self.pos + 1 : self.pos + 3]
                    try:
                        chars.append(chr(int(code, 16)))
                    except ValueError:
                        raise ExpressionSyntaxError(
                            f"Invalid hex escape at position {self.pos}"
                        )
                    self.advance()
                    self.advance()
                else:
                    chars.append(ESCAPES.get(self.current_char, self.current_char))
                self.advance()
                continue
            chars.append(self.current_char)
            self.advance()

        if self.current_char != quote:
            raise ExpressionSyntaxError(f"Unterminated string at position {start}")
        self.advance()  # Skip closing quote
        return Token(TokenType.STRING, "".join(chars), start)

    def read_identifier(self) -> Token:
        """Read identifier or keyword"""
        start = self.pos
        while self.current_char and (
            self.current_char.isalnum() or self.current_char in "_$"
        ):
            self.advance()
        return Token(TokenType.IDENTIFIER, self.text[start : self.pos], start)

    def next_token(self) -> Token:
        """Get next token"""
        self._newline_seen = False
        self.skip_whitespace_and_comments()
        newline = self._newline_seen

        token = self._scan()
        token.newline_before = newline
        return token

    def _scan(self) -> Token:
        if self.current_char is None:
            return Token(TokenType.EOF, None, self.pos)

        start = self.pos
        char = self.current_char

        if char.isdigit() or (char == "." and (self.peek() or "").isdigit()):
            return self.read_number()

        if char in ("'", '"'):
            return self.read_string()

        if char == "`":
            raise ExpressionSyntaxError(
                f"Template literals are not supported (position {start})"
            )

        if char.isalpha() or char in "_$":
            return self.read_identifier()

        # Optional chaining, but not `a ? .5 : 1`
        if char == "?" and self.peek() == "." and not (self.peek(2) or "").isdigit():
            self.advance()
            self.advance()
            return Token(TokenType.OPTIONAL_DOT, "?.", start)

        for op in OPERATORS:
            if self.text.startswith(op, self.pos):
                for _ in op:
                    self.advance()
                return Token(TokenType.OPERATOR, op, start)

        if char in PUNCTUATION:
            self.advance()
            return Token(PUNCTUATION[char], char, start)

        raise ExpressionSyntaxError(
            f"Unexpected character: {char} at position {self.pos}"
        )

    def tokenize(self) -> List[Token]:
        """Read all tokens up to and including EOF"""
        tokens = []
        while True:
            token = self.next_token()
            tokens.append(token)
            if token.type == TokenType.EOF:
                return tokens
