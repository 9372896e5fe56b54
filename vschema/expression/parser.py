"""
Expression Parser

Recursive descent parser for the restricted expression grammar.

Precedence (low to high):
    conditional  a ? b : c
    nullish/or   a ?? b, a || b
    and          a && b
    equality     == != === !==
    relational   < <= > >=
    additive     + -
    multiplicative * / %
    exponent     ** (right associative)
    unary        ! - + typeof
    postfix      a.b a?.b a[b] a(b)
    primary      literal, identifier, (expr), [array], {object}
"""

from typing import List, Optional, Set, Tuple

from ..exceptions.errors import ExpressionSyntaxError
from .ast import (
    ArrayLiteral,
    Binary,
    Call,
    Conditional,
    Identifier,
    Index,
    Literal,
    Logical,
    Member,
    Node,
    ObjectLiteral,
    Unary,
)
from .lexer import Lexer, Token, TokenType

LITERAL_KEYWORDS = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": None,
}

NUMERIC_CONSTANTS = {
    "NaN": float("nan"),
    "Infinity": float("inf"),
}

# Words that never start an expression
RESERVED_WORDS = {
    "new",
    "function",
    "class",
    "delete",
    "void",
    "in",
    "instanceof",
    "import",
    "export",
    "yield",
    "let",
    "const",
    "var",
    "if",
    "else",
    "return",
    "await",
    "for",
    "while",
    "do",
    "switch",
    "try",
    "catch",
    "throw",
}

EQUALITY_OPS = ("==", "!=", "===", "!==")
RELATIONAL_OPS = ("<", "<=", ">", ">=")
ADDITIVE_OPS = ("+", "-")
MULTIPLICATIVE_OPS = ("*", "/", "%")


class Parser:
    """Recursive descent parser"""

    def __init__(self, text: str):
        self.text = text
        self.lexer = Lexer(text)
        self.current_token = self.lexer.next_token()

    def advance(self) -> Token:
        """Advance to next token, returning the consumed one"""
        token = self.current_token
        self.current_token = self.lexer.next_token()
        return token

    def expect(self, token_type: TokenType, value: Optional[str] = None) -> Token:
        """Consume a token of the given type or raise"""
        token = self.current_token
        if token.type == token_type and (value is None or token.value == value):
            return self.advance()
        expected = value or token_type.value
        raise ExpressionSyntaxError(
            f"Expected '{expected}' but found {self._describe(token)} at position {token.position}"
        )

    def check_operator(self, *ops: str) -> bool:
        token = self.current_token
        return token.type == TokenType.OPERATOR and token.value in ops

    def check_word(self, word: str) -> bool:
        token = self.current_token
        return token.type == TokenType.IDENTIFIER and token.value == word

    def error(self, message: Optional[str] = None) -> ExpressionSyntaxError:
        token = self.current_token
        return ExpressionSyntaxError(
            message or f"Unexpected {self._describe(token)} at position {token.position}",
            {"position": token.position},
        )

    @staticmethod
    def _describe(token: Token) -> str:
        if token.type == TokenType.EOF:
            return "end of input"
        return f"token '{token.value}'"

    def parse(self) -> Node:
        """Parse a complete expression"""
        if self.current_token.type == TokenType.EOF:
            return Literal(None)
        node = self.parse_expression()
        if self.current_token.type != TokenType.EOF:
            raise self.error()
        return node

    def parse_expression(self) -> Node:
        return self.parse_conditional()

    def parse_conditional(self) -> Node:
        test = self.parse_nullish()
        if self.current_token.type != TokenType.QUESTION:
            return test
        self.advance()
        consequent = self.parse_conditional()
        self.expect(TokenType.COLON)
        alternate = self.parse_conditional()
        return Conditional(test, consequent, alternate)

    def parse_nullish(self) -> Node:
        node = self.parse_and()
        while self.check_operator("||", "??"):
            op = self.advance().value
            node = Logical(op, node, self.parse_and())
        return node

    def parse_and(self) -> Node:
        node = self.parse_equality()
        while self.check_operator("&&"):
            self.advance()
            node = Logical("&&", node, self.parse_equality())
        return node

    def parse_equality(self) -> Node:
        node = self.parse_relational()
        while self.check_operator(*EQUALITY_OPS):
            op = self.advance().value
            node = Binary(op, node, self.parse_relational())
        return node

    def parse_relational(self) -> Node:
        node = self.parse_additive()
        while self.check_operator(*RELATIONAL_OPS):
            op = self.advance().value
            node = Binary(op, node, self.parse_additive())
        return node

    def parse_additive(self) -> Node:
        node = self.parse_multiplicative()
        while self.check_operator(*ADDITIVE_OPS):
            op = self.advance().value
            node = Binary(op, node, self.parse_multiplicative())
        return node

    def parse_multiplicative(self) -> Node:
        node = self.parse_exponent()
        while self.check_operator(*MULTIPLICATIVE_OPS):
            op = self.advance().value
            node = Binary(op, node, self.parse_exponent())
        return node

    def parse_exponent(self) -> Node:
        base = self.parse_unary()
        if self.check_operator("**"):
            self.advance()
            return Binary("**", base, self.parse_exponent())
        return base

    def parse_unary(self) -> Node:
        if self.check_operator("!", "-", "+"):
            op = self.advance().value
            return Unary(op, self.parse_unary())
        if self.check_word("typeof"):
            self.advance()
            return Unary("typeof", self.parse_unary())
        return self.parse_postfix(self.parse_primary())

    def parse_postfix(self, node: Node) -> Node:
        while True:
            token = self.current_token
            if token.type == TokenType.DOT:
                self.advance()
                node = Member(node, self._property_name())
            elif token.type == TokenType.OPTIONAL_DOT:
                self.advance()
                if self.current_token.type == TokenType.LBRACKET:
                    self.advance()
                    index = self.parse_expression()
                    self.expect(TokenType.RBRACKET)
                    node = Index(node, index, optional=True)
                elif self.current_token.type == TokenType.LPAREN:
                    self.advance()
                    args, spreads = self._arguments()
                    node = Call(node, args, optional=True, spreads=spreads)
                else:
                    node = Member(node, self._property_name(), optional=True)
            elif token.type == TokenType.LBRACKET:
                self.advance()
                index = self.parse_expression()
                self.expect(TokenType.RBRACKET)
                node = Index(node, index)
            elif token.type == TokenType.LPAREN:
                self.advance()
                args, spreads = self._arguments()
                node = Call(node, args, spreads=spreads)
            else:
                return node

    def _property_name(self) -> str:
        token = self.current_token
        if token.type != TokenType.IDENTIFIER:
            raise self.error(f"Expected property name at position {token.position}")
        self.advance()
        return token.value

    def _arguments(self) -> Tuple[List[Node], Set[int]]:
        """Parse call arguments after '(' up to and including ')'"""
        args: List[Node] = []
        spreads: Set[int] = set()
        while self.current_token.type != TokenType.RPAREN:
            if self.check_operator("..."):
                self.advance()
                spreads.add(len(args))
            args.append(self.parse_expression())
            if self.current_token.type != TokenType.COMMA:
                break
            self.advance()
        self.expect(TokenType.RPAREN)
        return args, spreads

    def parse_primary(self) -> Node:
        token = self.current_token

        if token.type == TokenType.NUMBER or token.type == TokenType.STRING:
            self.advance()
            return Literal(token.value)

        if token.type == TokenType.LPAREN:
            self.advance()
            node = self.parse_expression()
            self.expect(TokenType.RPAREN)
            if self.check_operator("=>"):
                raise self.error("Arrow functions are not supported")
            return node

        if token.type == TokenType.LBRACKET:
            return self.parse_array()

        if token.type == TokenType.LBRACE:
            return self.parse_object()

        if token.type == TokenType.IDENTIFIER:
            name = token.value
            if name in LITERAL_KEYWORDS:
                self.advance()
                return Literal(LITERAL_KEYWORDS[name])
            if name in NUMERIC_CONSTANTS:
                self.advance()
                return Literal(NUMERIC_CONSTANTS[name])
            if name in RESERVED_WORDS:
                raise self.error(
                    f"Unexpected keyword '{name}' at position {token.position}"
                )
            self.advance()
            if self.check_operator("=>"):
                raise self.error("Arrow functions are not supported")
            return Identifier(name)

        raise self.error()

    def parse_array(self) -> Node:
        self.expect(TokenType.LBRACKET)
        elements: List[Node] = []
        spreads: Set[int] = set()
        while self.current_token.type != TokenType.RBRACKET:
            if self.check_operator("..."):
                self.advance()
                spreads.add(len(elements))
            elements.append(self.parse_expression())
            if self.current_token.type != TokenType.COMMA:
                break
            self.advance()
        self.expect(TokenType.RBRACKET)
        return ArrayLiteral(elements, spreads)

    def parse_object(self) -> Node:
        self.expect(TokenType.LBRACE)
        entries = []
        while self.current_token.type != TokenType.RBRACE:
            token = self.current_token
            if self.check_operator("..."):
                self.advance()
                entries.append((None, self.parse_expression()))
            elif token.type == TokenType.LBRACKET:
                self.advance()
                key = self.parse_expression()
                self.expect(TokenType.RBRACKET)
                self.expect(TokenType.COLON)
                entries.append((key, self.parse_expression()))
            elif token.type in (TokenType.IDENTIFIER, TokenType.STRING, TokenType.NUMBER):
                self.advance()
                key = Literal(token.value)
                if self.current_token.type == TokenType.COLON:
                    self.advance()
                    entries.append((key, self.parse_expression()))
                elif token.type == TokenType.IDENTIFIER:
                    # Shorthand { name }
                    entries.append((key, Identifier(token.value)))
                else:
                    raise self.error()
            else:
                raise self.error()

            if self.current_token.type != TokenType.COMMA:
                break
            self.advance()
        self.expect(TokenType.RBRACE)
        return ObjectLiteral(entries)


def parse_expression(text: str) -> Node:
    """Parse expression text into an AST"""
    return Parser(text).parse()
