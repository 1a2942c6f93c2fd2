"""Condition lexer: string → token stream

Tokenizes expressions like:
- "amount >= 1000"
- "(status == 'approved') || (score > 2.5)"
- "outcome(12) == 'approve' && !blocked"
"""

from typing import Iterable, List, Optional

from nodeflow.core.exceptions import IncorrectExpressionError, UnknownOperatorError
from nodeflow.expression.operators import UNARY_MINUS
from nodeflow.expression.tokens import Token, TokenType


class Lexer:
    """Tokenize condition strings.

    Operator symbols are matched longest-first against the symbols the
    evaluator has registered, so custom symbolic operators lex without
    changes here.
    """

    def __init__(self, text: str, operator_symbols: Iterable[str]):
        self.text = text
        self.pos = 0
        self.current_char: Optional[str] = text[0] if text else None
        self.symbols = sorted(
            (s for s in operator_symbols if not s.isalnum()),
            key=len,
            reverse=True,
        )
        self.tokens: List[Token] = []

    def advance(self, count: int = 1) -> None:
        """Move forward ``count`` characters"""
        self.pos += count
        if self.pos >= len(self.text):
            self.current_char = None
        else:
            self.current_char = self.text[self.pos]

    def peek(self, offset: int = 1) -> Optional[str]:
        """Look ahead without consuming"""
        peek_pos = self.pos + offset
        if peek_pos >= len(self.text):
            return None
        return self.text[peek_pos]

    def skip_whitespace(self) -> None:
        while self.current_char is not None and self.current_char.isspace():
            self.advance()

    def in_prefix_position(self) -> bool:
        """True where an operand is expected (start, after operator, '(' or ',')"""
        if not self.tokens:
            return True
        return self.tokens[-1].type in (
            TokenType.OPERATOR,
            TokenType.LEFT_PAREN,
            TokenType.COMMA,
        )

    def read_number(self) -> Token:
        """Read integer or float number"""
        start_pos = self.pos
        num_str = ""
        has_decimal = False
        while self.current_char is not None and (self.current_char.isdigit() or self.current_char == '.'):
            if self.current_char == '.':
                if has_decimal:
                    raise IncorrectExpressionError(f"Invalid number format at position {self.pos}")
                has_decimal = True
            num_str += self.current_char
            self.advance()

        try:
            value = float(num_str) if has_decimal else int(num_str)
        except ValueError:
            raise IncorrectExpressionError(f"Invalid number '{num_str}' at position {start_pos}")

        return Token(TokenType.LITERAL, value, start_pos)

    def read_string(self, quote_char: str) -> Token:
        """Read string literal with quotes"""
        start_pos = self.pos
        self.advance()  # opening quote

        string_value = ""
        while self.current_char is not None and self.current_char != quote_char:
            string_value += self.current_char
            self.advance()

        if self.current_char != quote_char:
            raise IncorrectExpressionError(f"Unclosed string starting at position {start_pos}")

        self.advance()  # closing quote
        return Token(TokenType.LITERAL, string_value, start_pos)

    def read_identifier(self) -> Token:
        """Read a variable, boolean keyword or function name"""
        start_pos = self.pos
        if self.current_char == '$':
            self.advance()

        identifier = ""
        while self.current_char is not None and (
            self.current_char.isalnum() or self.current_char in ('_', '.')
        ):
            identifier += self.current_char
            self.advance()

        if not identifier:
            raise IncorrectExpressionError(f"Empty variable name at position {start_pos}")

        lowered = identifier.lower()
        if lowered == "true":
            return Token(TokenType.LITERAL, True, start_pos)
        if lowered == "false":
            return Token(TokenType.LITERAL, False, start_pos)

        # A name directly followed by "(" is a call
        offset = 0
        while self.peek(offset) is not None and self.peek(offset).isspace():
            offset += 1
        if self.peek(offset) == '(':
            return Token(TokenType.FUNCTION, identifier, start_pos)

        return Token(TokenType.VARIABLE, identifier, start_pos)

    def read_operator(self) -> Token:
        start_pos = self.pos
        for symbol in self.symbols:
            if self.text.startswith(symbol, self.pos):
                self.advance(len(symbol))
                if symbol == '-' and self.in_prefix_position():
                    return Token(TokenType.OPERATOR, UNARY_MINUS, start_pos)
                return Token(TokenType.OPERATOR, symbol, start_pos)

        raise UnknownOperatorError(
            f"Unknown operator '{self.current_char}' at position {start_pos}",
            context={"expression": self.text},
        )

    def get_next_token(self) -> Optional[Token]:
        """Return the next token, or None at end of input"""
        self.skip_whitespace()
        if self.current_char is None:
            return None

        char = self.current_char

        if char.isdigit() or (char == '.' and (self.peek() or '').isdigit()):
            return self.read_number()

        if char in ('"', "'"):
            return self.read_string(char)

        if char.isalpha() or char in ('_', '$'):
            return self.read_identifier()

        if char == '(':
            self.advance()
            return Token(TokenType.LEFT_PAREN, '(', self.pos - 1)

        if char == ')':
            self.advance()
            return Token(TokenType.RIGHT_PAREN, ')', self.pos - 1)

        if char == ',':
            self.advance()
            return Token(TokenType.COMMA, ',', self.pos - 1)

        return self.read_operator()

    def tokenize(self) -> List[Token]:
        """Tokenize entire input string"""
        while True:
            token = self.get_next_token()
            if token is None:
                break
            self.tokens.append(token)
        return self.tokens


def tokenize(expression: str, operator_symbols: Iterable[str]) -> List[Token]:
    """Tokenize an expression against the given operator symbols."""
    return Lexer(expression, operator_symbols).tokenize()
