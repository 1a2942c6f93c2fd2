"""Token types for condition expressions"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Optional


class TokenType(Enum):
    """Token kinds produced by the lexer"""
    LITERAL = auto()       # number, string, bool
    VARIABLE = auto()
    OPERATOR = auto()
    FUNCTION = auto()
    LEFT_PAREN = auto()
    RIGHT_PAREN = auto()
    COMMA = auto()


@dataclass
class Token:
    """A lexical token.

    For OPERATOR and FUNCTION tokens ``value`` is the registry key. FUNCTION
    tokens get ``param_count`` filled in by the postfix conversion.
    """
    type: TokenType
    value: Any
    position: int = -1
    param_count: Optional[int] = None

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, pos={self.position})"


def literal(value: Any) -> Token:
    """Build a literal token (used for intermediate evaluation results)."""
    return Token(TokenType.LITERAL, value)
