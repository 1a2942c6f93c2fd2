"""Custom exception hierarchy for nodeflow."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class NodeflowError(Exception):
    """Base exception type for all nodeflow errors."""

    message: str
    context: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        if not self.context:
            return self.message
        return f"{self.message} | context={self.context}"


class ConfigurationError(NodeflowError):
    """Raised when configuration is missing or invalid."""


# -----------------------------------------------------------------------------
# Expression errors
# -----------------------------------------------------------------------------


class ExpressionError(NodeflowError):
    """Raised when a condition expression cannot be parsed or evaluated."""


class IncorrectExpressionError(ExpressionError):
    """Raised for malformed expressions (parentheses, commas, operand count)."""


class UnknownOperatorError(ExpressionError):
    """Raised when the lexer meets a character sequence that is not an operator."""


class UnknownFunctionError(ExpressionError):
    """Raised when an expression calls a function that was never registered."""


class UnknownVariableError(ExpressionError):
    """Raised when an expression references a variable with no value."""


class IncorrectParameterCountError(ExpressionError):
    """Raised when a function is called with fewer arguments than it requires."""


# -----------------------------------------------------------------------------
# Execution errors
# -----------------------------------------------------------------------------


class ExecutionError(NodeflowError):
    """Raised when workflow traversal cannot continue for structural reasons."""


class TraversalLimitError(ExecutionError):
    """Raised when a traversal visits more nodes than the configured step limit."""


# -----------------------------------------------------------------------------
# Storage errors
# -----------------------------------------------------------------------------


class StorageError(NodeflowError):
    """Raised when a store operation fails."""


class RecordNotFoundError(StorageError):
    """Raised when a referenced record does not exist."""


class WorkflowValidationError(StorageError):
    """Raised when an authoring operation would make the graph ambiguous."""
