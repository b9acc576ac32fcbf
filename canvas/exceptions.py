"""
Custom Exception Hierarchy for Canvas Content Generation

Exception Hierarchy:
    CanvasAgentError (base)
    ├── ContentGenerationError
    │   └── CommandInterpretationError
    ├── PromptTemplateError
    └── PersistenceError
"""

from typing import Optional


class CanvasAgentError(Exception):
    """Base exception for all canvas generation and storage errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ContentGenerationError(CanvasAgentError):
    """Raised when the generator cannot produce usable content."""

    def __init__(self, operation: str, message: str, details: Optional[dict] = None):
        super().__init__(f"[{operation}] {message}", details)
        self.operation = operation


class CommandInterpretationError(ContentGenerationError):
    """Raised when a free-text command cannot be turned into a directive."""

    def __init__(self, command: str, reason: str):
        super().__init__("interpret_command", reason, {"command": command})
        self.command = command
        self.reason = reason


class PromptTemplateError(CanvasAgentError):
    """Raised when a prompt template cannot be rendered."""

    def __init__(self, template_name: str, missing_vars: list[str]):
        message = f"Template '{template_name}' missing variables: {', '.join(sorted(missing_vars))}"
        super().__init__(message)
        self.template_name = template_name
        self.missing_vars = missing_vars


class PersistenceError(CanvasAgentError):
    """Raised by a session store backend when a write cannot be completed."""

    def __init__(self, operation: str, original_error: Exception):
        super().__init__(f"Session store {operation} failed: {original_error}")
        self.operation = operation
        self.original_error = original_error
