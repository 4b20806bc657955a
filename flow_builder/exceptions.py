"""
Exceptions for Flow Builder.

Graph mutations report rejections through ``MutationResult`` and never raise;
the exceptions here cover lookup and usage errors around the editor.
"""

from typing import Any, Dict, List, Optional


class FlowBuilderError(Exception):
    """
    Base exception for all Flow Builder errors.

    Attributes:
        message: Human-readable error description
        code: Optional machine-readable error code
        details: Optional additional error details
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, code={self.code!r})"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class FlowNotFoundError(FlowBuilderError):
    """Raised when a flow id is not in the store."""

    def __init__(self, flow_id: str):
        super().__init__(
            f"Flow not found: {flow_id}",
            code="flow_not_found",
            details={"flow_id": flow_id},
        )
        self.flow_id = flow_id


class NoFlowSelectedError(FlowBuilderError):
    """Raised when an editing or run operation needs a selected flow."""

    def __init__(self):
        super().__init__("No flow is selected", code="no_flow_selected")


class FlowExistsError(FlowBuilderError):
    """Raised when an imported flow reuses the id of a stored flow."""

    def __init__(self, flow_id: str):
        super().__init__(
            f"Flow already exists: {flow_id}",
            code="flow_exists",
            details={"flow_id": flow_id},
        )
        self.flow_id = flow_id


class InvalidFlowError(FlowBuilderError):
    """Raised when imported flow data is malformed or breaks graph rules."""

    def __init__(self, message: str, issues: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message, code="invalid_flow", details={"issues": issues or []})
        self.issues = self.details["issues"]


__all__ = [
    "FlowBuilderError",
    "FlowExistsError",
    "FlowNotFoundError",
    "InvalidFlowError",
    "NoFlowSelectedError",
]
