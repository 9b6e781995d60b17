"""
Shared error handling for the Authorization Service.
"""

from typing import Dict, Any, Optional

from opentelemetry import trace
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class AccessLayerException(Exception):
    """Base exception for authorization errors."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ModelLoadError(AccessLayerException):
    """The matching model definition is malformed or unsupported."""

    def __init__(self, message: str = "Failed to load authorization model", details: Optional[Dict[str, Any]] = None):
        super().__init__("MODEL_LOAD_ERROR", message, details)


class StoreConnectError(AccessLayerException):
    """The rule store could not be reached or loaded."""

    status_code = 503

    def __init__(self, message: str = "Failed to connect to rule store", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_CONNECT_ERROR", message, details)


class EvaluationError(AccessLayerException):
    """Evaluation failed for reasons other than a missing rule.

    Callers must treat this as "unknown", never as a denial or a grant.
    """

    def __init__(self, message: str = "Failed to check permission", details: Optional[Dict[str, Any]] = None):
        super().__init__("EVALUATION_ERROR", message, details)


class AccessDeniedError(AccessLayerException):
    """No rule grants the requested access."""

    status_code = 403

    def __init__(self, subject: str, domain: str, obj: str, action: str):
        self.subject = subject
        self.domain = domain
        self.object = obj
        self.action = action

        if obj:
            message = (
                f"access denied for subject '{subject}' and domain '{domain}' "
                f"and object '{obj}' and action '{action}'"
            )
        else:
            message = f"access denied for subject '{subject}' and domain '{domain}' and action '{action}'"

        super().__init__(
            "ACCESS_DENIED",
            message,
            {"subject": subject, "domain": domain, "object": obj, "action": action}
        )


class ParseError(AccessLayerException):
    """A bulk-load row could not be parsed."""

    status_code = 400

    def __init__(self, message: str, row: int, ptype: Optional[str] = None, record: Optional[list] = None):
        self.row = row
        self.ptype = ptype
        self.record = record or []
        super().__init__(
            "PARSE_ERROR",
            message,
            {"row": row, "ptype": ptype, "record": self.record}
        )


class PersistenceWriteError(AccessLayerException):
    """Rules could not be written to the store."""

    def __init__(self, message: str = "Failed to persist rules", details: Optional[Dict[str, Any]] = None):
        super().__init__("PERSISTENCE_WRITE_ERROR", message, details)
