"""Error taxonomy for the document pipeline.

Validation problems are not exceptions: they travel as data on
ValidationResult. The exceptions below are the stage-fatal failures that the
orchestrator turns into a PipelineResult.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Externally visible error category (``errorType`` in API responses)."""

    RATE_LIMIT = "rate_limit_error"
    AUTHENTICATION = "authentication_error"
    MALFORMED_RESPONSE = "malformed_response"
    SERVER = "server_error"
    INVALID_REQUEST = "invalid_request_error"


class PipelineError(Exception):
    """Base exception for all stage-fatal pipeline errors."""

    error_kind: ErrorKind = ErrorKind.SERVER

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AdmissionDenied(PipelineError):
    """Raised when the daily cost budget is exhausted before a stage runs.

    Shares the external ``rate_limit_error`` shape with UpstreamRateLimit but
    originates locally in the CostGovernor.
    """

    error_kind = ErrorKind.RATE_LIMIT

    def __init__(self, stage: str, current_usage: float, limit: float) -> None:
        super().__init__(
            f"Daily API cost limit reached: ${current_usage:.4f} of ${limit:.2f} used. "
            "Please try again tomorrow."
        )
        self.stage = stage
        self.current_usage = current_usage
        self.limit = limit


class UpstreamAuthFailure(PipelineError):
    """Raised when the model provider rejects our credentials."""

    error_kind = ErrorKind.AUTHENTICATION


class UpstreamRateLimit(PipelineError):
    """Raised when the model provider throttles us (HTTP 429)."""

    error_kind = ErrorKind.RATE_LIMIT


class MalformedUpstreamResponse(PipelineError):
    """Raised when the provider output cannot be parsed into the expected shape.

    The call itself succeeded and consumed tokens, so the token counts are
    kept for cost accounting.
    """

    error_kind = ErrorKind.MALFORMED_RESPONSE

    def __init__(self, message: str, input_tokens: int = 0, output_tokens: int = 0) -> None:
        super().__init__(message)
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens


class InvalidDocument(PipelineError):
    """Raised when the submitted document is empty or not a supported image."""

    error_kind = ErrorKind.INVALID_REQUEST


class UpstreamError(PipelineError):
    """Raised for any other provider failure (5xx, unexpected status, transport)."""

    error_kind = ErrorKind.SERVER
