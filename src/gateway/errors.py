from __future__ import annotations

from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field


UNKNOWN_TOOL = "UNKNOWN_TOOL"
INVALID_ARGUMENTS = "INVALID_ARGUMENTS"
INVALID_PIPELINE = "INVALID_PIPELINE"
PIPELINE_STEP_ERROR = "PIPELINE_STEP_ERROR"
PIPELINE_TIMEOUT = "PIPELINE_TIMEOUT"
RATE_LIMIT = "RATE_LIMIT"
AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
NETWORK_ERROR = "NETWORK_ERROR"
TOOL_ERROR = "TOOL_ERROR"
SERVER_ERROR = "SERVER_ERROR"

RETRYABLE_CODES = frozenset({RATE_LIMIT, NETWORK_ERROR})

_DEFAULT_SUGGESTIONS: Tuple[str, ...] = (
    "Check input parameters",
    "Consult Linear API documentation",
)

_SUGGESTIONS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    RATE_LIMIT: ("Wait and retry later", "Reduce request frequency"),
    AUTHENTICATION_ERROR: ("Check API key", "Verify Linear authentication"),
    NETWORK_ERROR: ("Check network connection", "Verify Linear API status"),
})


class ToolError(RuntimeError):
    """
    Failure raised by the dispatcher or the pipeline engine.
    The gateway turns it into a NormalizedError for the caller.
    """
    def __init__(
        self,
        message: str,
        code: str = TOOL_ERROR,
        details: Any = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details
        self.retryable = code in RETRYABLE_CODES if retryable is None else retryable


class UnknownToolError(ToolError):
    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}", code=UNKNOWN_TOOL, details={"name": name})


class InvalidArgumentsError(ToolError):
    def __init__(self, name: str, errors: List[Any]):
        super().__init__(
            f"Invalid arguments for tool {name}",
            code=INVALID_ARGUMENTS,
            details={"name": name, "errors": errors},
        )


class InvalidPipelineError(ToolError):
    def __init__(self, errors: List[Any]):
        super().__init__("Invalid pipeline configuration", code=INVALID_PIPELINE, details={"errors": errors})


class PipelineStepError(ToolError):
    """Wraps the first failing step; a partially applied chain is never retryable."""
    def __init__(self, message: str, step: int, tool_name: str, cause_code: Optional[str] = None):
        super().__init__(
            message,
            code=PIPELINE_STEP_ERROR,
            details={"step": step, "toolName": tool_name, "cause": {"code": cause_code, "message": message}},
            retryable=False,
        )
        self.step = step
        self.tool_name = tool_name


class PipelineTimeoutError(ToolError):
    def __init__(self, request_id: str, timeout: float, step: int):
        super().__init__(
            f"Pipeline exceeded timeout of {timeout}s before step {step}",
            code=PIPELINE_TIMEOUT,
            details={"requestId": request_id, "timeout": timeout, "step": step},
            retryable=False,
        )


class NormalizedError(BaseModel):
    code: str
    message: str
    details: Any = None
    retryable: bool = False
    suggestions: List[str] = Field(default_factory=list)


def suggestions_for(code: Optional[str]) -> List[str]:
    return list(_SUGGESTIONS.get(code or "", _DEFAULT_SUGGESTIONS))


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return str(value)


def normalize_error(exc: BaseException) -> NormalizedError:
    """
    Shape any failure for the caller.
    ToolError keeps its own code and retryable flag; everything else is a SERVER_ERROR.
    """
    if isinstance(exc, ToolError):
        code = exc.code or TOOL_ERROR
        return NormalizedError(
            code=code,
            message=exc.message,
            details=_json_safe(exc.details),
            retryable=exc.retryable,
            suggestions=suggestions_for(code),
        )

    return NormalizedError(
        code=SERVER_ERROR,
        message=str(exc) or exc.__class__.__name__,
        details={"type": exc.__class__.__name__},
        retryable=False,
        suggestions=suggestions_for(SERVER_ERROR),
    )
