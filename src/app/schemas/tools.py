from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class ToolCallRequest(BaseModel):
    name: str = Field(..., min_length=1)
    arguments: Optional[Any] = Field(default_factory=dict)

class ToolCallResponse(BaseModel):
    name: str
    result: Any

class ErrorResponse(BaseModel):
    code: str
    message: str
    details: Any = None
    retryable: bool
    suggestions: List[str]

class ToolDescriptor(BaseModel):
    name: str
    description: str
    inputSchema: Dict[str, Any]

class ToolListResponse(BaseModel):
    tools: List[ToolDescriptor]

class ToolStats(BaseModel):
    count: int
    error_rate: float
    avg_duration_ms: float

class MetricsSummary(BaseModel):
    overall: ToolStats
    tools: Dict[str, ToolStats]

class ToolMetricsSummary(ToolStats):
    tool: str
