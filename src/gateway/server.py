from __future__ import annotations

import json

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from src.app.core.config import Settings, get_settings
from src.app.utils.logger import get_logger, kv
from src.gateway.dispatcher import ToolDispatcher
from src.gateway.errors import NormalizedError, ToolError, normalize_error
from src.gateway.metrics import MetricsCollector, average_request_duration, error_rate
from src.gateway.pipeline import PipelineEngine
from src.tools.registry import ToolSpec, default_registry

logger = get_logger("gateway.server")

PIPELINE_TOOL_NAME = "executePipeline"

_PIPELINE_TOOL = {
    "name": PIPELINE_TOOL_NAME,
    "description": "Execute a pipeline of Linear operations",
    "inputSchema": {
        "type": "object",
        "properties": {
            "steps": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "toolName": {"type": "string"},
                        "params": {"type": "object"},
                        "condition": {"type": "object", "description": "kind: always | non_empty | is_empty | field_equals"},
                        "transform": {"type": "object", "description": "kind: literal | from_result"},
                    },
                    "required": ["toolName"],
                },
            },
            "context": {"type": "object"},
        },
        "required": ["steps"],
    },
}


@dataclass
class ToolCallResult:
    """What the caller gets back: the result, or a normalized error with is_error set."""
    name: str
    result: Any = None
    error: Optional[NormalizedError] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def content(self) -> List[Dict[str, Any]]:
        payload = self.error.model_dump() if self.error is not None else self.result
        return [{"type": "text", "text": json.dumps(payload, indent=2, ensure_ascii=False, default=str)}]


@dataclass
class ToolGateway:
    registry: Mapping[str, ToolSpec]
    dispatcher: ToolDispatcher
    metrics: MetricsCollector
    engine: PipelineEngine
    tool_names: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.tool_names:
            self.tool_names = list(self.registry.keys())

    def list_tools(self) -> List[Dict[str, Any]]:
        return [spec.describe() for spec in self.registry.values()] + [_PIPELINE_TOOL]

    def call_tool(self, name: str, arguments: Any = None) -> ToolCallResult:
        try:
            if name == PIPELINE_TOOL_NAME:
                result = self.engine.execute_pipeline(arguments)
            else:
                result = self.dispatcher.execute_tool(name, arguments)
            return ToolCallResult(name=name, result=result)

        except ToolError as e:
            return ToolCallResult(name=name, error=normalize_error(e))
        except Exception as e:
            logger.exception("unexpected gateway error %s", kv(tool=name))
            return ToolCallResult(name=name, error=normalize_error(e))

    def metrics_summary(self, tool_name: Optional[str] = None) -> Dict[str, Any]:
        def _stats(scope: Optional[str]) -> Dict[str, Any]:
            # one snapshot so count and rates describe the same entries
            entries = self.metrics.get_metrics_for_tool(scope) if scope else self.metrics.get_metrics()
            return {
                "count": len(entries),
                "error_rate": error_rate(entries),
                "avg_duration_ms": average_request_duration(entries),
            }

        if tool_name is not None:
            return {"tool": tool_name, **_stats(tool_name)}

        return {
            "overall": _stats(None),
            "tools": {name: _stats(name) for name in self.tool_names},
        }

    def report_metrics(self) -> None:
        summary = self.metrics_summary()
        overall = summary["overall"]
        logger.info("metrics %s", kv(**overall))
        for name, stats in summary["tools"].items():
            logger.info("metrics %s", kv(tool=name, **stats))


def build_gateway(
    client: Any,
    settings: Optional[Settings] = None,
    registry: Optional[Mapping[str, ToolSpec]] = None,
) -> ToolGateway:
    settings = settings or get_settings()
    registry = registry if registry is not None else default_registry()

    metrics = MetricsCollector(max_entries=settings.METRICS_MAX_ENTRIES)
    dispatcher = ToolDispatcher(registry, client, metrics)
    engine = PipelineEngine(
        dispatcher.execute_tool,
        enforce_timeout=settings.PIPELINE_ENFORCE_TIMEOUT,
        default_timeout=settings.PIPELINE_DEFAULT_TIMEOUT_SECONDS,
    )
    return ToolGateway(registry=registry, dispatcher=dispatcher, metrics=metrics, engine=engine)
