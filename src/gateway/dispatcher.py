from __future__ import annotations

import time

from typing import Any, List, Mapping

from pydantic import ValidationError

from src.app.utils.logger import get_logger, kv
from src.gateway.errors import InvalidArgumentsError, ToolError, UnknownToolError, TOOL_ERROR
from src.gateway.metrics import MetricsCollector
from src.tools.linear_client import LinearAPIError
from src.tools.registry import ToolSpec

logger = get_logger("gateway.dispatcher")


def _validation_errors(exc: ValidationError) -> List[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


class ToolDispatcher:
    """
    Validates and runs registered tools against the external client.

    Every call, successful or not, records exactly one metric. Retries are not
    attempted here, so retry_count is always 0.
    """

    def __init__(self, registry: Mapping[str, ToolSpec], client: Any, metrics: MetricsCollector):
        self.registry = registry
        self.client = client
        self.metrics = metrics

    @property
    def tool_names(self) -> List[str]:
        return list(self.registry.keys())

    def _run(self, name: str, params: Any) -> Any:
        spec = self.registry.get(name)
        if spec is None:
            raise UnknownToolError(name)

        try:
            validated = spec.validate(params)
        except ValidationError as e:
            raise InvalidArgumentsError(name, _validation_errors(e)) from e

        try:
            return spec.invoke(self.client, validated)
        except ToolError:
            raise
        except LinearAPIError as e:
            raise ToolError(str(e), code=e.code or TOOL_ERROR, details=e.details) from e
        except Exception as e:
            code = getattr(e, "code", None)
            if not isinstance(code, str) or not code:
                code = TOOL_ERROR
            raise ToolError(str(e) or e.__class__.__name__, code=code) from e

    def execute_tool(self, name: str, params: Any) -> Any:
        start = time.perf_counter()
        try:
            result = self._run(name, params)
        except ToolError as e:
            duration_ms = (time.perf_counter() - start) * 1000
            self.metrics.record(name, duration_ms, success=False, error_type=e.code, retry_count=0)
            logger.warning("%s failed: %s", kv(tool=name, code=e.code, duration_ms=duration_ms), e.message)
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        self.metrics.record(name, duration_ms, success=True, retry_count=0)
        logger.info("%s", kv(tool=name, duration_ms=duration_ms))
        return result
