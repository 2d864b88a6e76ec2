"""
Sequential tool pipelines.

A pipeline is an ordered list of steps run one after another through the
dispatcher. Each step may carry a condition (skip the step when false) and a
transform (derive the step params from the previous result). Both can be given
as declarative `kind` objects, which keeps a pipeline plain JSON, or as Python
callables when the pipeline is built in-process.

The first failing step aborts the run and its partial results are dropped.
"""

from __future__ import annotations

import copy
import time
import uuid

from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from src.app.utils.logger import get_logger, kv
from src.gateway.errors import InvalidPipelineError, PipelineStepError, PipelineTimeoutError, ToolError

logger = get_logger("gateway.pipeline")

_MISSING = object()


def resolve_path(value: Any, path: Optional[str]) -> Any:
    """Dotted lookup: dict keys and list indexes (`nodes.0.id`). Missing -> None."""
    if not path:
        return value

    current = value
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part, _MISSING)
        elif isinstance(current, (list, tuple)) and part.lstrip("-").isdigit():
            idx = int(part)
            current = current[idx] if -len(current) <= idx < len(current) else _MISSING
        else:
            current = getattr(current, part, _MISSING) if current is not None else _MISSING

        if current is _MISSING:
            return None
    return current


def _is_non_empty(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, bytes, list, tuple, dict, set)):
        return len(value) > 0
    return bool(value)


# ---------------------
# Conditions
# ---------------------
class AlwaysCondition(BaseModel):
    kind: Literal["always"] = "always"

    def __call__(self, prev_result: Any) -> bool:
        return True


class NonEmptyCondition(BaseModel):
    kind: Literal["non_empty"] = "non_empty"
    path: Optional[str] = None

    def __call__(self, prev_result: Any) -> bool:
        return _is_non_empty(resolve_path(prev_result, self.path))


class IsEmptyCondition(BaseModel):
    kind: Literal["is_empty"] = "is_empty"
    path: Optional[str] = None

    def __call__(self, prev_result: Any) -> bool:
        return not _is_non_empty(resolve_path(prev_result, self.path))


class FieldEqualsCondition(BaseModel):
    kind: Literal["field_equals"] = "field_equals"
    path: str
    value: Any = None

    def __call__(self, prev_result: Any) -> bool:
        return resolve_path(prev_result, self.path) == self.value


Condition = Annotated[
    Union[AlwaysCondition, NonEmptyCondition, IsEmptyCondition, FieldEqualsCondition],
    Field(discriminator="kind"),
]


# ---------------------
# Transforms
# ---------------------
class LiteralTransform(BaseModel):
    kind: Literal["literal"] = "literal"
    params: Dict[str, Any] = Field(default_factory=dict)

    def __call__(self, prev_result: Any) -> Dict[str, Any]:
        return copy.deepcopy(self.params)


class FromResultTransform(BaseModel):
    """Copies `params` and fills each `fields` entry from a path in the previous result."""
    kind: Literal["from_result"] = "from_result"
    params: Dict[str, Any] = Field(default_factory=dict)
    fields: Dict[str, str] = Field(default_factory=dict)

    def __call__(self, prev_result: Any) -> Dict[str, Any]:
        out = copy.deepcopy(self.params)
        for param_name, path in self.fields.items():
            out[param_name] = resolve_path(prev_result, path)
        return out


Transform = Annotated[Union[LiteralTransform, FromResultTransform], Field(discriminator="kind")]

_CONDITION_ADAPTER = TypeAdapter(Condition)
_TRANSFORM_ADAPTER = TypeAdapter(Transform)

ConditionFn = Callable[[Any], bool]
TransformFn = Callable[[Any], Any]


# ---------------------
# Pipeline models
# ---------------------
class ExecutionContext(BaseModel):
    """Traceability data for one run. Missing ids and timestamps are generated."""
    model_config = ConfigDict(populate_by_name=True)

    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="requestId", min_length=1)
    timestamp: float = Field(default_factory=time.time)
    timeout: Optional[float] = Field(default=None, ge=0, description="seconds")
    retry_count: Optional[int] = Field(default=None, ge=0, alias="retryCount")
    parent_context: Optional[str] = Field(default=None, alias="parentContext")


class PipelineStep(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tool_name: str = Field(..., alias="toolName", min_length=1)
    params: Any = None
    condition: Optional[Any] = None
    transform: Optional[Any] = None

    @field_validator("condition")
    @classmethod
    def _check_condition(cls, value: Any) -> Optional[ConditionFn]:
        if value is None or callable(value):
            return value
        return _CONDITION_ADAPTER.validate_python(value)

    @field_validator("transform")
    @classmethod
    def _check_transform(cls, value: Any) -> Optional[TransformFn]:
        if value is None or callable(value):
            return value
        return _TRANSFORM_ADAPTER.validate_python(value)

    def should_run(self, prev_result: Any) -> bool:
        if self.condition is None:
            return True
        return bool(self.condition(prev_result))

    def effective_params(self, prev_result: Any) -> Any:
        if self.transform is None:
            return self.params
        return self.transform(prev_result)


class Pipeline(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    steps: List[PipelineStep]
    context: Optional[ExecutionContext] = None


def list_and_create_pipeline(
    list_params: Dict[str, Any],
    build_issue: Callable[[Dict[str, Any]], Dict[str, Any]],
) -> Pipeline:
    """
    listIssues, then createIssue from the first listed issue.
    The create step is skipped when the list comes back empty.
    """
    return Pipeline(
        steps=[
            PipelineStep(tool_name="listIssues", params=list_params),
            PipelineStep(
                tool_name="createIssue",
                params={},
                condition=NonEmptyCondition(path="nodes"),
                transform=lambda result: build_issue(result["nodes"][0]),
            ),
        ]
    )


# ---------------------
# Engine
# ---------------------
class PipelineEngine:
    def __init__(
        self,
        execute_tool: Callable[[str, Any], Any],
        enforce_timeout: bool = False,
        default_timeout: Optional[float] = None,
    ):
        self.execute_tool = execute_tool
        self.enforce_timeout = enforce_timeout
        self.default_timeout = default_timeout

    @staticmethod
    def validate(pipeline_input: Any) -> Pipeline:
        try:
            return Pipeline.model_validate(pipeline_input)
        except ValidationError as e:
            errors = [{"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in e.errors()]
            raise InvalidPipelineError(errors) from e

    def _deadline(self, context: ExecutionContext, started: float) -> Optional[float]:
        if not self.enforce_timeout:
            return None
        timeout = context.timeout if context.timeout is not None else self.default_timeout
        if timeout is None:
            return None
        return started + timeout

    def execute_pipeline(self, pipeline_input: Any) -> List[Any]:
        pipeline = self.validate(pipeline_input)
        context = pipeline.context or ExecutionContext()

        started = time.monotonic()
        deadline = self._deadline(context, started)

        logger.info("pipeline start %s", kv(request_id=context.request_id, parent=context.parent_context, steps=len(pipeline.steps)))

        results: List[Any] = []
        prev_result: Any = None

        for index, step in enumerate(pipeline.steps):
            if deadline is not None and time.monotonic() > deadline:
                logger.warning("pipeline timed out %s", kv(request_id=context.request_id, step=index))
                raise PipelineTimeoutError(context.request_id, deadline - started, index)

            try:
                if not step.should_run(prev_result):
                    logger.info("step skipped %s", kv(request_id=context.request_id, step=index, tool=step.tool_name))
                    continue

                params = step.effective_params(prev_result)
                result = self.execute_tool(step.tool_name, params)

            except ToolError as e:
                logger.error("step failed %s", kv(request_id=context.request_id, step=index, tool=step.tool_name, code=e.code))
                raise PipelineStepError(e.message, index, step.tool_name, e.code) from e
            except Exception as e:
                logger.exception("step raised %s", kv(request_id=context.request_id, step=index, tool=step.tool_name))
                raise PipelineStepError(str(e) or e.__class__.__name__, index, step.tool_name) from e

            results.append(result)
            prev_result = result

        logger.info(
            "pipeline done %s",
            kv(request_id=context.request_id, results=len(results), duration_ms=(time.monotonic() - started) * 1000),
        )
        return results
