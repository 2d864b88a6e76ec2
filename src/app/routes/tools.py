import time

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from src.app.dependencies import get_gateway
from src.app.schemas.tools import (
    ErrorResponse,
    MetricsSummary,
    ToolCallRequest,
    ToolCallResponse,
    ToolListResponse,
    ToolMetricsSummary,
)
from src.app.utils.logger import get_logger
from src.gateway.server import ToolGateway


logger = get_logger("routes.tools")

router = APIRouter(
    prefix="/v1",
    tags=["tools"],
)

_STATUS_BY_CODE = {
    "UNKNOWN_TOOL": 404,
    "INVALID_ARGUMENTS": 422,
    "INVALID_PIPELINE": 422,
    "RATE_LIMIT": 429,
    "AUTHENTICATION_ERROR": 502,
    "NETWORK_ERROR": 502,
    "TOOL_ERROR": 502,
    "PIPELINE_STEP_ERROR": 502,
    "PIPELINE_TIMEOUT": 502,
}


@router.get("/tools", response_model=ToolListResponse)
def list_tools(gateway: ToolGateway = Depends(get_gateway)) -> ToolListResponse:
    return ToolListResponse(tools=gateway.list_tools())


@router.post(
    "/tools/call",
    response_model=ToolCallResponse,
    responses={status: {"model": ErrorResponse} for status in (404, 422, 429, 500, 502)},
)
def call_tool(request: ToolCallRequest, gateway: ToolGateway = Depends(get_gateway)):
    """
    Run one tool, or a whole pipeline when name is executePipeline.
    """

    start_time = time.time()
    try:
        outcome = gateway.call_tool(request.name, request.arguments)
    except Exception as e:
        logger.exception("Unexpected error occurred while calling tool %s.", request.name)
        raise HTTPException(status_code=500, detail="Internal server error") from e

    duration_ms = int((time.time() - start_time) * 1000)

    if outcome.is_error:
        error = outcome.error
        logger.warning("tool=%s code=%s retryable=%s (%dms)", request.name, error.code, error.retryable, duration_ms)
        return JSONResponse(
            status_code=_STATUS_BY_CODE.get(error.code, 500),
            content=error.model_dump(mode="json"),
        )

    logger.info("tool=%s completed (%dms)", request.name, duration_ms)
    return ToolCallResponse(name=outcome.name, result=outcome.result)


@router.get("/metrics", response_model=None)
def get_metrics(tool: Optional[str] = None, gateway: ToolGateway = Depends(get_gateway)):
    if tool:
        return ToolMetricsSummary(**gateway.metrics_summary(tool))
    return MetricsSummary(**gateway.metrics_summary())
