import asyncio
import contextlib
import time
import uvicorn


from fastapi import FastAPI
from fastapi import Request
from contextlib import asynccontextmanager

from src.app.core.config import get_settings
from src.app.dependencies import get_gateway
from src.app.routes.health import router as health_router
from src.app.routes.tools import router as tools_router
from src.app.utils.logger import get_logger

settings = get_settings()
logger = get_logger(__name__, log_level=settings.LOG_LEVEL)


async def _report_metrics_periodically(app: FastAPI, interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            gateway = app.dependency_overrides.get(get_gateway, get_gateway)()
            gateway.report_metrics()
        except Exception:
            logger.exception("Metrics report failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Service starting up")
    reporter = None
    if settings.METRICS_REPORT_INTERVAL_SECONDS > 0:
        reporter = asyncio.create_task(
            _report_metrics_periodically(app, settings.METRICS_REPORT_INTERVAL_SECONDS)
        )
    try:
        yield
    finally:
        if reporter is not None:
            reporter.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reporter
        logger.info("Service shutting down")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version="0.2.0",
        lifespan=lifespan
    )

    # ---------------------
    # Include routers
    # ---------------------
    app.include_router(tools_router)
    app.include_router(health_router)

    # ---- Middleware: basic request logging ----
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.time()
        response = None
        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = int((time.time() - start) * 1000)
            logger.info(
                "%s %s -> %s (%dms)",
                request.method,
                request.url.path,
                getattr(response, "status_code", "NA"),
                duration_ms,
            )

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "src.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.APP_ENV.lower() != "prod",
    )
