from functools import lru_cache

from src.app.core.config import get_settings
from src.gateway.server import ToolGateway, build_gateway
from src.tools.linear_client import LinearClient


@lru_cache()
def get_gateway() -> ToolGateway:
    """One gateway per process so the metrics log is shared by every request."""
    settings = get_settings()
    client = LinearClient(
        api_key=settings.LINEAR_API_KEY,
        api_url=settings.LINEAR_API_URL,
        timeout=settings.LINEAR_TIMEOUT_SECONDS,
    )
    return build_gateway(client, settings=settings)
