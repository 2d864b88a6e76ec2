from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    APP_NAME: str = Field(default="linear_tool_gateway")
    APP_ENV: str = Field(default="dev")
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="")
    LOG_FORMAT: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # Linear
    LINEAR_API_KEY: str = Field(default="")
    LINEAR_API_URL: str = Field(default="https://api.linear.app/graphql")
    LINEAR_TIMEOUT_SECONDS: float = Field(default=10.0)

    # Metrics
    METRICS_MAX_ENTRIES: int = Field(default=1000, ge=1)
    METRICS_REPORT_INTERVAL_SECONDS: int = Field(default=300, ge=0)

    # Pipelines
    PIPELINE_ENFORCE_TIMEOUT: bool = Field(default=False)
    PIPELINE_DEFAULT_TIMEOUT_SECONDS: Optional[float] = Field(default=None)

@lru_cache()
def get_settings() -> Settings:
    return Settings()
