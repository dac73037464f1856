from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    access_log_path: str = Field(default="logs/access-log.log", alias="ACCESS_LOG_PATH")
    async_delay_ms: int = Field(default=50, ge=0, alias="ASYNC_DELAY_MS")
    propagate_context: bool = Field(default=False, alias="PROPAGATE_CONTEXT")
    trust_traceparent: bool = Field(default=True, alias="TRUST_TRACEPARENT")
    enable_metrics_endpoint: bool = Field(default=True, alias="ENABLE_METRICS_ENDPOINT")

    @property
    def access_log_file(self) -> Path:
        return Path(self.access_log_path)

    @property
    def async_delay_seconds(self) -> float:
        return self.async_delay_ms / 1000.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
