from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class HarmonizationSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MFL_", extra="ignore")

    SOURCE_PATH: str | None = None
    SOURCE_URL: str | None = None
    SOURCE_SHEET: str | None = None
    FIELD_MAP: str = "kenya_kmhfl"
    SOURCE_LABEL: str | None = None
    TIMESTAMP: str | None = None
    HISTORY_FILE: str = "runtime/facilities.jsonl"
    ERROR_REPORT_FILE: str | None = "runtime/harmonization_errors.json"
    METRICS_FILE: str | None = None
    SCHEMA_VALIDATION: bool = True
    MAX_REJECT_RATIO: float = Field(default=1.0, ge=0, le=1)
    REJECT_SAMPLE_SIZE: int = Field(default=5, ge=0)
    HTTP_CONNECT_TIMEOUT_SECONDS: float = Field(default=2.0, ge=0)
    HTTP_READ_TIMEOUT_SECONDS: float = Field(default=10.0, ge=0)
    FETCH_MAX_RETRIES: int = Field(default=3, gt=0)
    FETCH_RETRY_BASE_DELAY_SECONDS: float = Field(default=0.1, ge=0)
    LOG_LEVEL: str = "INFO"

    @model_validator(mode="after")
    def _single_source(self) -> HarmonizationSettings:
        if bool(self.SOURCE_PATH) == bool(self.SOURCE_URL):
            raise ValueError("exactly one of MFL_SOURCE_PATH or MFL_SOURCE_URL must be set")
        return self


def load_settings(**overrides: object) -> HarmonizationSettings:
    return HarmonizationSettings(**overrides)
