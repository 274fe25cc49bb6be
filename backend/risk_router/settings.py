from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping config out of code for easy extension."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" (docker compose) and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Empty means "not configured": path finding refuses to run.
    trip_service_url: str = Field(default="", alias="TRIP_SERVICE_URL")
    trip_service_max_retries: int = Field(default=3, ge=1, le=10, alias="TRIP_SERVICE_MAX_RETRIES")
    trip_service_timeout_s: float = Field(default=30.0, ge=1.0, le=300.0, alias="TRIP_SERVICE_TIMEOUT_S")

    risk_incidents_path: str = Field(default="", alias="RISK_INCIDENTS_PATH")
    risk_bandwidth_m: float = Field(default=250.0, gt=0.0, alias="RISK_BANDWIDTH_M")

    pathfinder_grid_size: int = Field(default=24, ge=2, le=200, alias="PATHFINDER_GRID_SIZE")
    pathfinder_padding_ratio: float = Field(default=0.25, ge=0.0, le=2.0, alias="PATHFINDER_PADDING_RATIO")
    risk_weight_low: float = Field(default=2.0, ge=0.0, alias="RISK_WEIGHT_LOW")
    risk_weight_high: float = Field(default=10.0, ge=0.0, alias="RISK_WEIGHT_HIGH")

    out_dir: str = Field(default="out", alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @model_validator(mode="after")
    def _normalise(self) -> "Settings":
        self.trip_service_url = self.trip_service_url.strip().rstrip("/")
        if self.risk_weight_high < self.risk_weight_low:
            raise ValueError("RISK_WEIGHT_HIGH must not be lower than RISK_WEIGHT_LOW")
        return self


settings = Settings()
