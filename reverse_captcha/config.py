from pydantic import ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Challenge protocol
    stream_interval_ms: int = Field(80, gt=0)
    ops_per_challenge: int = Field(18, gt=0)
    op_window_ms: int = Field(700, gt=0)
    total_ttl_ms: int = Field(3000, gt=0)

    # Eviction
    sweep_interval_seconds: int = Field(10, gt=0)
    eviction_grace_ms: int = Field(60_000, ge=0)  # keep answering challenge-expired

    # Rate Limiting
    rate_limit_starts: str = "30/minute"
    rate_limit_solves: str = "60/minute"

    # Logging
    log_level: str = "info"
    log_format: str = "console"

    # CORS
    cors_origins: list[str] | str = ["http://localhost:3000", "http://127.0.0.1:3000"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return v


settings = Settings()
