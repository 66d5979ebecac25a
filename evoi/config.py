from functools import lru_cache
from typing import List, Literal, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "EVOI Decision Engine"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API
    API_V1_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Monte Carlo
    DEFAULT_MC_SAMPLES: int = 5000
    MAX_MC_SAMPLES: int = 500_000
    POSTERIOR_GRID_SIZE: int = 200

    # Worker pool for Monte Carlo requests
    WORKER_KIND: Literal["process", "thread"] = "process"
    WORKER_MAX_WORKERS: int = 2

    # CORS
    CORS_ORIGINS: Union[List[str], str] = []

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            # Handle both comma-separated and JSON array strings
            if v.strip().startswith("["):
                import json

                return json.loads(v)
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("DEFAULT_MC_SAMPLES", "MAX_MC_SAMPLES", "POSTERIOR_GRID_SIZE", "WORKER_MAX_WORKERS")
    @classmethod
    def must_be_positive(cls, v):
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()
