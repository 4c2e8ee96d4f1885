"""Application settings loaded from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Compute service
    oee_api_base_url: str = "http://localhost:3000/api/v1/calculus/engineer/oee"
    oee_api_timeout_seconds: float = 30.0  # per outbound call

    # Transport retry (0 = disabled, the orchestrator never retries on its own)
    oee_api_max_retries: int = 0
    oee_api_retry_delay_seconds: float = 1.0  # doubled on each attempt

    # Session defaults
    default_include_sensitivity: bool = True
    default_include_temporal_scrap: bool = False
    default_include_leverage: bool = False
    default_sensitivity_variation: float = 10.0  # percent

    # Response cache
    result_cache_max_entries: int = 500


settings = Settings()
