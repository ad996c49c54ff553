from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


COOKING_METHODS = (
    "baking",
    "roasting",
    "frying",
    "sauteing",
    "boiling",
    "simmering",
    "steaming",
    "grilling",
    "braising",
    "no-cook",
)


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SCALER_", env_file=".env", extra="ignore")

    api_base_url: str = "http://localhost:8000"
    request_timeout: float = 10.0
    session_file: Path = Path(".scaler_session.json")

    # Seconds to wait for the service to generate tips after an AI scale.
    tip_settle_delay: float = 3.0
    user_lookup_attempts: int = 3
    user_lookup_backoff: float = 1.0
    register_settle_delay: float = 2.0

    cooking_methods: list[str] = list(COOKING_METHODS)
    log_level: str = "INFO"
