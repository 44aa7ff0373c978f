from functools import lru_cache
import json
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BACKEND_ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


def _split_list(value: str | list[str]) -> list[str]:
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("["):
            try:
                parsed = json.loads(stripped)
                if isinstance(parsed, list):
                    return [str(item).strip() for item in parsed if str(item).strip()]
            except json.JSONDecodeError:
                pass
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class Settings(BaseSettings):
    # Resolve to backend/.env so the session can be built from any cwd.
    model_config = SettingsConfigDict(
        env_file=str(BACKEND_ENV_FILE),
        env_file_encoding="utf-8",
        env_prefix="TIMEGRID_",
    )

    project_name: str = "Timegrid"

    api_base_url: str = "http://localhost:4000/api/v1"
    api_token: str | None = None
    request_timeout_seconds: float = 15.0

    # Catalogs that degrade to an empty list when the backend answers 404.
    optional_catalogs: list[str] = ["periods"]

    day_order: list[str] = ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY"]

    @field_validator("optional_catalogs", "day_order", mode="before")
    @classmethod
    def split_list_values(cls, value: str | list[str]) -> list[str]:
        return _split_list(value)

    @field_validator("day_order")
    @classmethod
    def normalize_day_order(cls, value: list[str]) -> list[str]:
        return [day.upper() for day in value]


@lru_cache
def get_settings() -> Settings:
    return Settings()
