"""
API process settings read from the environment.
"""
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class ApiSettings(BaseSettings):
    internal_auth_secret: str = ""
    internal_auth_max_age_seconds: int = 60
    cors_allow_origins: str = ""
    frontend_url: str = ""
    api_docs_enabled: bool = False
    auto_create_tables: bool = False
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def cors_origins(self) -> List[str]:
        """CORS_ALLOW_ORIGINS (comma separated), else FRONTEND_URL, else local dev."""
        origins = [o.strip() for o in self.cors_allow_origins.split(",") if o.strip()]
        if origins:
            return origins
        if self.frontend_url:
            return [self.frontend_url]
        return ["http://localhost:3000"]


@lru_cache
def get_api_settings() -> ApiSettings:
    return ApiSettings()
