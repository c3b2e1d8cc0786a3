from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "CRM RBAC API"
    app_env: str = "local"
    app_debug: bool = True
    storage_backend: str = "memory"
    database_url: str = "sqlite+pysqlite:///./crm.db"
    jwt_secret: str = "replace-me"
    jwt_algorithm: str = "HS256"
    reporting_max_depth: int = 32
    metrics_enabled: bool = False
    otel_enabled: bool = False

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    return Settings()
