from functools import lru_cache
from pathlib import Path
import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..services.directory import Directory


_DEFAULT_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:4173",
    "http://localhost:3000",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", env_prefix="NEST_")

    app_name: str = "Asset Nest"
    api_prefix: str = "/api"
    storage_directory: str = "documents"
    storage_subfolder: str = "nest-local-storage"
    storage_root: Path | None = None
    database_url: str | None = None
    auto_create_schema: bool = True
    change_notification_interval_ms: int = Field(default=300, ge=0)
    allowed_origins: list[str] | str = Field(default_factory=lambda: _DEFAULT_ORIGINS.copy())
    api_key: str | None = None
    log_level: str = "INFO"

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                return _DEFAULT_ORIGINS.copy()
            return [origin.strip() for origin in stripped.split(",") if origin.strip()]
        return value

    @field_validator("storage_directory")
    @classmethod
    def _check_directory(cls, value: str) -> str:
        Directory.parse(value)
        return value

    @property
    def directory(self) -> Directory:
        return Directory.parse(self.storage_directory)

    @property
    def resolved_storage_root(self) -> Path:
        if self.storage_root is not None:
            return Path(self.storage_root).expanduser().resolve()
        return self.directory.path / self.storage_subfolder

    @property
    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        db_path = self.resolved_storage_root.parent / f"{self.storage_subfolder}.sqlite3"
        return f"sqlite:///{db_path}"

    @property
    def change_notification_interval(self) -> float:
        return self.change_notification_interval_ms / 1000.0


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    logging.getLogger(__name__).debug("Storage root resolved: %s", settings.resolved_storage_root)
    return settings
