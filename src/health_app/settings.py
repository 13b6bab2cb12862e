# src/health_app/settings.py
import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class HealthSettings(BaseSettings):
    """
    Settings for the health-check web service.

    The version comes from APP_VERSION when the environment injects it,
    otherwise from the manifest shipped next to the app.
    """

    app_version: Optional[str] = Field(
        default=None,
        alias="APP_VERSION"
    )

    manifest_path: Path = Field(
        default=Path("package.json"),
        alias="APP_MANIFEST_PATH"
    )

    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8080, alias="PORT", ge=1, le=65535)

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    def resolve_version(self) -> str:
        """Version from APP_VERSION, or the manifest's ``version`` field."""
        if self.app_version:
            return self.app_version
        try:
            manifest = json.loads(self.manifest_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise RuntimeError(f"Cannot read version from {self.manifest_path}: {e}") from e
        version = manifest.get("version") if isinstance(manifest, dict) else None
        if not isinstance(version, str) or not version:
            raise RuntimeError(f"No version in {self.manifest_path}")
        return version


class AppInfo(BaseModel):
    """Immutable per-process configuration handed to request handlers."""
    model_config = ConfigDict(frozen=True)

    version: str
