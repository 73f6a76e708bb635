"""Application configuration contract."""

from functools import lru_cache
from pathlib import Path, PurePosixPath

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from bmad_bundle.errors import ConfigError

PACKAGE_EMBEDDED_ROOT = Path(__file__).resolve().parent / "embedded"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = Field(alias="APP_ENV", default="dev")
    log_level: str = Field(alias="LOG_LEVEL", default="INFO")
    source_root: str = Field(alias="BMAD_SOURCE_ROOT", default=".")
    embedded_root: str = Field(alias="BMAD_EMBEDDED_ROOT", default="")
    min_agents: int = Field(alias="BMAD_MIN_AGENTS", default=10)
    output_dir: str = Field(alias="BMAD_OUTPUT_DIR", default="docs")
    output_registry_capacity: int = Field(alias="BMAD_OUTPUT_REGISTRY_CAPACITY", default=0)

    def source_root_path(self) -> Path:
        return Path(self.source_root).expanduser().resolve()

    def embedded_root_path(self) -> Path:
        if not self.embedded_root.strip():
            return PACKAGE_EMBEDDED_ROOT
        return Path(self.embedded_root).expanduser().resolve()


def validate_settings(settings: Settings) -> None:
    problems: list[str] = []
    if settings.output_registry_capacity < 0:
        problems.append("BMAD_OUTPUT_REGISTRY_CAPACITY(must be >= 0)")
    if settings.min_agents < 1:
        problems.append("BMAD_MIN_AGENTS(must be >= 1)")
    output_dir = PurePosixPath(settings.output_dir.replace("\\", "/"))
    if not settings.output_dir.strip() or output_dir.is_absolute() or ".." in output_dir.parts:
        problems.append("BMAD_OUTPUT_DIR(relative path inside the working directory required)")
    if problems:
        raise ConfigError(f"invalid configuration: {', '.join(problems)}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
