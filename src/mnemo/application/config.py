from datetime import timedelta
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from mnemo.application.scheduling.fsrs import FsrsParameters
from mnemo.domain.constants import (
    FSRS_DEFAULT_LEARNING_STEPS_MIN,
    FSRS_DEFAULT_MAX_INTERVAL,
    FSRS_DEFAULT_RELEARNING_STEPS_MIN,
    FSRS_DEFAULT_RETENTION,
)


def config_files() -> list[Path]:
    return [
        Path.home() / ".config/mnemo/config.toml",
        Path.home() / ".mnemo.toml",
    ]


class AppConfig(BaseSettings):
    """
    Configuration model for mnemo.
    Supports loading from:
    1. Config file (~/.config/mnemo/config.toml or ~/.mnemo.toml)
    2. Environment variables (MNEMO_*)
    3. Manual overrides (CLI / API)
    """

    model_config = SettingsConfigDict(
        env_prefix="MNEMO_",
        extra="ignore",
    )

    # Storage
    backend: Literal["json", "memory"] = "json"
    store_path: Path = Field(default_factory=lambda: Path.home() / ".config/mnemo/progress.json")
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".config/mnemo/logs")

    # FSRS
    request_retention: float = Field(default=FSRS_DEFAULT_RETENTION, ge=0.7, le=0.97)
    maximum_interval: int = Field(default=FSRS_DEFAULT_MAX_INTERVAL, ge=1, le=36500)
    enable_fuzz: bool = True
    enable_short_term: bool = True
    learning_steps_minutes: list[float] = Field(
        default_factory=lambda: list(FSRS_DEFAULT_LEARNING_STEPS_MIN)
    )
    relearning_steps_minutes: list[float] = Field(
        default_factory=lambda: list(FSRS_DEFAULT_RELEARNING_STEPS_MIN)
    )

    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # First existing file wins
        toml_file = next((f for f in config_files() if f.exists()), None)

        # Earlier sources take priority: overrides, then env, then file
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("store_path", "log_dir", mode="before")
    @classmethod
    def resolve_path(cls, v: Any) -> Path:
        return Path(v).expanduser().resolve()

    @field_validator("learning_steps_minutes", "relearning_steps_minutes")
    @classmethod
    def positive_steps(cls, v: list[float]) -> list[float]:
        if any(step <= 0 for step in v):
            raise ValueError("learning steps must be positive minutes")
        return v

    def fsrs_parameters(self) -> FsrsParameters:
        return FsrsParameters(
            request_retention=self.request_retention,
            maximum_interval=self.maximum_interval,
            enable_fuzz=self.enable_fuzz,
            enable_short_term=self.enable_short_term,
            learning_steps=tuple(timedelta(minutes=m) for m in self.learning_steps_minutes),
            relearning_steps=tuple(timedelta(minutes=m) for m in self.relearning_steps_minutes),
        )


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/mnemo/config.toml (if exists)
    3. Environment variables (MNEMO_*)
    4. cli_overrides (None values are ignored)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
