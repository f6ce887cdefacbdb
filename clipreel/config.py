"""Configuration management with YAML and environment variable support."""

from pathlib import Path
from typing import ClassVar

import yaml
from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads configuration from YAML file."""

    def get_field_value(self, field, field_name: str):
        # Not used with prepare method
        pass

    def prepare_field_value(self, field_name: str, field, value, value_is_complex: bool):
        return value

    def __call__(self):
        yaml_path = Path("config.yaml")
        if not yaml_path.exists():
            return {}

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return data


class PipelineConfig(BaseModel):
    """Pipeline execution parameters."""

    default_segment_duration: int = 5
    default_music_volume: int = 50
    transition_duration_seconds: int = 5
    orchestrator_timeout_seconds: float = 1800
    compile_timeout_seconds: float = 600
    ffmpeg_timeout_seconds: float = 300
    compile_max_attempts: int = 2
    compile_retry_min_seconds: float = 5
    compile_retry_max_seconds: float = 60
    # Share of overall progress covered by clip downloads
    download_progress_start: int = 10
    download_progress_end: int = 40
    # Jobs whose latest progress stays readable in one process
    progress_max_jobs: int = 500
    video_codec: str = "libx264"
    video_preset: str = "fast"
    video_crf: int = 23
    audio_codec: str = "aac"
    audio_bitrate: str = "192k"


class PricingConfig(BaseModel):
    """Per-second generation pricing in dollars."""

    cost_per_second_no_audio: float = 0.07
    cost_per_second_with_audio: float = 0.14


class GenerationConfig(BaseModel):
    """External generation service parameters."""

    service_url: str = "http://localhost:8100"
    api_key: str = ""
    poll_interval_seconds: float = 10
    poll_max: int = 120
    # Transitions are optional, so a stuck one is abandoned sooner
    transition_poll_max: int = 30
    request_timeout_seconds: float = 60


class StorageConfig(BaseModel):
    """Storage and database configuration."""

    database_url: str = "sqlite+aiosqlite:///clipreel.db"
    work_dir: Path = Path("tmp/compile")
    object_store_url: str = "http://localhost:54321"
    object_store_key: str = ""
    bucket: str = "videos"
    download_timeout_seconds: float = 120

    @field_validator("work_dir", mode="before")
    @classmethod
    def convert_work_dir_to_path(cls, v):
        """Convert string to Path object."""
        if isinstance(v, str):
            return Path(v)
        return v


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = "0.0.0.0"
    port: int = 8000


class Settings(BaseSettings):
    """Main application settings with YAML and environment variable support.

    Configuration sources (in priority order):
    1. Environment variables (prefix: CLIPREEL_, delimiter: __)
    2. YAML file (config.yaml)
    3. Field defaults
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="CLIPREEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    pipeline: PipelineConfig = PipelineConfig()
    pricing: PricingConfig = PricingConfig()
    generation: GenerationConfig = GenerationConfig()
    storage: StorageConfig = StorageConfig()
    server: ServerConfig = ServerConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ):
        """Customize settings sources to include YAML configuration.

        Priority order (highest to lowest):
        1. Environment variables
        2. YAML file
        3. Init settings (programmatic defaults)
        """
        return (
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            init_settings,
        )


# Singleton instance
settings = Settings()
