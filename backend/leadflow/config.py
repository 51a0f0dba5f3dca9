"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from leadflow.services.supabase.config import SupabaseConfig

logger = logging.getLogger(__name__)


class SupabaseSection(BaseModel):
    """Operational parameters for the backend connection."""

    timeout_seconds: float = 30.0
    function_timeout_seconds: float = 60.0
    max_retries: int = 3
    jobs_table: str = "lead_processing_jobs"
    events_table: str = "events"
    leads_table: str = "event_leads"


class PipelineConfig(BaseModel):
    """Stage polling and trigger behaviour."""

    poll_interval_seconds: float = 2.0
    follow_up_delay_seconds: float = 2.0
    confirmation_timeout_seconds: float = 120.0
    history_limit: int = 5
    logs_base_url: str = ""  # e.g. https://supabase.com/dashboard/project/<ref>/functions


class ApiConfig(BaseModel):
    """Dashboard API server settings."""

    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )


class Settings(BaseSettings):
    """Main configuration class."""

    # Paths
    data_dir: Path = Path("data")

    # Backend credentials
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_access_token: str = ""
    logfire_token: str = ""

    environment: str = "development"
    log_level: str = "INFO"

    # Nested configuration sections
    supabase: SupabaseSection = Field(default_factory=SupabaseSection)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("data_dir", mode="after")
    @classmethod
    def resolve_data_dir(cls, v: Path) -> Path:
        """Resolve data directory to absolute path."""
        return v.resolve()

    @field_validator("log_level", mode="after")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v}")
        return level

    def supabase_client_config(self) -> SupabaseConfig:
        """Build the service client config from credentials and section values."""
        return SupabaseConfig(
            url=self.supabase_url,
            anon_key=self.supabase_anon_key,
            access_token=self.supabase_access_token,
            timeout_seconds=self.supabase.timeout_seconds,
            function_timeout_seconds=self.supabase.function_timeout_seconds,
            max_retries=self.supabase.max_retries,
        )

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.data_dir / "config.yaml"

        if not config_path.exists():
            logger.debug(f"Config file not found: {config_path}. Using defaults.")
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty config file: {config_path}")
                return

            for section_name in ["supabase", "pipeline", "api"]:
                if section_name in yaml_config:
                    section = getattr(self, section_name)
                    yaml_section = yaml_config[section_name] or {}

                    section_dict = section.model_dump()
                    section_dict.update(yaml_section)

                    new_section = section.__class__(**section_dict)
                    setattr(self, section_name, new_section)

            logger.info(f"Loaded configuration from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings
