"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class MongoConfig(BaseModel):
    """MongoDB connection and collection names."""

    url: str = "mongodb://localhost:27017"
    scripts_database: str = "mydatabase"
    users_database: str = "users"

    scripts_collection: str = "scripts"
    codes_collection: str = "codes"
    users_collection: str = "ScriptVoid"
    leaderboard_collection: str = "leaderboard"
    online_collection: str = "online"

    server_selection_timeout_ms: int = 5000


class BatchConfig(BaseModel):
    """Batch engine limits and per-job default page sizes."""

    max_execution_ms: int = 8000  # stays under the 10s request ceiling
    max_batch_size: int = 5000

    decay_batch_size: int = 1000
    bump_batch_size: int = 1000
    promotion_batch_size: int = 500
    presence_batch_size: int = 1000
    user_stats_batch_size: int = 50
    timeout_batch_size: int = 100
    multiplier_batch_size: int = 1000
    auto_return_batch_size: int = 1000
    promo_cleanup_batch_size: int = 500


class DecayConfig(BaseModel):
    """Point decay policy."""

    period_days: int = 30
    factor: float = 0.5


class LeaderboardConfig(BaseModel):
    """Leaderboard materialized view parameters."""

    size: int = 100
    sort_field: str = "totalViews"
    cache_ttl_seconds: int = 300
    default_page_limit: int = 50
    max_page_limit: int = 100


class PresenceConfig(BaseModel):
    """Online heartbeat staleness policy."""

    stale_after_ms: int = 30000


class AutoReturnConfig(BaseModel):
    """Idle thresholds after which top-tier promotions are returned to the front."""

    tier3_idle_hours: float = 6
    tier4_idle_hours: float = 1


class OrchestratorConfig(BaseModel):
    """Run-all sequencing and scheduler tick interval."""

    inter_job_delay_ms: int = 100
    interval_minutes: int = 1


class Settings(BaseSettings):
    """Main configuration class."""

    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 8000

    # Shared bearer secret for cron calls. Empty rejects every call.
    cron_secret: str = ""
    logfire_token: str = ""

    config_file: Path = Path("config.yaml")

    mongo: MongoConfig = Field(default_factory=MongoConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    decay: DecayConfig = Field(default_factory=DecayConfig)
    leaderboard: LeaderboardConfig = Field(default_factory=LeaderboardConfig)
    presence: PresenceConfig = Field(default_factory=PresenceConfig)
    auto_return: AutoReturnConfig = Field(default_factory=AutoReturnConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("config_file", mode="after")
    @classmethod
    def resolve_config_file(cls, v: Path) -> Path:
        """Resolve config file to absolute path."""
        return v.resolve()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration over section defaults."""
        config_path = self.config_file

        if not config_path.exists():
            logger.debug(f"Config file not found: {config_path}. Using defaults.")
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty config file: {config_path}")
                return

            for section_name in [
                "mongo",
                "batch",
                "decay",
                "leaderboard",
                "presence",
                "auto_return",
                "orchestrator",
            ]:
                if section_name in yaml_config:
                    section = getattr(self, section_name)
                    yaml_section = yaml_config[section_name]

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
