"""Configuration management using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "SORTIE"
    debug: bool = False
    log_level: str = "INFO"

    # Areas of operation
    auto_respawn_delay: float = 10.0  # seconds, used by the "Auto-Respawn ON" command
    spawn_zone_prefix: str = "Spawnzone"

    # Missions
    mission_settle_delay: float = 10.0  # seconds between resolution and onSuccess/onFailure
    watch_time_limit: float = 3600.0    # escort/interdict deadline when none is given
    endzone_radius: float = 100.0       # meters, for endzones built from a point
    mission_code_digits: int = 3

    # Air ranges
    air_range_sweep_interval: float = 60.0  # seconds between leaker sweeps

    # Simulated world
    sim_tick: float = 1.0  # seconds per movement / zone-check step
    catalog_path: str = ""


settings = Settings()
