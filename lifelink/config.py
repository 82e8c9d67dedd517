from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # --- Storage ---
    DB_PATH: Path = Path.home() / "lifelink.db"
    # Full async SQLAlchemy URL; takes precedence over DB_PATH when set
    DATABASE_URL: str | None = None

    # --- Eligibility ---
    # Whole-blood regeneration window between completed donations
    MIN_DONATION_INTERVAL_DAYS: int = Field(default=56, ge=0)

    # --- Matching ---
    PROXIMITY_MAX_DISTANCE_KM: float = Field(default=100.0, gt=0)
    # Used when either side has no coordinates
    NEUTRAL_LOCATION_SCORE: float = 50.0
    BASE_MATCH_SCORE: float = 100.0
    EXACT_MATCH_BONUS: float = 20.0
    URGENCY_BONUS: dict[str, float] = Field(
        default_factory=lambda: {"critical": 25.0, "high": 15.0, "medium": 5.0, "low": 0.0}
    )

    # --- Gamification ---
    POINTS_PER_DONATION: int = 100
    MILESTONES: list[int] = Field(default_factory=lambda: [1, 5, 10, 25, 50])

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Path | None = None

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def database_url(self) -> str:
        return self.DATABASE_URL or f"sqlite+aiosqlite:///{self.DB_PATH}"


settings = Settings()
