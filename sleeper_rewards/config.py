"""Application configuration and environment settings"""
from typing import Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EconomyConfig(BaseModel):
    """Economy constants shared by the reward engine and the distribution job"""
    season_pool: int = Field(5_000_000, description="Tokens allocated to a whole season")
    rate_per_minute: float = Field(0.2, description="Base points per minute slept")
    max_sleep_minutes: int = Field(480, description="Minutes credited per night at most")
    min_storage_mb: int = Field(100, description="Allocation that earns the minimum storage multiplier")
    max_storage_mb: int = Field(600, description="Allocation that earns the maximum storage multiplier")
    min_storage_multiplier: float = 1.0
    max_storage_multiplier: float = 3.0
    stake_mid_threshold: float = 1_000.0
    stake_high_threshold: float = 10_000.0
    stake_mid_multiplier: float = 1.2
    stake_high_multiplier: float = 1.5
    boost_per_referral: float = 0.01
    max_referral_boost: float = 0.20
    max_task_bonus_forecast: float = 0.30
    max_task_bonus_session: float = 0.15
    max_social_boost: float = 0.40
    holder_multiplier: float = Field(3.0, description="Permanent holder badge multiplier")
    max_total_multiplier: float = Field(6.0, description="Cap on the composed boost multiplier")
    max_client_points_per_second: float = 3.2


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    # Database settings
    DATABASE_URL: Optional[str] = Field(None, description="Full SQLAlchemy URL, overrides DB_* parts")
    DB_HOST: str = Field("localhost", description="Database host")
    DB_PORT: str = Field("5432", description="Database port")
    DB_NAME: str = Field("sleeper", description="Database name")
    DB_USER: str = Field("sleeper", description="Database user")
    DB_PASSWORD: Optional[str] = Field(None, description="Database password")
    DB_SSL_MODE: str = Field("prefer", description="libpq sslmode")

    # Authentication
    REQUIRE_SESSION_AUTH: bool = Field(True, description="Require a wallet auth token on session reports")
    AUTH_CHALLENGE_TTL_SECONDS: int = Field(300, description="Lifetime of a signing challenge")
    AUTH_TOKEN_TTL_SECONDS: int = Field(30 * 24 * 3600, description="Lifetime of an issued auth token")

    # Distribution
    DISTRIBUTION_HOUR: int = Field(9, ge=0, le=23, description="Server-local hour the daily distribution runs")
    DISTRIBUTION_CHECK_INTERVAL_SECONDS: float = Field(3600.0, description="How often the scheduler checks the clock")
    DISTRIBUTION_WEBHOOK_URL: Optional[str] = Field(None, description="Endpoint notified after each distribution")

    # Economy
    SEASON_POOL: int = 5_000_000
    RATE_PER_MINUTE: float = 0.2
    MAX_SLEEP_MINUTES: int = 480
    HOLDER_MULTIPLIER: float = 3.0
    MAX_TOTAL_MULTIPLIER: float = 6.0
    MAX_CLIENT_POINTS_PER_SECOND: float = 3.2

    @property
    def economy(self) -> EconomyConfig:
        """Get economy settings as a separate model"""
        return EconomyConfig(
            season_pool=self.SEASON_POOL,
            rate_per_minute=self.RATE_PER_MINUTE,
            max_sleep_minutes=self.MAX_SLEEP_MINUTES,
            holder_multiplier=self.HOLDER_MULTIPLIER,
            max_total_multiplier=self.MAX_TOTAL_MULTIPLIER,
            max_client_points_per_second=self.MAX_CLIENT_POINTS_PER_SECOND,
        )

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='ignore'
    )


DEFAULT_ECONOMY = EconomyConfig()

settings = Settings()
