"""
Runtime configuration settings
"""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pipeline settings with environment variable support"""

    # App
    APP_NAME: str = "playlens"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, production

    # Monitoring
    LOG_LEVEL: str = "INFO"

    # Analysis cadence
    ANALYSIS_INTERVAL_SECONDS: float = 60.0
    TOP_RECOMMENDATIONS: int = 5

    # Bounded buffers
    EVENT_BUFFER_SIZE: int = 1000
    SKILL_HISTORY_SIZE: int = 100
    EMOTIONAL_HISTORY_SIZE: int = 50
    CONFIG_HISTORY_SIZE: int = 10

    # Local persistence
    STORE_PATH: str = "playlens_state.json"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PLAYLENS_",
        case_sensitive=True,
        extra="ignore"
    )


settings = Settings()
