from pydantic_settings import BaseSettings
from functools import lru_cache

class Settings(BaseSettings):
    # Database settings
    database_url: str = "sqlite:///./couples.db"
    sqlite_busy_timeout_seconds: float = 15.0

    # Invitation settings
    invitation_ttl_days: int = 7
    invitation_message_max_length: int = 500

    # Pairing code settings
    pairing_code_length: int = 8
    pairing_code_max_attempts: int = 10

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"

@lru_cache()
def get_settings():
    return Settings()
