from pydantic_settings import BaseSettings
from functools import lru_cache

class Settings(BaseSettings):
    # Database settings
    database_url: str = "sqlite:///./household_expenses.db"

    # Aggregation settings
    max_concurrent_child_queries: int = 4  # Bound for the per-child expense fan-out
    recent_expenses_limit: int = 5  # Number of expenses shown on the dashboard

    # Session settings
    session_token_bytes: int = 32

    # Logging settings
    log_level: str = "INFO"
    log_json: bool = False

    class Config:
        env_file = ".env"

@lru_cache()
def get_settings():
    return Settings()
