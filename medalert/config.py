"""
Application configuration settings loaded from environment variables.
Uses pydantic_settings for validation and type conversion.
"""
from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    """
    Application settings class with environment variable validation.

    Attributes:
        storage_backend: Which storage adapter to use ("relational" or "flat")
        database_path: SQLite database file for the relational backend (":memory:" for in-memory)
        flat_store_dir: Directory for the flat JSON blob store (unset = in-memory blobs)
        seed_data: Whether to seed sample medications into an empty store

        # Store wrapper settings
        retry_attempts: Maximum attempts for transient failures
        retry_delay: Base delay in seconds for exponential backoff
        init_timeout: Upper bound in seconds for store initialization

        # Circuit breaker settings
        circuit_breaker_threshold: Consecutive failures before the breaker opens
        circuit_breaker_timeout: Seconds the breaker stays open before a trial call

        # HTTP surface
        cors_origins: Origins allowed to call the API

        # Logging
        log_level: Root logging level
    """
    # Storage settings
    storage_backend: str = "relational"
    database_path: str = "medalert.db"
    flat_store_dir: Optional[str] = None
    seed_data: bool = True

    # Store wrapper settings
    retry_attempts: int = 3
    retry_delay: float = 1.0
    init_timeout: float = 10.0

    # Circuit breaker settings
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout: float = 60.0

    # HTTP surface
    cors_origins: List[str] = [
        "http://localhost:8081",  # Expo dev server
        "http://localhost:19006",  # Expo web
    ]

    # Logging
    log_level: str = "INFO"

    class Config:
        """Configuration for environment variables loading"""
        env_file = ".env"
        env_prefix = "MEDALERT_"
        case_sensitive = False
        extra = "ignore"

# Create settings instance
settings = Settings()
