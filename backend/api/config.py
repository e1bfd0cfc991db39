"""
Application Configuration
Loads settings from environment variables with sensible defaults.
"""

from pydantic_settings import BaseSettings
from typing import List
from pathlib import Path


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration
    database_url: str = "sqlite:///./data/listings.db"

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False

    # CORS Configuration
    cors_origins: List[str] = ["*"]

    # Fetch Configuration
    zenrows_api_key: str = ""
    zenrows_base_url: str = "https://api.zenrows.com/v1/"
    fetch_backend: str = "zenrows"  # zenrows | local
    proxy_country: str = "fr"
    fetch_timeout: float = 30.0
    min_body_length: int = 100

    # Search Configuration
    source_deadline_seconds: float = 25.0
    search_timeout_seconds: float = 90.0
    min_results_per_pass: int = 10
    max_results_per_source: int = 100
    max_sites_parallel: int = 3
    enabled_sources: List[str] = []  # empty = every enabled site

    # Dedup / duplicate-check thresholds
    dedup_title_similarity: float = 0.8
    dedup_price_delta: int = 1000
    dedup_price_tolerance: int = 100

    # Logging Configuration
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Paths
    @property
    def log_dir(self) -> Path:
        """Get the log directory path."""
        return Path(__file__).parent.parent.parent / "logs"

    @property
    def log_file(self) -> Path:
        """Get the log file path."""
        return self.log_dir / "backend.log"

    @property
    def data_dir(self) -> Path:
        """Get the data directory path."""
        return Path(__file__).parent.parent / "data"

    class Config:
        # Only load .env if it exists to avoid permission errors
        env_file = ".env" if __import__("pathlib").Path(".env").exists() else None
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra environment variables


# Global settings instance
settings = Settings()
