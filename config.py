"""
Configuration module for the salon queue engine.
Loads environment variables and provides typed configuration.
"""

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file
env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Supabase (required only for the supabase store backend)
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    # Entity store backend: "supabase" or "memory"
    store_backend: str = "supabase"

    # Salon defaults
    timezone: str = "Asia/Kolkata"
    default_avg_service_time: int = 30  # minutes, used when a salon has none
    arrival_grace_minutes: int = 10  # advertised arrival window after confirm

    # Queue ordering
    queue_conflict_retries: int = 3

    # Arrival deadline expiry sweep
    auto_expire_enabled: bool = False
    expiry_check_minutes: int = 5

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    environment: str = "development"  # development, staging, production

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def validate_all_required(self) -> None:
        """
        Validate that all settings required by the chosen backend are present.

        Raises:
            ValueError: If required fields are missing or invalid
        """
        if self.store_backend not in ("supabase", "memory"):
            raise ValueError(
                f"Unknown store backend: {self.store_backend}. "
                f"Expected 'supabase' or 'memory'."
            )

        if self.store_backend != "supabase":
            return

        missing = []
        for field in ("supabase_url", "supabase_key"):
            value = getattr(self, field, None)

            if not value:
                missing.append(field)
                continue

            # Check for placeholder values
            if str(value).lower().startswith("your_"):
                missing.append(field)

        if missing:
            raise ValueError(
                f"Missing or invalid required configuration: "
                f"{', '.join(missing)}. "
                f"Please check your .env file and ensure all required "
                f"values are set."
            )


# Global settings instance
settings = Settings()
