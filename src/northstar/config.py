"""Configuration settings for the tracking core."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)

# Remote calls
DEFAULT_TIMEOUT_MS = 15000
DEFAULT_RETRIES = 3


@dataclass
class ApiSettings:
    """Remote API settings."""
    base_url: str = os.getenv("API_BASE_URL", "http://localhost:8000/api")
    timeout_ms: int = int(os.getenv("API_TIMEOUT_MS", str(DEFAULT_TIMEOUT_MS)))
    retries: int = int(os.getenv("API_RETRIES", str(DEFAULT_RETRIES)))


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///northstar.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class TrackingSettings:
    """Session tracking settings."""
    # 0 keeps an unfinished session active until it is completed
    inactivity_timeout_minutes: int = int(os.getenv("SESSION_INACTIVITY_TIMEOUT_MINUTES", "0"))
    default_duration: int = int(os.getenv("DEFAULT_SESSION_DURATION", "10"))


@dataclass
class MonitoringSettings:
    """Prometheus exporter settings."""
    enabled: bool = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("METRICS_PORT", "9090"))


def get_api_settings() -> ApiSettings:
    """Get API settings."""
    return ApiSettings()


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_tracking_settings() -> TrackingSettings:
    """Get tracking settings."""
    return TrackingSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    api: ApiSettings = field(default_factory=get_api_settings)
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    tracking: TrackingSettings = field(default_factory=get_tracking_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if self.api.timeout_ms <= 0:
            raise ValueError("API_TIMEOUT_MS must be positive")

        if self.api.retries < 0:
            raise ValueError("API_RETRIES cannot be negative")

        if self.tracking.inactivity_timeout_minutes < 0:
            raise ValueError("SESSION_INACTIVITY_TIMEOUT_MINUTES cannot be negative")

        if self.tracking.default_duration <= 0:
            raise ValueError("DEFAULT_SESSION_DURATION must be positive")


# Create global settings instance
settings = Settings()
settings.validate()
