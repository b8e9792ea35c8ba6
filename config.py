"""
Configuration management for MedCommand
"""

from typing import Optional
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "MedCommand"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENV: str = "development"

    # API
    API_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite:///./medcommand.db"
    DATABASE_ECHO: bool = False

    # Patient defaults
    DEFAULT_TIMEZONE: str = "America/Chicago"
    USE_US_FEDERAL_HOLIDAYS: bool = True

    # Notifications
    NOTIFICATIONS_ENABLED: bool = True
    NOTIFICATION_SENDER: str = "log"  # one of services.notification_service.NOTIFICATION_SENDERS

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Missed dose detection
    MISSED_DOSE_ACTOR: str = "system:missed-dose-detector"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Scheduling and adherence constants
class SchedulingConfig:
    """Tunable constants for scheduling, grace periods and adherence"""

    # Grace periods (minutes) by medication type
    GRACE_PERIOD_BASE_MINUTES: dict[str, int] = {
        "critical": 15,
        "standard": 30,
        "vitamin": 120,
        "prn": 0,
    }
    WEEKEND_MULTIPLIER: float = 1.5
    HOLIDAY_MULTIPLIER: float = 2.0

    # Bucketing windows
    NOW_WINDOW_MINUTES: int = 15
    DUE_SOON_WINDOW_MINUTES: int = 60

    # Event log
    UNDO_WINDOW_SECONDS: int = 30
    DUPLICATE_WINDOW_MINUTES: int = 5
    MAX_SNOOZE_MINUTES: int = 480

    # Take scoring
    ON_TIME_WINDOW_MINUTES: int = 30
    LATE_WINDOW_MINUTES: int = 120
    UNPARSEABLE_DOSE_ACCURACY: int = 90
    MISSED_FOOD_PENALTY: int = 20
    SYMPTOM_PENALTY: int = 10

    # Streaks
    STREAK_MILESTONES: list[int] = [7, 30, 100]
    STREAK_LOOKBACK_DAYS: int = 120

    # Default bucket windows: (start, end, default_time, label)
    DEFAULT_TIME_BUCKETS: dict[str, tuple[str, str, str, str]] = {
        "morning": ("06:00", "10:00", "08:00", "Morning"),
        "lunch": ("11:00", "14:00", "12:00", "Lunch"),
        "evening": ("17:00", "20:00", "18:00", "Evening"),
        "before_bed": ("21:00", "23:30", "22:00", "Before Bed"),
    }

    # Dose times used when a patient has no bucket preferences
    DEFAULT_FREQUENCY_TIMES: dict[str, list[str]] = {
        "daily": ["08:00"],
        "twice_daily": ["08:00", "20:00"],
        "three_times_daily": ["08:00", "14:00", "20:00"],
        "four_times_daily": ["08:00", "12:00", "17:00", "22:00"],
        "weekly": ["08:00"],
        "monthly": ["08:00"],
        "as_needed": [],
    }


# Database table names
class TableNames:
    MEDICATION_COMMANDS = "medication_commands"
    MEDICATION_EVENTS = "medication_events"
    DAILY_SUMMARIES = "daily_summaries"
    TIME_PREFERENCES = "patient_time_preferences"
    ADHERENCE_MILESTONES = "adherence_milestones"


settings = get_settings()
scheduling_config = SchedulingConfig()
