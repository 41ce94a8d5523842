from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./coach_booking.db"
    DB_ECHO: bool = False

    # Security
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Application
    PROJECT_NAME: str = "Coach Booking System"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Booking rules
    CURRENCY: str = "bwp"
    CHANGE_WINDOW_HOURS: int = 24
    PENDING_BOOKING_TTL_MINUTES: int = 30
    DEFAULT_GENERATION_DAYS: int = 21
    IDEMPOTENCY_TTL_SECONDS: int = 30

    # Background sweeps (departures + expired pending bookings)
    ENABLE_BACKGROUND_SWEEPS: bool = False
    SWEEP_INTERVAL_SECONDS: int = 60

    # Payments
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    PUBLIC_BASE_URL: str = "http://localhost:3000"

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
