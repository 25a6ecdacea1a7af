from dotenv import load_dotenv, find_dotenv
import os
from functools import lru_cache

# Real environment variables take precedence over .env files
load_dotenv(dotenv_path="default.env", override=False)
load_dotenv(dotenv_path=find_dotenv(".env"), override=False)


class Settings:
    # SQLite file for local dev; set DATABASE_URL to a Postgres URL in production
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./safereturn.db")

    # Zone that defines "wall clock" for return windows (tz database name)
    TIMEZONE: str = os.getenv("TIMEZONE", "Asia/Riyadh")

    # SMS settings for alerts
    SMS_BACKEND: str = os.getenv("SMS_BACKEND", "dummy")  # "twilio", "gateway" or "dummy"
    TWILIO_ACCOUNT_SID: str = os.getenv("TWILIO_ACCOUNT_SID", "")
    TWILIO_AUTH_TOKEN: str = os.getenv("TWILIO_AUTH_TOKEN", "")
    TWILIO_FROM_NUMBER: str = os.getenv("TWILIO_FROM_NUMBER", "")
    TWILIO_MESSAGING_SERVICE_SID: str = os.getenv("TWILIO_MESSAGING_SERVICE_SID", "")
    SMS_API_URL: str = os.getenv("SMS_API_URL", "")
    SMS_API_KEY: str = os.getenv("SMS_API_KEY", "")
    SMS_DEFAULT_COUNTRY_CODE: str = os.getenv("SMS_DEFAULT_COUNTRY_CODE", "+966")

    # Trip rules
    MIN_TRIP_CONTACTS: int = int(os.getenv("MIN_TRIP_CONTACTS", "3"))
    DEFAULT_EXTENSION_HOURS: float = float(os.getenv("DEFAULT_EXTENSION_HOURS", "2"))
    MAX_EXTENSION_HOURS: float = float(os.getenv("MAX_EXTENSION_HOURS", "168"))

    # Location reporting cadence (seconds)
    TRACKING_INTERVAL_WEAK_SECONDS: int = int(os.getenv("TRACKING_INTERVAL_WEAK_SECONDS", "60"))
    TRACKING_INTERVAL_STRONG_SECONDS: int = int(os.getenv("TRACKING_INTERVAL_STRONG_SECONDS", "300"))

    # Background jobs
    OVERDUE_CHECK_SECONDS: int = int(os.getenv("OVERDUE_CHECK_SECONDS", "60"))
    ENABLE_SCHEDULER: bool = os.getenv("ENABLE_SCHEDULER", "true").lower() == "true"

    CORS_ALLOW_ORIGINS: str = os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:5000,http://127.0.0.1:5000")

    @property
    def CORS_ALLOW_ORIGINS_LIST(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ALLOW_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings():
    return Settings()


# Create singleton instance for direct imports
settings = get_settings()
