import os
from typing import List
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    # App
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    SECRET_KEY: str = os.getenv("SECRET_KEY", "fallback-secret-key-for-development")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))
    ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    DB_LOCK_TIMEOUT_MS: int = int(os.getenv("DB_LOCK_TIMEOUT_MS", "5000"))
    AUTO_CREATE_TABLES: bool = os.getenv("AUTO_CREATE_TABLES", "False").lower() == "true"

    # Bookings
    DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "SAR")
    DEFAULT_SERVICE_DURATION_MINUTES: int = int(os.getenv("DEFAULT_SERVICE_DURATION_MINUTES", "60"))
    # When false, pending bookings do not block a slot until they are confirmed
    PENDING_BOOKINGS_HOLD_SLOT: bool = os.getenv("PENDING_BOOKINGS_HOLD_SLOT", "True").lower() == "true"

    # Availability
    BOOKING_DAY_START_HOUR: int = int(os.getenv("BOOKING_DAY_START_HOUR", "9"))
    BOOKING_DAY_END_HOUR: int = int(os.getenv("BOOKING_DAY_END_HOUR", "18"))
    SLOT_INTERVAL_MINUTES: int = int(os.getenv("SLOT_INTERVAL_MINUTES", "30"))

    # Audit
    AUDIT_LOG_MAX_ATTEMPTS: int = int(os.getenv("AUDIT_LOG_MAX_ATTEMPTS", "3"))
    AUDIT_LOG_RETRY_BACKOFF_SECONDS: float = float(os.getenv("AUDIT_LOG_RETRY_BACKOFF_SECONDS", "0.2"))

    # Payments: "sandbox" approves test cards locally, anything else leaves card payments pending
    PAYMENT_MODE: str = os.getenv("PAYMENT_MODE", "sandbox").lower()

    @property
    def CORS_ORIGIN_LIST(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def IS_PAYMENT_SANDBOX(self):
        return self.DEBUG or self.PAYMENT_MODE == "sandbox"

    @property
    def IS_SQLITE(self):
        return not self.DATABASE_URL or self.DATABASE_URL.startswith("sqlite")

    @property
    def SQLALCHEMY_DATABASE_URL(self):
        url = self.DATABASE_URL
        if not url:
            return "sqlite:///./marketplace.db"
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        return url

settings = Settings()
