"""
Service configuration.

All settings come from environment variables. A local ``.env`` file is
loaded first so development setups don't need to export anything.
"""

import os
import secrets

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Config:
    SERVICE_NAME = os.getenv("SERVICE_NAME", "car-rental-service")
    SERVICE_VERSION = os.getenv("SERVICE_VERSION", "1.0.0")
    ENV = os.getenv("ENV", "development")
    PORT = int(os.getenv("PORT", "8003"))

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./car_rental.db")
    SEED_DATA = _flag("SEED_DATA", "true")

    # Car lifecycle
    SERVICE_DURATION_SECONDS = float(os.getenv("SERVICE_DURATION_SECONDS", "60"))
    STATUS_SWEEP_INTERVAL_SECONDS = float(os.getenv("STATUS_SWEEP_INTERVAL_SECONDS", "86400"))

    # Accounts. Without a configured key, reset links die with the process.
    SECRET_KEY = os.getenv("SECRET_KEY", secrets.token_hex(32))
    RESET_TOKEN_MAX_AGE_SECONDS = int(os.getenv("RESET_TOKEN_MAX_AGE_SECONDS", "3600"))
    SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", "28800"))

    # Seeded staff account
    ADMIN_LOGIN = os.getenv("ADMIN_LOGIN", "admin")
    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin")
    ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@car-rental.local")

    # Inbox for contact form messages
    CONTACT_EMAIL = os.getenv("CONTACT_EMAIL", "contact@car-rental.local")

    # Telemetry
    TELEMETRY_CONSOLE_EXPORT = _flag("TELEMETRY_CONSOLE_EXPORT", "true")
