"""Configuration for the Gmail archive queue worker."""
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Base paths
BASE_DIR = Path(__file__).resolve().parent.parent
LOGS_DIR = Path(os.getenv("LOGS_DIR", BASE_DIR / "logs"))
LOGS_DIR.mkdir(parents=True, exist_ok=True)

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "app.log")
LOG_MAX_BYTES = int(os.getenv("LOG_MAX_BYTES", str(10 * 1024 * 1024)))
LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "5"))
BETTERSTACK_SOURCE_TOKEN = os.getenv("BETTERSTACK_SOURCE_TOKEN")
BETTERSTACK_INGEST_HOST = os.getenv("BETTERSTACK_INGEST_HOST")

# Database connection
DATABASE_URL = os.getenv("DATABASE_URL")

# OAuth tokens (stored encrypted with pgcrypto)
TOKEN_ENCRYPTION_KEY = os.getenv("TOKEN_ENCRYPTION_KEY")
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
TOKEN_EXPIRY_SKEW_SECONDS = int(os.getenv("TOKEN_EXPIRY_SKEW_SECONDS", "60"))

# Scheduler cadence (seconds)
PROCESS_INTERVAL = int(os.getenv("PROCESS_INTERVAL", "120"))
CLEANUP_INTERVAL = int(os.getenv("CLEANUP_INTERVAL", "86400"))
AUTO_ARCHIVE_INTERVAL = int(os.getenv("AUTO_ARCHIVE_INTERVAL", "3600"))  # 0 disables

# Queue settings
BATCH_SIZE = int(os.getenv("BATCH_SIZE", "50"))
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", "3"))
RETENTION_DAYS = int(os.getenv("RETENTION_DAYS", "7"))
STUCK_PROCESSING_MINUTES = int(os.getenv("STUCK_PROCESSING_MINUTES", "30"))

# Gmail API
GMAIL_API_BASE = os.getenv("GMAIL_API_BASE", "https://gmail.googleapis.com/gmail/v1/users/me")
GMAIL_REQUEST_TIMEOUT = int(os.getenv("GMAIL_REQUEST_TIMEOUT", "30"))


def _parse_codes(value: str) -> frozenset:
    return frozenset(int(code) for code in value.split(",") if code.strip())


GMAIL_NOT_FOUND_STATUS_CODES = _parse_codes(os.getenv("GMAIL_NOT_FOUND_STATUS_CODES", "404"))
GMAIL_RETRYABLE_STATUS_CODES = _parse_codes(
    os.getenv("GMAIL_RETRYABLE_STATUS_CODES", "408,429,500,502,503,504")
)


def validate_config(require_credentials: bool = True):
    """Validate required configuration."""
    errors = []

    if not DATABASE_URL:
        errors.append("DATABASE_URL is required")

    if require_credentials:
        if not TOKEN_ENCRYPTION_KEY:
            errors.append("TOKEN_ENCRYPTION_KEY is required")
        if not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET:
            errors.append("GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are required")

    if MAX_ATTEMPTS < 1:
        errors.append(f"MAX_ATTEMPTS must be at least 1: {MAX_ATTEMPTS}")

    if BATCH_SIZE < 1:
        errors.append(f"BATCH_SIZE must be at least 1: {BATCH_SIZE}")

    overlap = GMAIL_NOT_FOUND_STATUS_CODES & GMAIL_RETRYABLE_STATUS_CODES
    if overlap:
        errors.append(f"Status codes cannot be both not-found and retryable: {sorted(overlap)}")

    if errors:
        raise ValueError("Config errors:\n  " + "\n  ".join(errors))
