import os
from pathlib import Path
from urllib.parse import urlparse
from dotenv import load_dotenv

# Load .env file from project root
ENV_PATH = Path(__file__).parent.parent / ".env"
load_dotenv(ENV_PATH)

# Server settings
PORT = int(os.getenv("PORT", "8000"))
HOST = os.getenv("HOST", "0.0.0.0")
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL")

# Database - parse DATABASE_URL for PostgreSQL
DATABASE_URL = os.getenv("DATABASE_URL", "")

def get_db_config():
    """Parse DATABASE_URL into connection parameters."""
    if not DATABASE_URL:
        raise ValueError("DATABASE_URL environment variable is required")

    parsed = urlparse(DATABASE_URL)
    return {
        "host": parsed.hostname,
        "port": parsed.port or 5432,
        "database": parsed.path[1:],  # Remove leading /
        "user": parsed.username,
        "password": parsed.password,
    }

# CORS
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

# Sign-up contact variant: "email" or "phone"
CONTACT_METHOD = os.getenv("CONTACT_METHOD", "email").strip().lower()
if CONTACT_METHOD not in ("email", "phone"):
    raise ValueError(f"CONTACT_METHOD must be 'email' or 'phone', got '{CONTACT_METHOD}'")

# Priority window length used when the admin does not pass one
PRIORITY_TIMER_DEFAULT_SECONDS = int(os.getenv("PRIORITY_TIMER_DEFAULT_SECONDS", "300"))

# Bridge Postgres NOTIFY into the websocket stream
REALTIME_LISTEN = os.getenv("REALTIME_LISTEN", "true").lower() == "true"
