import os

from dotenv import load_dotenv

# Load environment variables from .env file, if it exists
load_dotenv()

# --- Database ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./geofence.db")
DB_ECHO = os.getenv("DB_ECHO", "False").lower() in ("true", "1", "t")
# Upper bound on one local storage call before it counts as failed
PERSISTENCE_TIMEOUT_SECONDS = float(os.getenv("PERSISTENCE_TIMEOUT_SECONDS", "10"))

# --- Remote attendance service ---
# Leaving REMOTE_ATTENDANCE_URL unset turns remote mirroring off entirely
REMOTE_ATTENDANCE_URL = os.getenv("REMOTE_ATTENDANCE_URL") or None
REMOTE_API_TOKEN = os.getenv("REMOTE_API_TOKEN") or None
REMOTE_SYNC_TIMEOUT_SECONDS = float(os.getenv("REMOTE_SYNC_TIMEOUT_SECONDS", "5"))
REMOTE_RETRY_INTERVAL_SECONDS = float(os.getenv("REMOTE_RETRY_INTERVAL_SECONDS", "60"))

# --- Location / tracking ---
LOCATION_TIMEOUT_SECONDS = float(os.getenv("LOCATION_TIMEOUT_SECONDS", "10"))
POSITION_MAX_AGE_SECONDS = float(os.getenv("POSITION_MAX_AGE_SECONDS", "120"))
DEFAULT_TRACKING_INTERVAL_MINUTES = float(
    os.getenv("DEFAULT_TRACKING_INTERVAL_MINUTES", "15")
)

# --- Geofence defaults ---
DEFAULT_CUSTOM_RADIUS_METERS = float(os.getenv("DEFAULT_CUSTOM_RADIUS_METERS", "250"))
DEFAULT_CUSTOM_PREMISE_NAME = "Custom Premise"

# --- Auth ---
ADMIN_ROLES = [
    r.strip() for r in os.getenv("ADMIN_ROLES", "owner,admin").split(",") if r.strip()
]

# --- CORS ---
DEV_DOMAIN = os.getenv("DEV_DOMAIN", "http://localhost:5173")
PRODUCTION_DOMAIN = os.getenv("PRODUCTION_DOMAIN") or None
