import os
from dotenv import load_dotenv

load_dotenv()

# --- Database ---
# Default to local SQLite, but prefer environment variable
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./data/habits.db")

# Fix for common SQLAlchemy issues with postgres:// vs postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# --- Clock ---
APP_TIMEZONE = os.getenv("APP_TIMEZONE", "UTC")

# --- Streak engine ---
HABIT_LOCK_TIMEOUT_SECONDS = float(os.getenv("HABIT_LOCK_TIMEOUT_SECONDS", "5"))
RETROACTIVE_WINDOW_DAYS = int(os.getenv("RETROACTIVE_WINDOW_DAYS", "7"))  # 0 = unlimited
NOTES_MAX_LENGTH = 500

# --- Historical query ---
HISTORY_PAGE_SIZE = int(os.getenv("HISTORY_PAGE_SIZE", "30"))
HISTORY_MAX_PAGE_SIZE = 100
