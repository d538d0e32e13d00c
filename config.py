"""
Application configuration.
Loads settings from environment variables or .env file.
"""
import os
from pathlib import Path
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

# Load .env file
load_dotenv()

# Base directory
BASE_DIR = Path(__file__).resolve().parent
DATA_DIR = BASE_DIR / "data"

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'app.db'}")

# Reference timezone for every calendar-day decision
TIMEZONE = ZoneInfo(os.getenv("TIMEZONE", "Australia/Sydney"))

# Rehab day rollover gate (hour of the following calendar day)
REHAB_ROLLOVER_HOUR = int(os.getenv("REHAB_ROLLOVER_HOUR", "6"))

# Server
HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "8000"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
