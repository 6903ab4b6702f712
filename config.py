"""
config.py
Runtime settings, read from the environment once at import.
"""

from __future__ import annotations

import os
from pathlib import Path

DATA_DIR = Path(os.getenv("ACADEMY_DATA_DIR", str(Path(__file__).with_name("data"))))

# Used to sign session tokens. Override in production.
JWT_SECRET = os.getenv("ACADEMY_JWT_SECRET", "change-me-academy-session-secret")
JWT_ALGORITHM = "HS256"
TOKEN_TTL_HOURS = int(os.getenv("ACADEMY_TOKEN_TTL_HOURS", "24"))

LOGIN_MAX_ATTEMPTS = int(os.getenv("ACADEMY_LOGIN_MAX_ATTEMPTS", "5"))
LOGIN_WINDOW_MINUTES = int(os.getenv("ACADEMY_LOGIN_WINDOW_MINUTES", "15"))

LOG_LEVEL = os.getenv("ACADEMY_LOG_LEVEL", "INFO").upper()

# How many registrations the dashboard lists
RECENT_COUNT = int(os.getenv("ACADEMY_RECENT_COUNT", "5"))
