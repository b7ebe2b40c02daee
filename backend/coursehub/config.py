"""
CourseHub configuration
Everything comes from the environment, with fixed fallbacks for local runs
"""

import os
from pathlib import Path

# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))

# Session cookie
SESSION_SECRET = os.getenv("SESSION_SECRET", "change_this_secret")
SESSION_MAX_AGE = int(os.getenv("SESSION_MAX_AGE", str(60 * 60 * 8)))

# Seed admin account
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@example.com").lower()
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "Admin123!")

# Storage
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./data.sqlite")
MEDIA_DIR = Path(os.getenv("MEDIA_DIR", "media"))
MEDIA_URL_PREFIX = "/media"

# Password hashing cost
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
