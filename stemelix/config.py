"""
STEMelix Backend Configuration
Database, auth, payment review, mail and Zoom settings
"""

import os

# Database
MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "stemelix_db")

# Auth
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_TTL_HOURS = int(os.getenv("ACCESS_TOKEN_TTL_HOURS", "720"))  # 30 days
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "")

# Manual payment review
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "INR")
MAX_SCREENSHOT_BYTES = int(os.getenv("MAX_SCREENSHOT_BYTES", str(5 * 1024 * 1024)))
ALLOWED_SCREENSHOT_TYPES = {"image/png", "image/jpeg", "image/jpg", "image/webp"}

# Mail ("log" prints to the logger, "smtp" delivers)
EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "log")
MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp.gmail.com")
MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
MAIL_USERNAME = os.getenv("MAIL_USERNAME", "")
MAIL_PASSWORD = os.getenv("MAIL_PASSWORD", "")
MAIL_FROM = os.getenv("MAIL_FROM", "STEMelix Team <no-reply@stemelix.com>")
MAIL_USE_TLS = os.getenv("MAIL_USE_TLS", "true").lower() in ("true", "1", "yes")

# Zoom (server-to-server OAuth)
ZOOM_ACCOUNT_ID = os.getenv("ZOOM_ACCOUNT_ID", "")
ZOOM_CLIENT_ID = os.getenv("ZOOM_CLIENT_ID", "")
ZOOM_CLIENT_SECRET = os.getenv("ZOOM_CLIENT_SECRET", "")
ZOOM_API_URL = os.getenv("ZOOM_API_URL", "https://api.zoom.us/v2")
ZOOM_OAUTH_URL = os.getenv("ZOOM_OAUTH_URL", "https://zoom.us/oauth/token")
ZOOM_TIMEZONE = os.getenv("ZOOM_TIMEZONE", "Asia/Kolkata")
ZOOM_TIMEOUT_SECONDS = 20

# Meetings
MEETING_MIN_MINUTES = 15
MEETING_MAX_MINUTES = 1440

# Logging / HTTP
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
