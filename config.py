"""
Centralized configuration for the sync coordinator and its backends
"""

import os
from dotenv import load_dotenv

load_dotenv()

# Firebase project settings (REST endpoints, no SDK)
FIREBASE_CONFIG = {
    "api_key": os.getenv("FIREBASE_API_KEY", ""),
    "project_id": os.getenv("FIREBASE_PROJECT_ID", ""),
    "auth_endpoint": "https://identitytoolkit.googleapis.com/v1",
    "token_endpoint": "https://securetoken.googleapis.com/v1/token",
    "firestore_endpoint": "https://firestore.googleapis.com/v1",
    "request_timeout": float(os.getenv("FIREBASE_REQUEST_TIMEOUT", "10.0")),  # seconds
}

# Identity / session settings
IDENTITY_CONFIG = {
    "credentials_file": os.getenv("BOOKMATE_CREDENTIALS_FILE", "./data/credentials.json"),
    "min_password_length": 6,
    "users_collection": "users",
}

# Network reachability monitoring
CONNECTIVITY_CONFIG = {
    "probe_host": os.getenv("CONNECTIVITY_PROBE_HOST", "firestore.googleapis.com"),
    "probe_port": int(os.getenv("CONNECTIVITY_PROBE_PORT", "443")),
    "check_interval": float(os.getenv("CONNECTIVITY_CHECK_INTERVAL", "5.0")),  # seconds between probes
    "probe_timeout": float(os.getenv("CONNECTIVITY_PROBE_TIMEOUT", "3.0")),  # TCP connect timeout
}

# Sync trigger and sync service configuration
SYNC_CONFIG = {
    "sync_on_startup": True,
    "sync_on_login": os.getenv("SYNC_ON_LOGIN", "false").lower() == "true",
    "state_file": os.getenv("BOOKMATE_SYNC_STATE_FILE", "./data/sync_state.json"),
    "display_timezone": os.getenv("BOOKMATE_TIMEZONE", "UTC"),  # Used when reporting sync times
}

# Local library storage
LIBRARY_CONFIG = {
    "storage_file": os.getenv("BOOKMATE_LIBRARY_FILE", "./data/library.json"),
    "books_collection": "books",
}

# Event bus settings
EVENT_CONFIG = {
    "max_history": 1000,
}

# Logging configuration
LOGGING_CONFIG = {
    "log_level": os.getenv("LOG_LEVEL", "INFO"),
    "log_dir": os.getenv("LOG_DIR", "./logs"),
    "enable_file_logging": os.getenv("ENABLE_FILE_LOGGING", "true").lower() == "true",
    "enable_console_logging": os.getenv("ENABLE_CONSOLE_LOGGING", "true").lower() == "true",
    "structured_logging": os.getenv("ENVIRONMENT", "development").lower() == "production",
    "max_log_size_mb": int(os.getenv("MAX_LOG_SIZE_MB", "10")),
    "backup_count": int(os.getenv("LOG_BACKUP_COUNT", "5")),
}
