"""
Configuration validation run on startup.

Checks the Firebase project settings, probe and sync settings, storage
paths and logging options so misconfigurations fail early with clear
messages instead of surfacing as backend errors later.
"""

import os
from pathlib import Path
from typing import Dict, List, Any, Optional, Tuple

import pytz


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""
    pass


class ConfigValidator:
    """Validates application configuration"""

    def __init__(self, config: Optional[Dict[str, Dict[str, Any]]] = None):
        """
        Args:
            config: Section name to settings dict (``FIREBASE_CONFIG`` etc.);
                loaded from the ``config`` module when omitted
        """
        self.config = config if config is not None else self._load_config()
        self.errors: List[str] = []
        self.warnings: List[str] = []

    @staticmethod
    def _load_config() -> Dict[str, Dict[str, Any]]:
        import config
        return {
            name: getattr(config, name)
            for name in ("FIREBASE_CONFIG", "IDENTITY_CONFIG", "CONNECTIVITY_CONFIG",
                         "SYNC_CONFIG", "LIBRARY_CONFIG", "LOGGING_CONFIG")
        }

    def validate_all(self) -> Tuple[bool, List[str], List[str]]:
        """
        Validate all configuration settings.

        Returns:
            Tuple of (is_valid, errors, warnings)
        """
        self.errors.clear()
        self.warnings.clear()

        self._validate_firebase_config()
        self._validate_connectivity_config()
        self._validate_sync_config()
        self._validate_file_paths()
        self._validate_logging_config()

        is_valid = len(self.errors) == 0
        return is_valid, self.errors.copy(), self.warnings.copy()

    def _section(self, name: str) -> Dict[str, Any]:
        return self.config.get(name, {})

    def _validate_firebase_config(self):
        """Firebase project id, API key and REST endpoints"""
        firebase = self._section("FIREBASE_CONFIG")

        api_key = firebase.get("api_key", "")
        if not api_key or not api_key.strip():
            self.errors.append("FIREBASE_API_KEY is not set")
        elif len(api_key) < 20:
            self.warnings.append("FIREBASE_API_KEY appears to be too short")

        if not firebase.get("project_id", "").strip():
            self.errors.append("FIREBASE_PROJECT_ID is not set")

        for name in ("auth_endpoint", "token_endpoint", "firestore_endpoint"):
            url = firebase.get(name, "")
            if not url.startswith(("http://", "https://")):
                self.errors.append(f"Firebase endpoint '{name}' has invalid URL format: {url}")
            elif url.startswith("http://"):
                self.warnings.append(f"Firebase endpoint '{name}' does not use HTTPS")

        timeout = firebase.get("request_timeout", 10.0)
        if timeout <= 0:
            self.errors.append(f"Request timeout must be positive, got {timeout}")
        elif timeout > 60:
            self.warnings.append(f"Request timeout {timeout}s is very high. Recommended: 5-30s")

    def _validate_connectivity_config(self):
        connectivity = self._section("CONNECTIVITY_CONFIG")

        if not connectivity.get("probe_host"):
            self.errors.append("Connectivity probe host is not set")

        port = connectivity.get("probe_port", 443)
        if not 0 < port < 65536:
            self.errors.append(f"Invalid connectivity probe port: {port}")

        interval = connectivity.get("check_interval", 5.0)
        if interval <= 0:
            self.errors.append(f"Connectivity check interval must be positive, got {interval}")
        elif interval < 1.0:
            self.warnings.append(f"Connectivity check interval {interval}s may cause excessive probing")

        probe_timeout = connectivity.get("probe_timeout", 3.0)
        if probe_timeout <= 0:
            self.errors.append(f"Connectivity probe timeout must be positive, got {probe_timeout}")
        elif probe_timeout >= interval > 0:
            self.warnings.append("Connectivity probe timeout is not shorter than the check interval")

    def _validate_sync_config(self):
        sync = self._section("SYNC_CONFIG")

        timezone = sync.get("display_timezone", "UTC")
        if timezone not in pytz.all_timezones:
            self.errors.append(f"Unknown display timezone '{timezone}'")

        identity = self._section("IDENTITY_CONFIG")
        min_length = identity.get("min_password_length", 6)
        if min_length < 6:
            self.warnings.append(f"Minimum password length {min_length} is below the backend minimum of 6")

    def _validate_file_paths(self):
        """Storage files and the log directory must be creatable"""
        paths = {
            "Credentials file": self._section("IDENTITY_CONFIG").get("credentials_file"),
            "Sync state file": self._section("SYNC_CONFIG").get("state_file"),
            "Library file": self._section("LIBRARY_CONFIG").get("storage_file"),
        }
        logging_config = self._section("LOGGING_CONFIG")
        if logging_config.get("enable_file_logging", True):
            paths["Log directory"] = logging_config.get("log_dir", "./logs")

        for label, value in paths.items():
            if not value:
                self.warnings.append(f"{label} is not configured; state will not survive restarts")
                continue

            # Walk up to the closest existing ancestor; that is the one that must be writable
            existing = Path(value).absolute().parent
            while not existing.exists() and existing != existing.parent:
                existing = existing.parent

            if not os.access(existing, os.W_OK):
                self.errors.append(f"{label} location '{existing}' is not writable")

    def _validate_logging_config(self):
        logging_config = self._section("LOGGING_CONFIG")

        log_level = logging_config.get("log_level", "INFO")
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if log_level.upper() not in valid_levels:
            self.errors.append(f"Invalid log level '{log_level}'. Must be one of: {', '.join(valid_levels)}")

        max_size = logging_config.get("max_log_size_mb", 10)
        if max_size < 1 or max_size > 1000:
            self.warnings.append(f"Log file size {max_size}MB may be {'too small' if max_size < 5 else 'too large'}. Recommended: 5-100MB")

        backup_count = logging_config.get("backup_count", 5)
        if backup_count < 1 or backup_count > 50:
            self.warnings.append(f"Log backup count {backup_count} may be {'too low' if backup_count < 3 else 'too high'}. Recommended: 3-20")


def validate_startup_config(config: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
    """
    Validate configuration on startup.

    Raises:
        ConfigValidationError: If critical configuration errors are found
    """
    validator = ConfigValidator(config)
    is_valid, errors, warnings = validator.validate_all()

    if warnings:
        print("Configuration warnings:")
        for warning in warnings:
            print(f"  - {warning}")
        print()

    if errors:
        print("Configuration errors:")
        for error in errors:
            print(f"  - {error}")
        print()

        error_msg = f"Found {len(errors)} configuration error(s) that must be fixed before starting the application."
        if warnings:
            error_msg += f" Also found {len(warnings)} warning(s) that should be addressed."

        raise ConfigValidationError(error_msg)

    if warnings:
        print(f"Configuration validated successfully with {len(warnings)} warning(s)")
    else:
        print("Configuration validated successfully")
    print()


if __name__ == "__main__":
    try:
        validate_startup_config()
    except ConfigValidationError as e:
        print(f"\nConfiguration validation failed: {e}")
        exit(1)
