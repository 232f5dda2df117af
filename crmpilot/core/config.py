"""Configuration management for crm-pilot.

Loads configuration from environment variables and a .env file.
Provides validation and sensible defaults.

Usage:
    from crmpilot.core.config import get_config, validate_config

    config = get_config()
    issues = validate_config(config)
    if issues:
        for issue in issues:
            print(f"Config issue: {issue}")
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from crmpilot.core.exceptions import ConfigurationError

# Default paths (defined once, used by both Config and load_config)
DEFAULT_DB_PATH = Path.home() / ".crmpilot" / "crmpilot.db"
DEFAULT_LOG_PATH = Path.home() / ".crmpilot" / "logs"


@dataclass
class Config:
    """Application configuration.

    Attributes:
        db_path: Path to SQLite database file
        log_path: Directory for log files
        outlook_client_id: Microsoft Graph client ID
        outlook_client_secret: Microsoft Graph client secret
        outlook_tenant_id: Microsoft Graph tenant ID
        outlook_user_email: Mailbox the Graph calls act on
        current_user: Display name used for authorship and mentions
        work_start_hour: First working hour for slot finding
        work_end_hour: Hour the working day ends
        meeting_duration_minutes: Default meeting length
        stale_after_days: Days without contact before a client is stale
        debug: Enable debug mode
        dry_run: Log but don't send emails or create events
    """

    db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)
    log_path: Path = field(default_factory=lambda: DEFAULT_LOG_PATH)

    # Outlook
    outlook_client_id: Optional[str] = None
    outlook_client_secret: Optional[str] = None
    outlook_tenant_id: Optional[str] = None
    outlook_user_email: Optional[str] = None

    # Working day
    current_user: str = "me"
    work_start_hour: int = 9
    work_end_hour: int = 18
    meeting_duration_minutes: int = 30
    stale_after_days: int = 14

    # Feature flags
    debug: bool = False
    dry_run: bool = False


def load_env_file(path: Path) -> dict[str, str]:
    """Parse .env file.

    Handles:
        - KEY=VALUE format
        - Comments (lines starting with #)
        - Blank lines
        - Quoted values

    Args:
        path: Path to .env file

    Returns:
        Dictionary of environment variables
    """
    env_vars: dict[str, str] = {}

    if not path.exists():
        return env_vars

    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()
            if value and value[0] in ('"', "'") and value[-1] == value[0]:
                value = value[1:-1]
            if key:
                env_vars[key] = value

    return env_vars


def _lookup(key: str, env_vars: dict[str, str]) -> Optional[str]:
    return os.environ.get(key) or env_vars.get(key) or None


def _get_path(key: str, default: Path, env_vars: dict[str, str]) -> Path:
    """Get path from environment, expanding ~ and resolving."""
    value = _lookup(key, env_vars)
    if value:
        return Path(value).expanduser().resolve()
    return default


def _get_bool(key: str, default: bool, env_vars: dict[str, str]) -> bool:
    value = _lookup(key, env_vars)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _get_int(key: str, default: int, env_vars: dict[str, str]) -> int:
    """Get integer from environment.

    Raises:
        ConfigurationError: If the value is not an integer
    """
    value = _lookup(key, env_vars)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")


def load_config(env_file: Optional[Path] = None) -> Config:
    """Load configuration from environment and .env file.

    Priority:
        1. Environment variables (highest)
        2. .env file
        3. Default values (lowest)

    Args:
        env_file: Path to .env file. Defaults to .env in current directory.

    Returns:
        Loaded configuration

    Raises:
        ConfigurationError: If a numeric setting cannot be parsed
    """
    if env_file is None:
        env_file = Path.cwd() / ".env"

    env_vars = load_env_file(env_file)

    return Config(
        db_path=_get_path("CRMPILOT_DB_PATH", DEFAULT_DB_PATH, env_vars),
        log_path=_get_path("CRMPILOT_LOG_PATH", DEFAULT_LOG_PATH, env_vars),
        outlook_client_id=_lookup("OUTLOOK_CLIENT_ID", env_vars),
        outlook_client_secret=_lookup("OUTLOOK_CLIENT_SECRET", env_vars),
        outlook_tenant_id=_lookup("OUTLOOK_TENANT_ID", env_vars),
        outlook_user_email=_lookup("OUTLOOK_USER_EMAIL", env_vars),
        current_user=_lookup("CRMPILOT_USER", env_vars) or "me",
        work_start_hour=_get_int("CRMPILOT_WORK_START_HOUR", 9, env_vars),
        work_end_hour=_get_int("CRMPILOT_WORK_END_HOUR", 18, env_vars),
        meeting_duration_minutes=_get_int("CRMPILOT_MEETING_DURATION", 30, env_vars),
        stale_after_days=_get_int("CRMPILOT_STALE_AFTER_DAYS", 14, env_vars),
        debug=_get_bool("CRMPILOT_DEBUG", False, env_vars),
        dry_run=_get_bool("CRMPILOT_DRY_RUN", False, env_vars),
    )


def validate_config(config: Config) -> list[str]:
    """Validate configuration.

    Checks:
        - Database and log directories exist or can be created
        - Directories are writable
        - Outlook credentials are all-or-nothing
        - Working hours describe a non-empty day

    Args:
        config: Configuration to validate

    Returns:
        List of issues (empty if valid)
    """
    issues: list[str] = []

    if str(config.db_path) != ":memory:":
        db_dir = config.db_path.parent
        try:
            db_dir.mkdir(parents=True, exist_ok=True)
            if not os.access(db_dir, os.W_OK):
                issues.append(f"Database directory not writable: {db_dir}")
        except OSError as e:
            issues.append(f"Cannot create database directory {db_dir}: {e}")

    try:
        config.log_path.mkdir(parents=True, exist_ok=True)
        if not os.access(config.log_path, os.W_OK):
            issues.append(f"Log directory not writable: {config.log_path}")
    except OSError as e:
        issues.append(f"Cannot create log directory {config.log_path}: {e}")

    # Outlook: all or none
    outlook_creds = {
        "OUTLOOK_CLIENT_ID": config.outlook_client_id,
        "OUTLOOK_CLIENT_SECRET": config.outlook_client_secret,
        "OUTLOOK_TENANT_ID": config.outlook_tenant_id,
    }
    present = [k for k, v in outlook_creds.items() if v]
    missing = [k for k, v in outlook_creds.items() if not v]

    if present and missing:
        issues.append(
            f"Partial Outlook credentials will cause auth failures. "
            f"Have: {', '.join(present)}. Missing: {', '.join(missing)}."
        )
    if all(outlook_creds.values()) and not config.outlook_user_email:
        issues.append(
            "Outlook credentials present but OUTLOOK_USER_EMAIL is missing. "
            "Calendar and mail calls will fail."
        )

    if not 0 <= config.work_start_hour < config.work_end_hour <= 24:
        issues.append(
            f"Working hours are invalid: {config.work_start_hour}h-{config.work_end_hour}h"
        )
    if config.meeting_duration_minutes <= 0:
        issues.append("Meeting duration must be positive")

    return issues


# Singleton config
_config: Optional[Config] = None


def get_config() -> Config:
    """Return cached configuration singleton.

    Loads configuration on first call, returns cached version thereafter.
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Reset cached configuration.

    Used primarily for testing.
    """
    global _config
    _config = None
