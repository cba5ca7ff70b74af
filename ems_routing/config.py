"""
Configuration management for the EMS routing engine.

This module provides centralized configuration including:
- Environment variable loading from a .env file
- Optional YAML overrides file
- Logging configuration
- Workflow tunables (polling interval, parallel fan-out, override penalty)

The scoring tables themselves are immutable module constants and are not
configurable here.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent

CONFIG_FILE_ENV = "EMS_ROUTING_CONFIG"

# RoutingSettings field -> environment variable
ENV_VARS = {
    "log_level": "EMS_LOG_LEVEL",
    "escalation_poll_seconds": "EMS_ESCALATION_POLL_SECONDS",
    "parallel_notify_count": "EMS_PARALLEL_NOTIFY_COUNT",
    "rejection_penalty_multiplier": "EMS_REJECTION_PENALTY",
    "restart_timeout_per_round": "EMS_RESTART_TIMEOUT_PER_ROUND",
    "audit_webhook_url": "EMS_AUDIT_WEBHOOK_URL",
    "audit_webhook_timeout_seconds": "EMS_AUDIT_WEBHOOK_TIMEOUT",
    "hospitals_file": "EMS_HOSPITALS_FILE",
    "database_path": "EMS_DATABASE_PATH",
}


class RoutingSettings(BaseModel):
    """Validated, read-only runtime settings."""

    model_config = ConfigDict(frozen=True)

    log_level: str = Field(default="INFO", description="Root logging level.")
    escalation_poll_seconds: float = Field(
        default=15, gt=0, description="Interval of the background timeout scan."
    )
    parallel_notify_count: int = Field(
        default=2, ge=1, description="Hospitals notified at once for acuity 1 cases."
    )
    rejection_penalty_multiplier: float = Field(
        default=0.85, gt=0, le=1, description="Score multiplier for hospitals that rejected."
    )
    restart_timeout_per_round: bool = Field(
        default=False,
        description="Restart the response timeout on every notification round.",
    )
    audit_webhook_url: Optional[str] = Field(
        default=None, description="External append-only audit endpoint."
    )
    audit_webhook_timeout_seconds: float = Field(default=5, gt=0)
    hospitals_file: Optional[Path] = None
    database_path: Optional[Path] = None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = str(v).upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("audit_webhook_url", mode="before")
    @classmethod
    def empty_url_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


def setup_logging(level: str = "INFO", format_string: Optional[str] = None) -> None:
    """
    Configure logging for the routing engine.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_string: Custom format string for log messages
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=format_string,
        force=True,  # Override any existing configuration
    )


def load_environment(env_file: Optional[Path] = None) -> bool:
    """
    Load environment variables from .env file.

    Args:
        env_file: Path to .env file. If None, looks for .env in the project root.

    Returns:
        True if .env file was found and loaded, False otherwise.
    """
    if env_file is None:
        env_file = PROJECT_ROOT / ".env"

    if env_file.exists():
        load_dotenv(dotenv_path=env_file)
        logger.info(f"Environment loaded from {env_file}")
        return True
    logger.info(f"No .env file found at {env_file}. Using system environment variables.")
    return False


def load_yaml_overrides(config_file: Optional[Path]) -> Dict[str, Any]:
    """
    Read settings overrides from a YAML mapping.

    A missing file yields no overrides; a malformed one is reported and ignored.
    """
    if config_file is None:
        return {}
    config_file = Path(config_file)
    if not config_file.exists():
        logger.warning(f"Config file {config_file} not found; using defaults")
        return {}

    try:
        with open(config_file, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Error parsing YAML config {config_file}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Config file {config_file} is not a mapping; ignoring it")
        return {}

    unknown = set(data) - set(RoutingSettings.model_fields)
    if unknown:
        logger.warning(f"Ignoring unknown settings in {config_file}: {sorted(unknown)}")
    return {k: v for k, v in data.items() if k in RoutingSettings.model_fields}


def _env_overrides() -> Dict[str, Any]:
    overrides = {}
    for field_name, env_var in ENV_VARS.items():
        value = os.getenv(env_var)
        if value is not None and value != "":
            overrides[field_name] = value
    return overrides


def get_config(
    config_file: Optional[Path] = None, load_env: bool = True
) -> RoutingSettings:
    """
    Build the effective settings.

    Precedence, lowest to highest: field defaults, the YAML file (argument or
    EMS_ROUTING_CONFIG), then individual EMS_* environment variables.

    Args:
        config_file: Optional YAML overrides file.
        load_env: Whether to load the project .env file first.

    Returns:
        Frozen RoutingSettings.
    """
    if load_env:
        load_environment()

    if config_file is None and os.getenv(CONFIG_FILE_ENV):
        config_file = Path(os.environ[CONFIG_FILE_ENV])

    merged: Dict[str, Any] = {}
    merged.update(load_yaml_overrides(config_file))
    merged.update(_env_overrides())

    settings = RoutingSettings.model_validate(merged)
    logger.debug(f"Configuration: {settings}")
    return settings
