"""Configuration loader.

Loads config.yaml, validates it against the Pydantic schema and caches the
result as a process-wide singleton. Also resolves the JMAP API token.

Usage:
    from mailtriage.config import get_config, load_api_token

    config = get_config()
    token = load_api_token(config)
"""

import json
import os
import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from mailtriage.config_schema import CURRENT_SCHEMA_VERSION, AppConfig
from mailtriage.core.errors import ConfigError, ConfigLoadError, ConfigValidationError
from mailtriage.core.logging import get_logger

logger = get_logger(__name__)

# Default config path - can be overridden via environment variable
DEFAULT_CONFIG_PATH = Path("config/config.yaml")

# Environment variable holding the API token (takes precedence over the token file)
TOKEN_ENV_VAR = "FASTMAIL_API_TOKEN"

_config_lock = threading.Lock()
_current_config: AppConfig | None = None


def _get_config_path() -> Path:
    """Get the config file path from environment or default."""
    env_path = os.environ.get("MAILTRIAGE_CONFIG_PATH")
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def _format_validation_errors(error: ValidationError) -> str:
    """Format Pydantic validation errors into actionable messages.

    Args:
        error: Pydantic ValidationError

    Returns:
        Formatted error message with specific field errors
    """
    messages = []
    for err in error.errors():
        # Build field path (e.g., "rules.3.regex")
        field_path = ".".join(str(loc) for loc in err["loc"])
        msg = err["msg"]
        err_type = err["type"]

        if err_type == "missing":
            messages.append(f"  - Missing required field '{field_path}'")
        elif err_type == "string_type":
            messages.append(f"  - Field '{field_path}' must be a string")
        elif err_type == "int_type":
            messages.append(f"  - Field '{field_path}' must be an integer")
        elif err_type == "extra_forbidden":
            messages.append(f"  - Unknown field '{field_path}' (check the spelling)")
        else:
            messages.append(f"  - Field '{field_path}': {msg}")

    return "\n".join(messages)


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load and parse YAML file.

    Args:
        path: Path to YAML file

    Returns:
        Parsed YAML as dictionary

    Raises:
        ConfigLoadError: If file not found or YAML parse error
    """
    if not path.exists():
        raise ConfigLoadError(
            f"Configuration file not found: {path}\n"
            f"Create it by copying config/config.yaml.example to {path}"
        )

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            if data is None:
                return {}
            if not isinstance(data, dict):
                raise ConfigLoadError(
                    f"Configuration file must be a YAML mapping, got {type(data).__name__}"
                )
            return data
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Failed to parse YAML in {path}:\n{e}") from e


def _validate_config(data: dict[str, Any], path: Path) -> AppConfig:
    """Validate config data against Pydantic schema.

    Raises:
        ConfigValidationError: If validation fails
    """
    try:
        config = AppConfig(**data)
    except ValidationError as e:
        error_details = _format_validation_errors(e)
        raise ConfigValidationError(
            f"Configuration validation failed for {path}:\n{error_details}"
        ) from e

    if config.schema_version > CURRENT_SCHEMA_VERSION:
        raise ConfigValidationError(
            f"Config schema version {config.schema_version} is newer than "
            f"supported version {CURRENT_SCHEMA_VERSION}. "
            "Please upgrade mailtriage or downgrade the config."
        )
    return config


def load_config(path: Path | None = None) -> AppConfig:
    """Load and validate configuration from YAML file.

    Always reads from disk. For cached access use get_config().

    Args:
        path: Optional path to config file. If not provided, uses
              MAILTRIAGE_CONFIG_PATH env var or default.

    Raises:
        ConfigLoadError: If file cannot be loaded
        ConfigValidationError: If validation fails
    """
    config_path = path or _get_config_path()

    logger.debug("Loading configuration", path=str(config_path))

    data = _load_yaml(config_path)
    config = _validate_config(data, config_path)

    logger.info(
        "Configuration loaded successfully",
        path=str(config_path),
        schema_version=config.schema_version,
        rules_count=len(config.rules),
        scan_folder=config.scan.folder,
    )

    return config


def get_config() -> AppConfig:
    """Get the current configuration singleton, loading it on first call.

    Raises:
        ConfigLoadError: If file cannot be loaded
        ConfigValidationError: If validation fails
    """
    global _current_config

    with _config_lock:
        if _current_config is None:
            _current_config = load_config(_get_config_path())
        return _current_config


def validate_config_file(path: Path | None = None) -> tuple[bool, str]:
    """Validate a config file without loading it into the singleton.

    Returns:
        Tuple of (is_valid, message)
    """
    config_path = path or _get_config_path()

    try:
        config = load_config(config_path)
        return (
            True,
            f"Configuration valid (schema version {config.schema_version})\n"
            f"  - user: {config.user}\n"
            f"  - scan folder: {config.scan.folder} "
            f"(max {config.scan.max_messages} messages)\n"
            f"  - {len(config.rules)} rules\n"
            f"  - {len(config.required_folders)} required folders",
        )
    except ConfigLoadError as e:
        return (False, f"Load error: {e}")
    except ConfigValidationError as e:
        return (False, f"Validation error: {e}")


def load_api_token(config: AppConfig) -> str:
    """Resolve the bearer token for the configured user.

    FASTMAIL_API_TOKEN wins when set; otherwise the token file is read as a
    JSON object keyed by user.

    Raises:
        ConfigError: If no token can be found for the user
    """
    env_token = os.environ.get(TOKEN_ENV_VAR)
    if env_token:
        return env_token

    token_path = Path(config.jmap.token_file)
    if not token_path.exists():
        raise ConfigError(
            f"No API token found for user: {config.user}. "
            f"Set {TOKEN_ENV_VAR} or create {token_path} mapping the user to a token."
        )

    try:
        tokens = json.loads(token_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigError(f"Failed to read token file {token_path}: {e}") from e

    token = tokens.get(config.user) if isinstance(tokens, dict) else None
    if not token:
        raise ConfigError(
            f"No API token found for user: {config.user} in {token_path}"
        )
    return token


def reset_config() -> None:
    """Reset the config singleton. Primarily for testing."""
    global _current_config
    with _config_lock:
        _current_config = None
