"""Pytest fixtures and configuration for mail triage tests.

Provides common fixtures for configuration, messages and ledger files.
"""

import logging
import os
from pathlib import Path
from typing import Any, Generator

import pytest
import structlog

from mailtriage.config import reset_config
from mailtriage.config_schema import AppConfig


@pytest.fixture(autouse=True)
def reset_config_singleton() -> Generator[None, None, None]:
    """Reset the config singleton before each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture(autouse=True)
def reset_log_handlers() -> Generator[None, None, None]:
    """Drop handlers added by configure_logging so they never outlive a test."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if (handler.get_name() or "").startswith("mailtriage-"):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    structlog.reset_defaults()


@pytest.fixture
def temp_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a minimal valid config.yaml content."""
    return """
schema_version: 1
user: "me@example.com"

scan:
  folder: "Inbox"
  max_messages: 50

required_folders: ["Receipts", "Social"]

rules:
  - subject: true
    contains: "invoice"
    add-label: Receipts
"""


@pytest.fixture
def sample_config_dict(tmp_path: Path) -> dict[str, Any]:
    """Return a minimal valid config as a dictionary."""
    ledger_dir = tmp_path / "ledgers"
    return {
        "schema_version": 1,
        "user": "me@example.com",
        "scan": {"folder": "Inbox", "max_messages": 50},
        "required_folders": ["Receipts", "Social"],
        "ledger": {"directory": str(ledger_dir)},
        "rules": [
            {"subject": True, "contains": "invoice", "add-label": "Receipts"},
        ],
    }


@pytest.fixture
def sample_config(sample_config_dict: dict[str, Any]) -> AppConfig:
    """Return a minimal valid AppConfig instance."""
    return AppConfig(**sample_config_dict)


@pytest.fixture
def config_file(temp_config_dir: Path, sample_config_yaml: str) -> Path:
    """Create a temporary config file with valid content."""
    config_path = temp_config_dir / "config.yaml"
    config_path.write_text(sample_config_yaml)
    return config_path


@pytest.fixture
def set_config_env(config_file: Path) -> Generator[None, None, None]:
    """Set the MAILTRIAGE_CONFIG_PATH environment variable."""
    old_value = os.environ.get("MAILTRIAGE_CONFIG_PATH")
    os.environ["MAILTRIAGE_CONFIG_PATH"] = str(config_file)
    yield
    if old_value is None:
        del os.environ["MAILTRIAGE_CONFIG_PATH"]
    else:
        os.environ["MAILTRIAGE_CONFIG_PATH"] = old_value


@pytest.fixture
def ledger_dir(tmp_path: Path) -> Path:
    """Create a temporary ledger directory."""
    d = tmp_path / "ledgers"
    d.mkdir()
    return d

