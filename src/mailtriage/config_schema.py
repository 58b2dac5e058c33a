"""Pydantic configuration schema for the mail triage service.

This module defines the configuration schema that mirrors config.yaml
structure. All configuration is validated against these models on startup.

Rule entries keep the hyphenated key names used when authoring rules by
hand (``add-label``, ``not-empty``, ``one-of``...) through field aliases.

Usage:
    from mailtriage.config_schema import AppConfig

    config = AppConfig(**yaml_data)
"""

from typing import Any

import regex
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Current schema version - increment when adding new required fields
CURRENT_SCHEMA_VERSION = 1

DEFAULT_REQUIRED_FOLDERS = ["Promotions", "Social", "Updates", "Receipts"]


class JMAPConfig(BaseModel):
    """JMAP server endpoints and credentials location."""

    session_url: str = Field(
        default="https://api.fastmail.com/jmap/session",
        description="JMAP session resource URL (account discovery)",
    )
    api_url: str | None = Field(
        default=None,
        description="Override the apiUrl advertised by the session resource",
    )
    token_file: str = Field(
        default="secrets/jmapTokens.json",
        description="JSON file mapping user -> API token",
    )
    request_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="HTTP timeout for JMAP calls (None waits indefinitely)",
    )


class ScanConfig(BaseModel):
    """Which messages a run scans."""

    folder: str = Field(description="Mailbox name to scan (case-insensitive)")
    first_message: int = Field(
        default=0,
        ge=0,
        description="Query position of the first message (0 = newest)",
    )
    max_messages: int = Field(
        default=100,
        ge=1,
        le=5000,
        description="Maximum number of messages fetched per run",
    )

    @field_validator("folder")
    @classmethod
    def validate_folder(cls, v: str) -> str:
        """Ensure the scan folder name is not blank."""
        if not v or not v.strip():
            raise ValueError("Scan folder cannot be empty")
        return v


class LedgerConfig(BaseModel):
    """Ledger file locations."""

    directory: str = Field(default=".", description="Directory holding both ledger files")
    kept_file: str = Field(default="subjects.txt", description="Ledger of kept senders")
    excluded_file: str = Field(
        default="exclusions.txt",
        description="Ledger of excluded senders",
    )
    record_matches: bool = Field(
        default=True,
        description="Record senders of messages labelled by a rule into the kept ledger",
    )

    @field_validator("kept_file", "excluded_file")
    @classmethod
    def validate_file_name(cls, v: str) -> str:
        """Ledger files are plain names inside the ledger directory."""
        if not v or not v.strip():
            raise ValueError("Ledger file name cannot be empty")
        if ".." in v or "/" in v or "\\" in v:
            raise ValueError("Ledger file name must not contain path separators or '..'")
        return v


class LockConfig(BaseModel):
    """Advisory editor lock settings."""

    timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Seconds after the last save before the editor lock lapses",
    )


class SyncConfig(BaseModel):
    """Label synchronization behaviour."""

    keyword_cleanup: bool = Field(
        default=True,
        description="Also drop keywords named after a removed label",
    )


class ScheduleConfig(BaseModel):
    """Optional in-process scan schedule used by `serve`."""

    interval_minutes: int | None = Field(
        default=None,
        ge=1,
        le=1440,
        description="Run a scan every N minutes while serving (None disables)",
    )


class LoggingConfig(BaseModel):
    """Log output settings."""

    file: str | None = Field(
        default=None,
        description="Append JSON log lines to this file as well as stdout",
    )


class WebConfig(BaseModel):
    """Interactive editor settings."""

    static_dir: str = Field(default="public", description="Directory of front-end assets")


class RuleConfig(BaseModel):
    """One declarative triage rule as written in config.yaml.

    Selector flags choose which message fields are tested, conditions are
    ANDed together, and actions fire when every present condition passes.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    name: str | None = Field(default=None, description="Optional label used in logs")

    # Field selectors
    header: str | None = Field(default=None, description="Header name to test")
    from_: bool = Field(default=False, alias="from")
    to: bool = False
    subject: bool = False
    body: bool = False

    # Conditions
    empty: bool | None = None
    not_empty: bool | None = Field(default=None, alias="not-empty")
    exact: str | None = None
    not_exact: str | None = Field(default=None, alias="not-exact")
    pattern: str | None = Field(default=None, alias="regex")
    contains: str | list[str] | None = None
    one_of: list[str] | None = Field(default=None, alias="one-of")

    # Actions
    add_label: str | None = Field(default=None, alias="add-label")
    remove_label: str | None = Field(default=None, alias="remove-label")
    stop: bool = False

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str | None) -> str | None:
        """Reject patterns that do not compile."""
        if v is None:
            return v
        try:
            regex.compile(v, regex.IGNORECASE)
        except regex.error as e:
            raise ValueError(f"Invalid regex {v!r}: {e}") from e
        return v

    @field_validator("add_label", "remove_label")
    @classmethod
    def validate_label(cls, v: str | None) -> str | None:
        """Label names cannot be blank."""
        if v is not None and not v.strip():
            raise ValueError("Label name cannot be empty")
        return v

    @model_validator(mode="after")
    def validate_shape(self) -> "RuleConfig":
        """A rule must select at least one field to build its text from."""
        if not (self.header or self.from_ or self.to or self.subject or self.body):
            raise ValueError(
                "Rule selects no field; set at least one of header, from, to, subject, body"
            )
        return self


class AppConfig(BaseModel):
    """Root configuration schema for the mail triage service.

    `user` and `scan` are required; everything else has working defaults.
    If validation fails the CLI exits with the field errors.
    """

    schema_version: int = Field(
        default=CURRENT_SCHEMA_VERSION,
        ge=1,
        description="Config schema version for migration tracking",
    )

    user: str = Field(description="Fastmail account (key into the token file)")
    jmap: JMAPConfig = Field(default_factory=JMAPConfig)
    scan: ScanConfig
    required_folders: list[str] = Field(
        default_factory=lambda: list(DEFAULT_REQUIRED_FOLDERS),
        description="Mailboxes created on each run if missing",
    )
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    lock: LockConfig = Field(default_factory=LockConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    web: WebConfig = Field(default_factory=WebConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    rules: list[RuleConfig] = Field(
        default_factory=list,
        description="Ordered rule list, evaluated top to bottom per message",
    )

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_keys(cls, data: Any) -> Any:
        """Map the flat keys of the original rules file onto the nested schema."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "rule-list" in data and "rules" not in data:
            data["rules"] = data.pop("rule-list")
        legacy_scan = {
            "scan-folder": "folder",
            "first-message": "first_message",
            "max-messages": "max_messages",
        }
        if any(key in data for key in legacy_scan):
            scan = dict(data.get("scan") or {})
            for old, new in legacy_scan.items():
                if old in data:
                    scan.setdefault(new, data.pop(old))
            data["scan"] = scan
        return data
