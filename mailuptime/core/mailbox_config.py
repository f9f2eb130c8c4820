"""
Mailbox configuration: defaults, per-mailbox overrides and effective config.

The mailbox file is loaded once into frozen models and passed explicitly to
the orchestrator, the monitors and the query boundary.

File shape (snake_case; the appsettings-style PascalCase names are accepted
too, including a top-level "MailboxSettings" wrapper):

    {
      "defaults": {"host": "imap.example.com", "username": "...", ...},
      "mailboxes": [
        {"name": "Invoices", "expected_subject_pattern": "invoice #\\d+"}
      ]
    }
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from mailuptime.db.enums import (
    DEFAULT_POLLING_SECONDS,
    DEFAULT_PORT,
    DEFAULT_PROTOCOL,
    DEFAULT_USE_TLS,
    MailProtocol,
)
from mailuptime.utils.normalization import normalize_mailbox_name


class MailboxConfigError(Exception):
    """Mailbox configuration file is missing or invalid."""

    pass


def _aliases(*names: str) -> AliasChoices:
    return AliasChoices(*names)


# Inheritable field keys, as they may appear at the top level of an
# appsettings-style section next to ReportConfig
_DEFAULT_KEYS = {
    "protocol", "Protocol",
    "host", "Host",
    "port", "Port",
    "use_tls", "use_ssl", "UseSsl", "UseTls",
    "username", "Username",
    "password", "Password",
    "polling_frequency_seconds", "PollingFrequencySeconds",
    "expected_sender_emails", "ExpectedSenderEmails",
}


class _InheritableFields(BaseModel):
    """Fields a mailbox may inherit from the shared defaults."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    protocol: MailProtocol | None = Field(default=None, validation_alias=_aliases("protocol", "Protocol"))
    host: str | None = Field(default=None, validation_alias=_aliases("host", "Host"))
    port: int | None = Field(default=None, gt=0, lt=65536, validation_alias=_aliases("port", "Port"))
    use_tls: bool | None = Field(
        default=None, validation_alias=_aliases("use_tls", "use_ssl", "UseSsl", "UseTls")
    )
    username: str | None = Field(default=None, validation_alias=_aliases("username", "Username"))
    password: str | None = Field(
        default=None, repr=False, validation_alias=_aliases("password", "Password")
    )
    polling_frequency_seconds: int | None = Field(
        default=None,
        gt=0,
        validation_alias=_aliases("polling_frequency_seconds", "PollingFrequencySeconds"),
    )
    expected_sender_emails: tuple[str, ...] | None = Field(
        default=None,
        validation_alias=_aliases("expected_sender_emails", "ExpectedSenderEmails"),
    )

    @field_validator("protocol", mode="before")
    @classmethod
    def _normalize_protocol(cls, value: Any) -> Any:
        # "Imap" / "POP3" as written in appsettings-style files
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("expected_sender_emails")
    @classmethod
    def _strip_senders(cls, value: tuple[str, ...] | None) -> tuple[str, ...] | None:
        if value is None:
            return None
        return tuple(s.strip() for s in value if s and s.strip())


class MailboxDefaults(_InheritableFields):
    """Process-wide fallback values shared by every mailbox."""


class MailboxConfig(_InheritableFields):
    """One monitored mailbox: overrides plus the patterns that never inherit."""

    name: str = Field(min_length=1, validation_alias=_aliases("name", "Name"))
    expected_subject_pattern: str | None = Field(
        default=None, validation_alias=_aliases("expected_subject_pattern", "ExpectedSubjectPattern")
    )
    expected_body_pattern: str | None = Field(
        default=None, validation_alias=_aliases("expected_body_pattern", "ExpectedBodyPattern")
    )
    fail_subject_pattern: str | None = Field(
        default=None, validation_alias=_aliases("fail_subject_pattern", "FailSubjectPattern")
    )
    fail_body_pattern: str | None = Field(
        default=None, validation_alias=_aliases("fail_body_pattern", "FailBodyPattern")
    )

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Mailbox name must not be blank")
        return value

    @field_validator(
        "expected_subject_pattern",
        "expected_body_pattern",
        "fail_subject_pattern",
        "fail_body_pattern",
    )
    @classmethod
    def _validate_pattern(cls, value: str | None) -> str | None:
        # Empty string means "not configured"
        if not value:
            return None
        try:
            re.compile(value, re.IGNORECASE)
        except re.error as exc:
            raise ValueError(f"Invalid regular expression {value!r}: {exc}") from exc
        return value


class MailboxSettings(BaseModel):
    """Shared defaults plus the ordered list of monitored mailboxes."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    defaults: MailboxDefaults = Field(
        default_factory=MailboxDefaults, validation_alias=_aliases("defaults", "Defaults")
    )
    mailboxes: tuple[MailboxConfig, ...] = Field(
        default=(), validation_alias=_aliases("mailboxes", "report_config", "ReportConfig")
    )

    @model_validator(mode="before")
    @classmethod
    def _collect_flat_defaults(cls, data: Any) -> Any:
        """Support defaults written inline next to ReportConfig."""
        if not isinstance(data, dict) or "defaults" in data or "Defaults" in data:
            return data
        inline = {k: v for k, v in data.items() if k in _DEFAULT_KEYS}
        if not inline:
            return data
        rest = {k: v for k, v in data.items() if k not in _DEFAULT_KEYS}
        return {**rest, "defaults": inline}

    @model_validator(mode="after")
    def _validate_unique_names(self) -> "MailboxSettings":
        seen: set[str] = set()
        for mailbox in self.mailboxes:
            key = normalize_mailbox_name(mailbox.name)
            if key in seen:
                raise ValueError(f"Duplicate mailbox name: {mailbox.name}")
            seen.add(key)
        return self

    def find(self, name: str) -> MailboxConfig | None:
        """Case-insensitive lookup of a configured mailbox."""
        key = normalize_mailbox_name(name)
        for mailbox in self.mailboxes:
            if normalize_mailbox_name(mailbox.name) == key:
                return mailbox
        return None

    def effective_configs(self) -> list["EffectiveConfig"]:
        return [resolve_effective_config(m, self.defaults) for m in self.mailboxes]


class EffectiveConfig(BaseModel):
    """A mailbox's configuration after merging overrides with defaults."""

    model_config = ConfigDict(frozen=True)

    name: str
    protocol: MailProtocol
    host: str
    port: int
    use_tls: bool
    username: str
    password: str = Field(repr=False)
    polling_frequency_seconds: int
    expected_sender_emails: tuple[str, ...]
    expected_subject_pattern: str | None = None
    expected_body_pattern: str | None = None
    fail_subject_pattern: str | None = None
    fail_body_pattern: str | None = None

    @property
    def has_success_pattern(self) -> bool:
        return bool(self.expected_subject_pattern or self.expected_body_pattern)

    @property
    def has_fail_pattern(self) -> bool:
        return bool(self.fail_subject_pattern or self.fail_body_pattern)

    @property
    def has_sender_filter(self) -> bool:
        return bool(self.expected_sender_emails)


def _first_set(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def resolve_effective_config(mailbox: MailboxConfig, defaults: MailboxDefaults) -> EffectiveConfig:
    """
    Merge one mailbox with the shared defaults.

    Each inheritable field is override ?? default ?? hard-coded fallback.
    The four pattern fields are passed through and never inherit.
    """
    return EffectiveConfig(
        name=mailbox.name,
        protocol=_first_set(mailbox.protocol, defaults.protocol, DEFAULT_PROTOCOL),
        host=_first_set(mailbox.host, defaults.host, ""),
        port=_first_set(mailbox.port, defaults.port, DEFAULT_PORT),
        use_tls=_first_set(mailbox.use_tls, defaults.use_tls, DEFAULT_USE_TLS),
        username=_first_set(mailbox.username, defaults.username, ""),
        password=_first_set(mailbox.password, defaults.password, ""),
        polling_frequency_seconds=_first_set(
            mailbox.polling_frequency_seconds,
            defaults.polling_frequency_seconds,
            DEFAULT_POLLING_SECONDS,
        ),
        expected_sender_emails=_first_set(
            mailbox.expected_sender_emails, defaults.expected_sender_emails, ()
        ),
        expected_subject_pattern=mailbox.expected_subject_pattern,
        expected_body_pattern=mailbox.expected_body_pattern,
        fail_subject_pattern=mailbox.fail_subject_pattern,
        fail_body_pattern=mailbox.fail_body_pattern,
    )


def parse_mailbox_settings(data: Any) -> MailboxSettings:
    """Validate an already-decoded mailbox document."""
    if isinstance(data, dict) and "MailboxSettings" in data:
        data = data["MailboxSettings"]
    try:
        return MailboxSettings.model_validate(data)
    except ValidationError as exc:
        raise MailboxConfigError(f"Invalid mailbox configuration: {exc}") from exc


def load_mailbox_settings(path: str | Path) -> MailboxSettings:
    """Read and validate the mailbox configuration file."""
    config_path = Path(path)
    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise MailboxConfigError(f"Cannot read mailbox configuration {config_path}: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MailboxConfigError(f"Mailbox configuration {config_path} is not valid JSON: {exc}") from exc
    return parse_mailbox_settings(data)
