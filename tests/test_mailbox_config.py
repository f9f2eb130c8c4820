"""Tests for mailbox configuration loading and inheritance."""

import json

import pytest

from mailuptime.core.mailbox_config import (
    MailboxConfig,
    MailboxConfigError,
    MailboxDefaults,
    load_mailbox_settings,
    parse_mailbox_settings,
    resolve_effective_config,
)
from mailuptime.db.enums import MailProtocol


def test_override_wins_over_default():
    defaults = MailboxDefaults(host="imap.shared.com", port=143, polling_frequency_seconds=120)
    mailbox = MailboxConfig(name="Invoices", host="imap.billing.com")

    config = resolve_effective_config(mailbox, defaults)

    assert config.host == "imap.billing.com"
    assert config.port == 143
    assert config.polling_frequency_seconds == 120


def test_hard_coded_fallbacks():
    config = resolve_effective_config(MailboxConfig(name="Bare"), MailboxDefaults())

    assert config.protocol == MailProtocol.IMAP
    assert config.host == ""
    assert config.port == 993
    assert config.use_tls is True
    assert config.username == ""
    assert config.password == ""
    assert config.polling_frequency_seconds == 60
    assert config.expected_sender_emails == ()


def test_explicit_false_override_is_kept():
    defaults = MailboxDefaults(use_tls=True)
    config = resolve_effective_config(MailboxConfig(name="Plain", use_tls=False), defaults)

    assert config.use_tls is False


def test_patterns_are_passed_through_and_never_inherited():
    settings = parse_mailbox_settings(
        {
            "defaults": {"host": "imap.example.com", "expected_subject_pattern": "ignored"},
            "mailboxes": [
                {"name": "A", "expected_subject_pattern": "invoice"},
                {"name": "B"},
            ],
        }
    )
    a, b = settings.effective_configs()

    assert a.expected_subject_pattern == "invoice"
    assert b.expected_subject_pattern is None
    assert not b.has_success_pattern


def test_empty_pattern_means_not_configured():
    mailbox = MailboxConfig(name="A", fail_subject_pattern="")

    assert mailbox.fail_subject_pattern is None


def test_invalid_regex_is_rejected():
    with pytest.raises(MailboxConfigError, match="Invalid regular expression"):
        parse_mailbox_settings({"mailboxes": [{"name": "A", "expected_subject_pattern": "(unclosed"}]})


def test_duplicate_names_are_rejected_case_insensitively():
    with pytest.raises(MailboxConfigError, match="Duplicate mailbox name"):
        parse_mailbox_settings({"mailboxes": [{"name": "Invoices"}, {"name": "INVOICES"}]})


def test_appsettings_style_document(tmp_path):
    path = tmp_path / "appsettings.json"
    path.write_text(
        json.dumps(
            {
                "MailboxSettings": {
                    "Protocol": "Imap",
                    "Host": "imap.example.com",
                    "Port": 993,
                    "UseSsl": True,
                    "Username": "reports@example.com",
                    "Password": "secret",
                    "PollingFrequencySeconds": 300,
                    "ReportConfig": [
                        {
                            "Name": "LegacyPop",
                            "Protocol": "POP3",
                            "Port": 995,
                            "ExpectedSenderEmails": [" backup@example.com "],
                            "FailBodyPattern": "error",
                        }
                    ],
                }
            }
        ),
        encoding="utf-8",
    )

    settings = load_mailbox_settings(path)
    (config,) = settings.effective_configs()

    assert config.name == "LegacyPop"
    assert config.protocol == MailProtocol.POP3
    assert config.port == 995
    assert config.host == "imap.example.com"
    assert config.polling_frequency_seconds == 300
    assert config.expected_sender_emails == ("backup@example.com",)
    assert config.fail_body_pattern == "error"


def test_find_is_case_insensitive():
    settings = parse_mailbox_settings({"mailboxes": [{"name": "Invoices"}]})

    assert settings.find("invoices").name == "Invoices"
    assert settings.find("missing") is None


def test_password_not_in_repr():
    config = resolve_effective_config(MailboxConfig(name="A", password="hunter2"), MailboxDefaults())

    assert "hunter2" not in repr(config)


def test_missing_file_raises(tmp_path):
    with pytest.raises(MailboxConfigError, match="Cannot read"):
        load_mailbox_settings(tmp_path / "nope.json")


def test_invalid_json_raises(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(MailboxConfigError, match="not valid JSON"):
        load_mailbox_settings(path)
