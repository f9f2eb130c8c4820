"""
Success / fail pattern evaluation for candidate messages.

Patterns are case-insensitive regular expressions searched anywhere in the
subject or body (plain text, falling back to the HTML source).

Success: each configured dimension must match; with nothing configured any
message counts as a match.

Fail: nothing configured never fails; a single configured dimension decides
alone; with both configured, subject AND body must match to flag a failure.
The asymmetry with the success rule is intentional.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache

from mailuptime.core.mailbox_config import EffectiveConfig
from mailuptime.services.mail_source import MailMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatternVerdict:
    success_match: bool
    fail_match: bool


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


def _matches(pattern: str, value: str | None) -> bool:
    return _compile(pattern).search(value or "") is not None


def matches_success(message: MailMessage, config: EffectiveConfig) -> bool:
    """True when every configured success dimension matches (vacuously true)."""
    subject_match = True
    body_match = True

    if config.expected_subject_pattern:
        subject_match = _matches(config.expected_subject_pattern, message.subject)
        logger.debug("Success subject pattern check: %s for subject %r", subject_match, message.subject)

    if config.expected_body_pattern:
        body_match = _matches(config.expected_body_pattern, message.body)
        logger.debug("Success body pattern check: %s", body_match)

    return subject_match and body_match


def matches_fail(message: MailMessage, config: EffectiveConfig) -> bool:
    """Fail rule; see the module docstring for the precedence."""
    subject_pattern = config.fail_subject_pattern
    body_pattern = config.fail_body_pattern

    if not subject_pattern and not body_pattern:
        return False

    if not body_pattern:
        return _matches(subject_pattern, message.subject)

    if not subject_pattern:
        return _matches(body_pattern, message.body)

    # Both configured: both must match
    return _matches(subject_pattern, message.subject) and _matches(body_pattern, message.body)


def evaluate(message: MailMessage, config: EffectiveConfig) -> PatternVerdict:
    """Evaluate one message against both rules."""
    return PatternVerdict(
        success_match=matches_success(message, config),
        fail_match=matches_fail(message, config),
    )
