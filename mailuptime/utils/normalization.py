"""Normalization helpers for mailbox names and sender addresses."""

from typing import Iterable


def normalize_mailbox_name(name: str) -> str:
    """Case-fold a mailbox name for lookups; storage keeps the configured casing."""
    return (name or "").strip().lower()


def address_matches_any(from_header: str | None, senders: Iterable[str]) -> bool:
    """
    Any-of sender filter.

    A sender entry matches when it appears (case-insensitively) anywhere in
    the From header, the same containment semantics as IMAP SEARCH FROM.
    An empty sender list matches everything.
    """
    expected = [s.strip().lower() for s in senders if s and s.strip()]
    if not expected:
        return True
    haystack = (from_header or "").lower()
    return any(sender in haystack for sender in expected)
