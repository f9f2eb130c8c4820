"""
Mail source adapters: read-only access to a mailbox's INBOX over IMAP or POP3.

The monitor only depends on the MailSource/MailSession contract:

    session = source.connect(host, port, use_tls)
    session.authenticate(username, password)
    refs = session.list_since(day, senders)   # server order, last is newest
    message = session.fetch(ref)
    session.close()

All calls are blocking; the monitor runs them in worker threads.
"""

from __future__ import annotations

import imaplib
import logging
import poplib
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from typing import Iterable, Sequence

from mailuptime.db.enums import MailProtocol
from mailuptime.utils.datetime_parsing import format_imap_date, parse_message_date
from mailuptime.utils.normalization import address_matches_any

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
INBOX = "INBOX"


class MailSourceError(Exception):
    """Base exception for mail source failures."""

    pass


class MailConnectionError(MailSourceError):
    """Network or TLS failure reaching the mail server."""

    pass


class MailAuthError(MailSourceError):
    """Credentials rejected by the mail server."""

    pass


class MailProtocolError(MailSourceError):
    """Malformed or unexpected server response."""

    pass


@dataclass(frozen=True)
class MailMessage:
    """A fetched candidate message, reduced to what pattern checks need."""

    ref: str
    subject: str
    text_body: str | None
    html_body: str | None
    received_at: datetime | None  # UTC, from the Date header
    from_address: str

    @property
    def body(self) -> str:
        """Plain text body, falling back to the HTML source."""
        if self.text_body is not None:
            return self.text_body
        return self.html_body or ""


class MailSession(ABC):
    """An open, connected session against one mailbox."""

    @abstractmethod
    def authenticate(self, username: str, password: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_since(self, day: date, senders: Sequence[str] = ()) -> list[str]:
        """Refs of INBOX messages received on or after `day`, oldest first."""
        raise NotImplementedError

    @abstractmethod
    def fetch(self, ref: str) -> MailMessage:
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Disconnect; never raises."""
        raise NotImplementedError


class MailSource(ABC):
    """Factory for sessions of one protocol."""

    protocol: MailProtocol

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.timeout = timeout

    @abstractmethod
    def connect(self, host: str, port: int, use_tls: bool) -> MailSession:
        raise NotImplementedError


# =============================================================================
# Message parsing
# =============================================================================


def _part_content(part: EmailMessage | None) -> str | None:
    if part is None:
        return None
    try:
        return part.get_content()
    except (LookupError, ValueError, KeyError):
        # Unknown charset or broken transfer encoding
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")


def parse_message(raw: bytes, ref: str) -> MailMessage:
    """Parse an RFC 822 message into a MailMessage."""
    message = BytesParser(policy=policy.default).parsebytes(raw)
    return MailMessage(
        ref=ref,
        subject=str(message.get("Subject") or ""),
        text_body=_part_content(message.get_body(preferencelist=("plain",))),
        html_body=_part_content(message.get_body(preferencelist=("html",))),
        received_at=parse_message_date(message.get("Date")),
        from_address=str(message.get("From") or ""),
    )


def _tls_context() -> ssl.SSLContext:
    return ssl.create_default_context()


# =============================================================================
# IMAP
# =============================================================================


def _quote_imap_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _sender_criteria(senders: Sequence[str]) -> list[str]:
    """Right-nested OR chain: OR FROM a OR FROM b FROM c."""
    first = ["FROM", _quote_imap_string(senders[0])]
    if len(senders) == 1:
        return first
    return ["OR", *first, *_sender_criteria(senders[1:])]


def build_imap_search_criteria(day: date, senders: Iterable[str] = ()) -> list[str]:
    """UID SEARCH criteria for messages since `day` from any of `senders`."""
    criteria = ["SINCE", format_imap_date(day)]
    expected = [s.strip() for s in senders if s and s.strip()]
    if expected:
        criteria.extend(_sender_criteria(expected))
    return criteria


def parse_uid_search_data(data: object) -> list[str]:
    if not isinstance(data, list) or not data or not data[0]:
        return []
    raw = data[0]
    if isinstance(raw, bytes):
        return [uid.decode("ascii", errors="ignore") for uid in raw.split()]
    if isinstance(raw, str):
        return [uid for uid in raw.split() if uid]
    return []


def parse_fetch_message_bytes(fetch_data: Iterable[object]) -> bytes | None:
    for part in fetch_data:
        if not isinstance(part, tuple) or len(part) < 2:
            continue
        _meta, body = part
        if isinstance(body, bytes):
            return body
    return None


class ImapSession(MailSession):
    def __init__(self, client: imaplib.IMAP4):
        self._client = client
        self._selected = False

    def authenticate(self, username: str, password: str) -> None:
        try:
            self._client.login(username, password)
        except imaplib.IMAP4.error as exc:
            raise MailAuthError(f"IMAP login rejected for {username}: {exc}") from exc
        except OSError as exc:
            raise MailConnectionError(f"IMAP connection lost during login: {exc}") from exc

    def _select_inbox(self) -> None:
        if self._selected:
            return
        try:
            status, data = self._client.select(INBOX, readonly=True)
        except imaplib.IMAP4.error as exc:
            raise MailProtocolError(f"IMAP SELECT {INBOX} failed: {exc}") from exc
        except OSError as exc:
            raise MailConnectionError(f"IMAP connection lost during SELECT: {exc}") from exc
        if status != "OK":
            raise MailProtocolError(f"IMAP SELECT {INBOX} returned {status}")
        self._selected = True
        logger.debug("Inbox opened, %s total messages", data[0] if data else "?")

    def list_since(self, day: date, senders: Sequence[str] = ()) -> list[str]:
        self._select_inbox()
        criteria = build_imap_search_criteria(day, senders)
        try:
            status, data = self._client.uid("SEARCH", None, *criteria)
        except imaplib.IMAP4.error as exc:
            raise MailProtocolError(f"IMAP SEARCH failed: {exc}") from exc
        except OSError as exc:
            raise MailConnectionError(f"IMAP connection lost during SEARCH: {exc}") from exc
        if status != "OK":
            raise MailProtocolError(f"IMAP SEARCH returned {status}")
        return parse_uid_search_data(data)

    def fetch(self, ref: str) -> MailMessage:
        self._select_inbox()
        try:
            # PEEK keeps the \Seen flag untouched
            status, fetch_data = self._client.uid("FETCH", ref, "(BODY.PEEK[])")
        except imaplib.IMAP4.error as exc:
            raise MailProtocolError(f"IMAP FETCH {ref} failed: {exc}") from exc
        except OSError as exc:
            raise MailConnectionError(f"IMAP connection lost during FETCH: {exc}") from exc
        raw = parse_fetch_message_bytes(fetch_data or []) if status == "OK" else None
        if raw is None:
            raise MailProtocolError(f"IMAP FETCH {ref} returned no message body")
        return parse_message(raw, ref)

    def close(self) -> None:
        try:
            self._client.logout()
        except (imaplib.IMAP4.error, OSError) as exc:
            logger.debug("IMAP logout failed: %s", type(exc).__name__)


class ImapMailSource(MailSource):
    protocol = MailProtocol.IMAP

    def connect(self, host: str, port: int, use_tls: bool) -> MailSession:
        try:
            if use_tls:
                client = imaplib.IMAP4_SSL(
                    host, port, ssl_context=_tls_context(), timeout=self.timeout
                )
            else:
                client = imaplib.IMAP4(host, port, timeout=self.timeout)
                # Upgrade opportunistically when the server offers it
                if "STARTTLS" in client.capabilities:
                    client.starttls(ssl_context=_tls_context())
        except imaplib.IMAP4.error as exc:
            raise MailProtocolError(f"IMAP greeting from {host}:{port} rejected: {exc}") from exc
        except OSError as exc:
            raise MailConnectionError(f"Cannot connect to IMAP {host}:{port}: {exc}") from exc
        return ImapSession(client)


# =============================================================================
# POP3
# =============================================================================


def _parse_headers(lines: Sequence[bytes]) -> EmailMessage:
    return BytesParser(policy=policy.default).parsebytes(b"\r\n".join(lines), headersonly=True)


class Pop3Session(MailSession):
    def __init__(self, client: poplib.POP3):
        self._client = client

    def authenticate(self, username: str, password: str) -> None:
        try:
            self._client.user(username)
            self._client.pass_(password)
        except poplib.error_proto as exc:
            raise MailAuthError(f"POP3 login rejected for {username}: {exc}") from exc
        except OSError as exc:
            raise MailConnectionError(f"POP3 connection lost during login: {exc}") from exc

    def list_since(self, day: date, senders: Sequence[str] = ()) -> list[str]:
        """
        Scan newest to oldest until a message dated before `day` is reached.

        POP3 has no server-side search, so the sender filter is applied here
        with the same any-of containment semantics as IMAP FROM.
        """
        try:
            count, _size = self._client.stat()
            refs: list[str] = []
            for number in range(count, 0, -1):
                _resp, lines, _octets = self._client.top(number, 0)
                headers = _parse_headers(lines)
                received = parse_message_date(headers.get("Date"))
                if received is None:
                    continue
                if received.astimezone().date() < day:
                    logger.debug("Reached messages older than %s, stopping POP3 scan", day)
                    break
                if not address_matches_any(str(headers.get("From") or ""), senders):
                    continue
                refs.append(str(number))
        except poplib.error_proto as exc:
            raise MailProtocolError(f"POP3 listing failed: {exc}") from exc
        except OSError as exc:
            raise MailConnectionError(f"POP3 connection lost during listing: {exc}") from exc
        refs.reverse()
        return refs

    def fetch(self, ref: str) -> MailMessage:
        try:
            _resp, lines, _octets = self._client.retr(int(ref))
        except poplib.error_proto as exc:
            raise MailProtocolError(f"POP3 RETR {ref} failed: {exc}") from exc
        except OSError as exc:
            raise MailConnectionError(f"POP3 connection lost during RETR: {exc}") from exc
        return parse_message(b"\r\n".join(lines), ref)

    def close(self) -> None:
        try:
            self._client.quit()
        except (poplib.error_proto, OSError) as exc:
            logger.debug("POP3 quit failed: %s", type(exc).__name__)


class Pop3MailSource(MailSource):
    protocol = MailProtocol.POP3

    def connect(self, host: str, port: int, use_tls: bool) -> MailSession:
        try:
            if use_tls:
                client = poplib.POP3_SSL(host, port, timeout=self.timeout, context=_tls_context())
            else:
                client = poplib.POP3(host, port, timeout=self.timeout)
                # Upgrade opportunistically when the server offers it
                try:
                    capabilities = client.capa()
                except poplib.error_proto:
                    capabilities = {}
                if "STLS" in capabilities:
                    client.stls(context=_tls_context())
        except poplib.error_proto as exc:
            raise MailProtocolError(f"POP3 greeting from {host}:{port} rejected: {exc}") from exc
        except OSError as exc:
            raise MailConnectionError(f"Cannot connect to POP3 {host}:{port}: {exc}") from exc
        return Pop3Session(client)


_SOURCES: dict[MailProtocol, type[MailSource]] = {
    MailProtocol.IMAP: ImapMailSource,
    MailProtocol.POP3: Pop3MailSource,
}


def get_mail_source(protocol: MailProtocol, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> MailSource:
    """Return the adapter for a mailbox's protocol."""
    return _SOURCES[MailProtocol(protocol)](timeout=timeout)
