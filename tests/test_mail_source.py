"""Tests for the IMAP/POP3 adapters using stand-in protocol clients."""

import imaplib
import poplib
from datetime import date, datetime, timezone

import pytest

from mailuptime.db.enums import MailProtocol
from mailuptime.services.mail_source import (
    ImapMailSource,
    ImapSession,
    MailAuthError,
    MailProtocolError,
    Pop3MailSource,
    Pop3Session,
    build_imap_search_criteria,
    get_mail_source,
    parse_fetch_message_bytes,
    parse_message,
    parse_uid_search_data,
)

MULTIPART = (
    b"From: Billing <billing@example.com>\r\n"
    b"To: reports@example.com\r\n"
    b"Subject: Invoice #42\r\n"
    b"Date: Fri, 07 Mar 2025 09:15:00 +0100\r\n"
    b"MIME-Version: 1.0\r\n"
    b'Content-Type: multipart/alternative; boundary="xyz"\r\n'
    b"\r\n"
    b"--xyz\r\n"
    b"Content-Type: text/plain; charset=utf-8\r\n"
    b"\r\n"
    b"Total due: 10 EUR\r\n"
    b"--xyz\r\n"
    b"Content-Type: text/html; charset=utf-8\r\n"
    b"\r\n"
    b"<p>Total due: <b>10 EUR</b></p>\r\n"
    b"--xyz--\r\n"
)


def _simple(subject: str, date_header: str, sender: str = "backup@example.com") -> bytes:
    return (
        f"From: {sender}\r\nSubject: {subject}\r\nDate: {date_header}\r\n"
        f"Content-Type: text/plain\r\n\r\nbody of {subject}\r\n"
    ).encode()


# =============================================================================
# Parsing helpers
# =============================================================================


def test_search_criteria_without_senders():
    assert build_imap_search_criteria(date(2025, 3, 7)) == ["SINCE", "07-Mar-2025"]


def test_search_criteria_or_chain():
    criteria = build_imap_search_criteria(
        date(2025, 3, 7), ["a@example.com", "b@example.com", "c@example.com"]
    )

    assert criteria == [
        "SINCE", "07-Mar-2025",
        "OR", "FROM", '"a@example.com"',
        "OR", "FROM", '"b@example.com"',
        "FROM", '"c@example.com"',
    ]


def test_search_criteria_ignores_blank_senders():
    criteria = build_imap_search_criteria(date(2025, 3, 7), ["", "  ", "a@example.com"])

    assert criteria == ["SINCE", "07-Mar-2025", "FROM", '"a@example.com"']


def test_parse_message_multipart():
    message = parse_message(MULTIPART, "17")

    assert message.ref == "17"
    assert message.subject == "Invoice #42"
    assert message.text_body.strip() == "Total due: 10 EUR"
    assert "<b>10 EUR</b>" in message.html_body
    assert message.received_at == datetime(2025, 3, 7, 8, 15, tzinfo=timezone.utc)
    assert "billing@example.com" in message.from_address


def test_parse_message_html_only_body_fallback():
    raw = (
        b"Subject: Report\r\nDate: Fri, 07 Mar 2025 09:15:00 +0000\r\n"
        b"Content-Type: text/html\r\n\r\n<p>all jobs completed</p>\r\n"
    )

    message = parse_message(raw, "1")

    assert message.text_body is None
    assert "all jobs completed" in message.body


def test_parse_message_without_date():
    message = parse_message(b"Subject: x\r\n\r\nbody\r\n", "1")

    assert message.received_at is None


def test_parse_uid_search_data():
    assert parse_uid_search_data([b"3 7 12"]) == ["3", "7", "12"]
    assert parse_uid_search_data([b""]) == []
    assert parse_uid_search_data([None]) == []


def test_parse_fetch_message_bytes():
    data = [(b"1 (UID 7 BODY[] {12}", b"raw message"), b")"]

    assert parse_fetch_message_bytes(data) == b"raw message"
    assert parse_fetch_message_bytes([b")"]) is None


def test_get_mail_source_by_protocol():
    assert isinstance(get_mail_source(MailProtocol.IMAP), ImapMailSource)
    assert isinstance(get_mail_source("pop3", timeout=5), Pop3MailSource)


# =============================================================================
# IMAP session
# =============================================================================


class StubImapClient:
    def __init__(self, messages: dict[str, bytes], reject_login: bool = False):
        self.messages = messages
        self.reject_login = reject_login
        self.calls = []

    def login(self, username, password):
        if self.reject_login:
            raise imaplib.IMAP4.error("AUTHENTICATIONFAILED")
        return "OK", [b"Logged in"]

    def select(self, mailbox, readonly=False):
        self.calls.append(("select", mailbox, readonly))
        return "OK", [str(len(self.messages)).encode()]

    def uid(self, command, *args):
        self.calls.append(("uid", command, *args))
        if command == "SEARCH":
            return "OK", [" ".join(self.messages).encode()]
        raw = self.messages.get(args[0])
        if raw is None:
            return "OK", [None]
        return "OK", [(f"1 (UID {args[0]} BODY[] {{{len(raw)}}}".encode(), raw), b")"]

    def logout(self):
        self.calls.append(("logout",))
        return "BYE", []


def test_imap_session_lists_and_fetches_readonly():
    client = StubImapClient({"5": _simple("Backup ok", "Fri, 07 Mar 2025 06:00:00 +0000")})
    session = ImapSession(client)

    session.authenticate("reports@example.com", "secret")
    refs = session.list_since(date(2025, 3, 7), ["backup@example.com"])
    message = session.fetch(refs[0])
    session.close()

    assert refs == ["5"]
    assert message.subject == "Backup ok"
    assert ("select", "INBOX", True) in client.calls
    assert ("uid", "SEARCH", None, "SINCE", "07-Mar-2025", "FROM", '"backup@example.com"') in client.calls
    assert ("uid", "FETCH", "5", "(BODY.PEEK[])") in client.calls
    assert client.calls[-1] == ("logout",)


def test_imap_login_rejected_raises_auth_error():
    session = ImapSession(StubImapClient({}, reject_login=True))

    with pytest.raises(MailAuthError):
        session.authenticate("reports@example.com", "wrong")


def test_imap_fetch_missing_body_raises():
    session = ImapSession(StubImapClient({}))

    with pytest.raises(MailProtocolError):
        session.fetch("99")


# =============================================================================
# POP3 session
# =============================================================================


class StubPop3Client:
    def __init__(self, messages: list[bytes], reject_pass: bool = False):
        # Index 0 is message number 1 (oldest)
        self.messages = messages
        self.reject_pass = reject_pass
        self.top_calls = []
        self.quit_called = False

    def user(self, username):
        return b"+OK"

    def pass_(self, password):
        if self.reject_pass:
            raise poplib.error_proto("-ERR invalid password")
        return b"+OK"

    def stat(self):
        return len(self.messages), sum(len(m) for m in self.messages)

    def _lines(self, number):
        return self.messages[number - 1].split(b"\r\n")

    def top(self, number, lines):
        self.top_calls.append(number)
        raw = self._lines(number)
        headers = raw[: raw.index(b"")]
        return b"+OK", headers, 0

    def retr(self, number):
        return b"+OK", self._lines(number), 0

    def quit(self):
        self.quit_called = True
        return b"+OK"


def test_pop3_lists_today_oldest_first_and_stops_at_older_mail():
    client = StubPop3Client(
        [
            _simple("Old report", "Tue, 04 Mar 2025 12:00:00 +0000"),
            _simple("Older still", "Wed, 05 Mar 2025 12:00:00 +0000"),
            _simple("Morning report", "Fri, 07 Mar 2025 12:00:00 +0000"),
            _simple("Promo", "Fri, 07 Mar 2025 12:30:00 +0000", sender="promo@other.com"),
            _simple("Evening report", "Fri, 07 Mar 2025 13:00:00 +0000"),
        ]
    )
    session = Pop3Session(client)

    refs = session.list_since(date(2025, 3, 7), ["backup@example.com"])

    assert refs == ["3", "5"]
    # Message 1 is never inspected: the scan stopped at message 2
    assert client.top_calls == [5, 4, 3, 2]
    assert session.fetch("5").subject == "Evening report"


def test_pop3_without_sender_filter_keeps_everything_today():
    client = StubPop3Client(
        [
            _simple("Report", "Fri, 07 Mar 2025 12:00:00 +0000"),
            _simple("Promo", "Fri, 07 Mar 2025 12:30:00 +0000", sender="promo@other.com"),
        ]
    )

    assert Pop3Session(client).list_since(date(2025, 3, 7)) == ["1", "2"]


def test_pop3_rejected_password_raises_auth_error():
    session = Pop3Session(StubPop3Client([], reject_pass=True))

    with pytest.raises(MailAuthError):
        session.authenticate("reports@example.com", "wrong")


def test_pop3_close_quits():
    client = StubPop3Client([])

    Pop3Session(client).close()

    assert client.quit_called
