"""Mailbox uptime watchdog: daily report arrival and pattern monitoring."""
