"""API routers."""

from mailuptime.routers import dashboard, mail_uptime

__all__ = [
    "dashboard",
    "mail_uptime",
]
