"""Transport adapters for the mail store."""

from .imap_client import ImapClient, ImapConnectionLost, ImapError
from .session import MailSession, SessionState

__all__ = [
    "ImapClient",
    "ImapConnectionLost",
    "ImapError",
    "MailSession",
    "SessionState",
]
