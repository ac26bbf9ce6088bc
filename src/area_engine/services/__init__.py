"""HTTP clients for the external services workflows read from and write to."""

from .discord import DiscordClient, extract_channel_id
from .github import GitHubClient, parse_cursor_number
from .gmail import GmailClient
from .http import ServiceHTTPClient, ServiceHTTPError

__all__ = [
    "DiscordClient",
    "GitHubClient",
    "GmailClient",
    "ServiceHTTPClient",
    "ServiceHTTPError",
    "extract_channel_id",
    "parse_cursor_number",
]
