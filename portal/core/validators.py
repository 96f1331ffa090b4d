"""Input validation helpers for integration account data."""
from __future__ import annotations

import re
import secrets
from typing import Any

# Atheme NICKLEN
IRC_NICK_MAX_LENGTH = 50
ACCOUNT_SECRET_LENGTH = 24
XMPP_USERNAME_MAX_LENGTH = 63

IRC_NICK_PATTERN = re.compile(r"[A-Za-z0-9_\-\[\]\\^`{|}~]{1,%d}" % IRC_NICK_MAX_LENGTH)
XMPP_USERNAME_PATTERN = re.compile(r"[a-zA-Z0-9][a-zA-Z0-9._-]{0,%d}" % (XMPP_USERNAME_MAX_LENGTH - 1))
_XMPP_USERNAME_STRIP = re.compile(r"[^a-z0-9._-]")


def is_valid_irc_nick(raw: Any) -> bool:
    """Return True if ``raw`` is an acceptable IRC nick once trimmed."""
    if not isinstance(raw, str):
        return False
    nick = raw.strip()
    if not nick:
        return False
    return IRC_NICK_PATTERN.fullmatch(nick) is not None


def normalize_irc_nick(raw: Any) -> str:
    """Trim and validate an IRC nick.

    Args:
        raw: Raw nick input

    Returns:
        Trimmed nick

    Raises:
        ValueError: If the nick is invalid
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError("Nick is required")
    nick = raw.strip()
    if len(nick) > IRC_NICK_MAX_LENGTH:
        raise ValueError(f"Nick must be {IRC_NICK_MAX_LENGTH} characters or less")
    if not is_valid_irc_nick(nick):
        raise ValueError(
            "Invalid nick. Use letters, digits, or [ ] \\ ^ _ ` { | } ~ - "
            f"(max {IRC_NICK_MAX_LENGTH} characters)."
        )
    return nick


def generate_account_secret() -> str:
    """Generate a one-time account secret.

    Returns:
        24 characters from the URL-safe base64 alphabet
    """
    return secrets.token_urlsafe(ACCOUNT_SECRET_LENGTH)[:ACCOUNT_SECRET_LENGTH]


def is_valid_xmpp_username(raw: Any) -> bool:
    if not isinstance(raw, str):
        return False
    return XMPP_USERNAME_PATTERN.fullmatch(raw) is not None


def normalize_xmpp_username(raw: Any) -> str:
    """Trim, lowercase and validate an XMPP localpart.

    Raises:
        ValueError: If the username is invalid
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError("Username is required")
    username = raw.strip().lower()
    if not is_valid_xmpp_username(username):
        raise ValueError(
            "Invalid username format. Username must be alphanumeric with underscores, "
            "hyphens, or dots, and start with a letter or number."
        )
    return username


def username_from_email(email: str) -> str:
    """Derive an XMPP localpart from the local part of an email address.

    Raises:
        ValueError: If nothing usable remains after sanitizing
    """
    local = email.split("@", 1)[0].lower()
    sanitized = _XMPP_USERNAME_STRIP.sub("", local).lstrip("._-")[:XMPP_USERNAME_MAX_LENGTH]
    if not sanitized:
        raise ValueError(f"Cannot generate valid XMPP username from email: {email}")
    return sanitized


def format_jid(username: str, domain: str) -> str:
    if not is_valid_xmpp_username(username):
        raise ValueError(f"Invalid XMPP username: {username}")
    if not domain:
        raise ValueError("Invalid XMPP domain")
    return f"{username}@{domain}"


def parse_jid(jid: str) -> tuple[str, str]:
    """Split a bare JID into (username, domain)."""
    parts = jid.split("@") if jid else []
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ValueError(f"Invalid JID format: {jid}")
    return parts[0], parts[1]


def validate_email(email: str) -> str:
    """Validate email address.

    Args:
        email: Email address to validate

    Returns:
        Normalized email address

    Raises:
        ValueError: If email is invalid
    """
    if not isinstance(email, str):
        raise ValueError("Invalid email format")
    email = email.strip().lower()
    if not email or "@" not in email:
        raise ValueError("Invalid email format")

    local, domain = email.rsplit("@", 1)
    if not local or not domain or "." not in domain:
        raise ValueError("Invalid email format")
    if len(email) > 254:
        raise ValueError("Email exceeds maximum length")

    return email


def validate_metadata(value: Any) -> dict:
    """Validate a user-supplied metadata object.

    Raises:
        ValueError: If metadata is not a JSON object with string keys
    """
    if not isinstance(value, dict):
        raise ValueError("metadata must be an object")
    if any(not isinstance(key, str) for key in value):
        raise ValueError("metadata keys must be strings")
    return dict(value)
