"""Strict email address rule shared by schemas, workflows, and provisioning."""

from __future__ import annotations

import re

EMAIL_REQUIRED_MESSAGE = "Email address is required."
EMAIL_INVALID_MESSAGE = "Please enter a valid email address."

_USERNAME_PATTERN = re.compile(r"[a-zA-Z0-9_.-]+")
_MIN_DOMAIN_SEGMENTS = 2
_MAX_DOMAIN_SEGMENTS = 6


def is_valid_username(username: str) -> bool:
    """Return True for a local part of letters, digits, dots, dashes, and underscores."""
    if not username or ".." in username:
        return False
    return _USERNAME_PATTERN.fullmatch(username) is not None


def is_valid_domain(domain: str) -> bool:
    """Return True for a 2-6 segment domain that survives IDNA encoding."""
    if not domain:
        return False
    segments = domain.split(".")
    if not _MIN_DOMAIN_SEGMENTS <= len(segments) <= _MAX_DOMAIN_SEGMENTS:
        return False
    if any(not segment for segment in segments):
        return False
    try:
        domain.encode("idna")
    except UnicodeError:
        return False
    return True


def email_address_error(value: str | None) -> str | None:
    """Return a user-facing error message, or None when the address is acceptable."""
    if value is None or not value.strip():
        return EMAIL_REQUIRED_MESSAGE
    parts = value.strip().split("@")
    if len(parts) != 2:
        return EMAIL_INVALID_MESSAGE
    username, domain = parts
    if not is_valid_username(username) or not is_valid_domain(domain):
        return EMAIL_INVALID_MESSAGE
    return None


def normalize_email(value: str) -> str:
    """Normalize an address for lookups."""
    return value.strip().lower()
