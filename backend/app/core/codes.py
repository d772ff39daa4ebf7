"""Random identifiers handed to users: confirm codes, reset codes and tags."""

from __future__ import annotations

import secrets
import string
from typing import Callable

_CONFIRM_ALPHABET = string.ascii_uppercase + string.digits
_TAG_ALPHABET = string.ascii_lowercase + string.digits

EMAIL_CONFIRM_CODE_LENGTH = 5
TAG_LENGTH = 4
_MAX_TAG_ATTEMPTS = 50


def generate_email_confirm_code() -> str:
    """Short code a user types back in from their inbox."""

    return "".join(secrets.choice(_CONFIRM_ALPHABET) for _ in range(EMAIL_CONFIRM_CODE_LENGTH))


def generate_secure_code() -> str:
    """Long URL-safe secret used in password reset links."""

    return secrets.token_urlsafe(48)


def generate_tag() -> str:
    return "".join(secrets.choice(_TAG_ALPHABET) for _ in range(TAG_LENGTH))


def unique_tag(exists: Callable[[str], bool]) -> str:
    """Generate a tag the ``exists`` callback does not report as taken."""

    for _ in range(_MAX_TAG_ATTEMPTS):
        tag = generate_tag()
        if not exists(tag):
            return tag
    raise RuntimeError("Could not generate a unique tag")


def deleted_username(bot: bool = False) -> str:
    return f"Deleted {'Bot' if bot else 'User'} {generate_tag()}"
