"""URL-safe response codes binding a user id to a one-time verification token.

Wire layout: the 16 bytes of the user id in little-endian field order
(``UUID.bytes_le``) followed by the UTF-8 bytes of the token, encoded as
base64url without padding. Links already delivered to users depend on this
layout staying exactly as it is.
"""

from __future__ import annotations

import base64
import binascii
import re
from uuid import UUID

import structlog

from account_service.core.errors import CodeFormatError, InvalidInputError

USER_ID_LENGTH = 16
MIN_PAYLOAD_LENGTH = USER_ID_LENGTH + 1

_BASE64URL_PATTERN = re.compile(r"[A-Za-z0-9_-]+")

logger = structlog.get_logger(__name__)


def encode_response_code(user_id: UUID, token: str) -> str:
    """Encode a user id and token into an unpadded base64url response code."""
    if user_id is None:
        raise InvalidInputError("user_id must not be empty.")
    if not token:
        raise InvalidInputError("token must not be empty.")

    payload = user_id.bytes_le + token.encode("utf-8")
    logger.debug("response_code_encoded", user_id=str(user_id), payload_length=len(payload))
    return base64.urlsafe_b64encode(payload).rstrip(b"=").decode("ascii")


def decode_response_code(code: str) -> tuple[UUID, str]:
    """Decode a response code back into its user id and token."""
    if not code:
        raise InvalidInputError("code must not be empty.")

    payload = _b64url_decode(code)
    if len(payload) < MIN_PAYLOAD_LENGTH:
        logger.debug("response_code_too_short", payload_length=len(payload))
        raise CodeFormatError()

    try:
        token = payload[USER_ID_LENGTH:].decode("utf-8")
    except UnicodeDecodeError as exc:
        raise CodeFormatError() from exc
    return UUID(bytes_le=payload[:USER_ID_LENGTH]), token


def _b64url_decode(code: str) -> bytes:
    """Decode unpadded base64url text, rejecting characters outside the URL-safe alphabet."""
    if not _BASE64URL_PATTERN.fullmatch(code) or len(code) % 4 == 1:
        raise CodeFormatError()
    try:
        return base64.urlsafe_b64decode(code + "=" * (-len(code) % 4))
    except (binascii.Error, ValueError) as exc:
        raise CodeFormatError() from exc
