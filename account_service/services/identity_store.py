"""Identity store: account lookup and confirmation token issuance/validation."""

from __future__ import annotations

import hmac
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from hashlib import sha256
from typing import Protocol
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.core.email_address import email_address_error, normalize_email
from account_service.core.errors import InvalidInputError
from account_service.models.user import User

logger = structlog.get_logger(__name__)

INVALID_TOKEN_REASON = "Invalid token."
EXPIRED_TOKEN_REASON = "Token expired."


class AccountUser(Protocol):
    """Minimal account view the confirmation workflow relies on."""

    id: UUID
    email: str
    email_confirmed: bool


@dataclass(frozen=True)
class ConfirmationResult:
    """Outcome of a confirmation token check."""

    succeeded: bool
    errors: tuple[str, ...] = ()

    @classmethod
    def success(cls) -> ConfirmationResult:
        return cls(succeeded=True)

    @classmethod
    def failed(cls, *errors: str) -> ConfirmationResult:
        return cls(succeeded=False, errors=errors)


class IdentityStore(Protocol):
    """Contract for the subsystem of record for accounts and confirmation tokens."""

    async def find_by_id(self, user_id: UUID) -> AccountUser | None:
        """Return the active account with this id, if any."""

    async def find_by_email(self, email: str) -> AccountUser | None:
        """Return the active account with this email address, if any."""

    async def generate_confirmation_token(self, user: AccountUser) -> str:
        """Issue a fresh confirmation token for the account."""

    async def confirm_token(self, user: AccountUser, token: str) -> ConfirmationResult:
        """Mark the account confirmed when the token is valid."""

    async def create_user(self, email: str) -> AccountUser:
        """Provision a new unconfirmed account."""


class SqlAlchemyIdentityStore:
    """Identity store backed by the ``users`` table.

    Tokens are random URL-safe strings; only their sha256 digest and expiry are
    persisted. Confirmation runs under a row lock and clears the digest, so a
    token can be consumed once.
    """

    def __init__(self, db_session: AsyncSession, token_ttl_seconds: int) -> None:
        self._db_session = db_session
        self._token_ttl_seconds = token_ttl_seconds

    async def find_by_id(self, user_id: UUID) -> User | None:
        """Fetch an active, non-deleted user by id."""
        statement = select(User).where(
            User.id == user_id,
            User.deleted_at.is_(None),
            User.is_active.is_(True),
        )
        result = await self._db_session.execute(statement)
        return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> User | None:
        """Fetch an active, non-deleted user by case-insensitive email."""
        statement = select(User).where(
            func.lower(User.email) == normalize_email(email),
            User.deleted_at.is_(None),
            User.is_active.is_(True),
        )
        result = await self._db_session.execute(statement)
        return result.scalar_one_or_none()

    async def generate_confirmation_token(self, user: AccountUser) -> str:
        """Replace any outstanding confirmation token with a new one."""
        row = await self._lock_user(user.id)
        if row is None:
            raise InvalidInputError("Account no longer exists.")

        token = secrets.token_urlsafe(32)
        row.confirmation_token_hash = self._hash_token(token)
        row.confirmation_token_expires = datetime.now(UTC) + timedelta(
            seconds=self._token_ttl_seconds
        )
        try:
            await self._db_session.flush()
            await self._db_session.commit()
        except Exception:
            await self._db_session.rollback()
            raise
        return token

    async def confirm_token(self, user: AccountUser, token: str) -> ConfirmationResult:
        """Consume the token and set ``email_confirmed``."""
        row = await self._lock_user(user.id)
        if row is None:
            await self._db_session.rollback()
            return ConfirmationResult.failed(INVALID_TOKEN_REASON)
        if row.email_confirmed:
            await self._db_session.rollback()
            return ConfirmationResult.success()

        result = self._check_token(row, token)
        if not result.succeeded:
            await self._db_session.rollback()
            return result

        row.email_confirmed = True
        row.confirmation_token_hash = None
        row.confirmation_token_expires = None
        try:
            await self._db_session.flush()
            await self._db_session.commit()
        except Exception:
            await self._db_session.rollback()
            raise
        return ConfirmationResult.success()

    async def create_user(self, email: str) -> User:
        """Create an active, unconfirmed user."""
        error = email_address_error(email)
        if error is not None:
            raise InvalidInputError(error)

        user = User(email=normalize_email(email), is_active=True, email_confirmed=False)
        self._db_session.add(user)
        try:
            await self._db_session.flush()
            await self._db_session.commit()
        except IntegrityError as exc:
            await self._db_session.rollback()
            raise InvalidInputError("Email already registered.") from exc
        except Exception:
            await self._db_session.rollback()
            raise
        logger.info("user_created", user_id=str(user.id))
        return user

    async def _lock_user(self, user_id: UUID) -> User | None:
        """Fetch the user row for mutation with a row lock and fresh attributes."""
        statement = (
            select(User)
            .where(User.id == user_id, User.deleted_at.is_(None))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self._db_session.execute(statement)
        return result.scalar_one_or_none()

    def _check_token(self, row: User, token: str) -> ConfirmationResult:
        """Compare the presented token with the stored digest and expiry."""
        if row.confirmation_token_hash is None or row.confirmation_token_expires is None:
            return ConfirmationResult.failed(INVALID_TOKEN_REASON)
        if row.confirmation_token_expires <= datetime.now(UTC):
            return ConfirmationResult.failed(EXPIRED_TOKEN_REASON)
        if not hmac.compare_digest(self._hash_token(token), row.confirmation_token_hash):
            return ConfirmationResult.failed(INVALID_TOKEN_REASON)
        return ConfirmationResult.success()

    @staticmethod
    def _hash_token(token: str) -> str:
        """Hash a confirmation token for database storage."""
        return sha256(token.encode("utf-8")).hexdigest()
