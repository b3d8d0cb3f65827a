"""Email confirmation and resend-confirmation workflows.

Both entry points are non-throwing: every path ends in one member of a closed
outcome enum, which the HTTP boundary maps to a presentation state. All
durable state lives in the identity store; a service instance is built per
request and keeps nothing between calls.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from enum import Enum
from typing import TypeVar

import structlog

from account_service.core.email_address import email_address_error
from account_service.core.errors import (
    AccountNotFoundError,
    CodeFormatError,
    ConfirmationRejectedError,
    InvalidInputError,
    LinkDispatchError,
)
from account_service.core.links import LinkBuilder
from account_service.core.response_codes import decode_response_code, encode_response_code
from account_service.services.identity_store import AccountUser, IdentityStore
from account_service.services.notifications import NotificationSender

logger = structlog.get_logger(__name__)

_T = TypeVar("_T")

CONFIRM_EMAIL_AREA = "Account"
CONFIRM_EMAIL_CONTROLLER = "Confirm"
CONFIRM_EMAIL_ACTION = "Email"


class ConfirmationOutcome(str, Enum):
    """Terminal states of the email confirmation workflow."""

    INVALID_LINK = "invalid_link"
    USER_NOT_FOUND = "user_not_found"
    ALREADY_CONFIRMED = "already_confirmed"
    CONFIRMED = "confirmed"
    CONFIRMATION_REJECTED = "confirmation_rejected"


class ResendOutcome(str, Enum):
    """Terminal states of the resend-confirmation workflow."""

    VALIDATION_FAILED = "validation_failed"
    GENERIC_ACKNOWLEDGED = "generic_acknowledged"
    ALREADY_CONFIRMED = "already_confirmed"
    EMAIL_DISPATCHED = "email_dispatched"
    DISPATCH_FAILED = "dispatch_failed"


class ConfirmationService:
    """Orchestrates confirmation links against the identity store and notification sender."""

    def __init__(
        self,
        identity_store: IdentityStore,
        notification_sender: NotificationSender,
        link_builder: LinkBuilder,
        collaborator_timeout_seconds: float = 10,
    ) -> None:
        self._identity_store = identity_store
        self._notification_sender = notification_sender
        self._link_builder = link_builder
        self._collaborator_timeout_seconds = collaborator_timeout_seconds

    async def confirm_email(self, code: str | None) -> ConfirmationOutcome:
        """Consume a response code and confirm the account it names."""
        if not code:
            logger.warning("email_confirmation_missing_code")
            return ConfirmationOutcome.INVALID_LINK

        try:
            user_id, token = decode_response_code(code)
            user = await self._bounded(self._identity_store.find_by_id(user_id))
            if user is None:
                raise AccountNotFoundError()
            if user.email_confirmed:
                logger.info("email_confirmation_already_confirmed", user_id=str(user_id))
                return ConfirmationOutcome.ALREADY_CONFIRMED

            result = await self._bounded(self._identity_store.confirm_token(user, token))
            if not result.succeeded:
                raise ConfirmationRejectedError(result.errors)
        except (InvalidInputError, CodeFormatError) as exc:
            logger.error(
                "email_confirmation_code_invalid",
                error_code=exc.code,
                code_length=len(code),
            )
            return ConfirmationOutcome.INVALID_LINK
        except AccountNotFoundError:
            logger.warning("email_confirmation_user_not_found", user_id=str(user_id))
            return ConfirmationOutcome.USER_NOT_FOUND
        except ConfirmationRejectedError as exc:
            logger.warning(
                "email_confirmation_rejected",
                user_id=str(user_id),
                errors=", ".join(exc.reasons),
            )
            return ConfirmationOutcome.CONFIRMATION_REJECTED
        except Exception:
            logger.exception("email_confirmation_failed", code_length=len(code))
            return ConfirmationOutcome.INVALID_LINK

        logger.info("email_confirmed", user_id=str(user_id))
        return ConfirmationOutcome.CONFIRMED

    async def resend_confirmation(self, email: str | None) -> ResendOutcome:
        """Send a fresh confirmation link without revealing whether the account exists."""
        if email_address_error(email) is not None:
            return ResendOutcome.VALIDATION_FAILED
        recipient = email.strip()

        try:
            user = await self._bounded(self._identity_store.find_by_email(recipient))
        except Exception:
            logger.exception("resend_confirmation_lookup_failed", recipient=recipient)
            return ResendOutcome.DISPATCH_FAILED

        if user is None:
            logger.warning("resend_confirmation_unknown_email", recipient=recipient)
            return ResendOutcome.GENERIC_ACKNOWLEDGED
        if user.email_confirmed:
            logger.info("resend_confirmation_already_confirmed", user_id=str(user.id))
            return ResendOutcome.ALREADY_CONFIRMED

        try:
            await self._dispatch_confirmation_link(user, recipient)
        except LinkDispatchError as exc:
            logger.error(
                "resend_confirmation_dispatch_failed",
                user_id=str(user.id),
                detail=exc.detail,
            )
            return ResendOutcome.DISPATCH_FAILED
        except Exception:
            logger.exception("resend_confirmation_failed", user_id=str(user.id))
            return ResendOutcome.DISPATCH_FAILED

        logger.info("resend_confirmation_sent", user_id=str(user.id), recipient=recipient)
        return ResendOutcome.EMAIL_DISPATCHED

    async def _dispatch_confirmation_link(self, user: AccountUser, recipient: str) -> None:
        """Issue a token, wrap it in a response link, and hand it to the sender once."""
        token = await self._bounded(self._identity_store.generate_confirmation_token(user))
        code = encode_response_code(user.id, token)
        link = self._link_builder.build_link(
            CONFIRM_EMAIL_AREA,
            CONFIRM_EMAIL_CONTROLLER,
            CONFIRM_EMAIL_ACTION,
            code,
        )
        if not link:
            raise LinkDispatchError("Requested link could not be generated.")
        # Never cancelled mid-send; the sender's transport timeout bounds delivery.
        await self._notification_sender.send_confirmation_link(recipient, link)

    async def _bounded(self, awaitable: Awaitable[_T]) -> _T:
        """Await a collaborator call under the configured timeout."""
        return await asyncio.wait_for(awaitable, timeout=self._collaborator_timeout_seconds)
