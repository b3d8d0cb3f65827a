"""Notification senders for account-action links and codes."""

from __future__ import annotations

import asyncio
import smtplib
from collections.abc import Callable
from dataclasses import dataclass
from email.message import EmailMessage
from enum import Enum
from functools import lru_cache
from typing import Protocol

import structlog

from account_service.config import get_settings
from account_service.core.errors import LinkDispatchError

logger = structlog.get_logger(__name__)


class NotificationKind(str, Enum):
    """Kinds of account-action notifications."""

    ACCOUNT_CONFIRMATION_LINK = "account_confirmation_link"
    PASSWORD_RESET_CODE = "password_reset_code"
    PASSWORD_RESET_LINK = "password_reset_link"


@dataclass(frozen=True)
class NotificationEvent:
    """Record of one successfully dispatched notification."""

    kind: NotificationKind
    recipient: str
    payload: str


NotificationObserver = Callable[[NotificationEvent], None]


class NotificationSender(Protocol):
    """Contract for notification delivery adapters."""

    def subscribe(self, observer: NotificationObserver) -> Callable[[], None]:
        """Register an observer for dispatched notifications; return an unsubscribe callback."""

    async def send_confirmation_link(self, email: str, confirmation_link: str) -> None:
        """Deliver an account confirmation link."""

    async def send_password_reset_code(self, email: str, reset_code: str) -> None:
        """Deliver a password reset code."""

    async def send_password_reset_link(self, email: str, reset_link: str) -> None:
        """Deliver a password reset link."""


class _ObservableSender:
    """Observer registry shared by concrete senders."""

    def __init__(self) -> None:
        self._observers: list[NotificationObserver] = []

    def subscribe(self, observer: NotificationObserver) -> Callable[[], None]:
        """Attach an observer; the returned callback detaches it again."""
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def _publish(self, event: NotificationEvent) -> None:
        """Notify every observer; one failing observer does not block the others."""
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                logger.exception("notification_observer_failed", kind=event.kind.value)


class NullNotificationSender(_ObservableSender):
    """Log-only sender for development and tests. Nothing leaves the process."""

    async def send_confirmation_link(self, email: str, confirmation_link: str) -> None:
        """Log the confirmation link and hand it to observers."""
        logger.info("account_confirmation_link_sent", recipient=email, link=confirmation_link)
        self._publish(
            NotificationEvent(NotificationKind.ACCOUNT_CONFIRMATION_LINK, email, confirmation_link)
        )

    async def send_password_reset_code(self, email: str, reset_code: str) -> None:
        """Log the reset code instead of mailing it."""
        logger.info("password_reset_code_sent", recipient=email, reset_code=reset_code)
        self._publish(NotificationEvent(NotificationKind.PASSWORD_RESET_CODE, email, reset_code))

    async def send_password_reset_link(self, email: str, reset_link: str) -> None:
        """Record a password reset link for observers."""
        logger.info("password_reset_link_sent", recipient=email, link=reset_link)
        self._publish(NotificationEvent(NotificationKind.PASSWORD_RESET_LINK, email, reset_link))


class SmtpNotificationSender(_ObservableSender):
    """Plaintext SMTP sender (Mailhog locally, a relay elsewhere)."""

    def __init__(self, host: str, port: int, email_from: str, timeout_seconds: float = 10) -> None:
        super().__init__()
        self.host = host
        self.port = port
        self.email_from = email_from
        self.timeout_seconds = timeout_seconds

    async def send_confirmation_link(self, email: str, confirmation_link: str) -> None:
        """Send an account confirmation email."""
        await self._deliver(
            NotificationEvent(NotificationKind.ACCOUNT_CONFIRMATION_LINK, email, confirmation_link),
            subject="Confirm your email",
            body=f"Open this link to confirm your account: {confirmation_link}",
        )

    async def send_password_reset_code(self, email: str, reset_code: str) -> None:
        """Send a password reset code email."""
        await self._deliver(
            NotificationEvent(NotificationKind.PASSWORD_RESET_CODE, email, reset_code),
            subject="Reset your password",
            body=f"Use this code to reset your password: {reset_code}",
        )

    async def send_password_reset_link(self, email: str, reset_link: str) -> None:
        """Send a password reset link email."""
        await self._deliver(
            NotificationEvent(NotificationKind.PASSWORD_RESET_LINK, email, reset_link),
            subject="Reset your password",
            body=f"Open this link to reset your password: {reset_link}",
        )

    async def _deliver(self, event: NotificationEvent, subject: str, body: str) -> None:
        """Send in a worker thread and publish the event once the relay accepts it."""
        try:
            await asyncio.to_thread(
                self._send_blocking,
                to_email=event.recipient,
                subject=subject,
                body=body,
            )
        except (smtplib.SMTPException, OSError) as exc:
            raise LinkDispatchError(f"SMTP delivery failed: {exc.__class__.__name__}") from exc
        logger.info("notification_sent", kind=event.kind.value, recipient=event.recipient)
        self._publish(event)

    def _send_blocking(self, to_email: str, subject: str, body: str) -> None:
        """Send plaintext email using stdlib SMTP client."""
        message = EmailMessage()
        message["From"] = self.email_from
        message["To"] = to_email
        message["Subject"] = subject
        message.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds) as smtp:
            smtp.send_message(message)


@lru_cache
def get_notification_sender() -> NotificationSender:
    """Create and cache the configured notification sender."""
    settings = get_settings()
    if settings.email.backend == "smtp":
        return SmtpNotificationSender(
            host=settings.email.smtp_host,
            port=settings.email.smtp_port,
            email_from=settings.email.email_from,
            timeout_seconds=settings.email.smtp_timeout_seconds,
        )
    return NullNotificationSender()
