"""Unit tests for notification senders and dispatch observers."""

from __future__ import annotations

import smtplib
from email.message import EmailMessage
from typing import Any

import pytest

from account_service.core.errors import LinkDispatchError
from account_service.services import notifications as notifications_module
from account_service.services.notifications import (
    NotificationEvent,
    NotificationKind,
    NullNotificationSender,
    SmtpNotificationSender,
    get_notification_sender,
)


class _FakeSMTP:
    """Context-managed SMTP stand-in capturing sent messages."""

    sent: list[EmailMessage] = []
    fail_with: Exception | None = None

    def __init__(self, host: str, port: int, timeout: float) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout

    def __enter__(self) -> _FakeSMTP:
        return self

    def __exit__(self, *_exc_info: Any) -> None:
        return None

    def send_message(self, message: EmailMessage) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(message)


@pytest.fixture
def fake_smtp(monkeypatch: pytest.MonkeyPatch) -> type[_FakeSMTP]:
    """Replace smtplib.SMTP for the notifications module."""
    _FakeSMTP.sent = []
    _FakeSMTP.fail_with = None
    monkeypatch.setattr(notifications_module.smtplib, "SMTP", _FakeSMTP)
    return _FakeSMTP


@pytest.mark.asyncio
async def test_null_sender_publishes_one_event_per_send() -> None:
    """Each send raises one event of the matching kind."""
    sender = NullNotificationSender()
    events: list[NotificationEvent] = []
    sender.subscribe(events.append)

    await sender.send_confirmation_link("user@example.com", "https://x.test/confirm?code=abc")
    await sender.send_password_reset_code("user@example.com", "123456")
    await sender.send_password_reset_link("user@example.com", "https://x.test/reset?code=def")

    assert events == [
        NotificationEvent(
            NotificationKind.ACCOUNT_CONFIRMATION_LINK,
            "user@example.com",
            "https://x.test/confirm?code=abc",
        ),
        NotificationEvent(NotificationKind.PASSWORD_RESET_CODE, "user@example.com", "123456"),
        NotificationEvent(
            NotificationKind.PASSWORD_RESET_LINK,
            "user@example.com",
            "https://x.test/reset?code=def",
        ),
    ]


@pytest.mark.asyncio
async def test_null_sender_without_observers_is_a_no_op() -> None:
    sender = NullNotificationSender()

    await sender.send_confirmation_link("user@example.com", "link")


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery() -> None:
    sender = NullNotificationSender()
    events: list[NotificationEvent] = []
    unsubscribe = sender.subscribe(events.append)

    await sender.send_confirmation_link("first@example.com", "link-1")
    unsubscribe()
    unsubscribe()
    await sender.send_confirmation_link("second@example.com", "link-2")

    assert [event.recipient for event in events] == ["first@example.com"]


@pytest.mark.asyncio
async def test_failing_observer_does_not_block_other_observers() -> None:
    sender = NullNotificationSender()
    events: list[NotificationEvent] = []

    def _broken(_event: NotificationEvent) -> None:
        raise RuntimeError("observer failure")

    sender.subscribe(_broken)
    sender.subscribe(events.append)

    await sender.send_confirmation_link("user@example.com", "link")

    assert len(events) == 1


@pytest.mark.asyncio
async def test_smtp_sender_delivers_confirmation_message(fake_smtp: type[_FakeSMTP]) -> None:
    """SMTP sender writes a plaintext message and publishes the event after delivery."""
    sender = SmtpNotificationSender(host="mailhog", port=1025, email_from="no-reply@example.com")
    events: list[NotificationEvent] = []
    sender.subscribe(events.append)

    await sender.send_confirmation_link("user@example.com", "https://x.test/confirm?code=abc")

    assert len(fake_smtp.sent) == 1
    message = fake_smtp.sent[0]
    assert message["To"] == "user@example.com"
    assert message["From"] == "no-reply@example.com"
    assert message["Subject"] == "Confirm your email"
    assert "https://x.test/confirm?code=abc" in message.get_content()
    assert events == [
        NotificationEvent(
            NotificationKind.ACCOUNT_CONFIRMATION_LINK,
            "user@example.com",
            "https://x.test/confirm?code=abc",
        )
    ]


@pytest.mark.asyncio
async def test_smtp_sender_failure_raises_dispatch_error(fake_smtp: type[_FakeSMTP]) -> None:
    """Relay failures surface as LinkDispatchError and publish nothing."""
    fake_smtp.fail_with = smtplib.SMTPRecipientsRefused({})
    sender = SmtpNotificationSender(host="mailhog", port=1025, email_from="no-reply@example.com")
    events: list[NotificationEvent] = []
    sender.subscribe(events.append)

    with pytest.raises(LinkDispatchError):
        await sender.send_password_reset_link("user@example.com", "https://x.test/reset")

    assert events == []


@pytest.mark.asyncio
async def test_smtp_sender_connection_error_raises_dispatch_error(
    fake_smtp: type[_FakeSMTP],
) -> None:
    fake_smtp.fail_with = ConnectionRefusedError("refused")
    sender = SmtpNotificationSender(host="mailhog", port=1025, email_from="no-reply@example.com")

    with pytest.raises(LinkDispatchError):
        await sender.send_password_reset_code("user@example.com", "123456")


def test_get_notification_sender_defaults_to_null_sender(app_env: None) -> None:
    assert isinstance(get_notification_sender(), NullNotificationSender)


def test_get_notification_sender_builds_smtp_sender(
    app_env: None, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("EMAIL__BACKEND", "smtp")
    monkeypatch.setenv("EMAIL__SMTP_HOST", "mailhog")
    monkeypatch.setenv("EMAIL__SMTP_PORT", "2525")

    sender = get_notification_sender()

    assert isinstance(sender, SmtpNotificationSender)
    assert sender.host == "mailhog"
    assert sender.port == 2525


@pytest.mark.parametrize("sender_class", [NullNotificationSender, SmtpNotificationSender])
@pytest.mark.parametrize(
    "method", ["send_confirmation_link", "send_password_reset_code", "send_password_reset_link"]
)
def test_sender_methods_are_documented(sender_class: type, method: str) -> None:
    assert getattr(sender_class, method).__doc__
