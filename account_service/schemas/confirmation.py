"""Schemas for account confirmation pages and forms."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from account_service.core.email_address import email_address_error

StatusType = Literal["success", "info", "warning", "error"]


class ResendConfirmationForm(BaseModel):
    """Validated resend-confirmation form."""

    email: str = Field(max_length=320)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        """Apply the strict email address rule."""
        error = email_address_error(value)
        if error is not None:
            raise ValueError(error)
        return value.strip()


class ResendConfirmationView(BaseModel):
    """Resend form state re-rendered after every submission."""

    email: str = ""
    status_message: str | None = None
    status_type: StatusType = "info"
    errors: dict[str, list[str]] = Field(default_factory=dict)


class EmailConfirmationView(BaseModel):
    """Confirmation success page."""

    is_confirmed: bool = True
    status_message: str
    status_type: StatusType = "success"


class StatusView(BaseModel):
    """Generic status page with an optional follow-up action."""

    title: str = "Status"
    message: str = "An operation has completed."
    status_type: StatusType = "info"
    details: str | None = None
    redirect_url: str | None = None
    redirect_text: str | None = None
