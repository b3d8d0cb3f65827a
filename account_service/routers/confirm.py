"""Account confirmation routes (confirm by link, resend link, status pages)."""

from __future__ import annotations

from typing import Annotated, assert_never
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from pydantic import ValidationError

from account_service.core.email_address import EMAIL_INVALID_MESSAGE
from account_service.dependencies import get_confirmation_service
from account_service.middleware.metrics import DEFAULT_METRICS_REGISTRY
from account_service.schemas.confirmation import (
    EmailConfirmationView,
    ResendConfirmationForm,
    ResendConfirmationView,
    StatusType,
    StatusView,
)
from account_service.services.confirmation_service import (
    ConfirmationOutcome,
    ConfirmationService,
    ResendOutcome,
)

router = APIRouter(prefix="/account/confirm", tags=["confirmation"])

RESEND_ROUTE = "account.confirm.resend"
RESEND_TEXT = "Request a new confirmation email"
EXPIRED_LINK_DETAILS = (
    "Confirmation links expire after a certain period for security reasons. "
    "Please request a new confirmation email."
)
CHECK_INBOX_MESSAGE = (
    "If an account with that email address is awaiting confirmation, a confirmation "
    "email has been sent. Please check your inbox and click the link to confirm your account."
)
FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def _path(request: Request, name: str, **params: str) -> str:
    """Resolve a route path, appending query parameters when given."""
    path = str(request.app.url_path_for(name))
    return f"{path}?{urlencode(params)}" if params else path


def _safe_redirect_url(url: str | None) -> str | None:
    """Accept only same-origin relative paths as follow-up links."""
    if not url or not url.startswith("/") or url.startswith("//") or "\\" in url:
        return None
    return url


def _confirmation_redirect(request: Request, outcome: ConfirmationOutcome, has_code: bool) -> str:
    """Map a confirmation outcome to the page the browser is redirected to."""
    match outcome:
        case ConfirmationOutcome.CONFIRMED:
            return _path(
                request,
                "account.confirm.success",
                message="Thank you for confirming your email address. Your account is now active.",
                type="success",
            )
        case ConfirmationOutcome.ALREADY_CONFIRMED:
            return _path(
                request,
                "account.confirm.success",
                message="Your email address has already been confirmed.",
                type="info",
            )
        case ConfirmationOutcome.USER_NOT_FOUND:
            return _path(request, "account.confirm.account_not_found")
        case ConfirmationOutcome.CONFIRMATION_REJECTED:
            return _path(
                request,
                "account.confirm.status",
                title="Email Confirmation Failed",
                message=(
                    "There was an error confirming your email address. The link may have expired."
                ),
                type="error",
                details=EXPIRED_LINK_DETAILS,
                redirect_url=_path(request, RESEND_ROUTE),
                redirect_text=RESEND_TEXT,
            )
        case ConfirmationOutcome.INVALID_LINK if not has_code:
            return _path(
                request,
                "account.confirm.status",
                title="Invalid Confirmation Link",
                message=(
                    "Invalid confirmation link. Please check your email for the correct link."
                ),
                type="error",
                details="The confirmation link appears to be malformed or incomplete.",
                redirect_url=_path(request, RESEND_ROUTE),
                redirect_text=RESEND_TEXT,
            )
        case ConfirmationOutcome.INVALID_LINK:
            return _path(request, "account.confirm.invalid_code")
        case _:
            assert_never(outcome)


def _resend_banner(outcome: ResendOutcome) -> tuple[str, StatusType]:
    """Map a resend outcome to the banner shown above the form."""
    match outcome:
        case ResendOutcome.VALIDATION_FAILED:
            return "Please correct the errors below.", "error"
        case ResendOutcome.GENERIC_ACKNOWLEDGED | ResendOutcome.EMAIL_DISPATCHED:
            return CHECK_INBOX_MESSAGE, "info"
        case ResendOutcome.ALREADY_CONFIRMED:
            return "This email address has already been confirmed.", "info"
        case ResendOutcome.DISPATCH_FAILED:
            return (
                "An error occurred while sending the confirmation email. Please try again later.",
                "error",
            )
        case _:
            assert_never(outcome)


async def _submitted_email(request: Request) -> str:
    """Read ``email`` from a form or JSON body; anything unreadable counts as empty."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        value = form.get("email")
    else:
        try:
            body = await request.json()
        except ValueError:
            body = None
        value = body.get("email") if isinstance(body, dict) else None
    return value if isinstance(value, str) else ""


def _field_errors(exc: ValidationError) -> dict[str, list[str]]:
    """Flatten pydantic errors into per-field user-facing messages."""
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        field = str(error["loc"][0]) if error["loc"] else "form"
        cause = error.get("ctx", {}).get("error")
        errors.setdefault(field, []).append(str(cause) if cause is not None else error["msg"])
    return errors


@router.get("/email", name="account.confirm.email")
async def confirm_email(
    request: Request,
    confirmation_service: Annotated[ConfirmationService, Depends(get_confirmation_service)],
    code: Annotated[str | None, Query()] = None,
) -> RedirectResponse:
    """Confirm the account named by ``code`` and redirect to a result page."""
    outcome = await confirmation_service.confirm_email(code)
    DEFAULT_METRICS_REGISTRY.record_outcome(flow="confirm_email", outcome=outcome.value)
    return RedirectResponse(
        _confirmation_redirect(request, outcome, has_code=bool(code)),
        status_code=303,
    )


@router.get("/resend", name=RESEND_ROUTE, response_model=ResendConfirmationView)
async def resend_form() -> ResendConfirmationView:
    """Return the empty resend-confirmation form."""
    return ResendConfirmationView()


@router.post("/resend", name="account.confirm.resend_submit", response_model=ResendConfirmationView)
async def resend_confirmation(
    request: Request,
    confirmation_service: Annotated[ConfirmationService, Depends(get_confirmation_service)],
) -> ResendConfirmationView:
    """Send a new confirmation link and re-render the form with a status banner."""
    submitted_email = await _submitted_email(request)
    try:
        form = ResendConfirmationForm(email=submitted_email)
    except ValidationError as exc:
        DEFAULT_METRICS_REGISTRY.record_outcome(
            flow="resend_confirmation",
            outcome=ResendOutcome.VALIDATION_FAILED.value,
        )
        message, status_type = _resend_banner(ResendOutcome.VALIDATION_FAILED)
        return ResendConfirmationView(
            email=submitted_email,
            status_message=message,
            status_type=status_type,
            errors=_field_errors(exc),
        )

    outcome = await confirmation_service.resend_confirmation(form.email)
    DEFAULT_METRICS_REGISTRY.record_outcome(flow="resend_confirmation", outcome=outcome.value)
    message, status_type = _resend_banner(outcome)
    errors = {"email": [EMAIL_INVALID_MESSAGE]} if outcome is ResendOutcome.VALIDATION_FAILED else {}
    return ResendConfirmationView(
        email=form.email,
        status_message=message,
        status_type=status_type,
        errors=errors,
    )


@router.get("/success", name="account.confirm.success", response_model=EmailConfirmationView)
async def success(
    message: Annotated[str | None, Query(max_length=500)] = None,
    status_type: Annotated[StatusType, Query(alias="type")] = "success",
) -> EmailConfirmationView:
    """Confirmation success page."""
    return EmailConfirmationView(
        status_message=message or "Your email address has been confirmed successfully.",
        status_type=status_type,
    )


@router.get("/status", name="account.confirm.status", response_model=StatusView)
async def status(
    title: Annotated[str | None, Query(max_length=200)] = None,
    message: Annotated[str | None, Query(max_length=500)] = None,
    status_type: Annotated[StatusType, Query(alias="type")] = "info",
    details: Annotated[str | None, Query(max_length=500)] = None,
    redirect_url: Annotated[str | None, Query(max_length=500)] = None,
    redirect_text: Annotated[str | None, Query(max_length=200)] = None,
) -> StatusView:
    """Generic status page."""
    return StatusView(
        title=title or "Status",
        message=message or "An operation has completed.",
        status_type=status_type,
        details=details,
        redirect_url=_safe_redirect_url(redirect_url),
        redirect_text=redirect_text,
    )


@router.get("/account-not-found", name="account.confirm.account_not_found", response_model=StatusView)
async def account_not_found(request: Request) -> StatusView:
    """Status page for a link whose account no longer exists."""
    return StatusView(
        title="Account Not Found",
        message="The account associated with this confirmation link could not be found.",
        status_type="error",
        details=(
            "This may happen if the account has been deleted "
            "or if you're using an old confirmation link."
        ),
        redirect_url=_path(request, RESEND_ROUTE),
        redirect_text=RESEND_TEXT,
    )


@router.get("/invalid-code", name="account.confirm.invalid_code", response_model=StatusView)
async def invalid_code(request: Request) -> StatusView:
    """Status page for a code that could not be processed."""
    return StatusView(
        title="Invalid Confirmation Code",
        message="The confirmation code is invalid or has expired.",
        status_type="error",
        details=EXPIRED_LINK_DETAILS,
        redirect_url=_path(request, RESEND_ROUTE),
        redirect_text=RESEND_TEXT,
    )
