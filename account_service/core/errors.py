"""Error taxonomy for account-action response links and confirmation flows."""

from __future__ import annotations

from collections.abc import Sequence


class AccountActionError(Exception):
    """Base class for response-link and confirmation failures."""

    def __init__(self, detail: str, code: str) -> None:
        super().__init__(detail)
        self.detail = detail
        self.code = code


class InvalidInputError(AccountActionError):
    """Raised when a caller supplies an empty or missing value."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail, "invalid_input")


class CodeFormatError(AccountActionError):
    """Raised when a response code cannot be decoded."""

    def __init__(self, detail: str = "The response code is not in a correct format.") -> None:
        super().__init__(detail, "invalid_code")


class AccountNotFoundError(AccountActionError):
    """Raised when a response code references an account that does not exist."""

    def __init__(self, detail: str = "Account not found.") -> None:
        super().__init__(detail, "account_not_found")


class ConfirmationRejectedError(AccountActionError):
    """Raised when the identity store declines a confirmation token."""

    def __init__(self, reasons: Sequence[str]) -> None:
        super().__init__("Confirmation token rejected.", "confirmation_rejected")
        self.reasons = tuple(reasons)


class LinkDispatchError(AccountActionError):
    """Raised when a response link cannot be built or delivered."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail, "dispatch_failed")
