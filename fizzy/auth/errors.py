from __future__ import annotations


class AuthenticationRequiredError(Exception):
    """No stored credentials; the user has to log in first."""

    def __init__(self, message: str = "Authentication required. Run `fizzy auth login` first.") -> None:
        super().__init__(message)


class AccountSelectionError(Exception):
    """The requested account is unknown or the choice is ambiguous."""
