from fizzy.auth.errors import AccountSelectionError, AuthenticationRequiredError
from fizzy.auth.session import AuthResult, accounts_from_identity, require_auth, select_account

__all__ = [
    "AccountSelectionError",
    "AuthResult",
    "AuthenticationRequiredError",
    "accounts_from_identity",
    "require_auth",
    "select_account",
]
