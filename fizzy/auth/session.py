"""Account selection for commands that talk to an account-scoped API."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fizzy.api.client import AuthCredential
from fizzy.auth.errors import AccountSelectionError, AuthenticationRequiredError
from fizzy.auth.token_storage import StoredAccount, UserInfo, get_default_account, list_accounts
from fizzy.models.resources import IdentityResponse, parse_api_response


@dataclass(frozen=True)
class AuthResult:
    account: StoredAccount
    credential: AuthCredential


def _account_listing(accounts: list[StoredAccount]) -> str:
    return "\n".join(f"  - {account.account_slug} ({account.account_name})" for account in accounts)


def select_account(
    account_slug: str | None = None,
    *,
    require_explicit: bool = False,
    path: Path | None = None,
) -> StoredAccount:
    """
    Pick the stored account a command should run against.

    An explicit slug always wins. With a single stored account it is used
    as-is; with several, the default is used unless ``require_explicit``
    is set or no default exists.

    Raises:
        AuthenticationRequiredError: Nothing is stored.
        AccountSelectionError: The slug is unknown or the choice is ambiguous.
    """
    accounts = list_accounts(path)
    if not accounts:
        raise AuthenticationRequiredError()

    if account_slug:
        slug = account_slug.strip("/")
        for account in accounts:
            if account.account_slug == slug:
                return account
        raise AccountSelectionError(
            f'Account "{slug}" not found. Use `fizzy auth accounts` to list available accounts.'
        )

    if len(accounts) == 1:
        return accounts[0]

    default = None if require_explicit else get_default_account(path)
    if default is None:
        raise AccountSelectionError(
            "Multiple accounts found. Please specify which account to use with --account:\n"
            + _account_listing(accounts)
        )
    return default


def require_auth(
    account_slug: str | None = None,
    require_explicit: bool = False,
    path: Path | None = None,
) -> AuthResult:
    account = select_account(account_slug, require_explicit=require_explicit, path=path)
    return AuthResult(account=account, credential=AuthCredential.bearer(account.access_token))


def accounts_from_identity(identity: Any, token: str) -> list[StoredAccount]:
    """Turn a ``GET my/identity`` payload into accounts ready to store."""
    parsed = parse_api_response(IdentityResponse, identity, "identity")
    created_at = datetime.now(timezone.utc)
    return [
        StoredAccount(
            account_slug=account.slug.strip("/"),
            account_name=account.name,
            account_id=account.id,
            access_token=token,
            user=UserInfo(
                id=account.user.id,
                name=account.user.name,
                email_address=account.user.email_address,
                role=account.user.role,
            ),
            created_at=created_at,
        )
        for account in parsed.accounts
    ]
