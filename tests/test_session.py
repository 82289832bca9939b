from pathlib import Path

import pytest

from fizzy.auth.errors import AccountSelectionError, AuthenticationRequiredError
from fizzy.auth.session import accounts_from_identity, require_auth, select_account
from fizzy.auth.token_storage import StoredAccount, UserInfo, save_account, set_default_account
from fizzy.models.resources import SchemaValidationError


def store(path: Path, *slugs: str) -> None:
    for slug in slugs:
        save_account(
            StoredAccount(
                account_slug=slug,
                account_name=slug.title(),
                account_id=f"id-{slug}",
                access_token=f"token-{slug}",
                user=UserInfo(id="u1", name="Ada", role="member"),
            ),
            path=path,
        )


def test_no_accounts_requires_login(tmp_path: Path) -> None:
    with pytest.raises(AuthenticationRequiredError):
        require_auth(path=tmp_path / "tokens.json")


def test_single_account_is_selected(tmp_path: Path) -> None:
    path = tmp_path / "tokens.json"
    store(path, "acme")

    result = require_auth(path=path)

    assert result.account.account_slug == "acme"
    assert result.credential.kind == "bearer"
    assert result.credential.token == "token-acme"


def test_explicit_slug_wins(tmp_path: Path) -> None:
    path = tmp_path / "tokens.json"
    store(path, "acme", "globex")

    assert select_account("globex", path=path).account_slug == "globex"
    assert select_account("/globex/", path=path).account_slug == "globex"


def test_unknown_slug_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "tokens.json"
    store(path, "acme")

    with pytest.raises(AccountSelectionError, match="initech"):
        select_account("initech", path=path)


def test_multiple_accounts_use_default(tmp_path: Path) -> None:
    path = tmp_path / "tokens.json"
    store(path, "acme", "globex")
    set_default_account("globex", path=path)

    assert select_account(path=path).account_slug == "globex"


def test_multiple_accounts_with_explicit_requirement(tmp_path: Path) -> None:
    path = tmp_path / "tokens.json"
    store(path, "acme", "globex")

    with pytest.raises(AccountSelectionError) as excinfo:
        select_account(require_explicit=True, path=path)

    assert "acme (Acme)" in str(excinfo.value)
    assert "globex (Globex)" in str(excinfo.value)


def test_accounts_from_identity() -> None:
    identity = {
        "accounts": [
            {
                "id": "a1",
                "name": "Acme",
                "slug": "/897362094",
                "created_at": "2025-01-01T00:00:00Z",
                "user": {
                    "id": "u1",
                    "name": "Ada",
                    "role": "owner",
                    "active": True,
                    "email_address": "ada@example.com",
                    "created_at": "2025-01-01T00:00:00Z",
                    "url": "https://app.fizzy.do/897362094/users/u1",
                },
            }
        ]
    }

    accounts = accounts_from_identity(identity, "pat")

    assert len(accounts) == 1
    assert accounts[0].account_slug == "897362094"
    assert accounts[0].access_token == "pat"
    assert accounts[0].user.role == "owner"


def test_accounts_from_invalid_identity() -> None:
    with pytest.raises(SchemaValidationError):
        accounts_from_identity({"accounts": [{"id": "a1"}]}, "pat")
