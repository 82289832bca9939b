import logging
import stat
from pathlib import Path

import pytest

from fizzy.auth.errors import AccountSelectionError
from fizzy.auth.token_storage import (
    StoredAccount,
    UserInfo,
    delete_tokens,
    get_account,
    get_default_account,
    is_authenticated,
    list_accounts,
    load_tokens,
    remove_account,
    save_account,
    set_default_account,
    tokens_path,
)


def make_account(slug: str, token: str = "tok") -> StoredAccount:
    return StoredAccount(
        account_slug=slug,
        account_name=slug.title(),
        account_id=f"id-{slug}",
        access_token=token,
        user=UserInfo(id="u1", name="Ada", email_address="ada@example.com", role="owner"),
    )


def test_tokens_path_env_override(tmp_path: Path) -> None:
    assert tokens_path({"FIZZY_CLI_HOME": str(tmp_path)}) == tmp_path / "tokens.json"
    assert tokens_path({}).name == "tokens.json"
    assert tokens_path({}).parent.name == ".fizzy-cli"


def test_missing_file_is_unauthenticated(tmp_path: Path) -> None:
    path = tmp_path / "tokens.json"

    assert load_tokens(path) is None
    assert list_accounts(path) == []
    assert get_default_account(path) is None
    assert not is_authenticated(path)


def test_first_account_becomes_default(tmp_path: Path) -> None:
    path = tmp_path / "home" / "tokens.json"

    save_account(make_account("acme"), path=path)
    save_account(make_account("globex"), path=path)

    assert [account.account_slug for account in list_accounts(path)] == ["acme", "globex"]
    default = get_default_account(path)
    assert default is not None and default.account_slug == "acme"
    assert is_authenticated(path)


def test_save_account_replaces_same_slug(tmp_path: Path) -> None:
    path = tmp_path / "tokens.json"

    save_account(make_account("acme", token="old"), path=path)
    save_account(make_account("acme", token="new"), path=path)

    accounts = list_accounts(path)
    assert len(accounts) == 1
    assert accounts[0].access_token == "new"


def test_file_permissions(tmp_path: Path) -> None:
    path = tmp_path / "home" / "tokens.json"

    save_account(make_account("acme"), path=path)

    assert stat.S_IMODE(path.stat().st_mode) == 0o600
    assert stat.S_IMODE(path.parent.stat().st_mode) == 0o700


def test_set_default_account(tmp_path: Path) -> None:
    path = tmp_path / "tokens.json"
    save_account(make_account("acme"), path=path)
    save_account(make_account("globex"), path=path)

    set_default_account("globex", path=path)

    default = get_default_account(path)
    assert default is not None and default.account_slug == "globex"
    with pytest.raises(AccountSelectionError):
        set_default_account("initech", path=path)


def test_remove_default_moves_to_first_remaining(tmp_path: Path) -> None:
    path = tmp_path / "tokens.json"
    save_account(make_account("acme"), path=path)
    save_account(make_account("globex"), path=path)

    remove_account("acme", path=path)

    tokens = load_tokens(path)
    assert tokens is not None
    assert tokens.default_account == "globex"
    assert get_account("acme", path) is None


def test_removing_last_account_deletes_file(tmp_path: Path) -> None:
    path = tmp_path / "tokens.json"
    save_account(make_account("acme"), path=path)

    remove_account("acme", path=path)

    assert not path.exists()
    delete_tokens(path)


def test_corrupt_file_is_treated_as_missing(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = tmp_path / "tokens.json"
    path.write_text("{not json", encoding="utf-8")
    logger = logging.getLogger("test.tokens")

    with caplog.at_level(logging.WARNING, logger="test.tokens"):
        assert load_tokens(path, logger=logger) is None

    assert any(getattr(record, "event", None) == "tokens_corrupt" for record in caplog.records)


def test_invalid_schema_is_treated_as_missing(tmp_path: Path) -> None:
    path = tmp_path / "tokens.json"
    path.write_text('{"accounts": [{"account_slug": "acme"}]}', encoding="utf-8")

    assert load_tokens(path, logger=logging.getLogger("test.tokens")) is None
