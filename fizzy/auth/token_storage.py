"""
Persistent storage for Personal Access Tokens.

Tokens live in ``$FIZZY_CLI_HOME/tokens.json`` (default
``~/.fizzy-cli/tokens.json``). The directory is created 0700 and the
file is rewritten 0600 on every save. One file holds any number of
accounts plus the slug of the default one.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fizzy.auth.errors import AccountSelectionError, AuthenticationRequiredError
from fizzy.obs.logging import LOGGER_NAME, log_event

ENV_CLI_HOME = "FIZZY_CLI_HOME"
TOKENS_FILENAME = "tokens.json"

_DIR_MODE = 0o700
_FILE_MODE = 0o600

Role = Literal["owner", "admin", "member", "system"]


class UserInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    email_address: str | None = None
    role: Role


class StoredAccount(BaseModel):
    model_config = ConfigDict(extra="ignore")

    account_slug: str
    account_name: str
    account_id: str
    access_token: str
    user: UserInfo
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TokensFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    accounts: list[StoredAccount] = Field(default_factory=list)
    default_account: str | None = None


def tokens_path(env: Mapping[str, str] | None = None) -> Path:
    env = os.environ if env is None else env
    home = env.get(ENV_CLI_HOME)
    base = Path(home) if home else Path.home() / ".fizzy-cli"
    return base / TOKENS_FILENAME


def load_tokens(path: Path | None = None, logger: logging.Logger | None = None) -> TokensFile | None:
    """Read the tokens file; a missing or unreadable file yields None."""
    path = path or tokens_path()
    logger = logger or logging.getLogger(LOGGER_NAME)
    if not path.exists():
        return None

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        log_event(
            logger,
            logging.WARNING,
            "tokens_corrupt",
            f"Authentication file is corrupted ({path}); run `fizzy auth login` again",
            error=str(exc),
        )
        return None
    except OSError as exc:
        log_event(logger, logging.WARNING, "tokens_unreadable", f"Cannot read authentication file: {exc}")
        return None

    try:
        return TokensFile.model_validate(payload)
    except ValidationError as exc:
        log_event(
            logger,
            logging.WARNING,
            "tokens_invalid",
            f"Authentication file has an invalid format ({path}); run `fizzy auth login` again",
            errors=exc.error_count(),
        )
        return None


def save_tokens(tokens: TokensFile, path: Path | None = None) -> Path:
    path = path or tokens_path()
    if not path.parent.exists():
        path.parent.mkdir(parents=True, mode=_DIR_MODE)
    path.write_text(tokens.model_dump_json(indent=2), encoding="utf-8")
    path.chmod(_FILE_MODE)
    return path


def delete_tokens(path: Path | None = None) -> None:
    path = path or tokens_path()
    path.unlink(missing_ok=True)


def save_account(account: StoredAccount, set_as_default: bool = False, path: Path | None = None) -> TokensFile:
    """Add or replace ``account``; the first stored account becomes the default."""
    tokens = load_tokens(path) or TokensFile()
    accounts = [stored for stored in tokens.accounts if stored.account_slug != account.account_slug]
    accounts.append(account)

    default_account = tokens.default_account
    if set_as_default or len(accounts) == 1:
        default_account = account.account_slug

    updated = TokensFile(accounts=accounts, default_account=default_account)
    save_tokens(updated, path)
    return updated


def get_account(slug: str, path: Path | None = None) -> StoredAccount | None:
    tokens = load_tokens(path)
    if tokens is None:
        return None
    return next((account for account in tokens.accounts if account.account_slug == slug), None)


def get_default_account(path: Path | None = None) -> StoredAccount | None:
    tokens = load_tokens(path)
    if tokens is None or not tokens.accounts:
        return None
    if tokens.default_account:
        for account in tokens.accounts:
            if account.account_slug == tokens.default_account:
                return account
    return tokens.accounts[0]


def set_default_account(slug: str, path: Path | None = None) -> None:
    tokens = load_tokens(path)
    if tokens is None:
        raise AuthenticationRequiredError()
    if not any(account.account_slug == slug for account in tokens.accounts):
        raise AccountSelectionError(f'Account "{slug}" not found')
    save_tokens(tokens.model_copy(update={"default_account": slug}), path)


def list_accounts(path: Path | None = None) -> list[StoredAccount]:
    tokens = load_tokens(path)
    return list(tokens.accounts) if tokens else []


def remove_account(slug: str, path: Path | None = None) -> None:
    tokens = load_tokens(path)
    if tokens is None:
        return

    accounts = [account for account in tokens.accounts if account.account_slug != slug]
    if not accounts:
        delete_tokens(path)
        return

    default_account = tokens.default_account
    if default_account == slug:
        default_account = accounts[0].account_slug
    save_tokens(TokensFile(accounts=accounts, default_account=default_account), path)


def is_authenticated(path: Path | None = None) -> bool:
    tokens = load_tokens(path)
    return tokens is not None and bool(tokens.accounts)
