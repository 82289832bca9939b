"""
Command handlers for the ``fizzy`` CLI.

Each handler takes the shared ``CommandContext`` and the parsed argparse
namespace, performs its API calls through ``FizzyClient``, validates the
payload against the resource schemas and renders it with the formatter.
Handlers return the process exit code; failures propagate as exceptions
and are mapped to exit codes in ``fizzy.__main__``.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence, TextIO

import httpx

from fizzy.api.client import AuthCredential, FizzyClient
from fizzy.api.errors import NotFoundError
from fizzy.auth.session import accounts_from_identity, require_auth
from fizzy.auth.token_storage import (
    delete_tokens,
    get_default_account,
    list_accounts,
    remove_account,
    save_account,
    set_default_account,
)
from fizzy.config import UserConfig, build_client_config, get_config_value, set_config_value
from fizzy.models.resources import (
    Board,
    Card,
    Column,
    Comment,
    Notification,
    Reaction,
    Step,
    Tag,
    User,
    parse_api_response,
)
from fizzy.obs.logging import log_event
from fizzy.output.formatter import OutputFormat, format_output

AVATAR_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp")

BOARD_COLUMNS = ("id", "name", "all_access", "created_at")
CARD_COLUMNS = ("number", "title", "status", "board.name", "created_at")
COLUMN_COLUMNS = ("id", "name", "color")
COMMENT_COLUMNS = ("id", "creator.name", "body.plain_text", "created_at")
REACTION_COLUMNS = ("id", "content", "reacter.name")
STEP_COLUMNS = ("id", "content", "completed")
TAG_COLUMNS = ("id", "title", "created_at")
USER_COLUMNS = ("id", "name", "role", "active", "email_address")
NOTIFICATION_COLUMNS = ("id", "read", "title", "card.title", "created_at")
ACCOUNT_COLUMNS = ("account_slug", "account_name", "user.name", "user.role", "default")


class UsageError(Exception):
    """Invalid command-line usage detected after argument parsing."""


def _prompt(message: str) -> bool:
    answer = input(f"{message} [y/N] ")
    return answer.strip().lower() in {"y", "yes"}


@dataclass
class CommandContext:
    user_config: UserConfig
    logger: logging.Logger
    output_format: OutputFormat = "table"
    account: str | None = None
    base_url: str | None = None
    max_retries: int | None = None
    timeout_s: float | None = None
    config_path: Path | None = None
    tokens_path: Path | None = None
    env: Mapping[str, str] | None = None
    transport: httpx.BaseTransport | None = None
    stdout: TextIO = field(default_factory=lambda: sys.stdout)
    stdin_is_tty: Callable[[], bool] = field(default_factory=lambda: sys.stdin.isatty)
    confirm: Callable[[str], bool] = _prompt

    def client(self) -> FizzyClient:
        auth = require_auth(self.account or self.user_config.default_account, path=self.tokens_path)
        return self._build_client(auth.account.account_slug, auth.credential)

    def unscoped_client(self, credential: AuthCredential) -> FizzyClient:
        return self._build_client(None, credential)

    def _build_client(self, account_slug: str | None, credential: AuthCredential) -> FizzyClient:
        config = build_client_config(
            account_slug,
            user_config=self.user_config,
            base_url=self.base_url,
            max_retries=self.max_retries,
            timeout_s=self.timeout_s,
            env=self.env,
        )
        return FizzyClient(config, credential, logger=self.logger, transport=self.transport)

    def emit(self, data: Any, columns: Sequence[str] | None = None) -> None:
        rendered = format_output(data, self.output_format, columns)
        if rendered:
            print(rendered, file=self.stdout)

    def status(self, message: str, **details: Any) -> None:
        if self.output_format == "json":
            self.emit({"success": True, "message": message, **details})
        else:
            print(message, file=self.stdout)

    def require_confirmation(self, args: argparse.Namespace, message: str) -> bool:
        if getattr(args, "force", False):
            return True
        if not self.stdin_is_tty():
            raise UsageError("Refusing to proceed without --force when stdin is not a terminal")
        return self.confirm(message)


def _drop_none(values: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


# auth


def auth_login(ctx: CommandContext, args: argparse.Namespace) -> int:
    credential = AuthCredential.bearer(args.token)
    with ctx.unscoped_client(credential) as client:
        identity = client.get("my/identity")

    accounts = accounts_from_identity(identity, args.token)
    if not accounts:
        raise UsageError("The token is valid but has no accounts")
    for index, account in enumerate(accounts):
        save_account(account, set_as_default=index == 0, path=ctx.tokens_path)

    log_event(ctx.logger, logging.INFO, "auth_login", "Stored accounts", accounts=len(accounts))
    ctx.status(
        f"Logged in to {len(accounts)} account(s); default is {accounts[0].account_slug}",
        accounts=[account.account_slug for account in accounts],
    )
    return 0


def auth_logout(ctx: CommandContext, args: argparse.Namespace) -> int:
    if ctx.account:
        slug = ctx.account.strip("/")
        remove_account(slug, path=ctx.tokens_path)
        ctx.status(f"Logged out of {slug}")
    else:
        delete_tokens(ctx.tokens_path)
        ctx.status("Logged out of all accounts")
    return 0


def _account_rows(ctx: CommandContext) -> list[dict[str, Any]]:
    default = get_default_account(ctx.tokens_path)
    rows = []
    for account in list_accounts(ctx.tokens_path):
        row = account.model_dump(mode="json", exclude={"access_token"})
        row["default"] = default is not None and account.account_slug == default.account_slug
        rows.append(row)
    return rows


def auth_status(ctx: CommandContext, args: argparse.Namespace) -> int:
    rows = _account_rows(ctx)
    default = next((row["account_slug"] for row in rows if row["default"]), None)
    ctx.emit({"authenticated": bool(rows), "default_account": default, "accounts": len(rows)})
    return 0


def auth_accounts(ctx: CommandContext, args: argparse.Namespace) -> int:
    ctx.emit(_account_rows(ctx), ACCOUNT_COLUMNS)
    return 0


def auth_switch(ctx: CommandContext, args: argparse.Namespace) -> int:
    slug = args.slug.strip("/")
    set_default_account(slug, path=ctx.tokens_path)
    ctx.status(f"Default account is now {slug}")
    return 0


# config


def config_get(ctx: CommandContext, args: argparse.Namespace) -> int:
    value = get_config_value(args.key, ctx.config_path)
    if ctx.output_format == "json":
        ctx.emit({args.key: value})
    else:
        print("-" if value is None else value, file=ctx.stdout)
    return 0


def config_set(ctx: CommandContext, args: argparse.Namespace) -> int:
    set_config_value(args.key, args.value, ctx.config_path)
    ctx.status(f"Set {args.key}")
    return 0


# boards


def _board_payload(args: argparse.Namespace) -> dict[str, Any]:
    return _drop_none(
        {
            "name": args.name,
            "all_access": args.all_access,
            "auto_postpone_period": args.auto_postpone_period,
            "public_description": args.public_description,
        }
    )


def boards_list(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        raw = client.get_all("boards", args.limit)
    ctx.emit(parse_api_response(list[Board], raw, "boards list"), BOARD_COLUMNS)
    return 0


def boards_get(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        raw = client.get(f"boards/{args.id}")
    ctx.emit(parse_api_response(Board, raw, "board get"))
    return 0


def boards_create(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        raw = client.post("boards", {"board": _board_payload(args)})
    ctx.emit(parse_api_response(Board, raw, "board create"))
    return 0


def boards_update(ctx: CommandContext, args: argparse.Namespace) -> int:
    payload = _board_payload(args)
    if not payload:
        raise UsageError(
            "No update parameters provided. Use --name, --all-access, --auto-postpone-period or --public-description"
        )
    with ctx.client() as client:
        client.put(f"boards/{args.id}", {"board": payload})
        raw = client.get(f"boards/{args.id}")
    ctx.emit(parse_api_response(Board, raw, "board update"))
    return 0


def boards_delete(ctx: CommandContext, args: argparse.Namespace) -> int:
    if not ctx.require_confirmation(args, f"Delete board {args.id}?"):
        ctx.status("Aborted")
        return 0
    with ctx.client() as client:
        client.delete(f"boards/{args.id}")
    ctx.status(f"Board {args.id} deleted")
    return 0


# cards


def _resolve_card(client: FizzyClient, identifier: str) -> Any:
    """Fetch a card by number, or by ID through the ``card_ids[]`` filter."""
    if identifier.isdigit():
        return client.get(f"cards/{identifier}")
    matches = client.get("cards", params={"card_ids[]": identifier})
    if not matches:
        raise NotFoundError(f"Card {identifier} not found")
    return matches[0]


def _card_number(client: FizzyClient, identifier: str) -> int:
    if identifier.isdigit():
        return int(identifier)
    card = parse_api_response(Card, _resolve_card(client, identifier), "card lookup")
    return card.number


def _card_payload(args: argparse.Namespace) -> dict[str, Any]:
    return _drop_none({"title": args.title, "description": args.description, "status": args.status})


def cards_list(ctx: CommandContext, args: argparse.Namespace) -> int:
    params = _drop_none({"board_ids[]": args.board, "indexed_by": args.status, "tag_ids[]": args.tag})
    with ctx.client() as client:
        raw = client.get_all("cards", args.limit, params=params)
    ctx.emit(parse_api_response(list[Card], raw, "cards list"), CARD_COLUMNS)
    return 0


def cards_get(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        raw = _resolve_card(client, args.id)
    ctx.emit(parse_api_response(Card, raw, "card get"), ("number", "title", "status", "description", "url"))
    return 0


def cards_create(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        raw = client.post(f"boards/{args.board}/cards", {"card": _card_payload(args)})
    ctx.emit(parse_api_response(Card, raw, "card create"), ("number", "title", "status", "url"))
    return 0


def cards_update(ctx: CommandContext, args: argparse.Namespace) -> int:
    payload = _card_payload(args)
    if not payload:
        raise UsageError("No update parameters provided. Use --title, --description or --status")
    with ctx.client() as client:
        number = _card_number(client, args.id)
        raw = client.put(f"cards/{number}", {"card": payload})
        if raw is None:
            raw = client.get(f"cards/{number}")
    ctx.emit(parse_api_response(Card, raw, "card update"), ("number", "title", "status", "description"))
    return 0


def cards_delete(ctx: CommandContext, args: argparse.Namespace) -> int:
    if not ctx.require_confirmation(args, f"Delete card {args.id}?"):
        ctx.status("Aborted")
        return 0
    with ctx.client() as client:
        number = _card_number(client, args.id)
        client.delete(f"cards/{number}")
    ctx.status(f"Card #{number} deleted")
    return 0


def cards_close(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        number = _card_number(client, args.id)
        client.post(f"cards/{number}/closure", {})
    ctx.status(f"Card #{number} closed")
    return 0


def cards_reopen(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        number = _card_number(client, args.id)
        client.delete(f"cards/{number}/closure")
    ctx.status(f"Card #{number} reopened")
    return 0


def cards_move(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        number = _card_number(client, args.id)
        client.post(f"cards/{number}/triage", {"column_id": args.column})
    ctx.status(f"Card #{number} moved to column {args.column}")
    return 0


# columns


def columns_list(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        raw = client.get(f"boards/{args.board}/columns")
    ctx.emit(parse_api_response(list[Column], raw, "columns list"), COLUMN_COLUMNS)
    return 0


def columns_get(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        raw = client.get(f"boards/{args.board}/columns/{args.id}")
    ctx.emit(parse_api_response(Column, raw, "column get"))
    return 0


def columns_create(ctx: CommandContext, args: argparse.Namespace) -> int:
    payload = _drop_none({"name": args.name, "color": args.color})
    with ctx.client() as client:
        raw = client.post(f"boards/{args.board}/columns", {"column": payload})
    ctx.emit(parse_api_response(Column, raw, "column create"))
    return 0


def columns_update(ctx: CommandContext, args: argparse.Namespace) -> int:
    payload = _drop_none({"name": args.name, "color": args.color})
    if not payload:
        raise UsageError("No update parameters provided. Use --name or --color")
    with ctx.client() as client:
        client.put(f"boards/{args.board}/columns/{args.id}", {"column": payload})
        raw = client.get(f"boards/{args.board}/columns/{args.id}")
    ctx.emit(parse_api_response(Column, raw, "column update"))
    return 0


def columns_delete(ctx: CommandContext, args: argparse.Namespace) -> int:
    if not ctx.require_confirmation(args, f"Delete column {args.id}?"):
        ctx.status("Aborted")
        return 0
    with ctx.client() as client:
        client.delete(f"boards/{args.board}/columns/{args.id}")
    ctx.status(f"Column {args.id} deleted")
    return 0


# comments


def comments_list(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        raw = client.get(f"cards/{args.card}/comments")
    ctx.emit(parse_api_response(list[Comment], raw, "comments list"), COMMENT_COLUMNS)
    return 0


def comments_get(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        raw = client.get(f"cards/{args.card}/comments/{args.id}")
    ctx.emit(parse_api_response(Comment, raw, "comment get"), COMMENT_COLUMNS)
    return 0


def comments_create(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        raw = client.post(f"cards/{args.card}/comments", {"comment": {"body": args.body}})
    ctx.emit(parse_api_response(Comment, raw, "comment create"), COMMENT_COLUMNS)
    return 0


def comments_update(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        client.put(f"cards/{args.card}/comments/{args.id}", {"comment": {"body": args.body}})
        raw = client.get(f"cards/{args.card}/comments/{args.id}")
    ctx.emit(parse_api_response(Comment, raw, "comment update"), COMMENT_COLUMNS)
    return 0


def comments_delete(ctx: CommandContext, args: argparse.Namespace) -> int:
    if not ctx.require_confirmation(args, f"Delete comment {args.id}?"):
        ctx.status("Aborted")
        return 0
    with ctx.client() as client:
        client.delete(f"cards/{args.card}/comments/{args.id}")
    ctx.status(f"Comment {args.id} deleted")
    return 0


# reactions


def _reactions_path(args: argparse.Namespace) -> str:
    return f"cards/{args.card}/comments/{args.comment}/reactions"


def reactions_list(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        raw = client.get(_reactions_path(args))
    ctx.emit(parse_api_response(list[Reaction], raw, "reactions list"), REACTION_COLUMNS)
    return 0


def reactions_create(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        client.post(_reactions_path(args), {"reaction": {"content": args.content}})
    ctx.status(f"Reaction {args.content} added")
    return 0


def reactions_delete(ctx: CommandContext, args: argparse.Namespace) -> int:
    if not ctx.require_confirmation(args, f"Delete reaction {args.id}?"):
        ctx.status("Aborted")
        return 0
    with ctx.client() as client:
        client.delete(f"{_reactions_path(args)}/{args.id}")
    ctx.status(f"Reaction {args.id} deleted")
    return 0


# steps


def steps_list(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        raw = client.get(f"cards/{args.card}/steps")
    ctx.emit(parse_api_response(list[Step], raw, "steps list"), STEP_COLUMNS)
    return 0


def steps_get(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        raw = client.get(f"cards/{args.card}/steps/{args.id}")
    ctx.emit(parse_api_response(Step, raw, "step get"))
    return 0


def steps_create(ctx: CommandContext, args: argparse.Namespace) -> int:
    payload = _drop_none({"content": args.content, "completed": args.completed})
    with ctx.client() as client:
        raw = client.post(f"cards/{args.card}/steps", {"step": payload})
    ctx.emit(parse_api_response(Step, raw, "step create"))
    return 0


def steps_update(ctx: CommandContext, args: argparse.Namespace) -> int:
    payload = _drop_none({"content": args.content, "completed": args.completed})
    if not payload:
        raise UsageError("No update parameters provided. Use --content or --completed/--no-completed")
    with ctx.client() as client:
        client.put(f"cards/{args.card}/steps/{args.id}", {"step": payload})
        raw = client.get(f"cards/{args.card}/steps/{args.id}")
    ctx.emit(parse_api_response(Step, raw, "step update"))
    return 0


def steps_delete(ctx: CommandContext, args: argparse.Namespace) -> int:
    if not ctx.require_confirmation(args, f"Delete step {args.id}?"):
        ctx.status("Aborted")
        return 0
    with ctx.client() as client:
        client.delete(f"cards/{args.card}/steps/{args.id}")
    ctx.status(f"Step {args.id} deleted")
    return 0


# tags


def tags_list(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        raw = client.get_all("tags", args.limit)
    ctx.emit(parse_api_response(list[Tag], raw, "tags list"), TAG_COLUMNS)
    return 0


# users


def users_list(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        raw = client.get_all("users", args.limit)
    ctx.emit(parse_api_response(list[User], raw, "users list"), USER_COLUMNS)
    return 0


def users_get(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        raw = client.get(f"users/{args.id}")
    ctx.emit(parse_api_response(User, raw, "user get"), USER_COLUMNS)
    return 0


def users_update(ctx: CommandContext, args: argparse.Namespace) -> int:
    payload = _drop_none({"name": args.name})
    if not payload and not args.avatar:
        raise UsageError("No update parameters provided. Use --name or --avatar")

    with ctx.client() as client:
        if args.avatar:
            avatar = Path(args.avatar)
            if avatar.suffix.lower().lstrip(".") not in AVATAR_EXTENSIONS:
                raise UsageError(f"Invalid image format. Supported formats: {', '.join(AVATAR_EXTENSIONS)}")
            client.upload_file(f"users/{args.id}", avatar, "user[avatar]", {"user": payload}, method="PUT")
        else:
            client.put(f"users/{args.id}", {"user": payload})
        raw = client.get(f"users/{args.id}")
    ctx.emit(parse_api_response(User, raw, "user update"), USER_COLUMNS)
    return 0


def users_deactivate(ctx: CommandContext, args: argparse.Namespace) -> int:
    if not ctx.require_confirmation(args, f"Deactivate user {args.id}?"):
        ctx.status("Aborted")
        return 0
    with ctx.client() as client:
        client.delete(f"users/{args.id}")
    ctx.status(f"User {args.id} deactivated")
    return 0


# notifications


def notifications_list(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        raw = client.get_all("notifications", args.limit)
    notifications = parse_api_response(list[Notification], raw, "notifications list")
    if args.unread_only:
        notifications = [notification for notification in notifications if not notification.read]
    ctx.emit(notifications, NOTIFICATION_COLUMNS)
    return 0


def notifications_read(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        client.post(f"notifications/{args.id}/reading", {})
    ctx.status(f"Notification {args.id} marked as read")
    return 0


def notifications_unread(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        client.delete(f"notifications/{args.id}/reading")
    ctx.status(f"Notification {args.id} marked as unread")
    return 0


def notifications_mark_all_read(ctx: CommandContext, args: argparse.Namespace) -> int:
    with ctx.client() as client:
        client.post("notifications/bulk_reading", {})
    ctx.status("All notifications marked as read")
    return 0


Handler = Callable[[CommandContext, argparse.Namespace], int]

COMMANDS: dict[tuple[str, str], Handler] = {
    ("auth", "login"): auth_login,
    ("auth", "logout"): auth_logout,
    ("auth", "status"): auth_status,
    ("auth", "accounts"): auth_accounts,
    ("auth", "switch"): auth_switch,
    ("config", "get"): config_get,
    ("config", "set"): config_set,
    ("boards", "list"): boards_list,
    ("boards", "get"): boards_get,
    ("boards", "create"): boards_create,
    ("boards", "update"): boards_update,
    ("boards", "delete"): boards_delete,
    ("cards", "list"): cards_list,
    ("cards", "get"): cards_get,
    ("cards", "create"): cards_create,
    ("cards", "update"): cards_update,
    ("cards", "delete"): cards_delete,
    ("cards", "close"): cards_close,
    ("cards", "reopen"): cards_reopen,
    ("cards", "move"): cards_move,
    ("columns", "list"): columns_list,
    ("columns", "get"): columns_get,
    ("columns", "create"): columns_create,
    ("columns", "update"): columns_update,
    ("columns", "delete"): columns_delete,
    ("comments", "list"): comments_list,
    ("comments", "get"): comments_get,
    ("comments", "create"): comments_create,
    ("comments", "update"): comments_update,
    ("comments", "delete"): comments_delete,
    ("reactions", "list"): reactions_list,
    ("reactions", "create"): reactions_create,
    ("reactions", "delete"): reactions_delete,
    ("steps", "list"): steps_list,
    ("steps", "get"): steps_get,
    ("steps", "create"): steps_create,
    ("steps", "update"): steps_update,
    ("steps", "delete"): steps_delete,
    ("tags", "list"): tags_list,
    ("users", "list"): users_list,
    ("users", "get"): users_get,
    ("users", "update"): users_update,
    ("users", "deactivate"): users_deactivate,
    ("notifications", "list"): notifications_list,
    ("notifications", "read"): notifications_read,
    ("notifications", "unread"): notifications_unread,
    ("notifications", "mark-all-read"): notifications_mark_all_read,
}
