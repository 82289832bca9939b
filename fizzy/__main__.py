from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import httpx

from fizzy import __version__
from fizzy.api.errors import ApiError
from fizzy.auth.errors import AccountSelectionError, AuthenticationRequiredError
from fizzy.commands import COMMANDS, CommandContext, UsageError
from fizzy.config import ConfigError, default_config_path, load_user_config
from fizzy.models.resources import SchemaValidationError
from fizzy.obs.logging import LogSettings, build_logger, log_event
from fizzy.output.formatter import format_error

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_AUTH_ERROR = 3


def _bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"true", "yes", "1", "on"}:
        return True
    if lowered in {"false", "no", "0", "off"}:
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got {value!r}")


def _add_force(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--force", action="store_true", default=False, help="Skip the confirmation prompt")


def _add_limit(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--limit", type=int, help="Stop after N items")


def _group(subparsers: argparse._SubParsersAction, name: str, help_text: str) -> argparse._SubParsersAction:
    parser = subparsers.add_parser(name, help=help_text)
    return parser.add_subparsers(dest="action", required=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fizzy", description="Fizzy command-line client")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--account", help="Account slug to use")
    parser.add_argument("--base-url", help="API base URL (default https://app.fizzy.do)")
    parser.add_argument("--format", dest="output_format", choices=["json", "table"], help="Output format")
    parser.add_argument("--json", dest="output_format", action="store_const", const="json", help="Same as --format json")
    parser.add_argument("--max-retries", type=int, help="Retries for rate-limited or failed requests")
    parser.add_argument("--timeout", type=float, dest="timeout_s", help="Request timeout in seconds")
    parser.add_argument("--config", type=Path, help="Path to config YAML")
    parser.add_argument("--log-file", type=Path, help="Also write JSONL logs to this file")
    parser.add_argument(
        "--log-format",
        choices=["text", "jsonl"],
        default="text",
        help="Layout of log records on stderr",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", "-v", action="store_true", default=False, help="Debug logging to stderr")
    verbosity.add_argument("--quiet", "-q", action="store_true", default=False, help="Only log errors")

    subparsers = parser.add_subparsers(dest="command", required=True)

    auth = _group(subparsers, "auth", "Manage stored credentials")
    login = auth.add_parser("login", help="Store a Personal Access Token")
    login.add_argument("--token", required=True, help="Personal Access Token")
    auth.add_parser("logout", help="Remove stored credentials (only --account when given)")
    auth.add_parser("status", help="Show authentication status")
    auth.add_parser("accounts", help="List stored accounts")
    switch = auth.add_parser("switch", help="Change the default account")
    switch.add_argument("slug")

    config = _group(subparsers, "config", "Read or change user configuration")
    config_get = config.add_parser("get", help="Print a config value")
    config_get.add_argument("key")
    config_set = config.add_parser("set", help="Persist a config value")
    config_set.add_argument("key")
    config_set.add_argument("value")

    boards = _group(subparsers, "boards", "Boards")
    _add_limit(boards.add_parser("list", help="List boards"))
    boards.add_parser("get", help="Show a board").add_argument("id")
    for action in ("create", "update"):
        board_parser = boards.add_parser(action, help=f"{action.capitalize()} a board")
        if action == "create":
            board_parser.add_argument("name")
        else:
            board_parser.add_argument("id")
            board_parser.add_argument("--name")
        board_parser.add_argument("--all-access", type=_bool)
        board_parser.add_argument("--auto-postpone-period", type=int)
        board_parser.add_argument("--public-description")
    board_delete = boards.add_parser("delete", help="Delete a board")
    board_delete.add_argument("id")
    _add_force(board_delete)

    cards = _group(subparsers, "cards", "Cards")
    cards_list = cards.add_parser("list", help="List cards")
    cards_list.add_argument("--board")
    cards_list.add_argument("--status")
    cards_list.add_argument("--tag")
    _add_limit(cards_list)
    cards.add_parser("get", help="Show a card by number or ID").add_argument("id")
    cards_create = cards.add_parser("create", help="Create a card")
    cards_create.add_argument("--board", required=True)
    cards_create.add_argument("--title", required=True)
    cards_create.add_argument("--description")
    cards_create.add_argument("--status")
    cards_update = cards.add_parser("update", help="Update a card")
    cards_update.add_argument("id")
    cards_update.add_argument("--title")
    cards_update.add_argument("--description")
    cards_update.add_argument("--status")
    cards_delete = cards.add_parser("delete", help="Delete a card")
    cards_delete.add_argument("id")
    _add_force(cards_delete)
    cards.add_parser("close", help="Close a card").add_argument("id")
    cards.add_parser("reopen", help="Reopen a closed card").add_argument("id")
    cards_move = cards.add_parser("move", help="Move a card to a column")
    cards_move.add_argument("id")
    cards_move.add_argument("--column", required=True)

    columns = _group(subparsers, "columns", "Board columns")
    for action in ("list", "get", "create", "update", "delete"):
        column_parser = columns.add_parser(action, help=f"{action.capitalize()} columns")
        column_parser.add_argument("--board", required=True)
        if action in ("get", "update", "delete"):
            column_parser.add_argument("id")
        if action in ("create", "update"):
            column_parser.add_argument("--name", required=action == "create")
            column_parser.add_argument("--color")
        if action == "delete":
            _add_force(column_parser)

    comments = _group(subparsers, "comments", "Card comments")
    for action in ("list", "get", "create", "update", "delete"):
        comment_parser = comments.add_parser(action, help=f"{action.capitalize()} comments")
        comment_parser.add_argument("--card", required=True)
        if action in ("get", "update", "delete"):
            comment_parser.add_argument("id")
        if action in ("create", "update"):
            comment_parser.add_argument("--body", required=True)
        if action == "delete":
            _add_force(comment_parser)

    reactions = _group(subparsers, "reactions", "Comment reactions")
    for action in ("list", "create", "delete"):
        reaction_parser = reactions.add_parser(action, help=f"{action.capitalize()} reactions")
        reaction_parser.add_argument("--card", required=True)
        reaction_parser.add_argument("--comment", required=True)
        if action == "create":
            reaction_parser.add_argument("--content", required=True)
        if action == "delete":
            reaction_parser.add_argument("id")
            _add_force(reaction_parser)

    steps = _group(subparsers, "steps", "Card steps")
    for action in ("list", "get", "create", "update", "delete"):
        step_parser = steps.add_parser(action, help=f"{action.capitalize()} steps")
        step_parser.add_argument("--card", required=True)
        if action in ("get", "update", "delete"):
            step_parser.add_argument("id")
        if action in ("create", "update"):
            step_parser.add_argument("--content", required=action == "create")
            step_parser.add_argument("--completed", action=argparse.BooleanOptionalAction, default=None)
        if action == "delete":
            _add_force(step_parser)

    tags = _group(subparsers, "tags", "Tags")
    _add_limit(tags.add_parser("list", help="List tags"))

    users = _group(subparsers, "users", "Users")
    _add_limit(users.add_parser("list", help="List users"))
    users.add_parser("get", help="Show a user").add_argument("id")
    users_update = users.add_parser("update", help="Update a user")
    users_update.add_argument("id")
    users_update.add_argument("--name")
    users_update.add_argument("--avatar", help="Image file (jpg, png, gif, webp)")
    users_deactivate = users.add_parser("deactivate", help="Deactivate a user")
    users_deactivate.add_argument("id")
    _add_force(users_deactivate)

    notifications = _group(subparsers, "notifications", "Notifications")
    notifications_list = notifications.add_parser("list", help="List notifications")
    notifications_list.add_argument("--unread-only", action="store_true", default=False)
    _add_limit(notifications_list)
    notifications.add_parser("read", help="Mark a notification as read").add_argument("id")
    notifications.add_parser("unread", help="Mark a notification as unread").add_argument("id")
    notifications.add_parser("mark-all-read", help="Mark every notification as read")

    return parser


def parse_args(argv: list[str]) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def _log_level(args: argparse.Namespace) -> str:
    if args.verbose:
        return "DEBUG"
    if args.quiet:
        return "ERROR"
    return "WARNING"


def main(argv: list[str] | None = None, *, transport: httpx.BaseTransport | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logger = build_logger(
        LogSettings(level=_log_level(args), log_file=args.log_file, jsonl=args.log_format == "jsonl")
    )

    config_path = args.config or default_config_path()
    try:
        user_config = load_user_config(config_path)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_invalid", str(exc), path=str(config_path))
        print(format_error(exc), file=sys.stderr)
        return EXIT_CONFIG_ERROR

    ctx = CommandContext(
        user_config=user_config,
        logger=logger,
        output_format=args.output_format or user_config.output_format,
        account=args.account,
        base_url=args.base_url,
        max_retries=args.max_retries,
        timeout_s=args.timeout_s,
        config_path=config_path,
        transport=transport,
    )
    handler = COMMANDS[(args.command, args.action)]

    try:
        return handler(ctx, args)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_invalid", str(exc))
        print(format_error(exc), file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except (AuthenticationRequiredError, AccountSelectionError) as exc:
        log_event(logger, logging.DEBUG, "auth_required", str(exc), error_type=type(exc).__name__)
        print(format_error(exc), file=sys.stderr)
        return EXIT_AUTH_ERROR
    except ApiError as exc:
        log_event(logger, logging.DEBUG, "api_error", str(exc), error=exc.to_dict())
        print(format_error(exc), file=sys.stderr)
        return EXIT_ERROR
    except (SchemaValidationError, UsageError, FileNotFoundError) as exc:
        log_event(logger, logging.DEBUG, "command_failed", str(exc), error_type=type(exc).__name__)
        print(format_error(exc), file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
