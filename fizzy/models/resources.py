"""
Response schemas for Fizzy API resources.

Command handlers validate every payload they render through
``parse_api_response`` so that a server-side shape change fails loudly
with the offending field paths instead of printing half-empty tables.
Unknown fields are ignored; ``Column`` keeps them because the columns
endpoint returns board-specific extras.
"""

from __future__ import annotations

from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

T = TypeVar("T")

Role = Literal["owner", "admin", "member", "system"]


class SchemaValidationError(Exception):
    """A response body did not match the expected schema."""

    def __init__(self, context: str | None, errors: list[str]) -> None:
        self.context = context
        self.errors = errors
        where = f" ({context})" if context else ""
        super().__init__(f"API response validation failed{where}: {', '.join(errors)}")


class _Resource(BaseModel):
    model_config = ConfigDict(extra="ignore")


class User(_Resource):
    id: str
    name: str
    role: Role
    active: bool = True
    email_address: str | None = None
    created_at: str | None = None
    url: str | None = None


class Account(_Resource):
    id: str
    name: str
    slug: str
    created_at: str | None = None
    user: User


class IdentityResponse(_Resource):
    accounts: list[Account] = Field(default_factory=list)


class Board(_Resource):
    id: str
    name: str
    all_access: bool = False
    created_at: str
    url: str | None = None
    creator: User | None = None


class Step(_Resource):
    id: str
    content: str
    completed: bool = False


class Card(_Resource):
    id: str
    number: int
    title: str
    status: str
    description: str = ""
    description_html: str = ""
    image_url: str | None = None
    tags: list[str] = Field(default_factory=list)
    golden: bool = False
    last_active_at: str | None = None
    created_at: str
    url: str | None = None
    board: Board | None = None
    creator: User | None = None
    comments_url: str | None = None
    steps: list[Step] | None = None


class CommentBody(_Resource):
    plain_text: str
    html: str = ""


class Comment(_Resource):
    id: str
    created_at: str
    updated_at: str | None = None
    body: CommentBody
    creator: User
    reactions_url: str | None = None
    url: str | None = None


class Reaction(_Resource):
    id: str
    content: str
    reacter: User
    url: str | None = None


class Tag(_Resource):
    id: str
    title: str
    created_at: str | None = None
    url: str | None = None


class Column(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    color: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    url: str | None = None
    position: int | None = None


class NotificationCard(_Resource):
    id: str
    title: str
    status: str
    url: str | None = None


class Notification(_Resource):
    id: str
    read: bool
    read_at: str | None = None
    created_at: str
    title: str
    body: str = ""
    creator: User | None = None
    card: NotificationCard | None = None
    url: str | None = None


def _format_errors(exc: PydanticValidationError) -> list[str]:
    messages = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error["loc"])
        messages.append(f"{loc}: {error['msg']}" if loc else error["msg"])
    return messages


def parse_api_response(model: type[T] | Any, data: Any, context: str | None = None) -> T:
    """
    Validate ``data`` against ``model`` and return the parsed value.

    ``model`` is a resource class or a generic alias such as
    ``list[Card]``.

    Raises:
        SchemaValidationError: With one ``loc: msg`` entry per failing field.

    Example:
        >>> parse_api_response(Tag, {"id": "t1", "title": "bug"}).title
        'bug'
    """
    try:
        return TypeAdapter(model).validate_python(data)
    except PydanticValidationError as exc:
        raise SchemaValidationError(context, _format_errors(exc)) from exc
