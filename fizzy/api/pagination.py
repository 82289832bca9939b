"""
Link-header pagination for the Fizzy API.

Fizzy paginates list endpoints with RFC 5988 ``Link`` headers, e.g.::

    Link: <https://app.fizzy.do/acme/boards?page=2>; rel="next"

Only the ``next``, ``prev``, ``first`` and ``last`` relations are kept.
Walking pages always follows the ``next`` link of the response actually
received; there is no pre-computed page count.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, Iterator, TypeVar
from urllib.parse import parse_qs, urlsplit

T = TypeVar("T")

KNOWN_RELATIONS = ("next", "prev", "first", "last")

_LINK_PATTERN = re.compile(r'<([^>]+)>\s*;\s*rel="([^"]+)"')


@dataclass(frozen=True)
class PaginationLinks:
    next: str | None = None
    prev: str | None = None
    first: str | None = None
    last: str | None = None

    def as_dict(self) -> dict[str, str]:
        return {rel: url for rel in KNOWN_RELATIONS if (url := getattr(self, rel)) is not None}


@dataclass(frozen=True)
class PaginationInfo:
    links: PaginationLinks = field(default_factory=PaginationLinks)

    @property
    def has_next(self) -> bool:
        return self.links.next is not None

    @property
    def has_prev(self) -> bool:
        return self.links.prev is not None


@dataclass(frozen=True)
class PaginatedResponse(Generic[T]):
    data: T
    pagination: PaginationInfo


def parse_link_header(header: str | None) -> PaginationLinks:
    """
    Parse a ``Link`` header into pagination links.

    Never raises: malformed segments and unknown relations are dropped,
    and an empty or missing header yields empty links.

    Example:
        >>> parse_link_header('<https://x/items?page=2>; rel="next"').next
        'https://x/items?page=2'
    """
    if not header:
        return PaginationLinks()

    found: dict[str, str] = {}
    for part in header.split(","):
        match = _LINK_PATTERN.search(part.strip())
        if not match:
            continue
        url, rel = match.groups()
        if rel in KNOWN_RELATIONS:
            found[rel] = url.strip()
    return PaginationLinks(**found)


def page_from_url(url: str) -> int | None:
    """Extract the ``page`` query parameter from a URL, if numeric."""
    try:
        values = parse_qs(urlsplit(url).query).get("page")
    except ValueError:
        return None
    if not values:
        return None
    try:
        return int(values[0])
    except ValueError:
        return None


class PageIterator(Generic[T]):
    """
    Forward-only iterator over pages.

    ``fetch_page(url)`` performs one request and returns the decoded page
    body with the links parsed from that response. Each ``next()`` call
    fetches exactly one page; iteration ends once a response carries no
    ``next`` link.
    """

    def __init__(self, first_url: str, fetch_page: Callable[[str], PaginatedResponse[T]]) -> None:
        self._current_url: str | None = first_url
        self._fetch_page = fetch_page
        self._pages_fetched = 0

    @property
    def current_url(self) -> str | None:
        return self._current_url

    @property
    def pages_fetched(self) -> int:
        return self._pages_fetched

    def __iter__(self) -> PageIterator[T]:
        return self

    def __next__(self) -> T:
        if self._current_url is None:
            raise StopIteration
        page = self._fetch_page(self._current_url)
        self._pages_fetched += 1
        self._current_url = page.pagination.links.next
        return page.data


def iter_items(pages: Iterable[Any]) -> Iterator[Any]:
    """Flatten pages into items; ``None`` pages are empty, scalars pass through."""
    for page in pages:
        if page is None:
            continue
        if isinstance(page, list):
            yield from page
        else:
            yield page
