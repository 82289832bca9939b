import pytest

from fizzy.api.pagination import (
    PageIterator,
    PaginatedResponse,
    PaginationInfo,
    PaginationLinks,
    iter_items,
    page_from_url,
    parse_link_header,
)


def test_parse_next_and_prev() -> None:
    links = parse_link_header('<https://x/items?page=3>; rel="next", <https://x/items?page=1>; rel="prev"')

    assert links.as_dict() == {"next": "https://x/items?page=3", "prev": "https://x/items?page=1"}


def test_parse_tolerates_whitespace_and_all_relations() -> None:
    header = (
        '  <https://x/i?page=1> ;  rel="first" ,<https://x/i?page=9>;rel="last",'
        ' <https://x/i?page=2>; rel="next"'
    )

    links = parse_link_header(header)

    assert links.first == "https://x/i?page=1"
    assert links.last == "https://x/i?page=9"
    assert links.next == "https://x/i?page=2"
    assert links.prev is None


@pytest.mark.parametrize(
    "header",
    [None, "", "garbage", '<https://x/i?page=2>; rel="related"', "https://x/i; rel=next"],
)
def test_parse_malformed_or_empty_yields_no_links(header: str | None) -> None:
    assert parse_link_header(header).as_dict() == {}


def test_parse_drops_only_bad_segments() -> None:
    links = parse_link_header('nonsense, <https://x/i?page=2>; rel="next", <https://x/z>; rel="alternate"')

    assert links.as_dict() == {"next": "https://x/i?page=2"}


def test_page_from_url() -> None:
    assert page_from_url("https://x/items?page=4&per_page=10") == 4
    assert page_from_url("https://x/items") is None
    assert page_from_url("https://x/items?page=abc") is None


def test_pagination_info_flags() -> None:
    info = PaginationInfo(links=PaginationLinks(next="n"))

    assert info.has_next
    assert not info.has_prev


def _pages() -> dict[str, PaginatedResponse[list[int]]]:
    return {
        "p1": PaginatedResponse([1, 2], PaginationInfo(PaginationLinks(next="p2"))),
        "p2": PaginatedResponse([3, 4], PaginationInfo(PaginationLinks(next="p3", prev="p1"))),
        "p3": PaginatedResponse([5], PaginationInfo(PaginationLinks(prev="p2"))),
    }


def test_page_iterator_follows_next_until_absent() -> None:
    pages = _pages()
    fetched: list[str] = []

    def fetch(url: str) -> PaginatedResponse[list[int]]:
        fetched.append(url)
        return pages[url]

    iterator = PageIterator("p1", fetch)

    assert iterator.current_url == "p1"
    assert next(iterator) == [1, 2]
    assert iterator.current_url == "p2"
    assert list(iterator) == [[3, 4], [5]]
    assert iterator.current_url is None
    assert iterator.pages_fetched == 3
    assert fetched == ["p1", "p2", "p3"]

    with pytest.raises(StopIteration):
        next(iterator)


def test_iter_items_flattens_pages() -> None:
    assert list(iter_items([[1, 2], None, [3], {"id": 4}])) == [1, 2, 3, {"id": 4}]
