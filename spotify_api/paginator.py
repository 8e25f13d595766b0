from typing import Any, Callable, Dict, List, Optional, Protocol

from .exceptions import SpotifyAPIError


class PageSource(Protocol):
    def get_json(self, url: str) -> Dict[str, Any]:
        ...


def page_items(page: Dict[str, Any]) -> List[Any]:
    """Default item extraction: the envelope's ``items`` list (null counts as empty)."""

    items = page.get("items")
    if items is None:
        return []
    if not isinstance(items, list):
        raise SpotifyAPIError(f"Page 'items' is not a list: {type(items).__name__}")
    return items


def next_cursor(page: Dict[str, Any]) -> str:
    """Default cursor extraction: the envelope's ``next`` URL, '' when exhausted."""

    return str(page.get("next") or "")


def fetch_all_pages(
    client: PageSource,
    url: str,
    *,
    limit: Optional[int] = None,
    stop_on_short_page: bool = False,
    extract_items: Callable[[Dict[str, Any]], List[Any]] = page_items,
    extract_next: Callable[[Dict[str, Any]], str] = next_cursor,
    on_progress: Optional[Callable[[int, Dict[str, Any]], None]] = None,
) -> List[Any]:
    """Walk a cursor-paginated collection starting at ``url`` until it is exhausted.

    One GET per page. Items are returned in page order. Paging stops when the
    envelope's cursor is empty, or, with ``stop_on_short_page``, after a page
    holding fewer than ``limit`` items.

    Errors from the client propagate unchanged and the items gathered so far are
    dropped: the caller gets either the whole collection or an exception.

    ``on_progress(count_so_far, page)`` is called after each page.
    """

    if stop_on_short_page and not limit:
        raise ValueError("stop_on_short_page requires a positive limit")

    collected: List[Any] = []
    next_url = url

    while next_url:
        page = client.get_json(next_url)
        items = extract_items(page)
        collected.extend(items)

        if on_progress is not None:
            on_progress(len(collected), page)

        if stop_on_short_page and len(items) < int(limit):
            break

        next_url = extract_next(page)

    return collected
