"""Continuation-token pager for paginated remote log APIs."""

import logging
import threading
from typing import Callable, Iterator, Optional

from logimport.errors import PageFetchError
from logimport.models import Page

logger = logging.getLogger(__name__)

# (page_index, token) -> Page
PageFetcher = Callable[[int, Optional[str]], Page]


class RemotePager:
    """Walks a token-paginated API one page at a time.

    The token from page N is sent unchanged as the request token for page N+1.
    Only ``has_more`` ends the walk: an empty page with ``has_more=True`` is
    followed by another request after ``empty_page_delay``, since the remote
    stream may still be filling. Pages are produced lazily, so the caller
    controls the request rate simply by not asking for the next page.
    """

    def __init__(
        self,
        fetch: PageFetcher,
        page_delay: float = 0.1,
        empty_page_delay: float = 1.0,
        cancel_event: threading.Event | None = None,
    ):
        self._fetch = fetch
        self._page_delay = page_delay
        self._empty_page_delay = empty_page_delay
        self._cancel = cancel_event or threading.Event()
        self._pages_fetched = 0
        self._items_fetched = 0

    @property
    def pages_fetched(self) -> int:
        return self._pages_fetched

    @property
    def items_fetched(self) -> int:
        return self._items_fetched

    def pages(self) -> Iterator[Page]:
        """Yield pages until the remote reports ``has_more=False``.

        Raises PageFetchError with the failing page index; pages already
        yielded are not affected.
        """
        token: Optional[str] = None
        sent_tokens: set = set()
        index = 0

        while not self._cancel.is_set():
            sent_tokens.add(token)
            try:
                page = self._fetch(index, token)
            except Exception as exc:
                logger.error("Failed to fetch log batch %d: %s", index, exc)
                raise PageFetchError(index, str(exc)) from exc

            self._pages_fetched += 1
            self._items_fetched += len(page.items)
            logger.debug(
                "Fetched page %d: %d items, has_more=%s", index, len(page.items), page.has_more
            )
            yield page

            if not page.has_more:
                logger.info(
                    "Pagination finished after %d page(s), %d item(s)",
                    self._pages_fetched, self._items_fetched,
                )
                return

            if page.next_token in sent_tokens:
                raise PageFetchError(
                    index + 1,
                    f"remote returned an already used continuation token {page.next_token!r}",
                )

            token = page.next_token
            index += 1

            delay = self._page_delay
            if not page.items:
                logger.debug("Page %d was empty but has_more is set, waiting", index - 1)
                delay += self._empty_page_delay
            if delay > 0:
                self._cancel.wait(delay)

        logger.info("Pagination cancelled before page %d", index)
