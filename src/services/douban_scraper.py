"""Douban watched-list scraping service.

Fetches ``/people/{user_id}/collect`` listing pages one at a time, parses each
into ``WatchedMovie`` records and follows the paginator's "next" link until
the listing ends, an empty page shows up, or the page cap is reached.
"""

import asyncio
import re
import time
from enum import Enum
from typing import List
from urllib.parse import quote, urljoin

import httpx
import logfire
from bs4 import BeautifulSoup, Tag

from src.config import get_settings
from src.constants import DOUBAN_COLLECT_PATH, MISSING_TITLE_PLACEHOLDER
from src.logging_config import redact_headers
from src.models.douban_models import PageResult, ScrapeSession, WatchedMovie

_RATING_CLASS_RE = re.compile(r"rating([1-5])-t")


class FetchErrorKind(str, Enum):
    """Failure classes the API layer maps to responses."""

    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    TRANSIENT = "transient"


class DoubanFetchError(Exception):
    """Base exception for Douban fetch failures."""

    kind: FetchErrorKind = FetchErrorKind.TRANSIENT

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ProfileNotFoundError(DoubanFetchError):
    """Raised when Douban answers 404 for the profile."""

    kind = FetchErrorKind.NOT_FOUND


class ProfileForbiddenError(DoubanFetchError):
    """Raised on 403: the profile is private or requires login."""

    kind = FetchErrorKind.FORBIDDEN


class TransientFetchError(DoubanFetchError):
    """Raised on network errors, timeouts and unexpected HTTP statuses."""

    kind = FetchErrorKind.TRANSIENT


def build_collect_url(user_id: str, base_url: str | None = None) -> str:
    """Return the first listing page URL for a user."""
    if base_url is None:
        base_url = get_settings().douban_base_url
    path = DOUBAN_COLLECT_PATH.format(user_id=quote(user_id, safe=""))
    return base_url.rstrip("/") + path


def build_headers() -> dict[str, str]:
    """Headers sent with every Douban request."""
    settings = get_settings()
    return {
        "User-Agent": settings.douban_user_agent,
        "Cookie": settings.douban_cookie,
    }


def split_title(raw_title: str) -> str:
    """Keep the primary title from ``"中文名 / Original Title"`` style text."""
    title = raw_title.split("/", 1)[0].strip()
    return title or MISSING_TITLE_PLACEHOLDER


def rating_from_classes(class_value: str | List[str] | None) -> int | None:
    """Extract the star rating from a ``rating{D}-t`` class token.

    Returns None when no token for 1..5 stars is present.
    """
    if not class_value:
        return None
    if not isinstance(class_value, str):
        class_value = " ".join(class_value)
    match = _RATING_CLASS_RE.search(class_value)
    if match:
        return int(match.group(1))
    return None


def _text_of(container: Tag, selector: str) -> str:
    element = container.select_one(selector)
    if element is None:
        return ""
    return element.get_text().strip()


def _parse_item(item: Tag) -> WatchedMovie:
    """Parse one ``div.item`` card. Missing parts become empty strings."""
    rating_span = item.select_one('span[class^="rating"]')

    return WatchedMovie(
        title=split_title(_text_of(item, "li.title a")),
        rating=rating_from_classes(rating_span.get("class")) if rating_span else None,
        comment=_text_of(item, "span.comment"),
        date=_text_of(item, "span.date"),
    )


def _find_next_url(soup: BeautifulSoup, current_url: str) -> str | None:
    """Resolve the paginator's "next" link against the current page URL."""
    anchor = soup.select_one("div.paginator span.next a")
    if anchor is None:
        return None
    href = (anchor.get("href") or "").strip()
    if not href:
        return None
    return urljoin(current_url, href)


def parse_page(html: str, current_url: str) -> PageResult:
    """
    Parse a listing page into movies and the next page URL.

    A page without any ``div.item`` card is terminal: it yields no movies and
    no next link, whatever else the markup contains.
    """
    soup = BeautifulSoup(html, "html.parser")
    items = soup.select("div.item")
    if not items:
        return PageResult(movies=[], next_url=None)

    movies = [_parse_item(item) for item in items]
    return PageResult(movies=movies, next_url=_find_next_url(soup, current_url))


async def fetch_page(
    client: httpx.AsyncClient, url: str, user_id: str | None = None
) -> PageResult:
    """
    Fetch and parse one listing page.

    Args:
        client: Async client; Douban headers and timeout are applied per request
        url: Absolute page URL
        user_id: Profile id reported in ``ProfileNotFoundError``

    Raises:
        ProfileNotFoundError: Douban returned 404
        ProfileForbiddenError: Douban returned 403
        TransientFetchError: any other HTTP status, network error or timeout
    """
    settings = get_settings()
    start_time = time.time()
    try:
        response = await client.get(
            url,
            headers=build_headers(),
            timeout=settings.scraper_timeout_seconds,
        )
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        status_code = e.response.status_code
        logfire.warning(
            "Douban page request rejected",
            url=url,
            status_code=status_code,
        )
        if status_code == 404:
            raise ProfileNotFoundError(user_id or url) from e
        if status_code == 403:
            raise ProfileForbiddenError(
                "The profile might be private or requires login"
            ) from e
        raise TransientFetchError(f"HTTP {status_code} from {url}") from e
    except httpx.HTTPError as e:
        logfire.warning(
            "Douban page request failed",
            url=url,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise TransientFetchError(str(e) or type(e).__name__) from e

    html = response.text
    result = parse_page(html, url)
    logfire.info(
        "Douban page parsed",
        url=url,
        status_code=response.status_code,
        content_length=len(html),
        movie_count=len(result.movies),
        has_next=result.next_url is not None,
        response_time_ms=(time.time() - start_time) * 1000,
    )
    return result


async def _polite_delay(seconds: float) -> None:
    await asyncio.sleep(seconds)


async def _run_session(
    session: ScrapeSession,
    client: httpx.AsyncClient,
    max_pages: int,
    delay_seconds: float,
) -> None:
    while session.current_url and session.page_num <= max_pages:
        logfire.info(
            "Scraping Douban page",
            user_id=session.user_id,
            page_num=session.page_num,
            url=session.current_url,
        )
        page = await fetch_page(client, session.current_url, session.user_id)
        session.movies.extend(page.movies)

        if not page.movies:
            logfire.info(
                "No movie items on page, profile is private or list ended",
                user_id=session.user_id,
                page_num=session.page_num,
            )
        session.page_num += 1

        if page.is_terminal:
            session.current_url = None
            break

        session.current_url = page.next_url
        if session.page_num <= max_pages:
            await _polite_delay(delay_seconds)
            session.delays += 1


async def scrape_watched_movies(
    user_id: str,
    *,
    client: httpx.AsyncClient | None = None,
    max_pages: int | None = None,
    delay_seconds: float | None = None,
) -> List[WatchedMovie]:
    """
    Scrape a user's watched list across up to ``max_pages`` listing pages.

    Pages are fetched strictly in sequence. Any fetch error aborts the scrape
    and propagates; movies gathered before the failure are discarded.

    Args:
        user_id: Non-empty Douban user id (validated by the caller)
        client: Optional httpx client; one is created for the session otherwise
        max_pages: Page cap (default settings.scraper_max_pages)
        delay_seconds: Pause between pages (default settings.scraper_page_delay_seconds)

    Returns:
        Movies in listing order, possibly empty
    """
    settings = get_settings()
    if max_pages is None:
        max_pages = settings.scraper_max_pages
    if delay_seconds is None:
        delay_seconds = settings.scraper_page_delay_seconds

    start_time = time.time()
    session = ScrapeSession(user_id=user_id, current_url=build_collect_url(user_id))
    logfire.info(
        "Starting Douban scrape",
        user_id=user_id,
        max_pages=max_pages,
        headers=redact_headers(build_headers()),
    )

    if client is not None:
        await _run_session(session, client, max_pages, delay_seconds)
    else:
        async with httpx.AsyncClient(follow_redirects=True) as session_client:
            await _run_session(session, session_client, max_pages, delay_seconds)

    logfire.info(
        "Douban scrape completed",
        user_id=user_id,
        movie_count=len(session.movies),
        pages_scraped=session.pages_fetched,
        delays=session.delays,
        total_time_ms=(time.time() - start_time) * 1000,
    )
    return session.movies
