"""Roast endpoints.

Both endpoints take ``{"userId": "..."}``, scrape the user's watched list and
hand the whole list to the roast service. Scrape failures are mapped to HTTP
statuses here; what happens when only the roast step fails is controlled by
``settings.roast_return_movies_on_llm_failure``.
"""

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, List

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import PlainTextResponse, StreamingResponse
from pydantic import ValidationError

from src.config import get_settings
from src.models.douban_models import WatchedMovie
from src.models.roast_models import MovieOut, RoastRequest, RoastResponse
from src.services.douban_scraper import (
    DoubanFetchError,
    FetchErrorKind,
    scrape_watched_movies,
)
from src.services.input_sanitizer import (
    get_user_friendly_error,
    sanitize_user_id,
    validate_user_id,
)
from src.services.roast_service import (
    RoastGenerationError,
    RoastService,
    get_roast_service,
)

logger = logging.getLogger(__name__)
router = APIRouter()

Scraper = Callable[[str], Awaitable[List[WatchedMovie]]]

EMPTY_LIST_MESSAGE = "未找到电影记录或用户主页私密，无法生成吐槽。"

_STREAM_DONE = object()


def get_scraper() -> Scraper:
    """Dependency returning the watched-list scraper."""
    return scrape_watched_movies


def fetch_error_response(error: DoubanFetchError, user_id: str) -> PlainTextResponse:
    """Map a scrape failure to a user-facing plain-text response."""
    if error.kind == FetchErrorKind.NOT_FOUND:
        return PlainTextResponse(f"未找到该豆瓣用户 (404): {user_id}", status_code=404)
    if error.kind == FetchErrorKind.FORBIDDEN:
        return PlainTextResponse(
            "访问被拒绝 (403)，该用户主页可能是私密的或需要登录。", status_code=403
        )
    return PlainTextResponse(f"抓取豆瓣页面失败: {error.detail}", status_code=502)


async def _read_user_id(request: Request) -> tuple[str | None, Response | None]:
    """Pull and validate the user id from the JSON body.

    Returns (user_id, None) on success or (None, error_response).
    """
    invalid = PlainTextResponse(get_user_friendly_error("empty"), status_code=400)
    try:
        payload = await request.json()
    except ValueError:
        return None, invalid
    if not isinstance(payload, dict):
        return None, invalid

    try:
        roast_request = RoastRequest.model_validate(payload)
    except ValidationError:
        return None, invalid

    validation = validate_user_id(roast_request.user_id)
    if not validation.is_valid:
        logger.warning("Rejected user id: %s", validation.error_code)
        return None, PlainTextResponse(
            get_user_friendly_error(validation.error_code), status_code=400
        )
    return sanitize_user_id(roast_request.user_id), None


async def _scrape(
    user_id: str, scraper: Scraper
) -> tuple[List[WatchedMovie] | None, Response | None]:
    """Run the scrape, mapping failures and empty lists to responses."""
    try:
        movies = await scraper(user_id)
    except DoubanFetchError as e:
        logger.error("Scraping failed for %s: %s (%s)", user_id, e.detail, e.kind.value)
        return None, fetch_error_response(e, user_id)

    if not movies:
        logger.info("No movies found for %s", user_id)
        return None, PlainTextResponse(EMPTY_LIST_MESSAGE, status_code=400)
    return movies, None


@router.post("", response_model=RoastResponse)
async def roast(
    request: Request,
    scraper: Scraper = Depends(get_scraper),
    roast_service: RoastService = Depends(get_roast_service),
):
    """Scrape a user's watched list and roast it."""
    user_id, error_response = await _read_user_id(request)
    if error_response is not None:
        return error_response

    logger.info("Received roast request for user %s", user_id)
    movies, error_response = await _scrape(user_id, scraper)
    if error_response is not None:
        return error_response

    movies_out = [MovieOut.from_movie(m) for m in movies]
    try:
        roast_text = await roast_service.generate(user_id, movies)
    except RoastGenerationError as e:
        settings = get_settings()
        if not settings.roast_return_movies_on_llm_failure:
            return PlainTextResponse(f"生成吐槽失败: {e}", status_code=502)
        logger.warning("Returning movies without roast for %s: %s", user_id, e)
        return RoastResponse(
            user_id=user_id,
            movie_count=len(movies_out),
            movies=movies_out,
            roast=None,
            roast_error=str(e),
        )

    return RoastResponse(
        user_id=user_id,
        movie_count=len(movies_out),
        movies=movies_out,
        roast=roast_text,
    )


async def _pump_deltas(deltas: AsyncIterator[str], queue: asyncio.Queue) -> None:
    """Drain the roast stream into ``queue`` from a single task.

    The agent stream holds a cancel scope and context variables, so it must be
    entered and exited by the same task. A ``RoastGenerationError`` is queued
    as an item; ``_STREAM_DONE`` always comes last.
    """
    try:
        async for delta in deltas:
            await queue.put(delta)
    except RoastGenerationError as e:
        await queue.put(e)
    finally:
        await queue.put(_STREAM_DONE)


@router.post("/stream")
async def roast_stream(
    request: Request,
    scraper: Scraper = Depends(get_scraper),
    roast_service: RoastService = Depends(get_roast_service),
):
    """Scrape a user's watched list and stream the roast as plain text."""
    user_id, error_response = await _read_user_id(request)
    if error_response is not None:
        return error_response

    movies, error_response = await _scrape(user_id, scraper)
    if error_response is not None:
        return error_response

    queue: asyncio.Queue = asyncio.Queue()
    pump = asyncio.create_task(_pump_deltas(roast_service.stream(user_id, movies), queue))

    # The first item decides between a 200 stream and a 502
    first = await queue.get()
    if isinstance(first, RoastGenerationError):
        await pump
        return PlainTextResponse(f"生成吐槽失败: {first}", status_code=502)

    async def body():
        item = first
        try:
            while item is not _STREAM_DONE:
                if isinstance(item, RoastGenerationError):
                    logger.error("Roast stream interrupted for %s: %s", user_id, item)
                    yield f"\n\n[吐槽中断: {item}]"
                else:
                    yield item
                item = await queue.get()
        finally:
            if not pump.done():
                pump.cancel()

    return StreamingResponse(body(), media_type="text/plain; charset=utf-8")
