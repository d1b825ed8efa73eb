"""Typer-based command line roaster."""

import os

os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

from pathlib import Path

_project_root = Path(__file__).resolve().parent.parent.parent
from dotenv import load_dotenv

# Provider SDKs (e.g. GROQ_API_KEY) read their keys from the process environment
load_dotenv(_project_root / ".env")
load_dotenv(_project_root / ".env.local")

import asyncio
from typing import List, Optional

import questionary
import typer

from src.models.douban_models import WatchedMovie
from src.services.douban_scraper import DoubanFetchError, scrape_watched_movies
from src.services.input_sanitizer import (
    get_user_friendly_error,
    sanitize_user_id,
    validate_user_id,
)
from src.services.roast_service import (
    RoastGenerationError,
    RoastService,
    format_movie_list,
)

app = typer.Typer(help="Roast a Douban user's movie taste.")


def _ask_user_id() -> str:
    """Prompt for a user id when none was passed on the command line."""
    answer = questionary.text("Douban user id:").ask()
    if answer is None:
        raise typer.Exit(0)
    return answer


async def _stream_roast(service: RoastService, user_id: str, movies: List[WatchedMovie]) -> None:
    async for delta in service.stream(user_id, movies):
        typer.echo(delta, nl=False)
    typer.echo("")


@app.command()
def roast(
    user_id: Optional[str] = typer.Argument(None, help="Douban user id or slug"),
    scrape_only: bool = typer.Option(
        False, "--scrape-only", help="Print the watched list without calling the model"
    ),
    stream: bool = typer.Option(
        True, "--stream/--no-stream", help="Stream the roast as it is generated"
    ),
):
    """Scrape USER_ID's watched movies and roast them."""
    if user_id is None:
        user_id = _ask_user_id()

    validation = validate_user_id(user_id)
    if not validation.is_valid:
        typer.echo(get_user_friendly_error(validation.error_code), err=True)
        raise typer.Exit(2)
    user_id = sanitize_user_id(user_id)

    typer.echo(f"Scraping watched movies for {user_id}...")
    try:
        movies = asyncio.run(scrape_watched_movies(user_id))
    except DoubanFetchError as e:
        typer.echo(
            typer.style(f"Scrape failed ({e.kind.value}): {e.detail}", fg=typer.colors.RED),
            err=True,
        )
        raise typer.Exit(1)

    if not movies:
        typer.echo("未找到电影记录或用户主页私密，无法生成吐槽。", err=True)
        raise typer.Exit(1)

    typer.echo(f"Found {len(movies)} movies:\n")
    typer.echo(format_movie_list(movies))

    if scrape_only:
        return

    typer.echo("")
    service = RoastService()
    try:
        if stream:
            asyncio.run(_stream_roast(service, user_id, movies))
        else:
            typer.echo(asyncio.run(service.generate(user_id, movies)))
    except RoastGenerationError as e:
        typer.echo(
            typer.style(f"Roast generation failed: {e}", fg=typer.colors.YELLOW),
            err=True,
        )
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
