"""Models for Douban scrape results: per-movie records, page results and sessions."""

from dataclasses import dataclass, field
from typing import List


@dataclass
class WatchedMovie:
    """One entry from a user's watched list.

    ``rating`` is ``None`` when the entry carries no recognizable star token.
    """

    title: str
    rating: int | None
    comment: str = ""
    date: str = ""

    @property
    def rating_display(self) -> str:
        """Rating as shown to the model: the digit, or ``N/A``."""
        return "N/A" if self.rating is None else str(self.rating)


@dataclass
class PageResult:
    """Parsed content of one listing page."""

    movies: List[WatchedMovie] = field(default_factory=list)
    next_url: str | None = None

    @property
    def is_terminal(self) -> bool:
        """An empty page ends pagination even when a next link exists."""
        return not self.movies or self.next_url is None


@dataclass
class ScrapeSession:
    """Pagination state owned by a single scrape call."""

    user_id: str
    current_url: str | None
    page_num: int = 1
    movies: List[WatchedMovie] = field(default_factory=list)
    delays: int = 0

    @property
    def pages_fetched(self) -> int:
        return self.page_num - 1
