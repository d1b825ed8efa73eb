"""Request and response models for the roast API."""

from pydantic import BaseModel, ConfigDict, Field

from src.models.douban_models import WatchedMovie


class RoastRequest(BaseModel):
    """Incoming roast request body.

    Accepts the ``userId`` key sent by the web form as well as ``user_id``.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", description="Douban user id or slug")


class MovieOut(BaseModel):
    """Serialized watched movie."""

    title: str
    rating: int | None = Field(default=None, ge=1, le=5)
    comment: str = ""
    date: str = ""

    @classmethod
    def from_movie(cls, movie: WatchedMovie) -> "MovieOut":
        return cls(
            title=movie.title,
            rating=movie.rating,
            comment=movie.comment,
            date=movie.date,
        )


class RoastResponse(BaseModel):
    """Roast result returned to the client."""

    user_id: str
    movie_count: int = Field(..., ge=0)
    movies: list[MovieOut] = Field(default_factory=list)
    roast: str | None = Field(
        default=None, description="Generated roast, None if generation failed"
    )
    roast_error: str | None = Field(
        default=None,
        description="Why the roast is missing (only set on partial success)",
    )
