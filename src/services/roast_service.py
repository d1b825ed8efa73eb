"""PydanticAI roast generation service."""

import logging
import time
from functools import lru_cache
from typing import AsyncIterator, Sequence

import logfire
from pydantic_ai import Agent
from pydantic_ai.models.fallback import FallbackModel

from src.config import Settings, get_settings
from src.models.douban_models import WatchedMovie

logger = logging.getLogger(__name__)

ROAST_SYSTEM_PROMPT = "你是一位风趣、毒舌的影评人，请用中文回答。"

ROAST_PROMPT_TEMPLATE = """你是一位嘴臭老哥。这是豆瓣用户 ({user_id}) 看过的电影列表。请用最恶毒的语气，幽默的风格，吐槽一下这位用户的观影品味，可以关注打分以及短评。

用户 {user_id} 看过的电影：
{movie_list}

请开始你的吐槽："""


class RoastGenerationError(Exception):
    """Raised when the model fails to produce a roast."""

    pass


def format_movie_line(movie: WatchedMovie) -> str:
    """Render one movie as a prompt bullet.

    Example: ``- 《霸王别姬》(评分: 5/5, 短评: "神作")``
    """
    line = f"- 《{movie.title}》(评分: {movie.rating_display}/5"
    if movie.comment:
        line += f', 短评: "{movie.comment}"'
    return line + ")"


def format_movie_list(movies: Sequence[WatchedMovie]) -> str:
    return "\n".join(format_movie_line(movie) for movie in movies)


def build_roast_prompt(user_id: str, movies: Sequence[WatchedMovie]) -> str:
    """Fill the roast template with the user's movie list."""
    return ROAST_PROMPT_TEMPLATE.format(
        user_id=user_id, movie_list=format_movie_list(movies)
    )


def _build_model(model_name: str, settings: Settings):
    """Resolve a model string, wiring an explicit Groq key when configured."""
    if settings.groq_api_key and model_name.startswith("groq:"):
        from pydantic_ai.models.groq import GroqModel
        from pydantic_ai.providers.groq import GroqProvider

        return GroqModel(
            model_name.split(":", 1)[1],
            provider=GroqProvider(api_key=settings.groq_api_key),
        )
    return model_name


class RoastService:
    """Writes a roast of a user's watched list with a PydanticAI agent."""

    def __init__(self, model: str | None = None):
        """
        Initialize the roast agent.

        Args:
            model: Model string (e.g. 'groq:llama3-8b-8192').
                   Defaults to settings.roast_model; settings.roast_fallback_model
                   is chained behind it when set.
        """
        settings = get_settings()
        self.model_name = model or settings.roast_model

        agent_model = _build_model(self.model_name, settings)
        if settings.roast_fallback_model:
            agent_model = FallbackModel(
                agent_model,
                _build_model(settings.roast_fallback_model, settings),
            )

        self.agent = Agent(
            agent_model,
            system_prompt=ROAST_SYSTEM_PROMPT,
            model_settings={"max_tokens": settings.roast_max_tokens},
        )

        logger.info(f"RoastService initialized with model: {self.model_name}")

    async def generate(self, user_id: str, movies: Sequence[WatchedMovie]) -> str:
        """
        Generate the full roast in one model call.

        Args:
            user_id: Douban user id, quoted in the prompt
            movies: Complete scraped list

        Returns:
            Roast text

        Raises:
            RoastGenerationError: the model call failed
        """
        prompt = build_roast_prompt(user_id, movies)
        start_time = time.time()
        try:
            result = await self.agent.run(prompt)
        except Exception as e:
            logfire.error(
                "Roast generation failed",
                user_id=user_id,
                model=self.model_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RoastGenerationError(str(e)) from e

        roast = result.output
        logfire.info(
            "Roast generated",
            user_id=user_id,
            model=self.model_name,
            movie_count=len(movies),
            prompt_length=len(prompt),
            response_length=len(roast),
            response_time_ms=(time.time() - start_time) * 1000,
        )
        return roast

    async def stream(
        self, user_id: str, movies: Sequence[WatchedMovie]
    ) -> AsyncIterator[str]:
        """Stream the roast as text deltas.

        Raises:
            RoastGenerationError: the model call failed before or while streaming
        """
        prompt = build_roast_prompt(user_id, movies)
        logfire.info(
            "Streaming roast",
            user_id=user_id,
            model=self.model_name,
            movie_count=len(movies),
        )
        try:
            async with self.agent.run_stream(prompt) as result:
                async for delta in result.stream_text(delta=True):
                    yield delta
        except Exception as e:
            logfire.error(
                "Roast streaming failed",
                user_id=user_id,
                model=self.model_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RoastGenerationError(str(e)) from e


@lru_cache()
def get_roast_service() -> RoastService:
    """Get the shared roast service instance."""
    return RoastService()
