"""Shared pytest fixtures and configuration.

Fixture Categories:
1. Models: sample_movies
2. Infrastructure: respx_mock, mock_settings, mock_logfire, logfire_capture, test_client
"""

import os

# Required settings must exist before src.config is imported anywhere
os.environ.setdefault("DOUBAN_COOKIE", 'bid=test-bid; dbcl2="1:test"; ck=test')
os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

from contextlib import contextmanager
from unittest.mock import MagicMock, Mock, patch

import logfire
import pytest
import respx

from src.config import Settings, get_settings
from src.models.douban_models import WatchedMovie
from tests.douban_pages import DOUBAN_HOST


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Drop cached settings so env changes in one test don't leak."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# =============================================================================
# Models
# =============================================================================


@pytest.fixture
def sample_movies():
    """A small scraped list covering rated, unrated and comment-less entries."""
    return [
        WatchedMovie(title="霸王别姬", rating=5, comment="神作", date="2024-01-02"),
        WatchedMovie(title="小时代", rating=1, comment="", date="2023-07-11"),
        WatchedMovie(title="盗梦空间", rating=None, comment="看不懂", date="2022-05-20"),
    ]


# =============================================================================
# Infrastructure
# =============================================================================


@pytest.fixture
def respx_mock():
    """Respx router mocking every httpx transport for the test."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture
def mock_settings(monkeypatch):
    """Settings with fast scraping and a fixed cookie, patched where used."""
    settings = Settings(
        douban_cookie='bid=abc123; dbcl2="42:secret"; ck=Xy',
        douban_base_url=DOUBAN_HOST,
        roast_model="test",
        scraper_timeout_seconds=5.0,
        scraper_max_pages=5,
        scraper_page_delay_seconds=0.0,
        env="local",
        logfire_token=None,
    )

    monkeypatch.setattr("src.config.get_settings", lambda: settings)
    monkeypatch.setattr("src.main.get_settings", lambda: settings)
    monkeypatch.setattr("src.services.douban_scraper.get_settings", lambda: settings)
    monkeypatch.setattr("src.services.roast_service.get_settings", lambda: settings)
    monkeypatch.setattr("src.api.roast.get_settings", lambda: settings)
    monkeypatch.setattr("src.logging_config.get_settings", lambda: settings)
    return settings


@pytest.fixture
def mock_logfire(monkeypatch):
    """
    Replace logfire calls in our modules with mocks.

    Useful for tests that don't need to verify logging behavior.
    """

    @contextmanager
    def mock_span(*args, **kwargs):
        yield MagicMock()

    mock_logfire_module = MagicMock()
    mock_logfire_module.info = Mock()
    mock_logfire_module.warning = Mock()
    mock_logfire_module.error = Mock()
    mock_logfire_module.span = mock_span

    for module in (
        "src.services.douban_scraper",
        "src.services.roast_service",
        "src.services.input_sanitizer",
        "src.middleware.correlation_id",
        "src.logging_config",
        "src.main",
    ):
        monkeypatch.setattr(f"{module}.logfire", mock_logfire_module)

    return mock_logfire_module


@pytest.fixture
def logfire_capture():
    """
    Capture Logfire logs for testing.

    Yields a list of (level, args, kwargs) tuples.
    """
    captured_logs = []

    original_info = logfire.info
    original_warning = logfire.warning
    original_error = logfire.error

    def capture_info(*args, **kwargs):
        captured_logs.append(("info", args, kwargs))
        return original_info(*args, **kwargs)

    def capture_warning(*args, **kwargs):
        captured_logs.append(("warning", args, kwargs))
        return original_warning(*args, **kwargs)

    def capture_error(*args, **kwargs):
        captured_logs.append(("error", args, kwargs))
        return original_error(*args, **kwargs)

    with (
        patch("logfire.info", side_effect=capture_info),
        patch("logfire.warning", side_effect=capture_warning),
        patch("logfire.error", side_effect=capture_error),
    ):
        yield captured_logs


@pytest.fixture
def test_client(mock_settings, mock_logfire):
    """FastAPI TestClient for E2E tests (lifespan is not run)."""
    from fastapi.testclient import TestClient

    from src.main import app

    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
