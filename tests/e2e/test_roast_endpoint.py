"""End-to-end tests for the roast endpoints."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from src.api.roast import get_scraper
from src.main import app
from src.services.douban_scraper import (
    ProfileForbiddenError,
    ProfileNotFoundError,
    TransientFetchError,
)
from src.services.roast_service import (
    RoastGenerationError,
    RoastService,
    get_roast_service,
)
from tests.douban_pages import DOUBAN_HOST, make_item_html, make_listing_page


@pytest.fixture
def fake_scraper(sample_movies):
    return AsyncMock(return_value=sample_movies)


@pytest.fixture
def fake_roast_service():
    service = MagicMock()
    service.generate = AsyncMock(return_value="看这片单，你的品味令人担忧。")

    async def fake_stream(user_id, movies):
        for chunk in ["看这片单，", "你的品味", "令人担忧。"]:
            yield chunk

    service.stream = fake_stream
    return service


@pytest.fixture
def client(test_client, fake_scraper, fake_roast_service):
    app.dependency_overrides[get_scraper] = lambda: fake_scraper
    app.dependency_overrides[get_roast_service] = lambda: fake_roast_service
    return test_client


class TestRoastEndpoint:
    """Test POST /roast."""

    def test_successful_roast(self, client, fake_scraper, fake_roast_service, sample_movies):
        response = client.post("/roast", json={"userId": "ahbei"})

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == "ahbei"
        assert data["movie_count"] == 3
        assert data["movies"][0]["title"] == "霸王别姬"
        assert data["movies"][2]["rating"] is None
        assert data["roast"] == "看这片单，你的品味令人担忧。"
        assert data["roast_error"] is None
        fake_scraper.assert_awaited_once_with("ahbei")
        fake_roast_service.generate.assert_awaited_once_with("ahbei", sample_movies)

    def test_snake_case_key_and_trimming(self, client, fake_scraper):
        response = client.post("/roast", json={"user_id": "  ahbei "})

        assert response.status_code == 200
        fake_scraper.assert_awaited_once_with("ahbei")

    @pytest.mark.parametrize(
        "payload",
        [{}, {"userId": ""}, {"userId": "   "}, {"userId": 42}, {"userId": None}, ["ahbei"]],
    )
    def test_invalid_user_id_returns_400(self, client, fake_scraper, payload):
        response = client.post("/roast", json=payload)

        assert response.status_code == 400
        assert response.text == "请输入有效的豆瓣用户 ID"
        fake_scraper.assert_not_called()

    def test_malformed_json_returns_400(self, client, fake_scraper):
        response = client.post(
            "/roast", content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        fake_scraper.assert_not_called()

    def test_path_characters_rejected(self, client, fake_scraper):
        response = client.post("/roast", json={"userId": "../../admin"})

        assert response.status_code == 400
        assert "只能包含" in response.text
        fake_scraper.assert_not_called()

    def test_not_found_maps_to_404(self, client, fake_scraper):
        fake_scraper.side_effect = ProfileNotFoundError("ghost")

        response = client.post("/roast", json={"userId": "ghost"})

        assert response.status_code == 404
        assert "ghost" in response.text

    def test_forbidden_maps_to_403(self, client, fake_scraper):
        fake_scraper.side_effect = ProfileForbiddenError("private")

        response = client.post("/roast", json={"userId": "ahbei"})

        assert response.status_code == 403
        assert "私密" in response.text

    def test_transient_maps_to_502(self, client, fake_scraper, fake_roast_service):
        fake_scraper.side_effect = TransientFetchError("Request timed out")

        response = client.post("/roast", json={"userId": "ahbei"})

        assert response.status_code == 502
        assert "Request timed out" in response.text
        fake_roast_service.generate.assert_not_called()

    def test_empty_list_returns_400_without_llm_call(
        self, client, fake_scraper, fake_roast_service
    ):
        fake_scraper.return_value = []

        response = client.post("/roast", json={"userId": "ahbei"})

        assert response.status_code == 400
        assert response.text == "未找到电影记录或用户主页私密，无法生成吐槽。"
        fake_roast_service.generate.assert_not_called()

    def test_llm_failure_returns_movies_by_default(self, client, fake_roast_service):
        fake_roast_service.generate.side_effect = RoastGenerationError("rate limited")

        response = client.post("/roast", json={"userId": "ahbei"})

        assert response.status_code == 200
        data = response.json()
        assert data["movie_count"] == 3
        assert data["roast"] is None
        assert data["roast_error"] == "rate limited"

    def test_llm_failure_is_hard_error_when_configured(
        self, client, fake_roast_service, mock_settings
    ):
        mock_settings.roast_return_movies_on_llm_failure = False
        fake_roast_service.generate.side_effect = RoastGenerationError("rate limited")

        response = client.post("/roast", json={"userId": "ahbei"})

        assert response.status_code == 502
        assert "rate limited" in response.text

    def test_correlation_id_header_present(self, client):
        response = client.post("/roast", json={"userId": "ahbei"})

        assert "X-Correlation-ID" in response.headers


class TestRoastStreamEndpoint:
    """Test POST /roast/stream."""

    def test_streams_roast_text(self, client):
        response = client.post("/roast/stream", json={"userId": "ahbei"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == "看这片单，你的品味令人担忧。"

    def test_stream_validation_error(self, client, fake_scraper):
        response = client.post("/roast/stream", json={"userId": ""})

        assert response.status_code == 400
        fake_scraper.assert_not_called()

    def test_stream_scrape_error(self, client, fake_scraper):
        fake_scraper.side_effect = ProfileForbiddenError("private")

        response = client.post("/roast/stream", json={"userId": "ahbei"})

        assert response.status_code == 403

    def test_stream_failure_before_first_chunk_is_502(self, client, fake_roast_service):
        async def failing_stream(user_id, movies):
            raise RoastGenerationError("model unavailable")
            yield  # pragma: no cover

        fake_roast_service.stream = failing_stream

        response = client.post("/roast/stream", json={"userId": "ahbei"})

        assert response.status_code == 502
        assert "model unavailable" in response.text

    def test_stream_failure_midway_appends_notice(self, client, fake_roast_service):
        async def interrupted_stream(user_id, movies):
            yield "开头"
            raise RoastGenerationError("connection reset")

        fake_roast_service.stream = interrupted_stream

        response = client.post("/roast/stream", json={"userId": "ahbei"})

        assert response.status_code == 200
        assert response.text.startswith("开头")
        assert "connection reset" in response.text

    def test_streams_from_real_agent(self, test_client, fake_scraper):
        app.dependency_overrides[get_scraper] = lambda: fake_scraper
        app.dependency_overrides[get_roast_service] = lambda: RoastService(model="test")

        response = test_client.post("/roast/stream", json={"userId": "ahbei"})

        assert response.status_code == 200
        assert response.text
        assert "吐槽中断" not in response.text

    def test_json_roast_from_real_agent(self, test_client, fake_scraper):
        app.dependency_overrides[get_scraper] = lambda: fake_scraper
        app.dependency_overrides[get_roast_service] = lambda: RoastService(model="test")

        response = test_client.post("/roast", json={"userId": "ahbei"})

        assert response.status_code == 200
        assert response.json()["roast"]


class TestRoastWithRealScraper:
    """Drive the endpoint through the real scraper against mocked Douban pages."""

    def test_scrapes_two_pages_then_roasts(
        self, test_client, respx_mock, fake_roast_service, monkeypatch
    ):
        monkeypatch.setattr(
            "src.services.douban_scraper._polite_delay", AsyncMock(return_value=None)
        )
        app.dependency_overrides[get_roast_service] = lambda: fake_roast_service
        first = f"{DOUBAN_HOST}/people/ahbei/collect"
        second = f"{first}?start=15&sort=time"
        pages = {
            first: make_listing_page(
                [make_item_html(title="活着"), make_item_html(title="霸王别姬")],
                next_href="/people/ahbei/collect?start=15&sort=time",
            ),
            second: make_listing_page([make_item_html(title="阳光灿烂的日子")]),
        }
        respx_mock.get(url__startswith=first).mock(
            side_effect=lambda request: httpx.Response(200, text=pages[str(request.url)])
        )

        response = test_client.post("/roast", json={"userId": "ahbei"})

        assert response.status_code == 200
        assert [m["title"] for m in response.json()["movies"]] == [
            "活着",
            "霸王别姬",
            "阳光灿烂的日子",
        ]
