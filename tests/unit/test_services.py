"""Unit tests for route search and service wiring."""

from unittest.mock import MagicMock

import pytest
import responses

from kyoto_transit.budget.limiter import ResponseBudgeter
from kyoto_transit.core.config import Settings
from kyoto_transit.core.exceptions import NetworkError, RouteNotFoundError, ValidationError
from kyoto_transit.core.fetcher import RouteHtmlFetcher
from kyoto_transit.services.container import build_services
from kyoto_transit.services.route_search import RouteSearchService

SEARCH_URL = "https://example.test/search_result.php"


class TestRouteSearchService:
    """Test RouteSearchService."""

    @pytest.fixture
    def routes(self, services):
        return services.routes

    @responses.activate
    def test_search_by_name(self, routes, detailed_schedule_html):
        responses.add(responses.GET, SEARCH_URL, body=detailed_schedule_html, status=200)

        result = routes.search_by_name(
            "銀閣寺", "四条烏丸", "2025-07-07T17:20", "departure", "ja", 4000
        )

        assert result["truncated"] is False
        assert len(result["routes"]) == 1
        route = result["routes"][0]
        assert route["summary"]["depart"] == "2025-07-07T17:28"
        assert route["summary"]["fare_jpy"] == 230
        assert route["legs"][0]["from"] == "浄土寺 (京都市バス)"
        assert route["legs"][0]["from_lat"] == 35.0235

    @responses.activate
    def test_search_by_geo(self, routes, midnight_html):
        responses.add(responses.GET, SEARCH_URL, body=midnight_html, status=200)

        result = routes.search_by_geo(
            "35.0037,135.7596", "34.9858,135.7588", "2025-07-07T23:40", "departure", "ja", 4000
        )

        assert result["routes"][0]["summary"]["arrive"] == "2025-07-08T00:25"
        assert "fn=&" in responses.calls[0].request.url

    @responses.activate
    def test_request_date_used_when_page_has_none(self, routes, coarse_results_html):
        html = coarse_results_html.replace('<input type="hidden" name="dt" value="2025/07/7">', "")
        responses.add(responses.GET, SEARCH_URL, body=html, status=200)

        result = routes.search_by_name("京都", "銀閣寺", "2025-08-01T08:00", "departure", "ja", 4000)
        assert result["routes"][0]["summary"]["depart"] == "2025-08-01T08:10"

    @responses.activate
    def test_no_results(self, routes, no_results_html):
        responses.add(responses.GET, SEARCH_URL, body=no_results_html, status=200)

        with pytest.raises(RouteNotFoundError, match="銀閣寺"):
            routes.search_by_name("京都", "銀閣寺", "2025-07-07T17:20", "departure", "ja", 4000)

    @responses.activate
    def test_invalid_request_not_fetched(self, routes):
        with pytest.raises(ValidationError, match="datetime"):
            routes.search_by_name("京都", "銀閣寺", "tomorrow", "departure", "ja", 4000)
        with pytest.raises(ValidationError):
            routes.search_by_geo("35.0", "34.9858,135.7588", "2025-07-07T17:20", "departure", "ja", 4000)
        with pytest.raises(ValidationError):
            routes.search_by_name("京都", "銀閣寺", "2025-07-07T17:20", "soon", "ja", 4000)
        assert len(responses.calls) == 0

    @responses.activate
    def test_upstream_failure(self, routes):
        responses.add(responses.GET, SEARCH_URL, status=502)

        with pytest.raises(NetworkError):
            routes.search_by_name("京都", "銀閣寺", "2025-07-07T17:20", "departure", "ja", 4000)

    @responses.activate
    def test_routes_budgeted(self, routes, coarse_results_html):
        """Test whole routes are dropped from the end to fit the budget."""
        responses.add(responses.GET, SEARCH_URL, body=coarse_results_html, status=200)

        full = routes.search_by_name("京都", "銀閣寺", "2025-07-07T08:00", "departure", "ja", 4000)
        budget = routes.budgeter.count_tokens({"routes": full["routes"][:1]})
        result = routes.search_by_name("京都", "銀閣寺", "2025-07-07T08:00", "departure", "ja", budget)

        assert result["truncated"] is True
        assert result["routes"] == full["routes"][:1]

    def test_parser_injected(self, store, budgeter):
        parser = MagicMock()
        parser.parse.return_value = []
        fetcher = MagicMock(spec=RouteHtmlFetcher)
        fetcher.fetch_by_name.return_value = "<html></html>"
        service = RouteSearchService(store, fetcher, budgeter, parser=parser)

        with pytest.raises(RouteNotFoundError):
            service.search_by_name("京都", "銀閣寺", "2025-07-07T08:00", "first", "en", 100)
        fetcher.fetch_by_name.assert_called_once()
        assert parser.parse.call_args.args[1] == "en"


class TestBuildServices:
    def test_wiring(self, store):
        settings = Settings(base_url="https://example.test/", timeout=5, retries=2)
        services = build_services(settings, store)

        assert services.store is store
        assert services.routes.store is store
        assert services.stops.store is store
        assert services.routes.budgeter is services.budgeter
        assert services.stops.budgeter is services.budgeter
        assert isinstance(services.budgeter, ResponseBudgeter)
        assert services.routes.fetcher.search_url == "https://example.test/search_result.php"
        assert services.routes.fetcher.timeout == 5
        assert services.routes.fetcher.retries == 2
        services.close()

    def test_store_from_settings(self, data_dir):
        services = build_services(Settings(data_dir=data_dir))
        assert services.store.data_dir == data_dir
        assert not services.store.is_loaded("ja")
        services.close()
