"""Route search between named places or coordinates."""

import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..budget.limiter import ResponseBudgeter
from ..core.exceptions import RouteNotFoundError, ValidationError
from ..core.fetcher import RouteHtmlFetcher
from ..core.models import (
    Coordinate,
    DateTimeType,
    Language,
    Route,
    RouteSearchByGeoRequest,
    RouteSearchByNameRequest,
)
from ..core.reference import ReferenceDataStore
from ..geo.coordinates import CoordinateResolver
from ..parsing.reconciler import RoutePageParser

logger = logging.getLogger(__name__)


class RouteSearchService:
    """Fetches, extracts and budgets candidate routes."""

    def __init__(
        self,
        store: ReferenceDataStore,
        fetcher: RouteHtmlFetcher,
        budgeter: ResponseBudgeter,
        parser: RoutePageParser | None = None,
    ):
        self.store = store
        self.fetcher = fetcher
        self.budgeter = budgeter
        self.parser = parser or RoutePageParser(CoordinateResolver(store))

    def search_by_name(
        self,
        from_station: str,
        to_station: str,
        search_datetime: str | datetime,
        datetime_type: DateTimeType,
        language: Language,
        max_tokens: int,
    ) -> dict[str, Any]:
        """Search routes between two stop or landmark names.

        Returns:
            ``{"routes": [...], "truncated": bool}``

        Raises:
            ValidationError: If the request is malformed
            RouteNotFoundError: If the result page holds no route
            ConfigurationError: If reference data is unavailable
            NetworkError: If the upstream site cannot be reached
            ScrapingError: If the upstream site answers with an unusable page
        """
        try:
            request = RouteSearchByNameRequest(
                from_station=from_station,
                to_station=to_station,
                datetime=search_datetime,
                datetime_type=datetime_type,
                language=language,
                max_tokens=max_tokens,
            )
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e) from e

        logger.info(f"Searching routes {request.from_station} → {request.to_station}")
        html = self.fetcher.fetch_by_name(
            request.from_station,
            request.to_station,
            request.search_datetime,
            request.datetime_type,
            request.language,
        )
        routes = self.parser.parse(html, request.language, request.search_datetime.date())
        if not routes:
            raise RouteNotFoundError(
                f"No route found from {request.from_station} to {request.to_station}"
            )
        return self._budget(routes, request.max_tokens)

    def search_by_geo(
        self,
        from_latlng: str | Coordinate,
        to_latlng: str | Coordinate,
        search_datetime: str | datetime,
        datetime_type: DateTimeType,
        language: Language,
        max_tokens: int,
    ) -> dict[str, Any]:
        """Search routes between two ``"lat,lng"`` coordinates.

        Raises:
            ValidationError: If the request is malformed
            RouteNotFoundError: If the result page holds no route
        """
        try:
            request = RouteSearchByGeoRequest(
                from_latlng=from_latlng,
                to_latlng=to_latlng,
                datetime=search_datetime,
                datetime_type=datetime_type,
                language=language,
                max_tokens=max_tokens,
            )
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e) from e

        logger.info(f"Searching routes {request.from_latlng} → {request.to_latlng}")
        html = self.fetcher.fetch_by_coordinates(
            request.from_latlng,
            request.to_latlng,
            request.search_datetime,
            request.datetime_type,
            request.language,
        )
        routes = self.parser.parse(html, request.language, request.search_datetime.date())
        if not routes:
            raise RouteNotFoundError(
                f"No route found from {request.from_latlng} to {request.to_latlng}"
            )
        return self._budget(routes, request.max_tokens)

    def _budget(self, routes: list[Route], max_tokens: int) -> dict[str, Any]:
        budgeted = self.budgeter.limit(
            {"routes": [route.to_payload() for route in routes]}, max_tokens
        )
        return {
            "routes": budgeted.payload.get("routes", []),
            "truncated": budgeted.truncated,
        }
