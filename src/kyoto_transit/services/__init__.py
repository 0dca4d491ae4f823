"""Search services combining reference data, fetching and extraction."""

from .container import TransitServices, build_services
from .route_search import RouteSearchService
from .stop_search import StopSearchService, relevance_score

__all__ = [
    "RouteSearchService",
    "StopSearchService",
    "TransitServices",
    "build_services",
    "relevance_score",
]
