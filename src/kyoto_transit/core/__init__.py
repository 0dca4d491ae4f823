"""Core transit search functionality."""

from .config import Settings
from .exceptions import (
    ConfigurationError,
    NetworkError,
    RouteNotFoundError,
    ScrapingError,
    StopNotFoundError,
    TransitSearchError,
    ValidationError,
)
from .models import Coordinate, Route, RouteLeg, RouteSummary
from .reference import ReferenceDataStore

__all__ = [
    "Coordinate",
    "Route",
    "RouteLeg",
    "RouteSummary",
    "ReferenceDataStore",
    "Settings",
    "TransitSearchError",
    "ConfigurationError",
    "StopNotFoundError",
    "RouteNotFoundError",
    "ScrapingError",
    "NetworkError",
    "ValidationError",
]
