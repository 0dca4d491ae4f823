"""Merging of the two route representations found on one result page."""

import logging
from datetime import date
from itertools import zip_longest

from bs4 import BeautifulSoup
from pydantic import ValidationError as PydanticValidationError

from ..core.models import Language, Route, RouteLeg
from ..geo.coordinates import CoordinateResolver
from .packed import PackedSegmentDecoder
from .timetable import TimetableFragmentDecoder

logger = logging.getLogger(__name__)

NO_RESULT_PHRASES = (
    "該当する結果が見つかりませんでした",
    "検索結果がありません",
    "経路が見つかりませんでした",
    "見つかりません",
    "No results found",
    "No route found",
)

_COORDINATE_FIELDS = ("from_lat", "from_lng", "to_lat", "to_lng")


def has_no_results(soup: BeautifulSoup) -> bool:
    """Whether the page body states that the search found nothing."""
    body = soup.body or soup
    text = body.get_text()
    return any(phrase in text for phrase in NO_RESULT_PHRASES)


def _is_synthetic(route: Route) -> bool:
    """A timetable route built from panel totals only."""
    if len(route.legs) != 1:
        return False
    leg = route.legs[0]
    return leg.from_stop is None and leg.depart_time is None


class ItineraryReconciler:
    """Pairs timetable and packed routes by position and merges each pair.

    Timetable routes own the summary (times, transfers, fare). Leg detail
    comes from the timetable when the panel had a detail table, with
    coordinates filled in from the packed route; otherwise the packed legs
    are used as they are.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log or logger

    def merge(self, timetable_routes: list[Route], packed_routes: list[Route]) -> list[Route]:
        if not timetable_routes and not packed_routes:
            return []
        if not packed_routes:
            self.log.debug("Using timetable routes only")
            return list(timetable_routes)
        if not timetable_routes:
            self.log.debug("Using packed routes only, times unknown")
            return list(packed_routes)

        merged = []
        for index, (timetable, packed) in enumerate(zip_longest(timetable_routes, packed_routes)):
            if timetable is None or packed is None:
                # Counts differ; the unmatched route is passed through as-is.
                merged.append(timetable or packed)
                continue
            merged.append(self._merge_pair(index, timetable, packed))
        return merged

    def _merge_pair(self, index: int, timetable: Route, packed: Route) -> Route:
        if _is_synthetic(timetable):
            self.log.debug(f"Route {index}: timetable summary with packed legs")
            legs = packed.legs
        else:
            self.log.debug(f"Route {index}: timetable legs with packed coordinates")
            legs = [
                self._backfill(leg, packed.legs[i] if i < len(packed.legs) else None)
                for i, leg in enumerate(timetable.legs)
            ]
        try:
            return Route(summary=timetable.summary, legs=legs)
        except PydanticValidationError as e:
            self.log.warning(f"Route {index}: merge rejected, keeping timetable route: {e}")
            return timetable

    @staticmethod
    def _backfill(leg: RouteLeg, source: RouteLeg | None) -> RouteLeg:
        if source is None:
            return leg
        missing = {
            field: getattr(source, field)
            for field in _COORDINATE_FIELDS
            if getattr(leg, field) is None and getattr(source, field) is not None
        }
        return leg.model_copy(update=missing) if missing else leg


class RoutePageParser:
    """Turns one raw result page into a list of routes.

    An empty list is the not-found result: either the page says so, or
    neither representation could be decoded.
    """

    def __init__(
        self,
        coordinates: CoordinateResolver | None = None,
        timetable: TimetableFragmentDecoder | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.log = log or logger
        self.packed = PackedSegmentDecoder(coordinates, log=log)
        self.timetable = timetable or TimetableFragmentDecoder(log=log)
        self.reconciler = ItineraryReconciler(log=log)

    def parse(
        self, html: str, language: Language = "ja", base_date: date | None = None
    ) -> list[Route]:
        """Decode both representations of a page and merge them.

        Args:
            html: Raw result page
            language: Language of the reference tables used for coordinates
            base_date: Query date, used only when the page does not carry one
        """
        soup = BeautifulSoup(html, "html.parser")
        if has_no_results(soup):
            self.log.info("Result page reports no routes")
            return []

        timetable_routes = self.timetable.decode(soup, base_date)
        packed_routes = self.packed.decode_page(soup, language)
        self.log.debug(
            f"Decoded {len(timetable_routes)} timetable and {len(packed_routes)} packed routes"
        )
        routes = self.reconciler.merge(timetable_routes, packed_routes)
        self.log.info(f"Extracted {len(routes)} routes")
        return routes
