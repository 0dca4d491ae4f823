"""Decoder for the ``$``-delimited route strings embedded in result pages.

Each candidate route is also rendered as a hidden form value
(``form#resultInfo input[name^="rt"]``), a flat token list alternating
place markers and movement markers::

    busstop$浄土寺$$$bus$市バス203系統$$0$1800$1800$h$0$16$id$busstop$四条烏丸$$$

Place markers are followed by name, platform and id. A bus/train marker
is followed by line, an empty field, fare, two durations in seconds,
hash, flag, stop count and stop id. A walk marker is followed by
distance in metres and duration in seconds.
"""

import logging

from bs4 import BeautifulSoup
from pydantic import ValidationError as PydanticValidationError

from ..core.models import Coordinate, Language, Route, RouteLeg, RouteSummary
from ..geo.coordinates import CoordinateResolver

logger = logging.getLogger(__name__)

PLACE_MARKERS = frozenset({"busstop", "station", "spot"})
TRANSIT_MARKERS = frozenset({"bus", "train"})
WALK_MARKER = "walk"

MIN_TOKENS = 10
PLACE_WIDTH = 4
TRANSIT_WIDTH = 10
WALK_WIDTH = 3


def _token(tokens: list[str], index: int) -> str:
    return tokens[index] if 0 <= index < len(tokens) else ""


def _to_int(value: str) -> int:
    try:
        return max(int(value), 0)
    except ValueError:
        return 0


def extract_packed_strings(soup: BeautifulSoup) -> list[str]:
    """Return the packed route strings of a result page, in document order."""
    packed = []
    form = soup.find("form", id="resultInfo")
    if form is None:
        return packed
    for element in form.find_all("input"):
        name = element.get("name") or ""
        value = element.get("value")
        if name.startswith("rt") and value:
            packed.append(value)
    return packed


class PackedSegmentDecoder:
    """Turns one packed route string into a Route with timeless legs."""

    def __init__(
        self,
        coordinates: CoordinateResolver | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.coordinates = coordinates
        self.log = log or logger

    def decode(self, packed: str, language: Language = "ja") -> Route | None:
        """Decode a packed route string.

        The fare field is ignored, fares come from the timetable panel.
        Depart/arrive stay empty at this layer.

        Returns:
            The route, or None when the string has fewer than ten tokens
            or yields no legs
        """
        tokens = packed.split("$")
        if len(tokens) < MIN_TOKENS:
            self.log.debug(f"Packed route too short ({len(tokens)} tokens)")
            return None

        try:
            legs = self._scan(tokens, language)
            if not legs:
                self.log.debug("Packed route produced no legs")
                return None
            transit_legs = sum(1 for leg in legs if leg.mode != "walk")
            return Route(
                summary=RouteSummary(
                    duration_min=sum(leg.duration_min for leg in legs),
                    transfers=max(transit_legs - 1, 0),
                    fare_jpy=sum(leg.fare_jpy or 0 for leg in legs),
                ),
                legs=legs,
            )
        except PydanticValidationError as e:
            self.log.warning(f"Packed route rejected: {e}")
            return None

    def _scan(self, tokens: list[str], language: Language) -> list[RouteLeg]:
        """Single forward pass over the tokens."""
        legs: list[RouteLeg] = []
        current_place = ""
        i = 0
        while i < len(tokens):
            marker = tokens[i]
            if marker in PLACE_MARKERS:
                current_place = _token(tokens, i + 1)
                i += PLACE_WIDTH
            elif marker in TRANSIT_MARKERS:
                legs.append(
                    self._leg(
                        mode=marker,
                        line=_token(tokens, i + 1) or None,
                        from_stop=current_place,
                        to_stop=self._next_place(tokens, i + TRANSIT_WIDTH),
                        # Primary duration is in-vehicle time.
                        duration_min=_to_int(_token(tokens, i + 4)) // 60,
                        stops=_to_int(_token(tokens, i + 8)) or None,
                        language=language,
                    )
                )
                i += TRANSIT_WIDTH
            elif marker == WALK_MARKER:
                legs.append(
                    self._leg(
                        mode="walk",
                        from_stop=current_place,
                        to_stop=self._next_place(tokens, i + WALK_WIDTH),
                        duration_min=_to_int(_token(tokens, i + 2)) // 60,
                        distance_km=_to_int(_token(tokens, i + 1)) / 1000,
                        language=language,
                    )
                )
                i += WALK_WIDTH
            else:
                i += 1
        return legs

    def decode_page(self, soup: BeautifulSoup, language: Language = "ja") -> list[Route]:
        """Decode every packed route on a page, skipping undecodable ones."""
        routes = []
        for index, packed in enumerate(extract_packed_strings(soup)):
            route = self.decode(packed, language)
            if route is None:
                self.log.info(f"Packed route {index} is not decodable, skipped")
                continue
            routes.append(route)
        return routes

    @staticmethod
    def _next_place(tokens: list[str], start: int) -> str:
        """Name of the first place marker before the next movement marker."""
        for j in range(start, len(tokens)):
            if tokens[j] in TRANSIT_MARKERS or tokens[j] == WALK_MARKER:
                break
            if tokens[j] in PLACE_MARKERS:
                return _token(tokens, j + 1)
        return ""

    def _leg(
        self,
        mode: str,
        from_stop: str,
        to_stop: str,
        language: Language,
        **fields: object,
    ) -> RouteLeg:
        from_coord = self._resolve(from_stop, language)
        to_coord = self._resolve(to_stop, language)
        return RouteLeg(
            mode=mode,
            from_stop=from_stop or None,
            to_stop=to_stop or None,
            from_lat=from_coord.lat if from_coord else None,
            from_lng=from_coord.lng if from_coord else None,
            to_lat=to_coord.lat if to_coord else None,
            to_lng=to_coord.lng if to_coord else None,
            **fields,
        )

    def _resolve(self, name: str, language: Language) -> Coordinate | None:
        if not name or self.coordinates is None:
            return None
        return self.coordinates.resolve(name, language)
