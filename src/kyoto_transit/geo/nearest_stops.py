"""Nearest-stop hints used to seed the upstream route search.

The upstream site searches from a list of candidate stops with walking
times (``name,minutes,name,minutes``). These hints are computed here from
the reference tables with a flat-earth distance that is good enough for
ranking inside Kyoto.
"""

import logging
import math
import re
from typing import NamedTuple

from ..core.models import (
    CandidateStopHint,
    Coordinate,
    Language,
    PlaceHints,
    ReferenceTables,
    StationEntry,
)
from ..core.reference import ReferenceDataStore

logger = logging.getLogger(__name__)

# Metres per degree of longitude over metres per degree of latitude near Kyoto.
LAT_LNG_RATIO = 912.8816392747891 / 1109.4063947762538
METERS_PER_DEGREE = 111_320.0
WALK_METERS_PER_MINUTE = 5000.0 / 60.0
MAX_WALK_MINUTES = 15

DEFAULT_COORDINATE = Coordinate(lat=35.0, lng=135.7)

_OPERATOR_SUFFIX_RE = re.compile(r"\([^)]+\)$")


class LandmarkOverride(NamedTuple):
    """Curated hints for a place the geometric search gets wrong."""

    landmark_id: str
    hints: tuple[tuple[str, int], ...]
    # Names matched instead of the landmark table name, per language.
    fixed_names: dict[str, str] | None = None
    send_coordinate: bool = True


# The upstream site special-cases these places; adding one means editing this table.
LANDMARK_OVERRIDES: tuple[LandmarkOverride, ...] = (
    LandmarkOverride(
        landmark_id="LM00000534",  # Togetsukyo bridge, Arashiyama
        hints=(("嵐山(阪急)", 0), ("嵐山(京福電気鉄道)", 0), ("嵯峨嵐山", 0)),
        fixed_names={"ja": "嵐山", "en": "Arashiyama"},
        send_coordinate=False,
    ),
    LandmarkOverride(
        landmark_id="LM00000001",  # Kiyomizu-dera
        hints=(
            ("五条坂(京都市バス)", 8),
            ("五条坂(京阪バス)", 8),
            ("清水道(京都市バス)", 8),
            ("清水道(京阪バス)", 8),
        ),
    ),
    LandmarkOverride(
        landmark_id="LM00002101",  # Ginkaku-ji
        hints=(("銀閣寺前(京都市バス)", 6), ("銀閣寺道(京都市バス)", 10)),
    ),
)


def squared_distance(origin: Coordinate, lat: float, lng: float) -> float:
    """Squared distance in latitude degrees, longitude scaled to latitude."""
    return (origin.lat - lat) ** 2 + ((origin.lng - lng) * LAT_LNG_RATIO) ** 2


def walk_minutes(distance: float) -> int:
    """Estimated walking minutes for a squared distance, capped."""
    if distance <= 0:
        return 0
    meters = math.sqrt(distance) * METERS_PER_DEGREE
    return min(math.ceil(meters / WALK_METERS_PER_MINUTE), MAX_WALK_MINUTES)


class NearestStopResolver:
    """Ranks reference stops by proximity to a coordinate or a named place."""

    def __init__(
        self, store: ReferenceDataStore, log: logging.Logger | None = None
    ) -> None:
        self.store = store
        self.log = log or logger

    def nearest(
        self,
        coordinate: Coordinate,
        language: Language = "ja",
        origin_name: str = "",
        origin_kind: str = "S",
        limit: int | None = None,
    ) -> list[CandidateStopHint]:
        """Rank the stops closest to ``coordinate``.

        A stop whose base name and type equal the search origin is pinned to
        distance zero. When no rail station makes the ranking, the nearest
        one is appended, since the upstream search routes through rail.

        Args:
            coordinate: Search origin
            language: Reference table language
            origin_name: Base name of the origin stop, if the origin is a stop
            origin_kind: Origin type (R rail, B bus, S spot)
            limit: Ranking size; defaults to the reference coefficient

        Returns:
            Hints in ascending distance order

        Raises:
            ConfigurationError: If the reference tables are not available
        """
        tables = self.store.tables(language)
        size = limit or tables.coefficients.near_spots_number

        ranking: list[tuple[float, str, StationEntry]] = []
        nearest_rail: tuple[float, str, StationEntry] | None = None

        for name, entry in tables.stations.items():
            if origin_name and entry.selectname == origin_name and entry.ekidiv == origin_kind:
                distance = 0.0
            else:
                distance = squared_distance(coordinate, entry.lat, entry.lng)

            ranked = (distance, name, entry)
            for position, (other_distance, _, _) in enumerate(ranking):
                if other_distance > distance:
                    ranking.insert(position, ranked)
                    del ranking[size:]
                    break
            else:
                if len(ranking) < size:
                    ranking.append(ranked)

            if entry.is_rail and (nearest_rail is None or nearest_rail[0] > distance):
                nearest_rail = ranked

        if nearest_rail is not None and not any(entry.is_rail for _, _, entry in ranking):
            ranking.append(nearest_rail)

        return [
            CandidateStopHint(
                name=name,
                walk_minutes=walk_minutes(distance),
                distance=distance,
                kind=entry.ekidiv,
            )
            for distance, name, entry in ranking
        ]

    def hints_for_name(self, name: str, language: Language = "ja") -> PlaceHints:
        """Resolve a place name into hints, a coordinate and a place type.

        Order: curated landmark overrides, a full ``name(operator)`` stop key,
        the group of stops sharing the base name (rail preferred, coordinates
        averaged), an exact landmark name, then a bare default.
        """
        tables = self.store.tables(language)

        override = self._override_for(name, tables)
        if override is not None:
            return override

        direct = tables.stations.get(name)
        if direct is not None:
            coordinate = Coordinate(lat=direct.lat, lng=direct.lng)
            return PlaceHints(
                hints=self.nearest(
                    coordinate, language, origin_name=direct.selectname, origin_kind=direct.ekidiv
                ),
                coordinate=coordinate,
                kind=direct.ekidiv,
            )

        base_name = _OPERATOR_SUFFIX_RE.sub("", name)
        grouped = self._grouped_stop(name, base_name, tables)
        if grouped is not None:
            coordinate, kind = grouped
            return PlaceHints(
                hints=self.nearest(coordinate, language, origin_name=base_name, origin_kind=kind),
                coordinate=coordinate,
                kind=kind,
            )

        for landmark in tables.landmarks.values():
            if landmark.name == name and landmark.lat and landmark.lng:
                coordinate = Coordinate(lat=landmark.lat, lng=landmark.lng)
                return PlaceHints(
                    hints=self.nearest(coordinate, language),
                    coordinate=coordinate,
                    kind="S",
                )

        self.log.warning(f"Place not found in reference data: {name}, using default pattern")
        return PlaceHints(
            hints=[CandidateStopHint(name=name, walk_minutes=0, distance=0.0)],
            coordinate=DEFAULT_COORDINATE,
            kind="B",
        )

    def _override_for(self, name: str, tables: ReferenceTables) -> PlaceHints | None:
        for override in LANDMARK_OVERRIDES:
            landmark = tables.landmarks.get(override.landmark_id)
            if override.fixed_names is not None:
                matched = name == override.fixed_names.get(tables.language)
            else:
                matched = landmark is not None and name == landmark.name
            if not matched:
                continue

            coordinate = None
            if override.send_coordinate and landmark is not None and landmark.lat and landmark.lng:
                coordinate = Coordinate(lat=landmark.lat, lng=landmark.lng)
            self.log.debug(f"Using curated hints for '{name}'")
            return PlaceHints(
                hints=[
                    CandidateStopHint(name=hint, walk_minutes=minutes, distance=0.0)
                    for hint, minutes in override.hints
                ],
                coordinate=coordinate,
                kind="S",
            )
        return None

    @staticmethod
    def _grouped_stop(
        name: str, base_name: str, tables: ReferenceTables
    ) -> tuple[Coordinate, str] | None:
        select = tables.station_select.get(base_name)
        if select is None:
            return None

        rail: list[StationEntry] = []
        bus: list[StationEntry] = []
        targets: list[StationEntry] = []
        for member in select.stationnames:
            entry = tables.stations.get(member.stationname)
            if entry is None:
                continue
            if name != base_name and member.stationname == name:
                targets = [entry]
                break
            if entry.is_rail:
                rail.append(entry)
            elif entry.ekidiv == "B":
                bus.append(entry)

        if not targets:
            targets = rail or bus
        if not targets:
            return None

        kind = targets[0].ekidiv
        lat = sum(entry.lat for entry in targets) / len(targets)
        lng = sum(entry.lng for entry in targets) / len(targets)
        return Coordinate(lat=lat, lng=lng), kind
