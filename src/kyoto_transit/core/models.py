"""Data models for Kyoto transit search."""

import re
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Language = Literal["ja", "en"]
DateTimeType = Literal["departure", "arrival", "first", "last"]
LegMode = Literal["bus", "train", "walk"]

# Local wall-clock timestamps, minute precision, no timezone.
TIMESTAMP_PATTERN = r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}$"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M"


class Coordinate(BaseModel):
    """A latitude/longitude pair."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90, description="Latitude")
    lng: float = Field(..., ge=-180, le=180, description="Longitude")

    @classmethod
    def parse(cls, text: str) -> "Coordinate":
        """Parse a ``"lat,lng"`` string.

        Raises:
            ValueError: If the text is not two comma-separated numbers
        """
        parts = text.split(",")
        if len(parts) != 2:
            raise ValueError('Invalid lat,lng format. Expected "lat,lng"')
        try:
            lat, lng = float(parts[0]), float(parts[1])
        except ValueError:
            raise ValueError("Invalid lat,lng format. Values must be numbers") from None
        return cls(lat=lat, lng=lng)

    def __str__(self) -> str:
        return f"{self.lat},{self.lng}"


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


class StationEntry(BaseModel):
    """One row of the master station table, keyed by ``name(operator)``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    lat: float
    lng: float
    ekidiv: str = Field("B", description="R for rail, B for bus")
    selectname: str = Field("", description="Station name without operator suffix")

    @property
    def is_rail(self) -> bool:
        return self.ekidiv == "R"


class StationName(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    stationname: str
    companyid: int | None = None


class StationSelect(BaseModel):
    """Groups every operator's stop sharing one base name."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    stationnames: list[StationName] = Field(default_factory=list)
    kana: str = ""


class Company(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    ekidiv: str = ""
    name: str = ""


class LandmarkInfo(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    yomi: str = ""
    lat: float | None = None
    lng: float | None = None
    category: int = 0


class Coefficients(BaseModel):
    """Named coefficients shipped with the master data."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    near_spots_number: int = Field(10, alias="SEARCH_NEAR_SPOTS_NUMBER", gt=0)
    first_departure_time: str = Field("05:00", alias="SEARCH_FIRST_DEPARTURE_TIME")
    # Upstream key is misspelled; keep it as shipped.
    last_arrival_time: str = Field("23:30", alias="SESRCH_LAST_ARRIVAL_TIME")

    @field_validator("near_spots_number", mode="before")
    @classmethod
    def _default_spots(cls, value: Any) -> Any:
        return value or 10

    @field_validator("first_departure_time", mode="before")
    @classmethod
    def _default_first(cls, value: Any) -> Any:
        return value or "05:00"

    @field_validator("last_arrival_time", mode="before")
    @classmethod
    def _default_last(cls, value: Any) -> Any:
        return value or "23:30"


class ReferenceTables(BaseModel):
    """All static reference data for one language.

    The station mapping keeps the source file's key order, which makes
    substring lookups deterministic.
    """

    model_config = ConfigDict(frozen=True)

    language: Language
    companies: dict[str, Company] = Field(default_factory=dict)
    station_select: dict[str, StationSelect] = Field(default_factory=dict)
    stations: dict[str, StationEntry] = Field(default_factory=dict)
    landmarks: dict[str, LandmarkInfo] = Field(default_factory=dict)
    coefficients: Coefficients = Field(default_factory=Coefficients)

    @classmethod
    def from_raw(
        cls,
        language: Language,
        master: dict[str, Any],
        landmark_data: dict[str, Any] | None = None,
    ) -> "ReferenceTables":
        """Build tables from the decoded ``master.json`` / ``landmark-data.json``."""
        return cls(
            language=language,
            companies=master.get("company") or {},
            station_select=master.get("stationselect") or {},
            stations=master.get("station") or {},
            landmarks=(landmark_data or {}).get("data") or {},
            coefficients=master.get("coefficient") or {},
        )


class StopRecord(BaseModel):
    """A bus stop or train station."""

    model_config = ConfigDict(frozen=True)

    id: str
    name_ja: str
    name_en: str
    kind: Literal["bus_stop", "train_station"]
    lat: float
    lng: float
    agency: str | None = None


class LandmarkRecord(BaseModel):
    """A named landmark (temple, bridge, museum...)."""

    model_config = ConfigDict(frozen=True)

    id: str
    name_ja: str
    name_en: str
    lat: float | None = None
    lng: float | None = None
    category: str = "0"


class StopCandidate(BaseModel):
    """One stop-search hit."""

    name: str
    kind: Literal["bus_stop", "train_station", "landmark"]
    id: str


# ---------------------------------------------------------------------------
# Nearest-stop hints
# ---------------------------------------------------------------------------


class CandidateStopHint(BaseModel):
    """A nearby stop suggested to the upstream search."""

    model_config = ConfigDict(frozen=True)

    name: str
    walk_minutes: int = Field(..., ge=0)
    distance: float = Field(..., ge=0, description="Squared anisotropic distance")
    kind: str = "B"


class PlaceHints(BaseModel):
    """Hints, coordinate and place type resolved for one named place."""

    model_config = ConfigDict(frozen=True)

    hints: list[CandidateStopHint] = Field(default_factory=list)
    coordinate: Coordinate | None = None
    kind: str = Field("B", description="R rail, B bus, S spot")

    def hint_string(self) -> str:
        """Format hints as the upstream ``name,minutes,name,minutes`` list."""
        return ",".join(f"{hint.name},{hint.walk_minutes}" for hint in self.hints)


# ---------------------------------------------------------------------------
# Itineraries
# ---------------------------------------------------------------------------


class RouteLeg(BaseModel):
    """One contiguous single-mode segment of a route."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    mode: LegMode
    line: str | None = Field(None, description="Line or route name")
    from_stop: str | None = Field(None, alias="from")
    to_stop: str | None = Field(None, alias="to")
    from_lat: float | None = None
    from_lng: float | None = None
    to_lat: float | None = None
    to_lng: float | None = None
    depart_time: str | None = Field(None, pattern=TIMESTAMP_PATTERN)
    arrive_time: str | None = Field(None, pattern=TIMESTAMP_PATTERN)
    duration_min: int = Field(0, ge=0)
    stops: int | None = Field(None, ge=0)
    fare_jpy: int | None = Field(None, ge=0)
    distance_km: float | None = Field(None, ge=0)

    @model_validator(mode="after")
    def _walk_is_free(self) -> "RouteLeg":
        if self.mode == "walk" and self.fare_jpy:
            raise ValueError("walk legs cannot carry a fare")
        return self

    @property
    def has_coordinates(self) -> bool:
        return None not in (self.from_lat, self.from_lng, self.to_lat, self.to_lng)

    def __str__(self) -> str:
        label = self.line or self.mode
        return f"{self.from_stop or '?'} → {self.to_stop or '?'} ({label})"


class RouteSummary(BaseModel):
    """Whole-route timing and fare; authoritative over leg sums."""

    model_config = ConfigDict(frozen=True)

    depart: str = Field("", pattern=r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2})?$")
    arrive: str = Field("", pattern=r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2})?$")
    duration_min: int = Field(0, ge=0)
    transfers: int = Field(0, ge=0)
    fare_jpy: int = Field(0, ge=0)

    @model_validator(mode="after")
    def _arrive_not_before_depart(self) -> "RouteSummary":
        if self.depart and self.arrive and self.arrive < self.depart:
            raise ValueError(f"arrive {self.arrive} precedes depart {self.depart}")
        return self


class Route(BaseModel):
    """A complete candidate itinerary."""

    model_config = ConfigDict(frozen=True)

    summary: RouteSummary
    legs: list[RouteLeg] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _legs_in_time_order(self) -> "Route":
        for current, following in zip(self.legs, self.legs[1:]):
            if (
                current.arrive_time
                and following.depart_time
                and current.arrive_time > following.depart_time
            ):
                raise ValueError(
                    f"leg arriving {current.arrive_time} is followed by a leg "
                    f"departing {following.depart_time}"
                )
        return self

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the caller-facing JSON shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def __str__(self) -> str:
        return (
            f"{self.summary.depart or '?'} → {self.summary.arrive or '?'} "
            f"({self.summary.duration_min}分, {self.summary.fare_jpy}円)"
        )


class BudgetedPayload(BaseModel):
    """A JSON-shaped payload plus whether the budgeter cut anything."""

    payload: Any
    truncated: bool = False


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class _BudgetedRequest(BaseModel):
    language: Language = Field(..., description="Response language")
    max_tokens: int = Field(..., gt=0, description="Maximum response tokens")


class StopSearchRequest(_BudgetedRequest):
    """Request model for substring stop search."""

    query: str = Field(..., description="Substring to search for")


class _RouteSearchRequest(_BudgetedRequest):
    model_config = ConfigDict(populate_by_name=True)

    datetime_type: DateTimeType = Field(..., description="Meaning of the datetime")
    search_datetime: datetime = Field(..., alias="datetime")

    @field_validator("search_datetime", mode="before")
    @classmethod
    def _check_iso(cls, value: Any) -> Any:
        if isinstance(value, str) and not re.match(
            r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}", value
        ):
            raise ValueError(
                'Invalid datetime format. Expected ISO-8601 (e.g. "2025-07-07T00:43")'
            )
        return value

    @field_validator("search_datetime")
    @classmethod
    def _local_time(cls, value: datetime) -> datetime:
        return value.replace(tzinfo=None, second=0, microsecond=0)


class RouteSearchByNameRequest(_RouteSearchRequest):
    """Request model for route search between two named places."""

    from_station: str = Field(..., min_length=1)
    to_station: str = Field(..., min_length=1)

    @field_validator("from_station", "to_station")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Station name cannot be empty")
        return value.strip()


class RouteSearchByGeoRequest(_RouteSearchRequest):
    """Request model for route search between two coordinates."""

    from_latlng: Coordinate
    to_latlng: Coordinate

    @field_validator("from_latlng", "to_latlng", mode="before")
    @classmethod
    def _parse_latlng(cls, value: Any) -> Any:
        if isinstance(value, str):
            return Coordinate.parse(value)
        return value
