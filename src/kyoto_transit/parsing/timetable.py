"""Decoder for the human-oriented timetable panels of a result page.

Each candidate route is rendered as a panel whose headline row carries
three cells::

    <td class="time_1">17:28発 →18:00着</td>
    <td class="time_2">所要時間：32分</td>
    <td class="time_3">乗換：0回　運賃：230円</td>

followed, when the site renders details, by a ``table.route_detail`` of
alternating ``tr.place`` and ``tr.transit`` rows. Clock times carry no
date; they are anchored to the query date found in ``input[name=dt]``
and rolled over midnight by :func:`resolve_clock`.
"""

import copy
import logging
import re
from datetime import date, datetime, time, timedelta
from typing import NamedTuple

from bs4 import BeautifulSoup, Tag
from pydantic import ValidationError as PydanticValidationError

from ..core.models import TIMESTAMP_FORMAT, LegMode, Route, RouteLeg, RouteSummary

logger = logging.getLogger(__name__)

HEADLINE_RE = re.compile(
    r"(\d{1,2}):(\d{2})\s*(?:発|dep\.?).*?(\d{1,2}):(\d{2})\s*(?:着|arr\.?)",
    re.IGNORECASE | re.DOTALL,
)
DEPART_RE = re.compile(r"(\d{1,2}):(\d{2})\s*(?:発|dep)", re.IGNORECASE)
ARRIVE_RE = re.compile(r"(\d{1,2}):(\d{2})\s*(?:着|arr)", re.IGNORECASE)
TOTAL_DURATION_RE = re.compile(
    r"(?:所要時間|duration)\s*[：:]?\s*(\d+)\s*(?:分|min)", re.IGNORECASE
)
TRANSFERS_RE = re.compile(r"(?:乗換|transfers?)\s*[：:]?\s*(\d+)", re.IGNORECASE)
TOTAL_FARE_RE = re.compile(
    r"(?:運賃|fare)\s*[：:]?\s*[¥￥]?\s*(\d[\d,]*)", re.IGNORECASE
)
MINUTES_RE = re.compile(r"(\d+)\s*(?:分|min)", re.IGNORECASE)
COUNT_RE = re.compile(r"(\d+)\s*回")
YEN_RE = re.compile(r"[¥￥]?\s*(\d[\d,]*)\s*(?:円|yen)?", re.IGNORECASE)
STOPS_RE = re.compile(r"(\d+)\s*(?:停留所|駅|stops?)", re.IGNORECASE)
BASE_DATE_RE = re.compile(r"^(\d{4})[/-](\d{1,2})[/-](\d{1,2})")

# Annotations rendered around a stop name: platform, ticket and direction notes.
_NAME_NOISE_RE = re.compile(r"【[^】]*】|\[[^\]]*\]|［[^］]*］|\S*のりば|\S*方面")
_NAME_NOISE_CLASSES = ("platform", "ticket", "direction", "note")
_WHITESPACE_RE = re.compile(r"\s+")

WALK_TOKENS = ("徒歩", "walk")
BUS_TOKENS = ("バス", "系統", "bus")
TRAIN_TOKENS = ("電車", "鉄道", "地下鉄", "線", "train", "subway", "line")

# Rollover thresholds for clock times that carry no date.
EARLY_MORNING_LAST_HOUR = 5
LATE_EVENING_FIRST_HOUR = 18
MAX_BACKWARD_MINUTES = 60


def resolve_clock(previous: datetime, hour: int, minute: int) -> datetime:
    """Anchor a bare clock time relative to the previous anchored time.

    The time moves to the next day when it is early morning (00-05) after a
    previous time in the evening (18 or later), or when keeping the same day
    would put it more than an hour before ``previous``. Otherwise it keeps
    the date of ``previous``.

    This is a heuristic: a single leg longer than twelve hours, or a short
    regression of less than an hour, is not rolled over.
    """
    candidate = previous.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if hour <= EARLY_MORNING_LAST_HOUR and previous.hour >= LATE_EVENING_FIRST_HOUR:
        return candidate + timedelta(days=1)
    if candidate < previous - timedelta(minutes=MAX_BACKWARD_MINUTES):
        return candidate + timedelta(days=1)
    return candidate


def classify_mode(description: str) -> LegMode:
    """Leg mode from a transport description; bus when nothing matches."""
    lowered = description.lower()
    if any(token in lowered for token in WALK_TOKENS):
        return "walk"
    if any(token in lowered for token in BUS_TOKENS):
        return "bus"
    if any(token in lowered for token in TRAIN_TOKENS):
        return "train"
    return "bus"


def clean_stop_name(cell: Tag) -> str:
    """Stop name from a place cell, without platform or ticket annotations."""
    cell = copy.copy(cell)
    for span in cell.find_all(class_=list(_NAME_NOISE_CLASSES)):
        span.decompose()
    text = _NAME_NOISE_RE.sub(" ", cell.get_text(" "))
    return _WHITESPACE_RE.sub(" ", text).strip()


def _clock(hour: str, minute: str) -> tuple[int, int] | None:
    h, m = int(hour), int(minute)
    if h > 23 or m > 59:
        return None
    return h, m


def _first_int(pattern: re.Pattern[str], text: str) -> int | None:
    match = pattern.search(text)
    if not match:
        return None
    return int(match.group(1).replace(",", ""))


def _minutes_between(start: datetime | None, end: datetime | None) -> int | None:
    if start is None or end is None:
        return None
    return max(int((end - start).total_seconds() // 60), 0)


def _format(value: datetime | None) -> str | None:
    return value.strftime(TIMESTAMP_FORMAT) if value is not None else None


class _Place(NamedTuple):
    name: str
    arrive: datetime | None
    depart: datetime | None
    fare: int | None


class _Transit(NamedTuple):
    mode: LegMode
    line: str | None
    duration: int | None
    stops: int | None


class _InvalidClock(ValueError):
    """A clock time in the panel is out of range."""


class TimetableFragmentDecoder:
    """Extracts one Route per rendered result panel."""

    def __init__(
        self, base_date: date | None = None, log: logging.Logger | None = None
    ) -> None:
        """Initialize the decoder.

        Args:
            base_date: Date used when the page carries no query date;
                defaults to today
            log: Logger receiving decode events
        """
        self.base_date = base_date
        self.log = log or logger

    def decode(
        self, html: str | BeautifulSoup, base_date: date | None = None
    ) -> list[Route]:
        """Decode every panel of a result page, in document order.

        Panels with unparseable times or inconsistent timing are skipped.
        When no detailed panel decodes, the compact result-list rows are
        tried instead.

        Args:
            html: Page source or parsed page
            base_date: Date used when the page carries no query date,
                overriding the decoder default
        """
        soup = html if isinstance(html, BeautifulSoup) else BeautifulSoup(html, "html.parser")
        base = self._base_date(soup, base_date or self.base_date)

        routes: list[Route] = []
        headlines = soup.find_all("td", class_="time_1")
        self.log.debug(f"Found {len(headlines)} timetable panels")
        for index, headline in enumerate(headlines):
            route = self._decode_panel(headline, base)
            if route is None:
                self.log.info(f"Timetable panel {index} skipped")
                continue
            routes.append(route)

        if not routes:
            routes = self._decode_result_rows(soup, base)
        return routes

    def _base_date(self, soup: BeautifulSoup, fallback: date | None) -> date:
        field = soup.find("input", attrs={"name": "dt"})
        value = (field.get("value") or "").strip() if field is not None else ""
        match = BASE_DATE_RE.match(value)
        if match:
            try:
                return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
            except ValueError:
                self.log.warning(f"Invalid query date on page: {value}")
        fallback = fallback or date.today()
        self.log.debug(f"No query date on page, using {fallback.isoformat()}")
        return fallback

    def _decode_panel(self, headline: Tag, base: date) -> Route | None:
        match = HEADLINE_RE.search(headline.get_text())
        if not match:
            self.log.debug(f"No departure/arrival times in '{headline.get_text().strip()}'")
            return None
        depart_clock = _clock(match.group(1), match.group(2))
        arrive_clock = _clock(match.group(3), match.group(4))
        if depart_clock is None or arrive_clock is None:
            self.log.debug(f"Out-of-range times in '{match.group(0)}'")
            return None

        depart = datetime.combine(base, time(*depart_clock))
        arrive = resolve_clock(depart, *arrive_clock)

        row = headline.find_parent("tr")
        duration_cell = row.find("td", class_="time_2") if row is not None else None
        totals_cell = row.find("td", class_="time_3") if row is not None else None
        duration_text = duration_cell.get_text() if duration_cell is not None else ""
        totals_text = totals_cell.get_text() if totals_cell is not None else ""

        duration = _first_int(TOTAL_DURATION_RE, duration_text)
        if duration is None:
            duration = _minutes_between(depart, arrive) or 0
        fare = _first_int(TOTAL_FARE_RE, totals_text) or 0
        transfers = _first_int(TRANSFERS_RE, totals_text)

        panel = headline.find_parent("div", class_="route") or headline.find_parent("table")
        detail = panel.find("table", class_="route_detail") if panel is not None else None

        try:
            legs = self._decode_legs(detail, depart) if detail is not None else []
            if not legs:
                legs = [RouteLeg(mode="bus", duration_min=duration, fare_jpy=fare)]
            if transfers is None:
                transit_legs = sum(1 for leg in legs if leg.mode != "walk")
                transfers = max(transit_legs - 1, 0)
            return Route(
                summary=RouteSummary(
                    depart=_format(depart),
                    arrive=_format(arrive),
                    duration_min=duration,
                    transfers=transfers,
                    fare_jpy=fare,
                ),
                legs=legs,
            )
        except _InvalidClock as e:
            self.log.debug(f"Invalid leg time: {e}")
            return None
        except PydanticValidationError as e:
            self.log.warning(f"Timetable panel rejected: {e}")
            return None

    def _decode_legs(self, detail: Tag, start: datetime) -> list[RouteLeg]:
        """Walk the detail table; each transit row joins the places around it."""
        legs: list[RouteLeg] = []
        previous = start
        last_place: _Place | None = None
        pending: _Transit | None = None

        for row in detail.find_all("tr"):
            classes = row.get("class") or []
            if "place" in classes:
                place, previous = self._place(row, previous)
                if pending is not None:
                    legs.append(self._leg(pending, last_place, place))
                    pending = None
                last_place = place
            elif "transit" in classes:
                if pending is not None:
                    legs.append(self._leg(pending, last_place, None))
                    last_place = None
                pending = self._transit(row)

        if pending is not None:
            legs.append(self._leg(pending, last_place, None))
        return legs

    def _place(self, row: Tag, previous: datetime) -> tuple[_Place, datetime]:
        time_cell = row.find("td", class_="time")
        name_cell = row.find("td", class_="name")
        fare_cell = row.find("td", class_="fare")
        time_text = time_cell.get_text(" ") if time_cell is not None else ""

        anchored: dict[str, datetime | None] = {"arrive": None, "depart": None}
        # Arrival precedes departure at the same stop.
        for key, pattern in (("arrive", ARRIVE_RE), ("depart", DEPART_RE)):
            match = pattern.search(time_text)
            if not match:
                continue
            clock = _clock(match.group(1), match.group(2))
            if clock is None:
                raise _InvalidClock(match.group(0))
            previous = resolve_clock(previous, *clock)
            anchored[key] = previous

        fare = None
        if fare_cell is not None:
            fare = _first_int(YEN_RE, fare_cell.get_text())

        place = _Place(
            name=clean_stop_name(name_cell) if name_cell is not None else "",
            arrive=anchored["arrive"],
            depart=anchored["depart"],
            fare=fare,
        )
        return place, previous

    @staticmethod
    def _transit(row: Tag) -> _Transit:
        desc_cell = row.find("td", class_="desc") or row
        description = _WHITESPACE_RE.sub(" ", desc_cell.get_text(" ")).strip()
        mode = classify_mode(description)

        line = None
        if mode != "walk":
            line_span = desc_cell.find("span", class_="line")
            if line_span is not None:
                line = line_span.get_text().strip() or None
            else:
                remainder = MINUTES_RE.sub("", STOPS_RE.sub("", description))
                line = remainder.strip(" ()（）") or None

        return _Transit(
            mode=mode,
            line=line,
            duration=_first_int(MINUTES_RE, description),
            stops=_first_int(STOPS_RE, description),
        )

    @staticmethod
    def _leg(transit: _Transit, origin: _Place | None, destination: _Place | None) -> RouteLeg:
        depart = None
        if origin is not None:
            depart = origin.depart or origin.arrive
        arrive = None
        if destination is not None:
            arrive = destination.arrive or destination.depart

        duration = transit.duration
        if duration is None:
            duration = _minutes_between(depart, arrive) or 0

        if transit.mode == "walk":
            fare = 0
        else:
            # Fare is posted on the boarding stop.
            fare = origin.fare if origin is not None else None

        return RouteLeg(
            mode=transit.mode,
            line=transit.line,
            from_stop=(origin.name or None) if origin is not None else None,
            to_stop=(destination.name or None) if destination is not None else None,
            depart_time=_format(depart),
            arrive_time=_format(arrive),
            duration_min=duration,
            stops=transit.stops,
            fare_jpy=fare,
        )

    def _decode_result_rows(self, soup: BeautifulSoup, base: date) -> list[Route]:
        """Coarse routes from the compact ``#result_list`` summary table."""
        routes = []
        rows = soup.select("#result_list table tr[data-href]")
        if rows:
            self.log.debug(f"Falling back to {len(rows)} result-list rows")
        for index, row in enumerate(rows):
            route = self._decode_result_row(row, base)
            if route is None:
                self.log.info(f"Result-list row {index} skipped")
                continue
            routes.append(route)
        return routes

    @staticmethod
    def _decode_result_row(row: Tag, base: date) -> Route | None:
        def cell_text(selector: str) -> str:
            cell = row.select_one(selector)
            return cell.get_text() if cell is not None else ""

        match = HEADLINE_RE.search(cell_text(".dep_arr"))
        if not match:
            return None
        depart_clock = _clock(match.group(1), match.group(2))
        arrive_clock = _clock(match.group(3), match.group(4))
        if depart_clock is None or arrive_clock is None:
            return None

        depart = datetime.combine(base, time(*depart_clock))
        arrive = resolve_clock(depart, *arrive_clock)
        duration = _first_int(MINUTES_RE, cell_text(".time"))
        if duration is None:
            duration = _minutes_between(depart, arrive) or 0
        transfers = _first_int(COUNT_RE, cell_text(".xfer")) or 0
        fare = _first_int(YEN_RE, cell_text(".fare")) or 0

        try:
            return Route(
                summary=RouteSummary(
                    depart=_format(depart),
                    arrive=_format(arrive),
                    duration_min=duration,
                    transfers=transfers,
                    fare_jpy=fare,
                ),
                legs=[RouteLeg(mode="bus", duration_min=duration, fare_jpy=fare)],
            )
        except PydanticValidationError:
            return None
