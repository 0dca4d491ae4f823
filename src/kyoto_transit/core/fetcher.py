"""Upstream route search: query building and page fetching."""

import logging
from datetime import datetime

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .exceptions import NetworkError, ScrapingError
from .models import Coordinate, DateTimeType, Language, PlaceHints
from .reference import ReferenceDataStore
from ..geo.nearest_stops import NearestStopResolver

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://arukumachikyoto.jp"
SEARCH_PATH = "/search_result.php"

TIME_TYPE_CODES: dict[str, str] = {
    "departure": "d",
    "arrival": "a",
    "first": "f",
    "last": "l",
}


def format_query_date(value: datetime) -> str:
    """Upstream date format, month and day unpadded (``2025/7/7``)."""
    return f"{value.year}/{value.month}/{value.day}"


def format_query_time(value: datetime) -> str:
    return value.strftime("%H:%M")


class RouteHtmlFetcher:
    """Fetches raw route search result pages.

    Builds the upstream query from nearest-stop hints and retries network
    failures with exponential back-off.
    """

    def __init__(
        self,
        store: ReferenceDataStore,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30,
        retries: int = 3,
        backoff: float = 1.0,
        session: requests.Session | None = None,
    ):
        """Initialize the fetcher.

        Args:
            store: Reference data used for hints and first/last times
            base_url: Upstream site root
            timeout: Request timeout in seconds
            retries: Attempts before giving up
            backoff: Multiplier of the exponential wait between attempts
            session: Session to reuse; a new one is created by default
        """
        self.store = store
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = retries
        self.backoff = backoff
        self.stops = NearestStopResolver(store)
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/140.0.0.0 Safari/537.36",
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Encoding": "gzip, deflate",
                "Referer": f"{self.base_url}/",
                "Connection": "keep-alive",
            }
        )

    @property
    def search_url(self) -> str:
        return f"{self.base_url}{SEARCH_PATH}"

    def fetch_by_name(
        self,
        from_station: str,
        to_station: str,
        search_datetime: datetime,
        datetime_type: DateTimeType,
        language: Language,
    ) -> str:
        """Fetch the result page for a search between two named places.

        Raises:
            ConfigurationError: If reference data is unavailable
            NetworkError: If every attempt fails
            ScrapingError: If the site answers with an unusable page
        """
        origin = self.stops.hints_for_name(from_station, language)
        destination = self.stops.hints_for_name(to_station, language)
        params = self.build_params(
            from_name=from_station,
            to_name=to_station,
            origin=origin,
            destination=destination,
            search_datetime=search_datetime,
            datetime_type=datetime_type,
            language=language,
        )
        return self.fetch(params)

    def fetch_by_coordinates(
        self,
        from_latlng: Coordinate,
        to_latlng: Coordinate,
        search_datetime: datetime,
        datetime_type: DateTimeType,
        language: Language,
    ) -> str:
        """Fetch the result page for a search between two coordinates.

        Both ends are treated as spots with the nearest stops as hints.
        """
        origin = PlaceHints(
            hints=self.stops.nearest(from_latlng, language, origin_kind="S"),
            coordinate=from_latlng,
            kind="S",
        )
        destination = PlaceHints(
            hints=self.stops.nearest(to_latlng, language, origin_kind="S"),
            coordinate=to_latlng,
            kind="S",
        )
        params = self.build_params(
            from_name="",
            to_name="",
            origin=origin,
            destination=destination,
            search_datetime=search_datetime,
            datetime_type=datetime_type,
            language=language,
        )
        return self.fetch(params)

    def build_params(
        self,
        from_name: str,
        to_name: str,
        origin: PlaceHints,
        destination: PlaceHints,
        search_datetime: datetime,
        datetime_type: DateTimeType,
        language: Language,
    ) -> dict[str, str]:
        """Query parameters of the upstream search page."""
        when = self._effective_datetime(search_datetime, datetime_type, language)
        return {
            "fn": from_name,
            "tn": to_name,
            "dt": format_query_date(when),
            "tm": format_query_time(when),
            "fs": origin.hint_string(),
            "ts": destination.hint_string(),
            "fl": str(origin.coordinate) if origin.coordinate else "",
            "tl": str(destination.coordinate) if destination.coordinate else "",
            "de": "n",
            "tt": TIME_TYPE_CODES[datetime_type],
            "md": "t",
            "pn": "",
            "lang": language,
            "fi": origin.kind,
            "ti": destination.kind,
        }

    def _effective_datetime(
        self, search_datetime: datetime, datetime_type: DateTimeType, language: Language
    ) -> datetime:
        """First/last searches use the network's first departure or last arrival clock."""
        if datetime_type not in ("first", "last"):
            return search_datetime
        coefficients = self.store.tables(language).coefficients
        clock = (
            coefficients.first_departure_time
            if datetime_type == "first"
            else coefficients.last_arrival_time
        )
        try:
            hour, minute = (int(part) for part in clock.split(":"))
            return search_datetime.replace(hour=hour, minute=minute)
        except ValueError:
            logger.warning(f"Invalid {datetime_type} time coefficient '{clock}', ignored")
            return search_datetime

    def fetch(self, params: dict[str, str]) -> str:
        """GET the search page, retrying network errors.

        Raises:
            NetworkError: If every attempt fails
            ScrapingError: If the site answers with a non-200 status or empty body
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.retries),
            wait=wait_exponential(multiplier=self.backoff, max=10),
            retry=retry_if_exception_type(NetworkError),
            reraise=True,
        )
        return retrying(self._get, params)

    def _get(self, params: dict[str, str]) -> str:
        logger.debug(f"GET {self.search_url} tt={params.get('tt')} dt={params.get('dt')}")
        try:
            response = self.session.get(
                self.search_url,
                params=params,
                headers={"Accept-Language": f"{params.get('lang', 'ja')},en-US;q=0.5"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"Route search request failed: {e}")
            raise NetworkError(f"Failed to fetch route data: {str(e)}") from e

        if response.status_code >= 500:
            raise NetworkError(f"Upstream server error: {response.status_code}")
        if response.status_code != 200:
            raise ScrapingError(f"Unexpected upstream response: {response.status_code}")
        if not response.text:
            raise ScrapingError("Upstream returned an empty page")
        return response.text
