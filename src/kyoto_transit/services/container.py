"""Wiring of the shared collaborators used by the CLI and the MCP server."""

from typing import NamedTuple

from ..budget.limiter import ResponseBudgeter
from ..core.config import Settings
from ..core.fetcher import RouteHtmlFetcher
from ..core.reference import ReferenceDataStore
from .route_search import RouteSearchService
from .stop_search import StopSearchService


class TransitServices(NamedTuple):
    settings: Settings
    store: ReferenceDataStore
    budgeter: ResponseBudgeter
    routes: RouteSearchService
    stops: StopSearchService

    def close(self) -> None:
        self.budgeter.close()
        self.routes.fetcher.session.close()


def build_services(settings: Settings, store: ReferenceDataStore | None = None) -> TransitServices:
    """Create one store, one budgeter and the services sharing them.

    Reference data is loaded lazily on first use.
    """
    store = store or ReferenceDataStore(settings.data_dir)
    budgeter = ResponseBudgeter(settings.token_encoding)
    fetcher = RouteHtmlFetcher(
        store,
        base_url=settings.base_url,
        timeout=settings.timeout,
        retries=settings.retries,
    )
    return TransitServices(
        settings=settings,
        store=store,
        budgeter=budgeter,
        routes=RouteSearchService(store, fetcher, budgeter),
        stops=StopSearchService(store, budgeter),
    )
