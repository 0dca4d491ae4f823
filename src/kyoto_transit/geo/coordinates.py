"""Stop name to coordinate resolution."""

import logging
import re

from ..core.models import Coordinate, Language
from ..core.reference import ReferenceDataStore

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


class CoordinateResolver:
    """Resolves stop names such as ``浄土寺 (京都市バス)`` to coordinates.

    Lookups never raise for unknown names; a missing reference table is a
    configuration problem and surfaces as ``ConfigurationError``.
    """

    def __init__(
        self, store: ReferenceDataStore, log: logging.Logger | None = None
    ) -> None:
        self.store = store
        self.log = log or logger

    def resolve(self, name: str, language: Language = "ja") -> Coordinate | None:
        """Resolve a stop name.

        Lookup order: exact key, key with all whitespace removed (the
        rendered page puts a space before the operator suffix), then the
        first key containing the name or contained in it, in table order.

        Args:
            name: Stop name as rendered upstream
            language: Reference table language

        Returns:
            The coordinate, or None when nothing matches
        """
        stations = self.store.tables(language).stations

        entry = stations.get(name)
        if entry is not None:
            return Coordinate(lat=entry.lat, lng=entry.lng)

        normalized = _WHITESPACE_RE.sub("", name)
        if not normalized:
            return None
        entry = stations.get(normalized)
        if entry is not None:
            return Coordinate(lat=entry.lat, lng=entry.lng)

        for key, entry in stations.items():
            if normalized in key or key in normalized:
                self.log.debug(f"Resolved '{name}' by partial match on '{key}'")
                return Coordinate(lat=entry.lat, lng=entry.lng)

        self.log.debug(f"No coordinates for '{name}'")
        return None

    def resolve_many(
        self, names: list[str], language: Language = "ja"
    ) -> list[Coordinate | None]:
        """Resolve several names, keeping input order."""
        return [self.resolve(name, language) for name in names]
