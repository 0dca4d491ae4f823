"""Static reference data: stops, operators, landmarks and coefficients.

Tables are loaded at most once per language and are read-only afterwards.
Loading is guarded by a lock so concurrent first callers share one load
and never observe a partially populated table.
"""

import gzip
import json
import logging
import threading
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .exceptions import ConfigurationError
from .models import Language, LandmarkRecord, ReferenceTables, StopRecord

logger = logging.getLogger(__name__)

MASTER_FILE = "master.json"
LANDMARK_FILE = "landmark-data.json"
SUPPORTED_LANGUAGES: tuple[Language, ...] = ("ja", "en")

# Stops with no stationselect entry are attributed to Kyoto City Bus.
DEFAULT_COMPANY_ID = 200


def load_json_file(path: Path) -> Any:
    """Load ``path``, preferring a gzip-compressed sibling ``path.gz``.

    Raises:
        ConfigurationError: If neither file exists or the content is not JSON
    """
    gz_path = path.with_name(path.name + ".gz")
    try:
        if gz_path.exists():
            with gzip.open(gz_path, "rt", encoding="utf-8") as f:
                return json.load(f)
        if path.exists():
            with open(path, encoding="utf-8") as f:
                return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to load JSON from {path}: {e}") from e
    raise ConfigurationError(f"Neither {path} nor {gz_path} exists")


class ReferenceDataStore:
    """Memoized per-language reference tables."""

    def __init__(self, data_dir: Path | str | None = None) -> None:
        """Initialize the store.

        Args:
            data_dir: Directory holding ``ja/`` and ``en/`` subdirectories.
                When None, tables must be supplied through :meth:`register`.
        """
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self._tables: dict[str, ReferenceTables] = {}
        self._stops: dict[str, list[StopRecord]] = {}
        self._landmarks: dict[str, list[LandmarkRecord]] = {}
        self._lock = threading.Lock()

    def register(self, tables: ReferenceTables) -> None:
        """Install already-built tables for ``tables.language``."""
        with self._lock:
            self._tables[tables.language] = tables
            # Derived records mix both languages.
            self._stops.clear()
            self._landmarks.clear()

    def is_loaded(self, language: Language) -> bool:
        return language in self._tables

    def tables(self, language: Language) -> ReferenceTables:
        """Return the tables for ``language``, loading them on first use.

        Raises:
            ConfigurationError: If the language is unsupported or the data
                cannot be loaded
        """
        if language not in SUPPORTED_LANGUAGES:
            raise ConfigurationError(f"Unsupported language: {language}")
        tables = self._tables.get(language)
        if tables is None:
            with self._lock:
                tables = self._tables.get(language)
                if tables is None:  # Double-check locking pattern
                    tables = self._load(language)
                    self._tables[language] = tables
        return tables

    def _load(self, language: Language) -> ReferenceTables:
        if self.data_dir is None:
            raise ConfigurationError(
                f"Reference data for '{language}' is not loaded and no data directory is configured"
            )
        lang_dir = self.data_dir / language
        logger.info(f"Loading reference data from {lang_dir}")
        master = load_json_file(lang_dir / MASTER_FILE)
        try:
            landmark_data = load_json_file(lang_dir / LANDMARK_FILE)
        except ConfigurationError as e:
            logger.warning(f"Landmark data unavailable, continuing without it: {e}")
            landmark_data = None
        try:
            tables = ReferenceTables.from_raw(language, master, landmark_data)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Malformed reference data in {lang_dir}: {e}") from e
        logger.info(
            f"Loaded {len(tables.stations)} stops and {len(tables.landmarks)} landmarks ({language})"
        )
        return tables

    def stops(self, language: Language) -> list[StopRecord]:
        """All stops as StopRecord, names in both languages."""
        cached = self._stops.get(language)
        if cached is not None:
            return cached

        ja = self.tables("ja")
        en = self.tables("en") if language == "en" or self.is_loaded("en") else None
        en_names = self._names_by_location(en) if en is not None else {}

        company_ids = self._company_ids(ja)
        records = []
        for name, entry in ja.stations.items():
            company_id = company_ids.get(name, DEFAULT_COMPANY_ID)
            company = ja.companies.get(str(company_id))
            ekidiv = company.ekidiv if company is not None and company.ekidiv else entry.ekidiv
            kind = "bus_stop" if ekidiv == "B" else "train_station"
            prefix = "B" if kind == "bus_stop" else "T"
            name_en = en_names.get((company_id, entry.lat, entry.lng), name)
            records.append(
                StopRecord(
                    id=f"{prefix}:{company_id}_{name}",
                    name_ja=name,
                    name_en=name_en,
                    kind=kind,
                    lat=entry.lat,
                    lng=entry.lng,
                    agency=company.name if company else None,
                )
            )

        self._stops[language] = records
        return records

    def landmarks(self, language: Language) -> list[LandmarkRecord]:
        """All landmarks as LandmarkRecord, names in both languages."""
        cached = self._landmarks.get(language)
        if cached is not None:
            return cached

        ja = self.tables("ja")
        en = self.tables("en") if language == "en" or self.is_loaded("en") else None

        records = []
        for landmark_id, info in ja.landmarks.items():
            en_info = en.landmarks.get(landmark_id) if en is not None else None
            records.append(
                LandmarkRecord(
                    id=landmark_id,
                    name_ja=info.name,
                    name_en=en_info.name if en_info else info.name,
                    lat=info.lat,
                    lng=info.lng,
                    category=str(info.category or 0),
                )
            )

        self._landmarks[language] = records
        return records

    @staticmethod
    def _company_ids(tables: ReferenceTables) -> dict[str, int]:
        """Map ``name(operator)`` keys to the first company id listing them."""
        company_ids: dict[str, int] = {}
        for select in tables.station_select.values():
            for entry in select.stationnames:
                if entry.companyid is not None:
                    company_ids.setdefault(entry.stationname, entry.companyid)
        return company_ids

    @classmethod
    def _names_by_location(cls, tables: ReferenceTables) -> dict[tuple[int, float, float], str]:
        """Map (company id, lat, lng) to the station key of a translated table.

        The same stop has the same operator and position in every language.
        """
        company_ids = cls._company_ids(tables)
        names: dict[tuple[int, float, float], str] = {}
        for name, entry in tables.stations.items():
            company_id = company_ids.get(name, DEFAULT_COMPANY_ID)
            names.setdefault((company_id, entry.lat, entry.lng), name)
        return names
