import json
import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd

logger = logging.getLogger(__name__)

# Configuration
DATA_DIR = Path(__file__).parent / "data"
CRASH_DATA_FILE = os.getenv('CRASH_DATA_FILE', str(DATA_DIR / "crash.csv"))
WARD_FILE = os.getenv('WARD_FILE', str(DATA_DIR / "wards.geojson"))

# 2018 records in the source extract are incomplete, so the year is dropped outright
EXCLUDED_YEAR = "2018"
PREFERRED_DEFAULT_YEAR = "2025"
WARD_SENTINELS = ("unknown", "null")

Source = Union[str, Path]


@dataclass(frozen=True)
class WorkingSet:
    """Crash records held in memory for the lifetime of the server"""
    records: List[Dict[str, str]] = field(default_factory=list)
    years: List[str] = field(default_factory=list)
    wards: List[str] = field(default_factory=list)
    default_year: Optional[str] = None
    source: str = ''

    def __len__(self) -> int:
        return len(self.records)


def to_number(value: Any) -> float:
    """
    Coerce a CSV cell to a number. Blank, missing, non-numeric and NaN
    values count as zero so counters can always be summed.
    """
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return 0.0 if math.isnan(value) else float(value)
    text = str(value).strip()
    if not text:
        return 0.0
    try:
        number = float(text)
    except ValueError:
        return 0.0
    return 0.0 if math.isnan(number) else number


def parse_coordinate(value: Any) -> Optional[float]:
    """Return a finite float for a latitude/longitude cell, or None"""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def is_known_ward(ward: Optional[str]) -> bool:
    return bool(ward) and ward.lower() not in WARD_SENTINELS


def build_working_set(records: List[Dict[str, str]], source: str = '') -> WorkingSet:
    """
    Derive the year of every record, drop the excluded year and collect the
    year/ward option lists. Both lists are string sorted.
    """
    for record in records:
        record['year'] = str(record.get('DATE', ''))[:4]

    kept = [r for r in records if r['year'] != EXCLUDED_YEAR]
    dropped = len(records) - len(kept)
    if dropped:
        logger.info("Excluded %d crash records from %s", dropped, EXCLUDED_YEAR)

    years = sorted({r['year'] for r in kept})
    wards = sorted({r.get('WARD', '') for r in kept if is_known_ward(r.get('WARD', ''))})
    default_year = PREFERRED_DEFAULT_YEAR if PREFERRED_DEFAULT_YEAR in years else None

    return WorkingSet(records=kept, years=years, wards=wards,
                      default_year=default_year, source=source)


def load_crash_data(source: Source = CRASH_DATA_FILE) -> WorkingSet:
    """
    Load the crash CSV (local path or URL) into a WorkingSet.

    Failures are logged and produce an empty WorkingSet so the rest of the
    server keeps running.
    """
    logger.info("Loading crash data from %s...", source)
    try:
        df = pd.read_csv(source, dtype=str, keep_default_na=False, na_filter=False)
    except FileNotFoundError:
        logger.error("Crash data file not found at: %s", source)
        return WorkingSet(source=str(source))
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError, OSError) as e:
        logger.error("Error loading crash data from %s: %s", source, e)
        return WorkingSet(source=str(source))

    if 'DATE' not in df.columns:
        logger.error("Crash data at %s has no DATE column", source)
        return WorkingSet(source=str(source))

    records = df.to_dict('records')
    working_set = build_working_set(records, source=str(source))
    logger.info("Loaded %d crash records (%d years, %d wards)",
                len(working_set), len(working_set.years), len(working_set.wards))
    return working_set


class WardBoundaries:
    """Lazy-load ward boundaries GeoJSON (only when first requested)"""

    def __init__(self, source: Source = WARD_FILE):
        self.source = source
        self._geojson: Optional[Dict[str, Any]] = None
        self._loaded = False

    def load(self) -> Optional[Dict[str, Any]]:
        # A failed load is not retried; the layer stays absent
        if not self._loaded:
            self._geojson = load_ward_boundaries(self.source)
            self._loaded = True
        return self._geojson


def load_ward_boundaries(source: Source = WARD_FILE) -> Optional[Dict[str, Any]]:
    """Read the ward polygons; log and return None on failure"""
    try:
        logger.info("Loading ward boundaries from %s...", source)
        with open(source, 'r', encoding='utf-8') as f:
            geojson = json.load(f)
    except FileNotFoundError:
        logger.error("Ward boundaries file not found at: %s", source)
        return None
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
        logger.error("Ward boundaries file is corrupted or invalid JSON: %s", e)
        return None

    if not isinstance(geojson, dict) or not isinstance(geojson.get('features'), list):
        logger.error("Ward boundaries at %s are not a FeatureCollection", source)
        return None

    logger.info("Loaded %d ward boundaries", len(geojson['features']))
    return geojson
