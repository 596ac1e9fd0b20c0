from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from crash_data import WorkingSet, to_number

INJURY_MODES = ('all', 'high', 'low', 'none')

FATAL_FIELDS = ('FATAL_DRIVER', 'FATAL_PEDESTRIAN', 'FATAL_BICYCLIST')
MAJOR_INJURY_FIELDS = ('MAJORINJURIES_DRIVER', 'MAJORINJURIES_PEDESTRIAN', 'MAJORINJURIES_BICYCLIST')
MINOR_INJURY_FIELDS = ('MINORINJURIES_DRIVER', 'MINORINJURIES_PEDESTRIAN', 'MINORINJURIES_BICYCLIST')
PEDESTRIAN_FIELD = 'TOTAL_PEDESTRIANS'
BICYCLIST_FIELD = 'TOTAL_BICYCLES'

TRUE_VALUES = ('1', 'true', 'yes', 'on')
FALSE_VALUES = ('', '0', 'false', 'no', 'off')


def sum_fields(record: Mapping[str, Any], fields: Iterable[str]) -> float:
    return sum(to_number(record.get(f)) for f in fields)


def fatal_count(record: Mapping[str, Any]) -> float:
    return sum_fields(record, FATAL_FIELDS)


def major_injury_count(record: Mapping[str, Any]) -> float:
    return sum_fields(record, MAJOR_INJURY_FIELDS)


def minor_injury_count(record: Mapping[str, Any]) -> float:
    return sum_fields(record, MINOR_INJURY_FIELDS)


@dataclass(frozen=True)
class FilterState:
    """Current value of every map control. Rebuilt on each control change."""
    year: Optional[str] = None
    ward: Optional[str] = None
    injury: str = 'all'
    fatalities_only: bool = False
    pedestrians_only: bool = False
    bicyclists_only: bool = False

    def __post_init__(self):
        if self.injury not in INJURY_MODES:
            raise ValueError(f"Unknown injury severity mode: {self.injury!r}")

    def with_changes(self, **changes: Any) -> 'FilterState':
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'year': self.year,
            'ward': self.ward,
            'injury': self.injury,
            'fatal': self.fatalities_only,
            'pedestrian': self.pedestrians_only,
            'bicyclist': self.bicyclists_only,
        }

    @classmethod
    def default(cls, working_set: WorkingSet) -> 'FilterState':
        return cls(year=working_set.default_year)

    @classmethod
    def from_args(cls, args: Mapping[str, str],
                  working_set: WorkingSet) -> Tuple[Optional['FilterState'], Optional[str]]:
        """
        Validate and parse filter parameters from request arguments.

        An absent ``year`` falls back to the default year, an empty one means
        all years.

        Returns:
            tuple: (FilterState or None, error_message str or None)
        """
        if 'year' in args:
            year = args.get('year', '') or None
        else:
            year = working_set.default_year
        if year is not None and year not in working_set.years:
            return None, f"Unknown year: {year}"

        ward = args.get('ward', '') or None
        if ward is not None and ward not in working_set.wards:
            return None, f"Unknown ward: {ward}"

        injury = args.get('injury', 'all').strip().lower() or 'all'
        if injury not in INJURY_MODES:
            return None, f"Injury severity must be one of: {', '.join(INJURY_MODES)}"

        flags = {}
        for param, attr in (('fatal', 'fatalities_only'),
                            ('pedestrian', 'pedestrians_only'),
                            ('bicyclist', 'bicyclists_only')):
            value = args.get(param, '').strip().lower()
            if value in TRUE_VALUES:
                flags[attr] = True
            elif value in FALSE_VALUES:
                flags[attr] = False
            else:
                return None, f"Invalid {param} flag - expected true or false"

        return cls(year=year, ward=ward, injury=injury, **flags), None


def record_matches(record: Mapping[str, Any], state: FilterState, ignore_year: bool = False) -> bool:
    """
    Apply every active filter clause to one record, stopping at the first
    clause that rejects it.
    """
    if not ignore_year and state.year and record.get('year') != state.year:
        return False
    if state.ward and record.get('WARD') != state.ward:
        return False
    if state.fatalities_only and fatal_count(record) == 0:
        return False
    if state.pedestrians_only and to_number(record.get(PEDESTRIAN_FIELD)) == 0:
        return False
    if state.bicyclists_only and to_number(record.get(BICYCLIST_FIELD)) == 0:
        return False
    if state.injury != 'all':
        major = major_injury_count(record)
        minor = minor_injury_count(record)
        if state.injury == 'high' and major == 0:
            return False
        if state.injury == 'low' and (major > 0 or minor == 0):
            return False
        if state.injury == 'none' and (major > 0 or minor > 0):
            return False
    return True


def filter_records(records: Iterable[Mapping[str, Any]], state: FilterState,
                   ignore_year: bool = False) -> List[Mapping[str, Any]]:
    """Return the matching records in their original order"""
    return [r for r in records if record_matches(r, state, ignore_year=ignore_year)]
