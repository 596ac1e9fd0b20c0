#!/usr/bin/env python3
"""
Quick validation of a crash data drop.
Loads the CSV the way the server does and reports what the map will show.
"""

import argparse
import logging
import sys
from collections import Counter
from typing import Any, Dict, List, Optional

from crash_data import CRASH_DATA_FILE, EXCLUDED_YEAR, WorkingSet, is_known_ward, load_crash_data, parse_coordinate
from charts import severity_counts


def summarize(working_set: WorkingSet) -> Dict[str, Any]:
    records = working_set.records
    year_counts = Counter(r['year'] for r in records)
    mappable = sum(
        1 for r in records
        if parse_coordinate(r.get('LATITUDE')) is not None and parse_coordinate(r.get('LONGITUDE')) is not None
    )
    with_ward = sum(1 for r in records if is_known_ward(r.get('WARD', '')))
    # Year options are sorted as strings, which only matches numeric order for four-digit years
    odd_years = [y for y in working_set.years if not (len(y) == 4 and y.isdigit())]

    return {
        'total': len(records),
        'by_year': {year: year_counts[year] for year in working_set.years},
        'wards': len(working_set.wards),
        'with_ward': with_ward,
        'mappable': mappable,
        'default_year': working_set.default_year,
        'odd_years': odd_years,
        'by_severity': {c['category']: c['count'] for c in severity_counts(records)},
    }


def print_report(summary: Dict[str, Any], source: str) -> None:
    total = summary['total']

    def pct(n: int) -> str:
        return f"{n/total*100:.1f}%" if total else "n/a"

    print("="*80)
    print("CRASH DATA VALIDATION")
    print("="*80)
    print(f"\nSource: {source}")
    print(f"Crash records (excluding {EXCLUDED_YEAR}): {total:,}")
    print(f"Records with map coordinates: {summary['mappable']:,} ({pct(summary['mappable'])})")
    print(f"Records with a known ward: {summary['with_ward']:,} ({pct(summary['with_ward'])})")
    print(f"Distinct wards: {summary['wards']}")
    print(f"Default year: {summary['default_year'] or 'all years'}")

    print("\n" + "="*80)
    print("YEAR-BY-YEAR COUNTS")
    print("="*80)
    print(f"\n{'Year':<8} {'Crashes':>10}")
    print("-" * 20)
    for year, count in summary['by_year'].items():
        print(f"{year:<8} {count:>10,}")

    print("\n" + "="*80)
    print("SEVERITY")
    print("="*80)
    for category, count in summary['by_severity'].items():
        print(f"  {category:<6} {count:>10,} ({pct(count)})")

    if summary['odd_years']:
        print(f"\nWARNING: {len(summary['odd_years'])} year values are not four digits: "
              f"{', '.join(repr(y) for y in summary['odd_years'])}")
        print("   Year options are sorted as text and may appear out of order.")
    print()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Validate a crash data CSV")
    parser.add_argument('source', nargs='?', default=CRASH_DATA_FILE,
                        help="Crash CSV path or URL (default: %(default)s)")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    working_set = load_crash_data(args.source)
    summary = summarize(working_set)
    print_report(summary, str(args.source))

    if summary['total'] == 0:
        print("ERROR: No crash records loaded")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
