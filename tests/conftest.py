"""
Pytest fixtures for the crash map tests.

Writes a small crash CSV and ward GeoJSON to a temporary directory. The
crash rows cover every severity bucket, an excluded 2018 row, sentinel
wards and rows without usable coordinates.
"""

import csv
import json
from pathlib import Path

import pytest

from crash_data import load_crash_data

COLUMNS = [
    'DATE', 'WARD', 'LATITUDE', 'LONGITUDE', 'ADDRESS', 'XCOORD', 'YCOORD',
    'FATAL_DRIVER', 'FATAL_PEDESTRIAN', 'FATAL_BICYCLIST',
    'MAJORINJURIES_DRIVER', 'MAJORINJURIES_PEDESTRIAN', 'MAJORINJURIES_BICYCLIST',
    'MINORINJURIES_DRIVER', 'MINORINJURIES_PEDESTRIAN', 'MINORINJURIES_BICYCLIST',
    'TOTAL_PEDESTRIANS', 'TOTAL_BICYCLES',
]

CRASH_ROWS = [
    # Fatal driver crash, 2025, Ward 1
    {'DATE': '2025/01/03 08:15:00+00', 'WARD': 'Ward 1', 'LATITUDE': '38.9010', 'LONGITUDE': '-77.0310',
     'ADDRESS': '100 K ST NW', 'XCOORD': '397000', 'YCOORD': '137000', 'FATAL_DRIVER': '1'},
    # Major pedestrian injury, 2025, Ward 2
    {'DATE': '2025/02/10 17:40:00+00', 'WARD': 'Ward 2', 'LATITUDE': '38.9110', 'LONGITUDE': '-77.0410',
     'ADDRESS': '200 M ST NW', 'MAJORINJURIES_PEDESTRIAN': '1', 'TOTAL_PEDESTRIANS': '1'},
    # Minor bicyclist injury with a broken latitude, 2024, Ward 1
    {'DATE': '2024/05/05 12:00:00+00', 'WARD': 'Ward 1', 'LATITUDE': 'abc', 'LONGITUDE': '-77.0320',
     'MINORINJURIES_BICYCLIST': '2', 'TOTAL_BICYCLES': '1'},
    # No injuries, no coordinates, unknown ward, 2024
    {'DATE': '2024/06/01 09:30:00+00', 'WARD': 'Unknown'},
    # Excluded year
    {'DATE': '2018/07/07 10:00:00+00', 'WARD': 'Ward 1', 'LATITUDE': '38.9020', 'LONGITUDE': '-77.0330',
     'FATAL_PEDESTRIAN': '1', 'TOTAL_PEDESTRIANS': '1'},
    # Minor driver injury, 2023, Ward 2
    {'DATE': '2023/03/03 22:10:00+00', 'WARD': 'Ward 2', 'LATITUDE': '38.9210', 'LONGITUDE': '-77.0510',
     'MINORINJURIES_DRIVER': '1'},
    # Property damage only, 2023, null ward
    {'DATE': '2023/08/08 06:05:00+00', 'WARD': 'null', 'LATITUDE': '38.9310', 'LONGITUDE': '-77.0610'},
]


def _square(minx, miny, maxx, maxy):
    return {
        'type': 'Polygon',
        'coordinates': [[[minx, miny], [maxx, miny], [maxx, maxy], [minx, maxy], [minx, miny]]],
    }


WARD_FEATURES = [
    {'type': 'Feature', 'properties': {'NAME': 'Ward 1', 'WARD': 1},
     'geometry': _square(-77.04, 38.89, -77.02, 38.91)},
    {'type': 'Feature', 'properties': {'NAME': 'Ward 2', 'WARD': 2},
     'geometry': _square(-77.06, 38.91, -77.04, 38.93)},
    {'type': 'Feature', 'properties': {'NAME': 'Ward 9', 'WARD': 9}, 'geometry': None},
]


def write_crash_csv(path: Path, rows) -> Path:
    with open(path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.DictWriter(f, fieldnames=COLUMNS)
        writer.writeheader()
        for row in rows:
            writer.writerow({col: row.get(col, '') for col in COLUMNS})
    return path


@pytest.fixture
def crash_csv(tmp_path):
    return write_crash_csv(tmp_path / "crash.csv", CRASH_ROWS)


@pytest.fixture
def ward_geojson(tmp_path):
    path = tmp_path / "wards.geojson"
    path.write_text(json.dumps({'type': 'FeatureCollection', 'features': WARD_FEATURES}), encoding='utf-8')
    return path


@pytest.fixture
def working_set(crash_csv):
    return load_crash_data(crash_csv)


@pytest.fixture
def app(crash_csv, ward_geojson):
    from app import create_app
    application = create_app(crash_file=crash_csv, ward_file=ward_geojson)
    application.config['TESTING'] = True
    return application


@pytest.fixture
def client(app):
    return app.test_client()
