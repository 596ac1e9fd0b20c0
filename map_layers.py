"""
Map layers: crash markers, marker clusters and ward boundaries as GeoJSON.
"""
import copy
import logging
import math
from collections import Counter
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from markupsafe import Markup
from shapely.errors import ShapelyError
from shapely.geometry import shape

from crash_data import parse_coordinate, to_number
from crash_filters import fatal_count

logger = logging.getLogger(__name__)

# Map view (Washington, DC)
INITIAL_CENTER = (38.9072, -77.0369)
INITIAL_ZOOM = 12
CLOSE_UP_ZOOM = 18
TILE_URL = 'https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png'
TILE_MAX_ZOOM = 19
TILE_ATTRIBUTION = '© OpenStreetMap'

# Ward polygons sit below the crash markers
POLYGONS_PANE_Z = 320
MARKERS_PANE_Z = 650

CRASH_ICON = {
    'iconUrl': '/static/img/crash.svg',
    'iconSize': [40, 50],
    'iconAnchor': [15, 15],
    'popupAnchor': [0, -15],
}

WARD_STYLE = {'color': 'blue', 'weight': 2, 'fill': False, 'fillOpacity': 0}
WARD_HIGHLIGHT_STYLE = {'color': '#ff7800', 'weight': 4, 'fill': False, 'fillOpacity': 0}

# Zoom level from which markers are no longer clustered
UNCLUSTERED_ZOOM = 16

POPUP_LEADING_FIELDS = ('LATITUDE', 'LONGITUDE', 'DATE', 'ADDRESS', 'WARD')
POPUP_SKIP_FIELDS = POPUP_LEADING_FIELDS + ('XCOORD', 'YCOORD')

Bounds = Tuple[float, float, float, float]


# ============================================================================
# CRASH MARKERS
# ============================================================================

def popup_lines(record: Mapping[str, Any]) -> List[Tuple[str, str]]:
    """
    Fields shown in a marker popup: location, date, address and ward when
    present, followed by every other field holding a nonzero number.
    """
    lines = []
    for key in POPUP_LEADING_FIELDS:
        value = record.get(key)
        if value is not None and str(value).strip() != '':
            lines.append((key, str(value)))

    for key, value in record.items():
        if key in POPUP_SKIP_FIELDS:
            continue
        if to_number(value) != 0:
            lines.append((key, str(value)))
    return lines


def popup_html(record: Mapping[str, Any]) -> str:
    body = Markup('<br/>').join(
        Markup('<strong>{}:</strong> {}').format(key, value)
        for key, value in popup_lines(record)
    )
    return str(Markup('<h4>Crash Details</h4>') + body)


def crash_features(records: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Build a Point FeatureCollection from crash records. Records without a
    usable latitude and longitude are left off the map.
    """
    features = []
    for record in records:
        lat = parse_coordinate(record.get('LATITUDE'))
        lon = parse_coordinate(record.get('LONGITUDE'))
        if lat is None or lon is None:
            continue
        features.append({
            'type': 'Feature',
            'properties': {**record, 'popup': popup_html(record)},
            'geometry': {'type': 'Point', 'coordinates': [lon, lat]},
        })

    skipped = len(records) - len(features)
    if skipped:
        logger.debug("Skipped %d crash records without coordinates", skipped)
    return {'type': 'FeatureCollection', 'features': features}


def cluster_features(features: Sequence[Dict[str, Any]], zoom: int,
                     bounds: Optional[Bounds] = None) -> List[Dict[str, Any]]:
    """
    Group crash markers into grid clusters for the current viewport.

    At high zoom every marker is returned as-is. Below that the grid cell
    size halves with every zoom step.

    Args:
        features: Point features from crash_features()
        zoom: Map zoom level
        bounds: Optional viewport as (south, west, north, east)
    """
    in_view = []
    for feature in features:
        lon, lat = feature['geometry']['coordinates']
        if bounds is not None:
            south, west, north, east = bounds
            if not (south <= lat <= north and west <= lon <= east):
                continue
        in_view.append((lat, lon, feature))

    if zoom >= UNCLUSTERED_ZOOM:
        return [
            {'type': 'marker', 'lat': lat, 'lon': lon, 'properties': feature['properties']}
            for lat, lon, feature in in_view
        ]

    grid_size = 0.5 / (2 ** (zoom - 8))
    grid_clusters: Dict[Tuple[int, int], Dict[str, Any]] = {}
    for lat, lon, feature in in_view:
        grid_key = (math.floor(lat / grid_size), math.floor(lon / grid_size))
        cell = grid_clusters.setdefault(grid_key, {'items': [], 'lat_sum': 0.0, 'lon_sum': 0.0})
        cell['items'].append((lat, lon, feature))
        cell['lat_sum'] += lat
        cell['lon_sum'] += lon

    clusters = []
    for cell in grid_clusters.values():
        count = len(cell['items'])
        if count == 1:
            lat, lon, feature = cell['items'][0]
            clusters.append({'type': 'marker', 'lat': lat, 'lon': lon,
                             'properties': feature['properties']})
            continue

        severity = Counter(
            'fatal' if fatal_count(feature['properties']) > 0 else 'other'
            for _, _, feature in cell['items']
        )
        clusters.append({
            'type': 'cluster',
            'lat': cell['lat_sum'] / count,
            'lon': cell['lon_sum'] / count,
            'count': count,
            'properties': {
                'point_count': count,
                'fatal': severity.get('fatal', 0),
            },
        })
    return clusters


# ============================================================================
# WARD BOUNDARIES
# ============================================================================

def ward_id(feature: Mapping[str, Any], ward_property: str) -> str:
    value = (feature.get('properties') or {}).get(ward_property)
    return '' if value is None else str(value)


def feature_bbox(feature: Mapping[str, Any]) -> Optional[List[float]]:
    """Bounding box [minx, miny, maxx, maxy] of a feature, or None"""
    geometry = feature.get('geometry')
    if not geometry:
        return None
    try:
        polygon = shape(geometry)
    except (ShapelyError, ValueError, TypeError, KeyError, AttributeError) as e:
        logger.warning("Could not read ward geometry: %s", e)
        return None
    if polygon.is_empty:
        return None
    return [round(v, 6) for v in polygon.bounds]


def ward_layer(geojson: Mapping[str, Any], ward_property: str) -> Dict[str, Any]:
    """
    Copy of the ward collection in which every feature carries its ward
    identifier and bounding box, used for click-to-filter and framing.
    """
    features = []
    for feature in geojson.get('features', []):
        enriched = copy.deepcopy(feature)
        if enriched.get('properties') is None:
            enriched['properties'] = {}
        enriched['properties']['ward'] = ward_id(feature, ward_property)
        bbox = feature_bbox(feature)
        if bbox is not None:
            enriched['bbox'] = bbox
        else:
            enriched.pop('bbox', None)
        features.append(enriched)
    return {'type': 'FeatureCollection', 'features': features}


def find_ward_feature(geojson: Mapping[str, Any], ward: str,
                      ward_property: str) -> Optional[Dict[str, Any]]:
    for feature in ward_layer(geojson, ward_property)['features']:
        if feature['properties']['ward'] == ward:
            return feature
    return None


def map_settings() -> Dict[str, Any]:
    """Static map configuration handed to the page"""
    return {
        'center': list(INITIAL_CENTER),
        'zoom': INITIAL_ZOOM,
        'closeUpZoom': CLOSE_UP_ZOOM,
        'tileUrl': TILE_URL,
        'tileMaxZoom': TILE_MAX_ZOOM,
        'tileAttribution': TILE_ATTRIBUTION,
        'polygonsPaneZ': POLYGONS_PANE_Z,
        'markersPaneZ': MARKERS_PANE_Z,
        'crashIcon': CRASH_ICON,
        'wardStyle': WARD_STYLE,
        'wardHighlightStyle': WARD_HIGHLIGHT_STYLE,
    }
