import logging
import os
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from flask import Flask, current_app, jsonify, render_template, request, Response
from flask_compress import Compress
from werkzeug.datastructures import ImmutableMultiDict

import charts
import map_layers
from crash_data import CRASH_DATA_FILE, WARD_FILE, WardBoundaries, load_crash_data
from crash_filters import INJURY_MODES, FilterState
from dashboard import CrashDashboard, default_dashboard

logger = logging.getLogger(__name__)

# Configuration
WARD_PROPERTY = os.getenv('WARD_PROPERTY', 'NAME')
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
DEFAULT_CLUSTER_ZOOM = 12


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def number_format(value: Union[int, float, str]) -> str:
    """Format number with thousands separator"""
    return "{:,}".format(int(value))


def create_app(crash_file: Optional[Union[str, Path]] = None,
               ward_file: Optional[Union[str, Path]] = None,
               ward_property: str = WARD_PROPERTY) -> Flask:
    """
    Create the crash map server.

    Args:
        crash_file: Override the crash CSV location (path or URL)
        ward_file: Override the ward boundaries GeoJSON path
        ward_property: Feature property holding the ward identifier
    """
    app = Flask(__name__)
    Compress(app)  # Enable gzip/brotli compression for all responses
    app.add_template_filter(number_format, 'number_format')

    # The two loads are independent: a missing boundary file never blocks the crash data
    working_set = load_crash_data(crash_file if crash_file is not None else CRASH_DATA_FILE)
    app.config['DASHBOARD'] = default_dashboard(working_set)
    app.config['WARD_BOUNDARIES'] = WardBoundaries(ward_file if ward_file is not None else WARD_FILE)
    app.config['WARD_PROPERTY'] = ward_property

    register_routes(app)
    return app


def get_dashboard() -> CrashDashboard:
    return current_app.config['DASHBOARD']


def get_ward_geojson() -> Optional[Dict[str, Any]]:
    return current_app.config['WARD_BOUNDARIES'].load()


# ============================================================================
# HELPER FUNCTIONS: Input Validation
# ============================================================================

def validate_viewport(request_args: ImmutableMultiDict) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Validate the zoom and bounds parameters of the cluster endpoint.

    Returns:
        tuple: (parsed viewport dict, error_message str or None)
    """
    parsed: Dict[str, Any] = {'zoom': DEFAULT_CLUSTER_ZOOM, 'bounds': None}

    zoom_str = request_args.get('zoom')
    if zoom_str:
        try:
            zoom = int(zoom_str)
        except ValueError:
            return None, "Invalid zoom format - must be an integer"
        if not 0 <= zoom <= 20:
            return None, "Zoom level must be between 0 and 20"
        parsed['zoom'] = zoom

    bounds_str = request_args.get('bounds')
    if bounds_str:
        try:
            bounds_parts = [float(b.strip()) for b in bounds_str.split(',')]
        except ValueError:
            return None, "Invalid bounds format - must be numeric values"
        if len(bounds_parts) != 4:
            return None, "Bounds must contain exactly 4 values: south,west,north,east"
        south, west, north, east = bounds_parts
        if not (-90.0 <= south < north <= 90.0):
            return None, "Invalid latitude bounds"
        if not (-180.0 <= west < east <= 180.0):
            return None, "Invalid longitude bounds"
        parsed['bounds'] = (south, west, north, east)

    return parsed, None


def parse_filter_state(request_args: ImmutableMultiDict) -> Tuple[Optional[FilterState], Optional[str]]:
    return FilterState.from_args(request_args, get_dashboard().working_set)


# ============================================================================
# ROUTES
# ============================================================================

def register_routes(app: Flask) -> None:

    @app.route('/')
    def index() -> str:
        """Crash map with filter controls and charts"""
        dashboard = get_dashboard()
        return render_template('index.html',
                               total_crashes=len(dashboard.working_set),
                               years=dashboard.working_set.years,
                               wards=dashboard.working_set.wards,
                               default_year=dashboard.working_set.default_year,
                               injury_modes=INJURY_MODES,
                               map_settings=map_layers.map_settings())

    @app.route('/api/filters')
    def get_filters() -> Response:
        """Return filter option lists"""
        working_set = get_dashboard().working_set
        return jsonify({
            'years': working_set.years,
            'wards': working_set.wards,
            'injury': list(INJURY_MODES),
            'default_year': working_set.default_year,
        })

    @app.route('/api/dashboard')
    def get_dashboard_views() -> Union[Response, Tuple[Response, int]]:
        """
        Return the crash layer and both charts for the current controls.

        Query parameters (all optional):
        - year: Selected year; empty for all years, absent for the default year
        - ward: Selected ward
        - injury: all, high, low or none
        - fatal, pedestrian, bicyclist: true/false toggles
        """
        state, error = parse_filter_state(request.args)
        if error:
            return jsonify({'error': error}), 400

        payload = get_dashboard().update(state)
        payload['state'] = state.to_dict()
        return jsonify(payload)

    @app.route('/api/clusters')
    def get_clusters() -> Union[Response, Tuple[Response, int]]:
        """
        Return clustered crash markers for the viewport.

        Accepts the /api/dashboard filters plus:
        - zoom: Map zoom level (0-20)
        - bounds: Viewport bounds as "south,west,north,east"
        """
        state, error = parse_filter_state(request.args)
        if error:
            return jsonify({'error': error}), 400
        viewport, error = validate_viewport(request.args)
        if error:
            return jsonify({'error': error}), 400

        views = get_dashboard().views(state)
        features = map_layers.crash_features(views.map_records)['features']
        clusters = map_layers.cluster_features(features, viewport['zoom'], viewport['bounds'])
        return jsonify({
            'clusters': clusters,
            'total_in_view': sum(c.get('count', 1) for c in clusters),
            'total_markers': len(features),
            'zoom': viewport['zoom'],
        })

    @app.route('/api/wards')
    def get_wards() -> Union[Response, Tuple[Response, int]]:
        """Return ward boundaries as GeoJSON"""
        geojson = get_ward_geojson()
        if geojson is None:
            return jsonify({'error': 'Ward boundaries unavailable'}), 503
        return jsonify(map_layers.ward_layer(geojson, current_app.config['WARD_PROPERTY']))

    @app.route('/api/wards/<ward>')
    def get_ward(ward: str) -> Union[Response, Tuple[Response, int]]:
        """Return a single ward boundary with its bounding box"""
        geojson = get_ward_geojson()
        if geojson is None:
            return jsonify({'error': 'Ward boundaries unavailable'}), 503
        feature = map_layers.find_ward_feature(geojson, ward, current_app.config['WARD_PROPERTY'])
        if feature is None:
            return jsonify({'error': 'Ward not found'}), 404
        return jsonify(feature)

    @app.route('/api/stats/summary')
    def get_stats_summary() -> Response:
        """Return counts over the whole working set"""
        working_set = get_dashboard().working_set
        year_counts = Counter(r['year'] for r in working_set.records)
        return jsonify({
            'total_records': len(working_set),
            'by_year': {year: year_counts.get(year, 0) for year in working_set.years},
            'by_severity': {c['category']: c['count']
                            for c in charts.severity_counts(working_set.records)},
            'date_range': f"{working_set.years[0]}-{working_set.years[-1]}" if working_set.years else "N/A",
        })


if __name__ == '__main__':
    # Configuration from environment variables (safer for production)
    PORT = int(os.getenv('PORT', 5001))
    DEBUG = os.getenv('FLASK_ENV', 'development') == 'development'

    configure_logging()
    app = create_app()

    print("\n" + "="*80)
    print("CRASH MAP SERVER")
    print("="*80)
    print(f"\nStarting server at http://localhost:{PORT}")
    print(f"   Debug mode: {'ON' if DEBUG else 'OFF'}")
    print(f"   Press Ctrl+C to stop the server\n")
    print("="*80 + "\n")
    app.run(debug=DEBUG, port=PORT)
