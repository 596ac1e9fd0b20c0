"""
Recompute the filtered views for a filter state and hand them to every
subscribed renderer (crash layer, donut chart, bar chart).
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

import charts
import map_layers
from crash_data import WorkingSet
from crash_filters import FilterState, filter_records

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DashboardViews:
    map_records: List[Mapping[str, Any]]
    donut_records: List[Mapping[str, Any]]
    bar_records: List[Mapping[str, Any]]


Renderer = Callable[[DashboardViews, FilterState], Any]


class CrashDashboard:
    """State changed -> recompute derived views -> notify renderers"""

    def __init__(self, working_set: WorkingSet):
        self.working_set = working_set
        self._renderers: Dict[str, Renderer] = {}

    def subscribe(self, name: str, renderer: Renderer) -> None:
        self._renderers[name] = renderer

    def unsubscribe(self, name: str) -> None:
        self._renderers.pop(name, None)

    @property
    def subscribers(self) -> List[str]:
        return list(self._renderers)

    def default_state(self) -> FilterState:
        return FilterState.default(self.working_set)

    def views(self, state: FilterState) -> DashboardViews:
        records = self.working_set.records
        map_records = filter_records(records, state)
        # Donut shares the map's filter; the bar chart shows every year
        return DashboardViews(
            map_records=map_records,
            donut_records=list(map_records),
            bar_records=filter_records(records, state, ignore_year=True),
        )

    def update(self, state: Optional[FilterState] = None) -> Dict[str, Any]:
        if state is None:
            state = self.default_state()
        views = self.views(state)
        logger.debug("Filter %s matched %d of %d crashes",
                     state, len(views.map_records), len(self.working_set))
        return {name: renderer(views, state) for name, renderer in self._renderers.items()}


def render_crashes(views: DashboardViews, state: FilterState) -> Dict[str, Any]:
    return map_layers.crash_features(views.map_records)


def default_dashboard(working_set: WorkingSet) -> CrashDashboard:
    dashboard = CrashDashboard(working_set)
    dashboard.subscribe('crashes', render_crashes)
    dashboard.subscribe('donut', lambda views, state: charts.donut_chart(views.donut_records, state.year))
    dashboard.subscribe('bar', lambda views, state: charts.bar_chart(views.bar_records, working_set.years))
    return dashboard
