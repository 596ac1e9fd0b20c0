"""
Severity donut and per-year bar chart data, as plotly figures.
"""
import json
from collections import Counter
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import plotly.graph_objects as go

from crash_filters import fatal_count, major_injury_count, minor_injury_count

SEVERITY_CATEGORIES = ('Fatal', 'Major', 'Minor', 'None')
SEVERITY_COLORS = {
    'Fatal': '#d73027',
    'Major': '#fc8d59',
    'Minor': '#fee08b',
    'None': '#91bfdb',
}
BAR_COLOR = 'steelblue'
DONUT_HOLE = 0.5 / 0.8
CHART_HEIGHT = 300


def severity_bucket(record: Mapping[str, Any]) -> str:
    """Most severe outcome of a crash: Fatal > Major > Minor > None"""
    if fatal_count(record) > 0:
        return 'Fatal'
    if major_injury_count(record) > 0:
        return 'Major'
    if minor_injury_count(record) > 0:
        return 'Minor'
    return 'None'


def severity_counts(records: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    counts = Counter(severity_bucket(r) for r in records)
    return [{'category': c, 'count': counts.get(c, 0)} for c in SEVERITY_CATEGORIES]


def year_counts(records: Iterable[Mapping[str, Any]], years: Sequence[str]) -> List[Dict[str, Any]]:
    """
    Crash count for every known year, including years with no matching
    crashes, in ascending year order.
    """
    counts = Counter(r.get('year') for r in records)
    return [{'year': year, 'count': counts.get(year, 0)} for year in sorted(years)]


def donut_title(year: Optional[str]) -> str:
    title = "Crash Severity Distribution"
    if year:
        title += f" for {year}"
    return title


def donut_figure(counts: List[Dict[str, Any]], year: Optional[str] = None) -> go.Figure:
    fig = go.Figure()
    fig.add_trace(go.Pie(
        labels=[c['category'] for c in counts],
        values=[c['count'] for c in counts],
        hole=DONUT_HOLE,
        sort=False,
        direction='clockwise',
        marker=dict(colors=[SEVERITY_COLORS[c['category']] for c in counts]),
        textinfo='none',
        hovertemplate='Severity: %{label}<br>Total crashes: %{value}<extra></extra>'
    ))
    fig.update_layout(
        title=dict(text=donut_title(year), x=0.5, font=dict(size=16, color='#333')),
        height=CHART_HEIGHT + 50,
        template='plotly_white',
        showlegend=True,
        margin=dict(t=60, b=20, l=20, r=20)
    )
    return fig


def bar_figure(counts: List[Dict[str, Any]]) -> go.Figure:
    fig = go.Figure()
    fig.add_trace(go.Bar(
        x=[c['year'] for c in counts],
        y=[c['count'] for c in counts],
        marker_color=BAR_COLOR,
        hovertemplate='Total crashes: %{y}<extra></extra>'
    ))
    fig.update_layout(
        title=dict(text="Crash Count by Year", x=0.5, font=dict(size=14)),
        xaxis=dict(title="Year", type='category'),
        yaxis=dict(rangemode='tozero'),
        height=CHART_HEIGHT,
        template='plotly_white',
        showlegend=False,
        margin=dict(t=40, b=40, l=50, r=20)
    )
    return fig


def donut_chart(records: Sequence[Mapping[str, Any]], year: Optional[str]) -> Dict[str, Any]:
    counts = severity_counts(records)
    return {'counts': counts, 'title': donut_title(year),
            'figure': json.loads(donut_figure(counts, year).to_json())}


def bar_chart(records: Sequence[Mapping[str, Any]], years: Sequence[str]) -> Dict[str, Any]:
    counts = year_counts(records, years)
    return {'counts': counts, 'figure': json.loads(bar_figure(counts).to_json())}
