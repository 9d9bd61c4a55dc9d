"""
Map visualisation utilities for Rota Express.

Builds an interactive Folium map of the courier's stops. Markers are
numbered with each stop's ``order`` and drawn in the display sequence
(pending first), completed stops in grey. The origin, when known, gets
a home marker and the pending stops are joined to it by a polyline.
The map can be embedded in the Streamlit app via ``streamlit_folium``.
"""

from __future__ import annotations

from typing import Optional, Sequence

import folium

from rotaexpress.geo import Coordinate
from rotaexpress.navigation import google_maps_url
from rotaexpress.sequencing import display_order
from rotaexpress.stops import Stop

PENDING_COLOUR = "#4f46e5"
COMPLETED_COLOUR = "#64748b"


def _marker_html(order: int, colour: str) -> str:
    return (
        f"<div style='font-size: 12px; color: white; background-color: {colour}; "
        f"border-radius: 50%; width: 24px; height: 24px; text-align: center; "
        f"line-height: 24px;'>{order}</div>"
    )


def create_folium_map(
    stops: Sequence[Stop],
    origin: Optional[Coordinate] = None,
    origin_label: str = "Ponto de partida",
) -> folium.Map:
    """Create a Folium map with numbered stop markers.

    Args:
        stops: Stops to draw, in any order.
        origin: Coordinate distances are measured from, if known.
        origin_label: Popup text for the origin marker.

    Returns:
        A Folium Map object ready for display.
    """
    points = [s.coordinate for s in stops] + ([origin] if origin is not None else [])
    if not points:
        return folium.Map(location=[0, 0], zoom_start=2)
    avg_lat = sum(p.lat for p in points) / len(points)
    avg_lng = sum(p.lng for p in points) / len(points)
    m = folium.Map(location=[avg_lat, avg_lng], zoom_start=13, tiles="OpenStreetMap")
    if origin is not None:
        folium.Marker(
            location=[origin.lat, origin.lng],
            popup=folium.Popup(origin_label, parse_html=True),
            icon=folium.Icon(color="green", icon="home"),
        ).add_to(m)
    ordered = display_order(stops)
    for stop in ordered:
        colour = COMPLETED_COLOUR if stop.is_completed else PENDING_COLOUR
        popup = f"{stop.order}. {stop.address}<br><a href='{google_maps_url(stop.coordinate)}' target='_blank'>Maps</a>"
        folium.Marker(
            location=[stop.coordinate.lat, stop.coordinate.lng],
            popup=folium.Popup(popup, max_width=300),
            icon=folium.DivIcon(html=_marker_html(stop.order, colour)),
        ).add_to(m)
    path = ([[origin.lat, origin.lng]] if origin is not None else []) + [
        [s.coordinate.lat, s.coordinate.lng] for s in ordered if not s.is_completed
    ]
    if len(path) > 1:
        folium.PolyLine(path, color="blue", weight=4, opacity=0.6).add_to(m)
    return m
