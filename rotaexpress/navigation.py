"""
Links that hand a stop over to an external navigation app.

Rota Express does not draw turn-by-turn routes itself; each stop offers
a Waze and a Google Maps link that opens the courier's preferred app
already pointed at the stop's coordinates.
"""

from __future__ import annotations

from typing import Dict, Optional
from urllib.parse import urlencode

from rotaexpress.geo import Coordinate


def _latlng(coordinate: Coordinate) -> str:
    return f"{coordinate.lat:.6f},{coordinate.lng:.6f}"


def waze_url(destination: Coordinate) -> str:
    return "https://www.waze.com/ul?" + urlencode({"ll": _latlng(destination), "navigate": "yes"})


def google_maps_url(destination: Coordinate, origin: Optional[Coordinate] = None) -> str:
    """Google Maps directions URL; without ``origin`` the app uses the device position."""
    params = {"api": "1", "destination": _latlng(destination)}
    if origin is not None:
        params["origin"] = _latlng(origin)
    return "https://www.google.com/maps/dir/?" + urlencode(params)


def navigation_links(destination: Coordinate, origin: Optional[Coordinate] = None) -> Dict[str, str]:
    return {"Waze": waze_url(destination), "Maps": google_maps_url(destination, origin)}
