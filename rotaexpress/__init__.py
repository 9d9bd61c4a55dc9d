"""
Rota Express package initialization.

This package provides the core of the Rota Express courier app: it
turns a photographed or typed address into coordinates, keeps the list
of delivery stops, and orders the stops by distance from the courier's
starting point.

Modules:
    geo            – Coordinate type and Haversine distance.
    geocode        – Address resolution through Gemini or Nominatim.
    ocr            – Reading the address off a parcel label photo.
    disambiguation – Choosing between zero, one or many candidates.
    stops          – The persisted stop collection and origin.
    sequencing     – Nearest-first resequencing and the display order.
    location       – Live position tracking.
    workflow       – One capture-to-commit action at a time.
    storage        – Durable key-value storage.
    navigation     – Waze and Google Maps links per stop.
    visualisation  – Folium based map of the stops.
    config         – Settings from Streamlit secrets or the environment.
"""

__all__ = [
    "geo",
    "geocode",
    "ocr",
    "disambiguation",
    "stops",
    "sequencing",
    "location",
    "workflow",
    "storage",
    "navigation",
    "visualisation",
    "config",
]
