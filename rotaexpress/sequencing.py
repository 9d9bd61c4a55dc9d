"""
Route sequencing for Rota Express.

Stops are ranked by straight-line distance from a single origin, the
explicit origin when the courier set one, otherwise the live position.
This is a one-pass nearest-first sort, not a tour optimisation: it does
not consider the distances between stops.

Two orderings are kept apart on purpose:

    resequence    – rewrites the persisted ``order`` of every stop,
                    completed ones included.
    display_order – the list the courier sees: pending stops first,
                    then completed, each group by ``order``. It never
                    changes ``order``.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, List, Optional, Sequence, Tuple

from rotaexpress.errors import NoOriginAvailable
from rotaexpress.geo import Coordinate, distance_km
from rotaexpress.stops import OriginLocation, Stop, StopStore


def effective_origin(origin: Optional[OriginLocation], live: Optional[Coordinate]) -> Optional[Coordinate]:
    """Return the coordinate distances are measured from, explicit origin first."""
    if origin is not None:
        return origin.coordinate
    return live


def resequence(stops: Sequence[Stop], origin: Optional[Coordinate]) -> Tuple[Stop, ...]:
    """Sort all stops by distance from ``origin`` and renumber them from 1.

    The sort is stable, so stops at the same distance keep their
    previous relative position.

    Raises:
        NoOriginAvailable: If ``origin`` is ``None``.
    """
    if origin is None:
        raise NoOriginAvailable()
    ranked = sorted(stops, key=lambda s: distance_km(origin, s.coordinate))
    return tuple(replace(stop, order=idx) for idx, stop in enumerate(ranked, start=1))


def resequence_store(store: StopStore, live: Optional[Coordinate]) -> Tuple[Stop, ...]:
    """Resequence the stops held by ``store`` and persist the new order."""
    ordered = resequence(store.stops, effective_origin(store.origin, live))
    store.apply_order(ordered)
    return ordered


def display_order(stops: Iterable[Stop]) -> List[Stop]:
    """Pending stops by ``order``, followed by completed stops by ``order``."""
    return sorted(stops, key=lambda s: (s.is_completed, s.order))


def distances_from(origin: Optional[Coordinate], stops: Iterable[Stop]) -> dict:
    """Map stop id to its distance in km from ``origin`` (empty without an origin)."""
    if origin is None:
        return {}
    return {stop.id: distance_km(origin, stop.coordinate) for stop in stops}
