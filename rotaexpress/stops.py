"""
Delivery stop collection for Rota Express.

``StopStore`` is the single owner of the courier's stops and of the
explicit origin. Every mutation reads the current ``RouteSnapshot``,
builds a new one, writes it to durable storage and then hands it to
subscribers. Snapshots are immutable, so a caller holding an old one
never sees it change underneath it.

The ``order`` field of a stop is the courier's visit priority. New
stops are appended after the current maximum; only the sequencer (via
``apply_order``) renumbers existing stops. Toggling a stop between
pending and completed leaves ``order`` alone; the pending-first view
is computed separately by ``sequencing.display_order``.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, List, Optional, Tuple

from rotaexpress.geo import Coordinate, coordinate_or_none
from rotaexpress.geocode import AddressCandidate
from rotaexpress.storage import ORIGIN_KEY, STOPS_KEY, KeyValueStorage

logger = logging.getLogger(__name__)

PENDING = "pending"
COMPLETED = "completed"
STATUSES = (PENDING, COMPLETED)


@dataclass(frozen=True)
class Stop:
    id: str
    address: str
    coordinate: Coordinate
    status: str = PENDING  # "pending" or "completed"
    order: int = 1

    @property
    def is_completed(self) -> bool:
        return self.status == COMPLETED

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "address": self.address,
            "lat": self.coordinate.lat,
            "lng": self.coordinate.lng,
            "status": self.status,
            "order": self.order,
        }

    @classmethod
    def from_record(cls, record: dict) -> "Stop":
        """Rebuild a stop from its stored form.

        Raises:
            ValueError: If any field is missing or out of range.
        """
        try:
            coordinate = coordinate_or_none(record["lat"], record["lng"])
            stop_id = str(record["id"])
            address = str(record["address"])
            status = record.get("status", PENDING)
            order = int(record["order"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed stop record: {record!r}") from exc
        if coordinate is None:
            raise ValueError(f"Stop {stop_id} has an invalid coordinate")
        if status not in STATUSES:
            raise ValueError(f"Stop {stop_id} has unknown status {status!r}")
        if order < 1 or not stop_id or not address:
            raise ValueError(f"Malformed stop record: {record!r}")
        return cls(id=stop_id, address=address, coordinate=coordinate, status=status, order=order)


@dataclass(frozen=True)
class OriginLocation:
    address: str
    coordinate: Coordinate

    def to_record(self) -> dict:
        return {"address": self.address, "lat": self.coordinate.lat, "lng": self.coordinate.lng}

    @classmethod
    def from_record(cls, record: dict) -> "OriginLocation":
        try:
            coordinate = coordinate_or_none(record["lat"], record["lng"])
            address = str(record["address"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed origin record: {record!r}") from exc
        if coordinate is None:
            raise ValueError("Origin has an invalid coordinate")
        return cls(address=address, coordinate=coordinate)

    @classmethod
    def from_candidate(cls, candidate: AddressCandidate) -> "OriginLocation":
        return cls(address=candidate.address, coordinate=candidate.coordinate)


@dataclass(frozen=True)
class RouteSnapshot:
    stops: Tuple[Stop, ...] = field(default_factory=tuple)
    origin: Optional[OriginLocation] = None

    def find(self, stop_id: str) -> Optional[Stop]:
        for stop in self.stops:
            if stop.id == stop_id:
                return stop
        return None

    @property
    def next_order(self) -> int:
        return max((s.order for s in self.stops), default=0) + 1


Listener = Callable[[RouteSnapshot], None]


def _new_stop_id() -> str:
    return uuid.uuid4().hex


class StopStore:
    """Authoritative, persisted collection of stops plus the explicit origin.

    Args:
        storage: Durable storage the store writes to after each mutation.
        snapshot: Initial state; use ``StopStore.load`` to read it from
            ``storage`` instead.
        id_factory: Callable producing unique stop identifiers.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        snapshot: Optional[RouteSnapshot] = None,
        id_factory: Callable[[], str] = _new_stop_id,
    ) -> None:
        self._storage = storage
        self._snapshot = snapshot or RouteSnapshot()
        self._id_factory = id_factory
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []

    @classmethod
    def load(cls, storage: KeyValueStorage, **kwargs) -> "StopStore":
        """Create a store from whatever ``storage`` holds.

        Unreadable payloads load as empty and bad records are skipped,
        each with a warning, so a damaged file never blocks the app.
        """
        return cls(storage, RouteSnapshot(_load_stops(storage), _load_origin(storage)), **kwargs)

    @property
    def snapshot(self) -> RouteSnapshot:
        return self._snapshot

    @property
    def stops(self) -> Tuple[Stop, ...]:
        return self._snapshot.stops

    @property
    def origin(self) -> Optional[OriginLocation]:
        return self._snapshot.origin

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for new snapshots; returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def add_stop(self, candidate: AddressCandidate) -> Stop:
        with self._lock:
            current = self._snapshot
            stop_id = self._id_factory()
            while current.find(stop_id) is not None:
                stop_id = self._id_factory()
            stop = Stop(
                id=stop_id,
                address=candidate.address,
                coordinate=candidate.coordinate,
                status=PENDING,
                order=current.next_order,
            )
            self._commit(replace(current, stops=current.stops + (stop,)), stops_changed=True)
            logger.info("Added stop %s (order %d): %s", stop.id, stop.order, stop.address)
            return stop

    def remove_stop(self, stop_id: str) -> None:
        with self._lock:
            current = self._snapshot
            if current.find(stop_id) is None:
                return
            remaining = tuple(s for s in current.stops if s.id != stop_id)
            self._commit(replace(current, stops=remaining), stops_changed=True)
            logger.info("Removed stop %s", stop_id)

    def toggle_status(self, stop_id: str) -> Optional[Stop]:
        """Flip a stop between pending and completed; ``order`` is untouched."""
        with self._lock:
            current = self._snapshot
            target = current.find(stop_id)
            if target is None:
                return None
            toggled = replace(target, status=PENDING if target.is_completed else COMPLETED)
            stops = tuple(toggled if s.id == stop_id else s for s in current.stops)
            self._commit(replace(current, stops=stops), stops_changed=True)
            logger.info("Stop %s is now %s", stop_id, toggled.status)
            return toggled

    def edit_stop(self, stop_id: str, candidate: AddressCandidate) -> Stop:
        """Replace a stop's address and coordinate in place.

        Raises:
            KeyError: If no stop has ``stop_id``.
        """
        with self._lock:
            current = self._snapshot
            target = current.find(stop_id)
            if target is None:
                raise KeyError(stop_id)
            edited = replace(target, address=candidate.address, coordinate=candidate.coordinate)
            stops = tuple(edited if s.id == stop_id else s for s in current.stops)
            self._commit(replace(current, stops=stops), stops_changed=True)
            logger.info("Edited stop %s: %s", stop_id, edited.address)
            return edited

    def set_origin(self, origin: Optional[OriginLocation]) -> None:
        """Set the explicit origin, or clear it with ``None`` to fall back to live location."""
        with self._lock:
            self._commit(replace(self._snapshot, origin=origin), origin_changed=True)
            if origin is None:
                logger.info("Cleared explicit origin; using live location")
            else:
                logger.info("Origin set to %s", origin.address)

    def clear_all(self) -> None:
        with self._lock:
            self._commit(RouteSnapshot(), stops_changed=True, origin_changed=True)
            logger.info("Cleared all stops and the origin")

    def apply_order(self, stops: Iterable[Stop]) -> None:
        """Store a renumbered stop sequence produced by the sequencer.

        Raises:
            ValueError: If ``stops`` is not the same set of stop ids the
                store currently holds.
        """
        new_stops = tuple(stops)
        with self._lock:
            current = self._snapshot
            if sorted(s.id for s in new_stops) != sorted(s.id for s in current.stops):
                raise ValueError("Resequenced stops do not match the stored collection")
            self._commit(replace(current, stops=new_stops), stops_changed=True)
            logger.info("Applied new order to %d stops", len(new_stops))

    def _commit(self, snapshot: RouteSnapshot, stops_changed: bool = False, origin_changed: bool = False) -> None:
        if stops_changed:
            payload = json.dumps([s.to_record() for s in snapshot.stops]).encode("utf-8")
            self._storage.set(STOPS_KEY, payload)
        if origin_changed:
            if snapshot.origin is None:
                self._storage.remove(ORIGIN_KEY)
            else:
                self._storage.set(ORIGIN_KEY, json.dumps(snapshot.origin.to_record()).encode("utf-8"))
        self._snapshot = snapshot
        for listener in list(self._listeners):
            listener(snapshot)


def _load_json(storage: KeyValueStorage, key: str):
    raw = storage.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        logger.warning("Ignoring unreadable value stored under %s", key)
        return None


def _load_stops(storage: KeyValueStorage) -> Tuple[Stop, ...]:
    records = _load_json(storage, STOPS_KEY)
    if not isinstance(records, list):
        return ()
    stops: List[Stop] = []
    seen = set()
    for record in records:
        try:
            stop = Stop.from_record(record)
        except ValueError as exc:
            logger.warning("Skipping stored stop: %s", exc)
            continue
        if stop.id in seen:
            logger.warning("Skipping duplicate stored stop id %s", stop.id)
            continue
        seen.add(stop.id)
        stops.append(stop)
    return tuple(stops)


def _load_origin(storage: KeyValueStorage) -> Optional[OriginLocation]:
    record = _load_json(storage, ORIGIN_KEY)
    if record is None:
        return None
    try:
        return OriginLocation.from_record(record)
    except ValueError as exc:
        logger.warning("Ignoring stored origin: %s", exc)
        return None
