"""
Capture-to-commit workflow for Rota Express.

Ties the pieces together for one logical action (add a stop, set the
origin, or edit a stop):

    photo ──ImageToText──▶ text ──AddressResolver──▶ candidates
          ──disambiguate──▶ decision ──▶ StopStore

Only one resolution may be outstanding per target. ``begin`` hands out
a ``Ticket``; ``dismiss`` cancels it, and any result that arrives later
for a cancelled ticket is dropped instead of being applied. A failed
resolution never touches the store.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

from rotaexpress.disambiguation import AutoCommit, Decision, PromptUser, Target, disambiguate
from rotaexpress.errors import CaptureUnavailable, NoMatchFound, ResolutionInProgress, RotaExpressError
from rotaexpress.geocode import AddressCandidate, AddressResolver
from rotaexpress.location import LiveLocationTracker
from rotaexpress.ocr import ImageToText
from rotaexpress.stops import OriginLocation, Stop, StopStore

logger = logging.getLogger(__name__)

Committed = Union[Stop, OriginLocation]


@dataclass(frozen=True)
class Ticket:
    serial: int
    target: Target
    stop_id: Optional[str] = None

    @property
    def key(self) -> Tuple[Target, Optional[str]]:
        return (self.target, self.stop_id)


class CaptureWorkflow:
    """Runs resolutions for the UI and applies their outcome to the store.

    Args:
        store: Stop store that committed candidates are written to.
        resolver: Address resolver used for typed and scanned text.
        reader: Label reader for photos; ``None`` disables scanning.
        tracker: Live position source used to bias resolution.
    """

    def __init__(
        self,
        store: StopStore,
        resolver: AddressResolver,
        reader: Optional[ImageToText] = None,
        tracker: Optional[LiveLocationTracker] = None,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.reader = reader
        self.tracker = tracker
        self._serials = itertools.count(1)
        self._active: Dict[Tuple[Target, Optional[str]], Ticket] = {}
        self._pending: Dict[int, PromptUser] = {}
        self._lock = threading.Lock()

    def begin(self, target: Target, stop_id: Optional[str] = None) -> Ticket:
        """Open a resolution for ``target``.

        Raises:
            ResolutionInProgress: If one is already open for the same target.
            ValueError: If ``target`` is ``Target.EDIT`` without ``stop_id``.
        """
        if target is Target.EDIT and not stop_id:
            raise ValueError("Editing requires the id of the stop being edited")
        with self._lock:
            key = (target, stop_id if target is Target.EDIT else None)
            if key in self._active:
                raise ResolutionInProgress(f"A resolution for {target.value} is already in progress")
            ticket = Ticket(next(self._serials), target, key[1])
            self._active[key] = ticket
            return ticket

    def dismiss(self, ticket: Ticket) -> None:
        """Cancel ``ticket``; late results for it will be discarded."""
        with self._lock:
            self._release(ticket)
        logger.info("Dismissed %s resolution #%d", ticket.target.value, ticket.serial)

    def is_active(self, ticket: Ticket) -> bool:
        with self._lock:
            return self._active.get(ticket.key) == ticket

    def pending_choice(self, ticket: Ticket) -> Optional[PromptUser]:
        with self._lock:
            return self._pending.get(ticket.serial)

    def resolve_text(self, ticket: Ticket, text: str) -> Optional[Decision]:
        """Resolve typed or scanned ``text`` for ``ticket``.

        A single candidate is committed immediately and the ticket closes.
        Several candidates leave the ticket open until ``choose``. No
        candidates close the ticket with a manual entry fallback.

        Returns:
            The decision, or ``None`` if the ticket was dismissed or the
            stop being edited was deleted meanwhile.

        Raises:
            ResolutionFailure: If the resolver failed; the ticket closes
                and the store is left as it was.
        """
        if not self.is_active(ticket):
            return None
        if self._target_gone(ticket):
            self._close_if_active(ticket)
            logger.info("Discarding resolution for deleted stop %s", ticket.stop_id)
            return None
        context = self.tracker.latest if self.tracker is not None else None
        try:
            candidates = self.resolver.resolve(text, context, require_match=True)
        except NoMatchFound:
            candidates = []
        except RotaExpressError:
            if not self._close_if_active(ticket):
                logger.info("Discarding failure for dismissed resolution #%d", ticket.serial)
                return None
            raise
        decision = disambiguate(candidates, ticket.target, raw_text=text)
        with self._lock:
            if self._active.get(ticket.key) != ticket:
                logger.info("Discarding late result for dismissed resolution #%d", ticket.serial)
                return None
            if self._target_gone(ticket):
                self._release(ticket)
                logger.info("Discarding result for deleted stop %s", ticket.stop_id)
                return None
            if isinstance(decision, PromptUser):
                self._pending[ticket.serial] = decision
                return decision
            self._release(ticket)
        if isinstance(decision, AutoCommit) and self._apply(ticket, decision.candidate) is None:
            return None
        return decision

    def resolve_image(self, ticket: Ticket, image_bytes: Optional[bytes]) -> Optional[Decision]:
        """Read a label photo, then resolve the text it holds.

        Raises:
            CaptureUnavailable: If no image could be captured or scanning
                is not configured.
            ResolutionFailure: If the label reader or resolver failed.
        """
        if not self.is_active(ticket):
            return None
        if self.reader is None or image_bytes is None:
            self._close_if_active(ticket)
            raise CaptureUnavailable("Camera unavailable or permission denied")
        try:
            text = self.reader.extract(image_bytes)
        except RotaExpressError:
            if not self._close_if_active(ticket):
                logger.info("Discarding failure for dismissed resolution #%d", ticket.serial)
                return None
            raise
        if not self.is_active(ticket):
            logger.info("Discarding label text for dismissed resolution #%d", ticket.serial)
            return None
        if text is None:
            with self._lock:
                self._release(ticket)
            return disambiguate([], ticket.target, raw_text="")
        return self.resolve_text(ticket, text)

    def choose(self, ticket: Ticket, index: int) -> Optional[Committed]:
        """Commit the courier's pick from a ``PromptUser`` decision.

        Returns:
            The new or edited stop, the new origin, or ``None`` if the
            ticket is no longer active or the edited stop was deleted.
        """
        with self._lock:
            prompt = self._pending.get(ticket.serial)
            if prompt is None or self._active.get(ticket.key) != ticket:
                return None
            commit = prompt.choose(index)
            self._release(ticket)
        return self._apply(ticket, commit.candidate)

    def commit(self, ticket: Ticket, candidate: AddressCandidate) -> Optional[Committed]:
        """Commit ``candidate`` directly, e.g. a hand-corrected entry."""
        with self._lock:
            if self._active.get(ticket.key) != ticket:
                return None
            self._release(ticket)
        return self._apply(ticket, candidate)

    def _close_if_active(self, ticket: Ticket) -> bool:
        with self._lock:
            active = self._active.get(ticket.key) == ticket
            self._release(ticket)
            return active

    def _release(self, ticket: Ticket) -> None:
        if self._active.get(ticket.key) == ticket:
            del self._active[ticket.key]
        self._pending.pop(ticket.serial, None)

    def _target_gone(self, ticket: Ticket) -> bool:
        return ticket.target is Target.EDIT and self.store.snapshot.find(ticket.stop_id) is None

    def _apply(self, ticket: Ticket, candidate: AddressCandidate) -> Optional[Committed]:
        if ticket.target is Target.ORIGIN:
            origin = OriginLocation.from_candidate(candidate)
            self.store.set_origin(origin)
            return origin
        if ticket.target is Target.EDIT:
            try:
                return self.store.edit_stop(ticket.stop_id, candidate)
            except KeyError:
                logger.info("Discarding result for deleted stop %s", ticket.stop_id)
                return None
        return self.store.add_stop(candidate)
