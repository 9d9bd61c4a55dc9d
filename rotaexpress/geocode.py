"""
Address resolution for Rota Express.

Turns a free-form address fragment, typed by the courier or read off a
parcel label, into a list of ``AddressCandidate`` objects. The actual
place lookup is delegated to a backend that answers with plain text,
one candidate per line:

    1. Rua A, 10 - Centro, São Paulo, LAT: -23.55, LNG: -46.63

``parse_candidates`` turns that text into candidates; lines that do not
match are dropped. Two backends are provided:

    GeminiPlaceSearch    – Gemini with Google Maps grounding (needs a key).
    NominatimPlaceSearch – OpenStreetMap's Nominatim through geopy,
                           rendered into the same line format.

The resolver never retries. An empty list means "no match, try another
query"; ``ResolutionFailure`` means "the lookup itself failed".

Example usage:

    from rotaexpress.geocode import AddressResolver, NominatimPlaceSearch
    resolver = AddressResolver(NominatimPlaceSearch(user_agent="rotaexpress_app"))
    candidates = resolver.resolve("Av. Paulista 1000")
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Protocol, Union

from geopy.exc import GeopyError
from geopy.geocoders import Nominatim

from rotaexpress.errors import NoMatchFound, ResolutionFailure
from rotaexpress.geo import Coordinate, coordinate_or_none
from rotaexpress.gemini import GeminiClient

logger = logging.getLogger(__name__)

Context = Union[Coordinate, str, None]

NO_MATCH_SENTINEL = "NOT_FOUND"

# A number followed by ",<digit>" is a decimal comma, which is rejected rather than truncated.
_LAT_RE = re.compile(r"\bLAT:\s*(-?\d+(?:\.\d+)?)(?![\d.]|,\d)", re.IGNORECASE)
_LNG_RE = re.compile(r"\bLNG:\s*(-?\d+(?:\.\d+)?)(?![\d.]|,\d)", re.IGNORECASE)
_ADDRESS_SPLIT_RE = re.compile(r",?\s*\bLAT:", re.IGNORECASE)
_ENUMERATION_RE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s*")

SEARCH_PROMPT = (
    'Localize no Google Maps: "{query}". {context}'
    "Forneça endereço oficial e coordenadas. Se houver mais de um lugar possível, "
    "liste todos, um por linha. Responda APENAS:\n"
    "1. [Endereço], LAT: [valor], LNG: [valor]\n"
    "Se nada for encontrado, responda apenas " + NO_MATCH_SENTINEL + "."
)


@dataclass(frozen=True)
class AddressCandidate:
    address: str
    coordinate: Coordinate


class PlaceSearchBackend(Protocol):
    def search(self, query: str, context: Context = None) -> str:
        ...


def parse_candidate_line(line: str) -> Optional[AddressCandidate]:
    """Parse one ``<address>, LAT: <lat>, LNG: <lng>`` record, or return ``None``."""
    lat_match = _LAT_RE.search(line)
    lng_match = _LNG_RE.search(line)
    if not (lat_match and lng_match):
        return None
    address = _ENUMERATION_RE.sub("", _ADDRESS_SPLIT_RE.split(line, maxsplit=1)[0]).strip()
    address = address.strip("*").strip()
    if not address:
        return None
    coordinate = coordinate_or_none(float(lat_match.group(1)), float(lng_match.group(1)))
    if coordinate is None:
        return None
    return AddressCandidate(address=address, coordinate=coordinate)


def parse_candidates(text: str) -> List[AddressCandidate]:
    """Parse every line of a backend answer into candidates.

    Args:
        text: Raw backend output.

    Returns:
        Candidates in the order they appeared; unparsable lines are skipped.
    """
    candidates: List[AddressCandidate] = []
    for line in text.splitlines():
        if not line.strip():
            continue
        candidate = parse_candidate_line(line)
        if candidate is None:
            logger.debug("Dropping unparsable candidate line: %r", line)
            continue
        candidates.append(candidate)
    return candidates


def _is_no_match(text: str) -> bool:
    stripped = text.strip()
    return not stripped or NO_MATCH_SENTINEL in stripped.upper()


class AddressResolver:
    """Resolve address text into candidates through a ``PlaceSearchBackend``."""

    def __init__(self, backend: PlaceSearchBackend) -> None:
        self.backend = backend

    def resolve(self, query: str, context: Context = None, require_match: bool = False) -> List[AddressCandidate]:
        """Resolve ``query`` into zero or more candidates.

        Args:
            query: Free-text address fragment.
            context: Optional coordinate or address used to prefer nearby results.
            require_match: Raise ``NoMatchFound`` instead of returning an
                empty list.

        Returns:
            The parsed candidates; an empty list when nothing matched.

        Raises:
            ResolutionFailure: If the backend fails, or answers with text
                none of whose lines can be parsed.
            NoMatchFound: If nothing matched and ``require_match`` is set.
        """
        query = (query or "").strip()
        if not query:
            if require_match:
                raise NoMatchFound(query)
            return []
        text = self.backend.search(query, context)
        candidates = parse_candidates(text)
        if not candidates:
            if _is_no_match(text):
                logger.info("No match for %r", query)
                if require_match:
                    raise NoMatchFound(query)
                return []
            logger.warning("Malformed place search answer for %r: %r", query, text[:200])
            raise ResolutionFailure("Place search returned no usable results", query=query)
        logger.info("Resolved %r into %d candidate(s)", query, len(candidates))
        return candidates


class GeminiPlaceSearch:
    """Place search through Gemini's Google Maps grounding tool."""

    def __init__(self, client: GeminiClient, model: str = "gemini-2.5-flash") -> None:
        self.client = client
        self.model = model

    def search(self, query: str, context: Context = None) -> str:
        context_text = ""
        tool_config = None
        if isinstance(context, Coordinate):
            context_text = f"Perto de: {context.lat:.6f}, {context.lng:.6f}. "
            tool_config = {
                "retrievalConfig": {"latLng": {"latitude": context.lat, "longitude": context.lng}}
            }
        elif context:
            context_text = f"Perto de: {context}. "
        prompt = SEARCH_PROMPT.format(query=query, context=context_text)
        return self.client.generate(
            self.model,
            [{"text": prompt}],
            tools=[{"googleMaps": {}}],
            tool_config=tool_config,
            query=query,
        )


# Degrees added around a context point to form Nominatim's preferred viewbox.
VIEWBOX_HALF_SPAN = 0.25


class NominatimPlaceSearch:
    """Place search through OpenStreetMap Nominatim via geopy.

    Results are rendered into the line-record format so they go through
    the same parser as every other backend.
    """

    def __init__(self, user_agent: str = "rotaexpress_app", timeout: float = 10.0, limit: int = 5, geocoder=None) -> None:
        # Nominatim's usage policy requires a custom user agent.
        self.geocoder = geocoder or Nominatim(user_agent=user_agent)
        self.timeout = timeout
        self.limit = limit
        self._context_point = lru_cache(maxsize=64)(self._geocode_context)

    def _geocode_context(self, address: str) -> Optional[Coordinate]:
        location = self._call(address, exactly_one=True)
        if location is None:
            return None
        return coordinate_or_none(location.latitude, location.longitude)

    def _call(self, query: str, **kwargs):
        try:
            return self.geocoder.geocode(query, timeout=self.timeout, **kwargs)
        except GeopyError as exc:
            logger.exception("Nominatim lookup for %r failed", query)
            raise ResolutionFailure("Could not reach the Nominatim service", query=query) from exc

    def search(self, query: str, context: Context = None) -> str:
        point = context if isinstance(context, Coordinate) else None
        if isinstance(context, str) and context.strip():
            point = self._context_point(context.strip())
        kwargs = {"exactly_one": False, "limit": self.limit}
        if point is not None:
            kwargs["viewbox"] = [
                (point.lat - VIEWBOX_HALF_SPAN, point.lng - VIEWBOX_HALF_SPAN),
                (point.lat + VIEWBOX_HALF_SPAN, point.lng + VIEWBOX_HALF_SPAN),
            ]
        locations = self._call(query, **kwargs)
        if not locations:
            return ""
        return "\n".join(
            f"{i}. {loc.address}, LAT: {loc.latitude:.6f}, LNG: {loc.longitude:.6f}"
            for i, loc in enumerate(locations, start=1)
        )


def build_resolver(settings) -> AddressResolver:
    """Create the resolver selected by ``settings.geocoder``."""
    if settings.geocoder == "gemini":
        client = GeminiClient(settings.gemini_api_key, timeout=settings.http_timeout)
        return AddressResolver(GeminiPlaceSearch(client, model=settings.search_model))
    return AddressResolver(NominatimPlaceSearch(user_agent=settings.user_agent, timeout=settings.http_timeout))
