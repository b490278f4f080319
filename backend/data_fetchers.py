"""Haven Backend — Source Fetchers (crime recommendations, police stations, recent incidents)"""

import math
import logging
from typing import Any, Optional, Protocol
from urllib.parse import quote

import httpx
from cachetools import TTLCache
from pydantic import TypeAdapter, ValidationError

from config import (
    CRIME_RECS_URL, INCIDENT_SCRAPER_URL,
    GOOGLE_MAPS_API_KEY, PLACES_NEARBY_URL, PLACE_CACHE_TTL,
    FETCH_TIMEOUT_SECONDS, TRANSPORT_MODE,
    POLICE_SEARCH_QUERY, POLICE_SEARCH_RADIUS_METERS, POLICE_MAX_DISTANCE_MILES,
)
from models import (
    Coordinates, CrimeRecsResponse, LocationQuery,
    PlaceCandidate, PoliceStation, RecentEvent,
)

logger = logging.getLogger("haven.fetchers")

_JSON_HEADERS = {"Content-Type": "application/json", "accept": "application/json"}
_EVENT_LIST = TypeAdapter(list[RecentEvent])


class SourceUnavailable(Exception):
    """A source could not produce a result (transport, status or decode failure)."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


def make_client(timeout: float = FETCH_TIMEOUT_SECONDS) -> httpx.AsyncClient:
    """Shared async HTTP client; one per process, passed into the fetchers."""
    return httpx.AsyncClient(timeout=timeout)


def _haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance between two points in miles."""
    R = 3958.8  # Earth radius in miles
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlon / 2) ** 2)
    return R * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


# ─────────────────────── Crime Recommendations ──────────────────

def _extract_recommendations(payload: Any) -> list[str]:
    """Pull the advisory strings out of any of the service's response shapes.

    Current: {"recommendations": [...], "crime_amount": n}
    Older:   {"status": 200, "data": {"recommendations": [...]}}
    Bare:    ["...", "..."]
    """
    if isinstance(payload, list):
        return CrimeRecsResponse(recommendations=payload).recommendations
    if isinstance(payload, dict):
        if "recommendations" in payload:
            return CrimeRecsResponse.model_validate(payload).recommendations
        data = payload.get("data")
        if isinstance(data, dict) and "recommendations" in data:
            return CrimeRecsResponse.model_validate(data).recommendations
    raise ValueError("no recommendations list in response")


async def fetch_crime_recommendations(
    client: httpx.AsyncClient,
    query: LocationQuery,
    user_stats: Optional[dict[str, str]] = None,
    url: str = CRIME_RECS_URL,
) -> list[str]:
    """POST the location (plus optional profile context) and return advisory strings."""
    body = {
        "neighborhood": query.normalized_neighborhood,
        "city": query.city,
        "state": query.state,
        "user_stats": dict(user_stats or {}),
        "transport": TRANSPORT_MODE,
        "time": query.timestamp,
    }
    try:
        r = await client.post(url, json=body, headers=_JSON_HEADERS)
    except httpx.HTTPError as e:
        raise SourceUnavailable("recommendations", f"request failed: {e!r}") from e

    if r.status_code != 200:
        raise SourceUnavailable("recommendations", f"HTTP {r.status_code}")

    try:
        recs = _extract_recommendations(r.json())
    except (ValueError, ValidationError) as e:
        raise SourceUnavailable("recommendations", f"undecodable body: {e}") from e

    logger.info(f"Recommendations: {len(recs)} for {query.normalized_neighborhood}")
    return recs


# ─────────────────────────── Police Stations ────────────────────

class PlaceSearch(Protocol):
    async def search(self, query: str, lat: float, lng: float, radius_m: float) -> list[PlaceCandidate]:
        ...


class GooglePlacesSearch:
    """Point-of-interest search backed by the Google Places Nearby Search API."""

    def __init__(self, client: httpx.AsyncClient, api_key: str = GOOGLE_MAPS_API_KEY,
                 url: str = PLACES_NEARBY_URL, cache_ttl: int = PLACE_CACHE_TTL):
        self._client = client
        self._api_key = api_key
        self._url = url
        self._cache: TTLCache = TTLCache(maxsize=512, ttl=cache_ttl)

    async def search(self, query: str, lat: float, lng: float, radius_m: float) -> list[PlaceCandidate]:
        cache_key = f"{query}:{lat:.3f},{lng:.3f}:{radius_m:.0f}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Places cache hit for {cache_key}")
            return cached

        if not self._api_key:
            raise SourceUnavailable("police_stations", "GOOGLE_MAPS_API_KEY is not set")

        try:
            r = await self._client.get(
                self._url,
                params={
                    "location": f"{lat},{lng}",
                    "radius": radius_m,
                    "keyword": query,
                    "key": self._api_key,
                },
            )
        except httpx.HTTPError as e:
            raise SourceUnavailable("police_stations", f"request failed: {e!r}") from e

        if r.status_code != 200:
            raise SourceUnavailable("police_stations", f"HTTP {r.status_code}")

        try:
            data = r.json()
        except ValueError as e:
            raise SourceUnavailable("police_stations", f"undecodable body: {e}") from e

        status = data.get("status", "OK")
        if status not in ("OK", "ZERO_RESULTS"):
            raise SourceUnavailable("police_stations", f"Places status {status}")

        places = []
        for place in data.get("results", []):
            ploc = place.get("geometry", {}).get("location", {})
            if not place.get("name") or "lat" not in ploc or "lng" not in ploc:
                continue
            places.append(PlaceCandidate(
                name=place["name"],
                address=place.get("vicinity") or place.get("formatted_address") or "Unknown address",
                phone=place.get("formatted_phone_number"),
                lat=ploc["lat"],
                lng=ploc["lng"],
            ))

        self._cache[cache_key] = places
        return places


def select_nearby_stations(
    stations: list[PoliceStation], max_miles: float = POLICE_MAX_DISTANCE_MILES
) -> list[PoliceStation]:
    """Keep stations within `max_miles`, closest first; equal distances keep input order."""
    return sorted((s for s in stations if s.distance <= max_miles), key=lambda s: s.distance)


async def fetch_police_stations(
    place_search: PlaceSearch,
    query: LocationQuery,
    radius_m: float = POLICE_SEARCH_RADIUS_METERS,
) -> list[PoliceStation]:
    """Police stations within walking range of the query point. Empty is a valid result."""
    candidates = await place_search.search(POLICE_SEARCH_QUERY, query.latitude, query.longitude, radius_m)

    stations = [
        PoliceStation(
            name=c.name,
            address=c.address,
            phone=c.phone,
            location=Coordinates(lat=c.lat, lng=c.lng),
            distance=_haversine_miles(query.latitude, query.longitude, c.lat, c.lng),
        )
        for c in candidates
    ]
    nearby = select_nearby_stations(stations)
    logger.info(
        f"Police stations: {len(nearby)}/{len(stations)} within {POLICE_MAX_DISTANCE_MILES}mi "
        f"of ({query.latitude:.4f}, {query.longitude:.4f})"
    )
    return nearby


# ─────────────────────────── Recent Incidents ───────────────────

def decode_events(payload: Any) -> list[RecentEvent]:
    """Decode an incident array, salvaging the well-formed records if any are bad.

    Raises ValueError only when the payload is not an array at all.
    """
    if not isinstance(payload, list):
        raise ValueError(f"expected a JSON array, got {type(payload).__name__}")

    try:
        return _EVENT_LIST.validate_python(payload)
    except ValidationError:
        pass

    events = []
    for record in payload:
        try:
            events.append(RecentEvent.model_validate(record))
        except ValidationError:
            continue
    logger.info(f"Lenient decode kept {len(events)}/{len(payload)} incident records")
    return events


async def fetch_recent_events(
    client: httpx.AsyncClient,
    query: LocationQuery,
    base_url: str = INCIDENT_SCRAPER_URL,
) -> list[RecentEvent]:
    """Scrape recent incidents for the query's neighborhood."""
    url = f"{base_url.rstrip('/')}/{quote(query.normalized_neighborhood, safe='')}"
    try:
        r = await client.post(url, headers={"accept": "application/json"})
    except httpx.HTTPError as e:
        raise SourceUnavailable("events", f"request failed: {e!r}") from e

    if r.status_code != 200:
        raise SourceUnavailable("events", f"HTTP {r.status_code}")

    try:
        events = decode_events(r.json())
    except ValueError as e:
        raise SourceUnavailable("events", f"undecodable body: {e}") from e

    logger.info(f"Recent events: {len(events)} for {query.normalized_neighborhood}")
    return events
