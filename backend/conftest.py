"""Shared fixtures: fake upstream services for the fetchers and aggregator."""

import asyncio
import json
from datetime import datetime
from typing import Optional

import httpx
import pytest

from models import LocationQuery, PlaceCandidate, RecentEvent

# Wednesday 14:00 local
WEDNESDAY_2PM = datetime(2026, 10, 14, 14, 0)
# Saturday 14:00 local
SATURDAY_2PM = datetime(2026, 10, 17, 14, 0)

MISSION = (37.7599, -122.4148)


def wire_event(time: str, category: Optional[str] = "LARCENY/THEFT", number: str = "250001") -> dict:
    return {
        "Date": "10/12/2026",
        "Time": time,
        "Incident #": number,
        "Location": "16TH ST / MISSION ST",
        "District": "MISSION",
        "CategorySFPD": category,
        "Description": "PETTY THEFT FROM A BUILDING",
        "Resolution": "OPEN OR ACTIVE",
    }


@pytest.fixture
def event():
    """Factory for RecentEvent objects: event("01:30", category="ASSAULT")."""
    counter = iter(range(1, 10_000))

    def _make(time: str = "12:00", category: Optional[str] = "LARCENY/THEFT") -> RecentEvent:
        return RecentEvent.model_validate(wire_event(time, category, number=f"25{next(counter):04d}"))

    return _make


@pytest.fixture
def query() -> LocationQuery:
    return LocationQuery(
        latitude=MISSION[0],
        longitude=MISSION[1],
        neighborhood="Mission District",
        timestamp="2026-10-14T21:00:00.000Z",
    )


def offset_place(name: str, miles_north: float) -> PlaceCandidate:
    """A place `miles_north` miles due north of the Mission test point."""
    # one degree of latitude on a 3958.8mi sphere
    deg_per_mile = 1 / (3958.8 * 3.141592653589793 / 180)
    return PlaceCandidate(
        name=name,
        address=f"{name} address",
        lat=MISSION[0] + miles_north * deg_per_mile,
        lng=MISSION[1],
    )


class FakePlaceSearch:
    """PlaceSearch double; optionally blocks until `gate` is set, or raises `error`."""

    def __init__(self, places=None, gate: Optional[asyncio.Event] = None,
                 delay: float = 0.0, error: Optional[Exception] = None):
        self.places = list(places or [])
        self.gate = gate
        self.delay = delay
        self.error = error
        self.calls = []

    async def search(self, query, lat, lng, radius_m):
        self.calls.append((query, lat, lng, radius_m))
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.places)


class FakeServices:
    """httpx.MockTransport handler standing in for the recommendation and incident services."""

    def __init__(self, recs=None, recs_status: int = 200,
                 events=None, events_status: int = 200,
                 events_gate: Optional[asyncio.Event] = None):
        self.recs = {"recommendations": [], "crime_amount": 0} if recs is None else recs
        self.recs_status = recs_status
        self.events = [] if events is None else events
        self.events_status = events_status
        self.events_gate = events_gate
        self.requests: list[httpx.Request] = []

    @staticmethod
    def _body(payload):
        return payload if isinstance(payload, (bytes, str)) else json.dumps(payload)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if "crime-recs" in request.url.path:
            return httpx.Response(self.recs_status, content=self._body(self.recs))
        if "incidents" in request.url.path:
            if self.events_gate is not None:
                await self.events_gate.wait()
            return httpx.Response(self.events_status, content=self._body(self.events))
        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))
