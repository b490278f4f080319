"""Haven Backend — Location context aggregation

A LocationContext owns one LocationQuery's fetch lifecycle:

  open() ──► recommendations ─┐
         ├─► police stations ─┼─► (police + events terminal) ─► analyze ─► score
         └─► recent events  ──┘

Each fetcher writes only its own FetchSlot. Derivation runs once, the first
time both the police-station and event slots are terminal. Observers get a
fresh LocationSnapshot after every change.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Awaitable, Callable, Optional

import httpx

from config import FETCH_TIMEOUT_SECONDS, CRIME_RECS_URL, INCIDENT_SCRAPER_URL
from data_fetchers import (
    PlaceSearch, SourceUnavailable,
    fetch_crime_recommendations, fetch_police_stations, fetch_recent_events,
)
from event_analysis import analyze_events
from models import (
    EventAnalysis, LocationQuery, LocationSnapshot,
    PoliceStation, RecentEvent, RiskScore, SlotStatus, SlotView,
)
from scoring import classify, safest_window, score
from slots import FetchSlot

logger = logging.getLogger("haven.aggregator")

RECOMMENDATIONS_UNAVAILABLE = "No recommendations available"

Subscriber = Callable[[LocationSnapshot], None]


class LocationContext:
    """Concurrent fetch + derive pipeline for a single LocationQuery."""

    def __init__(
        self,
        query: LocationQuery,
        *,
        client: httpx.AsyncClient,
        place_search: PlaceSearch,
        user_stats: Optional[dict[str, str]] = None,
        timeout: float = FETCH_TIMEOUT_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
        jitter: Optional[Callable[[], float]] = None,
        crime_recs_url: str = CRIME_RECS_URL,
        incident_url: str = INCIDENT_SCRAPER_URL,
    ):
        self.query = query
        self.query_id = uuid.uuid4().hex[:12]

        self.recommendations: FetchSlot[list[str]] = FetchSlot("recommendations")
        self.police_stations: FetchSlot[list[PoliceStation]] = FetchSlot("police_stations")
        self.events: FetchSlot[list[RecentEvent]] = FetchSlot("events")
        self.analysis: Optional[EventAnalysis] = None
        self.risk = RiskScore.loading()

        self._client = client
        self._place_search = place_search
        self._user_stats = dict(user_stats or {})
        self._timeout = timeout
        self._clock = clock
        self._jitter = jitter
        self._crime_recs_url = crime_recs_url
        self._incident_url = incident_url

        self._tasks: list[asyncio.Task] = []
        self._subscribers: list[Subscriber] = []
        self._derived = False
        self._closed = False
        self._scored = asyncio.Event()

    @classmethod
    def open(cls, query: LocationQuery, **deps) -> "LocationContext":
        """Create a context and start its fetchers. Must be called from a running loop."""
        ctx = cls(query, **deps)
        ctx.start()
        return ctx

    # ── Lifecycle ──

    def start(self) -> None:
        if self._tasks or self._closed:
            return
        q = self.query
        logger.info(f"Opening context {self.query_id} for {q.normalized_neighborhood} "
                    f"({q.latitude:.4f}, {q.longitude:.4f})")
        self._tasks = [
            asyncio.create_task(
                self._run(self.recommendations, lambda: fetch_crime_recommendations(
                    self._client, q, self._user_stats, url=self._crime_recs_url)),
                name=f"recommendations:{self.query_id}",
            ),
            asyncio.create_task(
                self._run(self.police_stations, lambda: fetch_police_stations(self._place_search, q)),
                name=f"police_stations:{self.query_id}",
            ),
            asyncio.create_task(
                self._run(self.events, lambda: fetch_recent_events(
                    self._client, q, base_url=self._incident_url)),
                name=f"events:{self.query_id}",
            ),
        ]

    def close(self) -> None:
        """Supersede this context: cancel in-flight fetches and stop publishing."""
        if self._closed:
            return
        self._closed = True
        for task in self._tasks:
            if not task.done():
                task.cancel()
        for slot in (self.recommendations, self.police_stations, self.events):
            if not slot.is_terminal:
                slot.fail("superseded")
        self._subscribers.clear()
        self._scored.set()
        logger.info(f"Closed context {self.query_id}")

    async def join(self) -> LocationSnapshot:
        """Wait for every fetch task to finish (each is bounded by the fetch timeout)."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        return self.snapshot()

    async def aclose(self) -> None:
        self.close()
        await self.join()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def scored(self) -> bool:
        return self._derived

    # ── Fetch tasks ──

    async def _run(self, slot: FetchSlot, fetch: Callable[[], Awaitable]) -> None:
        value, reason = None, ""
        try:
            value = await asyncio.wait_for(fetch(), self._timeout)
        except asyncio.TimeoutError:
            reason = f"timed out after {self._timeout:g}s"
        except SourceUnavailable as e:
            reason = e.reason
        except Exception as e:
            reason = f"unexpected error: {e!r}"
            logger.exception(f"[{self.query_id}] {slot.name} fetch crashed")

        if self._closed:
            logger.debug(f"[{self.query_id}] discarding stale {slot.name} result")
            return

        if reason:
            logger.warning(f"[{self.query_id}] {slot.name} unavailable: {reason}")
            slot.fail(reason)
        else:
            slot.succeed(value)

        self._notify()
        self.maybe_derive()

    # ── Derivation ──

    def _now(self) -> datetime:
        """Evaluation time: the injected clock, else the query's local time, else the host clock."""
        if self._clock is not None:
            return self._clock()
        if self.query.localTime is not None:
            return self.query.localTime
        return datetime.now()

    def maybe_derive(self) -> bool:
        """Analyze and score once both prerequisites are terminal.

        Safe to call any number of times; returns True only for the call that
        actually derived. Never derives for a closed context.
        """
        if self._closed or self._derived:
            return False
        if not (self.police_stations.is_terminal and self.events.is_terminal):
            return False
        self._derived = True

        try:
            now = self._now()
            events = self.events.value if self.events.succeeded else []
            stations = self.police_stations.value if self.police_stations.succeeded else []

            self.analysis = analyze_events(events, now) if events else None
            start, end = safest_window(self.analysis)
            value = score(len(events), len(stations), start, end, now, jitter=self._jitter)
            self.risk = RiskScore(
                value=value,
                state=classify(value),
                safestWindow=(start, end),
                computedAt=now.isoformat(),
            )
            logger.info(
                f"[{self.query_id}] score={value} state={self.risk.state.value} "
                f"({len(events)} events, {len(stations)} stations, window {start}-{end})"
            )
        except Exception:
            logger.exception(f"[{self.query_id}] risk derivation failed")
        finally:
            self._scored.set()

        self._notify()
        return True

    async def wait_until_settled(self, timeout: float) -> LocationSnapshot:
        """Wait (bounded) for every source to finish; returns the latest snapshot either way."""
        pending = [t for t in self._tasks if not t.done()]
        if pending:
            await asyncio.wait(pending, timeout=timeout)
        return self.snapshot()

    async def wait_until_scored(self, timeout: float) -> LocationSnapshot:
        """Wait (bounded) for the risk score; returns the latest snapshot either way."""
        try:
            await asyncio.wait_for(self._scored.wait(), timeout)
        except asyncio.TimeoutError:
            logger.debug(f"[{self.query_id}] not scored within {timeout:g}s")
        return self.snapshot()

    # ── Observation ──

    def snapshot(self) -> LocationSnapshot:
        failed_recs = self.recommendations.status is SlotStatus.failed
        return LocationSnapshot(
            queryId=self.query_id,
            query=self.query,
            recommendations=self.recommendations.view(SlotView[list[str]]),
            policeStations=self.police_stations.view(SlotView[list[PoliceStation]]),
            events=self.events.view(SlotView[list[RecentEvent]]),
            analysis=self.analysis,
            risk=self.risk,
            superseded=self._closed,
            recommendationsNotice=RECOMMENDATIONS_UNAVAILABLE if failed_recs else "",
        )

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register an observer; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        if not self._subscribers:
            return
        snap = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snap)
            except Exception:
                logger.exception(f"[{self.query_id}] subscriber raised")


class LocationSession:
    """Tracks the current context for one user; a new location supersedes the old one."""

    def __init__(self, session_id: str, **deps):
        self.session_id = session_id
        self._deps = deps
        self.current: Optional[LocationContext] = None

    def change_location(self, query: LocationQuery,
                        user_stats: Optional[dict[str, str]] = None) -> LocationContext:
        previous = self.current
        if previous is not None:
            previous.close()
        deps = dict(self._deps)
        if user_stats is not None:
            deps["user_stats"] = user_stats
        self.current = LocationContext.open(query, **deps)
        return self.current

    def close(self) -> None:
        if self.current is not None:
            self.current.close()
