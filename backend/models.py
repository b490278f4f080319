"""Haven Backend — Pydantic Models"""

from datetime import datetime, timezone
from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from config import (
    DEFAULT_CITY, DEFAULT_STATE,
    NEIGHBORHOOD_SUFFIX, NEIGHBORHOOD_SUFFIX_EXCEPTIONS,
)

T = TypeVar("T")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_neighborhood(name: str) -> str:
    """Strip a trailing " District" unless the full name is an exempt literal."""
    if name in NEIGHBORHOOD_SUFFIX_EXCEPTIONS:
        return name
    return name.removesuffix(NEIGHBORHOOD_SUFFIX)


# ─────────────────────────── Enums ──────────────────────────────

class SafetyState(str, Enum):
    loading = "loading"
    safe = "safe"
    moderate = "moderate"
    danger = "danger"


class RiskTrend(str, Enum):
    saferSoon = "saferSoon"
    riskierSoon = "riskierSoon"
    stable = "stable"


class SlotStatus(str, Enum):
    pending = "pending"
    succeeded = "succeeded"
    failed = "failed"


# ─────────────────────────── Domain ─────────────────────────────

class LocationQuery(BaseModel):
    """One immutable snapshot of where risk is evaluated, and when."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    neighborhood: str
    city: str = DEFAULT_CITY
    state: str = DEFAULT_STATE
    timestamp: str = Field(default_factory=_now_iso)
    localTime: Optional[datetime] = None  # user's wall clock at the location, with UTC offset

    @property
    def normalized_neighborhood(self) -> str:
        return normalize_neighborhood(self.neighborhood)


class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class PlaceCandidate(BaseModel):
    """A raw point-of-interest result, before distance filtering."""

    name: str
    address: str = "Unknown address"
    phone: Optional[str] = None
    lat: float
    lng: float


class PoliceStation(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    address: str
    phone: Optional[str] = None
    location: Coordinates
    distance: float = Field(ge=0)  # miles


class RecentEvent(BaseModel):
    """One scraped incident record. Wire keys follow the scraper's column names."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, coerce_numbers_to_str=True)

    date: str = Field(alias="Date")
    time: str = Field(alias="Time")
    incidentNumber: str = Field(alias="Incident #")
    location: str = Field(alias="Location")
    district: str = Field(alias="District")
    category: Optional[str] = Field(default=None, alias="CategorySFPD")
    description: str = Field(alias="Description")
    resolution: str = Field(alias="Resolution")


class CrimeRecsResponse(BaseModel):
    """Only the recommendations are read; crime_amount and any other keys are ignored."""

    recommendations: list[str]


class EventAnalysis(BaseModel):
    primaryCategory: Optional[str] = None
    hourlyHistogram: dict[int, int] = {}
    safestHours: list[int] = []
    riskiestHours: list[int] = []
    nextSaferHour: Optional[int] = None
    nextRiskierHour: Optional[int] = None
    trend: RiskTrend = RiskTrend.stable
    currentHour: int
    eventCount: int


class RiskScore(BaseModel):
    value: Optional[float] = None  # None while loading
    state: SafetyState = SafetyState.loading
    safestWindow: Optional[tuple[int, int]] = None
    computedAt: Optional[str] = None

    @classmethod
    def loading(cls) -> "RiskScore":
        return cls()


class UserProfile(BaseModel):
    """Traits extracted from the user's profile, sent as request context."""

    age: Optional[str] = None
    gender: Optional[str] = None
    wealthIndicators: list[str] = []
    valuableItems: list[str] = []
    riskLevel: str = "medium"  # "low", "medium", "high"

    def to_user_stats(self) -> dict[str, str]:
        """Flatten to the additionalPropN string map the recommendation service takes."""
        entries = []
        if self.age:
            entries.append(f"Age: {self.age}")
        if self.gender:
            entries.append(f"Gender: {self.gender}")
        if self.wealthIndicators:
            entries.append(f"Wealth indicators: {', '.join(self.wealthIndicators)}")
        if self.valuableItems:
            entries.append(f"Valuable items: {', '.join(self.valuableItems)}")
        if self.riskLevel:
            entries.append(f"Risk level: {self.riskLevel}")
        return {f"additionalProp{i}": entry for i, entry in enumerate(entries, start=1)}


# ─────────────────────────── Snapshots ──────────────────────────

class SlotView(BaseModel, Generic[T]):
    status: SlotStatus = SlotStatus.pending
    value: Optional[T] = None
    reason: str = ""

    @property
    def available(self) -> bool:
        return self.status is SlotStatus.succeeded


class LocationSnapshot(BaseModel):
    queryId: str
    query: LocationQuery
    recommendations: SlotView[list[str]]
    policeStations: SlotView[list[PoliceStation]]
    events: SlotView[list[RecentEvent]]
    analysis: Optional[EventAnalysis] = None
    risk: RiskScore
    superseded: bool = False
    recommendationsNotice: str = ""


# ─────────────────────────── API ────────────────────────────────

class LocationRequest(BaseModel):
    sessionId: str = "default"
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    neighborhood: str
    city: str = DEFAULT_CITY
    state: str = DEFAULT_STATE
    localTime: Optional[datetime] = None
    profile: Optional[UserProfile] = None
    userStats: dict[str, str] = {}


class ScoreRequest(BaseModel):
    incidentCount: int = Field(ge=0)
    stationCount: int = Field(ge=0)
    safestHourStart: int = Field(default=6, ge=0, le=23)
    safestHourEnd: int = Field(default=18, ge=0, le=23)
    at: Optional[datetime] = None
    jitter: bool = True


class ScoreResponse(BaseModel):
    score: float
    preJitterScore: float
    state: SafetyState


class AnalyzeRequest(BaseModel):
    events: list[RecentEvent]
    at: Optional[datetime] = None


class AnalyzeResponse(BaseModel):
    analysis: Optional[EventAnalysis] = None
