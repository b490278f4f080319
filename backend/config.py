"""Haven Backend — Configuration & Constants"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env from project root (one level up from backend/)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path)

# ── Upstream services ──
CRIME_RECS_URL = os.environ.get(
    "CRIME_RECS_URL", "https://cal-hacks-pro-backend.vercel.app/scraper/crime-recs/"
)
INCIDENT_SCRAPER_URL = os.environ.get(
    "INCIDENT_SCRAPER_URL", "https://cal-hacks-pro-backend.vercel.app/scraper/incidents"
)
GOOGLE_MAPS_API_KEY = os.environ.get("GOOGLE_MAPS_API_KEY", "")
PLACES_NEARBY_URL = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"

# ── Fetch limits ──
FETCH_TIMEOUT_SECONDS = float(os.environ.get("FETCH_TIMEOUT_SECONDS", "30"))
SESSION_LIMIT = int(os.environ.get("SESSION_LIMIT", "500"))


def parse_origins(raw: str) -> list[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


# ── CORS ──
# Comma-separated browser origins; empty for native-app-only deployments
CORS_ALLOWED_ORIGINS = parse_origins(os.environ.get("CORS_ALLOWED_ORIGINS", ""))

# ── Police-station search ──
POLICE_SEARCH_QUERY = "police station"
POLICE_SEARCH_RADIUS_METERS = 3200
POLICE_MAX_DISTANCE_MILES = 2.0
PLACE_CACHE_TTL = 86400  # 24 hours

# ── Crime-recommendation request ──
TRANSPORT_MODE = "walk"
DEFAULT_CITY = "San Francisco"
DEFAULT_STATE = "California"

# Neighborhood names that legitimately end in " District"
NEIGHBORHOOD_SUFFIX = " District"
NEIGHBORHOOD_SUFFIX_EXCEPTIONS = frozenset({"Fashion District"})

# Safest-hour window used when no event analysis is available
DEFAULT_SAFEST_WINDOW = (6, 18)

# Forward lookahead (hours) for the safer/riskier trend
TREND_LOOKAHEAD_HOURS = 6
