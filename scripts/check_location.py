"""Evaluate the risk state for one location from the command line.

Opens a single location context against the live services, waits for the
risk score, and prints the resulting snapshot as JSON.

Prerequisites:
  pip install -e .
  GOOGLE_MAPS_API_KEY in .env (police-station lookups fail without it)

Usage:
  python scripts/check_location.py 37.7599 -122.4148 "Mission District"
  python scripts/check_location.py 37.7599 -122.4148 Mission --timeout 45
  python scripts/check_location.py 37.7599 -122.4148 Mission --local-time 2026-10-17T22:00-07:00
  python scripts/check_location.py 34.0407 -118.2468 "Fashion District" --city "Los Angeles" --state California
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

from aggregator import LocationContext  # noqa: E402
from config import DEFAULT_CITY, DEFAULT_STATE, FETCH_TIMEOUT_SECONDS  # noqa: E402
from data_fetchers import GooglePlacesSearch, make_client  # noqa: E402
from models import LocationQuery  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("check_location")


async def run(args: argparse.Namespace) -> int:
    query = LocationQuery(
        latitude=args.lat,
        longitude=args.lng,
        neighborhood=args.neighborhood,
        city=args.city,
        state=args.state,
        localTime=args.local_time,
    )
    async with make_client(timeout=args.timeout) as client:
        ctx = LocationContext.open(
            query,
            client=client,
            place_search=GooglePlacesSearch(client),
            timeout=args.timeout,
        )
        # Fetches are bounded by args.timeout, so this margin covers the slowest one
        snapshot = await ctx.wait_until_scored(args.timeout + 5)
        await ctx.aclose()

    print(snapshot.model_dump_json(indent=2))
    if not ctx.scored:
        logger.warning("Risk score was not computed in time")
        return 1
    return 0


def main():
    parser = argparse.ArgumentParser(description="Compute the composite risk state for a location")
    parser.add_argument("lat", type=float, help="Latitude")
    parser.add_argument("lng", type=float, help="Longitude")
    parser.add_argument("neighborhood", help="Neighborhood name, e.g. 'Mission District'")
    parser.add_argument("--city", default=DEFAULT_CITY)
    parser.add_argument("--state", default=DEFAULT_STATE)
    parser.add_argument("--local-time", type=datetime.fromisoformat, default=None,
                        help="Wall-clock time at the location, e.g. 2026-10-17T22:00-07:00 (default: host clock)")
    parser.add_argument("--timeout", type=float, default=FETCH_TIMEOUT_SECONDS,
                        help="Per-source fetch timeout in seconds")
    args = parser.parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
