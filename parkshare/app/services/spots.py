from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from geopy.distance import geodesic

from ..api.client import RemoteDataClient, TableQuery
from ..schemas.spots import ParkingSpot


@dataclass(frozen=True)
class SpotFilter:
    id: str
    label: str
    category: Optional[str] = None


SPOT_FILTERS: Tuple[SpotFilter, ...] = (
    SpotFilter("all", "All"),
    SpotFilter("residential", "Residential", "Residential"),
    SpotFilter("commercial", "Commercial", "Commercial"),
    SpotFilter("covered", "Covered", "Covered"),
    SpotFilter("electric", "EV Charging", "Electric"),
    SpotFilter("nearby", "Nearby"),
)

_FILTERS_BY_ID = {f.id: f for f in SPOT_FILTERS}

SPOT_COLUMNS = "*, categories(name, icon)"


def distance_km(origin: Tuple[float, float], spot: ParkingSpot) -> float:
    return geodesic(origin, (spot.latitude, spot.longitude)).km


def _active_spots(client: RemoteDataClient, columns: str = SPOT_COLUMNS) -> TableQuery:
    return client.table("parking_spots").select(columns).eq("is_active", True)


def list_active_spots(client: RemoteDataClient) -> List[ParkingSpot]:
    rows = _active_spots(client).order("created_at", ascending=False).execute()
    return [ParkingSpot.model_validate(r) for r in rows]


def _escape_like(term: str) -> str:
    # Commas and parentheses are separators inside a PostgREST or=(...) group.
    for ch in ",()":
        term = term.replace(ch, " ")
    return term.strip()


def search_spots(
    client: RemoteDataClient,
    query: str = "",
    filter_id: str = "all",
    origin: Optional[Tuple[float, float]] = None,
    limit: int = 20,
) -> List[ParkingSpot]:
    """Search active spots by free text and category filter.

    - Text matches title, address or description, case-insensitively.
    - Category filters require a matching category (inner join).
    - "nearby" sorts by distance from `origin`; without an origin it falls
      back to newest first like "all".
    """
    spot_filter = _FILTERS_BY_ID.get(filter_id)
    if spot_filter is None:
        raise ValueError(f"Unknown spot filter: {filter_id}")

    columns = "*, categories!inner(name, icon)" if spot_filter.category else SPOT_COLUMNS
    q = _active_spots(client, columns)

    term = _escape_like(query)
    if term:
        pattern = f"*{term}*"
        q = q.or_(
            f"title.ilike.{pattern}",
            f"address.ilike.{pattern}",
            f"description.ilike.{pattern}",
        )
    if spot_filter.category:
        q = q.eq("categories.name", spot_filter.category)

    rows = q.order("created_at", ascending=False).limit(limit).execute()
    spots = [ParkingSpot.model_validate(r) for r in rows]

    if spot_filter.id == "nearby" and origin is not None:
        for spot in spots:
            spot.distance_km = round(distance_km(origin, spot), 2)
        spots.sort(key=lambda s: s.distance_km if s.distance_km is not None else float("inf"))
    return spots
