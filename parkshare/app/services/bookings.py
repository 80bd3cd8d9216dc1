from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from ..api.client import RemoteDataClient
from ..schemas.bookings import Reservation


ACTIVE_STATUSES = ("pending", "confirmed")


@dataclass
class ReservationBuckets:
    upcoming: List[Reservation] = field(default_factory=list)
    completed: List[Reservation] = field(default_factory=list)


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def split_reservations(reservations: List[Reservation], now: Optional[datetime] = None) -> ReservationBuckets:
    """Upcoming: not yet ended and still pending/confirmed.
    Completed: ended, or marked completed by the backend.

    A cancelled reservation that has not ended lands in neither list.
    """
    current = _aware(now or datetime.now(timezone.utc))
    buckets = ReservationBuckets()
    for r in reservations:
        end = _aware(r.end_time)
        if end > current and r.status in ACTIVE_STATUSES:
            buckets.upcoming.append(r)
        if end <= current or r.status == "completed":
            buckets.completed.append(r)
    return buckets


def load_reservations(client: RemoteDataClient, user_id: str, now: Optional[datetime] = None) -> ReservationBuckets:
    rows = (
        client.table("reservations")
        .select("*, parking_spots(title, address, images)")
        .eq("user_id", user_id)
        .order("created_at", ascending=False)
        .execute()
    )
    return split_reservations([Reservation.model_validate(r) for r in rows], now=now)
