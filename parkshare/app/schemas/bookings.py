from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel


ReservationStatus = Literal["pending", "confirmed", "completed", "cancelled"]


class SpotSummary(BaseModel):
    title: str
    address: str
    images: List[str] = []


class Reservation(BaseModel):
    id: str
    parking_spot_id: str
    user_id: str
    start_time: datetime
    end_time: datetime
    total_price: float
    status: ReservationStatus = "pending"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Embedded by `select("*, parking_spots(title, address, images)")`
    parking_spots: Optional[SpotSummary] = None
