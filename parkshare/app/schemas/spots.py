from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel


class CategoryRef(BaseModel):
    name: str
    icon: Optional[str] = None


class ParkingSpot(BaseModel):
    id: str
    owner_id: str
    title: str
    description: Optional[str] = None
    address: str
    latitude: float
    longitude: float
    price_per_hour: float
    currency: str = "USD"
    amenities: Any = None
    images: List[str] = []
    category_id: Optional[str] = None
    is_available: bool = True
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    # Embedded by `select("*, categories(name, icon)")`
    categories: Optional[CategoryRef] = None

    # Filled client-side by the "nearby" search
    distance_km: Optional[float] = None

    @property
    def category_name(self) -> Optional[str]:
        return self.categories.name if self.categories else None
