from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


VehicleType = Literal["car", "suv", "truck", "motorcycle"]
CardBrand = Literal["visa", "mastercard", "amex", "discover"]


class Profile(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    email: str
    full_name: str
    avatar_url: Optional[str] = None
    phone: Optional[str] = None
    vehicle_info: Any = None
    is_verified: bool = False
    language: Optional[str] = None
    dark_mode: bool = False
    notifications_enabled: bool = True
    sound_enabled: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Vehicle(BaseModel):
    id: str
    make: str = Field(min_length=1)
    model: str = Field(min_length=1)
    year: str = ""
    color: str = ""
    license_plate: str = Field(min_length=1)
    type: VehicleType = "car"


class PaymentMethod(BaseModel):
    id: str
    type: CardBrand
    last4: str = Field(pattern=r"^\d{4}$")
    expiry_month: str
    expiry_year: str
    is_default: bool = False


class NotificationSetting(BaseModel):
    id: str
    title: str
    description: str
    enabled: bool
    category: Literal["booking", "payment", "security"]


class UserStats(BaseModel):
    bookings_count: int = 0
    spots_count: int = 0
    total_spent: float = 0
    total_earned: float = 0


class Language(BaseModel):
    code: str
    name: str
    native_name: str
