from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..api.auth import IdentityClient
from ..api.client import RemoteDataClient
from ..core.logger import get_logger
from ..db.models import AuthSession
from ..schemas.account import Language, NotificationSetting, PaymentMethod, Profile, UserStats, Vehicle


logger = get_logger(__name__)


LANGUAGES: Tuple[Language, ...] = (
    Language(code="en", name="English", native_name="English"),
    Language(code="tr", name="Turkish", native_name="Türkçe"),
    Language(code="es", name="Spanish", native_name="Español"),
    Language(code="fr", name="French", native_name="Français"),
    Language(code="de", name="German", native_name="Deutsch"),
    Language(code="it", name="Italian", native_name="Italiano"),
    Language(code="pt", name="Portuguese", native_name="Português"),
    Language(code="ru", name="Russian", native_name="Русский"),
    Language(code="ja", name="Japanese", native_name="日本語"),
    Language(code="ko", name="Korean", native_name="한국어"),
)

TOGGLE_SETTINGS = ("dark_mode", "notifications_enabled", "sound_enabled")

DEFAULT_NOTIFICATIONS: Tuple[NotificationSetting, ...] = (
    NotificationSetting(
        id="booking_confirmations",
        title="Booking Confirmations",
        description="Get notified when your parking reservations are confirmed",
        enabled=True,
        category="booking",
    ),
    NotificationSetting(
        id="booking_reminders",
        title="Booking Reminders",
        description="Receive reminders before your parking time starts",
        enabled=True,
        category="booking",
    ),
    NotificationSetting(
        id="spot_availability",
        title="Spot Availability",
        description="Get alerts when parking spots become available in your area",
        enabled=False,
        category="booking",
    ),
    NotificationSetting(
        id="payment_receipts",
        title="Payment Receipts",
        description="Receive receipts and payment confirmations",
        enabled=True,
        category="payment",
    ),
    NotificationSetting(
        id="payment_failures",
        title="Payment Issues",
        description="Get notified if there are any payment problems",
        enabled=True,
        category="payment",
    ),
    NotificationSetting(
        id="security_alerts",
        title="Security Alerts",
        description="Important security notifications and account changes",
        enabled=True,
        category="security",
    ),
    NotificationSetting(
        id="messages",
        title="Messages",
        description="Messages from parking spot owners and support",
        enabled=True,
        category="booking",
    ),
)


# ==================== STATS ====================

def load_user_stats(client: RemoteDataClient, user_id: str) -> UserStats:
    data = client.rpc("get_user_stats", {"user_id_param": user_id})
    if isinstance(data, list):
        data = data[0] if data else None
    if not data:
        return UserStats()
    return UserStats.model_validate(data)


# ==================== VERIFICATION GATE ====================

def needs_email_verification(profile: Optional[Profile], session: AuthSession, verified_user_id: Optional[str]) -> bool:
    """True until the profile is verified or this user finished verification in the current browser session."""
    if profile is not None and profile.is_verified:
        return False
    return verified_user_id != session.user_id


# ==================== PREFERENCES ====================

def language_for(profile: Optional[Profile]) -> Language:
    code = (profile.language if profile else None) or "en"
    return next((lang for lang in LANGUAGES if lang.code == code), LANGUAGES[0])


def change_language(identity: IdentityClient, session: AuthSession, code: str) -> Profile:
    if not any(lang.code == code for lang in LANGUAGES):
        raise ValueError(f"Unsupported language: {code}")
    return identity.update_profile(session, {"language": code})


def update_setting(identity: IdentityClient, session: AuthSession, name: str, value: bool) -> Profile:
    if name not in TOGGLE_SETTINGS:
        raise ValueError(f"Unknown setting: {name}")
    return identity.update_profile(session, {name: bool(value)})


def edit_profile(
    identity: IdentityClient,
    session: AuthSession,
    full_name: str,
    email: str,
    phone: str = "",
) -> Profile:
    full_name = full_name.strip()
    email = email.strip()
    if not full_name:
        raise ValueError("Full name is required")
    if not email:
        raise ValueError("Email is required")
    return identity.update_profile(
        session,
        {"full_name": full_name, "email": email, "phone": phone.strip() or None},
    )


# ==================== VEHICLES ====================

def vehicles_of(profile: Optional[Profile]) -> List[Vehicle]:
    info = profile.vehicle_info if profile else None
    if not isinstance(info, dict):
        return []
    vehicles: List[Vehicle] = []
    for raw in info.get("vehicles") or []:
        try:
            vehicles.append(Vehicle.model_validate(raw))
        except ValidationError:
            logger.warning("Skipping malformed stored vehicle: %r", raw)
    return vehicles


def _save_vehicles(identity: IdentityClient, session: AuthSession, vehicles: List[Vehicle]) -> Profile:
    return identity.update_profile(
        session,
        {"vehicle_info": {"vehicles": [v.model_dump() for v in vehicles]}},
    )


def add_vehicle(
    identity: IdentityClient,
    session: AuthSession,
    profile: Optional[Profile],
    *,
    make: str,
    model: str,
    license_plate: str,
    year: str = "",
    color: str = "",
    type: str = "car",
) -> Profile:
    if not make.strip() or not model.strip() or not license_plate.strip():
        raise ValueError("Please fill in all required fields")
    try:
        vehicle = Vehicle(
            id=uuid.uuid4().hex,
            make=make.strip(),
            model=model.strip(),
            year=year.strip(),
            color=color.strip(),
            license_plate=license_plate.strip().upper(),
            type=type,
        )
    except ValidationError as e:
        raise ValueError(f"Invalid vehicle: {e.errors()[0].get('msg', 'invalid')}") from e
    return _save_vehicles(identity, session, vehicles_of(profile) + [vehicle])


def remove_vehicle(identity: IdentityClient, session: AuthSession, profile: Optional[Profile], vehicle_id: str) -> Profile:
    remaining = [v for v in vehicles_of(profile) if v.id != vehicle_id]
    return _save_vehicles(identity, session, remaining)


# ==================== NOTIFICATIONS ====================

def notification_settings(profile: Optional[Profile]) -> List[NotificationSetting]:
    """Defaults overlaid with the preferences stored on the profile, if any."""
    stored: Dict[str, Any] = {}
    extra = getattr(profile, "notification_preferences", None) if profile else None
    if isinstance(extra, dict):
        stored = extra
    return [s.model_copy(update={"enabled": bool(stored.get(s.id, s.enabled))}) for s in DEFAULT_NOTIFICATIONS]


def toggle_notification(
    identity: IdentityClient,
    session: AuthSession,
    settings_list: List[NotificationSetting],
    setting_id: str,
) -> Tuple[List[NotificationSetting], Profile]:
    if not any(s.id == setting_id for s in settings_list):
        raise ValueError(f"Unknown notification setting: {setting_id}")
    updated = [
        s.model_copy(update={"enabled": not s.enabled}) if s.id == setting_id else s
        for s in settings_list
    ]
    profile = identity.update_profile(
        session,
        {
            "notifications_enabled": any(s.enabled for s in updated),
            "notification_preferences": {s.id: s.enabled for s in updated},
        },
    )
    return updated, profile


# ==================== PAYMENT METHODS ====================

# Placeholder wallet until card processing is wired to a payment provider.
SAMPLE_PAYMENT_METHODS: Tuple[PaymentMethod, ...] = (
    PaymentMethod(id="1", type="visa", last4="4242", expiry_month="12", expiry_year="25", is_default=True),
    PaymentMethod(id="2", type="mastercard", last4="5555", expiry_month="08", expiry_year="26"),
)


def initial_payment_methods() -> List[PaymentMethod]:
    return [m.model_copy() for m in SAMPLE_PAYMENT_METHODS]


def set_default_payment_method(methods: List[PaymentMethod], method_id: str) -> List[PaymentMethod]:
    if not any(m.id == method_id for m in methods):
        raise ValueError(f"Unknown payment method: {method_id}")
    return [m.model_copy(update={"is_default": m.id == method_id}) for m in methods]


def remove_payment_method(methods: List[PaymentMethod], method_id: str) -> List[PaymentMethod]:
    remaining = [m for m in methods if m.id != method_id]
    # Keep exactly one default while any card is left.
    if remaining and not any(m.is_default for m in remaining):
        remaining[0] = remaining[0].model_copy(update={"is_default": True})
    return remaining
