from .verification import (
    OutcomeKind,
    Phase,
    RequestOutcome,
    RpcVerificationBackend,
    SessionState,
    VerificationBackend,
    VerificationSession,
)
from .spots import SPOT_FILTERS, distance_km, list_active_spots, search_spots
from .bookings import ReservationBuckets, load_reservations, split_reservations

__all__ = [
    "OutcomeKind",
    "Phase",
    "RequestOutcome",
    "RpcVerificationBackend",
    "SessionState",
    "VerificationBackend",
    "VerificationSession",
    "SPOT_FILTERS",
    "distance_km",
    "list_active_spots",
    "search_spots",
    "ReservationBuckets",
    "load_reservations",
    "split_reservations",
]
