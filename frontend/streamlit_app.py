from __future__ import annotations

import asyncio
import time
from typing import Optional

import streamlit as st

from parkshare.app.api.auth import IdentityClient
from parkshare.app.core.config import settings
from parkshare.app.core.errors import AuthError, BackendError
from parkshare.app.db.models import AuthSession
from parkshare.app.db.sessions import SQLiteSessionStore
from parkshare.app.services import (
    SPOT_FILTERS,
    OutcomeKind,
    Phase,
    RequestOutcome,
    RpcVerificationBackend,
    VerificationSession,
    load_reservations,
    search_spots,
)
from parkshare.app.services import account


@st.cache_resource
def _identity() -> IdentityClient:
    return IdentityClient(SQLiteSessionStore(settings.session_db_path))


identity = _identity()

# Per-user page state, dropped on sign-out.
USER_STATE_KEYS = (
    "verification",
    "verification_ticked_at",
    "verification_error",
    "email_verified",
    "payment_methods",
)


def _rerun() -> None:
    # Compatible rerun for new/old Streamlit versions.
    _r = getattr(st, "rerun", None) or getattr(st, "experimental_rerun", None)
    if _r:
        _r()


def _show(outcome: Optional[RequestOutcome]) -> None:
    if outcome is None:
        return
    if outcome.kind is OutcomeKind.SUCCESS:
        st.toast(outcome.message or "Done")
    elif outcome.kind is OutcomeKind.INVALID_OR_EXPIRED:
        st.session_state["verification_error"] = outcome.message
    else:
        st.session_state["verification_error"] = f"Something went wrong: {outcome.message}"


st.set_page_config(page_title="ParkShare", layout="wide")
st.title("ParkShare")
st.caption("Find, reserve and share parking spots.")

# -----------------
# Auth
# -----------------
session: Optional[AuthSession] = identity.current_session()

with st.sidebar:
    st.header("Account")
    if session is not None:
        st.success(f"Signed in as {session.email}")
        if st.button("Sign out"):
            identity.sign_out()
            for key in USER_STATE_KEYS:
                st.session_state.pop(key, None)
            _rerun()
    else:
        sign_in_tab, sign_up_tab = st.tabs(["Sign in", "Create account"])
        with sign_in_tab:
            email = st.text_input("Email", key="signin_email")
            password = st.text_input("Password", type="password", key="signin_password")
            if st.button("Sign in", disabled=not email or not password):
                try:
                    identity.sign_in(email, password)
                    _rerun()
                except ValueError as e:
                    st.error(str(e))
                except AuthError as e:
                    st.error(e.message or "Failed to sign in")
                except BackendError:
                    st.error("Could not reach the server. Please try again in a moment.")
        with sign_up_tab:
            full_name = st.text_input("Full name", key="signup_name")
            new_email = st.text_input("Email", key="signup_email")
            new_password = st.text_input("Password", type="password", key="signup_password")
            if st.button("Create account", disabled=not (full_name and new_email and new_password)):
                try:
                    identity.sign_up(new_email, new_password, full_name)
                    _rerun()
                except ValueError as e:
                    st.error(str(e))
                except BackendError as e:
                    st.error(e.message or "Failed to create account")

if session is None:
    st.info("Sign in to find parking and manage your bookings.")
    st.stop()

try:
    profile = identity.get_profile(session)
except BackendError as e:
    st.error(f"Could not load your profile: {e.message}")
    st.stop()

client = identity.data_client(session)

# -----------------
# Email verification
# -----------------
def _on_verified() -> None:
    st.session_state["email_verified"] = session.user_id


def _verification() -> VerificationSession:
    vs: Optional[VerificationSession] = st.session_state.get("verification")
    if vs is not None and vs.user_id != session.user_id:
        vs.close()
    if vs is None or vs.closed or vs.user_id != session.user_id:
        vs = VerificationSession(
            RpcVerificationBackend(client),
            email=session.email,
            user_id=session.user_id,
            on_verified=_on_verified,
        )
        st.session_state["verification"] = vs
        st.session_state["verification_ticked_at"] = time.monotonic()
        _show(asyncio.run(vs.start()))
    return vs


def _advance_cooldown(vs: VerificationSession) -> None:
    last = float(st.session_state.get("verification_ticked_at", time.monotonic()))
    elapsed = int(time.monotonic() - last)
    for _ in range(elapsed):
        vs.tick()
    st.session_state["verification_ticked_at"] = last + elapsed


def _sync_boxes(vs: VerificationSession) -> None:
    for i, slot in enumerate(vs.state().slots):
        st.session_state[f"code_{i}"] = slot or ""


async def _enter_digit(vs: VerificationSession, index: int, value: str) -> Optional[RequestOutcome]:
    vs.on_digit_input(index, value)
    if vs.phase is Phase.VERIFYING:
        return await vs.wait_idle()
    return None


def _on_digit(index: int) -> None:
    vs: VerificationSession = st.session_state["verification"]
    st.session_state.pop("verification_error", None)
    outcome = asyncio.run(_enter_digit(vs, index, st.session_state.get(f"code_{index}", "")))
    _sync_boxes(vs)
    _show(outcome)


def _on_resend() -> None:
    vs: VerificationSession = st.session_state["verification"]
    st.session_state.pop("verification_error", None)
    _show(asyncio.run(vs.request_resend()))
    st.session_state["verification_ticked_at"] = time.monotonic()


if account.needs_email_verification(profile, session, st.session_state.get("email_verified")):
    st.header("Verify your email")
    vs = _verification()
    _advance_cooldown(vs)
    state = vs.state()
    st.write(f"Enter the {vs.code_length}-digit code sent to **{session.email}**")

    cols = st.columns(vs.code_length)
    for i, col in enumerate(cols):
        with col:
            st.text_input(
                f"Digit {i + 1}",
                key=f"code_{i}",
                max_chars=1,
                label_visibility="collapsed",
                on_change=_on_digit,
                args=(i,),
                disabled=state.phase in (Phase.VERIFYING, Phase.VERIFIED),
            )

    if st.session_state.get("verification_error"):
        st.error(st.session_state["verification_error"])

    if state.phase is Phase.DISPATCHING:
        label = "Sending..."
    elif state.cooldown_seconds > 0:
        label = f"Resend in {state.cooldown_seconds}s"
    else:
        label = "Resend code"
    c1, c2 = st.columns(2)
    c1.button(label, disabled=not vs.can_resend, on_click=_on_resend)
    c2.button("Refresh countdown")
    st.stop()

# Verified: the entry session is no longer needed.
_done: Optional[VerificationSession] = st.session_state.pop("verification", None)
if _done is not None:
    _done.close()
    st.session_state.pop("verification_error", None)

# -----------------
# Main tabs
# -----------------
search_tab, bookings_tab, profile_tab = st.tabs(["Find Parking", "My Bookings", "Profile"])

with search_tab:
    query = st.text_input("Search location or address", key="spot_query")
    labels = {f.id: f.label for f in SPOT_FILTERS}
    filter_id = st.radio("Filter", list(labels), format_func=labels.get, horizontal=True)
    origin = None
    if filter_id == "nearby":
        lc1, lc2 = st.columns(2)
        lat = lc1.number_input("Your latitude", value=0.0, format="%.6f")
        lng = lc2.number_input("Your longitude", value=0.0, format="%.6f")
        origin = (lat, lng)
    try:
        spots = search_spots(client, query=query, filter_id=filter_id, origin=origin)
    except BackendError as e:
        st.error(f"Error searching parking spots: {e.message}")
        spots = []
    if not spots:
        st.caption("No parking spots found.")
    for spot in spots:
        with st.container(border=True):
            st.subheader(spot.title)
            st.write(spot.address)
            details = f"{spot.price_per_hour:.2f} {spot.currency}/hour"
            if spot.category_name:
                details += f" · {spot.category_name}"
            if spot.distance_km is not None:
                details += f" · {spot.distance_km} km"
            st.caption(details)

with bookings_tab:
    try:
        buckets = load_reservations(client, session.user_id)
    except BackendError as e:
        st.error(f"Error loading reservations: {e.message}")
        buckets = None
    if buckets is not None:
        upcoming_tab, completed_tab = st.tabs(
            [f"Upcoming ({len(buckets.upcoming)})", f"Completed ({len(buckets.completed)})"]
        )
        for tab, items in ((upcoming_tab, buckets.upcoming), (completed_tab, buckets.completed)):
            with tab:
                for r in items:
                    title = r.parking_spots.title if r.parking_spots else r.parking_spot_id
                    st.write(f"**{title}** · {r.status.capitalize()}")
                    st.caption(f"{r.start_time:%Y-%m-%d %H:%M} – {r.end_time:%H:%M} · {r.total_price:.2f}")

with profile_tab:
    try:
        stats = account.load_user_stats(client, session.user_id)
    except BackendError:
        stats = None
    if stats is not None:
        s1, s2, s3 = st.columns(3)
        s1.metric("Bookings", stats.bookings_count)
        s2.metric("My Spots", stats.spots_count)
        s3.metric("Spent", f"{stats.total_spent:.2f}")

    st.subheader("Edit profile")
    with st.form("edit_profile"):
        full_name = st.text_input("Full name", value=profile.full_name if profile else "")
        email = st.text_input("Email", value=profile.email if profile else session.email)
        phone = st.text_input("Phone", value=(profile.phone or "") if profile else "")
        if st.form_submit_button("Save"):
            try:
                account.edit_profile(identity, session, full_name, email, phone)
                st.success("Profile updated successfully")
            except ValueError as e:
                st.error(str(e))
            except BackendError as e:
                st.error(e.message or "Failed to update profile")

    st.subheader("Preferences")
    current = account.language_for(profile)
    codes = [lang.code for lang in account.LANGUAGES]
    names = {lang.code: lang.native_name for lang in account.LANGUAGES}
    code = st.selectbox("Language", codes, index=codes.index(current.code), format_func=names.get)
    if code != current.code:
        try:
            account.change_language(identity, session, code)
            st.success(f"Language changed to {names[code]}")
        except BackendError:
            st.error("Failed to update language")
    for name, label in (("dark_mode", "Dark mode"), ("sound_enabled", "Sound")):
        value = bool(getattr(profile, name, False)) if profile else False
        new_value = st.toggle(label, value=value, key=f"setting_{name}")
        if new_value != value:
            try:
                account.update_setting(identity, session, name, new_value)
            except BackendError as e:
                st.error(e.message)

    st.subheader("Notifications")
    prefs = account.notification_settings(profile)
    for pref in prefs:
        enabled = st.toggle(pref.title, value=pref.enabled, help=pref.description, key=f"notif_{pref.id}")
        if enabled != pref.enabled:
            try:
                account.toggle_notification(identity, session, prefs, pref.id)
            except BackendError:
                st.error("Failed to update notification settings")
            break

    st.subheader("Payment methods")
    if "payment_methods" not in st.session_state:
        st.session_state["payment_methods"] = account.initial_payment_methods()
    for m in st.session_state["payment_methods"]:
        pc1, pc2, pc3 = st.columns([4, 1, 1])
        default_tag = " · Default" if m.is_default else ""
        pc1.write(f"{m.type.capitalize()} •••• {m.last4}  (expires {m.expiry_month}/{m.expiry_year}){default_tag}")
        if not m.is_default and pc2.button("Set default", key=f"default_card_{m.id}"):
            st.session_state["payment_methods"] = account.set_default_payment_method(
                st.session_state["payment_methods"], m.id
            )
            _rerun()
        if pc3.button("Remove", key=f"remove_card_{m.id}"):
            st.session_state["payment_methods"] = account.remove_payment_method(
                st.session_state["payment_methods"], m.id
            )
            _rerun()
    if not st.session_state["payment_methods"]:
        st.caption("No payment methods added yet.")
    if st.button("Add payment method"):
        st.info("Card payments will be processed through Stripe. Adding cards is not available yet.")

    st.subheader("Vehicles")
    for v in account.vehicles_of(profile):
        vc1, vc2 = st.columns([4, 1])
        vc1.write(f"{v.make} {v.model} {v.year} · {v.license_plate}")
        if vc2.button("Remove", key=f"remove_{v.id}"):
            try:
                account.remove_vehicle(identity, session, profile, v.id)
                _rerun()
            except BackendError:
                st.error("Failed to remove vehicle")
    with st.form("add_vehicle", clear_on_submit=True):
        make = st.text_input("Make *")
        model = st.text_input("Model *")
        plate = st.text_input("License plate *")
        year = st.text_input("Year")
        color = st.text_input("Color")
        vtype = st.selectbox("Type", ["car", "suv", "truck", "motorcycle"])
        if st.form_submit_button("Add vehicle"):
            try:
                account.add_vehicle(
                    identity, session, profile,
                    make=make, model=model, license_plate=plate, year=year, color=color, type=vtype,
                )
                st.success("Vehicle added successfully")
            except ValueError as e:
                st.error(str(e))
            except BackendError:
                st.error("Failed to add vehicle")
