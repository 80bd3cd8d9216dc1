from __future__ import annotations

from typing import Any, Dict, Optional

import requests
from pydantic import ValidationError

from ..core.config import Settings, settings as default_settings
from ..core.errors import AuthError, BackendError
from ..core.logger import get_logger
from ..db.models import AuthSession
from ..db.sessions import SESSION_KEY, SQLiteSessionStore
from ..schemas.account import Profile
from ..schemas.auth import RefreshBody, SignInBody, SignUpBody
from .client import RemoteDataClient, create_client


logger = get_logger(__name__)


def _first_error(e: ValidationError) -> str:
    errors = e.errors()
    if not errors:
        return "Invalid input"
    loc = ".".join(str(p) for p in errors[0].get("loc", ()))
    return f"{loc}: {errors[0].get('msg', 'invalid')}" if loc else str(errors[0].get("msg", "invalid"))


class IdentityClient:
    """Sign-in, sign-up, sign-out, profile access and session persistence."""

    def __init__(
        self,
        storage: SQLiteSessionStore,
        cfg: Settings = default_settings,
        http: Optional[requests.Session] = None,
    ):
        self.storage = storage
        self.cfg = cfg
        self.client = create_client(cfg, http=http)

    # ==================== SESSION PERSISTENCE ====================

    def _save(self, session: AuthSession) -> AuthSession:
        self.storage.set_item(SESSION_KEY, session.to_json())
        return session

    def _load(self) -> Optional[AuthSession]:
        raw = self.storage.get_item(SESSION_KEY)
        if not raw:
            return None
        try:
            return AuthSession.from_json(raw)
        except (ValueError, TypeError):
            logger.warning("Discarding unreadable stored session")
            self.storage.remove_item(SESSION_KEY)
            return None

    def _token_request(self, grant_type: str, body: Dict[str, Any]) -> AuthSession:
        try:
            payload = self.client.request("POST", f"/auth/v1/token?grant_type={grant_type}", json=body)
        except BackendError as e:
            if e.is_transport:
                raise
            raise AuthError(e.message, status_code=e.status_code, code=e.code) from e
        if not isinstance(payload, dict) or "access_token" not in payload:
            raise AuthError("Auth response did not include a session")
        return AuthSession.from_token_response(payload)

    # ==================== AUTH ====================

    def sign_in(self, email: str, password: str) -> AuthSession:
        try:
            body = SignInBody(email=email.strip(), password=password)
        except ValidationError as e:
            raise ValueError(_first_error(e)) from e
        session = self._token_request("password", body.model_dump())
        logger.info("Signed in user_id=%s", session.user_id)
        return self._save(session)

    def sign_up(self, email: str, password: str, full_name: str) -> AuthSession:
        try:
            body = SignUpBody(email=email.strip(), password=password, full_name=full_name.strip())
        except ValidationError as e:
            raise ValueError(_first_error(e)) from e

        try:
            payload = self.client.request(
                "POST",
                "/auth/v1/signup",
                json={"email": body.email, "password": body.password, "data": {"full_name": body.full_name}},
            )
        except BackendError as e:
            if e.is_transport:
                raise
            raise AuthError(e.message, status_code=e.status_code, code=e.code) from e
        if not isinstance(payload, dict) or "access_token" not in payload:
            # Backends with email confirmation enabled return only the user.
            raise AuthError("Sign-up requires email confirmation before signing in")

        session = AuthSession.from_token_response(payload)
        self.data_client(session).table("profiles").insert(
            {"id": session.user_id, "email": body.email, "full_name": body.full_name}
        ).execute()
        logger.info("Signed up user_id=%s", session.user_id)
        return self._save(session)

    def sign_out(self) -> None:
        session = self._load()
        self.storage.remove_item(SESSION_KEY)
        if session is None:
            return
        try:
            self.client.with_access_token(session.access_token).request("POST", "/auth/v1/logout")
        except BackendError as e:
            # Local sign-out already happened; the server token expires on its own.
            logger.info("Remote sign-out failed: %s", e.message)

    def refresh(self, session: AuthSession) -> AuthSession:
        body = RefreshBody(refresh_token=session.refresh_token)
        return self._save(self._token_request("refresh_token", body.model_dump()))

    def current_session(self) -> Optional[AuthSession]:
        session = self._load()
        if session is None:
            return None
        if not session.expires_within(self.cfg.session_refresh_margin_seconds):
            return session
        if not session.refresh_token:
            self.storage.remove_item(SESSION_KEY)
            return None
        try:
            return self.refresh(session)
        except AuthError as e:
            logger.info("Session refresh rejected, signing out: %s", e.message)
            self.storage.remove_item(SESSION_KEY)
            return None
        except BackendError as e:
            # Offline: keep the stored session so a later attempt can refresh it.
            logger.warning("Session refresh failed: %s", e.message)
            return None

    # ==================== PROFILE ====================

    def data_client(self, session: Optional[AuthSession]) -> RemoteDataClient:
        return self.client.with_access_token(session.access_token if session else None)

    def get_profile(self, session: AuthSession) -> Optional[Profile]:
        rows = self.data_client(session).table("profiles").select("*").eq("id", session.user_id).limit(1).execute()
        if not rows:
            return None
        return Profile.model_validate(rows[0])

    def update_profile(self, session: AuthSession, values: Dict[str, Any]) -> Profile:
        rows = self.data_client(session).table("profiles").update(values).eq("id", session.user_id).execute()
        if not rows:
            raise BackendError("Profile not found", status_code=404)
        return Profile.model_validate(rows[0])
