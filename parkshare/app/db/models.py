from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from ..core.security import read_jwt_claims


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    refresh_token: str
    user_id: str
    email: str
    expires_at: int  # unix seconds

    def expires_within(self, seconds: int, now: Optional[float] = None) -> bool:
        current = time.time() if now is None else now
        return self.expires_at - current <= seconds

    @classmethod
    def from_token_response(cls, payload: Dict[str, Any]) -> "AuthSession":
        """Build a session from an auth API token response.

        - `expires_at` wins when the backend sends it.
        - Otherwise fall back to the access token's `exp` claim, then to `expires_in`.
        """
        access_token = str(payload["access_token"])
        user = payload.get("user") or {}
        claims: Dict[str, Any] = {}
        try:
            claims = read_jwt_claims(access_token)
        except Exception:
            claims = {}

        expires_at = payload.get("expires_at") or claims.get("exp")
        if expires_at is None:
            expires_at = int(time.time()) + int(payload.get("expires_in", 3600))

        return cls(
            access_token=access_token,
            refresh_token=str(payload.get("refresh_token") or ""),
            user_id=str(user.get("id") or claims.get("sub") or ""),
            email=str(user.get("email") or claims.get("email") or ""),
            expires_at=int(expires_at),
        )

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "AuthSession":
        return cls(**json.loads(raw))
