from __future__ import annotations

from typing import Any, Optional


class BackendError(RuntimeError):
    """Failure talking to the managed backend.

    `status_code` is None for transport failures (connection refused, timeout,
    undecodable body). `code` is the backend's own error code when it sent one.
    """

    def __init__(self, message: str, *, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    @property
    def is_transport(self) -> bool:
        return self.status_code is None

    @classmethod
    def from_payload(cls, status_code: int, payload: Any) -> "BackendError":
        if isinstance(payload, dict):
            message = (
                payload.get("message")
                or payload.get("msg")
                or payload.get("error_description")
                or payload.get("error")
                or f"HTTP {status_code}"
            )
            code = payload.get("code") or payload.get("error_code")
            return cls(str(message), status_code=status_code, code=str(code) if code is not None else None)
        return cls(f"HTTP {status_code}", status_code=status_code)


class AuthError(BackendError):
    """Sign-in, sign-up or token refresh rejected by the auth API."""
