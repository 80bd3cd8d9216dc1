from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol, Tuple

from ..api.client import RemoteDataClient
from ..core.config import settings
from ..core.errors import BackendError
from ..core.logger import get_logger


logger = get_logger(__name__)

DIGITS = frozenset("0123456789")


class Phase(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    AWAITING_ENTRY = "awaiting_entry"
    VERIFYING = "verifying"
    VERIFIED = "verified"


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    INVALID_OR_EXPIRED = "invalid_or_expired"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class RequestOutcome:
    kind: OutcomeKind
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS


@dataclass(frozen=True)
class SessionState:
    slots: Tuple[Optional[str], ...]
    focus_index: int
    cooldown_seconds: int
    phase: Phase
    last_error: Optional[str]


class VerificationBackend(Protocol):
    async def dispatch_verification_code(self, email: str, user_id: str) -> str: ...

    async def check_verification_code(self, user_id: str, code: str) -> bool: ...


class RpcVerificationBackend:
    """`VerificationBackend` over the backend's RPC functions.

    The HTTP client is blocking, so each call runs in a worker thread and the
    caller's event loop only sees a coroutine.
    """

    def __init__(self, client: RemoteDataClient, code_length: int = settings.code_length):
        self.client = client
        self.code_length = code_length

    async def dispatch_verification_code(self, email: str, user_id: str) -> str:
        data = await asyncio.to_thread(
            self.client.rpc,
            "create_verification_code",
            {"user_email": email, "user_id_param": user_id},
        )
        code = str(data) if isinstance(data, (str, int)) else ""
        if isinstance(data, int):
            code = code.zfill(self.code_length)
        if len(code) != self.code_length or not set(code) <= DIGITS:
            raise BackendError("Backend returned a malformed verification code")
        return code

    async def check_verification_code(self, user_id: str, code: str) -> bool:
        data = await asyncio.to_thread(
            self.client.rpc,
            "verify_email_code",
            {"user_id_param": user_id, "code_param": code},
        )
        return bool(data)


class VerificationSession:
    """Six-box email verification code entry with resend cooldown.

    All handlers run on one event loop. Digit and focus handling is
    synchronous; only dispatch and check suspend. At most one dispatch and
    one check are in flight at any time. After `close()` late responses are
    dropped and `on_verified` is never called.
    """

    def __init__(
        self,
        backend: VerificationBackend,
        email: str,
        user_id: str,
        on_verified: Optional[Callable[[], None]] = None,
        code_length: int = settings.code_length,
        cooldown_seconds: int = settings.resend_cooldown_seconds,
        reveal_code: bool = settings.reveal_dispatched_code,
    ):
        self.backend = backend
        self.email = email
        self.user_id = user_id
        self.on_verified = on_verified
        self.code_length = code_length
        self.cooldown_total = cooldown_seconds
        self.reveal_code = reveal_code

        self._slots: list[Optional[str]] = [None] * code_length
        self._focus = 0
        self._cooldown = 0
        self._started = False
        self._dispatching = False
        self._checking = False
        self._verified = False
        self._closed = False
        self._last_error: Optional[str] = None
        self._check_task: Optional[asyncio.Task] = None

    # ---- read side ----
    @property
    def phase(self) -> Phase:
        if self._verified:
            return Phase.VERIFIED
        if self._checking:
            return Phase.VERIFYING
        if self._dispatching:
            return Phase.DISPATCHING
        if self._started:
            return Phase.AWAITING_ENTRY
        return Phase.IDLE

    @property
    def code(self) -> str:
        return "".join(s or "" for s in self._slots)

    @property
    def can_resend(self) -> bool:
        return self._cooldown == 0 and not self._dispatching and not self._verified and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    def state(self) -> SessionState:
        return SessionState(
            slots=tuple(self._slots),
            focus_index=self._focus,
            cooldown_seconds=self._cooldown,
            phase=self.phase,
            last_error=self._last_error,
        )

    # ---- dispatch ----
    async def start(self) -> Optional[RequestOutcome]:
        if self._started or self._closed:
            return None
        self._started = True
        return await self._dispatch()

    async def request_resend(self) -> Optional[RequestOutcome]:
        if not self.can_resend:
            return None
        self._started = True
        return await self._dispatch()

    async def _dispatch(self) -> Optional[RequestOutcome]:
        self._dispatching = True
        try:
            code = await self.backend.dispatch_verification_code(self.email, self.user_id)
        except Exception as e:
            if self._closed:
                logger.debug("Dropping dispatch failure for closed session user_id=%s", self.user_id)
                return None
            message = str(e) or "Failed to send verification code"
            logger.warning("Verification code dispatch failed user_id=%s: %s", self.user_id, message)
            self._last_error = message
            return RequestOutcome(OutcomeKind.TRANSPORT_ERROR, message)
        finally:
            self._dispatching = False

        if self._closed:
            logger.debug("Dropping dispatch result for closed session user_id=%s", self.user_id)
            return None

        self._cooldown = self.cooldown_total
        self._last_error = None
        logger.info("Verification code dispatched user_id=%s", self.user_id)
        if self.reveal_code:
            notice = f"Your verification code is: {code}"
        else:
            notice = f"We've sent a {self.code_length}-digit code to {self.email}"
        return RequestOutcome(OutcomeKind.SUCCESS, notice)

    def tick(self) -> int:
        """Advance the resend countdown by one second. Call once per second."""
        if not self._closed and self._cooldown > 0:
            self._cooldown -= 1
        return self._cooldown

    # ---- entry ----
    def _check_index(self, index: int) -> None:
        if not 0 <= index < self.code_length:
            raise IndexError(f"slot index {index} out of range 0..{self.code_length - 1}")

    def _accepts_input(self) -> bool:
        return not (self._checking or self._verified or self._closed)

    def on_digit_input(self, index: int, character: str) -> int:
        """Set one slot and return the index that should hold focus next."""
        self._check_index(index)
        if not self._accepts_input():
            return self._focus
        if character and (len(character) != 1 or character not in DIGITS):
            return self._focus

        self._slots[index] = character or None
        self._focus = index + 1 if character and index < self.code_length - 1 else index

        if all(self._slots):
            self._schedule_submit(self.code)
        return self._focus

    def on_backspace(self, index: int) -> int:
        self._check_index(index)
        if self._accepts_input() and self._slots[index] is None and index > 0:
            self._focus = index - 1
        return self._focus

    def _schedule_submit(self, code: str) -> None:
        # Needs a running loop: drivers call the input handlers from inside a coroutine.
        # Look it up before flagging the check so a RuntimeError leaves the session re-enterable.
        loop = asyncio.get_running_loop()
        if self._begin_check(code):
            self._check_task = loop.create_task(self._run_check(code))

    async def wait_idle(self) -> Optional[RequestOutcome]:
        """Wait for a pending auto-submit and return its outcome, if any."""
        task = self._check_task
        if task is None:
            return None
        return await task

    def _reset_entry(self) -> None:
        self._slots = [None] * self.code_length
        self._focus = 0

    # ---- check ----
    def _begin_check(self, code: str) -> bool:
        if len(code) != self.code_length or not set(code) <= DIGITS:
            return False
        if self._checking or self._verified or self._closed:
            return False
        self._checking = True
        return True

    async def submit(self, code: str) -> Optional[RequestOutcome]:
        """Check a complete code. Returns None when the call was suppressed."""
        if not self._begin_check(code):
            return None
        return await self._run_check(code)

    async def _run_check(self, code: str) -> Optional[RequestOutcome]:
        try:
            valid = await self.backend.check_verification_code(self.user_id, code)
        except Exception as e:
            if self._closed:
                logger.debug("Dropping check failure for closed session user_id=%s", self.user_id)
                return None
            message = str(e) or "Failed to verify code"
            logger.warning("Verification check failed user_id=%s: %s", self.user_id, message)
            self._reset_entry()
            self._last_error = message
            return RequestOutcome(OutcomeKind.TRANSPORT_ERROR, message)
        finally:
            self._checking = False

        if self._closed:
            logger.debug("Dropping check result for closed session user_id=%s", self.user_id)
            return None

        if not valid:
            logger.info("Verification code rejected user_id=%s", self.user_id)
            self._reset_entry()
            self._last_error = "Invalid or expired verification code"
            return RequestOutcome(OutcomeKind.INVALID_OR_EXPIRED, self._last_error)

        self._verified = True
        self._last_error = None
        logger.info("Email verified user_id=%s", self.user_id)
        outcome = RequestOutcome(OutcomeKind.SUCCESS, "Email verified successfully!")
        if self.on_verified is not None:
            try:
                self.on_verified()
            except Exception:
                logger.exception("on_verified callback failed user_id=%s", self.user_id)
        return outcome

    def close(self) -> None:
        self._closed = True
