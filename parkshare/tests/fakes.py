from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: Optional[str] = None):
        self.status_code = status_code
        if text is not None:
            self.content = text.encode("utf-8")
        elif payload is None:
            self.content = b""
        else:
            self.content = json.dumps(payload).encode("utf-8")

    def json(self) -> Any:
        return json.loads(self.content.decode("utf-8"))


class FakeHttp:
    """Stands in for requests.Session: replays queued responses and records calls."""

    def __init__(self, *responses: Any):
        self.responses: List[Any] = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.responses:
            raise AssertionError(f"Unexpected request: {method} {url}")
        r = self.responses.pop(0)
        if isinstance(r, Exception):
            raise r
        return r


class FakeVerificationBackend:
    def __init__(self, code: str = "482913", valid: bool = True):
        self.code = code
        self.valid = valid
        self.dispatch_error: Optional[Exception] = None
        self.check_error: Optional[Exception] = None
        self.dispatch_gate: Optional[asyncio.Event] = None
        self.check_gate: Optional[asyncio.Event] = None
        self.dispatch_calls: List[Tuple[str, str]] = []
        self.check_calls: List[Tuple[str, str]] = []

    async def dispatch_verification_code(self, email: str, user_id: str) -> str:
        self.dispatch_calls.append((email, user_id))
        if self.dispatch_gate is not None:
            await self.dispatch_gate.wait()
        if self.dispatch_error is not None:
            raise self.dispatch_error
        return self.code

    async def check_verification_code(self, user_id: str, code: str) -> bool:
        self.check_calls.append((user_id, code))
        if self.check_gate is not None:
            await self.check_gate.wait()
        if self.check_error is not None:
            raise self.check_error
        return self.valid


class FakeRpcClient:
    def __init__(self, result: Any):
        self.result = result
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def rpc(self, function: str, params: Optional[Dict[str, Any]] = None) -> Any:
        self.calls.append((function, params or {}))
        return self.result


class FakeIdentity:
    """Records profile updates and applies them to an in-memory profile row."""

    def __init__(self, row: Dict[str, Any]):
        self.row = dict(row)
        self.updates: List[Dict[str, Any]] = []

    def update_profile(self, session: Any, values: Dict[str, Any]):
        from parkshare.app.schemas.account import Profile

        self.updates.append(values)
        self.row.update(values)
        return Profile.model_validate(self.row)
