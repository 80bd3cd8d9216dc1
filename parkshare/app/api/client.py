from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests

from ..core.config import Settings, settings as default_settings
from ..core.errors import BackendError
from ..core.logger import get_logger


logger = get_logger(__name__)


def _fmt(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class TableQuery:
    """Fluent builder for one table request against the PostgREST-style API.

    Filters become query parameters of the form `column=op.value`, e.g.
    `.eq("is_active", True)` -> `is_active=eq.true`.
    """

    def __init__(self, client: "RemoteDataClient", table: str):
        self._client = client
        self._table = table
        self._method = "GET"
        self._body: Any = None
        self._columns: Optional[str] = None
        self._filters: List[Tuple[str, str]] = []
        self._order: List[str] = []
        self._limit: Optional[int] = None

    # ---- reads ----
    def select(self, columns: str = "*") -> "TableQuery":
        # PostgREST rejects whitespace inside embedded resource lists.
        self._columns = "".join(columns.split())
        return self

    def _filter(self, column: str, op: str, value: Any) -> "TableQuery":
        self._filters.append((column, f"{op}.{_fmt(value)}"))
        return self

    def eq(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "eq", value)

    def neq(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "neq", value)

    def gt(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "gt", value)

    def gte(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "gte", value)

    def lt(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "lt", value)

    def lte(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "lte", value)

    def ilike(self, column: str, pattern: str) -> "TableQuery":
        return self._filter(column, "ilike", pattern)

    def is_(self, column: str, value: Optional[bool]) -> "TableQuery":
        return self._filter(column, "is", value)

    def in_(self, column: str, values: Iterable[Any]) -> "TableQuery":
        joined = ",".join(_fmt(v) for v in values)
        return self._filter(column, "in", f"({joined})")

    def or_(self, *expressions: str) -> "TableQuery":
        self._filters.append(("or", f"({','.join(expressions)})"))
        return self

    def order(self, column: str, ascending: bool = True) -> "TableQuery":
        self._order.append(f"{column}.{'asc' if ascending else 'desc'}")
        return self

    def limit(self, count: int) -> "TableQuery":
        self._limit = int(count)
        return self

    # ---- writes ----
    def insert(self, rows: Dict[str, Any] | List[Dict[str, Any]]) -> "TableQuery":
        self._method = "POST"
        self._body = rows
        return self

    def update(self, values: Dict[str, Any]) -> "TableQuery":
        self._method = "PATCH"
        self._body = values
        return self

    def delete(self) -> "TableQuery":
        self._method = "DELETE"
        return self

    def params(self) -> List[Tuple[str, str]]:
        params: List[Tuple[str, str]] = []
        if self._columns:
            params.append(("select", self._columns))
        params.extend(self._filters)
        if self._order:
            params.append(("order", ",".join(self._order)))
        if self._limit is not None:
            params.append(("limit", str(self._limit)))
        return params

    def execute(self) -> List[Dict[str, Any]]:
        headers: Dict[str, str] = {}
        if self._method != "GET":
            headers["Prefer"] = "return=representation"
        data = self._client.request(
            self._method,
            f"/rest/v1/{self._table}",
            params=self.params(),
            json=self._body,
            headers=headers,
        )
        if data is None:
            return []
        return data if isinstance(data, list) else [data]


class RemoteDataClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: Optional[str] = None,
        timeout: float = 30.0,
        http: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.timeout = timeout
        self.http = http if http is not None else requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
            "Content-Type": "application/json",
        }

    def with_access_token(self, access_token: Optional[str]) -> "RemoteDataClient":
        return RemoteDataClient(self.base_url, self.api_key, access_token, self.timeout, self.http)

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Any = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            r = self.http.request(
                method,
                url,
                params=params,
                json=json,
                headers={**self._headers(), **(headers or {})},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise BackendError(f"Could not reach backend: {e}") from e

        if r.status_code >= 400:
            try:
                payload = r.json()
            except ValueError:
                payload = None
            err = BackendError.from_payload(r.status_code, payload)
            logger.info("%s %s -> %s %s", method, path, r.status_code, err.message)
            raise err

        if not r.content:
            return None
        try:
            return r.json()
        except ValueError as e:
            raise BackendError(f"Backend returned invalid JSON for {path}") from e

    def table(self, name: str) -> TableQuery:
        return TableQuery(self, name)

    def rpc(self, function: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.request("POST", f"/rest/v1/rpc/{function}", json=params or {})


def create_client(
    cfg: Settings = default_settings,
    access_token: Optional[str] = None,
    http: Optional[requests.Session] = None,
) -> RemoteDataClient:
    return RemoteDataClient(
        cfg.backend_url,
        cfg.backend_anon_key,
        access_token=access_token,
        timeout=cfg.request_timeout_seconds,
        http=http,
    )
