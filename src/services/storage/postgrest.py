"""
REST Gateway Storage Implementation

DESIGN DECISION: The hosted backend exposes every table through a
PostgREST gateway (``/rest/v1/<table>``). Talking to it with plain
``requests`` keeps the dependency surface small and the wire format
visible:
1. Filters become ``column=op.value`` query parameters
2. Writes ask for ``return=representation`` so defaults come back
3. Upserts use ``resolution=merge-duplicates`` with ``on_conflict``

TRADEOFFS:
- Calls are synchronous under async signatures (same as the rest of
  the storage layer); the volume here is a handful of calls per screen
- Only transient failures are retried; constraint and permission errors
  surface immediately
"""

from typing import Any, Optional, Sequence

import requests
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.config import BackendSettings, get_settings
from src.services.storage.interface import (
    ConnectionError,
    DuplicateError,
    Filter,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    TableBackend,
    TransientBackendError,
    to_json_value,
)


# Postgres / gateway error codes we translate
UNIQUE_VIOLATION = "23505"
INSUFFICIENT_PRIVILEGE = "42501"
NO_ROWS_FOR_SINGLE = "PGRST116"

_RESERVED_IN_LIST = set(',()"')

logger = structlog.get_logger(__name__)


def _format_scalar(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _format_in_list(values: Sequence[Any]) -> str:
    parts = []
    for value in values:
        text = _format_scalar(value)
        if any(ch in _RESERVED_IN_LIST for ch in text):
            text = '"' + text.replace('"', '\\"') + '"'
        parts.append(text)
    return "(" + ",".join(parts) + ")"


def _format_like(pattern: str) -> str:
    # The gateway spells the any-run wildcard as *; escaped characters stay as they are
    out = []
    escaped = False
    for ch in pattern:
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == "%":
            ch = "*"
        out.append(ch)
    return "".join(out)


def encode_filter(flt: Filter) -> tuple[str, str]:
    """Translate one Filter into a PostgREST query parameter."""
    if flt.op == "in":
        return flt.column, f"in.{_format_in_list(flt.value)}"
    if flt.op == "ilike":
        return flt.column, f"ilike.{_format_like(str(flt.value))}"
    if flt.op == "eq" and flt.value is None:
        return flt.column, "is.null"
    return flt.column, f"{flt.op}.{_format_scalar(flt.value)}"


class PostgrestClient(TableBackend):
    """
    Table backend speaking to the hosted REST gateway.

    Requests carry the project's anon key as ``apikey``. The bearer token
    is the signed-in user's access token when one is set, which is what
    makes row-level security apply to that user.
    """

    def __init__(
        self,
        settings: Optional[BackendSettings] = None,
        session: Optional[requests.Session] = None,
        access_token: Optional[str] = None,
    ):
        self._settings = settings or get_settings().backend
        self._session = session or requests.Session()
        self._access_token = access_token

    @property
    def rest_url(self) -> str:
        return f"{self._settings.url}/rest/v1"

    def set_access_token(self, access_token: Optional[str]) -> None:
        """Switch the user the backend evaluates row-level security for."""
        self._access_token = access_token

    def _headers(self, prefer: Optional[str] = None) -> dict[str, str]:
        headers = {
            "apikey": self._settings.anon_key,
            "Authorization": f"Bearer {self._access_token or self._settings.anon_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self._settings.schema_name != "public":
            headers["Accept-Profile"] = self._settings.schema_name
            headers["Content-Profile"] = self._settings.schema_name
        if prefer:
            headers["Prefer"] = prefer
        return headers

    @staticmethod
    def _raise_for_response(response: requests.Response) -> None:
        if response.status_code < 400:
            return

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        code = body.get("code")
        message = body.get("message") or response.text or response.reason
        detail = f"{message} (HTTP {response.status_code})"

        if code == UNIQUE_VIOLATION or response.status_code == 409:
            raise DuplicateError(detail, code=code or UNIQUE_VIOLATION)
        if code == INSUFFICIENT_PRIVILEGE or response.status_code in (401, 403):
            raise PermissionDeniedError(detail, code=code)
        if code == NO_ROWS_FOR_SINGLE or response.status_code == 404:
            raise NotFoundError(detail, code=code)
        if response.status_code >= 500:
            raise TransientBackendError(detail, code=code)
        raise StorageError(detail, code=code)

    @retry(
        retry=retry_if_exception_type(TransientBackendError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _request(
        self,
        method: str,
        table: str,
        params: Optional[list[tuple[str, str]]] = None,
        json_body: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        """Perform one REST call and return the decoded JSON body."""
        url = f"{self.rest_url}/{table}"
        try:
            response = self._session.request(
                method,
                url,
                params=params or [],
                json=json_body,
                headers=self._headers(prefer),
                timeout=self._settings.timeout_seconds,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            logger.warning("backend_unreachable", method=method, table=table, error=str(e))
            raise TransientBackendError(f"Backend unreachable: {e}")
        except requests.RequestException as e:
            raise ConnectionError(f"Backend request failed: {e}")

        self._raise_for_response(response)

        if not response.content:
            return []
        return response.json()

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        params = [("select", columns)]
        params.extend(encode_filter(flt) for flt in filters)
        if order_by:
            params.append(("order", f"{order_by}.{'desc' if descending else 'asc'}"))
        if limit is not None:
            params.append(("limit", str(limit)))
        return self._request("GET", table, params=params)

    async def insert(self, table: str, rows: Sequence[dict]) -> list[dict]:
        if not rows:
            return []
        return self._request(
            "POST",
            table,
            json_body=[{k: to_json_value(v) for k, v in row.items()} for row in rows],
            prefer="return=representation",
        )

    async def update(
        self,
        table: str,
        values: dict,
        filters: Sequence[Filter],
    ) -> list[dict]:
        if not filters:
            raise StorageError("Refusing to update without filters")
        return self._request(
            "PATCH",
            table,
            params=[encode_filter(flt) for flt in filters],
            json_body={k: to_json_value(v) for k, v in values.items()},
            prefer="return=representation",
        )

    async def upsert(
        self,
        table: str,
        rows: Sequence[dict],
        on_conflict: Sequence[str],
    ) -> list[dict]:
        if not rows:
            return []
        return self._request(
            "POST",
            table,
            params=[("on_conflict", ",".join(on_conflict))],
            json_body=[{k: to_json_value(v) for k, v in row.items()} for row in rows],
            prefer="resolution=merge-duplicates,return=representation",
        )

    async def delete(self, table: str, filters: Sequence[Filter]) -> int:
        if not filters:
            raise StorageError("Refusing to delete without filters")
        deleted = self._request(
            "DELETE",
            table,
            params=[encode_filter(flt) for flt in filters],
            prefer="return=representation",
        )
        return len(deleted)
