"""Remote results table (Supabase / PostgREST) client.

Rows of the `wheelie_results` table:

    id          bigint, generated
    nickname    text
    angle       numeric   -- max angle, 1 decimal
    avg_angle   numeric   -- average angle, 1 decimal
    duration    numeric   -- seconds, 2 decimals
    created_at  timestamptz
    device      text      -- client user agent, truncated to 100 chars
    session_id  uuid

All failures surface as PersistenceError. There are no retries: records
the caller could not write stay unsaved and the user retries by hand.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import requests

from wheelie.detector import EventRecord
from wheelie.errors import ConfigError, PersistenceError

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "wheelie_results"
MAX_DEVICE_LEN = 100


def build_rows(
    records: Iterable[EventRecord], nickname: Optional[str], device: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Convert records to table rows, stamped with the current UTC time."""
    created_at = datetime.now(timezone.utc).isoformat()
    return [
        {
            "nickname": nickname,
            "angle": round(r.max_angle, 1),
            "avg_angle": round(r.avg_angle, 1),
            "duration": round(r.duration, 2),
            "created_at": created_at,
            "device": (device or "")[:MAX_DEVICE_LEN],
            "session_id": r.session_id,
        }
        for r in records
    ]


class ResultsClient:
    """Insert / select / delete against the results table.

    Args:
        url: Project URL, e.g. https://<ref>.supabase.co
        key: API key (anon or service role)
        table: Table name.
        timeout: Per-request timeout in seconds.
        session: Optional requests.Session (tests inject a mock).
    """

    def __init__(self, url: str, key: str, table: str = DEFAULT_TABLE,
                 timeout: float = 10.0, session: Optional[requests.Session] = None):
        if not url or not key:
            raise ConfigError("Results store needs both a URL and an API key")
        self.endpoint = f"{url.rstrip('/')}/rest/v1/{table}"
        self.table = table
        self._timeout = timeout
        self._http = session or requests.Session()
        self._http.headers.update({
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "ResultsClient":
        """Build from the `results` config section; env vars take precedence."""
        return cls(
            url=os.environ.get("SUPABASE_URL") or cfg.get("url", ""),
            key=os.environ.get("SUPABASE_KEY") or cfg.get("key", ""),
            table=cfg.get("table", DEFAULT_TABLE),
            timeout=float(cfg.get("timeout", 10.0)),
        )

    def _request(self, method: str, params=None, json=None, prefer: Optional[str] = None):
        headers = {"Prefer": prefer} if prefer else None
        try:
            resp = self._http.request(
                method, self.endpoint, params=params, json=json,
                headers=headers, timeout=self._timeout,
            )
            resp.raise_for_status()
        except requests.HTTPError as exc:
            raise PersistenceError(_error_message(exc.response)) from exc
        except requests.RequestException as exc:
            raise PersistenceError(f"Results store unreachable: {exc}") from exc
        return resp

    def insert(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Insert rows and return them as stored (with ids)."""
        if not rows:
            return []
        resp = self._request("POST", json=rows, prefer="return=representation")
        stored = resp.json() if resp.content else []
        logger.info("Inserted %d row(s) into %s", len(rows), self.table)
        return stored

    def append(self, records: List[EventRecord], nickname: Optional[str],
               device: Optional[str] = None) -> int:
        """Write records. Returns the number of rows written."""
        rows = build_rows(records, nickname, device)
        self.insert(rows)
        return len(rows)

    def fetch(self, nickname: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent results first, optionally for one nickname."""
        params = {"select": "*", "order": "created_at.desc", "limit": int(limit)}
        if nickname:
            params["nickname"] = f"eq.{nickname}"
        return self._request("GET", params=params).json()

    def delete(self, result_id) -> None:
        self._request("DELETE", params={"id": f"eq.{result_id}"})
        logger.info("Deleted result %s from %s", result_id, self.table)


class ResultsSink:
    """Binds a ResultsClient to one device for MeasurementSession.save()."""

    def __init__(self, client: ResultsClient, device: Optional[str] = None):
        self.client = client
        self.device = device

    def append(self, records: List[EventRecord], nickname: Optional[str] = None) -> int:
        return self.client.append(records, nickname, self.device)


def _error_message(resp) -> str:
    """Best-effort human message from a PostgREST error response."""
    if resp is None:
        return "Results store request failed"
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return f"Results store error {resp.status_code}: {body['message']}"
    return f"Results store error {resp.status_code}"
