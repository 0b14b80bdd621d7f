"""HTTP client for the log backend: ingest sessions, pattern service, CloudWatch proxy."""

import logging
from datetime import datetime

import requests

from logimport.errors import ApiError
from logimport.models import Page, Pattern, SessionOptions

logger = logging.getLogger(__name__)


def to_epoch_ms(value: datetime | None) -> int | None:
    if value is None:
        return None
    return int(value.timestamp() * 1000)


class BackendClient:
    """Thin JSON-over-HTTP wrapper around the backend's /api/v1 routes.

    Every method either returns the decoded response body or raises ApiError.
    """

    def __init__(self, base_url: str, timeout: float = 30.0,
                 session: requests.Session | None = None):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    @property
    def base_url(self) -> str:
        return self._base_url

    def close(self):
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, method: str, endpoint: str, body: dict | None = None) -> dict:
        url = f"{self._base_url}{endpoint}"
        try:
            response = self._session.request(
                method,
                url,
                json=body if method != "GET" else None,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.error("%s %s failed: %s", method, endpoint, exc)
            raise ApiError(f"Request to {endpoint} failed: {exc}") from exc

        if not response.ok:
            raise ApiError(self._error_message(response), status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise ApiError(
                f"Invalid JSON from {endpoint}", status_code=response.status_code
            ) from exc
        return data if isinstance(data, dict) else {"data": data}

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            message = data.get("detail") or data.get("error")
            if message:
                return str(message)
        return f"API request failed with status {response.status_code}"

    @staticmethod
    def _check_status(data: dict, action: str):
        status = data.get("status")
        if status is not None and status != "success":
            raise ApiError(data.get("error") or f"{action} returned status {status!r}")

    # ------------------------------------------------------------------
    # Health and patterns
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        try:
            return self._request("GET", "/ping").get("status") == "pong"
        except ApiError:
            return False

    def list_patterns(self) -> list[Pattern]:
        data = self._request("GET", "/grok")
        return [Pattern.from_api(p) for p in data.get("patterns") or []]

    def save_pattern(self, pattern: Pattern) -> dict:
        """Store a named pattern so later detections can match it by expression."""
        data = self._request("POST", "/grok", {
            "name": pattern.name,
            "pattern": pattern.expression,
            "description": pattern.description,
            "priority": pattern.priority,
            "custom_patterns": dict(pattern.custom_subpatterns),
        })
        self._check_status(data, "save pattern")
        logger.info("Saved pattern %r", pattern.name)
        return data

    def suggest_patterns(self, lines: list[str]) -> list[dict]:
        """Ask for pattern candidates; a parse request without a pattern means 'suggest'."""
        data = self._request("POST", "/parse", {"logs": list(lines)})
        return list(data.get("results") or [])

    def parse_logs(self, lines: list[str], expression: str,
                   custom_patterns: dict | None = None,
                   session_options: SessionOptions | None = None) -> list[dict]:
        body = {
            "logs": list(lines),
            "grok_pattern": expression,
            "custom_patterns": dict(custom_patterns or {}),
        }
        if session_options is not None:
            body["session_options"] = session_options.to_dict()
        data = self._request("POST", "/parse", body)
        return list(data.get("logs") or [])

    # ------------------------------------------------------------------
    # Ingest session
    # ------------------------------------------------------------------

    def ingest_start(self, options: SessionOptions) -> str:
        data = self._request("POST", "/ingest/start", options.to_dict())
        self._check_status(data, "ingest start")
        session_id = data.get("session_id")
        if not session_id:
            raise ApiError("Failed to start ingestion session: no session id returned")
        return session_id

    def ingest_logs(self, session_id: str, lines: list[str]) -> dict:
        data = self._request(
            "POST", "/ingest/logs", {"session_id": session_id, "logs": list(lines)}
        )
        self._check_status(data, "ingest logs")
        return data

    def ingest_end(self, session_id: str) -> dict:
        data = self._request("POST", "/ingest/end", {"session_id": session_id})
        self._check_status(data, "ingest end")
        return data

    # ------------------------------------------------------------------
    # CloudWatch proxy
    # ------------------------------------------------------------------

    def list_log_groups(self, region: str, profile: str) -> list[dict]:
        data = self._request(
            "POST", "/cloudwatch/log-groups", {"region": region, "profile": profile}
        )
        return list(data.get("log_groups") or [])

    def list_log_streams(self, region: str, profile: str, group: str,
                         start_time: datetime | None = None,
                         end_time: datetime | None = None) -> list[dict]:
        body = {
            "region": region,
            "profile": profile,
            "log_group_name": group,
            "start_time": to_epoch_ms(start_time),
            "end_time": to_epoch_ms(end_time),
        }
        data = self._request("POST", "/cloudwatch/log-streams", body)
        return list(data.get("log_streams") or [])

    def get_log_events(self, region: str, profile: str, group: str, stream: str,
                       start_time: datetime | None = None,
                       end_time: datetime | None = None,
                       next_token: str | None = None,
                       limit: int = 10000) -> dict:
        body = {
            "region": region,
            "profile": profile,
            "log_group_name": group,
            "log_stream_name": stream,
            "start_time": to_epoch_ms(start_time),
            "end_time": to_epoch_ms(end_time),
            "limit": limit,
        }
        if next_token is not None:
            body["next_token"] = next_token
        return self._request("POST", "/cloudwatch/log-events", body)

    def fetch_event_page(self, page_index: int, region: str, profile: str,
                         group: str, stream: str, start_time: datetime | None,
                         end_time: datetime | None, next_token: str | None,
                         limit: int) -> Page:
        """Fetch one page of events as a Page of raw message strings."""
        data = self.get_log_events(
            region, profile, group, stream, start_time, end_time, next_token, limit
        )
        messages = tuple(
            event.get("message", "") if isinstance(event, dict) else str(event)
            for event in data.get("log_events") or []
        )
        return Page(
            index=page_index,
            items=messages,
            next_token=data.get("next_token") or None,
            has_more=bool(data.get("has_more", False)),
        )
