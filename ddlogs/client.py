from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

import requests

from ddlogs.config import DEFAULT_SITE
from ddlogs.errors import ApiError
from ddlogs.logging import get_logger

logger = get_logger(__name__)

LIST_LOGS_PATH = "/api/v1/logs-queries/list"
DEFAULT_TIMEOUT_S = 30.0

LogRecord = dict[str, Any]


def now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 instant into an aware UTC datetime.

    Naive values are taken as UTC. Returns None for anything unparseable.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        token = value.strip()
        if not token:
            return None
        try:
            dt = datetime.fromisoformat(token.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Format an instant as `YYYY-MM-DDTHH:MM:SS.mmmZ`, the form the API takes."""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{dt.microsecond // 1000:03d}Z"


class Sort(str, enum.Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime

    def to_json(self) -> dict[str, str]:
        return {"from": format_timestamp(self.start), "to": format_timestamp(self.end)}


class LogSearchClient(Protocol):
    def list_logs(
        self,
        query: str,
        time_range: TimeRange,
        *,
        sort: Sort = Sort.ASCENDING,
        limit: int = 100,
    ) -> list[LogRecord]: ...


def base_url_for_site(site: str | None) -> str:
    site = (site or DEFAULT_SITE).strip().rstrip("/")
    if site.startswith(("http://", "https://")):
        return site
    return f"https://api.{site}"


def _error_detail(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(payload, dict) and payload.get("errors"):
        return "; ".join(str(e) for e in payload["errors"])
    return str(payload)[:500]


class LogsClient:
    """Thin wrapper around the Datadog v1 log list endpoint."""

    def __init__(
        self,
        api_key: str,
        app_key: str,
        site: str | None = None,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url_for_site(site)
        self.timeout_s = timeout_s
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "DD-API-KEY": api_key,
                "DD-APPLICATION-KEY": app_key,
                "Accept": "application/json",
            }
        )

    def list_logs(
        self,
        query: str,
        time_range: TimeRange,
        *,
        sort: Sort = Sort.ASCENDING,
        limit: int = 100,
    ) -> list[LogRecord]:
        body = {
            "query": query,
            "time": time_range.to_json(),
            "sort": sort.value,
            "limit": limit,
        }
        url = self.base_url + LIST_LOGS_PATH
        logger.trace("list logs request", url=url, body=body)

        try:
            response = self.session.post(url, json=body, timeout=self.timeout_s)
        except requests.RequestException as e:
            raise ApiError(f"request failed: {e}") from e

        if not response.ok:
            raise ApiError(
                f"HTTP {response.status_code}: {_error_detail(response)}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ApiError(
                f"invalid JSON in response: {e}", status_code=response.status_code
            ) from e

        if not isinstance(payload, dict):
            raise ApiError(
                "malformed response: expected a JSON object",
                status_code=response.status_code,
            )
        logs = payload.get("logs")
        if logs is None:
            return []
        if not isinstance(logs, list):
            raise ApiError(
                "malformed response: 'logs' is not a list",
                status_code=response.status_code,
            )

        logger.debug(
            "list logs response",
            query=query,
            start=body["time"]["from"],
            end=body["time"]["to"],
            count=len(logs),
        )
        return logs
