from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest

from ddlogs.client import Sort, TimeRange


def ts(second: int, minute: int = 0) -> datetime:
    return datetime(2026, 10, 18, 12, minute, second, tzinfo=timezone.utc)


def record(log_id: str, when: datetime | None, message: str = "hello") -> dict:
    content: dict = {"message": message, "service": "api"}
    if when is not None:
        content["timestamp"] = when.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
    return {"id": log_id, "content": content}


class FakeClient:
    """Scripted stand-in for LogsClient; each call pops the next response."""

    def __init__(self, responses: list, on_call=None) -> None:
        self.responses = list(responses)
        self.calls: list[dict] = []
        self.on_call = on_call

    def list_logs(
        self,
        query: str,
        time_range: TimeRange,
        *,
        sort: Sort = Sort.ASCENDING,
        limit: int = 100,
    ) -> list[dict]:
        self.calls.append(
            {"query": query, "time_range": time_range, "sort": sort, "limit": limit}
        )
        if self.on_call is not None:
            self.on_call(len(self.calls))
        response = self.responses.pop(0) if self.responses else []
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture()
def isolated_logging(tmp_path, monkeypatch):
    previous_handlers = list(logging.root.handlers)
    previous_root_level = logging.root.level
    monkeypatch.setenv("DDLOGS_LOG_ROOT", str(tmp_path / "logs"))

    try:
        yield tmp_path / "logs"
    finally:
        for handler in logging.root.handlers:
            if handler in previous_handlers:
                continue
            try:
                handler.close()
            except Exception:
                pass
        logging.root.handlers = previous_handlers
        logging.root.setLevel(previous_root_level)
