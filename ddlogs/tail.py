"""One-shot fetch and follow-mode polling over the log list API.

Follow mode turns a "list logs in a time range" API into a stream of new
records by querying forward from a watermark:

- Bootstrap: fetch the last `since` window, watermark = last record timestamp
  (or the bootstrap "now" if no record carried one).
- Steady state: query (watermark, now), emit, advance the watermark, wait
  `interval_s`, repeat.

Records sharing the watermark instant may be emitted twice unless `dedupe` is
enabled (delivery is at-least-once).
"""

from __future__ import annotations

import json
import sys
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, Iterator, TextIO

from ddlogs.client import (
    LogRecord,
    LogSearchClient,
    Sort,
    TimeRange,
    now_utc,
    parse_timestamp,
)
from ddlogs.errors import SerializationError
from ddlogs.logging import get_logger
from ddlogs.query import Filters, build_query

logger = get_logger(__name__)

DEFAULT_SINCE = timedelta(hours=1)
DEFAULT_INTERVAL_S = 12.0
DEFAULT_LIMIT = 100

Clock = Callable[[], datetime]


def record_timestamp(record: LogRecord) -> datetime | None:
    content = record.get("content") if isinstance(record, dict) else None
    if not isinstance(content, dict):
        return None
    return parse_timestamp(content.get("timestamp"))


def record_id(record: LogRecord) -> str | None:
    value = record.get("id") if isinstance(record, dict) else None
    return value if isinstance(value, str) and value else None


def encode_record(record: LogRecord) -> str:
    try:
        return json.dumps(record, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise SerializationError(str(e)) from e


def emit_records(records: Iterable[LogRecord], out: TextIO) -> int:
    """Write each record as one JSON line; returns the number written."""
    n = 0
    for record in records:
        out.write(encode_record(record) + "\n")
        n += 1
    out.flush()
    return n


def last_timestamp(records: list[LogRecord]) -> datetime | None:
    for record in reversed(records):
        ts = record_timestamp(record)
        if ts is not None:
            return ts
    return None


def advance_watermark(
    watermark: datetime, records: list[LogRecord], now: datetime
) -> datetime:
    """Return the next watermark after a poll that ran at `now`.

    - No records: `now`, so the next window starts where this one ended.
    - Records: the timestamp of the last record that has one.
    - Records but none timestamped: `watermark` unchanged.

    Never moves backwards.
    """
    if not records:
        # Normally just `now`; a record stamped ahead of the local clock
        # would otherwise pull the window start back behind it.
        return max(watermark, now)
    ts = last_timestamp(records)
    if ts is None:
        return watermark
    return max(watermark, ts)


class BoundaryDeduper:
    """Drop records whose id was already emitted at the current watermark instant."""

    def __init__(self) -> None:
        self._watermark: datetime | None = None
        self._ids: set[str] = set()

    def filter(self, records: list[LogRecord]) -> list[LogRecord]:
        kept = []
        for record in records:
            rid = record_id(record)
            if rid is not None and rid in self._ids:
                logger.debug("dropping duplicate boundary record", id=rid)
                continue
            kept.append(record)
        return kept

    def observe(self, records: list[LogRecord], watermark: datetime) -> None:
        if watermark != self._watermark:
            self._watermark = watermark
            self._ids = set()
        for record in records:
            rid = record_id(record)
            if rid is not None and record_timestamp(record) == watermark:
                self._ids.add(rid)


@dataclass(frozen=True)
class Batch:
    time_range: TimeRange
    records: list[LogRecord]
    watermark: datetime


def _list(
    client: LogSearchClient, query: str, time_range: TimeRange, limit: int
) -> list[LogRecord]:
    return client.list_logs(query, time_range, sort=Sort.ASCENDING, limit=limit)


def poll_once(
    client: LogSearchClient,
    query: str,
    watermark: datetime,
    *,
    limit: int,
    now: datetime,
) -> Batch:
    """Query (watermark, now) and compute the next watermark."""
    time_range = TimeRange(watermark, now)
    if watermark >= now:
        logger.debug("degenerate poll window", start=watermark.isoformat(), end=now.isoformat())
    records = _list(client, query, time_range, limit)
    return Batch(time_range, records, advance_watermark(watermark, records, now))


def bootstrap(
    client: LogSearchClient,
    query: str,
    *,
    limit: int,
    since: timedelta = DEFAULT_SINCE,
    now: datetime,
) -> Batch:
    """Fetch (now - since, now); the watermark starts at the last record timestamp, else `now`."""
    time_range = TimeRange(now - since, now)
    records = _list(client, query, time_range, limit)
    return Batch(time_range, records, last_timestamp(records) or now)


def fetch_logs(
    client: LogSearchClient,
    filters: Filters,
    *,
    limit: int = DEFAULT_LIMIT,
    since: timedelta = DEFAULT_SINCE,
    out: TextIO | None = None,
    now: Clock = now_utc,
) -> int:
    """Emit records from the last `since` window once; returns the count emitted."""
    out = sys.stdout if out is None else out
    query = build_query(filters)
    batch = bootstrap(client, query, limit=limit, since=since, now=now())
    logger.info("fetched logs", query=query, count=len(batch.records))
    return emit_records(batch.records, out)


def iter_follow_batches(
    client: LogSearchClient,
    query: str,
    *,
    limit: int = DEFAULT_LIMIT,
    interval_s: float = DEFAULT_INTERVAL_S,
    since: timedelta = DEFAULT_SINCE,
    stop: threading.Event | None = None,
    now: Clock = now_utc,
    max_polls: int | None = None,
) -> Iterator[Batch]:
    """Yield the bootstrap batch, then one batch per poll until `stop` is set.

    `max_polls` bounds the number of steady-state polls (mainly for tests).
    """
    stop = stop or threading.Event()

    batch = bootstrap(client, query, limit=limit, since=since, now=now())
    yield batch
    watermark = batch.watermark

    polls = 0
    while not stop.is_set():
        if max_polls is not None and polls >= max_polls:
            return
        if polls > 0 and stop.wait(interval_s):
            return
        batch = poll_once(client, query, watermark, limit=limit, now=now())
        polls += 1
        logger.debug(
            "poll",
            start=batch.time_range.start.isoformat(),
            end=batch.time_range.end.isoformat(),
            count=len(batch.records),
            watermark=batch.watermark.isoformat(),
        )
        watermark = batch.watermark
        yield batch


def follow_logs(
    client: LogSearchClient,
    filters: Filters,
    *,
    limit: int = DEFAULT_LIMIT,
    interval_s: float = DEFAULT_INTERVAL_S,
    since: timedelta = DEFAULT_SINCE,
    out: TextIO | None = None,
    stop: threading.Event | None = None,
    now: Clock = now_utc,
    dedupe: bool = False,
    max_polls: int | None = None,
) -> None:
    """Emit the last `since` window, then keep emitting new records every `interval_s`."""
    out = sys.stdout if out is None else out
    query = build_query(filters)
    deduper = BoundaryDeduper() if dedupe else None
    logger.info("following logs", query=query, interval_s=interval_s, limit=limit)

    for batch in iter_follow_batches(
        client,
        query,
        limit=limit,
        interval_s=interval_s,
        since=since,
        stop=stop,
        now=now,
        max_polls=max_polls,
    ):
        records = batch.records
        if deduper is not None:
            records = deduper.filter(records)
            deduper.observe(batch.records, batch.watermark)
        emit_records(records, out)
