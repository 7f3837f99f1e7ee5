from __future__ import annotations

from dataclasses import dataclass

WILDCARD = "*"


@dataclass(frozen=True)
class Filters:
    service: str | None = None
    source: str | None = None
    host: str | None = None
    raw_query: str | None = None


def build_query(filters: Filters) -> str:
    """Build a log search query: `service:S source:SRC host:H RAW`, or `*`."""
    parts: list[str] = []
    for key in ("service", "source", "host"):
        value = getattr(filters, key)
        if value:
            parts.append(f"{key}:{value}")
    if filters.raw_query:
        parts.append(filters.raw_query)
    return " ".join(parts) if parts else WILDCARD
