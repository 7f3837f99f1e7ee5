"""Tail logs from the Datadog log search API.

See `README.md` for usage.
"""

__all__ = [
    "__version__",
    "build_query",
    "configure_logging",
    "fetch_logs",
    "follow_logs",
    "get_logger",
    "Filters",
    "LogsClient",
]

try:
    from importlib.metadata import version as _pkg_version

    __version__ = _pkg_version("ddlogs")
except Exception:  # pragma: no cover
    __version__ = "0.0.0"

from ddlogs.logging import configure_logging, get_logger  # noqa: E402
from ddlogs.client import LogsClient  # noqa: E402
from ddlogs.query import Filters, build_query  # noqa: E402
from ddlogs.tail import fetch_logs, follow_logs  # noqa: E402
