from __future__ import annotations

import json
import logging
import os
import re
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from logging.handlers import WatchedFileHandler
from pathlib import Path
from typing import Any, cast

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOG_ROOT_ENV = "DDLOGS_LOG_ROOT"


def _level_name_to_int(level_name: str, default: int) -> int:
    name = level_name.strip().upper()
    if not name:
        return default
    if name == "TRACE":
        return TRACE
    candidate: object = getattr(logging, name, None)
    if isinstance(candidate, int):
        return candidate
    return default


def _parse_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _format_value(value: object) -> str:
    text = value if isinstance(value, str) else str(value)
    if not text or any(c.isspace() or c in '"=' for c in text):
        return json.dumps(text, ensure_ascii=False)
    return text


class DdLogsLogger(logging.Logger):
    """Logger that accepts trailing keyword pairs: `logger.info("poll", count=3)`."""

    def trace(self, msg: object, *args: Any, **kwargs: Any) -> None:
        if self.isEnabledFor(TRACE):
            self._log(TRACE, msg, args, **kwargs)

    def _log(  # type: ignore[override]
        self,
        level: int,
        msg: object,
        args: Any,
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **kv: Any,
    ) -> None:
        if kv:
            extra = dict(extra or {})
            extra["kv"] = kv
        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel,
        )


logging.setLoggerClass(DdLogsLogger)


def get_logger(name: str) -> DdLogsLogger:
    return cast(DdLogsLogger, logging.getLogger(name))


class UtcMillisFormatter(logging.Formatter):
    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{int(record.msecs):03d}Z"


class KeyValueFormatter(UtcMillisFormatter):
    """Render `<ts> level=.. logger=.. msg=".." k=v ...` on one line."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        record.message = record.getMessage()
        parts = [
            self.formatTime(record),
            f"level={record.levelname}",
            f"logger={record.name}",
            f"msg={json.dumps(record.message, ensure_ascii=False)}",
        ]
        kv = getattr(record, "kv", None) or {}
        parts.extend(f"{key}={_format_value(value)}" for key, value in kv.items())
        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class RedactAndTruncateFilter(logging.Filter):
    def __init__(self, max_chars: int) -> None:
        super().__init__()
        self.max_chars = max_chars

        self._patterns: list[tuple[re.Pattern[str], str]] = [
            # Datadog auth headers as they appear in request/exception dumps
            (
                re.compile(r"(DD-(?:API|APPLICATION)-KEY['\"]?\s*[:=]\s*['\"]?)[^'\"\s,}]+", re.I),
                r"\1<REDACTED>",
            ),
            (re.compile(r"\bBearer\s+\S+"), "Bearer <REDACTED>"),
        ]

    def _redact(self, text: str) -> str:
        for pattern, replacement in self._patterns:
            text = pattern.sub(replacement, text)
        return text

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        try:
            message = record.getMessage()
        except Exception:
            return True

        redacted = self._redact(message)
        if self.max_chars > 0 and len(redacted) > self.max_chars:
            redacted = redacted[: self.max_chars] + "…(truncated)"

        if redacted != message:
            record.msg = redacted
            record.args = ()

        kv = getattr(record, "kv", None)
        if kv:
            record.kv = {
                key: self._redact(value) if isinstance(value, str) else value
                for key, value in kv.items()
            }

        return True


def _is_under(name: str, prefix: str) -> bool:
    return name == prefix or name.startswith(prefix + ".")


class _ThirdPartySelectorFilter(logging.Filter):
    """Pass app records always; pass third-party records only if spotlighted.

    An empty spotlight passes everything and leaves gating to logger levels.
    """

    def __init__(self, app_logger_prefix: str, spotlight_prefixes: tuple[str, ...]) -> None:
        super().__init__()
        self.app_logger_prefix = app_logger_prefix
        self.spotlight_prefixes = spotlight_prefixes

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        if _is_under(record.name, self.app_logger_prefix) or not self.spotlight_prefixes:
            return True
        return any(_is_under(record.name, p) for p in self.spotlight_prefixes)


@dataclass(frozen=True)
class LoggingContract:
    env_prefix: str
    app_logger_prefix: str
    app_name: str

    @classmethod
    def for_app(cls, app_name: str) -> "LoggingContract":
        prefix = re.sub(r"[^A-Za-z0-9]+", "_", app_name).upper()
        return cls(env_prefix=prefix, app_logger_prefix=app_name, app_name=app_name)

    @property
    def env_log_level(self) -> str:
        return f"{self.env_prefix}_LOG_LEVEL"

    @property
    def env_third_party_level(self) -> str:
        return f"{self.env_prefix}_THIRD_PARTY_LOG_LEVEL"

    @property
    def env_third_party_loggers(self) -> str:
        return f"{self.env_prefix}_THIRD_PARTY_LOGGERS"

    @property
    def env_muted_loggers(self) -> str:
        return f"{self.env_prefix}_MUTED_LOGGERS"


def _resolve_log_root() -> Path:
    override = os.getenv(LOG_ROOT_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".local" / "state" / "ddlogs"


def _fallback_log_root(app_name: str) -> Path:
    return Path("/tmp") / "ddlogs" / app_name


def _ensure_log_dir(log_dir: Path) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)


def _build_handler(
    handler: logging.Handler,
    formatter: logging.Formatter,
    contract: LoggingContract,
    spotlight: list[str],
    max_message_chars: int,
) -> logging.Handler:
    handler.setLevel(logging.NOTSET)
    handler.setFormatter(formatter)
    handler.addFilter(RedactAndTruncateFilter(max_chars=max_message_chars))
    handler.addFilter(
        _ThirdPartySelectorFilter(
            app_logger_prefix=contract.app_logger_prefix,
            spotlight_prefixes=tuple(spotlight),
        )
    )
    return handler


def configure_logging(
    app_name: str = "ddlogs",
    *,
    log_filename: str | None = None,
    max_message_chars: int = 4000,
) -> Path:
    """Configure root logging for `app_name` from `<APP>_*` environment variables.

    Log records go to a single watched file; a stderr handler is added only for
    interactive terminals so stdout stays reserved for command output.

    Returns the resolved log file path in use.
    """
    contract = LoggingContract.for_app(app_name)

    our_level_name = (os.getenv(contract.env_log_level) or "INFO").upper()
    third_party_level_name = (os.getenv(contract.env_third_party_level) or "WARNING").upper()
    spotlight = _parse_csv(os.getenv(contract.env_third_party_loggers, ""))
    muted = _parse_csv(os.getenv(contract.env_muted_loggers, ""))

    our_level = _level_name_to_int(our_level_name, logging.INFO)
    third_party_level = _level_name_to_int(third_party_level_name, logging.WARNING)

    # Root logger governs all loggers that don't explicitly set a level.
    root_level = third_party_level if not spotlight else logging.WARNING

    log_dir = _resolve_log_root()
    try:
        _ensure_log_dir(log_dir)
    except OSError:
        log_dir = _fallback_log_root(app_name)
        _ensure_log_dir(log_dir)

    log_file = log_dir / (log_filename or f"{app_name}.log")

    formatter = KeyValueFormatter()

    handler = _build_handler(
        WatchedFileHandler(log_file, encoding="utf-8"),
        formatter,
        contract,
        spotlight,
        max_message_chars,
    )

    logging.root.handlers = [handler]
    logging.root.setLevel(root_level)

    logging.getLogger(contract.app_logger_prefix).setLevel(our_level)

    # Spotlight prefixes only affect non-app loggers.
    for prefix in spotlight:
        if not _is_under(prefix, contract.app_logger_prefix):
            logging.getLogger(prefix).setLevel(third_party_level)

    for name in muted:
        logging.getLogger(name).setLevel(logging.WARNING)

    if sys.stderr.isatty():
        logging.root.addHandler(
            _build_handler(
                logging.StreamHandler(sys.stderr),
                formatter,
                contract,
                spotlight,
                max_message_chars,
            )
        )

    return log_file


def parse_since(value: str) -> timedelta:
    """Parse durations like '10m', '2h', '1d', '30s'."""
    raw = value.strip().lower()
    if not raw:
        raise ValueError("Empty duration")
    unit = raw[-1]
    number = raw[:-1]
    if not number.isdigit():
        raise ValueError(f"Invalid duration: {value}")
    n = int(number)
    if n <= 0:
        raise ValueError(f"Duration must be positive: {value}")
    if unit == "s":
        return timedelta(seconds=n)
    if unit == "m":
        return timedelta(minutes=n)
    if unit == "h":
        return timedelta(hours=n)
    if unit == "d":
        return timedelta(days=n)
    raise ValueError(f"Invalid duration unit: {unit}")
