import logging
from logging.handlers import WatchedFileHandler
from pathlib import Path

from ddlogs.logging import DdLogsLogger, configure_logging, get_logger, parse_since


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


def test_our_logs_respect_app_level_and_third_party_baseline(isolated_logging, monkeypatch):
    monkeypatch.setenv("DDLOGS_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("DDLOGS_THIRD_PARTY_LOG_LEVEL", "WARNING")
    monkeypatch.delenv("DDLOGS_THIRD_PARTY_LOGGERS", raising=False)

    log_path = configure_logging("ddlogs")

    logging.getLogger("ddlogs.tail").debug("hello from ours")
    logging.getLogger("urllib3.connectionpool").info("hello from third-party")

    content = _read_text(log_path)
    assert log_path.parent == isolated_logging
    assert "logger=ddlogs.tail" in content
    assert 'msg="hello from ours"' in content
    assert "logger=urllib3.connectionpool" not in content


def test_configure_logging_uses_single_file_handler(isolated_logging, monkeypatch):
    monkeypatch.setenv("DDLOGS_LOG_LEVEL", "INFO")

    configure_logging("ddlogs")

    assert len(logging.root.handlers) == 1
    assert isinstance(logging.root.handlers[0], WatchedFileHandler)


def test_get_logger_returns_kv_logger(isolated_logging):
    logger = get_logger("ddlogs.client")
    assert isinstance(logger, DdLogsLogger)
    logger.info("hello", session="abc123", n=1)


def test_spotlight_allows_selected_third_party_only(isolated_logging, monkeypatch):
    monkeypatch.setenv("DDLOGS_LOG_LEVEL", "INFO")
    monkeypatch.setenv("DDLOGS_THIRD_PARTY_LOG_LEVEL", "INFO")
    monkeypatch.setenv("DDLOGS_THIRD_PARTY_LOGGERS", "urllib3")

    log_path = configure_logging("ddlogs")

    urllib3_logger = logging.getLogger("urllib3")
    charset_logger = logging.getLogger("charset_normalizer")
    previous_urllib3_level = urllib3_logger.level
    previous_charset_level = charset_logger.level
    urllib3_logger.setLevel(logging.INFO)
    charset_logger.setLevel(logging.INFO)

    try:
        logging.getLogger("urllib3.connectionpool").info("urllib3 info")
        logging.getLogger("charset_normalizer.api").info("charset info")
    finally:
        urllib3_logger.setLevel(previous_urllib3_level)
        charset_logger.setLevel(previous_charset_level)

    content = _read_text(log_path)
    assert "logger=urllib3.connectionpool" in content
    assert 'msg="urllib3 info"' in content
    assert "charset info" not in content


def test_kv_pairs_are_rendered_and_quoted_when_needed(isolated_logging, monkeypatch):
    monkeypatch.setenv("DDLOGS_LOG_LEVEL", "INFO")

    log_path = configure_logging("ddlogs")

    get_logger("ddlogs.tail").info("poll", count=3, query="service:api host:h1", empty="")

    content = _read_text(log_path)
    assert "level=INFO" in content
    assert 'msg="poll"' in content
    assert "count=3" in content
    assert 'query="service:api host:h1"' in content
    assert 'empty=""' in content


def test_muted_loggers_forced_to_warning(isolated_logging, monkeypatch):
    monkeypatch.setenv("DDLOGS_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("DDLOGS_MUTED_LOGGERS", "ddlogs.muted_for_test")

    log_path = configure_logging("ddlogs")

    logging.getLogger("ddlogs.core").debug("core debug")
    logging.getLogger("ddlogs.muted_for_test").debug("muted debug")
    logging.getLogger("ddlogs.muted_for_test").warning("muted warning")

    content = _read_text(log_path)
    assert 'msg="core debug"' in content
    assert "muted debug" not in content
    assert 'msg="muted warning"' in content


def test_trace_level(isolated_logging, monkeypatch):
    monkeypatch.setenv("TRACE_APP_LOG_LEVEL", "TRACE")

    log_file = configure_logging("trace_app")
    logger = get_logger("trace_app")

    logger.trace("This is a trace message", kv_key="kv_value")
    logger.debug("This is a debug message")

    lines = _read_text(log_file).splitlines()
    assert len(lines) == 2
    assert "level=TRACE" in lines[0]
    assert 'msg="This is a trace message"' in lines[0]
    assert "kv_key=kv_value" in lines[0]
    assert "level=DEBUG" in lines[1]


def test_trace_filtered_at_debug(isolated_logging, monkeypatch):
    monkeypatch.setenv("TRACE_FILTERING_LOG_LEVEL", "DEBUG")

    log_file = configure_logging("trace-filtering")
    logger = get_logger("trace-filtering")

    logger.trace("This should not appear")
    logger.debug("This should appear")

    lines = _read_text(log_file).splitlines()
    assert len(lines) == 1
    assert "level=DEBUG" in lines[0]


def test_datadog_keys_are_redacted(isolated_logging, monkeypatch):
    monkeypatch.setenv("DDLOGS_LOG_LEVEL", "INFO")

    log_path = configure_logging("ddlogs")

    logger = get_logger("ddlogs.client")
    logger.info("headers {'DD-API-KEY': 'secret123', 'DD-APPLICATION-KEY': 'appsecret'}")
    logger.info("request", headers="DD-API-KEY: secret456")

    content = _read_text(log_path)
    assert "secret123" not in content
    assert "appsecret" not in content
    assert "secret456" not in content
    assert "<REDACTED>" in content


def test_parse_since():
    assert parse_since("30s").total_seconds() == 30
    assert parse_since("10m").total_seconds() == 600
    assert parse_since("1h").total_seconds() == 3600
    assert parse_since(" 2D ").total_seconds() == 2 * 86400
