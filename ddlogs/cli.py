from __future__ import annotations

import argparse
import os
import signal
import sys

from ddlogs.client import LogsClient
from ddlogs.config import load_config
from ddlogs.configure import run_configure
from ddlogs.errors import DdLogsError
from ddlogs.logging import configure_logging, get_logger, parse_since
from ddlogs.query import Filters
from ddlogs.tail import DEFAULT_INTERVAL_S, DEFAULT_LIMIT, fetch_logs, follow_logs

logger = get_logger(__name__)


def _positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not an integer: {value}") from e
    if n <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value}")
    return n


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ddlogs", description="Tail logs from Datadog")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser(
        "configure", help="Configure ddlogs with API credentials and site"
    )

    parser.add_argument(
        "-f",
        "--follow",
        action="store_true",
        help="Follow mode - continuously poll for new logs",
    )
    parser.add_argument("--service", help="Filter by service")
    parser.add_argument("--source", help="Filter by source")
    parser.add_argument("--host", help="Filter by host")
    parser.add_argument("-q", "--query", help="Raw Datadog query string")
    parser.add_argument(
        "-l",
        "--limit",
        type=_positive_int,
        default=DEFAULT_LIMIT,
        help=f"Number of logs to retrieve per request. Default: {DEFAULT_LIMIT}",
    )
    parser.add_argument(
        "--interval",
        type=_positive_int,
        default=int(DEFAULT_INTERVAL_S),
        help="Poll interval in seconds for follow mode "
        "(default: 12s to respect Datadog's 300 req/hour limit)",
    )
    parser.add_argument(
        "--since",
        default="1h",
        help="Initial time window (e.g. 30s, 10m, 1h, 1d). Default: 1h",
    )
    parser.add_argument(
        "--dedupe",
        action="store_true",
        help="Follow mode: skip records already emitted at the watermark instant (by log id)",
    )
    return parser


def _install_sigterm() -> None:
    # Handled like Ctrl-C in main(); no locks are taken inside the handler.
    def _handler(signum, frame):  # noqa: ARG001
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, _handler)


def run(args: argparse.Namespace) -> None:
    try:
        since = parse_since(args.since)
    except ValueError as e:
        raise SystemExit(str(e)) from e

    config = load_config()
    api_key, app_key = config.require_credentials()
    client = LogsClient(api_key, app_key, config.site)

    filters = Filters(
        service=args.service,
        source=args.source,
        host=args.host,
        raw_query=args.query,
    )

    if not args.follow:
        fetch_logs(client, filters, limit=args.limit, since=since)
        return

    _install_sigterm()
    follow_logs(
        client,
        filters,
        limit=args.limit,
        interval_s=args.interval,
        since=since,
        dedupe=args.dedupe,
    )


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging("ddlogs")

    try:
        if args.command == "configure":
            run_configure()
        else:
            run(args)
    except DdLogsError as e:
        logger.error("ddlogs failed", error=str(e), kind=type(e).__name__)
        raise SystemExit(str(e)) from e
    except KeyboardInterrupt:
        logger.info("interrupted, stopping")
        return
    except BrokenPipeError:
        # Consumer closed the pipe (e.g. `ddlogs | head`); keep exit-time flush quiet.
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        return


if __name__ == "__main__":
    main()
