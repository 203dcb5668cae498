"""Command line entry point: flags, configuration and logging setup."""

from __future__ import annotations

import argparse
import contextlib
import json
import logging
import os
import sys
from collections.abc import Sequence
from logging.handlers import RotatingFileHandler

from textual.logging import TextualHandler

from . import __version__
from .config import DEFAULT_URL, AppConfig, load_app_config
from .contracts.error import Exit, IOErrorEnvelope, guard_cli
from .views.registry import VIEW_NAMES, get_view

logger = logging.getLogger("chtop")

DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEFAULT_LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"
DEFAULT_LOG_MAX_BYTES = 5_000_000
DEFAULT_LOG_BACKUP_COUNT = 5


class JsonFormatter(logging.Formatter):
    """Render log records as JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, DEFAULT_LOG_DATEFMT),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(
    use_json: bool = False,
    log_file: str | None = None,
    *,
    level: str = "INFO",
    tui: bool = True,
    max_bytes: int = DEFAULT_LOG_MAX_BYTES,
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT,
) -> None:
    """Configure the ``chtop`` logger.

    While the dashboard owns the terminal, console output goes through
    Textual's handler (visible with ``textual console``) instead of stderr.
    """

    formatter: logging.Formatter
    if use_json:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(DEFAULT_LOG_FORMAT, DEFAULT_LOG_DATEFMT)

    for handler in list(logger.handlers):
        with contextlib.suppress(Exception):
            handler.close()
        logger.removeHandler(handler)

    logger.setLevel(level.upper())
    logger.propagate = False

    stream: logging.Handler = TextualHandler() if tui else logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    if log_file:
        try:
            handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        except OSError as exc:
            raise IOErrorEnvelope(f"Cannot open log file {log_file}: {exc}") from exc
        handler.setFormatter(formatter)
        logger.addHandler(handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chtop",
        description="Top-like terminal dashboard for ClickHouse queries, merges and logs.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    connection = parser.add_argument_group("connection")
    connection.add_argument(
        "--url",
        default=None,
        help=f"ClickHouse HTTP interface URL (env CHTOP_URL, default: {DEFAULT_URL})",
    )
    connection.add_argument("--user", default=None, help="User name (env CLICKHOUSE_USER)")
    connection.add_argument(
        "--password", default=None, help="Password (env CLICKHOUSE_PASSWORD)"
    )
    connection.add_argument(
        "--cluster",
        default=None,
        help="Read system tables of every replica of this cluster (env CHTOP_CLUSTER)",
    )

    view = parser.add_argument_group("view")
    view.add_argument(
        "--delay-interval",
        type=int,
        default=None,
        metavar="MS",
        help="Refresh interval in milliseconds (default: 3000)",
    )
    view.add_argument(
        "--group-by",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Fold sub-queries into their initial query (default: on with --cluster)",
    )
    view.add_argument(
        "--no-subqueries",
        action="store_true",
        default=None,
        help="Do not add sub-query counters to the initial query",
    )
    view.add_argument(
        "--start",
        default=None,
        help="Start of the time range: 1h, 30m, 2d 3h or YYYY-MM-DD[ HH:MM:SS] (default: 1h)",
    )
    view.add_argument(
        "--end",
        default=None,
        help="End of the time range, same formats as --start; empty means now",
    )
    view.add_argument(
        "--no-strip-hostname-suffix",
        action="store_true",
        default=None,
        help="Show host names in full instead of cutting the common prefix/suffix",
    )
    view.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Rows to fetch for the finished-queries views (default: 100)",
    )
    view.add_argument(
        "--view",
        choices=VIEW_NAMES,
        default=None,
        help="View to start with (default: queries)",
    )

    parser.add_argument("--config", default=None, help="Path to a TOML config file")
    parser.add_argument("--log-file", default=None, help="Write logs to a rotating file")
    parser.add_argument("--log-json", action="store_true", default=None, help="JSON log lines")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Log level (default: INFO)",
    )
    return parser


def apply_cli_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Flags that were given win over the config file and the environment."""

    connection_flags = {
        "url": args.url,
        "user": args.user,
        "password": args.password,
        "cluster": args.cluster,
    }
    for attr, value in connection_flags.items():
        if value is not None:
            setattr(config.connection, attr, value)

    view_flags = {
        "delay_interval_ms": args.delay_interval,
        "group_by": args.group_by,
        "no_subqueries": args.no_subqueries,
        "no_strip_hostname_suffix": args.no_strip_hostname_suffix,
        "start": args.start,
        "end": args.end,
        "logs_limit": args.limit,
        "start_view": args.view,
    }
    for attr, value in view_flags.items():
        if value is not None:
            setattr(config.view, attr, value)

    if args.log_file is not None:
        config.logging.file = args.log_file
    if args.log_json is not None:
        config.logging.json = args.log_json
    if args.log_level is not None:
        config.logging.level = args.log_level
    config.validate()
    return config


@guard_cli
def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    cfg_path = args.config or os.getenv("CHTOP_CONFIG")
    config = apply_cli_overrides(load_app_config(cfg_path), args)
    get_view(config.view.start_view)

    configure_logging(
        config.logging.json,
        config.logging.file,
        level=config.logging.level,
    )
    if cfg_path:
        logger.info("Loaded config from %s", cfg_path)
    logger.info(
        "Starting chtop %s against %s (cluster: %s, delay interval: %d ms)",
        __version__,
        config.connection.url,
        config.connection.cluster or "none",
        config.view.delay_interval_ms,
    )

    from .tui.app import run_tui

    run_tui(config)
    return int(Exit.OK)


def console_main() -> None:
    """Entry point for console_scripts."""

    raise SystemExit(main(sys.argv[1:]))


__all__ = [
    "JsonFormatter",
    "apply_cli_overrides",
    "build_parser",
    "configure_logging",
    "console_main",
    "main",
]
