"""Typed configuration loader for chtop."""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from .common.relative_datetime import RelativeDateTime
from .contracts.error import BadInputError, IOErrorEnvelope

DEFAULT_URL = "http://127.0.0.1:8123"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(name: str, raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        normalized = raw.strip().lower()
        if normalized in _TRUE:
            return True
        if normalized in _FALSE:
            return False
    raise BadInputError(f"{name} must be boolean (got {raw!r})")


@dataclass
class ConnectionConfig:
    url: str = DEFAULT_URL
    user: str | None = None
    password: str | None = None
    cluster: str | None = None
    timeout: float = 30.0

    def validate(self) -> None:
        parsed = urlparse(self.url if "://" in self.url else f"http://{self.url}")
        if parsed.scheme not in {"http", "https"}:
            raise BadInputError("connection.url must use http or https")
        if not parsed.hostname:
            raise BadInputError("connection.url must include a host")
        if self.timeout <= 0:
            raise BadInputError("connection.timeout must be > 0")
        if self.cluster is not None and not self.cluster.strip():
            raise BadInputError("connection.cluster must not be empty when set")


@dataclass
class ViewConfig:
    delay_interval_ms: int = 3000
    # None means "group when a cluster is configured".
    group_by: bool | None = None
    no_subqueries: bool = False
    no_strip_hostname_suffix: bool = False
    start: str = "1h"
    end: str = ""
    queries_limit: int = 10_000
    logs_limit: int = 100
    start_view: str = "queries"

    def validate(self) -> None:
        if self.delay_interval_ms <= 0:
            raise BadInputError("view.delay_interval_ms must be > 0")
        if self.queries_limit <= 0 or self.logs_limit <= 0:
            raise BadInputError("view.queries_limit and view.logs_limit must be > 0")
        start = RelativeDateTime.parse(self.start)
        end = RelativeDateTime.parse(self.end)
        if start.date_time is not None and end.date_time is not None:
            if start.resolve() > end.resolve():
                raise BadInputError("view.start must not be later than view.end")
        if not self.start_view.strip():
            raise BadInputError("view.start_view must not be empty")


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: str | None = None
    json: bool = False

    def validate(self) -> None:
        if logging.getLevelName(self.level.upper()) not in range(0, 60):
            raise BadInputError(f"logging.level {self.level!r} is not a logging level")


def _section(data: Mapping[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise BadInputError(f"[{name}] section must be a table")
    return dict(section)


def _build(cls: type[Any], name: str, values: dict[str, Any]) -> Any:
    known = {item.name for item in fields(cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise BadInputError(f"Unknown keys in [{name}]: {', '.join(unknown)}")
    return cls(**values)


@dataclass
class AppConfig:
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    view: ViewConfig = field(default_factory=ViewConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def delay_interval(self) -> float:
        """Refresh interval in seconds."""

        return self.view.delay_interval_ms / 1000.0

    @property
    def group_by(self) -> bool:
        if self.view.group_by is None:
            return self.connection.cluster is not None
        return self.view.group_by

    @classmethod
    def load(cls, path: Path | None) -> AppConfig:
        if path is None:
            cfg = cls()
        else:
            try:
                data = tomllib.loads(path.read_text(encoding="utf-8"))
            except FileNotFoundError as exc:
                raise BadInputError(f"Config file not found: {path}") from exc
            except OSError as exc:
                raise IOErrorEnvelope(f"Cannot read config file {path}: {exc}") from exc
            except tomllib.TOMLDecodeError as exc:
                raise BadInputError(f"Invalid TOML: {exc}") from exc
            cfg = cls.from_dict(data)
        cfg.apply_env_overrides(os.environ)
        cfg.validate()
        return cfg

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppConfig:
        connection = _section(data, "connection")
        if "timeout" in connection:
            try:
                connection["timeout"] = float(connection["timeout"])
            except (TypeError, ValueError) as exc:
                raise BadInputError("connection.timeout must be a number") from exc

        view = _section(data, "view")
        for key in ("no_subqueries", "no_strip_hostname_suffix"):
            if key in view:
                view[key] = _parse_bool(f"view.{key}", view[key])
        if view.get("group_by") is not None:
            view["group_by"] = _parse_bool("view.group_by", view["group_by"])
        for key in ("delay_interval_ms", "queries_limit", "logs_limit"):
            if key in view:
                try:
                    view[key] = int(view[key])
                except (TypeError, ValueError) as exc:
                    raise BadInputError(f"view.{key} must be an integer") from exc

        logging_section = _section(data, "logging")
        if "json" in logging_section:
            logging_section["json"] = _parse_bool("logging.json", logging_section["json"])

        return cls(
            connection=_build(ConnectionConfig, "connection", connection),
            view=_build(ViewConfig, "view", view),
            logging=_build(LoggingConfig, "logging", logging_section),
        )

    def apply_env_overrides(self, env: Mapping[str, str]) -> None:
        connection_mapping: dict[str, tuple[str, Callable[[str], Any]]] = {
            "CHTOP_URL": ("url", str),
            "CLICKHOUSE_USER": ("user", str),
            "CLICKHOUSE_PASSWORD": ("password", str),
            "CHTOP_CLUSTER": ("cluster", str),
            "CHTOP_TIMEOUT": ("timeout", float),
        }
        for key, (attr, caster) in connection_mapping.items():
            raw_value = env.get(key)
            if raw_value is None:
                continue
            try:
                value = caster(raw_value)
            except ValueError as exc:
                raise BadInputError(f"Invalid env override {key}={raw_value!r}") from exc
            setattr(self.connection, attr, value)

        raw_delay = env.get("CHTOP_DELAY_INTERVAL")
        if raw_delay is not None:
            try:
                self.view.delay_interval_ms = int(raw_delay)
            except ValueError as exc:
                raise BadInputError(
                    f"Invalid env override CHTOP_DELAY_INTERVAL={raw_delay!r}"
                ) from exc

        raw_level = env.get("CHTOP_LOG_LEVEL")
        if raw_level is not None:
            self.logging.level = raw_level.strip().upper()

    def validate(self) -> None:
        self.connection.validate()
        self.view.validate()
        self.logging.validate()


DEFAULT_CONFIG = AppConfig()


def load_app_config(path: str | None) -> AppConfig:
    config_path = Path(path) if path else None
    return AppConfig.load(config_path)


__all__ = [
    "AppConfig",
    "ConnectionConfig",
    "DEFAULT_CONFIG",
    "DEFAULT_URL",
    "LoggingConfig",
    "ViewConfig",
    "load_app_config",
]
