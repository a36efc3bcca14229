"""Configuration loading utilities for the schema designer server."""

from __future__ import annotations

import argparse
import json
import math
import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Sequence

ENV_PREFIX = "SCHEMA_DESIGNER_"

BOOL_TRUE = {"1", "true", "t", "yes", "y", "on"}
BOOL_FALSE = {"0", "false", "f", "no", "n", "off"}

DEFAULT_HTTP_HOST = "127.0.0.1"
DEFAULT_HTTP_PORT = 8766
DEFAULT_HTTP_PATH = "/mcp"
DEFAULT_METRICS_PATH = "/metrics"
DEFAULT_MAX_DEPTH = 100
MAX_DEPTH_CEILING = 200
DEFAULT_HISTORY_LIMIT = 100
DEFAULT_ID_LENGTH = 9
DEFAULT_DROP_SPLIT = 0.5
DEFAULT_PASTE_TARGET = "selection"
DEFAULT_CHILDREN_KEY = "body"
DEFAULT_GRID_SIZE = 20
DEFAULT_SHUTDOWN_TIMEOUT = "5s"

PASTE_TARGETS = ("selection", "root")
CHILDREN_KEYS = ("body", "children")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

T_DURATION_UNITS = {"s": 1, "m": 60, "h": 3600}

ENV_FIELD_MAP = {
    "config_file": f"{ENV_PREFIX}CONFIG_FILE",
    "document_path": f"{ENV_PREFIX}DOCUMENT_PATH",
    "catalog_file": f"{ENV_PREFIX}CATALOG_FILE",
    "enable_stdio": f"{ENV_PREFIX}ENABLE_STDIO",
    "enable_http": f"{ENV_PREFIX}ENABLE_HTTP",
    "enable_metrics": f"{ENV_PREFIX}ENABLE_METRICS",
    "http_host": f"{ENV_PREFIX}HTTP_HOST",
    "http_port": f"{ENV_PREFIX}HTTP_PORT",
    "http_path": f"{ENV_PREFIX}HTTP_PATH",
    "metrics_path": f"{ENV_PREFIX}METRICS_PATH",
    "max_depth": f"{ENV_PREFIX}MAX_DEPTH",
    "history_limit": f"{ENV_PREFIX}HISTORY_LIMIT",
    "id_length": f"{ENV_PREFIX}ID_LENGTH",
    "drop_split": f"{ENV_PREFIX}DROP_SPLIT",
    "paste_target": f"{ENV_PREFIX}PASTE_TARGET",
    "children_key": f"{ENV_PREFIX}CHILDREN_KEY",
    "grid_size": f"{ENV_PREFIX}GRID_SIZE",
    "snap_to_grid": f"{ENV_PREFIX}SNAP_TO_GRID",
    "log_level": f"{ENV_PREFIX}LOG_LEVEL",
    "shutdown_timeout": f"{ENV_PREFIX}SHUTDOWN_TIMEOUT",
}

DEFAULT_VALUES: dict[str, Any] = {
    "config_file": None,
    "document_path": None,
    "catalog_file": None,
    "enable_stdio": True,
    "enable_http": False,
    "enable_metrics": False,
    "http_host": DEFAULT_HTTP_HOST,
    "http_port": DEFAULT_HTTP_PORT,
    "http_path": DEFAULT_HTTP_PATH,
    "metrics_path": DEFAULT_METRICS_PATH,
    "max_depth": DEFAULT_MAX_DEPTH,
    "history_limit": DEFAULT_HISTORY_LIMIT,
    "id_length": DEFAULT_ID_LENGTH,
    "drop_split": DEFAULT_DROP_SPLIT,
    "paste_target": DEFAULT_PASTE_TARGET,
    "children_key": DEFAULT_CHILDREN_KEY,
    "grid_size": DEFAULT_GRID_SIZE,
    "snap_to_grid": True,
    "log_level": "INFO",
    "shutdown_timeout": DEFAULT_SHUTDOWN_TIMEOUT,
}


class ConfigError(ValueError):
    """Raised when configuration values are invalid."""


@dataclass(slots=True, frozen=True)
class DesignerOptions:
    """Engine-facing settings shared by the controller and its collaborators."""

    max_depth: int = DEFAULT_MAX_DEPTH
    history_limit: int = DEFAULT_HISTORY_LIMIT
    id_length: int = DEFAULT_ID_LENGTH
    drop_split: float = DEFAULT_DROP_SPLIT
    paste_target: str = DEFAULT_PASTE_TARGET
    children_key: str = DEFAULT_CHILDREN_KEY
    grid_size: int = DEFAULT_GRID_SIZE
    snap_to_grid: bool = True


@dataclass(slots=True)
class Config:
    """Configuration model for the schema designer server."""

    document_path: Path | None
    catalog_file: Path | None
    enable_stdio: bool
    enable_http: bool
    enable_metrics: bool
    http_host: str
    http_port: int
    http_path: str
    metrics_path: str
    max_depth: int
    history_limit: int
    id_length: int
    drop_split: float
    paste_target: str
    children_key: str
    grid_size: int
    snap_to_grid: bool
    log_level: str
    shutdown_timeout: timedelta
    config_file: Path | None = None

    def designer_options(self) -> DesignerOptions:
        return DesignerOptions(
            max_depth=self.max_depth,
            history_limit=self.history_limit,
            id_length=self.id_length,
            drop_split=self.drop_split,
            paste_target=self.paste_target,
            children_key=self.children_key,
            grid_size=self.grid_size,
            snap_to_grid=self.snap_to_grid,
        )


def load_config(
    argv: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """Load configuration from CLI arguments, environment variables, and optional file."""

    parser = _build_arg_parser()
    parsed = parser.parse_args(argv)
    cli_values = {k: v for k, v in vars(parsed).items() if v is not None}

    env_values = _extract_env_values(environ if environ is not None else os.environ)

    config_path_value = cli_values.get("config_file") or env_values.get("config_file")
    file_values = _load_config_file(config_path_value)

    merged: dict[str, Any] = {}
    _merge_layer(merged, DEFAULT_VALUES)
    _merge_layer(merged, file_values)
    _merge_layer(merged, env_values)
    _merge_layer(merged, cli_values)

    config = _normalize_values(merged, config_path_value)

    _maybe_write_config_file(config)
    return config


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="schema-designer",
        description="Schema designer MCP server configuration flags.",
        add_help=False,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("-h", "--help", action="help", help="Show this help message and exit.")
    parser.add_argument(
        "--config-file",
        dest="config_file",
        metavar="PATH",
        help="Path to a JSON configuration file. Default: none.",
    )
    parser.add_argument(
        "--document-path",
        dest="document_path",
        metavar="PATH",
        help="JSON document loaded at start and saved after every edit (default: in-memory only).",
    )
    parser.add_argument(
        "--catalog-file",
        dest="catalog_file",
        metavar="PATH",
        help="JSON component catalog replacing the built-in templates (default: none).",
    )

    parser.add_argument(
        "--enable-stdio",
        dest="enable_stdio",
        metavar="BOOL",
        help="Enable the MCP stdio transport (default: true).",
    )
    parser.add_argument(
        "--enable-http",
        dest="enable_http",
        metavar="BOOL",
        help="Enable the streamable HTTP transport (default: false).",
    )
    parser.add_argument(
        "--enable-metrics",
        dest="enable_metrics",
        metavar="BOOL",
        help="Expose Prometheus metrics (requires --enable-http true; default: false).",
    )
    parser.add_argument("--http-host", dest="http_host", metavar="HOST", help=f"HTTP listener host (default: {DEFAULT_HTTP_HOST}).")
    parser.add_argument("--http-port", dest="http_port", metavar="PORT", help=f"HTTP listener port (default: {DEFAULT_HTTP_PORT}).")
    parser.add_argument("--http-path", dest="http_path", metavar="PATH", help=f"HTTP path for MCP requests (default: {DEFAULT_HTTP_PATH}).")
    parser.add_argument("--metrics-path", dest="metrics_path", metavar="PATH", help=f"Metrics endpoint path (default: {DEFAULT_METRICS_PATH}).")

    parser.add_argument(
        "--max-depth",
        dest="max_depth",
        metavar="INT",
        help=f"Maximum nesting depth for documents and traversals (default: {DEFAULT_MAX_DEPTH}).",
    )
    parser.add_argument(
        "--history-limit",
        dest="history_limit",
        metavar="INT",
        help=f"Maximum undo steps kept (0 for unlimited; default: {DEFAULT_HISTORY_LIMIT}).",
    )
    parser.add_argument(
        "--id-length",
        dest="id_length",
        metavar="INT",
        help=f"Random token length used in generated node ids (default: {DEFAULT_ID_LENGTH}).",
    )
    parser.add_argument(
        "--drop-split",
        dest="drop_split",
        metavar="FLOAT",
        help=f"Pointer height fraction at or below which drops prepend (default: {DEFAULT_DROP_SPLIT}).",
    )
    parser.add_argument(
        "--paste-target",
        dest="paste_target",
        metavar="MODE",
        help="Default paste parent when none is given (selection, root). Default: selection.",
    )
    parser.add_argument(
        "--children-key",
        dest="children_key",
        metavar="KEY",
        help="Child slot key written on export (body, children). Default: body.",
    )
    parser.add_argument("--grid-size", dest="grid_size", metavar="INT", help=f"Free-form canvas grid size in px (default: {DEFAULT_GRID_SIZE}).")
    parser.add_argument("--snap-to-grid", dest="snap_to_grid", metavar="BOOL", help="Snap free-form canvas drops to the grid (default: true).")
    parser.add_argument("--log-level", dest="log_level", metavar="LEVEL", help="Logging level (default: INFO).")
    parser.add_argument("--shutdown-timeout", dest="shutdown_timeout", metavar="DURATION", help="Graceful shutdown timeout (default: 5s).")

    return parser


def _extract_env_values(env: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for field, env_name in ENV_FIELD_MAP.items():
        if env_name in env:
            values[field] = env[env_name]
    return values


def _load_config_file(path_value: str | Path | None) -> dict[str, Any]:
    if not path_value:
        return {}
    path = _parse_path(path_value, field="config_file")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file is not valid JSON: {path}") from exc
    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a JSON object")
    result: dict[str, Any] = {k: v for k, v in data.items() if k in DEFAULT_VALUES}
    result["config_file"] = str(path)
    return result


def _merge_layer(base: MutableMapping[str, Any], overrides: Mapping[str, Any]) -> None:
    for key, value in overrides.items():
        if value is None:
            continue
        base[key] = value


def _normalize_values(values: Mapping[str, Any], config_path_value: str | Path | None) -> Config:
    document_path = _parse_optional_path(values.get("document_path"), field="document_path")
    catalog_file = _parse_optional_path(values.get("catalog_file"), field="catalog_file")

    enable_stdio = _parse_bool(values.get("enable_stdio"), default=DEFAULT_VALUES["enable_stdio"])
    enable_http = _parse_bool(values.get("enable_http"), default=DEFAULT_VALUES["enable_http"])
    enable_metrics = _parse_bool(values.get("enable_metrics"), default=DEFAULT_VALUES["enable_metrics"])
    if enable_metrics and not enable_http:
        raise ConfigError("enable_metrics requires enable_http to be true")

    http_host = str(values.get("http_host", DEFAULT_VALUES["http_host"]))
    http_port = _parse_int(values.get("http_port", DEFAULT_VALUES["http_port"]), field="http_port", minimum=0, maximum=65535)
    http_path = str(values.get("http_path", DEFAULT_VALUES["http_path"]))
    metrics_path = str(values.get("metrics_path", DEFAULT_VALUES["metrics_path"]))
    if enable_metrics and http_path == metrics_path:
        raise ConfigError("http_path and metrics_path must be distinct")

    max_depth = _parse_int(values.get("max_depth", DEFAULT_VALUES["max_depth"]), field="max_depth", minimum=1, maximum=MAX_DEPTH_CEILING)
    history_limit = _parse_int(values.get("history_limit", DEFAULT_VALUES["history_limit"]), field="history_limit", minimum=0)
    id_length = _parse_int(values.get("id_length", DEFAULT_VALUES["id_length"]), field="id_length", minimum=4, maximum=32)
    drop_split = _parse_float(values.get("drop_split", DEFAULT_VALUES["drop_split"]), field="drop_split", minimum=0.0, maximum=1.0)

    paste_target = str(values.get("paste_target", DEFAULT_VALUES["paste_target"])).strip().lower()
    if paste_target not in PASTE_TARGETS:
        raise ConfigError("paste_target must be one of: selection, root")
    children_key = str(values.get("children_key", DEFAULT_VALUES["children_key"])).strip().lower()
    if children_key not in CHILDREN_KEYS:
        raise ConfigError("children_key must be one of: body, children")

    grid_size = _parse_int(values.get("grid_size", DEFAULT_VALUES["grid_size"]), field="grid_size", minimum=1)
    snap_to_grid = _parse_bool(values.get("snap_to_grid"), default=DEFAULT_VALUES["snap_to_grid"])

    log_level = str(values.get("log_level", DEFAULT_VALUES["log_level"])).strip().upper()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f"log_level must be one of: {', '.join(LOG_LEVELS)}")

    shutdown_timeout = _parse_duration(values.get("shutdown_timeout", DEFAULT_VALUES["shutdown_timeout"]), default_unit="s", field="shutdown_timeout")

    config_file_path = _parse_optional_path(config_path_value, field="config_file")

    return Config(
        document_path=document_path,
        catalog_file=catalog_file,
        enable_stdio=enable_stdio,
        enable_http=enable_http,
        enable_metrics=enable_metrics,
        http_host=http_host,
        http_port=http_port,
        http_path=http_path,
        metrics_path=metrics_path,
        max_depth=max_depth,
        history_limit=history_limit,
        id_length=id_length,
        drop_split=drop_split,
        paste_target=paste_target,
        children_key=children_key,
        grid_size=grid_size,
        snap_to_grid=snap_to_grid,
        log_level=log_level,
        shutdown_timeout=shutdown_timeout,
        config_file=config_file_path,
    )


def _maybe_write_config_file(config: Config) -> None:
    path = config.config_file
    if path is None:
        return

    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        return

    payload = _serialize_config(config)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


def _serialize_config(config: Config) -> dict[str, Any]:
    return {
        "config_file": str(config.config_file) if config.config_file else None,
        "document_path": str(config.document_path) if config.document_path else None,
        "catalog_file": str(config.catalog_file) if config.catalog_file else None,
        "enable_stdio": config.enable_stdio,
        "enable_http": config.enable_http,
        "enable_metrics": config.enable_metrics,
        "http_host": config.http_host,
        "http_port": config.http_port,
        "http_path": config.http_path,
        "metrics_path": config.metrics_path,
        "max_depth": config.max_depth,
        "history_limit": config.history_limit,
        "id_length": config.id_length,
        "drop_split": config.drop_split,
        "paste_target": config.paste_target,
        "children_key": config.children_key,
        "grid_size": config.grid_size,
        "snap_to_grid": config.snap_to_grid,
        "log_level": config.log_level,
        "shutdown_timeout": _format_duration(config.shutdown_timeout, preferred_unit="s"),
    }


def _format_duration(duration: timedelta, *, preferred_unit: str) -> str:
    total_seconds = int(duration.total_seconds())
    factor = T_DURATION_UNITS.get(preferred_unit, 1)
    if factor and total_seconds % factor == 0:
        return f"{total_seconds // factor}{preferred_unit}"
    return f"{total_seconds}s"


def _parse_bool(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in BOOL_TRUE:
            return True
        if lowered in BOOL_FALSE:
            return False
    raise ConfigError(f"Invalid boolean value: {value!r}")


def _parse_int(value: Any, *, field: str, minimum: int | None = None, maximum: int | None = None) -> int:
    try:
        if isinstance(value, (int, float)):
            int_value = int(value)
        else:
            int_value = int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid integer for {field}: {value!r}") from exc

    if minimum is not None and int_value < minimum:
        raise ConfigError(f"{field} must be >= {minimum}")
    if maximum is not None and int_value > maximum:
        raise ConfigError(f"{field} must be <= {maximum}")
    return int_value


def _parse_float(value: Any, *, field: str, minimum: float | None = None, maximum: float | None = None) -> float:
    try:
        if isinstance(value, (int, float)):
            float_value = float(value)
        else:
            float_value = float(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid number for {field}: {value!r}") from exc

    if not math.isfinite(float_value):
        raise ConfigError(f"{field} must be a finite number")
    if minimum is not None and float_value < minimum:
        raise ConfigError(f"{field} must be >= {minimum}")
    if maximum is not None and float_value > maximum:
        raise ConfigError(f"{field} must be <= {maximum}")
    return float_value


def _parse_duration(value: Any, *, default_unit: str, field: str) -> timedelta:
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        seconds = float(value)
        if seconds < 0:
            raise ConfigError(f"{field} must be positive")
        return timedelta(seconds=seconds)
    if not isinstance(value, str):
        raise ConfigError(f"Invalid duration for {field}: {value!r}")

    stripped = value.strip()
    if not stripped:
        raise ConfigError(f"{field} may not be empty")

    unit = default_unit
    number_part = stripped
    if stripped[-1].lower() in T_DURATION_UNITS:
        unit = stripped[-1].lower()
        number_part = stripped[:-1]
    if not number_part or not number_part.isdigit():
        raise ConfigError(f"{field} must be a positive integer optionally suffixed with s, m, or h")
    return timedelta(seconds=int(number_part) * T_DURATION_UNITS[unit])


def _parse_path(value: Any, *, field: str) -> Path:
    if isinstance(value, Path):
        return value.expanduser().resolve()
    if not isinstance(value, str):
        raise ConfigError(f"Invalid path for {field}: {value!r}")
    stripped = value.strip()
    if not stripped:
        raise ConfigError(f"{field} may not be empty")
    return Path(stripped).expanduser().resolve()


def _parse_optional_path(value: Any, *, field: str) -> Path | None:
    if value in (None, ""):
        return None
    return _parse_path(value, field=field)
