"""Configuration module: frozen dataclass built from YAML, env vars and CLI args."""

import argparse
import logging
import os
from dataclasses import dataclass, fields
from datetime import datetime, timezone

import yaml

from logimport.providers import PREVIEW_BYTE_LIMIT, PREVIEW_LINE_LIMIT

logger = logging.getLogger(__name__)


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class ImportConfig:
    api_url: str = "http://localhost:8080/api/v1"
    request_timeout: float = 30.0
    chunk_size: int = 1000
    preview_lines: int = 100
    preview_bytes: int = 10 * 1024
    page_limit: int = 10000
    page_delay: float = 0.1
    empty_page_delay: float = 1.0
    aws_region: str = "us-east-1"
    aws_profile: str = "default"
    smart_decoder: bool = True
    force_timezone: str = ""
    force_start_year: str = ""
    force_start_month: str = ""
    force_start_day: str = ""
    log_level: str = "INFO"

    def __post_init__(self):
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if not 1 <= self.preview_lines <= PREVIEW_LINE_LIMIT:
            raise ValueError(
                f"preview_lines must be between 1 and {PREVIEW_LINE_LIMIT}, got {self.preview_lines}"
            )
        if not 1 <= self.preview_bytes <= PREVIEW_BYTE_LIMIT:
            raise ValueError(
                f"preview_bytes must be between 1 and {PREVIEW_BYTE_LIMIT}, got {self.preview_bytes}"
            )


# field name -> environment variable
_ENV_VARS = {
    "api_url": "LOGIMPORT_API_URL",
    "request_timeout": "REQUEST_TIMEOUT",
    "chunk_size": "CHUNK_SIZE",
    "preview_lines": "PREVIEW_LINES",
    "preview_bytes": "PREVIEW_BYTES",
    "page_limit": "PAGE_LIMIT",
    "page_delay": "PAGE_DELAY",
    "empty_page_delay": "EMPTY_PAGE_DELAY",
    "aws_region": "AWS_REGION",
    "aws_profile": "AWS_PROFILE",
    "smart_decoder": "SMART_DECODER",
    "force_timezone": "FORCE_TIMEZONE",
    "force_start_year": "FORCE_START_YEAR",
    "force_start_month": "FORCE_START_MONTH",
    "force_start_day": "FORCE_START_DAY",
    "log_level": "LOG_LEVEL",
}

_FIELD_TYPES = {f.name: f.type for f in fields(ImportConfig)}


def _coerce(name: str, value):
    kind = _FIELD_TYPES[name]
    try:
        if kind in (bool, "bool"):
            return _parse_bool(value)
        if kind in (int, "int"):
            return int(value)
        if kind in (float, "float"):
            return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid value {value!r} for {name}") from exc
    return str(value)


def load_yaml_config(path: str | None) -> dict:
    """Load settings from a YAML file. Returns an empty dict if no path or file."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    if not isinstance(data, dict):
        logger.warning("Config file %s is not a mapping, ignoring it", path)
        return {}
    logger.info("Loaded YAML config from %s", path)
    return data


def build_config(yaml_data: dict | None = None, overrides: dict | None = None) -> ImportConfig:
    """Merge defaults <- YAML <- env vars <- explicit overrides (highest priority)."""
    kwargs: dict = {}

    for key, value in (yaml_data or {}).items():
        key = key.replace("-", "_")
        if key in _FIELD_TYPES:
            kwargs[key] = _coerce(key, value)
        else:
            logger.warning("Unknown config key %r ignored", key)

    for key, env_name in _ENV_VARS.items():
        if env_name in os.environ:
            kwargs[key] = _coerce(key, os.environ[env_name])

    for key, value in (overrides or {}).items():
        if value is not None:
            kwargs[key] = _coerce(key, value)

    return ImportConfig(**kwargs)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Import log files or CloudWatch streams into the log backend"
    )
    parser.add_argument("--config", type=str, default=None,
                        help="YAML config file (default: $LOGIMPORT_CONFIG)")
    parser.add_argument("--api-url", type=str, default=None)
    parser.add_argument("--chunk-size", type=int, default=None)
    parser.add_argument("--request-timeout", type=float, default=None)
    parser.add_argument("--timezone", dest="force_timezone", type=str, default=None)
    parser.add_argument("--start-year", dest="force_start_year", type=str, default=None,
                        help="Year assumed for timestamps that carry none")
    parser.add_argument("--start-month", dest="force_start_month", type=str, default=None)
    parser.add_argument("--start-day", dest="force_start_day", type=str, default=None)
    parser.add_argument("--no-smart-decoder", action="store_true", default=False)
    parser.add_argument("--log-level", type=str, default=None)
    parser.add_argument("--yes", "-y", action="store_true", default=False,
                        help="Accept the detected pattern without asking")

    sub = parser.add_subparsers(dest="source", required=True)

    file_cmd = sub.add_parser("file", help="Import a local log file")
    file_cmd.add_argument("path")

    cw_cmd = sub.add_parser("cloudwatch", help="Import one CloudWatch log stream")
    cw_cmd.add_argument("--group", required=True)
    cw_cmd.add_argument("--stream", required=True)
    _add_time_range(cw_cmd)

    streams_cmd = sub.add_parser("streams", help="List CloudWatch groups and streams")
    _add_time_range(streams_cmd)

    return parser


def _add_time_range(cmd: argparse.ArgumentParser):
    cmd.add_argument("--since", type=str, default=None,
                     help="ISO-8601 start of the time window (default: 24h ago)")
    cmd.add_argument("--until", type=str, default=None,
                     help="ISO-8601 end of the time window (default: now)")
    cmd.add_argument("--region", dest="aws_region", type=str, default=None)
    cmd.add_argument("--profile", dest="aws_profile", type=str, default=None)


def parse_time(value: str | None, default: datetime | None = None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not value:
        return default
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValueError(f"Invalid timestamp {value!r}, expected ISO-8601") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def load_config(argv=None) -> tuple[ImportConfig, argparse.Namespace]:
    """Parse CLI args and build the effective ImportConfig.

    Pass argv for testability; when None, argparse reads sys.argv. Invalid
    values from any layer end in parser.error (exit code 2).
    """
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    yaml_data = load_yaml_config(args.config or os.environ.get("LOGIMPORT_CONFIG"))
    overrides = {
        "api_url": args.api_url,
        "chunk_size": args.chunk_size,
        "request_timeout": args.request_timeout,
        "force_timezone": args.force_timezone,
        "force_start_year": args.force_start_year,
        "force_start_month": args.force_start_month,
        "force_start_day": args.force_start_day,
        "log_level": args.log_level,
        "aws_region": getattr(args, "aws_region", None),
        "aws_profile": getattr(args, "aws_profile", None),
        "smart_decoder": False if args.no_smart_decoder else None,
    }
    try:
        config = build_config(yaml_data, overrides)
        parse_time(getattr(args, "since", None))
        parse_time(getattr(args, "until", None))
    except ValueError as exc:
        parser.error(str(exc))
    return config, args
