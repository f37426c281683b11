"""
Runtime configuration.

Everything the export needs is collected into one ExportConfig and handed to
each component when it is built. Values come from environment variables and
can be overridden by an optional YAML file (CONFIG_FILE or --config). YAML keys
are the dataclass field names, e.g.:

    scope_ids: [1001, 1002]
    list_type: all
    output_dir: /tmp/reports
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

from .errors import ConfigError

DEFAULT_API_URL = "https://lxapi.lexiangla.com/cgi-bin"


@dataclass
class ExportConfig:
    app_key: str = ""
    app_secret: str = ""
    scope_ids: list = field(default_factory=list)
    api_url: str = DEFAULT_API_URL
    list_type: str | None = None
    file_prefix: str = "YEYX_document"
    local: bool = False
    output_dir: str = "."
    upload_url: str | None = None
    upload_token: str | None = None
    https_proxy: str | None = None
    page_size: int = 100
    concurrency: int = 5
    max_attempts: int = 4
    request_timeout: float | None = None
    # Generation time and source timestamps are shifted independently
    report_offset_hours: float = 8
    source_offset_hours: float = 8
    include_creator: bool = False

    @property
    def api_v1(self):
        return f"{self.api_url.rstrip('/')}/v1"

    def validate(self):
        """Raise ConfigError for anything that would make the run pointless."""
        missing = [name for name in ("app_key", "app_secret") if not getattr(self, name)]
        if missing:
            raise ConfigError(f"Missing required setting(s): {', '.join(missing)}")
        if not self.scope_ids:
            raise ConfigError("No scope ids configured, set CATEGORY_IDS")
        for name in ("page_size", "concurrency", "max_attempts"):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be at least 1, got {getattr(self, name)}")
        return self


def split_ids(value):
    """'a, b,,c' -> ['a', 'b', 'c']. Lists (from YAML) are normalised to strings."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]


def _flag(value):
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _optional_float(value):
    return float(value) if value not in (None, "") else None


def _optional_str(value):
    return str(value) if value not in (None, "") else None


def _int(value):
    # int(2.7) would silently truncate and int(True) would give 1
    if isinstance(value, (bool, float)):
        raise ValueError(f"expected a whole number, got {value!r}")
    return int(value)


# YAML values arrive already typed (or as strings); unlisted fields are optional strings
_CONVERTERS = {
    "app_key": lambda v: "" if v is None else str(v),
    "app_secret": lambda v: "" if v is None else str(v),
    "scope_ids": split_ids,
    "api_url": str,
    "file_prefix": str,
    "output_dir": str,
    "local": _flag,
    "include_creator": _flag,
    "page_size": _int,
    "concurrency": _int,
    "max_attempts": _int,
    "request_timeout": _optional_float,
    "report_offset_hours": float,
    "source_offset_hours": float,
}


def from_env(environ=None):
    """Build a config from environment variables only (no validation)."""
    env = os.environ if environ is None else environ
    try:
        return ExportConfig(
            app_key=env.get("CATALOG_APP_KEY", ""),
            app_secret=env.get("CATALOG_APP_SECRET", ""),
            scope_ids=split_ids(env.get("CATEGORY_IDS")),
            api_url=env.get("CATALOG_API_URL", DEFAULT_API_URL),
            list_type=env.get("DOCUMENT_LIST_TYPE") or None,
            file_prefix=env.get("REPORT_PREFIX", "YEYX_document"),
            local=env.get("ENV", "") == "local",
            output_dir=env.get("OUTPUT_DIR", "."),
            upload_url=env.get("UPLOAD_URL") or None,
            upload_token=env.get("UPLOAD_TOKEN") or None,
            https_proxy=env.get("HTTPS_PROXY") or None,
            page_size=int(env.get("PAGE_SIZE", "100")),
            concurrency=int(env.get("FETCH_CONCURRENCY", "5")),
            max_attempts=int(env.get("DELIVERY_ATTEMPTS", "4")),
            request_timeout=_optional_float(env.get("REQUEST_TIMEOUT")),
            report_offset_hours=float(env.get("REPORT_OFFSET_HOURS", "8")),
            source_offset_hours=float(env.get("SOURCE_OFFSET_HOURS", "8")),
            include_creator=_flag(env.get("INCLUDE_CREATOR", "false")),
        )
    except ValueError as e:
        raise ConfigError(f"Invalid numeric setting: {e}") from e


def apply_file(config, path):
    """
    Overlay the keys of a YAML mapping onto config. Unknown keys are rejected
    so a typo does not silently fall back to a default.
    """
    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    known = {f.name for f in fields(ExportConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown key(s) in {path}: {', '.join(unknown)}")

    for key, value in data.items():
        convert = _CONVERTERS.get(key, _optional_str)
        try:
            value = convert(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value for {key} in {path}: {value!r}") from e
        setattr(config, key, value)
    return config


def load_config(path=None, environ=None):
    """Environment first, then the YAML file (explicit path or CONFIG_FILE), then validate."""
    env = os.environ if environ is None else environ
    config = from_env(env)
    path = path or env.get("CONFIG_FILE")
    if path:
        apply_file(config, path)
    return config.validate()
