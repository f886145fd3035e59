"""Server configuration and pull request evaluation options."""

from __future__ import annotations

import os
import re
from collections.abc import Callable, Mapping
from dataclasses import MISSING, dataclass, field, fields
from datetime import timedelta
from typing import Any

import yaml

DEFAULT_POLICY_PATH = ".policy.yml"
DEFAULT_SHARED_REPOSITORY = ".github"
DEFAULT_SHARED_POLICY_PATH = "policy.yml"
DEFAULT_STATUS_CHECK_CONTEXT = "policy-bot"


class ConfigError(ValueError):
    """The configuration document is not valid."""


_NULLS = frozenset({"", "~", "null", "Null", "NULL"})

_TRUE = frozenset({"y", "Y", "yes", "Yes", "YES", "true", "True", "TRUE", "on", "On", "ON"})
_FALSE = frozenset({"n", "N", "no", "No", "NO", "false", "False", "FALSE", "off", "Off", "OFF"})

_KB = 1 << 10
_BYTE_UNITS = {
    "": 1,
    "b": 1,
    "byte": 1,
    "bytes": 1,
    "k": _KB,
    "kb": _KB,
    "m": _KB**2,
    "mb": _KB**2,
    "g": _KB**3,
    "gb": _KB**3,
    "t": _KB**4,
    "tb": _KB**4,
    "p": _KB**5,
    "pb": _KB**5,
    "e": _KB**6,
    "eb": _KB**6,
}

# Durations in microseconds per unit.
_DURATION_UNITS = {
    "ns": 0.001,
    "us": 1,
    "µs": 1,
    "μs": 1,
    "ms": 1_000,
    "s": 1_000_000,
    "m": 60_000_000,
    "h": 3_600_000_000,
}
_DURATION_PART = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def _scalar(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"{where}: expected a scalar value")
    return value


def _to_str(value: Any, where: str) -> str:
    text = _scalar(value, where)
    return "" if text in _NULLS else text


def _to_bool(value: Any, where: str) -> bool:
    text = _scalar(value, where)
    if text in _NULLS or text in _FALSE:
        return False
    if text in _TRUE:
        return True
    raise ConfigError(f"{where}: cannot parse {text!r} as a boolean")


def _parse_int(text: str) -> int:
    cleaned = text.replace("_", "")
    try:
        return int(cleaned, 0)
    except ValueError:
        return int(cleaned)


def _to_int(value: Any, where: str) -> int:
    text = _scalar(value, where)
    if text in _NULLS:
        return 0
    try:
        return _parse_int(text)
    except ValueError:
        raise ConfigError(f"{where}: cannot parse {text!r} as an integer") from None


def _to_byte_size(value: Any, where: str) -> int:
    text = _scalar(value, where)
    if text in _NULLS:
        return 0
    match = re.fullmatch(r"\s*(\d+)\s*([a-zA-Z]*)\s*", text)
    unit = match.group(2).lower() if match else None
    if match is None or unit not in _BYTE_UNITS:
        raise ConfigError(f"{where}: cannot parse {text!r} as a byte size")
    return int(match.group(1)) * _BYTE_UNITS[unit]


def _to_duration(value: Any, where: str) -> timedelta:
    text = _scalar(value, where)
    if text in _NULLS:
        return timedelta(0)
    try:
        # A bare integer is a count of nanoseconds.
        return timedelta(microseconds=_parse_int(text) / 1000)
    except ValueError:
        pass

    body = text
    sign = 1
    if body[:1] in "+-":
        sign = -1 if body[0] == "-" else 1
        body = body[1:]
    if body == "0":
        return timedelta(0)

    total = 0.0
    pos = 0
    while pos < len(body):
        match = _DURATION_PART.match(body, pos)
        if match is None:
            raise ConfigError(f"{where}: cannot parse {text!r} as a duration")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if not body:
        raise ConfigError(f"{where}: cannot parse {text!r} as a duration")
    return timedelta(microseconds=sign * total)


def _conv(convert: Callable[[Any, str], Any], **kwargs: Any) -> Any:
    return field(metadata={"convert": convert}, **kwargs)


def _load_section(cls: type, raw: Any, where: str) -> Any:
    """Build a typed section, rejecting keys the section does not define."""
    if raw is None or (isinstance(raw, str) and raw in _NULLS):
        return cls()
    if not isinstance(raw, Mapping):
        raise ConfigError(f"{where}: expected a mapping")
    known = {f.name: f for f in fields(cls)}
    values: dict[str, Any] = {}
    for key, value in raw.items():
        spec = known.get(key)
        if spec is None:
            raise ConfigError(f"{where}: field {key} not found")
        convert = spec.metadata.get("convert")
        if convert is None:
            values[key] = _load_section(spec.type_cls, value, f"{where}.{key}")  # type: ignore[attr-defined]
        else:
            values[key] = convert(value, f"{where}.{key}")
    return cls(**values)


@dataclass
class PullEvaluationOptions:
    """Options that control where policies are found and how statuses are posted."""

    policy_path: str = _conv(_to_str, default="")
    shared_repository: str = _conv(_to_str, default="")
    shared_policy_path: str = _conv(_to_str, default="")
    # Statuses are posted with the context "<status_check_context>: <base branch>".
    status_check_context: str = _conv(_to_str, default="")
    # Also post a status whose context is status_check_context alone.
    post_insecure_status_checks: bool = _conv(_to_bool, default=False)
    # Unused; accepted so older configuration files stay valid.
    app_name: str = _conv(_to_str, default="")

    def fill_defaults(self) -> None:
        """Set every empty option to its default."""
        if not self.policy_path:
            self.policy_path = DEFAULT_POLICY_PATH
        if not self.shared_repository:
            self.shared_repository = DEFAULT_SHARED_REPOSITORY
        if not self.shared_policy_path:
            self.shared_policy_path = DEFAULT_SHARED_POLICY_PATH
        if not self.status_check_context:
            self.status_check_context = DEFAULT_STATUS_CHECK_CONTEXT

    def set_values_from_env(self, prefix: str) -> None:
        """Override options from environment variables, then fill defaults."""
        for key, attr in (
            ("POLICY_PATH", "policy_path"),
            ("SHARED_REPOSITORY", "shared_repository"),
            ("SHARED_POLICY_PATH", "shared_policy_path"),
            ("STATUS_CHECK_CONTEXT", "status_check_context"),
        ):
            value = os.environ.get(prefix + key)
            if value is not None:
                setattr(self, attr, value)
        self.fill_defaults()


@dataclass
class LoggingConfig:
    level: str = _conv(_to_str, default="")
    text: bool = _conv(_to_bool, default=False)


@dataclass
class CachingConfig:
    # Maximum cache size in bytes; 0 means the server default.
    max_size: int = _conv(_to_byte_size, default=0)


@dataclass
class WorkerConfig:
    workers: int = _conv(_to_int, default=0)
    queue_size: int = _conv(_to_int, default=0)
    github_timeout: timedelta = _conv(_to_duration, default=timedelta(0))


@dataclass
class SessionsConfig:
    key: str = _conv(_to_str, default="")
    lifetime: str = _conv(_to_str, default="")


@dataclass
class FilesConfig:
    static: str = _conv(_to_str, default="")
    templates: str = _conv(_to_str, default="")


_TYPED_SECTIONS: dict[str, type] = {
    "logging": LoggingConfig,
    "cache": CachingConfig,
    "sessions": SessionsConfig,
    "options": PullEvaluationOptions,
    "files": FilesConfig,
    "workers": WorkerConfig,
}
_OPAQUE_SECTIONS = ("server", "github", "datadog")


@dataclass
class Config:
    """The complete server configuration.

    The server, github and datadog sections are kept as plain mappings.
    """

    server: dict[str, Any] = field(default_factory=dict)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    cache: CachingConfig = field(default_factory=CachingConfig)
    github: dict[str, Any] = field(default_factory=dict)
    sessions: SessionsConfig = field(default_factory=SessionsConfig)
    options: PullEvaluationOptions = field(default_factory=PullEvaluationOptions)
    files: FilesConfig = field(default_factory=FilesConfig)
    datadog: dict[str, Any] = field(default_factory=dict)
    workers: WorkerConfig = field(default_factory=WorkerConfig)


def _opaque(plain: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = plain.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"{key}: expected a mapping")
    return dict(value)


def _build(typed: Any, plain: Any) -> Config:
    if typed is None or (isinstance(typed, str) and typed in _NULLS):
        typed, plain = {}, {}
    if not isinstance(typed, Mapping):
        raise ConfigError("top level: expected a mapping")
    plain = plain if isinstance(plain, Mapping) else {}

    sections: dict[str, Any] = {}
    for key, raw in typed.items():
        if key in _TYPED_SECTIONS:
            sections[key] = _load_section(_TYPED_SECTIONS[key], raw, key)
        elif key in _OPAQUE_SECTIONS:
            sections[key] = _opaque(plain, key)
        else:
            raise ConfigError(f"field {key} not found in config")
    return Config(**sections)


def parse_config(data: bytes | str) -> Config:
    """Parse a YAML configuration document, applying environment overrides.

    Raises ConfigError for malformed YAML, unknown fields or bad values.
    """
    try:
        typed = yaml.load(data, Loader=yaml.BaseLoader)
        plain = yaml.safe_load(data)
        config = _build(typed, plain)
    except (yaml.YAMLError, ConfigError) as err:
        raise ConfigError(f"failed unmarshalling yaml: {err}") from err

    config.options.set_values_from_env("POLICYBOT_OPTIONS_")
    key = os.environ.get("POLICYBOT_SESSIONS_KEY")
    if key is not None:
        config.sessions.key = key
    return config


# Silence an unused-name warning for MISSING kept for dataclass introspection.
del MISSING