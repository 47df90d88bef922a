"""Runtime configuration for borrowbuf buffers.

A ``BufferConfig`` controls the growth policy of owned storage, the
default text encoding, whether guards use the thread-safe counter
variant, and how contract violations are reported.

Values are resolved from three layers, lowest precedence first:

1. The dataclass defaults.
2. An optional YAML file passed to ``load_config``.
3. ``BORROWBUF_*`` environment variables.

Usage
-----
::

    from borrowbuf.config import load_config, set_default_config

    config = load_config("borrowbuf.yaml")
    set_default_config(config)
"""
from __future__ import annotations

import codecs
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Final, Mapping

import yaml

from borrowbuf.errors import ConfigError

_ENV_PREFIX: Final[str] = "BORROWBUF_"
_TRUE_VALUES: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True)
class BufferConfig:
    """Immutable buffer configuration.

    Parameters
    ----------
    growth_factor:
        Multiplier applied to capacity when owned storage overflows.
    min_capacity:
        Smallest capacity allocated by a growth event.
    encoding:
        Default text encoding for new owned buffers.  ``None`` creates
        raw byte buffers with no code-point checks.
    thread_safe:
        When True, guards update their counters under a lock.
    warn_on_leak:
        Emit a ``ResourceWarning`` when an Owner is collected while
        views are still outstanding.
    strict_contracts:
        Log contract violations at ERROR instead of WARNING.
    """

    growth_factor: int = 2
    min_capacity: int = 8
    encoding: str | None = "utf-8"
    thread_safe: bool = False
    warn_on_leak: bool = True
    strict_contracts: bool = __debug__

    def __post_init__(self) -> None:
        if isinstance(self.growth_factor, bool) or not isinstance(self.growth_factor, int):
            raise ConfigError(f"growth_factor must be an integer, got {self.growth_factor!r}")
        if self.growth_factor < 2:
            raise ConfigError(f"growth_factor must be >= 2, got {self.growth_factor}")
        if isinstance(self.min_capacity, bool) or not isinstance(self.min_capacity, int):
            raise ConfigError(f"min_capacity must be an integer, got {self.min_capacity!r}")
        if self.min_capacity < 0:
            raise ConfigError(f"min_capacity must be >= 0, got {self.min_capacity}")
        object.__setattr__(self, "encoding", normalize_encoding(self.encoding))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "BufferConfig":
        """Build a config from a plain mapping, rejecting unknown keys.

        Parameters
        ----------
        data:
            Mapping of field names to values, e.g. parsed YAML.

        Returns
        -------
        BufferConfig

        Raises
        ------
        ConfigError
            If ``data`` contains unknown keys or invalid values.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**dict(data))

    def with_env(self, environ: Mapping[str, str] | None = None) -> "BufferConfig":
        """Return a copy with ``BORROWBUF_*`` environment overrides applied."""
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        for f in fields(self):
            raw = env.get(_ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            overrides[f.name] = _coerce(f.name, raw)
        if not overrides:
            return self
        return replace(self, **overrides)


def normalize_encoding(encoding: str | None) -> str | None:
    """Return the canonical codec name for ``encoding``; only UTF-8 text is supported.

    Raises
    ------
    ConfigError
        If the encoding is unknown or not UTF-8.
    """
    if encoding is None:
        return None
    try:
        normalized = codecs.lookup(encoding).name
    except LookupError:
        raise ConfigError(f"Unknown encoding {encoding!r}") from None
    if normalized != "utf-8":
        raise ConfigError(f"Only utf-8 text buffers are supported, got {encoding!r}")
    return normalized


def _coerce(name: str, raw: str) -> Any:
    """Convert an environment string to the type of field ``name``."""
    value = raw.strip()
    if name in ("growth_factor", "min_capacity"):
        try:
            return int(value)
        except ValueError:
            raise ConfigError(f"{_ENV_PREFIX}{name.upper()} must be an integer, got {raw!r}") from None
    if name in ("thread_safe", "warn_on_leak", "strict_contracts"):
        lowered = value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ConfigError(f"{_ENV_PREFIX}{name.upper()} must be a boolean, got {raw!r}")
    if name == "encoding" and value.lower() in ("", "none", "raw"):
        return None
    return value


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> BufferConfig:
    """Resolve a ``BufferConfig`` from defaults, a YAML file and the environment.

    Parameters
    ----------
    path:
        Optional YAML file whose top-level mapping holds config fields.
        A top-level ``borrowbuf:`` section is also accepted.
    environ:
        Environment mapping; defaults to ``os.environ``.

    Returns
    -------
    BufferConfig

    Raises
    ------
    ConfigError
        If the file cannot be read or parsed, or holds invalid values.
    """
    config = BufferConfig()
    if path is not None:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
        if data is None:
            data = {}
        if isinstance(data, dict) and isinstance(data.get("borrowbuf"), dict):
            data = data["borrowbuf"]
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        config = BufferConfig.from_mapping(data)
    return config.with_env(environ)


_default_config: BufferConfig | None = None


def get_default_config() -> BufferConfig:
    """Return the process-wide default config, resolving it on first use."""
    global _default_config
    if _default_config is None:
        _default_config = BufferConfig().with_env()
    return _default_config


def set_default_config(config: BufferConfig | None) -> None:
    """Replace the process-wide default config.

    Passing ``None`` discards the cached value so the next call to
    ``get_default_config`` re-reads the environment.
    """
    global _default_config
    _default_config = config


__all__ = [
    "BufferConfig",
    "load_config",
    "normalize_encoding",
    "get_default_config",
    "set_default_config",
]
