"""Configuration for offline-sync.

Provides OfflineConfig, a pydantic model holding every tunable of the
offline stack, and :func:`load_config`, which reads it from YAML and
applies environment-variable overrides.

YAML layout
-----------
::

    offline:
      storage_path: ~/.travel/offline.json
      offline_mode_default: false
      drain_debounce_seconds: 0.25
      backoff_initial_seconds: 0.2
      backoff_max_seconds: 4.0

Environment overrides
---------------------
OFFLINE_SYNC_OFFLINE_DEFAULT : "1", "true", "yes" or "on" force offline
                               mode at startup; "0", "false", "no", "off"
                               disable it.
OFFLINE_SYNC_STORAGE_PATH    : path of the JSON storage file.
"""
from __future__ import annotations

import io
import os
from pathlib import Path
from typing import Mapping, Union

import yaml
from pydantic import BaseModel, Field, model_validator

from offline_sync.network.retry_queue import BackoffPolicy

ENV_OFFLINE_DEFAULT = "OFFLINE_SYNC_OFFLINE_DEFAULT"
ENV_STORAGE_PATH = "OFFLINE_SYNC_STORAGE_PATH"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})

# Defaults embedded as YAML so a config can be produced without a file.
_DEFAULT_CONFIG_YAML = """\
offline:
  storage_path: null
  key_prefix: null
  offline_mode_default: false
  drain_debounce_seconds: 0.25
  backoff_initial_seconds: 0.2
  backoff_max_seconds: 4.0
  backoff_multiplier: 2.0
  default_max_attempts: 3
  task_timeout_seconds: null
  probe_host: "8.8.8.8"
  probe_port: 53
  probe_timeout_seconds: 2.0
  probe_interval_seconds: 10.0
"""


class OfflineConfig(BaseModel):
    """Validated settings for the offline stack.

    Attributes
    ----------
    storage_path:
        JSON file for persisted state. None keeps state in memory only.
    key_prefix:
        Optional global prefix applied to every storage key.
    offline_mode_default:
        Force the manual offline override on at startup.
    drain_debounce_seconds:
        Delay used to coalesce bursts of enqueue calls into one drain.
    backoff_initial_seconds:
        First retry wait; restored after every success.
    backoff_max_seconds:
        Cap for any single retry wait.
    backoff_multiplier:
        Growth factor between consecutive retry waits.
    default_max_attempts:
        Attempts per task when the caller does not specify one.
    task_timeout_seconds:
        Per-attempt timeout. None lets a task run indefinitely.
    probe_host, probe_port:
        Endpoint used by the TCP connectivity probe.
    probe_timeout_seconds:
        Timeout of a single probe.
    probe_interval_seconds:
        Delay between background probes.
    """

    storage_path: Path | None = None
    key_prefix: str | None = None
    offline_mode_default: bool = False
    drain_debounce_seconds: float = Field(default=0.25, ge=0)
    backoff_initial_seconds: float = Field(default=0.2, gt=0)
    backoff_max_seconds: float = Field(default=4.0, gt=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    default_max_attempts: int = Field(default=3, ge=0)
    task_timeout_seconds: float | None = Field(default=None, gt=0)
    probe_host: str = "8.8.8.8"
    probe_port: int = Field(default=53, ge=1, le=65535)
    probe_timeout_seconds: float = Field(default=2.0, gt=0)
    probe_interval_seconds: float = Field(default=10.0, gt=0)

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def _check_backoff_bounds(self) -> "OfflineConfig":
        if self.backoff_max_seconds < self.backoff_initial_seconds:
            raise ValueError(
                "backoff_max_seconds must be >= backoff_initial_seconds "
                f"({self.backoff_max_seconds} < {self.backoff_initial_seconds})"
            )
        return self

    def backoff_policy(self) -> BackoffPolicy:
        """Return the :class:`BackoffPolicy` described by this config."""
        return BackoffPolicy(
            initial_seconds=self.backoff_initial_seconds,
            max_seconds=self.backoff_max_seconds,
            multiplier=self.backoff_multiplier,
        )

    def resolved_storage_path(self) -> Path | None:
        """Return ``storage_path`` with ``~`` expanded, or None."""
        if self.storage_path is None:
            return None
        return self.storage_path.expanduser()


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be one of {sorted(_TRUE_VALUES | _FALSE_VALUES)}, got {raw!r}")


def _read_yaml(yaml_text: str) -> dict[str, object]:
    data = yaml.safe_load(io.StringIO(yaml_text))
    if data is None:
        return {}
    if not isinstance(data, dict) or "offline" not in data:
        raise ValueError("Config YAML must have a top-level 'offline' key.")
    section = data["offline"] or {}
    if not isinstance(section, dict):
        raise ValueError("The 'offline' section must be a mapping.")
    return dict(section)


def load_config(
    source: Union[str, Path, None] = None,
    environ: Mapping[str, str] | None = None,
) -> OfflineConfig:
    """Build an :class:`OfflineConfig` from YAML plus environment overrides.

    Parameters
    ----------
    source:
        Path to a YAML file, a YAML string, or None for built-in defaults.
        A string naming an existing file is read as a file.
    environ:
        Mapping consulted for overrides. Defaults to ``os.environ``.

    Returns
    -------
    OfflineConfig
        The validated configuration.

    Raises
    ------
    ValueError
        If the YAML lacks an ``offline`` section or an override is malformed.
    pydantic.ValidationError
        If a field fails validation.
    FileNotFoundError
        If *source* is a :class:`~pathlib.Path` that does not exist.
    """
    if source is None:
        values = _read_yaml(_DEFAULT_CONFIG_YAML)
    elif isinstance(source, Path):
        values = _read_yaml(source.read_text(encoding="utf-8"))
    else:
        # A file path string or raw YAML; try the file first
        path = Path(source)
        if "\n" not in source and path.is_file():
            values = _read_yaml(path.read_text(encoding="utf-8"))
        else:
            values = _read_yaml(source)

    env = os.environ if environ is None else environ
    if env.get(ENV_OFFLINE_DEFAULT):
        values["offline_mode_default"] = _parse_bool(ENV_OFFLINE_DEFAULT, env[ENV_OFFLINE_DEFAULT])
    if env.get(ENV_STORAGE_PATH):
        values["storage_path"] = env[ENV_STORAGE_PATH]

    return OfflineConfig(**values)


__all__ = [
    "ENV_OFFLINE_DEFAULT",
    "ENV_STORAGE_PATH",
    "OfflineConfig",
    "load_config",
]
