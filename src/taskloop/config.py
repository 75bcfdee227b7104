"""Configuration loading for taskloop.

Settings are layered: built-in defaults, then the global config file
(``$TASKLOOP_CONFIG``, else ``$XDG_CONFIG_HOME/taskloop/config.yaml``, else
``~/.config/taskloop/config.yaml``), then the project file
``.taskloop/config.yaml``. CLI overrides are applied last with
``apply_overrides``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from taskloop.errors import ConfigError

TASKLOOP_CONFIG_ENV = "TASKLOOP_CONFIG"
PROJECT_CONFIG_RELATIVE_PATH = ".taskloop/config.yaml"


@dataclass(frozen=True)
class RetrySettings:
    """Bounds for the retry/rotation state machine."""

    attempts: int = 3
    rotations: int = 3


@dataclass(frozen=True)
class BackendSettings:
    """How to launch one agent CLI."""

    command: str
    args: list[str] = field(default_factory=list)
    model: str = ""
    continue_args: list[str] = field(default_factory=list)


def default_backends() -> dict[str, BackendSettings]:
    return {
        "claude": BackendSettings(
            command="claude",
            args=["-p", "--dangerously-skip-permissions"],
            continue_args=["--continue"],
        ),
        "opencode": BackendSettings(
            command="opencode",
            args=["run", "{prompt}"],
            continue_args=["--continue"],
        ),
    }


@dataclass(frozen=True)
class Settings:
    """Effective configuration for a run."""

    backend: str = "claude"
    retry: RetrySettings = field(default_factory=RetrySettings)
    backends: dict[str, BackendSettings] = field(default_factory=default_backends)
    run_root: Path | None = None
    auto_add_ignore: bool = False

    def backend_settings(self) -> BackendSettings:
        try:
            return self.backends[self.backend]
        except KeyError as exc:
            known = ", ".join(sorted(self.backends)) or "none"
            raise ConfigError(f"Unknown backend {self.backend!r} (configured: {known})") from exc

    def merged_with(self, data: dict[str, Any]) -> Settings:
        """Overlay a parsed config mapping onto these settings."""
        if not isinstance(data, dict):
            raise TypeError("config root must be a mapping")

        defaults = data.get("defaults", {}) or {}
        if not isinstance(defaults, dict):
            raise TypeError("'defaults' must be a mapping")

        retry_data = defaults.get("retry", {}) or {}
        if not isinstance(retry_data, dict):
            raise TypeError("'defaults.retry' must be a mapping")
        retry = RetrySettings(
            attempts=int(retry_data.get("attempts", self.retry.attempts)),
            rotations=int(retry_data.get("rotations", self.retry.rotations)),
        )

        backends = dict(self.backends)
        for name, raw in (data.get("backends", {}) or {}).items():
            if not isinstance(raw, dict):
                raise TypeError(f"backend {name!r} must be a mapping")
            base = backends.get(name)
            backends[name] = BackendSettings(
                command=str(raw.get("command", base.command if base else name)),
                args=[str(a) for a in raw.get("args", base.args if base else [])],
                model=str(raw.get("model", base.model if base else "")),
                continue_args=[
                    str(a) for a in raw.get("continue_args", base.continue_args if base else [])
                ],
            )

        run_root = defaults.get("run_root")
        return replace(
            self,
            backend=str(defaults.get("backend", self.backend)),
            retry=retry,
            backends=backends,
            run_root=Path(run_root).expanduser() if run_root else self.run_root,
            auto_add_ignore=bool(defaults.get("auto_add_ignore", self.auto_add_ignore)),
        )

    def validate(self) -> None:
        if self.retry.attempts < 1:
            raise ConfigError(f"retry.attempts must be >= 1, got {self.retry.attempts}")
        if self.retry.rotations < 1:
            raise ConfigError(f"retry.rotations must be >= 1, got {self.retry.rotations}")
        self.backend_settings()


def resolve_global_config_path() -> Path | None:
    """Locate the global config file path (which may not exist)."""
    explicit = os.getenv(TASKLOOP_CONFIG_ENV, "").strip()
    if explicit:
        return Path(explicit).expanduser()

    xdg = os.getenv("XDG_CONFIG_HOME", "").strip()
    if xdg:
        return Path(xdg) / "taskloop" / "config.yaml"

    try:
        home = Path.home()
    except RuntimeError:
        return None
    return home / ".config" / "taskloop" / "config.yaml"


def _read_config_file(path: Path) -> dict[str, Any] | None:
    if not path.exists():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Malformed YAML config at {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Unable to read config at {path}: {e}") from e
    return data or {}


def load_settings(repo_root: Path | None = None, path: Path | None = None) -> Settings:
    """Load effective settings from the global and project config files.

    Args:
        repo_root: Repository root; enables the project config layer
        path: Explicit global config path (skips discovery)

    Returns:
        Validated Settings

    Raises:
        ConfigError: If a config file is malformed or invalid
    """
    settings = Settings()
    candidates = [path if path is not None else resolve_global_config_path()]
    if repo_root is not None:
        candidates.append(repo_root / PROJECT_CONFIG_RELATIVE_PATH)

    for candidate in candidates:
        if candidate is None:
            continue
        data = _read_config_file(candidate)
        if data is None:
            continue
        try:
            settings = settings.merged_with(data)
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid config structure in {candidate}: {e}") from e

    settings.validate()
    return settings


def apply_overrides(
    settings: Settings,
    *,
    backend: str | None = None,
    model: str | None = None,
    attempts: int | None = None,
    rotations: int | None = None,
    auto_add_ignore: bool | None = None,
) -> Settings:
    """Return new settings with CLI overrides applied (non-None values win)."""
    updated = settings
    if backend:
        updated = replace(updated, backend=backend)
    if model:
        current = updated.backend_settings()
        backends = dict(updated.backends)
        backends[updated.backend] = replace(current, model=model)
        updated = replace(updated, backends=backends)
    if attempts is not None or rotations is not None:
        updated = replace(
            updated,
            retry=RetrySettings(
                attempts=attempts if attempts is not None else updated.retry.attempts,
                rotations=rotations if rotations is not None else updated.retry.rotations,
            ),
        )
    if auto_add_ignore is not None:
        updated = replace(updated, auto_add_ignore=auto_add_ignore)
    updated.validate()
    return updated
