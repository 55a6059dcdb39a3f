"""Settings — loads and validates extbuild.yaml with Pydantic."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from extbuild.protocol import KINDS, ProtocolKind


class Settings(BaseModel):
    """Host-side settings for discovering and invoking build plugins.

    Defaults mirror the host's behaviour: search ``$CARGO_HOME/bin`` and
    ``$PATH``, suggest names within three edits, and never time out a
    plugin.
    """

    model_config = ConfigDict(extra="forbid")

    search_paths: list[str] = []
    include_cargo_home: bool = True
    include_path_env: bool = True
    kind: str = "build-system"
    suggestion_max_distance: int = 3
    timeout_seconds: float | None = None
    record_events: bool = True
    log_dir: str = ".extbuild"

    @field_validator("search_paths")
    @classmethod
    def _distinct_paths(cls, v: list[str]) -> list[str]:
        # A directory listed twice would only shadow itself.
        return [p for p in dict.fromkeys(v) if p.strip()]

    @field_validator("kind")
    @classmethod
    def _known_kind(cls, v: str) -> str:
        if v not in KINDS:
            raise ValueError(f"Unknown plugin kind {v!r}, expected one of {sorted(KINDS)}")
        return v

    @field_validator("timeout_seconds")
    @classmethod
    def _positive_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("timeout_seconds must be positive")
        return v

    def protocol_kind(self) -> ProtocolKind:
        return KINDS[self.kind]

    def log_path(self) -> Path:
        """Return the resolved event log directory."""
        return Path(self.log_dir).expanduser().resolve()


def cargo_home() -> Path:
    """Return ``$CARGO_HOME``, defaulting to ``~/.cargo``."""
    env = os.environ.get("CARGO_HOME")
    return Path(env) if env else Path.home() / ".cargo"


def search_directories(settings: Settings) -> list[Path]:
    """Return plugin search directories in precedence order.

    Explicit ``search_paths`` come first, then ``$CARGO_HOME/bin``, then
    each ``$PATH`` entry. Later directories override earlier ones when the
    same plugin appears twice.
    """
    dirs = [Path(p).expanduser() for p in settings.search_paths]
    if settings.include_cargo_home:
        dirs.append(cargo_home() / "bin")
    if settings.include_path_env:
        dirs.extend(Path(p) for p in os.environ.get("PATH", "").split(os.pathsep) if p)
    return dirs


def load_settings(path: Path | str = "extbuild.yaml") -> Settings:
    """Load and validate a settings file.

    Args:
        path: Path to the YAML settings file.

    Returns:
        A validated Settings instance.

    Raises:
        FileNotFoundError: If the settings file does not exist.
        ValueError: If the file contains invalid configuration.
    """
    settings_path = Path(path)
    if not settings_path.is_file():
        raise FileNotFoundError(
            f"extbuild config not found at {settings_path} (pass another file with --config)"
        )

    try:
        data = yaml.safe_load(settings_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"{settings_path} is not valid YAML: {exc}") from exc

    if data is None:
        raise ValueError(f"{settings_path} is empty; expected extbuild settings such as search_paths")
    if not isinstance(data, dict):
        raise ValueError(
            f"{settings_path} must be a YAML mapping of extbuild settings, got {type(data).__name__}"
        )

    return Settings(**data)
