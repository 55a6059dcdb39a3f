"""Plugin registry — discovers ``cargobuild-*`` executables on search paths."""

from __future__ import annotations

import hashlib
import logging
import os
import stat
import sys
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from extbuild.config import Settings, search_directories
from extbuild.protocol import BUILD_SYSTEM, ProtocolKind
from extbuild.suggest import DEFAULT_MAX_DISTANCE, closest, format_hint

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class PluginError(Exception):
    """Base exception for plugin lookup and invocation errors."""


class UnknownPluginError(PluginError):
    """Raised when no plugin is registered under the requested identifier."""

    def __init__(self, identifier: str, noun: str = "build system", suggestion: str | None = None) -> None:
        super().__init__(f"Unknown {noun} {identifier}{format_hint(suggestion)}")
        self.identifier = identifier
        self.noun = noun
        self.suggestion = suggestion


# ---------------------------------------------------------------------------
# Discovery helpers
# ---------------------------------------------------------------------------


def exe_suffix() -> str:
    """Return the platform's executable filename suffix."""
    return ".exe" if sys.platform == "win32" else ""


def is_executable(path: Path | str) -> bool:
    """Return True if *path* is a regular file the host may run.

    On POSIX at least one execute bit must be set; Windows has no such
    bit, so any regular file qualifies.
    """
    try:
        mode = os.stat(path).st_mode
    except OSError:
        return False
    if not stat.S_ISREG(mode):
        return False
    if sys.platform == "win32":
        return True
    return bool(mode & 0o111)


def toolchain_digest(path: Path | str) -> int:
    """Return a 64-bit digest of the executable's contents.

    Any change to the plugin binary changes the digest, which in turn
    invalidates cached builds produced with the old toolchain.
    """
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(1 << 16), b""):
            h.update(chunk)
    return int.from_bytes(h.digest()[:8], "big")


def plugin_identifier(filename: str, prefix: str, suffix: str) -> str | None:
    """Strip the naming convention from *filename*, or None if it doesn't match."""
    if not filename.startswith(prefix) or not filename.endswith(suffix):
        return None
    end = len(filename) - len(suffix)
    identifier = filename[len(prefix) : end]
    return identifier or None


# ---------------------------------------------------------------------------
# Handles and registry
# ---------------------------------------------------------------------------


@dataclass
class PluginCommand:
    """A process invocation of a plugin, built but not yet run."""

    program: Path
    args: list[str] = field(default_factory=list)

    def arg(self, value: str | os.PathLike) -> PluginCommand:
        self.args.append(os.fspath(value))
        return self

    def args_extend(self, values: Iterable[str | os.PathLike]) -> PluginCommand:
        self.args.extend(os.fspath(v) for v in values)
        return self

    def argv(self) -> list[str]:
        return [os.fspath(self.program), *self.args]

    def __str__(self) -> str:
        return " ".join(self.argv())


@dataclass(frozen=True)
class PluginHandle:
    """A discovered plugin executable."""

    identifier: str
    path: Path
    toolchain_hash: int

    def command(self, *args: str) -> PluginCommand:
        return PluginCommand(self.path, list(args))


@dataclass(frozen=True)
class Registry:
    """Immutable mapping from plugin identifier to handle.

    Build it once with :meth:`build` and share it freely; nothing mutates
    it afterwards, so concurrent lookups need no locking.
    """

    plugins: Mapping[str, PluginHandle]
    kind: ProtocolKind = BUILD_SYSTEM
    shadowed: tuple[PluginHandle, ...] = ()
    suggestion_max_distance: int = DEFAULT_MAX_DISTANCE

    @classmethod
    def build(
        cls,
        search_paths: Iterable[Path | str],
        kind: ProtocolKind = BUILD_SYSTEM,
        suggestion_max_distance: int = DEFAULT_MAX_DISTANCE,
    ) -> Registry:
        """Scan *search_paths* in order and register every plugin found.

        Discovery is best effort: unreadable directories and files are
        skipped. When two directories provide the same identifier, the
        later directory wins and the earlier handle is kept in
        :attr:`shadowed`.
        """
        suffix = exe_suffix()
        found: dict[str, PluginHandle] = {}
        shadowed: list[PluginHandle] = []

        for directory in search_paths:
            directory = Path(directory)
            try:
                entries = sorted(directory.iterdir())
            except OSError as exc:
                logger.debug("Skipping search path %s: %s", directory, exc)
                continue

            for entry in entries:
                identifier = plugin_identifier(entry.name, kind.prefix, suffix)
                if identifier is None or not is_executable(entry):
                    continue
                try:
                    digest = toolchain_digest(entry)
                except OSError as exc:
                    logger.debug("Skipping unreadable plugin %s: %s", entry, exc)
                    continue

                handle = PluginHandle(identifier=identifier, path=directory / entry.name, toolchain_hash=digest)
                previous = found.get(identifier)
                if previous is not None:
                    logger.debug("%s shadows %s", handle.path, previous.path)
                    shadowed.append(previous)
                found[identifier] = handle

        logger.debug("Discovered %d %s plugin(s)", len(found), kind.noun)
        return cls(
            plugins=MappingProxyType(found),
            kind=kind,
            shadowed=tuple(shadowed),
            suggestion_max_distance=suggestion_max_distance,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> Registry:
        return cls.build(
            search_directories(settings),
            kind=settings.protocol_kind(),
            suggestion_max_distance=settings.suggestion_max_distance,
        )

    def get(self, identifier: str) -> PluginHandle:
        """Return the handle for *identifier*.

        Raises:
            UnknownPluginError: With a did-you-mean suggestion when a
                registered identifier is close enough.
        """
        handle = self.plugins.get(identifier)
        if handle is None:
            suggestion = closest(identifier, self.plugins, self.suggestion_max_distance)
            raise UnknownPluginError(identifier, noun=self.kind.noun, suggestion=suggestion)
        return handle

    def toolchain_hash(self, identifier: str) -> int:
        return self.get(identifier).toolchain_hash

    def identifiers(self) -> list[str]:
        return sorted(self.plugins)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self.plugins

    def __len__(self) -> int:
        return len(self.plugins)

    def __iter__(self) -> Iterator[PluginHandle]:
        return (self.plugins[name] for name in self.identifiers())
