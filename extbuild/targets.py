"""Host-side target representation built from plugin descriptors."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from extbuild.protocol import TargetDescriptor, TargetKind

# Only one edition is supported for externally built targets.
EDITION = "2021"


@dataclass(frozen=True)
class Target:
    """A binary or library target the dependency graph consumes."""

    kind: str
    name: str
    src_path: Path
    crate_types: tuple[str, ...] | None = None
    edition: str = EDITION

    @property
    def is_bin(self) -> bool:
        return self.kind == "bin"

    @property
    def is_lib(self) -> bool:
        return self.kind == "lib"

    def to_descriptor(self) -> TargetDescriptor:
        """Return the wire form of this target."""
        kind = TargetKind.BIN if self.is_bin else TargetKind.LIB
        return TargetDescriptor(kind=kind, name=self.name, src_path=str(self.src_path))


def bin_target(name: str, src_path: Path | str) -> Target:
    """Binary target with no explicit crate-type list."""
    return Target(kind="bin", name=name, src_path=Path(src_path))


def lib_target(name: str, src_path: Path | str) -> Target:
    """Library target of the plain ``lib`` crate kind."""
    return Target(kind="lib", name=name, src_path=Path(src_path), crate_types=("lib",))


def from_descriptor(desc: TargetDescriptor) -> Target:
    """Map a plugin's target descriptor onto a host target."""
    if desc.kind is TargetKind.BIN:
        return bin_target(desc.name, desc.src_path)
    if desc.kind is TargetKind.LIB:
        return lib_target(desc.name, desc.src_path)
    raise ValueError(f"Unhandled target kind: {desc.kind!r}")


@dataclass(frozen=True)
class BuildUnit:
    """One target of one package, as handed to a plugin's ``build`` verb."""

    package_name: str
    package_root: Path
    target: Target
    out_dir: Path
