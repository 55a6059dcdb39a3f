"""Shared test fixtures for extbuild."""

from __future__ import annotations

import json
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from extbuild.config import Settings

SUCCESS_FOO = {
    "Success": {
        "targets": [{"kind": "Bin", "name": "foo", "src_path": "src/main"}],
        "warnings": [],
        "errors": [],
    }
}


def write_plugin(directory: Path, identifier: str, body: str, mode: int = 0o755) -> Path:
    """Write an executable Python script named ``cargobuild-<identifier>``."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"cargobuild-{identifier}"
    path.write_text(f"#!{sys.executable}\n{body}", encoding="utf-8")
    path.chmod(mode)
    return path


def responder(output: str | dict, exit_code: int = 0, delay: float = 0.0) -> str:
    """Script body that drains stdin, prints *output* and exits."""
    text = output if isinstance(output, str) else json.dumps(output)
    return (
        "import sys, time\n"
        "sys.stdin.read()\n"
        f"time.sleep({delay!r})\n"
        f"sys.stdout.write({text!r})\n"
        f"sys.exit({exit_code})\n"
    )


@pytest.fixture()
def plugin_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "bin"
    directory.mkdir()
    return directory


@pytest.fixture()
def make_plugin(plugin_dir: Path) -> Callable[..., Path]:
    """Factory writing a plugin into ``plugin_dir`` that answers with a fixed body."""

    def _make(identifier: str, output: str | dict = SUCCESS_FOO, exit_code: int = 0, delay: float = 0.0) -> Path:
        return write_plugin(plugin_dir, identifier, responder(output, exit_code, delay))

    return _make


@pytest.fixture()
def settings(tmp_path: Path, plugin_dir: Path) -> Settings:
    """Settings that only search ``plugin_dir`` and log under tmp_path."""
    return Settings(
        search_paths=[str(plugin_dir)],
        include_cargo_home=False,
        include_path_env=False,
        log_dir=str(tmp_path / "logs"),
    )
