"""Append-only JSONL log of plugin invocations.

Plugin messages and command lines can echo credentials picked up from a
package's configuration, so ``detail`` is scrubbed before it is written.
"""

from __future__ import annotations

import json
import re
import threading
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path

EVENTS_FILE = "events.jsonl"

# Serialises appends from concurrent invocations in one process.
_WRITE_LOCK = threading.Lock()

_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("REGISTRY_TOKEN", re.compile(r"cio[A-Za-z0-9]{32}")),
    ("GITHUB_TOKEN", re.compile(r"gh[pousr]_[A-Za-z0-9]{36,}")),
    ("AWS_KEY", re.compile(r"AKIA[0-9A-Z]{16}")),
    ("BEARER_TOKEN", re.compile(r"Bearer\s+[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE)),
    ("URL_PASSWORD", re.compile(r"(?<=://)[^/\s:@]+:[^/\s@]+(?=@)")),
    (
        "PRIVATE_KEY",
        re.compile(
            r"-----BEGIN (?:RSA |EC |OPENSSH )?PRIVATE KEY-----[\s\S]*?"
            r"-----END (?:RSA |EC |OPENSSH )?PRIVATE KEY-----"
        ),
    ),
]


def redact(text: str) -> str:
    """Replace each credential in *text* with ``[REDACTED:NAME]``."""
    for name, pattern in _PATTERNS:
        text = pattern.sub(f"[REDACTED:{name}]", text)
    return text


@dataclass
class InvocationEvent:
    """A single plugin invocation record."""

    action: str
    plugin: str
    status: str
    detail: str = ""
    paths: list[str] = field(default_factory=list)


def write_event(log_dir: Path | str, event: InvocationEvent) -> Path:
    """Append *event* to ``<log_dir>/events.jsonl``.

    A UTC ISO-8601 timestamp is added and ``detail`` is redacted.

    Returns:
        Path to the event log file.
    """
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / EVENTS_FILE

    record = asdict(event)
    record["detail"] = redact(record["detail"])
    record["timestamp"] = datetime.now(UTC).isoformat()

    with _WRITE_LOCK, log_path.open("a", encoding="utf-8") as fh:
        fh.write(json.dumps(record, ensure_ascii=False) + "\n")

    return log_path


def read_events(log_dir: Path | str, last_n: int = 20) -> list[dict]:
    """Return the most recent *last_n* events, newest first."""
    log_path = Path(log_dir) / EVENTS_FILE
    if not log_path.exists():
        return []

    lines = log_path.read_text(encoding="utf-8").strip().splitlines()
    entries = [json.loads(line) for line in lines if line.strip()]
    return list(reversed(entries[-last_n:]))
