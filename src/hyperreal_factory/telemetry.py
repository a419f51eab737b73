from __future__ import annotations

import json
import os
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union


_EVENTS: List[Dict[str, Any]] = []
_LOCK = threading.Lock()
_LOG_PATH: Optional[Path] = None


def set_log_path(path: Optional[Union[str, Path]]) -> None:
    """Mirror events to `path`; takes precedence over `HYPERREAL_TELEMETRY_LOG`. `None` clears it."""
    global _LOG_PATH
    _LOG_PATH = Path(path) if path else None


def emit_event(name: str, payload: Optional[Dict[str, Any]] = None) -> None:
    """Record a pipeline event in-process and optionally append it to a JSONL file.

    Tests inspect `get_events()` to verify emissions. Events are mirrored to
    the path given to `set_log_path()`, else to `HYPERREAL_TELEMETRY_LOG`.
    """
    ev: Dict[str, Any] = {"name": name, "ts": time.time(), "payload": payload or {}}
    with _LOCK:
        _EVENTS.append(ev)
    log_path = _LOG_PATH or os.environ.get("HYPERREAL_TELEMETRY_LOG")
    if log_path:
        try:
            with open(log_path, "a", encoding="utf-8") as fh:
                fh.write(json.dumps(ev, default=str) + "\n")
        except OSError:
            # Telemetry sink is best-effort.
            pass


def get_events(name: Optional[str] = None) -> List[Dict[str, Any]]:
    """Return a copy of recorded events, optionally filtered by name."""
    with _LOCK:
        events = list(_EVENTS)
    if name is None:
        return events
    return [ev for ev in events if ev["name"] == name]


def clear_events() -> None:
    """Clear the in-memory event buffer."""
    with _LOCK:
        _EVENTS.clear()
