"""Test configuration helpers."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_src_on_path() -> None:
    root = Path(__file__).resolve().parents[1]
    src = root / "src"
    for entry in (src, root):
        entry_str = str(entry)
        if entry_str not in sys.path:
            sys.path.insert(0, entry_str)


_ensure_src_on_path()

from hyperreal_factory import telemetry  # noqa: E402
from hyperreal_factory.schemas import ReferenceSet  # noqa: E402
from tests.unit.utils import make_png  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "GEMINI_API_KEY",
        "GOOGLE_API_KEY",
        "HYPERREAL_USE_FIXTURE",
        "HYPERREAL_TELEMETRY_LOG",
        "HYPERREAL_COOLDOWN_S",
        "HYPERREAL_QUALITY_GATE",
        "HYPERREAL_PLAN_PATH",
        "HYPERREAL_QUALITY_THRESHOLD",
        "HYPERREAL_MAX_RETRIES",
        "HYPERREAL_IMAGE_MODEL",
        "HYPERREAL_VISION_MODEL",
    ):
        monkeypatch.delenv(name, raising=False)
    telemetry.clear_events()
    telemetry.set_log_path(None)


@pytest.fixture()
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture()
def front_only(png_bytes: bytes) -> ReferenceSet:
    return ReferenceSet({"front": png_bytes})
