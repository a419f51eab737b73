"""Deterministic offline client for dry runs and tests.

Images are small Pillow renders whose colour is derived from the request
text, so the same request always yields the same bytes.
"""
from __future__ import annotations

import asyncio
import hashlib
import io
from typing import Dict, List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw

from ..schemas import AspectRatio, GenerationConfig
from .common import ReferenceImage

BASE_EDGE = 96

_RATIOS: Dict[AspectRatio, Tuple[int, int]] = {
    AspectRatio.SQUARE: (1, 1),
    AspectRatio.PORTRAIT: (3, 4),
    AspectRatio.LANDSCAPE: (4, 3),
    AspectRatio.TALL: (9, 16),
    AspectRatio.WIDE: (16, 9),
}


def fixture_dimensions(aspect_ratio: AspectRatio, *, base: int = BASE_EDGE) -> Tuple[int, int]:
    """Width/height with the longer side equal to `base`."""
    w, h = _RATIOS[AspectRatio(aspect_ratio)]
    if w >= h:
        return base, max(1, round(base * h / w))
    return max(1, round(base * w / h)), base


def _colour(seed_text: str) -> Tuple[int, int, int]:
    digest = hashlib.sha256(seed_text.encode("utf-8")).digest()
    return digest[0], digest[1], digest[2]


def _encode(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def render_sketch(pose_text: str, aspect_ratio: AspectRatio) -> bytes:
    width, height = fixture_dimensions(aspect_ratio)
    image = Image.new("RGB", (width, height), (255, 255, 255))
    draw = ImageDraw.Draw(image)
    cx = width // 2
    head = max(4, min(width, height) // 8)
    # Oval head with a cross for face direction, stick body below.
    draw.ellipse((cx - head, head, cx + head, 3 * head), outline=(0, 0, 0), width=2)
    draw.line((cx - head, 2 * head, cx + head, 2 * head), fill=(0, 0, 0), width=1)
    draw.line((cx, head, cx, 3 * head), fill=(0, 0, 0), width=1)
    draw.line((cx, 3 * head, cx, height - 2 * head), fill=(0, 0, 0), width=3)
    return _encode(image)


def render_frame(seed_text: str, aspect_ratio: AspectRatio) -> bytes:
    width, height = fixture_dimensions(aspect_ratio)
    image = Image.new("RGB", (width, height), _colour(seed_text))
    draw = ImageDraw.Draw(image)
    draw.rectangle((width // 4, height // 4, 3 * width // 4, 3 * height // 4), outline=(255, 255, 255), width=2)
    return _encode(image)


class FixtureGenerationClient:
    """`GenerationClient` that never leaves the process.

    `score` is returned by every judge call; `caption_text` overrides the
    generated caption (an empty string exercises the fallback caption path).
    Every call is appended to `calls` as `(operation, detail)`.
    """

    def __init__(
        self,
        *,
        score: int = 8,
        caption_text: Optional[str] = None,
        delay_s: float = 0.0,
    ) -> None:
        self.score = score
        self.caption_text = caption_text
        self.delay_s = delay_s
        self.calls: List[Tuple[str, str]] = []

    async def _latency(self) -> None:
        if self.delay_s > 0:
            await asyncio.sleep(self.delay_s)

    async def generate_sketch(self, pose_text: str, aspect_ratio: AspectRatio) -> bytes:
        self.calls.append(("sketch", pose_text))
        await self._latency()
        return render_sketch(pose_text, aspect_ratio)

    async def synthesize(
        self,
        prompt: str,
        references: Sequence[ReferenceImage],
        sketch: Optional[bytes],
        config: GenerationConfig,
        *,
        negative_prompt: Optional[str] = None,
    ) -> List[bytes]:
        self.calls.append(("synthesize", prompt))
        await self._latency()
        slots = ",".join(slot.value for slot, _ in references)
        return [render_frame(f"{prompt}|{slots}|{config.raw_mode}", config.aspect_ratio)]

    async def evaluate_quality(self, image: bytes) -> int:
        self.calls.append(("evaluate", f"{len(image)} bytes"))
        await self._latency()
        return max(0, min(10, self.score))

    async def caption(self, image: bytes, trigger_label: str) -> str:
        self.calls.append(("caption", trigger_label))
        await self._latency()
        if self.caption_text is not None:
            return self.caption_text
        return f"{trigger_label}, fixture render, plain background, flat lighting"

    def call_count(self, operation: Optional[str] = None) -> int:
        if operation is None:
            return len(self.calls)
        return sum(1 for name, _ in self.calls if name == operation)


__all__ = ["FixtureGenerationClient", "fixture_dimensions", "render_frame", "render_sketch"]
