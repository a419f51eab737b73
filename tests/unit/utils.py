"""Test helpers: in-memory images, small plans, and a recording fake client."""

from __future__ import annotations

import io
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from PIL import Image

from hyperreal_factory.adapters.common import RemoteCallError
from hyperreal_factory.plan_catalog import PlanCatalog
from hyperreal_factory.schemas import AspectRatio, GenerationConfig


def make_png(width: int = 64, height: int = 64, color: Tuple[int, int, int] = (120, 80, 40)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_catalog(*descriptions: str) -> PlanCatalog:
    return PlanCatalog.from_dicts(
        [
            {
                "id": index + 1,
                "shot_type": "Close-up",
                "expression": "Neutral",
                "lighting": "Soft window light",
                "outfit": "Grey hoodie",
                "description": description,
            }
            for index, description in enumerate(descriptions)
        ]
    )


class RecordingClient:
    """Fake generation client that records every call in order.

    `hooks` maps an operation name to a callable run when that operation is
    invoked; the callable receives the 1-based count of calls made to that
    operation so far and may raise to simulate a failure.
    """

    def __init__(
        self,
        *,
        scores: Sequence[int] = (8,),
        caption_text: str = "ada, close up portrait of a woman, film grain",
        synth_images: int = 1,
        hooks: Optional[Dict[str, Callable[[int], None]]] = None,
    ) -> None:
        self.calls: List[str] = []
        self.synth_requests: List[Dict[str, object]] = []
        self._scores = list(scores)
        self.caption_text = caption_text
        self.synth_images = synth_images
        self.hooks = hooks or {}
        self.image = make_png(color=(200, 10, 10))
        self.sketch = make_png(color=(255, 255, 255))

    def count(self, operation: str) -> int:
        return sum(1 for name in self.calls if name == operation)

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        hook = self.hooks.get(operation)
        if hook is not None:
            hook(self.count(operation))

    async def generate_sketch(self, pose_text: str, aspect_ratio: AspectRatio) -> bytes:
        self._record("sketch")
        return self.sketch

    async def synthesize(self, prompt, references, sketch, config: GenerationConfig, *, negative_prompt=None):
        self.synth_requests.append(
            {
                "prompt": prompt,
                "slots": [slot for slot, _ in references],
                "sketch": sketch,
                "negative_prompt": negative_prompt,
            }
        )
        self._record("synthesize")
        return [self.image] * self.synth_images

    async def evaluate_quality(self, image: bytes) -> int:
        self._record("evaluate")
        index = min(self.count("evaluate") - 1, len(self._scores) - 1)
        return self._scores[index]

    async def caption(self, image: bytes, trigger_label: str) -> str:
        self._record("caption")
        return self.caption_text


def raise_remote(operation: str, *, on_call: int = 1) -> Callable[[int], None]:
    def _hook(count: int) -> None:
        if count == on_call:
            raise RemoteCallError(f"{operation} exploded", operation=operation, code="http_500")

    return _hook
