from __future__ import annotations

import io
import logging
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from .schemas import ReferenceSet, ReferenceSlot, SelectionPlan, Transform

LOG = logging.getLogger(__name__)

CROP_FRACTION = 0.52
UPWARD_BIAS = 0.05


def crop_box(width: int, height: int, *, fraction: float = CROP_FRACTION, upward_bias: float = UPWARD_BIAS) -> Tuple[int, int, int, int]:
    """Square face window: `fraction` of the shorter side, centred, nudged up by `upward_bias` of the height."""
    if width <= 0 or height <= 0:
        raise ValueError("image dimensions must be positive")
    side = max(1, int(round(min(width, height) * fraction)))
    centre_x = width / 2.0
    centre_y = height / 2.0 - height * upward_bias
    left = int(round(centre_x - side / 2.0))
    top = int(round(centre_y - side / 2.0))
    left = min(max(left, 0), width - side)
    top = min(max(top, 0), height - side)
    return left, top, left + side, top + side


def crop(image: bytes) -> bytes:
    """Return a PNG of the central face window of `image`.

    Undecodable input is returned unchanged: losing one reference must not
    abort a run.
    """
    try:
        with Image.open(io.BytesIO(image)) as source:
            source.load()
            box = crop_box(*source.size)
            cropped = source.crop(box)
            if cropped.mode not in ("RGB", "RGBA", "L"):
                cropped = cropped.convert("RGB")
            out = io.BytesIO()
            cropped.save(out, format="PNG")
            return out.getvalue()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        LOG.warning("Reference crop failed, sending original image: %s", exc)
        return image


def apply_selection(references: ReferenceSet, plan: SelectionPlan) -> list[tuple[ReferenceSlot, bytes]]:
    """Materialize a selection plan into (slot, payload) pairs, in plan order."""
    prepared: list[tuple[ReferenceSlot, bytes]] = []
    for entry in plan:
        payload = references.get(entry.slot)
        if payload is None:
            continue
        if entry.transform is Transform.CROP:
            payload = crop(payload)
        prepared.append((entry.slot, payload))
    return prepared


__all__ = ["CROP_FRACTION", "UPWARD_BIAS", "apply_selection", "crop", "crop_box"]
