from __future__ import annotations

import io
import logging

import pytest
from PIL import Image

from hyperreal_factory import image_transform
from hyperreal_factory.schemas import ReferenceSet, ReferenceSlot, SelectionEntry, Transform
from tests.unit.utils import make_png


def _size(data: bytes) -> tuple:
    with Image.open(io.BytesIO(data)) as img:
        return img.size


def test_crop_box_is_square_fraction_of_short_side() -> None:
    left, top, right, bottom = image_transform.crop_box(1000, 1000)
    assert right - left == bottom - top == 520
    assert left == 240
    # centre nudged up by 5% of the height
    assert top == 190


def test_crop_box_on_portrait_uses_width() -> None:
    left, top, right, bottom = image_transform.crop_box(600, 1200)
    side = right - left
    assert side == bottom - top == round(600 * image_transform.CROP_FRACTION)
    assert left == (600 - side) // 2
    assert 0 <= top and bottom <= 1200


def test_crop_box_stays_inside_image() -> None:
    for width, height in [(1, 1), (3, 200), (200, 3), (17, 19)]:
        left, top, right, bottom = image_transform.crop_box(width, height)
        assert 0 <= left < right <= width
        assert 0 <= top < bottom <= height


def test_crop_box_rejects_empty_dimensions() -> None:
    with pytest.raises(ValueError):
        image_transform.crop_box(0, 10)


def test_crop_returns_smaller_png() -> None:
    cropped = image_transform.crop(make_png(200, 100))
    assert _size(cropped) == (52, 52)
    assert cropped.startswith(b"\x89PNG")


def test_crop_is_deterministic() -> None:
    source = make_png(128, 160, color=(10, 200, 30))
    assert image_transform.crop(source) == image_transform.crop(source)


def test_crop_returns_original_when_undecodable(caplog: pytest.LogCaptureFixture) -> None:
    garbage = b"not an image at all"
    with caplog.at_level(logging.WARNING, logger="hyperreal_factory.image_transform"):
        assert image_transform.crop(garbage) is garbage
    assert "crop failed" in caplog.text


def test_apply_selection_crops_only_crop_entries() -> None:
    front = make_png(100, 100)
    side = make_png(80, 120)
    refs = ReferenceSet({"front": front, "side": side})
    plan = (
        SelectionEntry(ReferenceSlot.FRONT, Transform.CROP),
        SelectionEntry(ReferenceSlot.SIDE, Transform.FULL),
        SelectionEntry(ReferenceSlot.SIDE90, Transform.FULL),
    )
    prepared = image_transform.apply_selection(refs, plan)
    assert [slot for slot, _ in prepared] == [ReferenceSlot.FRONT, ReferenceSlot.SIDE]
    assert _size(prepared[0][1]) == (52, 52)
    assert prepared[1][1] is side
