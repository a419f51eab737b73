from __future__ import annotations

import base64
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AspectRatio(str, Enum):
    SQUARE = "1:1"
    PORTRAIT = "3:4"
    LANDSCAPE = "4:3"
    TALL = "9:16"
    WIDE = "16:9"


class ImageSize(str, Enum):
    ONE_K = "1K"
    TWO_K = "2K"
    FOUR_K = "4K"


class ReferenceSlot(str, Enum):
    """Fixed set of identity and garment reference views."""

    FRONT = "front"
    SIDE = "side"
    THREE_QUARTER = "three_quarter"
    EXPRESSION = "expression"
    SIDE90 = "side90"
    PRODUCT1 = "product1"
    PRODUCT2 = "product2"
    PRODUCT3 = "product3"
    PRODUCT4 = "product4"

    @property
    def is_product(self) -> bool:
        return self.value.startswith("product")

    @classmethod
    def _missing_(cls, value: object) -> Optional["ReferenceSlot"]:
        # Browser clients send camelCase names ("threeQuarter").
        if not isinstance(value, str):
            return None
        snake = "".join(f"_{char.lower()}" if char.isupper() else char for char in value)
        for member in cls:
            if member.value == snake:
                return member
        return None


IDENTITY_SLOTS: Tuple[ReferenceSlot, ...] = (
    ReferenceSlot.FRONT,
    ReferenceSlot.SIDE,
    ReferenceSlot.THREE_QUARTER,
    ReferenceSlot.EXPRESSION,
    ReferenceSlot.SIDE90,
)
PRODUCT_SLOTS: Tuple[ReferenceSlot, ...] = (
    ReferenceSlot.PRODUCT1,
    ReferenceSlot.PRODUCT2,
    ReferenceSlot.PRODUCT3,
    ReferenceSlot.PRODUCT4,
)

# Labels used in the synthesis image map so the model knows what each reference shows.
SLOT_LABELS: Dict[ReferenceSlot, str] = {
    ReferenceSlot.FRONT: "FRONT VIEW - PRIMARY LIKENESS",
    ReferenceSlot.SIDE: "SIDE PROFILE - NOSE/JAW STRUCTURE",
    ReferenceSlot.THREE_QUARTER: "3/4 ANGLE - DEPTH",
    ReferenceSlot.EXPRESSION: "EXPRESSION REF - SMILE/TEETH",
    ReferenceSlot.SIDE90: "90 DEGREE SIDE PROFILE - STRICT STRUCTURE",
    ReferenceSlot.PRODUCT1: "PRODUCT 1 - GARMENT DETAIL",
    ReferenceSlot.PRODUCT2: "PRODUCT 2 - GARMENT DETAIL",
    ReferenceSlot.PRODUCT3: "PRODUCT 3 - GARMENT DETAIL",
    ReferenceSlot.PRODUCT4: "PRODUCT 4 - GARMENT DETAIL",
}


class Transform(str, Enum):
    CROP = "crop"
    FULL = "full"


@dataclass(frozen=True)
class SelectionEntry:
    slot: ReferenceSlot
    transform: Transform


SelectionPlan = Tuple[SelectionEntry, ...]


class Phase(str, Enum):
    IDLE = "idle"
    SKETCHING = "sketching"
    GENERATING = "generating"
    JUDGING = "judging"
    CAPTIONING = "captioning"
    WAITING = "waiting"
    STOPPED = "stopped"


class ReferenceSet:
    """Read-only mapping of reference slots to encoded image payloads.

    Empty payloads are treated as absent so callers can pass through form
    state without filtering it first.
    """

    def __init__(self, images: Optional[Mapping[Union[ReferenceSlot, str], Optional[bytes]]] = None) -> None:
        self._images: Dict[ReferenceSlot, bytes] = {}
        for key, payload in (images or {}).items():
            slot = ReferenceSlot(key)
            if payload:
                self._images[slot] = bytes(payload)

    @classmethod
    def from_paths(cls, paths: Mapping[Union[ReferenceSlot, str], Union[str, Path, None]]) -> "ReferenceSet":
        images: Dict[ReferenceSlot, Optional[bytes]] = {}
        for key, path in paths.items():
            images[ReferenceSlot(key)] = Path(path).read_bytes() if path else None
        return cls(images)

    @classmethod
    def from_base64(cls, encoded: Mapping[str, Optional[str]]) -> "ReferenceSet":
        images: Dict[ReferenceSlot, Optional[bytes]] = {}
        for key, value in encoded.items():
            if not value:
                continue
            # Accept data URLs as produced by browser file readers.
            _, _, data = value.rpartition(",")
            images[ReferenceSlot(key)] = base64.b64decode(data, validate=True)
        return cls(images)

    def get(self, slot: Union[ReferenceSlot, str]) -> Optional[bytes]:
        return self._images.get(ReferenceSlot(slot))

    def has(self, slot: Union[ReferenceSlot, str]) -> bool:
        return ReferenceSlot(slot) in self._images

    def __contains__(self, slot: object) -> bool:
        try:
            return self.has(slot)  # type: ignore[arg-type]
        except ValueError:
            return False

    def __iter__(self) -> Iterator[ReferenceSlot]:
        return iter(self.populated())

    def __len__(self) -> int:
        return len(self._images)

    def populated(self) -> List[ReferenceSlot]:
        return [slot for slot in ReferenceSlot if slot in self._images]

    def product_slots(self) -> List[ReferenceSlot]:
        return [slot for slot in PRODUCT_SLOTS if slot in self._images]

    def __repr__(self) -> str:
        slots = ", ".join(slot.value for slot in self.populated())
        return f"ReferenceSet({slots})"


class PlanItem(BaseModel):
    """One shot of the dataset plan."""

    model_config = ConfigDict(frozen=True)

    id: int
    shot_type: str = Field(..., min_length=1)
    expression: str = Field(..., min_length=1)
    lighting: str = Field(..., min_length=1)
    outfit: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)

    @field_validator("shot_type", "expression", "lighting", "outfit", "description")
    @classmethod
    def _strip_non_empty(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("plan item fields must be non-empty")
        return stripped


class QualityGatePolicy(BaseModel):
    """Judge threshold and regeneration budget for one shot."""

    model_config = ConfigDict(frozen=True)

    threshold: int = Field(6, ge=0, le=10)
    max_retries: int = Field(0, ge=0)


class GenerationConfig(BaseModel):
    """Per-run synthesis settings chosen by the operator."""

    model_config = ConfigDict(frozen=True)

    aspect_ratio: AspectRatio = AspectRatio.SQUARE
    image_size: ImageSize = ImageSize.ONE_K
    raw_mode: bool = True
    quality_gate: Optional[QualityGatePolicy] = None

    @property
    def quality_gate_enabled(self) -> bool:
        return self.quality_gate is not None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_artifact_id() -> str:
    return uuid.uuid4().hex[:9]


class GeneratedArtifact(BaseModel):
    """A synthesized image plus its training caption."""

    id: str = Field(default_factory=new_artifact_id)
    image: bytes = Field(repr=False)
    prompt: str
    caption: str
    quality_score: Optional[int] = None
    source_plan_id: Optional[int] = None
    created_at: datetime = Field(default_factory=_now)
    is_dataset: bool = False
    is_analyzing: bool = False

    def as_payload(self, *, include_image: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = self.model_dump(exclude={"image"}, mode="json")
        payload["image_bytes"] = len(self.image)
        if include_image:
            payload["image_base64"] = base64.b64encode(self.image).decode("ascii")
        return payload


class RunProgress(BaseModel):
    """Snapshot handed to status displays."""

    model_config = ConfigDict(frozen=True)

    cursor: int
    plan_length: int
    phase: Phase
    active: bool
    retry_count: int = 0
    current_plan_id: Optional[int] = None
    last_error: Optional[str] = None

    @property
    def fraction(self) -> float:
        if self.plan_length <= 0:
            return 0.0
        return min(1.0, self.cursor / self.plan_length)


__all__ = [
    "AspectRatio",
    "GeneratedArtifact",
    "GenerationConfig",
    "IDENTITY_SLOTS",
    "ImageSize",
    "PRODUCT_SLOTS",
    "Phase",
    "PlanItem",
    "QualityGatePolicy",
    "ReferenceSet",
    "ReferenceSlot",
    "RunProgress",
    "SLOT_LABELS",
    "SelectionEntry",
    "SelectionPlan",
    "Transform",
    "new_artifact_id",
]
