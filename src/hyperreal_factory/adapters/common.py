"""Contract shared by every generation client plus the errors they raise."""
from __future__ import annotations

from typing import List, Optional, Protocol, Sequence, Tuple

from ..schemas import AspectRatio, GenerationConfig, Phase, ReferenceSlot

ReferenceImage = Tuple[ReferenceSlot, bytes]

_JPEG_MAGIC = b"\xff\xd8\xff"
_WEBP_MAGIC = b"RIFF"


class MissingDependencyError(RuntimeError):
    """Raised when the remote client is requested without an API key.

    The message should tell the user what is missing and how to provide it.
    """

    pass


class RemoteCallError(RuntimeError):
    """A remote operation failed or returned nothing usable.

    `operation` names the client call (`sketch`, `synthesize`, `evaluate`,
    `caption`). `phase` is filled in by the controller when the error crosses
    a pipeline boundary. `code` is a short machine-readable tag such as
    `api_key_invalid` or `empty_result`.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        phase: Optional[Phase] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.phase = phase
        self.code = code

    def describe(self) -> str:
        where = self.phase.value if self.phase is not None else self.operation
        suffix = f" [{self.code}]" if self.code else ""
        return f"{where}: {self}{suffix}"


class GenerationClient(Protocol):
    """Four independently fallible remote operations.

    Implementations translate every transport or SDK failure into
    `RemoteCallError`. Image payloads are opaque encoded bytes.
    """

    async def generate_sketch(self, pose_text: str, aspect_ratio: AspectRatio) -> bytes:
        ...

    async def synthesize(
        self,
        prompt: str,
        references: Sequence[ReferenceImage],
        sketch: Optional[bytes],
        config: GenerationConfig,
        *,
        negative_prompt: Optional[str] = None,
    ) -> List[bytes]:
        ...

    async def evaluate_quality(self, image: bytes) -> int:
        ...

    async def caption(self, image: bytes, trigger_label: str) -> str:
        ...


def sniff_mime_type(data: bytes) -> str:
    """Best-effort mime type from magic bytes; PNG when unknown."""
    if data.startswith(_JPEG_MAGIC):
        return "image/jpeg"
    if data.startswith(_WEBP_MAGIC) and data[8:12] == b"WEBP":
        return "image/webp"
    return "image/png"


__all__ = [
    "GenerationClient",
    "MissingDependencyError",
    "ReferenceImage",
    "RemoteCallError",
    "sniff_mime_type",
]
