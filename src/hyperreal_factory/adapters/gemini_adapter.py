"""Generation client backed by the google-genai SDK (async surface).

Every SDK or transport failure is wrapped in `RemoteCallError` so the
pipeline never sees SDK exception types.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, List, Optional, Sequence

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from .. import prompts
from ..schemas import AspectRatio, GenerationConfig
from .common import MissingDependencyError, ReferenceImage, RemoteCallError, sniff_mime_type

LOG = logging.getLogger(__name__)

DEFAULT_IMAGE_MODEL = "gemini-3-pro-image-preview"
DEFAULT_VISION_MODEL = "gemini-3-pro-image-preview"

# Surfaced by the service when the key belongs to a project without model access.
_ENTITY_NOT_FOUND = "Requested entity was not found"


def _error_code(exc: Exception) -> str:
    message = str(exc)
    if _ENTITY_NOT_FOUND in message:
        return "api_key_invalid"
    code = getattr(exc, "code", None)
    if isinstance(code, int):
        return f"http_{code}"
    return "transport_error"


def _response_parts(response: Any) -> List[Any]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    content = getattr(candidates[0], "content", None)
    return list(getattr(content, "parts", None) or [])


def extract_images(response: Any) -> List[bytes]:
    images: List[bytes] = []
    for part in _response_parts(response):
        inline = getattr(part, "inline_data", None)
        data = getattr(inline, "data", None) if inline is not None else None
        if data:
            images.append(bytes(data))
    return images


def extract_text(response: Any) -> str:
    chunks = [part.text for part in _response_parts(response) if getattr(part, "text", None)]
    return "".join(chunks).strip()


class GeminiGenerationClient:
    """`GenerationClient` over `client.aio.models.generate_content`.

    Pass `client` to inject a pre-built (or fake) SDK client; otherwise one is
    created from `api_key`.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        image_model: str = DEFAULT_IMAGE_MODEL,
        vision_model: str = DEFAULT_VISION_MODEL,
        client: Any = None,
    ) -> None:
        if client is None:
            if not api_key:
                raise MissingDependencyError(
                    "API key not found: set GEMINI_API_KEY (or GOOGLE_API_KEY) or run with fixture mode"
                )
            client = genai.Client(api_key=api_key)
        self._client = client
        self.image_model = image_model
        self.vision_model = vision_model

    async def _call(self, operation: str, request: Awaitable[Any]) -> Any:
        try:
            return await request
        except genai_errors.APIError as exc:
            code = _error_code(exc)
            LOG.debug("[gemini] %s failed (%s): %s", operation, code, exc)
            raise RemoteCallError(f"{operation} request failed: {exc}", operation=operation, code=code) from exc
        except Exception as exc:
            raise RemoteCallError(
                f"{operation} request failed: {exc}", operation=operation, code=_error_code(exc)
            ) from exc

    def _generate(self, model: str, contents: List[Any], config: Optional[types.GenerateContentConfig]) -> Awaitable[Any]:
        return self._client.aio.models.generate_content(model=model, contents=contents, config=config)

    async def generate_sketch(self, pose_text: str, aspect_ratio: AspectRatio) -> bytes:
        config = types.GenerateContentConfig(
            response_modalities=["IMAGE"],
            image_config=types.ImageConfig(aspect_ratio=AspectRatio(aspect_ratio).value),
        )
        response = await self._call(
            "sketch", self._generate(self.image_model, [prompts.sketch_prompt(pose_text)], config)
        )
        images = extract_images(response)
        if not images:
            raise RemoteCallError("sketch returned no image", operation="sketch", code="empty_result")
        return images[0]

    async def synthesize(
        self,
        prompt: str,
        references: Sequence[ReferenceImage],
        sketch: Optional[bytes],
        config: GenerationConfig,
        *,
        negative_prompt: Optional[str] = None,
    ) -> List[bytes]:
        composed = prompts.synthesis_prompt(
            prompt,
            [slot for slot, _ in references],
            has_sketch=sketch is not None,
            raw_mode=config.raw_mode,
            negative_prompt=negative_prompt,
        )
        # Order must match the image map: sketch first, then references.
        contents: List[Any] = []
        if sketch is not None:
            contents.append(types.Part.from_bytes(data=sketch, mime_type=sniff_mime_type(sketch)))
        for _, payload in references:
            contents.append(types.Part.from_bytes(data=payload, mime_type=sniff_mime_type(payload)))
        contents.append(composed.text)

        request_config = types.GenerateContentConfig(
            response_modalities=["IMAGE"],
            image_config=types.ImageConfig(
                aspect_ratio=config.aspect_ratio.value,
                image_size=config.image_size.value,
            ),
        )
        response = await self._call("synthesize", self._generate(self.image_model, contents, request_config))
        return extract_images(response)

    async def evaluate_quality(self, image: bytes) -> int:
        contents = [
            types.Part.from_bytes(data=image, mime_type=sniff_mime_type(image)),
            prompts.judge_prompt(),
        ]
        response = await self._call("evaluate", self._generate(self.vision_model, contents, None))
        return prompts.parse_score(extract_text(response))

    async def caption(self, image: bytes, trigger_label: str) -> str:
        contents = [
            types.Part.from_bytes(data=image, mime_type=sniff_mime_type(image)),
            prompts.caption_prompt(trigger_label),
        ]
        response = await self._call("caption", self._generate(self.vision_model, contents, None))
        return extract_text(response)


__all__ = ["DEFAULT_IMAGE_MODEL", "DEFAULT_VISION_MODEL", "GeminiGenerationClient", "extract_images", "extract_text"]
