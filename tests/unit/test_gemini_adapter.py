from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any, List

import pytest
from google.genai import errors as genai_errors

from hyperreal_factory.adapters.common import MissingDependencyError, RemoteCallError
from hyperreal_factory.adapters.gemini_adapter import GeminiGenerationClient, extract_images, extract_text
from hyperreal_factory.schemas import AspectRatio, GenerationConfig, ImageSize, ReferenceSlot
from tests.unit.utils import make_png


def _image_response(*payloads: bytes) -> SimpleNamespace:
    parts = [SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type="image/png"), text=None) for data in payloads]
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))])


def _text_response(text: str) -> SimpleNamespace:
    part = SimpleNamespace(inline_data=None, text=text)
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])


class _FakeModels:
    def __init__(self, responses: List[Any]) -> None:
        self.responses = list(responses)
        self.requests: List[dict] = []

    async def generate_content(self, *, model: str, contents: List[Any], config: Any = None) -> Any:
        self.requests.append({"model": model, "contents": contents, "config": config})
        result = self.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _client(*responses: Any) -> tuple:
    models = _FakeModels(list(responses))
    fake = SimpleNamespace(aio=SimpleNamespace(models=models))
    return GeminiGenerationClient(client=fake, image_model="img-model", vision_model="vis-model"), models


def test_requires_api_key_without_injected_client() -> None:
    with pytest.raises(MissingDependencyError):
        GeminiGenerationClient(api_key=None)


def test_sketch_sends_prompt_and_aspect_ratio() -> None:
    sketch = make_png(color=(255, 255, 255))
    client, models = _client(_image_response(sketch))
    result = asyncio.run(client.generate_sketch("Side profile, neutral", AspectRatio.PORTRAIT))
    assert result == sketch
    request = models.requests[0]
    assert request["model"] == "img-model"
    assert '"Side profile, neutral"' in request["contents"][0]
    assert request["config"].image_config.aspect_ratio == "3:4"


def test_sketch_without_image_is_remote_error() -> None:
    client, _ = _client(_text_response("I cannot draw that"))
    with pytest.raises(RemoteCallError) as excinfo:
        asyncio.run(client.generate_sketch("pose", AspectRatio.SQUARE))
    assert excinfo.value.code == "empty_result"
    assert excinfo.value.operation == "sketch"


def test_synthesize_orders_sketch_before_references() -> None:
    sketch = make_png(color=(255, 255, 255))
    front = make_png(color=(1, 2, 3))
    out = make_png(color=(9, 9, 9))
    client, models = _client(_image_response(out, out))
    config = GenerationConfig(aspect_ratio=AspectRatio.WIDE, image_size=ImageSize.TWO_K)
    images = asyncio.run(client.synthesize("portrait", [(ReferenceSlot.FRONT, front)], sketch, config))
    assert images == [out, out]

    contents = models.requests[0]["contents"]
    assert contents[0].inline_data.data == sketch
    assert contents[1].inline_data.data == front
    assert isinstance(contents[2], str)
    assert "Image 1 (POSE SKETCH - COMPOSITION ONLY)" in contents[2]
    assert "Image 2 (FRONT VIEW - PRIMARY LIKENESS)" in contents[2]
    image_config = models.requests[0]["config"].image_config
    assert image_config.aspect_ratio == "16:9"
    assert image_config.image_size == "2K"


def test_synthesize_empty_response_returns_no_images() -> None:
    client, _ = _client(SimpleNamespace(candidates=[]))
    assert asyncio.run(client.synthesize("portrait", [], None, GenerationConfig())) == []


def test_evaluate_parses_first_integer() -> None:
    client, models = _client(_text_response("Score: 7"))
    assert asyncio.run(client.evaluate_quality(make_png())) == 7
    assert models.requests[0]["model"] == "vis-model"


def test_evaluate_non_numeric_is_zero() -> None:
    client, _ = _client(_text_response("looks fine to me"))
    assert asyncio.run(client.evaluate_quality(make_png())) == 0


def test_caption_returns_stripped_text() -> None:
    client, models = _client(_text_response("  ohwx, close up portrait \n"))
    assert asyncio.run(client.caption(make_png(), "ohwx")) == "ohwx, close up portrait"
    assert 'trigger word: "ohwx"' in models.requests[0]["contents"][1]


def test_entity_not_found_maps_to_api_key_invalid() -> None:
    error = genai_errors.ClientError(
        404,
        {"error": {"code": 404, "message": "Requested entity was not found.", "status": "NOT_FOUND"}},
    )
    client, _ = _client(error)
    with pytest.raises(RemoteCallError) as excinfo:
        asyncio.run(client.synthesize("portrait", [], None, GenerationConfig()))
    assert excinfo.value.code == "api_key_invalid"
    assert excinfo.value.operation == "synthesize"
    assert excinfo.value.__cause__ is error


def test_transport_errors_are_wrapped() -> None:
    client, _ = _client(ConnectionError("socket closed"))
    with pytest.raises(RemoteCallError) as excinfo:
        asyncio.run(client.caption(make_png(), "ohwx"))
    assert excinfo.value.code == "transport_error"
    assert isinstance(excinfo.value.__cause__, ConnectionError)


def test_extract_helpers_tolerate_missing_fields() -> None:
    assert extract_images(SimpleNamespace()) == []
    assert extract_text(SimpleNamespace(candidates=[SimpleNamespace(content=None)])) == ""
