import json

import httpx
import pytest
from pydantic import ValidationError

from imagen_proxy.errors import UpstreamError
from imagen_proxy.models import GenerationRequest
from imagen_proxy.services.imagen import (
    build_predict_body,
    generate_images,
    predictions_to_images,
    strip_data_uri,
)
from imagen_proxy.services.translator import PromptTranslator

BASE_URL = "https://vertex.test/v1/projects/demo/locations/us-central1"


class StaticTranslator(PromptTranslator):

    def __init__(self, mapping):
        super().__init__([])
        self.mapping = mapping

    async def detect_and_translate(self, text, target_lang="en"):
        return self.mapping.get(text, text)


def _client(handler):
    return httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))


def test_build_predict_body_defaults():
    request = GenerationRequest(prompt="a lighthouse")

    assert build_predict_body(request, "a lighthouse") == {
        "instances": [{"prompt": "a lighthouse"}],
        "parameters": {"aspectRatio": "1:1", "numberOfImages": 1},
    }


@pytest.mark.parametrize("model", ["imagen-3.0-generate-001", "imagen-3.0-fast-generate-001", "imagen_4"])
def test_model_name_accepts_model_ids(model):
    assert GenerationRequest(prompt="x", model=model).model == model


@pytest.mark.parametrize("model", ["../x", "a/b", "imagen:predict", "imagen?x=1", "-imagen"])
def test_model_name_rejects_path_characters(model):
    with pytest.raises(ValidationError):
        GenerationRequest(prompt="x", model=model)


def test_build_predict_body_with_optionals():
    request = GenerationRequest(prompt="p", aspectRatio="16:9", numberOfImages=4, seed=0)

    body = build_predict_body(request, "p", negative_prompt="blurry", image_base64="data:image/jpeg;base64,QUJD")

    assert body["instances"][0] == {
        "prompt": "p",
        "image": {"bytesBase64Encoded": "QUJD"},
        "negativePrompt": "blurry",
    }
    assert body["parameters"] == {"aspectRatio": "16:9", "numberOfImages": 4, "seed": 0}


@pytest.mark.parametrize(
    "value, expected",
    [
        ("data:image/png;base64,AAA", "AAA"),
        ("data:image/webp;base64,BBB", "BBB"),
        ("CCC", "CCC"),
    ]
)
def test_strip_data_uri(value, expected):
    assert strip_data_uri(value) == expected


def test_predictions_to_images():
    filtered = {"raiFilteredReason": "blocked"}

    assert predictions_to_images([{"bytesBase64Encoded": "AAA"}, filtered]) == [
        "data:image/png;base64,AAA",
        filtered,
    ]


@pytest.mark.asyncio
async def test_generate_images_success():
    sent = []

    def handler(request):
        sent.append(request)
        return httpx.Response(200, json={"predictions": [{"bytesBase64Encoded": "AAA"}]})

    request = GenerationRequest(prompt="一只猫", negativePrompt="模糊", model="imagen-3.0-fast-generate-001")
    translator = StaticTranslator({"一只猫": "a cat", "模糊": "blurry"})

    async with _client(handler) as client:
        result = await generate_images(client, request, translator)

    assert result.images == ["data:image/png;base64,AAA"]
    assert result.count == 1
    assert result.model == "imagen-3.0-fast-generate-001"

    assert sent[0].url.path.endswith("/publishers/google/models/imagen-3.0-fast-generate-001:predict")
    body = json.loads(sent[0].content)
    assert body["instances"] == [{"prompt": "a cat", "negativePrompt": "blurry"}]


@pytest.mark.asyncio
async def test_generate_images_without_predictions():
    async with _client(lambda request: httpx.Response(200, json={})) as client:
        result = await generate_images(client, GenerationRequest(prompt="x"), StaticTranslator({}))

    assert result.images == []
    assert result.count == 0


@pytest.mark.asyncio
async def test_generate_images_upstream_error():
    error_body = {"error": {"code": 429, "message": "quota exceeded", "status": "RESOURCE_EXHAUSTED"}}

    async with _client(lambda request: httpx.Response(429, json=error_body)) as client:
        with pytest.raises(UpstreamError) as exc_info:
            await generate_images(client, GenerationRequest(prompt="x"), StaticTranslator({}))

    assert exc_info.value.to_payload() == {
        "code": 429,
        "message": "quota exceeded",
        "error": error_body,
    }


@pytest.mark.asyncio
async def test_upstream_error_with_plain_message():
    async with _client(lambda request: httpx.Response(400, json={"message": "bad aspect ratio"})) as client:
        with pytest.raises(UpstreamError) as exc_info:
            await generate_images(client, GenerationRequest(prompt="x"), StaticTranslator({}))

    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "bad aspect ratio"


@pytest.mark.asyncio
async def test_upstream_error_with_text_body():
    async with _client(lambda request: httpx.Response(502, text="Bad Gateway")) as client:
        with pytest.raises(UpstreamError) as exc_info:
            await generate_images(client, GenerationRequest(prompt="x"), StaticTranslator({}))

    assert exc_info.value.to_payload() == {"code": 502, "message": "生成失败", "error": "Bad Gateway"}
