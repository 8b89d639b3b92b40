"""
Tests for screenshot extraction through the vision model.

Tests cover:
- Parsing the model's reply text (fences, prose, style aliases, defaults)
- Request shape sent to generateContent
- API key resolution
- HTTP and reply failures
- Screenshot downscaling
- Single outstanding extraction and cancellation
"""

import asyncio
import base64
import io
import json

import httpx
import pytest
from PIL import Image

from uma_engine.config import VisionConfig
from uma_engine.services.build_cards import Aptitude, Strategy
from uma_engine.services.vision_service import (
    ImageProcessingError,
    ScreenshotVisionService,
    VisionBusyError,
    VisionRequestError,
    VisionResponseError,
    VisionServiceError,
    parse_ocr_response,
)


OCR_REPLY = {
    "name": "Special Week",
    "outfit": "[Special Dreamer]",
    "speed": 1520,
    "stamina": 1105,
    "power": 980,
    "guts": 410,
    "wisdom": 720,
    "surfaceAptitude": "A",
    "distanceAptitude": "S",
    "strategyAptitude": "A",
    "strategy": "Senkou",
    "skills": ["Shooting Star", "Speed Star"],
}


def gemini_reply(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def screenshot(size=(32, 32), fmt="PNG") -> bytes:
    output = io.BytesIO()
    Image.new("RGB", size, (240, 240, 240)).save(output, format=fmt)
    return output.getvalue()


def make_service(handler, **config) -> ScreenshotVisionService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ScreenshotVisionService(VisionConfig(**config), client=client)


class TestParseResponse:

    def test_plain_json(self):
        data = parse_ocr_response(json.dumps(OCR_REPLY))

        assert data.name == "Special Week"
        assert data.outfit == "[Special Dreamer]"
        assert data.speed == 1520
        assert data.distance_aptitude == Aptitude.S
        assert data.strategy == Strategy.SENKOU
        assert data.skills == ["Shooting Star", "Speed Star"]

    def test_markdown_fence(self):
        data = parse_ocr_response("```json\n" + json.dumps(OCR_REPLY) + "\n```")
        assert data.wisdom == 720

    def test_json_inside_prose(self):
        text = "Here is the data you asked for:\n" + json.dumps(OCR_REPLY) + "\nLet me know {if} you need more."
        assert parse_ocr_response(text).guts == 410

    @pytest.mark.parametrize("style,expected", [
        ("Front Runner", Strategy.NIGE),
        ("Pace", Strategy.SENKOU),
        ("late surger", Strategy.SASI),
        ("End", Strategy.OIKOMI),
        ("Oonige", Strategy.OONIGE),
        ("Sprinter", Strategy.NIGE),
        (None, Strategy.NIGE),
    ])
    def test_strategy_coercion(self, style, expected):
        reply = dict(OCR_REPLY, strategy=style)
        assert parse_ocr_response(json.dumps(reply)).strategy == expected

    def test_aptitude_defaults(self):
        reply = dict(OCR_REPLY, surfaceAptitude="b", distanceAptitude="??")
        del reply["strategyAptitude"]
        data = parse_ocr_response(json.dumps(reply))

        assert data.surface_aptitude == Aptitude.B
        assert data.distance_aptitude == Aptitude.A
        assert data.strategy_aptitude == Aptitude.A

    def test_float_stats_rounded(self):
        assert parse_ocr_response(json.dumps(dict(OCR_REPLY, speed=1519.7))).speed == 1520

    def test_skills_cleaned(self):
        assert parse_ocr_response(json.dumps(dict(OCR_REPLY, skills="Speed Star"))).skills == []
        assert parse_ocr_response(json.dumps(dict(OCR_REPLY, skills=["Speed Star", 3, None]))).skills == ["Speed Star"]

    @pytest.mark.parametrize("text", [None, "", "   ", "no json here", "[1, 2, 3]"])
    def test_unusable_reply(self, text):
        with pytest.raises(VisionResponseError):
            parse_ocr_response(text)

    @pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_stat(self, literal):
        text = json.dumps(OCR_REPLY).replace('"speed": 1520', f'"speed": {literal}')
        with pytest.raises(VisionResponseError, match="Invalid stat values"):
            parse_ocr_response(text)

    @pytest.mark.parametrize("value", ["1520", None, True])
    def test_non_numeric_stat(self, value):
        with pytest.raises(VisionResponseError, match="Invalid stat values"):
            parse_ocr_response(json.dumps(dict(OCR_REPLY, power=value)))


class TestExtract:

    def test_request_and_result(self):
        captured = {}

        def handler(request):
            captured["request"] = request
            return httpx.Response(200, json=gemini_reply(json.dumps(OCR_REPLY)))

        service = make_service(handler)
        image = screenshot()
        data = asyncio.run(service.extract(image, "image/png", "test-key"))

        request = captured["request"]
        assert request.method == "POST"
        assert request.url.path == "/v1beta/models/gemini-flash-latest:generateContent"
        assert request.url.params["key"] == "test-key"

        body = json.loads(request.content)
        parts = body["contents"][0]["parts"]
        assert parts[0]["inline_data"]["mime_type"] == "image/png"
        assert base64.b64decode(parts[0]["inline_data"]["data"]) == image
        assert "Uma Musume" in parts[1]["text"]
        assert body["generationConfig"] == {
            "temperature": 0.1,
            "topK": 1,
            "topP": 0.8,
            "maxOutputTokens": 2048,
        }

        assert data.speed == 1520
        assert not service.busy

    def test_api_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "env-key")
        keys = []

        def handler(request):
            keys.append(request.url.params["key"])
            return httpx.Response(200, json=gemini_reply(json.dumps(OCR_REPLY)))

        service = make_service(handler)
        asyncio.run(service.extract(screenshot(), "image/png"))
        asyncio.run(service.extract(screenshot(), "image/png", "  "))
        asyncio.run(service.extract(screenshot(), "image/png", "explicit"))

        assert keys == ["env-key", "env-key", "explicit"]

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        service = make_service(lambda request: httpx.Response(500))

        with pytest.raises(VisionServiceError, match="API key"):
            asyncio.run(service.extract(screenshot(), "image/png"))

    def test_disabled(self):
        service = make_service(lambda request: httpx.Response(500), enabled=False)
        with pytest.raises(VisionServiceError, match="disabled"):
            asyncio.run(service.extract(screenshot(), "image/png", "key"))

    def test_api_error_message(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"code": 400, "message": "API key not valid."}})

        service = make_service(handler)
        with pytest.raises(VisionRequestError, match="API key not valid."):
            asyncio.run(service.extract(screenshot(), "image/png", "bad"))

    def test_http_status_without_body(self):
        service = make_service(lambda request: httpx.Response(503, text="unavailable"))
        with pytest.raises(VisionRequestError, match="status 503"):
            asyncio.run(service.extract(screenshot(), "image/png", "key"))

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        service = make_service(handler)
        with pytest.raises(VisionRequestError):
            asyncio.run(service.extract(screenshot(), "image/png", "key"))

    @pytest.mark.parametrize("reply", [{}, {"candidates": []}, {"candidates": [{"content": {"parts": []}}]}])
    def test_reply_without_text(self, reply):
        service = make_service(lambda request: httpx.Response(200, json=reply))
        with pytest.raises(VisionResponseError):
            asyncio.run(service.extract(screenshot(), "image/png", "key"))

    def test_undecodable_image(self):
        service = make_service(lambda request: httpx.Response(500))
        with pytest.raises(ImageProcessingError):
            asyncio.run(service.extract(b"not an image", "image/png", "key"))
        assert not service.busy


class TestImagePreparation:

    def _sent_image(self, image_bytes, mime_type, **config):
        sent = {}

        def handler(request):
            sent.update(json.loads(request.content)["contents"][0]["parts"][0]["inline_data"])
            return httpx.Response(200, json=gemini_reply(json.dumps(OCR_REPLY)))

        asyncio.run(make_service(handler, **config).extract(image_bytes, mime_type, "key"))
        return base64.b64decode(sent["data"]), sent["mime_type"]

    def test_large_image_downscaled(self):
        data, mime_type = self._sent_image(screenshot((200, 100), fmt="JPEG"), "image/jpeg", resize_target=64)

        assert mime_type == "image/png"
        assert Image.open(io.BytesIO(data)).size == (64, 32)

    def test_small_image_sent_as_is(self):
        original = screenshot((40, 40), fmt="JPEG")
        data, mime_type = self._sent_image(original, "image/jpeg", resize_target=64)

        assert data == original
        assert mime_type == "image/jpeg"


class TestConcurrency:

    def test_second_extraction_rejected_while_busy(self):
        async def scenario():
            release = asyncio.Event()

            async def handler(request):
                await release.wait()
                return httpx.Response(200, json=gemini_reply(json.dumps(OCR_REPLY)))

            service = make_service(handler)
            first = asyncio.create_task(service.extract(screenshot(), "image/png", "key"))
            for _ in range(100):
                if service.busy:
                    break
                await asyncio.sleep(0)
            assert service.busy

            with pytest.raises(VisionBusyError):
                await service.extract(screenshot(), "image/png", "key")

            release.set()
            data = await first
            assert not service.busy
            await service.close()
            return data

        assert asyncio.run(scenario()).name == "Special Week"

    def test_cancelled_extraction_leaves_service_idle(self):
        async def scenario():
            async def handler(request):
                await asyncio.Event().wait()

            service = make_service(handler)
            task = asyncio.create_task(service.extract(screenshot(), "image/png", "key"))
            for _ in range(100):
                if service.busy:
                    break
                await asyncio.sleep(0)

            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            assert not service.busy
            await service.close()

        asyncio.run(scenario())
