import asyncio
import json

import aiohttp
import pytest

from cutintake.extraction.part import GrainMode, SourceMethod
from cutintake.extraction.vision_adapter import (
    FILE_TYPE_IMAGE,
    FILE_TYPE_PDF,
    FILE_TYPE_UNKNOWN,
    AsyncVisionClient,
    JsonParseError,
    JsonPayload,
    VisionClientConfig,
    VisionParseOptions,
    detect_file_type,
    extract_json_payload,
    parse_ocr_text,
    parse_vision_response,
    parts_from_payload,
)


def test_fenced_json_block() -> None:
    payload = extract_json_payload('Here you go:\n```json\n[{"L": 720, "W": 560}]\n```\nDone.')
    assert isinstance(payload, JsonPayload)
    assert payload.strategy == "fenced"
    assert payload.data == [{"L": 720, "W": 560}]


def test_direct_json() -> None:
    payload = extract_json_payload('{"parts": []}')
    assert payload.strategy == "direct"
    assert payload.success


def test_array_wrapped_in_prose() -> None:
    payload = extract_json_payload('I found these parts: [{"L": 1, "W": 2}] hope it helps')
    assert payload.strategy == "array"
    assert payload.data == [{"L": 1, "W": 2}]


def test_object_wrapped_in_prose() -> None:
    payload = extract_json_payload('Result: {"label": "Door", "L": 720, "W": 560} end')
    assert payload.strategy == "object"
    assert payload.data["label"] == "Door"


def test_recovers_individual_objects() -> None:
    payload = extract_json_payload('{"L": 720, "W": 560} and also {"L": 600, "W": "3}00"}')
    assert payload.strategy == "recovered"
    assert payload.data == [{"L": 720, "W": 560}, {"L": 600, "W": "3}00"}]


@pytest.mark.parametrize("text, message", [("", "Empty response"), ("   ", "Empty response"), ("nothing here", "No JSON found in response")])
def test_unrecoverable_payloads(text: str, message: str) -> None:
    payload = extract_json_payload(text)
    assert isinstance(payload, JsonParseError)
    assert not payload.success
    assert payload.message == message


def test_parts_from_payload_maps_fields() -> None:
    items = [
        {
            "label": "Door",
            "L": 720,
            "W": 560,
            "qty": 2,
            "material": "White Melamine",
            "grain": "along_L",
            "edges": ["L1", "X9", "l2"],
        },
        {"length": "600mm", "width": "300", "quantity": "3", "thickness": 16, "material": "Zebrano", "edges": "W1, W2"},
        {"L": 0, "W": 5},
        "not a part",
    ]
    parts, warnings = parts_from_payload(items)
    assert len(parts) == 2
    door, shelf = parts
    assert door.material_id == "white-melamine"
    assert door.grain is GrainMode.ALONG_L
    assert door.allow_rotation is False
    assert door.edges == ["L1", "L2"]
    assert door.audit.source_ref == "item:1"
    assert door.audit.source_method is SourceMethod.OCR_GENERIC
    assert door.audit.confidence == pytest.approx(0.85)
    assert (shelf.size.L, shelf.size.W, shelf.qty, shelf.thickness_mm) == (600.0, 300.0, 3, 16.0)
    assert shelf.material_id == "Zebrano"
    assert shelf.edges == ["W1", "W2"]
    assert shelf.allow_rotation is True
    assert warnings == [
        "Item 3 skipped: missing or non-positive dimensions",
        "Item 4 is not an object",
    ]


def test_parts_from_nested_payload_and_defaults() -> None:
    options = VisionParseOptions(default_material_id="W", default_thickness_mm=19)
    parts, _ = parts_from_payload({"parts": [{"L": 720, "W": 560, "qty": -4}]}, options)
    assert parts[0].material_id == "W"
    assert parts[0].thickness_mm == 19.0
    assert parts[0].qty == 1


def test_unsupported_payload_type() -> None:
    parts, warnings = parts_from_payload(42)
    assert parts == []
    assert warnings == ["Unsupported payload type: int"]


def test_parse_vision_response() -> None:
    result = parse_vision_response('```json\n[{"label": "Side", "L": 720, "W": 560}]\n```')
    assert result.success
    assert result.confidence == pytest.approx(0.85)
    assert result.parts[0].label == "Side"


def test_parse_vision_response_failures() -> None:
    garbage = parse_vision_response("the image is blurry")
    assert not garbage.success
    assert garbage.errors == ["No JSON found in response"]
    assert garbage.raw_response == "the image is blurry"

    empty = parse_vision_response("[]")
    assert not empty.success
    assert empty.errors == []
    assert empty.warnings == ["No parts found in response"]


def test_parse_ocr_text_scales_confidence() -> None:
    generic = parse_ocr_text("Side 720x560 qty 2", ocr_confidence=0.5)
    part = generic.parts[0]
    assert part.audit.source_method is SourceMethod.OCR_GENERIC
    assert part.audit.confidence == pytest.approx(0.375)

    template = parse_ocr_text("Side 720x560 qty 2", ocr_confidence=1.7, template=True)
    assert template.parts[0].audit.source_method is SourceMethod.OCR_TEMPLATE
    assert template.parts[0].audit.confidence == pytest.approx(0.75)


@pytest.mark.parametrize(
    "content_type, head, expected",
    [
        ("image/png", None, FILE_TYPE_IMAGE),
        ("application/pdf", None, FILE_TYPE_PDF),
        (None, b"%PDF-1.7", FILE_TYPE_PDF),
        (None, b"\xff\xd8\xff\xe0", FILE_TYPE_IMAGE),
        (None, b"\x89PNG\r\n", FILE_TYPE_IMAGE),
        ("text/plain", b"hello", FILE_TYPE_UNKNOWN),
        (None, None, FILE_TYPE_UNKNOWN),
    ],
)
def test_detect_file_type(content_type, head, expected: str) -> None:
    assert detect_file_type(content_type, head) == expected


class _FakeResponse:
    def __init__(self, status: int, payload=None, body: str = "") -> None:
        self.status = status
        self._payload = payload
        self._body = body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self):
        return self._payload

    async def text(self) -> str:
        return self._body


class _FakeSession:
    def __init__(self, response: _FakeResponse | None = None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls: list[dict] = []

    def post(self, url: str, json=None, headers=None):
        self.calls.append({"url": url, "json": json, "headers": headers})
        if self.error is not None:
            raise self.error
        return self.response


def _extract(session: _FakeSession, config: VisionClientConfig):
    async def runner():
        async with AsyncVisionClient(config, session=session) as client:
            return await client.extract(b"\x89PNG\r\n")

    return asyncio.run(runner())


def _completion(content: str) -> dict:
    return {"choices": [{"message": {"content": content}}]}


def test_client_sends_image_and_parses_reply() -> None:
    reply = _completion('```json\n[{"label": "Door", "L": 720, "W": 560, "qty": 2}]\n```')
    session = _FakeSession(_FakeResponse(200, reply))
    config = VisionClientConfig(endpoint="https://vision.local/v1/chat/completions", api_key="secret", model="vision-1")
    result = _extract(session, config)

    assert result.success
    assert result.parts[0].qty == 2
    call = session.calls[0]
    assert call["url"] == "https://vision.local/v1/chat/completions"
    assert call["headers"]["Authorization"] == "Bearer secret"
    assert call["json"]["model"] == "vision-1"
    image = call["json"]["messages"][1]["content"][0]["image_url"]["url"]
    assert image.startswith("data:image/png;base64,")
    assert "secret" not in repr(config)


def test_client_reports_http_errors() -> None:
    session = _FakeSession(_FakeResponse(503, body="overloaded"))
    result = _extract(session, VisionClientConfig(endpoint="https://vision.local"))
    assert result.errors == ["Vision API error: 503"]
    assert result.raw_response == "overloaded"
    assert "Authorization" not in session.calls[0]["headers"]


def test_client_reports_network_errors() -> None:
    session = _FakeSession(error=aiohttp.ClientConnectionError("connection reset"))
    result = _extract(session, VisionClientConfig(endpoint="https://vision.local"))
    assert result.errors == ["connection reset"]
    assert not result.success


def test_client_reports_malformed_reply() -> None:
    session = _FakeSession(_FakeResponse(200, {"unexpected": True}))
    result = _extract(session, VisionClientConfig(endpoint="https://vision.local"))
    assert result.errors == ["Malformed vision response"]
    assert json.loads(result.raw_response) == {"unexpected": True}


def test_client_accepts_content_blocks() -> None:
    reply = {"choices": [{"message": {"content": [{"type": "text", "text": '[{"L": 720, '}, {"type": "text", "text": '"W": 560}]'}]}}]}
    session = _FakeSession(_FakeResponse(200, reply))
    result = _extract(session, VisionClientConfig(endpoint="https://vision.local"))
    assert result.parts[0].size.W == 560.0


def test_client_requires_endpoint() -> None:
    with pytest.raises(ValueError):
        AsyncVisionClient(VisionClientConfig())


def test_client_requires_context_manager() -> None:
    client = AsyncVisionClient(VisionClientConfig(endpoint="https://vision.local"))
    with pytest.raises(RuntimeError):
        asyncio.run(client.extract(b"\x89PNG"))


@pytest.mark.parametrize("content", [5, {"text": "[]"}, [{"type": "text", "text": 7}]])
def test_client_reports_non_text_content(content) -> None:
    session = _FakeSession(_FakeResponse(200, {"choices": [{"message": {"content": content}}]}))
    result = _extract(session, VisionClientConfig(endpoint="https://vision.local"))
    assert not result.success
    assert result.errors == ["Malformed vision response"]


def test_client_treats_null_content_as_empty() -> None:
    session = _FakeSession(_FakeResponse(200, {"choices": [{"message": {"content": None}}]}))
    result = _extract(session, VisionClientConfig(endpoint="https://vision.local"))
    assert result.errors == ["Empty response"]


def test_non_string_responses_are_rejected_without_raising() -> None:
    assert extract_json_payload(42).message == "Empty response"  # type: ignore[arg-type]
    result = parse_vision_response(b"[]")  # type: ignore[arg-type]
    assert result.errors == ["Empty response"]
    assert result.raw_response == ""
