"""Adapters for OCR text and vision-model responses.

The vision model is asked for a JSON array of parts but routinely wraps it in
markdown fences or prose. :func:`extract_json_payload` recovers the payload
with progressively looser strategies and reports a tagged result instead of
raising, so a bad response never aborts an intake batch.
"""
from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import aiohttp
from pydantic import BaseModel, ConfigDict, Field

from ..config import IntakeSettings, get_settings
from .matchers.materials import default_matcher
from .part import EDGE_IDS, GrainMode, Part, PartAudit, PartOps, PartSize, SourceMethod, build_edging
from .parsers.edges import order_edges
from .parsers.numbers import coerce_number
from .patterns import GRAIN_VALUE_PATTERNS
from .text_parser import TextParseResult, TextParserOptions, parse_text

__all__ = [
    "AsyncVisionClient",
    "FILE_TYPE_IMAGE",
    "FILE_TYPE_PDF",
    "FILE_TYPE_UNKNOWN",
    "JsonParseError",
    "JsonPayload",
    "VISION_SYSTEM_PROMPT",
    "VisionClientConfig",
    "VisionParseOptions",
    "VisionResult",
    "detect_file_type",
    "extract_json_payload",
    "parse_ocr_text",
    "parse_vision_response",
    "parts_from_payload",
]

LOGGER = logging.getLogger(__name__)

VISION_CONFIDENCE = 0.85

FILE_TYPE_IMAGE = "image"
FILE_TYPE_PDF = "pdf"
FILE_TYPE_UNKNOWN = "unknown"

VISION_SYSTEM_PROMPT = """You are a cutlist parser for woodworking and cabinet making.
Extract part specifications from the provided image or document.

For each part found, extract the label, length (L) in mm, width (W) in mm,
quantity, material, grain direction and edge banding when they are visible.

Return the data as a JSON array of objects shaped like:
{"label": "Part name", "L": 720, "W": 560, "qty": 2, "material": "White Melamine",
 "grain": "none" | "along_L" | "along_W", "edges": ["L1", "L2"]}

If you cannot determine a value, omit it or use null.
Only return valid JSON, no explanations."""

VISION_USER_PROMPT = "Extract all cutlist parts from this image."

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


@dataclass(frozen=True)
class JsonPayload:
    data: Any
    strategy: str

    @property
    def success(self) -> bool:
        return True


@dataclass(frozen=True)
class JsonParseError:
    message: str

    @property
    def success(self) -> bool:
        return False


def _try_load(candidate: str) -> Tuple[bool, Any]:
    try:
        return True, json.loads(candidate)
    except json.JSONDecodeError:
        return False, None


def _outermost(text: str, opening: str, closing: str) -> Optional[str]:
    start = text.find(opening)
    end = text.rfind(closing)
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def _balanced_objects(text: str) -> Iterable[str]:
    """Yield top-level ``{...}`` substrings, honouring JSON string escapes."""

    depth = 0
    start = -1
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            if depth == 0:
                start = index
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield text[start : index + 1]


def extract_json_payload(text: Optional[str]) -> Union[JsonPayload, JsonParseError]:
    """Recover a JSON document from a free-form model response.

    Strategies, first success wins: fenced block, whole text, outermost
    array, outermost object, then every balanced object that parses on its
    own (returned as a list).
    """

    if not isinstance(text, str) or not text.strip():
        return JsonParseError("Empty response")
    fenced = _FENCE_PATTERN.search(text)
    body = fenced.group(1).strip() if fenced else text.strip()

    ok, data = _try_load(body)
    if ok:
        return JsonPayload(data, "fenced" if fenced else "direct")

    for strategy, opening, closing in (("array", "[", "]"), ("object", "{", "}")):
        candidate = _outermost(body, opening, closing)
        if candidate is None:
            continue
        ok, data = _try_load(candidate)
        if ok:
            return JsonPayload(data, strategy)

    recovered = []
    for candidate in _balanced_objects(body):
        ok, data = _try_load(candidate)
        if ok:
            recovered.append(data)
    if recovered:
        return JsonPayload(recovered, "recovered")
    return JsonParseError("No JSON found in response")


class VisionParseOptions(BaseModel):
    default_material_id: str = ""
    default_thickness_mm: float = Field(default=18.0, gt=0)
    confidence: float = Field(default=VISION_CONFIDENCE, ge=0.0, le=1.0)
    source_method: SourceMethod = SourceMethod.OCR_GENERIC

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_settings(cls, settings: IntakeSettings | None = None, **overrides: Any) -> "VisionParseOptions":
        settings = settings or get_settings()
        values: Dict[str, Any] = {
            "default_material_id": settings.default_material_id,
            "default_thickness_mm": settings.default_thickness_mm,
            "confidence": settings.vision_confidence,
        }
        values.update(overrides)
        return cls(**values)


@dataclass
class VisionResult:
    parts: List[Part] = field(default_factory=list)
    raw_response: str = ""
    confidence: float = 0.0
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors and bool(self.parts)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "parts": [part.model_dump(mode="json") for part in self.parts],
            "raw_response": self.raw_response,
            "confidence": self.confidence,
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }


def _first(item: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if item.get(key) is not None:
            return item[key]
    return None


def _grain(value: Any) -> GrainMode:
    if isinstance(value, str):
        for mode, pattern in GRAIN_VALUE_PATTERNS.items():
            if pattern.match(value.strip()):
                return GrainMode(mode)
    return GrainMode.NONE


def _edges(value: Any) -> List[str]:
    if isinstance(value, str):
        value = re.split(r"[\s,;/]+", value)
    if not isinstance(value, (list, tuple)):
        return []
    return order_edges([str(code) for code in value if str(code).upper() in EDGE_IDS])


def _material(value: Any, default: str) -> str:
    if not isinstance(value, str) or not value.strip():
        return default
    match = default_matcher().best(value)
    return match.value if match else value.strip()


def _items(data: Any) -> Optional[List[Any]]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        nested = data.get("parts")
        if isinstance(nested, list):
            return nested
        return [data]
    return None


def parts_from_payload(data: Any, options: VisionParseOptions | None = None) -> Tuple[List[Part], List[str]]:
    """Build parts from a decoded payload; returns ``(parts, warnings)``."""

    options = options or VisionParseOptions()
    items = _items(data)
    if items is None:
        return [], [f"Unsupported payload type: {type(data).__name__}"]

    parts: List[Part] = []
    warnings: List[str] = []
    for position, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            warnings.append(f"Item {position} is not an object")
            continue
        length = coerce_number(_first(item, "L", "length"))
        width = coerce_number(_first(item, "W", "width"))
        if not length or not width or length <= 0 or width <= 0:
            warnings.append(f"Item {position} skipped: missing or non-positive dimensions")
            continue

        qty_value = coerce_number(_first(item, "qty", "quantity"))
        thickness = coerce_number(item.get("thickness"))
        grain = _grain(item.get("grain"))
        edges = _edges(item.get("edges"))
        label = item.get("label")
        parts.append(
            Part(
                label=str(label) if label is not None else None,
                qty=max(1, int(round(qty_value))) if qty_value else 1,
                size=PartSize(L=length, W=width),
                thickness_mm=thickness if thickness and thickness > 0 else options.default_thickness_mm,
                material_id=_material(item.get("material"), options.default_material_id),
                grain=grain,
                allow_rotation=grain is GrainMode.NONE,
                ops=PartOps(edging=build_edging(edges)) if edges else None,
                audit=PartAudit(
                    source_method=options.source_method,
                    source_ref=f"item:{position}",
                    confidence=options.confidence,
                ),
            )
        )
    return parts, warnings


def parse_vision_response(text: Optional[str], options: VisionParseOptions | None = None) -> VisionResult:
    """Turn raw model output into a :class:`VisionResult`. Never raises."""

    options = options or VisionParseOptions()
    raw = text if isinstance(text, str) else ""
    payload = extract_json_payload(raw)
    if isinstance(payload, JsonParseError):
        LOGGER.warning("vision_payload_unparseable", extra={"error": payload.message, "chars": len(raw)})
        return VisionResult(raw_response=raw, errors=[payload.message])
    parts, warnings = parts_from_payload(payload.data, options)
    if not parts:
        warnings.append("No parts found in response")
    return VisionResult(parts=parts, raw_response=raw, confidence=options.confidence, warnings=warnings)


def parse_ocr_text(
    text: str,
    *,
    ocr_confidence: float,
    template: bool = False,
    options: TextParserOptions | None = None,
) -> TextParseResult:
    """Run OCR output through the text parser, scaling confidence by OCR quality."""

    base = options or TextParserOptions()
    scale = max(0.0, min(1.0, ocr_confidence))
    configured = base.model_copy(
        update={
            "source_method": SourceMethod.OCR_TEMPLATE if template else SourceMethod.OCR_GENERIC,
            "confidence_scale": scale,
        }
    )
    return parse_text(text, configured)


def detect_file_type(content_type: Optional[str] = None, head_bytes: Optional[bytes] = None) -> str:
    """Classify an upload as ``image``, ``pdf`` or ``unknown``."""

    if content_type:
        if content_type.startswith("image/"):
            return FILE_TYPE_IMAGE
        if content_type == "application/pdf":
            return FILE_TYPE_PDF
    if head_bytes:
        if head_bytes.startswith(b"%PDF"):
            return FILE_TYPE_PDF
        if head_bytes.startswith(b"\xff\xd8") or head_bytes.startswith(b"\x89PNG"):
            return FILE_TYPE_IMAGE
    return FILE_TYPE_UNKNOWN


class VisionClientConfig(BaseModel):
    """Configuration for the vision extraction client."""

    endpoint: Optional[str] = Field(default=None, description="OpenAI-compatible chat completions URL")
    model: str = Field(default="gpt-4o", description="Remote model identifier")
    api_key: Optional[str] = Field(default=None, repr=False)
    timeout: float = Field(default=60.0, ge=1.0, description="Timeout for the request in seconds")
    max_tokens: int = Field(default=4096, ge=1)

    @classmethod
    def from_settings(cls, settings: IntakeSettings | None = None, **overrides: Any) -> "VisionClientConfig":
        settings = settings or get_settings()
        values: Dict[str, Any] = {
            "endpoint": settings.vision_endpoint,
            "api_key": settings.vision_api_key,
            "timeout": settings.vision_timeout,
        }
        if settings.vision_model:
            values["model"] = settings.vision_model
        values.update(overrides)
        return cls(**values)


def _data_url(image: Union[bytes, str], content_type: str) -> str:
    if isinstance(image, str):
        return image if image.startswith("data:") else f"data:{content_type};base64,{image}"
    encoded = base64.b64encode(image).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


def _message_content(data: Any) -> str:
    content = data["choices"][0]["message"]["content"]
    if isinstance(content, list):
        return "".join(block.get("text", "") for block in content if isinstance(block, dict))
    if content is None:
        return ""
    if not isinstance(content, str):
        raise TypeError(f"Unexpected message content type: {type(content).__name__}")
    return content


class AsyncVisionClient:
    """Async client sending one image per request to a vision model.

    Requests are single-shot: a failure is reported in the returned
    :class:`VisionResult` and the caller decides whether to retry.
    """

    def __init__(
        self,
        config: VisionClientConfig,
        options: VisionParseOptions | None = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        if not config.endpoint:
            raise ValueError("AsyncVisionClient requires a non-empty endpoint")
        self._config = config
        self._options = options or VisionParseOptions()
        self._external_session = session
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        if self._external_session is not None:
            self._session = self._external_session
        else:
            timeout = aiohttp.ClientTimeout(total=self._config.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._session and self._session is not self._external_session:
            await self._session.close()
        self._session = None

    def _payload(self, image_url: str) -> Dict[str, Any]:
        return {
            "model": self._config.model,
            "messages": [
                {"role": "system", "content": VISION_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "image_url", "image_url": {"url": image_url}},
                        {"type": "text", "text": VISION_USER_PROMPT},
                    ],
                },
            ],
            "max_tokens": self._config.max_tokens,
        }

    async def extract(self, image: Union[bytes, str], content_type: str = "image/png") -> VisionResult:
        if not self._session:
            raise RuntimeError("AsyncVisionClient must be used as async context manager")

        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        payload = self._payload(_data_url(image, content_type))

        try:
            async with self._session.post(self._config.endpoint, json=payload, headers=headers) as response:
                if response.status >= 400:
                    body = await response.text()
                    LOGGER.warning("vision_call_rejected", extra={"status": response.status})
                    return VisionResult(raw_response=body, errors=[f"Vision API error: {response.status}"])
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            LOGGER.warning("vision_call_failed", extra={"error": str(exc)})
            return VisionResult(errors=[str(exc) or type(exc).__name__])

        try:
            content = _message_content(data)
        except (KeyError, IndexError, TypeError):
            LOGGER.warning("vision_response_malformed", extra={"keys": sorted(data) if isinstance(data, dict) else None})
            return VisionResult(raw_response=json.dumps(data, default=str), errors=["Malformed vision response"])
        return parse_vision_response(content, self._options)
