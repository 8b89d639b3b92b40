"""
Vision service for reading horse builds off game screenshots.

Sends the screenshot to Gemini with a fixed extraction prompt and turns the
model's reply into OCRHorseData. Name resolution and record assembly happen
afterwards in the build card services.
"""

import asyncio
import base64
import io
import json
import logging
import math
import os
import re
from typing import Any, Dict, Optional

import httpx
from PIL import Image, UnidentifiedImageError

from uma_engine.config import VisionConfig
from uma_engine.services.build_cards.models import Aptitude, OCRHorseData, Strategy

logger = logging.getLogger(__name__)


class VisionServiceError(Exception):
    """Base exception for vision service errors."""
    pass


class VisionBusyError(VisionServiceError):
    """An extraction is already in flight."""
    pass


class VisionRequestError(VisionServiceError):
    """HTTP or transport failure talking to the vision model."""
    pass


class VisionResponseError(VisionServiceError):
    """Vision model reply could not be turned into build fields."""
    pass


class ImageProcessingError(VisionServiceError):
    """Error during image preprocessing."""
    pass


EXTRACTION_PROMPT = """Analyze this Uma Musume game screenshot and extract the horse's data.

Return ONLY a valid JSON object with this exact structure (no markdown, no explanation):
{
  "name": "character name (e.g., 'El Condor Pasa', 'Taiki Shuttle')",
  "outfit": "outfit name in brackets (e.g., '[El☆Número 1]', '[Wild Frontier]')",
  "speed": <number - the Speed stat value>,
  "stamina": <number - the Stamina stat value>,
  "power": <number - the Power stat value>,
  "guts": <number - the Guts stat value>,
  "wisdom": <number - the Wit/Wisdom stat value>,
  "surfaceAptitude": "<letter grade for Turf: S, A, B, C, D, E, F, or G>",
  "distanceAptitude": "<letter grade - use the BEST grade among Sprint/Mile/Medium/Long>",
  "strategyAptitude": "<letter grade - use the BEST grade among Front/Pace/Late/End styles>",
  "strategy": "<style name with the best grade: 'Nige' for Front, 'Senkou' for Pace, 'Sasi' for Late, 'Oikomi' for End>",
  "skills": ["skill name 1", "skill name 2", ...]
}

Important mappings:
- Style "Front" or "Front Runner" = strategy "Nige"
- Style "Pace" or "Pace Chaser" = strategy "Senkou"
- Style "Late" or "Late Surger" = strategy "Sasi"
- Style "End" or "End Closer" = strategy "Oikomi"

Extract ALL visible skill names from the Skills tab. Only include the skill names, not levels or icons."""

STAT_KEYS = ("speed", "stamina", "power", "guts", "wisdom")

# English style names the model sometimes returns instead of strategy codes
STYLE_ALIASES = {
    "front": Strategy.NIGE,
    "front runner": Strategy.NIGE,
    "pace": Strategy.SENKOU,
    "pace chaser": Strategy.SENKOU,
    "late": Strategy.SASI,
    "late surger": Strategy.SASI,
    "end": Strategy.OIKOMI,
    "end closer": Strategy.OIKOMI,
    "runaway": Strategy.OONIGE,
}


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    match = re.match(r"^```(?:json)?\s*(.*?)\s*```$", text, re.DOTALL | re.IGNORECASE)
    if match:
        return match.group(1)
    return text


def _first_json_object(text: str) -> Optional[str]:
    """First balanced {...} substring, ignoring braces inside strings."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == "\"":
                in_string = False
            continue
        if ch == "\"":
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def _coerce_strategy(value: Any) -> Strategy:
    if isinstance(value, str):
        cleaned = value.strip()
        if cleaned in Strategy._value2member_map_:
            return Strategy(cleaned)
        alias = STYLE_ALIASES.get(cleaned.lower())
        if alias:
            return alias
    logger.debug(f"Unrecognized strategy {value!r}, defaulting to Nige")
    return Strategy.NIGE


def _coerce_aptitude(value: Any) -> Aptitude:
    if isinstance(value, str):
        cleaned = value.strip().upper()[:1]
        if cleaned in Aptitude._value2member_map_:
            return Aptitude(cleaned)
    return Aptitude.A


def parse_ocr_response(text: Optional[str]) -> OCRHorseData:
    """
    Turn the vision model's reply text into OCRHorseData.

    Raises:
        VisionResponseError: If no JSON object is found or a stat is not a number
    """
    if not text or not text.strip():
        raise VisionResponseError("No response content from vision model")

    candidate = _strip_code_fence(text)
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        balanced = _first_json_object(candidate)
        if balanced is None:
            raise VisionResponseError("Vision model reply contains no JSON object")
        try:
            parsed = json.loads(balanced)
        except json.JSONDecodeError as e:
            raise VisionResponseError(f"Vision model reply is not valid JSON: {e}")

    if not isinstance(parsed, dict):
        raise VisionResponseError("Vision model reply is not a JSON object")

    for key in STAT_KEYS:
        value = parsed.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise VisionResponseError("Invalid stat values in response")
        if isinstance(value, float) and not math.isfinite(value):
            raise VisionResponseError("Invalid stat values in response")

    skills = parsed.get("skills")
    if not isinstance(skills, list):
        skills = []

    return OCRHorseData(
        name=parsed.get("name") if isinstance(parsed.get("name"), str) else "",
        outfit=parsed.get("outfit") if isinstance(parsed.get("outfit"), str) else "",
        speed=round(parsed["speed"]),
        stamina=round(parsed["stamina"]),
        power=round(parsed["power"]),
        guts=round(parsed["guts"]),
        wisdom=round(parsed["wisdom"]),
        surface_aptitude=_coerce_aptitude(parsed.get("surfaceAptitude")),
        distance_aptitude=_coerce_aptitude(parsed.get("distanceAptitude")),
        strategy_aptitude=_coerce_aptitude(parsed.get("strategyAptitude")),
        strategy=_coerce_strategy(parsed.get("strategy")),
        skills=[s for s in skills if isinstance(s, str)],
    )


class ScreenshotVisionService:
    """
    Extracts build fields from screenshots via Gemini.

    Only one extraction may be outstanding at a time; a second call while one
    is running fails with VisionBusyError. Cancelling the caller's task
    abandons the request and leaves nothing to roll back.
    """

    def __init__(self, config: VisionConfig, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize vision service.

        Args:
            config: Vision configuration from system.yaml
            client: Optional HTTP client (tests inject a mock transport)
        """
        self.config = config
        self.enabled = config.enabled
        self.client = client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._lock = asyncio.Lock()
        logger.info(f"Vision service initialized (model={config.model}, enabled={self.enabled})")

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def resolve_api_key(self, api_key: Optional[str] = None) -> Optional[str]:
        """Explicit key wins, otherwise the configured environment variable."""
        if api_key and api_key.strip():
            return api_key.strip()
        return os.environ.get(self.config.api_key_env) or None

    async def extract(self, image_bytes: bytes, mime_type: str, api_key: Optional[str] = None) -> OCRHorseData:
        """
        Read build fields off a screenshot.

        Raises:
            VisionServiceError: If disabled or no API key is available
            VisionBusyError: If another extraction is in flight
            ImageProcessingError: If the image cannot be decoded
            VisionRequestError: If the HTTP call fails
            VisionResponseError: If the reply cannot be parsed
        """
        if not self.enabled:
            raise VisionServiceError("Vision service is disabled")

        key = self.resolve_api_key(api_key)
        if not key:
            raise VisionServiceError("Gemini API key is required")

        if self._lock.locked():
            raise VisionBusyError("A screenshot extraction is already in progress")

        async with self._lock:
            image_bytes, mime_type = self._prepare_image(image_bytes, mime_type)
            text = await self._generate(image_bytes, mime_type, key)
            data = parse_ocr_response(text)
            logger.info(
                f"OCR extracted: name='{data.name}', outfit='{data.outfit}', {len(data.skills)} skill names"
            )
            return data

    def _prepare_image(self, image_bytes: bytes, mime_type: str) -> tuple[bytes, str]:
        """Downscale oversized screenshots; small ones are sent untouched."""
        try:
            img = Image.open(io.BytesIO(image_bytes))
            img.load()
        except (UnidentifiedImageError, OSError) as e:
            raise ImageProcessingError(f"Failed to read screenshot: {e}") from e

        max_dim = self.config.resize_target
        if max(img.size) <= max_dim:
            return image_bytes, mime_type

        ratio = max_dim / max(img.size)
        new_size = tuple(max(1, int(dim * ratio)) for dim in img.size)
        original_size = img.size
        img = img.resize(new_size, Image.Resampling.LANCZOS)
        logger.info(f"Resized screenshot from {original_size} to {img.size}")

        output = io.BytesIO()
        img.save(output, format='PNG', optimize=True)
        return output.getvalue(), "image/png"

    def _build_request(self, image_bytes: bytes, mime_type: str) -> Dict[str, Any]:
        return {
            "contents": [{
                "parts": [
                    {
                        "inline_data": {
                            "mime_type": mime_type,
                            "data": base64.b64encode(image_bytes).decode('ascii'),
                        }
                    },
                    {"text": EXTRACTION_PROMPT},
                ]
            }],
            "generationConfig": {
                "temperature": self.config.temperature,
                "topK": self.config.top_k,
                "topP": self.config.top_p,
                "maxOutputTokens": self.config.max_output_tokens,
            },
        }

    async def _generate(self, image_bytes: bytes, mime_type: str, api_key: str) -> str:
        url = f"{self.config.base_url}/models/{self.config.model}:generateContent"
        try:
            response = await self.client.post(
                url,
                params={"key": api_key},
                json=self._build_request(image_bytes, mime_type),
            )
        except httpx.HTTPError as e:
            raise VisionRequestError(f"HTTP error during vision request: {e}") from e

        if response.status_code >= 400:
            try:
                error = response.json().get("error")
                message = error.get("message") if isinstance(error, dict) else None
            except (ValueError, AttributeError):
                message = None
            raise VisionRequestError(message or f"API request failed with status {response.status_code}")

        try:
            result = response.json()
            return result["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise VisionResponseError("No response content from vision model")

    async def close(self) -> None:
        await self.client.aclose()
