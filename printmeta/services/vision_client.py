import base64
import json
import logging
import re
from typing import Any, Optional

import httpx
from fastapi import status

from printmeta.core.config import settings
from printmeta.core.exceptions import ExternalServiceError
from printmeta.schemas.extraction import VisionMaterial, VisionResult

logger = logging.getLogger("VisionClient")

RETRY_MODEL = "gpt-4o-mini"
RETRY_STATUSES = {400, 401, 404}

VISION_PROMPT = """Analyse this screenshot of Bambu Studio or Orca Slicer.

EXTRACT:
1. PRINT TIME, e.g. "1h 35m", "01:35:00", "Estimated time: X:XX:XX".
2. WEIGHT in grams, e.g. "58.65 g", "Filament: 58g".
3. MATERIALS / COLORS (AMS or multi-color): filament name (PLA, PETG, ...), color, grams per color.

Return ONLY valid JSON:
{
  "total_time_hours": 1.58,
  "total_weight_grams": 58.65,
  "materials": [
    {"name": "PLA", "color": "Red", "weight_grams": 30.5},
    {"name": "PLA", "color": "Black", "weight_grams": 28.15}
  ],
  "notes": "anything relevant"
}

RULES:
- Convert time to decimal hours (1h30min = 1.5)
- Use numbers, not strings
- A single color means a single material
- Use 0 for anything you cannot find
- Do NOT invent data that is not in the image"""

_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def _number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if number == number else 0.0  # NaN


def parse_answer(content: Optional[str]) -> VisionResult:
    """
    Parse the model's answer into a VisionResult.
    Tolerates markdown fences and prose around the JSON object.
    """
    if not content:
        raise ExternalServiceError("Empty answer from vision service")

    candidate = content
    fenced = _FENCE.search(content)
    if fenced:
        candidate = fenced.group(1).strip()

    start, end = candidate.find("{"), candidate.rfind("}")
    if start != -1 and end != -1:
        candidate = candidate[start:end + 1]

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.error(f"Vision service returned invalid JSON: {content[:200]!r}")
        raise ExternalServiceError(f"Vision service returned invalid JSON: {e.msg}") from e
    if not isinstance(parsed, dict):
        raise ExternalServiceError("Vision service returned a non-object JSON answer")

    materials = []
    for item in parsed.get("materials") or []:
        if not isinstance(item, dict):
            continue
        materials.append(VisionMaterial(
            name=str(item.get("name") or "PLA"),
            color=str(item.get("color") or "Unknown"),
            weight_grams=_number(item.get("weight_grams")),
        ))

    return VisionResult(
        total_time_hours=_number(parsed.get("total_time_hours")),
        total_weight_grams=_number(parsed.get("total_weight_grams")),
        materials=materials,
        notes=str(parsed.get("notes") or ""),
    )


class VisionFallbackClient:
    """
    Thin client for the image-based fallback classifier (OpenAI-compatible chat completions).
    The classifier itself is an external black box; this only builds the request and
    parses the answer into VisionResult.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")
        self.model = model or settings.OPENAI_VISION_MODEL
        self.timeout = timeout or settings.EXTERNAL_TIMEOUT_SECONDS
        self.transport = transport

    def _payload(self, model: str, image_bytes: bytes, mime_type: str) -> dict:
        encoded = base64.b64encode(image_bytes).decode("ascii")
        return {
            "model": model,
            "messages": [{
                "role": "user",
                "content": [
                    {"type": "text", "text": VISION_PROMPT},
                    {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}", "detail": "high"}},
                ],
            }],
            "max_tokens": 1500,
            "temperature": 0.1,
        }

    async def classify(self, image_bytes: bytes, mime_type: str = "image/png") -> VisionResult:
        if not self.api_key:
            raise ExternalServiceError(
                "Vision fallback is not configured (OPENAI_API_KEY missing).",
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        headers = {"Authorization": f"Bearer {self.api_key}"}
        url = f"{self.base_url}/chat/completions"
        logger.info(f"Classifying image ({len(image_bytes)} bytes, {mime_type}) with {self.model}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, json=self._payload(self.model, image_bytes, mime_type), headers=headers)

                if response.status_code in RETRY_STATUSES and self.model != RETRY_MODEL:
                    logger.warning(f"Vision model {self.model} rejected ({response.status_code}), retrying with {RETRY_MODEL}")
                    response = await client.post(url, json=self._payload(RETRY_MODEL, image_bytes, mime_type), headers=headers)

                response.raise_for_status()
                completion = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Vision service error {e.response.status_code}: {e.response.text[:200]}")
            raise ExternalServiceError(f"Vision service call failed with status {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Vision service unreachable: {e}")
            raise ExternalServiceError(f"Vision service call failed: {e}") from e

        try:
            content = completion["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
        return parse_answer(content)
