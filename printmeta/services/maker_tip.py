import logging
import random
from datetime import date
from typing import Optional

import httpx

from printmeta.core.config import settings
from printmeta.schemas.extraction import MakerTipResponse

logger = logging.getLogger("MakerTip")

TIP_SYSTEM_PROMPT = """You are an assistant specialised in 3D printing and the maker business.
Write ONE short, practical tip (2 sentences max) for makers who sell 3D prints.
Rotate between these topics:
- Pricing and profit margin
- Print quality
- Filament management
- Customer service
- Productivity
- Marketing for makers
- Financial control

Be direct, motivating and practical. Use emojis sparingly."""

DEFAULT_TIPS = [
    "💡 Always work out your costs before setting a price. A healthy margin keeps the business alive!",
    "🎯 Answer customers within 2 hours. Speed builds trust and sells more!",
    "📦 Keep your filament stock organised. Knowing what you have avoids production stops.",
    "💰 Set aside at least 20% of profit to reinvest in the business.",
    "⚡ Tune your slicer! Small tweaks can cut print time by up to 30%.",
    "🌟 Ask happy customers for reviews. Social proof sells better than any ad!",
]
EMPTY_ANSWER_TIP = "Keep focused on your maker business! 🚀"


class TipCell:
    """
    Single-slot, day-keyed state: holds at most one tip and the date it belongs to.
    A put for another date replaces the slot. Last writer wins, no locking.
    """

    def __init__(self):
        self.day: Optional[date] = None
        self.tip: Optional[str] = None

    def get(self, today: date) -> Optional[str]:
        if self.day == today:
            return self.tip
        return None

    def put(self, today: date, tip: str) -> None:
        self.day = today
        self.tip = tip


class MakerTipService:
    """Tip of the day for the dashboard. Not part of the extraction engine."""

    def __init__(
        self,
        cell: Optional[TipCell] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        rng: Optional[random.Random] = None,
    ):
        self.cell = cell or TipCell()
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")
        self.model = model or settings.OPENAI_TIP_MODEL
        self.transport = transport
        self.rng = rng or random.Random()

    async def get_tip(self, today: Optional[date] = None) -> MakerTipResponse:
        today = today or date.today()

        cached = self.cell.get(today)
        if cached is not None:
            return MakerTipResponse(tip=cached, cached=True)

        try:
            tip = await self._generate()
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning(f"Tip generation failed, serving a default tip: {e}")
            return MakerTipResponse(tip=self.rng.choice(DEFAULT_TIPS), fallback=True)

        self.cell.put(today, tip)
        logger.info(f"New maker tip cached for {today.isoformat()}")
        return MakerTipResponse(tip=tip)

    async def _generate(self) -> str:
        if not self.api_key:
            raise ValueError("OPENAI_API_KEY not configured")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": TIP_SYSTEM_PROMPT},
                {"role": "user", "content": "Write today's tip for 3D makers."},
            ],
            "max_tokens": 150,
            "temperature": 0.8,
        }
        async with httpx.AsyncClient(timeout=settings.EXTERNAL_TIMEOUT_SECONDS, transport=self.transport) as client:
            response = await client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
            data = response.json()

        choices = data.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content")
        return content.strip() if content and content.strip() else EMPTY_ANSWER_TIP


maker_tip_service = MakerTipService()
