# src/services/signals.py
"""External signals used by the pricing pipeline.

Each client raises UpstreamUnavailable (or lets an aiohttp error escape) when
the service is missing, slow or returns something unusable. ``best_effort``
is where all of that is absorbed: callers get ``None`` and pick a fallback.
"""
import asyncio
import base64
import logging
import math
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Awaitable, Dict, List, Optional, TypeVar
import aiohttp
from ..exceptions import UpstreamUnavailable
from .listing import round_half_up

logger = logging.getLogger(__name__)

T = TypeVar("T")

async def best_effort(name: str, awaitable: Awaitable[T], timeout: float) -> Optional[T]:
    """Await an external call with a bounded timeout; any upstream failure yields None"""
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{name} timed out after {timeout}s")
    except UpstreamUnavailable as e:
        logger.warning(f"{name} unavailable: {e}")
    except aiohttp.ClientError as e:
        logger.warning(f"{name} request failed: {e}")
    except ValueError as e:
        # undecodable response body
        logger.warning(f"{name} returned invalid data: {e}")
    return None

@dataclass(frozen=True)
class Classification:
    label: str
    score: float

@dataclass(frozen=True)
class MarketReference:
    """New-item price band for a brand and category"""
    min: int
    max: int
    avg: int

    @classmethod
    def from_prices(cls, prices: List[int]) -> Optional["MarketReference"]:
        if not prices:
            return None
        return cls(
            min=min(prices),
            max=max(prices),
            avg=round_half_up(Decimal(sum(prices)) / len(prices))
        )

class ImageClassifier:
    """Hugging Face image classification (coarse label + confidence)"""

    NAME = "Image classifier"
    URL = "https://api-inference.huggingface.co/models/google/vit-base-patch16-224"

    def __init__(self, api_key: str, timeout: float = 30):
        self.api_key = api_key
        self.timeout = timeout

    async def classify(self, image: bytes) -> Classification:
        if not self.api_key:
            raise UpstreamUnavailable(self.NAME, "not configured")

        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
            async with session.post(
                self.URL,
                data=image,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/octet-stream"
                }
            ) as response:
                if response.status != 200:
                    raise UpstreamUnavailable(self.NAME, f"returned HTTP {response.status}")
                payload = await response.json(content_type=None)

        try:
            top = payload[0]
            return Classification(label=str(top["label"]), score=float(top["score"]))
        except (KeyError, IndexError, TypeError, ValueError):
            raise UpstreamUnavailable(self.NAME, "returned an unexpected payload")

# Brands recognised in OCR text, matched case-insensitively in this order
KNOWN_BRANDS = [
    "Nike", "Adidas", "Puma", "Levi", "French Connection", "Zara", "H&M", "Gucci",
    "Louis Vuitton", "Reebok", "Under Armour", "Fila", "Tommy Hilfiger", "Calvin Klein",
    "Superdry", "Jack & Jones", "UCB", "United Colors of Benetton", "Wrangler",
    "Pepe Jeans", "Lee", "Allen Solly", "Van Heusen", "Arrow", "Peter England",
    "Raymond", "Biba", "Global Desi", "Forever 21", "Gap", "Marks & Spencer", "Mango",
    "Boss", "Diesel", "Celio", "Roadster", "HRX", "Mufti", "Spykar", "Flying Machine",
    "S.Oliver", "S Oliver", "FCUK",
]

# name, (r range), (g range), (b range)
COLOR_RANGES = [
    ("Black", (0, 50), (0, 50), (0, 50)),
    ("White", (200, 255), (200, 255), (200, 255)),
    ("Gray", (80, 180), (80, 180), (80, 180)),
    ("Red", (150, 255), (0, 100), (0, 100)),
    ("Blue", (0, 100), (0, 150), (150, 255)),
    ("Navy", (0, 50), (0, 50), (100, 200)),
    ("Green", (0, 150), (100, 255), (0, 150)),
    ("Yellow", (200, 255), (200, 255), (0, 100)),
    ("Orange", (200, 255), (100, 200), (0, 100)),
    ("Purple", (100, 200), (0, 150), (150, 255)),
    ("Pink", (200, 255), (150, 220), (150, 220)),
    ("Brown", (100, 180), (50, 120), (20, 80)),
    ("Beige", (200, 255), (180, 230), (140, 200)),
    ("Khaki", (150, 200), (140, 190), (100, 150)),
]

def find_brand(text: str) -> Optional[str]:
    lowered = text.lower()
    for brand in KNOWN_BRANDS:
        if brand.lower() in lowered:
            return brand
    return None

def rgb_to_color_name(r: int, g: int, b: int) -> str:
    """Closest clothing colour whose range contains the pixel; Gray when none does"""
    best, best_distance = "Gray", math.inf
    for name, *ranges in COLOR_RANGES:
        if all(low <= value <= high for value, (low, high) in zip((r, g, b), ranges)):
            center = [(low + high) / 2 for low, high in ranges]
            distance = math.dist((r, g, b), center)
            if distance < best_distance:
                best, best_distance = name, distance
    return best

class VisionClient:
    """Google Vision REST: text detection for brands, image properties for colours"""

    NAME = "Google Vision"
    URL = "https://vision.googleapis.com/v1/images:annotate"

    def __init__(self, api_key: str, timeout: float = 30):
        self.api_key = api_key
        self.timeout = timeout

    async def _annotate(self, image: bytes, feature: str) -> Dict[str, Any]:
        if not self.api_key:
            raise UpstreamUnavailable(self.NAME, "not configured")

        body = {
            "requests": [{
                "image": {"content": base64.b64encode(image).decode()},
                "features": [{"type": feature}]
            }]
        }
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
            async with session.post(self.URL, params={"key": self.api_key}, json=body) as response:
                if response.status != 200:
                    raise UpstreamUnavailable(self.NAME, f"returned HTTP {response.status}")
                payload = await response.json()

        try:
            result = payload["responses"][0]
        except (KeyError, IndexError, TypeError):
            raise UpstreamUnavailable(self.NAME, "returned an unexpected payload")
        if "error" in result:
            raise UpstreamUnavailable(self.NAME, result["error"].get("message", "annotation error"))
        return result

    async def detect_brand(self, image: bytes) -> Optional[str]:
        result = await self._annotate(image, "TEXT_DETECTION")
        annotations = result.get("textAnnotations") or []
        text = annotations[0].get("description") if annotations else None
        if not isinstance(text, str):
            return None
        logger.debug(f"OCR text: {text!r}")
        return find_brand(text)

    async def detect_colors(self, image: bytes) -> List[str]:
        result = await self._annotate(image, "IMAGE_PROPERTIES")
        colors = (
            result.get("imagePropertiesAnnotation", {})
            .get("dominantColors", {})
            .get("colors", [])
        )
        names = []
        for color in colors[:3]:
            if (color.get("score") or 0) <= 0.1:
                continue
            rgb = color.get("color", {})
            name = rgb_to_color_name(
                round(rgb.get("red", 0)),
                round(rgb.get("green", 0)),
                round(rgb.get("blue", 0))
            )
            if name not in names:
                names.append(name)
        return names[:2]

_PRICE_PATTERN = re.compile(r"\d[\d,]*(?:\.\d+)?")

def parse_listing_price(result: Dict[str, Any]) -> Optional[int]:
    """Whole-rupee price of one shopping result"""
    extracted = result.get("extracted_price")
    if isinstance(extracted, (int, float)) and extracted > 0:
        return round_half_up(extracted)
    match = _PRICE_PATTERN.search(str(result.get("price") or ""))
    if not match:
        return None
    value = round_half_up(Decimal(match.group().replace(",", "")))
    return value or None

class MarketPriceClient:
    """SerpAPI Google Shopping lookup of new-item prices"""

    NAME = "Market price lookup"
    URL = "https://serpapi.com/search.json"

    def __init__(self, api_key: str, timeout: float = 30):
        self.api_key = api_key
        self.timeout = timeout

    async def lookup(self, brand: str, category: str) -> Optional[MarketReference]:
        if not self.api_key:
            raise UpstreamUnavailable(self.NAME, "not configured")

        params = {
            "q": f"{brand} {category} price India",
            "engine": "google_shopping",
            "api_key": self.api_key
        }
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
            async with session.get(self.URL, params=params) as response:
                if response.status != 200:
                    raise UpstreamUnavailable(self.NAME, f"returned HTTP {response.status}")
                payload = await response.json()

        results = payload.get("shopping_results") or []
        prices = [price for price in map(parse_listing_price, results) if price]
        return MarketReference.from_prices(prices)

class PriceReasoner:
    """Gemini text generation; returns the model's raw reply"""

    NAME = "Price reasoning"
    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

    def __init__(self, api_key: str, model: str = "gemini-1.5-flash", timeout: float = 30):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    async def complete(self, prompt: str) -> str:
        if not self.api_key:
            raise UpstreamUnavailable(self.NAME, "not configured")

        body = {"contents": [{"parts": [{"text": prompt}]}]}
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
            async with session.post(
                f"{self.BASE_URL}/{self.model}:generateContent",
                params={"key": self.api_key},
                json=body
            ) as response:
                if response.status != 200:
                    raise UpstreamUnavailable(self.NAME, f"returned HTTP {response.status}")
                payload = await response.json()

        try:
            return payload["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise UpstreamUnavailable(self.NAME, "returned no candidates")
