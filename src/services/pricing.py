# src/services/pricing.py
import asyncio
import json
import logging
import re
from decimal import Decimal
from typing import List, Optional, Sequence
from pydantic import ValidationError as PydanticValidationError
from ..config import Config
from ..models.product import (
    ImageAnalysis, PriceSuggestion, ProductAnalysis, Quality, SellerAttributes, UserReport
)
from ..utils.formatters import format_price
from .listing import round_half_up
from .signals import (
    Classification, ImageClassifier, MarketPriceClient, MarketReference,
    PriceReasoner, VisionClient, best_effort
)

logger = logging.getLogger(__name__)

# Used items resell at roughly 40-60% of the new price; aim for the middle
RESALE_FACTOR = Decimal("0.5")

# Checked in order against the lower-cased brand
BRAND_BASE_PRICES = [
    ("nike", 800),
    ("adidas", 700),
    ("levi", 700),
    ("puma", 600),
    ("zara", 600),
    ("h&m", 400),
]
DEFAULT_BASE_PRICE = 500

FALLBACK_CONFIDENCE = 0.6
FALLBACK_REASONING = (
    "Based on standard market rates for second-hand clothing "
    "(typically 40-60% of new price)"
)
FALLBACK_MARKET_COMPARISON = "Similar to other pre-owned items in the market"
FALLBACK_FACTORS = ["brand reputation", "general condition", "market demand"]

BASELINE_IMAGE_ANALYSIS = {
    "caption": "Clothing item in good condition",
    "quality": Quality.GOOD,
    "condition_score": 7,
    "features": ["standard clothing item"],
}

def quality_from_confidence(score: float) -> Quality:
    if score > 0.8:
        return Quality.EXCELLENT
    if score > 0.6:
        return Quality.GOOD
    if score > 0.4:
        return Quality.FAIR
    return Quality.POOR

def condition_score_from_confidence(score: float) -> int:
    return max(1, min(10, round_half_up(score * 10)))

def build_image_analysis(classification: Optional[Classification], category: str,
                         brand_detected: Optional[str] = None,
                         colors: Optional[List[str]] = None) -> ImageAnalysis:
    """Image analysis from the classifier result, or the neutral baseline without one"""
    if classification is None:
        fields = dict(BASELINE_IMAGE_ANALYSIS)
    else:
        fields = {
            "caption": f"Detected as: {classification.label}",
            "quality": quality_from_confidence(classification.score),
            "condition_score": condition_score_from_confidence(classification.score),
            "features": [classification.label],
        }
    return ImageAnalysis(
        category=category,
        brand_detected=brand_detected or None,
        colors_detected=colors or None,
        **fields
    )

def fallback_price_suggestion(brand: str, market: Optional[MarketReference]) -> PriceSuggestion:
    """Deterministic suggestion used whenever the reasoning signal gives nothing usable"""
    if market is not None:
        price = round_half_up(market.avg * RESALE_FACTOR)
    else:
        lowered = (brand or "").lower()
        price = next(
            (base for keyword, base in BRAND_BASE_PRICES if keyword in lowered),
            DEFAULT_BASE_PRICE
        )
    return PriceSuggestion(
        suggested_price=Decimal(price),
        reasoning=FALLBACK_REASONING,
        market_comparison=FALLBACK_MARKET_COMPARISON,
        confidence_score=FALLBACK_CONFIDENCE,
        factors=list(FALLBACK_FACTORS)
    )

_JSON_BLOCK = re.compile(r"\{.*\}", re.DOTALL)

def parse_price_suggestion(text: Optional[str]) -> Optional[PriceSuggestion]:
    """Structured suggestion from the model reply, or None if anything is off"""
    match = _JSON_BLOCK.search(text or "")
    if not match:
        return None
    try:
        suggestion = PriceSuggestion.model_validate(json.loads(match.group()))
    except (json.JSONDecodeError, PydanticValidationError) as e:
        logger.warning(f"Unusable price suggestion: {e}")
        return None

    price = round_half_up(suggestion.suggested_price)
    if price <= 0:
        return None
    return suggestion.model_copy(update={"suggested_price": Decimal(price)})

def build_price_prompt(declared: SellerAttributes, brand: str, image_analysis: ImageAnalysis,
                       market: Optional[MarketReference]) -> str:
    def value(field, default="Not specified"):
        field = field.value if hasattr(field, "value") else field
        return default if field in (None, "") else field

    market_text = ""
    if market is not None:
        market_text = (
            "\n\n**Market Price Reference:**\n"
            f"- New items of this brand/category in India are typically priced between "
            f"₹{market.min} and ₹{market.max} (avg: ₹{market.avg})."
        )

    return (
        "You are an expert fashion appraiser for a second-hand clothing marketplace.\n\n"
        "Analyze this item and suggest a fair resale price in Indian Rupees (INR) "
        "for a used/pre-owned item.\n\n"
        "**Instructions:**\n"
        "- The resale price should typically be 40-60% of the new price, depending on "
        "condition, age, and times worn.\n"
        "- Be conservative and realistic.\n"
        "- Consider the second-hand nature, wear, and any reported damage.\n"
        "- Do NOT mention any competitor or e-commerce platform by name.\n"
        "- Use only the information below.\n"
        "- Provide only the JSON response, no additional text.\n\n"
        "**Item Details:**\n"
        f"- Article: {declared.article}\n"
        f"- Brand: {brand}\n"
        f"- Gender: {value(declared.gender)}\n"
        f"- Size: {value(declared.size)}\n"
        f"- Age: {value(declared.age)}\n"
        f"- Times worn: {value(declared.wear_count)}\n"
        f"- Damage: {value(declared.damage, 'None reported')}\n\n"
        "**AI Image Analysis:**\n"
        f"- Caption: {image_analysis.caption}\n"
        f"- Quality: {image_analysis.quality.value}\n"
        f"- Category: {image_analysis.category}\n"
        f"- Condition Score: {image_analysis.condition_score}/10\n"
        f"- Features: {', '.join(image_analysis.features)}"
        f"{market_text}\n\n"
        "**Response Format (JSON only):**\n"
        "{\n"
        '  "suggested_price": <price_in_inr>,\n'
        '  "reasoning": "<detailed explanation>",\n'
        '  "market_comparison": "<comparison with new prices>",\n'
        '  "confidence_score": <0.0-1.0>,\n'
        '  "factors": ["factor1", "factor2", "factor3"]\n'
        "}"
    )

def final_recommendation(suggestion: PriceSuggestion) -> str:
    """Advisory text for the admin; it does not gate any transition"""
    price = f"₹{format_price(suggestion.suggested_price)}"
    confidence = suggestion.confidence_score
    if confidence > 0.8:
        return f"High confidence recommendation: {price}. {suggestion.reasoning}"
    if confidence > 0.6:
        return f"Moderate confidence recommendation: {price}. Consider admin review for final pricing."
    return f"Low confidence recommendation: {price}. Requires admin review and manual pricing."

def build_user_report(image_analysis: ImageAnalysis, suggestion: PriceSuggestion, brand: str,
                      market: Optional[MarketReference]) -> UserReport:
    condition = image_analysis.quality.value.capitalize()
    category = image_analysis.category
    comparison = None
    if market is not None:
        comparison = f"New {brand} {category} typically sell for ₹{market.min} to ₹{market.max}."
    return UserReport(
        condition=condition,
        suggested_price=suggestion.suggested_price,
        explanation=(
            f"Based on your item's brand, its {condition.lower()} condition, and current "
            f"market trends, this is a fair resale price for your {category}."
        ),
        market_comparison=comparison
    )

class PricingPipeline:
    """Folds image, OCR, colour, market and reasoning signals into one analysis.

    ``analyze`` never raises because a signal failed: every signal goes through
    ``best_effort`` and has a fallback.
    """

    def __init__(self, classifier: Optional[ImageClassifier] = None,
                 vision: Optional[VisionClient] = None,
                 market: Optional[MarketPriceClient] = None,
                 reasoner: Optional[PriceReasoner] = None,
                 timeout: Optional[float] = None):
        self.timeout = timeout if timeout is not None else Config.SIGNAL_TIMEOUT
        self.classifier = classifier or ImageClassifier(Config.HUGGING_FACE_API_KEY, self.timeout)
        self.vision = vision or VisionClient(Config.GOOGLE_VISION_API_KEY, self.timeout)
        self.market = market or MarketPriceClient(Config.SERP_API_KEY, self.timeout)
        self.reasoner = reasoner or PriceReasoner(
            Config.GEMINI_API_KEY, Config.GEMINI_MODEL, self.timeout
        )

    async def analyze(self, images: Sequence[bytes], declared: SellerAttributes) -> ProductAnalysis:
        category = declared.category.value
        classification = brand_detected = colors = None
        if images:
            primary = images[0]
            classification, brand_detected, colors = await asyncio.gather(
                best_effort(ImageClassifier.NAME, self.classifier.classify(primary), self.timeout),
                best_effort("Brand OCR", self.vision.detect_brand(primary), self.timeout),
                best_effort("Colour detection", self.vision.detect_colors(primary), self.timeout)
            )

        image_analysis = build_image_analysis(classification, category, brand_detected, colors)
        brand = brand_detected or declared.brand
        market = await best_effort(
            MarketPriceClient.NAME,
            self.market.lookup(brand, image_analysis.category),
            self.timeout
        )
        suggestion = await self._suggest_price(declared, brand, image_analysis, market)

        logger.info(
            f"Priced {brand} {declared.article}: ₹{suggestion.suggested_price} "
            f"(confidence {suggestion.confidence_score:.2f}, "
            f"classifier={'ok' if classification else 'baseline'}, "
            f"market={'yes' if market else 'no'})"
        )
        return ProductAnalysis(
            image_analysis=image_analysis,
            price_suggestion=suggestion,
            final_recommendation=final_recommendation(suggestion),
            user_report=build_user_report(image_analysis, suggestion, brand, market)
        )

    async def _suggest_price(self, declared: SellerAttributes, brand: str,
                             image_analysis: ImageAnalysis,
                             market: Optional[MarketReference]) -> PriceSuggestion:
        prompt = build_price_prompt(declared, brand, image_analysis, market)
        reply = await best_effort(PriceReasoner.NAME, self.reasoner.complete(prompt), self.timeout)
        suggestion = parse_price_suggestion(reply)
        if suggestion is None:
            return fallback_price_suggestion(brand, market)
        return suggestion
