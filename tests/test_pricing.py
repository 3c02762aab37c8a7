import json
from decimal import Decimal

import pytest

from src.models.product import Quality
from src.services.pricing import (
    PricingPipeline, build_image_analysis, fallback_price_suggestion, final_recommendation,
    parse_price_suggestion, quality_from_confidence
)
from src.services.signals import Classification, MarketReference, find_brand, rgb_to_color_name
from tests.conftest import make_declared
from tests.fakes import StubClassifier, StubMarket, StubReasoner, StubVision

IMAGE = b"\xff\xd8\xff\xe0photo"


def reasoner_reply(**overrides):
    payload = {
        "suggested_price": 649.5,
        "reasoning": "Lightly worn branded tee",
        "market_comparison": "About half the new price",
        "confidence_score": 0.9,
        "factors": ["brand", "condition"],
    }
    payload.update(overrides)
    return "Here you go:\n```json\n" + json.dumps(payload) + "\n```"


def make_pipeline(classifier=None, vision=None, market=None, reasoner=None):
    return PricingPipeline(
        classifier=classifier or StubClassifier(),
        vision=vision or StubVision(),
        market=market or StubMarket(),
        reasoner=reasoner or StubReasoner(),
        timeout=0.05
    )


@pytest.mark.parametrize("brand,price", [
    ("Nike", 800),
    ("ADIDAS Originals", 700),
    ("Levi's", 700),
    ("H&M", 400),
    ("Uniqlo", 500),
])
def test_fallback_uses_brand_table(brand, price):
    suggestion = fallback_price_suggestion(brand, None)
    assert suggestion.suggested_price == Decimal(price)
    assert suggestion.confidence_score == 0.6


def test_fallback_prefers_market_average():
    suggestion = fallback_price_suggestion("Nike", MarketReference(min=1000, max=2000, avg=1500))
    assert suggestion.suggested_price == Decimal(750)


def test_market_reference_average_rounds_half_up():
    assert MarketReference.from_prices([1000, 2001]).avg == 1501
    assert MarketReference.from_prices([]) is None


def test_parse_price_suggestion_extracts_json_block():
    suggestion = parse_price_suggestion(reasoner_reply())
    assert suggestion.suggested_price == Decimal(650)
    assert suggestion.factors == ["brand", "condition"]


@pytest.mark.parametrize("reply", [
    None,
    "no json here",
    "{not valid json}",
    reasoner_reply(suggested_price=-5),
    reasoner_reply(suggested_price=0.2),
    reasoner_reply(confidence_score=1.5),
])
def test_parse_price_suggestion_rejects_unusable_replies(reply):
    assert parse_price_suggestion(reply) is None


def test_quality_tiers():
    assert quality_from_confidence(0.95) == Quality.EXCELLENT
    assert quality_from_confidence(0.7) == Quality.GOOD
    assert quality_from_confidence(0.5) == Quality.FAIR
    assert quality_from_confidence(0.2) == Quality.POOR


def test_image_analysis_from_classification():
    analysis = build_image_analysis(Classification("jersey, T-shirt", 0.85), "Tops", "Nike", ["Red"])
    assert analysis.caption == "Detected as: jersey, T-shirt"
    assert analysis.quality == Quality.EXCELLENT
    assert analysis.condition_score == 9
    assert analysis.brand_detected == "Nike"
    assert analysis.colors_detected == ["Red"]


def test_image_analysis_baseline():
    analysis = build_image_analysis(None, "Tops")
    assert analysis.quality == Quality.GOOD
    assert analysis.condition_score == 7
    assert analysis.colors_detected is None


def test_final_recommendation_tiers():
    high = parse_price_suggestion(reasoner_reply(confidence_score=0.9))
    moderate = parse_price_suggestion(reasoner_reply(confidence_score=0.7))
    low = parse_price_suggestion(reasoner_reply(confidence_score=0.6))
    assert final_recommendation(high).startswith("High confidence recommendation: ₹650")
    assert final_recommendation(moderate).startswith("Moderate confidence")
    assert final_recommendation(low).startswith("Low confidence")


def test_find_brand_and_colour_names():
    assert find_brand("100% COTTON\nnike\nMADE IN INDIA") == "Nike"
    assert find_brand("plain label") is None
    assert rgb_to_color_name(10, 10, 10) == "Black"
    assert rgb_to_color_name(255, 255, 255) == "White"


async def test_all_signals_down_gives_brand_fallback():
    analysis = await make_pipeline().analyze([IMAGE], make_declared(brand="Nike"))

    assert analysis.price_suggestion.suggested_price == Decimal(800)
    assert analysis.image_analysis.caption == "Clothing item in good condition"
    assert analysis.final_recommendation.startswith("Low confidence")
    assert analysis.user_report.market_comparison is None


async def test_market_reference_drives_fallback_price():
    market = StubMarket(MarketReference(min=1000, max=2000, avg=1500))
    analysis = await make_pipeline(market=market).analyze([IMAGE], make_declared())

    assert analysis.price_suggestion.suggested_price == Decimal(750)
    assert analysis.user_report.market_comparison == "New Nike Tops typically sell for ₹1000 to ₹2000."


async def test_reasoner_reply_is_used_when_valid():
    pipeline = make_pipeline(
        classifier=StubClassifier(Classification("jersey", 0.9)),
        reasoner=StubReasoner(reasoner_reply())
    )
    analysis = await pipeline.analyze([IMAGE], make_declared())

    assert analysis.price_suggestion.suggested_price == Decimal(650)
    assert analysis.image_analysis.quality == Quality.EXCELLENT
    assert analysis.final_recommendation.startswith("High confidence")
    assert "Brand: Nike" in pipeline.reasoner.prompts[0]


async def test_detected_brand_overrides_declared_brand():
    market = StubMarket()
    pipeline = make_pipeline(vision=StubVision(brand="Adidas"), market=market)
    analysis = await pipeline.analyze([IMAGE], make_declared(brand="Generic"))

    assert market.queries == [("Adidas", "Tops")]
    assert analysis.image_analysis.brand_detected == "Adidas"
    assert analysis.price_suggestion.suggested_price == Decimal(700)


async def test_hung_signals_time_out_to_fallback():
    pipeline = make_pipeline(
        classifier=StubClassifier(hang=True),
        market=StubMarket(hang=True),
        reasoner=StubReasoner(hang=True)
    )
    analysis = await pipeline.analyze([IMAGE], make_declared(brand="Puma"))

    assert analysis.image_analysis.condition_score == 7
    assert analysis.price_suggestion.suggested_price == Decimal(600)


async def test_malformed_reasoner_output_falls_back():
    pipeline = make_pipeline(reasoner=StubReasoner("I think about ₹700?"))
    analysis = await pipeline.analyze([IMAGE], make_declared(brand="Zara"))
    assert analysis.price_suggestion.suggested_price == Decimal(600)


async def test_no_images_skips_image_signals():
    classifier = StubClassifier(Classification("jersey", 0.9))
    analysis = await make_pipeline(classifier=classifier).analyze([], make_declared())

    assert classifier.calls == 0
    assert analysis.image_analysis.caption == "Clothing item in good condition"
