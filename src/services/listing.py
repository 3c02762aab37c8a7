# src/services/listing.py
"""Builds the public listing snapshot of an approved product.

This is the only place that constructs a ``ListedProduct`` or derives the
main category shown in the storefront.
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional
from ..models.product import Gender, ListedProduct, Product

MAIN_CATEGORIES = {
    Gender.MALE: "Men",
    Gender.FEMALE: "Women",
    Gender.KIDS: "Kids",
    Gender.UNISEX: "Unisex",
}

def round_half_up(value) -> int:
    """Round to the nearest integer with .5 going up (Python's round() goes to even)"""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def main_category_for(gender: Optional[Gender]) -> str:
    return MAIN_CATEGORIES.get(gender, "Unisex")

def discount_percentage(mrp: Optional[Decimal], price: Decimal) -> Optional[int]:
    """Percentage off the maximum retail price; None when there is no mrp"""
    if mrp is None:
        return None
    if mrp <= price:
        return 0
    return round_half_up((mrp - price) / mrp * 100)

def build_tags(values: Iterable[Optional[str]]) -> List[str]:
    tags = []
    for value in values:
        if value and value not in tags:
            tags.append(value)
    return tags

def build_listed_product(product: Product, price: Decimal, mrp: Optional[Decimal],
                         discount: Optional[int], listed_at: datetime) -> ListedProduct:
    analysis = product.ai_analysis
    image_analysis = analysis.image_analysis
    return ListedProduct(
        title=product.title,
        description=f"{image_analysis.caption}. {analysis.price_suggestion.reasoning}",
        price=price,
        mrp=mrp,
        discount_percentage=discount,
        category=product.category.value,
        tags=build_tags([
            product.brand,
            product.article,
            product.gender.value if product.gender else None,
            image_analysis.quality.value,
            *image_analysis.features
        ]),
        listed_at=listed_at,
        main_category=main_category_for(product.gender)
    )
