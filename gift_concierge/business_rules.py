"""
Merchandising rules applied between intent extraction and the catalog.

Top-seller detection matches "top seller" anywhere in the promotional tag,
ignoring case, so "TOP SELLER" and "Top Seller!" both count.
"""
from typing import List, Sequence

from .models import CatalogProduct, Intent, SearchFilters

FALLBACK_KEYWORDS = ["popular gifts", "best sellers"]
MAX_SEARCH_KEYWORDS = 3
TOP_SELLER_TAG = "top seller"


class BusinessRules:

    # ---------------------------------------------------------
    # 1. SEARCH KEYWORD RULES
    # ---------------------------------------------------------
    @staticmethod
    def humanize(value: str) -> str:
        return value.replace("_", " ")

    @staticmethod
    def search_keywords_for(intent: Intent) -> List[str]:
        """Explicit keywords plus the occasion, at most three, never empty."""
        keywords = [k.strip() for k in intent.search_keywords if k and k.strip()]

        if intent.occasion:
            occasion = BusinessRules.humanize(intent.occasion)
            if occasion.lower() not in {k.lower() for k in keywords}:
                keywords.append(occasion)

        if not keywords:
            keywords = list(FALLBACK_KEYWORDS)

        return keywords[:MAX_SEARCH_KEYWORDS]

    # ---------------------------------------------------------
    # 2. FILTER RULES
    # ---------------------------------------------------------
    @staticmethod
    def filters_for(intent: Intent) -> SearchFilters:
        # A zero bound from the model means "not stated", same as null.
        return SearchFilters(
            min_budget=intent.budget_min or None,
            max_budget=intent.budget_max or None,
            occasion=BusinessRules.humanize(intent.occasion) if intent.occasion else None,
            exclude_ingredients=list(intent.dietary_restrictions),
            urgent_delivery=intent.urgency in ("one_hour", "same_day"),
        )

    # ---------------------------------------------------------
    # 3. PRODUCT PRIORITIZATION RULES
    # ---------------------------------------------------------
    @staticmethod
    def is_top_seller(product: CatalogProduct) -> bool:
        return TOP_SELLER_TAG in product.product_image_tag.lower()

    @staticmethod
    def rank_products(products: Sequence[CatalogProduct]) -> List[CatalogProduct]:
        """Top sellers first, then by catalog relevance. Ties keep catalog order."""
        return sorted(
            products,
            key=lambda p: (not BusinessRules.is_top_seller(p), -p.search_score),
        )
