import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional, Sequence

import requests
from bs4 import BeautifulSoup
from pydantic import ValidationError

from .models import CatalogProduct, DisplayProduct, ProductForLLM, SearchFilters
from .search_cache import SearchCache

logger = logging.getLogger(__name__)


class CatalogClient:
    def __init__(
        self,
        search_url: str,
        base_url: str,
        cache: Optional[SearchCache] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10,
    ):
        self.search_url = search_url
        self.base_url = base_url.rstrip("/") + "/"
        self.cache = cache if cache is not None else SearchCache()
        self.session = session or requests.Session()
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json"}

    def search(self, keyword: str) -> List[CatalogProduct]:
        """
        Runs one keyword search against the catalog.
        Failures never propagate: a bad sub-search just contributes no results.
        """
        if not keyword or not keyword.strip():
            return []

        cache_key = keyword.lower().strip()
        cached = self.cache.get(cache_key)
        if cached is not None:
            return list(cached)

        try:
            response = self.session.post(
                self.search_url,
                json={"keyword": cache_key},
                headers=self.headers,
                timeout=self.timeout,
            )
            if not 200 <= response.status_code < 300:
                logger.error(f"❌ Catalog API error for '{cache_key}': {response.status_code}")
                return []
            data = response.json()
        except requests.RequestException as e:
            logger.error(f"❌ Catalog request failed for '{cache_key}': {e}")
            return []
        except ValueError as e:
            logger.error(f"❌ Catalog returned invalid JSON for '{cache_key}': {e}")
            return []

        if not isinstance(data, list):
            logger.error(f"❌ Catalog returned {type(data).__name__} instead of a list for '{cache_key}'")
            return []

        products = self._map_products(data)
        self.cache.set(cache_key, tuple(products))
        return products

    def multi_search(self, keywords: Sequence[str]) -> List[CatalogProduct]:
        """Searches all keywords concurrently and merges results, first occurrence wins."""
        if not keywords:
            return []

        with ThreadPoolExecutor(max_workers=len(keywords)) as pool:
            result_sets = list(pool.map(self.search, keywords))

        seen = set()
        merged = []
        for result_set in result_sets:
            for product in result_set:
                if product.id not in seen:
                    seen.add(product.id)
                    merged.append(product)
        return merged

    def _map_products(self, items: List[Any]) -> List[CatalogProduct]:
        products = []
        for item in items:
            try:
                products.append(CatalogProduct.model_validate(item))
            except ValidationError as e:
                logger.warning(f"⚠️ Skipping malformed catalog record: {e.errors()[0].get('msg')}")
        return products

    # ---------------------------------------------------------
    # PROJECTIONS
    # ---------------------------------------------------------
    def format_product_for_display(self, product: CatalogProduct) -> DisplayProduct:
        return DisplayProduct(
            id=product.id,
            name=product.name,
            description=clean_description(product.description),
            image=product.image,
            thumbnail=product.thumbnail,
            min_price=product.min_price,
            max_price=product.max_price,
            url=f"{self.base_url}{product.url.lstrip('/')}",
            occasion=product.occasion,
            category=product.category,
            ingredients=product.ingredients,
            size_count=product.size_count,
            is_one_hour_delivery=product.is_one_hour_delivery,
            product_tag=product.product_image_tag,
            promo=product.non_promo or product.promo,
            on_sale=product.on_sale,
            original_price=product.original_price,
            allergy_info=product.allergy_info,
            catalog_code=product.catalog_code,
        )


def clean_description(raw_html: str) -> str:
    """Strips markup and folds line breaks into single spaces."""
    if not raw_html:
        return ""
    text = raw_html
    if "<" in text:
        text = BeautifulSoup(text, "html.parser").get_text(separator=" ")
    return " ".join(text.split())


def clean_product_for_llm(product: CatalogProduct) -> ProductForLLM:
    return ProductForLLM(
        id=product.id,
        name=product.name,
        description=clean_description(product.description),
        min_price=product.min_price,
        max_price=product.max_price,
        occasion=product.occasion,
        category=product.category,
        ingredients=product.ingredients,
        size_options=product.size_count,
        is_one_hour_delivery=product.is_one_hour_delivery,
        product_tag=product.product_image_tag,
        promo=product.non_promo or product.promo,
        on_sale=product.on_sale,
        original_price=product.original_price,
    )


def filter_products(products: Sequence[CatalogProduct], filters: SearchFilters) -> List[CatalogProduct]:
    """
    Applies budget, occasion, dietary and delivery filters in that order.
    The occasion step is advisory: if nothing matches, the budget-filtered set is kept.
    """
    filtered = list(products)
    logger.debug(f"[Filter] Starting with {len(filtered)} products, filters: {filters.model_dump()}")

    if filters.min_budget is not None:
        before = len(filtered)
        filtered = [p for p in filtered if p.min_price is not None and p.min_price >= filters.min_budget]
        logger.debug(f"[Filter] min_budget: {before} -> {len(filtered)}")

    if filters.max_budget is not None:
        before = len(filtered)
        filtered = [p for p in filtered if p.min_price is not None and p.min_price <= filters.max_budget]
        logger.debug(f"[Filter] max_budget: {before} -> {len(filtered)}")

    if filters.occasion:
        occasion = filters.occasion.lower()
        matching = [p for p in filtered if occasion in p.occasion.lower()]
        if matching:
            filtered = matching
        else:
            logger.debug(f"[Filter] occasion '{occasion}' matched nothing, keeping {len(filtered)}")

    if filters.exclude_ingredients:
        excluded = [term.lower() for term in filters.exclude_ingredients if term]
        filtered = [
            p for p in filtered
            if not any(term in p.ingredients.lower() for term in excluded)
        ]

    if filters.urgent_delivery:
        before = len(filtered)
        filtered = [p for p in filtered if p.is_one_hour_delivery]
        logger.debug(f"[Filter] urgent_delivery: {before} -> {len(filtered)}")

    return filtered

