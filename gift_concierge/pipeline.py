"""
Message-processing pipeline.

Each user turn runs through fixed steps:
extract intent -> clarify OR (search -> filter & rank -> generate -> reconcile).
Comparison requests skip straight to generation.
"""
import json
import logging
import re
from typing import Any, Dict, List, Sequence, Tuple

from pydantic import ValidationError

from .business_rules import BusinessRules
from .catalog_client import CatalogClient, clean_product_for_llm, filter_products
from .errors import MalformedModelOutput
from .llm_gateway import LLMGateway
from .models import (
    CatalogProduct,
    ComparisonResult,
    ConversationTurn,
    DisplayProduct,
    Intent,
    PipelineResult,
    ProductForLLM,
    StreamResult,
)
from .prompts import (
    INTENT_SYSTEM_PROMPT,
    SYSTEM_PROMPT,
    build_clarification_prompt,
    build_comparison_prompt,
    build_intent_extraction_prompt,
    build_response_prompt,
    format_history,
)

logger = logging.getLogger(__name__)

LLM_PRODUCT_LIMIT = 10
DISPLAY_PRODUCT_LIMIT = 8
COMPARISON_VALIDATION_MESSAGE = "Please select at least 2 products to compare."

# Product mentions in generated text: "**Name** [ID:12345]".
ID_TAG_PATTERN = re.compile(r"\[ID:\s*([A-Za-z0-9_-]+)\s*\]")
_FENCE_PATTERN = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


# ---------------------------------------------------------
# INTENT PARSING
# ---------------------------------------------------------
def fallback_intent(message: str) -> Intent:
    keyword = " ".join(message.split()[:3])
    return Intent(
        search_keywords=[keyword] if keyword else [],
        intent_type="browse",
        needs_clarification=False,
    )


def load_intent(raw: str) -> Intent:
    text = _FENCE_PATTERN.sub("", (raw or "").strip()).strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedModelOutput(f"intent is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedModelOutput(f"intent JSON is a {type(data).__name__}, not an object")
    try:
        return Intent.model_validate(data)
    except ValidationError as e:
        raise MalformedModelOutput(f"intent JSON failed validation: {e}") from e


def parse_intent(raw: str, message: str) -> Intent:
    """Parses model output into an Intent; unusable output yields a browse intent."""
    try:
        return load_intent(raw)
    except MalformedModelOutput as e:
        logger.warning(f"⚠️ Falling back to default intent: {e}. Raw output: {raw!r}")
        return fallback_intent(message)


# ---------------------------------------------------------
# RECONCILIATION
# ---------------------------------------------------------
def extract_mentioned_ids(text: str) -> List[str]:
    """Ids from [ID:...] tags in order of first appearance."""
    mentioned: List[str] = []
    for match in ID_TAG_PATTERN.finditer(text or ""):
        product_id = match.group(1)
        if product_id not in mentioned:
            mentioned.append(product_id)
    return mentioned


def _index_by_id(products: Sequence[Any]) -> Dict[str, Any]:
    index: Dict[str, Any] = {}
    for product in products:
        index.setdefault(str(product.id), product)
    return index


def reorder_products_by_mention(
    text: str,
    display_products: Sequence[DisplayProduct],
    available_products: Sequence[DisplayProduct],
    limit: int = DISPLAY_PRODUCT_LIMIT,
) -> List[DisplayProduct]:
    """
    Puts the products the text mentions first, in mention order, then fills up
    to `limit` with the remaining display products. Mentions outside the display
    set are pulled from `available_products`; unknown ids are dropped.
    """
    mentioned_ids = extract_mentioned_ids(text)
    if not mentioned_ids:
        return list(display_products)[:limit]

    remaining = _index_by_id(display_products)
    available = _index_by_id(available_products)

    reordered: List[DisplayProduct] = []
    for product_id in mentioned_ids:
        product = remaining.pop(product_id, None)
        if product is None:
            product = available.get(product_id)
            if product is not None:
                logger.info(f"[Product Reorder] Adding mentioned product outside display set: {product_id}")
        if product is None:
            logger.warning(f"⚠️ [Product Reorder] Mentioned product not found: {product_id}")
            continue
        reordered.append(product)

    reordered.extend(remaining.values())
    logger.info(f"[Product Reorder] Mentioned: {mentioned_ids} -> final: {[p.id for p in reordered[:limit]]}")
    return reordered[:limit]


# ---------------------------------------------------------
# ORCHESTRATOR
# ---------------------------------------------------------
class ConciergePipeline:
    def __init__(self, gateway: LLMGateway, catalog: CatalogClient):
        self.gateway = gateway
        self.catalog = catalog

    def process_message(self, message: str, history: Sequence[Any] = ()) -> PipelineResult:
        history_text = format_history(_as_turns(history))

        intent = self._extract_intent(message, history_text)
        if intent.needs_clarification:
            reply = self.gateway.complete(
                self._clarification_messages(message, intent, history_text),
                temperature=0.7,
                max_tokens=256,
            )
            return PipelineResult(message=reply, products=[], intent=intent)

        ranked = self._filter_and_rank(self._search(intent), intent)
        llm_products, display_products, available_products = self._prepare(ranked)

        reply = self.gateway.complete(
            self._response_messages(message, llm_products, intent, history_text),
            temperature=0.7,
            max_tokens=1024,
        )
        products = reorder_products_by_mention(reply, display_products, available_products)
        return PipelineResult(message=reply, products=products, intent=intent)

    def process_message_stream(self, message: str, history: Sequence[Any] = ()) -> StreamResult:
        """Same steps as process_message; products stay in ranked order until the text is complete."""
        history_text = format_history(_as_turns(history))

        intent = self._extract_intent(message, history_text)
        if intent.needs_clarification:
            stream = self.gateway.stream(
                self._clarification_messages(message, intent, history_text),
                temperature=0.7,
                max_tokens=256,
            )
            return StreamResult(stream=stream, products=[], available_products=[], intent=intent)

        ranked = self._filter_and_rank(self._search(intent), intent)
        llm_products, display_products, available_products = self._prepare(ranked)

        stream = self.gateway.stream(
            self._response_messages(message, llm_products, intent, history_text),
            temperature=0.7,
            max_tokens=1024,
        )
        return StreamResult(
            stream=stream,
            products=display_products,
            available_products=available_products,
            intent=intent,
        )

    def compare_products(
        self,
        product_ids: Sequence[str],
        all_products: Sequence[CatalogProduct],
        context: str = "",
    ) -> ComparisonResult:
        wanted = {str(product_id) for product_id in product_ids}
        selected = [clean_product_for_llm(p) for p in _index_by_id(all_products).values() if p.id in wanted]
        if len(wanted) < 2 or len(selected) < 2:
            return ComparisonResult(message=COMPARISON_VALIDATION_MESSAGE)

        reply = self.gateway.complete(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_comparison_prompt(selected, context)},
            ],
            temperature=0.5,
            max_tokens=1024,
        )
        return ComparisonResult(message=reply)

    # ---------------------------------------------------------
    # STEPS
    # ---------------------------------------------------------
    def _extract_intent(self, message: str, history_text: str) -> Intent:
        raw = self.gateway.complete(
            [
                {"role": "system", "content": INTENT_SYSTEM_PROMPT},
                {"role": "user", "content": build_intent_extraction_prompt(message, history_text)},
            ],
            temperature=0,
            max_tokens=512,
        )
        intent = parse_intent(raw, message)
        logger.info(f"[Intent Extraction] {message!r} -> {intent.model_dump()}")
        return intent

    def _search(self, intent: Intent) -> List[CatalogProduct]:
        keywords = BusinessRules.search_keywords_for(intent)
        products = self.catalog.multi_search(keywords)
        logger.info(f"[Search] keywords={keywords} -> {len(products)} products")
        return products

    def _filter_and_rank(self, products: Sequence[CatalogProduct], intent: Intent) -> List[CatalogProduct]:
        filtered = filter_products(products, BusinessRules.filters_for(intent))
        return BusinessRules.rank_products(filtered)

    def _prepare(
        self, ranked: Sequence[CatalogProduct]
    ) -> Tuple[List[ProductForLLM], List[DisplayProduct], List[DisplayProduct]]:
        top = list(ranked)[:LLM_PRODUCT_LIMIT]
        available = [self.catalog.format_product_for_display(p) for p in top]
        return (
            [clean_product_for_llm(p) for p in top],
            available[:DISPLAY_PRODUCT_LIMIT],
            available,
        )

    def _clarification_messages(self, message: str, intent: Intent, history_text: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_clarification_prompt(message, intent, history_text)},
        ]

    def _response_messages(
        self,
        message: str,
        products: Sequence[ProductForLLM],
        intent: Intent,
        history_text: str,
    ) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_response_prompt(message, products, intent, history_text)},
        ]


def _as_turns(history: Sequence[Any]) -> List[ConversationTurn]:
    return [
        turn if isinstance(turn, ConversationTurn) else ConversationTurn.model_validate(turn)
        for turn in history
    ]
