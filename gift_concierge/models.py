import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

OCCASIONS = (
    "birthday", "anniversary", "sympathy", "thank_you", "congratulations", "get_well",
    "just_because", "corporate", "wedding", "holiday", "valentines", "mothers_day",
)
URGENCIES = ("none", "standard", "same_day", "one_hour")
PRODUCT_TYPES = ("fruit_bouquet", "chocolate_covered", "baked_goods", "platters", "gift_basket", "any")
INTENT_TYPES = ("browse", "specific_search", "comparison", "question", "ready_to_buy", "greeting")
CLARIFICATION_TOPICS = ("occasion", "budget", "recipient", "dietary", "size")
SENTIMENTS = ("excited", "neutral", "confused", "frustrated", "decided")

_NULL_WORDS = {"", "null", "none", "n/a"}


def _choice(value: Any, choices: tuple, default: Optional[str]) -> Optional[str]:
    if not isinstance(value, str):
        return default
    cleaned = value.strip().lower().replace(" ", "_").replace("-", "_")
    return cleaned if cleaned in choices else default


def _money(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        digits = re.sub(r"[^\d.\-]", "", str(value))
        try:
            number = float(digits)
        except ValueError:
            return None
    return number if number >= 0 else None


# ---------------------------------------------------------
# 1. CONVERSATION
# ---------------------------------------------------------
class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


# ---------------------------------------------------------
# 2. INTENT (untrusted model output, coerced on the way in)
# ---------------------------------------------------------
class Intent(BaseModel):
    search_keywords: List[str] = []
    occasion: Optional[str] = None
    budget_min: Optional[float] = None
    budget_max: Optional[float] = None
    recipient: Optional[str] = None
    dietary_restrictions: List[str] = []
    urgency: str = "none"
    product_type_preference: str = "any"
    intent_type: str = "browse"
    needs_clarification: bool = False
    clarification_topic: Optional[str] = None
    sentiment: str = "neutral"

    @field_validator("search_keywords", "dietary_restrictions", mode="before")
    @classmethod
    def _string_list(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple, set)):
            return []
        seen = set()
        items = []
        for item in value:
            if item is None:
                continue
            text = str(item).strip()
            if text.lower() in _NULL_WORDS or text.lower() in seen:
                continue
            seen.add(text.lower())
            items.append(text)
        return items

    @field_validator("occasion", mode="before")
    @classmethod
    def _occasion(cls, value: Any) -> Optional[str]:
        return _choice(value, OCCASIONS, None)

    @field_validator("budget_min", "budget_max", mode="before")
    @classmethod
    def _budget(cls, value: Any) -> Optional[float]:
        return _money(value)

    @field_validator("recipient", mode="before")
    @classmethod
    def _recipient(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return None if text.lower() in _NULL_WORDS else text

    @field_validator("urgency", mode="before")
    @classmethod
    def _urgency(cls, value: Any) -> str:
        return _choice(value, URGENCIES, "none")

    @field_validator("product_type_preference", mode="before")
    @classmethod
    def _product_type(cls, value: Any) -> str:
        return _choice(value, PRODUCT_TYPES, "any")

    @field_validator("intent_type", mode="before")
    @classmethod
    def _intent_type(cls, value: Any) -> str:
        return _choice(value, INTENT_TYPES, "browse")

    @field_validator("needs_clarification", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in ("true", "yes", "1")
        return bool(value)

    @field_validator("clarification_topic", mode="before")
    @classmethod
    def _topic(cls, value: Any) -> Optional[str]:
        return _choice(value, CLARIFICATION_TOPICS, None)

    @field_validator("sentiment", mode="before")
    @classmethod
    def _sentiment(cls, value: Any) -> str:
        return _choice(value, SENTIMENTS, "neutral")

    @model_validator(mode="after")
    def _consistent(self) -> "Intent":
        if (
            self.budget_min is not None
            and self.budget_max is not None
            and self.budget_min > self.budget_max
        ):
            self.budget_min, self.budget_max = self.budget_max, self.budget_min
        if not self.needs_clarification:
            self.clarification_topic = None
        return self


# ---------------------------------------------------------
# 3. CATALOG RECORDS AND PROJECTIONS
# ---------------------------------------------------------
class CatalogProduct(BaseModel):
    """A product record as returned by the catalog search endpoint."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str = ""
    description: str = ""
    min_price: Optional[float] = Field(default=None, alias="minPrice")
    max_price: Optional[float] = Field(default=None, alias="maxPrice")
    occasion: str = ""
    category: str = ""
    # Second alias choice accepts the camelCase card payload posted back for comparisons
    ingredients: str = Field(
        default="", alias="ingrediantNames",
        validation_alias=AliasChoices("ingrediantNames", "ingredients"),
    )
    size_count: int = Field(default=1, alias="sizeCount")
    is_one_hour_delivery: bool = Field(default=False, alias="isOneHourDelivery")
    product_image_tag: str = Field(
        default="", alias="productImageTag",
        validation_alias=AliasChoices("productImageTag", "productTag"),
    )
    promo: str = ""
    non_promo: str = Field(default="", alias="nonPromo")
    on_sale: bool = Field(
        default=False, alias="isMinSizeOnSale",
        validation_alias=AliasChoices("isMinSizeOnSale", "onSale"),
    )
    original_price: Optional[float] = Field(
        default=None, alias="minsizeProductPrice",
        validation_alias=AliasChoices("minsizeProductPrice", "originalPrice"),
    )
    search_score: float = Field(default=0.0, alias="@search.score")
    allergy_info: str = Field(
        default="", alias="allergyinformation",
        validation_alias=AliasChoices("allergyinformation", "allergyInfo"),
    )
    url: str = ""
    image: str = ""
    thumbnail: str = ""
    catalog_code: str = Field(default="", alias="catalogCode")

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, value: Any) -> str:
        if value is None or str(value).strip() == "":
            raise ValueError("product id is required")
        return str(value).strip()

    @field_validator(
        "name", "description", "occasion", "category", "ingredients", "product_image_tag",
        "promo", "non_promo", "allergy_info", "url", "image", "thumbnail", "catalog_code",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("is_one_hour_delivery", "on_sale", mode="before")
    @classmethod
    def _bool(cls, value: Any) -> bool:
        return bool(value)

    @field_validator("size_count", mode="before")
    @classmethod
    def _size(cls, value: Any) -> int:
        try:
            return int(value) or 1
        except (TypeError, ValueError):
            return 1

    @field_validator("search_score", mode="before")
    @classmethod
    def _score(cls, value: Any) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0


class ProductForLLM(BaseModel):
    """Token-economical view of a product, used only inside prompts."""
    id: str
    name: str
    description: str
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    occasion: str = ""
    category: str = ""
    ingredients: str = ""
    size_options: int = 1
    is_one_hour_delivery: bool = False
    product_tag: str = ""
    promo: str = ""
    on_sale: bool = False
    original_price: Optional[float] = None


class DisplayProduct(BaseModel):
    """Product card payload for the presentation layer (camelCase on the wire)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    description: str
    image: str = ""
    thumbnail: str = ""
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    url: str = ""
    occasion: str = ""
    category: str = ""
    ingredients: str = ""
    size_count: int = 1
    is_one_hour_delivery: bool = False
    product_tag: str = ""
    promo: str = ""
    on_sale: bool = False
    original_price: Optional[float] = None
    allergy_info: str = ""
    catalog_code: str = ""


class SearchFilters(BaseModel):
    min_budget: Optional[float] = None
    max_budget: Optional[float] = None
    occasion: Optional[str] = None
    exclude_ingredients: List[str] = []
    urgent_delivery: bool = False


# ---------------------------------------------------------
# 4. PIPELINE RESULTS
# ---------------------------------------------------------
class PipelineResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    products: List[DisplayProduct] = []
    intent: Intent


@dataclass
class StreamResult:
    """Streaming turn: products are provisional until the text has been read in full."""
    stream: Iterator[str]
    products: List[DisplayProduct]
    available_products: List[DisplayProduct]
    intent: Intent


class ComparisonResult(BaseModel):
    message: str


# ---------------------------------------------------------
# 5. HTTP PAYLOADS
# ---------------------------------------------------------
class ChatRequest(BaseModel):
    message: str = ""
    conversation_history: List[ConversationTurn] = []
    compare_products: List[str] = []
    products: List[CatalogProduct] = []
    context: str = ""


class ChatResponse(BaseModel):
    message: str
    products: List[Dict[str, Any]] = []
    intent: Dict[str, Any] = {}
