"""
Prompt text for each model call made by the pipeline.

Everything here is a pure function of its arguments so prompts can be
asserted on directly in tests.
"""
import json
from typing import Optional, Sequence

from .models import ConversationTurn, Intent, ProductForLLM

HISTORY_WINDOW = 6  # last 3 exchanges
MAX_PROMPT_PRODUCTS = 10

ALLERGY_WARNING = (
    "Allergy Warning: Products may contain egg, wheat, soy, milk, peanuts, and tree nuts. "
    "We recommend that you take the necessary precautions based on any related allergies."
)

# ---------------------------------------------------------
# 1. PERSONA
# ---------------------------------------------------------
SYSTEM_PROMPT = f"""You are the AI Shopping Assistant, a warm and knowledgeable concierge who helps customers find the perfect gift.

🟢 PERSONALITY:
- Friendly and genuinely helpful, like a knowledgeable friend.
- Enthusiastic about the products but never pushy.
- Concise: 2-4 sentences unless comparing products.
- Light emojis only (🛍️ 🎁 ✨).

🔴 NON-NEGOTIABLE RULES:
1. ONLY reference products that appear in the provided product data. Never invent product names, prices, ingredients or features.
2. When mentioning a product, always include its name and starting price ("starting at $X").
3. Present 3-5 options when recommending. Never push a single product.
4. Never make claims about delivery dates, store locations or policies not present in the product data.
5. When the customer mentions allergies or dietary restrictions, ALWAYS include this warning verbatim: "{ALLERGY_WARNING}"
6. If the customer seems decided ("I'll take it", "looks good"), give the direct product link and encourage them instead of suggesting alternatives.
7. Keep product descriptions factual: paraphrase the actual description, never embellish."""

INTENT_SYSTEM_PROMPT = """You are an intent extraction system. Respond with ONLY valid JSON. No markdown, no backticks, no explanation.

CRITICAL RULE for needs_clarification:
- If the message lacks ALL of: occasion, recipient, product type and budget -> needs_clarification is true.
- Vague examples where it MUST be true: "gift", "help", "hi", "I need something", "what do you have", "looking for a present".
- As soon as the message gives at least ONE specific detail -> needs_clarification is false."""

_INTENT_SCHEMA = """{
  "search_keywords": ["keyword1", "keyword2"],
  "occasion": "birthday|anniversary|sympathy|thank_you|congratulations|get_well|just_because|corporate|wedding|holiday|valentines|mothers_day|null",
  "budget_min": null,
  "budget_max": null,
  "recipient": "description of recipient or null",
  "dietary_restrictions": [],
  "urgency": "none|standard|same_day|one_hour",
  "product_type_preference": "fruit_bouquet|chocolate_covered|baked_goods|platters|gift_basket|any",
  "intent_type": "browse|specific_search|comparison|question|ready_to_buy|greeting",
  "needs_clarification": false,
  "clarification_topic": "occasion|budget|recipient|dietary|size|null",
  "sentiment": "excited|neutral|confused|frustrated|decided"
}"""

_CLARIFICATION_FOCUS = {
    "occasion": "What's the occasion? (birthday, thank you, congratulations, etc.)",
    "recipient": "Who is it for? (friend, partner, parent, coworker, etc.)",
    "budget": "What's their budget range?",
    "dietary": "Are there any allergies or dietary restrictions to keep in mind?",
    "size": "How many people should the gift serve?",
}


def format_history(history: Sequence[ConversationTurn], window: int = HISTORY_WINDOW) -> str:
    recent = list(history)[-window:] if window > 0 else []
    return "\n".join(
        f"{'Customer' if turn.role == 'user' else 'Concierge'}: {turn.content}" for turn in recent
    )


def _price(product: ProductForLLM, separator: str = "-") -> str:
    if product.min_price is None:
        return "N/A"
    text = f"${product.min_price:.2f}"
    if product.max_price is not None and product.max_price != product.min_price:
        text += f"{separator}${product.max_price:.2f}"
    return text


def _intent_json(intent: Intent) -> str:
    return json.dumps(intent.model_dump(), indent=2)


# ---------------------------------------------------------
# 2. INTENT EXTRACTION
# ---------------------------------------------------------
def build_intent_extraction_prompt(message: str, history_text: str) -> str:
    return f"""Analyze this customer message in the context of their conversation with the AI Shopping Assistant.

## Conversation so far:
{history_text or "This is the start of the conversation."}

## Latest customer message:
"{message}"

## Your task:
Extract the customer's intent as structured JSON. Consider both explicit statements and implied needs.

## Follow-up messages that refine a previous search:
- If the conversation already specified an occasion, recipient or product type, KEEP those details.
- If they add a constraint (e.g. "under $30"), MERGE it with their previous intent.
- Never discard context from earlier turns.

Example (refinement):
Customer: "mom's birthday"
Concierge: [shows products]
Customer: "under 30 dollars"
Output: {{"search_keywords": ["birthday", "mom"], "occasion": "birthday", "budget_min": null, "budget_max": 30, "recipient": "mom", "dietary_restrictions": [], "urgency": "none", "product_type_preference": "any", "intent_type": "specific_search", "needs_clarification": false, "clarification_topic": null, "sentiment": "neutral"}}

Example (vague):
Customer: "looking for a present"
Output: {{"search_keywords": ["gifts"], "occasion": null, "budget_min": null, "budget_max": null, "recipient": null, "dietary_restrictions": [], "urgency": "none", "product_type_preference": "any", "intent_type": "browse", "needs_clarification": true, "clarification_topic": "recipient", "sentiment": "neutral"}}

Example (specific):
Customer: "chocolate strawberries for my mom's birthday"
Output: {{"search_keywords": ["chocolate strawberries", "birthday"], "occasion": "birthday", "budget_min": null, "budget_max": null, "recipient": "mom", "dietary_restrictions": [], "urgency": "none", "product_type_preference": "chocolate_covered", "intent_type": "specific_search", "needs_clarification": false, "clarification_topic": null, "sentiment": "excited"}}

Example (dietary):
Customer: "gift for someone allergic to nuts"
Output: {{"search_keywords": ["gift", "allergy friendly"], "occasion": null, "budget_min": null, "budget_max": null, "recipient": "someone", "dietary_restrictions": ["peanut", "tree nut"], "urgency": "none", "product_type_preference": "any", "intent_type": "specific_search", "needs_clarification": false, "clarification_topic": null, "sentiment": "neutral"}}

## The rule is binary:
- NO specific detail (no occasion, no recipient, no product type, no budget) -> needs_clarification = true
- ANY one specific detail -> needs_clarification = false

Respond with ONLY valid JSON in exactly this schema (no markdown, no backticks):
{_INTENT_SCHEMA}"""


# ---------------------------------------------------------
# 3. CLARIFICATION
# ---------------------------------------------------------
def build_clarification_prompt(message: str, intent: Intent, history_text: str) -> str:
    focus = _CLARIFICATION_FOCUS.get(
        intent.clarification_topic or "", "What occasion is this for and who's it for?"
    )
    return f"""You are responding to a customer as the AI Shopping Assistant.

## Conversation History:
{history_text or "Start of conversation."}

## Customer's Latest Message:
"{message}"

## Customer's Extracted Intent:
{_intent_json(intent)}

## Your Task:
The request is too vague to show good recommendations. Write a SHORT, warm reply that:
1. Acknowledges what they said
2. Asks 1-2 focused questions to narrow down the perfect gift
3. Focuses on: {focus}
4. May mention 1-2 popular categories for inspiration (e.g. "fruit bouquets")

## Response Rules:
- 2-3 sentences max
- Warm, not interrogative
- Do NOT use markdown headers (##)
- Do NOT name specific products or prices"""


# ---------------------------------------------------------
# 4. GROUNDED RESPONSE
# ---------------------------------------------------------
def build_response_prompt(
    message: str,
    products: Sequence[ProductForLLM],
    intent: Intent,
    history_text: str,
) -> str:
    product_list = "\n\n".join(
        f'[{i}] "{p.name}" [ID:{p.id}] — {_price(p)} | {p.size_options} size(s) | '
        f"Occasion: {p.occasion or 'Any'} | Ingredients: {p.ingredients or 'Not specified'} | "
        f"{'1-Hour Delivery Available' if p.is_one_hour_delivery else 'Standard Delivery'} | "
        f"{p.product_tag} | {p.promo}\nDescription: {p.description}"
        for i, p in enumerate(list(products)[:MAX_PROMPT_PRODUCTS], start=1)
    )

    allergy_rule = ""
    if intent.dietary_restrictions:
        allergy_rule = (
            f"\n6. The customer has dietary restrictions ({', '.join(intent.dietary_restrictions)}). "
            f'End your response with this sentence, verbatim: "{ALLERGY_WARNING}"'
        )

    return f"""You are responding to a customer as the AI Shopping Assistant.

## Conversation History:
{history_text or "Start of conversation."}

## Customer's Latest Message:
"{message}"

## Customer's Extracted Intent:
{_intent_json(intent)}

## Available Products (from catalog search — ONLY reference these):
{product_list or "No products found for this search."}

## Your Task:
Write a helpful, conversational response that:
1. Acknowledges what the customer is looking for
2. Recommends 3-5 relevant products from the list above (by name and price)
3. Briefly explains WHY each fits, using the product description
4. Asks at most ONE follow-up question
5. Ends with a gentle nudge to help them decide (never pushy){allergy_rule}

## Response Format:
- Conversational, not a bullet list
- Format mentions as: **Product Name** [ID:xxxx] (starting at $XX.XX)
- CRITICAL: put the [ID:xxxx] tag immediately after EVERY product name you mention. The IDs are in the list above.
- If nothing matches well, say so honestly and suggest broadening the search
- Do NOT use markdown headers (##)"""


# ---------------------------------------------------------
# 5. COMPARISON
# ---------------------------------------------------------
def build_comparison_prompt(products: Sequence[ProductForLLM], context: Optional[str] = "") -> str:
    details = "\n\n".join(
        f'Product {i}: "{p.name}" [ID:{p.id}]\n'
        f"  - Price: {_price(p, separator=' - ')}\n"
        f"  - Sizes Available: {p.size_options}\n"
        f"  - Occasions: {p.occasion or 'Any'}\n"
        f"  - Ingredients: {p.ingredients or 'Not specified'}\n"
        f"  - 1-Hour Delivery: {'Yes' if p.is_one_hour_delivery else 'No'}\n"
        f"  - Tags: {p.product_tag or 'None'} {p.promo}\n"
        f"  - Description: {p.description}"
        for i, p in enumerate(products, start=1)
    )
    context_line = f" Context: {context}" if context else ""

    return f"""A customer wants to compare these products.{context_line}

{details}

Write a brief, helpful comparison that:
1. Highlights what makes each product unique
2. Notes key differences (price, size options, ingredients, delivery)
3. Suggests which might suit the customer best given their context
4. Keeps to 3-4 sentences per product

Write it as conversational prose, NOT a table. Reference products by name with price.
CRITICAL: put the [ID:xxxx] tag immediately after each product name (e.g. "**Product Name** [ID:12345]")."""
