from gift_concierge.models import ConversationTurn, Intent, ProductForLLM
from gift_concierge.prompts import (
    ALLERGY_WARNING,
    SYSTEM_PROMPT,
    build_clarification_prompt,
    build_comparison_prompt,
    build_intent_extraction_prompt,
    build_response_prompt,
    format_history,
)


def llm_product(pid, name=None, min_price=49.99, max_price=None, **extra):
    return ProductForLLM(
        id=str(pid),
        name=name or f"Bouquet {pid}",
        description=f"Description {pid}",
        min_price=min_price,
        max_price=max_price if max_price is not None else min_price,
        **extra,
    )


class TestFormatHistory:
    def test_keeps_last_three_exchanges(self):
        history = [
            ConversationTurn(role="user" if i % 2 == 0 else "assistant", content=f"turn {i}")
            for i in range(10)
        ]
        text = format_history(history)
        lines = text.splitlines()
        assert len(lines) == 6
        assert lines[0] == "Customer: turn 4"
        assert lines[-1] == "Concierge: turn 9"

    def test_empty_history(self):
        assert format_history([]) == ""


class TestIntentExtractionPrompt:
    def test_embeds_message_history_and_schema(self):
        prompt = build_intent_extraction_prompt("under 30 dollars", "Customer: mom's birthday")
        assert '"under 30 dollars"' in prompt
        assert "Customer: mom's birthday" in prompt
        assert '"needs_clarification"' in prompt
        assert "browse|specific_search|comparison|question|ready_to_buy|greeting" in prompt
        assert "ONLY valid JSON" in prompt

    def test_states_the_binary_clarification_rule(self):
        prompt = build_intent_extraction_prompt("gift", "")
        assert "no occasion, no recipient, no product type, no budget" in prompt
        assert "ANY one specific detail -> needs_clarification = false" in prompt
        assert "This is the start of the conversation." in prompt

    def test_is_deterministic(self):
        assert build_intent_extraction_prompt("hi", "") == build_intent_extraction_prompt("hi", "")


class TestClarificationPrompt:
    def test_focus_follows_clarification_topic(self):
        intent = Intent(needs_clarification=True, clarification_topic="budget")
        prompt = build_clarification_prompt("gift", intent, "")
        assert "What's their budget range?" in prompt
        assert "Do NOT name specific products or prices" in prompt

    def test_generic_focus_without_topic(self):
        prompt = build_clarification_prompt("help", Intent(needs_clarification=True), "")
        assert "What occasion is this for and who's it for?" in prompt


class TestResponsePrompt:
    def test_lists_products_with_index_and_id_tag(self):
        products = [llm_product(101, "Berry Box"), llm_product(202, "Melon Pop", min_price=30, max_price=45)]
        prompt = build_response_prompt("birthday gift", products, Intent(occasion="birthday"), "")
        assert '[1] "Berry Box" [ID:101] — $49.99' in prompt
        assert '[2] "Melon Pop" [ID:202] — $30.00-$45.00' in prompt
        assert "Recommends 3-5" in prompt
        assert "at most ONE follow-up question" in prompt

    def test_caps_embedded_products_at_ten(self):
        products = [llm_product(i) for i in range(1, 15)]
        prompt = build_response_prompt("gift", products, Intent(), "")
        assert "[ID:10]" in prompt
        assert "[ID:11]" not in prompt

    def test_allergy_warning_only_with_dietary_restrictions(self):
        products = [llm_product(1)]
        with_diet = build_response_prompt("no eggs", products, Intent(dietary_restrictions=["egg"]), "")
        without = build_response_prompt("cake", products, Intent(), "")
        assert f'verbatim: "{ALLERGY_WARNING}"' in with_diet
        assert ALLERGY_WARNING not in without

    def test_no_products_line(self):
        prompt = build_response_prompt("gift", [], Intent(), "")
        assert "No products found for this search." in prompt

    def test_missing_price_renders_as_not_available(self):
        prompt = build_response_prompt("gift", [llm_product(1, min_price=None)], Intent(), "")
        assert "[ID:1] — N/A" in prompt


class TestComparisonPrompt:
    def test_full_detail_and_prose_instruction(self):
        products = [
            llm_product(1, "Berry Box", is_one_hour_delivery=True),
            llm_product(2, "Melon Pop", min_price=30, max_price=45),
        ]
        prompt = build_comparison_prompt(products, "for my boss")
        assert 'Product 1: "Berry Box" [ID:1]' in prompt
        assert "1-Hour Delivery: Yes" in prompt
        assert "Price: $30.00 - $45.00" in prompt
        assert "Context: for my boss" in prompt
        assert "NOT a table" in prompt

    def test_without_context(self):
        prompt = build_comparison_prompt([llm_product(1), llm_product(2)])
        assert "Context:" not in prompt


def test_system_prompt_carries_allergy_warning_verbatim():
    assert ALLERGY_WARNING in SYSTEM_PROMPT
