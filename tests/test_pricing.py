"""Tests for checkout pricing and page text helpers."""

from conftest import make_pages
from tales.services.pricing import (
    BASE_EXPORT_AMOUNT,
    PREMIUM_EFFECT_AMOUNT,
    expected_total_for_units,
    get_checkout_quote,
    get_premium_effects,
)
from tales.services.text_format import detect_likely_names


class TestCheckoutQuote:
    def test_default_project_is_plain_export(self):
        quote = get_checkout_quote("papyrus", "romantic", make_pages(3))
        assert quote.totalAmount == 1500
        assert quote.premiumUnits == 0
        assert quote.addonsAmount == 0
        assert quote.purchaseType == "export"
        assert quote.total_minor == 150000

    def test_premium_vibe_adds_one_unit(self):
        quote = get_checkout_quote("papyrus", "heartbreak", make_pages(3))
        assert quote.totalAmount == 2000
        assert quote.purchaseType == "premium"
        assert quote.reasons == ["Premium vibe music"]

    def test_all_effects_in_fixed_order(self):
        effects = get_premium_effects("door-reveal", "rain-dance", make_pages(11, secret=True))
        assert [e.key for e in effects] == ["premium-template", "premium-vibe", "extended-length", "secret-page"]
        quote = get_checkout_quote("door-reveal", "rain-dance", make_pages(11, secret=True))
        assert quote.totalAmount == BASE_EXPORT_AMOUNT + 4 * PREMIUM_EFFECT_AMOUNT

    def test_ten_pages_is_still_free(self):
        assert get_checkout_quote("papyrus", "soft", make_pages(10)).premiumUnits == 0
        assert get_checkout_quote("papyrus", "soft", make_pages(11)).premiumUnits == 1

    def test_effects_are_distinct(self):
        pages = make_pages(4)
        pages = [p.model_copy(update={"secret": True}) for p in pages]
        assert get_checkout_quote("papyrus", "romantic", pages).premiumUnits == 1

    def test_unknown_vibe_is_free(self):
        assert get_checkout_quote("love-card", "brand-new-vibe", make_pages(1)).purchaseType == "export"

    def test_accepts_page_dicts(self):
        quote = get_checkout_quote("papyrus", "romantic", [{"id": "a", "body": "x", "secret": True}])
        assert quote.premiumUnits == 1

    def test_empty_pages(self):
        assert get_checkout_quote("papyrus", "romantic", None).totalAmount == 1500


class TestExpectedTotalForUnits:
    def test_units(self):
        assert expected_total_for_units(0) == 1500
        assert expected_total_for_units(3) == 3000

    def test_negative_units_clamped(self):
        assert expected_total_for_units(-4) == 1500


class TestDetectLikelyNames:
    def test_capitalized_words(self):
        assert detect_likely_names("Tolu and Ada met in Lagos") == ["Tolu", "Ada", "Lagos"]

    def test_pet_names(self):
        assert detect_likely_names("you are my baby") == ["baby"]

    def test_short_words_ignored(self):
        assert detect_likely_names("I am Jo") == []

    def test_capped_at_eight(self):
        text = "Alpha Bravo Charlie Delta Echo Foxtrot Golf Hotel India Juliet"
        assert len(detect_likely_names(text)) == 8

    def test_deduplicated(self):
        assert detect_likely_names("Tolu Tolu Tolu") == ["Tolu"]

    def test_empty(self):
        assert detect_likely_names("") == []
