import pytest

from sales_agent.services.catalog_service import load_catalog


class TestLoadCatalog:
    def test_bundled_catalog(self, catalog):
        assert catalog.business.name == "PixelCraft Studio"
        assert [s.id for s in catalog.services] == [
            "logo-design",
            "business-website",
            "ecommerce-store",
            "social-media",
        ]

    def test_custom_path(self, tmp_path):
        path = tmp_path / "kb.yaml"
        path.write_text(
            "business: {name: Test Shop}\n"
            "services:\n"
            "  - {id: basic, name: Basic Plan, price: 1000, delivery_time: 1 day}\n"
            "greetings: {welcome: 'Hi from {business_name}', returning: 'Again {business_name}'}\n"
            "responses: {error: 'Call {admin_phone}'}\n",
            encoding="utf-8",
        )

        catalog = load_catalog(str(path))

        assert catalog.greeting() == "Hi from Test Shop"
        assert catalog.find_service("basic").name == "Basic Plan"


class TestLookups:
    def test_find_service_by_id_or_name(self, catalog):
        assert catalog.find_service("ecommerce-store").name == "E-commerce Store"
        assert catalog.find_service("website").id == "business-website"
        assert catalog.find_service("drone show") is None

    def test_service_info(self, catalog):
        info = catalog.service_info("business-website")
        assert "*Business Website ⭐*" in info
        assert "Rs. 35,000" in info
        assert "• Basic SEO setup" in info

    def test_payment_methods(self, catalog):
        text = catalog.payment_methods_message()
        assert "1. *JazzCash*" in text
        assert "🏦 Meezan Bank" in text

    def test_faq_keyword_match(self, catalog):
        assert "portfolio" in catalog.find_faq_answer("koi previous work dikhayein?")
        assert catalog.find_faq_answer("weather today") is None


class TestTemplates:
    def test_render_with_values(self, catalog):
        assert "Wajah: Blurry" in catalog.render("payment_rejected", reason="Blurry")

    def test_render_missing_template(self, catalog):
        with pytest.raises(KeyError):
            catalog.render("does_not_exist")

    def test_greetings(self, catalog):
        assert "PixelCraft Studio" in catalog.greeting()
        assert catalog.greeting(is_returning=True).startswith("Welcome back!")

    def test_error_message_names_operator(self, catalog):
        assert "923009998888" in catalog.error_message("923009998888")

    def test_fallback_responses(self, catalog):
        assert catalog.fallback_response("PAYMENT_CONFIRMATION", None) == catalog.render("payment_received")
        assert catalog.fallback_response("OUT_OF_SCOPE", None) == catalog.render("out_of_scope")
        assert "923001234567" in catalog.fallback_response("PRICING_INQUIRY", "923001234567")

    def test_offers_team_connection(self, catalog):
        assert catalog.offers_team_connection(catalog.render("out_of_scope")) is True
        assert catalog.offers_team_connection("Logo Design Rs. 5,000 ka hai.") is False
