"""Static business catalog: services, FAQs, payment methods and canned replies."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from sales_agent.logging_config import get_logger

logger = get_logger("catalog_service")

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parents[1] / "data" / "knowledge_base.yaml"


class BusinessInfo(BaseModel):
    name: str
    tagline: str = ""
    description: str = ""
    working_hours: str = ""
    response_time: str = ""
    contact_phone: Optional[str] = None


class ServiceOffering(BaseModel):
    id: str
    name: str
    price: int
    delivery_time: str
    description: str = ""
    popular: bool = False
    features: list[str] = Field(default_factory=list)


class FAQEntry(BaseModel):
    question: str
    answer: str
    keywords: list[str] = Field(default_factory=list)


class PaymentMethod(BaseModel):
    method: str
    account_number: Optional[str] = None
    account_title: Optional[str] = None
    bank_name: Optional[str] = None


class AdvancePayment(BaseModel):
    percentage: int = 50
    minimum_amount: int = 0
    note: str = ""


class Greetings(BaseModel):
    welcome: str
    returning: str


class Catalog(BaseModel):
    business: BusinessInfo
    services: list[ServiceOffering]
    faqs: list[FAQEntry] = Field(default_factory=list)
    payment_methods: list[PaymentMethod] = Field(default_factory=list)
    advance_payment: AdvancePayment = Field(default_factory=AdvancePayment)
    greetings: Greetings
    responses: dict[str, str]
    human_handoff_triggers: list[str] = Field(default_factory=list)
    frustration_indicators: list[str] = Field(default_factory=list)

    def find_service(self, reference: str) -> Optional[ServiceOffering]:
        """Look up a service by id, falling back to a name substring match."""
        if not reference:
            return None
        needle = reference.lower()
        for service in self.services:
            if service.id == reference:
                return service
        for service in self.services:
            if needle in service.name.lower():
                return service
        return None

    def render(self, key: str, **values: object) -> str:
        template = self.responses.get(key)
        if template is None:
            raise KeyError(f"Missing response template: {key}")
        return template.format(**values) if values else template

    def greeting(self, is_returning: bool = False) -> str:
        template = self.greetings.returning if is_returning else self.greetings.welcome
        return template.format(business_name=self.business.name)

    def service_info(self, reference: str) -> Optional[str]:
        service = self.find_service(reference)
        if service is None:
            return None

        features = "\n".join(f"• {feature}" for feature in service.features)
        popular = " ⭐" if service.popular else ""
        return (
            f"📦 *{service.name}{popular}*\n\n"
            f"{service.description}\n\n"
            f"💰 Price: Rs. {service.price:,}\n"
            f"⏱️ Delivery: {service.delivery_time}\n\n"
            f"✨ *Features:*\n{features}\n\n"
            f"{self.advance_payment.note}"
        )

    def payment_methods_message(self) -> str:
        blocks = []
        for index, pm in enumerate(self.payment_methods, start=1):
            block = f"{index}. *{pm.method}*"
            if pm.account_number:
                block += f"\n   📱 {pm.account_number}"
            if pm.account_title:
                block += f"\n   👤 {pm.account_title}"
            if pm.bank_name:
                block += f"\n   🏦 {pm.bank_name}"
            blocks.append(block)

        return (
            "💳 *Payment Methods:*\n\n"
            + "\n\n".join(blocks)
            + f"\n\n📝 {self.advance_payment.note}"
            + "\n\nPayment karne ke baad screenshot yahan share kar dein ✅"
        )

    def find_faq_answer(self, question: str) -> Optional[str]:
        lowered = (question or "").lower()
        for faq in self.faqs:
            if any(keyword.lower() in lowered for keyword in faq.keywords):
                return faq.answer
        return None

    def error_message(self, admin_phone: Optional[str]) -> str:
        contact = admin_phone or self.business.contact_phone or ""
        return self.render("error", admin_phone=contact)

    def fallback_response(self, intent: Optional[str], admin_phone: Optional[str]) -> str:
        """Canned reply used when every generation provider failed."""
        if intent == "GREETING":
            return self.greeting()
        if intent == "PAYMENT_CONFIRMATION":
            return self.render("payment_received")
        if intent == "HUMAN_REQUEST":
            return self.render("handoff_initiated")
        if intent == "OUT_OF_SCOPE":
            return self.render("out_of_scope")
        return self.error_message(admin_phone)

    def offers_team_connection(self, reply: str) -> bool:
        """True when a bot reply ends by offering to connect the customer to the team."""
        offer = self.responses.get("connect_offer")
        return bool(offer and reply and offer.lower() in reply.lower())


@lru_cache(maxsize=4)
def _load_yaml(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Catalog file {path} must contain a mapping")
    return data


def load_catalog(path: Optional[str] = None) -> Catalog:
    catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH
    catalog = Catalog.model_validate(_load_yaml(catalog_path))
    logger.info(
        "Catalog loaded",
        extra={"context": {"path": str(catalog_path), "services": len(catalog.services), "faqs": len(catalog.faqs)}},
    )
    return catalog
