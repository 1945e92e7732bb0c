"""Knowledge-base grounded prompts for the generation backend."""

from typing import Optional, Sequence

from sales_agent.models import Message
from sales_agent.services.catalog_service import Catalog

MAX_HISTORY_MESSAGES = 10

SYSTEM_PROMPT_TEMPLATE = """You are an AI Sales Agent for {business_name}. Follow these rules strictly:

1. ONLY use information from the knowledge base below. Never make up prices, services, features or delivery dates.
2. If the answer is not in the knowledge base, reply exactly: "{no_answer}"
3. Be friendly and professional. Reply in the customer's language; Roman Urdu mixed with English is common.
4. Keep replies short (under 500 characters when possible), use *bold* and bullet points (•) for WhatsApp.
5. Do not mention that you are reading from a knowledge base.

## KNOWLEDGE BASE
{knowledge_base}"""

INTENT_INSTRUCTIONS = {
    "GREETING": "Welcome the customer warmly and offer to help. Mention available packages briefly.",
    "SERVICE_INQUIRY": "Describe the requested service from the knowledge base.",
    "PRICING_INQUIRY": "Share pricing information from the knowledge base. Mention all packages with prices.",
    "PAYMENT_INQUIRY": "Share the payment methods with account details and the advance payment requirement.",
    "ORDER_INTENT": "Guide them through ordering. Ask which package they want if not specified, then share payment details.",
    "FAQ": "Answer from the FAQs in the knowledge base. Be concise and accurate.",
    "CONFIRMATION": "Proceed with the previously discussed action.",
    "REJECTION": "Acknowledge politely and ask if they need help with something else.",
    "GENERAL_CHAT": "Be helpful and try to understand what they need. Suggest services if appropriate.",
    "OUT_OF_SCOPE": "Politely explain you don't have this information and offer to connect them with the team.",
}


def format_knowledge_base(catalog: Catalog) -> str:
    business = catalog.business
    sections = [
        "### Business Information\n"
        f"- Name: {business.name}\n"
        f"- Tagline: {business.tagline}\n"
        f"- Description: {business.description}\n"
        f"- Working Hours: {business.working_hours}\n"
        f"- Response Time: {business.response_time}"
    ]

    services = []
    for service in catalog.services:
        features = "\n".join(f"  - {feature}" for feature in service.features)
        popular = " (Popular)" if service.popular else ""
        services.append(
            f"#### {service.name}{popular}\n"
            f"- ID: {service.id}\n"
            f"- Price: Rs. {service.price:,}\n"
            f"- Delivery: {service.delivery_time}\n"
            f"- Description: {service.description}\n"
            f"- Features:\n{features}"
        )
    sections.append("### Services & Packages\n" + "\n\n".join(services))

    methods = []
    for pm in catalog.payment_methods:
        line = f"- {pm.method}"
        if pm.account_number:
            line += f": {pm.account_number}"
        if pm.account_title:
            line += f" ({pm.account_title})"
        if pm.bank_name:
            line += f" - {pm.bank_name}"
        methods.append(line)
    advance = catalog.advance_payment
    sections.append(
        "### Payment Methods\n"
        + "\n".join(methods)
        + f"\n\nAdvance Payment: Rs. {advance.minimum_amount} minimum, {advance.percentage}% of total"
        + f"\nNote: {advance.note}"
    )

    faqs = "\n\n".join(f"Q: {faq.question}\nA: {faq.answer}" for faq in catalog.faqs)
    sections.append(f"### Frequently Asked Questions\n{faqs}")

    return "\n\n".join(sections)


def build_system_prompt(catalog: Catalog) -> str:
    return SYSTEM_PROMPT_TEMPLATE.format(
        business_name=catalog.business.name,
        no_answer=catalog.responses.get("out_of_scope", ""),
        knowledge_base=format_knowledge_base(catalog),
    )


def format_context(history: Sequence[Message], context: Optional[dict] = None) -> str:
    context = context or {}
    parts = []
    if history:
        parts.append(f"Previous messages in this conversation: {len(history)}")
        lines = []
        for message in list(history)[-MAX_HISTORY_MESSAGES:]:
            speaker = "Customer" if message.sender == "customer" else "You"
            lines.append(f"{speaker}: {message.body or ''}")
        parts.append("### Recent Conversation\n" + "\n".join(lines))
    else:
        parts.append("This is a new conversation - first message from customer.")

    if context.get("is_returning"):
        parts.append("Note: This is a returning customer.")
    if context.get("customer_name"):
        parts.append(f"Customer Name: {context['customer_name']}")
    if context.get("service_id"):
        parts.append(f"Customer is asking about: {context.get('service_name') or context['service_id']}")
    if context.get("language"):
        parts.append(f"Customer writes in: {context['language']}")
    return "\n\n".join(parts)


def build_messages(
    catalog: Catalog,
    user_text: str,
    history: Sequence[Message],
    intent: Optional[str] = None,
    context: Optional[dict] = None,
) -> list[dict]:
    user_prompt = "## CONVERSATION CONTEXT\n" + format_context(history, context)
    if intent:
        user_prompt += f"\n\n## DETECTED INTENT: {intent}"
        instruction = INTENT_INSTRUCTIONS.get(intent)
        if instruction:
            user_prompt += f"\nFocus on: {instruction}"
    user_prompt += f"\n\n## CURRENT USER MESSAGE\n{user_text}"

    return [
        {"role": "system", "content": build_system_prompt(catalog)},
        {"role": "user", "content": user_prompt},
    ]
