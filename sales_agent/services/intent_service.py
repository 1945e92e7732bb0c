import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from sales_agent.logging_config import get_logger
from sales_agent.services.catalog_service import Catalog
from sales_agent.services.state_machine import Priority

logger = get_logger("intent_service")


class Intent(str, Enum):
    # Declaration order is the match order and the tie-break order.
    GREETING = "GREETING"
    SERVICE_INQUIRY = "SERVICE_INQUIRY"
    PRICING_INQUIRY = "PRICING_INQUIRY"
    PAYMENT_CONFIRMATION = "PAYMENT_CONFIRMATION"
    PAYMENT_INQUIRY = "PAYMENT_INQUIRY"
    ORDER_INTENT = "ORDER_INTENT"
    HUMAN_REQUEST = "HUMAN_REQUEST"
    FRUSTRATION = "FRUSTRATION"  # internal only, always remapped to HUMAN_REQUEST
    CONFIRMATION = "CONFIRMATION"
    REJECTION = "REJECTION"
    FAQ = "FAQ"
    OUT_OF_SCOPE = "OUT_OF_SCOPE"
    GENERAL_CHAT = "GENERAL_CHAT"


HANDOFF_INTENT_LABEL = "HUMAN_HANDOFF"
HUMAN_REPLY_LABEL = "HUMAN_REPLY"

BASE_CONFIDENCE = 0.7
ATTACHMENT_CONFIDENCE = 0.85
NO_MATCH_CONFIDENCE = 0.6
SERVICE_NAME_CONFIDENCE = 0.8
FRUSTRATION_CONFIDENCE = 0.9

GREETING_PATTERNS = (
    re.compile(r"^(hi|hello|hey|assalam|salam|aoa|asc|good morning|good evening|good afternoon)[\s!.,]*$"),
    re.compile(r"^(hi|hello|hey|salam|aoa)\s*(there|everyone|all)?[\s!.,]*$"),
    re.compile(r"^(assalam\s*o?\s*alaikum|wa\s*alaikum\s*assalam)[\s!.,]*$"),
    re.compile(r"^(kia|kya)\s*(hal|haal)[\s?]*$"),
)

# Bare "package"/"plan" stay out of this list so that "is package ka price" reads as pricing.
SERVICE_INQUIRY_PATTERNS = (
    re.compile(r"\b(services?|offers?|what\s+do\s+you\s+(do|offer))\b"),
    re.compile(r"\b(tell|show|explain|describe)\s+(me\s+)?(about\s+)?(your\s+)?(service|package|offer)"),
    re.compile(r"\b(which|what|konsi|kaunsi|kya)\s+(packages?|plans?|services?)\b"),
    re.compile(r"\b(packages?|plans?)\s*(list|details?|info)\b"),
    re.compile(r"\b(basic|standard|premium)\s*(package|plan)?\b"),
    re.compile(r"\bservice\s*(list|details?|info)"),
    re.compile(r"\b(features?|include|kya\s+milega)\b"),
)

PRICING_PATTERNS = (
    re.compile(r"\b(price|pricing|cost|rate|kitne|kitna|charges?|fee|paisa|rupees?|rs\.?|pkr)\b"),
    re.compile(r"\b(how\s+much|kya\s+rate|konsi\s+price)\b"),
    re.compile(r"\b(budget|affordable|cheap|expensive|discount)\b"),
)

PAYMENT_CONFIRMATION_PATTERNS = (
    re.compile(r"\b(paid|payment\s+(done|sent|kiya|kar\s*di(ya)?|ho\s*gaya|ho\s*gayi))\b"),
    re.compile(r"\b(bhej\s*(diya|di|dia)|transfer\s*(kiya|kar\s*diya))\b"),
    re.compile(r"\b(screenshot|receipt|slip)\b"),
    re.compile(r"\b(check\s+kar(ein|o)?|verify\s+kar(ein|o)?)\b"),
)

PAYMENT_INQUIRY_PATTERNS = (
    re.compile(r"\b(how\s+to\s+pay|payment\s+methods?|kaise\s+pay)\b"),
    re.compile(r"\b(jazzcash|easypaisa|bank\s+transfer|account\s+(number|details?))\b"),
    re.compile(r"\b(advance|deposit|token)\s*(payment|amount)?\b"),
    re.compile(r"\b(payment\s+details?|where\s+to\s+send|kahan\s+bhejun)\b"),
)

ORDER_PATTERNS = (
    re.compile(r"\b(order|book|buy|purchase|khareed\w*|lena\s+hai|chahiye)\b"),
    re.compile(r"\b(want\s+to\s+(order|buy|get)|mujhe\s+chahiye)\b"),
    re.compile(r"\b(proceed|confirm|finalize)\b"),
    re.compile(r"\b(i('ll|\s+will)\s+(take|get|order))\b"),
)

CONFIRMATION_PATTERNS = (
    re.compile(r"^(yes|yeah|yep|ok|okay|sure|alright|theek|thik|haan|han|ji|hnji|jee|bilkul|zaroor)[\s!.,]*$"),
    re.compile(r"\b(sounds?\s+good|perfect|great|done|agreed)\b"),
)

REJECTION_PATTERNS = (
    re.compile(r"^(no|nope|nah|nahi|nahin|na|cancel|stop)[\s!.,]*$"),
    re.compile(r"\b(not\s+interested|don'?t\s+want|nahi\s+chahiye)\b"),
)

FAQ_PATTERNS = (
    re.compile(r"\b(refund|money\s+back|cancel|cancellation)\b"),
    re.compile(r"\b(delivery|how\s+long|kitne\s+din|time\s+lagega)\b"),
    re.compile(r"\b(revisions?|change|modify|update|edit)\b"),
    re.compile(r"\b(support|after\s+service|help)\b"),
    re.compile(r"\b(samples?|portfolio|examples?|previous\s+work)\b"),
    re.compile(r"\b(guarantee|warranty)\b"),
)

URDU_PATTERNS = (
    re.compile(
        r"\b(kya|kia|hai|hain|ho|mujhe|aap|tum|ye|yeh|wo|woh|chahiye|nahi|haan|ji|kaise|kyun|kahaan|kab|kaun)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(shukriya|meherbani|acha|theek|bilkul|zaroor)\b", re.IGNORECASE),
    re.compile(r"\b(bhai|yaar|dost)\b", re.IGNORECASE),
)


def _base_confidence(text: str) -> float:
    return BASE_CONFIDENCE


def _greeting_confidence(text: str) -> float:
    return 0.95 if len(text) < 20 else BASE_CONFIDENCE


def _service_inquiry_confidence(text: str) -> float:
    return 0.75 if len(text) > 30 else BASE_CONFIDENCE


def _fixed(value: float) -> Callable[[str], float]:
    def rule(text: str) -> float:
        return value

    return rule


CONFIDENCE_RULES: dict[Intent, Callable[[str], float]] = {
    Intent.GREETING: _greeting_confidence,
    Intent.HUMAN_REQUEST: _fixed(0.95),
    Intent.FRUSTRATION: _fixed(FRUSTRATION_CONFIDENCE),
    Intent.PAYMENT_CONFIRMATION: _fixed(ATTACHMENT_CONFIDENCE),
    Intent.SERVICE_INQUIRY: _service_inquiry_confidence,
}


@dataclass(frozen=True)
class IntentMatcher:
    intent: Intent
    pattern: re.Pattern
    confidence_rule: Callable[[str], float]


@dataclass(frozen=True)
class ServiceMatcher:
    service_id: str
    service_name: str
    pattern: re.Pattern


@dataclass
class Classification:
    intent: Intent
    confidence: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class HandoffDecision:
    handoff: bool
    reason: Optional[str] = None
    priority: Optional[Priority] = None


def phrase_pattern(phrase: str) -> re.Pattern:
    """Whole-word pattern for a literal phrase; inner whitespace matches any run of spaces."""
    tokens = [re.escape(token) for token in phrase.strip().lower().split()]
    return re.compile(r"\b" + r"\s+".join(tokens) + r"\b")


def build_matcher_table(catalog: Catalog) -> list[IntentMatcher]:
    static_patterns = {
        Intent.GREETING: GREETING_PATTERNS,
        Intent.SERVICE_INQUIRY: SERVICE_INQUIRY_PATTERNS,
        Intent.PRICING_INQUIRY: PRICING_PATTERNS,
        Intent.PAYMENT_CONFIRMATION: PAYMENT_CONFIRMATION_PATTERNS,
        Intent.PAYMENT_INQUIRY: PAYMENT_INQUIRY_PATTERNS,
        Intent.ORDER_INTENT: ORDER_PATTERNS,
        Intent.HUMAN_REQUEST: tuple(phrase_pattern(p) for p in catalog.human_handoff_triggers if p.strip()),
        Intent.FRUSTRATION: tuple(phrase_pattern(p) for p in catalog.frustration_indicators if p.strip()),
        Intent.CONFIRMATION: CONFIRMATION_PATTERNS,
        Intent.REJECTION: REJECTION_PATTERNS,
        Intent.FAQ: FAQ_PATTERNS,
    }

    table = []
    for intent in Intent:
        rule = CONFIDENCE_RULES.get(intent, _base_confidence)
        for pattern in static_patterns.get(intent, ()):
            table.append(IntentMatcher(intent=intent, pattern=pattern, confidence_rule=rule))
    return table


def build_service_matchers(catalog: Catalog) -> list[ServiceMatcher]:
    return [
        ServiceMatcher(service_id=service.id, service_name=service.name, pattern=phrase_pattern(service.name))
        for service in catalog.services
    ]


def _normalize_text(text: Optional[str]) -> str:
    return (text or "").strip().lower()


class IntentClassifier:
    """Deterministic pattern classifier over a fixed intent set."""

    def __init__(self, catalog: Catalog):
        self.matchers = build_matcher_table(catalog)
        self.service_matchers = build_service_matchers(catalog)
        logger.info(
            "Intent matcher table built",
            extra={"context": {"matchers": len(self.matchers), "services": len(self.service_matchers)}},
        )

    def classify(self, text: Optional[str], has_attachment: bool = False) -> Classification:
        if has_attachment:
            return Classification(
                intent=Intent.PAYMENT_CONFIRMATION,
                confidence=ATTACHMENT_CONFIDENCE,
                metadata={"has_media": True},
            )

        normalized = _normalize_text(text)
        matches = self._match_intents(normalized)

        if matches:
            # sorted() is stable, so equal confidences keep enumeration order
            ranked = sorted(matches, key=lambda m: m[2], reverse=True)
            best_intent, best_pattern, best_confidence = ranked[0]
            result = Classification(
                intent=best_intent,
                confidence=best_confidence,
                metadata={
                    "all_matches": [m[0].value for m in matches],
                    "matched_pattern": best_pattern,
                },
            )
        else:
            result = Classification(intent=Intent.GENERAL_CHAT, confidence=NO_MATCH_CONFIDENCE)

        service = self._match_service(normalized)
        if service is not None:
            result.metadata["service_id"] = service.service_id
            result.metadata["service_name"] = service.service_name
            if result.intent == Intent.GENERAL_CHAT:
                result.intent = Intent.SERVICE_INQUIRY
                result.confidence = SERVICE_NAME_CONFIDENCE

        if result.intent == Intent.FRUSTRATION:
            result.intent = Intent.HUMAN_REQUEST
            result.confidence = FRUSTRATION_CONFIDENCE
            result.metadata["frustrated"] = True

        return result

    def _match_intents(self, normalized: str) -> list[tuple[Intent, str, float]]:
        if not normalized:
            return []
        matches = []
        matched = set()
        for matcher in self.matchers:
            if matcher.intent in matched:
                continue
            if matcher.pattern.search(normalized):
                matched.add(matcher.intent)
                matches.append((matcher.intent, matcher.pattern.pattern, matcher.confidence_rule(normalized)))
        return matches

    def _match_service(self, normalized: str) -> Optional[ServiceMatcher]:
        if not normalized:
            return None
        for matcher in self.service_matchers:
            if matcher.pattern.search(normalized):
                return matcher
        return None


def should_handoff(classification: Classification) -> HandoffDecision:
    if classification.intent == Intent.HUMAN_REQUEST:
        frustrated = bool(classification.metadata.get("frustrated"))
        return HandoffDecision(
            handoff=True,
            reason="Customer frustration detected" if frustrated else "Customer requested human agent",
            priority=Priority.HIGH if frustrated else Priority.NORMAL,
        )

    if classification.intent == Intent.OUT_OF_SCOPE:
        return HandoffDecision(handoff=True, reason="Query outside knowledge base", priority=Priority.NORMAL)

    return HandoffDecision(handoff=False)


def detect_language(text: Optional[str]) -> str:
    """Rough urdu / english / mixed guess from Roman-Urdu vocabulary."""
    if not text or not text.strip():
        return "english"

    urdu_hits = sum(1 for pattern in URDU_PATTERNS if pattern.search(text))
    word_count = len(text.split())

    if urdu_hits >= 2 or urdu_hits / word_count > 0.3:
        return "urdu"
    if urdu_hits > 0:
        return "mixed"
    return "english"
