from dataclasses import dataclass

from fastapi import Request

from sales_agent.config import Settings
from sales_agent.logging_config import get_logger
from sales_agent.services.ai_service import GenerationService, build_providers
from sales_agent.services.catalog_service import Catalog, load_catalog
from sales_agent.services.dedup_service import MessageDeduplicator
from sales_agent.services.errors import ConfigurationError
from sales_agent.services.handoff_service import HandoffWorkflow
from sales_agent.services.intent_service import IntentClassifier
from sales_agent.services.notification_service import OperatorNotifier
from sales_agent.services.payment_service import PaymentWorkflow
from sales_agent.services.sheets_service import SheetsMirror
from sales_agent.services.waha_service import WahaClient

logger = get_logger("dependencies")


@dataclass
class AgentServices:
    """Every collaborator the message pipeline needs, built once per process."""

    settings: Settings
    catalog: Catalog
    classifier: IntentClassifier
    transport: WahaClient
    generator: GenerationService
    sheets: SheetsMirror
    notifier: OperatorNotifier
    payments: PaymentWorkflow
    handoffs: HandoffWorkflow
    dedup: MessageDeduplicator

    async def aclose(self) -> None:
        await self.transport.aclose()
        await self.generator.aclose()
        await self.sheets.aclose()
        await self.dedup.aclose()


def build_services(settings: Settings) -> AgentServices:
    if not settings.admin_phone:
        raise ConfigurationError("ADMIN_PHONE is required")

    catalog = load_catalog(settings.catalog_path)
    transport = WahaClient(
        settings.waha_api_url,
        session=settings.waha_session,
        api_key=settings.waha_api_key,
        timeout=settings.waha_timeout_seconds,
    )
    sheets = SheetsMirror(
        settings.google_sheets_id,
        settings.google_service_account_file,
        timeout=settings.sheets_timeout_seconds,
    )
    notifier = OperatorNotifier(transport, settings.admin_phone)
    generator = GenerationService(catalog, build_providers(settings))

    services = AgentServices(
        settings=settings,
        catalog=catalog,
        classifier=IntentClassifier(catalog),
        transport=transport,
        generator=generator,
        sheets=sheets,
        notifier=notifier,
        payments=PaymentWorkflow(transport, sheets, notifier, catalog),
        handoffs=HandoffWorkflow(transport, sheets, notifier, catalog),
        dedup=MessageDeduplicator(settings.redis_url, ttl_seconds=settings.dedup_ttl_seconds),
    )
    logger.info(
        "Services built",
        extra={
            "context": {
                "providers": generator.provider_names(),
                "sheets_enabled": sheets.enabled,
                "redis_dedup": bool(settings.redis_url),
            }
        },
    )
    return services


def get_services(request: Request) -> AgentServices:
    return request.app.state.services
