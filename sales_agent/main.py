import os

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from sales_agent.config import settings
from sales_agent.database import Base, engine, get_db
from sales_agent.dependencies import AgentServices, build_services, get_services
from sales_agent.logging_config import get_logger, setup_logging
from sales_agent.routers import admin, webhook
from sales_agent.services.conversation_service import get_stats

setup_logging(settings.log_level)
logger = get_logger("main")

app = FastAPI(
    title="WhatsApp Sales Agent",
    description="WhatsApp sales assistant with human handoff and payment review",
    version="0.1.0",
)

cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(admin.router)


@app.on_event("startup")
async def startup() -> None:
    Base.metadata.create_all(bind=engine)
    app.state.services = build_services(settings)
    logger.info("Sales agent started", extra={"context": {"catalog": app.state.services.catalog.business.name}})


@app.on_event("shutdown")
async def shutdown() -> None:
    services = getattr(app.state, "services", None)
    if services is not None:
        await services.aclose()


@app.get("/")
async def root():
    return {"service": app.title, "version": app.version}


@app.get("/health")
async def health(services: AgentServices = Depends(get_services)):
    transport = await services.transport.check_health()
    return {
        "status": "ok" if transport["healthy"] else "degraded",
        "waha": transport,
        "providers": services.generator.provider_names(),
        "sheets_enabled": services.sheets.enabled,
    }


@app.get("/stats")
def stats(db: Session = Depends(get_db)):
    return get_stats(db)
