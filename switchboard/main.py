import logging
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite
import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from switchboard.channels.email import EmailClient
from switchboard.channels.outbound import OutboundRouter
from switchboard.channels.sms import SmsClient
from switchboard.channels.whatsapp import CloudApiClient, WhatsAppClient
from switchboard.config import Settings
from switchboard.conversation.history import ThreadHistory
from switchboard.database.db import init_db
from switchboard.database.repository import Repository
from switchboard.dispatch.dispatcher import ReplyDispatcher
from switchboard.exceptions import HistoryUnavailableError, MalformedPayloadError
from switchboard.health.router import router as health_router
from switchboard.llm.client import OllamaClient
from switchboard.logging_config import configure_logging
from switchboard.onboarding.fields import build_group_onboarding_config, build_onboarding_config
from switchboard.triage.router import TriageRouter
from switchboard.webhook.router import router as webhook_router

logger = logging.getLogger(__name__)


def build_components(
    app: FastAPI, settings: Settings, http_client: httpx.AsyncClient, repository: Repository
) -> None:
    """Wire the message-handling components onto app.state."""
    api_args = dict(
        http_client=http_client,
        base_url=settings.messaging_api_url,
        api_key=settings.messaging_api_key,
        api_secret=settings.messaging_api_secret,
        account_id=settings.messaging_account_id,
    )
    outbound = OutboundRouter(
        whatsapp=WhatsAppClient(**api_args, agent_number=settings.agent_number),
        sms=SmsClient(**api_args, agent_number=settings.agent_number),
        email=EmailClient(**api_args, sender_address=settings.agent_email),
        cloud_api=CloudApiClient(
            http_client=http_client,
            access_token=settings.whatsapp_access_token,
            phone_number_id=settings.whatsapp_phone_number_id,
        ),
    )
    history = ThreadHistory(repository)
    ollama_client = OllamaClient(
        http_client=http_client,
        base_url=settings.ollama_base_url,
        model=settings.ollama_model,
    )

    app.state.settings = settings
    app.state.http_client = http_client
    app.state.repository = repository
    app.state.ollama_client = ollama_client
    app.state.outbound = outbound
    app.state.triage_router = TriageRouter(
        history=history,
        llm=ollama_client,
        outbound=outbound,
        settings=settings,
        onboarding=build_onboarding_config(settings),
        group_onboarding=build_group_onboarding_config(settings),
    )
    app.state.dispatcher = ReplyDispatcher(
        history=history,
        outbound=outbound,
        agent_name=settings.agent_name,
        agent_number=settings.agent_number,
        agent_email=settings.agent_email,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings()

    configure_logging(
        level=settings.log_level, json_format=settings.log_json, log_file=settings.log_file
    )

    http_client = httpx.AsyncClient(timeout=httpx.Timeout(settings.llm_timeout_seconds, connect=10.0))

    Path(settings.database_path).parent.mkdir(parents=True, exist_ok=True)
    db_conn = await init_db(settings.database_path)
    build_components(app, settings, http_client, Repository(db_conn))
    logger.info("Switchboard started (agent=%s)", settings.agent_name)

    yield

    await db_conn.close()
    await http_client.aclose()


async def malformed_payload_handler(request: Request, exc: MalformedPayloadError) -> JSONResponse:
    logger.warning("Rejected %s: %s", request.url.path, exc)
    return JSONResponse(status_code=400, content={"error": str(exc), "missing": exc.missing})


async def storage_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    # 503 makes the provider redeliver the webhook later
    logger.error("Storage unavailable on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"error": "storage unavailable"})


app = FastAPI(title="Switchboard", lifespan=lifespan)
app.add_exception_handler(MalformedPayloadError, malformed_payload_handler)
app.add_exception_handler(HistoryUnavailableError, storage_unavailable_handler)
app.add_exception_handler(aiosqlite.Error, storage_unavailable_handler)
app.include_router(health_router)
app.include_router(webhook_router)
