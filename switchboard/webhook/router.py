from __future__ import annotations

import json
import logging
import uuid

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse, Response

from switchboard.config import Settings
from switchboard.dependencies import (
    get_dispatcher,
    get_repository,
    get_settings,
    get_triage_router,
)
from switchboard.exceptions import MalformedPayloadError
from switchboard.models import Channel
from switchboard.webhook.parser import extract_cloud_api_messages, normalize, normalize_whatsapp
from switchboard.webhook.pipeline import PipelineOutcome, process_inbound
from switchboard.webhook.security import (
    is_timestamp_fresh,
    validate_signature,
    validate_timestamped_signature,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_body(body: bytes, channel: str) -> dict:
    try:
        payload = json.loads(body)
    except ValueError as e:
        raise MalformedPayloadError(channel, ["json body"]) from e
    if not isinstance(payload, dict):
        raise MalformedPayloadError(channel, ["json object"])
    return payload


def _verify_provider_signature(request: Request, body: bytes, settings: Settings) -> None:
    """Check X-Timestamp / X-Signature on messaging-provider webhooks."""
    if not settings.webhook_signature_enabled:
        return
    timestamp = request.headers.get("X-Timestamp")
    signature = request.headers.get("X-Signature")
    secret = settings.webhook_secret or settings.messaging_api_secret
    if not validate_timestamped_signature(body, timestamp, signature, secret):
        logger.warning("Invalid webhook signature on %s", request.url.path)
        raise HTTPException(status_code=403, detail="Invalid signature")
    if not is_timestamp_fresh(timestamp, settings.webhook_max_age_seconds):
        logger.warning("Stale or invalid webhook timestamp on %s", request.url.path)
        raise HTTPException(status_code=403, detail="Invalid timestamp")


async def _handle(request: Request, channel: Channel, payload: dict) -> PipelineOutcome:
    message = normalize(channel, payload, get_settings(request))
    return await process_inbound(message, get_triage_router(request), get_dispatcher(request))


@router.get("/webhook")
async def verify_webhook(
    request: Request,
    hub_mode: str = Query(alias="hub.mode", default=""),
    hub_verify_token: str = Query(alias="hub.verify_token", default=""),
    hub_challenge: str = Query(alias="hub.challenge", default=""),
) -> Response:
    settings = get_settings(request)
    if hub_mode == "subscribe" and hub_verify_token == settings.whatsapp_verify_token:
        return PlainTextResponse(content=hub_challenge)
    return PlainTextResponse(content="Forbidden", status_code=403)


@router.post("/webhook")
async def incoming_cloud_api(request: Request) -> dict:
    settings = get_settings(request)
    body = await request.body()

    if settings.webhook_signature_enabled:
        signature = request.headers.get("X-Hub-Signature-256", "")
        if not validate_signature(body, signature, settings.whatsapp_app_secret):
            logger.warning("Invalid webhook signature")
            raise HTTPException(status_code=403, detail="Invalid signature")

    payload = _parse_body(body, Channel.WHATSAPP.value)
    triage_router = get_triage_router(request)
    dispatcher = get_dispatcher(request)

    statuses = []
    for raw in extract_cloud_api_messages(payload):
        message = normalize_whatsapp(raw, settings.agent_number)
        outcome = await process_inbound(message, triage_router, dispatcher)
        statuses.append(outcome.status)
    return {"status": "ok", "results": statuses}


@router.post("/webhook/whatsapp")
async def incoming_whatsapp(request: Request) -> dict:
    body = await request.body()
    _verify_provider_signature(request, body, get_settings(request))
    outcome = await _handle(request, Channel.WHATSAPP, _parse_body(body, Channel.WHATSAPP.value))
    return {"status": outcome.status}


@router.post("/webhook/sms")
async def incoming_sms(request: Request) -> dict:
    body = await request.body()
    _verify_provider_signature(request, body, get_settings(request))
    payload = _parse_body(body, Channel.SMS.value)

    if payload.get("service", "sms") != "sms":
        raise MalformedPayloadError(Channel.SMS.value, ["service=sms"])
    if payload.get("event") == "message_status":
        await _record_status(request, payload)
        return {"status": "recorded"}

    outcome = await _handle(request, Channel.SMS, payload)
    return {"status": outcome.status}


@router.post("/webhook/sms/status")
async def sms_status(request: Request) -> dict:
    body = await request.body()
    _verify_provider_signature(request, body, get_settings(request))
    await _record_status(request, _parse_body(body, Channel.SMS.value))
    return {"status": "recorded"}


async def _record_status(request: Request, payload: dict) -> None:
    missing = [k for k in ("message_id", "status") if not payload.get(k)]
    if missing:
        raise MalformedPayloadError(Channel.SMS.value, missing)
    await get_repository(request).record_status(
        str(payload["message_id"]),
        str(payload["status"]),
        error_code=payload.get("error_code"),
        error_message=payload.get("error_message"),
    )
    logger.info("SMS %s status: %s", payload["message_id"], payload["status"])


@router.post("/webhook/email")
async def incoming_email(request: Request) -> dict:
    body = await request.body()
    _verify_provider_signature(request, body, get_settings(request))
    outcome = await _handle(request, Channel.EMAIL, _parse_body(body, Channel.EMAIL.value))
    return {"status": outcome.status}


@router.post("/web/chats/{thread_id}/messages")
async def web_chat_message(thread_id: str, request: Request) -> dict:
    payload = _parse_body(await request.body(), Channel.WEB.value)
    payload["thread_id"] = thread_id
    payload.setdefault("message_id", f"web-{uuid.uuid4().hex}")
    outcome = await _handle(request, Channel.WEB, payload)
    return {"status": outcome.status, "reply": outcome.reply_text}
