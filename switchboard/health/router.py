import logging

import aiosqlite
from fastapi import APIRouter, Request

from switchboard.models import DatabaseCheck, HealthChecks, HealthResponse, OllamaCheck

logger = logging.getLogger(__name__)

router = APIRouter()


async def _database_ok(request: Request) -> bool:
    try:
        return await request.app.state.repository.ping()
    except aiosqlite.Error as e:
        logger.warning("Database health check failed: %s", e)
        return False


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    ollama_ok = await request.app.state.ollama_client.is_available()
    database_ok = await _database_ok(request)
    return HealthResponse(
        status="ok" if ollama_ok and database_ok else "degraded",
        checks=HealthChecks(
            ollama=OllamaCheck(available=ollama_ok),
            database=DatabaseCheck(available=database_ok),
        ),
    )
