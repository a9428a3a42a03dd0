from fastapi import Request

from switchboard.config import Settings
from switchboard.database.repository import Repository
from switchboard.dispatch.dispatcher import ReplyDispatcher
from switchboard.llm.client import OllamaClient
from switchboard.triage.router import TriageRouter


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_ollama_client(request: Request) -> OllamaClient:
    return request.app.state.ollama_client


def get_repository(request: Request) -> Repository:
    return request.app.state.repository


def get_triage_router(request: Request) -> TriageRouter:
    return request.app.state.triage_router


def get_dispatcher(request: Request) -> ReplyDispatcher:
    return request.app.state.dispatcher
