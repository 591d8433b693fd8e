"""Common FastAPI dependencies used across routers."""

from __future__ import annotations

from fastapi import Request

from libs.accounts import AccountRepository

from .config import Settings
from .orchestrator import VerificationOrchestrator


def get_settings_dependency(request: Request) -> Settings:
    return request.app.state.settings


def get_orchestrator(request: Request) -> VerificationOrchestrator:
    return request.app.state.orchestrator


def get_account_repository(request: Request) -> AccountRepository:
    return request.app.state.account_repository


__all__ = ["get_account_repository", "get_orchestrator", "get_settings_dependency"]
