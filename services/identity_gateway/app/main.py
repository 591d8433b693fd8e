from __future__ import annotations

from fastapi import FastAPI
from sqlalchemy.orm import Session, sessionmaker

from libs.accounts import AccountRepository
from libs.db.db import create_session_factory
from libs.observability import RequestContextMiddleware, configure_logging, setup_metrics

from .config import Settings, get_settings
from .orchestrator import VerificationOrchestrator
from .providers import ProviderRegistry, build_registry
from .routers import oauth
from .state import CorrelationStore, create_correlation_store


def create_app(
    settings: Settings | None = None,
    registry: ProviderRegistry | None = None,
    store: CorrelationStore | None = None,
    session_factory: sessionmaker[Session] | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.service_name)
    registry = registry or build_registry(settings)
    store = store or create_correlation_store(settings)
    session_factory = session_factory or create_session_factory(settings.database_url)

    orchestrator = VerificationOrchestrator(
        registry,
        store,
        strict_state_validation=settings.strict_state_validation,
        embed_proof_secret=settings.embed_proof_secret,
    )

    app = FastAPI(title="Identity Gateway")
    app.add_middleware(RequestContextMiddleware, service_name=settings.service_name)
    setup_metrics(app, service_name=settings.service_name)

    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.account_repository = AccountRepository(session_factory)

    @app.on_event("shutdown")
    async def _shutdown() -> None:  # pragma: no cover - FastAPI wiring
        await registry.aclose()
        await store.aclose()

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(oauth.router)
    return app


app = create_app()


__all__ = ["app", "create_app"]
