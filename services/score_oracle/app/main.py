from __future__ import annotations

from collections.abc import Mapping
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Response, status
from sqlalchemy.orm import Session, sessionmaker

from libs.accounts import AccountRepository, UserNotFound, is_wallet_address
from libs.db.db import create_session_factory
from libs.observability import RequestContextMiddleware, configure_logging, setup_metrics

from .chain import ScoreContract, build_contracts
from .config import Settings, get_settings
from .engine import ScoreRequestManager
from .errors import (
    ChainReadFailed,
    ContractNotConfigured,
    PlatformNotVerified,
    ScoreRequestInProgress,
    SyncWriteFailed,
)
from .schemas import (
    CategoryScore,
    RegisterRequest,
    ScoreCategory,
    ScoreRecordRead,
    ScoreRequestCreate,
    ScoreRequestStatus,
    ScoreUpdateRequest,
    SyncOverview,
    SyncReport,
    SyncResult,
    UserRead,
)
from .sync import ReconciliationSync


def _wallet_query(public_key: str = Query(..., alias="publicKey")) -> str:
    if not is_wallet_address(public_key.strip()):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid publicKey")
    return public_key.strip()


def create_app(
    settings: Settings | None = None,
    contracts: Mapping[ScoreCategory, ScoreContract] | None = None,
    session_factory: sessionmaker[Session] | None = None,
    manager: ScoreRequestManager | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.service_name)
    if contracts is None:
        contracts = build_contracts(
            settings.contract_addresses(),
            rpc_url=settings.rpc_url,
            private_key=settings.private_key or None,
        )
    session_factory = session_factory or create_session_factory(settings.database_url)

    repository = AccountRepository(session_factory)
    sync = ReconciliationSync(repository, contracts)
    manager = manager or ScoreRequestManager(
        contracts,
        sync=sync,
        subscription_id=settings.subscription_id,
        poll_interval=settings.poll_interval_seconds,
        max_attempts=settings.max_poll_attempts,
        confirmation_timeout=settings.confirmation_timeout_seconds,
    )

    app = FastAPI(title="Score Oracle")
    app.add_middleware(RequestContextMiddleware, service_name=settings.service_name)
    setup_metrics(app, service_name=settings.service_name)

    app.state.settings = settings
    app.state.account_repository = repository
    app.state.sync = sync
    app.state.score_requests = manager

    @app.on_event("shutdown")
    async def _shutdown() -> None:  # pragma: no cover - FastAPI wiring
        await manager.shutdown()

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    def get_repository() -> AccountRepository:
        return app.state.account_repository

    def get_sync() -> ReconciliationSync:
        return app.state.sync

    def get_manager() -> ScoreRequestManager:
        return app.state.score_requests

    @app.post("/users/register", response_model=UserRead, tags=["users"])
    async def register_user(
        payload: RegisterRequest,
        repository: AccountRepository = Depends(get_repository),
    ) -> UserRead:
        user = await repository.register_user(payload.public_key)
        return UserRead.model_validate(user)

    @app.get("/users/{public_key}", response_model=UserRead, tags=["users"])
    async def get_user(
        public_key: str,
        repository: AccountRepository = Depends(get_repository),
    ) -> UserRead:
        user = await repository.find_user(public_key)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        return UserRead.model_validate(user)

    @app.get("/scores/{category}", response_model=CategoryScore, tags=["scores"])
    async def read_score(
        category: ScoreCategory,
        public_key: str = Depends(_wallet_query),
        sync: ReconciliationSync = Depends(get_sync),
    ) -> CategoryScore:
        return await sync.read_category(public_key, category)

    @app.put("/scores/{category}", response_model=ScoreRecordRead, tags=["scores"])
    async def update_score(
        category: ScoreCategory,
        payload: ScoreUpdateRequest,
        sync: ReconciliationSync = Depends(get_sync),
    ) -> ScoreRecordRead:
        try:
            record = await sync.update_score(
                payload.public_key, category, payload.score, source=payload.source
            )
        except UserNotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        except SyncWriteFailed as exc:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
            ) from exc
        return ScoreRecordRead.model_validate(record)

    @app.post("/scores/{category}/sync", response_model=SyncResult, tags=["sync"])
    async def sync_score(
        category: ScoreCategory,
        public_key: str = Depends(_wallet_query),
        sync: ReconciliationSync = Depends(get_sync),
    ) -> SyncResult:
        try:
            return await sync.sync_from_chain(public_key, category)
        except UserNotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        except PlatformNotVerified as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        except ContractNotConfigured as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
            ) from exc
        except ChainReadFailed as exc:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
        except SyncWriteFailed as exc:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
            ) from exc

    @app.post(
        "/scores/{category}/requests",
        response_model=ScoreRequestStatus,
        status_code=status.HTTP_202_ACCEPTED,
        tags=["requests"],
    )
    async def create_score_request(
        category: ScoreCategory,
        payload: ScoreRequestCreate,
        manager: ScoreRequestManager = Depends(get_manager),
    ) -> ScoreRequestStatus:
        try:
            return manager.start(category, payload.public_key, payload.args)
        except ScoreRequestInProgress as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        except ContractNotConfigured as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
            ) from exc
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    @app.get(
        "/scores/{category}/requests/{public_key}",
        response_model=ScoreRequestStatus,
        tags=["requests"],
    )
    async def get_score_request(
        category: ScoreCategory,
        public_key: str,
        manager: ScoreRequestManager = Depends(get_manager),
    ) -> ScoreRequestStatus:
        snapshot: Optional[ScoreRequestStatus] = manager.status(category, public_key)
        if snapshot is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No score request")
        return snapshot

    @app.delete(
        "/scores/{category}/requests/{public_key}",
        status_code=status.HTTP_204_NO_CONTENT,
        tags=["requests"],
    )
    async def cancel_score_request(
        category: ScoreCategory,
        public_key: str,
        manager: ScoreRequestManager = Depends(get_manager),
    ) -> Response:
        if not manager.cancel(category, public_key):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="No running score request"
            )
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/sync", response_model=SyncReport, tags=["sync"])
    async def sync_all(
        public_key: str = Depends(_wallet_query),
        sync: ReconciliationSync = Depends(get_sync),
    ) -> SyncReport:
        try:
            return await sync.sync_all(public_key)
        except UserNotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    @app.get("/sync/status", response_model=SyncOverview, tags=["sync"])
    async def sync_status(
        public_key: str = Depends(_wallet_query),
        sync: ReconciliationSync = Depends(get_sync),
    ) -> SyncOverview:
        try:
            return await sync.sync_status(public_key)
        except UserNotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return app


app = create_app()


__all__ = ["app", "create_app"]
