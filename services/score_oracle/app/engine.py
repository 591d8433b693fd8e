"""Request a score from the oracle and poll until it is observable.

A request goes through ``Idle -> Submitting -> AwaitingConfirmation ->
Polling`` and ends in ``Resolved``, ``TimedOut``, ``Errored`` or
``Cancelled``. The contract offers no per-request correlation, so polling
watches the caller's score and the contract wide error slot. The slot is
read once before submitting and only a changed value stops polling.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from libs.accounts import normalize_public_key
from libs.observability import bind_caller, record_score_poll, record_score_request

from .chain import ScoreContract, decode_oracle_error
from .errors import (
    ChainComputeError,
    ChainConfirmTimeout,
    ChainReadFailed,
    ContractNotConfigured,
    PollTimeout,
    ScoreOracleError,
    ScoreRequestInProgress,
    SyncWriteFailed,
)
from .schemas import ScoreCategory, ScoreRequestState, ScoreRequestStatus, SyncResult
from .sync import ReconciliationSync

logger = logging.getLogger(__name__)

Listener = Callable[[ScoreRequestStatus], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_args(input_args: Sequence[str]) -> Tuple[str, ...]:
    args = tuple(str(arg).strip() for arg in input_args)
    if not args or any(not arg for arg in args):
        raise ValueError("Score requests need at least one non-empty argument")
    return args


@dataclass(slots=True)
class ScoreRequest:
    caller: str
    input_args: Tuple[str, ...]
    submitted_at: datetime
    tx_hash: Optional[str] = None
    request_id: Optional[str] = None


class ScoreRequestEngine:
    """Runs one score request for one caller against one contract."""

    def __init__(
        self,
        contract: ScoreContract,
        *,
        category: ScoreCategory,
        caller: str,
        subscription_id: int,
        poll_interval: float = 10.0,
        max_attempts: int = 30,
        confirmation_timeout: float = 120.0,
        listener: Listener | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._contract = contract
        self._category = category
        self._caller = caller
        self._subscription_id = subscription_id
        self._poll_interval = poll_interval
        self._max_attempts = max_attempts
        self._confirmation_timeout = confirmation_timeout
        self._listener = listener
        self._clock = clock

        self._state = ScoreRequestState.IDLE
        self._request: ScoreRequest | None = None
        self._score: Optional[int] = None
        self._error: Optional[str] = None
        self._attempts = 0
        self._error_baseline: Optional[bytes] = None
        self._updated_at = clock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[ScoreRequestStatus] | None = None

    @property
    def state(self) -> ScoreRequestState:
        return self._state

    @property
    def score(self) -> Optional[int]:
        return self._score

    @property
    def request(self) -> ScoreRequest | None:
        return self._request

    @property
    def task(self) -> asyncio.Task[ScoreRequestStatus] | None:
        return self._task

    def snapshot(self) -> ScoreRequestStatus:
        request = self._request
        return ScoreRequestStatus(
            category=self._category,
            caller=self._caller,
            state=self._state,
            score=self._score,
            error=self._error,
            tx_hash=request.tx_hash if request else None,
            request_id=request.request_id if request else None,
            attempts=self._attempts,
            max_attempts=self._max_attempts,
            submitted_at=request.submitted_at if request else None,
            updated_at=self._updated_at,
        )

    def _transition(self, state: ScoreRequestState, *, error: Optional[str] = None) -> None:
        if self._state.is_terminal:
            return
        self._state = state
        if error is not None:
            self._error = error
        self._updated_at = self._clock()
        logger.info(
            "Score request %s moved to %s",
            self._category.value,
            state.value,
            extra={"category": self._category.value, "state": state.value, "attempts": self._attempts},
        )
        if state.is_terminal:
            record_score_request(self._category.value, state.value)
        if self._listener is not None:
            try:
                self._listener(self.snapshot())
            except Exception:
                logger.exception("Score request listener failed")

    async def submit(self, input_args: Sequence[str]) -> str:
        if self._state is not ScoreRequestState.IDLE:
            raise RuntimeError(f"Cannot submit from state {self._state.value}")
        args = normalize_args(input_args)
        self._request = ScoreRequest(caller=self._caller, input_args=args, submitted_at=self._clock())
        self._transition(ScoreRequestState.SUBMITTING)
        self._error_baseline = await self._read_error_baseline()
        try:
            tx_hash = await self._contract.send_request(self._subscription_id, args)
        except ScoreOracleError as exc:
            self._transition(ScoreRequestState.ERRORED, error=str(exc))
            raise
        self._request.tx_hash = tx_hash
        self._transition(ScoreRequestState.AWAITING_CONFIRMATION)
        return tx_hash

    async def await_confirmation(self, tx_hash: str) -> Optional[str]:
        try:
            await self._contract.wait_for_receipt(tx_hash, timeout=self._confirmation_timeout)
        except ChainConfirmTimeout as exc:
            self._transition(ScoreRequestState.TIMED_OUT, error=str(exc))
            raise
        except ScoreOracleError as exc:
            self._transition(ScoreRequestState.ERRORED, error=str(exc))
            raise
        request_id: Optional[str] = None
        try:
            request_id = await self._contract.last_request_id()
        except ChainReadFailed:
            logger.warning("Could not read the request id of %s", tx_hash)
        if self._request is not None:
            self._request.request_id = request_id
        self._transition(ScoreRequestState.POLLING)
        return request_id

    async def _read_error_baseline(self) -> Optional[bytes]:
        """Error slot content left behind by earlier requests."""

        try:
            return await self._contract.last_error()
        except ChainReadFailed as exc:
            logger.warning("Could not read the oracle error slot before submitting: %s", exc)
            return None

    async def _poll_once(self) -> Optional[int]:
        """One read cycle: error slot first, then the caller's score.

        The slot is shared by every caller, so only a value that differs
        from the one seen before submitting counts as this request's error.
        """

        raw_error = await self._contract.last_error()
        if raw_error and raw_error != self._error_baseline:
            raise ChainComputeError(decode_oracle_error(raw_error))
        value = await self._contract.get_score(self._caller)
        return value if value > 0 else None

    async def poll(self) -> ScoreRequestState:
        """Poll until the score shows up, the oracle errors or attempts run out."""

        self._attempts = 0
        while not self._stop_event.is_set():
            self._attempts += 1
            record_score_poll(self._category.value)
            try:
                value = await self._poll_once()
            except ChainComputeError as exc:
                self._transition(ScoreRequestState.ERRORED, error=str(exc))
                return self._state
            except ChainReadFailed as exc:
                logger.warning(
                    "Poll %d/%d for %s failed: %s",
                    self._attempts,
                    self._max_attempts,
                    self._category.value,
                    exc,
                )
                value = None
            if value is not None:
                self._score = value
                self._transition(ScoreRequestState.RESOLVED)
                return self._state
            if self._attempts >= self._max_attempts:
                self._transition(
                    ScoreRequestState.TIMED_OUT, error=str(PollTimeout(self._attempts))
                )
                return self._state
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                continue
        return self._state

    async def run(self, input_args: Sequence[str]) -> ScoreRequestStatus:
        with bind_caller(self._caller):
            try:
                tx_hash = await self.submit(input_args)
                await self.await_confirmation(tx_hash)
                await self.poll()
            except ScoreOracleError:
                # submit and await_confirmation already recorded the failure
                return self.snapshot()
            except asyncio.CancelledError:
                self._mark_cancelled()
                raise
            if self._stop_event.is_set():
                self._mark_cancelled()
        return self.snapshot()

    def start(self, input_args: Sequence[str]) -> asyncio.Task[ScoreRequestStatus]:
        if self._task is not None:
            raise RuntimeError("Score request already started")
        self._task = asyncio.create_task(self.run(input_args))
        return self._task

    def cancel(self) -> None:
        self._stop_event.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._mark_cancelled()

    def _mark_cancelled(self) -> None:
        if not self._state.is_terminal:
            self._transition(ScoreRequestState.CANCELLED)


class ScoreRequestManager:
    """Keeps at most one running engine per (category, caller)."""

    def __init__(
        self,
        contracts: Mapping[ScoreCategory, ScoreContract],
        *,
        sync: ReconciliationSync | None = None,
        subscription_id: int,
        poll_interval: float = 10.0,
        max_attempts: int = 30,
        confirmation_timeout: float = 120.0,
        listener: Listener | None = None,
    ) -> None:
        self._contracts = dict(contracts)
        self._sync = sync
        self._subscription_id = subscription_id
        self._poll_interval = poll_interval
        self._max_attempts = max_attempts
        self._confirmation_timeout = confirmation_timeout
        self._listener = listener
        self._engines: Dict[Tuple[ScoreCategory, str], ScoreRequestEngine] = {}
        self._tasks: Dict[Tuple[ScoreCategory, str], asyncio.Task[None]] = {}
        self._sync_results: Dict[Tuple[ScoreCategory, str], SyncResult] = {}
        self._sync_errors: Dict[Tuple[ScoreCategory, str], str] = {}

    def _key(self, category: ScoreCategory, caller: str) -> Tuple[ScoreCategory, str]:
        return category, normalize_public_key(caller)

    def is_active(self, category: ScoreCategory, caller: str) -> bool:
        task = self._tasks.get(self._key(category, caller))
        return task is not None and not task.done()

    def start(
        self, category: ScoreCategory, caller: str, input_args: Sequence[str]
    ) -> ScoreRequestStatus:
        key = self._key(category, caller)
        if self.is_active(category, caller):
            raise ScoreRequestInProgress(category.value, key[1])
        args = normalize_args(input_args)
        contract = self._contracts.get(category)
        if contract is None:
            raise ContractNotConfigured(category.value)
        engine = ScoreRequestEngine(
            contract,
            category=category,
            caller=key[1],
            subscription_id=self._subscription_id,
            poll_interval=self._poll_interval,
            max_attempts=self._max_attempts,
            confirmation_timeout=self._confirmation_timeout,
            listener=self._listener,
        )
        self._engines[key] = engine
        self._sync_results.pop(key, None)
        self._sync_errors.pop(key, None)
        self._tasks[key] = asyncio.create_task(self._drive(key, engine, args))
        return engine.snapshot()

    async def _drive(
        self, key: Tuple[ScoreCategory, str], engine: ScoreRequestEngine, input_args: Tuple[str, ...]
    ) -> None:
        await engine.run(input_args)
        if engine.state is not ScoreRequestState.RESOLVED or self._sync is None:
            return
        category, caller = key
        try:
            self._sync_results[key] = await self._sync.on_resolved(
                caller, category, engine.score or 0
            )
        except SyncWriteFailed as exc:
            logger.error("Resolved %s score could not be stored: %s", category.value, exc)
            self._sync_errors[key] = str(exc)

    def status(self, category: ScoreCategory, caller: str) -> ScoreRequestStatus | None:
        key = self._key(category, caller)
        engine = self._engines.get(key)
        if engine is None:
            return None
        return engine.snapshot().model_copy(
            update={"sync": self._sync_results.get(key), "sync_error": self._sync_errors.get(key)}
        )

    def cancel(self, category: ScoreCategory, caller: str) -> bool:
        key = self._key(category, caller)
        engine = self._engines.get(key)
        if engine is None or engine.state.is_terminal or not self.is_active(category, caller):
            return False
        engine.cancel()
        self._tasks[key].cancel()
        return True

    async def wait(self, category: ScoreCategory, caller: str) -> ScoreRequestStatus | None:
        task = self._tasks.get(self._key(category, caller))
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                logger.debug("Score request %s for %s was cancelled", category.value, caller)
        return self.status(category, caller)

    async def shutdown(self) -> None:
        for key, task in list(self._tasks.items()):
            if not task.done():
                self._engines[key].cancel()
                task.cancel()
        for (category, caller), task in list(self._tasks.items()):
            try:
                await task
            except asyncio.CancelledError:  # pragma: no cover - expected on shutdown
                logger.debug("Score request %s for %s cancelled", category.value, caller)
            except Exception:  # noqa: BLE001
                logger.exception("Score request %s for %s terminated with error", category.value, caller)


__all__ = [
    "ScoreRequest",
    "normalize_args",
    "ScoreRequestEngine",
    "ScoreRequestManager",
]
