from __future__ import annotations

import asyncio
from typing import Any, Mapping, Sequence

import pytest

from services.score_oracle.app.chain import ScoreContract
from services.score_oracle.app.errors import ChainReadFailed


class FakeScoreContract(ScoreContract):
    """Scripted contract: ``scores`` are returned in order, the last one repeats.

    ``oracle_errors`` scripts the error slot the same way and wins over
    the constant ``oracle_error``.
    """

    def __init__(
        self,
        *,
        scores: Sequence[int] = (0,),
        oracle_error: bytes = b"",
        oracle_errors: Sequence[bytes] | None = None,
        read_failures: int = 0,
        submit_error: Exception | None = None,
        confirm_error: Exception | None = None,
        release: asyncio.Event | None = None,
    ) -> None:
        self.scores = list(scores)
        self.oracle_error = oracle_error
        self.oracle_errors = list(oracle_errors) if oracle_errors is not None else None
        self.read_failures = read_failures
        self.submit_error = submit_error
        self.confirm_error = confirm_error
        self.release = release
        self.sent: list[tuple[int, tuple[str, ...]]] = []
        self.score_reads = 0
        self.error_reads = 0

    async def send_request(self, subscription_id: int, args: Sequence[str]) -> str:
        if self.release is not None:
            await self.release.wait()
        if self.submit_error is not None:
            raise self.submit_error
        self.sent.append((subscription_id, tuple(args)))
        return "0xabc"

    async def wait_for_receipt(self, tx_hash: str, *, timeout: float) -> Mapping[str, Any]:
        if self.confirm_error is not None:
            raise self.confirm_error
        return {"transactionHash": tx_hash, "status": 1}

    async def get_score(self, caller: str) -> int:
        self.score_reads += 1
        if self.read_failures > 0:
            self.read_failures -= 1
            raise ChainReadFailed("getScore failed: connection reset")
        if len(self.scores) > 1:
            return self.scores.pop(0)
        return self.scores[0]

    async def last_request_id(self) -> str:
        return "0x01"

    async def last_error(self) -> bytes:
        self.error_reads += 1
        if self.oracle_errors:
            if len(self.oracle_errors) > 1:
                return self.oracle_errors.pop(0)
            return self.oracle_errors[0]
        return self.oracle_error


@pytest.fixture()
def fake_contract() -> type[FakeScoreContract]:
    return FakeScoreContract
