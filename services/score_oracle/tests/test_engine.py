import asyncio

import pytest

from services.score_oracle.app.engine import (
    ScoreRequestEngine,
    ScoreRequestManager,
    normalize_args,
)
from services.score_oracle.app.errors import (
    ChainConfirmTimeout,
    ChainSubmitFailed,
    ContractNotConfigured,
    ScoreRequestInProgress,
)
from services.score_oracle.app.schemas import ScoreCategory, ScoreRequestState
from services.score_oracle.app.sync import ReconciliationSync

WALLET = "0x9103650B6Cd763F00458D634D55f4FE15A2d328e"


def _engine(contract, **kwargs) -> ScoreRequestEngine:
    kwargs.setdefault("poll_interval", 0)
    return ScoreRequestEngine(
        contract,
        category=ScoreCategory.DEV,
        caller=WALLET.lower(),
        subscription_id=5186,
        **kwargs,
    )


def test_engine_resolves_once_score_is_visible(fake_contract):
    contract = fake_contract(scores=[0, 0, 720])
    seen: list[ScoreRequestState] = []
    engine = _engine(contract, listener=lambda snapshot: seen.append(snapshot.state))

    status = asyncio.run(engine.run(["octocat"]))

    assert status.state is ScoreRequestState.RESOLVED
    assert status.score == 720
    assert status.attempts == 3
    assert status.tx_hash == "0xabc"
    assert status.request_id == "0x01"
    assert contract.sent == [(5186, ("octocat",))]
    assert seen == [
        ScoreRequestState.SUBMITTING,
        ScoreRequestState.AWAITING_CONFIRMATION,
        ScoreRequestState.POLLING,
        ScoreRequestState.RESOLVED,
    ]


def test_engine_times_out_after_max_attempts(fake_contract):
    contract = fake_contract(scores=[0])
    engine = _engine(contract)

    status = asyncio.run(engine.run(["octocat"]))

    assert status.state is ScoreRequestState.TIMED_OUT
    assert status.attempts == 30
    assert contract.score_reads == 30
    assert "30 polls" in status.error
    assert status.score is None


def test_engine_stops_on_oracle_error(fake_contract):
    contract = fake_contract(scores=[500], oracle_errors=[b"", b"GitHub API rate limited\x00"])
    engine = _engine(contract)

    status = asyncio.run(engine.run(["octocat"]))

    assert status.state is ScoreRequestState.ERRORED
    assert status.error == "GitHub API rate limited"
    assert status.attempts == 1
    assert contract.score_reads == 0


def test_engine_ignores_error_left_by_earlier_request(fake_contract):
    contract = fake_contract(scores=[0, 0, 700], oracle_error=b"previous user rate limited")
    engine = _engine(contract)

    status = asyncio.run(engine.run(["octocat"]))

    assert status.state is ScoreRequestState.RESOLVED
    assert status.score == 700
    assert status.attempts == 3
    assert status.error is None


def test_engine_reports_error_replacing_earlier_one(fake_contract):
    contract = fake_contract(
        scores=[0],
        oracle_errors=[b"previous user rate limited", b"previous user rate limited", b"user not found"],
    )
    engine = _engine(contract)

    status = asyncio.run(engine.run(["octocat"]))

    assert status.state is ScoreRequestState.ERRORED
    assert status.error == "user not found"
    assert status.attempts == 2
    assert contract.score_reads == 1


def test_engine_keeps_polling_through_read_failures(fake_contract):
    contract = fake_contract(scores=[640], read_failures=2)
    engine = _engine(contract)

    status = asyncio.run(engine.run(["octocat"]))

    assert status.state is ScoreRequestState.RESOLVED
    assert status.score == 640
    assert status.attempts == 3


def test_engine_submit_failure_is_errored(fake_contract):
    contract = fake_contract(submit_error=ChainSubmitFailed("execution reverted"))
    engine = _engine(contract)

    status = asyncio.run(engine.run(["octocat"]))

    assert status.state is ScoreRequestState.ERRORED
    assert status.error == "execution reverted"
    assert status.tx_hash is None
    assert contract.score_reads == 0


def test_engine_confirmation_timeout_is_timed_out(fake_contract):
    contract = fake_contract(confirm_error=ChainConfirmTimeout("0xabc", 120))
    engine = _engine(contract)

    status = asyncio.run(engine.run(["octocat"]))

    assert status.state is ScoreRequestState.TIMED_OUT
    assert status.tx_hash == "0xabc"
    assert "not confirmed" in status.error


def test_engine_rejects_second_submit(fake_contract):
    engine = _engine(fake_contract(scores=[10]))

    async def scenario() -> None:
        await engine.submit(["octocat"])
        with pytest.raises(RuntimeError):
            await engine.submit(["octocat"])

    asyncio.run(scenario())


def test_engine_cancel_while_submitting(fake_contract):
    async def scenario() -> ScoreRequestEngine:
        contract = fake_contract(release=asyncio.Event())
        engine = _engine(contract)
        task = engine.start(["octocat"])
        await asyncio.sleep(0)
        engine.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return engine

    engine = asyncio.run(scenario())

    assert engine.state is ScoreRequestState.CANCELLED


def test_engine_cancel_while_polling_stops_reads(fake_contract):
    contract = fake_contract(scores=[0])

    async def scenario() -> ScoreRequestEngine:
        engine = _engine(contract, poll_interval=5)
        task = engine.start(["octocat"])
        for _ in range(100):
            if engine.state is ScoreRequestState.POLLING and contract.score_reads == 1:
                break
            await asyncio.sleep(0)
        assert engine.state is ScoreRequestState.POLLING
        engine.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0)
        return engine

    engine = asyncio.run(scenario())

    assert engine.state is ScoreRequestState.CANCELLED
    assert engine.snapshot().attempts == 1
    assert contract.score_reads == 1


def test_normalize_args_rejects_blank_values():
    assert normalize_args([" octocat "]) == ("octocat",)
    with pytest.raises(ValueError):
        normalize_args([])
    with pytest.raises(ValueError):
        normalize_args(["octocat", "  "])


def test_manager_rejects_concurrent_request_for_same_caller(fake_contract):
    async def scenario() -> None:
        release = asyncio.Event()
        manager = ScoreRequestManager(
            {ScoreCategory.DEV: fake_contract(scores=[0], release=release)},
            subscription_id=5186,
            poll_interval=0,
            max_attempts=1,
        )
        manager.start(ScoreCategory.DEV, WALLET, ["octocat"])
        with pytest.raises(ScoreRequestInProgress):
            manager.start(ScoreCategory.DEV, WALLET.lower(), ["octocat"])

        release.set()
        status = await manager.wait(ScoreCategory.DEV, WALLET)
        assert status.state is ScoreRequestState.TIMED_OUT

        again = manager.start(ScoreCategory.DEV, WALLET, ["octocat"])
        assert again.state is ScoreRequestState.IDLE
        await manager.shutdown()

    asyncio.run(scenario())


def test_manager_requires_configured_contract():
    manager = ScoreRequestManager({}, subscription_id=5186)

    with pytest.raises(ContractNotConfigured):
        manager.start(ScoreCategory.COMMUNITY, WALLET, ["nelly"])
    assert manager.status(ScoreCategory.COMMUNITY, WALLET) is None


def test_manager_stores_resolved_score(fake_contract, account_repository):
    contract = fake_contract(scores=[0, 810])
    contracts = {ScoreCategory.DEV: contract}
    manager = ScoreRequestManager(
        contracts,
        sync=ReconciliationSync(account_repository, contracts),
        subscription_id=5186,
        poll_interval=0,
    )

    async def scenario():
        manager.start(ScoreCategory.DEV, WALLET, ["octocat"])
        return await manager.wait(ScoreCategory.DEV, WALLET)

    status = asyncio.run(scenario())

    assert status.state is ScoreRequestState.RESOLVED
    assert status.sync is not None
    assert status.sync.current_value == 810
    assert status.sync_error is None
    record = asyncio.run(account_repository.get_score(WALLET, "dev"))
    assert record.score_value == 810
    assert record.source == "sync"


def test_manager_cancel_marks_request_cancelled(fake_contract):
    async def scenario():
        manager = ScoreRequestManager(
            {ScoreCategory.DEFI: fake_contract(release=asyncio.Event())},
            subscription_id=5186,
        )
        manager.start(ScoreCategory.DEFI, WALLET, [WALLET])
        await asyncio.sleep(0)
        assert manager.cancel(ScoreCategory.DEFI, WALLET) is True
        status = await manager.wait(ScoreCategory.DEFI, WALLET)
        assert manager.cancel(ScoreCategory.DEFI, WALLET) is False
        return status

    status = asyncio.run(scenario())

    assert status.state is ScoreRequestState.CANCELLED
