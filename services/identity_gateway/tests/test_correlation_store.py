import asyncio
from typing import Any, Optional

from services.identity_gateway.app.config import Settings
from services.identity_gateway.app.security import (
    derive_code_challenge,
    generate_code_verifier,
    generate_nonce,
)
from services.identity_gateway.app.state import (
    InMemoryCorrelationStore,
    RedisCorrelationStore,
    create_correlation_store,
)


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """Subset of ``redis.asyncio.Redis`` used by the correlation store."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.expiries: dict[str, Optional[int]] = {}
        self.closed = False

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        self.values[key] = value
        self.expiries[key] = ex
        return True

    async def getdel(self, key: str) -> Optional[str]:
        self.expiries.pop(key, None)
        return self.values.pop(key, None)

    async def aclose(self) -> None:
        self.closed = True


def test_consume_returns_entry_exactly_once():
    store = InMemoryCorrelationStore(clock=FakeClock())

    async def run() -> tuple[Any, Any]:
        await store.put("twitter", "n1", "secret")
        first = await store.consume("twitter", "n1")
        second = await store.consume("twitter", "n1")
        return first, second

    first, second = asyncio.run(run())

    assert first is not None and first.proof_secret == "secret"
    assert second is None


def test_entry_is_bound_to_its_provider():
    store = InMemoryCorrelationStore(clock=FakeClock())

    async def run() -> Any:
        await store.put("github", "n1")
        return await store.consume("discord", "n1")

    assert asyncio.run(run()) is None


def test_expired_entry_is_absent_and_evicted_on_put():
    clock = FakeClock()
    store = InMemoryCorrelationStore(ttl_seconds=600, clock=clock)

    async def run() -> Any:
        await store.put("github", "old")
        clock.advance(601)
        await store.put("github", "fresh")
        assert len(store) == 1
        return await store.consume("github", "old")

    assert asyncio.run(run()) is None


def test_entry_within_ttl_is_still_valid():
    clock = FakeClock()
    store = InMemoryCorrelationStore(ttl_seconds=600, clock=clock)

    async def run() -> Any:
        await store.put("discord", "n1")
        clock.advance(599)
        return await store.consume("discord", "n1")

    entry = asyncio.run(run())
    assert entry is not None
    assert entry.proof_secret is None


def test_redis_store_uses_getdel_and_ttl():
    redis = FakeRedis()
    clock = FakeClock()
    store = RedisCorrelationStore(redis, ttl_seconds=600, clock=clock)

    async def run() -> tuple[Any, Any]:
        await store.put("twitter", "n1", "secret")
        assert redis.expiries["oauth:state:twitter:n1"] == 600
        first = await store.consume("twitter", "n1")
        second = await store.consume("twitter", "n1")
        return first, second

    first, second = asyncio.run(run())

    assert first is not None and first.proof_secret == "secret"
    assert second is None


def test_redis_store_checks_age_with_clock():
    redis = FakeRedis()
    clock = FakeClock()
    store = RedisCorrelationStore(redis, ttl_seconds=600, clock=clock)

    async def run() -> Any:
        await store.put("github", "n1")
        clock.advance(600.5)
        return await store.consume("github", "n1")

    assert asyncio.run(run()) is None


def test_factory_selects_backend():
    memory = create_correlation_store(Settings(correlation_backend="memory"))
    redis_store = create_correlation_store(Settings(correlation_backend="redis"), redis=FakeRedis())

    assert isinstance(memory, InMemoryCorrelationStore)
    assert isinstance(redis_store, RedisCorrelationStore)


def test_code_challenge_is_unpadded_base64url_sha256():
    verifier = generate_code_verifier()
    challenge = derive_code_challenge(verifier)

    assert len(verifier) == 43
    assert len(challenge) == 43
    assert "=" not in challenge
    assert "+" not in challenge and "/" not in challenge
    assert derive_code_challenge(verifier) == challenge
    assert derive_code_challenge("other-verifier") != challenge


def test_nonces_are_unique_and_delimiter_free():
    nonces = {generate_nonce() for _ in range(50)}

    assert len(nonces) == 50
    assert all("|" not in nonce for nonce in nonces)


def test_redis_store_closes_only_its_own_client():
    injected = FakeRedis()
    owned = FakeRedis()
    shared_store = create_correlation_store(Settings(correlation_backend="redis"), redis=injected)
    owning_store = RedisCorrelationStore(owned, owns_client=True)

    async def run() -> None:
        await shared_store.aclose()
        await owning_store.aclose()

    asyncio.run(run())

    assert injected.closed is False
    assert owned.closed is True
