import asyncio
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from services.identity_gateway.app.config import Settings
from services.identity_gateway.app.orchestrator import (
    VerificationOrchestrator,
    VerificationStep,
)
from services.identity_gateway.app.providers import build_registry
from services.identity_gateway.app.state import InMemoryCorrelationStore

WALLET = "0x5593b14639b27cdcc9e75e0e6ba4ab2319aa15f9"


class _Recorder:
    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/2/oauth2/token":
            return httpx.Response(200, json={"access_token": "tw-token"})
        if request.url.path == "/login/oauth/access_token":
            return httpx.Response(200, json={"access_token": "gh-token"})
        if request.url.path == "/2/users/me":
            return httpx.Response(
                200,
                json={
                    "data": {
                        "id": "7",
                        "username": "wallet_owner",
                        "public_metrics": {"followers_count": 10, "following_count": 5, "tweet_count": 20},
                    }
                },
            )
        if request.url.path == "/user":
            return httpx.Response(
                200, json={"id": 1, "login": "octo", "email": "octo@example.com"}
            )
        return httpx.Response(404)


def _orchestrator(recorder: _Recorder, *, strict: bool = True, embed: bool = False):
    settings = Settings(
        github_client_id="gh-id",
        github_client_secret="gh-secret",
        twitter_client_id="tw-id",
        twitter_client_secret="tw-secret",
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder.handler))
    registry = build_registry(settings, http_client=client)
    store = InMemoryCorrelationStore()
    orchestrator = VerificationOrchestrator(
        registry, store, strict_state_validation=strict, embed_proof_secret=embed
    )
    return orchestrator, store


def test_provider_error_makes_no_network_calls():
    recorder = _Recorder()
    orchestrator, _ = _orchestrator(recorder)

    outcome = asyncio.run(
        orchestrator.handle_callback("github", None, f"publicKey:{WALLET}|n0nce", "access_denied")
    )

    assert outcome.ok is False
    assert outcome.reason == "access_denied"
    assert outcome.caller_identity == WALLET
    assert recorder.requests == []


def test_missing_parameters():
    recorder = _Recorder()
    orchestrator, _ = _orchestrator(recorder)

    outcome = asyncio.run(orchestrator.handle_callback("github", code="abc", state=None))

    assert outcome.reason == "missing_parameters"
    assert recorder.requests == []


def test_unknown_provider():
    orchestrator, _ = _orchestrator(_Recorder())

    outcome = asyncio.run(orchestrator.handle_callback("myspace", code="abc", state="n0nce"))

    assert outcome.reason == "unsupported_provider"


def test_malformed_state_is_rejected():
    orchestrator, _ = _orchestrator(_Recorder())

    outcome = asyncio.run(orchestrator.handle_callback("github", code="abc", state="publicKey:|x"))

    assert outcome.reason == "malformed_state"
    assert outcome.step is VerificationStep.CODE_RECEIVED


def test_pkce_flow_forwards_stored_verifier():
    recorder = _Recorder()
    orchestrator, _ = _orchestrator(recorder)

    async def run():
        request = await orchestrator.begin("twitter", WALLET)
        params = parse_qs(urlsplit(request.url).query)
        assert params["code_challenge_method"] == ["S256"]
        # The verifier stays server side by default.
        assert request.state.count("|") == 1
        return await orchestrator.handle_callback("twitter", "the-code", request.state)

    outcome = asyncio.run(run())

    assert outcome.ok is True
    assert outcome.caller_identity == WALLET
    assert outcome.identity.username == "wallet_owner"
    # 5 followers, 2 tweets, ratio 2 -> 20
    assert outcome.points == 27
    assert outcome.account_fields == {"twitter_username": "wallet_owner", "is_verified_twitter": True}
    token_request = recorder.requests[0]
    form = parse_qs(token_request.content.decode())
    assert len(form["code_verifier"][0]) == 43


def test_strict_mode_rejects_replayed_state():
    recorder = _Recorder()
    orchestrator, _ = _orchestrator(recorder)

    async def run():
        request = await orchestrator.begin("github", WALLET)
        first = await orchestrator.handle_callback("github", "code", request.state)
        second = await orchestrator.handle_callback("github", "code", request.state)
        return first, second

    first, second = asyncio.run(run())

    assert first.ok is True
    assert second.ok is False
    assert second.reason == "invalid_state"
    assert len(recorder.requests) == 2


def test_strict_mode_rejects_unknown_nonce():
    recorder = _Recorder()
    orchestrator, _ = _orchestrator(recorder)

    outcome = asyncio.run(
        orchestrator.handle_callback("github", "code", f"publicKey:{WALLET}|forged")
    )

    assert outcome.reason == "invalid_state"
    assert recorder.requests == []


def test_relaxed_mode_proceeds_and_uses_token_verifier():
    recorder = _Recorder()
    orchestrator, _ = _orchestrator(recorder, strict=False)

    async def run():
        request = await orchestrator.begin("twitter", WALLET)
        assert request.state.count("|") == 2
        first = await orchestrator.handle_callback("twitter", "code", request.state)
        replay = await orchestrator.handle_callback("twitter", "code", request.state)
        return request, first, replay

    request, first, replay = asyncio.run(run())

    verifier = request.state.rsplit("|", 1)[1]
    assert first.ok is True
    assert replay.ok is True
    replay_form = parse_qs(recorder.requests[-2].content.decode())
    assert replay_form["code_verifier"] == [verifier]


def test_exchange_failure_becomes_failed_outcome():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, text="invalid_grant")

    settings = Settings(github_client_id="gh-id", github_client_secret="gh-secret")
    registry = build_registry(
        settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )
    orchestrator = VerificationOrchestrator(registry, InMemoryCorrelationStore())

    async def run():
        request = await orchestrator.begin("github")
        return await orchestrator.handle_callback("github", "code", request.state)

    outcome = asyncio.run(run())

    assert outcome.ok is False
    assert outcome.reason == "Token exchange failed: 400"
    assert "invalid_grant" not in outcome.reason
    assert outcome.step is VerificationStep.CODE_RECEIVED
    assert outcome.caller_identity is None


@pytest.mark.parametrize("provider", ["github", "discord"])
def test_begin_for_plain_provider_has_no_challenge(provider):
    settings = Settings(github_client_id="gh-id", discord_client_id="dc-id")
    orchestrator = VerificationOrchestrator(build_registry(settings), InMemoryCorrelationStore())

    request = asyncio.run(orchestrator.begin(provider, WALLET))

    assert "code_challenge" not in parse_qs(urlsplit(request.url).query)
    assert request.state.startswith(f"publicKey:{WALLET}|")
