import pytest

from services.identity_gateway.app.errors import MalformedToken
from services.identity_gateway.app.state_token import (
    DecodedState,
    TokenLayout,
    decode,
    encode,
    extract_caller_identity,
)

WALLET = "0x9103650b6cd763f00458d634d55f4fe15a2d328e"


@pytest.mark.parametrize("caller", [WALLET, None])
def test_plain_token_round_trip(caller):
    token = encode(caller, "n0nce")

    decoded = decode(token, TokenLayout.PLAIN)

    assert decoded == DecodedState(caller, "n0nce")


def test_pkce_token_carries_proof_secret():
    token = encode(WALLET, "n0nce", "verifier-abc")

    assert token == f"publicKey:{WALLET}|n0nce|verifier-abc"
    assert decode(token, TokenLayout.PKCE) == DecodedState(WALLET, "n0nce", "verifier-abc")


def test_pkce_token_without_secret_or_caller():
    assert decode("n0nce", TokenLayout.PKCE) == DecodedState(None, "n0nce")
    assert decode("n0nce|verifier", TokenLayout.PKCE) == DecodedState(None, "n0nce", "verifier")


@pytest.mark.parametrize(
    "token, layout",
    [
        ("", TokenLayout.PLAIN),
        ("a|b", TokenLayout.PLAIN),
        ("a|b|c", TokenLayout.PKCE),
        ("publicKey:|n0nce", TokenLayout.PLAIN),
        ("publicKey|n0nce", TokenLayout.PLAIN),
        ("publicKeyX:abc|n0nce", TokenLayout.PLAIN),
        (f"publicKey:{WALLET}|", TokenLayout.PLAIN),
        (f"publicKey:{WALLET}", TokenLayout.PLAIN),
        ("n0nce||secret", TokenLayout.PKCE),
    ],
)
def test_decode_rejects_malformed_tokens(token, layout):
    with pytest.raises(MalformedToken):
        decode(token, layout)


def test_encode_rejects_delimiter_in_segments():
    with pytest.raises(MalformedToken):
        encode("0xabc|0xdef", "n0nce")
    with pytest.raises(MalformedToken):
        encode(WALLET, "n0|nce")
    with pytest.raises(MalformedToken):
        encode(WALLET, "n0nce", "ver|ifier")
    with pytest.raises(MalformedToken):
        encode(WALLET, "")


def test_extract_caller_identity_is_lenient():
    assert extract_caller_identity(f"publicKey:{WALLET}|n0nce") == WALLET
    assert extract_caller_identity("n0nce") is None
    assert extract_caller_identity(None) is None
    assert extract_caller_identity(f"publicKey:{WALLET}") is None
