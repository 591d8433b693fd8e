"""Access to the on-chain score contracts.

Each score category is served by a Chainlink Functions consumer exposing
``sendRequest`` to start a computation and a few view functions to observe
its outcome. :class:`ScoreContract` is the seam the engine depends on;
:class:`Web3ScoreContract` is the production implementation.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import TimeExhausted, Web3Exception

from .errors import ChainConfirmTimeout, ChainReadFailed, ChainSubmitFailed

logger = logging.getLogger(__name__)

SCORE_CONTRACT_ABI: list[dict[str, Any]] = [
    {
        "inputs": [
            {"internalType": "uint64", "name": "subscriptionId", "type": "uint64"},
            {"internalType": "string[]", "name": "args", "type": "string[]"},
        ],
        "name": "sendRequest",
        "outputs": [{"internalType": "bytes32", "name": "requestId", "type": "bytes32"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "user", "type": "address"}],
        "name": "getScore",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "s_lastRequestId",
        "outputs": [{"internalType": "bytes32", "name": "", "type": "bytes32"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "s_lastResponse",
        "outputs": [{"internalType": "bytes", "name": "", "type": "bytes"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "s_lastError",
        "outputs": [{"internalType": "bytes", "name": "", "type": "bytes"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# Transport failures surface from aiohttp as OSError subclasses.
_READ_ERRORS = (Web3Exception, ValueError, OSError, asyncio.TimeoutError)


def decode_oracle_error(raw: bytes) -> str:
    """Oracle errors are usually UTF-8 text, fall back to hex otherwise."""

    try:
        text = raw.decode("utf-8").strip("\x00").strip()
    except UnicodeDecodeError:
        text = ""
    return text or f"0x{raw.hex()}"


class ScoreContract(ABC):
    @abstractmethod
    async def send_request(self, subscription_id: int, args: Sequence[str]) -> str:
        """Submit a computation request and return the transaction hash."""

    @abstractmethod
    async def wait_for_receipt(self, tx_hash: str, *, timeout: float) -> Mapping[str, Any]:
        ...

    @abstractmethod
    async def get_score(self, caller: str) -> int:
        """Current score of ``caller``, ``0`` meaning none computed yet."""

    @abstractmethod
    async def last_request_id(self) -> str:
        ...

    @abstractmethod
    async def last_error(self) -> bytes:
        ...


class Web3ScoreContract(ScoreContract):
    """Score contract reached over JSON-RPC with ``web3.AsyncWeb3``."""

    def __init__(
        self,
        address: str,
        *,
        web3: AsyncWeb3 | None = None,
        rpc_url: str | None = None,
        private_key: str | None = None,
    ) -> None:
        if web3 is None:
            if not rpc_url:
                raise ValueError("rpc_url is required when no AsyncWeb3 instance is given")
            web3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._web3 = web3
        self._address = AsyncWeb3.to_checksum_address(address)
        self._contract = web3.eth.contract(address=self._address, abi=SCORE_CONTRACT_ABI)
        self._private_key = private_key

    @property
    def address(self) -> str:
        return self._address

    async def send_request(self, subscription_id: int, args: Sequence[str]) -> str:
        if not self._private_key:
            raise ChainSubmitFailed("No signing key configured for score requests")
        try:
            account = self._web3.eth.account.from_key(self._private_key)
            nonce = await self._web3.eth.get_transaction_count(account.address)
            # build_transaction estimates gas, which simulates the call first.
            transaction = await self._contract.functions.sendRequest(
                subscription_id, list(args)
            ).build_transaction({"from": account.address, "nonce": nonce})
            signed = account.sign_transaction(transaction)
            tx_hash = await self._web3.eth.send_raw_transaction(signed.raw_transaction)
        except _READ_ERRORS as exc:
            raise ChainSubmitFailed(f"sendRequest failed: {exc}") from exc
        return AsyncWeb3.to_hex(tx_hash)

    async def wait_for_receipt(self, tx_hash: str, *, timeout: float) -> Mapping[str, Any]:
        try:
            receipt = await self._web3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as exc:
            raise ChainConfirmTimeout(tx_hash, timeout) from exc
        except _READ_ERRORS as exc:
            raise ChainSubmitFailed(f"Could not read receipt of {tx_hash}: {exc}") from exc
        if receipt.get("status") == 0:
            raise ChainSubmitFailed(f"Transaction {tx_hash} reverted")
        return receipt

    async def get_score(self, caller: str) -> int:
        try:
            value = await self._contract.functions.getScore(
                AsyncWeb3.to_checksum_address(caller)
            ).call()
        except _READ_ERRORS as exc:
            raise ChainReadFailed(f"getScore failed: {exc}") from exc
        return int(value)

    async def last_request_id(self) -> str:
        try:
            value = await self._contract.functions.s_lastRequestId().call()
        except _READ_ERRORS as exc:
            raise ChainReadFailed(f"s_lastRequestId failed: {exc}") from exc
        return AsyncWeb3.to_hex(value)

    async def last_error(self) -> bytes:
        try:
            value = await self._contract.functions.s_lastError().call()
        except _READ_ERRORS as exc:
            raise ChainReadFailed(f"s_lastError failed: {exc}") from exc
        return bytes(value)


def build_contracts(
    addresses: Mapping[Any, str], *, rpc_url: str, private_key: str | None = None
) -> dict[Any, ScoreContract]:
    """One contract per configured category, sharing a single RPC connection."""

    web3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
    return {
        category: Web3ScoreContract(address, web3=web3, private_key=private_key)
        for category, address in addresses.items()
    }


__all__ = [
    "SCORE_CONTRACT_ABI",
    "ScoreContract",
    "Web3ScoreContract",
    "build_contracts",
    "decode_oracle_error",
]
