"""Failures raised while requesting, polling and reconciling scores."""

from __future__ import annotations


class ScoreOracleError(Exception):
    """Base class of the score oracle failures."""


class ContractNotConfigured(ScoreOracleError):
    def __init__(self, category: str) -> None:
        super().__init__(f"No score contract configured for {category}")
        self.category = category


class ChainSubmitFailed(ScoreOracleError):
    """The request transaction could not be simulated, signed or sent."""


class ChainConfirmTimeout(ScoreOracleError):
    def __init__(self, tx_hash: str, timeout: float) -> None:
        super().__init__(f"Transaction {tx_hash} not confirmed after {timeout:g}s")
        self.tx_hash = tx_hash
        self.timeout = timeout


class ChainReadFailed(ScoreOracleError):
    """A view call against the score contract failed."""


class ChainComputeError(ScoreOracleError):
    """The oracle reported an error for the last request."""


class PollTimeout(ScoreOracleError):
    def __init__(self, attempts: int) -> None:
        super().__init__(f"Score not available after {attempts} polls")
        self.attempts = attempts


class PlatformNotVerified(ScoreOracleError):
    def __init__(self, category: str, platform: str) -> None:
        super().__init__(f"{platform} must be verified before syncing the {category} score")
        self.category = category
        self.platform = platform


class SyncWriteFailed(ScoreOracleError):
    """The observed score could not be written to storage."""


class ScoreRequestInProgress(ScoreOracleError):
    def __init__(self, category: str, caller: str) -> None:
        super().__init__(f"A {category} score request is already running for {caller}")
        self.category = category
        self.caller = caller


__all__ = [
    "ChainComputeError",
    "ChainConfirmTimeout",
    "ChainReadFailed",
    "ChainSubmitFailed",
    "ContractNotConfigured",
    "PlatformNotVerified",
    "PollTimeout",
    "ScoreOracleError",
    "ScoreRequestInProgress",
    "SyncWriteFailed",
]
