"""Utilities shared across services to standardise observability."""

from .logging import (
    RequestContextMiddleware,
    bind_caller,
    configure_logging,
    get_caller,
    get_correlation_id,
    get_request_id,
)
from .metrics import (
    record_score_poll,
    record_score_request,
    record_verification_outcome,
    setup_metrics,
)

__all__ = [
    "RequestContextMiddleware",
    "bind_caller",
    "configure_logging",
    "get_caller",
    "get_correlation_id",
    "get_request_id",
    "record_score_poll",
    "record_score_request",
    "record_verification_outcome",
    "setup_metrics",
]
