import json
import logging

from libs.observability import bind_caller, get_caller
from libs.observability.logging import CorrelationIdFilter, JsonLogFormatter

WALLET = "0x9103650b6cd763f00458d634d55f4fe15a2d328e"


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="services.identity_gateway.app.orchestrator",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Verification %s",
        args=("succeeded",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_redacts_oauth_material():
    formatter = JsonLogFormatter("identity-gateway")

    payload = json.loads(
        formatter.format(
            _record(code="auth-code", code_verifier="verifier", provider="github", points=120)
        )
    )

    assert payload["message"] == "Verification succeeded"
    assert payload["service"] == "identity-gateway"
    assert payload["code"] == "***"
    assert payload["code_verifier"] == "***"
    assert payload["provider"] == "github"
    assert payload["points"] == 120


def test_bound_caller_reaches_log_records():
    formatter = JsonLogFormatter("score-oracle")
    record_filter = CorrelationIdFilter("score-oracle")

    with bind_caller(WALLET):
        assert get_caller() == WALLET
        record = _record()
        record_filter.filter(record)
    assert get_caller() is None

    payload = json.loads(formatter.format(record))
    assert payload["caller"] == WALLET
    assert payload.get("correlation_id") is None
