"""Error Classifier tests — heterogeneous backend failures normalized to ClassifiedError.

Tests cover:
    - Status-table classification with retry-after (openai 429 scenario)
    - Message sniffing (ollama "model not found" scenario, priority order)
    - Provider code tables (openai envelope, anthropic SDK errors incl. 529)
    - Transport exceptions and network message sniffing
    - Fallbacks: 4xx client_error, 5xx server_error, unknown_error
    - retry-after parsing edge cases; classify() never raises
"""

import asyncio

import anthropic
import httpx
import pytest

from chatcore.core.domain_types import ErrorKind, Provider
from chatcore.core.error_classifier import classify, extract_retry_after, status_to_kind

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _sdk_error(status: int, err_type: str, message: str, headers=None):
    response = httpx.Response(status, headers=headers or {}, request=_REQUEST)
    return anthropic.APIStatusError(
        message, response=response,
        body={"type": "error", "error": {"type": err_type, "message": message}},
    )


# ==============================================================================
# Documented scenarios
# ==============================================================================


def test_openai_429_with_retry_after():
    err = classify("openai", {"status": 429, "headers": {"retry-after": "2"}})
    assert err.kind == ErrorKind.RATE_LIMIT_EXCEEDED
    assert err.retryable is True
    assert err.retry_after_seconds == 2
    assert "2 seconds" in err.suggested_fix


def test_ollama_model_not_found_message():
    err = classify("ollama", {"message": "model not found"})
    assert err.kind == ErrorKind.MODEL_NOT_FOUND
    assert err.retryable is False
    assert "ollama pull" in err.suggested_fix


# ==============================================================================
# Provider code tables
# ==============================================================================


def test_openai_context_length_envelope_reports_excess():
    err = classify("openai", {"error": {
        "code": "context_length_exceeded",
        "message": (
            "This model's maximum context length is 8192 tokens. "
            "However, your messages resulted in 9000 tokens."
        ),
    }})
    assert err.kind == ErrorKind.CONTEXT_LENGTH_EXCEEDED
    assert not err.retryable
    assert "808 tokens over limit" in err.suggested_fix


def test_openai_code_is_case_insensitive():
    err = classify(Provider.OPENAI, {"error": {"code": "INVALID_API_KEY", "message": "bad"}})
    assert err.kind == ErrorKind.INVALID_API_KEY
    assert "OPENAI" in err.suggested_fix


def test_custom_provider_uses_openai_codes():
    err = classify("custom", {"error": {"code": "insufficient_quota", "message": "x"}})
    assert err.kind == ErrorKind.QUOTA_EXCEEDED


def test_anthropic_sdk_rate_limit_error():
    raw = _sdk_error(429, "rate_limit_error", "Rate limited", {"retry-after": "5"})
    err = classify("anthropic", raw)
    assert err.kind == ErrorKind.RATE_LIMIT_EXCEEDED
    assert err.retry_after_seconds == 5
    assert err.status_code == 429


def test_anthropic_overloaded_is_retryable():
    err = classify("anthropic", _sdk_error(529, "overloaded_error", "Overloaded"))
    assert err.kind == ErrorKind.SERVER_OVERLOADED
    assert err.retryable


def test_anthropic_prompt_too_long():
    raw = _sdk_error(
        400, "invalid_request_error",
        "prompt is too long: 210000 tokens > 200000 maximum",
    )
    err = classify("anthropic", raw)
    assert err.kind == ErrorKind.CONTEXT_LENGTH_EXCEEDED
    assert "10000 tokens over limit" in err.suggested_fix


def test_anthropic_authentication_error():
    err = classify("anthropic", _sdk_error(401, "authentication_error", "invalid x-api-key"))
    assert err.kind == ErrorKind.INVALID_API_KEY
    assert not err.retryable


# ==============================================================================
# Message sniffing and transport errors
# ==============================================================================


def test_sniffing_priority_context_before_rate_limit():
    err = classify("ollama", {"message": "rate limit hit because context length exceeded"})
    assert err.kind == ErrorKind.CONTEXT_LENGTH_EXCEEDED


@pytest.mark.parametrize("raw, kind", [
    (asyncio.TimeoutError(), ErrorKind.TIMEOUT),
    (httpx.ReadTimeout("slow"), ErrorKind.TIMEOUT),
    (httpx.ConnectError("refused"), ErrorKind.CONNECTION_REFUSED),
    (ConnectionResetError("reset"), ErrorKind.NETWORK_ERROR),
    (anthropic.APIConnectionError(request=_REQUEST), ErrorKind.NETWORK_ERROR),
    (anthropic.APITimeoutError(request=_REQUEST), ErrorKind.TIMEOUT),
])
def test_transport_exceptions(raw, kind):
    err = classify("anthropic", raw)
    assert err.kind == kind
    assert err.retryable


def test_network_message_sniffing():
    err = classify("ollama", Exception("connect ECONNREFUSED 127.0.0.1:11434"))
    assert err.kind == ErrorKind.CONNECTION_REFUSED
    assert "ollama serve" in err.suggested_fix


def test_out_of_memory_sniffing():
    err = classify("ollama", {"message": "CUDA error: out of memory"})
    assert err.kind == ErrorKind.OUT_OF_MEMORY
    assert not err.retryable


# ==============================================================================
# Status fallbacks and edge cases
# ==============================================================================


@pytest.mark.parametrize("status, kind", [
    (400, ErrorKind.INVALID_REQUEST),
    (403, ErrorKind.FORBIDDEN),
    (404, ErrorKind.NOT_FOUND),
    (418, ErrorKind.CLIENT_ERROR),
    (502, ErrorKind.BAD_GATEWAY),
    (503, ErrorKind.SERVICE_UNAVAILABLE),
    (504, ErrorKind.GATEWAY_TIMEOUT),
    (599, ErrorKind.SERVER_ERROR),
])
def test_status_table(status, kind):
    assert status_to_kind(status) == kind
    assert classify("openai", {"status_code": status}).kind == kind


def test_string_status_accepted():
    assert classify("openai", {"statusCode": "500"}).kind == ErrorKind.SERVER_ERROR


def test_status_outranks_network_wording():
    err = classify("openai", {"status": 504, "message": "Gateway Timeout"})
    assert err.kind == ErrorKind.GATEWAY_TIMEOUT
    assert classify("openai", {"message": "Gateway Timeout"}).kind == ErrorKind.TIMEOUT


def test_out_of_memory_outranks_status():
    err = classify("ollama", {"status": 500, "message": "model runner: out of memory"})
    assert err.kind == ErrorKind.OUT_OF_MEMORY


def test_unknown_error_fallback():
    err = classify("openai", None)
    assert err.kind == ErrorKind.UNKNOWN_ERROR
    assert err.message == "Unknown openai error"
    assert "documentation" in err.suggested_fix


def test_odd_envelopes_never_raise():
    assert classify("custom", {"error": 42}).kind == ErrorKind.UNKNOWN_ERROR
    assert classify("huggingface", "plain string failure").kind == ErrorKind.UNKNOWN_ERROR


def test_retry_after_header_parsing():
    assert extract_retry_after({"Retry-After": "7"}) == 7
    assert extract_retry_after({"retry-after": "soon"}) is None
    assert extract_retry_after({"retry-after": "-1"}) is None
    assert extract_retry_after(None) is None
    assert extract_retry_after({"x-other": "1"}) is None
