"""Error Classifier — maps raw backend failures to a normalized ClassifiedError.

Invariants:
    - classify() is pure, deterministic and never raises
    - Resolution order: provider code table → message sniffing → transport
      exception type → HTTP status → network message sniffing → unknown_error
    - Message sniffing priority: context length, rate limit, API key, quota,
      model not found, out of memory
    - A status code outranks network wording: 504 "Gateway Timeout" is gateway_timeout
    - retryable is derived from ErrorKind only (domain_types.RETRYABLE_KINDS)
    - retry-after parsed as integer seconds; absent, negative or unparsable → None

Design Decisions:
    - Accepts dict envelopes, anthropic SDK errors, httpx errors and plain exceptions:
      adapters hand over whatever they caught without pre-normalizing
    - Per-provider tables are plain dicts: every mapping visible in one place
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping

import anthropic
import httpx

from chatcore.core.domain_types import ErrorKind, Provider, is_retryable
from chatcore.core.error_fixes import get_suggested_fix
from chatcore.core.errors import ClassifiedError


@dataclass(frozen=True)
class _RawFields:
    status_code: int | None
    code: str | None
    message: str
    headers: Mapping[str, Any] | None


# === Provider code tables =====================================================

_OPENAI_CODES = {
    "context_length_exceeded": ErrorKind.CONTEXT_LENGTH_EXCEEDED,
    "max_tokens_exceeded": ErrorKind.CONTEXT_LENGTH_EXCEEDED,
    "rate_limit_exceeded": ErrorKind.RATE_LIMIT_EXCEEDED,
    "rate_limit_error": ErrorKind.RATE_LIMIT_EXCEEDED,
    "invalid_api_key": ErrorKind.INVALID_API_KEY,
    "authentication_error": ErrorKind.INVALID_API_KEY,
    "insufficient_quota": ErrorKind.QUOTA_EXCEEDED,
    "quota_exceeded": ErrorKind.QUOTA_EXCEEDED,
    "model_not_found": ErrorKind.MODEL_NOT_FOUND,
    "server_error": ErrorKind.SERVER_ERROR,
    "service_unavailable": ErrorKind.SERVER_ERROR,
    "internal_server_error": ErrorKind.SERVER_ERROR,
    "timeout": ErrorKind.TIMEOUT,
    "network_error": ErrorKind.NETWORK_ERROR,
}

_ANTHROPIC_CODES = {
    "authentication_error": ErrorKind.INVALID_API_KEY,
    "permission_error": ErrorKind.FORBIDDEN,
    "rate_limit_error": ErrorKind.RATE_LIMIT_EXCEEDED,
    "api_error": ErrorKind.SERVER_ERROR,
    "overloaded_error": ErrorKind.SERVER_OVERLOADED,
}


def _openai_code(code: str, message: str) -> ErrorKind | None:
    if code == "invalid_request_error":
        if "context length" in message:
            return ErrorKind.CONTEXT_LENGTH_EXCEEDED
        return ErrorKind.INVALID_REQUEST
    return _OPENAI_CODES.get(code)


def _anthropic_code(code: str, message: str) -> ErrorKind | None:
    if code == "invalid_request_error":
        if "context" in message or "token" in message or "too long" in message:
            return ErrorKind.CONTEXT_LENGTH_EXCEEDED
        return ErrorKind.INVALID_REQUEST
    if code == "not_found_error":
        return ErrorKind.MODEL_NOT_FOUND if "model" in message else ErrorKind.NOT_FOUND
    return _ANTHROPIC_CODES.get(code)


def _huggingface_code(code: str, message: str) -> ErrorKind | None:
    if "currently loading" in message:
        return ErrorKind.SERVICE_UNAVAILABLE
    return _OPENAI_CODES.get(code)


def _no_codes(code: str, message: str) -> ErrorKind | None:
    return None


# ADR: custom providers are assumed OpenAI-compatible; ollama reports free text only
_CODE_TABLES: dict[str, Callable[[str, str], ErrorKind | None]] = {
    Provider.OPENAI.value: _openai_code,
    Provider.CUSTOM.value: _openai_code,
    Provider.ANTHROPIC.value: _anthropic_code,
    Provider.HUGGINGFACE.value: _huggingface_code,
    Provider.OLLAMA.value: _no_codes,
}


# === Message sniffing =========================================================

_SNIFF_RULES: list[tuple[ErrorKind, tuple[str, ...]]] = [
    (ErrorKind.CONTEXT_LENGTH_EXCEEDED, (
        "context length", "context_length", "maximum context",
        "context window", "prompt is too long",
    )),
    (ErrorKind.RATE_LIMIT_EXCEEDED, ("rate limit", "rate_limit", "too many requests")),
    (ErrorKind.INVALID_API_KEY, ("api key", "api_key", "authentication", "unauthorized")),
    (ErrorKind.QUOTA_EXCEEDED, ("quota", "billing")),
]

_NETWORK_RULES: list[tuple[ErrorKind, tuple[str, ...]]] = [
    (ErrorKind.CONNECTION_REFUSED, ("connection refused", "econnrefused")),
    (ErrorKind.TIMEOUT, ("timed out", "timeout", "etimedout")),
    (ErrorKind.NETWORK_ERROR, ("network", "enotfound", "econnreset", "socket hang up")),
]

_OOM_WORD = re.compile(r"\boom\b")


def _sniff_message(message: str) -> ErrorKind | None:
    for kind, needles in _SNIFF_RULES:
        if any(n in message for n in needles):
            return kind
    if "model" in message and ("not found" in message or "not_found" in message):
        return ErrorKind.MODEL_NOT_FOUND
    if "out of memory" in message or _OOM_WORD.search(message):
        return ErrorKind.OUT_OF_MEMORY
    return None


def _sniff_network(message: str) -> ErrorKind | None:
    for kind, needles in _NETWORK_RULES:
        if any(n in message for n in needles):
            return kind
    return None


def _transport_kind(raw: Any) -> ErrorKind | None:
    """Map exception types that carry no status code."""
    if isinstance(raw, (
        anthropic.APITimeoutError, httpx.TimeoutException,
        asyncio.TimeoutError, TimeoutError,
    )):
        return ErrorKind.TIMEOUT
    if isinstance(raw, (ConnectionRefusedError, httpx.ConnectError)):
        return ErrorKind.CONNECTION_REFUSED
    if isinstance(raw, (
        anthropic.APIConnectionError, httpx.TransportError, ConnectionError,
    )):
        return ErrorKind.NETWORK_ERROR
    return None


# === HTTP status ==============================================================

_STATUS_TABLE = {
    400: ErrorKind.INVALID_REQUEST,
    401: ErrorKind.INVALID_API_KEY,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    429: ErrorKind.RATE_LIMIT_EXCEEDED,
    500: ErrorKind.SERVER_ERROR,
    502: ErrorKind.BAD_GATEWAY,
    503: ErrorKind.SERVICE_UNAVAILABLE,
    504: ErrorKind.GATEWAY_TIMEOUT,
    529: ErrorKind.SERVER_OVERLOADED,  # Anthropic "Overloaded"
}


def status_to_kind(status_code: int) -> ErrorKind:
    kind = _STATUS_TABLE.get(status_code)
    if kind:
        return kind
    return ErrorKind.SERVER_ERROR if status_code >= 500 else ErrorKind.CLIENT_ERROR


# === Public API ===============================================================

def classify(provider: str | Provider, raw_error: Any) -> ClassifiedError:
    """Normalize a raw failure reported by `provider`."""
    provider_name = _provider_name(provider)
    fields = _extract_fields(raw_error)
    message_lower = fields.message.lower()

    kind = None
    table = _CODE_TABLES.get(provider_name)
    if fields.code and table:
        kind = table(fields.code.lower(), message_lower)
    if kind is None:
        kind = _sniff_message(message_lower)
    if kind is None:
        kind = _transport_kind(raw_error)
    if kind is None and fields.status_code is not None:
        kind = status_to_kind(fields.status_code)
    if kind is None:
        kind = _sniff_network(message_lower)
    if kind is None:
        kind = ErrorKind.UNKNOWN_ERROR

    retry_after = extract_retry_after(fields.headers)
    message = fields.message or f"Unknown {provider_name} error"
    return ClassifiedError(
        kind=kind,
        message=message,
        provider=provider_name,
        retryable=is_retryable(kind),
        retry_after_seconds=retry_after,
        suggested_fix=get_suggested_fix(
            kind, provider_name, retry_after=retry_after, message=message,
        ),
        status_code=fields.status_code,
    )


def extract_retry_after(headers: Mapping[str, Any] | None) -> int | None:
    """Integer seconds from a retry-after header (case-insensitive)."""
    if not headers:
        return None
    value = None
    try:
        for key, val in headers.items():
            if str(key).lower() == "retry-after":
                value = val
                break
    except AttributeError:
        return None
    if value is None:
        return None
    try:
        seconds = int(str(value).strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


# === Private helpers ==========================================================

def _provider_name(provider: str | Provider) -> str:
    if isinstance(provider, Provider):
        return provider.value
    return str(provider or "unknown").lower()


def _extract_fields(raw: Any) -> _RawFields:
    if isinstance(raw, Mapping):
        return _fields_from_mapping(raw)
    if isinstance(raw, anthropic.APIStatusError):
        return _fields_from_sdk_error(raw)
    if isinstance(raw, httpx.HTTPStatusError):
        return _RawFields(
            status_code=raw.response.status_code, code=None,
            message=str(raw), headers=raw.response.headers,
        )
    if isinstance(raw, BaseException):
        return _fields_from_object(raw, str(raw))
    if raw is None:
        return _RawFields(None, None, "", None)
    return _RawFields(None, None, str(raw), None)


def _fields_from_mapping(raw: Mapping) -> _RawFields:
    code = None
    message = None
    error = raw.get("error")
    if isinstance(error, Mapping):
        code = error.get("code") or error.get("type")
        message = error.get("message")
    elif isinstance(error, str):
        message = error
    if not message:
        message = raw.get("message")
    if not code:
        code = raw.get("code") or raw.get("type")

    headers = raw.get("headers")
    response = raw.get("response")
    if headers is None and isinstance(response, Mapping):
        headers = response.get("headers")

    return _RawFields(
        status_code=_as_status(
            raw.get("status") or raw.get("status_code") or raw.get("statusCode"),
        ),
        code=str(code) if code else None,
        message=str(message or ""),
        headers=headers if isinstance(headers, Mapping) else None,
    )


def _fields_from_sdk_error(raw: anthropic.APIStatusError) -> _RawFields:
    body = raw.body if isinstance(raw.body, Mapping) else {}
    envelope = body.get("error") if isinstance(body.get("error"), Mapping) else body
    response = getattr(raw, "response", None)
    return _RawFields(
        status_code=raw.status_code,
        code=envelope.get("type") or envelope.get("code"),
        message=str(envelope.get("message") or raw.message or ""),
        headers=response.headers if response is not None else None,
    )


def _fields_from_object(raw: BaseException, message: str) -> _RawFields:
    status = None
    for attr in ("status", "status_code", "statusCode"):
        status = _as_status(getattr(raw, attr, None))
        if status is not None:
            break
    headers = getattr(raw, "headers", None)
    if headers is None:
        headers = getattr(getattr(raw, "response", None), "headers", None)
    code = getattr(raw, "code", None)
    return _RawFields(
        status_code=status,
        code=code if isinstance(code, str) else None,
        message=message,
        headers=headers if isinstance(headers, Mapping) else None,
    )


def _as_status(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None
