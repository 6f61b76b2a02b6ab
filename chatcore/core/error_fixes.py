"""Suggested Fixes — human-readable remediation text per error kind and provider.

Invariants:
    - Every kind yields a non-empty string (fallback: provider documentation pointer)
    - Rate-limit text names the wait when retry_after is known
    - Context-length text reports the excess when the message carries both counts
"""

import re

from chatcore.core.domain_types import ErrorKind, Provider

_TOKEN_COUNT = re.compile(r"(\d[\d,]*)\s*tokens?", re.IGNORECASE)
_MAXIMUM = re.compile(
    r"maximum[^\d]{0,40}(\d[\d,]*)|(\d[\d,]*)\s*(?:tokens?\s*)?maximum",
    re.IGNORECASE,
)

_SERVER_KINDS = frozenset({
    ErrorKind.SERVER_ERROR, ErrorKind.SERVER_OVERLOADED, ErrorKind.BAD_GATEWAY,
    ErrorKind.SERVICE_UNAVAILABLE, ErrorKind.GATEWAY_TIMEOUT,
})

_LARGER_CONTEXT_HINT = {
    Provider.OPENAI.value: "Consider GPT-4 Turbo or GPT-4o for larger context windows",
    Provider.ANTHROPIC.value: "Consider Claude models with 200K-token context windows",
    Provider.OLLAMA.value: "Check if a larger variant of your model is available",
}


def get_suggested_fix(
    kind: ErrorKind, provider: str, *,
    retry_after: int | None = None, message: str = "",
) -> str:
    label = provider.upper()

    if kind == ErrorKind.INVALID_API_KEY:
        return (
            f"Check your {label} API key configuration. "
            "Ensure it's valid and has the necessary permissions."
        )
    if kind == ErrorKind.RATE_LIMIT_EXCEEDED:
        wait = f"{retry_after} seconds" if retry_after else "a few minutes"
        return (
            f"Rate limit exceeded. Wait {wait} before retrying, "
            f"or consider upgrading your {label} plan for higher limits."
        )
    if kind == ErrorKind.CONTEXT_LENGTH_EXCEEDED:
        return context_length_suggestion(provider, message)
    if kind == ErrorKind.QUOTA_EXCEEDED:
        return (
            f"Your {label} quota has been exceeded. "
            "Check your billing settings or upgrade your plan."
        )
    if kind == ErrorKind.MODEL_NOT_FOUND:
        if provider == Provider.OLLAMA.value:
            return "The model is not installed. Pull it with `ollama pull <model>` or pick an installed model."
        return (
            "The specified model is not available. Check the model name "
            f"and ensure it's supported by {label}."
        )
    if kind in _SERVER_KINDS:
        return f"{label} server error. This is usually temporary - try again in a few moments."
    if kind == ErrorKind.CONNECTION_REFUSED:
        if provider == Provider.OLLAMA.value:
            return "Ollama server is not running. Start it with `ollama serve` or check the endpoint configuration."
        return f"Cannot connect to {label} server. Check your network connection and endpoint configuration."
    if kind in (ErrorKind.NETWORK_ERROR, ErrorKind.CONNECTION_FAILED):
        return f"Could not reach {label}. Check your network connection and endpoint configuration."
    if kind == ErrorKind.TIMEOUT:
        return "Request timed out. Try reducing the message length or increasing the timeout setting."
    if kind == ErrorKind.FORBIDDEN:
        return f"Access forbidden. Check your {label} API key permissions and account status."
    if kind == ErrorKind.OUT_OF_MEMORY:
        return "The model server ran out of memory. Try a smaller model or a shorter context."
    if kind == ErrorKind.INVALID_REQUEST:
        return f"The request was rejected by {label}. Check the message and model parameters."
    return f"Check the {label} documentation for more information about this error."


def context_length_suggestion(provider: str, message: str = "") -> str:
    parts = ["The message is too long for the model's context window."]
    counts = extract_token_counts(message)
    if counts:
        current, maximum = counts
        parts.append(
            f" Current: {current} tokens, Maximum: {maximum} tokens "
            f"({current - maximum} tokens over limit)."
        )
    parts.append(" Try:")
    parts.append("\n• Shortening your message or conversation history")
    parts.append("\n• Using a model with a larger context window")
    parts.append("\n• Breaking your request into smaller parts")
    hint = _LARGER_CONTEXT_HINT.get(provider)
    if hint:
        parts.append(f"\n• {hint}")
    return "".join(parts)


def extract_token_counts(message: str) -> tuple[int, int] | None:
    """Return (current, maximum) when the message names two token counts."""
    if not message:
        return None
    counts = [_to_int(m.group(1)) for m in _TOKEN_COUNT.finditer(message)]
    max_match = _MAXIMUM.search(message)
    if max_match:
        maximum = _to_int(max_match.group(1) or max_match.group(2))
        others = [c for c in counts if c != maximum]
        if others:
            return others[0], maximum
        return None
    if len(counts) >= 2:
        first, second = counts[0], counts[1]
        return max(first, second), min(first, second)
    return None


def _to_int(text: str) -> int:
    return int(text.replace(",", ""))
