"""Token Estimation — approximate token counts for budget accounting.

Invariants:
    - estimate_tokens("") == 0
    - ceil(len / 4), then a 20% surcharge (ceil) for text containing '{', '[' or a code fence
    - Deterministic and pure: the same text always costs the same

Design Decisions:
    - Heuristic over a real tokenizer: budgets are approximate by contract and
      must not depend on which provider is configured
"""

import math

from chatcore.core.messages import Message, ToolResult

CHARS_PER_TOKEN = 4
STRUCTURED_SURCHARGE = 1.2
_STRUCTURED_MARKERS = ("{", "[", "```")


def estimate_tokens(text: str | None) -> int:
    if not text:
        return 0
    tokens = math.ceil(len(text) / CHARS_PER_TOKEN)
    if any(marker in text for marker in _STRUCTURED_MARKERS):
        tokens = math.ceil(tokens * STRUCTURED_SURCHARGE)
    return tokens


def message_tokens(message: Message) -> int:
    """Content plus the JSON encoding of each tool call."""
    total = estimate_tokens(message.content)
    for call in message.tool_calls:
        total += estimate_tokens(call.to_json())
    return total


def tool_result_tokens(result: ToolResult) -> int:
    return estimate_tokens(result.output) + estimate_tokens(result.error)
