"""Tool Error Recovery — routes a tool exception to a typed ClassifiedError by tool category.

Invariants:
    - recover() never raises and always returns a ClassifiedError
    - Category is derived from the tool name only (file / command / http / generic)
    - Unrecognized failures become tool_execution_error (retryable)

Design Decisions:
    - Python exception types first (FileNotFoundError, PermissionError, errno.ENOSPC,
      TimeoutError); message sniffing only as fallback for tools that wrap errors
    - HTTP tools reuse the provider classifier: status codes and transport errors
      mean the same thing whether a model backend or a tool hit them
"""

import asyncio
import errno
import logging
from enum import Enum

from chatcore.core.domain_types import ErrorKind
from chatcore.core.error_classifier import classify
from chatcore.core.errors import ClassifiedError

logger = logging.getLogger(__name__)

TOOL_PROVIDER = "tool"


class ToolCategory(str, Enum):
    FILE = "file"
    COMMAND = "command"
    HTTP = "http"
    GENERIC = "generic"


_CATEGORY_HINTS: list[tuple[ToolCategory, tuple[str, ...]]] = [
    (ToolCategory.FILE, ("file", "read", "write", "dir")),
    (ToolCategory.COMMAND, ("command", "execute", "shell", "run")),
    (ToolCategory.HTTP, ("http", "request", "fetch")),
]

_TIMEOUTS = (asyncio.TimeoutError, TimeoutError)


def tool_category(tool_name: str) -> ToolCategory:
    name = tool_name.lower()
    for category, hints in _CATEGORY_HINTS:
        if any(h in name for h in hints):
            return category
    return ToolCategory.GENERIC


def recover(tool_name: str, exc: BaseException) -> ClassifiedError:
    category = tool_category(tool_name)
    if category == ToolCategory.FILE:
        kind = _file_kind(exc)
    elif category == ToolCategory.COMMAND:
        kind = _command_kind(exc)
    elif category == ToolCategory.HTTP:
        classified = classify(TOOL_PROVIDER, exc)
        if classified.kind != ErrorKind.UNKNOWN_ERROR:
            return classified
        kind = ErrorKind.TOOL_EXECUTION_ERROR
    else:
        kind = ErrorKind.TIMEOUT if isinstance(exc, _TIMEOUTS) else None

    kind = kind or ErrorKind.TOOL_EXECUTION_ERROR
    message = str(exc) or type(exc).__name__
    logger.debug("Tool failure classified", extra={
        "tool_name": tool_name, "error_code": kind.value,
    })
    return ClassifiedError.of(
        kind, f"{tool_name}: {message}", provider=TOOL_PROVIDER,
        suggested_fix=_FIXES.get(kind),
    )


def _file_kind(exc: BaseException) -> ErrorKind | None:
    if isinstance(exc, FileNotFoundError):
        return ErrorKind.FILE_NOT_FOUND
    if isinstance(exc, PermissionError):
        return ErrorKind.PERMISSION_DENIED
    if isinstance(exc, OSError) and exc.errno == errno.ENOSPC:
        return ErrorKind.DISK_FULL
    if isinstance(exc, _TIMEOUTS):
        return ErrorKind.TIMEOUT
    message = str(exc).lower()
    if "enoent" in message or "no such file" in message:
        return ErrorKind.FILE_NOT_FOUND
    if "eacces" in message or "permission denied" in message:
        return ErrorKind.PERMISSION_DENIED
    if "enospc" in message or "no space left" in message:
        return ErrorKind.DISK_FULL
    return None


def _command_kind(exc: BaseException) -> ErrorKind | None:
    if isinstance(exc, _TIMEOUTS):
        return ErrorKind.COMMAND_TIMEOUT
    if isinstance(exc, FileNotFoundError):
        return ErrorKind.COMMAND_NOT_FOUND
    if isinstance(exc, PermissionError):
        return ErrorKind.PERMISSION_DENIED
    message = str(exc).lower()
    if "command not found" in message or "not recognized" in message:
        return ErrorKind.COMMAND_NOT_FOUND
    if "etimedout" in message or "timed out" in message:
        return ErrorKind.COMMAND_TIMEOUT
    return None


_FIXES = {
    ErrorKind.FILE_NOT_FOUND: "Check the file path is relative to the workspace and the file exists.",
    ErrorKind.PERMISSION_DENIED: "Check file or command permissions in the workspace.",
    ErrorKind.DISK_FULL: "Free up disk space and retry.",
    ErrorKind.COMMAND_NOT_FOUND: "Install the command or check that it is on PATH.",
    ErrorKind.COMMAND_TIMEOUT: "The command took too long. Try a narrower command or raise the tool timeout.",
    ErrorKind.TIMEOUT: "The tool took too long. Raise the tool timeout or reduce the work requested.",
    ErrorKind.TOOL_EXECUTION_ERROR: "The tool failed unexpectedly. Retry or check the tool's logs.",
}
