"""Tool Parameter Validation — schema-driven checks and path sanitization (pure).

Invariants:
    - validate_parameters() reports the first issue in declared-parameter order
    - bool is never a number; NaN is never a number
    - Absent means missing key or None; optional absent parameters skip type/enum checks
    - sanitize_path() output has no '.' or '..' segment, no repeated or leading separator

Design Decisions:
    - ValidationIssue is a discriminated record (kind + parameter) instead of a bare
      message: the coordinator maps every kind to invalid_parameters, tests assert kinds
    - Sanitization touches only path-like parameters of filesystem tools; free-text
      parameters (e.g. file content) pass through untouched
"""

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from chatcore.core.domain_types import ParameterType

FILESYSTEM_TOOL_HINTS = ("file", "read", "write", "dir", "path")
PATH_PARAMETER_WORDS = frozenset({
    "path", "filepath", "file", "filename", "dir", "dirname", "directory",
    "folder", "dest", "destination",
})

_SEPARATORS = re.compile(r"[\\/]+")
_NAME_WORDS = re.compile(r"[^a-zA-Z0-9]+|(?<=[a-z0-9])(?=[A-Z])")


@dataclass(frozen=True)
class ToolParameter:
    """Declared tool parameter."""
    name: str
    type: ParameterType
    description: str = ""
    required: bool = False
    enum: tuple[Any, ...] | None = None

    def to_schema(self) -> dict:
        schema: dict[str, Any] = {
            "type": self.type.value, "description": self.description,
        }
        if self.enum:
            schema["enum"] = list(self.enum)
        return schema


class ValidationErrorKind(str, Enum):
    MISSING_REQUIRED = "missing_required"
    TYPE_MISMATCH = "type_mismatch"
    ENUM_VIOLATION = "enum_violation"
    EMPTY_PATH = "empty_path"


@dataclass(frozen=True)
class ValidationIssue:
    kind: ValidationErrorKind
    parameter: str
    message: str


def matches_type(value: Any, expected: ParameterType) -> bool:
    if expected == ParameterType.STRING:
        return isinstance(value, str)
    if expected == ParameterType.NUMBER:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        return not (isinstance(value, float) and math.isnan(value))
    if expected == ParameterType.BOOLEAN:
        return isinstance(value, bool)
    if expected == ParameterType.ARRAY:
        return isinstance(value, (list, tuple))
    if expected == ParameterType.OBJECT:
        return isinstance(value, dict)
    return True


def validate_parameters(
    schema: list[ToolParameter] | tuple[ToolParameter, ...],
    parameters: dict[str, Any],
) -> ValidationIssue | None:
    for param in schema:
        value = parameters.get(param.name)
        if value is None:
            if param.required:
                return ValidationIssue(
                    ValidationErrorKind.MISSING_REQUIRED, param.name,
                    f"Required parameter '{param.name}' is missing",
                )
            continue
        if not matches_type(value, param.type):
            return ValidationIssue(
                ValidationErrorKind.TYPE_MISMATCH, param.name,
                f"Parameter '{param.name}' must be of type {param.type.value}, "
                f"got {type(value).__name__}",
            )
        if param.enum and value not in param.enum:
            allowed = ", ".join(str(v) for v in param.enum)
            return ValidationIssue(
                ValidationErrorKind.ENUM_VIOLATION, param.name,
                f"Parameter '{param.name}' must be one of: {allowed}",
            )
    return None


def is_filesystem_tool(tool_name: str) -> bool:
    name = tool_name.lower()
    return any(hint in name for hint in FILESYSTEM_TOOL_HINTS)


def is_path_parameter(param_name: str) -> bool:
    """Judged by the last word of the name: target_folder yes, target_text no."""
    words = [w for w in _NAME_WORDS.split(param_name) if w]
    return bool(words) and words[-1].lower() in PATH_PARAMETER_WORDS


def sanitize_path(value: str) -> str:
    """Drop traversal segments, collapse separators, strip leading separators."""
    collapsed = _SEPARATORS.sub("/", value.strip())
    segments = [s for s in collapsed.split("/") if s not in ("", ".", "..")]
    return "/".join(segments)


def sanitize_parameters(
    tool_name: str, parameters: dict[str, Any],
) -> tuple[dict[str, Any], ValidationIssue | None]:
    """Return a sanitized copy. Non-filesystem tools pass through unchanged."""
    if not is_filesystem_tool(tool_name):
        return dict(parameters), None

    sanitized = dict(parameters)
    for name, value in parameters.items():
        if not isinstance(value, str) or not is_path_parameter(name):
            continue
        clean = sanitize_path(value)
        if not clean:
            return sanitized, ValidationIssue(
                ValidationErrorKind.EMPTY_PATH, name,
                f"Parameter '{name}' is empty after path sanitization",
            )
        sanitized[name] = clean
    return sanitized, None
