"""Tool Validation tests — schema checks and path sanitization.

Tests cover:
    - Missing required (absent or None), type mismatch, enum violation
    - bool and NaN are never numbers; optional absent parameters are skipped
    - First issue reported in declared order
    - sanitize_path: traversal, backslashes, repeated and leading separators
    - sanitize_parameters: only path-like params of filesystem tools; empty → issue
"""

import math

import pytest

from chatcore.core.domain_types import ParameterType
from chatcore.core.tool_validation import (
    ToolParameter, ValidationErrorKind, is_filesystem_tool, is_path_parameter,
    matches_type, sanitize_parameters, sanitize_path, validate_parameters,
)

SCHEMA = [
    ToolParameter("path", ParameterType.STRING, required=True),
    ToolParameter("count", ParameterType.NUMBER),
    ToolParameter("mode", ParameterType.STRING, enum=("fast", "slow")),
]


def test_valid_parameters_pass():
    assert validate_parameters(SCHEMA, {"path": "a.txt", "count": 3, "mode": "fast"}) is None
    assert validate_parameters(SCHEMA, {"path": "a.txt"}) is None


@pytest.mark.parametrize("params", [{}, {"path": None}])
def test_missing_required(params):
    issue = validate_parameters(SCHEMA, params)
    assert issue.kind == ValidationErrorKind.MISSING_REQUIRED
    assert issue.parameter == "path"
    assert issue.message == "Required parameter 'path' is missing"


def test_bool_is_not_a_number():
    issue = validate_parameters(SCHEMA, {"path": "a", "count": True})
    assert issue.kind == ValidationErrorKind.TYPE_MISMATCH
    assert issue.message == "Parameter 'count' must be of type number, got bool"


def test_nan_is_not_a_number():
    issue = validate_parameters(SCHEMA, {"path": "a", "count": math.nan})
    assert issue.kind == ValidationErrorKind.TYPE_MISMATCH


def test_enum_violation():
    issue = validate_parameters(SCHEMA, {"path": "a", "mode": "medium"})
    assert issue.kind == ValidationErrorKind.ENUM_VIOLATION
    assert issue.message == "Parameter 'mode' must be one of: fast, slow"


def test_first_issue_in_declared_order():
    issue = validate_parameters(SCHEMA, {"count": "x", "mode": "medium"})
    assert issue.parameter == "path"


@pytest.mark.parametrize("value, ptype, ok", [
    (1, ParameterType.NUMBER, True),
    (1.5, ParameterType.NUMBER, True),
    ("1", ParameterType.NUMBER, False),
    (False, ParameterType.BOOLEAN, True),
    (0, ParameterType.BOOLEAN, False),
    ([1], ParameterType.ARRAY, True),
    ({}, ParameterType.ARRAY, False),
    ({}, ParameterType.OBJECT, True),
    ([], ParameterType.OBJECT, False),
])
def test_matches_type(value, ptype, ok):
    assert matches_type(value, ptype) is ok


@pytest.mark.parametrize("raw, clean", [
    ("../../../etc/passwd", "etc/passwd"),
    ("src\\..\\main.py", "src/main.py"),
    ("//a///b/./c", "a/b/c"),
    ("/etc/hosts", "etc/hosts"),
    ("  notes.md ", "notes.md"),
    ("..", ""),
])
def test_sanitize_path(raw, clean):
    assert sanitize_path(raw) == clean
    assert ".." not in sanitize_path(raw).split("/")


def test_sanitize_parameters_only_touches_path_like_names():
    params, issue = sanitize_parameters(
        "write_file", {"path": "../../etc/passwd", "content": "../keep/as/is"},
    )
    assert issue is None
    assert params == {"path": "etc/passwd", "content": "../keep/as/is"}


def test_non_filesystem_tool_passes_through():
    params, issue = sanitize_parameters("calculator", {"path": "../x"})
    assert issue is None
    assert params == {"path": "../x"}


def test_path_empty_after_sanitization_is_an_issue():
    _, issue = sanitize_parameters("read_file", {"path": "../.."})
    assert issue.kind == ValidationErrorKind.EMPTY_PATH
    assert issue.parameter == "path"


def test_name_hints():
    assert is_filesystem_tool("list_directory")
    assert is_filesystem_tool("READ_FILE")
    assert not is_filesystem_tool("calculator")
    assert is_path_parameter("target_folder")
    assert not is_path_parameter("content")


@pytest.mark.parametrize("name, expected", [
    ("path", True),
    ("sourcePath", True),
    ("working_directory", True),
    ("dest", True),
    ("source", False),
    ("target", False),
    ("target_text", False),
    ("file_content", False),
])
def test_path_parameter_judged_by_last_word(name, expected):
    assert is_path_parameter(name) is expected


def test_free_text_parameters_of_file_tools_untouched():
    params, issue = sanitize_parameters("edit_file", {
        "path": "a//b.txt", "target_text": "../../old", "source": "//x/../y",
    })
    assert issue is None
    assert params == {
        "path": "a/b.txt", "target_text": "../../old", "source": "//x/../y",
    }


def test_tool_parameter_schema():
    schema = SCHEMA[2].to_schema()
    assert schema == {"type": "string", "description": "", "enum": ["fast", "slow"]}
