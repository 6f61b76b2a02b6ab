"""Built-in Tools — workspace-scoped read_file, write_file, list_directory and run_command.

Invariants:
    - Every path resolves inside the workspace root; escapes raise PermissionError
    - Tools raise on IO failure (FileNotFoundError, PermissionError, OSError) so the
      coordinator classifies them; they never build error ToolResults themselves
    - Blocking filesystem calls run in a worker thread (asyncio.to_thread)
    - run_command never goes through a shell; a missing binary raises FileNotFoundError,
      an expired timeout kills the process and raises TimeoutError
    - A command that exits non-zero is reported as success=False (not retried)

Design Decisions:
    - Plain classes with class-level name/description/parameters: they satisfy the
      Tool protocol structurally, no base class required
    - Returned metadata is a placeholder; the coordinator rebuilds it with timing
"""

import asyncio
import shlex
from pathlib import Path
from typing import Any

from chatcore.core.domain_types import ParameterType
from chatcore.core.messages import ToolExecutionMetadata, ToolResult
from chatcore.core.tool_validation import ToolParameter

MAX_READ_BYTES = 1_000_000
MAX_COMMAND_OUTPUT_CHARS = 1_000_000
DEFAULT_COMMAND_TIMEOUT_SECONDS = 20.0
BLOCKED_COMMAND_PATTERNS = (
    "rm -rf /", "rm -rf *", "del /s /q", "shutdown", "reboot", "halt", "poweroff",
    "init 0", "init 6", "dd if=", "mkfs", "fdisk", "parted", "chmod 777",
    "chown -r", "sudo ",
)


class _WorkspaceTool:
    name = ""

    def __init__(self, workspace_root: str | Path):
        self._root = Path(workspace_root).resolve()

    @property
    def workspace_root(self) -> Path:
        return self._root

    def _resolve(self, relative: str | None) -> Path:
        target = (self._root / (relative or "")).resolve()
        if target != self._root and self._root not in target.parents:
            raise PermissionError(f"Access denied: '{relative}' is outside the workspace")
        return target

    def _ok(self, output: str, parameters: dict[str, Any]) -> ToolResult:
        return ToolResult(
            success=True, output=output,
            metadata=ToolExecutionMetadata(
                execution_time_ms=1, tool_name=self.name, parameters=parameters,
            ),
        )


class ReadFileTool(_WorkspaceTool):
    name = "read_file"
    description = "Read the contents of a text file in the workspace"
    parameters = (
        ToolParameter("path", ParameterType.STRING, "Path to the file, relative to the workspace", required=True),
    )

    async def execute(self, parameters: dict[str, Any]) -> ToolResult:
        target = self._resolve(parameters["path"])
        content = await asyncio.to_thread(_read_text, target)
        return self._ok(content, parameters)


class WriteFileTool(_WorkspaceTool):
    name = "write_file"
    description = "Write text content to a file in the workspace, creating parent directories"
    parameters = (
        ToolParameter("path", ParameterType.STRING, "Path to the file, relative to the workspace", required=True),
        ToolParameter("content", ParameterType.STRING, "Text to write", required=True),
        ToolParameter(
            "mode", ParameterType.STRING, "overwrite (default) or append",
            enum=("overwrite", "append"),
        ),
    )

    async def execute(self, parameters: dict[str, Any]) -> ToolResult:
        target = self._resolve(parameters["path"])
        append = parameters.get("mode") == "append"
        written = await asyncio.to_thread(
            _write_text, target, parameters["content"], append,
        )
        return self._ok(f"Wrote {written} characters to {parameters['path']}", parameters)


class ListDirectoryTool(_WorkspaceTool):
    name = "list_directory"
    description = "List entries of a workspace directory (directories end with '/')"
    parameters = (
        ToolParameter("path", ParameterType.STRING, "Directory relative to the workspace; omit for the root"),
        ToolParameter("recursive", ParameterType.BOOLEAN, "Walk subdirectories"),
    )

    async def execute(self, parameters: dict[str, Any]) -> ToolResult:
        target = self._resolve(parameters.get("path"))
        entries = await asyncio.to_thread(
            _list_entries, target, self._root, bool(parameters.get("recursive")),
        )
        return self._ok("\n".join(entries), parameters)


class RunCommandTool(_WorkspaceTool):
    name = "run_command"
    description = "Run a command (no shell) in the workspace and return its output"
    parameters = (
        ToolParameter("command", ParameterType.STRING, "Command line, e.g. 'pytest -q'", required=True),
        ToolParameter("working_directory", ParameterType.STRING, "Directory relative to the workspace; omit for the root"),
        ToolParameter("timeout_seconds", ParameterType.NUMBER, "Kill the command after this many seconds"),
    )

    def __init__(
        self, workspace_root: str | Path,
        timeout_seconds: float = DEFAULT_COMMAND_TIMEOUT_SECONDS,
    ):
        super().__init__(workspace_root)
        self._timeout = timeout_seconds

    async def execute(self, parameters: dict[str, Any]) -> ToolResult:
        command = parameters["command"]
        lowered = " ".join(command.lower().split())
        blocked = next((p for p in BLOCKED_COMMAND_PATTERNS if p in lowered), None)
        if blocked is not None:
            raise PermissionError(f"Command blocked: contains '{blocked.strip()}'")
        argv = shlex.split(command)
        if not argv:
            raise ValueError("Command is empty")
        workdir = parameters.get("working_directory")
        cwd = self._resolve(workdir)
        if not cwd.is_dir():
            raise NotADirectoryError(f"No such directory: '{workdir}'")
        timeout = parameters.get("timeout_seconds") or self._timeout

        proc = await asyncio.create_subprocess_exec(
            *argv, cwd=cwd,
            stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(f"Command timed out after {timeout:g}s") from None
        finally:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()

        out = _decode(stdout)
        err = _decode(stderr)
        if proc.returncode != 0:
            error = f"Command exited with code {proc.returncode}"
            if err.strip():
                error += f": {err.strip()}"
            return ToolResult(
                success=False, output=out or None, error=error,
                metadata=ToolExecutionMetadata(
                    execution_time_ms=1, tool_name=self.name, parameters=parameters,
                ),
            )
        return self._ok(out or err or "Command executed successfully", parameters)


def builtin_tools(
    workspace_root: str | Path,
    command_timeout_seconds: float = DEFAULT_COMMAND_TIMEOUT_SECONDS,
) -> list[_WorkspaceTool]:
    return [
        ReadFileTool(workspace_root),
        WriteFileTool(workspace_root),
        ListDirectoryTool(workspace_root),
        RunCommandTool(workspace_root, command_timeout_seconds),
    ]


# ─── Blocking helpers (run in worker thread) ────────────────────

def _read_text(path: Path) -> str:
    if path.is_dir():
        raise IsADirectoryError(f"'{path.name}' is a directory")
    with path.open("r", encoding="utf-8", errors="replace") as fh:
        return fh.read(MAX_READ_BYTES)


def _write_text(path: Path, content: str, append: bool) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a" if append else "w", encoding="utf-8") as fh:
        return fh.write(content)


def _list_entries(path: Path, root: Path, recursive: bool) -> list[str]:
    if not path.exists():
        raise FileNotFoundError(f"No such directory: '{path.relative_to(root)}'")
    if not path.is_dir():
        raise NotADirectoryError(f"'{path.relative_to(root)}' is not a directory")
    children = path.rglob("*") if recursive else path.iterdir()
    entries = []
    for child in sorted(children):
        rel = child.relative_to(root).as_posix()
        entries.append(f"{rel}/" if child.is_dir() else rel)
    return entries


def _decode(data: bytes | None) -> str:
    return (data or b"").decode("utf-8", errors="replace")[:MAX_COMMAND_OUTPUT_CHARS]
