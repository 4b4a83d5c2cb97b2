"""
File system tools: list, read, search, write and append.

Every tool resolves its path to an absolute one and reports it back, so the model can tell which
file was touched.  Failures raise :class:`ToolExecutionError` with a short reason.
"""

import json
import math
import os
from pathlib import Path
from typing import (
    Annotated,
    Any,
    Dict,
    Iterator,
    List,
    Mapping,
)

from pydantic import (
    BaseModel,
    BeforeValidator,
    Field,
)

from looptool.agent.tool_executor import (
    ToolExecutionError,
    ToolRegistry,
    parse_arguments,
)

DEFAULT_MAX_BYTES = 1024 * 1024
GREP_MAX_FILE_SIZE = 10 * 1024 * 1024
BINARY_SNIFF_BYTES = 512


# ---------------------------------------------------------------------------
# Argument models
# ---------------------------------------------------------------------------
def _truncate_number(value: Any) -> Any:
    # the schema advertises "number"; fractional counts are cut down to whole ones
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return value


WholeNumber = Annotated[int, BeforeValidator(_truncate_number)]


class _PathArgs(BaseModel):
    path: str


class _ReadArgs(BaseModel):
    path: str
    max_bytes: WholeNumber = Field(DEFAULT_MAX_BYTES, ge=0)


class _GrepArgs(BaseModel):
    pattern: str = Field(..., min_length=1)
    path: str = "."
    context_lines: WholeNumber = Field(2, ge=0)
    case_sensitive: bool = True
    max_results: WholeNumber = Field(100, ge=1)


class _WriteArgs(BaseModel):
    path: str = Field(..., min_length=1)
    content: str
    overwrite: bool = False
    create_dirs: bool = True


class _AppendArgs(BaseModel):
    path: str = Field(..., min_length=1)
    content: str
    newline_before: bool = True
    create_if_missing: bool = True
    create_dirs: bool = True


def _resolve(path: str) -> Path:
    return Path(path).expanduser().resolve()


def _prepare_target(abs_path: Path, create_dirs: bool) -> bool:
    """Return whether *abs_path* already exists; create its parents if asked."""
    exists = abs_path.exists()
    if exists and abs_path.is_dir():
        raise ToolExecutionError("path is a directory, not a file")
    if create_dirs:
        try:
            abs_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ToolExecutionError(f"cannot create directories: {exc}") from exc
    return exists


def _walk_files(root: Path) -> Iterator[str]:
    """Yield the files under *root* in sorted order (or *root* itself if it is a file)."""
    if root.is_file():
        yield str(root)
        return
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(filenames):
            yield os.path.join(dirpath, name)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------
def list_files(arguments: Mapping[str, Any]) -> str:
    args = parse_arguments(_PathArgs, arguments, "list_files")
    abs_path = _resolve(args.path)
    try:
        entries = sorted(os.scandir(abs_path), key=lambda e: e.name)
    except OSError as exc:
        raise ToolExecutionError(f"cannot read directory: {exc}") from exc

    files: List[Dict[str, Any]] = []
    for entry in entries:
        try:
            size = entry.stat().st_size
        except OSError:
            continue
        files.append({"name": entry.name, "is_dir": entry.is_dir(), "size": size})
    return json.dumps({"path": str(abs_path), "count": len(files), "files": files})


def read_file(arguments: Mapping[str, Any]) -> str:
    args = parse_arguments(_ReadArgs, arguments, "read_file")
    abs_path = _resolve(args.path)
    try:
        size = abs_path.stat().st_size
    except OSError as exc:
        raise ToolExecutionError(f"cannot access file: {exc}") from exc
    if abs_path.is_dir():
        raise ToolExecutionError("path is a directory, not a file")

    try:
        with abs_path.open("rb") as f:
            content = f.read(args.max_bytes)
    except OSError as exc:
        raise ToolExecutionError(f"cannot read file: {exc}") from exc

    return json.dumps(
        {
            "path": str(abs_path),
            "size": size,
            "read_size": len(content),
            "content": content.decode("utf-8", errors="replace"),
            "truncated": size > args.max_bytes,
        }
    )


def grep(arguments: Mapping[str, Any]) -> str:
    args = parse_arguments(_GrepArgs, arguments, "grep")
    needle = args.pattern if args.case_sensitive else args.pattern.lower()
    root = Path(args.path)
    if not root.exists():
        raise ToolExecutionError(f"search failed: no such file or directory: {args.path}")

    matches: List[Dict[str, Any]] = []
    for file_path in _walk_files(root):
        if len(matches) >= args.max_results:
            break
        try:
            if os.path.getsize(file_path) > GREP_MAX_FILE_SIZE:
                continue
            with open(file_path, "rb") as f:
                raw = f.read()
        except OSError:
            continue
        if b"\0" in raw[:BINARY_SNIFF_BYTES]:
            continue

        lines = raw.decode("utf-8", errors="replace").split("\n")
        for i, line in enumerate(lines):
            if len(matches) >= args.max_results:
                break
            haystack = line if args.case_sensitive else line.lower()
            if needle not in haystack:
                continue
            match: Dict[str, Any] = {"file": file_path, "line": i + 1, "matched_line": line}
            before = lines[max(0, i - args.context_lines) : i]
            after = lines[i + 1 : i + 1 + args.context_lines]
            if before:
                match["before"] = before
            if after:
                match["after"] = after
            matches.append(match)

    return json.dumps(
        {
            "pattern": args.pattern,
            "path": args.path,
            "case_sensitive": args.case_sensitive,
            "context_lines": args.context_lines,
            "match_count": len(matches),
            "truncated": len(matches) >= args.max_results,
            "matches": matches,
        }
    )


def write_file(arguments: Mapping[str, Any]) -> str:
    args = parse_arguments(_WriteArgs, arguments, "write_file")
    abs_path = _resolve(args.path)
    existed = _prepare_target(abs_path, args.create_dirs)
    if existed and not args.overwrite:
        raise ToolExecutionError("file already exists (use overwrite=true to replace)")

    try:
        abs_path.write_text(args.content, encoding="utf-8")
        size = abs_path.stat().st_size
    except OSError as exc:
        raise ToolExecutionError(f"cannot write file: {exc}") from exc

    return json.dumps(
        {
            "path": str(abs_path),
            "operation": "overwritten" if existed else "created",
            "size": size,
            "success": True,
        }
    )


def append_file(arguments: Mapping[str, Any]) -> str:
    args = parse_arguments(_AppendArgs, arguments, "append_file")
    abs_path = _resolve(args.path)
    if not abs_path.exists() and not args.create_if_missing:
        raise ToolExecutionError("file does not exist and create_if_missing is false")
    existed = _prepare_target(abs_path, args.create_dirs)
    size_before = abs_path.stat().st_size if existed else 0

    text = args.content
    if existed and args.newline_before and size_before > 0:
        text = "\n" + text

    try:
        with abs_path.open("a", encoding="utf-8") as f:
            f.write(text)
        size_after = abs_path.stat().st_size
    except OSError as exc:
        raise ToolExecutionError(f"cannot write to file: {exc}") from exc

    return json.dumps(
        {
            "path": str(abs_path),
            "operation": "appended" if existed else "created",
            "bytes_written": len(text.encode("utf-8")),
            "size_before": size_before,
            "size_after": size_after,
            "success": True,
        }
    )


def register(registry: ToolRegistry) -> None:
    """Add the file system tools to *registry*."""
    registry.register(
        "list_files",
        "List files and directories in a given path",
        {
            "type": "object",
            "required": ["path"],
            "properties": {
                "path": {
                    "type": "string",
                    "description": "The directory path to list. Use '.' for current directory",
                },
            },
        },
        list_files,
    )
    registry.register(
        "read_file",
        "Read the contents of a text file",
        {
            "type": "object",
            "required": ["path"],
            "properties": {
                "path": {"type": "string", "description": "The file path to read"},
                "max_bytes": {
                    "type": "number",
                    "description": "Optional maximum number of bytes to read (default: 1MB)",
                },
            },
        },
        read_file,
    )
    registry.register(
        "grep",
        "Search for a string pattern recursively in files within a directory",
        {
            "type": "object",
            "required": ["pattern"],
            "properties": {
                "pattern": {"type": "string", "description": "The string pattern to search for"},
                "path": {
                    "type": "string",
                    "description": "The directory path to search in (default: current directory)",
                },
                "context_lines": {
                    "type": "number",
                    "description": "Number of context lines before and after match (default: 2)",
                },
                "case_sensitive": {
                    "type": "boolean",
                    "description": "Whether search should be case sensitive (default: true)",
                },
                "max_results": {
                    "type": "number",
                    "description": "Maximum number of matches to return (default: 100)",
                },
            },
        },
        grep,
    )
    registry.register(
        "write_file",
        "Write content to a file. Can create new files or overwrite existing ones.",
        {
            "type": "object",
            "required": ["path", "content"],
            "properties": {
                "path": {"type": "string", "description": "The file path to write to"},
                "content": {"type": "string", "description": "The content to write to the file"},
                "overwrite": {
                    "type": "boolean",
                    "description": "Whether to overwrite if file exists (default: false)",
                },
                "create_dirs": {
                    "type": "boolean",
                    "description": "Whether to create parent directories if they don't exist "
                    "(default: true)",
                },
            },
        },
        write_file,
    )
    registry.register(
        "append_file",
        "Append content to an existing file or create a new file if it doesn't exist. Useful for "
        "adding to logs, updating lists, or incrementally building files.",
        {
            "type": "object",
            "required": ["path", "content"],
            "properties": {
                "path": {"type": "string", "description": "The file path to append to"},
                "content": {"type": "string", "description": "The content to append to the file"},
                "newline_before": {
                    "type": "boolean",
                    "description": "Whether to add a newline before the content (default: true)",
                },
                "create_if_missing": {
                    "type": "boolean",
                    "description": "Whether to create the file if it doesn't exist (default: true)",
                },
                "create_dirs": {
                    "type": "boolean",
                    "description": "Whether to create parent directories if they don't exist "
                    "(default: true)",
                },
            },
        },
        append_file,
    )
