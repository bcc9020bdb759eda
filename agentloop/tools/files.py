"""
File Tool
=========

Sandboxed file system access for the agent.

Every path is resolved against a base directory and rejected if it
escapes it. Read-only mode hides the write operations from the schema
entirely, so the model never sees them.

Operations:
    read, list, exists, info          always available
    write, append, delete             only when allow_write=True
"""

from datetime import datetime
from pathlib import Path
from typing import Any

from agentloop.tools import Parameter, Tool, ToolSchema

READ_OPERATIONS = ("read", "list", "exists", "info")
WRITE_OPERATIONS = ("write", "append", "delete")


class FileTool(Tool):
    """
    Read and write files inside a base directory.

    Example:
        tool = FileTool(base_dir="./workspace", allow_write=False)
        await tool.execute({"operation": "read", "path": "notes.txt"})
    """

    name = "file_operations"

    def __init__(
        self,
        base_dir: str | Path | None = None,
        allow_write: bool = True,
        max_size: int = 10 * 1024 * 1024
    ):
        self.base_dir = Path(base_dir or Path.cwd()).resolve()
        if not self.base_dir.is_dir():
            raise ValueError(f"base directory does not exist: {self.base_dir}")
        self.allow_write = allow_write
        self.max_size = max_size

    @property
    def description(self) -> str:
        mode = "read-write" if self.allow_write else "read-only"
        return (
            f"Perform file system operations ({mode} mode): read, list, check existence "
            f"and get file information. All paths are relative to {self.base_dir}"
        )

    @property
    def operations(self) -> tuple[str, ...]:
        return READ_OPERATIONS + WRITE_OPERATIONS if self.allow_write else READ_OPERATIONS

    def schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description="Perform file system operations",
            parameters=(
                Parameter("operation", "string", "Operation to perform",
                          required=True, enum=self.operations),
                Parameter("path", "string", "Path relative to the base directory", required=True),
                Parameter("content", "string", "Content for write/append"),
            ),
        )

    def _resolve(self, path: str) -> Path:
        if not isinstance(path, str) or not path:
            raise ValueError("path must be a non-empty string")
        if ".." in Path(path).parts:
            raise PermissionError(f"path traversal not allowed: {path}")

        resolved = (self.base_dir / path).resolve()
        if resolved != self.base_dir and self.base_dir not in resolved.parents:
            raise PermissionError(f"path outside base directory: {path}")
        return resolved

    async def execute(self, args: dict[str, Any]) -> dict[str, Any]:
        operation = args.get("operation")
        if operation in WRITE_OPERATIONS and not self.allow_write:
            raise PermissionError(f"{operation} is not allowed in read-only mode")
        if operation not in self.operations:
            raise ValueError(f"unknown operation: {operation}")

        path = self._resolve(args.get("path", ""))

        if operation == "read":
            return self._read(path)
        if operation == "list":
            return self._list(path)
        if operation == "exists":
            return {"path": self._relative(path), "exists": path.exists()}
        if operation == "info":
            return self._info(path)
        if operation in ("write", "append"):
            content = args.get("content")
            if content is None:
                raise ValueError(f"content is required for {operation}")
            return self._write(path, str(content), append=operation == "append")
        return self._delete(path)

    def _relative(self, path: Path) -> str:
        return str(path.relative_to(self.base_dir)) or "."

    def _read(self, path: Path) -> dict[str, Any]:
        if not path.is_file():
            raise FileNotFoundError(f"file not found: {self._relative(path)}")
        size = path.stat().st_size
        if size > self.max_size:
            raise ValueError(f"file too large: {size} bytes (limit {self.max_size})")
        return {
            "path": self._relative(path),
            "content": path.read_text(encoding="utf-8", errors="replace"),
            "size": size,
        }

    def _list(self, path: Path) -> dict[str, Any]:
        if not path.is_dir():
            raise NotADirectoryError(f"not a directory: {self._relative(path)}")
        entries = [
            {
                "name": child.name,
                "type": "directory" if child.is_dir() else "file",
                "size": child.stat().st_size if child.is_file() else None,
            }
            for child in sorted(path.iterdir())
        ]
        return {"path": self._relative(path), "entries": entries, "count": len(entries)}

    def _info(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            raise FileNotFoundError(f"not found: {self._relative(path)}")
        stat = path.stat()
        return {
            "path": self._relative(path),
            "type": "directory" if path.is_dir() else "file",
            "size": stat.st_size,
            "modified": datetime.fromtimestamp(stat.st_mtime).isoformat(),
        }

    def _write(self, path: Path, content: str, append: bool) -> dict[str, Any]:
        if len(content.encode("utf-8")) > self.max_size:
            raise ValueError(f"content too large (limit {self.max_size} bytes)")
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a" if append else "w", encoding="utf-8") as f:
            f.write(content)
        return {
            "path": self._relative(path),
            "bytes_written": len(content.encode("utf-8")),
            "mode": "append" if append else "write",
        }

    def _delete(self, path: Path) -> dict[str, Any]:
        if not path.is_file():
            raise FileNotFoundError(f"file not found: {self._relative(path)}")
        path.unlink()
        return {"path": self._relative(path), "deleted": True}
