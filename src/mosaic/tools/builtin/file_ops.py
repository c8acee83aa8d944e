"""Filesystem tools confined to a workspace directory."""

import logging
from pathlib import Path

from mosaic.tools.base import Tool, ToolDefinition, ToolParameter, ToolResult

logger = logging.getLogger(__name__)

NAMESPACE = "filesystem"

_PATH_PARAM = ToolParameter(
    name="path",
    type="string",
    description="Path relative to the workspace directory",
    required=True,
)


class WorkspaceTool(Tool):
    """Shared path handling for tools that touch the workspace directory."""

    def __init__(self, config: dict) -> None:
        """
        Initialize a workspace tool.

        Args:
            config: Filesystem tool configuration (``root``, ``max_file_size_mb``)
        """
        self.config = config
        self.root = Path(config.get("root", "./workspace")).resolve()

    def _resolve(self, path: str) -> Path:
        """
        Resolve a user-supplied path inside the workspace.

        Raises:
            ValueError: If the path escapes the workspace directory
        """
        candidate = (self.root / path).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise ValueError(f"Path escapes workspace: {path}")
        return candidate


class ReadFileTool(WorkspaceTool):
    """Tool for reading file contents."""

    def __init__(self, config: dict) -> None:
        super().__init__(config)
        self.max_file_size_mb = config.get("max_file_size_mb", 10)
        self.definition = ToolDefinition(
            name="read_file",
            namespace=NAMESPACE,
            description="Read a text file from the workspace and return its content.",
            parameters=[_PATH_PARAM],
        )

    async def execute(self, path: str) -> ToolResult:
        try:
            file_path = self._resolve(path)
        except ValueError as e:
            return ToolResult(success=False, error=str(e))

        if not file_path.exists():
            return ToolResult(success=False, error=f"File not found: {path}")
        if not file_path.is_file():
            return ToolResult(success=False, error=f"Not a file: {path}")

        size_mb = file_path.stat().st_size / (1024 * 1024)
        if size_mb > self.max_file_size_mb:
            return ToolResult(
                success=False,
                error=f"File too large: {size_mb:.2f}MB (max: {self.max_file_size_mb}MB)",
            )

        try:
            content = file_path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return ToolResult(success=False, error=f"File is not valid UTF-8 text: {path}")

        logger.info(f"Read file: {path} ({len(content)} chars)")
        return ToolResult(success=True, data={"path": path, "content": content})


class WriteFileTool(WorkspaceTool):
    """Tool for writing file contents."""

    def __init__(self, config: dict) -> None:
        super().__init__(config)
        self.definition = ToolDefinition(
            name="write_file",
            namespace=NAMESPACE,
            description=(
                "Write text to a file in the workspace. Creates parent directories "
                "and overwrites existing files."
            ),
            parameters=[
                _PATH_PARAM,
                ToolParameter(
                    name="content",
                    type="string",
                    description="Content to write to the file",
                    required=True,
                ),
            ],
        )

    async def execute(self, path: str, content: str) -> ToolResult:
        try:
            file_path = self._resolve(path)
        except ValueError as e:
            return ToolResult(success=False, error=str(e))

        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")

        logger.info(f"Wrote file: {path} ({len(content)} chars)")
        return ToolResult(
            success=True,
            data={"path": path, "bytes_written": len(content.encode("utf-8"))},
        )


class DeleteFileTool(WorkspaceTool):
    """Tool for deleting files."""

    def __init__(self, config: dict) -> None:
        super().__init__(config)
        self.definition = ToolDefinition(
            name="delete_file",
            namespace=NAMESPACE,
            description="Delete a file from the workspace. This cannot be undone.",
            parameters=[_PATH_PARAM],
        )

    async def execute(self, path: str) -> ToolResult:
        try:
            file_path = self._resolve(path)
        except ValueError as e:
            return ToolResult(success=False, error=str(e))

        if not file_path.exists():
            return ToolResult(success=False, error=f"File not found: {path}")
        if not file_path.is_file():
            return ToolResult(success=False, error=f"Not a file: {path}")

        file_path.unlink()
        logger.info(f"Deleted file: {path}")
        return ToolResult(success=True, data={"path": path, "deleted": True})


class ListDirectoryTool(WorkspaceTool):
    """Tool for listing a workspace directory."""

    def __init__(self, config: dict) -> None:
        super().__init__(config)
        self.definition = ToolDefinition(
            name="list_directory",
            namespace=NAMESPACE,
            description="List files and directories under a workspace path.",
            parameters=[
                ToolParameter(
                    name="path",
                    type="string",
                    description="Directory relative to the workspace (default: workspace root)",
                    required=False,
                ),
            ],
        )

    async def execute(self, path: str = ".") -> ToolResult:
        try:
            dir_path = self._resolve(path)
        except ValueError as e:
            return ToolResult(success=False, error=str(e))

        if not dir_path.is_dir():
            return ToolResult(success=False, error=f"Not a directory: {path}")

        entries = sorted(
            f"{p.name}/" if p.is_dir() else p.name for p in dir_path.iterdir()
        )
        return ToolResult(success=True, data={"path": path, "entries": entries})
