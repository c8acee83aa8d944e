"""Built-in tools."""

from mosaic.tools.builtin.file_ops import DeleteFileTool, ListDirectoryTool, ReadFileTool, WriteFileTool
from mosaic.tools.builtin.web_fetch import WebFetchTool

__all__ = ["DeleteFileTool", "ListDirectoryTool", "ReadFileTool", "WriteFileTool", "WebFetchTool"]
