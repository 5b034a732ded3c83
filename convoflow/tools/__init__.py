from .registry import Tool, ToolContext, ToolNotFoundError, ToolRegistry, ToolResult

__all__ = ["Tool", "ToolContext", "ToolNotFoundError", "ToolRegistry", "ToolResult"]
