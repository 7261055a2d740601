"""Tools an agent may call during its acting phase."""

from .base import FunctionTool, Tool, tool
from .registry import ToolRegistry

__all__ = ["FunctionTool", "Tool", "ToolRegistry", "tool"]
