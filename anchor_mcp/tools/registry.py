"""
MCP Tool Registry.

Discovers tool modules in ``anchor_mcp.tools`` and dispatches ``tools/call``
requests to them. A tool module defines:

    mcp_tool_def  -- {"name", "description", "inputSchema"}
    args_model    -- pydantic model used to validate the call arguments
    execute       -- async handler(context, args) returning a JobReport
"""

import importlib
import logging
import pkgutil
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from anchor_mcp.context import ServerContext

logger = logging.getLogger("anchor_mcp.tools")


class ToolNotFoundError(LookupError):
    pass


@dataclass
class ToolResult:
    text: str
    is_error: bool = False

    def to_content(self) -> Dict[str, Any]:
        return {
            "content": [{"type": "text", "text": self.text}],
            "isError": self.is_error,
        }


def _format_validation_error(name: str, err: ValidationError) -> str:
    problems = []
    for item in err.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        problems.append(f"- {location}: {item.get('msg')}")
    return f"Invalid arguments for {name}:\n" + "\n".join(problems)


class ToolRegistry:
    """Registry for MCP tools."""

    def __init__(self, context: ServerContext):
        self.context = context
        self._tools: Dict[str, Dict[str, Any]] = {}
        self._handlers: Dict[str, Callable] = {}
        self._models: Dict[str, Optional[Type[BaseModel]]] = {}

    def register(self, name: str, handler: Callable, schema: Dict[str, Any],
                 args_model: Optional[Type[BaseModel]] = None):
        """Register a tool."""
        self._tools[name] = {
            "name": name,
            "description": schema.get("description", ""),
            "inputSchema": schema.get("inputSchema", {"type": "object"}),
        }
        self._handlers[name] = handler
        self._models[name] = args_model
        logger.info(f"Registered tool: {name}")

    def get_tool(self, name: str) -> Optional[Dict[str, Any]]:
        """Get tool definition."""
        return self._tools.get(name)

    def get_handler(self, name: str) -> Optional[Callable]:
        """Get tool handler."""
        return self._handlers.get(name)

    def list_tools(self) -> List[Dict[str, Any]]:
        """List all registered tools."""
        return list(self._tools.values())

    def discover_tools(self, package_path: str = "anchor_mcp.tools"):
        """Auto-discover tools in the given package."""
        package = importlib.import_module(package_path)
        prefix = package.__name__ + "."

        for _, name, is_pkg in pkgutil.iter_modules(package.__path__, prefix):
            if is_pkg:
                continue
            try:
                module = importlib.import_module(name)
            except Exception as e:
                logger.error(f"Error importing tool module {name}: {e}")
                continue

            tool_def = getattr(module, "mcp_tool_def", None)
            if tool_def is None:
                continue

            tool_name = tool_def.get("name")
            handler = getattr(module, "execute", None)
            if handler and tool_name:
                self.register(tool_name, handler, tool_def, getattr(module, "args_model", None))
            else:
                logger.warning(f"Tool definition found in {name} but no execute handler for {tool_name}")

    async def call(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolResult:
        """
        Validate ``arguments`` and run the tool.

        Raises:
            ToolNotFoundError: If no tool called ``name`` is registered.
        """
        handler = self._handlers.get(name)
        if handler is None:
            raise ToolNotFoundError(name)

        args: Any = arguments or {}
        model = self._models.get(name)
        if model is not None:
            try:
                args = model.model_validate(args)
            except ValidationError as e:
                return ToolResult(_format_validation_error(name, e), is_error=True)

        try:
            report = await handler(self.context, args)
        except Exception as e:
            logger.exception(f"Tool {name} raised")
            return ToolResult(f"❌ {name} failed with an internal error: {e}", is_error=True)

        return ToolResult(report.render(), is_error=not report.success)


def initialize_registry(context: ServerContext) -> ToolRegistry:
    """Create a registry bound to ``context`` and populate it by discovery."""
    registry = ToolRegistry(context)
    registry.discover_tools()
    return registry
