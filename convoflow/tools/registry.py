"""Registry of callable tools exposed to the reply generator."""

from __future__ import annotations

import importlib
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)


class ToolNotFoundError(KeyError):
    """Raised by :meth:`ToolRegistry.get` for unregistered tool names."""


@dataclass(frozen=True)
class ToolContext:
    agent: Any
    conversation_id: uuid.UUID | str | None = None


@dataclass
class ToolResult:
    success: bool
    data: Any = None
    error: str | None = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success}
        if self.data is not None:
            payload["data"] = self.data
        if self.error is not None:
            payload["error"] = self.error
        return payload


ToolHandler = Callable[[Mapping[str, Any], ToolContext], Any]


@dataclass(frozen=True)
class Tool:
    name: str
    handler: ToolHandler
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)
    required_feature: str | None = None

    def definition(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters or {"type": "object", "properties": {}},
            },
        }


class ToolRegistry:
    """Name-to-handler mapping with one-time module loading.

    Tool modules expose ``register_tools(registry)``. :meth:`load` imports
    them under a lock so concurrent callers never initialise twice.
    """

    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}
        self._lock = threading.Lock()
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    def register(
        self,
        name: str,
        handler: ToolHandler,
        *,
        description: str = "",
        parameters: Optional[Dict[str, Any]] = None,
        required_feature: str | None = None,
    ) -> Tool:
        tool = Tool(
            name=name,
            handler=handler,
            description=description,
            parameters=dict(parameters or {}),
            required_feature=required_feature,
        )
        self._tools[name] = tool
        return tool

    def get(self, name: str) -> Tool:
        try:
            return self._tools[name]
        except KeyError as exc:
            raise ToolNotFoundError(name) from exc

    def names(self) -> List[str]:
        return sorted(self._tools)

    def agent_tools(self, agent: Any) -> List[Dict[str, Any]]:
        """Return function definitions for the tools ``agent`` has enabled."""

        return [
            tool.definition()
            for tool in self._tools.values()
            if not tool.required_feature or getattr(agent, tool.required_feature, False)
        ]

    def execute(
        self, name: str, args: Mapping[str, Any] | None, context: ToolContext
    ) -> ToolResult:
        try:
            tool = self.get(name)
        except ToolNotFoundError:
            return ToolResult(False, error=f"Unknown tool: {name}")
        try:
            outcome = tool.handler(dict(args or {}), context)
        except Exception as exc:
            logger.exception("Tool %s failed", name)
            return ToolResult(False, error=str(exc) or "Tool execution failed")
        if isinstance(outcome, ToolResult):
            return outcome
        return ToolResult(True, data=outcome)

    def load(self, modules: Iterable[str]) -> None:
        """Import each tool module once and let it register its tools."""

        if self._loaded:
            return
        with self._lock:
            if self._loaded:
                return
            for module_name in modules:
                try:
                    module = importlib.import_module(module_name)
                except ImportError:
                    logger.exception("Tool module %s could not be imported", module_name)
                    continue
                register = getattr(module, "register_tools", None)
                if callable(register):
                    register(self)
                else:
                    logger.warning("Tool module %s has no register_tools()", module_name)
            self._loaded = True
            logger.info("Tools loaded: %s", ", ".join(self.names()) or "none")


__all__ = [
    "Tool",
    "ToolContext",
    "ToolHandler",
    "ToolNotFoundError",
    "ToolRegistry",
    "ToolResult",
]
