# backend/tripstream/tools/registry.py

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional, Type, Union

from pydantic import BaseModel, ValidationError

from tripstream.core.logger import get_logger
from tripstream.models.tool_models import ToolResult
from tripstream.tools.result_cache import ResultCache


log = get_logger("tools")


# ----------------------------------------------------------
# EXECUTION CONTEXT
# ----------------------------------------------------------
@dataclass
class ToolContext:
    """Collaborators handed to every executor; built once per process."""
    cache: ResultCache
    services: Dict[str, Any] = field(default_factory=dict)

    def service(self, name: str) -> Any:
        return self.services[name]

    async def cached(self, key: Hashable, fetch: Callable[[], Awaitable[ToolResult]]) -> ToolResult:
        """Return a cached successful result for ``key`` or fetch and store it."""
        hit = self.cache.get(key)
        if hit is not None:
            log.debug(f"Cache hit: {key}")
            return hit

        result = await fetch()
        if not result.failed:
            self.cache.set(key, result)
        return result


Executor = Callable[[BaseModel, ToolContext], Awaitable[ToolResult]]


# ----------------------------------------------------------
# TOOL
# ----------------------------------------------------------
@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    args_model: Type[BaseModel]
    executor: Executor

    def schema(self) -> Dict[str, Any]:
        """OpenAI function-calling definition built from the pydantic args model."""
        parameters = self.args_model.model_json_schema()
        parameters.pop("title", None)
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }


# ----------------------------------------------------------
# REGISTRY
# ----------------------------------------------------------
class ToolRegistry:
    def __init__(self, context: ToolContext, timeout_seconds: float = 15.0):
        self.context = context
        self.timeout_seconds = timeout_seconds
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool) -> "ToolRegistry":
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool
        return self

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def schemas(self) -> List[Dict[str, Any]]:
        return [tool.schema() for tool in self._tools.values()]

    async def execute(self, name: str, arguments: Union[str, Dict[str, Any], None]) -> ToolResult:
        """
        Validate and run one tool call.

        ``arguments`` is either the model's raw JSON string or an already
        decoded dict. Never raises: unknown tools, bad JSON, schema
        violations, timeouts and executor exceptions all come back as
        ``ToolResult(failed=True, ...)``.
        """
        tool = self._tools.get(name)
        if tool is None:
            log.warning(f"Unknown tool requested: {name}")
            return ToolResult.failure(f"Unknown tool: {name}")

        if not isinstance(arguments, dict):
            try:
                arguments = parse_arguments(arguments)
            except ValueError as e:
                log.warning(f"Unparseable arguments for {name}: {e}")
                return ToolResult.failure(f"Invalid parameters for tool: {name}")

        try:
            args = tool.args_model.model_validate(arguments)
        except ValidationError as e:
            log.warning(f"Invalid parameters for {name}: {e.errors()}")
            return ToolResult.failure(f"Invalid parameters for tool: {name}")

        log.info(f"Executing tool: {name} {arguments}")
        try:
            return await asyncio.wait_for(tool.executor(args, self.context), self.timeout_seconds)
        except asyncio.TimeoutError:
            log.error(f"Tool {name} timed out after {self.timeout_seconds:g}s")
            return ToolResult.failure(f"{name} timed out after {self.timeout_seconds:g}s")
        except Exception as e:
            log.error(f"Tool execution error ({name}): {e}")
            return ToolResult.failure(f"Failed to execute {name}: {e}")


def parse_arguments(raw: Optional[str]) -> Dict[str, Any]:
    """Decode the model's JSON argument string; raises ValueError on anything but an object."""
    if not raw:
        return {}
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError("tool arguments must be a JSON object")
    return parsed
