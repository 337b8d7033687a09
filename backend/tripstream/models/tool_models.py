# backend/tripstream/models/tool_models.py

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ----------------------------------------------------------
# CITATION (source attached to a tool result)
# ----------------------------------------------------------
class Citation(BaseModel):
    url: str
    title: str
    snippet: Optional[str] = None
    timestamp: str = Field(default_factory=utc_now_iso)
    confidence: float = 1.0


# ----------------------------------------------------------
# TOOL RESULT
# ----------------------------------------------------------
class ToolResult(BaseModel):
    """
    Outcome of one tool execution.

    Failures are values: ``failed=True`` plus a ``message``. Executors and the
    registry never let an exception escape, so one broken tool cannot abort
    the round it runs in.
    """
    failed: bool = False
    message: Optional[str] = None
    data: Any = None
    sources: List[Citation] = Field(default_factory=list)
    timestamp: str = Field(default_factory=utc_now_iso)

    @classmethod
    def ok(cls, data: Any = None, sources: Optional[List[Citation]] = None) -> "ToolResult":
        return cls(data=data, sources=sources or [])

    @classmethod
    def failure(cls, message: str) -> "ToolResult":
        return cls(failed=True, message=message)

    def for_model(self) -> Dict[str, Any]:
        """Payload fed back to the language model as the ``tool`` message."""
        if self.failed:
            return {"failed": True, "message": self.message}
        return self.model_dump(exclude={"timestamp"}, exclude_none=True)


# ----------------------------------------------------------
# TOOL INVOCATION (one requested call within a round)
# ----------------------------------------------------------
class InvocationStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


class InvalidToolTransition(RuntimeError):
    pass


class ToolInvocation(BaseModel):
    id: str
    tool_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    status: InvocationStatus = InvocationStatus.PENDING
    result: Optional[ToolResult] = None

    def settle(self, result: ToolResult) -> "ToolInvocation":
        """Move out of ``pending`` exactly once, to resolved or failed depending on the result."""
        if self.status is not InvocationStatus.PENDING:
            raise InvalidToolTransition(
                f"Invocation {self.id} ({self.tool_name}) already {self.status.value}"
            )
        self.result = result
        self.status = InvocationStatus.FAILED if result.failed else InvocationStatus.RESOLVED
        return self

    def resolve(self, result: ToolResult) -> "ToolInvocation":
        return self.settle(result)

    def fail(self, message: str) -> "ToolInvocation":
        return self.settle(ToolResult.failure(message))

    @property
    def succeeded(self) -> bool:
        return self.status is InvocationStatus.RESOLVED and self.result is not None

    def to_tool_call(self) -> "ToolCall":
        return ToolCall(
            id=self.id,
            tool=self.tool_name,
            parameters=self.arguments,
            result=self.result.for_model() if self.result else None,
        )


# ----------------------------------------------------------
# TOOL CALL (wire + persisted shape)
# ----------------------------------------------------------
class ToolCall(BaseModel):
    id: str
    tool: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Any] = None
