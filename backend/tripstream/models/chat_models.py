# backend/tripstream/models/chat_models.py

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from tripstream.models.trip_models import ChatMode, ConversationTurn


# ----------------------------------------------------------
# Client-held history entry (frontend shape: ``content``, not ``text``)
# ----------------------------------------------------------
class ClientMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    role: str = "user"
    content: Optional[str] = None
    timestamp: Optional[str] = None

    def to_turn(self) -> Optional[ConversationTurn]:
        if not self.content or not self.content.strip():
            return None
        if self.role not in ("user", "assistant"):
            return None
        if self.timestamp:
            return ConversationTurn(role=self.role, text=self.content, created_at=self.timestamp)
        return ConversationTurn(role=self.role, text=self.content)


class ClientContext(BaseModel):
    model_config = ConfigDict(extra="ignore")

    destination: Optional[str] = None
    country: Optional[str] = None
    savedPlacesCount: Optional[int] = None


# ----------------------------------------------------------
# POST /chat/stream body
# ----------------------------------------------------------
class ChatStreamRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    trip_id: Optional[str] = None
    conversation_id: Optional[str] = None
    message: Optional[str] = None
    messages: List[ClientMessage] = Field(default_factory=list)
    chatMode: Optional[ChatMode] = None
    context: Optional[ClientContext] = None

    def client_history(self) -> List[ConversationTurn]:
        turns = (m.to_turn() for m in self.messages)
        return [t for t in turns if t is not None]
