from typing import Dict, List, Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    # the system turn is owned by the relay, never by the caller
    role: Literal["user", "assistant"]
    content: str


class ConversationRequest(BaseModel):
    messages: List[ChatMessage] = Field(min_length=1)

    def with_system_prompt(self, system_prompt: str) -> List[Dict[str, str]]:
        """Full upstream message list: the system turn first, then the caller's turns."""
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend({"role": m.role, "content": m.content} for m in self.messages)
        return messages


class ErrorResponse(BaseModel):
    error: str
