from typing import Optional

from convocoach.models.segment import WireModel


class Conversation(WireModel):
    id: str
    user_id: str
    title: Optional[str] = None
    started_at: int
    ended_at: Optional[int] = None
    duration_ms: Optional[int] = None


class ConversationEnd(WireModel):
    """Результат завершения разговора"""
    id: str
    ended_at: int
    duration_ms: int


class ConversationStart(WireModel):
    title: Optional[str] = None
