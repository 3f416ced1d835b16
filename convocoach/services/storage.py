"""
Хранилища разговоров, сегментов и отчётов.

Ядро работает только через эти протоколы; реализации взаимозаменяемы.
"""
import threading
import uuid
from typing import Dict, List, Optional, Protocol

from convocoach.models.conversation import Conversation, ConversationEnd
from convocoach.models.segment import Segment
from convocoach.models.summary import Summary
from convocoach.services.state import now_ms


class StoreError(Exception):
    """Хранилище недоступно или запрос не выполнился"""
    pass


class ConversationNotFound(LookupError):
    pass


def generate_id() -> str:
    return str(uuid.uuid4())


class SegmentStore(Protocol):
    def append(self, segment: Segment) -> Segment:
        ...

    def list_by_conversation(
        self, conversation_id: str, user_id: Optional[str] = None
    ) -> List[Segment]:
        ...


class SummaryStore(Protocol):
    def upsert(self, summary: Summary) -> Summary:
        ...

    def get_by_conversation(
        self, conversation_id: str, user_id: Optional[str] = None
    ) -> Optional[Summary]:
        ...

    def list_by_user(self, user_id: str) -> List[Summary]:
        ...


class ConversationStore(Protocol):
    def create(self, user_id: str, title: Optional[str] = None) -> Conversation:
        ...

    def get(self, conversation_id: str, user_id: Optional[str] = None) -> Optional[Conversation]:
        ...

    def end(self, conversation_id: str, user_id: str) -> ConversationEnd:
        ...


class MemoryStore:
    """Хранилище в памяти процесса (тесты и локальный запуск)"""

    def __init__(self):
        self._lock = threading.Lock()
        self._conversations: Dict[str, Conversation] = {}
        self._segments: Dict[str, List[Segment]] = {}
        self._summaries: Dict[str, Summary] = {}

    # Разговоры

    def create(self, user_id: str, title: Optional[str] = None) -> Conversation:
        conversation = Conversation(
            id=generate_id(),
            user_id=user_id,
            title=title,
            started_at=now_ms(),
        )
        with self._lock:
            self._conversations[conversation.id] = conversation
        return conversation

    def get(self, conversation_id: str, user_id: Optional[str] = None) -> Optional[Conversation]:
        conversation = self._conversations.get(conversation_id)
        if conversation is None or (user_id is not None and conversation.user_id != user_id):
            return None
        return conversation.model_copy()

    def end(self, conversation_id: str, user_id: str) -> ConversationEnd:
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None or conversation.user_id != user_id:
                raise ConversationNotFound(f"Conversation {conversation_id} not found")
            ended_at = now_ms()
            duration_ms = ended_at - conversation.started_at
            self._conversations[conversation_id] = conversation.model_copy(
                update={"ended_at": ended_at, "duration_ms": duration_ms}
            )
        return ConversationEnd(id=conversation_id, ended_at=ended_at, duration_ms=duration_ms)

    # Сегменты

    def append(self, segment: Segment) -> Segment:
        with self._lock:
            self._segments.setdefault(segment.conversation_id, []).append(segment)
        return segment

    def list_by_conversation(
        self, conversation_id: str, user_id: Optional[str] = None
    ) -> List[Segment]:
        segments = [
            s for s in self._segments.get(conversation_id, [])
            if user_id is None or s.user_id == user_id
        ]
        return sorted(segments, key=lambda s: s.timestamp_ms)

    # Отчёты

    def upsert(self, summary: Summary) -> Summary:
        with self._lock:
            self._summaries[summary.conversation_id] = summary
        return summary

    def get_by_conversation(
        self, conversation_id: str, user_id: Optional[str] = None
    ) -> Optional[Summary]:
        summary = self._summaries.get(conversation_id)
        if summary is None or (user_id is not None and summary.user_id != user_id):
            return None
        return summary.model_copy(deep=True)

    def list_by_user(self, user_id: str) -> List[Summary]:
        result = []
        for summary in self._summaries.values():
            if summary.user_id != user_id:
                continue
            conversation = self._conversations.get(summary.conversation_id)
            if conversation is not None:
                summary = summary.model_copy(update={
                    "title": conversation.title,
                    "started_at": conversation.started_at,
                    "ended_at": conversation.ended_at,
                })
            result.append(summary)
        return sorted(result, key=lambda s: s.created_at, reverse=True)
