from functools import lru_cache
from typing import Union

from fastapi import Header

from convocoach.core.config import settings
from convocoach.services.dispatcher import Speaker
from convocoach.services.feedback import FeedbackThresholds
from convocoach.services.oracle import AnalysisOracle, GeminiAnalysisClient
from convocoach.services.pipeline import SessionManager
from convocoach.services.speech import ElevenLabsSpeaker, LogSpeaker
from convocoach.services.sqlite_store import SqliteStore
from convocoach.services.storage import MemoryStore
from convocoach.services.summary import SummaryService

DEFAULT_USER_ID = "anonymous"


@lru_cache(maxsize=1)
def get_store() -> Union[SqliteStore, MemoryStore]:
    """
    Создаёт и кеширует единственное хранилище.
    Один объект реализует хранилища разговоров, сегментов и отчётов.
    """
    if settings.store_backend.lower() == "memory":
        return MemoryStore()
    return SqliteStore(settings.db_path)


@lru_cache(maxsize=1)
def get_oracle() -> AnalysisOracle:
    return GeminiAnalysisClient()


@lru_cache(maxsize=1)
def get_speaker() -> Speaker:
    """Один синтезатор на процесс; сессии делят его HTTP-клиент."""
    if settings.elevenlabs_enabled:
        return ElevenLabsSpeaker()
    return LogSpeaker()


@lru_cache(maxsize=1)
def get_session_manager() -> SessionManager:
    """Живые сессии разговоров на весь процесс."""
    return SessionManager(
        oracle=get_oracle(),
        store=get_store(),
        speaker_factory=get_speaker,
        thresholds=FeedbackThresholds.from_settings(),
    )


@lru_cache(maxsize=1)
def get_summary_service() -> SummaryService:
    store = get_store()
    return SummaryService(segments=store, summaries=store)


def get_user_id(x_user_id: str = Header(default=DEFAULT_USER_ID)) -> str:
    return x_user_id.strip() or DEFAULT_USER_ID
