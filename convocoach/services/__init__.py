# Экспортируем все сервисы для удобного импорта
from convocoach.services.state import ConversationState, HistoryEntry, now_ms
from convocoach.services.feedback import (
    DEFAULT_RULES,
    FeedbackEvaluator,
    FeedbackRule,
    FeedbackThresholds,
)
from convocoach.services.dispatcher import FeedbackDispatcher
from convocoach.services.speech import ElevenLabsSpeaker, LogSpeaker, SpeechSynthesisError
from convocoach.services.oracle import (
    AnalysisOracle,
    GeminiAnalysisClient,
    OracleError,
    parse_oracle_response,
)
from convocoach.services.scoring import EmptyInput, aggregate, derive_insights, grade
from convocoach.services.storage import (
    ConversationNotFound,
    MemoryStore,
    StoreError,
)
from convocoach.services.sqlite_store import SqliteStore
from convocoach.services.summary import SummaryService
from convocoach.services.pipeline import CaptureResult, CoachingSession, SegmentWorker, SessionManager

__all__ = [
    # Live state
    "ConversationState",
    "HistoryEntry",
    "now_ms",

    # Feedback
    "DEFAULT_RULES",
    "FeedbackEvaluator",
    "FeedbackRule",
    "FeedbackThresholds",
    "FeedbackDispatcher",
    "ElevenLabsSpeaker",
    "LogSpeaker",
    "SpeechSynthesisError",

    # Analysis oracle
    "AnalysisOracle",
    "GeminiAnalysisClient",
    "OracleError",
    "parse_oracle_response",

    # Summaries
    "EmptyInput",
    "aggregate",
    "derive_insights",
    "grade",
    "SummaryService",

    # Storage
    "ConversationNotFound",
    "MemoryStore",
    "SqliteStore",
    "StoreError",

    # Sessions
    "CaptureResult",
    "CoachingSession",
    "SegmentWorker",
    "SessionManager",
]
