# Экспортируем все модели для удобного импорта
from .segment import (
    AnalysisDetails,
    Confidence,
    FillerWord,
    Interruptions,
    Pause,
    Segment,
    SegmentCreate,
    SegmentAnalysis,
    SpeakingRate,
    Stutter,
    Tone,
)
from .conversation import Conversation, ConversationEnd, ConversationStart
from .summary import GradeResult, Insights, Summary, SummaryMetrics
from .feedback import Feedback

__all__ = [
    "AnalysisDetails",
    "Confidence",
    "FillerWord",
    "Interruptions",
    "Pause",
    "Segment",
    "SegmentCreate",
    "SegmentAnalysis",
    "SpeakingRate",
    "Stutter",
    "Tone",
    "Conversation",
    "ConversationEnd",
    "ConversationStart",
    "GradeResult",
    "Insights",
    "Summary",
    "SummaryMetrics",
    "Feedback",
]
