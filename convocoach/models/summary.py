"""
Модели итогового отчёта по разговору.
"""
from typing import Dict, List, Literal, Optional

from pydantic import Field

from convocoach.models.segment import SentimentLabel, ToneLabel, WireModel

Grade = Literal["A", "B", "C", "D", "F"]


class SummaryMetrics(WireModel):
    """Агрегированные метрики по всем сохранённым сегментам"""
    total_segments: int = 0
    total_words: int = 0
    avg_words_per_minute: float = 0.0
    total_filler_words: int = 0
    filler_word_rate: float = 0.0
    total_stutters: int = 0
    stutter_rate: float = 0.0
    total_pauses: int = 0
    avg_pause_duration: float = 0.0
    confidence_score: float = 50.0
    overall_tone: ToneLabel = "neutral"
    overall_sentiment: SentimentLabel = "neutral"
    filler_word_breakdown: Dict[str, int] = Field(default_factory=dict)
    tone_breakdown: Dict[str, int] = Field(default_factory=dict)


class GradeResult(WireModel):
    grade: Grade
    grade_score: float


class Insights(WireModel):
    strengths: List[str] = Field(default_factory=list)
    areas_for_improvement: List[str] = Field(default_factory=list)
    key_patterns: List[str] = Field(default_factory=list)


class Summary(WireModel):
    id: str
    conversation_id: str
    user_id: str
    metrics: SummaryMetrics
    grade: Grade
    grade_score: float
    strengths: List[str] = Field(default_factory=list)
    areas_for_improvement: List[str] = Field(default_factory=list)
    key_patterns: List[str] = Field(default_factory=list)
    # True, если это заглушка, собранная без доступа к хранилищу
    is_fallback: bool = False
    created_at: int
    updated_at: int
    # Заполняются при выборке списка отчётов пользователя
    title: Optional[str] = None
    started_at: Optional[int] = None
    ended_at: Optional[int] = None
