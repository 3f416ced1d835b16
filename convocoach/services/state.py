"""
Живое состояние одного открытого разговора.

Накопительные счётчики строятся инкрементально по каждому входящему
сегменту. Никакого I/O: только состояние и функция перехода.
"""
import time
from collections import deque
from typing import Any, Deque, Dict, Optional, Set

from convocoach.models.segment import SegmentAnalysis, WireModel

HISTORY_SIZE = 3


def now_ms() -> int:
    return int(time.time() * 1000)


class HistoryEntry(WireModel):
    """Краткая сводка по сегменту для кольцевого буфера"""
    timestamp_ms: int
    speaker: str
    duration_ms: int
    word_count: int
    has_question: bool


class ConversationState:
    def __init__(self) -> None:
        self.started_at_ms: Optional[int] = None
        self._clear()

    def _clear(self) -> None:
        self.total_words = 0
        self.total_duration_ms = 0
        self.user_speaking_ms = 0
        self.interruption_count = 0
        self.question_count = 0
        self.stutter_events = 0
        self.last_speaker: Optional[str] = None
        self.consecutive_user_segments = 0
        self.last_question_timestamp_ms: Optional[int] = None
        self.segment_history: Deque[HistoryEntry] = deque(maxlen=HISTORY_SIZE)
        self.feedback_given_types: Set[str] = set()
        self.last_feedback_timestamp_ms: Optional[int] = None

    def start(self, at_ms: Optional[int] = None) -> None:
        """Обнуляет счётчики и запоминает момент начала разговора."""
        self._clear()
        self.started_at_ms = now_ms() if at_ms is None else at_ms

    def reset(self) -> None:
        self._clear()
        self.started_at_ms = None

    def update(self, segment: SegmentAnalysis) -> None:
        """
        Применяет очередной сегмент к состоянию.
        Не идемпотентно: каждый вызов это ещё один отрезок разговора.
        """
        words = segment.word_count
        self.total_words += words
        self.total_duration_ms += segment.duration_ms

        if segment.speaker == "user":
            self.user_speaking_ms += segment.duration_ms
            if self.last_speaker == "user":
                self.consecutive_user_segments += 1
            else:
                self.consecutive_user_segments = 1
        else:
            self.consecutive_user_segments = 0
        self.last_speaker = segment.speaker

        interruptions = segment.analysis.interruptions
        if interruptions.detected:
            self.interruption_count += interruptions.count or 1

        questions = segment.question_count
        if questions > 0:
            self.question_count += questions
            self.last_question_timestamp_ms = segment.timestamp_ms

        self.stutter_events += len(segment.analysis.stutters)

        # deque(maxlen=3) сам вытесняет самый старый элемент
        self.segment_history.append(HistoryEntry(
            timestamp_ms=segment.timestamp_ms,
            speaker=segment.speaker,
            duration_ms=segment.duration_ms,
            word_count=words,
            has_question=questions > 0,
        ))

    def current_wpm(self) -> float:
        if self.total_duration_ms == 0:
            return 0.0
        return self.total_words / (self.total_duration_ms / 60000.0)

    def speaking_percent(self) -> float:
        # Без данных считаем, что баланс ровный
        if self.total_duration_ms == 0:
            return 50.0
        return self.user_speaking_ms / self.total_duration_ms * 100.0

    def elapsed_ms(self, now: int) -> int:
        if self.started_at_ms is None:
            return 0
        return now - self.started_at_ms

    def time_since_last_question_ms(self, now: int) -> int:
        if self.last_question_timestamp_ms is not None:
            return now - self.last_question_timestamp_ms
        return self.elapsed_ms(now)

    def snapshot(self) -> Dict[str, Any]:
        """Текущие метрики для API/UI."""
        return {
            "startedAt": self.started_at_ms,
            "totalWords": self.total_words,
            "totalDurationMs": self.total_duration_ms,
            "userSpeakingMs": self.user_speaking_ms,
            "interruptionCount": self.interruption_count,
            "questionCount": self.question_count,
            "stutterEvents": self.stutter_events,
            "lastSpeaker": self.last_speaker,
            "consecutiveUserSegments": self.consecutive_user_segments,
            "lastQuestionTimestampMs": self.last_question_timestamp_ms,
            "wordsPerMinute": round(self.current_wpm(), 1),
            "speakingPercent": round(self.speaking_percent(), 1),
            "feedbackGiven": sorted(self.feedback_given_types),
            "recentSegments": [
                entry.model_dump(by_alias=True) for entry in self.segment_history
            ],
        }
