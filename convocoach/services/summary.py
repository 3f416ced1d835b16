import logging
from typing import List, Optional

from convocoach.models.summary import Summary, SummaryMetrics
from convocoach.services.scoring import aggregate, derive_insights, grade
from convocoach.services.state import now_ms
from convocoach.services.storage import SegmentStore, StoreError, SummaryStore, generate_id

logger = logging.getLogger(__name__)

FALLBACK_GRADE = "C"
FALLBACK_SCORE = 70.0


class SummaryService:
    """
    Строит итоговый отчёт по сохранённым сегментам разговора.
    """

    def __init__(self, segments: SegmentStore, summaries: SummaryStore):
        self.segments = segments
        self.summaries = summaries

    def generate(self, conversation_id: str, user_id: str) -> Summary:
        """
        Пересчитывает отчёт с нуля и сохраняет его.
        Повторный вызов заменяет отчёт на месте, сохраняя id и created_at.
        Бросает EmptyInput, если сегментов нет, и StoreError при сбое хранилища.
        """
        segments = self.segments.list_by_conversation(conversation_id, user_id)
        metrics = aggregate(segments)
        graded = grade(metrics)
        insights = derive_insights(metrics)

        now = now_ms()
        existing = self.summaries.get_by_conversation(conversation_id, user_id)

        summary = Summary(
            id=existing.id if existing else generate_id(),
            conversation_id=conversation_id,
            user_id=user_id,
            metrics=metrics,
            grade=graded.grade,
            grade_score=graded.grade_score,
            strengths=insights.strengths,
            areas_for_improvement=insights.areas_for_improvement,
            key_patterns=insights.key_patterns,
            is_fallback=False,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self.summaries.upsert(summary)

        logger.info(
            f"Summary for conversation {conversation_id}: "
            f"{summary.grade} ({summary.grade_score:.1f}) from {metrics.total_segments} segments"
        )
        return summary

    def generate_or_fallback(self, conversation_id: str, user_id: str) -> Summary:
        """
        Как generate, но при недоступном хранилище возвращает
        детерминированную заглушку с is_fallback=True вместо ошибки.
        EmptyInput не перехватывается: пустой разговор не оценивается.
        """
        try:
            return self.generate(conversation_id, user_id)
        except StoreError as e:
            logger.warning(f"Store unavailable, returning fallback summary: {e}")
            return self.fallback_summary(conversation_id, user_id)

    @staticmethod
    def fallback_summary(conversation_id: str, user_id: str) -> Summary:
        now = now_ms()
        return Summary(
            id=f"fallback-{conversation_id}",
            conversation_id=conversation_id,
            user_id=user_id,
            metrics=SummaryMetrics(),
            grade=FALLBACK_GRADE,
            grade_score=FALLBACK_SCORE,
            strengths=[],
            areas_for_improvement=[],
            key_patterns=["Summary unavailable: conversation data could not be loaded"],
            is_fallback=True,
            created_at=now,
            updated_at=now,
        )

    def get(self, conversation_id: str, user_id: str) -> Optional[Summary]:
        return self.summaries.get_by_conversation(conversation_id, user_id)

    def list_for_user(self, user_id: str) -> List[Summary]:
        return self.summaries.list_by_user(user_id)
