#!/usr/bin/env python3
"""
Демонстрационный скрипт: живая сессия коучинга на заранее заготовленных сегментах
"""

import asyncio
import logging
from unittest.mock import AsyncMock

from convocoach.models.segment import SegmentAnalysis
from convocoach.services.feedback import FeedbackThresholds
from convocoach.services.pipeline import CoachingSession
from convocoach.services.scoring import aggregate, derive_insights, grade
from convocoach.services.speech import LogSpeaker
from convocoach.services.storage import MemoryStore

SEGMENTS = [
    {
        "transcription": "So um I wanted to walk you through the plan for the next quarter",
        "fillerWords": [{"word": "um", "count": 1}],
        "tone": {"overall": "confident", "score": 72},
        "confidence": {"score": 74},
    },
    {
        "transcription": "and um basically we we need to hire two more engineers and uh rework the roadmap",
        "fillerWords": [{"word": "um", "count": 1}, {"word": "uh", "count": 1}],
        "stutters": [{"word": "we", "timestamp": 2.4, "type": "repetition"}],
        "confidence": {"score": 61},
    },
    {
        "transcription": "which means the launch moves to May and the budget grows by ten percent overall",
        "tone": {"overall": "nervous", "score": 40},
        "confidence": {"score": 55},
    },
    {
        "speaker": "other",
        "transcription": "Okay, that makes sense. What about the mobile app?",
        "sentiment": "positive",
    },
]


async def demonstrate_session():
    """
    Прогоняет несколько сегментов через сессию и печатает метрики,
    подсказки и итоговый отчёт.
    """
    print("Демонстрация живой сессии коучинга")
    print("=" * 50)

    store = MemoryStore()
    conversation = store.create("demo-user", "Quarter planning")

    # Оракул возвращает заготовленные ответы по очереди
    oracle = AsyncMock()
    oracle.analyze.side_effect = [
        SegmentAnalysis.model_validate(payload) for payload in SEGMENTS
    ]

    session = CoachingSession(
        conversation_id=conversation.id,
        user_id="demo-user",
        oracle=oracle,
        store=store,
        speaker=LogSpeaker(),
        thresholds=FeedbackThresholds(cooldown_ms=0, grace_ms=0),
    )
    session.start()

    for i, payload in enumerate(SEGMENTS, start=1):
        result = await session.capture(b"demo-audio", "audio/webm", payload.get("speaker", "user"))
        print(f"\n{i}. Сегмент: {result.segment.transcript[:50]}...")
        print(f"   Слов/мин: {result.state['wordsPerMinute']}")
        print(f"   Подряд у пользователя: {result.state['consecutiveUserSegments']}")
        if result.feedback:
            print(f"   Подсказка [{result.feedback.type}]: {result.feedback.message}")
        else:
            print("   Подсказки нет")

    await session.dispatcher.wait_idle()
    session.stop()

    segments = store.list_by_conversation(conversation.id)
    metrics = aggregate(segments)
    graded = grade(metrics)
    insights = derive_insights(metrics)

    print("\n" + "=" * 50)
    print(f"Оценка: {graded.grade} ({graded.grade_score:.1f})")
    print(f"Сильные стороны: {', '.join(insights.strengths) or '-'}")
    print(f"Над чем работать: {', '.join(insights.areas_for_improvement) or '-'}")
    print(f"Закономерности: {', '.join(insights.key_patterns) or '-'}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    asyncio.run(demonstrate_session())
