import asyncio
from unittest.mock import AsyncMock

import pytest

from convocoach.models.feedback import Feedback
from convocoach.services.dispatcher import FeedbackDispatcher


def fb(type_: str, message: str = None, priority: int = 1) -> Feedback:
    return Feedback(type=type_, message=message if message is not None else f"say {type_}", priority=priority)


class GatedSpeaker:
    """Держит каждую фразу, пока не открыт gate"""

    def __init__(self):
        self.gate = asyncio.Event()
        self.started = []
        self.finished = []

    async def speak(self, text: str) -> None:
        self.started.append(text)
        await self.gate.wait()
        self.finished.append(text)


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_single_feedback_is_spoken():
    speaker = AsyncMock()
    dispatcher = FeedbackDispatcher(speaker, gap_sec=0)

    assert dispatcher.enqueue(fb("monologue")) is True
    await dispatcher.wait_idle()

    speaker.speak.assert_awaited_once_with("say monologue")
    assert dispatcher.is_playing is False
    assert not dispatcher.active_types


@pytest.mark.asyncio
async def test_feedback_during_playback_jumps_the_queue():
    """Пришедшая во время воспроизведения подсказка встаёт в начало очереди"""
    speaker = GatedSpeaker()
    dispatcher = FeedbackDispatcher(speaker, gap_sec=0)

    dispatcher.enqueue(fb("a"))
    await settle()
    assert dispatcher.is_playing is True

    dispatcher.enqueue(fb("b"))
    dispatcher.enqueue(fb("c"))
    assert [f.type for f in dispatcher.queue] == ["c", "b"]

    speaker.gate.set()
    await dispatcher.wait_idle()

    assert speaker.finished == ["say a", "say c", "say b"]


@pytest.mark.asyncio
async def test_same_type_is_not_queued_while_playing():
    speaker = GatedSpeaker()
    dispatcher = FeedbackDispatcher(speaker, gap_sec=0)

    dispatcher.enqueue(fb("pace_fast"))
    await settle()

    assert dispatcher.enqueue(fb("pace_fast", "again")) is False
    assert dispatcher.pending == 0

    speaker.gate.set()
    await dispatcher.wait_idle()
    assert speaker.finished == ["say pace_fast"]


@pytest.mark.asyncio
async def test_empty_message_is_dropped():
    speaker = AsyncMock()
    dispatcher = FeedbackDispatcher(speaker, gap_sec=0)

    assert dispatcher.enqueue(fb("monologue", "")) is False
    assert dispatcher.busy is False
    speaker.speak.assert_not_awaited()


@pytest.mark.asyncio
async def test_clear_queue_abandons_playback():
    speaker = GatedSpeaker()
    dispatcher = FeedbackDispatcher(speaker, gap_sec=0)

    dispatcher.enqueue(fb("a"))
    await settle()
    dispatcher.enqueue(fb("b"))

    dispatcher.clear_queue()

    assert dispatcher.pending == 0
    assert dispatcher.is_playing is False
    assert not dispatcher.active_types
    assert dispatcher.busy is False

    speaker.gate.set()
    await settle()
    assert speaker.started == ["say a"]
    assert speaker.finished == []

    # после очистки диспетчер снова принимает подсказки
    assert dispatcher.enqueue(fb("a")) is True
    await dispatcher.wait_idle()
    assert speaker.finished == ["say a"]


@pytest.mark.asyncio
async def test_playback_failure_does_not_stop_queue():
    speaker = AsyncMock()
    speaker.speak.side_effect = [RuntimeError("tts down"), None]
    dispatcher = FeedbackDispatcher(speaker, gap_sec=0)

    dispatcher.enqueue(fb("a"))
    dispatcher.enqueue(fb("b"))
    await dispatcher.wait_idle()

    assert speaker.speak.await_count == 2
    assert dispatcher.is_playing is False
    assert not dispatcher.active_types


@pytest.mark.asyncio
async def test_queue_is_bounded():
    speaker = GatedSpeaker()
    dispatcher = FeedbackDispatcher(speaker, gap_sec=0, max_queue=2)

    dispatcher.enqueue(fb("a"))
    await settle()
    for name in ("b", "c", "d"):
        dispatcher.enqueue(fb(name))

    assert dispatcher.pending == 2
    assert [f.type for f in dispatcher.queue] == ["d", "c"]
    dispatcher.clear_queue()
    await settle()


@pytest.mark.asyncio
async def test_overflow_before_playback_keeps_head():
    """Переполнение до начала воспроизведения вытесняет хвост, а не голову"""
    dispatcher = FeedbackDispatcher(GatedSpeaker(), gap_sec=0, max_queue=2)

    for name in ("a", "b", "c"):
        dispatcher.enqueue(fb(name))

    assert [f.type for f in dispatcher.queue] == ["a", "c"]
    dispatcher.clear_queue()
    await settle()
