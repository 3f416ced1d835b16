"""
Очередь озвучивания подсказок.

Одновременно звучит не больше одной фразы. Подсказка, пришедшая во время
воспроизведения, встаёт в начало очереди; пришедшая в паузе между
фразами встаёт в конец.
"""
import asyncio
import logging
from collections import deque
from typing import Deque, Optional, Protocol, Set

from convocoach.core.config import settings
from convocoach.models.feedback import Feedback

logger = logging.getLogger(__name__)


class Speaker(Protocol):
    async def speak(self, text: str) -> None:
        ...


class FeedbackDispatcher:
    def __init__(
        self,
        speaker: Speaker,
        gap_sec: Optional[float] = None,
        max_queue: Optional[int] = None,
    ):
        self.speaker = speaker
        self.gap_sec = settings.playback_gap_sec if gap_sec is None else gap_sec
        self.queue: Deque[Feedback] = deque(
            maxlen=max_queue if max_queue is not None else settings.playback_max_queue
        )
        self.is_playing = False
        self.active_types: Set[str] = set()
        self._drain_task: Optional[asyncio.Task] = None
        self._generation = 0

    @property
    def pending(self) -> int:
        return len(self.queue)

    @property
    def busy(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    def enqueue(self, feedback: Feedback) -> bool:
        """
        Ставит подсказку на озвучивание.
        Возвращает False, если подсказка отброшена.
        Должен вызываться из работающего event loop.
        """
        if not feedback.message:
            return False

        if feedback.type in self.active_types:
            logger.info(f"Feedback {feedback.type} already playing, skipping")
            return False

        if self.is_playing:
            self.queue.appendleft(feedback)
            return True

        if len(self.queue) == self.queue.maxlen:
            # переполнение вытесняет хвост очереди
            self.queue.pop()
        self.queue.append(feedback)
        if not self.busy:
            self._drain_task = asyncio.create_task(self._drain())
        return True

    async def _drain(self) -> None:
        generation = self._generation
        while self.queue and generation == self._generation:
            feedback = self.queue.popleft()
            await self._play(feedback, generation)
            if self.queue:
                await asyncio.sleep(self.gap_sec)

    async def _play(self, feedback: Feedback, generation: int) -> None:
        self.is_playing = True
        self.active_types.add(feedback.type)
        try:
            logger.info(f"Playing feedback: {feedback.message}")
            await self.speaker.speak(feedback.message)
        except Exception as e:
            logger.error(f"Feedback playback failed: {e}")
        finally:
            # После clear_queue состояние уже принадлежит новому поколению
            if generation == self._generation:
                self.active_types.discard(feedback.type)
                self.is_playing = False

    async def wait_idle(self) -> None:
        """Ждёт, пока очередь не будет проиграна целиком."""
        while self.busy:
            await asyncio.wait({self._drain_task})

    def clear_queue(self) -> None:
        """Очищает очередь; текущее воспроизведение прерывается."""
        self._generation += 1
        self.queue.clear()
        self.active_types.clear()
        self.is_playing = False
        if self.busy:
            self._drain_task.cancel()
        self._drain_task = None
