import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, Tuple, TypeVar

from pydantic import BaseModel

from convocoach.core.config import settings
from convocoach.models.feedback import Feedback
from convocoach.models.segment import Segment, SegmentAnalysis, Speaker
from convocoach.services.dispatcher import FeedbackDispatcher, Speaker as SpeechSink
from convocoach.services.feedback import FeedbackEvaluator, FeedbackThresholds
from convocoach.services.oracle import AnalysisOracle, OracleError
from convocoach.services.state import ConversationState, now_ms
from convocoach.services.storage import SegmentStore, StoreError, generate_id

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class SegmentWorker(Generic[T, R]):
    """
    Однослотовый обработчик: берёт по одному элементу и не начинает
    следующий, пока не закончен предыдущий.
    """

    def __init__(self, handler: Callable[[T], Awaitable[R]]):
        self._handler = handler
        self._queue: "asyncio.Queue[Tuple[T, asyncio.Future]]" = asyncio.Queue(maxsize=1)
        self._task: Optional[asyncio.Task] = None
        self._current: Optional[asyncio.Future] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def busy(self) -> bool:
        return self._current is not None or self._queue.full()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run())

    def offer(self, item: T) -> Optional[asyncio.Future]:
        """Ставит элемент, только если слот свободен; иначе None."""
        if not self.running or self.busy:
            return None
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((item, future))
        return future

    async def submit(self, item: T) -> R:
        """Ждёт освобождения слота и результата обработки."""
        if not self.running:
            raise RuntimeError("Worker is not running")
        future = asyncio.get_running_loop().create_future()
        await self._queue.put((item, future))
        return await future

    async def _run(self) -> None:
        while True:
            item, future = await self._queue.get()
            self._current = future
            try:
                result = await self._handler(item)
                if not future.done():
                    future.set_result(result)
            except asyncio.CancelledError:
                future.cancel()
                raise
            except Exception as e:
                logger.exception(f"Segment processing failed: {e}")
                if not future.done():
                    future.set_exception(e)
            finally:
                self._current = None
                self._queue.task_done()

    async def join(self, timeout: Optional[float] = None) -> bool:
        """Ждёт завершения текущей обработки. False по таймауту."""
        try:
            await asyncio.wait_for(self._queue.join(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if self._current is not None:
            self._current.cancel()
            self._current = None
        while not self._queue.empty():
            _, future = self._queue.get_nowait()
            future.cancel()
            self._queue.task_done()


class CaptureResult(BaseModel):
    """Результат обработки одного цикла записи"""
    segment: Optional[SegmentAnalysis] = None
    record: Optional[Segment] = None
    feedback: Optional[Feedback] = None
    skipped: bool = False
    reason: Optional[str] = None
    saved: bool = False
    state: Dict[str, Any] = {}


class CaptureJob(BaseModel):
    audio: bytes
    mime_type: str
    speaker: Optional[Speaker] = None
    # момент записи, а не окончания анализа
    captured_at_ms: int


class CoachingSession:
    """
    Координирует обработку живого разговора:
    оракул -> состояние -> подсказка -> очередь озвучивания -> сохранение.
    """

    def __init__(
        self,
        conversation_id: str,
        user_id: str,
        oracle: AnalysisOracle,
        store: SegmentStore,
        speaker: SpeechSink,
        thresholds: Optional[FeedbackThresholds] = None,
    ):
        self.conversation_id = conversation_id
        self.user_id = user_id
        self.oracle = oracle
        self.store = store
        self.state = ConversationState()
        self.evaluator = FeedbackEvaluator(thresholds)
        self.dispatcher = FeedbackDispatcher(speaker)
        self.worker: SegmentWorker[CaptureJob, CaptureResult] = SegmentWorker(self._handle_capture)
        self.active = False

    def start(self, at_ms: Optional[int] = None) -> None:
        self.state.start(at_ms)
        self.dispatcher.clear_queue()
        self.worker.start()
        self.active = True
        logger.info(f"Conversation {self.conversation_id} tracking started")

    def stop(self) -> None:
        """Синхронно останавливает приём сегментов и сбрасывает состояние."""
        self.active = False
        self.worker.stop()
        self.state.reset()
        self.dispatcher.clear_queue()
        logger.info(f"Conversation {self.conversation_id} tracking stopped")

    async def capture(
        self,
        audio: bytes,
        mime_type: str,
        speaker: Optional[Speaker] = None,
        captured_at_ms: Optional[int] = None,
    ) -> CaptureResult:
        """
        Обрабатывает один цикл записи.
        Если предыдущий цикл ещё анализируется, текущий пропускается.
        """
        if not self.active:
            return CaptureResult(skipped=True, reason="inactive")

        job = CaptureJob(
            audio=audio,
            mime_type=mime_type,
            speaker=speaker,
            captured_at_ms=captured_at_ms if captured_at_ms is not None else now_ms(),
        )
        future = self.worker.offer(job)
        if future is None:
            logger.warning(f"Previous segment still processing, skipping cycle ({self.conversation_id})")
            return CaptureResult(skipped=True, reason="busy")

        try:
            return await future
        except asyncio.CancelledError:
            return CaptureResult(skipped=True, reason="stopped")

    async def _handle_capture(self, job: CaptureJob) -> CaptureResult:
        try:
            analysis = await self.oracle.analyze(job.audio, job.mime_type)
        except OracleError as e:
            logger.warning(f"Analysis failed, dropping segment: {e}")
            return CaptureResult(skipped=True, reason="oracle_error")

        if not analysis.transcript.strip():
            logger.warning("No transcription in result, skipping segment")
            return CaptureResult(skipped=True, reason="no_transcript")

        update: Dict[str, Any] = {
            "timestamp_ms": job.captured_at_ms,
            "duration_ms": settings.segment_duration_ms,
        }
        if job.speaker is not None:
            update["speaker"] = job.speaker
        return await self.ingest(analysis.model_copy(update=update))

    async def ingest(self, segment: SegmentAnalysis, now: Optional[int] = None) -> CaptureResult:
        """Применяет готовый сегмент: состояние, подсказка, сохранение."""
        if not self.active:
            return CaptureResult(skipped=True, reason="inactive")

        self.state.update(segment)
        feedback = self.evaluator.evaluate(self.state, segment, now)
        if feedback is not None:
            self.dispatcher.enqueue(feedback)

        record = self._persist(segment)
        return CaptureResult(
            segment=segment,
            record=record,
            feedback=feedback,
            saved=record is not None,
            state=self.state.snapshot(),
        )

    def _persist(self, segment: SegmentAnalysis) -> Optional[Segment]:
        record = Segment(
            **segment.model_dump(include=set(SegmentAnalysis.model_fields)),
            id=generate_id(),
            conversation_id=self.conversation_id,
            user_id=self.user_id,
            created_at=now_ms(),
        )
        try:
            return self.store.append(record)
        except StoreError as e:
            # Подсказки в реальном времени от сохранения не зависят
            logger.error(f"Failed to save segment for {self.conversation_id}: {e}")
            return None

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Ждёт анализа последнего сегмента, не дольше timeout секунд."""
        return await self.worker.join(timeout)


class SessionManager:
    """Живые сессии по id разговора"""

    def __init__(
        self,
        oracle: AnalysisOracle,
        store: SegmentStore,
        speaker_factory: Callable[[], SpeechSink],
        thresholds: Optional[FeedbackThresholds] = None,
    ):
        self.oracle = oracle
        self.store = store
        self.speaker_factory = speaker_factory
        self.thresholds = thresholds
        self._sessions: Dict[str, CoachingSession] = {}

    def open(
        self, conversation_id: str, user_id: str, started_at_ms: Optional[int] = None
    ) -> CoachingSession:
        self.stop(conversation_id)
        session = CoachingSession(
            conversation_id=conversation_id,
            user_id=user_id,
            oracle=self.oracle,
            store=self.store,
            speaker=self.speaker_factory(),
            thresholds=self.thresholds,
        )
        session.start(started_at_ms)
        self._sessions[conversation_id] = session
        return session

    def get(self, conversation_id: str, user_id: Optional[str] = None) -> Optional[CoachingSession]:
        session = self._sessions.get(conversation_id)
        if session is None or (user_id is not None and session.user_id != user_id):
            return None
        return session

    def stop(self, conversation_id: str) -> bool:
        session = self._sessions.pop(conversation_id, None)
        if session is None:
            return False
        session.stop()
        return True

    async def finish(self, conversation_id: str, grace_sec: Optional[float] = None) -> bool:
        """
        Завершение разговора: ждём последний сегмент (ограниченно по времени),
        затем останавливаем сессию. False, если сегмент так и не пришёл.
        """
        session = self._sessions.get(conversation_id)
        if session is None:
            return True
        timeout = settings.final_segment_grace_sec if grace_sec is None else grace_sec
        drained = await session.drain(timeout)
        if not drained:
            logger.warning(
                f"Final segment for {conversation_id} not analyzed within {timeout:.0f}s"
            )
        self.stop(conversation_id)
        return drained

    def stop_all(self) -> None:
        for conversation_id in list(self._sessions):
            self.stop(conversation_id)

    def __len__(self) -> int:
        return len(self._sessions)
