from typing import Any, Dict, List, Optional

import pytest

from convocoach.models.segment import AnalysisDetails, SegmentAnalysis
from convocoach.services.feedback import FeedbackThresholds
from convocoach.services.oracle import OracleError


def words(n: int) -> str:
    return " ".join(f"word{i}" for i in range(n))


def make_segment(
    transcript: str = "",
    speaker: str = "user",
    timestamp_ms: int = 0,
    duration_ms: int = 7000,
    **analysis: Any,
) -> SegmentAnalysis:
    """Сегмент с анализом в camelCase, как его присылает оракул."""
    return SegmentAnalysis(
        transcript=transcript,
        speaker=speaker,
        timestamp_ms=timestamp_ms,
        duration_ms=duration_ms,
        analysis=AnalysisDetails.model_validate(analysis),
    )


class FakeOracle:
    """Оракул с заранее заданным ответом"""

    def __init__(self, result: Optional[SegmentAnalysis] = None, error: Optional[Exception] = None):
        self.result = result or make_segment(words(20))
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def analyze(self, audio: bytes, mime_type: str) -> SegmentAnalysis:
        self.calls.append({"audio": audio, "mime_type": mime_type})
        if self.error is not None:
            raise self.error
        return self.result


class RecordingSpeaker:
    def __init__(self):
        self.spoken: List[str] = []

    async def speak(self, text: str) -> None:
        self.spoken.append(text)


@pytest.fixture
def thresholds():
    return FeedbackThresholds()


@pytest.fixture
def failing_oracle():
    return FakeOracle(error=OracleError("Gemini API returned 500"))
