"""
Модели анализа одного аудиосегмента.

Оракул отвечает camelCase JSON, форма которого плавает от вызова к вызову
(поля пропадают, приходят null или неизвестные значения). Модели принимают
и имена из JSON, и snake_case имена полей, а всё отсутствующее или битое
заменяют нулевым/пустым значением.
"""
from typing import Any, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_SEGMENT_DURATION_MS = 7000

Speaker = Literal["user", "other"]
ToneLabel = Literal["confident", "nervous", "uncertain", "aggressive", "calm", "neutral"]
SentimentLabel = Literal["positive", "neutral", "negative"]
StutterType = Literal["repetition", "prolongation", "block"]
PauseType = Literal["filler", "silence"]

TONE_LABELS = ("confident", "nervous", "uncertain", "aggressive", "calm", "neutral")
SENTIMENT_LABELS = ("positive", "neutral", "negative")


def clamp_score(value: Any, default: Optional[float] = 50.0) -> Optional[float]:
    """Приводит оценку к диапазону [0, 100]."""
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    if score != score:  # NaN
        return default
    return max(0.0, min(100.0, score))


def _choice(value: Any, allowed: tuple, default: Optional[str]) -> Optional[str]:
    if isinstance(value, str) and value.strip().lower() in allowed:
        return value.strip().lower()
    return default


def _non_negative_float(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number:  # NaN
        return 0.0
    return max(0.0, number)


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _string_list(value: Any) -> List[str]:
    # одиночная строка оборачивается в список, всё нестроковое отбрасывается
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, str)]


def _float_list(value: Any) -> List[float]:
    if not isinstance(value, (list, tuple)):
        value = [value]
    numbers = []
    for item in value:
        if isinstance(item, bool):
            continue
        try:
            numbers.append(float(item))
        except (TypeError, ValueError):
            continue
    return [n for n in numbers if n == n]


class WireModel(BaseModel):
    """Базовая модель ответов оракула: camelCase, null отбрасываются"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class SpeakingRate(WireModel):
    words_per_minute: float = 0.0
    variance: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _from_number(cls, data: Any) -> Any:
        if isinstance(data, (int, float)) and not isinstance(data, bool):
            return {"words_per_minute": data}
        return data if isinstance(data, (dict, BaseModel)) else {}

    @field_validator("words_per_minute", mode="before")
    @classmethod
    def _non_negative(cls, v: Any) -> float:
        return _non_negative_float(v)

    @field_validator("variance", mode="before")
    @classmethod
    def _variance(cls, v: Any) -> Optional[str]:
        return _text(v) or None


class FillerWord(WireModel):
    word: str = ""
    count: int = Field(default=0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _from_plain_word(cls, data: Any) -> Any:
        # Иногда оракул возвращает просто список строк
        if isinstance(data, str):
            return {"word": data, "count": 1}
        return data

    @field_validator("word", mode="before")
    @classmethod
    def _word(cls, v: Any) -> str:
        return _text(v)

    @field_validator("count", mode="before")
    @classmethod
    def _count(cls, v: Any) -> int:
        try:
            return max(0, int(v))
        except (TypeError, ValueError):
            return 0


class Stutter(WireModel):
    word: str = ""
    timestamp: float = 0.0
    type: StutterType = "repetition"

    @field_validator("word", mode="before")
    @classmethod
    def _word(cls, v: Any) -> str:
        return _text(v)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _timestamp(cls, v: Any) -> float:
        # "0:03" и прочие нечисловые отметки превращаются в 0
        return _non_negative_float(v)

    @field_validator("type", mode="before")
    @classmethod
    def _type(cls, v: Any) -> str:
        return _choice(v, ("repetition", "prolongation", "block"), "repetition")


class Pause(WireModel):
    duration: float = 0.0
    timestamp: float = 0.0
    type: PauseType = "silence"

    @field_validator("type", mode="before")
    @classmethod
    def _type(cls, v: Any) -> str:
        return _choice(v, ("filler", "silence"), "silence")

    @field_validator("duration", "timestamp", mode="before")
    @classmethod
    def _seconds(cls, v: Any) -> float:
        return _non_negative_float(v)


class Tone(WireModel):
    """
    Тон сегмента. overall остаётся None, если оракул его не прислал,
    чтобы итоговый отчёт не считал отсутствие за нейтральный тон.
    """
    overall: Optional[ToneLabel] = None
    score: float = 50.0

    @model_validator(mode="before")
    @classmethod
    def _from_label(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"overall": data}
        return data if isinstance(data, (dict, BaseModel)) else {}

    @field_validator("overall", mode="before")
    @classmethod
    def _overall(cls, v: Any) -> str:
        return _choice(v, TONE_LABELS, "neutral")

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, v: Any) -> float:
        return clamp_score(v)


class Confidence(WireModel):
    # None означает, что оценки не было
    score: Optional[float] = None
    indicators: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _from_number(cls, data: Any) -> Any:
        if isinstance(data, (int, float, str)) and not isinstance(data, bool):
            return {"score": data}
        return data if isinstance(data, (dict, BaseModel)) else {}

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, v: Any) -> Optional[float]:
        return clamp_score(v, default=None)

    @field_validator("indicators", mode="before")
    @classmethod
    def _indicators(cls, v: Any) -> List[str]:
        return _string_list(v)


class Interruptions(WireModel):
    detected: bool = False
    count: int = Field(default=0, ge=0)
    timestamps: List[float] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _from_scalar(cls, data: Any) -> Any:
        if isinstance(data, bool):
            return {"detected": data}
        if isinstance(data, (int, float)):
            return {"detected": data > 0, "count": data}
        return data if isinstance(data, (dict, BaseModel)) else {}

    @field_validator("detected", mode="before")
    @classmethod
    def _detected(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in ("true", "yes", "1")
        return bool(v)

    @field_validator("count", mode="before")
    @classmethod
    def _count(cls, v: Any) -> int:
        try:
            return max(0, int(v))
        except (TypeError, ValueError):
            return 0

    @field_validator("timestamps", mode="before")
    @classmethod
    def _timestamps(cls, v: Any) -> List[float]:
        return _float_list(v)


class AnalysisDetails(WireModel):
    """Лингвистический и акустический анализ сегмента"""
    speaking_rate: SpeakingRate = Field(default_factory=SpeakingRate)
    filler_words: List[FillerWord] = Field(default_factory=list)
    stutters: List[Stutter] = Field(default_factory=list)
    pauses: List[Pause] = Field(default_factory=list)
    tone: Tone = Field(default_factory=Tone)
    confidence: Confidence = Field(default_factory=Confidence)
    interruptions: Interruptions = Field(default_factory=Interruptions)
    sentiment: Optional[SentimentLabel] = None
    key_insights: List[str] = Field(default_factory=list)

    @field_validator("filler_words", mode="before")
    @classmethod
    def _filler_items(cls, v: Any) -> List[Any]:
        if not isinstance(v, (list, tuple)):
            return []
        return [item for item in v if isinstance(item, (dict, str, FillerWord))]

    @field_validator("stutters", "pauses", mode="before")
    @classmethod
    def _object_items(cls, v: Any) -> List[Any]:
        if not isinstance(v, (list, tuple)):
            return []
        return [item for item in v if isinstance(item, (dict, BaseModel))]

    @field_validator("sentiment", mode="before")
    @classmethod
    def _sentiment(cls, v: Any) -> str:
        return _choice(v, SENTIMENT_LABELS, "neutral")

    @field_validator("key_insights", mode="before")
    @classmethod
    def _key_insights(cls, v: Any) -> List[str]:
        return _string_list(v)

    @property
    def filler_count(self) -> int:
        return sum(f.count for f in self.filler_words)


class SegmentAnalysis(WireModel):
    """Один проанализированный отрезок записи"""
    transcript: str = Field(
        default="",
        alias="transcription",
        validation_alias=AliasChoices("transcription", "transcript"),
    )
    speaker: Speaker = "user"
    timestamp_ms: int = Field(
        default=0,
        alias="timestampMs",
        validation_alias=AliasChoices("timestampMs", "timestamp", "timestamp_ms"),
    )
    duration_ms: int = Field(default=DEFAULT_SEGMENT_DURATION_MS, gt=0)
    analysis: AnalysisDetails = Field(default_factory=AnalysisDetails)

    @field_validator("transcript", mode="before")
    @classmethod
    def _transcript(cls, v: Any) -> str:
        return v if isinstance(v, str) else ""

    @field_validator("analysis", mode="before")
    @classmethod
    def _analysis(cls, v: Any) -> Any:
        return v if isinstance(v, (dict, BaseModel)) else {}

    @field_validator("speaker", mode="before")
    @classmethod
    def _speaker(cls, v: Any) -> str:
        return _choice(v, ("user", "other"), "user")

    @field_validator("timestamp_ms", mode="before")
    @classmethod
    def _timestamp(cls, v: Any) -> int:
        try:
            return int(v)
        except (TypeError, ValueError):
            return 0

    @field_validator("duration_ms", mode="before")
    @classmethod
    def _duration(cls, v: Any) -> int:
        try:
            duration = int(v)
        except (TypeError, ValueError):
            return DEFAULT_SEGMENT_DURATION_MS
        return duration if duration > 0 else DEFAULT_SEGMENT_DURATION_MS

    @property
    def word_count(self) -> int:
        return len(self.transcript.split())

    @property
    def question_count(self) -> int:
        return self.transcript.count("?")


class Segment(SegmentAnalysis):
    """Сохранённый сегмент"""
    id: str
    conversation_id: str
    user_id: str
    created_at: Optional[int] = None


class SegmentCreate(SegmentAnalysis):
    """Готовый сегмент, присланный клиентом"""
    conversation_id: str
