"""
Выбор подсказки в реальном времени.

Условия описаны декларативно таблицей правил (id, приоритет, предикат,
шаблон сообщения). Оценщик собирает всех кандидатов, берёт одного с
наивысшим приоритетом и соблюдает паузу между подсказками.
"""
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence

from pydantic import BaseModel, Field

from convocoach.core.config import Settings, settings
from convocoach.models.feedback import Feedback
from convocoach.models.segment import SegmentAnalysis
from convocoach.services.state import ConversationState, now_ms

logger = logging.getLogger(__name__)

# Темп меняется непрерывно, поэтому его подсказки могут повторяться
RECURRING_TYPES: FrozenSet[str] = frozenset({"pace_fast", "pace_slow"})

STUTTER_COACHING: Dict[str, Dict[str, str]] = {
    "repetition": {
        "detail": "I noticed some repeated words",
        "tip": "Slow down and take a breath before the next phrase.",
    },
    "prolongation": {
        "detail": "I noticed some stretched-out sounds",
        "tip": "Relax your jaw and ease gently into each word.",
    },
    "block": {
        "detail": "I noticed a few blocked starts",
        "tip": "Breathe out softly and start the word with light contact.",
    },
}


class FeedbackThresholds(BaseModel):
    """Пороги и тайминги оценщика"""
    cooldown_ms: int = 5000
    grace_ms: int = 5000
    segment_duration_ms: int = 7000
    monologue_segment_threshold: int = 2
    balance_min_duration_ms: int = 30000
    max_speaking_percent: float = 70.0
    min_speaking_percent: float = 30.0
    fast_pace_wpm: float = 180.0
    slow_pace_wpm: float = 120.0
    min_pace_wpm: float = 20.0
    filler_threshold: int = 2
    question_prompt_ms: int = 15000
    low_confidence_score: float = 50.0
    high_confidence_score: float = 85.0
    # None = все типы из таблицы правил, кроме RECURRING_TYPES
    one_shot_types: Optional[FrozenSet[str]] = Field(default=None)

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "FeedbackThresholds":
        one_shot = None
        if cfg.feedback_one_shot_types.strip():
            one_shot = frozenset(
                t.strip() for t in cfg.feedback_one_shot_types.split(",") if t.strip()
            )
        return cls(
            cooldown_ms=cfg.feedback_cooldown_ms,
            grace_ms=cfg.feedback_grace_ms,
            segment_duration_ms=cfg.segment_duration_ms,
            monologue_segment_threshold=cfg.monologue_segment_threshold,
            balance_min_duration_ms=cfg.balance_min_duration_ms,
            max_speaking_percent=cfg.max_speaking_percent,
            min_speaking_percent=cfg.min_speaking_percent,
            fast_pace_wpm=cfg.fast_pace_wpm,
            slow_pace_wpm=cfg.slow_pace_wpm,
            min_pace_wpm=cfg.min_pace_wpm,
            filler_threshold=cfg.filler_threshold,
            question_prompt_ms=cfg.question_prompt_ms,
            low_confidence_score=cfg.low_confidence_score,
            high_confidence_score=cfg.high_confidence_score,
            one_shot_types=one_shot,
        )


@dataclass(frozen=True)
class RuleContext:
    state: ConversationState
    segment: SegmentAnalysis
    now: int
    thresholds: FeedbackThresholds


@dataclass(frozen=True)
class FeedbackRule:
    """
    Одно условие подсказки.
    check возвращает параметры для шаблона (они же уходят в metadata)
    или None, если условие не сработало.
    """
    rule_id: str
    priority: int
    check: Callable[[RuleContext], Optional[Dict[str, Any]]]
    template: str

    def build(self, ctx: RuleContext) -> Optional[Feedback]:
        params = self.check(ctx)
        if params is None:
            return None
        return Feedback(
            type=self.rule_id,
            message=self.template.format(**params),
            priority=self.priority,
            metadata=params,
            created_at_ms=ctx.now,
        )


# --------------------
# Предикаты
# --------------------

def _stutter(ctx: RuleContext) -> Optional[Dict[str, Any]]:
    stutters = ctx.segment.analysis.stutters
    if not stutters:
        return None
    dominant = Counter(s.type for s in stutters).most_common(1)[0][0]
    coaching = STUTTER_COACHING[dominant]
    return {
        "count": len(stutters),
        "stutter_type": dominant,
        "detail": coaching["detail"],
        "tip": coaching["tip"],
    }


def _pace_fast(ctx: RuleContext) -> Optional[Dict[str, Any]]:
    wpm = ctx.state.current_wpm()
    if wpm > ctx.thresholds.fast_pace_wpm:
        return {"wpm": round(wpm)}
    return None


def _pace_slow(ctx: RuleContext) -> Optional[Dict[str, Any]]:
    wpm = ctx.state.current_wpm()
    # Почти тишина это не медленная речь
    if ctx.thresholds.min_pace_wpm < wpm < ctx.thresholds.slow_pace_wpm:
        return {"wpm": round(wpm)}
    return None


def _monologue(ctx: RuleContext) -> Optional[Dict[str, Any]]:
    streak = ctx.state.consecutive_user_segments
    if streak < ctx.thresholds.monologue_segment_threshold:
        return None
    duration_ms = streak * ctx.thresholds.segment_duration_ms
    return {
        "segments": streak,
        "duration_ms": duration_ms,
        "seconds": round(duration_ms / 1000),
    }


def _interruption(ctx: RuleContext) -> Optional[Dict[str, Any]]:
    count = ctx.state.interruption_count
    if count < 1:
        return None
    return {"count": count, "plural": "s" if count > 1 else ""}


def _balance_allowed(ctx: RuleContext) -> bool:
    return ctx.state.elapsed_ms(ctx.now) > ctx.thresholds.balance_min_duration_ms


def _balance_talkative(ctx: RuleContext) -> Optional[Dict[str, Any]]:
    if not _balance_allowed(ctx):
        return None
    percent = ctx.state.speaking_percent()
    if percent > ctx.thresholds.max_speaking_percent:
        return {"percent": round(percent)}
    return None


def _balance_quiet(ctx: RuleContext) -> Optional[Dict[str, Any]]:
    if not _balance_allowed(ctx):
        return None
    percent = ctx.state.speaking_percent()
    if percent < ctx.thresholds.min_speaking_percent:
        return {"percent": round(percent)}
    return None


def _filler_words(ctx: RuleContext) -> Optional[Dict[str, Any]]:
    count = ctx.segment.analysis.filler_count
    if count >= ctx.thresholds.filler_threshold:
        return {
            "count": count,
            "words": [f.word for f in ctx.segment.analysis.filler_words if f.count > 0],
        }
    return None


def _question_prompt(ctx: RuleContext) -> Optional[Dict[str, Any]]:
    if ctx.state.question_count > 0:
        return None
    since = ctx.state.time_since_last_question_ms(ctx.now)
    if since > ctx.thresholds.question_prompt_ms:
        return {"time_since_question_ms": since}
    return None


def _confidence_low(ctx: RuleContext) -> Optional[Dict[str, Any]]:
    score = ctx.segment.analysis.confidence.score
    if score is not None and score < ctx.thresholds.low_confidence_score:
        return {"score": score}
    return None


def _confidence_high(ctx: RuleContext) -> Optional[Dict[str, Any]]:
    score = ctx.segment.analysis.confidence.score
    if score is not None and score > ctx.thresholds.high_confidence_score:
        return {"score": score}
    return None


def _tone_nervous(ctx: RuleContext) -> Optional[Dict[str, Any]]:
    tone = ctx.segment.analysis.tone
    if tone.overall == "nervous":
        return {"tone": tone.overall, "score": tone.score}
    return None


def _sentiment_positive(ctx: RuleContext) -> Optional[Dict[str, Any]]:
    if ctx.segment.analysis.sentiment == "positive":
        return {"sentiment": "positive"}
    return None


# Порядок в таблице решает при равном приоритете
DEFAULT_RULES: List[FeedbackRule] = [
    FeedbackRule("stutter", 3, _stutter, "{detail} ({count} in that stretch). {tip}"),
    FeedbackRule(
        "pace_fast", 2, _pace_fast,
        "You're speaking at {wpm} words per minute, which is quite fast. "
        "Try slowing down for better clarity.",
    ),
    FeedbackRule(
        "monologue", 2, _monologue,
        "You've been speaking for {seconds} seconds. Pause and let the other person respond.",
    ),
    FeedbackRule(
        "interruption", 2, _interruption,
        "You've interrupted {count} time{plural}. Practice active listening.",
    ),
    FeedbackRule(
        "balance_talkative", 2, _balance_talkative,
        "You're doing {percent}% of the talking. Try listening more.",
    ),
    FeedbackRule(
        "balance_quiet", 2, _balance_quiet,
        "You're only doing {percent}% of the talking. Share more of your thoughts.",
    ),
    FeedbackRule(
        "pace_slow", 1, _pace_slow,
        "You're speaking at {wpm} words per minute. "
        "Try picking up the pace a bit to maintain engagement.",
    ),
    FeedbackRule(
        "filler_words", 1, _filler_words,
        "You used {count} filler words. Try pausing instead.",
    ),
    FeedbackRule(
        "question_prompt", 1, _question_prompt,
        "Try asking an open-ended question to engage the other person.",
    ),
    FeedbackRule(
        "confidence_low", 1, _confidence_low,
        "You sound a little hesitant. Take a breath and speak with conviction.",
    ),
    FeedbackRule(
        "tone_nervous", 1, _tone_nervous,
        "You sound a bit nervous. Slow your breathing and relax your shoulders.",
    ),
    FeedbackRule(
        "confidence_high", 1, _confidence_high,
        "Great confidence! Keep that steady delivery.",
    ),
    FeedbackRule(
        "sentiment_positive", 1, _sentiment_positive,
        "Nice positive energy. Keep it up!",
    ),
]


class FeedbackEvaluator:
    def __init__(
        self,
        thresholds: Optional[FeedbackThresholds] = None,
        rules: Optional[Sequence[FeedbackRule]] = None,
    ):
        self.thresholds = thresholds or FeedbackThresholds.from_settings()
        self.rules: List[FeedbackRule] = list(rules or DEFAULT_RULES)
        if self.thresholds.one_shot_types is None:
            self.one_shot_types = frozenset(
                r.rule_id for r in self.rules if r.rule_id not in RECURRING_TYPES
            )
        else:
            self.one_shot_types = self.thresholds.one_shot_types

    def candidates(
        self,
        state: ConversationState,
        segment: SegmentAnalysis,
        now: int,
    ) -> List[Feedback]:
        """Все сработавшие условия, от высшего приоритета к низшему."""
        ctx = RuleContext(state=state, segment=segment, now=now, thresholds=self.thresholds)
        fired = [fb for fb in (rule.build(ctx) for rule in self.rules) if fb is not None]
        # sorted стабилен, поэтому порядок таблицы сохраняется внутри приоритета
        return sorted(fired, key=lambda fb: fb.priority, reverse=True)

    def evaluate(
        self,
        state: ConversationState,
        segment: SegmentAnalysis,
        now: Optional[int] = None,
    ) -> Optional[Feedback]:
        """
        Возвращает не больше одной подсказки за вызов.
        None, если ничего не сработало или подсказки сейчас нельзя выдавать.
        """
        if now is None:
            now = now_ms()

        last = state.last_feedback_timestamp_ms
        if last is not None and now - last < self.thresholds.cooldown_ms:
            return None

        if state.elapsed_ms(now) < self.thresholds.grace_ms:
            return None

        logger.debug(
            f"Current metrics: wpm={state.current_wpm():.0f}, "
            f"interruptions={state.interruption_count}, "
            f"questions={state.question_count}, "
            f"streak={state.consecutive_user_segments}, "
            f"speaking={state.speaking_percent():.0f}%"
        )

        candidates = self.candidates(state, segment, now)
        if not candidates:
            return None

        selected = candidates[0]
        # Следующего кандидата не берём: одна и та же подсказка не повторяется
        if selected.type in state.feedback_given_types and selected.type in self.one_shot_types:
            logger.debug(f"Feedback {selected.type} already given, skipping")
            return None

        state.last_feedback_timestamp_ms = now
        state.feedback_given_types.add(selected.type)
        logger.info(f"Feedback triggered ({selected.type}): {selected.message}")
        return selected
