"""
Итоговые метрики, оценка и выводы по завершённому разговору.

Всё считается заново по сохранённым сегментам и не зависит от живого
ConversationState.
"""
from typing import Dict, Sequence

from convocoach.models.segment import SegmentAnalysis
from convocoach.models.summary import GradeResult, Insights, SummaryMetrics

# --------------------
# Нормы
# --------------------

MIN_COMFORT_WPM = 120.0
MAX_COMFORT_WPM = 180.0
IDEAL_WPM_RANGE = (130.0, 170.0)
CONFIDENCE_TARGET = 70.0
PAUSE_TARGET_SEC = 2.0

MAX_FILLER_PENALTY = 20.0
MAX_STUTTER_PENALTY = 15.0
MAX_PAUSE_PENALTY = 15.0

GRADE_BOUNDARIES = (
    (90.0, "A"),
    (80.0, "B"),
    (70.0, "C"),
    (60.0, "D"),
)


class EmptyInput(ValueError):
    """Нет ни одного сохранённого сегмента для отчёта"""
    pass


def _mode(counts: Dict[str, int], default: str = "neutral") -> str:
    """Самое частое значение; при равенстве выигрывает default."""
    if not counts:
        return default
    best = max(counts.values())
    tied = [label for label, n in counts.items() if n == best]
    if default in tied:
        return default
    return tied[0]


def aggregate(segments: Sequence[SegmentAnalysis]) -> SummaryMetrics:
    if not segments:
        raise EmptyInput("No segments found for this conversation")

    total_words = 0
    total_filler_words = 0
    total_stutters = 0
    total_duration_ms = 0
    pause_durations = []
    confidence_scores = []
    filler_breakdown: Dict[str, int] = {}
    tones: Dict[str, int] = {}
    sentiments: Dict[str, int] = {}

    for segment in segments:
        analysis = segment.analysis
        total_words += segment.word_count
        total_duration_ms += segment.duration_ms

        for filler in analysis.filler_words:
            total_filler_words += filler.count
            filler_breakdown[filler.word] = filler_breakdown.get(filler.word, 0) + filler.count

        total_stutters += len(analysis.stutters)
        pause_durations.extend(p.duration for p in analysis.pauses)
        # отсутствующие у оракула поля не считаются наблюдениями
        if analysis.confidence.score is not None:
            confidence_scores.append(analysis.confidence.score)
        if analysis.tone.overall is not None:
            tones[analysis.tone.overall] = tones.get(analysis.tone.overall, 0) + 1
        if analysis.sentiment is not None:
            sentiments[analysis.sentiment] = sentiments.get(analysis.sentiment, 0) + 1

    total_minutes = total_duration_ms / 60000.0

    return SummaryMetrics(
        total_segments=len(segments),
        total_words=total_words,
        avg_words_per_minute=total_words / total_minutes if total_minutes > 0 else 0.0,
        total_filler_words=total_filler_words,
        filler_word_rate=total_filler_words / total_words * 100 if total_words else 0.0,
        total_stutters=total_stutters,
        stutter_rate=total_stutters / total_words * 100 if total_words else 0.0,
        total_pauses=len(pause_durations),
        avg_pause_duration=(
            sum(pause_durations) / len(pause_durations) if pause_durations else 0.0
        ),
        confidence_score=(
            sum(confidence_scores) / len(confidence_scores) if confidence_scores else 50.0
        ),
        overall_tone=_mode(tones),
        overall_sentiment=_mode(sentiments),
        filler_word_breakdown=filler_breakdown,
        tone_breakdown=tones,
    )


def grade(metrics: SummaryMetrics) -> GradeResult:
    """Оценка 0-100 вычитанием штрафов из 100 и буква по шкале A-F."""
    score = 100.0

    score -= min(metrics.filler_word_rate * 2, MAX_FILLER_PENALTY)
    score -= min(metrics.stutter_rate * 3, MAX_STUTTER_PENALTY)

    wpm = metrics.avg_words_per_minute
    if wpm < MIN_COMFORT_WPM:
        score -= (MIN_COMFORT_WPM - wpm) * 0.2
    elif wpm > MAX_COMFORT_WPM:
        score -= (wpm - MAX_COMFORT_WPM) * 0.2

    if metrics.confidence_score < CONFIDENCE_TARGET:
        score -= (CONFIDENCE_TARGET - metrics.confidence_score) * 0.5

    if metrics.avg_pause_duration > PAUSE_TARGET_SEC:
        score -= min((metrics.avg_pause_duration - PAUSE_TARGET_SEC) * 5, MAX_PAUSE_PENALTY)

    score = max(0.0, min(100.0, score))

    letter = "F"
    for boundary, candidate in GRADE_BOUNDARIES:
        if score >= boundary:
            letter = candidate
            break

    return GradeResult(grade=letter, grade_score=score)


def derive_insights(metrics: SummaryMetrics) -> Insights:
    strengths = []
    improvements = []
    patterns = []

    if metrics.filler_word_rate < 2:
        strengths.append("Minimal use of filler words")
    elif metrics.filler_word_rate >= 5:
        improvements.append("Reduce filler word usage")

    if metrics.stutter_rate < 1:
        strengths.append("Smooth and fluent speech")
    elif metrics.stutter_rate >= 2:
        improvements.append("Work on speech fluency")

    if metrics.confidence_score >= 75:
        strengths.append("High confidence in delivery")
    elif metrics.confidence_score < 60:
        improvements.append("Build confidence in delivery")

    wpm = metrics.avg_words_per_minute
    if IDEAL_WPM_RANGE[0] <= wpm <= IDEAL_WPM_RANGE[1]:
        strengths.append("Well-paced speaking rate")
    elif wpm < MIN_COMFORT_WPM:
        improvements.append("Increase speaking pace")
    elif wpm > MAX_COMFORT_WPM:
        improvements.append("Slow down speaking pace")

    if metrics.avg_pause_duration < 1.5:
        strengths.append("Minimal hesitation")
    elif metrics.avg_pause_duration > 2.5:
        improvements.append("Reduce long pauses")

    if metrics.filler_word_breakdown:
        word, count = max(metrics.filler_word_breakdown.items(), key=lambda kv: kv[1])
        if count > 3:
            patterns.append(f'Frequently uses "{word}" ({count} times)')

    if metrics.overall_tone != "neutral":
        patterns.append(f"Overall tone: {metrics.overall_tone}")

    return Insights(
        strengths=strengths,
        areas_for_improvement=improvements,
        key_patterns=patterns,
    )
