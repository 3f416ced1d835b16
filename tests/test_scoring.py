import pytest

from conftest import make_segment, words
from convocoach.models.summary import SummaryMetrics
from convocoach.services.scoring import EmptyInput, _mode, aggregate, derive_insights, grade


def test_aggregate_requires_segments():
    with pytest.raises(EmptyInput):
        aggregate([])


def test_empty_transcript_yields_zeros():
    """Один сегмент без текста не приводит к делению на ноль"""
    metrics = aggregate([make_segment("")])

    assert metrics.total_segments == 1
    assert metrics.total_words == 0
    assert metrics.filler_word_rate == 0.0
    assert metrics.stutter_rate == 0.0
    assert metrics.avg_words_per_minute == 0.0
    assert metrics.avg_pause_duration == 0.0
    assert metrics.confidence_score == 50.0
    assert metrics.overall_tone == "neutral"


def test_aggregate_totals():
    segments = [
        make_segment(
            words(20),
            duration_ms=8000,
            fillerWords=[{"word": "um", "count": 2}, {"word": "like", "count": 1}],
            stutters=[{"word": "I", "timestamp": 1, "type": "repetition"}],
            pauses=[{"duration": 1.0, "timestamp": 2, "type": "silence"}],
            tone={"overall": "confident", "score": 80},
            confidence={"score": 90},
            sentiment="positive",
        ),
        make_segment(
            words(10),
            speaker="other",
            duration_ms=4000,
            fillerWords=[{"word": "um", "count": 1}],
            pauses=[{"duration": 3.0, "timestamp": 1, "type": "filler"}],
            tone={"overall": "calm"},
            confidence={"score": 70},
            sentiment="neutral",
        ),
    ]

    metrics = aggregate(segments)

    assert metrics.total_words == 30
    assert metrics.avg_words_per_minute == pytest.approx(150.0)
    assert metrics.total_filler_words == 4
    assert metrics.filler_word_rate == pytest.approx(4 / 30 * 100)
    assert metrics.total_stutters == 1
    assert metrics.total_pauses == 2
    assert metrics.avg_pause_duration == pytest.approx(2.0)
    assert metrics.confidence_score == pytest.approx(80.0)
    assert metrics.filler_word_breakdown == {"um": 3, "like": 1}
    assert metrics.tone_breakdown == {"confident": 1, "calm": 1}
    # ничья между positive и neutral решается в пользу neutral
    assert metrics.overall_sentiment == "neutral"



def test_absent_fields_are_not_observations():
    """Поля, которых оракул не прислал, не тянут среднее и моду к умолчаниям"""
    metrics = aggregate([
        make_segment(words(10), confidence={"score": 90}),
        make_segment(words(10)),
    ])

    assert metrics.confidence_score == pytest.approx(90.0)

    metrics = aggregate([
        make_segment(words(10), tone={"overall": "nervous", "score": 30}, sentiment="negative"),
        make_segment(words(10)),
        make_segment(words(10), tone={"score": 60}),
    ])

    assert metrics.overall_tone == "nervous"
    assert metrics.tone_breakdown == {"nervous": 1}
    assert metrics.overall_sentiment == "negative"


def test_no_observations_fall_back_to_defaults():
    metrics = aggregate([make_segment(words(10)), make_segment(words(5))])

    assert metrics.confidence_score == 50.0
    assert metrics.overall_tone == "neutral"
    assert metrics.overall_sentiment == "neutral"
    assert metrics.tone_breakdown == {}

def test_mode_tie_breaking():
    assert _mode({}) == "neutral"
    assert _mode({"calm": 2, "neutral": 2}) == "neutral"
    assert _mode({"calm": 2, "nervous": 2}) == "calm"
    assert _mode({"calm": 1, "nervous": 3}) == "nervous"


def test_grade_b_scenario():
    """100 слов, 10 паразитов, 150 слов/мин, уверенность 80 -> 80 баллов, B"""
    segments = [
        make_segment(
            words(20),
            duration_ms=8000,
            fillerWords=[{"word": "um", "count": 2}],
            pauses=[{"duration": 1.0, "timestamp": 3, "type": "silence"}],
            confidence={"score": 80},
        )
        for _ in range(5)
    ]
    metrics = aggregate(segments)

    assert metrics.total_words == 100
    assert metrics.filler_word_rate == pytest.approx(10.0)
    assert metrics.avg_words_per_minute == pytest.approx(150.0)

    result = grade(metrics)
    assert result.grade_score == pytest.approx(80.0)
    assert result.grade == "B"


@pytest.mark.parametrize("score,letter,filler_rate", [
    (95, "A", 0), (90, "A", 0), (85, "B", 0), (72, "C", 0), (60, "D", 10), (59.9, "F", 10),
])
def test_grade_boundaries(score, letter, filler_rate):
    # штрафы: паразиты rate * 2, уверенность (70 - c) * 0.5
    confidence = 70 - (100 - score - filler_rate * 2) * 2
    metrics = SummaryMetrics(
        avg_words_per_minute=150,
        filler_word_rate=filler_rate,
        confidence_score=confidence,
    )
    result = grade(metrics)
    assert result.grade_score == pytest.approx(score)
    assert result.grade == letter


def test_grade_is_clamped():
    metrics = SummaryMetrics(
        avg_words_per_minute=0,
        filler_word_rate=50,
        stutter_rate=50,
        confidence_score=0,
        avg_pause_duration=10,
    )
    result = grade(metrics)
    assert result.grade_score == 0.0
    assert result.grade == "F"


def test_grade_monotone_in_penalties():
    base = dict(avg_words_per_minute=150, confidence_score=80)

    def score(**overrides):
        return grade(SummaryMetrics(**{**base, **overrides})).grade_score

    filler_scores = [score(filler_word_rate=r) for r in (0, 2, 5, 10, 20)]
    stutter_scores = [score(stutter_rate=r) for r in (0, 1, 3, 5, 10)]
    fast_scores = [score(avg_words_per_minute=w) for w in (180, 200, 240)]
    slow_scores = [score(avg_words_per_minute=w) for w in (120, 100, 60)]

    for series in (filler_scores, stutter_scores, fast_scores, slow_scores):
        assert series == sorted(series, reverse=True)
    assert filler_scores[-1] == pytest.approx(80.0)
    assert stutter_scores[-1] == pytest.approx(85.0)


def test_insights():
    metrics = SummaryMetrics(
        filler_word_rate=6,
        stutter_rate=0.5,
        confidence_score=80,
        avg_words_per_minute=150,
        avg_pause_duration=3,
        overall_tone="nervous",
        filler_word_breakdown={"like": 2, "um": 5, "uh": 5},
    )
    insights = derive_insights(metrics)

    assert insights.strengths == [
        "Smooth and fluent speech",
        "High confidence in delivery",
        "Well-paced speaking rate",
    ]
    assert insights.areas_for_improvement == [
        "Reduce filler word usage",
        "Reduce long pauses",
    ]
    assert insights.key_patterns == [
        'Frequently uses "um" (5 times)',
        "Overall tone: nervous",
    ]


def test_insights_for_quiet_speaker():
    metrics = SummaryMetrics(
        filler_word_rate=1,
        stutter_rate=3,
        confidence_score=40,
        avg_words_per_minute=90,
        avg_pause_duration=1,
    )
    insights = derive_insights(metrics)

    assert "Minimal use of filler words" in insights.strengths
    assert "Minimal hesitation" in insights.strengths
    assert insights.areas_for_improvement == [
        "Work on speech fluency",
        "Build confidence in delivery",
        "Increase speaking pace",
    ]
    assert insights.key_patterns == []
