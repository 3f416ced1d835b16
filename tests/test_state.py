import pytest

from conftest import make_segment, words
from convocoach.services.state import HISTORY_SIZE, ConversationState


@pytest.fixture
def state():
    s = ConversationState()
    s.start(at_ms=0)
    return s


def test_durations_accumulate(state):
    """Общая длительность равна сумме длительностей сегментов"""
    state.update(make_segment(words(10), duration_ms=7000))
    state.update(make_segment(words(5), speaker="other", duration_ms=5000))
    state.update(make_segment(words(3), duration_ms=3000))

    assert state.total_duration_ms == 15000
    assert state.user_speaking_ms == 10000
    assert state.total_words == 18


def test_user_streak_resets_on_other_speaker(state):
    state.update(make_segment(words(3)))
    state.update(make_segment(words(3)))
    assert state.consecutive_user_segments == 2

    state.update(make_segment(words(3), speaker="other"))
    assert state.consecutive_user_segments == 0
    assert state.last_speaker == "other"

    state.update(make_segment(words(3)))
    assert state.consecutive_user_segments == 1


def test_wpm_and_balance_without_data():
    """Без сегментов нет деления на ноль"""
    state = ConversationState()
    assert state.current_wpm() == 0.0
    assert state.speaking_percent() == 50.0
    assert state.elapsed_ms(10_000) == 0


def test_current_wpm(state):
    state.update(make_segment(words(30), duration_ms=12000))
    assert state.current_wpm() == pytest.approx(150.0)


def test_interruptions_count_at_least_one(state):
    state.update(make_segment(words(2), interruptions={"detected": True, "count": 0}))
    state.update(make_segment(words(2), interruptions={"detected": True, "count": 3}))
    state.update(make_segment(words(2), interruptions={"detected": False, "count": 5}))

    assert state.interruption_count == 4


def test_questions_tracked(state):
    state.update(make_segment("What do you think? Why?", timestamp_ms=9000))
    assert state.question_count == 2
    assert state.last_question_timestamp_ms == 9000
    assert state.time_since_last_question_ms(12000) == 3000


def test_time_since_question_falls_back_to_elapsed(state):
    state.update(make_segment(words(4), timestamp_ms=7000))
    assert state.time_since_last_question_ms(20000) == 20000


def test_stutter_events(state):
    stutters = [{"word": "I", "timestamp": 1, "type": "repetition"}] * 2
    state.update(make_segment(words(4), stutters=stutters))
    assert state.stutter_events == 2


def test_history_keeps_last_segments(state):
    for i in range(5):
        state.update(make_segment(words(i + 1), timestamp_ms=i * 7000))

    assert len(state.segment_history) == HISTORY_SIZE
    assert [e.timestamp_ms for e in state.segment_history] == [14000, 21000, 28000]
    assert state.segment_history[-1].word_count == 5


def test_reset_clears_everything(state):
    state.update(make_segment("Ready?"))
    state.feedback_given_types.add("monologue")
    state.last_feedback_timestamp_ms = 5000

    state.reset()

    assert state.started_at_ms is None
    assert state.total_words == 0
    assert state.question_count == 0
    assert state.last_speaker is None
    assert not state.segment_history
    assert not state.feedback_given_types
    assert state.last_feedback_timestamp_ms is None


def test_snapshot_is_camel_case(state):
    state.update(make_segment(words(14), timestamp_ms=7000))
    snapshot = state.snapshot()

    assert snapshot["totalWords"] == 14
    assert snapshot["consecutiveUserSegments"] == 1
    assert snapshot["wordsPerMinute"] == pytest.approx(120.0)
    assert snapshot["recentSegments"][0]["timestampMs"] == 7000
    assert snapshot["recentSegments"][0]["hasQuestion"] is False
