import base64
import json
from unittest.mock import AsyncMock

import httpx
import pytest

from convocoach.services.oracle import (
    GeminiAnalysisClient,
    OracleError,
    clean_json_response,
    parse_oracle_response,
)

PAYLOAD = {
    "transcription": "Um, so I think we, we should start?",
    "stutters": [{"word": "we", "timestamp": 2.1, "type": "repetition"}],
    "pauses": [{"duration": 1.2, "timestamp": 0.5, "type": "filler"}],
    "tone": {"overall": "uncertain", "score": 45},
    "fillerWords": [{"word": "um", "count": 1}],
    "speakingRate": {"wordsPerMinute": 132, "variance": "steady"},
    "confidence": {"score": 48, "indicators": ["hedging"]},
    "interruptions": {"detected": False, "count": 0, "timestamps": []},
    "sentiment": "neutral",
    "keyInsights": ["hesitant opening"],
}


def gemini_response(text: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        json={"candidates": [{"content": {"parts": [{"text": text}]}}]},
    )


def test_parse_fenced_json():
    content = "Here is the analysis:\n```json\n" + json.dumps(PAYLOAD) + "\n```\nDone."

    result = parse_oracle_response(content)

    assert result.transcript == PAYLOAD["transcription"]
    assert result.speaker == "user"
    assert result.analysis.stutters[0].type == "repetition"
    assert result.analysis.filler_count == 1
    assert result.analysis.speaking_rate.words_per_minute == 132
    assert result.question_count == 1


def test_parse_nested_analysis_shape():
    content = json.dumps({
        "transcript": "hello there",
        "speaker": "other",
        "analysis": {"tone": {"overall": "calm", "score": 70}, "sentiment": "positive"},
    })

    result = parse_oracle_response(content)

    assert result.speaker == "other"
    assert result.analysis.tone.overall == "calm"
    assert result.analysis.sentiment == "positive"


def test_parse_tolerates_trailing_commas_and_smart_quotes():
    content = '{“transcription”: “ok then”, "fillerWords": [{"word": "uh", "count": 2},],}'

    result = parse_oracle_response(content)

    assert result.transcript == "ok then"
    assert result.analysis.filler_count == 2


def test_parse_recovers_partial_and_invalid_fields():
    """Отсутствующие и битые поля заменяются значениями по умолчанию"""
    content = json.dumps({
        "transcription": "fine",
        "tone": {"overall": "ecstatic", "score": 180},
        "confidence": None,
        "fillerWords": ["like", "like"],
        "stutters": [{"word": "s", "type": "stammer"}],
        "sentiment": "mixed",
    })

    result = parse_oracle_response(content)

    assert result.analysis.tone.overall == "neutral"
    assert result.analysis.tone.score == 100.0
    assert result.analysis.confidence.score is None
    assert result.analysis.filler_count == 2
    assert result.analysis.stutters[0].type == "repetition"
    assert result.analysis.sentiment == "neutral"



def test_parse_keeps_segment_with_bad_nested_fields():
    """Битое вложенное поле не отменяет транскрипт и остальной анализ"""
    content = json.dumps({
        "transcription": "so I I think we should go",
        "stutters": [{"word": "I", "timestamp": "0:03", "type": "repetition"}, "I-I"],
        "fillerWords": [{"word": "um", "count": 2}],
        "pauses": [{"duration": "1.5", "timestamp": "later"}],
        "confidence": {"score": "high", "indicators": "steady voice"},
        "interruptions": {"detected": "yes", "count": 1, "timestamps": ["0:05", 4.5]},
        "tone": "calm",
        "speakingRate": 140,
        "keyInsights": ["good pace", {"note": "x"}, 3],
    })

    result = parse_oracle_response(content)

    assert result.transcript == "so I I think we should go"
    assert result.analysis.filler_count == 2
    assert len(result.analysis.stutters) == 1
    assert result.analysis.stutters[0].timestamp == 0.0
    assert result.analysis.pauses[0].duration == 1.5
    assert result.analysis.pauses[0].timestamp == 0.0
    assert result.analysis.confidence.score is None
    assert result.analysis.confidence.indicators == ["steady voice"]
    assert result.analysis.interruptions.detected is True
    assert result.analysis.interruptions.timestamps == [4.5]
    assert result.analysis.tone.overall == "calm"
    assert result.analysis.speaking_rate.words_per_minute == 140.0
    assert result.analysis.key_insights == ["good pace"]

@pytest.mark.parametrize("content", ["", "not json at all", "[1, 2, 3]", "```json\n{broken\n```"])
def test_parse_failure_returns_default(content):
    result = parse_oracle_response(content)

    assert result.transcript == ""
    assert result.analysis.tone.overall == "neutral"
    assert result.analysis.confidence.score == 50.0
    assert result.analysis.key_insights


def test_clean_json_response_picks_object():
    assert clean_json_response('noise {"a": 1,} trailing') == '{"a": 1}'


@pytest.fixture
def client():
    oracle = GeminiAnalysisClient()
    oracle.api_key = "test-key"
    oracle.client = AsyncMock()
    return oracle


@pytest.mark.asyncio
async def test_analyze_sends_audio_and_parses(client):
    client.client.post.return_value = gemini_response("```json\n" + json.dumps(PAYLOAD) + "\n```")

    result = await client.analyze(b"\x00\x01audio", "audio/webm")

    assert result.transcript.startswith("Um, so")
    args, kwargs = client.client.post.call_args
    assert args[0].endswith(f"/models/{client.model}:generateContent")
    assert kwargs["params"] == {"key": "test-key"}
    inline = kwargs["json"]["contents"][0]["parts"][1]["inline_data"]
    assert inline["mime_type"] == "audio/webm"
    assert base64.b64decode(inline["data"]) == b"\x00\x01audio"


@pytest.mark.asyncio
async def test_analyze_http_error(client):
    client.client.post.return_value = httpx.Response(500, text="internal")

    with pytest.raises(OracleError):
        await client.analyze(b"audio", "audio/webm")


@pytest.mark.asyncio
async def test_analyze_timeout(client):
    client.client.post.side_effect = httpx.ReadTimeout("timed out")

    with pytest.raises(OracleError):
        await client.analyze(b"audio", "audio/webm")


@pytest.mark.asyncio
async def test_analyze_without_candidates(client):
    client.client.post.return_value = httpx.Response(200, json={"candidates": []})

    result = await client.analyze(b"audio", "audio/webm")
    assert result.transcript == ""


@pytest.mark.asyncio
async def test_analyze_requires_key_and_audio(client):
    with pytest.raises(OracleError):
        await client.analyze(b"", "audio/webm")

    client.api_key = None
    with pytest.raises(OracleError):
        await client.analyze(b"audio", "audio/webm")
    client.client.post.assert_not_called()
