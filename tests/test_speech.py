from unittest.mock import AsyncMock

import httpx
import pytest

from convocoach.services.speech import ElevenLabsSpeaker, LogSpeaker, SpeechSynthesisError


@pytest.fixture
def speaker():
    on_audio = AsyncMock()
    tts = ElevenLabsSpeaker(on_audio=on_audio)
    tts.api_key = "xi-test"
    tts.client = AsyncMock()
    return tts


@pytest.mark.asyncio
async def test_speak_hands_audio_to_callback(speaker):
    speaker.client.post.return_value = httpx.Response(200, content=b"ID3mp3")

    await speaker.speak("Try slowing down.")

    speaker.on_audio.assert_awaited_once_with("Try slowing down.", b"ID3mp3")
    _, kwargs = speaker.client.post.call_args
    assert kwargs["headers"]["xi-api-key"] == "xi-test"
    assert kwargs["json"]["text"] == "Try slowing down."


@pytest.mark.asyncio
async def test_synthesis_errors(speaker):
    speaker.client.post.return_value = httpx.Response(401, text="unauthorized")
    with pytest.raises(SpeechSynthesisError):
        await speaker.synthesize("hi")

    speaker.client.post.side_effect = httpx.ConnectError("refused")
    with pytest.raises(SpeechSynthesisError):
        await speaker.synthesize("hi")

    speaker.api_key = None
    with pytest.raises(SpeechSynthesisError):
        await speaker.speak("hi")
    speaker.on_audio.assert_not_awaited()


@pytest.mark.asyncio
async def test_log_speaker(caplog):
    with caplog.at_level("INFO"):
        await LogSpeaker().speak("Nice positive energy.")
    assert "Nice positive energy." in caplog.text
