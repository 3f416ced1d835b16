"""
Озвучивание подсказок.

Само воспроизведение звука делает клиент; сервер только синтезирует речь
и отдаёт байты аудио в колбэк.
"""
import logging
from typing import Awaitable, Callable, Optional

import httpx

from convocoach.core.config import settings

logger = logging.getLogger(__name__)

AudioCallback = Callable[[str, bytes], Awaitable[None]]


class SpeechSynthesisError(Exception):
    """Ошибка синтеза речи"""
    pass


class LogSpeaker:
    """Пишет подсказку в лог вместо озвучивания."""

    async def speak(self, text: str) -> None:
        logger.info(f"[feedback] {text}")


class ElevenLabsSpeaker:
    """Клиент text-to-speech ElevenLabs"""

    def __init__(self, on_audio: Optional[AudioCallback] = None):
        self.api_key = settings.elevenlabs_api_key.get_secret_value(
        ) if settings.elevenlabs_api_key else None
        self.base_url = settings.elevenlabs_base_url
        self.voice_id = settings.elevenlabs_voice_id
        self.model = settings.elevenlabs_model
        self.on_audio = on_audio

        self.client = httpx.AsyncClient(
            timeout=settings.elevenlabs_timeout,
            limits=httpx.Limits(
                max_keepalive_connections=2, max_connections=4)
        )

    async def synthesize(self, text: str) -> bytes:
        if not self.api_key:
            raise SpeechSynthesisError("ElevenLabs API key not configured")

        url = f"{self.base_url}/text-to-speech/{self.voice_id}"
        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": self.api_key,
        }
        payload = {
            "text": text,
            "model_id": self.model,
            "voice_settings": {
                "stability": 0.5,
                "similarity_boost": 0.5,
            },
        }

        try:
            response = await self.client.post(url, json=payload, headers=headers)
        except httpx.RequestError as e:
            raise SpeechSynthesisError(f"ElevenLabs request failed: {e}")

        if response.status_code != 200:
            logger.error(f"ElevenLabs API error {response.status_code}: {response.text[:200]}")
            raise SpeechSynthesisError(
                f"ElevenLabs API returned {response.status_code}")

        return response.content

    async def speak(self, text: str) -> None:
        audio = await self.synthesize(text)
        logger.debug(f"Synthesized {len(audio)} bytes of feedback audio")
        if self.on_audio is not None:
            await self.on_audio(text, audio)

    async def close(self):
        """Закрывает HTTP-клиент"""
        try:
            await self.client.aclose()
        except Exception as e:
            logger.debug(f"Failed to close ElevenLabs client: {e}")
