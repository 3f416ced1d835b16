import base64
import json
import logging
import re
from typing import Any, Dict, Optional, Protocol

import httpx
from pydantic import ValidationError

from convocoach.core.config import settings
from convocoach.models.segment import AnalysisDetails, Confidence, SegmentAnalysis, Tone

logger = logging.getLogger(__name__)

ANALYSIS_FIELDS = (
    "stutters",
    "pauses",
    "tone",
    "fillerWords",
    "speakingRate",
    "confidence",
    "interruptions",
    "sentiment",
    "keyInsights",
)

ANALYSIS_PROMPT = """Transcribe and analyze this audio. Return valid JSON:
{
  "transcription": "word-for-word transcription",
  "stutters": [{"word": "repeated word", "timestamp": 0, "type": "repetition"}],
  "pauses": [{"duration": 1.0, "timestamp": 5, "type": "silence"}],
  "tone": {"overall": "confident", "score": 75},
  "fillerWords": [{"word": "um", "count": 2}],
  "speakingRate": {"wordsPerMinute": 150, "variance": "consistent"},
  "confidence": {"score": 80, "indicators": ["clear speech"]},
  "interruptions": {"detected": false, "count": 0, "timestamps": []},
  "sentiment": "neutral",
  "keyInsights": ["speaks clearly"]
}
Allowed values: stutter type repetition|prolongation|block; pause type filler|silence;
tone overall confident|nervous|uncertain|aggressive|calm|neutral;
sentiment positive|neutral|negative. Scores are 0-100."""

_FENCED_JSON = (
    re.compile(r"```json\s*\n([\s\S]*?)\n```"),
    re.compile(r"```\s*\n([\s\S]*?)\n```"),
)


class OracleError(Exception):
    """Ошибка обращения к модели анализа речи"""
    pass


class AnalysisOracle(Protocol):
    async def analyze(self, audio: bytes, mime_type: str) -> SegmentAnalysis:
        ...


def default_analysis(note: str = "Could not parse analysis response") -> SegmentAnalysis:
    """Запись по умолчанию, когда ответ оракула не удалось разобрать."""
    return SegmentAnalysis(
        transcript="",
        analysis=AnalysisDetails(
            tone=Tone(overall="neutral", score=50.0),
            confidence=Confidence(score=50.0),
            sentiment="neutral",
            key_insights=[note],
        ),
    )


def clean_json_response(content: str) -> str:
    """Аккуратно извлекает JSON из произвольного текста.

    Стратегия:
    - Взять содержимое блока ```json ... ```, если он есть
    - Найти первую '{' и последнюю '}' и взять подстроку
    - Заменить «умные» кавычки на обычные
    - Удалить хвостовые запятые перед '}' и ']'
    """
    if not content or not isinstance(content, str):
        return content

    s = content
    for pattern in _FENCED_JSON:
        match = pattern.search(s)
        if match:
            s = match.group(1)
            break

    s = s.replace('“', '"').replace('”', '"')

    first = s.find('{')
    last = s.rfind('}')
    if first != -1 and last != -1 and last > first:
        s = s[first:last + 1]

    s = re.sub(r',\s*(?=[}\]])', '', s)
    return s.strip()


def normalize_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    """Приводит плоский ответ оракула к форме SegmentAnalysis."""
    if isinstance(data.get("analysis"), dict):
        analysis = dict(data["analysis"])
    else:
        analysis = {key: data[key] for key in ANALYSIS_FIELDS if key in data}
    # sentiment иногда приходит на верхнем уровне
    if "sentiment" not in analysis and "sentiment" in data:
        analysis["sentiment"] = data["sentiment"]

    return {
        "transcription": data.get("transcription", data.get("transcript", "")),
        "speaker": data.get("speaker", "user"),
        "analysis": analysis,
    }


def parse_oracle_response(content: str) -> SegmentAnalysis:
    """
    Явный шаг разбора ответа оракула.
    Никогда не падает: при любой ошибке возвращает запись по умолчанию.
    """
    cleaned = clean_json_response(content)
    try:
        data = json.loads(cleaned)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Failed to parse analysis response: {e}")
        logger.debug(f"Raw content: {str(content)[:500]}...")
        return default_analysis()

    if not isinstance(data, dict):
        logger.warning("Analysis response is not a JSON object")
        return default_analysis()

    try:
        return SegmentAnalysis.model_validate(normalize_payload(data))
    except ValidationError as e:
        logger.warning(f"Analysis response does not match schema: {e}")
        return default_analysis()


class GeminiAnalysisClient:
    """Клиент модели анализа речи (Gemini generateContent)"""

    def __init__(self):
        self.api_key = settings.gemini_api_key.get_secret_value(
        ) if settings.gemini_api_key else None
        self.base_url = settings.gemini_base_url
        self.model = settings.gemini_model
        self.timeout = settings.gemini_timeout
        self.max_tokens = settings.gemini_max_tokens

        self.client = httpx.AsyncClient(
            timeout=self.timeout,
            limits=httpx.Limits(
                max_keepalive_connections=5, max_connections=10)
        )

    def _build_request(self, audio: bytes, mime_type: str) -> Dict[str, Any]:
        return {
            "contents": [{
                "parts": [
                    {"text": ANALYSIS_PROMPT},
                    {
                        "inline_data": {
                            "mime_type": mime_type,
                            "data": base64.b64encode(audio).decode("ascii"),
                        }
                    },
                ]
            }],
            "generationConfig": {
                "temperature": 0.2,
                "topK": 30,
                "topP": 0.9,
                "maxOutputTokens": self.max_tokens,
                "responseMimeType": "application/json",
            },
        }

    async def analyze(self, audio: bytes, mime_type: str) -> SegmentAnalysis:
        if not self.api_key:
            raise OracleError("Gemini API key not configured")
        if not audio:
            raise OracleError("No audio data provided")

        url = f"{self.base_url}/models/{self.model}:generateContent"
        logger.info(f"Sending {len(audio)} bytes of {mime_type} audio for analysis")

        try:
            response = await self.client.post(
                url,
                params={"key": self.api_key},
                json=self._build_request(audio, mime_type),
            )
        except httpx.TimeoutException as e:
            raise OracleError(f"Analysis request timed out: {e}")
        except httpx.RequestError as e:
            raise OracleError(f"Analysis request failed: {e}")

        if response.status_code != 200:
            logger.error(f"Gemini API error {response.status_code}: {response.text[:500]}")
            raise OracleError(f"Gemini API returned {response.status_code}")

        try:
            result = response.json()
        except ValueError as e:
            raise OracleError(f"Gemini API returned invalid JSON: {e}")

        content = self._extract_text(result)
        if content is None:
            logger.warning("No candidates in Gemini response")
            return default_analysis("Empty analysis response")

        return parse_oracle_response(content)

    @staticmethod
    def _extract_text(result: Dict[str, Any]) -> Optional[str]:
        try:
            return result["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return None

    async def close(self):
        """Закрывает HTTP-клиент"""
        try:
            await self.client.aclose()
            logger.debug("Gemini HTTP client closed")
        except Exception as e:
            logger.debug(f"Failed to close Gemini client: {e}")
