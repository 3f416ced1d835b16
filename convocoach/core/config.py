from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, SecretStr


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Capture window produced by the recording client
    segment_duration_ms: int = Field(
        default=7000, alias="SEGMENT_DURATION_MS"
    )

    # Feedback pacing
    feedback_cooldown_ms: int = Field(
        default=5000, alias="FEEDBACK_COOLDOWN_MS"
    )
    feedback_grace_ms: int = Field(
        default=5000, alias="FEEDBACK_GRACE_MS"
    )
    # Comma separated; empty string means "use the built-in default set"
    feedback_one_shot_types: str = Field(
        default="", alias="FEEDBACK_ONE_SHOT_TYPES"
    )

    # Feedback thresholds
    monologue_segment_threshold: int = Field(
        default=2, alias="MONOLOGUE_SEGMENT_THRESHOLD"
    )
    balance_min_duration_ms: int = Field(
        default=30000, alias="BALANCE_MIN_DURATION_MS"
    )
    max_speaking_percent: float = Field(
        default=70.0, alias="MAX_SPEAKING_PERCENT"
    )
    min_speaking_percent: float = Field(
        default=30.0, alias="MIN_SPEAKING_PERCENT"
    )
    fast_pace_wpm: float = Field(default=180.0, alias="FAST_PACE_WPM")
    slow_pace_wpm: float = Field(default=120.0, alias="SLOW_PACE_WPM")
    min_pace_wpm: float = Field(default=20.0, alias="MIN_PACE_WPM")
    filler_threshold: int = Field(default=2, alias="FILLER_THRESHOLD")
    question_prompt_ms: int = Field(
        default=15000, alias="QUESTION_PROMPT_MS"
    )
    low_confidence_score: float = Field(
        default=50.0, alias="LOW_CONFIDENCE_SCORE"
    )
    high_confidence_score: float = Field(
        default=85.0, alias="HIGH_CONFIDENCE_SCORE"
    )

    # Playback queue
    playback_gap_sec: float = Field(default=2.0, alias="PLAYBACK_GAP_SEC")
    playback_max_queue: int = Field(default=5, alias="PLAYBACK_MAX_QUEUE")

    # How long the end-of-conversation flow waits for the last segment
    final_segment_grace_sec: float = Field(
        default=20.0, alias="FINAL_SEGMENT_GRACE_SEC"
    )

    # Storage: "sqlite" or "memory"
    store_backend: str = Field(default="sqlite", alias="STORE_BACKEND")
    db_path: str = Field(default="./data/convocoach.db", alias="DB_PATH")

    # Gemini speech analysis
    gemini_api_key: Optional[SecretStr] = Field(
        default=None, alias="GEMINI_API_KEY"
    )
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        alias="GEMINI_BASE_URL"
    )
    gemini_model: str = Field(
        default="gemini-2.5-flash", alias="GEMINI_MODEL"
    )
    gemini_timeout: int = Field(default=30, alias="GEMINI_TIMEOUT")
    gemini_max_tokens: int = Field(
        default=4192, alias="GEMINI_MAX_TOKENS"
    )

    # ElevenLabs voice feedback
    elevenlabs_enabled: bool = Field(
        default=False, alias="ELEVENLABS_ENABLED"
    )
    elevenlabs_api_key: Optional[SecretStr] = Field(
        default=None, alias="ELEVENLABS_API_KEY"
    )
    elevenlabs_base_url: str = Field(
        default="https://api.elevenlabs.io/v1", alias="ELEVENLABS_BASE_URL"
    )
    elevenlabs_voice_id: str = Field(
        default="21m00Tcm4TlvDq8ikWAM", alias="ELEVENLABS_VOICE_ID"
    )
    elevenlabs_model: str = Field(
        default="eleven_monolingual_v1", alias="ELEVENLABS_MODEL"
    )
    elevenlabs_timeout: int = Field(default=15, alias="ELEVENLABS_TIMEOUT")


settings = Settings()
