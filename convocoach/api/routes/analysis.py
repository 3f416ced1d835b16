import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from convocoach.api.deps import get_oracle, get_session_manager, get_store, get_user_id
from convocoach.models.segment import Segment, SegmentAnalysis, SegmentCreate
from convocoach.services.oracle import AnalysisOracle, OracleError
from convocoach.services.pipeline import SessionManager
from convocoach.services.state import now_ms
from convocoach.services.storage import StoreError, generate_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["analysis"])


@router.post("/analyze", response_model=SegmentAnalysis)
async def analyze_audio(
    file: UploadFile = File(...),
    oracle: AnalysisOracle = Depends(get_oracle),
):
    """
    Разовый анализ аудиофрагмента без привязки к разговору.

    Возвращает транскрипт и анализ:
    - слова-паразиты и запинки
    - паузы
    - тон, уверенность, тональность
    - темп речи
    """
    audio = await file.read()
    if not audio:
        raise HTTPException(status_code=400, detail="Empty audio file")

    try:
        return await oracle.analyze(audio, file.content_type or "audio/webm")
    except OracleError as e:
        logger.error(f"Audio analysis failed: {e}")
        raise HTTPException(
            status_code=502, detail=f"Failed to analyze audio: {e}")


@router.post("/segments", response_model=Segment)
async def save_segment(
    payload: SegmentCreate,
    user_id: str = Depends(get_user_id),
    store=Depends(get_store),
    manager: SessionManager = Depends(get_session_manager),
):
    """
    Принимает уже проанализированный сегмент.
    При живой сессии сегмент проходит через метрики и подсказки.
    """
    try:
        if store.get(payload.conversation_id, user_id) is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Storage unavailable: {e}")

    analysis = SegmentAnalysis.model_validate(
        payload.model_dump(include=set(SegmentAnalysis.model_fields))
    )
    if not analysis.timestamp_ms:
        analysis = analysis.model_copy(update={"timestamp_ms": now_ms()})

    session = manager.get(payload.conversation_id, user_id)
    if session is not None and session.active:
        result = await session.ingest(analysis)
        if result.record is None:
            raise HTTPException(status_code=503, detail="Failed to save segment")
        return result.record

    segment = Segment(
        **analysis.model_dump(include=set(SegmentAnalysis.model_fields)),
        id=generate_id(),
        conversation_id=payload.conversation_id,
        user_id=user_id,
        created_at=now_ms(),
    )
    try:
        return store.append(segment)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Failed to save segment: {e}")
