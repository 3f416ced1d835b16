import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from convocoach.api.deps import get_session_manager, get_store, get_summary_service, get_user_id
from convocoach.models.conversation import Conversation, ConversationStart
from convocoach.services.pipeline import CaptureResult, SessionManager
from convocoach.services.scoring import EmptyInput
from convocoach.services.storage import ConversationNotFound, StoreError
from convocoach.services.summary import SummaryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


def _capture_response(result: CaptureResult) -> Dict[str, Any]:
    return {
        "skipped": result.skipped,
        "reason": result.reason,
        "saved": result.saved,
        "segment": result.segment.model_dump(by_alias=True) if result.segment else None,
        "feedback": result.feedback.model_dump(by_alias=True) if result.feedback else None,
        "state": result.state,
    }


@router.post("/start", response_model=Conversation)
async def start_conversation(
    payload: Optional[ConversationStart] = None,
    user_id: str = Depends(get_user_id),
    store=Depends(get_store),
    manager: SessionManager = Depends(get_session_manager),
):
    """
    Создаёт разговор и открывает для него живую сессию.
    """
    title = payload.title if payload else None
    try:
        conversation = store.create(user_id, title)
    except StoreError as e:
        raise HTTPException(
            status_code=503, detail=f"Failed to create conversation: {e}")

    manager.open(conversation.id, user_id, started_at_ms=conversation.started_at)
    logger.info(f"Conversation {conversation.id} started for user {user_id}")
    return conversation


@router.post("/{conversation_id}/audio")
async def capture_audio(
    conversation_id: str,
    file: UploadFile = File(...),
    speaker: Optional[str] = Form(default=None),
    user_id: str = Depends(get_user_id),
    manager: SessionManager = Depends(get_session_manager),
):
    """
    Один цикл записи: аудио -> анализ -> метрики -> подсказка.

    Если предыдущий цикл ещё анализируется, этот пропускается
    (skipped=true, reason=busy).
    """
    session = manager.get(conversation_id, user_id)
    if session is None:
        raise HTTPException(status_code=404, detail="No live session for this conversation")

    audio = await file.read()
    if not audio:
        raise HTTPException(status_code=400, detail="Empty audio chunk")

    speaker_label = speaker if speaker in ("user", "other") else None
    result = await session.capture(audio, file.content_type or "audio/webm", speaker_label)
    return _capture_response(result)


@router.get("/{conversation_id}/state")
async def get_state(
    conversation_id: str,
    user_id: str = Depends(get_user_id),
    manager: SessionManager = Depends(get_session_manager),
):
    session = manager.get(conversation_id, user_id)
    if session is None:
        raise HTTPException(status_code=404, detail="No live session for this conversation")
    return {
        "conversationId": conversation_id,
        "active": session.active,
        "pendingFeedback": session.dispatcher.pending,
        "state": session.state.snapshot(),
    }


@router.post("/{conversation_id}/stop")
async def stop_conversation(
    conversation_id: str,
    user_id: str = Depends(get_user_id),
    manager: SessionManager = Depends(get_session_manager),
):
    """Останавливает запись и подсказки без завершения разговора."""
    if manager.get(conversation_id, user_id) is None:
        raise HTTPException(status_code=404, detail="No live session for this conversation")
    manager.stop(conversation_id)
    return {"conversationId": conversation_id, "stopped": True}


@router.post("/{conversation_id}/end")
async def end_conversation(
    conversation_id: str,
    user_id: str = Depends(get_user_id),
    store=Depends(get_store),
    manager: SessionManager = Depends(get_session_manager),
    summaries: SummaryService = Depends(get_summary_service),
):
    """
    Завершает разговор: дожидается анализа последнего сегмента,
    фиксирует время окончания и строит итоговый отчёт.
    """
    final_segment_analyzed = True
    if manager.get(conversation_id, user_id) is not None:
        final_segment_analyzed = await manager.finish(conversation_id)

    try:
        ended = store.end(conversation_id, user_id)
    except ConversationNotFound:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except StoreError as e:
        raise HTTPException(
            status_code=503, detail=f"Failed to end conversation: {e}")

    summary = None
    try:
        summary = summaries.generate_or_fallback(conversation_id, user_id)
    except EmptyInput:
        logger.info(f"Conversation {conversation_id} ended without segments, no summary")

    return {
        "conversation": ended.model_dump(by_alias=True),
        "finalSegmentAnalyzed": final_segment_analyzed,
        "summary": summary.model_dump(by_alias=True) if summary else None,
    }
