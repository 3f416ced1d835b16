import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from convocoach.api.deps import get_summary_service, get_user_id
from convocoach.models.summary import Summary
from convocoach.services.scoring import EmptyInput
from convocoach.services.storage import StoreError
from convocoach.services.summary import SummaryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["summaries"])


@router.post("/conversations/{conversation_id}/summary", response_model=Summary)
async def generate_summary(
    conversation_id: str,
    user_id: str = Depends(get_user_id),
    summaries: SummaryService = Depends(get_summary_service),
):
    """
    Строит (или перестраивает) итоговый отчёт по сохранённым сегментам.
    При недоступном хранилище возвращает заглушку с isFallback=true.
    """
    try:
        return summaries.generate_or_fallback(conversation_id, user_id)
    except EmptyInput:
        raise HTTPException(status_code=404, detail="No data to summarize")


@router.get("/conversations/{conversation_id}/summary", response_model=Summary)
async def get_summary(
    conversation_id: str,
    user_id: str = Depends(get_user_id),
    summaries: SummaryService = Depends(get_summary_service),
):
    try:
        summary = summaries.get(conversation_id, user_id)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Storage unavailable: {e}")
    if summary is None:
        raise HTTPException(status_code=404, detail="Summary not found")
    return summary


@router.get("/summaries", response_model=List[Summary])
async def list_summaries(
    user_id: str = Depends(get_user_id),
    summaries: SummaryService = Depends(get_summary_service),
):
    """Все отчёты пользователя, новые первыми."""
    try:
        return summaries.list_for_user(user_id)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Storage unavailable: {e}")
