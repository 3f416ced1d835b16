from typing import Any, Dict

from pydantic import Field

from convocoach.models.segment import WireModel


class Feedback(WireModel):
    """Подсказка для озвучивания в реальном времени"""
    type: str
    message: str
    priority: int = Field(ge=1, le=3)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at_ms: int = 0
