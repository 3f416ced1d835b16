import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from convocoach.api.deps import get_oracle, get_session_manager, get_speaker
from convocoach.api.routes import analysis, conversations, summaries
from convocoach.core.config import settings

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Закрываем только то, что реально было создано за время работы
    if get_session_manager.cache_info().currsize:
        get_session_manager().stop_all()
    for provider in (get_oracle, get_speaker):
        if provider.cache_info().currsize:
            client = provider()
            if hasattr(client, "close"):
                await client.close()
    logger.info("ConvoCoach stopped")


app = FastAPI(
    title="ConvoCoach",
    description="Real-time conversation coaching: live metrics, spoken nudges and report cards",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(conversations.router)
app.include_router(analysis.router)
app.include_router(summaries.router)


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
