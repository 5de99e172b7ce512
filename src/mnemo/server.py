import logging
import time
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import NoReturn

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field, StrictInt

from mnemo.application.config import resolve_config
from mnemo.application.factory import get_progress_service
from mnemo.application.progress_service import ProgressService
from mnemo.application.stats.metrics_calculator import MetricsCalculator
from mnemo.application.utils.common import round_half_up
from mnemo.consts import VERSION
from mnemo.domain.constants import DEFAULT_DUE_LIMIT, DEFAULT_FORECAST_DAYS, DEFAULT_NEW_LIMIT
from mnemo.domain.errors import CardNotFoundError, InvalidRatingError

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("mnemo.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"mnemo server v{VERSION} starting up...")
    yield
    # Shutdown
    logger.info("mnemo server shutting down...")


app = FastAPI(
    title="mnemo server",
    description="Spaced-repetition scheduling API for flashcards.",
    version=VERSION,
    lifespan=lifespan,
)


@lru_cache
def get_service() -> ProgressService:
    """One service per process, so per-card locks are shared across requests."""
    return get_progress_service(resolve_config())


def _fail(action: str, e: Exception) -> NoReturn:
    if isinstance(e, InvalidRatingError):
        raise HTTPException(status_code=400, detail=str(e)) from e
    if isinstance(e, CardNotFoundError):
        raise HTTPException(status_code=404, detail=str(e)) from e
    logger.error(f"{action} failed: {e}", exc_info=True)
    raise HTTPException(status_code=500, detail=str(e)) from e


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


start_time = time.time()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


# ==================== USER PROGRESS ====================


@app.get("/progress/{user_id}")
async def get_user_progress(user_id: str, service: ProgressService = Depends(get_service)):
    try:
        return {"result": await service.get_user_progress(user_id)}
    except Exception as e:
        _fail("Get progress", e)


@app.get("/progress/{user_id}/stats")
async def get_user_stats(user_id: str, service: ProgressService = Depends(get_service)):
    try:
        return {"result": await service.get_user_stats(user_id)}
    except Exception as e:
        _fail("Get stats", e)


@app.get("/progress/{user_id}/schedule/{flashcard_id}")
async def get_schedule_preview(
    user_id: str, flashcard_id: str, service: ProgressService = Depends(get_service)
):
    """
    What each rating would do, keyed by rating name (again, hard, good, easy).
    """
    try:
        preview = await service.get_scheduling_preview(user_id, flashcard_id)
        return {"result": {rating.name.lower(): option for rating, option in preview.items()}}
    except Exception as e:
        _fail("Get schedule preview", e)


@app.get("/progress/{user_id}/retrievability/{flashcard_id}")
async def get_retrievability(
    user_id: str, flashcard_id: str, service: ProgressService = Depends(get_service)
):
    try:
        retrievability = await service.get_retrievability(user_id, flashcard_id)
        return {
            "result": {
                "retrievability": retrievability,
                "percentage": round_half_up(retrievability * 100),
            }
        }
    except Exception as e:
        _fail("Get retrievability", e)


@app.get("/progress/{user_id}/metrics/{flashcard_id}")
async def get_card_metrics(
    user_id: str, flashcard_id: str, service: ProgressService = Depends(get_service)
):
    """Derived per-card metrics (accuracy, lapse rate, interval volatility)."""
    try:
        state = await service.get_card(user_id, flashcard_id)
        return {"result": MetricsCalculator(service.selector).enrich(state)}
    except Exception as e:
        _fail("Get metrics", e)


@app.post("/progress/{user_id}/migrate/{flashcard_id}")
async def migrate_to_fsrs(
    user_id: str, flashcard_id: str, service: ProgressService = Depends(get_service)
):
    try:
        progress = await service.migrate_to_fsrs(user_id, flashcard_id)
        return {"result": progress, "message": "Card migrated to FSRS"}
    except Exception as e:
        _fail("Migrate to FSRS", e)


@app.post("/progress/{user_id}/suspend/{flashcard_id}")
async def suspend_card(
    user_id: str, flashcard_id: str, service: ProgressService = Depends(get_service)
):
    try:
        return {"result": await service.suspend_card(user_id, flashcard_id)}
    except Exception as e:
        _fail("Suspend", e)


@app.post("/progress/{user_id}/unsuspend/{flashcard_id}")
async def unsuspend_card(
    user_id: str, flashcard_id: str, service: ProgressService = Depends(get_service)
):
    try:
        return {"result": await service.unsuspend_card(user_id, flashcard_id)}
    except Exception as e:
        _fail("Unsuspend", e)


@app.post("/progress/{user_id}/reset/{flashcard_id}")
async def reset_card(
    user_id: str, flashcard_id: str, service: ProgressService = Depends(get_service)
):
    try:
        return {"result": await service.reset_card(user_id, flashcard_id)}
    except Exception as e:
        _fail("Reset", e)


class InitializeRequest(BaseModel):
    flashcard_ids: list[str]


@app.post("/progress/{user_id}/initialize")
async def initialize_cards(
    user_id: str, req: InitializeRequest, service: ProgressService = Depends(get_service)
):
    try:
        created = await service.initialize_for_flashcards(user_id, req.flashcard_ids)
        return {"result": {"created": created}}
    except Exception as e:
        _fail("Initialize", e)


# ==================== STUDY SESSIONS ====================


@app.get("/study/{user_id}")
async def get_study_session(
    user_id: str,
    newLimit: int = DEFAULT_NEW_LIMIT,
    reviewLimit: int = DEFAULT_DUE_LIMIT,
    learningFirst: bool = True,
    service: ProgressService = Depends(get_service),
):
    try:
        queue = await service.get_study_queue(
            user_id,
            new_limit=newLimit,
            review_limit=reviewLimit,
            learning_first=learningFirst,
        )
        return {"result": queue}
    except Exception as e:
        _fail("Get study session", e)


class AnswerRequest(BaseModel):
    """
    Either ``rating`` (FSRS 1-4) or ``quality`` (legacy SM-2 0-5).
    """

    model_config = ConfigDict(populate_by_name=True)

    rating: StrictInt | None = None
    quality: StrictInt | None = None
    response_time_ms: int | None = Field(default=None, alias="responseTimeMs")
    use_legacy_quality: bool = Field(default=False, alias="useLegacyQuality")


@app.post("/study/{user_id}/answer/{flashcard_id}")
async def submit_answer(
    user_id: str,
    flashcard_id: str,
    req: AnswerRequest,
    service: ProgressService = Depends(get_service),
):
    """
    Submit an answer. Supports both FSRS (rating 1-4) and legacy SM-2 (quality 0-5).
    """
    if req.rating is not None:
        value, is_legacy = req.rating, req.use_legacy_quality
    elif req.quality is not None:
        value, is_legacy = req.quality, True
    else:
        raise HTTPException(
            status_code=400, detail="Either rating (1-4) or quality (0-5) must be provided"
        )

    try:
        progress = await service.process_review(
            user_id,
            flashcard_id,
            value,
            response_time_ms=req.response_time_ms,
            is_legacy_input=is_legacy,
        )
        return {"result": progress}
    except Exception as e:
        _fail("Submit answer", e)


@app.get("/study/{user_id}/forecast")
async def get_daily_forecast(
    user_id: str,
    days: int = DEFAULT_FORECAST_DAYS,
    service: ProgressService = Depends(get_service),
):
    try:
        return {"result": await service.get_daily_forecast(user_id, days)}
    except Exception as e:
        _fail("Get forecast", e)
