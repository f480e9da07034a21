import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from module_1_content_detection.app.config.settings import load_settings as load_detection_settings
from module_1_content_detection.app.errors import InvalidFrame
from module_1_content_detection.app.services.detector import ContentDetector
from module_1_content_detection.app.utils.frames import decode_image
from module_2_blur_decision.adapters.persistence import JsonPersistence
from module_2_blur_decision.app.settings import get_settings
from module_2_blur_decision.core.decision_engine import DecisionEngine
from module_2_blur_decision.core.warning_session import SessionTicker, WarningSessionMachine
from module_2_blur_decision.services.blur_service import BlurDecisionService


logger = logging.getLogger(__name__)
settings = get_settings()

detector = ContentDetector(load_detection_settings())
session = WarningSessionMachine(
    default_seconds=settings.reflection_seconds,
    repeat_penalty_seconds=settings.repeat_penalty_seconds,
    repeat_window_seconds=settings.repeat_window_seconds,
    escalation_seconds=settings.escalation_seconds,
)
persistence = (
    JsonPersistence(settings.history_path, settings.state_snapshot_path, history_limit=settings.history_limit)
    if settings.persist_history
    else None
)
blur_service = BlurDecisionService(
    detector,
    DecisionEngine(settings.thresholds()),
    session,
    persistence,
    blur_on_timeout=settings.blur_on_timeout,
    history_limit=settings.history_limit,
)
ticker = SessionTicker(session, interval_seconds=settings.tick_interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if persistence:
        persistence.save_state(blur_service.snapshot(datetime.now(timezone.utc)))
    if settings.enable_background_ticker:
        ticker.start()
        app.state.ticker = ticker
    try:
        yield
    finally:
        ticker.stop()
        detector.close()


app = FastAPI(title="Module 2 Blur Decision", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


class TierRequest(BaseModel):
    tier: str


def get_service() -> BlurDecisionService:
    return blur_service


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metrics")
async def decision_metrics(service: BlurDecisionService = Depends(get_service)) -> dict:
    return jsonable_encoder(service.metrics())


@app.post("/frames/analyze")
async def analyze_frame(
    file: UploadFile = File(...),
    service: BlurDecisionService = Depends(get_service),
) -> dict:
    payload = await file.read()
    try:
        frame = decode_image(payload)
    except InvalidFrame as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    outcome = await run_in_threadpool(service.process_frame, frame)
    return jsonable_encoder(outcome.model_dump())


@app.get("/warning/status")
async def warning_status(service: BlurDecisionService = Depends(get_service)) -> dict:
    return jsonable_encoder(service.warning_status().model_dump())


@app.post("/warning/continue")
async def warning_continue(service: BlurDecisionService = Depends(get_service)) -> dict:
    if not service.continue_warning():
        snapshot = service.warning_status()
        raise HTTPException(
            status_code=409,
            detail=f"Reflection period not complete ({snapshot.remaining_seconds}s remaining)",
        )
    return jsonable_encoder(service.warning_status().model_dump())


@app.post("/warning/close")
async def warning_close(service: BlurDecisionService = Depends(get_service)) -> dict:
    service.close_warning()
    return jsonable_encoder(service.warning_status().model_dump())


@app.post("/tier")
async def set_tier(request: TierRequest, service: BlurDecisionService = Depends(get_service)) -> dict:
    try:
        changed = service.set_performance_tier(request.tier)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"Unknown performance tier '{request.tier}'") from exc
    return {"tier": service.detector.context.tier.value, "changed": changed}


@app.get("/history")
async def decision_history(
    limit: Optional[int] = Query(default=None, ge=1),
    service: BlurDecisionService = Depends(get_service),
) -> list[dict]:
    history = service.history(limit)
    return jsonable_encoder([record.model_dump() for record in history])


@app.post("/reset", status_code=204)
async def reset(service: BlurDecisionService = Depends(get_service)) -> None:
    service.reset()


def serve() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level="info")


if __name__ == "__main__":
    serve()
