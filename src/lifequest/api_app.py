from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, AsyncIterator

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from lifequest import achievements
from lifequest.codec import desire_to_doc, objective_to_doc, stats_to_doc, subtask_to_doc
from lifequest.config import generation_config, load_settings, load_tuning
from lifequest.engine import ActionOutcome, ProgressionEngine
from lifequest.errors import (
    ExternalServiceError,
    LifeQuestError,
    NotReadyError,
    StoreWriteError,
    ValidationError,
)
from lifequest.generation import HttpGenerationClient
from lifequest.logging_setup import setup_logging
from lifequest.messages import cooldown_message, daily_reward_message, outcome_notices
from lifequest.models import Objective
from lifequest.sqlite_store import SqliteDocumentStore

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[LifeQuestError], int] = {
    ValidationError: 400,
    NotReadyError: 503,
    StoreWriteError: 502,
    ExternalServiceError: 502,
}


def _require_auth(request: Request, token: str | None) -> None:
    if not token:
        return
    header = request.headers.get("x-api-token")
    query = request.query_params.get("token")
    if header == token or query == token:
        return
    raise HTTPException(status_code=401, detail="Unauthorized")


def _status_for(exc: LifeQuestError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


class ObjectiveCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    difficulty: str = "Normal"
    total_progress: int = Field(default=100, gt=0)


class ObjectiveUpdateRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    difficulty: str | None = None
    total_progress: int | None = Field(default=None, gt=0)


class SubtaskCreateRequest(BaseModel):
    text: str = Field(min_length=1, max_length=200)
    xp_reward: int = Field(default=0, ge=0)
    gold_reward: int = Field(default=0, ge=0)
    progress_contribution: int = Field(default=0, ge=0)
    due_date: date | None = None
    is_punishment: bool = False


class SatisfactionRequest(BaseModel):
    value: int = Field(ge=0, le=100)


class VitalityRequest(BaseModel):
    amount: int


def _objective_view(engine: ProgressionEngine, objective: Objective) -> dict[str, Any]:
    return {
        "id": objective.id,
        **objective_to_doc(objective),
        "subtasks": [{"id": s.id, **subtask_to_doc(s)} for s in engine.book.subtasks_for(objective.id)],
    }


def _outcome_view(outcome: ActionOutcome) -> dict[str, Any]:
    streak = outcome.stats.current_streak if outcome.streak_changed else None
    body: dict[str, Any] = {
        "stats": stats_to_doc(outcome.stats),
        "levelUps": list(outcome.level_ups),
        "unlocked": list(outcome.unlocked),
        "needsRest": outcome.needs_rest,
        "notices": outcome_notices(outcome.level_ups, outcome.unlocked, outcome.needs_rest, streak=streak),
    }
    if outcome.objective is not None:
        body["objective"] = {"id": outcome.objective.id, **objective_to_doc(outcome.objective)}
    if outcome.subtask is not None:
        body["subtask"] = {"id": outcome.subtask.id, **subtask_to_doc(outcome.subtask)}
    return body


def build_api_app(
    engine: ProgressionEngine,
    api_token: str | None,
    listen: bool = True,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if not engine.ready:
            await engine.start(listen=listen)
        try:
            yield
        finally:
            await engine.stop()

    app = FastAPI(title="LifeQuest", version="1.0.0", lifespan=lifespan)

    @app.exception_handler(LifeQuestError)
    async def handle_engine_error(_request: Request, exc: LifeQuestError) -> JSONResponse:
        status = _status_for(exc)
        body: dict[str, Any] = {"detail": str(exc)}
        if isinstance(exc, StoreWriteError):
            body["paths"] = list(exc.paths)
        return JSONResponse(status_code=status, content=body)

    @app.get("/stats")
    async def api_stats(request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        return {"stats": stats_to_doc(engine.stats)}

    @app.get("/objectives")
    async def api_objectives(request: Request, include_completed: bool = False) -> dict[str, Any]:
        _require_auth(request, api_token)
        rows = [
            _objective_view(engine, o)
            for o in engine.book.objectives.values()
            if include_completed or not o.is_completed
        ]
        return {"objectives": rows}

    @app.get("/achievements")
    async def api_achievements(request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        rows = [
            {
                "id": p.achievement.id,
                "name": p.achievement.name,
                "description": p.achievement.description,
                "current": p.current,
                "threshold": p.achievement.threshold,
                "unlocked": p.unlocked,
            }
            for p in achievements.progress(engine.stats, engine.book)
        ]
        return {"achievements": rows}

    @app.post("/objectives")
    async def api_create_objective(request: Request, payload: ObjectiveCreateRequest) -> dict[str, Any]:
        _require_auth(request, api_token)
        objective = await engine.create_objective(
            payload.name,
            description=payload.description,
            difficulty=payload.difficulty,
            total_progress=payload.total_progress,
        )
        return {"objective": _objective_view(engine, objective)}

    @app.patch("/objectives/{objective_id}")
    async def api_update_objective(
        objective_id: str, request: Request, payload: ObjectiveUpdateRequest
    ) -> dict[str, Any]:
        _require_auth(request, api_token)
        objective = await engine.update_objective(
            objective_id,
            name=payload.name,
            description=payload.description,
            difficulty=payload.difficulty,
            total_progress=payload.total_progress,
        )
        return {"objective": _objective_view(engine, objective)}

    @app.post("/objectives/{objective_id}/select")
    async def api_select_objective(objective_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        changed = await engine.select_objective(objective_id)
        return {"ok": True, "changed": [o.id for o in changed]}

    @app.post("/objectives/{objective_id}/complete")
    async def api_complete_objective(objective_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        return _outcome_view(await engine.complete_objective(objective_id))

    @app.delete("/objectives/{objective_id}")
    async def api_delete_objective(objective_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        objective = await engine.delete_objective(objective_id)
        return {"ok": True, "id": objective.id}

    @app.post("/subtasks")
    async def api_add_subtask(request: Request, payload: SubtaskCreateRequest) -> dict[str, Any]:
        _require_auth(request, api_token)
        subtask = await engine.add_subtask(
            payload.text,
            xp_reward=payload.xp_reward,
            gold_reward=payload.gold_reward,
            progress_contribution=payload.progress_contribution,
            due_date=payload.due_date,
            is_punishment=payload.is_punishment,
        )
        return {"subtask": {"id": subtask.id, "objectiveId": subtask.objective_id, **subtask_to_doc(subtask)}}

    @app.post("/objectives/{objective_id}/subtasks/{subtask_id}/toggle")
    async def api_toggle_subtask(objective_id: str, subtask_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        return _outcome_view(await engine.toggle_subtask(objective_id, subtask_id))

    @app.delete("/objectives/{objective_id}/subtasks/{subtask_id}")
    async def api_delete_subtask(objective_id: str, subtask_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        subtask = await engine.delete_subtask(objective_id, subtask_id)
        return {"ok": True, "id": subtask.id}

    @app.post("/daily-reward")
    async def api_daily_reward(request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        outcome = await engine.claim_daily_reward()
        body = _outcome_view(outcome)
        body["claimed"] = outcome.reward_claimed
        if outcome.reward_claimed:
            tuning = engine.tuning
            body["notices"].insert(0, daily_reward_message(tuning["daily_reward_xp"], tuning["daily_reward_gold"]))
        elif outcome.cooldown_remaining is not None:
            body["cooldownSeconds"] = int(outcome.cooldown_remaining.total_seconds())
            body["notices"].insert(0, cooldown_message(outcome.cooldown_remaining))
        return body

    @app.post("/pomodoro")
    async def api_pomodoro(request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        return _outcome_view(await engine.finish_pomodoro())

    @app.post("/satisfaction")
    async def api_satisfaction(request: Request, payload: SatisfactionRequest) -> dict[str, Any]:
        _require_auth(request, api_token)
        return _outcome_view(await engine.record_satisfaction(payload.value))

    @app.post("/vitality")
    async def api_vitality(request: Request, payload: VitalityRequest) -> dict[str, Any]:
        _require_auth(request, api_token)
        return _outcome_view(await engine.change_vitality(payload.amount))

    @app.post("/tutorial/complete")
    async def api_tutorial(request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        return _outcome_view(await engine.complete_tutorial())

    @app.get("/daily-desire")
    async def api_daily_desire(request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        return {"desire": desire_to_doc(await engine.daily_desire())}

    @app.post("/daily-desire/claim")
    async def api_claim_desire(request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        return _outcome_view(await engine.claim_daily_desire())

    @app.post("/objectives/{objective_id}/suggest-subtasks")
    async def api_suggest_subtasks(objective_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        suggestions = await engine.suggest_subtasks(objective_id)
        return {"suggestions": [s.model_dump() for s in suggestions]}

    @app.get("/objectives/{objective_id}/image")
    async def api_objective_image(objective_id: str, request: Request) -> Response:
        _require_auth(request, api_token)
        return Response(content=await engine.objective_image(objective_id), media_type="image/png")

    @app.get("/advice")
    async def api_advice(request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        return {"advice": await engine.advice()}

    return app


def run_api() -> None:
    setup_logging()
    settings = load_settings()
    cfg = generation_config(settings)
    engine = ProgressionEngine(
        SqliteDocumentStore(settings.database_path),
        settings.user_id,
        tz_name=settings.tz,
        tuning=load_tuning(settings.tuning_path),
        generator=HttpGenerationClient(cfg) if cfg else None,
    )
    logger.info("starting api user_id=%s host=%s port=%s", settings.user_id, settings.api_host, settings.api_port)
    app = build_api_app(engine, settings.api_token)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
