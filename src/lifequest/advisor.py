from __future__ import annotations

import logging
from datetime import date
from typing import Any

import pydantic
from pydantic import BaseModel, Field

from lifequest.constants import effective_tuning
from lifequest.errors import ExternalServiceError
from lifequest.generation import GenerationService, parse_json_payload
from lifequest.models import DailyDesire, Objective, PlayerStats

logger = logging.getLogger(__name__)

MAX_SUGGESTED_SUBTASKS = 8


class SubtaskSuggestion(BaseModel):
    text: str = Field(min_length=1, max_length=200)
    xp_reward: int = Field(default=10, ge=0, le=500)
    gold_reward: int = Field(default=5, ge=0, le=500)
    progress_contribution: int = Field(default=10, ge=0)


class DesireSuggestion(BaseModel):
    text: str = Field(min_length=1, max_length=200)
    time_limit_minutes: int | None = Field(default=None, ge=1, le=240)


SUBTASK_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "subtasks": {
            "type": "array",
            "items": SubtaskSuggestion.model_json_schema(),
        }
    },
    "required": ["subtasks"],
}


def _subtask_prompt(objective: Objective) -> str:
    return (
        "You are a quest designer for a life RPG. Break the quest below into 3-6 concrete subtasks. "
        f"The progress contributions should add up to roughly {objective.total_progress}. "
        'Return JSON only: {"subtasks": [{"text": str, "xp_reward": int, "gold_reward": int, '
        '"progress_contribution": int}]}.\n'
        f"Quest: {objective.name}\n"
        f"Description: {objective.description or '-'}\n"
        f"Difficulty: {objective.difficulty}"
    )


async def suggest_subtasks(service: GenerationService, objective: Objective) -> list[SubtaskSuggestion]:
    text = await service.generate_text(_subtask_prompt(objective), schema=SUBTASK_SCHEMA)
    payload = parse_json_payload(text)
    items = payload.get("subtasks") if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        raise ExternalServiceError("subtask suggestions are not a list")

    suggestions: list[SubtaskSuggestion] = []
    for item in items[:MAX_SUGGESTED_SUBTASKS]:
        try:
            suggestions.append(SubtaskSuggestion.model_validate(item))
        except pydantic.ValidationError:
            logger.info("dropping malformed subtask suggestion objective_id=%s", objective.id)
    if not suggestions:
        raise ExternalServiceError("no usable subtask suggestions")
    return suggestions


async def generate_desire(
    service: GenerationService,
    today: date,
    tuning: dict[str, int] | None = None,
) -> DailyDesire:
    cfg = effective_tuning(tuning)
    prompt = (
        "Suggest one small, pleasant self-care treat the player can enjoy today as a reward. "
        'Return JSON only: {"text": str, "time_limit_minutes": int}.'
    )
    payload = parse_json_payload(await service.generate_text(prompt))
    try:
        suggestion = DesireSuggestion.model_validate(payload)
    except pydantic.ValidationError as exc:
        raise ExternalServiceError("malformed daily desire") from exc
    return DailyDesire(
        text=suggestion.text.strip(),
        xp_reward=int(cfg["desire_xp"]),
        gold_reward=int(cfg["desire_gold"]),
        time_limit_minutes=suggestion.time_limit_minutes or int(cfg["desire_time_limit_minutes"]),
        day=today,
    )


async def advise(service: GenerationService, stats: PlayerStats, objective: Objective | None) -> str:
    quest = f"{objective.name} ({objective.current_progress}/{objective.total_progress})" if objective else "none"
    prompt = (
        "You are a warm but direct life coach inside an RPG. Give 2-3 sentences of advice.\n"
        f"Level {stats.level}, streak {stats.current_streak} days, vitality {stats.vitality}/{stats.max_vitality}, "
        f"satisfaction {stats.current_satisfaction}/100.\n"
        f"Current quest: {quest}"
    )
    text = (await service.generate_text(prompt)).strip()
    if not text:
        raise ExternalServiceError("empty advice")
    return text


async def objective_image(service: GenerationService, objective: Objective) -> bytes:
    prompt = f"Fantasy RPG quest illustration, painterly style: {objective.name}. {objective.description}"
    return await service.generate_image(prompt)
