from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any, Callable

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from quiz_quest import service
from quiz_quest.catalog import Catalog, load_catalog
from quiz_quest.config import Settings, load_settings
from quiz_quest.db import Database, ProgressConflict
from quiz_quest.db_constants import APP_CONFIG_DEFAULTS
from quiz_quest.db_converters import progress_to_document
from quiz_quest.db_models import PowerUpActivation, StudySession, UserProgress
from quiz_quest.events import ValidationError
from quiz_quest.logging_setup import setup_logging
from quiz_quest.messages import points_message, purchase_message, status_message
from quiz_quest.time_utils import now_local

logger = logging.getLogger(__name__)

ANALYTICS_TYPES = ("study-time-trend", "recent-sessions", "overall-stats")


def _coerce_value(key: str, value: Any) -> Any:
    default = APP_CONFIG_DEFAULTS.get(key)
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError):
            return default
    return value


def _require_admin(request: Request, token: str | None) -> None:
    if not token:
        raise HTTPException(status_code=403, detail="Admin API disabled")
    header = request.headers.get("x-admin-token")
    query = request.query_params.get("token")
    if header == token or query == token:
        return
    raise HTTPException(status_code=401, detail="Unauthorized")


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def static_token_verifier(tokens: dict[str, int]) -> Callable[[str], int | None]:
    def _verify(token: str) -> int | None:
        return tokens.get(token)

    return _verify


class SessionRequest(BaseModel):
    task_name: str
    duration: int
    score: int | None = None
    quiz_answers: list[dict[str, Any]] = Field(default_factory=list)
    ended_early: bool = False


class QuizRequest(BaseModel):
    correct: int
    wrong: int
    coins_used: int = 0
    seconds: int | None = None


class CoinRequest(BaseModel):
    coins_used_in_quiz: int


class PowerUpRequest(BaseModel):
    power_up_id: str


class QuestProgressRequest(BaseModel):
    delta: int = 1


class DailyGoalRequest(BaseModel):
    minutes: int


class ConfigUpdateRequest(BaseModel):
    updates: dict[str, Any] = Field(default_factory=dict)
    actor: str = "admin"
    note: str | None = None


class FlashcardsGeneratedRequest(BaseModel):
    count: int


class FlashcardReviewRequest(BaseModel):
    action: str


class FlashcardSessionRequest(BaseModel):
    reviewed: int
    known: int


def _progress_payload(progress: UserProgress) -> dict[str, Any]:
    payload = progress_to_document(progress)
    payload["user_id"] = progress.user_id
    payload["version"] = progress.version
    return payload


def _activation_payload(activation: PowerUpActivation) -> dict[str, Any]:
    return {
        "power_up_id": activation.power_up_id,
        "multiplier": activation.multiplier,
        "activated_at": activation.activated_at.isoformat(),
        "expires_at": activation.expires_at.isoformat(),
    }


def _session_payload(session: StudySession) -> dict[str, Any]:
    return {
        "id": session.id,
        "task_name": session.task_name,
        "duration": session.duration,
        "score": session.score,
        "points": session.points,
        "ended_early": session.ended_early,
        "completed_at": session.completed_at.isoformat(),
        "quiz_answers": list(session.quiz_answers),
    }


def _outcome_payload(outcome: service.EventOutcome) -> dict[str, Any]:
    return {
        "progress": _progress_payload(outcome.progress),
        "points_delta": outcome.points_delta,
        "level_before": outcome.level_before,
        "leveled_up": outcome.leveled_up,
        "unlocked": {
            "badges": outcome.badge_ids,
            "achievements": outcome.achievement_ids,
            "quests": outcome.quest_ids,
            "challenges": outcome.challenge_ids,
        },
        "reward_points": outcome.reward_points,
    }


def build_app(
    db: Database,
    catalog: Catalog,
    verify_token: Callable[[str], int | None],
    admin_token: str | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    app = FastAPI(title="Quiz Quest", version="1.0.0")
    now = clock or now_local

    def _user_id(request: Request) -> int:
        token = _bearer_token(request)
        user_id = verify_token(token) if token else None
        if user_id is None:
            raise HTTPException(status_code=401, detail="Unauthorized")
        return user_id

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def _request_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())})

    @app.exception_handler(ProgressConflict)
    async def _conflict(request: Request, exc: ProgressConflict) -> JSONResponse:
        return JSONResponse(status_code=409, content={"error": str(exc)})

    @app.get("/api/progress")
    async def get_progress(request: Request) -> dict[str, Any]:
        view = service.compute_status(db, _user_id(request), now(), catalog=catalog)
        return {
            "progress": _progress_payload(view.progress),
            "level": {
                "level": view.level,
                "current_level_points": view.current_level_points,
                "next_level_points": view.next_level_points,
                "progress_ratio": view.progress_ratio,
                "remaining_to_next": view.remaining_to_next,
            },
            "today": {
                "minutes": view.today_minutes,
                "daily_progress": view.daily_progress,
                "daily_goal": view.progress.daily_goal,
                "goal_reached": view.daily_goal_reached,
                "ai_questions": view.ai_questions_today,
            },
            "earned": {
                "badges": view.badges_earned,
                "achievements": view.achievements_earned,
                "quests": view.quests_completed,
                "challenges_today": view.challenges_completed_today,
            },
            "active_power_ups": [_activation_payload(a) for a in view.active_power_ups],
            "summary": status_message(view),
        }

    @app.put("/api/progress/daily-goal")
    async def put_daily_goal(request: Request, payload: DailyGoalRequest) -> dict[str, Any]:
        progress = service.set_daily_goal(db, _user_id(request), payload.minutes, now(), catalog=catalog)
        return {"progress": _progress_payload(progress)}

    @app.post("/api/sessions")
    async def post_session(request: Request, payload: SessionRequest) -> dict[str, Any]:
        result = service.record_study_session(
            db,
            _user_id(request),
            task_name=payload.task_name,
            minutes=payload.duration,
            now=now(),
            score=payload.score,
            quiz_answers=tuple(payload.quiz_answers),
            ended_early=payload.ended_early,
            catalog=catalog,
        )
        body = _outcome_payload(result.outcome)
        body["session"] = _session_payload(result.session)
        body["double_points"] = result.double_points
        body["message"] = points_message(result.outcome, catalog)
        return body

    @app.get("/api/sessions")
    async def get_sessions(request: Request, limit: int = 10) -> dict[str, Any]:
        sessions = service.recent_sessions(db, _user_id(request), limit=limit)
        return {"sessions": [_session_payload(s) for s in sessions]}

    @app.post("/api/quiz")
    async def post_quiz(request: Request, payload: QuizRequest) -> dict[str, Any]:
        result = service.record_quiz_result(
            db,
            _user_id(request),
            correct=payload.correct,
            wrong=payload.wrong,
            coins_used=payload.coins_used,
            now=now(),
            seconds=payload.seconds,
            catalog=catalog,
        )
        body = _outcome_payload(result.outcome)
        body["score"] = result.score
        body["message"] = points_message(result.outcome, catalog)
        return body

    @app.post("/api/quiz/coin")
    async def post_coin(request: Request, payload: CoinRequest) -> dict[str, Any]:
        outcome = service.use_coin(db, _user_id(request), payload.coins_used_in_quiz, now(), catalog=catalog)
        return _outcome_payload(outcome)

    @app.get("/api/powerups")
    async def get_power_ups(request: Request) -> dict[str, Any]:
        view = service.compute_status(db, _user_id(request), now(), catalog=catalog)
        return {
            "points": view.progress.points,
            "active": [_activation_payload(a) for a in view.active_power_ups],
            "available": [asdict(p) for p in catalog.power_ups],
        }

    @app.post("/api/powerups")
    async def post_power_up(request: Request, payload: PowerUpRequest) -> JSONResponse:
        outcome = service.buy_power_up(db, _user_id(request), payload.power_up_id, now(), catalog=catalog)
        body = {
            "success": outcome.success,
            "reason": outcome.reason,
            "power_up_id": outcome.power_up_id,
            "cost": outcome.cost,
            "points": outcome.progress.points,
            "activation": _activation_payload(outcome.activation) if outcome.activation else None,
            "message": purchase_message(outcome),
        }
        return JSONResponse(status_code=200 if outcome.success else 400, content=body)

    @app.post("/api/quests/{quest_id}/progress")
    async def post_quest_progress(quest_id: str, request: Request, payload: QuestProgressRequest) -> dict[str, Any]:
        outcome = service.advance_quest(db, _user_id(request), quest_id, payload.delta, now(), catalog=catalog)
        quest = outcome.quest
        return {
            "quest": {
                "id": quest.id,
                "progress": quest.progress,
                "target": quest.target,
                "completed": quest.completed,
                "completed_at": quest.completed_at.isoformat() if quest.completed_at else None,
            },
            "reward": outcome.reward,
            "points": outcome.progress.points,
            "level": outcome.progress.level,
        }

    @app.post("/api/ai-questions")
    async def post_ai_question(request: Request) -> dict[str, Any]:
        outcome = service.track_ai_question(db, _user_id(request), now(), catalog=catalog)
        return _outcome_payload(outcome)

    @app.post("/api/flashcards/generated")
    async def post_flashcards_generated(request: Request, payload: FlashcardsGeneratedRequest) -> dict[str, Any]:
        outcome = service.record_flashcards_generated(db, _user_id(request), payload.count, now(), catalog=catalog)
        body = _outcome_payload(outcome)
        body["message"] = points_message(outcome, catalog)
        return body

    @app.post("/api/flashcards/review")
    async def post_flashcard_review(request: Request, payload: FlashcardReviewRequest) -> dict[str, Any]:
        outcome = service.record_flashcard_review(db, _user_id(request), payload.action, now(), catalog=catalog)
        return _outcome_payload(outcome)

    @app.post("/api/flashcards/session")
    async def post_flashcard_session(request: Request, payload: FlashcardSessionRequest) -> dict[str, Any]:
        outcome = service.finish_flashcard_session(
            db, _user_id(request), payload.reviewed, payload.known, now(), catalog=catalog
        )
        body = _outcome_payload(outcome)
        body["message"] = points_message(outcome, catalog)
        return body

    @app.get("/api/challenges")
    async def get_challenges(request: Request) -> dict[str, Any]:
        statuses = service.todays_challenges(db, _user_id(request), now(), catalog=catalog)
        return {
            "challenges": [
                {
                    "id": s.challenge.id,
                    "name": s.challenge.name,
                    "description": s.challenge.description,
                    "icon": s.challenge.icon,
                    "reward": s.challenge.reward,
                    "difficulty": s.challenge.difficulty,
                    "completed_today": s.completed_today,
                    "times_completed": s.challenge.times_completed,
                }
                for s in statuses
            ]
        }

    @app.get("/api/analytics")
    async def get_analytics(request: Request, type: str = "overall-stats", days: int = 30, limit: int = 10) -> dict[str, Any]:
        user_id = _user_id(request)
        if type == "study-time-trend":
            trend = service.study_time_trend(db, user_id, now(), days=days)
            return {"type": type, "data": [{"date": t.day.isoformat(), "minutes": t.minutes} for t in trend]}
        if type == "recent-sessions":
            sessions = service.recent_sessions(db, user_id, limit=limit)
            return {"type": type, "data": [_session_payload(s) for s in sessions]}
        if type == "overall-stats":
            return {"type": type, "data": asdict(service.overall_stats(db, user_id, catalog=catalog))}
        raise ValidationError(f"Unknown analytics type: {type}; expected one of {', '.join(ANALYTICS_TYPES)}")

    @app.get("/admin/api/config")
    async def admin_config(request: Request) -> dict[str, Any]:
        _require_admin(request, admin_token)
        return {"config": db.get_app_config(), "defaults": APP_CONFIG_DEFAULTS}

    @app.post("/admin/api/config")
    async def admin_update_config(request: Request, payload: ConfigUpdateRequest) -> dict[str, Any]:
        _require_admin(request, admin_token)
        sanitized: dict[str, Any] = {}
        for key, value in payload.updates.items():
            if key not in APP_CONFIG_DEFAULTS:
                continue
            sanitized[key] = _coerce_value(key, value)
        cfg = db.set_app_config(sanitized, actor=payload.actor, note=payload.note)
        logger.info("config updated actor=%s keys=%s", payload.actor, sorted(sanitized))
        return {"ok": True, "updated_count": len(sanitized), "config": cfg}

    @app.get("/admin/api/config/history")
    async def admin_config_history(request: Request, key: str | None = None, limit: int = 50) -> dict[str, Any]:
        _require_admin(request, admin_token)
        return {"changes": db.list_config_changes(key=key, limit=limit)}

    return app


def create_app(settings: Settings) -> FastAPI:
    db = Database(settings.database_path)
    catalog = load_catalog(settings.catalog_path)
    return build_app(
        db,
        catalog,
        verify_token=static_token_verifier(settings.api_tokens),
        admin_token=settings.admin_panel_token,
        clock=lambda: now_local(settings.tz),
    )


def run_api() -> None:
    settings = load_settings()
    setup_logging(settings.log_level)
    if not settings.api_tokens:
        logger.warning("API_TOKENS is empty; every request will be rejected")
    app = create_app(settings)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
