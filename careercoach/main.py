from __future__ import annotations

import logging
import time
from typing import Any, Callable, Literal

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .assessments import build_progress_stats, get_assessments, submit_quiz
from .bookmarks import add_bookmark, list_bookmarks, remove_bookmark
from .config import Settings
from .db import Database
from .errors import AuthorizationError, CareerCoachError
from .identity import decode_identity_token, extract_bearer_token
from .insights import (
    build_skill_gap,
    compare_insights,
    insight_view,
    normalize_industry_key,
    refresh_insights,
    resolve_insights,
)
from .llm import TextGenerator, safe_text
from .quiz import QuizSession, QuizSessionRegistry, generate_quiz_questions
from .schemas import BookmarkIn, CamelModel, QuizCategory, QuizDifficulty, QuizQuestion
from .users import onboarding_status, require_industry, require_user, sync_user, update_profile

logger = logging.getLogger("careercoach.api")


class ProfileUpdateRequest(BaseModel):
    industry: str
    experience: int | str | None = None
    bio: str | None = None
    skills: str | list[str] | None = None


class QuizRequest(BaseModel):
    category: QuizCategory = "Technical"
    difficulty: QuizDifficulty = "medium"


class SubmitQuizRequest(CamelModel):
    questions: list[QuizQuestion] = Field(min_length=1)
    answers: list[str | None]
    score: float | None = None
    category: QuizCategory = "Technical"
    difficulty: QuizDifficulty = "medium"
    time_spent: int | None = None


class RemoveBookmarkRequest(BaseModel):
    question: str


class SessionStartRequest(CamelModel):
    category: QuizCategory = "Technical"
    difficulty: QuizDifficulty = "medium"
    timer_enabled: bool = True


class SessionAnswerRequest(BaseModel):
    index: int
    option: str


class SessionNavigateRequest(BaseModel):
    index: int | None = None
    direction: Literal["next", "previous"] | None = None


def create_app(
    settings: Settings | None = None,
    db: Database | None = None,
    generator: TextGenerator | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> FastAPI:
    settings = settings or Settings.from_env()
    db = db or Database.from_settings(settings)
    generator = generator or TextGenerator.from_settings(settings)
    db.init_schema()

    app = FastAPI(title="careercoach", version=__version__)
    app.state.settings = settings
    app.state.db = db
    app.state.generator = generator
    app.state.sessions = QuizSessionRegistry()
    app.state.clock = clock

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_origin_regex=settings.cors_allow_origin_regex,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CareerCoachError)
    async def handle_domain_error(request: Request, exc: CareerCoachError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
            detail = exc.public_message
        else:
            detail = exc.message
        return JSONResponse(status_code=exc.status_code, content={"detail": detail})

    register_routes(app)
    return app


def current_claims(request: Request) -> dict[str, Any]:
    token = extract_bearer_token(request.headers.get("authorization"))
    if not token:
        raise AuthorizationError()
    return decode_identity_token(request.app.state.settings.auth_token_secret, token)


def current_user(request: Request) -> dict[str, Any]:
    claims = current_claims(request)
    return require_user(request.app.state.db, safe_text(claims.get("sub")))


def register_routes(app: FastAPI) -> None:
    @app.get("/")
    def root() -> dict[str, str]:
        return {"message": "careercoach backend running"}

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"ok": True, "version": __version__}

    # Users

    @app.post("/users/sync")
    def users_sync(request: Request) -> dict[str, Any]:
        claims = current_claims(request)
        return {"user": sync_user(request.app.state.db, claims)}

    @app.get("/users/onboarding-status")
    def users_onboarding_status(request: Request) -> dict[str, bool]:
        return onboarding_status(current_user(request))

    @app.put("/users/profile")
    def users_update_profile(data: ProfileUpdateRequest, request: Request) -> dict[str, Any]:
        user = current_user(request)
        updated = update_profile(
            request.app.state.db,
            request.app.state.generator,
            user,
            industry=data.industry,
            experience=data.experience,
            bio=data.bio,
            skills=data.skills,
        )
        return {"success": True, "user": updated}

    # Industry insights

    @app.get("/insights")
    def insights(request: Request) -> dict[str, Any]:
        user = current_user(request)
        insight = resolve_insights(request.app.state.db, request.app.state.generator, require_industry(user))
        return insight_view(insight)

    @app.post("/insights/refresh")
    def insights_refresh(request: Request) -> dict[str, Any]:
        user = current_user(request)
        insight = refresh_insights(request.app.state.db, request.app.state.generator, require_industry(user))
        return insight_view(insight)

    @app.get("/insights/compare/{industry}")
    def insights_compare(industry: str, request: Request) -> dict[str, Any]:
        user = current_user(request)
        other_industry = normalize_industry_key(industry)
        db, generator = request.app.state.db, request.app.state.generator
        current = resolve_insights(db, generator, require_industry(user))
        other = resolve_insights(db, generator, other_industry)
        return compare_insights(current, other)

    @app.get("/insights/skill-gap")
    def insights_skill_gap(request: Request) -> dict[str, Any]:
        user = current_user(request)
        insight = resolve_insights(request.app.state.db, request.app.state.generator, require_industry(user))
        return build_skill_gap(insight, user["skills"])

    # Interview quizzes

    @app.post("/interview/quiz")
    def interview_quiz(data: QuizRequest, request: Request) -> dict[str, Any]:
        user = current_user(request)
        questions = generate_quiz_questions(
            request.app.state.generator,
            data.category,
            data.difficulty,
            require_industry(user),
            user["skills"],
        )
        return {"category": data.category, "difficulty": data.difficulty, "questions": questions}

    @app.post("/interview/assessments")
    def interview_submit(data: SubmitQuizRequest, request: Request) -> dict[str, Any]:
        user = current_user(request)
        assessment = submit_quiz(
            request.app.state.db,
            request.app.state.generator,
            user,
            [question.to_payload() for question in data.questions],
            data.answers,
            score=data.score,
            category=data.category,
            difficulty=data.difficulty,
            time_spent=data.time_spent,
        )
        return {"assessment": assessment}

    @app.get("/interview/assessments")
    def interview_assessments(request: Request) -> dict[str, Any]:
        user = current_user(request)
        return {"assessments": get_assessments(request.app.state.db, user)}

    @app.get("/interview/stats")
    def interview_stats(request: Request) -> dict[str, Any]:
        user = current_user(request)
        return build_progress_stats(get_assessments(request.app.state.db, user))

    # Server-side quiz sessions

    @app.post("/interview/sessions")
    def sessions_start(data: SessionStartRequest, request: Request) -> dict[str, Any]:
        user = current_user(request)
        state = request.app.state
        session = QuizSession(
            int(user["id"]),
            category=data.category,
            difficulty=data.difficulty,
            timer_enabled=data.timer_enabled,
            question_seconds=state.settings.quiz_question_seconds,
            clock=state.clock,
        )
        session.begin_generation()
        questions = generate_quiz_questions(
            state.generator,
            data.category,
            data.difficulty,
            require_industry(user),
            user["skills"],
        )
        session.load_questions(questions)
        state.sessions.add(session)
        return session.snapshot()

    @app.get("/interview/sessions/{session_id}")
    def sessions_view(session_id: str, request: Request) -> dict[str, Any]:
        user = current_user(request)
        return request.app.state.sessions.get(session_id, int(user["id"])).snapshot()

    @app.post("/interview/sessions/{session_id}/answer")
    def sessions_answer(session_id: str, data: SessionAnswerRequest, request: Request) -> dict[str, Any]:
        user = current_user(request)
        session = request.app.state.sessions.get(session_id, int(user["id"]))
        session.answer(data.index, data.option)
        return session.snapshot()

    @app.post("/interview/sessions/{session_id}/navigate")
    def sessions_navigate(session_id: str, data: SessionNavigateRequest, request: Request) -> dict[str, Any]:
        user = current_user(request)
        session = request.app.state.sessions.get(session_id, int(user["id"]))
        if data.index is not None:
            session.go_to(data.index)
        elif data.direction == "next":
            session.next()
        elif data.direction == "previous":
            session.previous()
        return session.snapshot()

    @app.post("/interview/sessions/{session_id}/finish")
    def sessions_finish(session_id: str, request: Request) -> dict[str, Any]:
        user = current_user(request)
        sessions = request.app.state.sessions
        session = sessions.get(session_id, int(user["id"]))
        score, time_spent = session.finish()
        try:
            assessment = submit_quiz(
                request.app.state.db,
                request.app.state.generator,
                user,
                session.questions,
                session.answers,
                score=score,
                category=session.category,
                difficulty=session.difficulty,
                time_spent=time_spent,
            )
        finally:
            sessions.discard(session.id)
        return {"assessment": assessment, "session": session.snapshot()}

    # Bookmarks

    @app.get("/interview/bookmarks")
    def bookmarks_list(request: Request) -> dict[str, Any]:
        user = current_user(request)
        return {"bookmarkedQuestions": list_bookmarks(request.app.state.db, user)}

    @app.post("/interview/bookmarks")
    def bookmarks_add(data: BookmarkIn, request: Request) -> dict[str, Any]:
        user = current_user(request)
        return add_bookmark(request.app.state.db, user, data.to_payload())

    @app.delete("/interview/bookmarks")
    def bookmarks_remove(data: RemoveBookmarkRequest, request: Request) -> dict[str, Any]:
        user = current_user(request)
        return remove_bookmark(request.app.state.db, user, data.question)
