from __future__ import annotations

import logging
import re
import threading
import time
import uuid
from enum import Enum
from typing import Any, Callable

from .errors import NotFoundError, QuestionLockedError, SessionStateError, ValidationError
from .llm import TextGenerator, parse_json_response
from .schemas import QuizPayload, validate_generated

logger = logging.getLogger("careercoach.quiz")

CATEGORIES = ("Technical", "Behavioral", "Situational")
DIFFICULTIES = ("easy", "medium", "hard")
DEFAULT_QUESTION_SECONDS = 60
MAX_OPEN_SESSIONS_PER_USER = 3
SESSION_IDLE_SECONDS = 2 * 60 * 60

DIFFICULTY_DESCRIPTIONS = {
    "easy": "beginner-friendly and foundational, testing basic concepts and definitions",
    "medium": "intermediate-level, testing practical application and understanding",
    "hard": "advanced and challenging, testing deep expertise, edge cases, and complex scenarios",
}

CATEGORY_DESCRIPTIONS = {
    "Technical": "technical knowledge, coding concepts, tools, and technologies",
    "Behavioral": "behavioral situations, teamwork, leadership, conflict resolution, and soft skills using the STAR method format",
    "Situational": "hypothetical workplace scenarios, decision-making, problem-solving, and professional judgment",
}

DEFAULT_HINT = "Think carefully about the core concept being tested and eliminate options that don't fit."

QUIZ_SYSTEM_PROMPT = "You write multiple-choice interview questions. You answer with a single JSON object and nothing else."


def build_quiz_prompt(category: str, difficulty: str, industry: str, skills: list[str]) -> str:
    expertise = f" with expertise in {', '.join(skills)}" if skills else ""
    return f"""
Generate 10 {difficulty} difficulty {category.lower()} interview questions for a {industry} professional{expertise}.

The questions should be {DIFFICULTY_DESCRIPTIONS.get(difficulty, DIFFICULTY_DESCRIPTIONS["medium"])}.
Focus on {CATEGORY_DESCRIPTIONS.get(category, CATEGORY_DESCRIPTIONS["Technical"])}.

Each question should be multiple choice with 4 options.

Return the response in this JSON format only, no additional text:
{{
  "questions": [
    {{
      "question": "string",
      "options": ["string", "string", "string", "string"],
      "correctAnswer": "string",
      "hint": "A brief conceptual clue that helps the user think about the question without revealing which option is correct. Do NOT mention any option letter or the correct answer.",
      "explanation": "string - full explanation of why the correct answer is right, shown after quiz completion"
    }}
  ]
}}
"""


def validate_quiz_config(category: str, difficulty: str) -> None:
    if category not in CATEGORIES:
        raise ValidationError(f"Unknown quiz category: {category}")
    if difficulty not in DIFFICULTIES:
        raise ValidationError(f"Unknown quiz difficulty: {difficulty}")


def hint_reveals_answer(hint: str, answer: str) -> bool:
    # Whole-token match so short answers like "4" or "Yes" do not hit "14" or "yesterday".
    pattern = re.compile(r"(?<!\w)" + re.escape(answer.strip()) + r"(?!\w)", re.IGNORECASE)
    return bool(answer.strip()) and pattern.search(hint) is not None


def generate_quiz_questions(
    generator: TextGenerator,
    category: str,
    difficulty: str,
    industry: str,
    skills: list[str],
) -> list[dict[str, Any]]:
    validate_quiz_config(category, difficulty)
    text = generator.complete(build_quiz_prompt(category, difficulty, industry, skills), system_prompt=QUIZ_SYSTEM_PROMPT)
    quiz = validate_generated(QuizPayload, parse_json_response(text), "quiz questions")

    questions = []
    for item in quiz.questions:
        question = item.to_payload()
        hint = question.get("hint") or ""
        if not hint or hint_reveals_answer(hint, question["correctAnswer"]):
            question["hint"] = DEFAULT_HINT
        questions.append(question)
    return questions


def calculate_score(questions: list[dict[str, Any]], answers: list[str | None]) -> float:
    if not questions:
        return 0.0
    correct = 0
    for index, question in enumerate(questions):
        answer = answers[index] if index < len(answers) else None
        if answer is not None and answer == question["correctAnswer"]:
            correct += 1
    return correct * 100 / len(questions)


class TimerState(str, Enum):
    RUNNING = "running"
    EXPIRED = "expired"
    CLEARED = "cleared"


class QuestionTimer:
    """Countdown for one question.

    Every start restarts the full duration. Once expired the timer never
    leaves that state.
    """

    def __init__(self, duration: float, clock: Callable[[], float]):
        self.duration = duration
        self.clock = clock
        self.state = TimerState.CLEARED
        self.started_at: float | None = None

    def start(self, at: float | None = None) -> None:
        if self.state == TimerState.EXPIRED:
            return
        self.state = TimerState.RUNNING
        self.started_at = self.clock() if at is None else at

    def clear(self) -> None:
        if self.state == TimerState.RUNNING:
            self.state = TimerState.CLEARED
            self.started_at = None

    def poll(self) -> float | None:
        """Expire the timer when its time is up.

        Returns the instant the timer ran out, on the expiring call only.
        """
        if self.state != TimerState.RUNNING or self.started_at is None:
            return None
        deadline = self.started_at + self.duration
        if self.clock() >= deadline:
            self.state = TimerState.EXPIRED
            self.started_at = None
            return deadline
        return None

    @property
    def expired(self) -> bool:
        return self.state == TimerState.EXPIRED

    def seconds_left(self) -> float | None:
        if self.state == TimerState.EXPIRED:
            return 0.0
        if self.state != TimerState.RUNNING or self.started_at is None:
            return None
        return max(0.0, self.duration - (self.clock() - self.started_at))


class QuizState(str, Enum):
    CONFIGURING = "configuring"
    GENERATING = "generating"
    ACTIVE = "active"
    FINISHED = "finished"


class QuizSession:
    """One user's quiz, held server-side.

    Every public method takes ``lock`` and applies pending timer expiries
    before acting, so concurrent requests see one consistent state.
    """

    def __init__(
        self,
        user_id: int,
        category: str = "Technical",
        difficulty: str = "medium",
        timer_enabled: bool = True,
        question_seconds: float = DEFAULT_QUESTION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        session_id: str | None = None,
    ):
        validate_quiz_config(category, difficulty)
        self.id = session_id or uuid.uuid4().hex
        self.user_id = user_id
        self.category = category
        self.difficulty = difficulty
        self.timer_enabled = timer_enabled
        self.question_seconds = question_seconds
        self.clock = clock
        self.lock = threading.RLock()
        self.state = QuizState.CONFIGURING
        self.questions: list[dict[str, Any]] = []
        self.answers: list[str | None] = []
        self.timers: list[QuestionTimer] = []
        self.current = 0
        self.started_at: float | None = None
        self.finished_at: float | None = None
        self.last_active = clock()

    def _require(self, state: QuizState) -> None:
        if self.state != state:
            raise SessionStateError(f"Quiz session is {self.state.value}, expected {state.value}.")

    def begin_generation(self) -> None:
        with self.lock:
            self._require(QuizState.CONFIGURING)
            self.state = QuizState.GENERATING

    def load_questions(self, questions: list[dict[str, Any]]) -> None:
        with self.lock:
            self._require(QuizState.GENERATING)
            if not questions:
                raise SessionStateError("A quiz needs at least one question.")
            self.questions = questions
            self.answers = [None] * len(questions)
            self.timers = [QuestionTimer(self.question_seconds, self.clock) for _ in questions]
            self.current = 0
            self.started_at = self.clock()
            self.last_active = self.started_at
            self.state = QuizState.ACTIVE
            self._start_current_timer()

    def _start_current_timer(self, at: float | None = None) -> None:
        if self.timer_enabled:
            self.timers[self.current].start(at)

    def _next_unexpired_after(self, index: int) -> int | None:
        for candidate in range(index + 1, len(self.questions)):
            if not self.timers[candidate].expired:
                return candidate
        return None

    def tick(self) -> None:
        """Apply every timer expiry that happened since the last interaction.

        An auto-advanced question's countdown starts when the previous one
        ran out, so an idle session keeps losing questions one duration apart.
        """
        with self.lock:
            self.last_active = self.clock()
            if self.state != QuizState.ACTIVE or not self.timer_enabled:
                return
            while True:
                expired_at = self.timers[self.current].poll()
                if expired_at is None:
                    return
                logger.info("Quiz %s question %s timed out.", self.id, self.current)
                next_index = self._next_unexpired_after(self.current)
                if next_index is None:
                    return
                self.current = next_index
                self._start_current_timer(at=expired_at)

    def idle_seconds(self) -> float:
        return self.clock() - self.last_active

    def is_locked(self, index: int) -> bool:
        return self.timers[index].expired

    def answer(self, index: int, option: str) -> None:
        with self.lock:
            self.tick()
            self._require(QuizState.ACTIVE)
            self._check_index(index)
            if self.is_locked(index):
                raise QuestionLockedError()
            if index != self.current:
                raise SessionStateError("Only the current question can be answered.")
            if option not in self.questions[index]["options"]:
                raise ValidationError("Answer must be one of the question's options.")
            self.answers[index] = option

    def go_to(self, index: int) -> None:
        with self.lock:
            self.tick()
            self._require(QuizState.ACTIVE)
            self._check_index(index)
            if index == self.current:
                return
            self.timers[self.current].clear()
            self.current = index
            self._start_current_timer()

    def next(self) -> None:
        with self.lock:
            self.tick()
            if self.current < len(self.questions) - 1:
                self.go_to(self.current + 1)

    def previous(self) -> None:
        with self.lock:
            self.tick()
            if self.current > 0:
                self.go_to(self.current - 1)

    def finish(self) -> tuple[float, int]:
        with self.lock:
            self.tick()
            self._require(QuizState.ACTIVE)
            for timer in self.timers:
                timer.clear()
            self.finished_at = self.clock()
            self.state = QuizState.FINISHED
            return self.score(), self.time_spent()

    def score(self) -> float:
        return calculate_score(self.questions, self.answers)

    def time_spent(self) -> int:
        if self.started_at is None:
            return 0
        end = self.finished_at if self.finished_at is not None else self.clock()
        return int(round(end - self.started_at))

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= len(self.questions):
            raise ValidationError(f"Question index {index} is out of range.")

    def snapshot(self) -> dict[str, Any]:
        with self.lock:
            self.tick()
            return self._view()

    def _view(self) -> dict[str, Any]:
        reveal = self.state == QuizState.FINISHED
        questions = []
        for index, question in enumerate(self.questions):
            view = {
                "index": index,
                "question": question["question"],
                "options": list(question["options"]),
                "hint": question.get("hint") or DEFAULT_HINT,
                "answer": self.answers[index],
                "status": self._question_status(index),
            }
            if reveal:
                view["correctAnswer"] = question["correctAnswer"]
                view["explanation"] = question.get("explanation", "")
            questions.append(view)

        answered = sum(1 for answer in self.answers if answer is not None)
        seconds_left = None
        if self.state == QuizState.ACTIVE and self.timer_enabled and self.questions:
            seconds_left = self.timers[self.current].seconds_left()
        return {
            "id": self.id,
            "state": self.state.value,
            "category": self.category,
            "difficulty": self.difficulty,
            "timerEnabled": self.timer_enabled,
            "questionSeconds": self.question_seconds,
            "currentQuestion": self.current,
            "secondsLeft": seconds_left,
            "answeredCount": answered,
            "skippedCount": len(self.questions) - answered,
            "questions": questions,
        }

    def _question_status(self, index: int) -> str:
        if self.is_locked(index):
            return "timed_out"
        if self.answers[index] is not None:
            return "answered"
        return "unanswered"


class QuizSessionRegistry:
    """In-process store of quiz sessions, each owned by a single user.

    Sessions idle for longer than ``idle_seconds`` are dropped whenever a new
    session is added.
    """

    def __init__(
        self,
        max_open_per_user: int = MAX_OPEN_SESSIONS_PER_USER,
        idle_seconds: float = SESSION_IDLE_SECONDS,
    ):
        self._sessions: dict[str, QuizSession] = {}
        self._lock = threading.Lock()
        self.max_open_per_user = max_open_per_user
        self.idle_seconds = idle_seconds

    def _drop_idle(self) -> None:
        for stale in [s for s in self._sessions.values() if s.idle_seconds() >= self.idle_seconds]:
            self._sessions.pop(stale.id, None)
            logger.info("Dropped idle quiz session %s for user %s.", stale.id, stale.user_id)

    def add(self, session: QuizSession) -> QuizSession:
        with self._lock:
            self._drop_idle()
            owned = [s for s in self._sessions.values() if s.user_id == session.user_id]
            owned.sort(key=lambda s: s.started_at or 0.0)
            while len(owned) >= self.max_open_per_user:
                oldest = owned.pop(0)
                self._sessions.pop(oldest.id, None)
                logger.info("Dropped quiz session %s for user %s (limit reached).", oldest.id, session.user_id)
            self._sessions[session.id] = session
        return session

    def get(self, session_id: str, user_id: int) -> QuizSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None or session.user_id != user_id:
            raise NotFoundError("Quiz session not found.")
        return session

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
