from __future__ import annotations

import logging
from typing import Any

from .db import Database
from .errors import GenerationError
from .llm import TextGenerator, safe_text
from .quiz import calculate_score, validate_quiz_config
from .store import insert_assessment, list_user_assessments

logger = logging.getLogger("careercoach.assessments")

TIP_SYSTEM_PROMPT = "You are an encouraging interview coach. Reply with plain text only."
SCORE_TOLERANCE = 0.01


def build_question_results(questions: list[dict[str, Any]], answers: list[str | None]) -> list[dict[str, Any]]:
    results = []
    for index, question in enumerate(questions):
        user_answer = answers[index] if index < len(answers) else None
        results.append(
            {
                "question": question["question"],
                "answer": question["correctAnswer"],
                "userAnswer": user_answer,
                "isCorrect": user_answer is not None and user_answer == question["correctAnswer"],
                "explanation": question.get("explanation", ""),
            }
        )
    return results


def build_improvement_prompt(wrong_answers: list[dict[str, Any]], industry: str, category: str, difficulty: str) -> str:
    wrong_questions_text = "\n\n".join(
        f'Question: "{item["question"]}"\nCorrect Answer: "{item["answer"]}"\nUser Answer: "{item["userAnswer"] or "Skipped"}"'
        for item in wrong_answers
    )
    return f"""
The user got the following {industry} {category.lower()} interview questions wrong (difficulty: {difficulty}):

{wrong_questions_text}

Based on these mistakes, provide a concise, specific improvement tip.
Focus on the knowledge gaps revealed by these wrong answers.
Keep the response under 2 sentences and make it encouraging.
Don't explicitly mention the mistakes, instead focus on what to learn/practice.
"""


def generate_improvement_tip(
    generator: TextGenerator,
    wrong_answers: list[dict[str, Any]],
    industry: str,
    category: str,
    difficulty: str,
) -> str | None:
    if not wrong_answers:
        return None
    try:
        tip = generator.complete(
            build_improvement_prompt(wrong_answers, industry, category, difficulty),
            system_prompt=TIP_SYSTEM_PROMPT,
        )
    except GenerationError:
        logger.exception("Improvement tip generation failed. Saving the quiz without a tip.")
        return None
    return safe_text(tip) or None


def submit_quiz(
    db: Database,
    generator: TextGenerator,
    user: dict[str, Any],
    questions: list[dict[str, Any]],
    answers: list[str | None],
    score: float | None = None,
    category: str = "Technical",
    difficulty: str = "medium",
    time_spent: int | None = None,
) -> dict[str, Any]:
    validate_quiz_config(category, difficulty)
    computed = calculate_score(questions, answers)
    if score is not None and abs(float(score) - computed) > SCORE_TOLERANCE:
        logger.warning(
            "Submitted score %.2f for user %s does not match answers (%.2f). Storing the computed score.",
            float(score),
            user["id"],
            computed,
        )

    question_results = build_question_results(questions, answers)
    wrong_answers = [item for item in question_results if not item["isCorrect"]]
    improvement_tip = generate_improvement_tip(
        generator,
        wrong_answers,
        safe_text(user.get("industry")) or "general",
        category,
        difficulty,
    )

    assessment = insert_assessment(
        db,
        int(user["id"]),
        computed,
        question_results,
        category,
        difficulty,
        time_spent,
        improvement_tip,
    )
    logger.info("Saved assessment %s for user %s (score=%.1f).", assessment["id"], user["id"], computed)
    return assessment


def get_assessments(db: Database, user: dict[str, Any]) -> list[dict[str, Any]]:
    return list_user_assessments(db, int(user["id"]))


def build_progress_stats(assessments: list[dict[str, Any]]) -> dict[str, Any]:
    if not assessments:
        return {
            "totalQuizzes": 0,
            "averageScore": 0.0,
            "latestScore": None,
            "totalQuestions": 0,
            "categories": [],
            "strongestCategory": None,
            "weakestCategory": None,
            "improvementPercent": None,
        }

    scores = [float(item["quizScore"]) for item in assessments]
    grouped: dict[str, list[float]] = {}
    for item in assessments:
        grouped.setdefault(item.get("category") or "Technical", []).append(float(item["quizScore"]))

    categories = [
        {"name": name, "count": len(values), "avgScore": round(sum(values) / len(values), 1)}
        for name, values in grouped.items()
    ]
    ranked = sorted(categories, key=lambda entry: entry["avgScore"], reverse=True)

    improvement = None
    if len(assessments) >= 2:
        first_score = scores[0]
        latest_score = scores[-1]
        improvement = round((latest_score - first_score) / max(first_score, 1) * 100, 1)

    return {
        "totalQuizzes": len(assessments),
        "averageScore": round(sum(scores) / len(scores), 1),
        "latestScore": scores[-1],
        "totalQuestions": sum(len(item.get("questions") or []) for item in assessments),
        "categories": categories,
        "strongestCategory": ranked[0]["name"],
        "weakestCategory": ranked[-1]["name"] if len(ranked) > 1 else None,
        "improvementPercent": improvement,
    }
