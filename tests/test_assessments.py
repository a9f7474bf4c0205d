import logging

import pytest

from careercoach.assessments import build_progress_stats, get_assessments, submit_quiz
from careercoach.errors import GenerationError

from conftest import FakeGenerator


def all_correct(questions):
    return [q["correctAnswer"] for q in questions]


def test_submit_with_wrong_answers_stores_tip(db, user, quiz_questions):
    generator = FakeGenerator("Review core concepts before timing yourself.")
    answers = all_correct(quiz_questions)
    answers[2] = quiz_questions[2]["options"][1]
    answers[5] = None

    assessment = submit_quiz(db, generator, user, quiz_questions, answers, category="Technical", difficulty="hard", time_spent=300)

    assert assessment["quizScore"] == 80
    assert assessment["improvementTip"] == "Review core concepts before timing yourself."
    assert assessment["difficulty"] == "hard"
    assert assessment["timeSpent"] == 300
    assert generator.calls == 1
    assert 'User Answer: "Skipped"' in generator.prompts[0]
    results = assessment["questions"]
    assert [item["isCorrect"] for item in results].count(False) == 2
    assert results[2]["userAnswer"] == quiz_questions[2]["options"][1]
    assert results[2]["answer"] == quiz_questions[2]["correctAnswer"]


def test_submit_all_correct_skips_tip_generation(db, user, quiz_questions):
    generator = FakeGenerator()
    assessment = submit_quiz(db, generator, user, quiz_questions, all_correct(quiz_questions))
    assert assessment["quizScore"] == 100
    assert assessment["improvementTip"] is None
    assert generator.calls == 0


def test_tip_failure_still_persists_assessment(db, user, quiz_questions):
    generator = FakeGenerator(GenerationError("model unavailable"))
    answers = [None] * len(quiz_questions)

    assessment = submit_quiz(db, generator, user, quiz_questions, answers)

    assert assessment["quizScore"] == 0
    assert assessment["improvementTip"] is None
    assert get_assessments(db, user) == [assessment]


def test_submitted_score_is_recomputed(db, user, quiz_questions, caplog):
    answers = all_correct(quiz_questions)
    answers[0] = None
    with caplog.at_level(logging.WARNING, logger="careercoach.assessments"):
        assessment = submit_quiz(db, FakeGenerator(default="Keep going."), user, quiz_questions, answers, score=100)
    assert assessment["quizScore"] == 90
    assert "does not match" in caplog.text


def test_assessments_are_listed_oldest_first(db, user, quiz_questions):
    generator = FakeGenerator(default="Practice more.")
    for correct in (3, 7):
        answers = all_correct(quiz_questions)[:correct] + [None] * (10 - correct)
        submit_quiz(db, generator, user, quiz_questions, answers)

    scores = [item["quizScore"] for item in get_assessments(db, user)]
    assert scores == [30, 70]


def test_progress_stats_empty():
    stats = build_progress_stats([])
    assert stats["totalQuizzes"] == 0
    assert stats["latestScore"] is None
    assert stats["improvementPercent"] is None


def test_progress_stats_groups_categories():
    assessments = [
        {"quizScore": 40.0, "category": "Technical", "questions": [{}] * 10},
        {"quizScore": 80.0, "category": "Behavioral", "questions": [{}] * 10},
        {"quizScore": 60.0, "category": "Technical", "questions": [{}] * 10},
    ]

    stats = build_progress_stats(assessments)

    assert stats["totalQuizzes"] == 3
    assert stats["averageScore"] == 60.0
    assert stats["latestScore"] == 60.0
    assert stats["totalQuestions"] == 30
    assert stats["strongestCategory"] == "Behavioral"
    assert stats["weakestCategory"] == "Technical"
    assert stats["improvementPercent"] == 50.0
    assert {"name": "Technical", "count": 2, "avgScore": 50.0} in stats["categories"]


@pytest.mark.parametrize("first, latest, expected", [(0.0, 50.0, 5000.0), (50.0, 25.0, -50.0)])
def test_progress_improvement_handles_zero_baseline(first, latest, expected):
    stats = build_progress_stats([{"quizScore": first}, {"quizScore": latest}])
    assert stats["improvementPercent"] == expected
    assert stats["weakestCategory"] is None
