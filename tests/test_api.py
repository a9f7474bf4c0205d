import json

import pytest

from conftest import fenced, make_insight_payload, make_quiz_payload

INDUSTRY = "tech-software-development"


@pytest.fixture
def onboarded(client, generator, auth_headers):
    headers = auth_headers()
    assert client.post("/users/sync", headers=headers).status_code == 200
    generator.queue(fenced(make_insight_payload()))
    response = client.put(
        "/users/profile",
        headers=headers,
        json={"industry": INDUSTRY, "experience": 3, "bio": "Backend dev", "skills": "Python, Terraform"},
    )
    assert response.status_code == 200
    return headers


def test_health(client):
    assert client.get("/health").json()["ok"] is True


def test_requests_without_token_are_unauthorized(client):
    response = client.get("/insights")
    assert response.status_code == 401
    assert response.json()["detail"] == "Login required. Please sign in to continue."


def test_tampered_token_is_unauthorized(client, auth_headers):
    headers = auth_headers()
    headers["Authorization"] += "x"
    assert client.get("/users/onboarding-status", headers=headers).status_code == 401


def test_unsynced_user_is_not_found(client, auth_headers):
    response = client.get("/users/onboarding-status", headers=auth_headers(subject="user_nobody"))
    assert response.status_code == 404
    assert response.json()["detail"] == "User not found."


def test_onboarding_flow(client, generator, onboarded):
    assert client.get("/users/onboarding-status", headers=onboarded).json() == {"isOnboarded": True}

    body = client.get("/insights", headers=onboarded).json()

    assert generator.calls == 1
    assert body["industryName"] == "software development"
    assert body["staleness"] == "Fresh"
    assert body["insight"]["industry"] == INDUSTRY
    assert body["insight"]["demandLevel"] == "High"


def test_insights_before_onboarding_is_not_found(client, auth_headers):
    headers = auth_headers()
    client.post("/users/sync", headers=headers)
    response = client.get("/insights", headers=headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "No industry set. Complete onboarding first."


def test_generation_failure_returns_generic_message(client, generator, auth_headers):
    headers = auth_headers()
    client.post("/users/sync", headers=headers)
    generator.queue("not json")

    response = client.put("/users/profile", headers=headers, json={"industry": INDUSTRY})

    assert response.status_code == 502
    assert response.json()["detail"] == "AI generation failed. Please try again."
    assert client.get("/users/onboarding-status", headers=headers).json() == {"isOnboarded": False}


def test_refresh_regenerates_insights(client, generator, onboarded):
    generator.queue(json.dumps(make_insight_payload(growthRate=21.0)))
    body = client.post("/insights/refresh", headers=onboarded).json()
    assert body["insight"]["growthRate"] == 21.0
    assert generator.calls == 2


def test_skill_gap_uses_profile_skills(client, onboarded):
    body = client.get("/insights/skill-gap", headers=onboarded).json()
    assert body["matched"] == 2
    assert "Go" in body["missing"]


def test_compare_generates_other_industry_on_demand(client, generator, onboarded):
    generator.queue(json.dumps(make_insight_payload(growthRate=2.5)))
    body = client.get("/insights/compare/finance-banking", headers=onboarded).json()
    assert body["comparison"]["industry"] == "finance-banking"
    assert body["deltas"]["growthRate"] == -10.0


def test_quiz_generation_and_submission(client, generator, onboarded):
    generator.queue(fenced(make_quiz_payload()), "Brush up on fundamentals.")
    quiz = client.post("/interview/quiz", headers=onboarded, json={"category": "Technical", "difficulty": "easy"}).json()
    assert len(quiz["questions"]) == 10
    assert "Python, Terraform" in generator.prompts[-1]

    answers = [q["correctAnswer"] for q in quiz["questions"]]
    answers[9] = None
    response = client.post(
        "/interview/assessments",
        headers=onboarded,
        json={"questions": quiz["questions"], "answers": answers, "score": 90, "category": "Technical", "difficulty": "easy", "timeSpent": 120},
    )

    assessment = response.json()["assessment"]
    assert assessment["quizScore"] == 90
    assert assessment["improvementTip"] == "Brush up on fundamentals."
    assert assessment["timeSpent"] == 120
    assert len(client.get("/interview/assessments", headers=onboarded).json()["assessments"]) == 1
    assert client.get("/interview/stats", headers=onboarded).json()["totalQuizzes"] == 1


def test_quiz_with_bad_model_output_is_bad_gateway(client, generator, onboarded):
    generator.queue(json.dumps(make_quiz_payload(9)))
    response = client.post("/interview/quiz", headers=onboarded, json={})
    assert response.status_code == 502


def test_quiz_session_flow(client, generator, clock, onboarded):
    generator.queue(json.dumps(make_quiz_payload()))
    session = client.post("/interview/sessions", headers=onboarded, json={"difficulty": "hard", "timerEnabled": True}).json()
    session_url = f"/interview/sessions/{session['id']}"
    assert session["state"] == "active"
    assert session["secondsLeft"] == 60

    first = session["questions"][0]
    response = client.post(f"{session_url}/answer", headers=onboarded, json={"index": 0, "option": "Q0 option A"})
    assert response.json()["questions"][0]["status"] == "answered"
    assert "correctAnswer" not in first

    clock.advance(60)
    view = client.get(session_url, headers=onboarded).json()
    assert view["currentQuestion"] == 1
    assert view["questions"][0]["status"] == "timed_out"

    locked = client.post(f"{session_url}/answer", headers=onboarded, json={"index": 0, "option": "Q0 option B"})
    assert locked.status_code == 409
    assert locked.json()["detail"] == "Time expired for this question. It can no longer be answered."

    client.post(f"{session_url}/navigate", headers=onboarded, json={"direction": "next"})
    client.post(f"{session_url}/answer", headers=onboarded, json={"index": 2, "option": "Q2 option A"})

    finished = client.post(f"{session_url}/finish", headers=onboarded).json()
    assert finished["assessment"]["quizScore"] == 20
    assert finished["session"]["state"] == "finished"
    assert finished["session"]["questions"][0]["correctAnswer"] == "Q0 option A"

    assert client.post(f"{session_url}/finish", headers=onboarded).status_code == 404


def test_sessions_are_private(client, generator, auth_headers, onboarded):
    generator.queue(json.dumps(make_quiz_payload()))
    session = client.post("/interview/sessions", headers=onboarded, json={}).json()
    other = auth_headers(subject="user_bob", email="bob@example.com", name="Bob")
    client.post("/users/sync", headers=other)
    assert client.get(f"/interview/sessions/{session['id']}", headers=other).status_code == 404


def test_bookmark_endpoints(client, onboarded):
    question = {"question": "What is idempotency?", "answer": "Same result", "explanation": "Repeatable.", "category": "Technical"}

    assert client.post("/interview/bookmarks", headers=onboarded, json=question).json()["success"] is True
    again = client.post("/interview/bookmarks", headers=onboarded, json=question).json()
    assert again["message"] == "Already bookmarked"
    assert len(client.get("/interview/bookmarks", headers=onboarded).json()["bookmarkedQuestions"]) == 1

    removed = client.request("DELETE", "/interview/bookmarks", headers=onboarded, json={"question": "What is idempotency?"})
    assert removed.json()["bookmarkedQuestions"] == []


def test_compare_rejects_free_text_industry(client, generator, onboarded):
    response = client.get("/insights/compare/anything you like", headers=onboarded)
    assert response.status_code == 400
    assert generator.calls == 1


def test_profile_rejects_free_text_industry(client, generator, auth_headers):
    headers = auth_headers()
    client.post("/users/sync", headers=headers)
    response = client.put("/users/profile", headers=headers, json={"industry": "not an industry"})
    assert response.status_code == 400
    assert generator.calls == 0
