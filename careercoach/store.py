from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from .db import DB_ERRORS, Database, dump_json, inserted_row_id, load_json, now_utc_iso
from .errors import PersistenceError

logger = logging.getLogger("careercoach.store")

USER_COLUMNS = "id, external_id, email, full_name, industry, experience, bio, skills_json, bookmarks_json, created_at, updated_at"
INSIGHT_COLUMNS = "id, industry, payload_json, growth_rate, demand_level, market_outlook, last_updated, next_update"
ASSESSMENT_COLUMNS = "id, user_id, quiz_score, questions_json, category, difficulty, time_spent, improvement_tip, created_at"


def user_from_row(row: Any) -> dict[str, Any]:
    return {
        "id": int(row["id"]),
        "externalId": str(row["external_id"]),
        "email": str(row["email"] or ""),
        "name": str(row["full_name"] or ""),
        "industry": row["industry"] or None,
        "experience": int(row["experience"] or 0),
        "bio": row["bio"],
        "skills": load_json(row["skills_json"], []),
        "bookmarkedQuestions": load_json(row["bookmarks_json"], []),
        "createdAt": str(row["created_at"]),
        "updatedAt": str(row["updated_at"]),
    }


def insight_from_row(row: Any) -> dict[str, Any]:
    record = {"id": int(row["id"]), "industry": str(row["industry"])}
    record.update(load_json(row["payload_json"], {}))
    record["lastUpdated"] = str(row["last_updated"])
    record["nextUpdate"] = str(row["next_update"])
    return record


def assessment_from_row(row: Any) -> dict[str, Any]:
    time_spent = row["time_spent"]
    return {
        "id": int(row["id"]),
        "userId": int(row["user_id"]),
        "quizScore": float(row["quiz_score"]),
        "questions": load_json(row["questions_json"], []),
        "category": str(row["category"]),
        "difficulty": str(row["difficulty"]),
        "timeSpent": int(time_spent) if time_spent is not None else None,
        "improvementTip": row["improvement_tip"],
        "createdAt": str(row["created_at"]),
    }


# Users


def fetch_user_by_external_id(db: Database, external_id: str) -> dict[str, Any] | None:
    connection = db.connect()
    try:
        row = connection.execute(f"SELECT {USER_COLUMNS} FROM users WHERE external_id = ?", (external_id,)).fetchone()
        return user_from_row(row) if row else None
    finally:
        connection.close()


def upsert_user_identity(db: Database, external_id: str, email: str, full_name: str) -> dict[str, Any]:
    timestamp = now_utc_iso()
    with db.lock:
        connection = db.connect()
        try:
            connection.execute(
                """
                INSERT INTO users (external_id, email, full_name, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (external_id) DO UPDATE SET email = excluded.email, full_name = excluded.full_name
                """,
                (external_id, email, full_name, timestamp, timestamp),
            )
            connection.commit()
        except DB_ERRORS as exc:
            connection.rollback()
            logger.exception("Failed to upsert user %s", external_id)
            raise PersistenceError() from exc
        finally:
            connection.close()

    user = fetch_user_by_external_id(db, external_id)
    if not user:
        raise PersistenceError("Unable to create account.")
    return user


def update_user_profile(
    db: Database,
    user_id: int,
    industry: str,
    experience: int,
    bio: str | None,
    skills: list[str],
) -> None:
    with db.lock:
        connection = db.connect()
        try:
            connection.execute(
                """
                UPDATE users SET industry = ?, experience = ?, bio = ?, skills_json = ?, updated_at = ?
                WHERE id = ?
                """,
                (industry, experience, bio, dump_json(skills), now_utc_iso(), user_id),
            )
            connection.commit()
        except DB_ERRORS as exc:
            connection.rollback()
            logger.exception("Failed to update profile for user %s", user_id)
            raise PersistenceError() from exc
        finally:
            connection.close()


# Industry insights


def fetch_insight(db: Database, industry: str) -> dict[str, Any] | None:
    connection = db.connect()
    try:
        row = connection.execute(f"SELECT {INSIGHT_COLUMNS} FROM industry_insights WHERE industry = ?", (industry,)).fetchone()
        return insight_from_row(row) if row else None
    finally:
        connection.close()


def list_insight_industries(db: Database) -> list[str]:
    connection = db.connect()
    try:
        rows = connection.execute("SELECT industry FROM industry_insights ORDER BY industry ASC").fetchall()
        return [str(row["industry"]) for row in rows]
    finally:
        connection.close()


def _insight_params(industry: str, payload: dict[str, Any], last_updated: datetime, next_update: datetime) -> tuple[Any, ...]:
    return (
        industry,
        dump_json(payload),
        float(payload["growthRate"]),
        str(payload["demandLevel"]),
        str(payload["marketOutlook"]),
        last_updated.isoformat(),
        next_update.isoformat(),
    )


def insert_insight_if_absent(
    db: Database,
    industry: str,
    payload: dict[str, Any],
    last_updated: datetime,
    next_update: datetime,
) -> bool:
    """Insert a new insight row; a row that already exists is left alone.

    Returns True when this call created the row.
    """
    with db.lock:
        connection = db.connect()
        try:
            cursor = connection.execute(
                """
                INSERT INTO industry_insights
                    (industry, payload_json, growth_rate, demand_level, market_outlook, last_updated, next_update)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (industry) DO NOTHING
                """,
                _insight_params(industry, payload, last_updated, next_update),
            )
            created = cursor.rowcount > 0
            connection.commit()
            return created
        except DB_ERRORS as exc:
            connection.rollback()
            logger.exception("Failed to insert insights for %s", industry)
            raise PersistenceError() from exc
        finally:
            connection.close()


def upsert_insight(
    db: Database,
    industry: str,
    payload: dict[str, Any],
    last_updated: datetime,
    next_update: datetime,
) -> None:
    with db.lock:
        connection = db.connect()
        try:
            connection.execute(
                """
                INSERT INTO industry_insights
                    (industry, payload_json, growth_rate, demand_level, market_outlook, last_updated, next_update)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (industry) DO UPDATE SET
                    payload_json = excluded.payload_json,
                    growth_rate = excluded.growth_rate,
                    demand_level = excluded.demand_level,
                    market_outlook = excluded.market_outlook,
                    last_updated = excluded.last_updated,
                    next_update = excluded.next_update
                """,
                _insight_params(industry, payload, last_updated, next_update),
            )
            connection.commit()
        except DB_ERRORS as exc:
            connection.rollback()
            logger.exception("Failed to upsert insights for %s", industry)
            raise PersistenceError() from exc
        finally:
            connection.close()


# Assessments


def insert_assessment(
    db: Database,
    user_id: int,
    quiz_score: float,
    question_results: list[dict[str, Any]],
    category: str,
    difficulty: str,
    time_spent: int | None,
    improvement_tip: str | None,
) -> dict[str, Any]:
    with db.lock:
        connection = db.connect()
        try:
            cursor = connection.execute(
                """
                INSERT INTO assessments
                    (user_id, quiz_score, questions_json, category, difficulty, time_spent, improvement_tip, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    float(quiz_score),
                    dump_json(question_results),
                    category,
                    difficulty,
                    time_spent,
                    improvement_tip,
                    now_utc_iso(),
                ),
            )
            assessment_id = inserted_row_id(connection, cursor)
            connection.commit()
        except DB_ERRORS as exc:
            connection.rollback()
            logger.exception("Failed to save quiz result for user %s", user_id)
            raise PersistenceError("Failed to save quiz result.") from exc
        finally:
            connection.close()

    connection = db.connect()
    try:
        row = connection.execute(f"SELECT {ASSESSMENT_COLUMNS} FROM assessments WHERE id = ?", (assessment_id,)).fetchone()
    finally:
        connection.close()
    if not row:
        raise PersistenceError("Failed to save quiz result.")
    return assessment_from_row(row)


def list_user_assessments(db: Database, user_id: int) -> list[dict[str, Any]]:
    connection = db.connect()
    try:
        rows = connection.execute(
            f"SELECT {ASSESSMENT_COLUMNS} FROM assessments WHERE user_id = ? ORDER BY created_at ASC, id ASC",
            (user_id,),
        ).fetchall()
        return [assessment_from_row(row) for row in rows]
    finally:
        connection.close()
