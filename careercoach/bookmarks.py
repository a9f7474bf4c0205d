from __future__ import annotations

import logging
from typing import Any, Callable

from .db import DB_ERRORS, Database, begin_write_transaction, dump_json, load_json, now_utc_iso
from .errors import NotFoundError, PersistenceError

logger = logging.getLogger("careercoach.bookmarks")

BookmarkEdit = Callable[[list[dict[str, Any]]], list[dict[str, Any]]]


def _rewrite_bookmarks(db: Database, user_id: int, edit: BookmarkEdit) -> list[dict[str, Any]]:
    # Read and write happen in one write transaction under the process lock.
    with db.lock:
        connection = db.connect()
        try:
            cursor = connection.cursor()
            begin_write_transaction(connection, cursor)
            row = cursor.execute(
                f"SELECT bookmarks_json FROM users WHERE id = ?{db.row_lock_clause()}",
                (user_id,),
            ).fetchone()
            if not row:
                connection.rollback()
                raise NotFoundError("User not found.")
            current = load_json(row["bookmarks_json"], [])
            updated = edit(list(current))
            if updated != current:
                cursor.execute(
                    "UPDATE users SET bookmarks_json = ?, updated_at = ? WHERE id = ?",
                    (dump_json(updated), now_utc_iso(), user_id),
                )
            connection.commit()
            return updated
        except DB_ERRORS as exc:
            connection.rollback()
            logger.exception("Bookmark update failed for user %s", user_id)
            raise PersistenceError("Failed to update bookmarks.") from exc
        finally:
            connection.close()


def add_bookmark(db: Database, user: dict[str, Any], question: dict[str, Any]) -> dict[str, Any]:
    text = question["question"]
    added = False

    def edit(bookmarks: list[dict[str, Any]]) -> list[dict[str, Any]]:
        nonlocal added
        if any(item.get("question") == text for item in bookmarks):
            return bookmarks
        added = True
        return bookmarks + [
            {
                "question": text,
                "answer": question.get("answer", ""),
                "explanation": question.get("explanation", ""),
                "category": question.get("category") or "Technical",
                "bookmarkedAt": now_utc_iso(),
            }
        ]

    bookmarks = _rewrite_bookmarks(db, int(user["id"]), edit)
    if not added:
        return {"success": True, "message": "Already bookmarked", "bookmarkedQuestions": bookmarks}
    return {"success": True, "bookmarkedQuestions": bookmarks}


def remove_bookmark(db: Database, user: dict[str, Any], question_text: str) -> dict[str, Any]:
    bookmarks = _rewrite_bookmarks(
        db,
        int(user["id"]),
        lambda items: [item for item in items if item.get("question") != question_text],
    )
    return {"success": True, "bookmarkedQuestions": bookmarks}


def list_bookmarks(db: Database, user: dict[str, Any]) -> list[dict[str, Any]]:
    connection = db.connect()
    try:
        row = connection.execute("SELECT bookmarks_json FROM users WHERE id = ?", (int(user["id"]),)).fetchone()
    finally:
        connection.close()
    if not row:
        raise NotFoundError("User not found.")
    return load_json(row["bookmarks_json"], [])
