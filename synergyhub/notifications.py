# synergyhub/notifications.py
# In-app notification sink. Delivery (email, sockets) happens elsewhere;
# this only records what the user should be told.

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from synergyhub import config
from synergyhub.db import commit, execute_query, rollback, row_to_dict
from synergyhub.models import utc_now_iso


def notify(
    conn: Connection,
    user_id: int,
    notification_type: str,
    message: str,
    business_id: Optional[int] = None,
) -> bool:
    """Best-effort: returns False and logs instead of raising."""
    try:
        execute_query(
            conn,
            """
            INSERT INTO notifications (user_id, business_id, type, message, is_read, created_at)
            VALUES (:user_id, :business_id, :type, :message, 0, :created_at)
            """,
            {
                "user_id": user_id,
                "business_id": business_id,
                "type": notification_type,
                "message": message,
                "created_at": utc_now_iso(),
            },
        )
        commit(conn)
    except SQLAlchemyError as e:
        rollback(conn)
        print(f"[NOTIFY] WARNING: failed to notify user_id={user_id} ({notification_type}): {e}")
        return False

    if config.IS_DEV:
        print(f"[NOTIFY] {notification_type} -> user_id={user_id}")
    return True


def list_notifications(conn: Connection, user_id: int, limit: int = 50) -> List[Dict[str, Any]]:
    rows = execute_query(
        conn,
        """
        SELECT id, user_id, business_id, type, message, is_read, created_at
          FROM notifications
         WHERE user_id = :user_id
         ORDER BY id DESC
         LIMIT :limit
        """,
        {"user_id": user_id, "limit": limit},
    ).fetchall()

    out = []
    for r in rows:
        data = row_to_dict(r)
        data["is_read"] = bool(data["is_read"])
        out.append(data)
    return out
