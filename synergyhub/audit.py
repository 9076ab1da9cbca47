# synergyhub/audit.py
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from fastapi import Request
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from synergyhub import config
from synergyhub.db import commit, execute_query, rollback, row_to_dict
from synergyhub.models import utc_now_iso


def request_meta(request: Optional[Request]) -> Dict[str, Optional[str]]:
    """Client IP and user agent for the audit trail."""
    if request is None:
        return {"ip_address": None, "user_agent": None}
    ua = request.headers.get("user-agent")
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": ua[:255] if ua else None,
    }


def log_audit(
    conn: Connection,
    business_id: int,
    user_id: Optional[int],
    action: str,
    resource_type: str,
    resource_id: Optional[int] = None,
    changes: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    meta: Optional[Dict[str, Optional[str]]] = None,
) -> bool:
    """
    Record an audit entry after a successful mutation.

    Fire-and-forget: a failure here is reported and swallowed so it never
    undoes the change being audited.
    """
    meta = meta or {}
    try:
        execute_query(
            conn,
            """
            INSERT INTO audit_logs (
                business_id, user_id, action, resource_type, resource_id,
                changes_json, metadata_json, ip_address, user_agent, created_at
            ) VALUES (
                :business_id, :user_id, :action, :resource_type, :resource_id,
                :changes_json, :metadata_json, :ip_address, :user_agent, :created_at
            )
            """,
            {
                "business_id": business_id,
                "user_id": user_id,
                "action": action,
                "resource_type": resource_type,
                "resource_id": resource_id,
                "changes_json": json.dumps(changes) if changes is not None else None,
                "metadata_json": json.dumps(metadata) if metadata is not None else None,
                "ip_address": meta.get("ip_address"),
                "user_agent": meta.get("user_agent"),
                "created_at": utc_now_iso(),
            },
        )
        commit(conn)
    except SQLAlchemyError as e:
        rollback(conn)
        print(f"[AUDIT] WARNING: failed to record {action} for business_id={business_id}: {e}")
        return False

    if config.IS_DEV:
        print(f"[AUDIT] {action} business_id={business_id} user_id={user_id} resource={resource_type}:{resource_id}")
    return True


def list_audit_logs(conn: Connection, business_id: int, limit: int = 50) -> List[Dict[str, Any]]:
    rows = execute_query(
        conn,
        """
        SELECT id, business_id, user_id, action, resource_type, resource_id,
               changes_json, metadata_json, ip_address, user_agent, created_at
          FROM audit_logs
         WHERE business_id = :business_id
         ORDER BY id DESC
         LIMIT :limit
        """,
        {"business_id": business_id, "limit": limit},
    ).fetchall()

    out = []
    for r in rows:
        data = row_to_dict(r)
        changes = data.pop("changes_json")
        metadata = data.pop("metadata_json")
        data["changes"] = json.loads(changes) if changes else None
        data["metadata"] = json.loads(metadata) if metadata else None
        out.append(data)
    return out
