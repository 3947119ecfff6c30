# Overview: Service-layer operations for the activity trail; best-effort, never blocks the caller.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import ActivityLog

"""
Activity trail invariants

- Append-only: who did what, to which entity.
- Written AFTER the business transaction has committed, in its own commit.
- A failed write is logged and swallowed. It must never roll back or block
  the sale / payment it describes.
"""


def record_activity(
    *,
    action_type: str,
    entity_type: str,
    entity_id=None,
    description: str | None = None,
    new_values: dict | None = None,
    user_id: str | None = None,
) -> ActivityLog | None:
    try:
        entry = ActivityLog(
            user_id=user_id,
            action_type=action_type,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            description=description,
            new_values=new_values,
        )
        db.session.add(entry)
        db.session.commit()
        return entry
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to write activity log %s for %s %s", action_type, entity_type, entity_id
        )
        return None
