"""Audit Sink collaborator."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from remit_chat.models import AuditLog

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    """Best-effort audit recorder; must never raise into the caller."""

    def record(self, user_id: int, action: str, metadata: dict[str, Any]) -> None: ...


class DatabaseAuditSink:
    """Write audit events to the ``audit_log`` table."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def record(self, user_id: int, action: str, metadata: dict[str, Any]) -> None:
        try:
            self._db.add(AuditLog(user_id=user_id, action=action, metadata_=dict(metadata)))
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.error("Failed to write %s audit log: %s", action, exc, exc_info=True)
