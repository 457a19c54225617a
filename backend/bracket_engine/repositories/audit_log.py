"""
Append-only audit trail. Writing an event is best effort: a failed write is
logged and rolled back, never surfaced to the operation that produced it.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from bracket_engine.models.audit_event import AuditEvent

logger = logging.getLogger(__name__)


class AuditLog:
    def __init__(self, session: Session):
        self.session = session

    def log(
        self,
        entity_type: str,
        entity_id: Any,
        action: str,
        actor_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        event = AuditEvent(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            actor_id=actor_id,
            details=details,
        )
        try:
            self.session.add(event)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.warning("Audit write failed for %s %s (%s): %s", entity_type, entity_id, action, exc)

    def events_for(self, entity_type: str, entity_id: Any) -> list:
        return list(
            self.session.exec(
                select(AuditEvent)
                .where(AuditEvent.entity_type == entity_type, AuditEvent.entity_id == str(entity_id))
                .order_by(AuditEvent.id)
            ).all()
        )
