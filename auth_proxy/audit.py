"""
Audit logging for client registration. Security-relevant events only; no request
bodies, redirect URIs or tokens. Writes are best effort and never fail a registration.
"""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth_proxy.database import get_db
from auth_proxy.models import AuditLog

logger = logging.getLogger(__name__)

EVENT_CLIENT_REGISTERED = "client_registered"
EVENT_CLIENT_REUSED = "client_reused"
EVENT_REGISTRATION_REJECTED = "registration_rejected"
EVENT_REGISTRATION_FAILED = "registration_failed"

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"


def get_client_ip(request: Request | None) -> str | None:
    """Client IP if available (request.client.host). Forwarding headers are not trusted."""
    if request is None or request.client is None:
        return None
    return getattr(request.client, "host", None)


def log_audit(
    db: Session,
    event_type: str,
    *,
    client_id: str | None = None,
    ip: str | None = None,
    outcome: str = OUTCOME_SUCCESS,
) -> None:
    """Append one audit record."""
    try:
        db.add(
            AuditLog(
                event_type=event_type,
                client_id=client_id,
                ip=ip,
                outcome=outcome,
            )
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Could not write audit event %s: %s", event_type, e)


router = APIRouter(tags=["audit"])


def _query_audit_logs(
    db: Session,
    *,
    limit: int = 100,
    event_type: str | None = None,
    outcome: str | None = None,
    client_id: str | None = None,
):
    """Query audit logs with optional filters. Most recent first."""
    q = db.query(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if event_type:
        q = q.filter(AuditLog.event_type == event_type)
    if outcome:
        q = q.filter(AuditLog.outcome == outcome)
    if client_id:
        q = q.filter(AuditLog.client_id == client_id)
    rows = q.limit(min(max(1, limit), 500)).all()
    return [
        {
            "created_at": r.created_at.isoformat() if r.created_at else None,
            "event_type": r.event_type,
            "client_id": r.client_id,
            "ip": r.ip,
            "outcome": r.outcome,
        }
        for r in rows
    ]


@router.get("/audit")
def list_audit_logs(
    limit: int = 100,
    event_type: str | None = None,
    outcome: str | None = None,
    client_id: str | None = None,
    db: Session = Depends(get_db),
):
    """List recent registration events. Most recent first."""
    return _query_audit_logs(
        db, limit=limit, event_type=event_type, outcome=outcome, client_id=client_id
    )
