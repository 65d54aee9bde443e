import structlog
from typing import Any, Dict, Literal, Optional
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from cds.db.models import AuditLog

logger = structlog.get_logger()

class ComplianceEvent(BaseModel):
    type: Literal["data_access", "data_modification", "data_export", "user_action"]
    user_id: str
    resource: str
    action: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

async def record_audit_event(
    db: Optional[AsyncSession],
    tenant_id: str,
    event: ComplianceEvent,
    session_id: Optional[str] = None,
    raise_on_error: bool = False
):
    """
    Persists a compliance event to the audit log table.
    Failures are logged and swallowed unless raise_on_error is set.
    """
    if db is None:
        # No database in this call path (library use): the log line is the audit trail
        logger.info("audit_event_logged", tenant_id=tenant_id, audit_type=event.type,
                    resource=event.resource, action=event.action, session_id=session_id)
        return

    try:
        log_entry = AuditLog(
            tenant_id=tenant_id,
            session_id=session_id,
            event_type=event.type,
            user_id=event.user_id,
            resource=event.resource,
            action=event.action,
            details=event.metadata
        )
        db.add(log_entry)

        # The caller manages the commit, so the audit row lands together with the
        # alerts of the same session (or not at all).
        logger.info("audit_event_recorded", audit_type=event.type, session_id=session_id)
    except Exception as e:
        # standard logging fallback if DB audit fails
        logger.error("audit_logging_failed", error=str(e), audit_type=event.type, session_id=session_id)
        if raise_on_error:
            raise
