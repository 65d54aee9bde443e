import uuid
import datetime
from sqlalchemy import String, DateTime, Boolean
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

from cds.db.types import EncryptedJSON

class Base(DeclarativeBase):
    pass

class AuditLog(Base):
    """
    Immutable record of compliance events (who touched which patient data, and why).
    """
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    # Nullable because some events are not tied to a CDS session (e.g. alert acknowledgment)
    session_id: Mapped[str | None] = mapped_column(String, index=True, nullable=True)

    event_type: Mapped[str] = mapped_column(String, index=True) # e.g. "data_access"
    user_id: Mapped[str] = mapped_column(String, index=True)
    resource: Mapped[str] = mapped_column(String) # e.g. "clinical_decision_support"
    action: Mapped[str] = mapped_column(String) # e.g. "generate_recommendations"
    details: Mapped[dict] = mapped_column(EncryptedJSON) # May carry PHI, encrypted at rest

    timestamp: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

class AlertRecord(Base):
    """
    Clinical alerts outlive the request that raised them: clinicians acknowledge them later.
    """
    __tablename__ = "clinical_alerts"

    id: Mapped[str] = mapped_column(String, primary_key=True) # e.g. "risk_alert_<hex>"
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    session_id: Mapped[str] = mapped_column(String, index=True)

    type: Mapped[str] = mapped_column(String) # safety, drug_interaction, ...
    severity: Mapped[str] = mapped_column(String, index=True) # info, warning, critical
    message: Mapped[str] = mapped_column(String)
    action_required: Mapped[bool] = mapped_column(Boolean, default=True)
    time_generated: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True))

    # The only mutable part of an alert
    acknowledged_by: Mapped[str | None] = mapped_column(String, nullable=True)
    acknowledged_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
