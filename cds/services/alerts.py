import uuid
import datetime
import structlog
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cds.db.models import AlertRecord
from cds.schemas.context import ClinicalContext
from cds.schemas.results import ClinicalAlert, DrugInteraction, RiskPrediction
from cds.services.audit import ComplianceEvent, record_audit_event

logger = structlog.get_logger()

class AlertNotFoundError(LookupError):
    pass

class AlertAlreadyAcknowledgedError(Exception):
    def __init__(self, alert: ClinicalAlert):
        self.alert = alert
        super().__init__(f"Alert {alert.id} already acknowledged by {alert.acknowledged_by}")


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)

def _alert_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


class ClinicalAlertGenerator:
    """
    Turns upstream stage outputs into actionable alerts.
    """

    # Interaction severity -> alert severity. Minor/moderate interactions stay in the report only.
    INTERACTION_ALERT_SEVERITY = {
        "major": "warning",
        "contraindicated": "critical",
    }

    def __init__(self, risk_threshold: float = 0.7, drug_interaction_alerts: bool = True):
        self.risk_threshold = risk_threshold
        self.drug_interaction_alerts = drug_interaction_alerts

    def generate(
        self,
        context: ClinicalContext,
        risk_predictions: List[RiskPrediction],
        drug_interactions: List[DrugInteraction]
    ) -> List[ClinicalAlert]:
        alerts = []

        # 1. High-risk conditions
        for prediction in risk_predictions:
            if prediction.risk_score > self.risk_threshold:
                alerts.append(ClinicalAlert(
                    id=_alert_id("risk_alert"),
                    type="safety",
                    severity="warning",
                    message=f"High risk for {prediction.condition}: {prediction.risk_score * 100:.1f}%",
                    action_required=True,
                    time_generated=_now(),
                ))

        # 2. Dangerous medication pairs
        if self.drug_interaction_alerts:
            for interaction in drug_interactions:
                severity = self.INTERACTION_ALERT_SEVERITY.get(interaction.severity)
                if severity is None:
                    continue
                alerts.append(ClinicalAlert(
                    id=_alert_id("interaction_alert"),
                    type="drug_interaction",
                    severity=severity,
                    message=(
                        f"{interaction.severity.capitalize()} interaction between "
                        f"{interaction.drug1} and {interaction.drug2}: {interaction.recommendation}"
                    ),
                    action_required=True,
                    time_generated=_now(),
                ))

        if alerts:
            logger.info("clinical_alerts_generated", patient_id=context.patient_id, count=len(alerts))
        return alerts


def acknowledge(alert: ClinicalAlert, user_id: str, at: Optional[datetime.datetime] = None) -> ClinicalAlert:
    """
    Returns an acknowledged copy. An alert is acknowledged once; later attempts raise.
    """
    if alert.acknowledged_by is not None:
        raise AlertAlreadyAcknowledgedError(alert)
    return alert.model_copy(update={"acknowledged_by": user_id, "acknowledged_at": at or _now()})


async def persist_alerts(db: AsyncSession, tenant_id: str, session_id: str, alerts: List[ClinicalAlert]):
    """
    Stages alert rows on the session. The caller commits.
    """
    for alert in alerts:
        db.add(AlertRecord(
            id=alert.id,
            tenant_id=tenant_id,
            session_id=session_id,
            type=alert.type,
            severity=alert.severity,
            message=alert.message,
            action_required=alert.action_required,
            time_generated=alert.time_generated,
        ))
    logger.info("alerts_persisted", session_id=session_id, count=len(alerts))


async def acknowledge_alert(db: AsyncSession, tenant_id: str, alert_id: str, user_id: str) -> ClinicalAlert:
    """
    Sets who/when on a stored alert, once. The row stays locked until the caller
    commits, so a concurrent acknowledgment waits and then sees the first one.
    Alerts of other tenants are reported as missing.
    """
    result = await db.execute(
        select(AlertRecord)
        .where(AlertRecord.id == alert_id, AlertRecord.tenant_id == tenant_id)
        .with_for_update()
    )
    record = result.scalars().first()
    if not record:
        raise AlertNotFoundError(alert_id)

    acknowledged = acknowledge(ClinicalAlert.model_validate(record), user_id)

    record.acknowledged_by = acknowledged.acknowledged_by
    record.acknowledged_at = acknowledged.acknowledged_at

    await record_audit_event(
        db,
        tenant_id,
        ComplianceEvent(
            type="user_action",
            user_id=user_id,
            resource="clinical_alert",
            action="acknowledge_alert",
            metadata={"alert_id": alert_id, "session_id": record.session_id},
        ),
    )
    logger.info("alert_acknowledged", alert_id=alert_id, user_id=user_id)
    return acknowledged
