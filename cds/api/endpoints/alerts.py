import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from cds.db.session import get_db
from cds.schemas.api import AcknowledgeRequest
from cds.schemas.results import ClinicalAlert
from cds.services.alerts import AlertAlreadyAcknowledgedError, AlertNotFoundError, acknowledge_alert

router = APIRouter()
logger = structlog.get_logger()

@router.post("/cds/alerts/{alert_id}/acknowledge", response_model=ClinicalAlert)
async def acknowledge(
    alert_id: str,
    payload: AcknowledgeRequest,
    db: AsyncSession = Depends(get_db)
):
    try:
        alert = await acknowledge_alert(db, payload.tenant_id, alert_id, payload.user_id)
    except AlertNotFoundError:
        raise HTTPException(status_code=404, detail="Alert not found")
    except AlertAlreadyAcknowledgedError as e:
        logger.warning("alert_acknowledge_conflict", alert_id=alert_id, user_id=payload.user_id)
        raise HTTPException(
            status_code=409,
            detail={
                "message": "Alert already acknowledged.",
                "acknowledged_by": e.alert.acknowledged_by,
                "acknowledged_at": e.alert.acknowledged_at.isoformat() if e.alert.acknowledged_at else None,
            }
        )

    await db.commit()
    return alert
