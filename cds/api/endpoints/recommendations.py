import datetime
import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from cds.core.config import settings
from cds.core.engine_factory import get_cds_engine
from cds.db.session import get_db
from cds.schemas.api import RecommendationRequest, RecommendationResponse, ServiceInfo
from cds.schemas.results import SessionRecord
from cds.services.catalog import CATALOG_VERSION
from cds.services.engine import ClinicalDecisionSupportEngine, ClinicalDecisionSupportError
from cds.services.fhir_adapter import FHIRBundleError, context_from_bundle

router = APIRouter()
logger = structlog.get_logger()

CAPABILITIES = [
    "Risk stratification",
    "Differential diagnosis",
    "Drug interaction analysis",
    "Clinical alerts",
    "Treatment recommendations",
    "Explainable AI insights",
]

@router.get("/cds", response_model=ServiceInfo)
async def service_info():
    return ServiceInfo(
        service="Clinical Decision Support",
        version=settings.CDS_MODEL_VERSION,
        catalog_version=CATALOG_VERSION,
        capabilities=CAPABILITIES,
    )

@router.post("/cds/recommendations", response_model=RecommendationResponse)
async def generate_recommendations(
    payload: RecommendationRequest,
    db: AsyncSession = Depends(get_db),
    engine: ClinicalDecisionSupportEngine = Depends(get_cds_engine)
):
    logger.info("cds_request_received", tenant_id=payload.tenant_id)

    # 1. Resolve the clinical context (exactly one source)
    if (payload.clinical_context is None) == (payload.fhir_bundle is None):
        raise HTTPException(
            status_code=400,
            detail="Provide exactly one of 'clinical_context' or 'fhir_bundle'."
        )

    context = payload.clinical_context
    if context is None:
        try:
            context = context_from_bundle(payload.fhir_bundle, symptoms=payload.symptoms)
        except (FHIRBundleError, ValidationError) as e:
            raise HTTPException(status_code=400, detail=str(e))

    # 2. Run the pipeline
    try:
        result = await engine.generate_recommendations(payload.tenant_id, context, payload.options, db=db)
    except ClinicalDecisionSupportError as e:
        await db.rollback()
        raise HTTPException(status_code=500, detail=str(e))

    # 3. Commit audit + alert rows staged by the engine
    try:
        await db.commit()
    except Exception as commit_err:
        logger.error("cds_commit_failed", session_id=result.session_id, error=str(commit_err))
        await db.rollback()
        if engine.config.strict_side_effects:
            raise HTTPException(status_code=500, detail="Clinical decision support failed: audit trail unavailable")

    return RecommendationResponse(
        success=True,
        data=result,
        timestamp=datetime.datetime.now(datetime.timezone.utc)
    )

@router.get("/cds/sessions/{session_id}", response_model=SessionRecord)
async def get_session(
    session_id: str,
    tenant_id: str = Query(..., min_length=1),
    engine: ClinicalDecisionSupportEngine = Depends(get_cds_engine)
):
    """
    Follow-up read of a cached evaluation.
    """
    if engine.session_cache is None:
        raise HTTPException(status_code=404, detail="Session not found")

    try:
        record = await engine.session_cache.get_session(session_id)
    except RedisError as e:
        logger.error("session_cache_unavailable", session_id=session_id, error=str(e))
        raise HTTPException(status_code=503, detail="Session cache unavailable")
    except ValueError as e:
        # Rotated secret or corrupt blob: the session is unreadable, treat it as gone
        logger.warning("session_unreadable", session_id=session_id, error=str(e))
        raise HTTPException(status_code=404, detail="Session not found")

    # Another tenant's session looks exactly like a missing one
    if not record or record.tenant_id != tenant_id:
        raise HTTPException(status_code=404, detail="Session not found")

    return record
