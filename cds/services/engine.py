import time
import uuid
import datetime
import structlog
from typing import Awaitable, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from cds.core.config import PipelineConfig, settings
from cds.schemas.context import ClinicalContext
from cds.schemas.results import CDSOptions, CDSResult, SessionRecord
from cds.services.alerts import ClinicalAlertGenerator, persist_alerts
from cds.services.audit import ComplianceEvent, record_audit_event
from cds.services.diagnosis import DifferentialDiagnosisGenerator
from cds.services.explainability import ExplainabilityReporter
from cds.services.interactions import DrugInteractionChecker
from cds.services.metering import ApiUsage, UsageMeter, calculate_compute_units
from cds.services.recommendations import TreatmentRecommendationGenerator
from cds.services.risk import RiskPredictor
from cds.services.session_cache import SessionCache

logger = structlog.get_logger()

CDS_ENDPOINT = f"{settings.API_V1_STR}/cds/recommendations"

class ClinicalDecisionSupportError(Exception):
    """
    The pipeline failed as a whole. No partial result is ever returned.
    """
    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Clinical decision support failed: {cause}")

def new_session_id() -> str:
    return f"cds_{uuid.uuid4().hex}"


class ClinicalDecisionSupportEngine:
    """
    Runs the CDS stages in dependency order:

        risk -> differential -> interactions -> alerts -> recommendations -> explainability

    `evaluate` is the pure computation. `generate_recommendations` wraps it with the
    request side effects (audit trail, alert persistence, usage metering, session cache).
    """

    def __init__(
        self,
        config: PipelineConfig,
        session_cache: Optional[SessionCache] = None,
        usage_meter: Optional[UsageMeter] = None
    ):
        self.config = config
        self.session_cache = session_cache
        self.usage_meter = usage_meter

        self.risk_predictor = RiskPredictor()
        self.diagnosis_generator = DifferentialDiagnosisGenerator()
        self.interaction_checker = DrugInteractionChecker()
        self.alert_generator = ClinicalAlertGenerator(
            risk_threshold=config.alert_risk_threshold,
            drug_interaction_alerts=config.drug_interaction_alerts,
        )
        self.recommendation_generator = TreatmentRecommendationGenerator(
            max_recommendations=config.max_recommendations,
        )
        self.reporter = ExplainabilityReporter(config.model_version, config.catalog_version)

    def evaluate(
        self,
        context: ClinicalContext,
        options: Optional[CDSOptions] = None,
        session_id: Optional[str] = None
    ) -> CDSResult:
        session_id = session_id or new_session_id()
        start = time.perf_counter()

        try:
            risk_predictions = self.risk_predictor.predict(context)
            diagnoses = self.diagnosis_generator.generate(context)
            interactions = self.interaction_checker.check(context.current_medications, context.genomic_data)
            alerts = self.alert_generator.generate(context, risk_predictions, interactions)
            recommendations = self.recommendation_generator.generate(diagnoses, risk_predictions, options)
            explainability = self.reporter.report(context, recommendations, diagnoses, risk_predictions)
        except Exception as e:
            logger.error("cds_pipeline_failed", session_id=session_id, error=str(e))
            raise ClinicalDecisionSupportError(e) from e

        return CDSResult(
            session_id=session_id,
            recommendations=recommendations,
            differential_diagnoses=diagnoses,
            risk_predictions=risk_predictions,
            drug_interactions=interactions,
            alerts=alerts,
            explainability=explainability,
            processing_time_ms=(time.perf_counter() - start) * 1000,
        )

    async def _side_effect(self, name: str, session_id: str, operation: Awaitable):
        try:
            await operation
        except Exception as e:
            if self.config.strict_side_effects:
                logger.error("cds_side_effect_failed", side_effect=name, session_id=session_id, error=str(e))
                raise ClinicalDecisionSupportError(e) from e
            # Best effort: the computed result is still valid
            logger.warning("cds_side_effect_skipped", side_effect=name, session_id=session_id, error=str(e))

    async def generate_recommendations(
        self,
        tenant_id: str,
        context: ClinicalContext,
        options: Optional[CDSOptions] = None,
        db: Optional[AsyncSession] = None
    ) -> CDSResult:
        session_id = new_session_id()
        log = logger.bind(session_id=session_id)
        log.info("cds_pipeline_started", tenant_id=tenant_id, patient_id=context.patient_id)

        # 1. Compliance trail before any PHI is processed
        await self._side_effect("audit", session_id, record_audit_event(
            db,
            tenant_id,
            ComplianceEvent(
                type="data_access",
                user_id=context.patient_id,
                resource="clinical_decision_support",
                action="generate_recommendations",
                metadata={"session_id": session_id, "model_version": self.config.model_version},
            ),
            session_id=session_id,
            raise_on_error=self.config.strict_side_effects,
        ))

        # 2. The pipeline itself (raises ClinicalDecisionSupportError)
        result = self.evaluate(context, options, session_id=session_id)

        # 3. Alerts outlive the request
        if db is not None and result.alerts:
            await self._side_effect("alerts", session_id, persist_alerts(db, tenant_id, session_id, result.alerts))

        now = datetime.datetime.now(datetime.timezone.utc)

        # 4. Usage metering
        if self.usage_meter is not None:
            await self._side_effect("metering", session_id, self.usage_meter.record(ApiUsage(
                tenant_id=tenant_id,
                endpoint=CDS_ENDPOINT,
                method="POST",
                timestamp=now,
                response_time_ms=result.processing_time_ms,
                status_code=200,
                data_processed=len(context.model_dump_json()),
                ai_model_used=f"clinical-decision-support-{self.config.model_version}",
                compute_units=calculate_compute_units(context, len(result.recommendations)),
            )))

        # 5. Session cache for follow-up reads
        if self.session_cache is not None:
            await self._side_effect("session_cache", session_id, self.session_cache.cache_session(SessionRecord(
                session_id=session_id,
                tenant_id=tenant_id,
                context=context,
                result=result,
                created_at=now,
            )))

        log.info(
            "cds_pipeline_completed",
            recommendations=len(result.recommendations),
            alerts=len(result.alerts),
            duration_ms=result.processing_time_ms,
        )
        return result
