import re
import structlog
from typing import List, Optional

from cds.schemas.results import (
    CDSOptions, ClinicalRecommendation, DifferentialDiagnosis, EvidenceBase,
    LiteratureSupport, RiskPrediction,
)
from cds.services import catalog

logger = structlog.get_logger()

def condition_slug(condition: str) -> str:
    """'myocardial infarction' / 'myocardial_infarction' -> 'myocardial_infarction'"""
    return re.sub(r"[^a-z0-9]+", "_", condition.strip().lower()).strip("_")


class TreatmentRecommendationGenerator:

    def __init__(self, max_recommendations: int = 15):
        self.max_recommendations = max_recommendations

    @staticmethod
    def priority(diagnosis: DifferentialDiagnosis) -> str:
        return "critical" if diagnosis.urgency == "emergent" else "high"

    def build(self, diagnosis: DifferentialDiagnosis, priority: str) -> ClinicalRecommendation:
        return ClinicalRecommendation(
            id=f"rec_{condition_slug(diagnosis.condition)}",
            type="diagnostic",
            title=f"Evaluate for {diagnosis.condition}",
            description=f"Consider diagnostic workup for {diagnosis.condition}",
            priority=priority,
            confidence=diagnosis.probability,
            evidence=EvidenceBase(
                clinical_guidelines=[f"Guidelines for {diagnosis.condition}"],
                literature_support=LiteratureSupport(
                    pubmed_ids=[],
                    study_types=list(catalog.RECOMMENDATION_STUDY_TYPES),
                    evidence_level=catalog.RECOMMENDATION_EVIDENCE_LEVEL,
                ),
                ai_model_confidence=diagnosis.probability,
                similar_cases=0, # No case registry behind this yet
                expert_consensus=True,
            ),
            contraindications=[],
            alternatives=diagnosis.next_steps[1:],
            timeframe="immediate",
        )

    def generate(
        self,
        diagnoses: List[DifferentialDiagnosis],
        risk_predictions: List[RiskPrediction],
        options: Optional[CDSOptions] = None
    ) -> List[ClinicalRecommendation]:
        # risk_predictions are part of the stage contract; no catalog rule reads them yet
        recommendations = [
            self.build(diagnosis, self.priority(diagnosis))
            for diagnosis in diagnoses[:catalog.RECOMMENDATION_DIAGNOSIS_POOL]
            if diagnosis.probability > catalog.RECOMMENDATION_MIN_PROBABILITY
        ]

        limit = self.max_recommendations
        if options and options.max_recommendations:
            limit = options.max_recommendations

        logger.debug("recommendations_built", candidates=len(recommendations), limit=limit)
        return recommendations[:limit]
