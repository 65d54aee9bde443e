from typing import List, Optional

from cds.schemas.context import ClinicalContext
from cds.schemas.results import (
    ClinicalRecommendation, ConfidenceSummary, DifferentialDiagnosis, ExplainabilityReport,
    InputFactors, Reasoning, RecommendationConfidence, RiskPrediction,
)

def mean(values: List[float]) -> Optional[float]:
    """Average, or None for an empty list (never divides by zero)."""
    if not values:
        return None
    return sum(values) / len(values)

def _format_value(value: float) -> str:
    # 15000.0 reads as "15000" in a lab summary
    return str(int(value)) if float(value).is_integer() else str(value)


class ExplainabilityReporter:

    def __init__(self, model_version: str, catalog_version: str):
        self.model_version = model_version
        self.catalog_version = catalog_version

    @staticmethod
    def overall_confidence(
        recommendations: List[ClinicalRecommendation],
        diagnoses: List[DifferentialDiagnosis]
    ) -> Optional[float]:
        group_means = [
            m for m in (
                mean([r.confidence for r in recommendations]),
                mean([d.probability for d in diagnoses]),
            )
            if m is not None
        ]
        return mean(group_means)

    def report(
        self,
        context: ClinicalContext,
        recommendations: List[ClinicalRecommendation],
        diagnoses: List[DifferentialDiagnosis],
        risk_predictions: List[RiskPrediction]
    ) -> ExplainabilityReport:
        return ExplainabilityReport(
            model_version=self.model_version,
            catalog_version=self.catalog_version,
            input_factors=InputFactors(
                symptoms=len(context.symptoms),
                lab_results=len(context.lab_results),
                medications=len(context.current_medications),
                vital_signs=context.vitals.recorded_count(),
            ),
            reasoning=Reasoning(
                primary_symptoms=context.symptoms[:3],
                key_lab_values=[
                    f"{lab.test}: {_format_value(lab.value)}"
                    for lab in context.lab_results if lab.abnormal
                ],
                risk_drivers=[rf.factor for rp in risk_predictions for rf in rp.risk_factors],
            ),
            confidence=ConfidenceSummary(
                overall=self.overall_confidence(recommendations, diagnoses),
                recommendations=[
                    RecommendationConfidence(id=r.id, confidence=r.confidence)
                    for r in recommendations
                ],
            ),
        )
