import structlog
from typing import List, Optional, Tuple

from cds.schemas.context import ClinicalContext, LabResult
from cds.schemas.results import RiskFactor, RiskPrediction
from cds.services.catalog import ConditionProfile, RiskRule, RISK_CATALOG, RISK_REPORT_FLOOR

logger = structlog.get_logger()

def _outside(value: Optional[float], low: Optional[float], high: Optional[float]) -> bool:
    # Strict on both sides: a value sitting exactly on a bound is normal
    if value is None:
        return False
    if low is not None and value < low:
        return True
    if high is not None and value > high:
        return True
    return False

def _find_lab(context: ClinicalContext, name: str) -> Optional[LabResult]:
    """First lab whose test name contains `name` (case-insensitive)."""
    needle = name.lower()
    for lab in context.lab_results:
        if needle in lab.test.lower():
            return lab
    return None

def rule_fires(rule: RiskRule, context: ClinicalContext) -> bool:
    if rule.kind == "vital":
        return _outside(getattr(context.vitals, rule.target, None), rule.low, rule.high)

    if rule.kind == "lab_value":
        lab = _find_lab(context, rule.target)
        return lab is not None and _outside(lab.value, rule.low, rule.high)

    if rule.kind == "lab_flag":
        lab = _find_lab(context, rule.target)
        return lab is not None and lab.abnormal

    if rule.kind == "age":
        return _outside(context.age, rule.low, rule.high)

    if rule.kind == "symptom":
        needle = rule.target.lower()
        return any(needle in s.lower() for s in context.symptoms)

    raise ValueError(f"Unknown risk rule kind '{rule.kind}'")


class RiskPredictor:
    """
    Scores every condition in the risk catalog against the patient's vitals,
    labs, age and symptoms by summing the weights of the rules that fire.
    """

    def __init__(self, catalog: Tuple[ConditionProfile, ...] = RISK_CATALOG):
        self.catalog = catalog

    def score_condition(self, context: ClinicalContext, profile: ConditionProfile) -> RiskPrediction:
        risk_score = 0.0
        risk_factors: List[RiskFactor] = []

        for rule in profile.rules:
            if rule_fires(rule, context):
                risk_score += rule.weight
                risk_factors.append(
                    RiskFactor(factor=rule.factor, weight=rule.weight, modifiable=rule.modifiable)
                )

        return RiskPrediction(
            condition=profile.name,
            risk_score=min(max(risk_score, 0.0), 1.0),
            timeframe=profile.timeframe,
            risk_factors=risk_factors,
            preventive_actions=list(profile.preventive_actions),
        )

    def predict(self, context: ClinicalContext) -> List[RiskPrediction]:
        predictions = []
        for profile in self.catalog:
            prediction = self.score_condition(context, profile)
            if prediction.risk_score > RISK_REPORT_FLOOR:
                predictions.append(prediction)

        predictions.sort(key=lambda p: p.risk_score, reverse=True)
        logger.debug("risk_prediction_done", conditions=[p.condition for p in predictions])
        return predictions
