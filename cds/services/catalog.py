"""
Static clinical catalog consumed by the CDS stages.

Everything here is data: the scoring, mapping and lookup functions in the
stage modules are generic and only read these tables. Bump CATALOG_VERSION
whenever a table changes so cached sessions and explainability reports can be
traced back to the rules that produced them.
"""
from typing import Dict, Literal, Optional, Tuple
from pydantic import BaseModel, ConfigDict

CATALOG_VERSION = "2024.1"

RuleKind = Literal["vital", "lab_value", "lab_flag", "age", "symptom"]

class RiskRule(BaseModel):
    """
    One weighted contribution to a condition's risk score.

    vital / lab_value: fires when the value is strictly outside [low, high]
                       (either bound may be omitted).
    lab_flag:          fires when the first matching lab is flagged abnormal.
    age:               fires when age > high.
    symptom:           fires when any symptom contains `target`.
    """
    factor: str
    weight: float
    modifiable: bool
    kind: RuleKind
    target: str = ""
    low: Optional[float] = None
    high: Optional[float] = None

    model_config = ConfigDict(frozen=True)

class ConditionProfile(BaseModel):
    name: str
    timeframe: Literal["24h", "7d", "30d", "1y", "5y"] = "30d"
    preventive_actions: Tuple[str, ...] = ("Regular monitoring",)
    rules: Tuple[RiskRule, ...] = ()

    model_config = ConfigDict(frozen=True)

class InteractionProfile(BaseModel):
    severity: Literal["minor", "moderate", "major", "contraindicated"]
    mechanism: str
    clinical_effect: str
    recommendation: str
    alternatives: Tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)


# --- Risk catalog ---
# Only sepsis and myocardial infarction have scoring rules. The remaining
# conditions are evaluated but always score 0 and get filtered out.
RISK_CATALOG: Tuple[ConditionProfile, ...] = (
    ConditionProfile(
        name="sepsis",
        timeframe="24h",
        preventive_actions=("Monitor vital signs", "Consider antibiotics", "Ensure hydration"),
        rules=(
            RiskRule(factor="Abnormal temperature", weight=0.2, modifiable=True,
                     kind="vital", target="temperature", low=36.0, high=38.0),
            RiskRule(factor="Tachycardia", weight=0.15, modifiable=True,
                     kind="vital", target="heart_rate", high=90.0),
            RiskRule(factor="Abnormal WBC count", weight=0.25, modifiable=True,
                     kind="lab_value", target="wbc", low=4000.0, high=12000.0),
        ),
    ),
    ConditionProfile(
        name="myocardial_infarction",
        timeframe="24h",
        preventive_actions=("Aspirin therapy", "Blood pressure control", "Lifestyle changes"),
        rules=(
            RiskRule(factor="Age > 65", weight=0.2, modifiable=False, kind="age", high=65),
            RiskRule(factor="Chest pain", weight=0.3, modifiable=True,
                     kind="symptom", target="chest pain"),
            RiskRule(factor="Elevated troponin", weight=0.4, modifiable=False,
                     kind="lab_flag", target="troponin"),
        ),
    ),
    ConditionProfile(name="stroke", timeframe="24h"),
    ConditionProfile(name="pulmonary_embolism"),
    ConditionProfile(name="diabetic_ketoacidosis"),
    ConditionProfile(name="hospital_readmission", timeframe="30d"),
    ConditionProfile(name="medication_adverse_event"),
    ConditionProfile(name="falls"),
    ConditionProfile(name="delirium"),
)

# Scores at or below this are noise and never reported
RISK_REPORT_FLOOR = 0.1


# --- Differential diagnosis tables ---
# Exact (case-insensitive) symptom -> candidate conditions
SYMPTOM_CONDITIONS: Dict[str, Tuple[str, ...]] = {
    "chest pain": ("myocardial infarction", "angina", "pulmonary embolism"),
    "shortness of breath": ("heart failure", "asthma", "pneumonia"),
    "fever": ("infection", "sepsis", "pneumonia"),
}

# Known presentation of a condition, matched as substrings of patient symptoms
CONDITION_SYMPTOMS: Dict[str, Tuple[str, ...]] = {
    "myocardial infarction": ("chest pain", "shortness of breath", "nausea"),
    "pneumonia": ("fever", "cough", "shortness of breath"),
}

# Symptom -> conditions it is reported as supporting evidence for
SYMPTOM_SUPPORT: Dict[str, Tuple[str, ...]] = {
    "chest pain": ("myocardial infarction", "angina"),
    "fever": ("infection", "sepsis", "pneumonia"),
}

NEXT_STEPS: Dict[str, Tuple[str, ...]] = {
    "myocardial infarction": ("ECG", "Troponin levels", "Chest X-ray"),
    "pneumonia": ("Chest X-ray", "Blood cultures", "Sputum culture"),
}
DEFAULT_NEXT_STEPS: Tuple[str, ...] = ("Further evaluation needed",)

EMERGENT_CONDITIONS = frozenset({"myocardial infarction", "sepsis", "stroke"})

DIAGNOSIS_BASE_PROBABILITY = 0.1
DIAGNOSIS_SYMPTOM_WEIGHT = 0.4
DIAGNOSIS_MAX_PROBABILITY = 0.95
DIAGNOSIS_PRIMARY_SYMPTOMS = 3
DIAGNOSIS_MAX_RESULTS = 10
EMERGENT_PROBABILITY = 0.5


# --- Drug interactions ---
def interaction_key(drug_a: str, drug_b: str) -> str:
    """
    Canonical pair key: order of the two drugs does not matter.
    """
    first, second = sorted((drug_a.strip().lower(), drug_b.strip().lower()))
    return f"{first}_{second}"

DRUG_INTERACTIONS: Dict[str, InteractionProfile] = {
    interaction_key("warfarin", "aspirin"): InteractionProfile(
        severity="major",
        mechanism="Increased bleeding risk",
        clinical_effect="Enhanced anticoagulant effect",
        recommendation="Monitor INR closely",
    ),
}

SEVERITY_RANK: Dict[str, int] = {
    "minor": 1,
    "moderate": 2,
    "major": 3,
    "contraindicated": 4,
}


# --- Recommendations ---
RECOMMENDATION_DIAGNOSIS_POOL = 3
RECOMMENDATION_MIN_PROBABILITY = 0.3
RECOMMENDATION_EVIDENCE_LEVEL = "B"
RECOMMENDATION_STUDY_TYPES: Tuple[str, ...] = ("observational",)
