from pydantic import BaseModel, Field, ConfigDict
from typing import List, Literal, Optional
from datetime import datetime

from cds.schemas.context import ClinicalContext

Timeframe = Literal["24h", "7d", "30d", "1y", "5y"]
Urgency = Literal["routine", "urgent", "emergent"]
InteractionSeverity = Literal["minor", "moderate", "major", "contraindicated"]
AlertType = Literal["safety", "drug_interaction", "allergy", "dosing", "monitoring", "critical_value"]
AlertSeverity = Literal["info", "warning", "critical"]
RecommendationType = Literal["diagnostic", "therapeutic", "monitoring", "referral", "alert"]
Priority = Literal["low", "medium", "high", "critical"]
EvidenceLevel = Literal["A", "B", "C", "D"]
FocusArea = Literal["diagnostic", "therapeutic", "preventive"]

# 1. Stage outputs
class RiskFactor(BaseModel):
    factor: str
    weight: float
    modifiable: bool

class RiskPrediction(BaseModel):
    condition: str
    risk_score: float = Field(..., ge=0.0, le=1.0)
    timeframe: Timeframe
    risk_factors: List[RiskFactor] = []
    preventive_actions: List[str] = []

class DifferentialDiagnosis(BaseModel):
    condition: str
    probability: float = Field(..., ge=0.0, le=1.0)
    supporting_evidence: List[str] = []
    contradicting_evidence: List[str] = []
    next_steps: List[str] = []
    urgency: Urgency = "routine"

class DrugInteraction(BaseModel):
    severity: InteractionSeverity
    drug1: str
    drug2: str
    mechanism: str
    clinical_effect: str
    recommendation: str
    alternatives: List[str] = []

class ClinicalAlert(BaseModel):
    id: str
    type: AlertType
    severity: AlertSeverity
    message: str
    action_required: bool
    time_generated: datetime
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class LiteratureSupport(BaseModel):
    pubmed_ids: List[str] = []
    study_types: List[str] = []
    evidence_level: EvidenceLevel

class EvidenceBase(BaseModel):
    clinical_guidelines: List[str] = []
    literature_support: LiteratureSupport
    ai_model_confidence: float = Field(..., ge=0.0, le=1.0)
    similar_cases: int = Field(0, ge=0)
    expert_consensus: bool = False

class ClinicalRecommendation(BaseModel):
    id: str
    type: RecommendationType
    title: str
    description: str
    priority: Priority
    confidence: float = Field(..., ge=0.0, le=1.0)
    evidence: EvidenceBase
    contraindications: List[str] = []
    alternatives: List[str] = []
    timeframe: str
    cost_estimate: Optional[float] = None
    expected_outcome: Optional[str] = None

# 2. Explainability
class InputFactors(BaseModel):
    symptoms: int
    lab_results: int
    medications: int
    vital_signs: int

class Reasoning(BaseModel):
    primary_symptoms: List[str] = []
    key_lab_values: List[str] = []
    risk_drivers: List[str] = []

class RecommendationConfidence(BaseModel):
    id: str
    confidence: float

class ConfidenceSummary(BaseModel):
    # None when there was nothing to average
    overall: Optional[float] = None
    recommendations: List[RecommendationConfidence] = []

class ExplainabilityReport(BaseModel):
    model_version: str
    catalog_version: str
    input_factors: InputFactors
    reasoning: Reasoning
    confidence: ConfidenceSummary

    model_config = ConfigDict(protected_namespaces=())

# 3. Pipeline contract
class CDSOptions(BaseModel):
    include_experimental: bool = False
    max_recommendations: Optional[int] = Field(None, ge=1)
    focus_area: Optional[FocusArea] = None

    model_config = ConfigDict(extra="forbid")

class CDSResult(BaseModel):
    session_id: str
    recommendations: List[ClinicalRecommendation] = []
    differential_diagnoses: List[DifferentialDiagnosis] = []
    risk_predictions: List[RiskPrediction] = []
    drug_interactions: List[DrugInteraction] = []
    alerts: List[ClinicalAlert] = []
    explainability: ExplainabilityReport
    processing_time_ms: float = 0.0

class SessionRecord(BaseModel):
    """
    What gets cached for follow-up reads. Write-once, expires by TTL.
    """
    session_id: str
    tenant_id: str
    context: ClinicalContext
    result: CDSResult
    created_at: datetime
