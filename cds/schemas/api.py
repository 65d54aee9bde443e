from pydantic import BaseModel, Field, ConfigDict
from typing import Dict, Any, List, Optional
from datetime import datetime

from cds.schemas.context import ClinicalContext
from cds.schemas.results import CDSOptions, CDSResult

# 1. Input Schema (Client -> API)
class RecommendationRequest(BaseModel):
    tenant_id: str = Field(..., min_length=1, description="Calling organisation")
    clinical_context: Optional[ClinicalContext] = Field(None, description="Structured patient snapshot")
    fhir_bundle: Optional[Dict[str, Any]] = Field(None, description="FHIR Bundle, alternative to clinical_context")
    symptoms: List[str] = Field([], description="Presenting symptoms when sending a FHIR Bundle")
    options: CDSOptions = Field(default_factory=CDSOptions)

    # Strict config
    model_config = ConfigDict(extra="forbid")

class AcknowledgeRequest(BaseModel):
    tenant_id: str = Field(..., min_length=1, description="Organisation that owns the alert")
    user_id: str = Field(..., min_length=1, description="Clinician acknowledging the alert")

# 2. Output Schema (API -> Client)
class RecommendationResponse(BaseModel):
    success: bool = True
    data: CDSResult
    timestamp: datetime

class ServiceInfo(BaseModel):
    service: str
    version: str
    catalog_version: str
    capabilities: List[str]
