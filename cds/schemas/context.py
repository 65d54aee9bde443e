from pydantic import BaseModel, Field, ConfigDict
from typing import Dict, Any, List, Literal, Optional
from datetime import datetime

# Every input model is frozen: a context is immutable for the length of one pipeline run.
_FROZEN = ConfigDict(frozen=True, extra="forbid")

class BloodPressure(BaseModel):
    systolic: float = Field(..., gt=0)
    diastolic: float = Field(..., gt=0)

    model_config = _FROZEN

class Vitals(BaseModel):
    temperature: Optional[float] = Field(None, description="Body temperature in Celsius")
    blood_pressure: Optional[BloodPressure] = None
    heart_rate: Optional[float] = Field(None, ge=0, description="Beats per minute")
    respiratory_rate: Optional[float] = Field(None, ge=0, description="Breaths per minute")
    oxygen_saturation: Optional[float] = Field(None, ge=0, le=100, description="SpO2 percent")

    model_config = _FROZEN

    def recorded_count(self) -> int:
        """Number of vitals fields that actually carry a value."""
        return sum(1 for name in type(self).model_fields if getattr(self, name) is not None)

class Medication(BaseModel):
    name: str = Field(..., min_length=1)
    dosage: str = ""
    frequency: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    indication: str = ""

    model_config = _FROZEN

class ReferenceRange(BaseModel):
    low: Optional[float] = None
    high: Optional[float] = None

    model_config = _FROZEN

class LabResult(BaseModel):
    test: str = Field(..., min_length=1, description="e.g. 'WBC', 'Troponin I'")
    value: float
    unit: str = ""
    reference_range: Optional[ReferenceRange] = None
    timestamp: Optional[datetime] = None
    abnormal: bool = False

    model_config = _FROZEN

class ImagingResult(BaseModel):
    type: Literal["xray", "ct", "mri", "ultrasound", "pet", "other"]
    body_part: str
    findings: str = ""
    timestamp: Optional[datetime] = None
    urgency: Literal["normal", "urgent", "critical"] = "normal"

    model_config = _FROZEN

class GenomicData(BaseModel):
    variants: List[Dict[str, Any]] = []
    pharmacogenomics: List[Dict[str, Any]] = []

    model_config = _FROZEN

class ClinicalContext(BaseModel):
    """
    Complete input snapshot for one CDS evaluation.
    Absent vitals/labs are not errors, they simply contribute nothing.
    """
    patient_id: str = Field(..., min_length=1)
    age: int = Field(..., ge=0, le=130)
    sex: Literal["male", "female", "other"]
    weight: Optional[float] = Field(None, gt=0, description="kg")
    height: Optional[float] = Field(None, gt=0, description="cm")
    vitals: Vitals = Field(default_factory=Vitals)
    symptoms: List[str] = []
    current_medications: List[Medication] = []
    allergies: List[str] = []
    medical_history: List[str] = []
    family_history: List[str] = []
    lab_results: List[LabResult] = []
    imaging_results: List[ImagingResult] = []
    genomic_data: Optional[GenomicData] = None

    model_config = _FROZEN
