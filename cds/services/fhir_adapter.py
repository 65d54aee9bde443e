import datetime
import structlog
from typing import Any, Dict, List, Optional, Tuple
from fhir.resources.bundle import Bundle
from fhir.resources.observation import Observation
from pydantic import ValidationError

from cds.schemas.context import (
    BloodPressure, ClinicalContext, LabResult, Medication, ReferenceRange, Vitals
)

logger = structlog.get_logger()

# LOINC codes for the vitals the pipeline reads
VITAL_SIGN_CODES = {
    "8310-5": "temperature",
    "8867-4": "heart_rate",
    "9279-1": "respiratory_rate",
    "59408-5": "oxygen_saturation",
    "2708-6": "oxygen_saturation",
}
BP_PANEL_CODE = "85354-9"
BP_SYSTOLIC_CODE = "8480-6"
BP_DIASTOLIC_CODE = "8462-4"

ABNORMAL_INTERPRETATIONS = {"H", "HH", "HU", "L", "LL", "LU", "A", "AA"}
FAHRENHEIT_UNITS = {"[degF]", "degF", "°F", "F"}
INACTIVE_MEDICATION_STATUSES = {"entered-in-error", "stopped", "completed", "cancelled", "not-taken"}

class FHIRBundleError(ValueError):
    pass


def _resource_type(resource: Any) -> Optional[str]:
    if resource is None:
        return None
    r_type = getattr(resource, "__resource_type__", None)
    if not r_type:
        r_type = resource.__class__.__name__
    return r_type

def _loinc_codes(codeable: Any) -> List[str]:
    codes = []
    if codeable is None or not codeable.coding:
        return codes
    for coding in codeable.coding:
        # Standard LOINC URL: http://loinc.org
        if "loinc.org" in (coding.system or ""):
            codes.append(coding.code)
    return codes

def _display(codeable: Any) -> Optional[str]:
    if codeable is None:
        return None
    if codeable.text:
        return codeable.text
    for coding in codeable.coding or []:
        if coding.display:
            return coding.display
        if coding.code:
            return coding.code
    return None

def _quantity(quantity: Any) -> Optional[float]:
    if quantity is None or quantity.value is None:
        return None
    return float(quantity.value)

def _as_date(value: Any) -> datetime.date:
    """
    FHIR dates may be partial ("1950", "2024-03"). Missing parts default to the first.
    """
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    parts = [int(p) for p in str(value)[:10].split("-")]
    year, month, day = (parts + [1, 1])[:3]
    return datetime.date(year, month, day)

def _as_timestamp(value: Any) -> Optional[datetime.datetime]:
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, str) and len(value) > 10:
        return datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
    return datetime.datetime.combine(_as_date(value), datetime.time.min, tzinfo=datetime.timezone.utc)

def _age_from_birth_date(birth_date: Any, today: Optional[datetime.date] = None) -> int:
    today = today or datetime.date.today()
    born = _as_date(birth_date)
    return today.year - born.year - ((today.month, today.day) < (born.month, born.day))


class FHIRContextAdapter:
    """
    Builds a ClinicalContext from a FHIR R5 Bundle (Patient, Observation,
    MedicationStatement/MedicationRequest, AllergyIntolerance, Condition).
    Everything is read from the validated resource objects.
    """

    @staticmethod
    def validate_fhir_structure(bundle_json: Dict[str, Any]) -> Bundle:
        """
        Strictly parses JSON into a FHIR Bundle object.
        Raises FHIRBundleError if invalid.
        """
        try:
            return Bundle(**bundle_json)
        except ValidationError as e:
            logger.warning("fhir_validation_failed", error=str(e))
            raise FHIRBundleError(f"Invalid FHIR Bundle: {e.error_count()} validation error(s)") from e
        except Exception as e:
            logger.error("fhir_parsing_crash", error=str(e))
            raise FHIRBundleError("Invalid FHIR JSON structure") from e

    @staticmethod
    def resources_by_type(bundle: Bundle) -> Dict[str, List[Any]]:
        grouped: Dict[str, List[Any]] = {}
        for entry in bundle.entry or []:
            resource = entry.resource
            if resource is None:
                continue
            grouped.setdefault(_resource_type(resource), []).append(resource)
        return grouped

    @staticmethod
    def is_abnormal(observation: Observation, value: float, reference_range: Optional[ReferenceRange]) -> bool:
        for interpretation in observation.interpretation or []:
            for coding in interpretation.coding or []:
                if coding.code in ABNORMAL_INTERPRETATIONS:
                    return True
        if reference_range is None:
            return False
        if reference_range.low is not None and value < reference_range.low:
            return True
        if reference_range.high is not None and value > reference_range.high:
            return True
        return False

    @staticmethod
    def extract_observations(observations: List[Observation]) -> Tuple[Vitals, List[LabResult]]:
        vitals: Dict[str, Any] = {}
        labs: List[LabResult] = []

        for obs in observations:
            codes = _loinc_codes(obs.code)

            if BP_PANEL_CODE in codes:
                components = {}
                for component in obs.component or []:
                    for code in _loinc_codes(component.code):
                        components[code] = _quantity(component.valueQuantity)
                if components.get(BP_SYSTOLIC_CODE) and components.get(BP_DIASTOLIC_CODE):
                    vitals["blood_pressure"] = BloodPressure(
                        systolic=components[BP_SYSTOLIC_CODE],
                        diastolic=components[BP_DIASTOLIC_CODE],
                    )
                continue

            value = _quantity(obs.valueQuantity)
            if value is None:
                continue

            vital_field = next((VITAL_SIGN_CODES[c] for c in codes if c in VITAL_SIGN_CODES), None)
            if vital_field:
                unit = obs.valueQuantity.code or obs.valueQuantity.unit
                if vital_field == "temperature" and unit in FAHRENHEIT_UNITS:
                    value = round((value - 32) * 5 / 9, 2)
                vitals[vital_field] = value
                continue

            reference_range = None
            if obs.referenceRange:
                first = obs.referenceRange[0]
                reference_range = ReferenceRange(low=_quantity(first.low), high=_quantity(first.high))

            labs.append(LabResult(
                test=_display(obs.code) or "unknown",
                value=value,
                unit=obs.valueQuantity.unit or "",
                reference_range=reference_range,
                timestamp=_as_timestamp(obs.effectiveDateTime or obs.issued),
                abnormal=FHIRContextAdapter.is_abnormal(obs, value, reference_range),
            ))

        return Vitals(**vitals), labs

    @staticmethod
    def extract_medications(resources: List[Any]) -> List[Medication]:
        medications = []
        for resource in resources:
            if resource.status in INACTIVE_MEDICATION_STATUSES:
                continue
            # R5 carries the drug as a CodeableReference; only the concept names it inline
            if resource.medication is None:
                continue
            name = _display(resource.medication.concept)
            if name:
                medications.append(Medication(name=name))
        return medications


def context_from_bundle(
    bundle_json: Dict[str, Any],
    symptoms: Optional[List[str]] = None,
    today: Optional[datetime.date] = None
) -> ClinicalContext:
    bundle = FHIRContextAdapter.validate_fhir_structure(bundle_json)
    resources = FHIRContextAdapter.resources_by_type(bundle)

    patients = resources.get("Patient", [])
    if not patients:
        raise FHIRBundleError("Bundle has no Patient resource")
    patient = patients[0]
    if not patient.birthDate:
        raise FHIRBundleError("Patient.birthDate is required to evaluate risk")

    vitals, labs = FHIRContextAdapter.extract_observations(resources.get("Observation", []))
    medications = FHIRContextAdapter.extract_medications(
        resources.get("MedicationStatement", []) + resources.get("MedicationRequest", [])
    )
    allergies = [n for n in (_display(a.code) for a in resources.get("AllergyIntolerance", [])) if n]
    history = [n for n in (_display(c.code) for c in resources.get("Condition", [])) if n]

    logger.info(
        "fhir_context_built",
        observations=len(resources.get("Observation", [])),
        labs=len(labs),
        medications=len(medications),
    )

    return ClinicalContext(
        patient_id=patient.id or "unknown",
        age=_age_from_birth_date(patient.birthDate, today),
        sex=patient.gender if patient.gender in ("male", "female") else "other",
        vitals=vitals,
        symptoms=symptoms or [],
        current_medications=medications,
        allergies=allergies,
        medical_history=history,
        lab_results=labs,
    )
