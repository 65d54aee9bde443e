import structlog
from typing import List

from cds.schemas.context import ClinicalContext
from cds.schemas.results import DifferentialDiagnosis
from cds.services import catalog

logger = structlog.get_logger()

class DifferentialDiagnosisGenerator:
    """
    Maps the patient's primary symptoms to candidate conditions and ranks them
    by how much of each condition's known presentation the patient shows.
    """

    @staticmethod
    def conditions_for_symptom(symptom: str) -> List[str]:
        return list(catalog.SYMPTOM_CONDITIONS.get(symptom.strip().lower(), ()))

    @staticmethod
    def probability(context: ClinicalContext, condition: str) -> float:
        known = catalog.CONDITION_SYMPTOMS.get(condition, ())
        probability = catalog.DIAGNOSIS_BASE_PROBABILITY

        # Conditions without a known presentation stay at the base and get dropped
        if known:
            matching = [
                s for s in context.symptoms
                if any(k.lower() in s.lower() for k in known)
            ]
            probability += (len(matching) / len(known)) * catalog.DIAGNOSIS_SYMPTOM_WEIGHT

        return min(probability, catalog.DIAGNOSIS_MAX_PROBABILITY)

    @staticmethod
    def supporting_evidence(context: ClinicalContext, condition: str) -> List[str]:
        return [
            f"Symptom: {s}"
            for s in context.symptoms
            if condition in catalog.SYMPTOM_SUPPORT.get(s.strip().lower(), ())
        ]

    @staticmethod
    def urgency(condition: str, probability: float) -> str:
        if condition in catalog.EMERGENT_CONDITIONS and probability > catalog.EMERGENT_PROBABILITY:
            return "emergent"
        return "routine"

    def generate(self, context: ClinicalContext) -> List[DifferentialDiagnosis]:
        diagnoses: List[DifferentialDiagnosis] = []
        seen = set()

        # Only the leading symptoms drive the candidate set
        for symptom in context.symptoms[:catalog.DIAGNOSIS_PRIMARY_SYMPTOMS]:
            for condition in self.conditions_for_symptom(symptom):
                if condition in seen:
                    continue
                seen.add(condition)

                probability = self.probability(context, condition)
                if probability <= catalog.DIAGNOSIS_BASE_PROBABILITY:
                    continue

                diagnoses.append(DifferentialDiagnosis(
                    condition=condition,
                    probability=probability,
                    supporting_evidence=self.supporting_evidence(context, condition),
                    contradicting_evidence=[],
                    next_steps=list(catalog.NEXT_STEPS.get(condition, catalog.DEFAULT_NEXT_STEPS)),
                    urgency=self.urgency(condition, probability),
                ))

        diagnoses.sort(key=lambda d: d.probability, reverse=True)
        logger.debug("differential_diagnosis_done", candidates=len(diagnoses))
        return diagnoses[:catalog.DIAGNOSIS_MAX_RESULTS]
