import structlog
from typing import Dict, List, Optional

from cds.schemas.context import GenomicData, Medication
from cds.schemas.results import DrugInteraction
from cds.services.catalog import (
    DRUG_INTERACTIONS, SEVERITY_RANK, InteractionProfile, interaction_key
)

logger = structlog.get_logger()

class DrugInteractionChecker:

    def __init__(self, table: Dict[str, InteractionProfile] = DRUG_INTERACTIONS):
        self.table = table

    def check_pair(self, med1: Medication, med2: Medication) -> Optional[DrugInteraction]:
        """
        Looks the pair up by canonical key, so list order never hides an interaction.
        drug1/drug2 are reported in the order the medications were listed.
        """
        profile = self.table.get(interaction_key(med1.name, med2.name))
        if profile is None:
            return None

        return DrugInteraction(
            severity=profile.severity,
            drug1=med1.name,
            drug2=med2.name,
            mechanism=profile.mechanism,
            clinical_effect=profile.clinical_effect,
            recommendation=profile.recommendation,
            alternatives=list(profile.alternatives),
        )

    def check(
        self,
        medications: List[Medication],
        genomic_data: Optional[GenomicData] = None
    ) -> List[DrugInteraction]:
        # genomic_data is accepted for pharmacogenomic checks but no table uses it yet
        interactions = []

        for i in range(len(medications)):
            for j in range(i + 1, len(medications)):
                interaction = self.check_pair(medications[i], medications[j])
                if interaction:
                    interactions.append(interaction)

        # Stable sort keeps discovery order within a severity
        interactions.sort(key=lambda x: SEVERITY_RANK.get(x.severity, 0), reverse=True)

        if interactions:
            logger.info("drug_interactions_found", count=len(interactions))
        return interactions
