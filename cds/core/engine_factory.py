from functools import lru_cache

from cds.core.config import PipelineConfig, settings
from cds.services.engine import ClinicalDecisionSupportEngine
from cds.services.metering import UsageMeter
from cds.services.session_cache import SessionCache

@lru_cache(maxsize=1)
def get_cds_engine() -> ClinicalDecisionSupportEngine:
    """
    Factory to return the process-wide CDS engine, wired from Config.
    Also used as the FastAPI dependency (tests override it).
    """
    return ClinicalDecisionSupportEngine(
        config=PipelineConfig.from_settings(settings),
        session_cache=SessionCache(),
        usage_meter=UsageMeter(),
    )
