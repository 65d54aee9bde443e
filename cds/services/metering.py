import datetime
import structlog
from pydantic import BaseModel
from prometheus_client import Counter, Histogram
from redis.asyncio import Redis

from cds.core.config import settings
from cds.schemas.context import ClinicalContext
from cds.services.session_cache import redis_client

logger = structlog.get_logger()

# Prometheus (scraped from /metrics)
CDS_REQUESTS = Counter(
    "cds_requests_total", "CDS pipeline invocations", ["tenant_id", "status_code"]
)
CDS_COMPUTE_UNITS = Counter(
    "cds_compute_units_total", "Compute units billed for CDS evaluations", ["tenant_id"]
)
CDS_LATENCY = Histogram(
    "cds_processing_seconds", "Time spent in the CDS pipeline"
)

class ApiUsage(BaseModel):
    tenant_id: str
    endpoint: str
    method: str
    timestamp: datetime.datetime
    response_time_ms: float
    status_code: int
    data_processed: int # bytes of clinical context
    ai_model_used: str
    compute_units: int

def calculate_compute_units(context: ClinicalContext, num_recommendations: int) -> int:
    units = 10
    units += len(context.symptoms) * 2
    units += len(context.lab_results) * 3
    units += num_recommendations * 5
    return units


class UsageMeter:
    """
    Per-tenant usage accounting: a short-lived detail record per call plus
    daily aggregates kept for the billing window.
    """

    def __init__(
        self,
        redis: Redis = redis_client,
        detail_ttl: int = settings.USAGE_DETAIL_TTL_SECONDS,
        aggregate_ttl: int = settings.USAGE_AGGREGATE_TTL_SECONDS
    ):
        self.redis = redis
        self.detail_ttl = detail_ttl
        self.aggregate_ttl = aggregate_ttl

    async def record(self, usage: ApiUsage):
        CDS_REQUESTS.labels(tenant_id=usage.tenant_id, status_code=str(usage.status_code)).inc()
        CDS_COMPUTE_UNITS.labels(tenant_id=usage.tenant_id).inc(usage.compute_units)
        CDS_LATENCY.observe(usage.response_time_ms / 1000.0)

        day = usage.timestamp.date().isoformat()
        usage_key = f"usage:{usage.tenant_id}:{day}"
        detail_key = f"usage_detail:{usage.tenant_id}:{int(usage.timestamp.timestamp() * 1000)}"

        await self.redis.setex(detail_key, self.detail_ttl, usage.model_dump_json())
        await self.redis.hincrby(usage_key, "requests", 1)
        await self.redis.hincrby(usage_key, "computeUnits", usage.compute_units)
        await self.redis.hincrby(usage_key, "dataProcessed", usage.data_processed)
        await self.redis.expire(usage_key, self.aggregate_ttl)

        logger.info("usage_recorded", tenant_id=usage.tenant_id, compute_units=usage.compute_units)
