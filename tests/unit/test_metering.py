import datetime
import pytest
from unittest.mock import AsyncMock

from cds.schemas.context import LabResult
from cds.services.metering import ApiUsage, UsageMeter, calculate_compute_units

def test_compute_units(make_context):
    context = make_context(
        symptoms=["fever", "cough"],
        lab_results=[LabResult(test="WBC", value=9000)],
    )
    assert calculate_compute_units(context, 0) == 10 + 4 + 3
    assert calculate_compute_units(context, 2) == 10 + 4 + 3 + 10

@pytest.mark.asyncio
async def test_record_writes_detail_and_daily_aggregates():
    redis = AsyncMock()
    meter = UsageMeter(redis=redis, detail_ttl=100, aggregate_ttl=1000)
    usage = ApiUsage(
        tenant_id="tenant-a",
        endpoint="/v1/cds/recommendations",
        method="POST",
        timestamp=datetime.datetime(2025, 3, 14, 9, 30, tzinfo=datetime.timezone.utc),
        response_time_ms=12.5,
        status_code=200,
        data_processed=2048,
        ai_model_used="clinical-decision-support-v2.1.0",
        compute_units=27,
    )

    await meter.record(usage)

    detail_key, ttl, _ = redis.setex.await_args.args
    assert detail_key.startswith("usage_detail:tenant-a:")
    assert ttl == 100

    increments = {call.args[1]: call.args[2] for call in redis.hincrby.await_args_list}
    assert increments == {"requests": 1, "computeUnits": 27, "dataProcessed": 2048}
    assert {call.args[0] for call in redis.hincrby.await_args_list} == {"usage:tenant-a:2025-03-14"}
    redis.expire.assert_awaited_with("usage:tenant-a:2025-03-14", 1000)
