"""
Chart aggregation endpoints (admin only).

GET /api/v1/aggregations                   → gender, region, and constituency tallies
GET /api/v1/aggregations/regions/{region}  → constituency tallies for one region

Tallies are recomputed only when the repository hands back a new voter list.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from api.models import AggregationOut, RegionBreakdownOut
from api.services import Services, get_services, require_admin_session
from utils.aggregation import ChartAggregate, aggregate
from utils.cache import TTLCache
from utils.config import KnownValues

router = APIRouter(
    prefix="/aggregations",
    tags=["aggregations"],
    dependencies=[Depends(require_admin_session)],
)

# "all" -> (voter list the tallies were computed from, tallies)
_agg_cache = TTLCache(maxsize=4, ttl_seconds=300)


def _current_aggregate(services: Services, refresh: bool = False) -> ChartAggregate:
    records = services.repository.voters(force=refresh)
    cached = _agg_cache.get("all")
    if cached is not None and cached[0] is records:
        return cached[1]
    result = aggregate(records)
    _agg_cache.set("all", (records, result))
    return result


@router.get("", response_model=AggregationOut, summary="Registration tallies for charts")
def get_aggregations(
    refresh: bool = Query(False, description="Bypass the voter cache"),
    services: Services = Depends(get_services),
) -> AggregationOut:
    """Gender and region distributions plus region -> constituency counts."""
    return AggregationOut(**_current_aggregate(services, refresh).to_dict())


@router.get(
    "/regions/{region}",
    response_model=RegionBreakdownOut,
    summary="Constituency tallies for one region",
)
def get_region_breakdown(
    region: str,
    services: Services = Depends(get_services),
) -> RegionBreakdownOut:
    result = _current_aggregate(services)
    if region not in KnownValues.REGIONS and region not in result.constituency:
        raise HTTPException(status_code=404, detail=f"Unknown region '{region}'")
    series = result.constituency_series(region)
    return RegionBreakdownOut(
        region=region,
        total=sum(p["value"] for p in series),
        constituencies=series,
    )
