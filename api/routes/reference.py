"""
Reference data endpoints.

GET /api/v1/reference/regions                          → regions with constituencies
GET /api/v1/reference/regions/{region}/constituencies  → constituencies of one region
GET /api/v1/reference/id-types                         → identification types
"""

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from api.models import IdTypeOut, RegionOut
from utils.config import KnownValues

router = APIRouter(prefix="/reference", tags=["reference"])

_CACHE_HEADER = {"Cache-Control": "max-age=3600"}


@router.get("/regions", response_model=list[RegionOut], summary="List regions")
def list_regions() -> JSONResponse:
    """Return every region with its constituencies, in display order."""
    data = [{"name": name, "constituencies": list(consts)}
            for name, consts in KnownValues.REGIONS.items()]
    return JSONResponse(content=data, headers=_CACHE_HEADER)


@router.get(
    "/regions/{region}/constituencies",
    response_model=list[str],
    summary="List constituencies of a region",
)
def list_constituencies(region: str) -> JSONResponse:
    constituencies = KnownValues.constituencies_for(region)
    if constituencies is None:
        raise HTTPException(status_code=404, detail=f"Unknown region '{region}'")
    return JSONResponse(content=list(constituencies), headers=_CACHE_HEADER)


@router.get("/id-types", response_model=list[IdTypeOut], summary="List identification types")
def list_id_types() -> JSONResponse:
    data = [{"value": value, "label": label}
            for value, label in KnownValues.ID_TYPE_LABELS.items()]
    return JSONResponse(content=data, headers=_CACHE_HEADER)
