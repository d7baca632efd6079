"""
Registration table endpoints (admin only).

GET    /api/v1/voters   → filtered, first-come-first-served, paginated list
DELETE /api/v1/voters   → delete selected voters by id

Filter parameters are shared with /download so an export matches the table.
"""

from fastapi import APIRouter, Depends, Query

from api.models import DeleteVotersIn, DeleteVotersOut, VoterPage
from api.services import Services, get_services, require_admin_session
from utils.filters import DEFAULT_PAGE_SIZE, FilterState, TableView, page_window

router = APIRouter(
    prefix="/voters",
    tags=["voters"],
    dependencies=[Depends(require_admin_session)],
)


def filter_state(
    full_name: str = Query("", description="Name contains (case-insensitive)"),
    organization: str = Query("", description="Organization contains"),
    date_of_birth: str = Query("", description="Date of birth contains, e.g. 2001-04"),
    gender: str = Query("", description="Exact gender: male | female"),
    region: str = Query("", description="Region contains"),
    constituency: str = Query("", description="Constituency contains"),
    identification_type: str = Query("", description="ID type contains"),
    identification_number: str = Query("", description="ID number contains"),
) -> FilterState:
    """Collect the table filter query parameters into a FilterState."""
    return FilterState(
        full_name=full_name.strip(),
        organization=organization.strip(),
        date_of_birth=date_of_birth.strip(),
        gender=gender.strip(),
        region=region.strip(),
        constituency=constituency.strip(),
        identification_type=identification_type.strip(),
        identification_number=identification_number.strip(),
    )


@router.get("", response_model=VoterPage, summary="List registrations")
def list_voters(
    filters: FilterState = Depends(filter_state),
    page: int = Query(1, ge=1, description="1-based page number (clamped to the last page)"),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=1000, description="Rows per page"),
    refresh: bool = Query(False, description="Bypass the voter cache"),
    services: Services = Depends(get_services),
) -> VoterPage:
    """Return one page of registrations matching every given filter."""
    records = services.repository.voters(force=refresh)
    view = TableView(filters=filters, page=page, page_size=page_size)
    result = view.view(records)
    return VoterPage(
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
        has_next=result.has_next,
        has_prev=result.has_prev,
        page_numbers=page_window(result.page, result.total_pages),
        offset=(result.page - 1) * result.page_size,
        items=result.items,
    )


@router.delete("", response_model=DeleteVotersOut, summary="Delete registrations")
def delete_voters(
    body: DeleteVotersIn,
    services: Services = Depends(get_services),
) -> DeleteVotersOut:
    deleted = services.repository.delete_voters(body.ids)
    return DeleteVotersOut(deleted=deleted)
