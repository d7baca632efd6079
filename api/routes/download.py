"""
GET /api/v1/download endpoint (admin only).

Streams the registration table as CSV (every field quoted) or Excel, in
first-come-first-served order, honoring the same filters as /voters.
Rows are produced in chunks so large exports never build one big string.

Accepts ``fmt=csv|xlsx``; the filename embeds the export date.
X-Total-Count carries the number of exported records.
"""

import csv
import io
from datetime import date, datetime
from typing import Any, Iterable, Iterator

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from api.routes.voters import filter_state
from api.services import Services, get_services, require_admin_session
from registration.models import VoterRecord
from utils.config import KnownValues
from utils.filters import FilterState, apply_filters, sort_first_come_first_served

router = APIRouter(
    prefix="/download",
    tags=["download"],
    dependencies=[Depends(require_admin_session)],
)

EXPORT_HEADER = [
    "No.", "Full Name", "Email", "Organization", "Date Of Birth", "Gender",
    "Region", "Constituency", "ID Type", "ID Number", "Registration Date",
]

CHUNK_SIZE = 1000


def export_filename(ext: str, today: date | None = None) -> str:
    today = today or date.today()
    return f"NYPG_Voter_Statistics_{today.isoformat()}.{ext}"


def _registration_date(created: datetime | None) -> str:
    return created.strftime("%Y-%m-%d %H:%M:%S") if created else ""


def export_row(number: int, voter: VoterRecord) -> list[Any]:
    """One export row; *number* is the 1-based position in the export."""
    return [
        number,
        voter.full_name or "",
        voter.email or "",
        voter.organization or "",
        voter.dob_date,
        voter.gender or "",
        voter.region or "",
        voter.constituency or "",
        KnownValues.id_type_label(voter.identification_type),
        voter.identification_number or "",
        _registration_date(voter.created_at),
    ]


def _iter_chunks(records: list[VoterRecord], size: int = CHUNK_SIZE) -> Iterator[list[list[Any]]]:
    """Yield export rows in batches of *size*."""
    for start in range(0, len(records), size):
        batch = records[start:start + size]
        yield [export_row(start + i + 1, v) for i, v in enumerate(batch)]


def csv_stream(records: list[VoterRecord]) -> Iterable[str]:
    """CSV text in chunks: the header, then up to CHUNK_SIZE rows per chunk."""
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(EXPORT_HEADER)
    yield buf.getvalue()
    for rows in _iter_chunks(records):
        buf.seek(0)
        buf.truncate()
        writer.writerows(rows)
        yield buf.getvalue()


def xlsx_bytes(records: list[VoterRecord]) -> bytes:
    import openpyxl

    wb = openpyxl.Workbook(write_only=True)
    ws = wb.create_sheet("Registrations")
    ws.append(EXPORT_HEADER)
    for rows in _iter_chunks(records):
        for row in rows:
            ws.append(row)
    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()


def export_records(services: Services, filters: FilterState) -> list[VoterRecord]:
    return sort_first_come_first_served(
        apply_filters(services.repository.voters(), filters)
    )


@router.get("", summary="Export registrations as CSV or Excel")
def download(
    fmt: str = Query("csv", pattern="^(csv|xlsx)$", description="Output format"),
    filters: FilterState = Depends(filter_state),
    services: Services = Depends(get_services),
) -> StreamingResponse:
    """Stream the (filtered) registration table as a file download."""
    records = export_records(services, filters)
    headers = {"X-Total-Count": str(len(records))}

    if fmt == "xlsx":
        content = xlsx_bytes(records)
        return StreamingResponse(
            iter([content]),
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={
                "Content-Disposition": f"attachment; filename={export_filename('xlsx')}",
                "Content-Length": str(len(content)),
                **headers,
            },
        )

    return StreamingResponse(
        csv_stream(records),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename={export_filename('csv')}",
            **headers,
        },
    )
