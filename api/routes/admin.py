"""
Admin endpoints.

POST   /api/v1/admin/login          → start a session (bearer token)
POST   /api/v1/admin/logout         → end the current session
GET    /api/v1/admin/session        → current session
GET    /api/v1/admin/admins         → list admins
POST   /api/v1/admin/admins         → create an admin
DELETE /api/v1/admin/admins/{id}    → delete an admin (never the last one)
GET    /api/v1/admin/setup          → whether initial admins exist
POST   /api/v1/admin/setup          → seed the initial admins

Admin operations are not retried; failures are returned with the underlying
message.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from api.models import (
    AdminCreateIn, AdminListOut, ErrorResponse, LoginIn, SessionOut, SetupStatusOut,
)
from api.services import Services, get_services, require_admin_session
from registration.models import AdminRecord
from registration.session import AdminSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/login",
    response_model=SessionOut,
    summary="Log in as an admin",
    responses={401: {"model": ErrorResponse}},
)
def login(body: LoginIn, services: Services = Depends(get_services)) -> SessionOut:
    if not body.email or not body.password:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not services.repository.verify_login(body.email, body.password):
        logger.info("Rejected admin login")
        raise HTTPException(status_code=401, detail="Invalid email or password")
    session = services.sessions.create(body.email)
    return SessionOut(**session.to_dict())


@router.post("/logout", status_code=204, summary="End the admin session")
def logout(
    session: AdminSession = Depends(require_admin_session),
    services: Services = Depends(get_services),
) -> Response:
    services.sessions.revoke(session.token)
    return Response(status_code=204)


@router.get("/session", response_model=SessionOut, summary="Current admin session")
def current_session(session: AdminSession = Depends(require_admin_session)) -> SessionOut:
    return SessionOut(**session.to_dict())


@router.get(
    "/admins",
    response_model=AdminListOut,
    summary="List admins",
    dependencies=[Depends(require_admin_session)],
)
def list_admins(
    refresh: bool = Query(False, description="Bypass the admin cache"),
    services: Services = Depends(get_services),
) -> AdminListOut:
    admins = services.repository.admins(force=refresh)
    return AdminListOut(count=len(admins), items=admins)


@router.post(
    "/admins",
    status_code=201,
    response_model=AdminRecord,
    summary="Create an admin",
    dependencies=[Depends(require_admin_session)],
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def create_admin(body: AdminCreateIn, services: Services = Depends(get_services)) -> AdminRecord:
    return services.repository.create_admin(body.id.strip(), body.email.strip(), body.password)


@router.delete(
    "/admins/{admin_id}",
    status_code=204,
    summary="Delete an admin",
    dependencies=[Depends(require_admin_session)],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def delete_admin(admin_id: str, services: Services = Depends(get_services)) -> Response:
    services.repository.delete_admin(admin_id)
    return Response(status_code=204)


@router.get(
    "/setup",
    response_model=SetupStatusOut,
    summary="Initial admin setup status",
)
def setup_status(services: Services = Depends(get_services)) -> SetupStatusOut:
    return SetupStatusOut(
        initial_admins_present=services.repository.initial_admins_present(),
        admin_count=len(services.repository.admins()),
    )


@router.post(
    "/setup",
    response_model=SetupStatusOut,
    summary="Seed the initial admin accounts",
    dependencies=[Depends(require_admin_session)],
)
def run_setup(services: Services = Depends(get_services)) -> SetupStatusOut:
    services.repository.add_initial_admins()
    return SetupStatusOut(
        initial_admins_present=services.repository.initial_admins_present(),
        admin_count=len(services.repository.admins(force=True)),
    )
