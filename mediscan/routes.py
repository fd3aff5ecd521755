"""
HTTP routes for the MediScan API.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from fastapi.responses import JSONResponse, PlainTextResponse

from mediscan.analysis import scan_type_labels
from mediscan.auth import AuthResult, AuthService, CurrentUser, SignUpForm
from mediscan.config import Settings
from mediscan.data_access import DataService
from mediscan.db import ScanRecord
from mediscan.dependencies import (
    build_workflow,
    get_access_token,
    get_analysis_registry,
    get_app_settings,
    get_auth_service,
    get_current_user,
    get_data_service,
)
from mediscan.errors import FileValidationError, MissingInformationError
from mediscan.filters import filter_scans
from mediscan.report import build_report
from mediscan.schemas import (
    AuthResponse,
    EmailRequest,
    ProfileResponse,
    ProfileUpdateRequest,
    ProgressResponse,
    ScanListResponse,
    ScanResponse,
    ScanTypesResponse,
    SessionResponse,
    SignInRequest,
    SignUpRequest,
    StatsResponse,
    StatusResponse,
    UserResponse,
)
from mediscan.types import ScanStatus
from mediscan.upload import MAX_FILE_SIZE, validate_file
from mediscan.workflow import AnalysisRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


def _auth_response(result: AuthResult) -> AuthResponse:
    user = UserResponse(**asdict(result.user)) if result.user else None
    session = None
    if result.session:
        session = SessionResponse(
            access_token=result.session.access_token,
            token_type=result.session.token_type,
            expires_in=result.session.expires_in,
        )
    return AuthResponse(
        user=user,
        session=session,
        needs_confirmation=result.needs_confirmation,
        message=result.message,
    )


def _scan_response(scan: ScanRecord) -> ScanResponse:
    return ScanResponse(**scan.as_dict())


def _slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-") or "scan"


def _owned_scan(data: DataService, scan_id: str, user: CurrentUser) -> ScanRecord:
    scan = data.get_scan_by_id(scan_id)
    if not scan or scan.user_id != user.id:
        raise HTTPException(status_code=404, detail="Scan not found")
    return scan


# Auth ------------------------------------------------------------------------


@router.post("/auth/signup", response_model=AuthResponse, status_code=201)
def sign_up(payload: SignUpRequest, auth: AuthService = Depends(get_auth_service)):
    result = auth.sign_up(SignUpForm(**payload.model_dump()))
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return _auth_response(result)


@router.post("/auth/signin", response_model=AuthResponse)
def sign_in(payload: SignInRequest, auth: AuthService = Depends(get_auth_service)):
    result = auth.sign_in(payload.email, payload.password)
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=result.error,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _auth_response(result)


@router.post("/auth/resend-confirmation", response_model=StatusResponse)
def resend_confirmation(
    payload: EmailRequest, auth: AuthService = Depends(get_auth_service)
):
    result = auth.resend_confirmation(payload.email)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return StatusResponse()


@router.get("/auth/confirm", response_model=AuthResponse)
def confirm_email(
    token: str = Query(..., min_length=1),
    auth: AuthService = Depends(get_auth_service),
):
    result = auth.confirm_email(token)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return _auth_response(result)


@router.post("/auth/signout", status_code=204)
def sign_out(
    token: Optional[str] = Depends(get_access_token),
    auth: AuthService = Depends(get_auth_service),
):
    if token:
        auth.sign_out(token)
    return Response(status_code=204)


@router.get("/auth/me", response_model=UserResponse)
def me(user: CurrentUser = Depends(get_current_user)):
    return UserResponse(**asdict(user))


@router.get("/auth/export")
def export_user_data(
    token: Optional[str] = Depends(get_access_token),
    auth: AuthService = Depends(get_auth_service),
):
    payload = auth.export_user_data(token)
    if payload is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    filename = f"mediscan-export-{datetime.now(timezone.utc).date().isoformat()}.json"
    return JSONResponse(
        content=payload,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# Profile ---------------------------------------------------------------------


@router.get("/profile", response_model=ProfileResponse)
def get_profile(
    user: CurrentUser = Depends(get_current_user),
    data: DataService = Depends(get_data_service),
):
    profile = data.get_user_profile(user.id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return ProfileResponse(**profile.as_dict())


@router.patch("/profile", response_model=ProfileResponse)
def update_profile(
    payload: ProfileUpdateRequest,
    user: CurrentUser = Depends(get_current_user),
    data: DataService = Depends(get_data_service),
):
    profile = data.update_user_profile(user.id, payload.model_dump(exclude_unset=True))
    if not profile:
        raise HTTPException(status_code=502, detail="Failed to update profile")
    return ProfileResponse(**profile.as_dict())


# Scans -----------------------------------------------------------------------


@router.get("/scan-types", response_model=ScanTypesResponse)
def list_scan_types():
    return ScanTypesResponse(scan_types=scan_type_labels())


@router.post("/scans", response_model=ScanResponse, status_code=202)
async def upload_scan(
    file: UploadFile = File(...),
    scan_type: Optional[str] = Form(None),
    name: Optional[str] = Form(None),
    user: CurrentUser = Depends(get_current_user),
    data: DataService = Depends(get_data_service),
    settings: Settings = Depends(get_app_settings),
    registry: AnalysisRegistry = Depends(get_analysis_registry),
):
    """
    Accept one image and start its analysis. Responds once the scan row is
    marked analyzing; the simulated analysis continues in the background.
    """
    workflow = build_workflow(data, settings)
    try:
        if file.size is not None and file.size > MAX_FILE_SIZE:
            # Reject on the declared size before reading the body.
            validate_file(file.filename or "", file.content_type, file.size)
        content = await file.read()
        workflow.select_file(file.filename or "", file.content_type, content)
    except FileValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.description)

    try:
        scan = await workflow.start(user.id, scan_type, name)
    except MissingInformationError as exc:
        raise HTTPException(status_code=422, detail=exc.description)
    if scan is None:
        raise HTTPException(status_code=502, detail=workflow.error)

    registry.launch(workflow)
    return _scan_response(scan)


@router.get("/scans", response_model=ScanListResponse)
def list_scans(
    search: Optional[str] = Query(None),
    scan_type: Optional[str] = Query(None, alias="type"),
    status_filter: Optional[str] = Query(None, alias="status"),
    user: CurrentUser = Depends(get_current_user),
    data: DataService = Depends(get_data_service),
):
    scans = filter_scans(
        data.get_scans_by_user_id(user.id),
        search=search,
        scan_type=scan_type,
        status=status_filter,
    )
    return ScanListResponse(scans=[_scan_response(s) for s in scans], total=len(scans))


@router.get("/scans/{scan_id}", response_model=ScanResponse)
def get_scan(
    scan_id: str,
    user: CurrentUser = Depends(get_current_user),
    data: DataService = Depends(get_data_service),
):
    return _scan_response(_owned_scan(data, scan_id, user))


@router.get("/scans/{scan_id}/progress", response_model=ProgressResponse)
def get_scan_progress(
    scan_id: str,
    user: CurrentUser = Depends(get_current_user),
    data: DataService = Depends(get_data_service),
    registry: AnalysisRegistry = Depends(get_analysis_registry),
):
    scan = _owned_scan(data, scan_id, user)
    workflow = registry.get(scan_id)
    if workflow is not None:
        return ProgressResponse(
            scan_id=scan_id,
            status=ScanStatus(scan.status).value,
            state=workflow.state.value,
            progress=round(workflow.progress, 1),
            error=workflow.error,
        )
    finished = scan.status == ScanStatus.ANALYZED
    return ProgressResponse(
        scan_id=scan_id,
        status=ScanStatus(scan.status).value,
        state="failed" if scan.status == ScanStatus.ERROR else ScanStatus(scan.status).value,
        progress=100.0 if finished else 0.0,
    )


@router.get("/scans/{scan_id}/report", response_class=PlainTextResponse)
def download_report(
    scan_id: str,
    user: CurrentUser = Depends(get_current_user),
    data: DataService = Depends(get_data_service),
):
    scan = _owned_scan(data, scan_id, user)
    if scan.status != ScanStatus.ANALYZED:
        raise HTTPException(status_code=409, detail="Scan has not been analyzed yet")
    filename = f"{_slugify(scan.name)}-report.txt"
    return PlainTextResponse(
        build_report(scan, user.name),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.delete("/scans/{scan_id}", status_code=204)
async def delete_scan(
    scan_id: str,
    user: CurrentUser = Depends(get_current_user),
    data: DataService = Depends(get_data_service),
    registry: AnalysisRegistry = Depends(get_analysis_registry),
):
    await asyncio.to_thread(_owned_scan, data, scan_id, user)
    if registry.cancel(scan_id):
        logger.info("[%s] Cancelled running analysis before delete", scan_id)
    deleted = await asyncio.to_thread(data.delete_scan, scan_id)
    if not deleted:
        raise HTTPException(status_code=502, detail="Failed to delete scan")
    return Response(status_code=204)


@router.get("/stats", response_model=StatsResponse)
def get_stats(
    user: CurrentUser = Depends(get_current_user),
    data: DataService = Depends(get_data_service),
):
    return StatsResponse(**data.get_user_stats(user.id).as_dict())
