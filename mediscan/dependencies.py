"""
Dependency wiring for the FastAPI app.

The backend client, settings and analysis registry live on `app.state` (set by
`create_app`); services are built per request from them.
"""

from __future__ import annotations

import random
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from mediscan.auth import AuthService, CurrentUser
from mediscan.backend import BackendClient
from mediscan.config import Settings
from mediscan.data_access import DataService
from mediscan.workflow import AnalysisRegistry, UploadWorkflow

bearer_scheme = HTTPBearer(auto_error=False)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_backend_client(request: Request) -> BackendClient:
    return request.app.state.backend


def get_analysis_registry(request: Request) -> AnalysisRegistry:
    return request.app.state.registry


def get_data_service(
    backend: BackendClient = Depends(get_backend_client),
    settings: Settings = Depends(get_app_settings),
) -> DataService:
    return DataService(backend, profile_retry_delay=settings.profile_retry_delay_seconds)


def get_auth_service(
    backend: BackendClient = Depends(get_backend_client),
    data: DataService = Depends(get_data_service),
) -> AuthService:
    return AuthService(backend, data)


def get_access_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    return credentials.credentials if credentials else None


def get_current_user(
    token: Optional[str] = Depends(get_access_token),
    auth: AuthService = Depends(get_auth_service),
) -> CurrentUser:
    user = auth.get_current_user(token)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def build_workflow(data: DataService, settings: Settings) -> UploadWorkflow:
    rng = random.Random(settings.analysis_seed) if settings.analysis_seed is not None else None
    return UploadWorkflow(
        data,
        rng=rng,
        min_delay=settings.analysis_min_delay_seconds,
        max_delay=settings.analysis_max_delay_seconds,
        tick_interval=settings.progress_tick_seconds,
    )
