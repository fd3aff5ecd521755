"""
Pydantic schemas for the MediScan API.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field


class SignUpRequest(BaseModel):
    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    email: EmailStr
    password: str
    confirm_password: str
    agree_to_terms: bool = True


class SignInRequest(BaseModel):
    email: str
    password: str


class EmailRequest(BaseModel):
    email: str


class UserResponse(BaseModel):
    id: str
    email: str
    name: str


class SessionResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class AuthResponse(BaseModel):
    user: Optional[UserResponse] = None
    session: Optional[SessionResponse] = None
    needs_confirmation: bool = False
    message: Optional[str] = None


class StatusResponse(BaseModel):
    status: str = "ok"


class Medication(BaseModel):
    name: str = ""
    dosage: str = ""
    frequency: str = ""
    duration: str = ""
    instructions: str = ""
    timing: str = ""


class Prescription(BaseModel):
    medications: List[Medication] = Field(default_factory=list)
    lifestyle: List[str] = Field(default_factory=list)
    follow_up: str = ""
    warnings: List[str] = Field(default_factory=list)


class ScanResponse(BaseModel):
    id: str
    user_id: str
    name: str
    type: str
    file_name: str
    file_size: int
    upload_date: str
    status: str
    diagnosis: Optional[str] = None
    confidence: Optional[float] = None
    severity: Optional[str] = None
    findings: Optional[List[str]] = None
    recommendations: Optional[List[str]] = None
    prescription: Optional[Prescription] = None
    image_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    metadata: dict = Field(default_factory=dict)
    created_at: str
    updated_at: str


class ScanListResponse(BaseModel):
    scans: List[ScanResponse]
    total: int


class ProgressResponse(BaseModel):
    scan_id: str
    status: str
    state: str
    progress: float
    error: Optional[str] = None


class ActivityItemResponse(BaseModel):
    date: str
    action: str
    scan_name: str


class StatsResponse(BaseModel):
    total_scans: int
    analyzed_scans: int
    pending_scans: int
    average_confidence: float
    last_scan_date: Optional[str] = None
    scans_by_type: Dict[str, int]
    recent_activity: List[ActivityItemResponse]


class ScanTypesResponse(BaseModel):
    scan_types: Dict[str, str]


class ProfileResponse(BaseModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    medical_history: List[str] = Field(default_factory=list)
    allergies: List[str] = Field(default_factory=list)
    current_medications: List[str] = Field(default_factory=list)
    emergency_contact: Optional[dict] = None
    created_at: str
    updated_at: str


class ProfileUpdateRequest(BaseModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    full_name: Optional[str] = Field(None, max_length=200)
    avatar_url: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=40)
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    medical_history: Optional[List[str]] = None
    allergies: Optional[List[str]] = None
    current_medications: Optional[List[str]] = None
    emergency_contact: Optional[dict] = None
