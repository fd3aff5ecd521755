"""
Auth service: sign-up, sign-in and account-level operations.

Instances are built per request from an explicit backend client and data
service; there is no process-wide auth singleton.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from mediscan.backend import BackendClient
from mediscan.data_access import DataService
from mediscan.errors import AuthApiError
from mediscan.identity import EMAIL_NOT_CONFIRMED, INVALID_CREDENTIALS, AuthSession
from mediscan.stats import UserStats

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
EXPORT_STRIPPED_FIELDS = ("image_url", "thumbnail_url")

PASSWORDS_DO_NOT_MATCH = "Passwords do not match."
TERMS_NOT_ACCEPTED = "Please accept the terms and conditions."
PASSWORD_TOO_SHORT = "Password must be at least 6 characters long."
CONFIRMATION_PENDING = (
    "Please check your email and click the confirmation link to complete registration."
)
EMAIL_NOT_CONFIRMED_COPY = (
    "Please check your email and click the confirmation link before signing in. "
    "Check your spam folder if you don't see the email."
)
INVALID_CREDENTIALS_COPY = (
    "Invalid email or password. Please check your credentials and try again."
)

_SIGN_IN_COPY = {
    EMAIL_NOT_CONFIRMED: EMAIL_NOT_CONFIRMED_COPY,
    INVALID_CREDENTIALS: INVALID_CREDENTIALS_COPY,
}


@dataclass
class SignUpForm:
    first_name: str
    last_name: str
    email: str
    password: str
    confirm_password: str
    agree_to_terms: bool = True


@dataclass
class CurrentUser:
    id: str
    email: str
    name: str


@dataclass
class AuthResult:
    success: bool
    user: Optional[CurrentUser] = None
    session: Optional[AuthSession] = None
    error: Optional[str] = None
    message: Optional[str] = None
    needs_confirmation: bool = False


def validate_sign_up(form: SignUpForm) -> Optional[str]:
    """Return the first problem with the form, or None. Runs before any backend call."""
    if form.password != form.confirm_password:
        return PASSWORDS_DO_NOT_MATCH
    if not form.agree_to_terms:
        return TERMS_NOT_ACCEPTED
    if len(form.password or "") < MIN_PASSWORD_LENGTH:
        return PASSWORD_TOO_SHORT
    return None


class AuthService:
    def __init__(self, backend: BackendClient, data: DataService):
        self.backend = backend
        self.data = data

    def sign_up(self, form: SignUpForm) -> AuthResult:
        problem = validate_sign_up(form)
        if problem:
            return AuthResult(success=False, error=problem)

        full_name = f"{form.first_name} {form.last_name}".strip()
        try:
            response = self.backend.auth.sign_up(
                form.email,
                form.password,
                user_metadata={
                    "first_name": form.first_name,
                    "last_name": form.last_name,
                    "full_name": full_name,
                },
            )
        except AuthApiError as exc:
            logger.info("Sign-up rejected: %s", exc.message)
            return AuthResult(success=False, error=exc.message)
        except Exception:
            logger.exception("Signup error")
            return AuthResult(success=False, error="Failed to create account")

        if response.user.email_confirmed_at and response.session:
            user = CurrentUser(id=response.user.id, email=response.user.email, name=full_name)
            return AuthResult(success=True, user=user, session=response.session)
        return AuthResult(
            success=True, needs_confirmation=True, message=CONFIRMATION_PENDING
        )

    def sign_in(self, email: str, password: str) -> AuthResult:
        try:
            session = self.backend.auth.sign_in_with_password(email, password)
        except AuthApiError as exc:
            return AuthResult(
                success=False, error=_SIGN_IN_COPY.get(exc.message, exc.message)
            )
        except Exception:
            logger.exception("Signin error")
            return AuthResult(success=False, error="Invalid email or password")

        profile = self.data.get_user_profile(session.user.id, retry=True)
        user = CurrentUser(
            id=session.user.id,
            email=session.user.email,
            name=(profile.full_name if profile else None) or session.user.email,
        )
        return AuthResult(success=True, user=user, session=session)

    def resend_confirmation(self, email: str) -> AuthResult:
        try:
            self.backend.auth.resend_confirmation(email)
        except Exception as exc:
            logger.exception("Resend confirmation error")
            message = exc.message if isinstance(exc, AuthApiError) else None
            return AuthResult(
                success=False,
                error=message or "Failed to resend confirmation email",
            )
        return AuthResult(success=True)

    def confirm_email(self, token: str) -> AuthResult:
        try:
            auth_user = self.backend.auth.confirm_email(token)
        except AuthApiError as exc:
            return AuthResult(success=False, error=exc.message)
        profile = self.data.get_user_profile(auth_user.id, retry=True)
        user = CurrentUser(
            id=auth_user.id,
            email=auth_user.email,
            name=(profile.full_name if profile else None) or auth_user.email,
        )
        return AuthResult(success=True, user=user)

    def sign_out(self, access_token: str) -> None:
        try:
            self.backend.auth.sign_out(access_token)
        except Exception:
            logger.exception("Error signing out")

    def get_current_user(self, access_token: Optional[str]) -> Optional[CurrentUser]:
        if not access_token:
            return None
        try:
            auth_user = self.backend.auth.get_user(access_token)
        except AuthApiError:
            return None
        except Exception:
            logger.exception("Error getting current user")
            return None

        profile = self.data.get_user_profile(auth_user.id)
        return CurrentUser(
            id=auth_user.id,
            email=auth_user.email,
            name=(profile.full_name if profile else None) or auth_user.email,
        )

    def get_user_stats(self, access_token: Optional[str]) -> Optional[UserStats]:
        user = self.get_current_user(access_token)
        if not user:
            return None
        return self.data.get_user_stats(user.id)

    def export_user_data(self, access_token: Optional[str]) -> Optional[dict]:
        """
        Bundle the profile and every scan of the current user. Image and
        thumbnail URLs are dropped from the export.
        """
        user = self.get_current_user(access_token)
        if not user:
            return None
        profile = self.data.get_user_profile(user.id)
        scans = []
        for scan in self.data.get_scans_by_user_id(user.id):
            payload = scan.as_dict()
            for key in EXPORT_STRIPPED_FIELDS:
                payload.pop(key, None)
            scans.append(payload)
        return {"user": profile.as_dict() if profile else None, "scans": scans}
