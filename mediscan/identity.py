"""
Credential auth backed by the row store.

Passwords are hashed with passlib, sessions are stateless JWTs. Error messages
intentionally match the copy a hosted auth provider returns so callers can map
them to user-facing text.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

from jose import JWTError, jwt
from passlib.context import CryptContext

from mediscan.db import AccountRecord, DbClient, ProfileRecord
from mediscan.errors import AuthApiError, DuplicateRecordError
from mediscan.types import utc_now_iso

logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__ident="2b",
)

ACCESS_PURPOSE = "access"
CONFIRM_PURPOSE = "email_confirmation"

USER_ALREADY_REGISTERED = "User already registered"
EMAIL_NOT_CONFIRMED = "Email not confirmed"
INVALID_CREDENTIALS = "Invalid login credentials"
INVALID_TOKEN = "Invalid or expired token"


@dataclass
class AuthUser:
    id: str
    email: str
    email_confirmed_at: Optional[str] = None
    user_metadata: dict = field(default_factory=dict)
    created_at: Optional[str] = None


@dataclass
class AuthSession:
    access_token: str
    expires_in: int
    user: AuthUser
    token_type: str = "bearer"


@dataclass
class SignUpResponse:
    user: AuthUser
    session: Optional[AuthSession] = None


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _to_auth_user(account: AccountRecord) -> AuthUser:
    return AuthUser(
        id=account.id,
        email=account.email,
        email_confirmed_at=account.email_confirmed_at,
        user_metadata=dict(account.user_metadata or {}),
        created_at=account.created_at,
    )


class IdentityProvider:
    def __init__(
        self,
        db: DbClient,
        *,
        secret_key: str,
        algorithm: str = "HS256",
        access_token_expire_minutes: int = 60,
        confirmation_token_expire_hours: int = 24,
        require_email_confirmation: bool = True,
        site_url: str = "http://localhost:3000",
    ):
        self.db = db
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_token_expire_minutes = access_token_expire_minutes
        self.confirmation_token_expire_hours = confirmation_token_expire_hours
        self.require_email_confirmation = require_email_confirmation
        self.site_url = site_url
        # jti -> exp (epoch seconds) of signed-out access tokens
        self._revoked: dict[str, float] = {}

    def _encode(self, claims: dict, expires_delta: timedelta) -> str:
        to_encode = dict(claims)
        to_encode["exp"] = datetime.now(timezone.utc) + expires_delta
        to_encode["jti"] = uuid.uuid4().hex
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def _decode(self, token: str, purpose: str) -> dict:
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as exc:
            raise AuthApiError(INVALID_TOKEN, status=401) from exc
        if payload.get("purpose") != purpose or not payload.get("sub"):
            raise AuthApiError(INVALID_TOKEN, status=401)
        return payload

    def _issue_session(self, account: AccountRecord) -> AuthSession:
        token = self._encode(
            {"sub": account.id, "email": account.email, "purpose": ACCESS_PURPOSE},
            timedelta(minutes=self.access_token_expire_minutes),
        )
        return AuthSession(
            access_token=token,
            expires_in=self.access_token_expire_minutes * 60,
            user=_to_auth_user(account),
        )

    def create_confirmation_token(self, email: str) -> str:
        return self._encode(
            {"sub": _normalize_email(email), "purpose": CONFIRM_PURPOSE},
            timedelta(hours=self.confirmation_token_expire_hours),
        )

    def _send_confirmation(self, email: str) -> None:
        token = self.create_confirmation_token(email)
        link = f"{self.site_url.rstrip('/')}/auth/confirm?{urlencode({'token': token})}"
        # No mail transport is configured; the link is only logged.
        logger.info("Confirmation link for %s: %s", email, link)

    def sign_up(
        self, email: str, password: str, user_metadata: dict | None = None
    ) -> SignUpResponse:
        email = _normalize_email(email)
        if not email or not password:
            raise AuthApiError("Email and password are required")
        metadata = dict(user_metadata or {})
        confirmed_at = None if self.require_email_confirmation else utc_now_iso()
        try:
            account = self.db.create_account(
                email,
                pwd_context.hash(password),
                user_metadata=metadata,
                email_confirmed_at=confirmed_at,
            )
        except DuplicateRecordError as exc:
            raise AuthApiError(USER_ALREADY_REGISTERED, status=422) from exc

        try:
            self.db.create_profile(
                ProfileRecord(
                    id=account.id,
                    email=account.email,
                    first_name=metadata.get("first_name"),
                    last_name=metadata.get("last_name"),
                    full_name=metadata.get("full_name"),
                )
            )
        except Exception:
            # No orphaned accounts: the address must be able to register again.
            logger.warning("Profile write failed for %s, removing account", account.id)
            self.db.delete_account(account.id)
            raise
        logger.info("Registered user %s", account.id)

        if self.require_email_confirmation:
            self._send_confirmation(account.email)
            return SignUpResponse(user=_to_auth_user(account))
        return SignUpResponse(
            user=_to_auth_user(account), session=self._issue_session(account)
        )

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        account = self.db.get_account_by_email(_normalize_email(email))
        if not account or not pwd_context.verify(password or "", account.password_hash):
            raise AuthApiError(INVALID_CREDENTIALS)
        if not account.email_confirmed_at:
            raise AuthApiError(EMAIL_NOT_CONFIRMED)
        account = self.db.update_account(account.id, {"last_sign_in_at": utc_now_iso()}) or account
        return self._issue_session(account)

    def resend_confirmation(self, email: str) -> None:
        account = self.db.get_account_by_email(_normalize_email(email))
        if not account:
            # Unknown addresses get the same answer as known ones.
            logger.info("Confirmation resend requested for unknown address")
            return
        if account.email_confirmed_at:
            logger.info("Confirmation resend skipped, %s already confirmed", account.id)
            return
        self._send_confirmation(account.email)

    def confirm_email(self, token: str) -> AuthUser:
        payload = self._decode(token, CONFIRM_PURPOSE)
        account = self.db.get_account_by_email(payload["sub"])
        if not account:
            raise AuthApiError(INVALID_TOKEN, status=401)
        if not account.email_confirmed_at:
            account = self.db.update_account(
                account.id, {"email_confirmed_at": utc_now_iso()}
            )
        return _to_auth_user(account)

    def _prune_revoked(self) -> None:
        # An expired token fails to decode anyway, so its jti can go.
        now = datetime.now(timezone.utc).timestamp()
        for jti in [j for j, exp in self._revoked.items() if exp <= now]:
            del self._revoked[jti]

    def sign_out(self, access_token: str) -> None:
        payload = self._decode(access_token, ACCESS_PURPOSE)
        self._prune_revoked()
        self._revoked[payload["jti"]] = float(payload["exp"])

    def get_user(self, access_token: str) -> AuthUser:
        payload = self._decode(access_token, ACCESS_PURPOSE)
        self._prune_revoked()
        if payload.get("jti") in self._revoked:
            raise AuthApiError(INVALID_TOKEN, status=401)
        account = self.db.get_account(payload["sub"])
        if not account:
            raise AuthApiError(INVALID_TOKEN, status=401)
        return _to_auth_user(account)
