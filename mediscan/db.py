"""
Row storage for Postgres and an in-memory test implementation.

Three tables are exposed: `auth_users` (credentials behind the identity
provider), `user_profiles` and `scans`. Clients raise on failure; turning
failures into sentinel values is the job of `mediscan.data_access`.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import JSON, Column, Float, ForeignKey, Integer, String, create_engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from mediscan.errors import DuplicateRecordError
from mediscan.types import ScanStatus, utc_now_iso


class DbClient(Protocol):
    """Interface for row storage."""

    def create_account(
        self,
        email: str,
        password_hash: str,
        user_metadata: dict | None = None,
        email_confirmed_at: str | None = None,
    ) -> "AccountRecord":
        ...

    def get_account(self, user_id: str) -> Optional["AccountRecord"]:
        ...

    def get_account_by_email(self, email: str) -> Optional["AccountRecord"]:
        ...

    def update_account(self, user_id: str, updates: dict) -> Optional["AccountRecord"]:
        ...

    def delete_account(self, user_id: str) -> bool:
        ...

    def create_profile(self, profile: "ProfileRecord") -> "ProfileRecord":
        ...

    def get_profile(self, user_id: str) -> Optional["ProfileRecord"]:
        ...

    def update_profile(self, user_id: str, updates: dict) -> Optional["ProfileRecord"]:
        ...

    def insert_scan(self, data: dict) -> "ScanRecord":
        ...

    def update_scan(self, scan_id: str, updates: dict) -> Optional["ScanRecord"]:
        ...

    def get_scan(self, scan_id: str) -> Optional["ScanRecord"]:
        ...

    def list_scans(self, user_id: str) -> List["ScanRecord"]:
        ...

    def delete_scan(self, scan_id: str) -> bool:
        ...

    def count_rows(self) -> Dict[str, int]:
        ...


@dataclass
class AccountRecord:
    id: str
    email: str
    password_hash: str
    user_metadata: dict = field(default_factory=dict)
    email_confirmed_at: Optional[str] = None
    last_sign_in_at: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)


@dataclass
class ProfileRecord:
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    medical_history: List[str] = field(default_factory=list)
    allergies: List[str] = field(default_factory=list)
    current_medications: List[str] = field(default_factory=list)
    emergency_contact: Optional[dict] = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class ScanRecord:
    id: str
    user_id: str
    name: str
    type: str
    file_name: str
    file_size: int
    upload_date: str
    status: ScanStatus = ScanStatus.PENDING
    diagnosis: Optional[str] = None
    confidence: Optional[float] = None
    severity: Optional[str] = None
    findings: Optional[List[str]] = None
    recommendations: Optional[List[str]] = None
    prescription: Optional[dict] = None
    image_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    def as_dict(self) -> dict:
        data = asdict(self)
        data["status"] = ScanStatus(self.status).value
        return data


ACCOUNT_FIELDS = tuple(f.name for f in fields(AccountRecord))
PROFILE_FIELDS = tuple(f.name for f in fields(ProfileRecord))
SCAN_FIELDS = tuple(f.name for f in fields(ScanRecord))

# Columns a caller may never overwrite through an update.
_READ_ONLY = frozenset({"id", "created_at"})


def _check_updates(updates: dict, allowed: tuple[str, ...]) -> dict:
    unknown = set(updates) - set(allowed)
    if unknown:
        raise ValueError(f"Unknown columns: {', '.join(sorted(unknown))}")
    return {k: v for k, v in updates.items() if k not in _READ_ONLY}


def _new_scan(data: dict) -> ScanRecord:
    payload = dict(data)
    unknown = set(payload) - set(SCAN_FIELDS)
    if unknown:
        raise ValueError(f"Unknown columns: {', '.join(sorted(unknown))}")
    now = utc_now_iso()
    payload.setdefault("upload_date", now)
    payload.setdefault("status", ScanStatus.PENDING)
    payload["status"] = ScanStatus(payload["status"])
    payload["id"] = uuid.uuid4().hex
    payload["created_at"] = now
    payload["updated_at"] = now
    return ScanRecord(**payload)


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.accounts: Dict[str, AccountRecord] = {}
        self.profiles: Dict[str, ProfileRecord] = {}
        self.scans: Dict[str, ScanRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.accounts.clear()
        self.profiles.clear()
        self.scans.clear()

    def create_account(
        self,
        email: str,
        password_hash: str,
        user_metadata: dict | None = None,
        email_confirmed_at: str | None = None,
    ) -> AccountRecord:
        if self.get_account_by_email(email):
            raise DuplicateRecordError(email)
        record = AccountRecord(
            id=uuid.uuid4().hex,
            email=email,
            password_hash=password_hash,
            user_metadata=dict(user_metadata or {}),
            email_confirmed_at=email_confirmed_at,
        )
        self.accounts[record.id] = record
        return copy.deepcopy(record)

    def get_account(self, user_id: str) -> Optional[AccountRecord]:
        account = self.accounts.get(user_id)
        return copy.deepcopy(account) if account else None

    def get_account_by_email(self, email: str) -> Optional[AccountRecord]:
        for account in self.accounts.values():
            if account.email == email:
                return copy.deepcopy(account)
        return None

    def update_account(self, user_id: str, updates: dict) -> Optional[AccountRecord]:
        account = self.accounts.get(user_id)
        if not account:
            return None
        for key, value in _check_updates(updates, ACCOUNT_FIELDS).items():
            setattr(account, key, value)
        return copy.deepcopy(account)

    def delete_account(self, user_id: str) -> bool:
        return self.accounts.pop(user_id, None) is not None

    def create_profile(self, profile: ProfileRecord) -> ProfileRecord:
        if profile.id in self.profiles:
            raise DuplicateRecordError(profile.id)
        self.profiles[profile.id] = copy.deepcopy(profile)
        return copy.deepcopy(profile)

    def get_profile(self, user_id: str) -> Optional[ProfileRecord]:
        profile = self.profiles.get(user_id)
        return copy.deepcopy(profile) if profile else None

    def update_profile(self, user_id: str, updates: dict) -> Optional[ProfileRecord]:
        profile = self.profiles.get(user_id)
        if not profile:
            return None
        for key, value in _check_updates(updates, PROFILE_FIELDS).items():
            setattr(profile, key, value)
        profile.updated_at = utc_now_iso()
        return copy.deepcopy(profile)

    def insert_scan(self, data: dict) -> ScanRecord:
        record = _new_scan(copy.deepcopy(data))
        self.scans[record.id] = record
        return copy.deepcopy(record)

    def update_scan(self, scan_id: str, updates: dict) -> Optional[ScanRecord]:
        scan = self.scans.get(scan_id)
        if not scan:
            return None
        for key, value in _check_updates(copy.deepcopy(updates), SCAN_FIELDS).items():
            if key == "status":
                value = ScanStatus(value)
            setattr(scan, key, value)
        scan.updated_at = utc_now_iso()
        return copy.deepcopy(scan)

    def get_scan(self, scan_id: str) -> Optional[ScanRecord]:
        scan = self.scans.get(scan_id)
        return copy.deepcopy(scan) if scan else None

    def list_scans(self, user_id: str) -> List[ScanRecord]:
        items = [s for s in self.scans.values() if s.user_id == user_id]
        items.sort(key=lambda s: s.upload_date, reverse=True)
        return copy.deepcopy(items)

    def delete_scan(self, scan_id: str) -> bool:
        return self.scans.pop(scan_id, None) is not None

    def count_rows(self) -> Dict[str, int]:
        return {
            "auth_users": len(self.accounts),
            "user_profiles": len(self.profiles),
            "scans": len(self.scans),
        }


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @staticmethod
    def _to_account_record(row: "AccountRow") -> AccountRecord:
        return AccountRecord(**{name: getattr(row, name) for name in ACCOUNT_FIELDS})

    @staticmethod
    def _to_profile_record(row: "ProfileRow") -> ProfileRecord:
        return ProfileRecord(**{name: getattr(row, name) for name in PROFILE_FIELDS})

    @staticmethod
    def _to_scan_record(row: "ScanRow") -> ScanRecord:
        values: Dict[str, Any] = {
            name: getattr(row, name) for name in SCAN_FIELDS if name != "metadata"
        }
        values["status"] = ScanStatus(row.status)
        values["metadata"] = row.meta or {}
        return ScanRecord(**values)

    def create_account(
        self,
        email: str,
        password_hash: str,
        user_metadata: dict | None = None,
        email_confirmed_at: str | None = None,
    ) -> AccountRecord:
        with self.Session() as session:
            row = AccountRow(
                id=uuid.uuid4().hex,
                email=email,
                password_hash=password_hash,
                user_metadata=dict(user_metadata or {}),
                email_confirmed_at=email_confirmed_at,
                created_at=utc_now_iso(),
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError(email) from exc
            session.refresh(row)
            return self._to_account_record(row)

    def get_account(self, user_id: str) -> Optional[AccountRecord]:
        with self.Session() as session:
            row = session.get(AccountRow, user_id)
            return self._to_account_record(row) if row else None

    def get_account_by_email(self, email: str) -> Optional[AccountRecord]:
        with self.Session() as session:
            stmt = select(AccountRow).where(AccountRow.email == email)
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_account_record(row) if row else None

    def update_account(self, user_id: str, updates: dict) -> Optional[AccountRecord]:
        with self.Session() as session:
            row = session.get(AccountRow, user_id)
            if not row:
                return None
            for key, value in _check_updates(updates, ACCOUNT_FIELDS).items():
                setattr(row, key, value)
            session.commit()
            session.refresh(row)
            return self._to_account_record(row)

    def delete_account(self, user_id: str) -> bool:
        with self.Session() as session:
            row = session.get(AccountRow, user_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    def create_profile(self, profile: ProfileRecord) -> ProfileRecord:
        with self.Session() as session:
            row = ProfileRow(**profile.as_dict())
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError(profile.id) from exc
            session.refresh(row)
            return self._to_profile_record(row)

    def get_profile(self, user_id: str) -> Optional[ProfileRecord]:
        with self.Session() as session:
            row = session.get(ProfileRow, user_id)
            return self._to_profile_record(row) if row else None

    def update_profile(self, user_id: str, updates: dict) -> Optional[ProfileRecord]:
        with self.Session() as session:
            row = session.get(ProfileRow, user_id)
            if not row:
                return None
            for key, value in _check_updates(updates, PROFILE_FIELDS).items():
                setattr(row, key, value)
            row.updated_at = utc_now_iso()
            session.commit()
            session.refresh(row)
            return self._to_profile_record(row)

    def insert_scan(self, data: dict) -> ScanRecord:
        record = _new_scan(data)
        values = record.as_dict()
        values["meta"] = values.pop("metadata")
        with self.Session() as session:
            row = ScanRow(**values)
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_scan_record(row)

    def update_scan(self, scan_id: str, updates: dict) -> Optional[ScanRecord]:
        with self.Session() as session:
            row = session.get(ScanRow, scan_id)
            if not row:
                return None
            for key, value in _check_updates(updates, SCAN_FIELDS).items():
                if key == "status":
                    value = ScanStatus(value).value
                if key == "metadata":
                    key = "meta"
                setattr(row, key, value)
            row.updated_at = utc_now_iso()
            session.commit()
            session.refresh(row)
            return self._to_scan_record(row)

    def get_scan(self, scan_id: str) -> Optional[ScanRecord]:
        with self.Session() as session:
            row = session.get(ScanRow, scan_id)
            return self._to_scan_record(row) if row else None

    def list_scans(self, user_id: str) -> List[ScanRecord]:
        with self.Session() as session:
            stmt = (
                select(ScanRow)
                .where(ScanRow.user_id == user_id)
                .order_by(ScanRow.upload_date.desc())
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_scan_record(row) for row in rows]

    def delete_scan(self, scan_id: str) -> bool:
        with self.Session() as session:
            row = session.get(ScanRow, scan_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    def count_rows(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        with self.Session() as session:
            for model in (AccountRow, ProfileRow, ScanRow):
                stmt = select(func.count()).select_from(model)
                counts[model.__tablename__] = session.execute(stmt).scalar_one()
        return counts


Base = declarative_base()


class AccountRow(Base):
    __tablename__ = "auth_users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    user_metadata = Column(JSON, nullable=False, default=dict)
    email_confirmed_at = Column(String, nullable=True)
    last_sign_in_at = Column(String, nullable=True)
    created_at = Column(String, nullable=False)


class ProfileRow(Base):
    __tablename__ = "user_profiles"

    id = Column(String, ForeignKey("auth_users.id"), primary_key=True)
    email = Column(String, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    full_name = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    date_of_birth = Column(String, nullable=True)
    gender = Column(String, nullable=True)
    medical_history = Column(JSON, nullable=False, default=list)
    allergies = Column(JSON, nullable=False, default=list)
    current_medications = Column(JSON, nullable=False, default=list)
    emergency_contact = Column(JSON, nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class ScanRow(Base):
    __tablename__ = "scans"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("user_profiles.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False, index=True)
    file_name = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    upload_date = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, index=True)
    diagnosis = Column(String, nullable=True)
    confidence = Column(Float, nullable=True)
    severity = Column(String, nullable=True)
    findings = Column(JSON, nullable=True)
    recommendations = Column(JSON, nullable=True)
    prescription = Column(JSON, nullable=True)
    image_url = Column(String, nullable=True)
    thumbnail_url = Column(String, nullable=True)
    meta = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)
