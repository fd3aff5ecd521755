"""
Data access layer over the backend client.

Every method is a single backend call. Failures are logged and converted to
sentinel values (None, [], False, empty stats) instead of propagating, so the
caller decides what to show the user.
"""

from __future__ import annotations

import base64
import io
import logging
import secrets
import time
from pathlib import PurePath
from typing import List, Optional

from PIL import Image

from mediscan.backend import BackendClient
from mediscan.db import ProfileRecord, ScanRecord
from mediscan.stats import UserStats, compute_user_stats
from mediscan.types import RESULT_FIELDS, ScanStatus, can_transition

logger = logging.getLogger(__name__)

THUMBNAIL_MAX_SIZE = 200
THUMBNAIL_QUALITY = 70
UPLOAD_PREFIX = "scans"


def file_to_data_url(data: bytes, content_type: str | None) -> str:
    """Inline a file as a `data:` URL."""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{content_type or 'application/octet-stream'};base64,{encoded}"


def create_thumbnail(data: bytes) -> bytes:
    """
    Scale an image so its longest edge is at most 200px (never upscaling) and
    re-encode it as JPEG. Raises if the bytes are not a decodable image.
    """
    with Image.open(io.BytesIO(data)) as img:
        img = img.convert("RGB")
        width, height = img.size
        longest = max(width, height)
        if longest > THUMBNAIL_MAX_SIZE:
            scale = THUMBNAIL_MAX_SIZE / longest
            size = (max(1, round(width * scale)), max(1, round(height * scale)))
            img = img.resize(size, Image.Resampling.LANCZOS)
        out = io.BytesIO()
        img.save(out, format="JPEG", quality=THUMBNAIL_QUALITY)
        return out.getvalue()


def _object_path(filename: str, suffix: str = "") -> str:
    ext = PurePath(filename or "").suffix.lstrip(".").lower() or "bin"
    token = secrets.token_hex(6)
    return f"{UPLOAD_PREFIX}/{int(time.time() * 1000)}-{token}{suffix}.{ext}"


class DataService:
    def __init__(self, backend: BackendClient, profile_retry_delay: float = 0.5):
        self.backend = backend
        self.profile_retry_delay = profile_retry_delay

    # Profiles ----------------------------------------------------------------

    def get_user_profile(self, user_id: str, retry: bool = False) -> Optional[ProfileRecord]:
        """
        Read a profile. With `retry`, a missing row is read once more after
        `profile_retry_delay`; only the sign-in and confirmation paths ask for it.
        """
        try:
            profile = self.backend.db.get_profile(user_id)
            if profile is None and retry:
                # The profile row may lag behind sign-up.
                time.sleep(self.profile_retry_delay)
                profile = self.backend.db.get_profile(user_id)
            return profile
        except Exception:
            logger.exception("Error getting user profile %s", user_id)
            return None

    def update_user_profile(self, user_id: str, updates: dict) -> Optional[ProfileRecord]:
        try:
            return self.backend.db.update_profile(user_id, updates)
        except Exception:
            logger.exception("Error updating user profile %s", user_id)
            return None

    # Scans -------------------------------------------------------------------

    def create_scan(self, scan_data: dict) -> Optional[ScanRecord]:
        try:
            return self.backend.db.insert_scan(scan_data)
        except Exception:
            logger.exception("Error creating scan")
            return None

    def update_scan(self, scan_id: str, updates: dict) -> Optional[ScanRecord]:
        try:
            current = self.backend.db.get_scan(scan_id)
            if current is None:
                logger.warning("Scan %s not found for update", scan_id)
                return None
            target = ScanStatus(updates.get("status", current.status))
            if not can_transition(current.status, target):
                logger.warning(
                    "Rejected status change %s -> %s for scan %s",
                    current.status,
                    target,
                    scan_id,
                )
                return None
            if target != ScanStatus.ANALYZED and any(k in updates for k in RESULT_FIELDS):
                logger.warning("Rejected result fields on non-analyzed scan %s", scan_id)
                return None
            return self.backend.db.update_scan(scan_id, updates)
        except Exception:
            logger.exception("Error updating scan %s", scan_id)
            return None

    def get_scans_by_user_id(self, user_id: str) -> List[ScanRecord]:
        try:
            return self.backend.db.list_scans(user_id)
        except Exception:
            logger.exception("Error getting scans for %s", user_id)
            return []

    def get_scan_by_id(self, scan_id: str) -> Optional[ScanRecord]:
        try:
            return self.backend.db.get_scan(scan_id)
        except Exception:
            logger.exception("Error getting scan %s", scan_id)
            return None

    def delete_scan(self, scan_id: str) -> bool:
        try:
            return self.backend.db.delete_scan(scan_id)
        except Exception:
            logger.exception("Error deleting scan %s", scan_id)
            return False

    def get_user_stats(self, user_id: str) -> UserStats:
        try:
            return compute_user_stats(self.backend.db.list_scans(user_id))
        except Exception:
            logger.exception("Error getting user stats for %s", user_id)
            return UserStats()

    # Blobs -------------------------------------------------------------------

    def upload_image(self, filename: str, data: bytes, content_type: str | None) -> str:
        """
        Upload the original file and return its public URL. When storage fails
        the file is returned inline as a data URL instead.
        """
        path = _object_path(filename)
        try:
            self.backend.storage.upload_bytes(
                path, data, content_type or "application/octet-stream"
            )
            return self.backend.storage.public_url(path)
        except Exception:
            logger.exception("Error uploading image %s, falling back to inline data", path)
            return file_to_data_url(data, content_type)

    def upload_thumbnail(self, filename: str, data: bytes) -> Optional[str]:
        """
        Upload a bounded JPEG thumbnail. Falls back to an inline data URL when
        storage fails, and to None when the file cannot be decoded as an image
        (e.g. DICOM).
        """
        try:
            thumbnail = create_thumbnail(data)
        except Exception:
            logger.warning("Could not derive a thumbnail for %s", filename)
            return None
        path = _object_path(f"{PurePath(filename or 'image').stem}.jpg", suffix="-thumb")
        try:
            self.backend.storage.upload_bytes(path, thumbnail, "image/jpeg")
            return self.backend.storage.public_url(path)
        except Exception:
            logger.exception("Error uploading thumbnail %s, falling back to inline data", path)
            return file_to_data_url(thumbnail, "image/jpeg")
