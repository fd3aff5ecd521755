"""
Configured handle to the backend services: credential auth, rows and blobs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from mediscan.config import Settings
from mediscan.db import DbClient, InMemoryDbClient, PostgresDbClient
from mediscan.identity import IdentityProvider
from mediscan.storage import InMemoryStorageClient, S3StorageClient, StorageClient

logger = logging.getLogger(__name__)


@dataclass
class BackendClient:
    auth: IdentityProvider
    db: DbClient
    storage: StorageClient


def create_backend_client(settings: Settings) -> BackendClient:
    if settings.use_in_memory_backends or not settings.database_url:
        db: DbClient = InMemoryDbClient()
    else:
        db = PostgresDbClient(settings.database_url)

    if settings.use_in_memory_backends or not settings.storage_bucket:
        storage: StorageClient = InMemoryStorageClient()
    else:
        storage = S3StorageClient(
            bucket=settings.storage_bucket,
            region=settings.storage_region or "",
            endpoint=settings.storage_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.storage_public_base_url,
        )

    auth = IdentityProvider(
        db,
        secret_key=settings.secret_key,
        algorithm=settings.algorithm,
        access_token_expire_minutes=settings.access_token_expire_minutes,
        confirmation_token_expire_hours=settings.confirmation_token_expire_hours,
        require_email_confirmation=settings.require_email_confirmation,
        site_url=settings.site_url,
    )
    logger.info(
        "Backend ready: db=%s storage=%s",
        db.__class__.__name__,
        storage.__class__.__name__,
    )
    return BackendClient(auth=auth, db=db, storage=storage)
