"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
from typing import Iterator, Optional

from fastapi import Depends, HTTPException, Request

from filedepot.config import get_settings
from filedepot.dashboard import AccessGate, GateState
from filedepot.db import DbClient, InMemoryDbClient, SqlDbClient
from filedepot.session import (
    DbIdentityProvider,
    InMemorySessionStore,
    RedisSessionStore,
    SessionContext,
    SessionSnapshot,
    SessionStore,
)
from filedepot.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from filedepot.uploads import UploadQueueRegistry

logger = logging.getLogger(__name__)

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_session_context: SessionContext | None = None
_upload_registry: UploadQueueRegistry | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so in-memory state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = SqlDbClient(settings.database_url)
    logger.info("Database client: %s", _db_client.__class__.__name__)
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.s3_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.s3_public_base_url or "",
        )
    logger.info("Storage client: %s", _storage_client.__class__.__name__)
    return _storage_client


def _build_session_store() -> SessionStore:
    settings = get_settings()
    if settings.use_in_memory_backends or not settings.redis_url:
        return InMemorySessionStore()
    return RedisSessionStore(
        url=settings.redis_url,
        key_prefix=settings.session_key_prefix,
        ttl_seconds=settings.session_ttl_seconds,
    )


def get_session_context() -> SessionContext:
    """
    Return the process-wide session context. The app lifespan starts it.
    """
    global _session_context
    if _session_context:
        return _session_context

    identity = DbIdentityProvider(get_db_client(), _build_session_store())
    _session_context = SessionContext(identity)
    return _session_context


def get_upload_registry() -> UploadQueueRegistry:
    global _upload_registry
    if _upload_registry:
        return _upload_registry

    settings = get_settings()
    _upload_registry = UploadQueueRegistry(
        get_db_client(), get_storage_client(), prefix=settings.upload_prefix
    )
    get_session_context().subscribe(_upload_registry.on_session_change)
    return _upload_registry


def reset_dependencies() -> None:
    """Close the session context and forget every singleton."""
    global _db_client, _storage_client, _session_context, _upload_registry
    if _session_context and _session_context.started:
        _session_context.close()
    _db_client = None
    _storage_client = None
    _session_context = None
    _upload_registry = None


def get_session_token(request: Request) -> Optional[str]:
    settings = get_settings()
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        return token
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def get_session_snapshot(
    token: Optional[str] = Depends(get_session_token),
    context: SessionContext = Depends(get_session_context),
) -> SessionSnapshot:
    return context.snapshot(token)


def get_access_gate(
    token: Optional[str] = Depends(get_session_token),
    context: SessionContext = Depends(get_session_context),
) -> Iterator[AccessGate]:
    gate = AccessGate(context, token)
    gate.mount()
    try:
        yield gate
    finally:
        gate.unmount()


def require_admin(gate: AccessGate = Depends(get_access_gate)) -> AccessGate:
    """JSON API flavour of the admin gate: 401/403 instead of redirects."""
    if gate.state == GateState.REDIRECT_UNAUTHENTICATED:
        raise HTTPException(status_code=401, detail="Sign in required")
    if not gate.granted:
        raise HTTPException(status_code=403, detail=gate.notice.message)
    return gate
