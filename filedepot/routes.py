"""
JSON API routes.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Response,
    UploadFile,
)
from starlette.concurrency import run_in_threadpool

from filedepot.catalog import CatalogBrowser
from filedepot.categories import PRESET_COLORS, CategoryManager
from filedepot.config import get_settings
from filedepot.dashboard import AccessGate, AdminDashboard
from filedepot.db import DbClient
from filedepot.dependencies import (
    get_db_client,
    get_session_context,
    get_session_snapshot,
    get_session_token,
    get_storage_client,
    get_upload_registry,
    require_admin,
)
from filedepot.file_utils import format_file_size
from filedepot.results import Notice
from filedepot.schemas import (
    CategoryListResponse,
    CategoryModel,
    CategoryMutationResponse,
    CategoryPayload,
    CredentialsPayload,
    DownloadResponse,
    FileListResponse,
    FileModel,
    NoticeModel,
    NoticeResponse,
    SessionResponse,
    SignInResponse,
    StatsResponse,
    UploadItemModel,
    UploadQueueResponse,
    UserModel,
)
from filedepot.session import SessionContext, SessionSnapshot
from filedepot.storage import StorageClient
from filedepot.uploads import (
    IncomingFile,
    UploadQueueRegistry,
    UploadWorkflow,
    batch_notices,
)

logger = logging.getLogger(__name__)

router = APIRouter()

STATUS_BY_KIND = {
    "validation": 400,
    "unauthorized": 401,
    "forbidden": 403,
    "not_found": 404,
    "conflict": 409,
    "confirm": 428,
    "failure": 502,
}


def raise_for_notice(notice: Optional[Notice]) -> None:
    if notice is None:
        return
    if notice.is_error or notice.kind == "confirm":
        raise HTTPException(
            status_code=STATUS_BY_KIND.get(notice.kind or "failure", 502),
            detail=notice.message,
        )


def _session_response(snapshot: SessionSnapshot) -> SessionResponse:
    return SessionResponse(
        authenticated=snapshot.is_authenticated,
        is_admin=snapshot.is_admin,
        user=UserModel.model_validate(snapshot.user) if snapshot.user else None,
    )


def _upload_queue_response(
    workflow: UploadWorkflow, items=None, notices=None
) -> UploadQueueResponse:
    items = workflow.items if items is None else items
    return UploadQueueResponse(
        items=[UploadItemModel(**item.as_dict()) for item in items],
        notices=[NoticeModel.model_validate(n) for n in (notices or [])],
    )


def get_admin_dashboard(
    gate: AccessGate = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
    registry: UploadQueueRegistry = Depends(get_upload_registry),
) -> AdminDashboard:
    return AdminDashboard(gate, db, storage, registry.get(gate.snapshot.user.id))


@router.get("/session", response_model=SessionResponse)
def session_info(snapshot: SessionSnapshot = Depends(get_session_snapshot)):
    return _session_response(snapshot)


@router.post("/auth/sign-in", response_model=SignInResponse)
def sign_in(
    payload: CredentialsPayload,
    response: Response,
    context: SessionContext = Depends(get_session_context),
):
    token, notice = context.sign_in(payload.email, payload.password)
    raise_for_notice(notice)
    settings = get_settings()
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        samesite="lax",
    )
    return SignInResponse(
        notice=NoticeModel.model_validate(notice),
        session=_session_response(context.snapshot(token)),
    )


@router.post("/auth/sign-up", response_model=NoticeResponse, status_code=201)
def sign_up(
    payload: CredentialsPayload,
    context: SessionContext = Depends(get_session_context),
):
    notice = context.sign_up(payload.email, payload.password)
    raise_for_notice(notice)
    return NoticeResponse(notice=NoticeModel.model_validate(notice))


@router.post("/auth/sign-out", response_model=NoticeResponse)
def sign_out(
    response: Response,
    token: Optional[str] = Depends(get_session_token),
    context: SessionContext = Depends(get_session_context),
):
    notice = context.sign_out(token)
    response.delete_cookie(get_settings().session_cookie_name)
    return NoticeResponse(notice=NoticeModel.model_validate(notice))


@router.get("/files", response_model=FileListResponse)
def list_files(
    search: str = Query("", max_length=256),
    category_id: Optional[str] = Query(None),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    catalog = CatalogBrowser(db, storage)
    raise_for_notice(catalog.fetch())
    catalog.set_search(search)
    catalog.select_category(category_id)
    files = catalog.visible_files
    return FileListResponse(
        files=[FileModel.model_validate(f) for f in files],
        total=len(files),
        search=catalog.search_text,
        category_id=catalog.selected_category,
    )


@router.post("/files/{file_id}/download", response_model=DownloadResponse)
def download_file(
    file_id: str,
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    catalog = CatalogBrowser(db, storage)
    ticket, notice = catalog.download(file_id)
    raise_for_notice(notice)
    return DownloadResponse(
        file_id=ticket.file_id,
        url=ticket.url,
        filename=ticket.filename,
        download_count=ticket.download_count,
    )


@router.delete("/files/{file_id}", response_model=NoticeResponse)
def delete_file(
    file_id: str,
    confirm: bool = Query(False),
    dashboard: AdminDashboard = Depends(get_admin_dashboard),
):
    notice = dashboard.delete_file(file_id, confirmed=confirm)
    raise_for_notice(notice)
    return NoticeResponse(notice=NoticeModel.model_validate(notice))


@router.get("/categories", response_model=CategoryListResponse)
def list_categories(db: DbClient = Depends(get_db_client)):
    manager = CategoryManager(db)
    raise_for_notice(manager.fetch())
    return CategoryListResponse(
        categories=[CategoryModel.model_validate(c) for c in manager.categories],
        palette=list(PRESET_COLORS),
    )


def _category_mutation(manager: CategoryManager, notice: Notice):
    raise_for_notice(notice)
    return CategoryMutationResponse(
        notice=NoticeModel.model_validate(notice),
        categories=[CategoryModel.model_validate(c) for c in manager.categories],
    )


@router.post("/categories", response_model=CategoryMutationResponse, status_code=201)
def create_category(
    payload: CategoryPayload,
    dashboard: AdminDashboard = Depends(get_admin_dashboard),
):
    manager = dashboard.categories
    return _category_mutation(manager, manager.create(payload.name, payload.color))


@router.patch("/categories/{category_id}", response_model=CategoryMutationResponse)
def update_category(
    category_id: str,
    payload: CategoryPayload,
    dashboard: AdminDashboard = Depends(get_admin_dashboard),
):
    manager = dashboard.categories
    return _category_mutation(
        manager, manager.update(category_id, payload.name, payload.color)
    )


@router.delete("/categories/{category_id}", response_model=CategoryMutationResponse)
def delete_category(
    category_id: str,
    confirm: bool = Query(False),
    dashboard: AdminDashboard = Depends(get_admin_dashboard),
):
    manager = dashboard.categories
    manager.fetch()
    return _category_mutation(manager, manager.delete(category_id, confirmed=confirm))


@router.get("/admin/stats", response_model=StatsResponse)
def admin_stats(dashboard: AdminDashboard = Depends(get_admin_dashboard)):
    raise_for_notice(dashboard.refresh())
    stats = dashboard.stats
    return StatsResponse(
        total_files=stats.total_files,
        total_downloads=stats.total_downloads,
        total_size=stats.total_size,
        total_size_display=format_file_size(stats.total_size),
    )


@router.get("/uploads", response_model=UploadQueueResponse)
def upload_queue(dashboard: AdminDashboard = Depends(get_admin_dashboard)):
    return _upload_queue_response(dashboard.uploads)


@router.post("/uploads", response_model=UploadQueueResponse)
async def upload_files(
    files: list[UploadFile] = File(...),
    category_id: Optional[str] = Form(None),
    dashboard: AdminDashboard = Depends(get_admin_dashboard),
):
    incoming = []
    for upload in files:
        incoming.append(
            IncomingFile(
                filename=upload.filename or "upload",
                data=await upload.read(),
                content_type=upload.content_type,
            )
        )
    batch = await run_in_threadpool(dashboard.upload, incoming, category_id or None)
    return _upload_queue_response(
        dashboard.uploads, items=batch, notices=batch_notices(batch)
    )


@router.delete("/uploads/{item_id}", response_model=UploadQueueResponse)
def dismiss_upload(
    item_id: str, dashboard: AdminDashboard = Depends(get_admin_dashboard)
):
    if not dashboard.uploads.dismiss(item_id):
        raise HTTPException(
            status_code=404, detail="Upload not found or still in progress"
        )
    return _upload_queue_response(dashboard.uploads)


@router.post("/uploads/clear-completed", response_model=UploadQueueResponse)
def clear_completed_uploads(
    dashboard: AdminDashboard = Depends(get_admin_dashboard),
):
    dashboard.uploads.clear_completed()
    return _upload_queue_response(dashboard.uploads)
