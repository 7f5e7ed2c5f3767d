"""
Server-rendered pages for the browser.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote, urlencode

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.concurrency import run_in_threadpool

from filedepot.catalog import CatalogBrowser
from filedepot.categories import DEFAULT_COLOR, PRESET_COLORS, CategoryManager
from filedepot.config import get_settings
from filedepot.dashboard import TABS, AccessGate, AdminDashboard
from filedepot.db import DbClient
from filedepot.dependencies import (
    get_access_gate,
    get_db_client,
    get_session_context,
    get_session_snapshot,
    get_session_token,
    get_storage_client,
    get_upload_registry,
)
from filedepot.file_utils import (
    file_extension,
    file_type_category,
    format_date,
    format_file_size,
)
from filedepot.results import Notice
from filedepot.session import SessionContext, SessionSnapshot
from filedepot.storage import StorageClient
from filedepot.uploads import IncomingFile, UploadQueueRegistry

logger = logging.getLogger(__name__)

router = APIRouter()

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
templates.env.filters["filesize"] = format_file_size
templates.env.filters["filetype"] = file_type_category
templates.env.filters["extension"] = file_extension
templates.env.filters["datetime"] = format_date


class RedirectRequired(Exception):
    """Raised by page dependencies that must send the browser elsewhere."""

    def __init__(self, url: str, notice: Optional[Notice] = None):
        super().__init__(url)
        self.url = url
        self.notice = notice


def with_notice(url: str, notice: Optional[Notice], **params) -> str:
    query = {k: v for k, v in params.items() if v}
    if notice:
        query["notice"] = notice.message
        query["level"] = notice.level
    if not query:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(query)}"


def redirect(url: str, notice: Optional[Notice] = None, **params) -> RedirectResponse:
    return RedirectResponse(url=with_notice(url, notice, **params), status_code=303)


async def handle_redirect_required(request: Request, exc: RedirectRequired):
    return redirect(exc.url, exc.notice)


def require_admin_page(gate: AccessGate = Depends(get_access_gate)) -> AccessGate:
    if not gate.granted:
        raise RedirectRequired(gate.redirect_to, gate.notice)
    return gate


def get_page_dashboard(
    gate: AccessGate = Depends(require_admin_page),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
    registry: UploadQueueRegistry = Depends(get_upload_registry),
) -> AdminDashboard:
    return AdminDashboard(gate, db, storage, registry.get(gate.snapshot.user.id))


def _page_notice(notice: Optional[str], level: Optional[str]) -> Optional[Notice]:
    if not notice:
        return None
    if level not in ("success", "error", "info"):
        level = "info"
    return Notice(level, notice)


def render(request: Request, name: str, snapshot: SessionSnapshot, **context):
    context.setdefault("notice", None)
    context["session"] = snapshot
    context["app_title"] = get_settings().app_title
    return templates.TemplateResponse(request, name, context)


@router.get("/", response_class=HTMLResponse)
def index(
    request: Request,
    notice: Optional[str] = None,
    level: Optional[str] = None,
    snapshot: SessionSnapshot = Depends(get_session_snapshot),
):
    return render(request, "index.html", snapshot, notice=_page_notice(notice, level))


@router.get("/files", response_class=HTMLResponse)
def files_page(
    request: Request,
    search: str = Query("", max_length=256),
    category: Optional[str] = Query(None),
    notice: Optional[str] = None,
    level: Optional[str] = None,
    snapshot: SessionSnapshot = Depends(get_session_snapshot),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    catalog = CatalogBrowser(db, storage, is_admin=snapshot.is_admin)
    categories = CategoryManager(db)
    page_notice = catalog.fetch() or _page_notice(notice, level)
    categories.fetch()
    catalog.set_search(search)
    catalog.select_category(category)
    return render(
        request,
        "files.html",
        snapshot,
        catalog=catalog,
        categories=categories.categories,
        notice=page_notice,
    )


@router.post("/files/{file_id}/download")
def download_file(
    file_id: str,
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    ticket, notice = CatalogBrowser(db, storage).download(file_id)
    if ticket is None:
        return redirect("/files", notice)
    filename = quote(ticket.filename, safe="")
    response = RedirectResponse(url=ticket.url, status_code=303)
    response.headers["Content-Disposition"] = f"attachment; filename*=UTF-8''{filename}"
    return response


@router.get("/files/{file_id}/delete", response_class=HTMLResponse)
def confirm_delete_file(
    request: Request,
    file_id: str,
    back: str = Query("/files"),
    dashboard: AdminDashboard = Depends(get_page_dashboard),
):
    notice = dashboard.catalog.delete(file_id, confirmed=False)
    if notice.kind != "confirm":
        return redirect(_safe_back(back), notice)
    return render(
        request,
        "confirm.html",
        dashboard.gate.snapshot,
        message=notice.message,
        action=f"/files/{file_id}/delete",
        back=_safe_back(back),
    )


@router.post("/files/{file_id}/delete")
def delete_file(
    file_id: str,
    confirm: str = Form(""),
    back: str = Form("/files"),
    dashboard: AdminDashboard = Depends(get_page_dashboard),
):
    notice = dashboard.delete_file(file_id, confirmed=confirm == "yes")
    return redirect(_safe_back(back), notice)


def _safe_back(url: str) -> str:
    # Only local paths; never bounce to another host.
    if not url.startswith("/") or url.startswith("//"):
        return "/files"
    return url


@router.get("/auth", response_class=HTMLResponse)
def auth_page(
    request: Request,
    notice: Optional[str] = None,
    level: Optional[str] = None,
    snapshot: SessionSnapshot = Depends(get_session_snapshot),
):
    if snapshot.is_authenticated:
        return redirect("/")
    return render(request, "auth.html", snapshot, notice=_page_notice(notice, level))


@router.post("/auth/sign-in")
def sign_in(
    email: str = Form(""),
    password: str = Form(""),
    context: SessionContext = Depends(get_session_context),
):
    token, notice = context.sign_in(email, password)
    if token is None:
        return redirect("/auth", notice)
    settings = get_settings()
    response = redirect("/", notice)
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        samesite="lax",
    )
    return response


@router.post("/auth/sign-up")
def sign_up(
    email: str = Form(""),
    password: str = Form(""),
    context: SessionContext = Depends(get_session_context),
):
    return redirect("/auth", context.sign_up(email, password))


@router.post("/auth/sign-out")
def sign_out(
    token: Optional[str] = Depends(get_session_token),
    context: SessionContext = Depends(get_session_context),
):
    response = redirect("/", context.sign_out(token))
    response.delete_cookie(get_settings().session_cookie_name)
    return response


@router.get("/admin", response_class=HTMLResponse)
def admin_page(
    request: Request,
    tab: Optional[str] = Query(None),
    edit: Optional[str] = Query(None),
    notice: Optional[str] = None,
    level: Optional[str] = None,
    dashboard: AdminDashboard = Depends(get_page_dashboard),
):
    dashboard.select_tab(tab)
    page_notice = dashboard.refresh() or _page_notice(notice, level)
    dashboard.categories.fetch()
    return render(
        request,
        "admin.html",
        dashboard.gate.snapshot,
        dashboard=dashboard,
        tabs=TABS,
        palette=PRESET_COLORS,
        default_color=DEFAULT_COLOR,
        editing=dashboard.categories.find(edit) if edit else None,
        notice=page_notice,
    )


def _admin_url(tab: str) -> str:
    return f"/admin?tab={tab}"


@router.post("/admin/uploads")
async def upload_files(
    files: list[UploadFile] = File(...),
    category_id: str = Form(""),
    dashboard: AdminDashboard = Depends(get_page_dashboard),
):
    incoming = []
    for upload in files:
        if not upload.filename:
            continue
        incoming.append(
            IncomingFile(
                filename=upload.filename,
                data=await upload.read(),
                content_type=upload.content_type,
            )
        )
    if not incoming:
        return redirect(
            _admin_url("upload"), Notice.error("Please choose files to upload", kind="validation")
        )
    batch = await run_in_threadpool(dashboard.upload, incoming, category_id or None)
    failed = [item for item in batch if item.error]
    if failed:
        notice = Notice.error(
            f"{len(batch) - len(failed)} of {len(batch)} files uploaded; "
            f"{', '.join(item.filename for item in failed)} failed"
        )
    else:
        notice = Notice.success(f"{len(batch)} file(s) uploaded")
    return redirect(_admin_url("upload"), notice)


@router.post("/admin/uploads/{item_id}/dismiss")
def dismiss_upload(
    item_id: str, dashboard: AdminDashboard = Depends(get_page_dashboard)
):
    dashboard.uploads.dismiss(item_id)
    return redirect(_admin_url("upload"))


@router.post("/admin/uploads/clear-completed")
def clear_completed_uploads(
    dashboard: AdminDashboard = Depends(get_page_dashboard),
):
    dashboard.uploads.clear_completed()
    return redirect(_admin_url("upload"))


@router.post("/admin/categories")
def create_category(
    name: str = Form(""),
    color: str = Form(DEFAULT_COLOR),
    dashboard: AdminDashboard = Depends(get_page_dashboard),
):
    notice = dashboard.categories.create(name, color)
    return redirect(_admin_url("categories"), notice)


@router.post("/admin/categories/{category_id}")
def update_category(
    category_id: str,
    name: str = Form(""),
    color: str = Form(DEFAULT_COLOR),
    dashboard: AdminDashboard = Depends(get_page_dashboard),
):
    notice = dashboard.categories.update(category_id, name, color)
    if notice.is_error:
        return redirect(_admin_url("categories"), notice, edit=category_id)
    return redirect(_admin_url("categories"), notice)


@router.get("/admin/categories/{category_id}/delete", response_class=HTMLResponse)
def confirm_delete_category(
    request: Request,
    category_id: str,
    dashboard: AdminDashboard = Depends(get_page_dashboard),
):
    manager = dashboard.categories
    manager.fetch()
    if manager.find(category_id) is None:
        return redirect(
            _admin_url("categories"), Notice.error("Category not found", kind="not_found")
        )
    notice = manager.delete(category_id, confirmed=False)
    return render(
        request,
        "confirm.html",
        dashboard.gate.snapshot,
        message=notice.message,
        action=f"/admin/categories/{category_id}/delete",
        back=_admin_url("categories"),
    )


@router.post("/admin/categories/{category_id}/delete")
def delete_category(
    category_id: str,
    confirm: str = Form(""),
    dashboard: AdminDashboard = Depends(get_page_dashboard),
):
    notice = dashboard.categories.delete(category_id, confirmed=confirm == "yes")
    return redirect(_admin_url("categories"), notice)
