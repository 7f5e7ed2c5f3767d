"""
Admin dashboard and the access gate in front of it.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Iterable, Optional

from filedepot.catalog import CatalogBrowser, CatalogStats, DownloadTicket
from filedepot.categories import CategoryManager
from filedepot.db import DbClient
from filedepot.results import Notice
from filedepot.session import SessionChange, SessionContext, SessionSnapshot
from filedepot.storage import StorageClient
from filedepot.uploads import IncomingFile, UploadItem, UploadWorkflow

logger = logging.getLogger(__name__)

SIGN_IN_ROUTE = "/auth"
HOME_ROUTE = "/"
FORBIDDEN_MESSAGE = "You do not have administrator access"

TABS = ("upload", "manage", "categories")


class GateState(str, Enum):
    CHECKING = "checking-session"
    REDIRECT_UNAUTHENTICATED = "redirect-unauthenticated"
    REDIRECT_FORBIDDEN = "redirect-forbidden"
    GRANTED = "granted"


def gate_state_for(snapshot: SessionSnapshot) -> GateState:
    if not snapshot.is_authenticated:
        return GateState.REDIRECT_UNAUTHENTICATED
    if not snapshot.is_admin:
        return GateState.REDIRECT_FORBIDDEN
    return GateState.GRANTED


class AccessGate:
    """
    Decides whether the current session may see the admin dashboard.

    Starts in ``checking-session``; ``mount`` evaluates the session once and
    keeps listening so a sign-out (or a new sign-in on the same token) moves
    the gate again.
    """

    def __init__(self, context: SessionContext, token: Optional[str]):
        self.context = context
        self.token = token
        self.state = GateState.CHECKING
        self.snapshot: Optional[SessionSnapshot] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    def _apply(self, snapshot: SessionSnapshot) -> GateState:
        self.snapshot = snapshot
        self.state = gate_state_for(snapshot)
        return self.state

    def mount(self) -> GateState:
        state = self._apply(self.context.snapshot(self.token))
        if self._unsubscribe is None:
            self._unsubscribe = self.context.subscribe(self._on_change)
        return state

    def unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_change(self, change: SessionChange) -> None:
        if change.token == self.token:
            self._apply(change.current)

    @property
    def granted(self) -> bool:
        return self.state == GateState.GRANTED

    @property
    def redirect_to(self) -> Optional[str]:
        if self.state == GateState.REDIRECT_UNAUTHENTICATED:
            return SIGN_IN_ROUTE
        if self.state == GateState.REDIRECT_FORBIDDEN:
            return HOME_ROUTE
        return None

    @property
    def notice(self) -> Optional[Notice]:
        if self.state == GateState.REDIRECT_FORBIDDEN:
            return Notice.error(FORBIDDEN_MESSAGE, kind="forbidden")
        return None


class AdminDashboard:
    """Upload, manage and categorize tabs plus catalog totals."""

    def __init__(
        self,
        gate: AccessGate,
        db: DbClient,
        storage: StorageClient,
        uploads: UploadWorkflow,
    ):
        if not gate.granted:
            raise PermissionError("Admin dashboard requires a granted access gate")
        self.gate = gate
        self.catalog = CatalogBrowser(db, storage, is_admin=True)
        self.categories = CategoryManager(db)
        self.uploads = uploads
        self.stats = CatalogStats()
        self.active_tab = TABS[0]

    def select_tab(self, tab: Optional[str]) -> str:
        self.active_tab = tab if tab in TABS else TABS[0]
        return self.active_tab

    def refresh(self) -> Optional[Notice]:
        notice = self.catalog.fetch()
        if notice is None:
            self.stats = CatalogStats.from_files(self.catalog.files)
        return notice

    def upload(
        self, files: Iterable[IncomingFile], category_id: Optional[str] = None
    ) -> list[UploadItem]:
        return self.uploads.submit(files, category_id, on_complete=self.refresh)

    def download(
        self, file_id: str
    ) -> tuple[Optional[DownloadTicket], Optional[Notice]]:
        return self.catalog.download(file_id)

    def delete_file(self, file_id: str, *, confirmed: bool = False) -> Notice:
        notice = self.catalog.delete(file_id, confirmed=confirmed)
        if notice.level == "success":
            self.refresh()
        return notice
