"""
Relational store abstraction for SQL databases and an in-memory test implementation.

Every operation returns a ``Result`` instead of raising, mirroring the
hosted-database client the app was designed against.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    create_engine,
    delete,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, joinedload, relationship, sessionmaker

from filedepot.results import (
    FOREIGN_KEY_VIOLATION,
    NO_DATA_FOUND,
    UNIQUE_VIOLATION,
    Err,
    Ok,
    Result,
    StoreError,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    # SQLite hands timezone-aware columns back as naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class CategorySummary:
    name: str
    color: str


@dataclass
class CategoryRecord:
    id: str
    name: str
    color: str
    created_at: datetime = field(default_factory=_utcnow)

    def summary(self) -> CategorySummary:
        return CategorySummary(name=self.name, color=self.color)


@dataclass
class NewFile:
    """Metadata written right after the bytes land in storage."""

    name: str
    original_name: str
    size: int
    storage_path: str
    mime_type: Optional[str] = None
    uploaded_by: Optional[str] = None
    category_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class FileRecord:
    id: str
    name: str
    original_name: str
    size: int
    storage_path: str
    mime_type: Optional[str] = None
    download_count: int = 0
    created_at: datetime = field(default_factory=_utcnow)
    uploaded_by: Optional[str] = None
    category_id: Optional[str] = None
    category: Optional[CategorySummary] = None


@dataclass
class UserRecord:
    id: str
    email: str
    password_hash: str
    is_admin: bool = False


class DbClient(Protocol):
    """Interface for relational store access."""

    def list_files(self, category_id: str | None = None) -> Result[list[FileRecord]]:
        ...

    def get_file(self, file_id: str) -> Result[FileRecord]:
        ...

    def insert_file(self, new_file: NewFile) -> Result[FileRecord]:
        ...

    def increment_download_count(self, file_id: str) -> Result[int]:
        ...

    def delete_file(self, file_id: str) -> Result[None]:
        ...

    def list_categories(self) -> Result[list[CategoryRecord]]:
        ...

    def insert_category(self, name: str, color: str) -> Result[CategoryRecord]:
        ...

    def update_category(
        self, category_id: str, name: str, color: str
    ) -> Result[CategoryRecord]:
        ...

    def delete_category(self, category_id: str) -> Result[None]:
        ...

    def get_user(self, user_id: str) -> Result[Optional[UserRecord]]:
        ...

    def get_user_by_email(self, email: str) -> Result[Optional[UserRecord]]:
        ...

    def insert_user(
        self, email: str, password_hash: str, is_admin: bool = False
    ) -> Result[UserRecord]:
        ...


def _not_found(what: str) -> Err:
    return Err(StoreError(f"{what} not found", code=NO_DATA_FOUND))


def _duplicate(what: str) -> Err:
    return Err(
        StoreError(
            f'duplicate key value violates unique constraint "{what}"',
            code=UNIQUE_VIOLATION,
        )
    )


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.files: Dict[str, FileRecord] = {}
        self.categories: Dict[str, CategoryRecord] = {}
        self.users: Dict[str, UserRecord] = {}
        # Operation names that should report a generic failure, for tests.
        self.failing_operations: set[str] = set()
        self._sequence: Dict[str, int] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.files.clear()
        self.categories.clear()
        self.users.clear()
        self.failing_operations.clear()
        self._sequence.clear()

    def _failure(self, operation: str) -> Optional[Err]:
        if operation in self.failing_operations:
            return Err(StoreError(f"{operation} failed: connection reset"))
        return None

    def _joined(self, record: FileRecord) -> FileRecord:
        category = self.categories.get(record.category_id or "")
        return replace(record, category=category.summary() if category else None)

    def list_files(self, category_id: str | None = None) -> Result[list[FileRecord]]:
        failure = self._failure("list_files")
        if failure:
            return failure
        records = [
            self._joined(record)
            for record in self.files.values()
            if category_id is None or record.category_id == category_id
        ]
        records.sort(
            key=lambda r: (r.created_at, self._sequence.get(r.id, 0)), reverse=True
        )
        return Ok(records)

    def get_file(self, file_id: str) -> Result[FileRecord]:
        failure = self._failure("get_file")
        if failure:
            return failure
        record = self.files.get(file_id)
        if not record:
            return _not_found("File")
        return Ok(self._joined(record))

    def insert_file(self, new_file: NewFile) -> Result[FileRecord]:
        failure = self._failure("insert_file")
        if failure:
            return failure
        if any(f.storage_path == new_file.storage_path for f in self.files.values()):
            return _duplicate("files_storage_path_key")
        if new_file.category_id and new_file.category_id not in self.categories:
            return Err(
                StoreError(
                    'insert on table "files" violates foreign key constraint',
                    code=FOREIGN_KEY_VIOLATION,
                )
            )
        record = FileRecord(
            id=uuid.uuid4().hex,
            name=new_file.name,
            original_name=new_file.original_name,
            size=new_file.size,
            storage_path=new_file.storage_path,
            mime_type=new_file.mime_type,
            uploaded_by=new_file.uploaded_by,
            category_id=new_file.category_id,
            created_at=new_file.created_at or _utcnow(),
        )
        self.files[record.id] = record
        self._sequence[record.id] = max(self._sequence.values(), default=0) + 1
        return Ok(self._joined(record))

    def increment_download_count(self, file_id: str) -> Result[int]:
        failure = self._failure("increment_download_count")
        if failure:
            return failure
        record = self.files.get(file_id)
        if not record:
            return _not_found("File")
        record.download_count += 1
        return Ok(record.download_count)

    def delete_file(self, file_id: str) -> Result[None]:
        failure = self._failure("delete_file")
        if failure:
            return failure
        if self.files.pop(file_id, None) is None:
            return _not_found("File")
        return Ok(None)

    def list_categories(self) -> Result[list[CategoryRecord]]:
        failure = self._failure("list_categories")
        if failure:
            return failure
        return Ok(sorted(self.categories.values(), key=lambda c: c.name))

    def insert_category(self, name: str, color: str) -> Result[CategoryRecord]:
        failure = self._failure("insert_category")
        if failure:
            return failure
        if any(c.name == name for c in self.categories.values()):
            return _duplicate("categories_name_key")
        record = CategoryRecord(id=uuid.uuid4().hex, name=name, color=color)
        self.categories[record.id] = record
        return Ok(record)

    def update_category(
        self, category_id: str, name: str, color: str
    ) -> Result[CategoryRecord]:
        failure = self._failure("update_category")
        if failure:
            return failure
        record = self.categories.get(category_id)
        if not record:
            return _not_found("Category")
        if any(
            c.name == name and c.id != category_id for c in self.categories.values()
        ):
            return _duplicate("categories_name_key")
        record.name = name
        record.color = color
        return Ok(record)

    def delete_category(self, category_id: str) -> Result[None]:
        failure = self._failure("delete_category")
        if failure:
            return failure
        if self.categories.pop(category_id, None) is None:
            return _not_found("Category")
        for record in self.files.values():
            if record.category_id == category_id:
                record.category_id = None
        return Ok(None)

    def get_user(self, user_id: str) -> Result[Optional[UserRecord]]:
        return Ok(self.users.get(user_id))

    def get_user_by_email(self, email: str) -> Result[Optional[UserRecord]]:
        for user in self.users.values():
            if user.email == email:
                return Ok(user)
        return Ok(None)

    def insert_user(
        self, email: str, password_hash: str, is_admin: bool = False
    ) -> Result[UserRecord]:
        failure = self._failure("insert_user")
        if failure:
            return failure
        if any(u.email == email for u in self.users.values()):
            return _duplicate("users_email_key")
        user = UserRecord(
            id=uuid.uuid4().hex,
            email=email,
            password_hash=password_hash,
            is_admin=is_admin,
        )
        self.users[user.id] = user
        return Ok(user)


def _store_error(exc: SQLAlchemyError) -> StoreError:
    if isinstance(exc, IntegrityError):
        orig = exc.orig
        code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        if code is None:
            text = str(orig).upper()
            if "UNIQUE" in text:
                code = UNIQUE_VIOLATION
            elif "FOREIGN KEY" in text:
                code = FOREIGN_KEY_VIOLATION
        return StoreError(str(orig), code=code)
    return StoreError(str(exc))


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (Postgres in
    production, SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
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

    def _to_category(self, row: "CategoryRow") -> CategoryRecord:
        return CategoryRecord(
            id=row.id,
            name=row.name,
            color=row.color,
            created_at=_aware(row.created_at),
        )

    def _to_file(self, row: "FileRow") -> FileRecord:
        category = row.category
        return FileRecord(
            id=row.id,
            name=row.name,
            original_name=row.original_name,
            size=row.size,
            storage_path=row.storage_path,
            mime_type=row.mime_type,
            download_count=row.download_count,
            created_at=_aware(row.created_at),
            uploaded_by=row.uploaded_by,
            category_id=row.category_id,
            category=(
                CategorySummary(name=category.name, color=category.color)
                if category
                else None
            ),
        )

    def _to_user(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            id=row.id,
            email=row.email,
            password_hash=row.password_hash,
            is_admin=row.is_admin,
        )

    def list_files(self, category_id: str | None = None) -> Result[list[FileRecord]]:
        stmt = (
            select(FileRow)
            .options(joinedload(FileRow.category))
            .order_by(FileRow.created_at.desc())
        )
        if category_id is not None:
            stmt = stmt.where(FileRow.category_id == category_id)
        try:
            with self.Session() as session:
                rows = session.execute(stmt).scalars().all()
                return Ok([self._to_file(row) for row in rows])
        except SQLAlchemyError as exc:
            return Err(_store_error(exc))

    def get_file(self, file_id: str) -> Result[FileRecord]:
        try:
            with self.Session() as session:
                row = session.get(FileRow, file_id, options=[joinedload(FileRow.category)])
                if not row:
                    return _not_found("File")
                return Ok(self._to_file(row))
        except SQLAlchemyError as exc:
            return Err(_store_error(exc))

    def insert_file(self, new_file: NewFile) -> Result[FileRecord]:
        row = FileRow(
            id=uuid.uuid4().hex,
            name=new_file.name,
            original_name=new_file.original_name,
            size=new_file.size,
            mime_type=new_file.mime_type,
            storage_path=new_file.storage_path,
            download_count=0,
            created_at=new_file.created_at or _utcnow(),
            uploaded_by=new_file.uploaded_by,
            category_id=new_file.category_id,
        )
        try:
            with self.Session() as session:
                session.add(row)
                session.commit()
                row = session.get(
                    FileRow, row.id, options=[joinedload(FileRow.category)]
                )
                return Ok(self._to_file(row))
        except SQLAlchemyError as exc:
            return Err(_store_error(exc))

    def increment_download_count(self, file_id: str) -> Result[int]:
        try:
            with self.Session() as session:
                result = session.execute(
                    update(FileRow)
                    .where(FileRow.id == file_id)
                    .values(download_count=FileRow.download_count + 1)
                )
                if result.rowcount == 0:
                    session.rollback()
                    return _not_found("File")
                session.commit()
                count = session.execute(
                    select(FileRow.download_count).where(FileRow.id == file_id)
                ).scalar_one()
                return Ok(count)
        except SQLAlchemyError as exc:
            return Err(_store_error(exc))

    def delete_file(self, file_id: str) -> Result[None]:
        try:
            with self.Session() as session:
                result = session.execute(delete(FileRow).where(FileRow.id == file_id))
                if result.rowcount == 0:
                    session.rollback()
                    return _not_found("File")
                session.commit()
                return Ok(None)
        except SQLAlchemyError as exc:
            return Err(_store_error(exc))

    def list_categories(self) -> Result[list[CategoryRecord]]:
        try:
            with self.Session() as session:
                rows = session.execute(
                    select(CategoryRow).order_by(CategoryRow.name.asc())
                ).scalars().all()
                return Ok([self._to_category(row) for row in rows])
        except SQLAlchemyError as exc:
            return Err(_store_error(exc))

    def insert_category(self, name: str, color: str) -> Result[CategoryRecord]:
        row = CategoryRow(
            id=uuid.uuid4().hex, name=name, color=color, created_at=_utcnow()
        )
        try:
            with self.Session() as session:
                session.add(row)
                session.commit()
                return Ok(self._to_category(row))
        except SQLAlchemyError as exc:
            return Err(_store_error(exc))

    def update_category(
        self, category_id: str, name: str, color: str
    ) -> Result[CategoryRecord]:
        try:
            with self.Session() as session:
                row = session.get(CategoryRow, category_id)
                if not row:
                    return _not_found("Category")
                row.name = name
                row.color = color
                session.commit()
                return Ok(self._to_category(row))
        except SQLAlchemyError as exc:
            return Err(_store_error(exc))

    def delete_category(self, category_id: str) -> Result[None]:
        try:
            with self.Session() as session:
                # SQLite ignores ON DELETE SET NULL unless foreign keys are enabled.
                session.execute(
                    update(FileRow)
                    .where(FileRow.category_id == category_id)
                    .values(category_id=None)
                )
                result = session.execute(
                    delete(CategoryRow).where(CategoryRow.id == category_id)
                )
                if result.rowcount == 0:
                    session.rollback()
                    return _not_found("Category")
                session.commit()
                return Ok(None)
        except SQLAlchemyError as exc:
            return Err(_store_error(exc))

    def get_user(self, user_id: str) -> Result[Optional[UserRecord]]:
        try:
            with self.Session() as session:
                row = session.get(UserRow, user_id)
                return Ok(self._to_user(row) if row else None)
        except SQLAlchemyError as exc:
            return Err(_store_error(exc))

    def get_user_by_email(self, email: str) -> Result[Optional[UserRecord]]:
        try:
            with self.Session() as session:
                row = session.execute(
                    select(UserRow).where(UserRow.email == email)
                ).scalar_one_or_none()
                return Ok(self._to_user(row) if row else None)
        except SQLAlchemyError as exc:
            return Err(_store_error(exc))

    def insert_user(
        self, email: str, password_hash: str, is_admin: bool = False
    ) -> Result[UserRecord]:
        row = UserRow(
            id=uuid.uuid4().hex,
            email=email,
            password_hash=password_hash,
            is_admin=is_admin,
            created_at=_utcnow(),
        )
        try:
            with self.Session() as session:
                session.add(row)
                session.commit()
                return Ok(self._to_user(row))
        except SQLAlchemyError as exc:
            return Err(_store_error(exc))


Base = declarative_base()


class CategoryRow(Base):
    __tablename__ = "categories"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    color = Column(String(16), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class FileRow(Base):
    __tablename__ = "files"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    original_name = Column(String, nullable=False)
    size = Column(BigInteger, nullable=False)
    mime_type = Column(String, nullable=True)
    storage_path = Column(String, nullable=False, unique=True)
    download_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    uploaded_by = Column(String, nullable=True)
    category_id = Column(
        String,
        ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    category = relationship("CategoryRow")


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
