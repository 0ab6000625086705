"""
Analysis Store

Persistence for analysis results and uploaded file records.

Analyses are append-only: every generation inserts a new row, and
lookups take the most recent row for (user, file, type). Every read and
write is scoped to the requesting user's identity.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Tuple
import logging
import math
import random
import time
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    func,
    insert,
    or_,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from sheetlens.core.aggregator import columns_of
from sheetlens.core.errors import (
    FileAccessDenied,
    FileMissingError,
    SheetLensError,
    StoreError,
    UnsupportedFormatError,
)
from sheetlens.core.parser import get_extension, is_supported, parse_bytes
from sheetlens.core.records import AnalysisRecord, AnalysisType, FileDescriptor

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

metadata = MetaData()

files_table = Table(
    "files",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("filename", String(255), nullable=False),
    Column("original_name", String(255), nullable=False),
    Column("storage_path", String(1024), nullable=False),
    Column("size", Integer, nullable=False),
    Column("owner_email", String(255), nullable=False, index=True),
    Column("status", String(20), nullable=False, default="completed"),
    Column("column_names", JSON, nullable=True),
    Column("created_at", DateTime, nullable=False),
)

analyses_table = Table(
    "analyses",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_email", String(255), nullable=False),
    Column("file_id", String(32), nullable=False),
    Column("file_name", String(255), nullable=False),
    Column("type", String(20), nullable=False),
    Column("has_data", Boolean, nullable=False, default=False),
    Column("data", JSON(none_as_null=True), nullable=True),
    Column("created_at", DateTime, nullable=False),
    Index("ix_analyses_owner_file_type", "owner_email", "file_id", "type"),
    Index("ix_analyses_owner_created", "owner_email", "created_at"),
)


@dataclass
class Page:
    """One page of a newest-first listing."""
    items: List[Dict[str, Any]]
    total: int
    page: int
    page_size: int

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "total": self.total,
            "page": self.page,
            "totalPages": self.total_pages,
            "hasNextPage": self.page < self.total_pages,
            "hasPreviousPage": self.page > 1,
            "data": self.items,
        }


def _page_bounds(page: int, page_size: int) -> Tuple[int, int]:
    page = max(int(page or 1), 1)
    page_size = min(max(int(page_size or 10), 1), MAX_PAGE_SIZE)
    return page, page_size


class Database:
    """
    Owns the SQLAlchemy engine and hands out transactional connections.

    SQLite file databases get their parent directory created on first use;
    in-memory SQLite shares a single connection so every caller sees the
    same tables.
    """

    def __init__(self, database_url: str):
        self.database_url = database_url
        self._engine: Optional[Engine] = None

    @property
    def engine(self) -> Engine:
        """Get or create the database engine."""
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    def _create_engine(self) -> Engine:
        engine_kwargs = {"pool_pre_ping": True}

        if self.database_url in ("sqlite://", "sqlite:///:memory:"):
            engine_kwargs.update({
                "poolclass": StaticPool,
                "connect_args": {"check_same_thread": False},
            })
        elif self.database_url.startswith("sqlite:///"):
            try:
                Path(self.database_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StoreError(f"Failed to open analysis store: {e}") from e
            engine_kwargs["connect_args"] = {"check_same_thread": False}

        try:
            engine = create_engine(self.database_url, **engine_kwargs)
            metadata.create_all(engine)
            logger.info(f"Opened analysis store at {engine.url.render_as_string(hide_password=True)}")
            return engine
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to open analysis store: {e}") from e

    @contextmanager
    def get_connection(self) -> Generator[Connection, None, None]:
        """
        Transactional connection as a context manager.

        Example:
            with db.get_connection() as conn:
                conn.execute(query)
        """
        try:
            with self.engine.begin() as connection:
                yield connection
        except SQLAlchemyError as e:
            logger.error(f"Database error: {e}")
            raise StoreError(f"Store unavailable: {e}") from e

    def close(self):
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None


class AnalysisStore:
    """Append-only history of analysis results."""

    def __init__(self, database: Database):
        self.db = database

    @staticmethod
    def _to_record(row) -> AnalysisRecord:
        values = row._mapping
        return AnalysisRecord(
            id=values["id"],
            owner_email=values["owner_email"],
            file_id=values["file_id"],
            file_name=values["file_name"],
            type=AnalysisType(values["type"]),
            has_data=bool(values["has_data"]),
            data=values["data"],
            created_at=values["created_at"],
        )

    def find_latest(self, user: str, file_id: str, analysis_type: AnalysisType) -> Optional[AnalysisRecord]:
        """Most recent record for the key, or None."""
        query = (
            select(analyses_table)
            .where(
                analyses_table.c.owner_email == user,
                analyses_table.c.file_id == file_id,
                analyses_table.c.type == analysis_type.value,
            )
            .order_by(analyses_table.c.created_at.desc(), analyses_table.c.id.desc())
            .limit(1)
        )
        with self.db.get_connection() as conn:
            row = conn.execute(query).first()
        return self._to_record(row) if row is not None else None

    def save(
        self,
        user: str,
        file_id: str,
        analysis_type: AnalysisType,
        data: Optional[Dict[str, Any]],
        file_name: str = "",
    ) -> AnalysisRecord:
        """Insert a new record. has_data is derived from data so they never disagree."""
        has_data = data is not None
        values = {
            "owner_email": user,
            "file_id": file_id,
            "file_name": file_name or file_id,
            "type": analysis_type.value,
            "has_data": has_data,
            "data": data,
            "created_at": datetime.now(),
        }
        with self.db.get_connection() as conn:
            result = conn.execute(insert(analyses_table).values(**values))
            record_id = result.inserted_primary_key[0]

        logger.info(f"Saved {analysis_type.value} analysis #{record_id} for file {file_id} (has_data={has_data})")
        return AnalysisRecord(id=record_id, **{**values, "type": analysis_type})

    def get(self, analysis_id: int, user: str) -> Optional[AnalysisRecord]:
        """Record by id; records of other users look missing."""
        query = select(analyses_table).where(
            analyses_table.c.id == analysis_id,
            analyses_table.c.owner_email == user,
        )
        with self.db.get_connection() as conn:
            row = conn.execute(query).first()
        return self._to_record(row) if row is not None else None

    def list_history(
        self,
        user: str,
        analysis_type: Optional[AnalysisType] = None,
        file_id: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> Page:
        """Newest-first summaries (without data payloads)."""
        page, page_size = _page_bounds(page, page_size)

        conditions = [analyses_table.c.owner_email == user]
        if analysis_type is not None:
            conditions.append(analyses_table.c.type == analysis_type.value)
        if file_id:
            conditions.append(analyses_table.c.file_id == file_id)

        count_query = select(func.count()).select_from(analyses_table).where(*conditions)
        query = (
            select(analyses_table)
            .where(*conditions)
            .order_by(analyses_table.c.created_at.desc(), analyses_table.c.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        with self.db.get_connection() as conn:
            total = conn.execute(count_query).scalar_one()
            rows = conn.execute(query).all()

        items = [self._to_record(row).to_dict(include_data=False) for row in rows]
        return Page(items=items, total=total, page=page, page_size=page_size)

    def delete_for_file(self, user: str, file_id: str) -> int:
        """Delete every analysis of one file owned by user."""
        query = delete(analyses_table).where(
            analyses_table.c.owner_email == user,
            analyses_table.c.file_id == file_id,
        )
        with self.db.get_connection() as conn:
            result = conn.execute(query)
        return result.rowcount or 0


class FileRegistry:
    """
    Records uploaded files and keeps their content under upload_dir.

    Stored names are '<epoch-ms>-<random><ext>' so two uploads never
    collide on disk.
    """

    def __init__(self, database: Database, upload_dir: str, analyses: Optional[AnalysisStore] = None):
        self.db = database
        self.upload_dir = Path(upload_dir)
        self.analyses = analyses or AnalysisStore(database)

    @staticmethod
    def _to_descriptor(row) -> FileDescriptor:
        values = row._mapping
        return FileDescriptor(
            id=values["id"],
            filename=values["filename"],
            original_name=values["original_name"],
            size=values["size"],
            owner_email=values["owner_email"],
            storage_path=values["storage_path"],
            status=values["status"],
            columns=list(values["column_names"] or []),
            created_at=values["created_at"],
        )

    @staticmethod
    def _detect_columns(content: bytes, original_name: str) -> List[str]:
        try:
            return columns_of(parse_bytes(content, original_name))
        except SheetLensError as e:
            logger.debug(f"Column detection failed for {original_name}: {e}")
            return []

    def register(self, owner: str, original_name: str, content: bytes) -> Tuple[FileDescriptor, bool]:
        """
        Store an uploaded file.

        Returns:
            (descriptor, created). created is False when the same owner
            already uploaded a file with this name and size.
        """
        if not is_supported(original_name):
            raise UnsupportedFormatError("Only .xlsx, .xls, .csv, and .json files are allowed")

        size = len(content)
        duplicate_query = select(files_table).where(
            files_table.c.original_name == original_name,
            files_table.c.size == size,
            files_table.c.owner_email == owner,
        )
        with self.db.get_connection() as conn:
            existing = conn.execute(duplicate_query).first()
        if existing is not None:
            logger.info(f"Skipping duplicate upload {original_name} for {owner}")
            return self._to_descriptor(existing), False

        self.upload_dir.mkdir(parents=True, exist_ok=True)
        stored_name = f"{int(time.time() * 1000)}-{random.randint(0, 10 ** 9)}.{get_extension(original_name)}"
        storage_path = self.upload_dir / stored_name
        storage_path.write_bytes(content)

        values = {
            "id": uuid.uuid4().hex,
            "filename": stored_name,
            "original_name": original_name,
            "storage_path": str(storage_path),
            "size": size,
            "owner_email": owner,
            "status": "completed",
            "column_names": self._detect_columns(content, original_name),
            "created_at": datetime.now(),
        }
        try:
            with self.db.get_connection() as conn:
                conn.execute(insert(files_table).values(**values))
        except StoreError:
            storage_path.unlink(missing_ok=True)
            raise

        logger.info(f"Registered {original_name} as {values['id']} ({size} bytes)")
        columns = values.pop("column_names")
        return FileDescriptor(columns=columns, **values), True

    def get_descriptor(self, file_id: str) -> Optional[FileDescriptor]:
        with self.db.get_connection() as conn:
            row = conn.execute(select(files_table).where(files_table.c.id == file_id)).first()
        return self._to_descriptor(row) if row is not None else None

    def list_files(self, owner: str, search: Optional[str] = None, page: int = 1, limit: int = 10) -> Page:
        """Newest-first files of one owner, optionally filtered by name."""
        page, limit = _page_bounds(page, limit)

        conditions = [files_table.c.owner_email == owner]
        if search:
            needle = search.lower()
            conditions.append(or_(
                func.lower(files_table.c.original_name).contains(needle, autoescape=True),
                func.lower(files_table.c.filename).contains(needle, autoescape=True),
            ))

        count_query = select(func.count()).select_from(files_table).where(*conditions)
        query = (
            select(files_table)
            .where(*conditions)
            .order_by(files_table.c.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        with self.db.get_connection() as conn:
            total = conn.execute(count_query).scalar_one()
            rows = conn.execute(query).all()

        items = [self._to_descriptor(row).to_dict() for row in rows]
        return Page(items=items, total=total, page=page, page_size=limit)

    def delete_file(self, owner: str, file_id: str) -> int:
        """
        Delete a file, its analyses and its content on disk.

        Returns:
            Number of analysis records removed
        """
        descriptor = self.get_descriptor(file_id)
        if descriptor is None:
            raise FileMissingError("File not found")
        if descriptor.owner_email != owner:
            raise FileAccessDenied("Not authorized to delete this file")

        removed = self.analyses.delete_for_file(owner, file_id)
        with self.db.get_connection() as conn:
            conn.execute(delete(files_table).where(files_table.c.id == file_id))

        try:
            Path(descriptor.storage_path).unlink()
        except OSError as e:
            logger.error(f"Error deleting file from disk: {e}")

        logger.info(f"Deleted file {file_id} and {removed} analyses")
        return removed
