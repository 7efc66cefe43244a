"""
Record store

Products, orders, users and discounts are kept as plain JSON-compatible
dicts keyed by (kind, id). Every backend implements the same small contract
so the services never know which one is behind them:

- ``get(kind, id)``      -> record or None
- ``list(kind)``         -> records in insertion order
- ``find(kind, **eq)``   -> records whose fields equal the given values
- ``put(kind, id, rec)`` -> insert or overwrite (last write wins)
- ``delete(kind, id)``   -> idempotent removal

Backends: in-process memory, JSON files, MongoDB, SQL (Postgres/SQLite).
"""
import copy
import json
import logging
import os
import tempfile
import threading
from collections import OrderedDict
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson.objectid import ObjectId
from pymongo import MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError
from sqlalchemy import (
    JSON,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from config import Settings
from errors import StoreUnavailable, ValidationFailure

logger = logging.getLogger(__name__)

KINDS = ("product", "order", "user", "discount")


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id) if isinstance(_id, ObjectId) else _id
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc


class RecordStore:
    name = "abstract"

    def init(self) -> None:
        pass

    def close(self) -> None:
        pass

    def get(self, kind: str, record_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def list(self, kind: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def put(self, kind: str, record_id: str, record: Dict[str, Any]) -> None:
        raise NotImplementedError

    def delete(self, kind: str, record_id: str) -> None:
        raise NotImplementedError

    def find(self, kind: str, **fields) -> List[Dict[str, Any]]:
        return [r for r in self.list(kind) if all(r.get(k) == v for k, v in fields.items())]

    def describe(self) -> Dict[str, Any]:
        return {"backend": self.name, "collections": list(KINDS)}


class MemoryStore(RecordStore):
    name = "memory"

    def __init__(self):
        self._data: Dict[str, "OrderedDict[str, Dict[str, Any]]"] = {k: OrderedDict() for k in KINDS}

    def _bucket(self, kind):
        return self._data.setdefault(kind, OrderedDict())

    def get(self, kind, record_id):
        rec = self._bucket(kind).get(record_id)
        return copy.deepcopy(rec) if rec is not None else None

    def list(self, kind):
        return [copy.deepcopy(r) for r in self._bucket(kind).values()]

    def put(self, kind, record_id, record):
        self._bucket(kind)[record_id] = copy.deepcopy(record)

    def delete(self, kind, record_id):
        self._bucket(kind).pop(record_id, None)


class JsonFileStore(RecordStore):
    """
    One JSON array per kind (products.json, orders.json, ...), rewritten on every mutation.

    Read-change-write cycles hold the store lock, and files are replaced
    atomically so readers never see a half-written array. Only ``list``
    degrades to an empty result on an unreadable file; other operations
    raise StoreUnavailable so a write never replaces data it could not read.
    """

    name = "file"

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self._lock = threading.RLock()

    def _path(self, kind):
        return os.path.join(self.data_dir, f"{kind}s.json")

    def init(self):
        os.makedirs(self.data_dir, exist_ok=True)
        with self._lock:
            for kind in KINDS:
                if not os.path.exists(self._path(kind)):
                    self._write(kind, [])

    def _read(self, kind) -> List[Dict[str, Any]]:
        path = self._path(kind)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            raise StoreUnavailable(f"Could not read {kind} data") from e
        if not isinstance(data, list):
            raise StoreUnavailable(f"Malformed {kind} data")
        return data

    def _write(self, kind, records):
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=f".{kind}s.", suffix=".tmp", dir=self.data_dir)
        except OSError as e:
            raise StoreUnavailable(f"Could not write {kind} data") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(records, fh, indent=2)
            os.replace(tmp_path, self._path(kind))
        except OSError as e:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise StoreUnavailable(f"Could not write {kind} data") from e

    def get(self, kind, record_id):
        with self._lock:
            return next((r for r in self._read(kind) if r.get("id") == record_id), None)

    def list(self, kind):
        with self._lock:
            try:
                return self._read(kind)
            except StoreUnavailable as e:
                logger.warning("Could not read %s, treating as empty: %s", self._path(kind), e.__cause__ or e)
                return []

    def put(self, kind, record_id, record):
        record = {**record, "id": record_id}
        with self._lock:
            records = self._read(kind)
            for i, existing in enumerate(records):
                if existing.get("id") == record_id:
                    records[i] = record
                    break
            else:
                records.append(record)
            self._write(kind, records)

    def delete(self, kind, record_id):
        with self._lock:
            records = self._read(kind)
            remaining = [r for r in records if r.get("id") != record_id]
            if len(remaining) != len(records):
                self._write(kind, remaining)

    def describe(self):
        return {"backend": self.name, "collections": list(KINDS), "data_dir": self.data_dir}


class MongoStore(RecordStore):
    """Collection per kind; the record id doubles as ``_id``."""

    name = "mongo"

    def __init__(self, url: str, database_name: str):
        self.url = url
        self.database_name = database_name
        self.client = None
        self.db = None

    @contextmanager
    def _errors(self):
        try:
            yield
        except DuplicateKeyError as e:
            raise ValidationFailure("Duplicate record") from e
        except PyMongoError as e:
            raise StoreUnavailable("Database not available") from e

    def init(self):
        with self._errors():
            self.client = MongoClient(self.url, serverSelectionTimeoutMS=5000)
            self.db = self.client[self.database_name]
            self.db["user"].create_index("email", unique=True, sparse=True)

    def close(self):
        if self.client is not None:
            self.client.close()
            self.client = None
            self.db = None

    def _collection(self, kind):
        if self.db is None:
            raise StoreUnavailable("Database not connected")
        return self.db[kind]

    def get(self, kind, record_id):
        with self._errors():
            return serialize_doc(self._collection(kind).find_one({"_id": record_id}))

    def list(self, kind):
        with self._errors():
            return [serialize_doc(d) for d in self._collection(kind).find({})]

    def find(self, kind, **fields):
        with self._errors():
            return [serialize_doc(d) for d in self._collection(kind).find(fields)]

    def put(self, kind, record_id, record):
        doc = {k: v for k, v in record.items() if k != "id"}
        doc["_id"] = record_id
        with self._errors():
            self._collection(kind).replace_one({"_id": record_id}, doc, upsert=True)

    def delete(self, kind, record_id):
        with self._errors():
            self._collection(kind).delete_one({"_id": record_id})

    def describe(self):
        with self._errors():
            collections = self.db.list_collection_names()[:10] if self.db is not None else []
        return {"backend": self.name, "collections": collections, "database_name": self.database_name}


class SqlStore(RecordStore):
    """
    Single ``records`` table holding each record as a JSON payload.

    ``(kind, id)`` and ``(kind, email)`` are unique; ``seq`` keeps insertion
    order for listing.
    """

    name = "sql"

    def __init__(self, url: str):
        self.url = url
        self.engine = None
        self.records = None

    @contextmanager
    def _errors(self):
        try:
            yield
        except IntegrityError as e:
            raise ValidationFailure("Duplicate record") from e
        except SQLAlchemyError as e:
            raise StoreUnavailable("Database not available") from e

    def init(self):
        metadata = MetaData()
        self.records = Table(
            "records",
            metadata,
            Column("seq", Integer, primary_key=True, autoincrement=True),
            Column("kind", String(32), nullable=False),
            Column("id", String(64), nullable=False),
            Column("email", String(255), nullable=True),
            Column("data", JSON, nullable=False),
            UniqueConstraint("kind", "id", name="uq_records_kind_id"),
            UniqueConstraint("kind", "email", name="uq_records_kind_email"),
        )
        connect_args = {"check_same_thread": False} if self.url.startswith("sqlite") else {}
        with self._errors():
            self.engine = create_engine(self.url, connect_args=connect_args)
            metadata.create_all(self.engine)

    def close(self):
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None

    def _require_engine(self):
        if self.engine is None:
            raise StoreUnavailable("Database not connected")
        return self.engine

    def get(self, kind, record_id):
        t = self.records
        with self._errors(), self._require_engine().connect() as conn:
            row = conn.execute(select(t.c.data).where(t.c.kind == kind, t.c.id == record_id)).first()
        return dict(row.data) if row else None

    def list(self, kind):
        t = self.records
        with self._errors(), self._require_engine().connect() as conn:
            rows = conn.execute(select(t.c.data).where(t.c.kind == kind).order_by(t.c.seq)).all()
        return [dict(r.data) for r in rows]

    def put(self, kind, record_id, record):
        t = self.records
        record = {**record, "id": record_id}
        email = record.get("email") if kind == "user" else None
        with self._errors(), self._require_engine().begin() as conn:
            existing = conn.execute(select(t.c.seq).where(t.c.kind == kind, t.c.id == record_id)).first()
            if existing:
                conn.execute(update(t).where(t.c.seq == existing.seq).values(data=record, email=email))
            else:
                conn.execute(insert(t).values(kind=kind, id=record_id, email=email, data=record))

    def delete(self, kind, record_id):
        t = self.records
        with self._errors(), self._require_engine().begin() as conn:
            conn.execute(delete(t).where(t.c.kind == kind, t.c.id == record_id))


def create_store(settings: Settings) -> RecordStore:
    backend = settings.store_backend
    if backend == "memory":
        return MemoryStore()
    if backend == "file":
        return JsonFileStore(settings.data_dir)
    if backend == "mongo":
        if not settings.database_url:
            raise ValueError("DATABASE_URL is required for the mongo store")
        return MongoStore(settings.database_url, settings.database_name)
    if backend == "sql":
        if not settings.database_url:
            raise ValueError("DATABASE_URL is required for the sql store")
        return SqlStore(settings.database_url)
    raise ValueError(f"Unknown store backend: {backend}")
