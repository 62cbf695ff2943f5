"""
mongoutil client
Typed façade over PyMongo addressed by (database, collection) namespace.

Usage:
    from mongoutil import DocumentStoreClient

    client = DocumentStoreClient("mongodb://localhost:27017")

    # Insert
    client.insert_one("shop", "users", {"name": "Alice", "email": "alice@example.com"})

    # Find
    docs = client.find_all("shop", "users", {"name": "Alice"})

    # Update
    client.update_one("shop", "users", {"name": "Alice"}, {"$set": {"age": 30}})

    # Delete
    client.delete_one("shop", "users", {"name": "Alice"})

    # Transaction
    def move(session):
        client.insert_one("shop", "archive", {"name": "Alice"}, session=session)
        client.delete_one("shop", "users", {"name": "Alice"}, session=session)

    client.run_transaction(move)
"""

import contextlib
import logging
import os
import re
from typing import Any, Callable, ContextManager, Dict, List, NamedTuple, Optional, Sequence, Tuple, TypeVar, Union

import pymongo
from pymongo import MongoClient
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.command_cursor import CommandCursor
from pymongo.errors import BulkWriteError, PyMongoError
from pymongo.results import DeleteResult, InsertOneResult, UpdateResult

from .errors import ClientClosedError, ConfigurationError, DocumentNotFoundError
from .results import BulkWriteReport

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
IndexKeys = Union[str, Sequence[Tuple[str, Any]]]
T = TypeVar("T")

_CREDENTIALS = re.compile(r"://[^@/]+@")


class Namespace(NamedTuple):
    """A (database, collection) pair; unpacks into the leading arguments of every data call."""

    database: str
    collection: str

    def __str__(self) -> str:
        return f"{self.database}.{self.collection}"


def _redact(uri: str) -> str:
    return _CREDENTIALS.sub("://***@", uri)


class DocumentStoreClient:
    """
    Owns one ``MongoClient`` and forwards namespaced operations to it.

    Every data operation accepts two keyword-only arguments:

    - ``session``: a ``ClientSession``; pass the one handed to a
      ``run_transaction`` callback to take part in that transaction.
    - ``timeout``: a deadline in seconds applied through ``pymongo.timeout``.
      Left as ``None``, whatever deadline the caller has already set
      (an enclosing ``pymongo.timeout`` block or ``timeoutMS``) applies.

    Driver errors propagate unchanged.
    """

    def __init__(
        self,
        uri: str,
        *,
        connect_timeout: Optional[float] = None,
        **driver_options: Any,
    ):
        if not uri:
            raise ConfigurationError("A MongoDB connection URI is required")
        if connect_timeout is not None:
            driver_options.setdefault("serverSelectionTimeoutMS", int(connect_timeout * 1000))

        self._uri = _redact(uri)
        self._client: Optional[MongoClient] = MongoClient(uri, **driver_options)
        try:
            self.ping()
        except PyMongoError:
            logger.error("Could not reach MongoDB at %s", self._uri)
            self._client.close()
            self._client = None
            raise
        logger.info("Connected to MongoDB at %s", self._uri)

    @classmethod
    def from_env(cls, var: str = "MONGO_URI", **kwargs: Any) -> "DocumentStoreClient":
        """Build a client from the connection URI held in environment variable ``var``."""
        uri = os.environ.get(var, "").strip()
        if not uri:
            raise ConfigurationError(f"{var} environment variable is not set")
        return cls(uri, **kwargs)

    # ------------------------------------------------------------------ plumbing

    @property
    def closed(self) -> bool:
        return self._client is None

    def _require_open(self) -> MongoClient:
        if self._client is None:
            raise ClientClosedError()
        return self._client

    def _collection(self, database: str, collection: str, op: str) -> Collection:
        client = self._require_open()
        logger.debug("%s on %s", op, Namespace(database, collection))
        return client[database][collection]

    @staticmethod
    def _deadline(timeout: Optional[float]) -> ContextManager:
        if timeout is None:
            return contextlib.nullcontext()
        return pymongo.timeout(timeout)

    # ------------------------------------------------------------------ writes

    def insert_one(
        self,
        database: str,
        collection: str,
        document: Document,
        *,
        session: Optional[ClientSession] = None,
        timeout: Optional[float] = None,
    ) -> InsertOneResult:
        """Insert a single document."""
        coll = self._collection(database, collection, "insert_one")
        with self._deadline(timeout):
            return coll.insert_one(document, session=session)

    def insert_many(
        self,
        database: str,
        collection: str,
        documents: Sequence[Document],
        *,
        ordered: bool = False,
        session: Optional[ClientSession] = None,
        timeout: Optional[float] = None,
    ) -> BulkWriteReport:
        """
        Insert multiple documents and report the outcome of each one.

        Per-document write errors (duplicate keys, validation failures) and
        write concern errors come back in the report instead of being raised;
        call ``report.raise_for_errors()`` to turn them into an exception. Any
        other driver error propagates.
        """
        coll = self._collection(database, collection, "insert_many")
        documents = list(documents)
        with self._deadline(timeout):
            try:
                result = coll.insert_many(documents, ordered=ordered, session=session)
            except BulkWriteError as exc:
                report = BulkWriteReport.from_error(documents, exc.details, ordered)
                logger.warning(
                    "insert_many on %s: %d of %d documents failed, %d write concern errors",
                    Namespace(database, collection),
                    len(report.failed),
                    len(report),
                    len(report.write_concern_errors),
                )
                return report
        return BulkWriteReport.from_success(result.inserted_ids, result.acknowledged)

    def update_one(
        self,
        database: str,
        collection: str,
        filter: Document,
        update: Union[Document, List[Document]],
        *,
        upsert: bool = False,
        session: Optional[ClientSession] = None,
        timeout: Optional[float] = None,
    ) -> UpdateResult:
        """Update a single document matching a filter."""
        coll = self._collection(database, collection, "update_one")
        with self._deadline(timeout):
            return coll.update_one(filter, update, upsert=upsert, session=session)

    def update_many(
        self,
        database: str,
        collection: str,
        filter: Document,
        update: Union[Document, List[Document]],
        *,
        upsert: bool = False,
        session: Optional[ClientSession] = None,
        timeout: Optional[float] = None,
    ) -> UpdateResult:
        """Update every document matching a filter."""
        coll = self._collection(database, collection, "update_many")
        with self._deadline(timeout):
            return coll.update_many(filter, update, upsert=upsert, session=session)

    def delete_one(
        self,
        database: str,
        collection: str,
        filter: Document,
        *,
        session: Optional[ClientSession] = None,
        timeout: Optional[float] = None,
    ) -> DeleteResult:
        """Delete a single document matching a filter."""
        coll = self._collection(database, collection, "delete_one")
        with self._deadline(timeout):
            return coll.delete_one(filter, session=session)

    def delete_many(
        self,
        database: str,
        collection: str,
        filter: Document,
        *,
        session: Optional[ClientSession] = None,
        timeout: Optional[float] = None,
    ) -> DeleteResult:
        """Delete every document matching a filter."""
        coll = self._collection(database, collection, "delete_many")
        with self._deadline(timeout):
            return coll.delete_many(filter, session=session)

    # ------------------------------------------------------------------ reads

    def find_one(
        self,
        database: str,
        collection: str,
        filter: Optional[Document] = None,
        *,
        projection: Optional[Document] = None,
        session: Optional[ClientSession] = None,
        timeout: Optional[float] = None,
    ) -> Document:
        """Return the first document matching a filter, or raise ``DocumentNotFoundError``."""
        coll = self._collection(database, collection, "find_one")
        with self._deadline(timeout):
            document = coll.find_one(filter or {}, projection, session=session)
        if document is None:
            raise DocumentNotFoundError(str(Namespace(database, collection)), filter)
        return document

    def find_all(
        self,
        database: str,
        collection: str,
        filter: Optional[Document] = None,
        *,
        projection: Optional[Document] = None,
        sort: Optional[Sequence[Tuple[str, int]]] = None,
        limit: int = 0,
        skip: int = 0,
        session: Optional[ClientSession] = None,
        timeout: Optional[float] = None,
    ) -> List[Document]:
        """
        Return every matching document as a list.

        The whole result set is read into memory. A decode error on any batch
        propagates and the documents read so far are discarded.
        """
        coll = self._collection(database, collection, "find_all")
        with self._deadline(timeout):
            cursor = coll.find(
                filter or {},
                projection,
                sort=sort,
                limit=limit,
                skip=skip,
                session=session,
            )
            with cursor:
                return list(cursor)

    def count(
        self,
        database: str,
        collection: str,
        filter: Optional[Document] = None,
        *,
        session: Optional[ClientSession] = None,
        timeout: Optional[float] = None,
    ) -> int:
        """Count documents matching a filter (server-side)."""
        coll = self._collection(database, collection, "count")
        with self._deadline(timeout):
            return coll.count_documents(filter or {}, session=session)

    def estimated_count(
        self,
        database: str,
        collection: str,
        *,
        timeout: Optional[float] = None,
    ) -> int:
        """Estimate total document count from collection metadata."""
        coll = self._collection(database, collection, "estimated_count")
        with self._deadline(timeout):
            return coll.estimated_document_count()

    def distinct(
        self,
        database: str,
        collection: str,
        field: str,
        filter: Optional[Document] = None,
        *,
        session: Optional[ClientSession] = None,
        timeout: Optional[float] = None,
    ) -> List[Any]:
        """Get distinct values for a field."""
        coll = self._collection(database, collection, "distinct")
        with self._deadline(timeout):
            return coll.distinct(field, filter or {}, session=session)

    def aggregate(
        self,
        database: str,
        collection: str,
        pipeline: List[Document],
        *,
        session: Optional[ClientSession] = None,
        timeout: Optional[float] = None,
    ) -> CommandCursor:
        """
        Run an aggregation pipeline; results are fetched lazily from the returned cursor.

        ``timeout`` bounds only the initial ``aggregate`` command. Batches
        fetched while iterating the cursor run outside it; wrap the iteration
        in ``pymongo.timeout(...)`` to bound those too.
        """
        coll = self._collection(database, collection, "aggregate")
        with self._deadline(timeout):
            return coll.aggregate(pipeline, session=session)

    # ------------------------------------------------------------------ indexes

    def create_index(
        self,
        database: str,
        collection: str,
        keys: IndexKeys,
        *,
        unique: bool = False,
        session: Optional[ClientSession] = None,
        timeout: Optional[float] = None,
        **options: Any,
    ) -> str:
        """Create an index and return its name.

        ``keys`` is a single field name (ascending) or a list of
        ``(field, direction)`` pairs; ``options`` go to the driver as-is.
        """
        coll = self._collection(database, collection, "create_index")
        if unique:
            options["unique"] = True
        with self._deadline(timeout):
            return coll.create_index(keys, session=session, **options)

    def drop_index(
        self,
        database: str,
        collection: str,
        index_name: str,
        *,
        session: Optional[ClientSession] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """Drop an index by name."""
        coll = self._collection(database, collection, "drop_index")
        with self._deadline(timeout):
            coll.drop_index(index_name, session=session)

    def list_indexes(
        self,
        database: str,
        collection: str,
        *,
        session: Optional[ClientSession] = None,
        timeout: Optional[float] = None,
    ) -> List[Document]:
        """List all indexes on a collection."""
        coll = self._collection(database, collection, "list_indexes")
        with self._deadline(timeout):
            return list(coll.list_indexes(session=session))

    # ------------------------------------------------------------------ admin

    def drop_collection(
        self,
        database: str,
        collection: str,
        *,
        session: Optional[ClientSession] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """Drop a collection. There is no confirmation step."""
        coll = self._collection(database, collection, "drop_collection")
        logger.info("Dropping collection %s", Namespace(database, collection))
        with self._deadline(timeout):
            coll.drop(session=session)

    def drop_database(
        self,
        database: str,
        *,
        session: Optional[ClientSession] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """Drop a whole database. There is no confirmation step."""
        client = self._require_open()
        logger.info("Dropping database %s", database)
        with self._deadline(timeout):
            client.drop_database(database, session=session)

    def list_databases(
        self,
        *,
        session: Optional[ClientSession] = None,
        timeout: Optional[float] = None,
    ) -> List[str]:
        """List database names."""
        client = self._require_open()
        with self._deadline(timeout):
            return client.list_database_names(session=session)

    def list_collections(
        self,
        database: str,
        *,
        session: Optional[ClientSession] = None,
        timeout: Optional[float] = None,
    ) -> List[str]:
        """List collection names in a database."""
        client = self._require_open()
        with self._deadline(timeout):
            return client[database].list_collection_names(session=session)

    def ping(self, *, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Check that the server answers."""
        client = self._require_open()
        with self._deadline(timeout):
            return client.admin.command("ping")

    # ------------------------------------------------------------------ transactions

    def run_transaction(
        self,
        callback: Callable[[ClientSession], T],
        *,
        timeout: Optional[float] = None,
    ) -> T:
        """
        Run ``callback(session)`` inside a transaction.

        The transaction commits when the callback returns and aborts when it
        raises. The callback's exception is always the one re-raised; if the
        abort also fails, that error is attached to it as ``abort_error``.
        The session must not be kept after the callback returns.
        """
        client = self._require_open()
        with self._deadline(timeout), client.start_session() as session:
            session.start_transaction()
            try:
                result = callback(session)
            except Exception as exc:
                logger.warning("Transaction callback raised %r, aborting", exc)
                try:
                    session.abort_transaction()
                except PyMongoError as abort_exc:
                    logger.warning("Abort failed after callback error: %s", abort_exc)
                    exc.abort_error = abort_exc
                raise
            session.commit_transaction()
            return result

    # ------------------------------------------------------------------ lifecycle

    def close(self) -> None:
        """Close the connection. Later operations raise ``ClientClosedError``."""
        if self._client is None:
            return
        self._client.close()
        self._client = None
        logger.info("Closed MongoDB connection to %s", self._uri)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def __repr__(self):
        state = "closed" if self.closed else "open"
        return f"DocumentStoreClient(uri='{self._uri}', {state})"
