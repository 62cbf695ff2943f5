"""Per-item reporting for bulk inserts."""

from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from .errors import BulkWriteFailure

NOT_ATTEMPTED = {"code": None, "errmsg": "not attempted after an earlier failure"}


class BulkItemResult:
    """Outcome of one document in a bulk insert."""

    def __init__(self, index: int, inserted_id: Any = None, error: Optional[dict] = None):
        self.index = index
        self.inserted_id = inserted_id
        self.error = error

    @property
    def ok(self) -> bool:
        return self.error is None

    def __eq__(self, other):
        if not isinstance(other, BulkItemResult):
            return NotImplemented
        return (self.index, self.inserted_id, self.error) == (
            other.index,
            other.inserted_id,
            other.error,
        )

    def __repr__(self):
        if self.ok:
            return f"BulkItemResult(index={self.index}, inserted_id={self.inserted_id!r})"
        return f"BulkItemResult(index={self.index}, error={self.error!r})"


class BulkWriteReport:
    """
    Result of an insert_many operation, one entry per input document.

    Write concern errors are not tied to a single document, so they are kept
    apart in ``write_concern_errors``. Items listed as inserted were written
    on the primary but may not have reached the requested write concern.
    """

    def __init__(
        self,
        items: List[BulkItemResult],
        acknowledged: bool = True,
        write_concern_errors: Optional[List[dict]] = None,
    ):
        self.acknowledged = acknowledged
        self.items = items
        self.write_concern_errors = write_concern_errors or []

    @classmethod
    def from_success(cls, inserted_ids: List[Any], acknowledged: bool = True) -> "BulkWriteReport":
        items = [BulkItemResult(i, inserted_id) for i, inserted_id in enumerate(inserted_ids)]
        return cls(items, acknowledged)

    @classmethod
    def from_error(cls, documents: Sequence[Mapping[str, Any]], details: Dict[str, Any],
                   ordered: bool) -> "BulkWriteReport":
        """Build a report from ``BulkWriteError.details``.

        PyMongo assigns ``_id`` client-side before sending, so successful
        items are read back from the documents themselves. An ordered insert
        stops at its first error; later items are reported as not attempted.
        """
        errors = {
            err["index"]: {"code": err.get("code"), "errmsg": err.get("errmsg", "")}
            for err in details.get("writeErrors", [])
        }
        stop_at = min(errors) if ordered and errors else None

        items = []
        for i, doc in enumerate(documents):
            if i in errors:
                items.append(BulkItemResult(i, error=errors[i]))
            elif stop_at is not None and i > stop_at:
                items.append(BulkItemResult(i, error=dict(NOT_ATTEMPTED)))
            else:
                items.append(BulkItemResult(i, doc.get("_id")))

        write_concern_errors = [
            {"code": err.get("code"), "errmsg": err.get("errmsg", "")}
            for err in details.get("writeConcernErrors", [])
        ]
        return cls(items, write_concern_errors=write_concern_errors)

    @property
    def inserted_ids(self) -> List[Any]:
        return [item.inserted_id for item in self.items if item.ok]

    @property
    def inserted_count(self) -> int:
        return len(self.inserted_ids)

    @property
    def failed(self) -> List[BulkItemResult]:
        return [item for item in self.items if not item.ok]

    @property
    def has_errors(self) -> bool:
        return bool(self.failed or self.write_concern_errors)

    def raise_for_errors(self) -> None:
        if self.has_errors:
            raise BulkWriteFailure(self)

    def __iter__(self) -> Iterator[BulkItemResult]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __repr__(self):
        return (
            f"BulkWriteReport(inserted={self.inserted_count}, failed={len(self.failed)}, "
            f"write_concern_errors={len(self.write_concern_errors)})"
        )
