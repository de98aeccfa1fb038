"""
Collection Store

Durable, versioned storage of committed records, newest first.

SCHEMA VERSIONING: Each variant's collection lives under a storage key
carrying a version tag. Changing a record shape means bumping the key;
data under the old key is left untouched and never read as the new shape.
There is no migration.

PERSISTENCE ORDER: On commit the full new collection is serialized and
written in one `set` call. The in-memory collection is only updated after
that write succeeds, so a failed write leaves both the stored and the
in-memory collection exactly as they were.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional
from uuid import uuid4

from pydantic import TypeAdapter, ValidationError

from invoicescanner.audit import AuditLogger
from invoicescanner.models.audit import AuditEventBuilder
from invoicescanner.models.document import (
    COMMITTED_MODELS,
    CollectionSummary,
    CommittedDocument,
    DocumentDraft,
    DocumentVariant,
)
from invoicescanner.services.storage.interface import (
    IncompleteDraftError,
    KeyValueStoreInterface,
    PersistDecodeFailedError,
    StorageError,
)


# Bump the version suffix whenever the committed shape of a variant changes
STORAGE_KEYS: dict[DocumentVariant, str] = {
    DocumentVariant.INVOICE: "invoicescanner_data_v2",
    DocumentVariant.UTILITY_BILL: "meterbill_data_v1",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_record_id() -> str:
    # uuid4 draws from os.urandom
    return str(uuid4())


class CollectionStore:
    """
    The committed collection for one document variant.

    Usage:
        store = CollectionStore(LocalKeyValueStore(path), DocumentVariant.INVOICE)
        await store.load()
        record = await store.commit(draft)
    """

    def __init__(
        self,
        backend: KeyValueStoreInterface,
        variant: DocumentVariant,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_record_id,
    ):
        self._backend = backend
        self._variant = variant
        self._audit_logger = audit_logger or AuditLogger()
        self._clock = clock
        self._id_factory = id_factory
        self._records: list[CommittedDocument] = []
        self._adapter = TypeAdapter(list[COMMITTED_MODELS[variant]])

    @property
    def variant(self) -> DocumentVariant:
        return self._variant

    @property
    def storage_key(self) -> str:
        return STORAGE_KEYS[self._variant]

    @property
    def records(self) -> list[CommittedDocument]:
        """Committed records, newest first. A copy: callers can't reorder the store."""
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def _decode(self, payload: str) -> list[CommittedDocument]:
        """
        Parse a stored payload as the current record shape.

        Raises:
            PersistDecodeFailedError: If the payload is not a JSON array of
                records matching this variant's committed model.
        """
        try:
            return self._adapter.validate_json(payload)
        except ValidationError as e:
            raise PersistDecodeFailedError(
                self.storage_key,
                f"Stored collection does not match the current shape: "
                f"{e.error_count()} errors",
            ) from e

    def _encode(self, records: list[CommittedDocument]) -> str:
        return json.dumps(
            [record.model_dump(mode="json") for record in records],
            ensure_ascii=False,
        )

    async def load(self) -> list[CommittedDocument]:
        """
        Load the collection from the backend.

        Never raises for unreadable data: a missing key, a corrupt payload
        or a backend read error all yield an empty collection plus a
        logged diagnostic.
        """
        try:
            payload = await self._backend.get(self.storage_key)
            records = self._decode(payload) if payload is not None else []
        except (PersistDecodeFailedError, StorageError) as e:
            self._audit_logger.log(AuditEventBuilder.collection_load_failed(
                storage_key=self.storage_key,
                error_message=str(e),
            ))
            records = []

        self._records = records
        self._audit_logger.log(AuditEventBuilder.collection_loaded(
            storage_key=self.storage_key,
            record_count=len(records),
        ))
        return self.records

    def _next_scanned_at(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        if self._records and now < self._records[0].scanned_at:
            # Clock went backwards; keep insertion order non-decreasing
            return self._records[0].scanned_at
        return now

    def _next_id(self) -> str:
        taken = {record.id for record in self._records}
        record_id = self._id_factory()
        while record_id in taken:
            record_id = self._id_factory()
        return record_id

    async def commit(self, draft: DocumentDraft) -> CommittedDocument:
        """
        Freeze a draft into the collection and persist the collection.

        Equal drafts committed twice become two distinct records.

        Raises:
            IncompleteDraftError: If required fields are missing.
            PersistWriteFailedError: If the collection could not be saved.
                The in-memory collection is left unchanged.
        """
        if draft.variant != self._variant:
            raise ValueError(
                f"Cannot commit a {draft.variant.value} draft "
                f"into the {self._variant.value} collection"
            )

        missing = draft.missing_fields()
        if missing:
            raise IncompleteDraftError(missing)

        try:
            record = draft.to_committed(
                record_id=self._next_id(),
                scanned_at=self._next_scanned_at(),
            )
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            raise IncompleteDraftError(
                fields,
                f"Cannot save yet, invalid: {', '.join(fields)}",
            ) from e

        updated = [record, *self._records]
        await self._backend.set(self.storage_key, self._encode(updated))
        self._records = updated
        return record

    async def clear(self) -> None:
        """Remove the whole collection, in storage and in memory."""
        await self._backend.delete(self.storage_key)
        self._records = []
        self._audit_logger.log(AuditEventBuilder.collection_cleared(self.storage_key))

    def summary(self) -> CollectionSummary:
        """Record count and summed totals, as shown on the dashboard."""
        return CollectionSummary(
            variant=self._variant,
            record_count=len(self._records),
            total_value=sum(
                (record.total_amount for record in self._records),
                Decimal("0"),
            ),
        )
