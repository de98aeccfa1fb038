"""
Scan Workflow State Machine

Sequences the three application phases and owns the data handed
between them:

    SCANNING ──capture ok──▶ REVIEWING ──confirm──▶ DASHBOARD
        ▲  │                    │
        │  └─capture fails─┐    │
        └──────────────────┴────┘ discard

On start the workflow resumes into DASHBOARD if a collection exists.

DESIGN DECISION: The workflow is the only owner of the current phase and
the draft. Nothing else reads or writes them.

FAILURE POLICY: Collaborator failures (capture, extraction, persistence, export)
never escape as exceptions. They come back as a StepOutcome with
success=False and a user-facing message, and the machine stays in a safe
phase. Calling an operation from the wrong phase IS raised: that is a
programming error, not a user-facing failure.

CRITICAL: A failed commit keeps the draft. Losing the reviewer's
corrections is the worst thing this system can do.
"""

import asyncio
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ValidationError

from invoicescanner.audit import AuditLogger, create_correlation_id
from invoicescanner.config import get_settings
from invoicescanner.export import export_csv, write_export
from invoicescanner.models.audit import AuditEventBuilder
from invoicescanner.models.document import (
    CollectionSummary,
    CommittedDocument,
    DocumentDraft,
    DocumentVariant,
    ValidationResult,
)
from invoicescanner.reconciliation import check_document, summarize
from invoicescanner.services.capture import (
    CaptureDevice,
    EncodedImage,
    FileImageSource,
    capture_session,
)
from invoicescanner.services.extraction import (
    ExtractionServiceInterface,
    GeminiExtractionService,
)
from invoicescanner.services.storage import (
    CollectionStore,
    IncompleteDraftError,
    LocalKeyValueStore,
    StorageError,
)


class AppPhase(str, Enum):
    """The three phases of the application."""
    SCANNING = "scanning"
    REVIEWING = "reviewing"
    DASHBOARD = "dashboard"


class WorkflowError(Exception):
    """Base exception for workflow misuse."""
    pass


class InvalidTransitionError(WorkflowError):
    """Operation not allowed in the current phase."""

    def __init__(self, operation: str, phase: AppPhase):
        self.operation = operation
        self.phase = phase
        super().__init__(f"Cannot {operation} while {phase.value}")


class CaptureInProgressError(WorkflowError):
    """A capture or extraction is already pending."""
    pass


class DraftFieldError(WorkflowError):
    """An edit carried a value the draft cannot hold."""

    def __init__(self, fields: list[str], message: str):
        self.fields = fields
        super().__init__(message)


class StepOutcome(BaseModel):
    """Result of a user-facing workflow step."""

    success: bool
    phase: AppPhase = Field(
        ...,
        description="Phase the workflow is in after the step"
    )
    message: str = Field(
        ...,
        description="What to tell the user"
    )
    record: Optional[CommittedDocument] = None
    validation: Optional[ValidationResult] = None
    missing_fields: list[str] = Field(default_factory=list)
    export_path: Optional[Path] = None


class ScanWorkflow:
    """
    Drives capture → review → commit for one document variant.

    Usage:
        workflow = ScanWorkflow(store, extractor)
        await workflow.start()
        outcome = await workflow.scan_from_file(path)
        workflow.edit_draft(total_amount="120.00")
        outcome = await workflow.confirm()
    """

    def __init__(
        self,
        store: CollectionStore,
        extractor: ExtractionServiceInterface,
        audit_logger: Optional[AuditLogger] = None,
        extraction_timeout: Optional[float] = None,
        max_image_width: Optional[int] = None,
        jpeg_quality: Optional[int] = None,
    ):
        app_settings = get_settings().app
        self._store = store
        self._extractor = extractor
        self._audit_logger = audit_logger or AuditLogger()
        self._extraction_timeout = extraction_timeout or app_settings.extraction_timeout_seconds
        self._max_image_width = max_image_width or app_settings.max_image_width
        self._jpeg_quality = jpeg_quality or app_settings.jpeg_quality
        self._export_dir = app_settings.export_dir

        self._phase = AppPhase.SCANNING
        self._draft: Optional[DocumentDraft] = None
        self._validation: Optional[ValidationResult] = None
        self._correlation_id: Optional[UUID] = None
        self._processing = False

    # -------------------------------------------------------------------------
    # State accessors
    # -------------------------------------------------------------------------

    @property
    def phase(self) -> AppPhase:
        return self._phase

    @property
    def variant(self) -> DocumentVariant:
        return self._store.variant

    @property
    def draft(self) -> Optional[DocumentDraft]:
        """The draft under review, or None outside REVIEWING."""
        return self._draft

    @property
    def validation(self) -> Optional[ValidationResult]:
        """Consistency result for the current draft."""
        return self._validation

    @property
    def is_processing(self) -> bool:
        """True while a capture or extraction is pending."""
        return self._processing

    @property
    def records(self) -> list[CommittedDocument]:
        return self._store.records

    def summary(self) -> CollectionSummary:
        return self._store.summary()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _require(self, operation: str, *phases: AppPhase) -> None:
        if self._phase not in phases:
            raise InvalidTransitionError(operation, self._phase)

    @contextmanager
    def _busy(self) -> Iterator[None]:
        """Blocking 'processing' sub-state of SCANNING."""
        if self._processing:
            raise CaptureInProgressError("A scan is already being processed")
        self._processing = True
        try:
            yield
        finally:
            self._processing = False

    def _scan_failed(self, message: str) -> StepOutcome:
        return StepOutcome(success=False, phase=self._phase, message=message)

    async def _extract(self, image: EncodedImage, correlation_id: UUID) -> StepOutcome:
        try:
            draft = await asyncio.wait_for(
                self._extractor.extract(image, self.variant),
                timeout=self._extraction_timeout,
            )
        except asyncio.TimeoutError:
            self._audit_logger.log(AuditEventBuilder.extraction_failed(
                error_message=f"Timed out after {self._extraction_timeout}s",
                correlation_id=correlation_id,
            ))
            return self._scan_failed(
                "Reading the document took too long. Please try again."
            )
        except Exception as e:
            # Any collaborator failure returns to SCANNING; the image is dropped
            self._audit_logger.log(AuditEventBuilder.extraction_failed(
                error_message=str(e),
                correlation_id=correlation_id,
            ))
            return self._scan_failed(
                "Could not read the document. Please try a clearer photo."
            )

        if draft.variant != self.variant:
            self._audit_logger.log(AuditEventBuilder.extraction_failed(
                error_message=f"Expected {self.variant.value}, got {draft.variant.value}",
                correlation_id=correlation_id,
            ))
            return self._scan_failed("The document was read as the wrong type.")

        self._audit_logger.log(AuditEventBuilder.extraction_completed(
            variant=self.variant.value,
            missing_fields=draft.missing_fields(),
            correlation_id=correlation_id,
        ))
        return self._enter_review(draft, correlation_id)

    def _enter_review(self, draft: DocumentDraft, correlation_id: UUID) -> StepOutcome:
        self._draft = draft
        self._validation = check_document(draft)
        self._correlation_id = correlation_id
        self._phase = AppPhase.REVIEWING

        self._audit_logger.log(AuditEventBuilder.review_started(
            variant=self.variant.value,
            is_consistent=self._validation.is_consistent,
            deviation_percent=str(self._validation.deviation_percent),
            correlation_id=correlation_id,
        ))
        return StepOutcome(
            success=True,
            phase=self._phase,
            message=summarize(self._validation),
            validation=self._validation,
            missing_fields=draft.missing_fields(),
        )

    def _leave_review(self, phase: AppPhase) -> None:
        self._draft = None
        self._validation = None
        self._correlation_id = None
        self._phase = phase

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> AppPhase:
        """
        Load the collection and pick the initial phase.

        Resumes into DASHBOARD when records exist, otherwise SCANNING.
        """
        records = await self._store.load()
        self._phase = AppPhase.DASHBOARD if records else AppPhase.SCANNING
        return self._phase

    # -------------------------------------------------------------------------
    # SCANNING
    # -------------------------------------------------------------------------

    async def submit_image(self, image: EncodedImage) -> StepOutcome:
        """
        Send a captured image for extraction.

        Raises:
            CaptureInProgressError: If another scan is still pending.
        """
        self._require("submit an image", AppPhase.SCANNING)
        with self._busy():
            return await self._extract(image, create_correlation_id())

    async def scan_from_device(self, device: CaptureDevice) -> StepOutcome:
        """
        Capture one frame from a device and extract it.

        The device is released before extraction starts, whatever happens.
        """
        self._require("scan from a device", AppPhase.SCANNING)
        with self._busy():
            correlation_id = create_correlation_id()
            try:
                async with capture_session(device) as session:
                    image = await session.capture()
            except Exception as e:
                # Any device or driver failure falls back to file selection
                self._audit_logger.log(AuditEventBuilder.capture_failed(
                    error_message=str(e),
                    correlation_id=correlation_id,
                ))
                return self._scan_failed(
                    "Camera is not available. Please select an image file instead."
                )
            return await self._extract(image, correlation_id)

    async def scan_from_file(self, path: Path) -> StepOutcome:
        """Encode a selected image file and extract it."""
        self._require("scan from a file", AppPhase.SCANNING)
        with self._busy():
            correlation_id = create_correlation_id()
            source = FileImageSource(
                path,
                max_width=self._max_image_width,
                jpeg_quality=self._jpeg_quality,
            )
            try:
                image = await source.read()
            except Exception as e:
                self._audit_logger.log(AuditEventBuilder.capture_failed(
                    error_message=str(e),
                    correlation_id=correlation_id,
                ))
                return self._scan_failed("That file could not be opened as an image.")
            return await self._extract(image, correlation_id)

    def open_dashboard(self) -> AppPhase:
        """Navigate from the scanner to the dashboard."""
        self._require("open the dashboard", AppPhase.SCANNING)
        if self._processing:
            raise CaptureInProgressError("Wait for the current scan to finish")
        self._phase = AppPhase.DASHBOARD
        return self._phase

    # -------------------------------------------------------------------------
    # REVIEWING
    # -------------------------------------------------------------------------

    def edit_draft(self, **changes) -> ValidationResult:
        """
        Apply reviewer edits and re-run the consistency check.

        Raises:
            DraftFieldError: If a value is invalid. The draft is unchanged.
        """
        self._require("edit the draft", AppPhase.REVIEWING)
        try:
            draft = self._draft.with_changes(**changes)
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            raise DraftFieldError(fields, f"Invalid value for: {', '.join(fields)}") from e

        self._draft = draft
        self._validation = check_document(draft)
        self._audit_logger.log(AuditEventBuilder.draft_edited(
            fields=sorted(changes),
            is_consistent=self._validation.is_consistent,
            correlation_id=self._correlation_id,
        ))
        return self._validation

    def discard(self) -> StepOutcome:
        """Drop the draft without saving and go back to scanning."""
        self._require("discard the draft", AppPhase.REVIEWING)
        self._audit_logger.log(AuditEventBuilder.draft_discarded(self._correlation_id))
        self._leave_review(AppPhase.SCANNING)
        return StepOutcome(
            success=True,
            phase=self._phase,
            message="Scan discarded.",
        )

    async def confirm(self) -> StepOutcome:
        """
        Commit the draft to the collection.

        A consistency mismatch does not block this. Missing required
        fields or a failed save do, and in both cases the draft is kept
        so the user can fix it or retry.
        """
        self._require("confirm the draft", AppPhase.REVIEWING)
        validation = self._validation

        try:
            record = await self._store.commit(self._draft)
        except IncompleteDraftError as e:
            self._audit_logger.log(AuditEventBuilder.commit_failed(
                error_message=str(e),
                correlation_id=self._correlation_id,
                missing_fields=e.missing_fields,
            ))
            return StepOutcome(
                success=False,
                phase=self._phase,
                message=str(e),
                validation=validation,
                missing_fields=e.missing_fields,
            )
        except StorageError as e:
            self._audit_logger.log(AuditEventBuilder.commit_failed(
                error_message=str(e),
                correlation_id=self._correlation_id,
            ))
            return StepOutcome(
                success=False,
                phase=self._phase,
                message="Could not save. Your corrections are kept; please try again.",
                validation=validation,
            )

        self._audit_logger.log(AuditEventBuilder.record_committed(
            record_id=record.id,
            variant=self.variant.value,
            is_consistent=validation.is_consistent if validation else False,
            correlation_id=self._correlation_id,
        ))
        self._leave_review(AppPhase.DASHBOARD)
        return StepOutcome(
            success=True,
            phase=self._phase,
            message="Saved.",
            record=record,
            validation=validation,
        )

    # -------------------------------------------------------------------------
    # DASHBOARD
    # -------------------------------------------------------------------------

    def open_scanner(self) -> AppPhase:
        """Navigate from the dashboard to the scanner."""
        self._require("open the scanner", AppPhase.DASHBOARD)
        self._phase = AppPhase.SCANNING
        return self._phase

    def export_csv(self) -> Optional[str]:
        """CSV text of the collection, or None if it is empty."""
        return export_csv(self._store.records, self.variant)

    def write_export(self, directory: Optional[Path] = None) -> StepOutcome:
        """
        Write a dated CSV file of the collection.

        The written path is on the outcome; it is None when there was
        nothing to export.
        """
        records = self._store.records
        try:
            path = write_export(records, self.variant, directory or self._export_dir)
        except OSError as e:
            self._audit_logger.log(AuditEventBuilder.export_failed(
                storage_key=self._store.storage_key,
                error_message=str(e),
            ))
            return StepOutcome(
                success=False,
                phase=self._phase,
                message="Could not write the export file.",
            )

        if path is None:
            return StepOutcome(
                success=True,
                phase=self._phase,
                message="Nothing to export yet.",
            )

        self._audit_logger.log(AuditEventBuilder.collection_exported(
            storage_key=self._store.storage_key,
            record_count=len(records),
            path=str(path),
        ))
        return StepOutcome(
            success=True,
            phase=self._phase,
            message=f"Exported {len(records)} records to {path.name}.",
            export_path=path,
        )

    async def clear_collection(self) -> StepOutcome:
        """Remove every committed record. A draft under review is untouched."""
        try:
            await self._store.clear()
        except StorageError as e:
            self._audit_logger.log(AuditEventBuilder.clear_failed(
                storage_key=self._store.storage_key,
                error_message=str(e),
            ))
            return StepOutcome(
                success=False,
                phase=self._phase,
                message="Could not clear the saved records.",
            )
        return StepOutcome(
            success=True,
            phase=self._phase,
            message="All saved records were removed.",
        )


def create_workflow(
    extractor: Optional[ExtractionServiceInterface] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> ScanWorkflow:
    """
    Factory function to build a workflow from settings.

    The document variant and storage directory come from AppSettings;
    the extractor defaults to Gemini.

    Args:
        extractor: Extraction service to use instead of Gemini.
        audit_logger: Shared audit logger. A local one is created if None.
    """
    app_settings = get_settings().app
    audit_logger = audit_logger or AuditLogger()

    store = CollectionStore(
        LocalKeyValueStore(app_settings.storage_dir),
        app_settings.document_variant,
        audit_logger,
    )
    return ScanWorkflow(
        store,
        extractor or GeminiExtractionService(),
        audit_logger,
    )
