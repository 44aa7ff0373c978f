from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from timegrid.core.exceptions import AppError
from timegrid.schemas.reconciliation import SaveAllReport, SaveOutcome
from timegrid.schemas.timetable import (
    BulkUpdatePayload,
    BulkUpdateResponse,
    BulkUpdateSlot,
    Cell,
    wire_id,
)
from timegrid.services.assignment_store import AssignmentStore
from timegrid.services.change_tracker import diff_cells
from timegrid.services.slot_catalog import SlotCatalog

logger = logging.getLogger(__name__)


class BulkUpdater(Protocol):
    async def bulk_update(self, payload: BulkUpdatePayload) -> BulkUpdateResponse: ...


class ReconciliationSaver:
    """Persists only the changed, non-break cells of each subclass.

    Baselines advance per subclass and only after the backend accepts that
    subclass's payload; a failure leaves the diff in place for the next try.
    """

    def __init__(self, store: AssignmentStore, catalog: SlotCatalog, gateway: BulkUpdater) -> None:
        self._store = store
        self._catalog = catalog
        self._gateway = gateway

    def build_payload(self, sub_class_id: str, cells: list[Cell]) -> tuple[BulkUpdatePayload, list[Cell]]:
        slots: list[BulkUpdateSlot] = []
        dropped: list[Cell] = []
        for cell in cells:
            definition = self._catalog.definition_for(cell.day, cell.period)
            if definition is None:
                dropped.append(cell)
                continue
            slots.append(
                BulkUpdateSlot(
                    period_id=wire_id(definition.id),
                    subject_id=wire_id(cell.subject_id),
                    teacher_id=wire_id(cell.teacher_id),
                )
            )
        if dropped:
            logger.warning(
                "Could not map %d changed cell(s) of subclass %s to a period id; left out of the save: %s",
                len(dropped),
                sub_class_id,
                ", ".join(f"{cell.day}/{cell.period}" for cell in dropped),
            )
        return BulkUpdatePayload(sub_class_id=wire_id(sub_class_id), slots=slots), dropped

    def _failed(self, sub_class_id: str, reason: str, **extra) -> SaveOutcome:
        logger.error("Failed to save timetable for subclass %s: %s", sub_class_id, reason)
        return SaveOutcome(sub_class_id=sub_class_id, status="failed", reason=reason, **extra)

    async def save_one(self, sub_class_id: str) -> SaveOutcome:
        current = self._store.get(sub_class_id)
        if current is None:
            return self._failed(sub_class_id, "No timetable data loaded for this subclass to save.")
        baseline = self._store.baseline(sub_class_id)
        if baseline is None:
            return self._failed(sub_class_id, "Cannot determine changes to save.")

        # Edits made while the request is in flight must stay unsaved.
        snapshot = current.clone()
        changed = diff_cells(snapshot, baseline)
        if not changed:
            return SaveOutcome(sub_class_id=sub_class_id, status="unchanged", message="No changes detected to save.")

        payload, dropped = self.build_payload(sub_class_id, changed)
        if not payload.slots:
            return self._failed(
                sub_class_id,
                "Internal error: Could not map period names to IDs for saving.",
                dropped_cells=dropped,
            )

        logger.debug("Saving %d changed slot(s) for subclass %s", len(payload.slots), sub_class_id)
        try:
            response = await self._gateway.bulk_update(payload)
        except AppError as exc:
            return self._failed(sub_class_id, exc.message, dropped_cells=dropped)

        if not response.success:
            if response.errors:
                logger.error("Detailed save errors for subclass %s: %s", sub_class_id, response.errors)
            return self._failed(sub_class_id, response.failure_reason(), dropped_cells=dropped)

        self._store.commit_baseline(sub_class_id, snapshot)
        return SaveOutcome(
            sub_class_id=sub_class_id,
            status="saved",
            message=response.message or "Timetable saved successfully!",
            sent_cells=len(payload.slots),
            dropped_cells=dropped,
        )

    async def save_all(self) -> SaveAllReport:
        sub_class_ids = self._store.loaded_sub_class_ids()
        results = await asyncio.gather(
            *(self.save_one(sub_class_id) for sub_class_id in sub_class_ids),
            return_exceptions=True,
        )

        outcomes: list[SaveOutcome] = []
        for sub_class_id, result in zip(sub_class_ids, results):
            if isinstance(result, Exception):
                logger.exception("Unexpected error saving subclass %s", sub_class_id, exc_info=result)
                outcomes.append(
                    SaveOutcome(sub_class_id=sub_class_id, status="failed", reason=str(result) or type(result).__name__)
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append(result)

        report = SaveAllReport.from_outcomes(outcomes)
        logger.info("Save all finished with %s: %s", report.status, report.message)
        return report
