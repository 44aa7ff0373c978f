from __future__ import annotations

import logging

from timegrid.core.config import Settings, get_settings
from timegrid.core.exceptions import AppError, CatalogLoadError
from timegrid.schemas.catalog import CatalogBundle, SchoolClass, SubClass, Subject, Teacher
from timegrid.schemas.conflict import ConflictReport
from timegrid.schemas.reconciliation import SaveAllReport, SaveOutcome
from timegrid.schemas.timetable import Cell, Timetable
from timegrid.services.assignment_store import AssignmentStore
from timegrid.services.change_tracker import ChangeTracker
from timegrid.services.conflict_service import ConflictDetector
from timegrid.services.gateway import TimetableGateway
from timegrid.services.reconciliation import ReconciliationSaver
from timegrid.services.slot_catalog import SlotCatalog

logger = logging.getLogger(__name__)


class TimetableSession:
    """One operator's view of the school timetable.

    Built once per session and handed to whatever drives the UI. Owns the
    catalog, the working/baseline timetables, the conflict index and the
    saver; all of them share the same gateway.
    """

    def __init__(self, gateway: TimetableGateway, *, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self.gateway = gateway
        self.catalog = SlotCatalog(day_order=self._settings.day_order)
        self.store = AssignmentStore(self.catalog)
        self.detector = ConflictDetector()
        self.store.subscribe(self.detector)
        self.tracker = ChangeTracker(self.store)
        self.saver = ReconciliationSaver(self.store, self.catalog, gateway)

        self.classes: list[SchoolClass] = []
        self.sub_classes: list[SubClass] = []
        self.subjects: list[Subject] = []
        self.teachers: list[Teacher] = []
        self.error: str | None = None

    async def __aenter__(self) -> TimetableSession:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.gateway.aclose()

    async def bootstrap(self) -> CatalogBundle:
        self.error = None
        try:
            bundle = await self.gateway.fetch_catalogs()
        except CatalogLoadError as exc:
            logger.error("Failed to fetch initial timetable data (%s): %s", exc.entity, exc.message)
            self.error = exc.message
            self.classes, self.sub_classes, self.subjects, self.teachers = [], [], [], []
            self.catalog.load([])
            self.store.set_directory()
            raise

        self.classes = bundle.classes
        self.sub_classes = bundle.sub_classes
        self.subjects = bundle.subjects
        self.teachers = bundle.teachers
        self.catalog.load(bundle.periods)
        self.store.set_directory(subjects=bundle.subjects, teachers=bundle.teachers)
        return bundle

    async def load_subclass(self, sub_class_id: str) -> Timetable:
        self.error = None
        # The empty grid is available to render while the assignments load.
        self.store.ensure(sub_class_id)
        try:
            assigned = await self.gateway.fetch_assigned_slots(sub_class_id)
        except AppError as exc:
            logger.error("Failed to fetch timetable for %s: %s", sub_class_id, exc.message)
            self.error = exc.message
            raise

        if self.tracker.has_unsaved_changes(sub_class_id):
            logger.warning("Reloading subclass %s discards its unsaved edits", sub_class_id)
        return self.store.merge_assigned(sub_class_id, assigned)

    def set_cell(
        self,
        sub_class_id: str,
        day: str,
        period: str,
        subject_id: str | None,
        teacher_id: str | None,
    ) -> Cell:
        return self.store.set_cell(sub_class_id, day, period, subject_id, teacher_id)

    def assign(
        self,
        sub_class_id: str,
        day: str,
        period: str,
        subject_id: str | None,
        teacher_id: str | None,
    ) -> str | None:
        """Apply the edit and return the name of a subclass already holding the teacher, if any.

        The warning is advisory; the edit is applied either way.
        """
        busy_in = None
        if teacher_id:
            busy_in = self.teacher_busy_elsewhere(teacher_id, day, period, sub_class_id)
            if busy_in is not None:
                logger.info("Teacher %s is already assigned to %s on %s %s", teacher_id, busy_in, day, period)
        self.set_cell(sub_class_id, day, period, subject_id, teacher_id)
        return busy_in

    def sub_class_name(self, sub_class_id: str) -> str:
        for sub_class in self.sub_classes:
            if sub_class.id == sub_class_id:
                return sub_class.name
        return sub_class_id

    def teacher_busy_elsewhere(self, teacher_id: str, day: str, period: str, excluding_sub_class_id: str) -> str | None:
        other = self.detector.is_teacher_busy_elsewhere(teacher_id, day, period, excluding_sub_class_id)
        return self.sub_class_name(other) if other is not None else None

    def teachers_for_subject(self, subject_id: str) -> list[Teacher]:
        return [teacher for teacher in self.teachers if teacher.teaches(subject_id)]

    def has_conflict(self, day: str, period: str, teacher_id: str | None) -> bool:
        return self.detector.has_conflict(day, period, teacher_id)

    def conflict_report(self) -> ConflictReport:
        return self.detector.report({teacher.id: teacher.name for teacher in self.teachers})

    def sub_classes_with_conflicts(self) -> list[SubClass]:
        conflicted = self.detector.conflicted_sub_class_ids()
        return [sub_class for sub_class in self.sub_classes if sub_class.id in conflicted]

    def has_unsaved_changes(self, sub_class_id: str | None = None) -> bool:
        return self.tracker.has_unsaved_changes(sub_class_id)

    def changed_cells(self, sub_class_id: str) -> list[Cell]:
        return self.tracker.changed_cells(sub_class_id)

    def unique_period_names(self) -> list[str]:
        return self.catalog.unique_period_names()

    def weekdays(self) -> list[str]:
        return self.catalog.weekdays()

    async def save_one(self, sub_class_id: str) -> SaveOutcome:
        outcome = await self.saver.save_one(sub_class_id)
        self.error = outcome.reason if outcome.status == "failed" else None
        return outcome

    async def save_all(self) -> SaveAllReport:
        report = await self.saver.save_all()
        self.error = None if report.status in ("success", "nothing_to_save") else report.message
        return report
