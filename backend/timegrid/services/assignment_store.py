from __future__ import annotations

from collections.abc import Iterable, Mapping
import logging
from types import MappingProxyType
from typing import Protocol

from pydantic import ValidationError

from timegrid.core.exceptions import ResourceNotFoundError, TimetableError
from timegrid.schemas.catalog import Subject, Teacher
from timegrid.schemas.timetable import AssignedSlot, Cell, Timetable
from timegrid.services.slot_catalog import SlotCatalog

logger = logging.getLogger(__name__)


class AssignmentListener(Protocol):
    def timetable_replaced(self, sub_class_id: str, previous: Timetable | None, current: Timetable) -> None: ...

    def cell_changed(self, sub_class_id: str, before: Cell, after: Cell) -> None: ...


def _clean_id(value: str | None) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class AssignmentStore:
    """Working copy and Baseline timetables, keyed by subclass id.

    Edits are synchronous: listeners see every change before ``set_cell``
    returns.
    """

    def __init__(
        self,
        catalog: SlotCatalog,
        *,
        subjects: Iterable[Subject] = (),
        teachers: Iterable[Teacher] = (),
    ) -> None:
        self._catalog = catalog
        self._current: dict[str, Timetable] = {}
        self._baselines: dict[str, Timetable] = {}
        self._listeners: list[AssignmentListener] = []
        self._subject_names: dict[str, str] = {}
        self._teacher_names: dict[str, str] = {}
        self.set_directory(subjects=subjects, teachers=teachers)

    def set_directory(self, *, subjects: Iterable[Subject] = (), teachers: Iterable[Teacher] = ()) -> None:
        self._subject_names = {subject.id: subject.name for subject in subjects}
        self._teacher_names = {teacher.id: teacher.name for teacher in teachers}

    def subscribe(self, listener: AssignmentListener) -> None:
        self._listeners.append(listener)

    def _build_empty(self, sub_class_id: str) -> Timetable:
        slots = [
            Cell(day=slot.day_of_week, period=slot.name, is_break=slot.is_break)
            for slot in self._catalog.slots
        ]
        return Timetable(sub_class_id=sub_class_id, slots=slots)

    def _replace(self, sub_class_id: str, timetable: Timetable) -> None:
        previous = self._current.get(sub_class_id)
        self._current[sub_class_id] = timetable
        for listener in self._listeners:
            listener.timetable_replaced(sub_class_id, previous, timetable)

    def ensure(self, sub_class_id: str) -> Timetable:
        timetable = self._current.get(sub_class_id)
        if timetable is None:
            timetable = self._build_empty(sub_class_id)
            self._replace(sub_class_id, timetable)
        return timetable

    def merge_assigned(self, sub_class_id: str, assignments: Iterable[AssignedSlot | dict]) -> Timetable:
        by_period_id: dict[str, AssignedSlot] = {}
        for raw in assignments:
            try:
                assignment = raw if isinstance(raw, AssignedSlot) else AssignedSlot.model_validate(raw)
            except ValidationError:
                logger.warning("Dropping malformed assignment for subclass %s: %r", sub_class_id, raw)
                continue
            definition = self._catalog.slot_by_id(assignment.period_id) if assignment.period_id else None
            if definition is None:
                logger.warning(
                    "Dropping assignment for subclass %s: period id %s is not in the weekly grid",
                    sub_class_id,
                    assignment.period_id,
                )
                continue
            if definition.is_break and (assignment.subject_id or assignment.teacher_id):
                logger.warning(
                    "Dropping assignment for subclass %s: period id %s (%s/%s) is a break",
                    sub_class_id,
                    assignment.period_id,
                    definition.day_of_week,
                    definition.name,
                )
                continue
            by_period_id[assignment.period_id] = assignment

        timetable = self._build_empty(sub_class_id)
        for cell in timetable.slots:
            definition = self._catalog.definition_for(cell.day, cell.period)
            if definition is None:
                continue
            assignment = by_period_id.get(definition.id)
            if assignment is None:
                continue
            self._apply(cell, assignment.subject_id, assignment.teacher_id)

        self._replace(sub_class_id, timetable)
        self._baselines[sub_class_id] = timetable.clone()
        return timetable

    def _apply(self, cell: Cell, subject_id: str | None, teacher_id: str | None) -> None:
        cell.subject_id = subject_id
        cell.teacher_id = teacher_id
        cell.subject_name = self._subject_names.get(subject_id) if subject_id else None
        cell.teacher_name = self._teacher_names.get(teacher_id) if teacher_id else None

    def set_cell(
        self,
        sub_class_id: str,
        day: str,
        period: str,
        subject_id: str | None,
        teacher_id: str | None,
    ) -> Cell:
        timetable = self.timetable(sub_class_id)
        cell = timetable.find(day, period)
        if cell is None:
            raise ResourceNotFoundError("Cell", f"{sub_class_id}/{day}/{period}")

        subject_id = _clean_id(subject_id)
        teacher_id = _clean_id(teacher_id)
        if cell.is_break:
            if subject_id or teacher_id:
                raise TimetableError(
                    f"{day} {period} is a break and cannot hold an assignment",
                    details={"subClassId": sub_class_id, "day": day, "period": period},
                )
            return cell

        before = cell.model_copy()
        self._apply(cell, subject_id, teacher_id)
        for listener in self._listeners:
            listener.cell_changed(sub_class_id, before, cell)
        return cell

    def commit_baseline(self, sub_class_id: str, snapshot: Timetable | None = None) -> None:
        source = snapshot if snapshot is not None else self.timetable(sub_class_id)
        self._baselines[sub_class_id] = source.clone()

    def timetable(self, sub_class_id: str) -> Timetable:
        timetable = self._current.get(sub_class_id)
        if timetable is None:
            raise ResourceNotFoundError("Timetable", sub_class_id)
        return timetable

    def get(self, sub_class_id: str) -> Timetable | None:
        return self._current.get(sub_class_id)

    def baseline(self, sub_class_id: str) -> Timetable | None:
        return self._baselines.get(sub_class_id)

    def has_baseline(self, sub_class_id: str) -> bool:
        return sub_class_id in self._baselines

    def timetables(self) -> Mapping[str, Timetable]:
        return MappingProxyType(self._current)

    def baselines(self) -> Mapping[str, Timetable]:
        return MappingProxyType(self._baselines)

    def loaded_sub_class_ids(self) -> list[str]:
        return [sub_class_id for sub_class_id in self._current if sub_class_id in self._baselines]
