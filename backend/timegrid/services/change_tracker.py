from __future__ import annotations

from collections.abc import Mapping

from timegrid.schemas.timetable import Cell, Timetable
from timegrid.services.assignment_store import AssignmentStore


def timetable_differs(current: Timetable, baseline: Timetable) -> bool:
    if len(current.slots) != len(baseline.slots):
        return True
    reference = baseline.cells_by_key()
    for cell in current.slots:
        original = reference.get(cell.key)
        if original is None or not cell.same_assignment(original):
            return True
    return False


def diff_cells(current: Timetable, baseline: Timetable | None) -> list[Cell]:
    """Non-break cells of ``current`` that differ from, or are missing in, ``baseline``."""
    reference = baseline.cells_by_key() if baseline is not None else {}
    changed: list[Cell] = []
    for cell in current.teaching_cells():
        original = reference.get(cell.key)
        if original is None or not cell.same_assignment(original):
            changed.append(cell.model_copy())
    return changed


def has_unsaved_changes(timetables: Mapping[str, Timetable], baselines: Mapping[str, Timetable]) -> bool:
    # Subclasses still loading have no baseline and never count as changed.
    for sub_class_id, baseline in baselines.items():
        current = timetables.get(sub_class_id)
        if current is not None and timetable_differs(current, baseline):
            return True
    return False


class ChangeTracker:
    def __init__(self, store: AssignmentStore) -> None:
        self._store = store

    def has_unsaved_changes(self, sub_class_id: str | None = None) -> bool:
        if sub_class_id is None:
            return has_unsaved_changes(self._store.timetables(), self._store.baselines())
        current = self._store.get(sub_class_id)
        baseline = self._store.baseline(sub_class_id)
        if current is None or baseline is None:
            return False
        return timetable_differs(current, baseline)

    def changed_cells(self, sub_class_id: str) -> list[Cell]:
        current = self._store.get(sub_class_id)
        if current is None:
            return []
        return diff_cells(current, self._store.baseline(sub_class_id))

    def modified_sub_class_ids(self) -> list[str]:
        return [
            sub_class_id
            for sub_class_id in self._store.loaded_sub_class_ids()
            if self.has_unsaved_changes(sub_class_id)
        ]
