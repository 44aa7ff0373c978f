from collections import defaultdict
from typing import Dict, List, Mapping, Optional, Set, Tuple

from timegrid.schemas.conflict import ConflictReport, TeacherConflict
from timegrid.schemas.timetable import Cell, Timetable

ConflictKey = Tuple[str, str, str]  # (day, period, teacher_id)


def _contributes(cell: Cell) -> bool:
    return not cell.is_break and bool(cell.teacher_id)


class ConflictDetector:
    """Index of which subclasses hold each teacher at each day/period.

    Kept current from AssignmentStore events; ``recompute_conflicts`` rebuilds
    it from scratch and yields the same index.
    """

    def __init__(self) -> None:
        self._index: Dict[ConflictKey, Set[str]] = defaultdict(set)

    def recompute_conflicts(self, timetables: Mapping[str, Timetable]) -> None:
        self._index = defaultdict(set)
        for sub_class_id, timetable in timetables.items():
            self._add_timetable(sub_class_id, timetable)

    def _add(self, sub_class_id: str, cell: Cell) -> None:
        if _contributes(cell):
            self._index[(cell.day, cell.period, cell.teacher_id)].add(sub_class_id)

    def _discard(self, sub_class_id: str, cell: Cell) -> None:
        if not _contributes(cell):
            return
        key = (cell.day, cell.period, cell.teacher_id)
        holders = self._index.get(key)
        if holders is None:
            return
        holders.discard(sub_class_id)
        if not holders:
            del self._index[key]

    def _add_timetable(self, sub_class_id: str, timetable: Timetable) -> None:
        for cell in timetable.slots:
            self._add(sub_class_id, cell)

    # AssignmentStore listener hooks
    def timetable_replaced(self, sub_class_id: str, previous: Optional[Timetable], current: Timetable) -> None:
        if previous is not None:
            for cell in previous.slots:
                self._discard(sub_class_id, cell)
        self._add_timetable(sub_class_id, current)

    def cell_changed(self, sub_class_id: str, before: Cell, after: Cell) -> None:
        self._discard(sub_class_id, before)
        self._add(sub_class_id, after)

    def subclasses_for(self, day: str, period: str, teacher_id: Optional[str]) -> Set[str]:
        if not teacher_id:
            return set()
        return set(self._index.get((day, period, teacher_id), ()))

    def has_conflict(self, day: str, period: str, teacher_id: Optional[str]) -> bool:
        return len(self.subclasses_for(day, period, teacher_id)) > 1

    def is_teacher_busy_elsewhere(
        self,
        teacher_id: str,
        day: str,
        period: str,
        excluding_sub_class_id: str,
    ) -> Optional[str]:
        others = self.subclasses_for(day, period, teacher_id) - {excluding_sub_class_id}
        if not others:
            return None
        return sorted(others)[0]

    def conflicted_sub_class_ids(self) -> Set[str]:
        conflicted: Set[str] = set()
        for holders in self._index.values():
            if len(holders) > 1:
                conflicted.update(holders)
        return conflicted

    def report(self, teacher_names: Optional[Mapping[str, str]] = None) -> ConflictReport:
        teacher_names = teacher_names or {}
        conflicts: List[TeacherConflict] = []
        for (day, period, teacher_id), holders in sorted(self._index.items()):
            if len(holders) < 2:
                continue
            teacher_name = teacher_names.get(teacher_id)
            sub_class_ids = sorted(holders)
            conflicts.append(TeacherConflict(
                day=day,
                period=period,
                teacher_id=teacher_id,
                teacher_name=teacher_name,
                sub_class_ids=sub_class_ids,
                description=f"Teacher {teacher_name or teacher_id} is double-booked on {day} {period}: "
                            f"{', '.join(sub_class_ids)}",
            ))
        return ConflictReport(conflicts=conflicts)

