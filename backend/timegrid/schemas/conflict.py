from pydantic import BaseModel
from typing import List, Optional

class TeacherConflict(BaseModel):
    day: str
    period: str
    teacher_id: str
    teacher_name: Optional[str] = None
    sub_class_ids: List[str]  # Subclasses holding the teacher at this day/period
    description: str

class ConflictReport(BaseModel):
    conflicts: List[TeacherConflict]

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    def for_sub_class(self, sub_class_id: str) -> List[TeacherConflict]:
        return [item for item in self.conflicts if sub_class_id in item.sub_class_ids]
