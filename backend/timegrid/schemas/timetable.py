from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from timegrid.schemas.catalog import coerce_identifier, coerce_optional_identifier


def wire_id(value: str | None) -> int | str | None:
    """Numeric ids go over the wire as numbers, anything else unchanged."""
    if value is None:
        return None
    stripped = value.strip()
    if stripped.isdecimal() and stripped.isascii():
        return int(stripped)
    return value


class Cell(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    day: str
    period: str
    subject_id: str | None = Field(default=None, alias="subjectId")
    teacher_id: str | None = Field(default=None, alias="teacherId")
    subject_name: str | None = Field(default=None, alias="subjectName")
    teacher_name: str | None = Field(default=None, alias="teacherName")
    is_break: bool = Field(default=False, alias="isBreak")

    @property
    def key(self) -> tuple[str, str]:
        return (self.day, self.period)

    @property
    def assignment(self) -> tuple[str | None, str | None]:
        return (self.subject_id, self.teacher_id)

    def same_assignment(self, other: Cell) -> bool:
        # Display names are derived and never part of equality.
        return self.assignment == other.assignment


class Timetable(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sub_class_id: str = Field(alias="subClassId")
    slots: list[Cell] = Field(default_factory=list)

    def find(self, day: str, period: str) -> Cell | None:
        for cell in self.slots:
            if cell.day == day and cell.period == period:
                return cell
        return None

    def cells_by_key(self) -> dict[tuple[str, str], Cell]:
        return {cell.key: cell for cell in self.slots}

    def teaching_cells(self) -> list[Cell]:
        return [cell for cell in self.slots if not cell.is_break]

    def clone(self) -> Timetable:
        return self.model_copy(deep=True)


class AssignedSlot(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # None when the row carries no usable period id; such rows are dropped on merge.
    period_id: str | None = Field(default=None, alias="periodId")
    subject_id: str | None = Field(default=None, alias="subjectId")
    teacher_id: str | None = Field(default=None, alias="teacherId")

    @field_validator("period_id", mode="before")
    @classmethod
    def normalize_period_id(cls, value: Any) -> Any:
        value = coerce_identifier(value)
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("subject_id", "teacher_id", mode="before")
    @classmethod
    def normalize_assignment_ids(cls, value: Any) -> Any:
        return coerce_optional_identifier(value)


class BulkUpdateSlot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    period_id: int | str = Field(alias="periodId")
    subject_id: int | str | None = Field(default=None, alias="subjectId")
    teacher_id: int | str | None = Field(default=None, alias="teacherId")


class BulkUpdatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sub_class_id: int | str = Field(alias="subClassId")
    slots: list[BulkUpdateSlot] = Field(default_factory=list)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class SlotError(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    day: str | None = None
    period_id: str | None = Field(default=None, alias="periodId")
    error: str | None = None

    @field_validator("period_id", mode="before")
    @classmethod
    def normalize_period_id(cls, value: Any) -> Any:
        return coerce_identifier(value)


class BackendConflict(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    teacher_name: str | None = Field(default=None, alias="teacherName")
    day: str | None = None
    period_id: str | None = Field(default=None, alias="periodId")
    conflicting_subclass_name: str | None = Field(default=None, alias="conflictingSubclassName")

    @field_validator("period_id", mode="before")
    @classmethod
    def normalize_period_id(cls, value: Any) -> Any:
        return coerce_identifier(value)


class BulkUpdateResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: bool = False
    message: str | None = None
    error: str | None = None
    errors: list[SlotError] = Field(default_factory=list)
    conflicts: list[BackendConflict] = Field(default_factory=list)

    @field_validator("errors", mode="before")
    @classmethod
    def wrap_plain_errors(cls, value: Any) -> Any:
        # The backend sometimes reports per-slot errors as bare strings.
        if isinstance(value, list):
            return [item if isinstance(item, (dict, SlotError)) else {"error": str(item)} for item in value]
        return value

    @field_validator("conflicts", mode="before")
    @classmethod
    def keep_structured_conflicts(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [item for item in value if isinstance(item, (dict, BackendConflict))]
        return value

    @classmethod
    def from_body(cls, body: dict, *, ok: bool = True) -> BulkUpdateResponse:
        data = body.get("data")
        errors = data.get("errors") if isinstance(data, dict) else None
        return cls.model_validate(
            {
                "success": bool(body.get("success")) and ok,
                "message": body.get("message"),
                "error": body.get("error"),
                "errors": errors if isinstance(errors, list) else [],
                "conflicts": body.get("conflicts") or [],
            }
        )

    def failure_reason(self) -> str:
        if self.errors:
            shown = "; ".join(item.error or "unknown error" for item in self.errors[:2])
            suffix = "..." if len(self.errors) > 2 else ""
            return f"Save failed. Errors: {shown}{suffix}"
        if self.conflicts:
            described = "; ".join(
                f"{item.teacher_name} has conflict on {item.day} Period {item.period_id} "
                f"with {item.conflicting_subclass_name}"
                for item in self.conflicts
            )
            return f"Save failed due to conflicts: {described}"
        return self.error or self.message or "Failed to save timetable"
