from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from timegrid.schemas.timetable import Cell


class SaveOutcome(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sub_class_id: str = Field(alias="subClassId")
    status: Literal["saved", "unchanged", "failed"]
    reason: str | None = None
    message: str | None = None
    sent_cells: int = Field(default=0, alias="sentCells")
    # Changed cells whose (day, period) had no catalog id and were left out of the payload.
    dropped_cells: list[Cell] = Field(default_factory=list, alias="droppedCells")

    @property
    def ok(self) -> bool:
        return self.status != "failed"


class SaveFailure(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sub_class_id: str = Field(alias="subClassId")
    reason: str


class SaveAllReport(BaseModel):
    status: Literal["success", "partial_failure", "failure", "nothing_to_save"]
    succeeded: list[str] = Field(default_factory=list)
    failed: list[SaveFailure] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)
    outcomes: list[SaveOutcome] = Field(default_factory=list)

    @classmethod
    def from_outcomes(cls, outcomes: list[SaveOutcome]) -> SaveAllReport:
        succeeded = [item.sub_class_id for item in outcomes if item.status == "saved"]
        unchanged = [item.sub_class_id for item in outcomes if item.status == "unchanged"]
        failed = [
            SaveFailure(sub_class_id=item.sub_class_id, reason=item.reason or "Unknown error")
            for item in outcomes
            if item.status == "failed"
        ]
        if not succeeded and not failed:
            status = "nothing_to_save"
        elif not failed:
            status = "success"
        elif not succeeded:
            status = "failure"
        else:
            status = "partial_failure"
        return cls(
            status=status,
            succeeded=succeeded,
            failed=failed,
            unchanged=unchanged,
            outcomes=list(outcomes),
        )

    @property
    def message(self) -> str:
        if self.status == "nothing_to_save":
            return "No changes detected to save."
        if self.status == "success":
            return f"Successfully saved changes for {len(self.succeeded)} class(es)."
        details = "; ".join(f"{item.sub_class_id}: {item.reason}" for item in self.failed)
        if self.status == "failure":
            return f"Failed to save changes for {len(self.failed)} class(es). {details}"
        return (
            f"Saved changes for {len(self.succeeded)} of {len(self.succeeded) + len(self.failed)} "
            f"class(es). Failed: {details}"
        )
