from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def coerce_identifier(value: Any) -> Any:
    """Backend ids arrive as numbers or strings; the core keys everything by string."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(int(value)) if float(value).is_integer() else str(value)
    return value


def coerce_optional_identifier(value: Any) -> Any:
    # 0 and "" mean "unassigned" on the wire.
    if value in (None, "", 0):
        return None
    return coerce_identifier(value)


class WeeklySlot(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    day_of_week: str = Field(alias="dayOfWeek", min_length=1)
    start_time: str | None = Field(default=None, alias="startTime")
    end_time: str | None = Field(default=None, alias="endTime")
    is_break: bool = Field(default=False, alias="isBreak")

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, value: Any) -> Any:
        return coerce_identifier(value)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def blank_time_is_missing(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("is_break", mode="before")
    @classmethod
    def null_break_is_false(cls, value: Any) -> Any:
        return False if value is None else value

    @property
    def key(self) -> tuple[str, str]:
        return (self.day_of_week, self.name)


class Subject(BaseModel):
    id: str = Field(min_length=1)
    name: str

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, value: Any) -> Any:
        return coerce_identifier(value)


class SchoolClass(BaseModel):
    id: str = Field(min_length=1)
    name: str

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, value: Any) -> Any:
        return coerce_identifier(value)


class SubClass(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    name: str
    class_id: str | None = Field(default=None, alias="classId")
    class_name: str | None = Field(default=None, alias="className")

    @model_validator(mode="before")
    @classmethod
    def flatten_parent_class(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("class"), dict):
            parent = data["class"]
            data = {key: value for key, value in data.items() if key != "class"}
            data.setdefault("classId", parent.get("id"))
            data.setdefault("className", parent.get("name"))
        return data

    @field_validator("id", "class_id", mode="before")
    @classmethod
    def normalize_id(cls, value: Any) -> Any:
        return coerce_identifier(value)


class Teacher(BaseModel):
    id: str = Field(min_length=1)
    name: str
    subjects: set[str] = Field(default_factory=set)

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, value: Any) -> Any:
        return coerce_identifier(value)

    @field_validator("subjects", mode="before")
    @classmethod
    def flatten_subjects(cls, value: Any) -> Any:
        if value is None:
            return set()
        flattened = set()
        for item in value:
            if isinstance(item, dict):
                item = item.get("id")
            item = coerce_identifier(item)
            if item:
                flattened.add(item)
        return flattened

    def teaches(self, subject_id: str) -> bool:
        return subject_id in self.subjects


class CatalogBundle(BaseModel):
    classes: list[SchoolClass] = Field(default_factory=list)
    sub_classes: list[SubClass] = Field(default_factory=list)
    subjects: list[Subject] = Field(default_factory=list)
    teachers: list[Teacher] = Field(default_factory=list)
    periods: list[WeeklySlot] = Field(default_factory=list)
