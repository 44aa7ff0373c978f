from __future__ import annotations

from typing import Any

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from timegrid.core.config import Settings
from timegrid.schemas.catalog import Subject, Teacher
from timegrid.services.assignment_store import AssignmentStore
from timegrid.services.gateway import TimetableGateway
from timegrid.services.session import TimetableSession
from timegrid.services.slot_catalog import SlotCatalog

BASE_URL = "http://testserver/api/v1"

# Grid used by the in-memory unit tests.
SCENARIO_SLOTS = [
    {"id": "1", "name": "Period 1", "dayOfWeek": "Monday", "startTime": "08:00", "endTime": "08:55", "isBreak": False},
    {"id": "2", "name": "Break", "dayOfWeek": "Monday", "startTime": "08:55", "endTime": "09:10", "isBreak": True},
    {"id": "3", "name": "Period 2", "dayOfWeek": "Monday", "startTime": "09:10", "endTime": "10:05"},
    {"id": "4", "name": "Period 1", "dayOfWeek": "Tuesday", "startTime": "08:00", "endTime": "08:55"},
]

# Grid served by the fake backend, shaped like the real /periods payload.
BACKEND_PERIODS = [
    {"id": 11, "name": "Period 1", "dayOfWeek": "MONDAY", "startTime": "08:00", "endTime": "08:55", "isBreak": False},
    {"id": 12, "name": "Break", "dayOfWeek": "MONDAY", "startTime": "08:55", "endTime": "09:10", "isBreak": True},
    {"id": 13, "name": "Period 2", "dayOfWeek": "MONDAY", "startTime": "09:10", "endTime": "10:05", "isBreak": None},
    {"id": 21, "name": "Period 1", "dayOfWeek": "TUESDAY", "startTime": "08:00", "endTime": "08:55"},
    {"id": 22, "name": "Break", "dayOfWeek": "TUESDAY", "startTime": "08:55", "endTime": "09:10", "isBreak": True},
    {"id": 23, "name": "Period 2", "dayOfWeek": "TUESDAY", "startTime": "09:10", "endTime": "10:05"},
]


class FakeBackend:
    """In-memory stand-in for the school REST API."""

    def __init__(self) -> None:
        self.catalogs: dict[str, list[dict[str, Any]]] = {
            "classes": [{"id": 1, "name": "Form 7"}],
            "subClasses": [
                {"id": 71, "name": "7A", "class": {"id": 1, "name": "Form 7"}},
                {"id": 72, "name": "7B", "class": {"id": 1, "name": "Form 7"}},
            ],
            "subjects": [{"id": 101, "name": "Mathematics"}, {"id": 102, "name": "English"}],
            "periods": [dict(item) for item in BACKEND_PERIODS],
            "teachers": [
                {"id": 5, "name": "Mr. Johnson", "subjects": [{"id": 101}]},
                {"id": 6, "name": "Mrs. Smith", "subjects": [{"id": 102}, {"id": 101}]},
            ],
        }
        # sub_class_id -> period_id -> {"subjectId", "teacherId"}
        self.assignments: dict[str, dict[int, dict[str, Any]]] = {}
        self.missing: set[str] = set()
        self.failing: set[str] = set()
        # sub_class_id -> (status_code, body) returned instead of applying the update
        self.rejections: dict[str, tuple[int, Any]] = {}
        self.bulk_requests: list[dict[str, Any]] = []
        self.authorization: list[str | None] = []

    def catalog_response(self, entity: str, request: Request):
        self.authorization.append(request.headers.get("authorization"))
        if entity in self.missing:
            return JSONResponse(status_code=404, content={"message": "Not Found"})
        if entity in self.failing:
            return JSONResponse(status_code=500, content={"message": f"{entity} unavailable"})
        return {"data": self.catalogs[entity]}

    def assigned_slots(self, sub_class_id: str) -> list[dict[str, Any]]:
        return [
            {"periodId": period_id, **assignment}
            for period_id, assignment in self.assignments.get(sub_class_id, {}).items()
        ]


def build_backend_app(backend: FakeBackend) -> FastAPI:
    app = FastAPI()

    @app.get("/api/v1/classes")
    async def list_classes(request: Request):
        return backend.catalog_response("classes", request)

    @app.get("/api/v1/classes/sub-classes")
    async def list_sub_classes(request: Request):
        return backend.catalog_response("subClasses", request)

    @app.get("/api/v1/subjects")
    async def list_subjects(request: Request):
        return backend.catalog_response("subjects", request)

    @app.get("/api/v1/periods")
    async def list_periods(request: Request):
        return backend.catalog_response("periods", request)

    @app.get("/api/v1/users/teachers")
    async def list_teachers(request: Request):
        return backend.catalog_response("teachers", request)

    @app.get("/api/v1/timetables")
    async def get_timetable(subClassId: str):
        if subClassId in backend.failing:
            return JSONResponse(status_code=503, content={"message": "Timetable service unavailable"})
        return {"data": {"slots": backend.assigned_slots(subClassId)}}

    @app.post("/api/v1/timetables/bulk-update")
    async def bulk_update(request: Request):
        body = await request.json()
        backend.bulk_requests.append(body)
        sub_class_id = str(body["subClassId"])
        if sub_class_id in backend.rejections:
            status_code, content = backend.rejections[sub_class_id]
            if isinstance(content, str):
                return PlainTextResponse(content, status_code=status_code)
            return JSONResponse(status_code=status_code, content=content)
        stored = backend.assignments.setdefault(sub_class_id, {})
        for slot in body["slots"]:
            stored[slot["periodId"]] = {"subjectId": slot["subjectId"], "teacherId": slot["teacherId"]}
        return {"success": True, "message": "Timetable updated successfully"}

    return app


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, api_base_url=BASE_URL, api_token="test-token")


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
async def gateway(backend, settings):
    transport = httpx.ASGITransport(app=build_backend_app(backend))
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as client:
        yield TimetableGateway(settings, client=client)


@pytest.fixture
def session(gateway, settings):
    return TimetableSession(gateway, settings=settings)


@pytest.fixture
def catalog() -> SlotCatalog:
    catalog = SlotCatalog()
    catalog.load(SCENARIO_SLOTS)
    return catalog


@pytest.fixture
def store(catalog) -> AssignmentStore:
    return AssignmentStore(
        catalog,
        subjects=[Subject(id="MATH101", name="Mathematics"), Subject(id="ENG201", name="English")],
        teachers=[Teacher(id="T5", name="Mrs. Brown"), Teacher(id="T6", name="Mr. Wilson")],
    )
