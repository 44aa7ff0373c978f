import pytest

from timegrid.core.exceptions import CatalogLoadError, PersistenceError
from timegrid.services.session import TimetableSession

pytestmark = pytest.mark.anyio


async def test_bootstrap_populates_catalog_and_directory(session):
    await session.bootstrap()

    assert [item.name for item in session.sub_classes] == ["7A", "7B"]
    assert session.weekdays() == ["MONDAY", "TUESDAY"]
    assert session.unique_period_names() == ["Period 1", "Break", "Period 2"]
    assert [teacher.name for teacher in session.teachers_for_subject("101")] == ["Mr. Johnson", "Mrs. Smith"]
    assert [teacher.name for teacher in session.teachers_for_subject("102")] == ["Mrs. Smith"]
    assert session.error is None


async def test_bootstrap_failure_resets_state(session, backend):
    await session.bootstrap()
    backend.failing.add("classes")

    with pytest.raises(CatalogLoadError):
        await session.bootstrap()

    assert session.error == "classes unavailable"
    assert session.sub_classes == []
    assert len(session.catalog) == 0


async def test_load_subclass_overlays_backend_assignments(session, backend):
    backend.assignments["71"] = {11: {"subjectId": 101, "teacherId": 5}, 12: {"subjectId": 102, "teacherId": 6}}
    await session.bootstrap()

    timetable = await session.load_subclass("71")

    assert len(timetable.slots) == 6
    first = timetable.find("MONDAY", "Period 1")
    assert (first.subject_name, first.teacher_name) == ("Mathematics", "Mr. Johnson")
    assert timetable.find("MONDAY", "Break").assignment == (None, None)
    assert session.has_unsaved_changes() is False


async def test_load_subclass_failure_sets_error(session, backend):
    await session.bootstrap()
    backend.failing.add("71")

    with pytest.raises(PersistenceError):
        await session.load_subclass("71")

    assert session.error == "Timetable service unavailable"
    # The empty grid stays available while nothing has been loaded.
    assert session.store.get("71") is not None
    assert session.has_unsaved_changes("71") is False


async def test_assign_warns_about_teacher_busy_elsewhere(session):
    await session.bootstrap()
    await session.load_subclass("71")
    await session.load_subclass("72")

    assert session.assign("71", "MONDAY", "Period 1", "101", "5") is None
    busy_in = session.assign("72", "MONDAY", "Period 1", "101", "5")

    assert busy_in == "7A"
    assert session.store.timetable("72").find("MONDAY", "Period 1").teacher_id == "5"
    assert session.has_conflict("MONDAY", "Period 1", "5")
    assert [item.name for item in session.sub_classes_with_conflicts()] == ["7A", "7B"]
    report = session.conflict_report()
    assert report.conflicts[0].description == "Teacher Mr. Johnson is double-booked on MONDAY Period 1: 71, 72"


async def test_save_one_persists_and_reload_matches(session, backend):
    await session.bootstrap()
    await session.load_subclass("71")
    session.assign("71", "TUESDAY", "Period 2", "102", "6")

    outcome = await session.save_one("71")

    assert outcome.status == "saved"
    assert backend.bulk_requests == [
        {"subClassId": 71, "slots": [{"periodId": 23, "subjectId": 102, "teacherId": 6}]},
    ]
    assert session.has_unsaved_changes() is False

    reloaded = await session.load_subclass("71")
    assert reloaded.find("TUESDAY", "Period 2").assignment == ("102", "6")


async def test_save_all_reports_partial_failure(session, backend):
    backend.rejections["72"] = (
        200,
        {"success": False, "data": {"errors": [{"day": "MONDAY", "periodId": 11, "error": "Teacher on leave"}]}},
    )
    await session.bootstrap()
    await session.load_subclass("71")
    await session.load_subclass("72")
    session.assign("71", "MONDAY", "Period 1", "101", "5")
    session.assign("72", "MONDAY", "Period 2", "102", "6")

    report = await session.save_all()

    assert report.status == "partial_failure"
    assert report.succeeded == ["71"]
    assert report.failed[0].reason == "Save failed. Errors: Teacher on leave"
    assert session.error == report.message
    assert session.has_unsaved_changes("71") is False
    assert [cell.key for cell in session.changed_cells("72")] == [("MONDAY", "Period 2")]

    # Only the rejected subclass is sent again once the backend accepts it.
    del backend.rejections["72"]
    retry = await session.save_all()
    assert retry.status == "success"
    assert retry.unchanged == ["71"]
    assert session.error is None
    assert sorted(request["subClassId"] for request in backend.bulk_requests) == [71, 72, 72]


async def test_session_as_context_manager(gateway, settings):
    async with TimetableSession(gateway, settings=settings) as session:
        await session.bootstrap()
    assert session.subjects


async def test_load_subclass_skips_rows_without_period_id(session, backend):
    backend.assignments["71"] = {None: {"subjectId": 102, "teacherId": 6}, 11: {"subjectId": 101, "teacherId": 5}}
    await session.bootstrap()

    timetable = await session.load_subclass("71")

    assert timetable.find("MONDAY", "Period 1").assignment == ("101", "5")
    assert [cell.key for cell in timetable.slots if cell.teacher_id] == [("MONDAY", "Period 1")]
    assert session.error is None


async def test_plain_string_slot_errors_become_a_failed_save(session, backend):
    backend.rejections["71"] = (200, {"success": False, "data": {"errors": ["Teacher busy"]}})
    await session.bootstrap()
    await session.load_subclass("71")
    session.assign("71", "MONDAY", "Period 1", "101", "5")

    outcome = await session.save_one("71")

    assert outcome.status == "failed"
    assert outcome.reason == "Save failed. Errors: Teacher busy"
    assert session.error == outcome.reason
    assert session.has_unsaved_changes("71") is True
