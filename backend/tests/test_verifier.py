import copy
from datetime import date

import pytest

from lessonsync.models import Student, Teacher
from lessonsync.schemas.schedule import LessonRef
from lessonsync.services.schedule_store import ScheduleStore
from lessonsync.services.verifier import ConsistencyVerifier

TENANT_ID = "test-tenant"


def _assignment(teacher_id, block_id, *, time="09:00", duration=45, lesson_id="lesson-1", with_info=True):
    assignment = {
        "teacherId": teacher_id,
        "timeBlockId": block_id,
        "lessonId": lesson_id,
        "day": "Sunday",
        "time": time,
        "duration": duration,
        "location": "Room 1",
    }
    if with_info:
        assignment["scheduleInfo"] = {
            "day": "Sunday",
            "startTime": time,
            "endTime": "09:45",
            "duration": duration,
            "location": "Room 1",
        }
    return assignment


def _ref(student_id, lesson_id="lesson-1"):
    return LessonRef(
        id=lesson_id,
        studentId=student_id,
        studentName="Student Cohen",
        lessonStartTime="09:00",
        lessonEndTime="09:45",
        duration=45,
        startDate=date(2024, 9, 1),
    )


def _verify(db_session):
    return ConsistencyVerifier(ScheduleStore(db_session, tenant_id=TENANT_ID)).verify()


@pytest.fixture()
def consistent_pair(db_session, make_block, make_teacher, make_student):
    teacher = make_teacher(time_blocks=[make_block("Sunday", "09:00", "12:00", block_id="blk-1")])
    student = make_student(assignments=[_assignment(teacher.id, "blk-1")])
    teacher.time_blocks = [
        make_block("Sunday", "09:00", "12:00", block_id="blk-1", lessons=[_ref(student.id)]),
        make_block("Tuesday", "13:00", "16:00", block_id="blk-2"),
    ]
    db_session.commit()
    return teacher, student


def test_consistent_data_passes(db_session, consistent_pair):
    report = _verify(db_session)

    assert report.tenantId == TENANT_ID
    assert (report.teachers, report.students) == (1, 1)
    assert (report.totalBlocks, report.blocksWithLessons, report.totalLessonRefs) == (2, 1, 1)
    assert report.validAssignments == 1
    assert report.violation_count == 0
    assert report.passed
    assert not report.transient_inconsistency


def test_block_owned_by_another_teacher_is_invalid(db_session, make_block, make_teacher, make_student):
    owner = make_teacher("Owner", time_blocks=[make_block(block_id="blk-owner")])
    other = make_teacher("Other", time_blocks=[make_block(block_id="blk-other")])
    make_student(assignments=[_assignment(other.id, "blk-owner")])
    make_student(assignments=[_assignment(owner.id, "blk-owner", lesson_id="lesson-2")])

    report = _verify(db_session)

    assert report.invalidBlockRefs == 1
    assert report.validAssignments == 1


@pytest.mark.parametrize("block_id", [None, ""])
def test_missing_block_id_is_invalid(db_session, make_block, make_teacher, make_student, block_id):
    teacher = make_teacher(time_blocks=[make_block(block_id="blk-1")])
    make_student(assignments=[_assignment(teacher.id, block_id)])

    report = _verify(db_session)

    assert report.invalidBlockRefs == 1
    assert report.validAssignments == 0


def test_unknown_teacher_is_invalid(db_session, make_student):
    make_student(assignments=[_assignment("no-such-teacher", "blk-1")])
    assert _verify(db_session).invalidBlockRefs == 1


def test_missing_schedule_info_is_counted_but_still_valid(db_session, make_block, make_teacher, make_student):
    teacher = make_teacher(time_blocks=[make_block(block_id="blk-1")])
    make_student(assignments=[_assignment(teacher.id, "blk-1", with_info=False)])

    report = _verify(db_session)

    assert report.missingScheduleInfo == 1
    assert report.validAssignments == 1
    assert report.invalidBlockRefs == 0


@pytest.mark.parametrize(
    ("time", "outside"),
    [("09:00", 0), ("11:15", 0), ("11:30", 0), ("11:31", 1), ("08:59", 1)],
)
def test_lesson_time_against_block_range_with_tolerance(
    db_session, make_block, make_teacher, make_student, time, outside
):
    teacher = make_teacher(time_blocks=[make_block("Sunday", "09:00", "12:00", block_id="blk-1")])
    make_student(assignments=[_assignment(teacher.id, "blk-1", time=time, duration=45)])

    report = _verify(db_session)

    assert report.timeOutsideBlock == outside
    assert report.validAssignments == 1


def test_secondary_assignments_are_checked_too(db_session, make_block, make_teacher, make_student):
    teacher = make_teacher(time_blocks=[make_block(block_id="blk-1")])
    make_student(
        assignments=[
            _assignment(teacher.id, "blk-1"),
            {"teacherId": "theory-teacher", "lessonId": "theory-1"},
        ]
    )

    report = _verify(db_session)

    assert report.validAssignments == 1
    assert report.invalidBlockRefs == 1


def test_lesson_refs_without_matching_assignment_are_orphaned(
    db_session, make_block, make_teacher, make_student
):
    teacher = make_teacher()
    student = make_student(assignments=[_assignment(teacher.id, "blk-1", lesson_id="lesson-current")])
    teacher.time_blocks = [
        make_block(
            block_id="blk-1",
            lessons=[
                _ref(student.id, "lesson-current"),
                _ref(student.id, "lesson-stale"),
                _ref("departed-student", "lesson-departed"),
            ],
        )
    ]
    db_session.commit()

    report = _verify(db_session)

    assert report.totalLessonRefs == 3
    assert report.orphanedLessonRefs == 2
    assert not report.passed


def test_duplicate_lesson_ids_within_a_teacher(db_session, make_block, make_teacher, make_student):
    teacher = make_teacher()
    student = make_student(assignments=[_assignment(teacher.id, "blk-1")])
    teacher.time_blocks = [
        make_block("Sunday", block_id="blk-1", lessons=[_ref(student.id)]),
        make_block("Monday", block_id="blk-2", lessons=[_ref(student.id)]),
    ]
    db_session.commit()

    report = _verify(db_session)

    assert report.duplicateLessonIds == 1
    assert report.orphanedLessonRefs == 0


def test_verification_is_read_only(db_session, consistent_pair, make_student):
    teacher, student = consistent_pair
    make_student(assignments=[_assignment(teacher.id, "missing-block", lesson_id="lesson-9")])
    before_teacher = copy.deepcopy(teacher.time_blocks)
    before_student = copy.deepcopy(student.teacher_assignments)

    report = _verify(db_session)

    assert report.invalidBlockRefs == 1
    db_session.expire_all()
    assert db_session.get(Teacher, teacher.id).time_blocks == before_teacher
    assert db_session.get(Student, student.id).teacher_assignments == before_student


def test_other_tenants_and_inactive_rows_are_ignored(db_session, make_block, make_teacher, make_student):
    make_teacher("Elsewhere", tenant_id="other-tenant", time_blocks=[make_block(block_id="blk-x")])
    make_student(tenant_id="other-tenant", assignments=[{"teacherId": "nobody"}])
    make_student(is_active=False, assignments=[{"teacherId": "nobody"}])

    report = _verify(db_session)

    assert (report.teachers, report.students, report.totalBlocks) == (0, 0, 0)
    assert report.passed


@pytest.mark.parametrize(
    ("time", "duration"),
    [("24:15", 30), ("26:00", 30), (None, 30), ("soon", 30), ("16:00", None)],
)
def test_late_or_unreadable_lesson_time_is_outside_block(
    db_session, make_block, make_teacher, make_student, time, duration
):
    teacher = make_teacher(time_blocks=[make_block("Sunday", "15:30", "18:30", block_id="blk-1")])
    assignment = _assignment(teacher.id, "blk-1", time=time, duration=duration)
    make_student(assignments=[assignment])

    report = _verify(db_session)

    assert report.timeOutsideBlock == 1
    assert report.validAssignments == 1
