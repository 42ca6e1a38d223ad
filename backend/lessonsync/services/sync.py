from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date

from lessonsync.core.exceptions import ConfigurationError, SchedulerError
from lessonsync.models.student import Student
from lessonsync.models.teacher import Teacher
from lessonsync.schemas.schedule import (
    LessonRef,
    ScheduleInfo,
    StudentAssignment,
    TimeBlock,
    utcnow,
)
from lessonsync.services.packer import PackingResult, Placement
from lessonsync.services.schedule_store import ScheduleStore, chunked

logger = logging.getLogger(__name__)

DEFAULT_ASSIGNMENT_START = date(2024, 9, 1)


@dataclass
class SyncSummary:
    students_written: int = 0
    teachers_written: int = 0
    lesson_refs_written: int = 0


class ReferenceSynchronizer:
    """Writes placements into both denormalized views.

    The student pass is committed before the teacher pass starts. Until the
    teacher pass finishes, student assignments may point at blocks whose
    ``assignedLessons`` are still empty or stale; readers should wait for a
    completed run or check the consistency report.
    """

    def __init__(
        self,
        store: ScheduleStore,
        *,
        student_batch_size: int = 200,
        teacher_batch_size: int = 50,
        start_date: date = DEFAULT_ASSIGNMENT_START,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        if student_batch_size < 1 or teacher_batch_size < 1:
            raise ConfigurationError("Synchronizer batch sizes must be at least 1")
        self.store = store
        self.student_batch_size = student_batch_size
        self.teacher_batch_size = teacher_batch_size
        self.start_date = start_date
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))

    def build_student_assignment(self, placement: Placement) -> StudentAssignment:
        return StudentAssignment(
            id=self.id_factory(),
            teacherId=placement.teacher_id,
            isActive=True,
            day=placement.day,
            time=placement.start_time,
            duration=placement.duration,
            location=placement.location,
            timeBlockId=placement.block_id,
            lessonId=placement.lesson_id,
            scheduleSlotId=placement.schedule_slot_id,
            scheduleInfo=ScheduleInfo(
                day=placement.day,
                startTime=placement.start_time,
                endTime=placement.end_time,
                duration=placement.duration,
                location=placement.location,
            ),
            startDate=self.start_date,
            endDate=None,
            isRecurring=True,
        )

    def build_lesson_ref(self, placement: Placement) -> LessonRef:
        return LessonRef(
            id=placement.lesson_id,
            studentId=placement.student_id,
            studentName=placement.student_name,
            lessonStartTime=placement.start_time,
            lessonEndTime=placement.end_time,
            duration=placement.duration,
            isActive=True,
            isRecurring=True,
            startDate=self.start_date,
            endDate=None,
        )

    def write_student_side(self, results: Sequence[PackingResult]) -> int:
        placements = [placement for result in results for placement in result.placements]
        students: dict[str, Student] = {}
        student_ids = list(dict.fromkeys(placement.student_id for placement in placements))
        for batch in chunked(student_ids, self.student_batch_size):
            students.update(self.store.students_by_ids(batch))

        updates: dict[str, list[dict]] = {}
        for placement in placements:
            student = students.get(placement.student_id)
            if student is None:
                raise SchedulerError(
                    "Student disappeared before synchronization",
                    details={"studentId": placement.student_id, "teacherId": placement.teacher_id},
                )
            assignment = self.build_student_assignment(placement).model_dump(mode="json")
            # Only the primary slot is replaced; later entries belong to other flows.
            updates[student.id] = [assignment, *list(student.teacher_assignments or [])[1:]]

        return self.store.replace_field(
            Student, "teacher_assignments", updates, batch_size=self.student_batch_size
        )

    def write_teacher_side(self, results: Sequence[PackingResult]) -> tuple[int, int]:
        results_by_teacher = {result.teacher_id: result for result in results}
        updates: dict[str, list[dict]] = {}
        lesson_refs = 0

        for teacher in self.store.active_teachers():
            result = results_by_teacher.get(teacher.id)
            if result is None:
                continue
            blocks = [TimeBlock.model_validate(item) for item in teacher.time_blocks or []]
            rebuilt: list[dict] = []
            for block in blocks:
                refs = [
                    self.build_lesson_ref(placement)
                    for placement in result.placements_by_block.get(block.id, [])
                ]
                lesson_refs += len(refs)
                updated = block.model_copy(update={"assignedLessons": refs, "updatedAt": utcnow()})
                rebuilt.append(updated.model_dump(mode="json"))
            updates[teacher.id] = rebuilt

        written = self.store.replace_field(
            Teacher, "time_blocks", updates, batch_size=self.teacher_batch_size
        )
        return written, lesson_refs

    def synchronize(self, results: Sequence[PackingResult]) -> SyncSummary:
        summary = SyncSummary()
        summary.students_written = self.write_student_side(results)
        logger.info("Student side committed: %d primary assignment(s)", summary.students_written)

        summary.teachers_written, summary.lesson_refs_written = self.write_teacher_side(results)
        logger.info(
            "Teacher side committed: %d lesson ref(s) across %d teacher(s)",
            summary.lesson_refs_written,
            summary.teachers_written,
        )
        return summary
