from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass
from time import perf_counter

from lessonsync.schemas.schedule import (
    LESSON_TIME_PATTERN,
    TIME_PATTERN,
    TOLERANCE_MINUTES,
    VerificationReport,
    lesson_within_block,
    parse_lesson_time_to_minutes,
    parse_time_to_minutes,
)
from lessonsync.services.schedule_store import ScheduleStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlockRange:
    start: int
    end: int


def _block_minutes(value: object) -> int | None:
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        return None
    return parse_time_to_minutes(value)


def _lesson_minutes(value: object) -> int | None:
    if not isinstance(value, str) or not LESSON_TIME_PATTERN.match(value):
        return None
    return parse_lesson_time_to_minutes(value)


class ConsistencyVerifier:
    """Read-only check of the committed teacher and student views.

    Findings are counted, never raised: a report with violations is still a
    successful verification.
    """

    def __init__(self, store: ScheduleStore, *, tolerance_minutes: int = TOLERANCE_MINUTES) -> None:
        self.store = store
        self.tolerance_minutes = tolerance_minutes

    def verify(self) -> VerificationReport:
        started = perf_counter()
        teachers = self.store.active_teachers()
        students = self.store.active_students()
        report = VerificationReport(
            tenantId=self.store.tenant_id,
            teachers=len(teachers),
            students=len(students),
        )

        teacher_blocks: dict[str, set[str]] = {}
        block_ranges: dict[str, BlockRange] = {}
        # (studentId, lessonId) pairs advertised on the teacher side.
        lesson_refs: list[tuple[str | None, str | None]] = []

        for teacher in teachers:
            block_ids: set[str] = set()
            lesson_ids: Counter[str] = Counter()
            for block in teacher.time_blocks or []:
                report.totalBlocks += 1
                block_id = block.get("id")
                if block_id:
                    block_ids.add(block_id)
                    start = _block_minutes(block.get("startTime"))
                    end = _block_minutes(block.get("endTime"))
                    if start is not None and end is not None:
                        block_ranges[block_id] = BlockRange(start=start, end=end)

                assigned = block.get("assignedLessons") or []
                report.totalLessonRefs += len(assigned)
                if assigned:
                    report.blocksWithLessons += 1
                for ref in assigned:
                    lesson_refs.append((ref.get("studentId"), ref.get("id")))
                    if ref.get("id"):
                        lesson_ids[ref["id"]] += 1

            report.duplicateLessonIds += sum(count - 1 for count in lesson_ids.values() if count > 1)
            teacher_blocks[teacher.id] = block_ids

        lessons_by_student: dict[str, set[str]] = defaultdict(set)
        for student in students:
            for assignment in student.teacher_assignments or []:
                if assignment.get("lessonId"):
                    lessons_by_student[student.id].add(assignment["lessonId"])
                self._check_assignment(assignment, teacher_blocks, block_ranges, report)

        for student_id, lesson_id in lesson_refs:
            if not student_id or lesson_id not in lessons_by_student.get(student_id, set()):
                report.orphanedLessonRefs += 1

        report.elapsedMs = int((perf_counter() - started) * 1000)
        self._log(report)
        return report

    def _check_assignment(
        self,
        assignment: dict,
        teacher_blocks: dict[str, set[str]],
        block_ranges: dict[str, BlockRange],
        report: VerificationReport,
    ) -> None:
        block_id = assignment.get("timeBlockId")
        if not block_id:
            report.invalidBlockRefs += 1
            return

        blocks = teacher_blocks.get(assignment.get("teacherId"))
        if blocks is None or block_id not in blocks:
            report.invalidBlockRefs += 1
            return

        if not assignment.get("scheduleInfo"):
            report.missingScheduleInfo += 1

        block_range = block_ranges.get(block_id)
        if block_range is not None:
            lesson_start = _lesson_minutes(assignment.get("time"))
            duration = assignment.get("duration")
            # A missing or unreadable start or duration cannot be inside the block.
            if lesson_start is None or not isinstance(duration, int):
                report.timeOutsideBlock += 1
            elif not lesson_within_block(
                lesson_start,
                duration,
                block_range.start,
                block_range.end,
                tolerance=self.tolerance_minutes,
            ):
                report.timeOutsideBlock += 1

        report.validAssignments += 1

    def _log(self, report: VerificationReport) -> None:
        logger.info(
            "Verification: %d teacher(s), %d student(s), %d block(s) (%d with lessons), %d lesson ref(s)",
            report.teachers,
            report.students,
            report.totalBlocks,
            report.blocksWithLessons,
            report.totalLessonRefs,
        )
        logger.info(
            "Verification: %d valid assignment(s), %d invalid block ref(s), %d missing scheduleInfo, "
            "%d outside block range, %d orphaned lesson ref(s), %d duplicate lesson id(s) (%dms)",
            report.validAssignments,
            report.invalidBlockRefs,
            report.missingScheduleInfo,
            report.timeOutsideBlock,
            report.orphanedLessonRefs,
            report.duplicateLessonIds,
            report.elapsedMs,
        )
        if report.transient_inconsistency:
            logger.warning(
                "Student assignments exist but no teacher block holds lesson refs; "
                "the teacher pass of the last run has not completed"
            )
        if report.passed:
            logger.info("All consistency checks passed")
        else:
            logger.warning("%d consistency issue(s) detected", report.violation_count)
