from __future__ import annotations

import logging
import random
from collections import defaultdict
from dataclasses import dataclass, field
from time import perf_counter

from sqlalchemy.orm import Session

from lessonsync.core.config import Settings
from lessonsync.core.exceptions import UnplaceableStudentsError
from lessonsync.models.teacher import Teacher
from lessonsync.schemas.schedule import TimeBlock, VerificationReport
from lessonsync.services.availability import AvailabilityGenerator, AvailabilityPolicy
from lessonsync.services.packer import CapacityPacker, PackingResult, StudentRef
from lessonsync.services.schedule_store import ScheduleStore
from lessonsync.services.sync import ReferenceSynchronizer, SyncSummary
from lessonsync.services.verifier import ConsistencyVerifier

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((perf_counter() - started) * 1000)


@dataclass
class PackingPlan:
    results: list[PackingResult] = field(default_factory=list)
    skipped_students: int = 0

    @property
    def assigned_count(self) -> int:
        return sum(result.assigned_count for result in self.results)

    @property
    def overflow_count(self) -> int:
        return sum(result.overflow_count for result in self.results)

    @property
    def unplaced_by_teacher(self) -> dict[str, list[str]]:
        return {
            result.teacher_id: [student.id for student in result.unplaced]
            for result in self.results
            if result.unplaced
        }


@dataclass
class SeedRunSummary:
    verify_only: bool
    teachers_rebuilt: int = 0
    students_assigned: int = 0
    overflow_assigned: int = 0
    skipped_students: int = 0
    sync: SyncSummary | None = None
    report: VerificationReport | None = None
    elapsed_ms: int = 0


class ScheduleSeeder:
    """Runs generate -> pack -> write students -> write teachers -> verify.

    Every phase commits before the next starts and fully replaces the data it
    owns, so a failed run is repaired by running again from the top.
    """

    def __init__(self, session: Session, *, settings: Settings, rng: random.Random | None = None) -> None:
        self.settings = settings
        self.rng = rng or random.Random(settings.random_seed)
        self.store = ScheduleStore(session, tenant_id=settings.tenant_id)
        self.generator = AvailabilityGenerator(
            rng=self.rng,
            policy=AvailabilityPolicy(distinct_day_attempts=settings.distinct_day_attempts),
        )
        self.packer = CapacityPacker(rng=self.rng, overflow_policy=settings.overflow_policy)
        self.synchronizer = ReferenceSynchronizer(
            self.store,
            student_batch_size=settings.student_batch_size,
            teacher_batch_size=settings.teacher_batch_size,
            start_date=settings.assignment_start_date,
        )
        self.verifier = ConsistencyVerifier(self.store)

    def rebuild_time_blocks(self) -> int:
        started = perf_counter()
        teachers = self.store.active_teachers()
        updates = {
            teacher.id: [block.model_dump(mode="json") for block in self.generator.generate()]
            for teacher in teachers
        }
        written = self.store.replace_field(
            Teacher, "time_blocks", updates, batch_size=self.settings.teacher_batch_size
        )
        logger.info("Rebuilt time blocks for %d teacher(s) (%dms)", written, _elapsed_ms(started))
        return written

    def pack_students(self) -> PackingPlan:
        started = perf_counter()
        teachers = {teacher.id: teacher for teacher in self.store.active_teachers()}
        plan = PackingPlan()

        students_by_teacher: dict[str, list[StudentRef]] = defaultdict(list)
        for student in self.store.active_students():
            teacher_id = student.primary_teacher_id
            if teacher_id is None:
                continue
            students_by_teacher[teacher_id].append(StudentRef(id=student.id, name=student.full_name))

        for teacher_id, students in students_by_teacher.items():
            teacher = teachers.get(teacher_id)
            if teacher is None or not teacher.time_blocks:
                logger.warning(
                    "Skipping %d student(s) of teacher %s: teacher inactive, unknown or without blocks",
                    len(students),
                    teacher_id,
                )
                plan.skipped_students += len(students)
                continue
            blocks = [TimeBlock.model_validate(item) for item in teacher.time_blocks]
            plan.results.append(self.packer.pack(teacher_id, blocks, students))

        logger.info(
            "Packed %d student(s) (%d overflow, %d skipped) (%dms)",
            plan.assigned_count,
            plan.overflow_count,
            plan.skipped_students,
            _elapsed_ms(started),
        )
        unplaced = plan.unplaced_by_teacher
        if unplaced:
            raise UnplaceableStudentsError(unplaced)
        return plan

    def verify(self) -> VerificationReport:
        return self.verifier.verify()

    def run(self, *, verify_only: bool = False) -> SeedRunSummary:
        started = perf_counter()
        summary = SeedRunSummary(verify_only=verify_only)

        if not verify_only:
            summary.teachers_rebuilt = self.rebuild_time_blocks()
            plan = self.pack_students()
            summary.students_assigned = plan.assigned_count
            summary.overflow_assigned = plan.overflow_count
            summary.skipped_students = plan.skipped_students
            summary.sync = self.synchronizer.synchronize(plan.results)

        summary.report = self.verify()
        summary.elapsed_ms = _elapsed_ms(started)
        return summary
